"""GPU linear resampling of regularly sampled intermediate functions.

An :class:`ImageResampler` or :class:`VolumeResampler` keeps a precomputed
function resident on a device together with the sampling ranges of each axis,
and interpolates it at arbitrary coordinates given in range units (angles in
radians, distances in mm). Samples outside the grid are zero.
"""

import logging

import numpy as np
from numba import cuda

from .constants import _DTYPE
from .containers import Chunk2D, VoxelVolume
from .coordinates import SamplingRange
from .kernels import _image_resample_kernel, _volume_resample_kernel
from .utils import _grid_1d, as_coordinate_array, device_context, select_devices, upload

logger = logging.getLogger(__name__)


def _index_mapping(sampling_range, n):
    spacing = sampling_range.spacing(n)
    return sampling_range.start, (1.0 / spacing if spacing != 0.0 else 0.0)


def _default_ranges(dimensions, voxel_size, offset):
    return [
        SamplingRange(o - 0.5 * v * (n - 1), o + 0.5 * v * (n - 1))
        for n, v, o in zip(dimensions, voxel_size, offset)
    ]


class _Resampler:
    """Shared device handling of both resamplers."""

    n_dims = 0

    def __init__(self, data, ranges, device):
        if len(ranges) != self.n_dims:
            raise ValueError(f"Expected {self.n_dims} sampling ranges, got {len(ranges)}")
        self._ranges = list(ranges)
        self._data = data
        self._device = select_devices([device])[0]
        with device_context(self._device, "Resampler upload"):
            self._stream = cuda.stream()
            self._d_data = upload(data, stream=self._stream)
            self._stream.synchronize()

    @property
    def sampling_ranges(self):
        return tuple(self._ranges)

    def set_sampling_ranges(self, *ranges):
        if len(ranges) != self.n_dims:
            raise ValueError(f"Expected {self.n_dims} sampling ranges, got {len(ranges)}")
        self._ranges = list(ranges)

    def _kernel_geometry(self):
        # data axes are reversed with respect to the range order
        dims = self._data.shape[::-1]
        mapping = []
        for sampling_range, n in zip(self._ranges, dims):
            mapping.extend(_index_mapping(sampling_range, n))
        return list(dims), mapping

    def sample(self, coords):
        """Interpolate at coordinates of shape (N, n_dims).

        Parameters
        ----------
        coords : array-like or DeviceNDArray
            Host coordinates, or a device array such as the buffer returned
            by :meth:`Radon3DCoordTransform.transform`, which is read in
            place.

        Returns
        -------
        numpy.ndarray
            Interpolated values, shape (N,).
        """
        on_device = hasattr(coords, "copy_to_host")
        if on_device:
            if coords.size % self.n_dims != 0:
                raise ValueError(
                    f"Device coordinate buffer size {coords.size} is not a multiple of {self.n_dims}"
                )
            n_coords = coords.size // self.n_dims
        else:
            coords = as_coordinate_array(coords, self.n_dims)
            n_coords = coords.shape[0]
        out = np.zeros(n_coords, dtype=_DTYPE)
        if n_coords == 0:
            return out

        dims, mapping = self._kernel_geometry()
        with device_context(self._device, "Resampling"):
            if not on_device:
                d_coords = cuda.to_device(coords, stream=self._stream)
            elif coords.ndim != 2:
                d_coords = coords.reshape(n_coords, self.n_dims)
            else:
                d_coords = coords
            d_out = cuda.device_array(n_coords, dtype=_DTYPE, stream=self._stream)
            grid, tpb = _grid_1d(n_coords)
            self._kernel[grid, tpb, self._stream](
                self._d_data, *dims, *mapping, d_coords, n_coords, d_out
            )
            d_out.copy_to_host(out, stream=self._stream)
            self._stream.synchronize()
        return out


class ImageResampler(_Resampler):
    """Bilinear resampler of a 2D function.

    Parameters
    ----------
    image : Chunk2D
        Function values; x (width) is the first coordinate, y the second.
    range_1, range_2 : SamplingRange
        Coordinate ranges covered by the first and last pixel of each axis.
    device : int, optional
        CUDA device id (default: 0).
    """

    n_dims = 2
    _kernel = staticmethod(_image_resample_kernel)

    def __init__(self, image, range_1, range_2, device=0):
        if not isinstance(image, Chunk2D):
            image = Chunk2D(image)
        super().__init__(image.data, (range_1, range_2), device)

    @property
    def image(self):
        return Chunk2D(self._data)

    def resample(self, points_1, points_2):
        """Sample the grid ``points_1 x points_2``; returns a Chunk2D."""
        p1, p2 = np.meshgrid(np.asarray(points_1, dtype=_DTYPE), np.asarray(points_2, dtype=_DTYPE))
        values = self.sample(np.stack([p1.ravel(), p2.ravel()], axis=1))
        return Chunk2D(values.reshape(p1.shape))


class VolumeResampler(_Resampler):
    """Trilinear resampler of a 3D function, e.g. a sampled 3D Radon transform.

    Parameters
    ----------
    volume : VoxelVolume
        Function values; x, y and z are the first, second and third coordinate.
    range_1, range_2, range_3 : SamplingRange, optional
        Coordinate ranges of the axes. Default: derived from the volume
        offset and voxel size, ``offset -/+ voxel_size * (n - 1) / 2``.
    device : int, optional
        CUDA device id (default: 0).
    """

    n_dims = 3
    _kernel = staticmethod(_volume_resample_kernel)

    def __init__(self, volume, range_1=None, range_2=None, range_3=None, device=0):
        if not isinstance(volume, VoxelVolume):
            volume = VoxelVolume(volume)
        ranges = [range_1, range_2, range_3]
        defaults = _default_ranges(volume.dimensions, volume.voxel_size, volume.offset)
        ranges = [r if r is not None else d for r, d in zip(ranges, defaults)]
        self._voxel_size = volume.voxel_size
        self._offset = volume.offset
        super().__init__(volume.data, ranges, device)

    @property
    def volume(self):
        return VoxelVolume(self._data, self._voxel_size, self._offset)

    def resample(self, points_1, points_2, points_3):
        """Sample the grid ``points_1 x points_2 x points_3``; returns a VoxelVolume."""
        p3, p2, p1 = np.meshgrid(np.asarray(points_3, dtype=_DTYPE),
                                 np.asarray(points_2, dtype=_DTYPE),
                                 np.asarray(points_1, dtype=_DTYPE), indexing="ij")
        values = self.sample(np.stack([p1.ravel(), p2.ravel(), p3.ravel()], axis=1))
        return VoxelVolume(values.reshape(p1.shape))
