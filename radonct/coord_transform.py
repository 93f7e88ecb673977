"""Device-resident rigid transforms of a fixed set of 3D Radon coordinates."""

import logging

import numpy as np
from numba import cuda

from .constants import _DTYPE
from .kernels import _hom_to_radon_kernel, _radon_to_hom_kernel
from .utils import _grid_1d, as_coordinate_array, device_context, select_devices

logger = logging.getLogger(__name__)


def homography(rotation, translation):
    """4x4 matrix ``[[R, t], [0, 1]]``."""
    mat = np.eye(4)
    mat[:3, :3] = np.asarray(rotation, dtype=np.float64)
    mat[:3, 3] = np.asarray(translation, dtype=np.float64).reshape(3)
    return mat


class Radon3DCoordTransform:
    """Transform a fixed plane set by a 4x4 homography on the GPU.

    The plane set is uploaded once. Every :meth:`transform` call uploads only
    the 16 matrix entries, maps each plane ``p`` to ``H^T p`` and converts the
    result back to ``(azimuth, polar, dist)``. Azimuths come back in
    ``[-pi, pi)``; an input azimuth at the boundary may therefore return
    shifted by ``2 pi``, which describes the same plane.

    The returned device buffer is scratch memory owned by this object: it is
    overwritten by the next :meth:`transform` call, so it must be consumed
    (e.g. by :meth:`VolumeResampler.sample`) before transforming again.

    Parameters
    ----------
    coords : array-like
        Radon 3D coordinates ``(azimuth, polar, dist)``, shape (N, 3).
    device : int, optional
        CUDA device id (default: 0).

    Examples
    --------
    >>> coord_transform = Radon3DCoordTransform([(0.1, 1.2, 5.0), (2.0, 0.4, -3.0)])
    >>> coord_transform.transformed_coords(np.eye(3), np.zeros(3))
    """

    def __init__(self, coords=None, device=0):
        self._device = select_devices([device])[0]
        self._n_coords = 0
        with device_context(self._device, "Coordinate transform setup"):
            self._stream = cuda.stream()
            self._h_mat = cuda.pinned_array(16, dtype=_DTYPE)
            self._d_mat = cuda.device_array(16, dtype=_DTYPE, stream=self._stream)
        if coords is not None:
            self.reset_initial_coords(coords)

    @classmethod
    def from_hom_coords(cls, planes, device=0):
        """Construct from normalized homogeneous planes of shape (N, 4)."""
        obj = cls(device=device)
        obj.reset_initial_hom_coords(planes)
        return obj

    def __len__(self):
        return self._n_coords

    def _ensure_buffers(self, n_coords):
        if n_coords == self._n_coords:
            return
        self._n_coords = n_coords
        self._d_radon = cuda.device_array((n_coords, 3), dtype=_DTYPE, stream=self._stream)
        self._d_hom = cuda.device_array((n_coords, 4), dtype=_DTYPE, stream=self._stream)
        self._d_transformed = cuda.device_array((n_coords, 3), dtype=_DTYPE, stream=self._stream)
        logger.debug("Allocated coordinate buffers for %d planes", n_coords)

    def reset_initial_coords(self, coords):
        """Replace the plane set by Radon 3D coordinates of shape (N, 3)."""
        coords = as_coordinate_array(coords, 3, "Radon 3D coordinates")
        with device_context(self._device, "Coordinate upload"):
            self._ensure_buffers(coords.shape[0])
            if self._n_coords == 0:
                return
            self._d_radon.copy_to_device(coords, stream=self._stream)
            grid, tpb = _grid_1d(self._n_coords)
            _radon_to_hom_kernel[grid, tpb, self._stream](self._d_radon, self._d_hom, self._n_coords)
            self._stream.synchronize()

    def reset_initial_hom_coords(self, planes):
        """Replace the plane set by homogeneous planes of shape (N, 4)."""
        planes = as_coordinate_array(planes, 4, "homogeneous planes")
        with device_context(self._device, "Coordinate upload"):
            self._ensure_buffers(planes.shape[0])
            if self._n_coords == 0:
                return
            self._d_hom.copy_to_device(planes, stream=self._stream)
            self._stream.synchronize()

    def initial_hom_coords(self):
        """Host copy of the loaded homogeneous planes, shape (N, 4)."""
        out = np.zeros((self._n_coords, 4), dtype=_DTYPE)
        if self._n_coords:
            with device_context(self._device, "Coordinate download"):
                self._d_hom.copy_to_host(out, stream=self._stream)
                self._stream.synchronize()
        return out

    def transform(self, homography_matrix):
        """Transform all planes by a 4x4 homography.

        Parameters
        ----------
        homography_matrix : array-like
            4x4 matrix ``H``; planes are mapped by ``H^T``.

        Returns
        -------
        DeviceNDArray
            Transformed ``(azimuth, polar, dist)``, shape (N, 3). Valid until
            the next call.
        """
        mat = np.asarray(homography_matrix, dtype=np.float64)
        if mat.shape != (4, 4):
            raise ValueError(f"Homography must be 4x4, got {mat.shape}")
        if self._n_coords == 0:
            raise ValueError("No coordinates loaded")
        with device_context(self._device, "Coordinate transform"):
            self._h_mat[:] = mat.T.ravel()
            self._d_mat.copy_to_device(self._h_mat, stream=self._stream)
            grid, tpb = _grid_1d(self._n_coords)
            _hom_to_radon_kernel[grid, tpb, self._stream](
                self._d_hom, self._d_mat, self._d_transformed, self._n_coords
            )
            event = cuda.event()
            event.record(self._stream)
            event.synchronize()
        return self._d_transformed

    def transform_rt(self, rotation, translation):
        """Shorthand for :meth:`transform` with ``[[R, t], [0, 1]]``."""
        return self.transform(homography(rotation, translation))

    def transformed_coords(self, rotation, translation):
        """Host copy of the transformed coordinates, shape (N, 3)."""
        if self._n_coords == 0:
            return np.zeros((0, 3), dtype=_DTYPE)
        d_out = self.transform_rt(rotation, translation)
        out = np.zeros((self._n_coords, 3), dtype=_DTYPE)
        with device_context(self._device, "Coordinate download"):
            d_out.copy_to_host(out, stream=self._stream)
            self._stream.synchronize()
        return out
