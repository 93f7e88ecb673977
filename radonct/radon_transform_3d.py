"""3D Radon transform (plane integrals) of a volume on one or more CUDA devices.

A plane integral is computed by placing a square integration slice into the
plane, sampling the volume trilinearly at every slice pixel, reducing each
16 x 16 patch of the slice on the device and summing the patches on the host.
The sum is scaled by the pixel area ``slice_resolution ** 2``.

Every device gets its own worker holding a copy of the volume, a stream and
result buffers. Sweeps over many planes are distributed round-robin across
the workers by a :class:`~radonct.scheduling.DevicePool`.
"""

import logging
import math

import numpy as np
from numba import cuda

from .constants import _DTYPE, _PATCH_SIZE, _SQRT_2, _TPB_2D, _FUZZY_ZERO
from .containers import VoxelVolume
from .coordinates import SamplingRange, unit_normal
from .kernels import _plane_integral_kernel
from .scheduling import DevicePool, DeviceResult
from .utils import DeviceError, device_context, next_multiple_of, select_devices, upload

logger = logging.getLogger(__name__)


# ============================================================================
# Plane Geometry
# ============================================================================

def rotation_xy_plane_to_plane(normal):
    """Rotation matrix whose third column is `normal`.

    The first two columns span the plane. The auxiliary axis is the world
    axis least aligned with `normal`.

    Parameters
    ----------
    normal : array-like
        Unit plane normal, shape (3,).

    Returns
    -------
    numpy.ndarray
        Rotation matrix ``[r1 r2 n]``, shape (3, 3).
    """
    r3 = np.asarray(normal, dtype=np.float64)
    axis = np.zeros(3)
    axis[np.argmin(np.abs(r3))] = 1.0
    r2 = np.cross(r3, axis)
    r2 /= np.linalg.norm(r2)
    r1 = np.cross(r2, r3)
    return np.column_stack([r1, r2, r3])


class _PlaneIntegralWorker:
    """Owns the volume copy, stream and buffers of one device."""

    def __init__(self, device_id, volume_data, slice_dimension):
        self.device_id = device_id
        self._n_dists = 0
        self._slice_dimension = 0
        self._d_result = None
        self._h_result = None

        with device_context(device_id, "Volume upload"):
            self._stream = cuda.stream()
            self._d_vol = upload(volume_data, stream=self._stream)
            self._h_mapping = cuda.pinned_array(9, dtype=_DTYPE)
            self._h_shift = cuda.pinned_array(3, dtype=_DTYPE)
            self._d_mapping = cuda.device_array(9, dtype=_DTYPE, stream=self._stream)
            self._d_shift = cuda.device_array(3, dtype=_DTYPE, stream=self._stream)
            self._stream.synchronize()
        self.resize_slice(slice_dimension)

    @property
    def n_patches(self):
        return (self._slice_dimension // _PATCH_SIZE) ** 2

    def resize_slice(self, slice_dimension):
        self._slice_dimension = slice_dimension
        self._allocate_results()

    def _allocate_results(self):
        if self._n_dists == 0:
            return
        size = self._n_dists * self.n_patches
        with device_context(self.device_id, "Result buffer allocation"):
            self._d_result = cuda.device_array(size, dtype=_DTYPE, stream=self._stream)
            self._h_result = cuda.pinned_array(size, dtype=_DTYPE)
        logger.debug("Device %d: %d distances x %d patches", self.device_id,
                     self._n_dists, self.n_patches)

    def set_distances(self, dists):
        """Upload the plane distances used by subsequent dispatches."""
        dists = np.asarray(dists, dtype=_DTYPE).ravel()
        with device_context(self.device_id, "Distance upload"):
            if dists.size != self._n_dists:
                self._n_dists = dists.size
                self._h_dists = cuda.pinned_array(self._n_dists, dtype=_DTYPE)
                self._d_dists = cuda.device_array(self._n_dists, dtype=_DTYPE,
                                                  stream=self._stream)
                self._allocate_results()
            self._h_dists[:] = dists
            self._d_dists.copy_to_device(self._h_dists, stream=self._stream)

    def dispatch(self, mapping, dist_shift):
        """Issue the plane integrals of one orientation at all distances.

        Returns immediately; the returned result has shape
        ``(n_dists, n_patches)`` once waited for.
        """
        if self._n_dists == 0:
            raise ValueError("No plane distances set")
        n_blocks = self._slice_dimension // _PATCH_SIZE
        with device_context(self.device_id, "Plane integral dispatch"):
            self._h_mapping[:] = np.asarray(mapping, dtype=_DTYPE).ravel()
            self._h_shift[:] = dist_shift
            self._d_mapping.copy_to_device(self._h_mapping, stream=self._stream)
            self._d_shift.copy_to_device(self._h_shift, stream=self._stream)
            nz, ny, nx = self._d_vol.shape
            _plane_integral_kernel[(n_blocks, n_blocks), _TPB_2D, self._stream](
                self._d_vol, nx, ny, nz,
                self._d_mapping, self._d_shift, self._d_dists, self._n_dists,
                self._d_result
            )
            self._d_result.copy_to_host(self._h_result, stream=self._stream)
            event = cuda.event()
            event.record(self._stream)
        return DeviceResult(self._h_result.reshape(self._n_dists, self.n_patches), event)


# ============================================================================
# 3D Radon Transform
# ============================================================================

class RadonTransform3D:
    """Plane integrals of a volume.

    Parameters
    ----------
    volume : VoxelVolume
        Volume to transform. Copied to every device on construction.
    devices : sequence of int, optional
        CUDA device ids to use (default: all visible devices).
    slice_dimension : int, optional
        Edge length of the integration slice in pixels, rounded up to a
        multiple of 16. Default: ``ceil(sqrt(2) * max(nx, ny, nz))``, rounded.
    slice_resolution : float, optional
        Slice pixel size in mm (default: smallest voxel size).

    Raises
    ------
    ValueError
        If a voxel size is zero or negative, or the device list is empty.
    RuntimeError
        If no CUDA device is available.

    Examples
    --------
    >>> vol = VoxelVolume.cube(16, value=2.0)
    >>> radon = RadonTransform3D(vol)
    >>> radon.plane_integral([0.0, 0.0, 1.0], 0.0)  # ~ 2 * 16 * 16
    """

    def __init__(self, volume, devices=None, slice_dimension=None, slice_resolution=None):
        if not isinstance(volume, VoxelVolume):
            volume = VoxelVolume(volume)
        if not volume.has_positive_voxel_size():
            raise ValueError(f"Voxel size is zero or negative: {volume.voxel_size}")
        self._volume = volume

        if slice_dimension is None:
            slice_dimension = math.ceil(_SQRT_2 * max(volume.dimensions))
        self._slice_dimension = self._valid_slice_dimension(slice_dimension)
        self._slice_resolution = volume.smallest_voxel_size()

        self._workers = [
            _PlaneIntegralWorker(dev, volume.data, self._slice_dimension)
            for dev in select_devices(devices)
        ]
        self._pool = DevicePool(self._workers)
        logger.info("3D Radon transform of %s on devices %s, slice %d px",
                    volume, self.devices, self._slice_dimension)

        if slice_resolution is not None:
            self.slice_resolution = slice_resolution

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    @property
    def devices(self):
        return [w.device_id for w in self._workers]

    @property
    def volume(self):
        return self._volume

    @staticmethod
    def _valid_slice_dimension(dimension):
        dimension = next_multiple_of(dimension, _PATCH_SIZE)
        if dimension <= 0:
            raise ValueError(f"Slice dimension must be positive, got {dimension}")
        return dimension

    @property
    def slice_dimension(self):
        """Edge length of the square integration slice in pixels."""
        return self._slice_dimension

    @slice_dimension.setter
    def slice_dimension(self, dimension):
        self._slice_dimension = self._valid_slice_dimension(dimension)
        for worker in self._workers:
            worker.resize_slice(self._slice_dimension)

    @property
    def slice_resolution(self):
        """Slice pixel size in mm."""
        return self._slice_resolution

    @slice_resolution.setter
    def slice_resolution(self, resolution):
        """Change the pixel size while keeping the slice extent."""
        if not resolution > 0.0:
            raise ValueError(f"Slice resolution must be positive, got {resolution}")
        factor = self._slice_resolution / resolution
        self._slice_resolution = float(resolution)
        self.slice_dimension = math.ceil(self._slice_dimension * factor)

    def _plane_geometry(self, normal):
        """Slice-to-index mapping and per-mm distance shift for a unit normal."""
        rot = rotation_xy_plane_to_plane(normal)
        vox = np.asarray(self._volume.voxel_size)
        dims = np.asarray(self._volume.dimensions, dtype=np.float64)
        corner = np.asarray(self._volume.offset) - 0.5 * dims * vox
        half = 0.5 * self._slice_resolution * (self._slice_dimension - 1)
        template_start = np.array([-half, -half, 0.0])

        mapping = np.empty((3, 3))
        mapping[:, :2] = self._slice_resolution * rot[:, :2]
        mapping[:, 2] = rot @ template_start - corner
        mapping /= vox[:, None]
        # voxel centres at integer index coordinates
        mapping[:, 2] -= 0.5
        return mapping, np.asarray(normal) / vox

    # ------------------------------------------------------------------
    # Sampling
    # ------------------------------------------------------------------

    def plane_integral(self, normal, distance):
        """Integral over the plane ``normal . x = distance``.

        Parameters
        ----------
        normal : array-like
            Plane normal, shape (3,). Normalized internally.
        distance : float
            Signed distance from the world origin in mm.

        Returns
        -------
        float
            The plane integral, or 0.0 if the device work failed.
        """
        normal = np.asarray(normal, dtype=np.float64)
        norm = np.linalg.norm(normal)
        if norm < _FUZZY_ZERO:
            raise ValueError("Plane normal must not be zero")
        if not self._workers:
            logger.error("No device initialized, returning 0 for plane integral")
            return 0.0
        worker = self._workers[0]
        try:
            worker.set_distances([distance / norm])
            patch_sums = worker.dispatch(*self._plane_geometry(normal / norm)).result()
        except DeviceError:
            logger.exception("Plane integral failed, returning 0")
            return 0.0
        return float(patch_sums.sum(dtype=np.float64)) * self._slice_resolution ** 2

    def plane_integral_spherical(self, azimuth, polar, distance):
        """Integral over the plane with Radon coordinates ``(azimuth, polar, distance)``."""
        return self.plane_integral(unit_normal(azimuth, polar), distance)

    def sample_transform(self, azimuths, polars, distances):
        """Sample the transform on the grid azimuth x polar x distance.

        Parameters
        ----------
        azimuths, polars : array-like
            Angles in radians.
        distances : array-like
            Plane distances in mm.

        Returns
        -------
        VoxelVolume
            Plane integrals with azimuth along x, polar along y and distance
            along z, i.e. ``data[dist_index, polar_index, azimuth_index]``.

        Raises
        ------
        DeviceError
            If device work fails during the sweep.
        """
        azimuths = np.asarray(azimuths, dtype=np.float64).ravel()
        polars = np.asarray(polars, dtype=np.float64).ravel()
        distances = np.asarray(distances, dtype=_DTYPE).ravel()
        out = np.zeros((distances.size, polars.size, azimuths.size), dtype=np.float64)
        if out.size == 0:
            return VoxelVolume(out)

        for worker in self._workers:
            worker.set_distances(distances)

        def dispatch(worker, job):
            ia, ip = job
            return worker.dispatch(*self._plane_geometry(unit_normal(azimuths[ia], polars[ip])))

        jobs = ((ia, ip) for ip in range(polars.size) for ia in range(azimuths.size))
        for (ia, ip), patch_sums in self._pool.imap(dispatch, jobs):
            out[:, ip, ia] = patch_sums.sum(axis=1, dtype=np.float64)

        out *= self._slice_resolution ** 2
        return VoxelVolume(out)

    def sample_transform_ranges(self, azimuth_range, n_azimuth, polar_range, n_polar,
                                distance_range, n_distance):
        """Sample the transform on equidistant ranges.

        The returned volume carries the range spacings as voxel size and the
        range centres as offset, so it can be resampled in Radon coordinates.
        """
        ranges = (azimuth_range, polar_range, distance_range)
        counts = (n_azimuth, n_polar, n_distance)
        result = self.sample_transform(*(r.linspace(n) for r, n in zip(ranges, counts)))
        result.voxel_size = tuple(r.spacing(n) for r, n in zip(ranges, counts))
        result.offset = tuple(r.center() for r in ranges)
        return result

    def sample_planes(self, azimuths, polars, distances):
        """Integrals over scattered plane orientations, each at its own distances.

        Parameters
        ----------
        azimuths, polars : array-like
            Plane orientations, shape (N,).
        distances : array-like
            Distances per orientation, shape (N, K).

        Returns
        -------
        numpy.ndarray
            Plane integrals, shape (N, K).

        Raises
        ------
        DeviceError
            If device work fails.
        """
        azimuths = np.asarray(azimuths, dtype=np.float64).ravel()
        polars = np.asarray(polars, dtype=np.float64).ravel()
        distances = np.asarray(distances, dtype=_DTYPE)
        distances = distances.reshape(azimuths.size, -1) if azimuths.size else distances
        out = np.zeros(distances.shape, dtype=np.float64)
        if out.size == 0:
            return out
        normals = unit_normal(azimuths, polars)

        def dispatch(worker, i):
            worker.set_distances(distances[i])
            return worker.dispatch(*self._plane_geometry(normals[i]))

        for i, patch_sums in self._pool.imap(dispatch, range(azimuths.size)):
            out[i] = patch_sums.sum(axis=1, dtype=np.float64)
        return out * self._slice_resolution ** 2


def radon_space_ranges(volume):
    """Sampling ranges covering the Radon space of a volume.

    Returns ``(azimuth_range, polar_range, distance_range)`` with azimuth in
    ``[-pi, pi]``, polar in ``[0, pi]`` and distance within the half diagonal.
    """
    dims = np.asarray(volume.dimensions, dtype=np.float64)
    half_diag = 0.5 * float(np.linalg.norm(dims * np.asarray(volume.voxel_size)))
    return (SamplingRange(-math.pi, math.pi), SamplingRange(0.0, math.pi),
            SamplingRange(-half_diag, half_diag))
