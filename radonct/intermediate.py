"""Grangeat intermediate functions of projections and volumes.

Grangeat's theorem relates the derivative of a volume's 3D Radon transform,
taken along the plane distance, to the derivative of line integrals of a
cone-beam projection. :class:`IntermediateProj` evaluates the projection side
(with optional cosine weighting that compensates the varying source-to-pixel
distance) and :class:`IntermediateVol` the volume side.
"""

import logging

import numpy as np

from .constants import _DTYPE
from .containers import Chunk2D, VoxelVolume
from .filters import DiffMethod, filter_along
from .radon_transform_2d import RadonTransform2D
from .radon_transform_3d import RadonTransform3D
from .resampler import ImageResampler, VolumeResampler
from .utils import as_coordinate_array

logger = logging.getLogger(__name__)


# ============================================================================
# Cosine Weighting
# ============================================================================

def _ray_cosines(points, K):
    """Cosine between the rays through detector points (N, 2) and the principal ray."""
    K_inv = np.linalg.inv(np.asarray(K, dtype=np.float64))
    hom = np.column_stack([points, np.ones(len(points))])
    rays = hom @ K_inv.T
    return rays[:, 2] / np.linalg.norm(rays, axis=1)


def cos_weighting(image, K):
    """Multiply each pixel by the cosine of its ray to the principal ray.

    Parameters
    ----------
    image : array-like
        Projection of shape (height, width).
    K : array-like
        3x3 intrinsic matrix of the projection.

    Returns
    -------
    numpy.ndarray
        Weighted projection, float32.
    """
    image = np.asarray(image, dtype=np.float64)
    ys, xs = np.mgrid[:image.shape[0], :image.shape[1]]
    cosines = _ray_cosines(np.column_stack([xs.ravel(), ys.ravel()]), K)
    return (image * cosines.reshape(image.shape)).astype(_DTYPE)


def plane_angle_cosines(coords, K, origin):
    """Cosine of the angle between each Radon line's plane and the principal ray.

    The angle is evaluated at the point of the line closest to the principal
    point.

    Parameters
    ----------
    coords : array-like
        Radon 2D coordinates ``(angle, dist)``, shape (N, 2).
    K : array-like
        3x3 intrinsic matrix.
    origin : tuple of float
        Origin of the Radon coordinates in pixel coordinates.

    Returns
    -------
    numpy.ndarray
        Cosines, shape (N,).
    """
    coords = np.asarray(coords, dtype=np.float64).reshape(-1, 2)
    K = np.asarray(K, dtype=np.float64)
    principal = K[:2, 2] / K[2, 2]
    normals = np.column_stack([np.cos(coords[:, 0]), np.sin(coords[:, 0])])
    s_principal = normals @ (principal - np.asarray(origin, dtype=np.float64))
    foot = (coords[:, 1] - s_principal)[:, None] * normals + principal
    return _ray_cosines(foot, K)


class IntermediateProj:
    """Derivative of the 2D Radon transform of a projection.

    Parameters
    ----------
    projection : Chunk2D or array-like
        Projection image of shape (height, width).
    K : array-like, optional
        Intrinsic matrix. Required for cosine weighting.
    use_weighting : bool, optional
        Apply the cosine pre- and post-weighting (default: True, ignored
        without `K`).
    device : int, optional
        CUDA device id (default: 0).
    """

    def __init__(self, projection, K=None, use_weighting=True, device=0):
        if not isinstance(projection, Chunk2D):
            projection = Chunk2D(projection)
        self._K = None if K is None else np.asarray(K, dtype=np.float64)
        self._use_weighting = bool(use_weighting) and self._K is not None
        if use_weighting and self._K is None:
            logger.debug("No intrinsic matrix given, cosine weighting disabled")
        data = cos_weighting(projection.data, self._K) if self._use_weighting else projection.data
        self._radon = RadonTransform2D(data, device=device)

    @property
    def origin(self):
        return self._radon.origin

    @origin.setter
    def origin(self, origin):
        self._radon.origin = origin

    def set_origin(self, x, y):
        self._radon.set_origin(x, y)

    @property
    def uses_weighting(self):
        return self._use_weighting

    def _post_weighting(self, coords):
        cosines = plane_angle_cosines(coords, self._K, self.origin)
        return 1.0 / cosines ** 2

    def sampled(self, angle_range, n_angles, dist_range, n_dists,
                method=DiffMethod.CentralDifference):
        """Intermediate function on an (angle x distance) grid.

        Parameters
        ----------
        angle_range : SamplingRange
            Line angles in radians.
        n_angles : int
            Number of angles.
        dist_range : SamplingRange
            Line distances in pixels.
        n_dists : int
            Number of distances, at least 2.
        method : DiffMethod or FiltMethod, optional
            Derivative filter along the distance axis.

        Returns
        -------
        Chunk2D
            Width ``n_angles``, height ``n_dists``.
        """
        if n_dists < 2:
            raise ValueError("At least two distance samples are required for a derivative")
        angles = angle_range.linspace(n_angles)
        dists = dist_range.linspace(n_dists)
        sinogram = self._radon.sample_transform(angles, dists)
        deriv = filter_along(sinogram.data, 0, method) / np.float32(dist_range.spacing(n_dists))

        if self._use_weighting:
            a, d = np.meshgrid(angles, dists)
            weights = self._post_weighting(np.column_stack([a.ravel(), d.ravel()]))
            deriv = deriv * weights.reshape(deriv.shape).astype(_DTYPE)
        return Chunk2D(deriv)

    def sampled_points(self, coords, plus_minus_h=1.0):
        """Central-difference intermediate function at scattered lines.

        Parameters
        ----------
        coords : array-like
            Radon 2D coordinates ``(angle, dist)``, shape (N, 2).
        plus_minus_h : float, optional
            Half step of the central difference in pixels (default: 1.0).

        Returns
        -------
        numpy.ndarray
            Values of shape (N,).
        """
        if not plus_minus_h > 0.0:
            raise ValueError(f"Difference step must be positive, got {plus_minus_h}")
        coords = as_coordinate_array(coords, 2, "Radon 2D coordinates")
        shift = np.array([0.0, plus_minus_h], dtype=_DTYPE)
        plus = self._radon.sample_transform_points(coords + shift)
        minus = self._radon.sample_transform_points(coords - shift)
        values = (plus.astype(np.float64) - minus) / (2.0 * plus_minus_h)
        if self._use_weighting:
            values *= self._post_weighting(coords)
        return values.astype(_DTYPE)

    def sampler(self, angle_range, n_angles, dist_range, n_dists,
                method=DiffMethod.CentralDifference, device=0):
        """Precompute the intermediate function for repeated resampling."""
        sampled = self.sampled(angle_range, n_angles, dist_range, n_dists, method)
        return ImageResampler(sampled, angle_range, dist_range, device=device)


class IntermediateVol:
    """Derivative of the 3D Radon transform of a volume along the plane distance.

    Parameters
    ----------
    volume : VoxelVolume
        Volume to transform.
    devices : sequence of int, optional
        CUDA devices for the plane integrals (default: all).
    **radon_options
        Forwarded to :class:`RadonTransform3D` (``slice_dimension``,
        ``slice_resolution``).
    """

    def __init__(self, volume, devices=None, **radon_options):
        self._radon = RadonTransform3D(volume, devices=devices, **radon_options)

    @property
    def radon_transform(self):
        return self._radon

    def sampler(self, azimuth_range, n_azimuth, polar_range, n_polar, dist_range, n_dists,
                method=DiffMethod.CentralDifference, device=0):
        """Sample the intermediate function on a grid and keep it for resampling.

        Returns
        -------
        VolumeResampler
            Resampler over (azimuth, polar, distance) in radians and mm.
        """
        if n_dists < 2:
            raise ValueError("At least two distance samples are required for a derivative")
        transform = self._radon.sample_transform_ranges(
            azimuth_range, n_azimuth, polar_range, n_polar, dist_range, n_dists)
        deriv = filter_along(transform.data, 0, method) / np.float32(dist_range.spacing(n_dists))
        deriv = VoxelVolume(deriv, transform.voxel_size, transform.offset)
        return VolumeResampler(deriv, azimuth_range, polar_range, dist_range, device=device)

    def sampled(self, coords, plus_minus_h=1.0):
        """Central-difference intermediate function at scattered planes.

        Parameters
        ----------
        coords : array-like
            Radon 3D coordinates ``(azimuth, polar, dist)``, shape (N, 3).
        plus_minus_h : float, optional
            Half step of the central difference in mm (default: 1.0).

        Returns
        -------
        numpy.ndarray
            Values of shape (N,).
        """
        if not plus_minus_h > 0.0:
            raise ValueError(f"Difference step must be positive, got {plus_minus_h}")
        coords = np.asarray(as_coordinate_array(coords, 3, "Radon 3D coordinates"), dtype=np.float64)
        dists = coords[:, 2:3] + np.array([-plus_minus_h, plus_minus_h])
        integrals = self._radon.sample_planes(coords[:, 0], coords[:, 1], dists)
        return ((integrals[:, 1] - integrals[:, 0]) / (2.0 * plus_minus_h)).astype(_DTYPE)
