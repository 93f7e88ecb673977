"""Grangeat consistency: correspondence generators and intermediate function pairs.

Two acquisitions are consistent when their intermediate functions agree on
corresponding samples. For two projections the corresponding samples are
the detector lines cut out by planes of the pencil around the source
baseline; for a projection and a volume, each detector line corresponds to
the world plane through the source that projects onto it.

Subsampling keeps the same random subset of sample indices on both sides,
drawn from a single seed, and keeps the subset in ascending index order.
"""

import enum
import logging
import math
from typing import NamedTuple

import numpy as np

from .constants import (
    _DEFAULT_ANGLE_INCREMENT,
    _DEFAULT_LINE_DISTANCE,
    _DEFAULT_SUBSAMPLE_LEVEL,
    _DTYPE,
    _FUZZY_ZERO,
)
from .containers import Chunk2D
from .coordinates import SamplingRange
from .error_metrics import l2
from .filters import DiffMethod
from .intermediate import IntermediateProj, IntermediateVol

logger = logging.getLogger(__name__)


# ============================================================================
# Intermediate Function Pair
# ============================================================================

def shared_signal(values):
    """Read-only float32 signal; already read-only float32 vectors are reused as is."""
    if (isinstance(values, np.ndarray) and values.dtype == _DTYPE and values.ndim == 1
            and not values.flags.writeable):
        return values
    signal = np.array(values, dtype=_DTYPE).ravel()
    signal.flags.writeable = False
    return signal


_EMPTY_SIGNAL = shared_signal([])


class IntermediateFctPair:
    """Two index-aligned intermediate function signals.

    Signals are stored read-only and shared between pairs without copying,
    so a projection-side signal can be reused for many volume-side signals
    during an optimisation.

    Construction from signals of different length yields an empty pair and
    logs a warning; :meth:`inconsistency` of an empty pair raises.

    Parameters
    ----------
    first : array-like
        First signal, always from a projection.
    second : array-like
        Second signal.
    second_type : IntermediateFctPair.Type, optional
        Origin of `second` (default: ``Type.ProjectionDomain``).
    """

    class Type(enum.Enum):
        ProjectionDomain = "projection"
        VolumeDomain = "volume"

    def __init__(self, first=(), second=(), second_type=Type.ProjectionDomain):
        first = shared_signal(first)
        second = shared_signal(second)
        if first.size != second.size:
            logger.warning("Intermediate functions differ in length (%d != %d), pair is empty",
                           first.size, second.size)
            first = second = _EMPTY_SIGNAL
        self._first = first
        self._second = second
        self._second_type = second_type

    def __repr__(self):
        return f"IntermediateFctPair(size={self._first.size}, second_type={self._second_type})"

    def __len__(self):
        return self._first.size

    @property
    def first(self):
        return self._first

    @property
    def second(self):
        return self._second

    @property
    def first_type(self):
        return IntermediateFctPair.Type.ProjectionDomain

    @property
    def second_type(self):
        return self._second_type

    def is_empty(self):
        return self._first.size == 0

    def inconsistency(self, metric=l2, swap_input=False):
        """Evaluate ``metric(first, second)``, or ``metric(second, first)`` when swapped.

        Raises
        ------
        ValueError
            If the pair is empty.
        """
        if self.is_empty():
            raise ValueError("Inconsistency of an empty intermediate function pair")
        if swap_input:
            return float(metric(self._second, self._first))
        return float(metric(self._first, self._second))


# ============================================================================
# Subsampling
# ============================================================================

def new_seed():
    """Fresh 32-bit seed from operating system entropy."""
    return int(np.random.SeedSequence().generate_state(1)[0])


def subsample_indices(n, level, seed):
    """Sorted random subset of ``range(n)`` with about ``level * n`` elements.

    The subset depends only on `n`, `level` and `seed`, so two lists of equal
    length subsampled with the same seed stay aligned.
    """
    if n == 0:
        return np.zeros(0, dtype=np.intp)
    n_keep = min(n, max(1, int(round(level * n))))
    rng = np.random.default_rng(seed)
    return np.sort(rng.choice(n, size=n_keep, replace=False))


def _check_subsample_level(level):
    if not 0.0 < level <= 1.0:
        logger.warning("Subsample level %r outside (0, 1], ignored", level)
        return False
    return True


# ============================================================================
# Line Geometry
# ============================================================================

class LinePairs(NamedTuple):
    """Corresponding detector lines ``(angle, dist)`` of two views."""

    first: np.ndarray
    second: np.ndarray
    rotation_angles: np.ndarray


def orthonormal_to(vec):
    """Unit vector orthogonal to `vec`."""
    vec = np.asarray(vec, dtype=np.float64)
    axis = np.zeros(3)
    axis[np.argmin(np.abs(vec))] = 1.0
    ortho = np.cross(vec, axis)
    return ortho / np.linalg.norm(ortho)


def _pluecker_matrices(normals):
    """Skew-symmetric 3x3 matrices of plane normals, shape (N, 3, 3)."""
    mats = np.zeros((len(normals), 3, 3))
    mats[:, 0, 1] = normals[:, 2]
    mats[:, 0, 2] = -normals[:, 1]
    mats[:, 1, 0] = -normals[:, 2]
    mats[:, 1, 2] = normals[:, 0]
    mats[:, 2, 0] = normals[:, 1]
    mats[:, 2, 1] = -normals[:, 0]
    return mats


def pluecker_to_radon_2d(pluecker, origin):
    """Radon 2D coordinates of image lines given as Plücker matrices (N, 3, 3)."""
    lines = np.stack([pluecker[:, 1, 2], pluecker[:, 2, 0], pluecker[:, 0, 1]], axis=1)
    with np.errstate(divide="ignore", invalid="ignore"):
        lines = lines / np.linalg.norm(lines[:, :2], axis=1)[:, None]
    angles = np.arctan2(lines[:, 1], lines[:, 0])
    dists = -lines[:, 2] - lines[:, :2] @ np.asarray(origin, dtype=np.float64)
    return np.column_stack([angles, dists])


def intersects_detector(lines, proj_size, origin):
    """Whether lines ``(angle, dist)`` cross a ``(width, height)`` detector.

    A line crosses the detector unless all four corner pixels lie on the
    same side of it.
    """
    width, height = proj_size
    corners = np.array([[0.0, 0.0], [width - 1.0, 0.0],
                        [0.0, height - 1.0], [width - 1.0, height - 1.0]])
    corners -= np.asarray(origin, dtype=np.float64)
    normals = np.column_stack([np.cos(lines[:, 0]), np.sin(lines[:, 0])])
    with np.errstate(invalid="ignore"):
        below = normals @ corners.T - lines[:, 1:2] < 0.0
    return below.any(axis=1) & ~below.all(axis=1)


def _default_origin(proj_size):
    return (0.5 * (proj_size[0] - 1), 0.5 * (proj_size[1] - 1))


def line_pairs(P1, P2, proj_size, origin=None, angle_increment=_DEFAULT_ANGLE_INCREMENT):
    """Corresponding detector lines of two views.

    A plane is rotated around the baseline through both source positions in
    steps of `angle_increment` over half a turn. Each plane is mapped into
    both detectors; pairs where either line misses its detector are dropped.

    Parameters
    ----------
    P1, P2 : ProjectionMatrix
        Cameras of the two views.
    proj_size : tuple of int
        Detector size ``(width, height)`` in pixels, common to both views.
    origin : tuple of float, optional
        Origin of the Radon coordinates (default: detector centre).
    angle_increment : float, optional
        Rotation step in radians (default: 0.01 degree).

    Returns
    -------
    LinePairs
        Equal-length line lists and the rotation angle of each pair, in
        ascending order.

    Raises
    ------
    ValueError
        If both source positions coincide or the increment is not positive.
    """
    if not angle_increment > 0.0:
        raise ValueError(f"Angle increment must be positive, got {angle_increment}")
    if origin is None:
        origin = _default_origin(proj_size)

    source_1 = P1.source_position()
    baseline = P2.source_position() - source_1
    baseline_length = np.linalg.norm(baseline)
    if baseline_length < _FUZZY_ZERO:
        raise ValueError("Source positions coincide, the baseline is degenerate")
    baseline /= baseline_length

    init_normal = orthonormal_to(baseline)
    n_rotations = int(math.pi / angle_increment + 0.5)
    angles = np.arange(n_rotations) * angle_increment
    # rotation of init_normal about the baseline (both orthonormal)
    normals = (np.cos(angles)[:, None] * init_normal
               + np.sin(angles)[:, None] * np.cross(baseline, init_normal))

    pluecker = _pluecker_matrices(normals)
    lines_1 = pluecker_to_radon_2d(P1.M @ pluecker @ P1.M.T, origin)
    lines_2 = pluecker_to_radon_2d(P2.M @ pluecker @ P2.M.T, origin)
    keep = (intersects_detector(lines_1, proj_size, origin)
            & intersects_detector(lines_2, proj_size, origin))
    logger.debug("%d of %d baseline planes hit both detectors", int(keep.sum()), n_rotations)
    return LinePairs(lines_1[keep].astype(_DTYPE), lines_2[keep].astype(_DTYPE), angles[keep])


def intersection_planes_wcs(angles, dists, P, origin):
    """World planes through the source that project onto detector lines.

    Parameters
    ----------
    angles, dists : array-like
        Line angles (radians) and distances (pixels); all combinations are
        used, distance in the outer and angle in the inner loop.
    P : ProjectionMatrix
        Camera of the projection.
    origin : tuple of float
        Origin of the Radon coordinates in pixel coordinates.

    Returns
    -------
    numpy.ndarray
        Radon 3D coordinates ``(azimuth, polar, dist)``, shape
        ``(len(dists) * len(angles), 3)``.
    """
    mu, s = np.meshgrid(np.asarray(angles, dtype=np.float64), np.asarray(dists, dtype=np.float64))
    mu, s = mu.ravel(), s.ravel()
    normals_2d = np.column_stack([np.cos(mu), np.sin(mu)])
    offsets = s + normals_2d @ np.asarray(origin, dtype=np.float64)
    lines = np.column_stack([normals_2d, -offsets])

    normals = lines @ P.M
    normals /= np.linalg.norm(normals, axis=1)[:, None]
    coords = np.empty((len(mu), 3))
    azimuth = np.arctan2(normals[:, 1], normals[:, 0])
    coords[:, 0] = np.where(azimuth >= np.pi, azimuth - 2.0 * np.pi, azimuth)
    coords[:, 1] = np.arccos(np.clip(normals[:, 2], -1.0, 1.0))
    coords[:, 2] = normals @ P.source_position()
    return coords


# ============================================================================
# Correspondence Generators
# ============================================================================

class _SubsamplingMixin:

    def _init_subsampling(self, subsample_level, use_subsampling):
        self._subsample_level = _DEFAULT_SUBSAMPLE_LEVEL
        self._use_subsampling = False
        if _check_subsample_level(subsample_level):
            self._subsample_level = float(subsample_level)
        self._use_subsampling = bool(use_subsampling)
        self.last_seed = None

    @property
    def subsample_level(self):
        """Fraction of samples kept when subsampling is enabled."""
        return self._subsample_level

    @subsample_level.setter
    def subsample_level(self, level):
        if _check_subsample_level(level):
            self._subsample_level = float(level)
            self._use_subsampling = True

    @property
    def use_subsampling(self):
        return self._use_subsampling

    def toggle_subsampling(self, enabled=None):
        """Switch subsampling on or off; flips the current state by default."""
        self._use_subsampling = not self._use_subsampling if enabled is None else bool(enabled)

    def _subsample(self, n, seed):
        """Indices to keep, or None when subsampling is off."""
        if not self._use_subsampling:
            return None
        self.last_seed = new_seed() if seed is None else seed
        return subsample_indices(n, self._subsample_level, self.last_seed)


class IntermedGen2D2D(_SubsamplingMixin):
    """Intermediate function pairs of two projections.

    Parameters
    ----------
    angle_increment : float, optional
        Rotation step of the plane pencil in radians (default: 0.01 degree).
    subsample_level : float, optional
        Fraction of correspondences kept when subsampling (default: 0.1).
    use_subsampling : bool, optional
        Enable subsampling (default: False).
    """

    def __init__(self, angle_increment=_DEFAULT_ANGLE_INCREMENT,
                 subsample_level=_DEFAULT_SUBSAMPLE_LEVEL, use_subsampling=False):
        self.angle_increment = angle_increment
        self._init_subsampling(subsample_level, use_subsampling)

    @property
    def angle_increment(self):
        return self._angle_increment

    @angle_increment.setter
    def angle_increment(self, increment):
        if not increment > 0.0:
            raise ValueError(f"Angle increment must be positive, got {increment}")
        self._angle_increment = float(increment)

    def corresponding_lines(self, P1, P2, proj_size, origin=None, seed=None):
        """Line pairs of both views, subsampled when enabled."""
        pairs = line_pairs(P1, P2, proj_size, origin, self._angle_increment)
        keep = self._subsample(len(pairs.rotation_angles), seed)
        if keep is None:
            return pairs
        return LinePairs(pairs.first[keep], pairs.second[keep], pairs.rotation_angles[keep])

    def intermed_fct_pair(self, proj1, P1, proj2, P2, plus_minus_h=1.0, use_weighting=True,
                          seed=None, device=0):
        """Intermediate function pair of two projections.

        Parameters
        ----------
        proj1, proj2 : Chunk2D or array-like
            Projections of equal size.
        P1, P2 : ProjectionMatrix
            Their cameras.
        plus_minus_h : float, optional
            Half step of the central difference in pixels (default: 1.0).
        use_weighting : bool, optional
            Apply cosine weighting (default: True).
        seed : int, optional
            Subsampling seed (default: fresh entropy).
        device : int, optional
            CUDA device id (default: 0).

        Raises
        ------
        ValueError
            If the projections differ in size or the baseline is degenerate.
        """
        proj1 = proj1 if isinstance(proj1, Chunk2D) else Chunk2D(proj1)
        proj2 = proj2 if isinstance(proj2, Chunk2D) else Chunk2D(proj2)
        if proj1.dimensions != proj2.dimensions:
            raise ValueError(
                f"Projections differ in size: {proj1.dimensions} != {proj2.dimensions}"
            )
        pairs = self.corresponding_lines(P1, P2, proj1.dimensions, seed=seed)
        intermed_1 = IntermediateProj(proj1, P1.intrinsic_mat_k(), use_weighting, device=device)
        intermed_2 = IntermediateProj(proj2, P2.intrinsic_mat_k(), use_weighting, device=device)
        return IntermediateFctPair(intermed_1.sampled_points(pairs.first, plus_minus_h),
                                   intermed_2.sampled_points(pairs.second, plus_minus_h),
                                   IntermediateFctPair.Type.ProjectionDomain)

    def intermed_fct_pair_precomputed(self, sampler1, P1, sampler2, P2, proj_size, seed=None):
        """Intermediate function pair from two precomputed :class:`ImageResampler`.

        Raises
        ------
        ValueError
            If the resamplers hold intermediate functions of different size.
        """
        if sampler1.image.dimensions != sampler2.image.dimensions:
            raise ValueError(
                f"Resampled intermediate functions differ in size: "
                f"{sampler1.image.dimensions} != {sampler2.image.dimensions}"
            )
        pairs = self.corresponding_lines(P1, P2, proj_size, seed=seed)
        return IntermediateFctPair(sampler1.sample(pairs.first), sampler2.sample(pairs.second),
                                   IntermediateFctPair.Type.ProjectionDomain)


class IntermedGen2D3D(_SubsamplingMixin):
    """Intermediate function pairs of a projection and a volume.

    Parameters
    ----------
    line_distance : float, optional
        Spacing of the sampled detector lines in pixels (default: 1.0).
    subsample_level : float, optional
        Fraction of correspondences kept when subsampling (default: 0.1).
    use_subsampling : bool, optional
        Enable subsampling (default: False).
    """

    def __init__(self, line_distance=_DEFAULT_LINE_DISTANCE,
                 subsample_level=_DEFAULT_SUBSAMPLE_LEVEL, use_subsampling=False):
        self.line_distance = line_distance
        self._init_subsampling(subsample_level, use_subsampling)
        self._last_sampling = np.zeros((0, 3))

    @property
    def line_distance(self):
        return self._line_distance

    @line_distance.setter
    def line_distance(self, distance):
        if abs(distance) < _FUZZY_ZERO:
            raise ValueError("Line distance must not be zero")
        if abs(distance) < 1.0:
            logger.warning("Line distance %r below one pixel oversamples the projection", distance)
        self._line_distance = abs(float(distance))

    @property
    def last_sampling(self):
        """Radon 3D coordinates ``(azimuth, polar, dist)`` used by the last pair."""
        return self._last_sampling

    def radon_2d_sampling(self, proj_size):
        """Grid of detector lines: ``(angle_range, n_angles, dist_range, n_dists)``."""
        diagonal = math.hypot(*proj_size)
        n_dists = math.ceil(diagonal / self._line_distance)
        n_angles = math.ceil(n_dists * math.pi / 2.0)
        return (SamplingRange(0.0, math.pi), n_angles,
                SamplingRange(-0.5 * diagonal, 0.5 * diagonal), n_dists)

    def _correspondences(self, proj_size, P, origin, seed):
        """Detector lines and world planes on the sampling grid, subsampled alike."""
        angle_range, n_angles, dist_range, n_dists = self.radon_2d_sampling(proj_size)
        angles, dists = angle_range.linspace(n_angles), dist_range.linspace(n_dists)
        mu, s = np.meshgrid(angles, dists)
        lines = np.column_stack([mu.ravel(), s.ravel()]).astype(_DTYPE)
        planes = intersection_planes_wcs(angles, dists, P, origin)
        keep = self._subsample(len(lines), seed)
        if keep is not None:
            lines, planes = lines[keep], planes[keep]
        self._last_sampling = planes.astype(_DTYPE)
        return lines, keep

    def _projection_signal(self, proj, P, method, use_weighting, seed, device):
        proj = proj if isinstance(proj, Chunk2D) else Chunk2D(proj)
        intermed = IntermediateProj(proj, P.intrinsic_mat_k(), use_weighting, device=device)
        _, keep = self._correspondences(proj.dimensions, P, intermed.origin, seed)
        values = intermed.sampled(*self.radon_2d_sampling(proj.dimensions), method).data.ravel()
        return values if keep is None else values[keep]

    def intermed_fct_pair(self, proj, P, volume, plus_minus_h=1.0,
                          method=DiffMethod.CentralDifference, use_weighting=True,
                          seed=None, device=0):
        """Intermediate function pair computed on the fly from a volume.

        Parameters
        ----------
        proj : Chunk2D or array-like
            Projection image.
        P : ProjectionMatrix
            Its camera.
        volume : VoxelVolume or IntermediateVol
            Volume, or an existing volume-side intermediate function.
        plus_minus_h : float, optional
            Half step of the volume-side central difference in mm.
        method : DiffMethod, optional
            Projection-side derivative filter.
        use_weighting : bool, optional
            Apply cosine weighting (default: True).
        seed : int, optional
            Subsampling seed (default: fresh entropy).
        device : int, optional
            CUDA device for the projection side (default: 0).
        """
        proj_values = self._projection_signal(proj, P, method, use_weighting, seed, device)
        if not isinstance(volume, IntermediateVol):
            volume = IntermediateVol(volume)
        vol_values = volume.sampled(self._last_sampling, plus_minus_h)
        return IntermediateFctPair(proj_values, vol_values, IntermediateFctPair.Type.VolumeDomain)

    def intermed_fct_pair_from_sampler(self, proj, P, volume_sampler,
                                       method=DiffMethod.CentralDifference,
                                       use_weighting=True, seed=None, device=0):
        """Intermediate function pair with a precomputed :class:`VolumeResampler`."""
        proj_values = self._projection_signal(proj, P, method, use_weighting, seed, device)
        vol_values = volume_sampler.sample(self._last_sampling)
        return IntermediateFctPair(proj_values, vol_values, IntermediateFctPair.Type.VolumeDomain)

    def intermed_fct_pair_precomputed(self, image_sampler, P, proj_size, volume_sampler,
                                      seed=None):
        """Intermediate function pair from precomputed projection and volume resamplers."""
        lines, _ = self._correspondences(proj_size, P, _default_origin(proj_size), seed)
        return IntermediateFctPair(image_sampler.sample(lines),
                                   volume_sampler.sample(self._last_sampling),
                                   IntermediateFctPair.Type.VolumeDomain)
