"""2D/3D registration objective built on Grangeat consistency.

The projection side of the intermediate function pair and the plane set it
corresponds to are fixed once. Each objective evaluation only transforms the
planes by the candidate pose on the GPU, resamples the precomputed volume
intermediate function there and compares both signals.
"""

import logging
import math

import numpy as np

from .consistency import IntermedGen2D3D, IntermediateFctPair
from .coord_transform import Radon3DCoordTransform, homography
from .error_metrics import l2
from .filters import DiffMethod
from .utils import DeviceError

logger = logging.getLogger(__name__)


def rotation_from_axis_angle(rotation_vector):
    """Rotation matrix of an axis-angle vector in radians (Rodrigues formula)."""
    vec = np.asarray(rotation_vector, dtype=np.float64).reshape(3)
    angle = np.linalg.norm(vec)
    if angle == 0.0:
        return np.eye(3)
    k = vec / angle
    kx = np.array([[0.0, -k[2], k[1]], [k[2], 0.0, -k[0]], [-k[1], k[0], 0.0]])
    return np.eye(3) + math.sin(angle) * kx + (1.0 - math.cos(angle)) * (kx @ kx)


def homography_from_parameters(params):
    """Pose homography from ``(rx, ry, rz, tx, ty, tz)``.

    The rotation is an axis-angle vector in degrees and the translation is
    in mm.
    """
    params = np.asarray(params, dtype=np.float64).ravel()
    if params.size != 6:
        raise ValueError(f"Expected 6 pose parameters, got {params.size}")
    return homography(rotation_from_axis_angle(np.radians(params[:3])), params[3:])


def compute_delta_s(P, dist_spacing, point=(0.0, 0.0, 0.0)):
    """Detector-pixel equivalent of a plane distance step in mm.

    The step is scaled by the mean magnification of `P` at `point`.
    """
    return float(P.magnification(point) * dist_spacing)


class GrangeatRegistration2D3D:
    """Consistency objective of a projection against a posed volume.

    Parameters
    ----------
    projection : Chunk2D or array-like
        Fixed projection.
    P : ProjectionMatrix
        Its camera.
    volume_sampler : VolumeResampler
        Precomputed volume intermediate function, e.g. from
        :meth:`IntermediateVol.sampler`.
    generator : IntermedGen2D3D, optional
        Correspondence generator (default: a fresh one).
    metric : callable, optional
        Inconsistency metric (default: L2).
    method : DiffMethod, optional
        Projection-side derivative filter.
    use_weighting : bool, optional
        Cosine weighting of the projection (default: True).
    seed : int, optional
        Subsampling seed.
    device : int, optional
        CUDA device id (default: 0).

    Notes
    -----
    The parameters of :meth:`objective` describe the pose of the volume in
    world coordinates: a world plane ``p`` is looked up at ``H^T p`` in the
    volume frame.
    """

    def __init__(self, projection, P, volume_sampler, generator=None, metric=l2,
                 method=DiffMethod.CentralDifference, use_weighting=True, seed=None, device=0):
        self._generator = generator if generator is not None else IntermedGen2D3D()
        self._sampler = volume_sampler
        self.metric = metric
        pair = self._generator.intermed_fct_pair_from_sampler(
            projection, P, volume_sampler, method, use_weighting, seed, device)
        self._projection_signal = pair.first
        self._coord_transform = Radon3DCoordTransform(self._generator.last_sampling, device=device)
        self.n_evaluations = 0
        logger.info("Registration objective with %d correspondences", len(self._coord_transform))

    @property
    def projection_signal(self):
        return self._projection_signal

    def __len__(self):
        return len(self._coord_transform)

    def intermed_fct_pair(self, params):
        """Intermediate function pair at the pose ``(rx, ry, rz, tx, ty, tz)``."""
        d_coords = self._coord_transform.transform(homography_from_parameters(params))
        return IntermediateFctPair(self._projection_signal, self._sampler.sample(d_coords),
                                   IntermediateFctPair.Type.VolumeDomain)

    def objective(self, params):
        """Inconsistency at the pose ``(rx, ry, rz, tx, ty, tz)``.

        Raises
        ------
        RuntimeError
            If a device operation fails.
        """
        try:
            pair = self.intermed_fct_pair(params)
        except DeviceError as exc:
            raise RuntimeError(f"Objective evaluation failed at pose {list(params)}") from exc
        self.n_evaluations += 1
        value = pair.inconsistency(self.metric)
        logger.debug("Evaluation %d: %s -> %g", self.n_evaluations, list(params), value)
        return value

    __call__ = objective
