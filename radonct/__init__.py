# radonct/__init__.py
"""RadonCT - Cone-beam CT Radon transforms and Grangeat consistency.

GPU-accelerated 2D and 3D Radon transforms built with Numba CUDA, and the
Grangeat intermediate functions, correspondence generators and metrics used
to measure the consistency of cone-beam projections with each other and
with a volume.
"""

import logging

from .containers import Chunk2D, VoxelVolume

from .coordinates import (
    Generic2DCoord,
    Generic3DCoord,
    Radon2DCoord,
    Radon3DCoord,
    HomCoordPlaneNormalized,
    SamplingRange,
    radon_to_hom,
    hom_to_radon,
)

from .projection import ProjectionMatrix

from .geometry import (
    circular_trajectory_3d,
    perturbed_trajectory_3d,
    projection_matrices_from_trajectory,
    circular_projection_matrices,
)

from .radon_transform_2d import RadonTransform2D
from .radon_transform_3d import RadonTransform3D, radon_space_ranges
from .coord_transform import Radon3DCoordTransform
from .resampler import ImageResampler, VolumeResampler
from .filters import DiffMethod, FiltMethod, filter_along
from .intermediate import IntermediateProj, IntermediateVol
from .consistency import IntermediateFctPair, IntermedGen2D2D, IntermedGen2D3D
from .registration import GrangeatRegistration2D3D
from .utils import DeviceError
from . import error_metrics

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = '1.0.0'

__all__ = [
    'Chunk2D',
    'VoxelVolume',
    'Generic2DCoord',
    'Generic3DCoord',
    'Radon2DCoord',
    'Radon3DCoord',
    'HomCoordPlaneNormalized',
    'SamplingRange',
    'radon_to_hom',
    'hom_to_radon',
    'ProjectionMatrix',
    'circular_trajectory_3d',
    'perturbed_trajectory_3d',
    'projection_matrices_from_trajectory',
    'circular_projection_matrices',
    'RadonTransform2D',
    'RadonTransform3D',
    'radon_space_ranges',
    'Radon3DCoordTransform',
    'ImageResampler',
    'VolumeResampler',
    'DiffMethod',
    'FiltMethod',
    'filter_along',
    'IntermediateProj',
    'IntermediateVol',
    'IntermediateFctPair',
    'IntermedGen2D2D',
    'IntermedGen2D3D',
    'GrangeatRegistration2D3D',
    'DeviceError',
    'error_metrics',
]
