"""CUDA kernels for Radon transforms and Radon-space resampling.

This subpackage contains the numba.cuda kernels for 2D line integrals, 3D
patch-wise plane integrals, device-side Radon coordinate transforms and
linear resampling of precomputed intermediate functions.
"""

from .radon_2d import (
    _radon_2d_grid_kernel,
    _radon_2d_points_kernel,
)

from .plane_integral import (
    _plane_integral_kernel,
)

from .coord_transform import (
    _radon_to_hom_kernel,
    _hom_to_radon_kernel,
)

from .resampling import (
    _image_resample_kernel,
    _volume_resample_kernel,
)

__all__ = [
    '_radon_2d_grid_kernel',
    '_radon_2d_points_kernel',
    '_plane_integral_kernel',
    '_radon_to_hom_kernel',
    '_hom_to_radon_kernel',
    '_image_resample_kernel',
    '_volume_resample_kernel',
]
