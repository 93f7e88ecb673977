"""Global constants and configuration for the radonct package.

This module defines core constants used throughout radonct, including data
types, CUDA thread block configurations, the patch size of the plane-integral
reduction, and default sampling parameters of the correspondence generators.
"""

import math

import numpy as np
from numba import cuda

# ---------------------------------------------------------------------------
# Data Types and Numerical Constants
# ---------------------------------------------------------------------------

_DTYPE = np.float32
"""Default data type for numerical computations (numpy.float32)."""

_FUZZY_ZERO = 1e-12
"""Threshold below which host-side (double precision) norms count as zero."""

# ---------------------------------------------------------------------------
# CUDA Thread Block Configurations
# ---------------------------------------------------------------------------

_PATCH_SIZE = 16
"""Edge length of a square slice patch reduced by one thread block."""

_PATCH_PIXELS = _PATCH_SIZE * _PATCH_SIZE
"""Number of pixels (and threads) per patch: 256."""

# 2D blocks: one patch of the integration slice per block, also used for the
# (angle, distance) grid of the 2D Radon transform
_TPB_2D = (_PATCH_SIZE, _PATCH_SIZE)
"""CUDA threads-per-block for 2D kernels: (16, 16) = 256 threads."""

_TPB_1D = 128
"""CUDA threads-per-block for 1D kernels over scattered samples."""

# ---------------------------------------------------------------------------
# Sampling Defaults
# ---------------------------------------------------------------------------

_SQRT_2 = math.sqrt(2.0)
"""Diagonal factor used to size the 3D integration slice."""

_DEFAULT_ANGLE_INCREMENT = math.radians(0.01)
"""Rotation step of the plane pencil around the baseline (0.01 degree)."""

_DEFAULT_LINE_DISTANCE = 1.0
"""Distance between neighbouring sampled lines in pixels (2D/3D generator)."""

_DEFAULT_SUBSAMPLE_LEVEL = 0.1
"""Fraction of correspondences kept when subsampling is switched on."""

# ---------------------------------------------------------------------------
# CUDA JIT Decorators
# ---------------------------------------------------------------------------

# Plane integrals are accumulated in float32, fastmath only affects rounding
_FASTMATH_DECORATOR = cuda.jit(cache=True, fastmath=True)
"""Numba CUDA JIT decorator with fastmath enabled for sampling kernels."""

_DEVICE_DECORATOR = cuda.jit(device=True)
"""Numba CUDA JIT decorator for device helper functions."""
