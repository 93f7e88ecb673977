"""CUDA kernels for the 2D Radon transform of an image.

A line ``(angle, dist)`` is traced from its foot point
``origin + dist * (cos, sin)`` in both directions along ``(-sin, cos)`` with a
fixed step. The samples are symmetric around the foot point, so a line and
its antipodal description ``(angle + pi, -dist)`` visit identical positions.
"""

import math
from numba import cuda

from ..constants import _DEVICE_DECORATOR, _FASTMATH_DECORATOR
from .interpolation import _bilinear


@_DEVICE_DECORATOR
def _line_integral(d_img, width, height, origin_x, origin_y, angle, dist,
                   step, n_steps):
    cos_a = math.cos(angle)
    sin_a = math.sin(angle)
    foot_x = origin_x + dist * cos_a
    foot_y = origin_y + dist * sin_a
    t_start = -0.5 * (n_steps - 1) * step

    accum = 0.0
    for k in range(n_steps):
        t = t_start + k * step
        accum += _bilinear(d_img, width, height, foot_x - t * sin_a, foot_y + t * cos_a)
    return accum * step


@_FASTMATH_DECORATOR
def _radon_2d_grid_kernel(
    d_img, width, height, origin_x, origin_y,
    d_angles, n_angles, d_dists, n_dists,
    step, n_steps, d_out
):
    """Line integrals on the full (angle x distance) grid.

    Parameters
    ----------
    d_img : DeviceNDArray
        Image, shape (height, width).
    width, height : int
        Image size in pixels.
    origin_x, origin_y : float
        Origin of the Radon coordinates in pixel coordinates.
    d_angles, d_dists : DeviceNDArray
        Sampled angles (radians) and distances (pixels).
    n_angles, n_dists : int
        Number of angles and distances.
    step : float
        Integration step in pixels.
    n_steps : int
        Number of samples per line.
    d_out : DeviceNDArray
        Output of shape (n_dists, n_angles).
    """
    ia, i_d = cuda.grid(2)
    if ia >= n_angles or i_d >= n_dists:
        return
    d_out[i_d, ia] = _line_integral(d_img, width, height, origin_x, origin_y,
                                    d_angles[ia], d_dists[i_d], step, n_steps)


@_FASTMATH_DECORATOR
def _radon_2d_points_kernel(
    d_img, width, height, origin_x, origin_y,
    d_coords, n_coords, step, n_steps, d_out
):
    """Line integrals for scattered ``(angle, dist)`` pairs, shape (n_coords, 2)."""
    i = cuda.grid(1)
    if i >= n_coords:
        return
    d_out[i] = _line_integral(d_img, width, height, origin_x, origin_y,
                              d_coords[i, 0], d_coords[i, 1], step, n_steps)
