"""CUDA kernels converting and transforming 3D Radon coordinates."""

import math
from numba import cuda

from ..constants import _FASTMATH_DECORATOR


@_FASTMATH_DECORATOR
def _radon_to_hom_kernel(d_radon, d_hom, n_coords):
    """(azimuth, polar, dist) -> [n_x, n_y, n_z, -dist], both of shape (n, k)."""
    i = cuda.grid(1)
    if i >= n_coords:
        return
    azimuth = d_radon[i, 0]
    polar = d_radon[i, 1]
    sin_p = math.sin(polar)
    d_hom[i, 0] = sin_p * math.cos(azimuth)
    d_hom[i, 1] = sin_p * math.sin(azimuth)
    d_hom[i, 2] = math.cos(polar)
    d_hom[i, 3] = -d_radon[i, 2]


@_FASTMATH_DECORATOR
def _hom_to_radon_kernel(d_hom, d_mat_t, d_out, n_coords):
    """Transform planes by ``H^T`` and convert the result to Radon coordinates.

    Parameters
    ----------
    d_hom : DeviceNDArray
        Homogeneous planes, shape (n_coords, 4).
    d_mat_t : DeviceNDArray
        ``H^T`` in row-major order, shape (16,).
    d_out : DeviceNDArray
        Transformed (azimuth, polar, dist), shape (n_coords, 3).
    n_coords : int
        Number of planes.
    """
    i = cuda.grid(1)
    if i >= n_coords:
        return
    p0 = d_hom[i, 0]
    p1 = d_hom[i, 1]
    p2 = d_hom[i, 2]
    p3 = d_hom[i, 3]

    t0 = d_mat_t[0] * p0 + d_mat_t[1] * p1 + d_mat_t[2] * p2 + d_mat_t[3] * p3
    t1 = d_mat_t[4] * p0 + d_mat_t[5] * p1 + d_mat_t[6] * p2 + d_mat_t[7] * p3
    t2 = d_mat_t[8] * p0 + d_mat_t[9] * p1 + d_mat_t[10] * p2 + d_mat_t[11] * p3
    t3 = d_mat_t[12] * p0 + d_mat_t[13] * p1 + d_mat_t[14] * p2 + d_mat_t[15] * p3

    norm = math.sqrt(t0 * t0 + t1 * t1 + t2 * t2)
    cos_p = t2 / norm
    cos_p = max(-1.0, min(1.0, cos_p))
    azimuth = math.atan2(t1, t0)
    if azimuth >= math.pi:
        azimuth -= 2.0 * math.pi
    d_out[i, 0] = azimuth
    d_out[i, 1] = math.acos(cos_p)
    d_out[i, 2] = -t3 / norm
