"""CUDA kernels for linear resampling of regularly sampled functions.

Coordinates are mapped to index space by ``(c - start) * inv_spacing``.
"""

from numba import cuda

from ..constants import _FASTMATH_DECORATOR
from .interpolation import _bilinear, _trilinear


@_FASTMATH_DECORATOR
def _image_resample_kernel(
    d_img, width, height,
    start_1, inv_spacing_1, start_2, inv_spacing_2,
    d_coords, n_coords, d_out
):
    i = cuda.grid(1)
    if i >= n_coords:
        return
    d_out[i] = _bilinear(d_img, width, height,
                         (d_coords[i, 0] - start_1) * inv_spacing_1,
                         (d_coords[i, 1] - start_2) * inv_spacing_2)


@_FASTMATH_DECORATOR
def _volume_resample_kernel(
    d_vol, nx, ny, nz,
    start_1, inv_spacing_1, start_2, inv_spacing_2, start_3, inv_spacing_3,
    d_coords, n_coords, d_out
):
    """Trilinear samples of ``d_vol[z, y, x]`` at (n_coords, 3) range coordinates."""
    i = cuda.grid(1)
    if i >= n_coords:
        return
    d_out[i] = _trilinear(d_vol, nx, ny, nz,
                          (d_coords[i, 0] - start_1) * inv_spacing_1,
                          (d_coords[i, 1] - start_2) * inv_spacing_2,
                          (d_coords[i, 2] - start_3) * inv_spacing_3)
