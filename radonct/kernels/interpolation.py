"""Device functions for linear interpolation with a zero border.

Sample positions are given in index space: the centre of element ``i`` lies
at coordinate ``i``. Any neighbour outside the array contributes zero.
"""

import math

from ..constants import _DEVICE_DECORATOR


@_DEVICE_DECORATOR
def _fetch_2d(d_img, width, height, ix, iy):
    if ix < 0 or iy < 0 or ix >= width or iy >= height:
        return 0.0
    return d_img[iy, ix]


@_DEVICE_DECORATOR
def _fetch_3d(d_vol, nx, ny, nz, ix, iy, iz):
    if ix < 0 or iy < 0 or iz < 0 or ix >= nx or iy >= ny or iz >= nz:
        return 0.0
    return d_vol[iz, iy, ix]


@_DEVICE_DECORATOR
def _bilinear(d_img, width, height, x, y):
    """Bilinear interpolation of ``d_img[y, x]``."""
    x0 = int(math.floor(x))
    y0 = int(math.floor(y))
    dx = x - x0
    dy = y - y0
    omdx = 1.0 - dx
    omdy = 1.0 - dy
    return (
        omdy * (omdx * _fetch_2d(d_img, width, height, x0, y0)
                + dx * _fetch_2d(d_img, width, height, x0 + 1, y0))
        + dy * (omdx * _fetch_2d(d_img, width, height, x0, y0 + 1)
                + dx * _fetch_2d(d_img, width, height, x0 + 1, y0 + 1))
    )


@_DEVICE_DECORATOR
def _trilinear(d_vol, nx, ny, nz, x, y, z):
    """Trilinear interpolation of ``d_vol[z, y, x]``."""
    x0 = int(math.floor(x))
    y0 = int(math.floor(y))
    z0 = int(math.floor(z))
    if x0 < -1 or y0 < -1 or z0 < -1 or x0 >= nx or y0 >= ny or z0 >= nz:
        return 0.0
    dx = x - x0
    dy = y - y0
    dz = z - z0
    omdx = 1.0 - dx
    omdy = 1.0 - dy
    omdz = 1.0 - dz

    lower = (
        omdy * (omdx * _fetch_3d(d_vol, nx, ny, nz, x0, y0, z0)
                + dx * _fetch_3d(d_vol, nx, ny, nz, x0 + 1, y0, z0))
        + dy * (omdx * _fetch_3d(d_vol, nx, ny, nz, x0, y0 + 1, z0)
                + dx * _fetch_3d(d_vol, nx, ny, nz, x0 + 1, y0 + 1, z0))
    )
    upper = (
        omdy * (omdx * _fetch_3d(d_vol, nx, ny, nz, x0, y0, z0 + 1)
                + dx * _fetch_3d(d_vol, nx, ny, nz, x0 + 1, y0, z0 + 1))
        + dy * (omdx * _fetch_3d(d_vol, nx, ny, nz, x0, y0 + 1, z0 + 1)
                + dx * _fetch_3d(d_vol, nx, ny, nz, x0 + 1, y0 + 1, z0 + 1))
    )
    return omdz * lower + dz * upper
