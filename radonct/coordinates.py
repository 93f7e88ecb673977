"""Coordinate value types and Radon-space conversions.

Radon 2D coordinates ``(angle, dist)`` describe the line
``x * cos(angle) + y * sin(angle) = dist``. Radon 3D coordinates
``(azimuth, polar, dist)`` describe the plane with unit normal
``(sin(polar) cos(azimuth), sin(polar) sin(azimuth), cos(polar))`` at signed
distance ``dist`` from the world origin. The homogeneous form of the same
plane is ``[n_x, n_y, n_z, -dist]``.
"""

import math
from typing import NamedTuple

import numpy as np

from .constants import _DTYPE
from .utils import as_coordinate_array


class Generic2DCoord(NamedTuple):
    x: float
    y: float


class Generic3DCoord(NamedTuple):
    x: float
    y: float
    z: float


class Radon2DCoord(NamedTuple):
    angle: float
    dist: float


class Radon3DCoord(NamedTuple):
    azimuth: float
    polar: float
    dist: float


class HomCoordPlaneNormalized(NamedTuple):
    """Homogeneous plane ``[n_x, n_y, n_z, -dist]`` with a unit normal."""

    n_x: float
    n_y: float
    n_z: float
    neg_dist: float

    @property
    def normal(self):
        return np.array([self.n_x, self.n_y, self.n_z])

    @property
    def dist(self):
        return -self.neg_dist

    @classmethod
    def from_radon(cls, coord):
        return cls(*radon_to_hom(coord)[0].tolist())


class SamplingRange:
    """Closed interval ``[start, end]`` sampled at equidistant points.

    Parameters
    ----------
    start : float
        First sample position.
    end : float
        Last sample position.

    Examples
    --------
    >>> r = SamplingRange(-1.0, 1.0)
    >>> r.spacing(5)
    0.5
    >>> r.linspace(3)
    array([-1.,  0.,  1.], dtype=float32)
    """

    def __init__(self, start=0.0, end=0.0):
        self.start = float(start)
        self.end = float(end)

    def __repr__(self):
        return f"SamplingRange({self.start!r}, {self.end!r})"

    def __eq__(self, other):
        if not isinstance(other, SamplingRange):
            return NotImplemented
        return self.start == other.start and self.end == other.end

    def width(self):
        return self.end - self.start

    def center(self):
        return 0.5 * (self.start + self.end)

    def spacing(self, n):
        """Distance between neighbouring samples when `n` samples are taken."""
        if n > 1:
            return (self.end - self.start) / (n - 1)
        return 0.0

    def linspace(self, n):
        if n == 1:
            return np.array([self.start], dtype=_DTYPE)
        return np.linspace(self.start, self.end, n, dtype=_DTYPE)


# ============================================================================
# Plane Conversions
# ============================================================================

def unit_normal(azimuth, polar):
    """Unit plane normal(s) from spherical angles.

    Parameters
    ----------
    azimuth : float or array-like
        Azimuth angle(s) in radians.
    polar : float or array-like
        Polar angle(s) in radians, measured from the z-axis.

    Returns
    -------
    numpy.ndarray
        Array of shape ``(..., 3)`` in double precision.
    """
    azimuth = np.asarray(azimuth, dtype=np.float64)
    polar = np.asarray(polar, dtype=np.float64)
    sin_p = np.sin(polar)
    return np.stack(
        [sin_p * np.cos(azimuth), sin_p * np.sin(azimuth), np.cos(polar)], axis=-1
    )


def radon_to_hom(coords):
    """Convert Radon 3D coordinates to normalized homogeneous planes.

    Parameters
    ----------
    coords : array-like
        Radon 3D coordinates, shape ``(N, 3)`` or a single coordinate.

    Returns
    -------
    numpy.ndarray
        Homogeneous planes, shape ``(N, 4)``, float64.
    """
    coords = np.asarray(as_coordinate_array(coords, 3), dtype=np.float64)
    planes = np.empty((coords.shape[0], 4))
    planes[:, :3] = unit_normal(coords[:, 0], coords[:, 1])
    planes[:, 3] = -coords[:, 2]
    return planes


def hom_to_radon(planes):
    """Convert homogeneous planes to Radon 3D coordinates.

    The normal is normalized first, so any non-degenerate homogeneous plane
    vector is accepted. The azimuth lies in ``[-pi, pi)``, the polar angle in
    ``[0, pi]``.

    Parameters
    ----------
    planes : array-like
        Homogeneous planes, shape ``(N, 4)``.

    Returns
    -------
    numpy.ndarray
        Radon 3D coordinates, shape ``(N, 3)``, float64.
    """
    planes = np.asarray(as_coordinate_array(planes, 4, "planes"), dtype=np.float64)
    norm = np.linalg.norm(planes[:, :3], axis=1)
    normal = planes[:, :3] / norm[:, None]
    coords = np.empty((planes.shape[0], 3))
    azimuth = np.arctan2(normal[:, 1], normal[:, 0])
    coords[:, 0] = np.where(azimuth >= np.pi, azimuth - 2.0 * np.pi, azimuth)
    coords[:, 1] = np.arccos(np.clip(normal[:, 2], -1.0, 1.0))
    coords[:, 2] = -planes[:, 3] / norm
    return coords


def radon_2d_normal(angle):
    """Unit normal ``(cos(angle), sin(angle))`` of a 2D Radon line."""
    return np.array([math.cos(angle), math.sin(angle)])
