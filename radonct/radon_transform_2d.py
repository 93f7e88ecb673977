"""2D Radon transform (line integrals) of an image on a single CUDA device."""

import logging
import math

import numpy as np
from numba import cuda

from .constants import _DTYPE
from .containers import Chunk2D
from .kernels import _radon_2d_grid_kernel, _radon_2d_points_kernel
from .utils import (
    _grid_1d,
    _grid_2d,
    as_coordinate_array,
    device_context,
    select_devices,
    upload,
)

logger = logging.getLogger(__name__)


class RadonTransform2D:
    """Line integrals of an image, evaluated on the GPU.

    Lines are given as ``(angle, dist)`` relative to an origin in pixel
    coordinates, where the centre of pixel ``(x, y)`` is at ``(x, y)``.
    Integrals are in pixel units.

    Parameters
    ----------
    image : Chunk2D, numpy.ndarray or torch.Tensor
        Image of shape (height, width). Uploaded once on construction.
    device : int, optional
        CUDA device id (default: 0).
    accuracy : float, optional
        Integration step along a line in pixels (default: 1.0).

    Examples
    --------
    >>> radon = RadonTransform2D(np.ones((32, 32), dtype=np.float32))
    >>> sino = radon.sample_transform(np.linspace(0, np.pi, 90), np.linspace(-20, 20, 41))
    >>> sino.dimensions
    (90, 41)
    """

    def __init__(self, image, device=0, accuracy=1.0):
        if not isinstance(image, Chunk2D):
            image = Chunk2D(image)
        self._width, self._height = image.dimensions
        self._origin = (0.5 * (self._width - 1), 0.5 * (self._height - 1))
        self.accuracy = accuracy
        self._device = select_devices([device])[0]

        with device_context(self._device, "Image upload"):
            self._stream = cuda.stream()
            self._d_img = upload(image.data, stream=self._stream)
            self._stream.synchronize()
        logger.debug("Uploaded %dx%d image to device %d", self._width, self._height, self._device)

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    @property
    def origin(self):
        """Origin ``(x, y)`` of the Radon coordinates in pixel coordinates."""
        return self._origin

    @origin.setter
    def origin(self, origin):
        x, y = origin
        self._origin = (float(x), float(y))

    def set_origin(self, x, y):
        self.origin = (x, y)

    @property
    def accuracy(self):
        """Integration step along a line in pixels."""
        return self._accuracy

    @accuracy.setter
    def accuracy(self, step):
        if not step > 0.0:
            raise ValueError(f"Integration step must be positive, got {step}")
        self._accuracy = float(step)

    def _line_sampling(self):
        ox, oy = self._origin
        corners = ((0.0, 0.0), (self._width - 1.0, 0.0),
                   (0.0, self._height - 1.0), (self._width - 1.0, self._height - 1.0))
        half_length = max(math.hypot(cx - ox, cy - oy) for cx, cy in corners) + 1.0
        n_steps = 2 * math.ceil(half_length / self._accuracy) + 1
        return self._accuracy, n_steps

    # ------------------------------------------------------------------
    # Sampling
    # ------------------------------------------------------------------

    def sample_transform(self, angles, dists):
        """Sample the transform on the grid ``angles`` x ``dists``.

        Parameters
        ----------
        angles : array-like
            Line angles in radians.
        dists : array-like
            Signed line distances from the origin in pixels.

        Returns
        -------
        Chunk2D
            Line integrals with width ``len(angles)`` and height
            ``len(dists)``, i.e. ``data[dist_index, angle_index]``.
        """
        angles = np.ascontiguousarray(angles, dtype=_DTYPE).ravel()
        dists = np.ascontiguousarray(dists, dtype=_DTYPE).ravel()
        n_angles, n_dists = angles.size, dists.size
        out = np.zeros((n_dists, n_angles), dtype=_DTYPE)
        if out.size == 0:
            return Chunk2D(out)

        step, n_steps = self._line_sampling()
        with device_context(self._device, "2D Radon transform"):
            d_angles = cuda.to_device(angles, stream=self._stream)
            d_dists = cuda.to_device(dists, stream=self._stream)
            d_out = cuda.device_array((n_dists, n_angles), dtype=_DTYPE, stream=self._stream)
            grid, tpb = _grid_2d(n_angles, n_dists)
            _radon_2d_grid_kernel[grid, tpb, self._stream](
                self._d_img, self._width, self._height, self._origin[0], self._origin[1],
                d_angles, n_angles, d_dists, n_dists, step, n_steps, d_out
            )
            d_out.copy_to_host(out, stream=self._stream)
            self._stream.synchronize()
        return Chunk2D(out)

    def sample_transform_points(self, coords):
        """Sample the transform at scattered lines.

        Parameters
        ----------
        coords : array-like
            Radon 2D coordinates ``(angle, dist)``, shape (N, 2).

        Returns
        -------
        numpy.ndarray
            Line integrals, shape (N,), in input order.
        """
        coords = as_coordinate_array(coords, 2, "Radon 2D coordinates")
        n_coords = coords.shape[0]
        out = np.zeros(n_coords, dtype=_DTYPE)
        if n_coords == 0:
            return out

        step, n_steps = self._line_sampling()
        with device_context(self._device, "2D Radon transform"):
            d_coords = cuda.to_device(coords, stream=self._stream)
            d_out = cuda.device_array(n_coords, dtype=_DTYPE, stream=self._stream)
            grid, tpb = _grid_1d(n_coords)
            _radon_2d_points_kernel[grid, tpb, self._stream](
                self._d_img, self._width, self._height, self._origin[0], self._origin[1],
                d_coords, n_coords, step, n_steps, d_out
            )
            d_out.copy_to_host(out, stream=self._stream)
            self._stream.synchronize()
        return out

    @staticmethod
    def x_axis_to_line_mapping(line):
        """2x3 affine mapping that takes the x-axis onto a Radon line.

        Parameters
        ----------
        line : tuple of float
            ``(angle, dist)``.

        Returns
        -------
        numpy.ndarray
            ``[R | t]`` of shape (2, 3); the point ``(x, 0)`` is mapped to the
            point of the line at arc length ``x`` from its foot point.
        """
        angle, dist = line
        n0, n1 = math.cos(angle), math.sin(angle)
        rot = np.array([[-n1, -n0], [n0, -n1]])
        return np.hstack([rot, np.array([[n0 * dist], [n1 * dist]])])
