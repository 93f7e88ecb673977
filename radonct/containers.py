"""Image and volume containers.

Both containers hold a C-contiguous float32 numpy array and accept numpy
arrays or PyTorch tensors (CPU or CUDA) on construction.
"""

import numpy as np
import torch

from .utils import DeviceManager, as_host_array


class Chunk2D:
    """2D image field with ``data`` of shape ``(height, width)``.

    Parameters
    ----------
    data : array-like or torch.Tensor
        Image values, x (width) being the fastest index.
    """

    def __init__(self, data):
        self.data = as_host_array(data, ndim=2, name="image")

    def __repr__(self):
        return f"Chunk2D(width={self.width}, height={self.height})"

    @property
    def width(self):
        return self.data.shape[1]

    @property
    def height(self):
        return self.data.shape[0]

    @property
    def dimensions(self):
        """``(width, height)``"""
        return self.width, self.height

    def to_tensor(self, device="cpu"):
        return DeviceManager.ensure_device(torch.from_numpy(self.data.copy()), device)


class VoxelVolume:
    """3D volume field with voxel size and offset in millimetres.

    Parameters
    ----------
    data : array-like or torch.Tensor
        Volume values of shape ``(nz, ny, nx)`` (depth, height, width).
    voxel_size : tuple of float, optional
        Voxel size ``(x, y, z)`` (default: 1 mm isotropic).
    offset : tuple of float, optional
        World position ``(x, y, z)`` of the volume centre (default: origin).

    Examples
    --------
    >>> vol = VoxelVolume(np.ones((4, 8, 16)), voxel_size=(0.5, 0.5, 1.0))
    >>> vol.dimensions
    (16, 8, 4)
    """

    def __init__(self, data, voxel_size=(1.0, 1.0, 1.0), offset=(0.0, 0.0, 0.0)):
        if isinstance(data, torch.Tensor) and not data.is_contiguous():
            raise ValueError(
                "Input tensor must be contiguous with shape (D, H, W). "
                "Call .contiguous() before passing it."
            )
        self.data = as_host_array(data, ndim=3, name="volume")
        self.voxel_size = tuple(float(v) for v in voxel_size)
        self.offset = tuple(float(o) for o in offset)
        if len(self.voxel_size) != 3 or len(self.offset) != 3:
            raise ValueError("voxel_size and offset need three components (x, y, z)")

    def __repr__(self):
        return (
            f"VoxelVolume(dimensions={self.dimensions}, voxel_size={self.voxel_size}, "
            f"offset={self.offset})"
        )

    def __mul__(self, factor):
        return VoxelVolume(self.data * np.float32(factor), self.voxel_size, self.offset)

    __rmul__ = __mul__

    @property
    def dimensions(self):
        """``(nx, ny, nz)``"""
        nz, ny, nx = self.data.shape
        return nx, ny, nz

    def smallest_voxel_size(self):
        return min(self.voxel_size)

    def has_positive_voxel_size(self):
        return all(v > 0.0 for v in self.voxel_size)

    def to_tensor(self, device="cpu"):
        return DeviceManager.ensure_device(torch.from_numpy(self.data.copy()), device)

    @classmethod
    def cube(cls, n, value=1.0, voxel_size=1.0):
        """Homogeneous ``n`` x ``n`` x ``n`` volume."""
        return cls(np.full((n, n, n), value, dtype=np.float32), (voxel_size,) * 3)
