"""Utility classes and helper functions for the radonct package.

This module provides device discovery, PyTorch-CUDA bridging, conversion of
numpy arrays and torch tensors into host buffers of the working data type,
and CUDA grid computation.
"""

import contextlib
import logging
import math

import numpy as np
import torch
from numba import cuda

from .constants import _DTYPE, _TPB_1D, _TPB_2D

logger = logging.getLogger(__name__)


class DeviceError(RuntimeError):
    """Raised when issuing or completing work on a compute device fails."""


# ============================================================================
# Device Management Utilities
# ============================================================================

def available_devices():
    """Return the ids of all CUDA devices visible to numba.

    Returns
    -------
    list of int
        Device ids, in the order reported by ``numba.cuda.gpus``.

    Raises
    ------
    RuntimeError
        If CUDA is unavailable.
    """
    if not cuda.is_available():
        raise RuntimeError("No CUDA device available")
    return list(range(len(cuda.gpus)))


def select_devices(devices=None):
    """Validate a device selection, defaulting to all visible devices.

    Parameters
    ----------
    devices : sequence of int, optional
        Requested device ids. ``None`` selects every visible device.

    Returns
    -------
    list of int
        Unique device ids in request order.

    Raises
    ------
    ValueError
        If the selection is empty or names a device that does not exist.
    """
    visible = available_devices()
    if devices is None:
        devices = visible
    selected = []
    for dev in devices:
        if dev not in visible:
            raise ValueError(f"Unknown CUDA device {dev}, visible devices: {visible}")
        if dev not in selected:
            selected.append(int(dev))
    if not selected:
        raise ValueError("At least one compute device is required")
    return selected


@contextlib.contextmanager
def device_context(device_id, action):
    """Make `device_id` current and wrap driver failures into :class:`DeviceError`.

    Parameters
    ----------
    device_id : int
        numba device id.
    action : str
        Description of the guarded work, used in the error message.
    """
    try:
        with cuda.gpus[device_id]:
            yield
    except DeviceError:
        raise
    except Exception as exc:
        raise DeviceError(f"{action} failed on device {device_id}: {exc}") from exc


class DeviceManager:
    """Utilities for managing PyTorch tensor devices."""

    @staticmethod
    def ensure_device(tensor, device=None):
        """Move `tensor` to `device` unless it already lives there.

        Parameters
        ----------
        tensor : torch.Tensor
            Tensor to place.
        device : torch.device or str, optional
            Target device. ``None`` leaves the tensor where it is.

        Returns
        -------
        torch.Tensor
            `tensor` itself or a copy on `device`.
        """
        if device is None:
            return tensor
        device = torch.device(device)
        if tensor.device != device:
            return tensor.to(device)
        return tensor


# ============================================================================
# PyTorch-CUDA Bridge
# ============================================================================

class TorchCUDABridge:
    """Zero-copy access to GPU-resident PyTorch inputs from numba kernels."""

    @staticmethod
    def tensor_to_cuda_array(tensor):
        """View a detached CUDA tensor as a numba device array.

        The view aliases the tensor storage, so the tensor must outlive it.

        Raises
        ------
        ValueError
            If `tensor` lives on the CPU.
        """
        if not tensor.is_cuda:
            raise ValueError("Expected a CUDA tensor, got one on the CPU")
        return cuda.as_cuda_array(tensor.detach())


def upload(array, stream=0):
    """Copy a host array or PyTorch tensor to the current CUDA device.

    CUDA tensors on the current device are copied device-to-device through a
    zero-copy view; everything else is converted to a contiguous float32 host
    array first.

    Parameters
    ----------
    array : numpy.ndarray or torch.Tensor
        Data to upload.
    stream : numba.cuda.cudadrv.driver.Stream, optional
        Stream on which the copy is issued.

    Returns
    -------
    numba.cuda.cudadrv.devicearray.DeviceNDArray
        Device copy of `array`, owned by the caller.
    """
    if isinstance(array, torch.Tensor) and array.is_cuda:
        view = TorchCUDABridge.tensor_to_cuda_array(array.to(torch.float32).contiguous())
        d_array = cuda.device_array(view.shape, dtype=_DTYPE, stream=stream)
        d_array.copy_to_device(view, stream=stream)
        return d_array
    return cuda.to_device(as_host_array(array), stream=stream)


# ============================================================================
# Host Array Conversion
# ============================================================================

def as_host_array(data, ndim=None, name="array"):
    """Convert array-like input to a C-contiguous float32 numpy array.

    Parameters
    ----------
    data : array-like or torch.Tensor
        Input data. Tensors are detached and moved to the CPU.
    ndim : int, optional
        Required number of dimensions.
    name : str, optional
        Name used in error messages.

    Returns
    -------
    numpy.ndarray
        Contiguous array of dtype ``_DTYPE``. The input is returned unchanged
        when it already satisfies these requirements.

    Raises
    ------
    ValueError
        If the dimensionality does not match `ndim`.
    """
    if isinstance(data, torch.Tensor):
        data = data.detach().cpu().numpy()
    arr = np.ascontiguousarray(data, dtype=_DTYPE)
    if ndim is not None and arr.ndim != ndim:
        raise ValueError(f"Expected {ndim}D {name}, got {arr.ndim}D")
    return arr


def as_coordinate_array(coords, n_components, name="coordinates"):
    """Convert a sequence of coordinate tuples into an ``(N, n_components)`` array.

    Parameters
    ----------
    coords : array-like
        Sequence of named tuples or an array of shape ``(N, n_components)``.
    n_components : int
        Number of components per coordinate.
    name : str, optional
        Name used in error messages.

    Returns
    -------
    numpy.ndarray
        Contiguous float32 array of shape ``(N, n_components)``.

    Raises
    ------
    ValueError
        If the input cannot be interpreted as such an array.
    """
    arr = np.ascontiguousarray(coords, dtype=_DTYPE)
    if arr.size == 0:
        return np.zeros((0, n_components), dtype=_DTYPE)
    if arr.ndim == 1 and arr.shape[0] == n_components:
        arr = arr.reshape(1, n_components)
    if arr.ndim != 2 or arr.shape[1] != n_components:
        raise ValueError(
            f"Expected {name} of shape (N, {n_components}), got {tuple(arr.shape)}"
        )
    return arr


# ============================================================================
# CUDA Grid Computation
# ============================================================================

def next_multiple_of(value, n):
    """Round `value` up to the next multiple of `n`.

    Examples
    --------
    >>> next_multiple_of(91, 16)
    96
    >>> next_multiple_of(96, 16)
    96
    """
    value = int(value)
    if value % n == 0:
        return value
    return (value // n + 1) * n


def _grid_1d(n, tpb=_TPB_1D):
    """Compute 1D CUDA grid and block dimensions for `n` scattered samples."""
    return max(1, math.ceil(n / tpb)), tpb


def _grid_2d(n1, n2, tpb=_TPB_2D):
    """Compute 2D CUDA grid and block dimensions.

    Parameters
    ----------
    n1 : int
        Number of elements along the first (fastest) dimension.
    n2 : int
        Number of elements along the second dimension.
    tpb : tuple of int, optional
        Threads per block (default is `_TPB_2D`).

    Returns
    -------
    grid : tuple of int
        Blocks count per axis.
    tpb : tuple of int
        Threads per block per axis.

    Examples
    --------
    >>> grid, tpb = _grid_2d(180, 256)
    >>> grid
    (12, 16)
    """
    return (max(1, math.ceil(n1 / tpb[0])), max(1, math.ceil(n2 / tpb[1]))), tpb
