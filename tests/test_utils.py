import numpy as np
import pytest
import torch

from radonct.coordinates import Generic3DCoord
from radonct.utils import (
    DeviceError,
    DeviceManager,
    _grid_1d,
    _grid_2d,
    as_coordinate_array,
    as_host_array,
    device_context,
    next_multiple_of,
    select_devices,
)


@pytest.mark.parametrize("value, n, expected", [(91, 16, 96), (96, 16, 96), (1, 32, 32), (0, 8, 0)])
def test_next_multiple_of(value, n, expected):
    assert next_multiple_of(value, n) == expected


def test_grid_sizes_cover_all_elements():
    assert _grid_1d(0) == (1, 128)
    assert _grid_1d(129, 128) == (2, 128)
    grid, tpb = _grid_2d(180, 256, (16, 16))
    assert grid == (12, 16)
    assert tpb == (16, 16)


def test_host_array_from_tensor_and_rank_check():
    arr = as_host_array(torch.arange(6, dtype=torch.float64).reshape(2, 3), ndim=2)
    assert arr.dtype == np.float32
    assert arr.flags.c_contiguous
    with pytest.raises(ValueError, match="Expected 3D volume"):
        as_host_array(np.zeros((2, 2)), ndim=3, name="volume")


def test_coordinate_array_accepts_named_tuples():
    arr = as_coordinate_array([Generic3DCoord(1.0, 2.0, 3.0), Generic3DCoord(4.0, 5.0, 6.0)], 3)
    np.testing.assert_array_equal(arr, [[1, 2, 3], [4, 5, 6]])

    single = as_coordinate_array(Generic3DCoord(1.0, 2.0, 3.0), 3)
    assert single.shape == (1, 3)

    assert as_coordinate_array([], 4).shape == (0, 4)
    with pytest.raises(ValueError):
        as_coordinate_array(np.zeros((5, 2)), 3)


def test_select_devices():
    assert select_devices([0, 0]) == [0]
    assert 0 in select_devices()
    with pytest.raises(ValueError, match="Unknown CUDA device"):
        select_devices([999])
    with pytest.raises(ValueError, match="At least one"):
        select_devices([])


def test_device_context_wraps_failures():
    with pytest.raises(DeviceError, match="upload failed on device 0") as info:
        with device_context(0, "upload"):
            raise RuntimeError("out of memory")
    assert isinstance(info.value.__cause__, RuntimeError)


def test_device_context_passes_device_errors_through():
    with pytest.raises(DeviceError, match="^inner$"):
        with device_context(0, "outer"):
            raise DeviceError("inner")


def test_ensure_device():
    tensor = torch.ones(3)
    assert DeviceManager.ensure_device(tensor) is tensor
    assert DeviceManager.ensure_device(tensor, "cpu") is tensor
