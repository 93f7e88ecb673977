import numpy as np
import pytest

from radonct import DiffMethod, FiltMethod, filter_along
from radonct.filters import _LINEAR_TAPS, _ram_lak_taps


def test_central_difference_zero_extended():
    out = filter_along(np.array([0.0, 1.0, 4.0, 9.0]), 0, DiffMethod.CentralDifference)
    np.testing.assert_allclose(out, [0.5, 2.0, 4.0, -2.0])
    assert out.dtype == np.float32


def test_difference_to_next():
    out = filter_along(np.array([1.0, 3.0, 6.0]), 0, DiffMethod.DifferenceToNext)
    np.testing.assert_allclose(out, [2.0, 3.0, -6.0])


@pytest.mark.parametrize("method", [
    DiffMethod.CentralDifference,
    DiffMethod.SavitzkyGolay5,
    DiffMethod.SavitzkyGolay7,
])
def test_derivative_of_ramp_is_slope_in_interior(method):
    ramp = 0.5 * np.arange(20.0)
    out = filter_along(ramp, 0, method)
    np.testing.assert_allclose(out[5:-5], 0.5, rtol=1e-6)


def test_derivative_taps_are_antisymmetric():
    for method in DiffMethod:
        taps = _LINEAR_TAPS[method]
        if len(taps) % 2:
            np.testing.assert_allclose(taps, -taps[::-1])


def test_smoothing_preserves_constant_interior():
    for method in (FiltMethod.Gauss3, FiltMethod.Gauss5, FiltMethod.Gauss7, FiltMethod.Average3):
        out = filter_along(np.full(16, 2.0), 0, method)
        np.testing.assert_allclose(out[4:-4], 2.0, rtol=1e-6)


def test_filter_along_second_axis():
    data = np.tile(np.arange(5.0), (3, 1))
    out = filter_along(data, 1, DiffMethod.CentralDifference)
    np.testing.assert_allclose(out[:, 1:-1], 1.0)
    assert out.shape == data.shape


def test_nonlinear_filters():
    x = np.array([1.0, -5.0, 2.0, 3.0])
    np.testing.assert_allclose(filter_along(x, 0, FiltMethod.Median3), [0.0, 1.0, 2.0, 2.0])
    np.testing.assert_allclose(filter_along(x, 0, FiltMethod.MaxAbs3), [-5.0, -5.0, -5.0, 3.0])
    np.testing.assert_allclose(filter_along(x, 0, FiltMethod.MedianAbs3), [1.0, 2.0, 3.0, 2.0])


def test_ram_lak_taps():
    taps = _ram_lak_taps()
    assert taps.size == 1407
    assert taps[703] == 0.25
    assert taps[704] == pytest.approx(-1.0 / np.pi ** 2)
    assert taps[705] == 0.0


def test_unknown_method_raises():
    with pytest.raises(ValueError):
        filter_along(np.zeros(4), 0, "central")
