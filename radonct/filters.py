"""Finite-difference and smoothing filters along one axis of an array.

All filters extend the signal with zeros. For a filter of length ``N`` the
output at index ``i`` is computed from ``x[i - (N - 1) // 2 .. i + N // 2]``.
The method is resolved from a fixed table once per call.
"""

import enum

import numpy as np

from .constants import _DTYPE


class DiffMethod(enum.Enum):
    CentralDifference = "central_difference"
    DifferenceToNext = "difference_to_next"
    SavitzkyGolay5 = "savitzky_golay_5"
    SavitzkyGolay7 = "savitzky_golay_7"
    SpectralGauss3 = "spectral_gauss_3"
    SpectralGauss5 = "spectral_gauss_5"
    SpectralGauss7 = "spectral_gauss_7"
    SpectralGauss9 = "spectral_gauss_9"
    SpectralCosine = "spectral_cosine"


class FiltMethod(enum.Enum):
    Gauss3 = "gauss_3"
    Gauss5 = "gauss_5"
    Gauss7 = "gauss_7"
    Average3 = "average_3"
    Median3 = "median_3"
    MedianAbs3 = "median_abs_3"
    MaxAbs3 = "max_abs_3"
    RamLak = "ram_lak"


def _antisymmetric(half):
    """Odd-length derivative taps from the negative half (excluding the centre)."""
    half = np.asarray(half, dtype=np.float64)
    return np.concatenate([half, [0.0], -half[::-1]])


def _ram_lak_taps(n=1407):
    k = np.arange(n) - (n - 1) // 2
    taps = np.zeros(n)
    odd = k % 2 != 0
    taps[odd] = -1.0 / (np.pi * k[odd]) ** 2
    taps[k == 0] = 0.25
    return taps


_LINEAR_TAPS = {
    DiffMethod.CentralDifference: np.array([-0.5, 0.0, 0.5]),
    DiffMethod.DifferenceToNext: np.array([-1.0, 1.0]),
    DiffMethod.SavitzkyGolay5: 0.1 * np.arange(-2.0, 3.0),
    DiffMethod.SavitzkyGolay7: np.arange(-3.0, 4.0) / 28.0,
    DiffMethod.SpectralGauss3: _antisymmetric([
        0.00148810, -0.00238095, 0.00416667, -0.00833333,
        0.02083333, -0.08333333, -0.375,
    ]),
    DiffMethod.SpectralGauss5: _antisymmetric([-0.0125, -0.13020833, -0.20833333]),
    DiffMethod.SpectralGauss7: _antisymmetric([-0.03828125, -0.1203125, -0.13671875]),
    DiffMethod.SpectralGauss9: _antisymmetric(
        [-0.01061663, -0.04977679, -0.10390625, -0.0984375]),
    DiffMethod.SpectralCosine: _antisymmetric(
        [-0.00259818, 0.00513274, -0.01247255, 0.04527074, -0.56588424]),
    FiltMethod.Gauss3: np.array([0.25, 0.5, 0.25]),
    FiltMethod.Gauss5: np.array([1.0, 4.0, 6.0, 4.0, 1.0]) / 16.0,
    FiltMethod.Gauss7: np.array([1.0, 6.0, 15.0, 20.0, 15.0, 6.0, 1.0]) / 64.0,
    FiltMethod.Average3: np.full(3, 1.0 / 3.0),
    FiltMethod.RamLak: _ram_lak_taps(),
}
"""Filter taps in window order, i.e. taps[k] multiplies x[i - left + k]."""


def _median(windows):
    return np.median(windows, axis=0)


def _median_abs(windows):
    """Value whose magnitude is the median magnitude, sign preserved."""
    order = np.argsort(np.abs(windows), axis=0, kind="stable")
    mid = np.take_along_axis(order, np.full((1,) + order.shape[1:], order.shape[0] // 2), axis=0)
    return np.take_along_axis(windows, mid, axis=0)[0]


def _max_abs(windows):
    idx = np.argmax(np.abs(windows), axis=0)[None]
    return np.take_along_axis(windows, idx, axis=0)[0]


_NONLINEAR = {
    FiltMethod.Median3: (3, _median),
    FiltMethod.MedianAbs3: (3, _median_abs),
    FiltMethod.MaxAbs3: (3, _max_abs),
}


def _windows(x, length):
    """Stack of zero-extended shifted copies, shape (length,) + x.shape, along axis 0 of x."""
    left = (length - 1) // 2
    right = length // 2
    n = x.shape[0]
    pad = [(left, right)] + [(0, 0)] * (x.ndim - 1)
    padded = np.pad(x, pad)
    return np.stack([padded[k:k + n] for k in range(length)])


def filter_along(data, axis, method):
    """Filter `data` along `axis` with a difference or smoothing method.

    Parameters
    ----------
    data : array-like
        Input array. Not modified.
    axis : int
        Axis to filter along.
    method : DiffMethod or FiltMethod
        Filter to apply.

    Returns
    -------
    numpy.ndarray
        Filtered array of the same shape, dtype float32.

    Raises
    ------
    ValueError
        If `method` is not a known filter.

    Examples
    --------
    >>> filter_along(np.array([0.0, 1.0, 4.0, 9.0]), 0, DiffMethod.CentralDifference)
    array([ 0.5,  2. ,  4. , -2. ], dtype=float32)
    """
    x = np.moveaxis(np.asarray(data, dtype=np.float64), axis, 0)
    if method in _LINEAR_TAPS:
        taps = _LINEAR_TAPS[method]
        left = (len(taps) - 1) // 2
        right = len(taps) // 2
        n = x.shape[0]
        padded = np.pad(x, [(left, right)] + [(0, 0)] * (x.ndim - 1))
        out = np.zeros_like(x)
        for k in np.flatnonzero(taps):
            out += taps[k] * padded[k:k + n]
    elif method in _NONLINEAR:
        length, reduce = _NONLINEAR[method]
        out = reduce(_windows(x, length))
    else:
        raise ValueError(f"Unknown filter method: {method!r}")
    return np.ascontiguousarray(np.moveaxis(out, 0, axis), dtype=_DTYPE)
