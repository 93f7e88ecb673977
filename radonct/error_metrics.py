"""Inconsistency metrics comparing two index-aligned signals.

Every metric is a callable ``metric(first, second) -> float``. Relative
variants normalise by the magnitude of `second`, the reference signal.
"""

import logging
import math

import numpy as np

from .constants import _FUZZY_ZERO

logger = logging.getLogger(__name__)


def _pair(first, second):
    a = np.asarray(first, dtype=np.float64).ravel()
    b = np.asarray(second, dtype=np.float64).ravel()
    if a.size != b.size:
        raise ValueError(f"Signals differ in length: {a.size} != {b.size}")
    return a, b


def l1(first, second):
    a, b = _pair(first, second)
    return float(np.abs(a - b).sum())


def relative_l1(first, second):
    a, b = _pair(first, second)
    return float(np.abs(a - b).sum() / np.abs(b).sum())


def l2(first, second):
    a, b = _pair(first, second)
    return float(np.sqrt(((a - b) ** 2).sum()))


def relative_l2(first, second):
    a, b = _pair(first, second)
    return float(np.sqrt(((a - b) ** 2).sum()) / np.sqrt((b ** 2).sum()))


def rmse(first, second):
    a, b = _pair(first, second)
    if a.size == 0:
        return 0.0
    return l2(a, b) / math.sqrt(a.size)


def relative_rmse(first, second):
    a, b = _pair(first, second)
    return rmse(a, b) / math.sqrt((b ** 2).mean())


def correlation_error(first, second):
    """``1 - r`` with the Pearson correlation coefficient ``r``."""
    a, b = _pair(first, second)
    a = a - a.mean()
    b = b - b.mean()
    denom = math.sqrt((a ** 2).sum() * (b ** 2).sum())
    if denom < _FUZZY_ZERO:
        logger.warning("Correlation undefined for constant signals, returning 1.0")
        return 1.0
    return 1.0 - float((a * b).sum()) / denom


def cosine_similarity_error(first, second):
    """``1 - cos`` of the angle between both signals."""
    a, b = _pair(first, second)
    denom = math.sqrt((a ** 2).sum() * (b ** 2).sum())
    if denom < _FUZZY_ZERO:
        logger.warning("Cosine similarity undefined for zero signals, returning 1.0")
        return 1.0
    return 1.0 - float((a * b).sum()) / denom


class GemanMcClure:
    """Robust Geman-McClure error ``sum(r^2 / (1 + r^2 / parameter))``.

    Parameters
    ----------
    parameter : float
        Squared residual at which the penalty saturates to half its maximum.
    relative : bool, optional
        Normalise by ``parameter * n`` (default: False).
    """

    def __init__(self, parameter, relative=False):
        if not parameter > 0.0:
            raise ValueError(f"Geman-McClure parameter must be positive, got {parameter}")
        self.parameter = float(parameter)
        self.relative = relative

    def __repr__(self):
        return f"GemanMcClure({self.parameter!r}, relative={self.relative!r})"

    def __call__(self, first, second):
        a, b = _pair(first, second)
        sq = (a - b) ** 2
        err = float((sq / (1.0 + sq / self.parameter)).sum())
        if self.relative:
            return err / (self.parameter * a.size) if a.size else 0.0
        return err


L1 = l1
L2 = l2
RMSE = rmse
GMC_PREUHS = GemanMcClure(0.25)
