"""Pinhole camera model of a cone-beam projection.

A projection matrix ``P = [M | p4]`` maps homogeneous world points (mm) to
homogeneous detector pixel coordinates. With intrinsics ``K``, rotation ``R``
and source position ``c`` it factors as ``P = K R [I | -c]``.
"""

import numpy as np

from .constants import _FUZZY_ZERO


def _rq_decomposition(m):
    """RQ decomposition ``m = r @ q`` with a positive diagonal of ``r``."""
    flip = np.flipud(np.eye(3))
    q, r = np.linalg.qr((flip @ m).T)
    r = flip @ r.T @ flip
    q = flip @ q.T
    d = np.sign(np.diag(r))
    d[d == 0] = 1.0
    signs = np.diag(d)
    return r @ signs, signs @ q


class ProjectionMatrix:
    """3x4 homogeneous camera matrix.

    Parameters
    ----------
    matrix : array-like
        The 3x4 matrix.

    Examples
    --------
    >>> K = np.array([[1000.0, 0, 64], [0, 1000.0, 64], [0, 0, 1]])
    >>> P = ProjectionMatrix.compose(K, np.eye(3), [0.0, 0.0, -800.0])
    >>> P.source_position()
    array([   0.,    0., -800.])
    """

    def __init__(self, matrix):
        matrix = np.asarray(matrix, dtype=np.float64)
        if matrix.shape != (3, 4):
            raise ValueError(f"Projection matrix must be 3x4, got {matrix.shape}")
        self._matrix = matrix.copy()
        self._matrix.flags.writeable = False

    def __repr__(self):
        return f"ProjectionMatrix({self._matrix.tolist()})"

    @classmethod
    def compose(cls, K, R, source_position):
        """Build ``K R [I | -c]``."""
        K = np.asarray(K, dtype=np.float64)
        R = np.asarray(R, dtype=np.float64)
        c = np.asarray(source_position, dtype=np.float64).reshape(3)
        return cls(K @ R @ np.hstack([np.eye(3), -c[:, None]]))

    @property
    def matrix(self):
        return self._matrix

    @property
    def M(self):
        """Leading 3x3 block."""
        return self._matrix[:, :3]

    @property
    def p4(self):
        return self._matrix[:, 3]

    def normalized(self):
        """Scaled copy whose principal-ray row has unit norm and positive ``det(M)``."""
        m3 = self._matrix[2, :3]
        scale = np.linalg.norm(m3)
        if scale < _FUZZY_ZERO:
            raise ValueError("Degenerate projection matrix")
        if np.linalg.det(self.M) < 0.0:
            scale = -scale
        return ProjectionMatrix(self._matrix / scale)

    def source_position(self):
        """World position of the X-ray source, the right null space of P."""
        return -np.linalg.solve(self.M, self.p4)

    def intrinsic_mat_k(self):
        """Intrinsic matrix with a positive diagonal and ``K[2, 2] == 1``."""
        K, _ = _rq_decomposition(self.normalized().M)
        return K / K[2, 2]

    def rotation_mat_r(self):
        _, R = _rq_decomposition(self.normalized().M)
        return R

    def principal_point(self):
        K = self.intrinsic_mat_k()
        return np.array([K[0, 2], K[1, 2]])

    def _depth(self, point):
        R = self.rotation_mat_r()
        return float(R[2] @ (np.asarray(point, dtype=np.float64) - self.source_position()))

    def magnification_x(self, point=(0.0, 0.0, 0.0)):
        """Pixel-per-millimetre magnification along x at a world point."""
        return self.intrinsic_mat_k()[0, 0] / self._depth(point)

    def magnification_y(self, point=(0.0, 0.0, 0.0)):
        return self.intrinsic_mat_k()[1, 1] / self._depth(point)

    def magnification(self, point=(0.0, 0.0, 0.0)):
        """Mean of x and y magnification."""
        return 0.5 * (self.magnification_x(point) + self.magnification_y(point))

    def project(self, points):
        """Project world points of shape ``(N, 3)`` to pixel coordinates ``(N, 2)``."""
        points = np.atleast_2d(np.asarray(points, dtype=np.float64))
        hom = points @ self.M.T + self.p4
        return hom[:, :2] / hom[:, 2:3]
