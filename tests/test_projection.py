import numpy as np
import pytest
import torch

from radonct import (
    ProjectionMatrix,
    circular_projection_matrices,
    circular_trajectory_3d,
    perturbed_trajectory_3d,
    projection_matrices_from_trajectory,
)


K = np.array([[1000.0, 0.0, 63.5], [0.0, 1000.0, 63.5], [0.0, 0.0, 1.0]])


def _rotation_z(angle):
    c, s = np.cos(angle), np.sin(angle)
    return np.array([[c, -s, 0.0], [s, c, 0.0], [0.0, 0.0, 1.0]])


def test_compose_and_decompose():
    R = _rotation_z(0.3)
    c = np.array([10.0, -20.0, 500.0])
    P = ProjectionMatrix.compose(K, R, c)
    np.testing.assert_allclose(P.source_position(), c, atol=1e-9)
    np.testing.assert_allclose(P.intrinsic_mat_k(), K, atol=1e-9)
    np.testing.assert_allclose(P.rotation_mat_r(), R, atol=1e-10)
    np.testing.assert_allclose(P.principal_point(), [63.5, 63.5])


def test_decomposition_is_scale_invariant():
    P = ProjectionMatrix.compose(K, np.eye(3), [0.0, 0.0, -800.0])
    scaled = ProjectionMatrix(-3.0 * P.matrix)
    np.testing.assert_allclose(scaled.intrinsic_mat_k(), K, atol=1e-9)
    np.testing.assert_allclose(scaled.source_position(), P.source_position())


def _rotation_y(angle):
    c, s = np.cos(angle), np.sin(angle)
    return np.array([[c, 0.0, s], [0.0, 1.0, 0.0], [-s, 0.0, c]])


@pytest.mark.parametrize("scale", [1.0, -0.01])
def test_decomposition_of_rotated_camera(scale):
    K_small = np.array([[400.0, 0.0, 31.5], [0.0, 410.0, 29.5], [0.0, 0.0, 1.0]])
    R = _rotation_y(0.3) @ _rotation_z(-1.2)
    P = ProjectionMatrix(scale * ProjectionMatrix.compose(K_small, R, [5.0, 80.0, -3.0]).matrix)

    R_est = P.rotation_mat_r()
    np.testing.assert_allclose(R_est @ R_est.T, np.eye(3), atol=1e-10)
    assert np.linalg.det(R_est) == pytest.approx(1.0)
    np.testing.assert_allclose(R_est, R, atol=1e-10)
    np.testing.assert_allclose(P.intrinsic_mat_k(), K_small, atol=1e-9)


def test_matrix_is_read_only():
    P = ProjectionMatrix(np.hstack([np.eye(3), np.zeros((3, 1))]))
    with pytest.raises(ValueError):
        P.matrix[0, 0] = 2.0
    with pytest.raises(ValueError):
        ProjectionMatrix(np.eye(3))


def test_magnification_and_projection():
    P = ProjectionMatrix.compose(K, np.eye(3), [0.0, 0.0, -800.0])
    assert P.magnification() == pytest.approx(1000.0 / 800.0)
    np.testing.assert_allclose(P.project([[0.0, 0.0, 0.0]]), [[63.5, 63.5]])
    np.testing.assert_allclose(P.project([[8.0, 0.0, 0.0]]), [[73.5, 63.5]])


def test_circular_trajectory_shapes():
    src, det, u, v = circular_trajectory_3d(4, sid=750.0, sdd=1200.0)
    for t in (src, det, u, v):
        assert t.shape == (4, 3)
    np.testing.assert_allclose(torch.linalg.norm(src, dim=1).numpy(), 750.0)
    np.testing.assert_allclose(torch.linalg.norm(src - det, dim=1).numpy(), 1200.0)


def test_perturbed_trajectory_is_reproducible():
    trajectory = circular_trajectory_3d(3, sid=500.0, sdd=1000.0)
    first = perturbed_trajectory_3d(*trajectory, pos_std=2.0, seed=7)
    second = perturbed_trajectory_3d(*trajectory, pos_std=2.0, seed=7)
    torch.testing.assert_close(first[0], second[0])
    torch.testing.assert_close(first[0] - trajectory[0], first[1] - trajectory[1])


def test_projection_matrices_from_trajectory():
    sid, sdd = 100.0, 200.0
    trajectory = circular_trajectory_3d(3, sid=sid, sdd=sdd)
    matrices = projection_matrices_from_trajectory(*trajectory, det_shape=(32, 24),
                                                   det_spacing=(2.0, 2.0))
    assert len(matrices) == 3
    for P, s, dc, u in zip(matrices, *(t.numpy() for t in trajectory[:3])):
        np.testing.assert_allclose(P.source_position(), s, atol=1e-9)
        np.testing.assert_allclose(P.project(dc[None]), [[15.5, 11.5]], atol=1e-9)
        np.testing.assert_allclose(P.project((dc + 2.0 * u)[None]), [[16.5, 11.5]], atol=1e-9)
        assert P.magnification() == pytest.approx(sdd / sid / 2.0)


def test_source_in_detector_plane_raises():
    src = torch.zeros(1, 3, dtype=torch.float64)
    u = torch.tensor([[1.0, 0.0, 0.0]], dtype=torch.float64)
    v = torch.tensor([[0.0, 0.0, 1.0]], dtype=torch.float64)
    with pytest.raises(ValueError):
        projection_matrices_from_trajectory(src, src.clone(), u, v, det_shape=(8, 8))


def test_circular_projection_matrices():
    matrices = circular_projection_matrices(4, 100.0, 200.0, det_shape=(16, 16))
    sources = np.array([P.source_position() for P in matrices])
    np.testing.assert_allclose(np.linalg.norm(sources, axis=1), 100.0)
