import math

import numpy as np
import pytest
import torch

from radonct import Chunk2D, RadonTransform2D


@pytest.fixture
def ones16():
    return np.ones((16, 16), dtype=np.float32)


def test_vertical_line_through_constant_image(ones16):
    radon = RadonTransform2D(ones16)
    sino = radon.sample_transform([0.0], [0.0])
    assert sino.data.shape == (1, 1)
    # samples at half-integer rows: 15 interior samples plus two half-weighted border samples
    assert sino.data[0, 0] == pytest.approx(16.0, rel=1e-5)


def test_sinogram_layout(ones16):
    radon = RadonTransform2D(ones16)
    sino = radon.sample_transform(np.linspace(0.0, math.pi, 6), np.linspace(-4.0, 4.0, 5))
    assert isinstance(sino, Chunk2D)
    assert sino.dimensions == (6, 5)


def test_line_outside_image_is_zero(ones16):
    radon = RadonTransform2D(ones16)
    assert radon.sample_transform([0.3], [30.0]).data[0, 0] == 0.0


def test_antipodal_symmetry():
    rng = np.random.default_rng(0)
    radon = RadonTransform2D(rng.random((12, 16), dtype=np.float32))
    coords = np.array([[0.4, 2.5], [1.9, -3.0], [2.7, 0.0]])
    antipodal = np.column_stack([coords[:, 0] + math.pi, -coords[:, 1]])
    np.testing.assert_allclose(radon.sample_transform_points(coords),
                               radon.sample_transform_points(antipodal), rtol=1e-4, atol=1e-4)


def test_points_agree_with_grid():
    rng = np.random.default_rng(1)
    radon = RadonTransform2D(torch.from_numpy(rng.random((16, 16), dtype=np.float32)))
    angles = np.array([0.1, 1.0, 2.0], dtype=np.float32)
    dists = np.array([-3.0, 0.5, 4.0], dtype=np.float32)
    grid = radon.sample_transform(angles, dists).data
    a, d = np.meshgrid(angles, dists)
    points = radon.sample_transform_points(np.column_stack([a.ravel(), d.ravel()]))
    np.testing.assert_allclose(points.reshape(grid.shape), grid, rtol=1e-5)


def test_origin_shift_moves_lines(ones16):
    radon = RadonTransform2D(ones16)
    radon.set_origin(0.0, 7.5)
    assert radon.origin == (0.0, 7.5)
    # vertical line through x = 7.5 again
    assert radon.sample_transform_points([[0.0, 7.5]])[0] == pytest.approx(16.0, rel=1e-5)


def test_accuracy_must_be_positive(ones16):
    with pytest.raises(ValueError):
        RadonTransform2D(ones16, accuracy=0.0)
    radon = RadonTransform2D(ones16, accuracy=0.5)
    assert radon.accuracy == 0.5
    assert radon.sample_transform([0.0], [0.0]).data[0, 0] == pytest.approx(16.0, rel=1e-5)


def test_empty_inputs(ones16):
    radon = RadonTransform2D(ones16)
    assert radon.sample_transform([], [0.0]).data.shape == (1, 0)
    assert radon.sample_transform_points(np.zeros((0, 2))).shape == (0,)


def test_x_axis_to_line_mapping():
    angle, dist = 0.7, 3.0
    mapping = RadonTransform2D.x_axis_to_line_mapping((angle, dist))
    normal = np.array([math.cos(angle), math.sin(angle)])
    for x in (-5.0, 0.0, 2.0):
        point = mapping @ np.array([x, 0.0, 1.0])
        assert normal @ point == pytest.approx(dist)
    np.testing.assert_allclose(mapping @ np.array([0.0, 0.0, 1.0]), dist * normal)
    np.testing.assert_allclose(np.linalg.det(mapping[:, :2]), 1.0)
