import math

import numpy as np
import pytest

from radonct import Radon3DCoordTransform, VolumeResampler, VoxelVolume
from radonct.coord_transform import homography
from radonct.coordinates import radon_to_hom


COORDS = np.array([
    [0.3, 1.1, 5.0],
    [-2.0, 0.4, -3.5],
    [1.5, 2.5, 0.75],
], dtype=np.float32)


def test_identity_keeps_coordinates():
    transform = Radon3DCoordTransform(COORDS)
    assert len(transform) == 3
    np.testing.assert_allclose(transform.transformed_coords(np.eye(3), np.zeros(3)),
                               COORDS, atol=1e-5)


def test_rotation_about_z_shifts_azimuth():
    angle = 0.25
    c, s = math.cos(angle), math.sin(angle)
    rot = np.array([[c, -s, 0.0], [s, c, 0.0], [0.0, 0.0, 1.0]])
    out = Radon3DCoordTransform(COORDS).transformed_coords(rot, np.zeros(3))
    np.testing.assert_allclose(out[:, 0], COORDS[:, 0] - angle, atol=1e-5)
    np.testing.assert_allclose(out[:, 1:], COORDS[:, 1:], atol=1e-5)


def test_translation_moves_distance():
    coords = np.array([[0.0, math.pi / 2, 2.0]])
    out = Radon3DCoordTransform(coords).transformed_coords(np.eye(3), [5.0, 0.0, 0.0])
    assert out[0, 2] == pytest.approx(-3.0, abs=1e-5)


def test_homogeneous_initialisation_and_reset():
    transform = Radon3DCoordTransform.from_hom_coords(radon_to_hom(COORDS))
    np.testing.assert_allclose(transform.initial_hom_coords(), radon_to_hom(COORDS), atol=1e-6)
    transform.reset_initial_coords(COORDS[:2])
    assert len(transform) == 2
    assert transform.transformed_coords(np.eye(3), np.zeros(3)).shape == (2, 3)


def test_device_buffer_feeds_resampler():
    rng = np.random.default_rng(3)
    volume = VoxelVolume(rng.random((5, 6, 7), dtype=np.float32), voxel_size=(1.0, 0.5, 2.0))
    sampler = VolumeResampler(volume)
    coords = np.array([[0.5, 0.2, 1.0], [-1.0, -0.6, -2.5]], dtype=np.float32)
    transform = Radon3DCoordTransform(coords)
    d_coords = transform.transform(homography(np.eye(3), np.zeros(3)))
    host = transform.transformed_coords(np.eye(3), np.zeros(3))
    np.testing.assert_allclose(sampler.sample(d_coords), sampler.sample(host), rtol=1e-6)


def test_invalid_use():
    transform = Radon3DCoordTransform()
    assert len(transform) == 0
    with pytest.raises(ValueError):
        transform.transform(np.eye(4))
    transform.reset_initial_coords(COORDS)
    with pytest.raises(ValueError):
        transform.transform(np.eye(3))


def _angle_difference(a, b):
    return np.angle(np.exp(1j * (np.asarray(a, dtype=np.float64) - np.asarray(b, dtype=np.float64))))


def test_azimuth_range_is_half_open():
    # normal (-1, 0, 0) has azimuth exactly pi before wrapping
    transform = Radon3DCoordTransform.from_hom_coords([[-1.0, 0.0, 0.0, -2.0]])
    out = transform.transformed_coords(np.eye(3), np.zeros(3))
    assert out[0, 0] == pytest.approx(-math.pi, abs=1e-6)
    np.testing.assert_allclose(out[0, 1:], [math.pi / 2, 2.0], atol=1e-5)


def test_boundary_azimuths_round_trip_modulo_two_pi():
    coords = np.array([[-math.pi, 1.0, 2.0], [math.pi - 1e-3, 0.5, 1.0], [-math.pi + 1e-3, 2.0, -1.0]],
                      dtype=np.float32)
    out = Radon3DCoordTransform(coords).transformed_coords(np.eye(3), np.zeros(3))
    assert np.all(out[:, 0] >= -math.pi - 1e-6)
    assert np.all(out[:, 0] < math.pi)
    np.testing.assert_allclose(_angle_difference(out[:, 0], coords[:, 0]), 0.0, atol=1e-5)
    np.testing.assert_allclose(out[:, 1:], coords[:, 1:], atol=1e-5)
