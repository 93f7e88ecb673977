import math

import numpy as np
import pytest

from radonct import HomCoordPlaneNormalized, Radon3DCoord, SamplingRange
from radonct.coordinates import hom_to_radon, radon_2d_normal, radon_to_hom, unit_normal


def test_sampling_range_spacing_and_linspace():
    r = SamplingRange(-1.0, 1.0)
    assert r.width() == 2.0
    assert r.center() == 0.0
    assert r.spacing(5) == 0.5
    assert r.spacing(1) == 0.0
    np.testing.assert_allclose(r.linspace(3), [-1.0, 0.0, 1.0])
    assert r.linspace(3).dtype == np.float32
    np.testing.assert_allclose(r.linspace(1), [-1.0])


def test_sampling_range_equality():
    assert SamplingRange(0.0, math.pi) == SamplingRange(0.0, math.pi)
    assert SamplingRange(0.0, 1.0) != SamplingRange(0.0, 2.0)


def test_unit_normal_is_unit():
    normals = unit_normal(np.linspace(-3, 3, 7), np.linspace(0.1, 3.0, 7))
    assert normals.shape == (7, 3)
    np.testing.assert_allclose(np.linalg.norm(normals, axis=1), 1.0)


def test_radon_hom_round_trip():
    coords = np.array([[0.3, 1.1, 5.0], [-2.0, 0.4, -3.5], [2.9, 2.8, 0.0]])
    planes = radon_to_hom(coords)
    assert planes.shape == (3, 4)
    np.testing.assert_allclose(planes[:, 3], -coords[:, 2])
    np.testing.assert_allclose(hom_to_radon(planes), coords, atol=1e-6)


def test_hom_to_radon_normalizes():
    planes = np.array([[0.0, 0.0, 2.0, -6.0]])
    azimuth, polar, dist = hom_to_radon(planes)[0]
    assert polar == pytest.approx(0.0)
    assert dist == pytest.approx(3.0)


def test_single_coordinate_accepted():
    planes = radon_to_hom(Radon3DCoord(0.0, math.pi / 2, 1.0))
    np.testing.assert_allclose(planes, [[1.0, 0.0, 0.0, -1.0]], atol=1e-7)


def test_hom_coord_plane_from_radon():
    plane = HomCoordPlaneNormalized.from_radon(Radon3DCoord(0.0, 0.0, 2.5))
    np.testing.assert_allclose(plane.normal, [0.0, 0.0, 1.0], atol=1e-7)
    assert plane.dist == pytest.approx(2.5)


def test_radon_2d_normal():
    np.testing.assert_allclose(radon_2d_normal(math.pi / 2), [0.0, 1.0], atol=1e-12)


def test_bad_coordinate_shape():
    with pytest.raises(ValueError):
        radon_to_hom(np.zeros((4, 2)))


def test_hom_to_radon_azimuth_range_is_half_open():
    azimuth = hom_to_radon([[-1.0, 0.0, 0.0, 0.0], [-1.0, -1e-9, 0.0, 0.0]])[:, 0]
    assert azimuth[0] == pytest.approx(-math.pi)
    assert azimuth[1] == pytest.approx(-math.pi)
    assert np.all(azimuth < math.pi)
