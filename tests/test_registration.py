import math

import numpy as np
import pytest

from radonct import (
    GrangeatRegistration2D3D,
    IntermedGen2D3D,
    SamplingRange,
    VolumeResampler,
    VoxelVolume,
    error_metrics,
)
from radonct.registration import compute_delta_s, homography_from_parameters
from radonct.utils import DeviceError


@pytest.fixture
def volume_sampler():
    rng = np.random.default_rng(4)
    return VolumeResampler(
        VoxelVolume(rng.random((9, 7, 11), dtype=np.float32)),
        SamplingRange(-math.pi, math.pi), SamplingRange(0.0, math.pi), SamplingRange(-120.0, 120.0))


@pytest.fixture
def registration(two_views, volume_sampler):
    projection = np.random.default_rng(8).random((16, 16), dtype=np.float32)
    return GrangeatRegistration2D3D(projection, two_views[0], volume_sampler,
                                    generator=IntermedGen2D3D(line_distance=4.0))


def test_homography_from_parameters():
    H = homography_from_parameters([0.0, 0.0, 90.0, 1.0, 2.0, 3.0])
    np.testing.assert_allclose(H[:3, :3], [[0.0, -1.0, 0.0], [1.0, 0.0, 0.0], [0.0, 0.0, 1.0]],
                               atol=1e-12)
    np.testing.assert_allclose(H[:3, 3], [1.0, 2.0, 3.0])
    np.testing.assert_allclose(H[3], [0.0, 0.0, 0.0, 1.0])
    np.testing.assert_allclose(homography_from_parameters(np.zeros(6)), np.eye(4))
    with pytest.raises(ValueError):
        homography_from_parameters([1.0, 2.0])


def test_compute_delta_s(two_views):
    # 200 mm source-detector distance, 2 mm pixels, isocentre at 100 mm
    assert compute_delta_s(two_views[0], 0.5) == pytest.approx(0.5)


def test_objective_at_identity(registration, volume_sampler):
    assert len(registration) == 60
    expected = error_metrics.l2(registration.projection_signal,
                                volume_sampler.sample(registration._generator.last_sampling))
    assert registration.objective(np.zeros(6)) == pytest.approx(expected, rel=1e-2)
    assert registration.n_evaluations == 1


def test_objective_depends_on_pose(registration):
    at_identity = registration(np.zeros(6))
    moved = registration([5.0, -3.0, 10.0, 2.0, 0.0, -4.0])
    assert np.isfinite(moved)
    assert moved != pytest.approx(at_identity)
    assert registration.n_evaluations == 2


def test_metric_is_configurable(registration):
    registration.metric = error_metrics.correlation_error
    value = registration.objective(np.zeros(6))
    assert 0.0 <= value <= 2.0


def test_device_failure_becomes_runtime_error(registration, monkeypatch):
    def fail(_):
        raise DeviceError("device lost")

    monkeypatch.setattr(registration._coord_transform, "transform", fail)
    with pytest.raises(RuntimeError, match="Objective evaluation failed"):
        registration.objective(np.zeros(6))
