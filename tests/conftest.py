"""Test configuration.

Kernels run on the numba CUDA simulator unless ``NUMBA_ENABLE_CUDASIM=0`` is
set explicitly, so the suite works on machines without a GPU. The variable
must be set before numba is imported.
"""

import os

os.environ.setdefault("NUMBA_ENABLE_CUDASIM", "1")

import numpy as np  # noqa: E402
import pytest  # noqa: E402
import torch  # noqa: E402
import torch.nn.functional as F  # noqa: E402

from radonct import VoxelVolume, circular_projection_matrices  # noqa: E402


@pytest.fixture
def cube16():
    """Homogeneous 16^3 cube of density 1 at 1 mm voxels."""
    return VoxelVolume.cube(16)


@pytest.fixture
def cube8():
    return VoxelVolume.cube(8)


@pytest.fixture
def two_views():
    """Two cameras of a circular orbit, 90 degrees apart, 16 x 16 detector."""
    return circular_projection_matrices(
        2, sid=100.0, sdd=200.0, det_shape=(16, 16), det_spacing=(2.0, 2.0),
        start_angle=0.0, end_angle=np.pi,
    )


@pytest.fixture
def ball_phantom():
    """16^3 ball with two denser, off-centre inserts."""
    n = 16
    zz, yy, xx = np.mgrid[:n, :n, :n]
    centre = (n - 1) / 2
    data = ((xx - centre) ** 2 + (yy - centre) ** 2 + (zz - centre) ** 2 <= (0.4 * n) ** 2)
    data = data.astype(np.float32)
    data[(xx - 10.0) ** 2 + (yy - 7.0) ** 2 + (zz - 9.0) ** 2 <= 4.0] = 3.0
    data[(xx - 5.5) ** 2 + (yy - 9.5) ** 2 + (zz - 6.0) ** 2 <= 2.5] = 2.0
    return VoxelVolume(data)


@pytest.fixture
def cone_projector():
    """Cone-beam line integrals of a volume centred at the world origin.

    Rays are sampled with trilinear interpolation through
    ``torch.nn.functional.grid_sample``; detector pixel centres sit at
    integer pixel coordinates.
    """
    def project(volume, P, det_shape, n_samples=96):
        data = torch.from_numpy(volume.data)[None, None]
        vox = torch.tensor(volume.voxel_size, dtype=torch.float64)
        dims = torch.tensor(volume.dimensions, dtype=torch.float64)
        half_extent = 0.5 * vox * (dims - 1)
        radius = float(torch.linalg.norm(0.5 * vox * dims))

        n_u, n_v = det_shape
        v, u = torch.meshgrid(torch.arange(n_v, dtype=torch.float64),
                              torch.arange(n_u, dtype=torch.float64), indexing="ij")
        pixels = torch.stack([u.ravel(), v.ravel(), torch.ones(n_u * n_v, dtype=torch.float64)], dim=1)
        rays = pixels @ torch.linalg.inv(torch.from_numpy(np.array(P.M))).T
        rays = rays / torch.linalg.norm(rays, dim=1, keepdim=True)

        source = torch.from_numpy(P.source_position())
        t_closest = rays @ (-source)
        t = torch.linspace(-radius, radius, n_samples, dtype=torch.float64)
        points = source + rays[:, None, :] * (t_closest[:, None, None] + t[None, :, None])
        grid = (points / half_extent).to(torch.float32)[None, :, :, None, :]

        samples = F.grid_sample(data, grid, mode="bilinear", padding_mode="zeros", align_corners=True)
        dt = float(t[1] - t[0])
        return (samples[0, 0, :, :, 0].sum(dim=1) * dt).reshape(n_v, n_u).numpy()

    return project
