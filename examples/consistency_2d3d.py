"""Pose sweep of the Grangeat 2D/3D registration objective.

A cone-beam projection of a phantom is simulated at a known pose. The
volume-side intermediate function is precomputed once; the objective is then
evaluated while one pose parameter at a time is moved away from the truth.
The inconsistency should be smallest at the true pose.
"""

import logging

import numpy as np
import torch
import torch.nn.functional as F

from radonct import (
    GrangeatRegistration2D3D,
    IntermedGen2D3D,
    IntermediateVol,
    VoxelVolume,
    circular_projection_matrices,
    error_metrics,
    radon_space_ranges,
)
from radonct.registration import compute_delta_s


def ball_phantom(n):
    zz, yy, xx = np.mgrid[:n, :n, :n]
    centre = (n - 1) / 2
    r2 = (xx - centre) ** 2 + (yy - centre) ** 2 + (zz - centre) ** 2
    phantom = (r2 <= (0.4 * n) ** 2).astype(np.float32)
    phantom[(xx - 0.65 * n) ** 2 + (yy - 0.45 * n) ** 2 + (zz - 0.55 * n) ** 2 <= (0.1 * n) ** 2] = 3.0
    phantom[(xx - 0.35 * n) ** 2 + (yy - 0.6 * n) ** 2 + (zz - 0.4 * n) ** 2 <= (0.08 * n) ** 2] = 2.0
    return phantom


def forward_project(volume, P, det_shape, n_samples=256):
    """Cone-beam line integrals (mm) of a volume centred at the origin."""
    data = torch.from_numpy(volume.data)[None, None]
    vox = torch.tensor(volume.voxel_size, dtype=torch.float64)
    dims = torch.tensor(volume.dimensions, dtype=torch.float64)
    half_extent = 0.5 * vox * (dims - 1)
    radius = float(torch.linalg.norm(0.5 * vox * dims))

    n_u, n_v = det_shape
    v, u = torch.meshgrid(torch.arange(n_v, dtype=torch.float64),
                          torch.arange(n_u, dtype=torch.float64), indexing="ij")
    pixels = torch.stack([u.ravel(), v.ravel(), torch.ones(n_u * n_v, dtype=torch.float64)], dim=1)
    rays = pixels @ torch.linalg.inv(torch.from_numpy(P.M)).T
    rays = rays / torch.linalg.norm(rays, dim=1, keepdim=True)

    source = torch.from_numpy(P.source_position())
    t_centre = rays @ (-source)
    t = torch.linspace(-radius, radius, n_samples, dtype=torch.float64)
    points = source + rays[:, None, :] * (t_centre[:, None, None] + t[None, :, None])
    grid = (points / half_extent).to(torch.float32)[None, :, :, None, :]

    samples = F.grid_sample(data, grid, mode="bilinear", padding_mode="zeros", align_corners=True)
    dt = float(t[1] - t[0])
    return (samples[0, 0, :, :, 0].sum(dim=1) * dt).reshape(n_v, n_u).numpy()


def main():
    logging.basicConfig(level=logging.INFO)

    n, det_shape = 64, (96, 96)
    volume = VoxelVolume(ball_phantom(n))
    P = circular_projection_matrices(1, sid=400.0, sdd=800.0, det_shape=det_shape,
                                     det_spacing=(1.5, 1.5))[0]
    projection = forward_project(volume, P, det_shape)

    azimuth_range, polar_range, distance_range = radon_space_ranges(volume)
    volume_sampler = IntermediateVol(volume).sampler(azimuth_range, 120, polar_range, 60,
                                                     distance_range, 96)
    registration = GrangeatRegistration2D3D(
        projection, P, volume_sampler,
        generator=IntermedGen2D3D(line_distance=1.0, subsample_level=0.2, use_subsampling=True),
        metric=error_metrics.correlation_error,
        seed=0,
    )
    print(f"{len(registration)} correspondences")

    names = ("rx", "ry", "rz", "tx", "ty", "tz")
    offsets = np.linspace(-8.0, 8.0, 9)
    print("offset  " + "  ".join(f"{name:>9}" for name in names))
    for offset in offsets:
        row = []
        for i in range(6):
            params = np.zeros(6)
            params[i] = offset
            row.append(registration.objective(params))
        print(f"{offset:6.1f}  " + "  ".join(f"{value:9.5f}" for value in row))
    print(f"{registration.n_evaluations} objective evaluations, "
          f"true pose objective {registration.objective(np.zeros(6)):.5f}")
    delta_s = compute_delta_s(P, distance_range.spacing(96))
    print(f"Volume distance step in detector pixels: {delta_s:.3f}")


if __name__ == "__main__":
    main()
