"""CUDA kernel for patch-wise 3D plane integrals.

The integration slice is a square pixel grid in the xy-plane that an affine
mapping places into the volume. Each thread block covers one 16 x 16 patch of
the slice and reduces its samples in shared memory; the host sums the patch
results of a plane.
"""

from numba import cuda, float32

from ..constants import _FASTMATH_DECORATOR, _PATCH_PIXELS, _PATCH_SIZE
from .interpolation import _trilinear


@_FASTMATH_DECORATOR
def _plane_integral_kernel(
    d_vol, nx, ny, nz,
    d_mapping, d_dist_shift, d_dists, n_dists,
    d_patch_sums
):
    """Compute per-patch sums of one plane orientation at several distances.

    Parameters
    ----------
    d_vol : DeviceNDArray
        Volume, shape (nz, ny, nx).
    nx, ny, nz : int
        Volume size in voxels.
    d_mapping : DeviceNDArray
        Row-major 3x3 affine mapping ``[A | t]`` (first two columns and the
        translation) from slice pixel ``(u, v)`` to voxel index coordinates.
    d_dist_shift : DeviceNDArray
        Voxel-space displacement per mm of plane distance, shape (3,).
    d_dists : DeviceNDArray
        Plane distances in mm, shape (n_dists,).
    n_dists : int
        Number of distances.
    d_patch_sums : DeviceNDArray
        Output, shape (n_dists * n_patches,), distance-major.

    Notes
    -----
    The slice dimension is a multiple of the patch size, so every thread of
    the grid maps to a slice pixel and takes part in each barrier.
    """
    u, v = cuda.grid(2)
    local_id = cuda.threadIdx.y * _PATCH_SIZE + cuda.threadIdx.x
    patch_id = cuda.blockIdx.y * cuda.gridDim.x + cuda.blockIdx.x
    n_patches = cuda.gridDim.x * cuda.gridDim.y

    cache = cuda.shared.array(shape=_PATCH_PIXELS, dtype=float32)

    base_x = d_mapping[0] * u + d_mapping[1] * v + d_mapping[2]
    base_y = d_mapping[3] * u + d_mapping[4] * v + d_mapping[5]
    base_z = d_mapping[6] * u + d_mapping[7] * v + d_mapping[8]

    for i_d in range(n_dists):
        dist = d_dists[i_d]
        cache[local_id] = _trilinear(
            d_vol, nx, ny, nz,
            base_x + dist * d_dist_shift[0],
            base_y + dist * d_dist_shift[1],
            base_z + dist * d_dist_shift[2],
        )
        cuda.syncthreads()

        # === SHARED MEMORY TREE REDUCTION ===
        stride = _PATCH_PIXELS // 2
        while stride > 0:
            if local_id < stride:
                cache[local_id] += cache[local_id + stride]
            cuda.syncthreads()
            stride //= 2

        if local_id == 0:
            d_patch_sums[i_d * n_patches + patch_id] = cache[0]
        cuda.syncthreads()
