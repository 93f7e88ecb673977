"""Acquisition geometry for cone-beam CT.

This module generates source/detector trajectories as PyTorch tensors and
converts them into the projection matrices consumed by the consistency
generators.
"""

import math

import numpy as np
import torch

from .projection import ProjectionMatrix


# ============================================================================
# Trajectory Generation Functions
# ============================================================================

def circular_trajectory_3d(n_views, sid, sdd, start_angle=0.0, end_angle=None, device='cpu', dtype=torch.float64):
    """Generate circular trajectory geometry for cone-beam CT.

    The source rotates in the xy-plane around the z-axis at distance `sid`
    from the isocenter; the detector faces it at distance `sdd`.

    Parameters
    ----------
    n_views : int
        Number of projection views.
    sid : float
        Source-to-Isocenter Distance (SID), in mm.
    sdd : float
        Source-to-Detector Distance (SDD), in mm.
    start_angle : float, optional
        Starting angle in radians (default: 0.0).
    end_angle : float, optional
        Ending angle in radians, excluded (default: 2*pi, full rotation).
    device : str or torch.device, optional
        Device for tensors (default: 'cpu').
    dtype : torch.dtype, optional
        Data type for tensors (default: torch.float64).

    Returns
    -------
    src_pos : torch.Tensor
        Source positions, shape (n_views, 3).
    det_center : torch.Tensor
        Detector center positions, shape (n_views, 3).
    det_u_vec : torch.Tensor
        Detector u-direction unit vectors, shape (n_views, 3).
    det_v_vec : torch.Tensor
        Detector v-direction unit vectors, shape (n_views, 3).

    Examples
    --------
    >>> src_pos, det_center, det_u_vec, det_v_vec = circular_trajectory_3d(
    ...     n_views=4, sid=750.0, sdd=1200.0
    ... )
    >>> src_pos.shape
    torch.Size([4, 3])
    """
    if end_angle is None:
        end_angle = 2 * math.pi

    step = (end_angle - start_angle) / n_views
    angles = start_angle + torch.arange(n_views, device=device, dtype=dtype) * step
    cos_angles = torch.cos(angles)
    sin_angles = torch.sin(angles)
    zeros = torch.zeros_like(angles)
    ones = torch.ones_like(angles)

    src_pos = torch.stack([-sid * sin_angles, sid * cos_angles, zeros], dim=1)
    idd = sdd - sid  # Isocenter-to-Detector Distance
    det_center = torch.stack([idd * sin_angles, -idd * cos_angles, zeros], dim=1)
    det_u_vec = torch.stack([cos_angles, sin_angles, zeros], dim=1)
    det_v_vec = torch.stack([zeros, zeros, ones], dim=1)

    return src_pos, det_center, det_u_vec, det_v_vec


def perturbed_trajectory_3d(src_pos, det_center, det_u_vec, det_v_vec, pos_std=0.0,
                            seed=None):
    """Add random rigid offsets to a trajectory.

    Source and detector of each view are shifted by the same normally
    distributed offset, which keeps the intrinsic geometry of each view.

    Parameters
    ----------
    src_pos, det_center, det_u_vec, det_v_vec : torch.Tensor
        Trajectory as returned by :func:`circular_trajectory_3d`.
    pos_std : float, optional
        Standard deviation of the offsets in mm (default: 0.0).
    seed : int, optional
        Random seed for reproducibility.

    Returns
    -------
    tuple of torch.Tensor
        The shifted trajectory.
    """
    generator = torch.Generator(device=src_pos.device)
    if seed is not None:
        generator.manual_seed(seed)
    else:
        generator.seed()
    offsets = torch.randn(src_pos.shape, generator=generator, device=src_pos.device,
                          dtype=src_pos.dtype) * pos_std
    return src_pos + offsets, det_center + offsets, det_u_vec.clone(), det_v_vec.clone()


# ============================================================================
# Projection Matrices
# ============================================================================

def projection_matrices_from_trajectory(src_pos, det_center, det_u_vec, det_v_vec,
                                        det_shape, det_spacing=(1.0, 1.0)):
    """Convert a source/detector trajectory into projection matrices.

    Pixel ``(i, j)`` of a ``(n_u, n_v)`` detector lies at
    ``det_center + (i - (n_u - 1) / 2) * du * u + (j - (n_v - 1) / 2) * dv * v``.

    Parameters
    ----------
    src_pos, det_center, det_u_vec, det_v_vec : torch.Tensor or array-like
        Per-view geometry, each of shape (n_views, 3).
    det_shape : tuple of int
        Detector size ``(n_u, n_v)`` in pixels (width, height).
    det_spacing : tuple of float, optional
        Pixel spacing ``(du, dv)`` in mm (default: (1.0, 1.0)).

    Returns
    -------
    list of ProjectionMatrix
        One matrix per view.

    Raises
    ------
    ValueError
        If a source lies in its detector plane.
    """
    def _as_numpy(t):
        if isinstance(t, torch.Tensor):
            return t.detach().cpu().to(torch.float64).numpy()
        return np.asarray(t, dtype=np.float64)

    src_pos, det_center = _as_numpy(src_pos), _as_numpy(det_center)
    det_u_vec, det_v_vec = _as_numpy(det_u_vec), _as_numpy(det_v_vec)
    n_u, n_v = det_shape
    du, dv = det_spacing
    cu, cv = 0.5 * (n_u - 1), 0.5 * (n_v - 1)

    matrices = []
    for s, dc, u, v in zip(src_pos, det_center, det_u_vec, det_v_vec):
        u = u / np.linalg.norm(u)
        v = v / np.linalg.norm(v)
        w = np.cross(u, v)
        w /= np.linalg.norm(w)
        src_to_det = float((dc - s) @ w)
        if src_to_det < 0.0:
            w, src_to_det = -w, -src_to_det
        if src_to_det < 1e-9:
            raise ValueError("Source lies in the detector plane")

        rows = np.stack([
            ((s - dc) @ u / du + cu) * w + src_to_det / du * u,
            ((s - dc) @ v / dv + cv) * w + src_to_det / dv * v,
            w,
        ])
        matrices.append(ProjectionMatrix(np.hstack([rows, -(rows @ s)[:, None]])))
    return matrices


def circular_projection_matrices(n_views, sid, sdd, det_shape, det_spacing=(1.0, 1.0),
                                 start_angle=0.0, end_angle=None):
    """Projection matrices of a circular orbit, see :func:`circular_trajectory_3d`."""
    trajectory = circular_trajectory_3d(n_views, sid, sdd, start_angle, end_angle)
    return projection_matrices_from_trajectory(*trajectory, det_shape, det_spacing)
