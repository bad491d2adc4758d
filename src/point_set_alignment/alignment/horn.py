"""
Absolute orientation (Horn 1987, quaternion formulation).

Building blocks shared by the landmark aligner and ICP:
- centroid of a point set
- 3x3 cross-covariance of two centred, index-linked point sets
- the symmetric 4x4 key matrix whose dominant eigenvector is the optimal
  rotation quaternion
- eigenvector extraction (power iteration, or an exact symmetric solver)
- quaternion to homogeneous rotation matrix

All functions are pure and work on float64 ``(N, 3)`` arrays.
"""

from __future__ import annotations

import logging
from typing import Literal, Optional, Tuple

import numpy as np

from ..utils.points import as_point_array

logger = logging.getLogger(__name__)

DEFAULT_POWER_ITERATIONS = 50
DEFAULT_NORM_FLOOR = 1e-10

SolverMethod = Literal["power", "eigh"]


def compute_centroid(points) -> np.ndarray:
    """
    Component-wise mean of a point set.

    Args:
        points: Non-empty point collection (N x 3).

    Returns:
        Centroid as a length-3 array.

    Raises:
        ValueError: If the point set is empty.
    """
    pts = as_point_array(points)
    if len(pts) == 0:
        raise ValueError("Cannot compute centroid of an empty point set")
    return pts.mean(axis=0)


def check_paired(source: np.ndarray, target: np.ndarray) -> None:
    if len(source) != len(target):
        raise ValueError(
            f"Source and target must have the same number of points "
            f"(source={len(source)}, target={len(target)})"
        )
    if len(source) == 0:
        raise ValueError("Correspondence sets must not be empty")


def compute_cross_covariance(
    source,
    target,
    source_centroid,
    target_centroid,
) -> np.ndarray:
    """
    Cross-covariance H with ``H[i, j] = sum_k (s_k - c_s)[i] * (t_k - c_t)[j]``.

    Args:
        source: Source points (N x 3).
        target: Index-linked target points (N x 3).
        source_centroid: Centroid subtracted from the source points.
        target_centroid: Centroid subtracted from the target points.

    Returns:
        3 x 3 matrix.
    """
    src = as_point_array(source)
    tgt = as_point_array(target)
    check_paired(src, tgt)

    src_centered = src - np.asarray(source_centroid, dtype=float)
    tgt_centered = tgt - np.asarray(target_centroid, dtype=float)
    return src_centered.T @ tgt_centered


def build_key_matrix(H: np.ndarray) -> np.ndarray:
    """
    Symmetric 4x4 matrix N of Horn's method for cross-covariance ``H``.

    Its eigenvector for the largest eigenvalue is the unit quaternion
    ``(w, x, y, z)`` of the least-squares rotation.
    """
    (sxx, sxy, sxz), (syx, syy, syz), (szx, szy, szz) = np.asarray(H, dtype=float)

    return np.array(
        [
            [sxx + syy + szz, syz - szy, szx - sxz, sxy - syx],
            [syz - szy, sxx - syy - szz, sxy + syx, szx + sxz],
            [szx - sxz, sxy + syx, -sxx + syy - szz, syz + szy],
            [sxy - syx, szx + sxz, syz + szy, -sxx - syy + szz],
        ],
        dtype=float,
    )


def power_iteration(
    N: np.ndarray,
    max_iterations: int = DEFAULT_POWER_ITERATIONS,
    norm_floor: float = DEFAULT_NORM_FLOOR,
) -> Tuple[np.ndarray, int]:
    """
    Dominant eigenvector of ``N`` by repeated multiplication and renormalisation.

    Starts from the identity quaternion. When an update collapses below
    ``norm_floor`` the previous estimate is kept, so the result is always a
    unit vector and never NaN.

    Returns:
        Tuple of (unit quaternion (w, x, y, z), iterations performed).
    """
    q = np.array([1.0, 0.0, 0.0, 0.0])
    n_done = 0
    for _ in range(max_iterations):
        q_next = N @ q
        norm = float(np.sqrt(q_next @ q_next))
        if norm < norm_floor:
            logger.debug("Power iteration stopped: update norm %.3e below floor.", norm)
            break
        q = q_next / norm
        n_done += 1
    return q, n_done


def symmetric_eigenvector(N: np.ndarray) -> np.ndarray:
    """Eigenvector of the largest algebraic eigenvalue via ``numpy.linalg.eigh``."""
    w, V = np.linalg.eigh(N)
    q = V[:, int(np.argmax(w))]
    # q and -q encode the same rotation; keep w >= 0 for stable output
    if q[0] < 0:
        q = -q
    return q / np.linalg.norm(q)


def quaternion_to_matrix(q) -> np.ndarray:
    """
    Convert a unit quaternion ``(w, x, y, z)`` to a 4x4 homogeneous rotation.
    """
    qw, qx, qy, qz = (float(v) for v in q)

    R = np.eye(4)
    R[:3, :3] = [
        [1 - 2 * qy * qy - 2 * qz * qz, 2 * qx * qy - 2 * qz * qw, 2 * qx * qz + 2 * qy * qw],
        [2 * qx * qy + 2 * qz * qw, 1 - 2 * qx * qx - 2 * qz * qz, 2 * qy * qz - 2 * qx * qw],
        [2 * qx * qz - 2 * qy * qw, 2 * qy * qz + 2 * qx * qw, 1 - 2 * qx * qx - 2 * qy * qy],
    ]
    return R


def solve_rotation_quaternion(
    H: np.ndarray,
    method: SolverMethod = "power",
    max_iterations: int = DEFAULT_POWER_ITERATIONS,
    norm_floor: float = DEFAULT_NORM_FLOOR,
) -> np.ndarray:
    """Optimal rotation quaternion for cross-covariance ``H``."""
    N = build_key_matrix(H)
    if method == "power":
        q, _ = power_iteration(N, max_iterations=max_iterations, norm_floor=norm_floor)
        return q
    if method == "eigh":
        return symmetric_eigenvector(N)
    raise ValueError(f"Unknown rotation solver method '{method}'")


def compute_optimal_rotation(
    source,
    target,
    source_centroid,
    target_centroid,
    method: SolverMethod = "power",
    max_iterations: int = DEFAULT_POWER_ITERATIONS,
    norm_floor: float = DEFAULT_NORM_FLOOR,
    H: Optional[np.ndarray] = None,
) -> np.ndarray:
    """
    Least-squares rotation taking centred ``source`` onto centred ``target``.

    Args:
        source: Source points (N x 3).
        target: Index-linked target points (N x 3).
        source_centroid: Centroid used to centre the source.
        target_centroid: Centroid used to centre the target.
        method: 'power' (iterative, default) or 'eigh' (exact).
        max_iterations: Power iteration budget.
        norm_floor: Power iteration collapse threshold.
        H: Precomputed cross-covariance, skips rebuilding it when given.

    Returns:
        4 x 4 rotation matrix (orthonormal, determinant +1, zero translation).
    """
    if H is None:
        H = compute_cross_covariance(source, target, source_centroid, target_centroid)
    q = solve_rotation_quaternion(
        H, method=method, max_iterations=max_iterations, norm_floor=norm_floor
    )
    return quaternion_to_matrix(q)
