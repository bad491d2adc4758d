"""
Landmark Registration

Similarity transform (rotation + uniform scale + translation) from a set of
index-linked landmark pairs, e.g. points picked by a user on two
digitizations of the same object.

The fit is:
1. Centroids of both sets
2. Optimal rotation by Horn's quaternion method on the centred sets
3. Uniform scale as the ratio of the spreads of the centred sets
4. Translation that carries the scaled, rotated source centroid onto the
   target centroid, composed as ``M = T @ S @ R``
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from .exceptions import InsufficientCorrespondencesError
from .horn import (
    DEFAULT_NORM_FLOOR,
    DEFAULT_POWER_ITERATIONS,
    SolverMethod,
    check_paired,
    compute_centroid,
    compute_cross_covariance,
    compute_optimal_rotation,
)
from ..utils.points import Correspondence, as_point_array

DEFAULT_SCALE_FLOOR = 1e-10
# Relative singular value below which a centred point set counts as rank deficient
_RANK_TOLERANCE = 1e-9


def compute_uniform_scale(
    source,
    target,
    source_centroid,
    target_centroid,
    spread_floor: float = DEFAULT_SCALE_FLOOR,
) -> float:
    """
    Uniform scale ``sqrt(sum |t - c_t|^2 / sum |s - c_s|^2)``.

    Returns 1.0 when the source spread is below ``spread_floor`` (for example
    when all source points coincide).
    """
    src = as_point_array(source)
    tgt = as_point_array(target)
    check_paired(src, tgt)

    src_spread = float(np.sum((src - np.asarray(source_centroid, dtype=float)) ** 2))
    tgt_spread = float(np.sum((tgt - np.asarray(target_centroid, dtype=float)) ** 2))

    if src_spread <= spread_floor:
        return 1.0
    return float(np.sqrt(tgt_spread / src_spread))


def compose_similarity_transform(
    rotation: np.ndarray,
    scale: float,
    source_centroid,
    target_centroid,
) -> np.ndarray:
    """
    Compose ``M = T @ S @ R`` with ``t = c_t - scale * R @ c_s``.

    Args:
        rotation: 4x4 (or 3x3) rotation matrix.
        scale: Uniform scale factor.
        source_centroid: Source centroid (length 3).
        target_centroid: Target centroid (length 3).

    Returns:
        New 4x4 similarity transform.
    """
    R = np.eye(4)
    R[:3, :3] = np.asarray(rotation, dtype=float)[:3, :3]

    c_src = np.asarray(source_centroid, dtype=float)
    c_tgt = np.asarray(target_centroid, dtype=float)
    translation = c_tgt - scale * (R[:3, :3] @ c_src)

    S = np.diag([scale, scale, scale, 1.0])
    T = np.eye(4)
    T[:3, 3] = translation

    return T @ S @ R


def apply_transformation(points, transform: np.ndarray) -> np.ndarray:
    """
    Apply a 4x4 transform to a set of points.

    Args:
        points: Point cloud (N x 3).
        transform: Transformation matrix (4 x 4).

    Returns:
        Transformed point cloud (N x 3).
    """
    pts = as_point_array(points)
    if pts.size == 0:
        return pts

    M = np.asarray(transform, dtype=float)
    return pts @ M[:3, :3].T + M[:3, 3]


def is_rank_deficient(centered: np.ndarray) -> bool:
    """True when centred points are coincident or collinear (rank < 2)."""
    if len(centered) < 2:
        return True
    s = np.linalg.svd(centered, compute_uv=False)
    if s[0] <= DEFAULT_SCALE_FLOOR:
        return True
    return bool(len(s) < 2 or s[1] <= _RANK_TOLERANCE * s[0])


@dataclass
class LandmarkAlignmentResult:
    """Outcome of a landmark fit."""

    matrix: np.ndarray
    rotation: np.ndarray
    scale: float
    translation: np.ndarray
    source_centroid: np.ndarray
    target_centroid: np.ndarray
    rmse: float
    n_correspondences: int
    degenerate: bool = False


class LandmarkAligner:
    """
    Fit a similarity transform to index-linked landmark pairs.

    Fewer than ``min_correspondences`` pairs are accepted and produce a
    best-effort transform unless ``strict`` is set. Degenerate geometry
    (coincident or collinear points) never raises: some valid rotation is
    returned and the result is flagged.
    """

    def __init__(
        self,
        method: SolverMethod = "power",
        max_iterations: int = DEFAULT_POWER_ITERATIONS,
        norm_floor: float = DEFAULT_NORM_FLOOR,
        estimate_scale: bool = True,
        scale_floor: float = DEFAULT_SCALE_FLOOR,
        min_correspondences: int = 3,
        strict: bool = False,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Args:
            method: Rotation solver, 'power' or 'eigh'.
            max_iterations: Power iteration budget.
            norm_floor: Power iteration collapse threshold.
            estimate_scale: If False, fit a rigid transform (scale fixed at 1).
            scale_floor: Source spread below which the scale defaults to 1.
            min_correspondences: Pairs needed for a well-determined rotation.
            strict: Raise InsufficientCorrespondencesError below the minimum.
            logger: Logger to report to (defaults to this module's logger).
        """
        self.method = method
        self.max_iterations = max_iterations
        self.norm_floor = norm_floor
        self.estimate_scale = estimate_scale
        self.scale_floor = scale_floor
        self.min_correspondences = min_correspondences
        self.strict = strict
        self.logger = logger or logging.getLogger(__name__)

    def align(self, source, target) -> LandmarkAlignmentResult:
        """
        Fit the transform mapping ``source`` onto ``target``.

        Raises:
            ValueError: On empty or mismatched point sets.
            InsufficientCorrespondencesError: If strict and too few pairs.
        """
        src = as_point_array(source)
        tgt = as_point_array(target)
        check_paired(src, tgt)

        n = len(src)
        if n < self.min_correspondences:
            if self.strict:
                raise InsufficientCorrespondencesError(n, self.min_correspondences)
            self.logger.warning(
                "Only %d correspondences (recommended >= %d); rotation is under-determined.",
                n,
                self.min_correspondences,
            )

        c_src = compute_centroid(src)
        c_tgt = compute_centroid(tgt)

        degenerate = is_rank_deficient(src - c_src) or is_rank_deficient(tgt - c_tgt)
        if degenerate and n >= self.min_correspondences:
            self.logger.warning(
                "Landmarks are coincident or collinear; rotation is not unique."
            )

        H = compute_cross_covariance(src, tgt, c_src, c_tgt)
        R = compute_optimal_rotation(
            src,
            tgt,
            c_src,
            c_tgt,
            method=self.method,
            max_iterations=self.max_iterations,
            norm_floor=self.norm_floor,
            H=H,
        )

        if self.estimate_scale:
            scale = compute_uniform_scale(src, tgt, c_src, c_tgt, spread_floor=self.scale_floor)
        else:
            scale = 1.0

        M = compose_similarity_transform(R, scale, c_src, c_tgt)

        residuals = apply_transformation(src, M) - tgt
        rmse = float(np.sqrt(np.mean(np.sum(residuals ** 2, axis=1))))

        self.logger.debug(
            "Landmark fit: n=%d, scale=%.6f, rmse=%.6e, degenerate=%s",
            n,
            scale,
            rmse,
            degenerate,
        )

        return LandmarkAlignmentResult(
            matrix=M,
            rotation=R,
            scale=scale,
            translation=M[:3, 3].copy(),
            source_centroid=c_src,
            target_centroid=c_tgt,
            rmse=rmse,
            n_correspondences=n,
            degenerate=degenerate,
        )

    def align_correspondences(
        self, correspondences: Sequence[Correspondence]
    ) -> LandmarkAlignmentResult:
        """Fit from a list of (source, destination) pairs."""
        source = [c.source for c in correspondences]
        target = [c.destination for c in correspondences]
        return self.align(source, target)


def compute_rigid_transform_from_points(source_points, dest_points) -> np.ndarray:
    """
    Similarity transform mapping ``source_points`` onto ``dest_points``.

    Lenient, default-solver entry point; see :class:`LandmarkAligner` for
    configuration and diagnostics.

    Returns:
        4x4 matrix ``T @ S @ R``.
    """
    return LandmarkAligner().align(source_points, dest_points).matrix
