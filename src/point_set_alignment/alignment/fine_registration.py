"""
ICP Registration Implementation

This module implements the Iterative Closest Point (ICP) algorithm for
refining the alignment of two dense digitizations of the same object when
no landmark correspondences are known.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import numpy as np
from sklearn.neighbors import NearestNeighbors

from .horn import SolverMethod
from .landmark_registration import LandmarkAligner, apply_transformation
from ..utils.points import as_point_array


@dataclass
class ICPResult:
    """
    Outcome of an ICP run.

    ``transform`` is the cumulative 4x4 similarity transform (including any
    initial transform) and is returned even when the run did not converge.
    """

    aligned_source: np.ndarray
    transform: np.ndarray
    converged: bool
    n_iterations: int
    mean_distance: float
    rmse: float
    stop_reason: str
    distance_history: List[float] = field(default_factory=list)


class ICPRegistration:
    """
    Implementation of ICP algorithm for point cloud registration.

    The ICP algorithm iteratively:
    1. Finds closest point correspondences (KD-tree on the target, built once)
    2. Estimates the similarity transform for those pairs with the landmark aligner
    3. Accumulates it and re-applies the cumulative transform to the source
    4. Repeats until the mean correspondence distance stops changing
    """

    def __init__(
        self,
        max_iterations: int = 50,
        tolerance: float = 1e-6,
        max_correspondence_distance: Optional[float] = None,
        min_correspondences: int = 3,
        estimate_scale: bool = True,
        subsample_size: Optional[int] = None,
        rotation_method: SolverMethod = "eigh",
        aligner: Optional[LandmarkAligner] = None,
        random_state: int = 0,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize ICP parameters.

        Args:
            max_iterations: Maximum number of ICP iterations.
            tolerance: Convergence tolerance on the change in mean correspondence distance.
            max_correspondence_distance: Pairs farther apart are ignored (None = keep all).
            min_correspondences: Stop when fewer valid pairs remain.
            estimate_scale: Estimate uniform scale each round (similarity) or not (rigid).
            subsample_size: If set, fit on a fixed random subsample of the source
                (at least ``min_correspondences`` points).
            rotation_method: Rotation solver for each round. Power iteration can
                stall on near-planar clouds, so the exact solver is the default.
            aligner: Landmark aligner used for each round. When given, its own
                ``estimate_scale`` and ``method`` win over ``estimate_scale`` and
                ``rotation_method``.
            random_state: Seed for the subsample.
            logger: Logger to report to (defaults to this module's logger).
        """
        if subsample_size is not None and subsample_size < max(1, min_correspondences):
            raise ValueError(
                f"subsample_size must be at least {max(1, min_correspondences)}, got {subsample_size}"
            )
        self.max_iterations = max_iterations
        self.tolerance = tolerance
        self.max_correspondence_distance = max_correspondence_distance
        self.min_correspondences = min_correspondences
        self.subsample_size = subsample_size
        self.random_state = random_state
        self.logger = logger or logging.getLogger(__name__)
        if aligner is None:
            aligner = LandmarkAligner(
                method=rotation_method, estimate_scale=estimate_scale, logger=self.logger
            )
        self.aligner = aligner
        self.estimate_scale = aligner.estimate_scale
        self.rotation_method = aligner.method

    def align_point_clouds(
        self,
        source,
        target,
        initial_transform: Optional[np.ndarray] = None,
    ) -> ICPResult:
        """
        Align source point cloud to target using ICP.

        Args:
            source: Source point cloud (N x 3).
            target: Target point cloud (M x 3).
            initial_transform: Initial transformation matrix (4 x 4) or None.

        Returns:
            ICPResult with the cumulative transform and convergence status.
        """
        source = as_point_array(source)
        target = as_point_array(target)
        n_src = len(source)
        n_tgt = len(target)
        self.logger.info(
            "Starting ICP alignment with %d source points and %d target points.",
            n_src,
            n_tgt,
        )

        if initial_transform is None:
            transform = np.eye(4)
        else:
            transform = np.array(initial_transform, dtype=float)
            if transform.shape != (4, 4):
                raise ValueError(f"Initial transform must be 4x4 matrix, got {transform.shape}")

        if n_src == 0 or n_tgt == 0:
            self.logger.warning(
                "ICP called with empty source or target (source=%d, target=%d); "
                "returning identity (or initial) transform and infinite error.",
                n_src,
                n_tgt,
            )
            return ICPResult(
                aligned_source=apply_transformation(source, transform),
                transform=transform,
                converged=False,
                n_iterations=0,
                mean_distance=float("inf"),
                rmse=float("inf"),
                stop_reason="empty_input",
            )

        fit_source = self._subsample(source)

        build_start = time.time()
        nbrs = NearestNeighbors(n_neighbors=1, algorithm="kd_tree").fit(target)
        self.logger.debug("KD-tree built in %.4f s.", time.time() - build_start)

        current_source = apply_transformation(fit_source, transform)
        previous_distance = float("inf")
        history: List[float] = []
        converged = False
        stop_reason = "max_iterations"
        n_iterations = 0
        icp_start = time.time()

        for iteration in range(self.max_iterations):
            correspondences, distances = self.find_correspondences(current_source, nbrs=nbrs)

            if self.max_correspondence_distance is not None:
                valid_mask = distances <= self.max_correspondence_distance
            else:
                valid_mask = np.ones(len(distances), dtype=bool)

            n_valid = int(np.sum(valid_mask))
            if n_valid < self.min_correspondences:
                self.logger.warning(
                    "Not enough valid correspondences (%d < %d). Stopping ICP.",
                    n_valid,
                    self.min_correspondences,
                )
                stop_reason = "insufficient_correspondences"
                break

            mean_distance = float(np.mean(distances[valid_mask]))
            history.append(mean_distance)
            n_iterations = iteration + 1

            self.logger.debug(
                "Iteration %d: mean distance=%.6e, valid pairs=%d",
                n_iterations,
                mean_distance,
                n_valid,
            )

            if abs(previous_distance - mean_distance) < self.tolerance:
                converged = True
                stop_reason = "converged"
                self.logger.info(
                    "ICP converged after %d iterations (mean distance change < %.3e).",
                    n_iterations,
                    self.tolerance,
                )
                break

            matched = correspondences[valid_mask]
            if len(np.unique(matched)) == 1:
                self.logger.warning(
                    "All correspondences collapsed onto one target point. Stopping ICP."
                )
                stop_reason = "collapsed_correspondences"
                break

            fit = self.aligner.align(current_source[valid_mask], target[matched])
            delta_transform = fit.matrix
            if not np.all(np.isfinite(delta_transform)):
                self.logger.warning("Non-finite incremental transform. Stopping ICP.")
                stop_reason = "non_finite"
                break

            # new_transform = delta_transform * current_transform
            transform = delta_transform @ transform

            # Re-apply the cumulative transform to the ORIGINAL source
            current_source = apply_transformation(fit_source, transform)
            previous_distance = mean_distance
        else:
            self.logger.info("ICP did not converge after %d iterations.", self.max_iterations)

        aligned = apply_transformation(source, transform)
        final_mean, final_rmse = self.compute_registration_error(aligned, target, nbrs)

        self.logger.info(
            "ICP finished in %.4f s (%d iterations, %s). Final RMSE: %.6f",
            time.time() - icp_start,
            n_iterations,
            stop_reason,
            final_rmse,
        )

        return ICPResult(
            aligned_source=aligned,
            transform=transform,
            converged=converged,
            n_iterations=n_iterations,
            mean_distance=final_mean,
            rmse=final_rmse,
            stop_reason=stop_reason,
            distance_history=history,
        )

    def _subsample(self, points: np.ndarray) -> np.ndarray:
        if self.subsample_size is None or len(points) <= self.subsample_size:
            return points
        rng = np.random.default_rng(self.random_state)
        idx = rng.choice(len(points), self.subsample_size, replace=False)
        self.logger.debug("Subsampled source from %d to %d points.", len(points), len(idx))
        return points[idx]

    def find_correspondences(
        self,
        source: np.ndarray,
        target: Optional[np.ndarray] = None,
        nbrs: Optional[NearestNeighbors] = None,
    ) -> Tuple[np.ndarray, np.ndarray]:
        """
        Find closest point correspondences between source and target.

        Args:
            source: Source point cloud (N x 3).
            target: Target point cloud (M x 3). Only used if `nbrs` is None,
                in which case a KD-tree is built on this array.
            nbrs: Optional pre-built NearestNeighbors instance for the target.

        Returns:
            Tuple of (correspondence_indices, distances).
        """
        if nbrs is None:
            if target is None:
                raise ValueError("Either 'target' or a pre-built 'nbrs' must be provided.")
            nbrs = NearestNeighbors(n_neighbors=1, algorithm="kd_tree").fit(target)

        distances, indices = nbrs.kneighbors(source)
        return indices.ravel(), distances.ravel()

    def compute_registration_error(
        self,
        source: np.ndarray,
        target: np.ndarray,
        nbrs: Optional[NearestNeighbors] = None,
    ) -> Tuple[float, float]:
        """
        Compute the registration error between aligned source and target point clouds.

        Args:
            source: Aligned source point cloud.
            target: Target point cloud.
            nbrs: Optional pre-built NearestNeighbors instance for target point cloud.

        Returns:
            Tuple of (mean nearest-neighbour distance, RMSE); both inf when no
            valid correspondence exists.
        """
        if source.size == 0 or target.size == 0:
            self.logger.warning(
                "compute_registration_error called with empty source or target "
                "(source=%d, target=%d); returning infinite error.",
                len(source),
                len(target),
            )
            return float("inf"), float("inf")

        _, distances = self.find_correspondences(source, target, nbrs)

        if self.max_correspondence_distance is not None:
            distances = distances[distances <= self.max_correspondence_distance]

        if distances.size == 0:
            self.logger.warning("No valid correspondences found for error computation.")
            return float("inf"), float("inf")

        return float(np.mean(distances)), float(np.sqrt(np.mean(distances ** 2)))
