"""
Coarse Registration Methods

Provides coarse similarity estimates to initialize ICP when two dense
digitizations start in unrelated frames (different origin, orientation and
unit scale).

Methods implemented:
- centroid: translation by centroids, optional RMS-radius scale
- pca: principal axes rotation, optional RMS-radius scale, centroid translation
- none: identity

All methods return a 4x4 transform suitable for initializing ICP.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field
from typing import Optional

import numpy as np
from sklearn.neighbors import NearestNeighbors

from .landmark_registration import DEFAULT_SCALE_FLOOR, apply_transformation, compose_similarity_transform
from ..utils.points import as_point_array

_AXIS_SIGNS = [np.array(s) for s in itertools.product((1.0, -1.0), repeat=3)]


@dataclass
class CoarseRegistration:
    method: str = "centroid"  # centroid | pca | none
    estimate_scale: bool = True
    logger: Optional[logging.Logger] = field(default=None, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self.logger is None:
            self.logger = logging.getLogger(__name__)

    def compute_initial_transform(self, source, target) -> np.ndarray:
        """
        Compute a coarse initial transform aligning source -> target.

        Args:
            source: Nx3 array
            target: Mx3 array

        Returns:
            4x4 transform matrix
        """
        method = self.method.lower()
        if method == "none":
            return np.eye(4)

        source = as_point_array(source)
        target = as_point_array(target)
        if source.size == 0 or target.size == 0:
            self.logger.warning("CoarseRegistration: empty inputs; returning identity transform.")
            return np.eye(4)

        if method == "centroid":
            return self._centroid_transform(source, target)
        if method == "pca":
            T = self._pca_transform(source, target)
            return self._validate_or_fallback(source, target, T)

        self.logger.warning("Unknown coarse registration method '%s', using identity.", self.method)
        return np.eye(4)

    # ------------------------ Methods ------------------------
    def _rms_scale(self, A: np.ndarray, B: np.ndarray) -> float:
        """Ratio of RMS radii of centred clouds (clouds may differ in size)."""
        if not self.estimate_scale:
            return 1.0
        spread_a = float(np.mean(np.sum(A ** 2, axis=1)))
        spread_b = float(np.mean(np.sum(B ** 2, axis=1)))
        if spread_a <= DEFAULT_SCALE_FLOOR:
            return 1.0
        return float(np.sqrt(spread_b / spread_a))

    def _centroid_transform(self, src: np.ndarray, dst: np.ndarray) -> np.ndarray:
        c_src = np.mean(src, axis=0)
        c_dst = np.mean(dst, axis=0)
        scale = self._rms_scale(src - c_src, dst - c_dst)
        return compose_similarity_transform(np.eye(3), scale, c_src, c_dst)

    def _pca_transform(self, src: np.ndarray, dst: np.ndarray) -> np.ndarray:
        c_src = np.mean(src, axis=0)
        c_dst = np.mean(dst, axis=0)
        A = src - c_src
        B = dst - c_dst

        # Small epsilon regularization to avoid singularities on degenerate clouds
        C_A = (A.T @ A) / max(1, len(A)) + 1e-12 * np.eye(3)
        C_B = (B.T @ B) / max(1, len(B)) + 1e-12 * np.eye(3)

        wA, VA = np.linalg.eigh(C_A)
        wB, VB = np.linalg.eigh(C_B)
        # Sort by descending eigenvalues
        VA = VA[:, np.argsort(wA)[::-1]]
        VB = VB[:, np.argsort(wB)[::-1]]

        scale = self._rms_scale(A, B)

        # Principal axes are only defined up to sign; score each proper flip
        best_T, best_rmse = None, float("inf")
        for signs in _AXIS_SIGNS:
            R = (VB * signs) @ VA.T
            if np.linalg.det(R) < 0:
                continue
            T = compose_similarity_transform(R, scale, c_src, c_dst)
            rmse = self._score_rmse(src, dst, T)
            if rmse < best_rmse:
                best_T, best_rmse = T, rmse
        if best_T is None:
            return self._centroid_transform(src, dst)
        return best_T

    # ------------------------ Helpers ------------------------
    def _validate_or_fallback(self, src: np.ndarray, dst: np.ndarray, T: np.ndarray, *, threshold: float = 1.1) -> np.ndarray:
        """Score the candidate against the centroid guess; keep the centroid guess if clearly better.

        Uses a small NN-based RMSE on random subsamples.
        """
        rmse_T = self._score_rmse(src, dst, T)
        T_cent = self._centroid_transform(src, dst)
        rmse_C = self._score_rmse(src, dst, T_cent)
        if not np.isfinite(rmse_T) or rmse_T > threshold * rmse_C:
            self.logger.warning(
                "CoarseRegistration: candidate transform worse than centroid (rmse %.3f vs %.3f). Using centroid.",
                rmse_T, rmse_C,
            )
            return T_cent
        return T

    def _score_rmse(self, src: np.ndarray, dst: np.ndarray, T: np.ndarray, *, max_pairs: int = 3000) -> float:
        rng = np.random.default_rng(0)
        n_src = min(max_pairs, len(src))
        n_tgt = min(len(dst), max(1000, max_pairs))
        idx_s = rng.choice(len(src), n_src, replace=False) if len(src) > n_src else np.arange(len(src))
        idx_t = rng.choice(len(dst), n_tgt, replace=False) if len(dst) > n_tgt else np.arange(len(dst))
        A1 = apply_transformation(src[idx_s], T)
        nn = NearestNeighbors(n_neighbors=1, algorithm="kd_tree").fit(dst[idx_t])
        d, _ = nn.kneighbors(A1)
        return float(np.sqrt(np.mean(d.reshape(-1) ** 2)))
