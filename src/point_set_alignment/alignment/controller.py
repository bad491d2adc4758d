"""
Alignment orchestration.

Connects the landmark aligner and ICP to the per-slot alignment state and
to the host's collaborators. The collaborators are described as protocols:
anything with the right method can be passed, no base class is required.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol, Sequence, TYPE_CHECKING

import numpy as np

from .coarse_registration import CoarseRegistration
from .fine_registration import ICPRegistration, ICPResult
from .landmark_registration import LandmarkAligner, LandmarkAlignmentResult
from .state import AlignmentState, SlotLike, as_slot
from ..utils.coordinate_transform import Transform
from ..utils.points import Correspondence

if TYPE_CHECKING:
    from ..utils.config import AppConfig


class SceneGraphMutator(Protocol):
    """Applies a decomposed transform to the root node of an asset."""

    def apply_transform(self, slot: str, transform: Transform) -> None:
        ...


class CorrespondenceProvider(Protocol):
    """Supplies world-space landmark pairs, e.g. from raycast picks."""

    def get_correspondences(self) -> Sequence[Correspondence]:
        ...


class AlignmentController:
    """
    Run alignments for asset slots and record the results.

    Every successful alignment overwrites the slot's entry in ``state`` and,
    when a scene mutator is attached, pushes the new transform to it.
    """

    def __init__(
        self,
        state: Optional[AlignmentState] = None,
        aligner: Optional[LandmarkAligner] = None,
        icp: Optional[ICPRegistration] = None,
        coarse: Optional[CoarseRegistration] = None,
        scene: Optional[SceneGraphMutator] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.logger = logger or logging.getLogger(__name__)
        self.state = state if state is not None else AlignmentState()
        self.aligner = aligner or LandmarkAligner(logger=self.logger)
        self.icp = icp or ICPRegistration(logger=self.logger)
        self.coarse = coarse
        self.scene = scene

    def _commit(self, slot: SlotLike, matrix: np.ndarray) -> Transform:
        slot = as_slot(slot)
        transform = Transform.from_matrix(matrix)
        self.state.set_transform(slot, transform)
        if self.scene is not None:
            self.scene.apply_transform(slot.value, transform)
        self.logger.info("Applied alignment to '%s': %s (version %d)", slot.value, transform, self.state.version)
        return transform

    def align_from_landmarks(self, slot: SlotLike, source, target) -> LandmarkAlignmentResult:
        """
        Align a slot from world-space landmark picks.

        ``source`` are picks on the slot's asset, ``target`` the matching picks
        on the reference. The fitted matrix is applied on top of the slot's
        current transform.
        """
        result = self.aligner.align(source, target)
        current = self.state.get_matrix(slot)
        self._commit(slot, result.matrix @ current)
        return result

    def align_from_provider(self, slot: SlotLike, provider: CorrespondenceProvider) -> LandmarkAlignmentResult:
        correspondences = list(provider.get_correspondences())
        source = [c.source for c in correspondences]
        target = [c.destination for c in correspondences]
        return self.align_from_landmarks(slot, source, target)

    def refine_with_icp(self, slot: SlotLike, source_points, target_points) -> ICPResult:
        """
        Refine a slot against a dense reference cloud.

        ``source_points`` are in the asset's local frame and ``target_points``
        in the world frame. The slot's current transform seeds ICP; an
        untouched slot is seeded by coarse registration when configured.
        The result is stored even when ICP did not converge.
        """
        slot = as_slot(slot)
        if self.state.get_transform(slot) is None and self.coarse is not None:
            initial = self.coarse.compute_initial_transform(source_points, target_points)
        else:
            initial = self.state.get_matrix(slot)

        result = self.icp.align_point_clouds(source_points, target_points, initial_transform=initial)
        if not result.converged:
            self.logger.warning(
                "ICP for '%s' stopped without converging (%s); keeping best-effort transform.",
                slot.value,
                result.stop_reason,
            )
        self._commit(slot, result.transform)
        return result

    def reset(self, slot: SlotLike) -> None:
        """Drop the slot's alignment and return the asset to identity."""
        slot = as_slot(slot)
        self.state.clear_transform(slot)
        if self.scene is not None:
            self.scene.apply_transform(slot.value, Transform.identity())
        self.logger.info("Reset alignment for '%s' (version %d)", slot.value, self.state.version)


def build_controller(
    cfg: "AppConfig",
    state: Optional[AlignmentState] = None,
    scene: Optional[SceneGraphMutator] = None,
    logger: Optional[logging.Logger] = None,
) -> AlignmentController:
    """Wire an AlignmentController from the typed application config."""
    aligner = LandmarkAligner(
        method=cfg.rotation.method,
        max_iterations=cfg.rotation.max_iterations,
        norm_floor=cfg.rotation.norm_floor,
        estimate_scale=cfg.landmarks.estimate_scale,
        scale_floor=cfg.landmarks.scale_floor,
        min_correspondences=cfg.landmarks.min_correspondences,
        strict=cfg.landmarks.strict,
        logger=logger,
    )
    # ICP gets its own lenient aligner and solver; it enforces its minimum itself
    icp_aligner = LandmarkAligner(
        method=cfg.icp.rotation_method,
        max_iterations=cfg.rotation.max_iterations,
        norm_floor=cfg.rotation.norm_floor,
        estimate_scale=cfg.icp.estimate_scale,
        scale_floor=cfg.landmarks.scale_floor,
        min_correspondences=cfg.icp.min_correspondences,
        logger=logger,
    )
    icp = ICPRegistration(
        max_iterations=cfg.icp.max_iterations,
        tolerance=cfg.icp.tolerance,
        max_correspondence_distance=cfg.icp.max_correspondence_distance,
        min_correspondences=cfg.icp.min_correspondences,
        estimate_scale=cfg.icp.estimate_scale,
        subsample_size=cfg.icp.subsample_size,
        rotation_method=cfg.icp.rotation_method,
        aligner=icp_aligner,
        logger=logger,
    )
    coarse = None
    if cfg.coarse.enabled and cfg.coarse.method != "none":
        coarse = CoarseRegistration(
            method=cfg.coarse.method,
            estimate_scale=cfg.coarse.estimate_scale,
            logger=logger,
        )
    return AlignmentController(
        state=state,
        aligner=aligner,
        icp=icp,
        coarse=coarse,
        scene=scene,
        logger=logger,
    )
