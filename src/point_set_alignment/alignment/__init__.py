"""
Spatial Alignment Module

This module provides tools for aligning digitizations of the same object:
landmark-based similarity fits (Horn's method), ICP refinement of dense
clouds with coarse initialization, per-slot alignment state and its
persistence.
"""

from .horn import (
    compute_centroid,
    compute_cross_covariance,
    compute_optimal_rotation,
    build_key_matrix,
    quaternion_to_matrix,
)
from .landmark_registration import (
    LandmarkAligner,
    LandmarkAlignmentResult,
    compute_uniform_scale,
    compose_similarity_transform,
    compute_rigid_transform_from_points,
    apply_transformation,
)
from .fine_registration import ICPRegistration, ICPResult
from .coarse_registration import CoarseRegistration
from .state import AlignmentState, AssetSlot
from .controller import AlignmentController, CorrespondenceProvider, SceneGraphMutator, build_controller
from .exceptions import InsufficientCorrespondencesError
from .transform_io import (
    save_transform_matrix,
    load_transform_matrix,
    save_alignment_state,
    load_alignment_state,
)

__all__ = [
    "compute_centroid",
    "compute_cross_covariance",
    "compute_optimal_rotation",
    "build_key_matrix",
    "quaternion_to_matrix",
    "LandmarkAligner",
    "LandmarkAlignmentResult",
    "compute_uniform_scale",
    "compose_similarity_transform",
    "compute_rigid_transform_from_points",
    "apply_transformation",
    "ICPRegistration",
    "ICPResult",
    "CoarseRegistration",
    "AlignmentState",
    "AssetSlot",
    "AlignmentController",
    "CorrespondenceProvider",
    "SceneGraphMutator",
    "build_controller",
    "InsufficientCorrespondencesError",
    "save_transform_matrix",
    "load_transform_matrix",
    "save_alignment_state",
    "load_alignment_state",
]
