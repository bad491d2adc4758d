"""
Transform persistence utilities

Save and load 4x4 alignment matrices as text, and the per-slot alignment
state as the JSON block stored in project manifests.
"""

import json
import logging
from pathlib import Path
from typing import Union

import numpy as np

from .state import AlignmentState

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def save_transform_matrix(transform: np.ndarray, output_file: PathLike) -> None:
    """Save a transformation matrix to a text file.

    Args:
        transform: 4x4 transformation matrix
        output_file: Path to output file

    Raises:
        ValueError: If transform is not a 4x4 matrix
    """
    transform = np.asarray(transform, dtype=float)
    if transform.shape != (4, 4):
        raise ValueError(f"Transform must be 4x4 matrix, got {transform.shape}")
    np.savetxt(output_file, transform, fmt='%.18e', header='4x4 similarity transform (T @ S @ R)')
    logger.info("Saved transformation matrix to %s", output_file)


def load_transform_matrix(input_file: PathLike) -> np.ndarray:
    """Load a transformation matrix from a text file.

    Args:
        input_file: Path to input file

    Returns:
        4x4 transformation matrix
    """
    transform = np.loadtxt(input_file)
    if transform.shape != (4, 4):
        raise ValueError(f"Expected 4x4 matrix, got shape {transform.shape}")
    logger.info("Loaded transformation matrix from %s", input_file)
    return transform


def save_alignment_state(state: AlignmentState, output_file: PathLike) -> None:
    """Write the state's manifest block as JSON."""
    path = Path(output_file)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        json.dump(state.to_dict(), f, indent=2)
    logger.info("Saved alignment state (version %d) to %s", state.version, path)


def load_alignment_state(input_file: PathLike) -> AlignmentState:
    """Read a manifest alignment block written by :func:`save_alignment_state`."""
    path = Path(input_file)
    with path.open("r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object in {path}, got {type(data).__name__}")
    state = AlignmentState.from_dict(data)
    logger.info("Loaded alignment state (version %d) from %s", state.version, path)
    return state
