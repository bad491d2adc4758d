"""
Align two point sets from the command line.

Landmark mode fits a similarity transform to index-linked picks (row i of
the source file matches row i of the target file). ICP mode refines two
dense clouds without known correspondences. Point files are .npy arrays
or whitespace-separated text, one "x y z" row per point.
"""

import sys
import argparse
import logging
from pathlib import Path

import numpy as np

# Add the src to the path to import modules
sys.path.append(str(Path(__file__).parent.parent / "src"))

from point_set_alignment.alignment import (
    AlignmentState,
    build_controller,
    save_transform_matrix,
    save_alignment_state,
    load_alignment_state,
)
from point_set_alignment.utils.config import load_config, AppConfig
from point_set_alignment.utils.logging import setup_logger


def load_points(path: str) -> np.ndarray:
    p = Path(path)
    if p.suffix.lower() == ".npy":
        points = np.load(p)
    else:
        points = np.loadtxt(p, ndmin=2)
    points = np.asarray(points, dtype=float)
    if points.ndim != 2 or points.shape[1] < 3:
        raise ValueError(f"{p}: expected Nx3 points, got shape {points.shape}")
    return points[:, :3]


def main() -> int:
    parser = argparse.ArgumentParser(description="Point-set alignment (landmarks or ICP)")
    parser.add_argument("source", type=str, help="Source points (.npy or text)")
    parser.add_argument("target", type=str, help="Target points (.npy or text)")
    parser.add_argument(
        "--mode",
        choices=["landmarks", "icp"],
        default="landmarks",
        help="landmarks: index-linked picks; icp: dense clouds without correspondences",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to YAML configuration file (defaults to config/default.yaml)",
    )
    parser.add_argument("--slot", type=str, default="model", help="Asset slot to update (splat, model, pointcloud)")
    parser.add_argument(
        "--state-file",
        type=str,
        default=None,
        help="JSON alignment state to read (if it exists) and update",
    )
    parser.add_argument("--output", type=str, default=None, help="Write the fitted 4x4 matrix to this text file")
    parser.add_argument("--strict", action="store_true", help="Reject fewer landmark pairs than configured")
    args = parser.parse_args()

    cfg: AppConfig = load_config(args.config)
    if args.strict:
        cfg.landmarks.strict = True

    log_level = getattr(logging, cfg.logging.level.upper(), logging.INFO)
    logger = setup_logger("point_set_alignment", level=log_level, log_file=cfg.logging.file)

    state = AlignmentState()
    if args.state_file and Path(args.state_file).exists():
        state = load_alignment_state(args.state_file)

    controller = build_controller(cfg, state=state)

    source = load_points(args.source)
    target = load_points(args.target)
    logger.info("Loaded %d source and %d target points", len(source), len(target))

    if args.mode == "landmarks":
        result = controller.align_from_landmarks(args.slot, source, target)
        logger.info("Landmark fit: scale=%.6f, rmse=%.6e, degenerate=%s", result.scale, result.rmse, result.degenerate)
        matrix = result.matrix
    else:
        result = controller.refine_with_icp(args.slot, source, target)
        logger.info(
            "ICP: converged=%s after %d iterations, RMSE=%.6f",
            result.converged,
            result.n_iterations,
            result.rmse,
        )
        matrix = result.transform

    logger.info("Slot '%s' is now %s", args.slot, state.get_transform(args.slot))

    if args.output:
        save_transform_matrix(matrix, args.output)
    if args.state_file:
        save_alignment_state(state, args.state_file)
    return 0


if __name__ == "__main__":
    sys.exit(main())
