"""
Tests for the Horn absolute-orientation building blocks.

Centroid, cross-covariance, key matrix and the rotation solver are tested
on small hand-checkable point sets (basis vectors and their rotations).
"""

from pathlib import Path
import sys

import numpy as np
import pytest

sys.path.append(str(Path(__file__).parent.parent / "src"))

from point_set_alignment.alignment.horn import (
    build_key_matrix,
    compute_centroid,
    compute_cross_covariance,
    compute_optimal_rotation,
    power_iteration,
    quaternion_to_matrix,
)
from point_set_alignment.utils.points import Point3D

BASIS = np.eye(3)
ORIGIN = np.zeros(3)


def _rotate(R4: np.ndarray, v) -> np.ndarray:
    return R4[:3, :3] @ np.asarray(v, dtype=float)


def _assert_proper_rotation(R4: np.ndarray, atol: float = 1e-4) -> None:
    R = R4[:3, :3]
    assert np.allclose(R @ R.T, np.eye(3), atol=atol)
    assert np.linalg.det(R) == pytest.approx(1.0, abs=atol)
    assert np.allclose(R4[3], [0.0, 0.0, 0.0, 1.0])
    assert np.allclose(R4[:3, 3], 0.0)


# ---------------------------------------------------------------- centroid

def test_centroid_single_point():
    assert np.allclose(compute_centroid([(1.0, 2.0, 3.0)]), [1.0, 2.0, 3.0])


def test_centroid_midpoint_of_two_points():
    assert np.allclose(compute_centroid([(0, 0, 0), (2, 4, 6)]), [1.0, 2.0, 3.0])


def test_centroid_triangle():
    assert np.allclose(compute_centroid([(0, 0, 0), (3, 0, 0), (0, 3, 0)]), [1.0, 1.0, 0.0])


def test_centroid_negative_and_symmetric_points():
    assert np.allclose(compute_centroid([(-1, -2, -3), (1, 2, 3)]), ORIGIN)
    sym = np.vstack([BASIS, -BASIS])
    assert np.allclose(compute_centroid(sym), ORIGIN)


def test_centroid_of_identical_copies_is_the_point():
    p = np.array([3.5, -7.25, 0.125])
    assert np.allclose(compute_centroid(np.tile(p, (17, 1))), p)


def test_centroid_accepts_point_objects():
    pts = [Point3D(0.0, 0.0, 0.0), Point3D(2.0, 2.0, 2.0)]
    assert np.allclose(compute_centroid(pts), [1.0, 1.0, 1.0])


def test_centroid_rejects_empty_input():
    with pytest.raises(ValueError):
        compute_centroid([])


# ---------------------------------------------------------- cross-covariance

def test_cross_covariance_of_basis_onto_itself_is_identity():
    H = compute_cross_covariance(BASIS, BASIS, ORIGIN, ORIGIN)
    assert np.allclose(H, np.eye(3))


def test_cross_covariance_entries():
    src = np.array([[1.0, 0.0, 0.0], [0.0, 1.0, 0.0]])
    dst = np.array([[0.0, 2.0, 0.0], [0.0, 0.0, 3.0]])
    H = compute_cross_covariance(src, dst, ORIGIN, ORIGIN)
    expected = np.zeros((3, 3))
    expected[0, 1] = 2.0
    expected[1, 2] = 3.0
    assert np.allclose(H, expected)


def test_cross_covariance_centres_each_set():
    src = BASIS + np.array([10.0, 0.0, 0.0])
    dst = BASIS - np.array([0.0, 5.0, 0.0])
    H = compute_cross_covariance(src, dst, compute_centroid(src), compute_centroid(dst))
    H0 = compute_cross_covariance(BASIS, BASIS, compute_centroid(BASIS), compute_centroid(BASIS))
    assert np.allclose(H, H0)


def test_cross_covariance_rejects_mismatched_lengths():
    with pytest.raises(ValueError):
        compute_cross_covariance(BASIS, BASIS[:2], ORIGIN, ORIGIN)


# --------------------------------------------------------------- key matrix

def test_key_matrix_is_symmetric_and_traceless():
    rng = np.random.default_rng(3)
    H = rng.normal(size=(3, 3))
    N = build_key_matrix(H)
    assert N.shape == (4, 4)
    assert np.allclose(N, N.T)
    assert np.trace(N) == pytest.approx(0.0, abs=1e-12)


def test_power_iteration_keeps_seed_for_zero_matrix():
    q, n_done = power_iteration(np.zeros((4, 4)))
    assert np.allclose(q, [1.0, 0.0, 0.0, 0.0])
    assert n_done == 0


def test_quaternion_to_matrix_identity_and_half_turn():
    assert np.allclose(quaternion_to_matrix([1.0, 0.0, 0.0, 0.0]), np.eye(4))
    R = quaternion_to_matrix([0.0, 0.0, 1.0, 0.0])  # 180 degrees about Y
    assert np.allclose(_rotate(R, [1, 0, 0]), [-1, 0, 0])
    assert np.allclose(_rotate(R, [0, 0, 1]), [0, 0, -1])


# ---------------------------------------------------------- optimal rotation

def test_rotation_identity_for_identical_sets():
    R = compute_optimal_rotation(BASIS, BASIS, ORIGIN, ORIGIN)
    assert np.allclose(R, np.eye(4), atol=1e-4)


def test_rotation_identity_for_identical_arbitrary_sets():
    rng = np.random.default_rng(11)
    pts = rng.normal(size=(25, 3)) * np.array([4.0, 2.0, 1.0])
    c = compute_centroid(pts)
    R = compute_optimal_rotation(pts, pts, c, c)
    assert np.allclose(R, np.eye(4), atol=1e-4)


def test_rotation_90_degrees_about_y():
    target = np.array([[0, 0, -1], [0, 1, 0], [1, 0, 0]], dtype=float)
    R = compute_optimal_rotation(BASIS, target, ORIGIN, ORIGIN)
    for src, dst in zip(BASIS, target):
        assert np.allclose(_rotate(R, src), dst, atol=1e-4)


def test_rotation_90_degrees_about_z():
    target = np.array([[0, 1, 0], [-1, 0, 0], [0, 0, 1]], dtype=float)
    R = compute_optimal_rotation(BASIS, target, ORIGIN, ORIGIN)
    assert np.allclose(_rotate(R, [1, 0, 0]), [0, 1, 0], atol=1e-3)
    for src, dst in zip(BASIS, target):
        assert np.allclose(_rotate(R, src), dst, atol=1e-4)
    _assert_proper_rotation(R)


def test_rotation_180_degrees_is_still_proper():
    target = np.array([[-1, 0, 0], [0, 1, 0], [0, 0, -1]], dtype=float)
    R = compute_optimal_rotation(BASIS, target, ORIGIN, ORIGIN)
    _assert_proper_rotation(R, atol=1e-3)


def test_small_rotation_is_recovered():
    angle = np.pi / 36
    target = np.array(
        [
            [np.cos(angle), np.sin(angle), 0.0],
            [-np.sin(angle), np.cos(angle), 0.0],
            [0.0, 0.0, 1.0],
        ]
    )
    R = compute_optimal_rotation(BASIS, target, ORIGIN, ORIGIN)
    assert np.allclose(_rotate(R, [1, 0, 0]), target[0], atol=1e-3)


def test_rotation_for_collinear_points_is_proper():
    source = np.array([[1, 2, 3], [4, 5, 6], [7, 8, 9]], dtype=float)
    target = np.array([[2, 3, 1], [5, 6, 4], [8, 9, 7]], dtype=float)
    R = compute_optimal_rotation(source, target, compute_centroid(source), compute_centroid(target))
    _assert_proper_rotation(R, atol=1e-3)


def test_exact_solver_recovers_rotation_of_a_generic_cloud():
    rng = np.random.default_rng(5)
    src = rng.normal(size=(40, 3)) * np.array([5.0, 3.0, 1.0])
    th = np.deg2rad(20.0)
    Rz = np.array([[np.cos(th), -np.sin(th), 0], [np.sin(th), np.cos(th), 0], [0, 0, 1]])
    dst = src @ Rz.T
    R = compute_optimal_rotation(src, dst, compute_centroid(src), compute_centroid(dst), method="eigh")
    assert np.allclose(R[:3, :3], Rz, atol=1e-6)


def test_unknown_solver_method_raises():
    with pytest.raises(ValueError):
        compute_optimal_rotation(BASIS, BASIS, ORIGIN, ORIGIN, method="svd")
