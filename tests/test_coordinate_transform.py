"""
Unit tests for the decomposed asset Transform.

These tests verify:
- Euler XYZ composition and extraction, including gimbal lock
- Decomposition of similarity matrices into position / rotation / scale
- Manifest (dict) serialization
"""

from pathlib import Path
import sys

import numpy as np
import pytest

sys.path.append(str(Path(__file__).parent.parent / "src"))

from point_set_alignment.utils.coordinate_transform import (
    Transform,
    euler_xyz_to_matrix,
    matrix_to_euler_xyz,
)


class TestEulerConversion:
    """Tests for the XYZ Euler helpers."""

    def test_zero_angles_give_identity(self):
        assert np.allclose(euler_xyz_to_matrix(0.0, 0.0, 0.0), np.eye(3))

    def test_single_axis_rotations(self):
        Rz = euler_xyz_to_matrix(0.0, 0.0, np.pi / 2)
        assert np.allclose(Rz @ [1.0, 0.0, 0.0], [0.0, 1.0, 0.0])

        Ry = euler_xyz_to_matrix(0.0, np.pi / 2, 0.0)
        assert np.allclose(Ry @ [1.0, 0.0, 0.0], [0.0, 0.0, -1.0])

        Rx = euler_xyz_to_matrix(np.pi / 2, 0.0, 0.0)
        assert np.allclose(Rx @ [0.0, 1.0, 0.0], [0.0, 0.0, 1.0])

    def test_order_is_x_then_y_then_z_matrix_product(self):
        rx, ry, rz = 0.3, -0.7, 1.1
        Rx = euler_xyz_to_matrix(rx, 0.0, 0.0)
        Ry = euler_xyz_to_matrix(0.0, ry, 0.0)
        Rz = euler_xyz_to_matrix(0.0, 0.0, rz)
        assert np.allclose(euler_xyz_to_matrix(rx, ry, rz), Rx @ Ry @ Rz)

    @pytest.mark.parametrize("angles", [(0.3, -0.7, 1.1), (-2.0, 0.4, 3.0), (0.0, 1.2, -0.5)])
    def test_extraction_inverts_composition(self, angles):
        R = euler_xyz_to_matrix(*angles)
        assert np.allclose(matrix_to_euler_xyz(R), angles)

    def test_gimbal_lock_puts_rotation_on_x(self):
        R = euler_xyz_to_matrix(0.4, np.pi / 2, 0.3)
        rx, ry, rz = matrix_to_euler_xyz(R)
        assert ry == pytest.approx(np.pi / 2)
        assert rz == 0.0
        assert np.allclose(euler_xyz_to_matrix(rx, ry, rz), R)


class TestTransform:
    """Tests for the Transform dataclass."""

    def test_identity(self):
        t = Transform.identity()
        assert t.position == (0.0, 0.0, 0.0)
        assert t.rotation == (0.0, 0.0, 0.0)
        assert t.scale == 1.0
        assert np.allclose(t.to_matrix(), np.eye(4))

    def test_components_are_validated(self):
        with pytest.raises(ValueError):
            Transform(position=(1.0, 2.0))

    def test_to_matrix_composes_translation_scale_rotation(self):
        t = Transform(position=(1.0, 2.0, 3.0), rotation=(0.0, 0.0, np.pi / 2), scale=2.0)
        M = t.to_matrix()
        # x axis -> rotated to +y, scaled by 2, then translated
        assert np.allclose(M[:3, :3] @ [1.0, 0.0, 0.0] + M[:3, 3], [1.0, 4.0, 3.0])
        assert np.allclose(M[3], [0.0, 0.0, 0.0, 1.0])

    def test_from_matrix_recovers_components(self):
        original = Transform(position=(-4.0, 0.5, 10.0), rotation=(0.2, -0.4, 0.9), scale=0.75)
        restored = Transform.from_matrix(original.to_matrix())

        assert np.allclose(restored.position, original.position)
        assert np.allclose(restored.rotation, original.rotation)
        assert restored.scale == pytest.approx(0.75)
        assert restored.is_close(original)

    def test_from_matrix_rejects_wrong_shape(self):
        with pytest.raises(ValueError):
            Transform.from_matrix(np.eye(3))

    def test_from_matrix_with_zero_block(self):
        M = np.eye(4)
        M[:3, :3] = 0.0
        t = Transform.from_matrix(M)
        assert t.scale == 0.0
        assert t.rotation == (0.0, 0.0, 0.0)

    def test_dict_roundtrip(self):
        t = Transform(position=(1.0, 2.0, 3.0), rotation=(0.0, np.pi / 2, 0.0), scale=1.5)
        data = t.to_dict()
        assert data == {"position": [1.0, 2.0, 3.0], "rotation": [0.0, np.pi / 2, 0.0], "scale": 1.5}
        assert Transform.from_dict(data) == t

    def test_from_dict_defaults_missing_keys(self):
        t = Transform.from_dict({"scale": 2.0})
        assert t.position == (0.0, 0.0, 0.0)
        assert t.rotation == (0.0, 0.0, 0.0)
        assert t.scale == 2.0

    def test_is_close_compares_matrices(self):
        a = Transform(rotation=(0.4, np.pi / 2, 0.3))
        b = Transform.from_matrix(a.to_matrix())
        assert a.rotation != b.rotation
        assert a.is_close(b)
        assert not a.is_close(Transform(position=(0.1, 0.0, 0.0)))

    def test_str_is_readable(self):
        assert "scale=1.0000" in str(Transform.identity())
