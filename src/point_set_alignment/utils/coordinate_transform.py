"""
Decomposed asset transform (position, Euler rotation, uniform scale).

The scene graph and the project manifest do not store 4x4 matrices; they
store one ``Transform`` per asset slot. This module converts between that
persisted form and the similarity matrices produced by the alignment engine.

Conventions:
1. Euler angles are radians in intrinsic XYZ order, ``R = Rx @ Ry @ Rz``
2. The matrix is ``M = T @ S @ R`` (rotate, then scale, then translate)
3. Scale is a single uniform factor
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple, TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from numpy.typing import NDArray

# |m13| above this means cos(y) ~ 0 and X/Z share one degree of freedom
_GIMBAL_LOCK_THRESHOLD = 0.9999999
_MIN_SCALE = 1e-12


def euler_xyz_to_matrix(rx: float, ry: float, rz: float) -> "NDArray[np.float64]":
    """Build the 3x3 rotation for intrinsic XYZ Euler angles (radians)."""
    a, b = np.cos(rx), np.sin(rx)
    c, d = np.cos(ry), np.sin(ry)
    e, f = np.cos(rz), np.sin(rz)

    ae, af, be, bf = a * e, a * f, b * e, b * f

    return np.array(
        [
            [c * e, -c * f, d],
            [af + be * d, ae - bf * d, -b * c],
            [bf - ae * d, be + af * d, a * c],
        ],
        dtype=float,
    )


def matrix_to_euler_xyz(rotation: "NDArray[np.floating]") -> Tuple[float, float, float]:
    """Extract intrinsic XYZ Euler angles from a pure 3x3 rotation.

    At gimbal lock (Y = +-90 degrees) the Z angle is set to 0 and the whole
    remaining rotation is attributed to X.
    """
    m11, m12, m13 = rotation[0]
    m22, m23 = rotation[1, 1], rotation[1, 2]
    m32, m33 = rotation[2, 1], rotation[2, 2]

    ry = float(np.arcsin(np.clip(m13, -1.0, 1.0)))
    if abs(m13) < _GIMBAL_LOCK_THRESHOLD:
        rx = float(np.arctan2(-m23, m33))
        rz = float(np.arctan2(-m12, m11))
    else:
        rx = float(np.arctan2(m32, m22))
        rz = 0.0
    return rx, ry, rz


@dataclass
class Transform:
    """Serializable view of a similarity transform for one asset slot.

    Attributes:
        position: Translation [x, y, z]
        rotation: Euler angles [x, y, z] in radians (XYZ order)
        scale: Uniform scale factor

    Example:
        >>> t = Transform(position=(1.0, 2.0, 3.0), rotation=(0.0, np.pi / 2, 0.0), scale=2.0)
        >>> restored = Transform.from_matrix(t.to_matrix())
    """

    position: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    rotation: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    scale: float = 1.0

    def __post_init__(self) -> None:
        if len(self.position) != 3 or len(self.rotation) != 3:
            raise ValueError("position and rotation must have exactly 3 components")
        self.position = tuple(float(v) for v in self.position)
        self.rotation = tuple(float(v) for v in self.rotation)
        self.scale = float(self.scale)

    @classmethod
    def identity(cls) -> "Transform":
        return cls()

    @classmethod
    def from_matrix(cls, matrix: "NDArray[np.floating]") -> "Transform":
        """Decompose a 4x4 similarity matrix.

        The uniform scale is the cube root of the 3x3 block determinant, so a
        reflected block yields a negative scale rather than a mirrored rotation.

        Raises:
            ValueError: If ``matrix`` is not 4x4.
        """
        m = np.asarray(matrix, dtype=float)
        if m.shape != (4, 4):
            raise ValueError(f"Transform must be 4x4 matrix, got {m.shape}")

        block = m[:3, :3]
        scale = float(np.cbrt(np.linalg.det(block)))
        if abs(scale) < _MIN_SCALE:
            rotation = (0.0, 0.0, 0.0)
        else:
            rotation = matrix_to_euler_xyz(block / scale)

        return cls(
            position=(float(m[0, 3]), float(m[1, 3]), float(m[2, 3])),
            rotation=rotation,
            scale=scale,
        )

    def rotation_matrix(self) -> "NDArray[np.float64]":
        return euler_xyz_to_matrix(*self.rotation)

    def to_matrix(self) -> "NDArray[np.float64]":
        """Compose ``T @ S @ R`` as a new 4x4 array."""
        m = np.eye(4)
        m[:3, :3] = self.scale * self.rotation_matrix()
        m[:3, 3] = self.position
        return m

    def to_dict(self) -> dict:
        """Serialize to the manifest form ``{position, rotation, scale}``."""
        return {
            "position": list(self.position),
            "rotation": list(self.rotation),
            "scale": self.scale,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Transform":
        """Deserialize from the manifest form; missing keys take identity values."""
        return cls(
            position=tuple(data.get("position", (0.0, 0.0, 0.0))),
            rotation=tuple(data.get("rotation", (0.0, 0.0, 0.0))),
            scale=float(data.get("scale", 1.0)),
        )

    def is_close(self, other: "Transform", atol: float = 1e-6) -> bool:
        """Compare by the matrices they produce, so equivalent Euler triples match."""
        return bool(np.allclose(self.to_matrix(), other.to_matrix(), atol=atol))

    def __str__(self) -> str:
        px, py, pz = self.position
        rx, ry, rz = self.rotation
        return (
            f"Transform(position=[{px:.4f}, {py:.4f}, {pz:.4f}], "
            f"rotation=[{rx:.4f}, {ry:.4f}, {rz:.4f}], scale={self.scale:.4f})"
        )
