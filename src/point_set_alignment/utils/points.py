"""
Point value types and input normalisation.

Engine functions accept points in whatever shape the caller has at hand
(numpy arrays, lists of tuples, Point3D values or any object exposing
``x``/``y``/``z``) and work internally on float64 ``(N, 3)`` arrays.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Sequence, Tuple, TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from numpy.typing import NDArray


@dataclass(frozen=True)
class Point3D:
    """Immutable 3D coordinate."""

    x: float
    y: float
    z: float

    @classmethod
    def from_array(cls, values: Sequence[float]) -> "Point3D":
        if len(values) != 3:
            raise ValueError(f"Expected 3 coordinates, got {len(values)}")
        return cls(float(values[0]), float(values[1]), float(values[2]))

    def as_array(self) -> "NDArray[np.float64]":
        return np.array([self.x, self.y, self.z], dtype=float)

    def as_tuple(self) -> Tuple[float, float, float]:
        return (self.x, self.y, self.z)


@dataclass(frozen=True)
class Correspondence:
    """Index-linked landmark pair: ``source`` is believed to sit at ``destination``."""

    source: Point3D
    destination: Point3D


def _coords_of(point: Any) -> Tuple[float, float, float]:
    if hasattr(point, "x") and hasattr(point, "y") and hasattr(point, "z"):
        return (float(point.x), float(point.y), float(point.z))
    values = tuple(point)
    if len(values) != 3:
        raise ValueError(f"Expected 3 coordinates per point, got {len(values)}")
    return (float(values[0]), float(values[1]), float(values[2]))


def as_point_array(points: Any) -> "NDArray[np.float64]":
    """Normalise a point collection to a float64 ``(N, 3)`` array.

    Args:
        points: ``(N, 3)`` array-like, or an iterable of Point3D / xyz objects /
            3-sequences. An empty input yields a ``(0, 3)`` array.

    Returns:
        New float64 array of shape ``(N, 3)``.

    Raises:
        ValueError: If the input cannot be read as 3D points.
    """
    if isinstance(points, np.ndarray):
        arr = np.array(points, dtype=float)
        if arr.size == 0:
            return np.empty((0, 3), dtype=float)
        if arr.ndim != 2 or arr.shape[1] != 3:
            raise ValueError(f"Expected Nx3 array, got shape {arr.shape}")
        return arr

    items = list(points)
    if not items:
        return np.empty((0, 3), dtype=float)
    return np.array([_coords_of(p) for p in items], dtype=float)


def to_points(array: Iterable[Sequence[float]]) -> list[Point3D]:
    """Convert an ``(N, 3)`` array back to a list of Point3D values."""
    return [Point3D.from_array(row) for row in array]
