"""
Per-asset alignment state.

One optional ``Transform`` per asset slot plus a version counter that
consumers compare to detect stale views. Entries are replaced, never
merged. The state is owned by the host's interaction loop and is not
locked.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, Iterator, Optional, Tuple, Union

import numpy as np

from ..utils.coordinate_transform import Transform


class AssetSlot(str, Enum):
    SPLAT = "splat"
    MODEL = "model"
    POINTCLOUD = "pointcloud"


SlotLike = Union[AssetSlot, str]


def as_slot(slot: SlotLike) -> AssetSlot:
    """Resolve a slot name; unknown names raise ``ValueError``."""
    if isinstance(slot, AssetSlot):
        return slot
    try:
        return AssetSlot(str(slot).lower())
    except ValueError:
        valid = ", ".join(s.value for s in AssetSlot)
        raise ValueError(f"Unknown asset slot '{slot}' (expected one of: {valid})") from None


class AlignmentState:
    """Registry of the transform currently applied to each asset slot."""

    def __init__(self) -> None:
        self._transforms: Dict[AssetSlot, Optional[Transform]] = {slot: None for slot in AssetSlot}
        self._version = 0

    @property
    def version(self) -> int:
        return self._version

    def set_transform(self, slot: SlotLike, transform: Transform) -> None:
        if not isinstance(transform, Transform):
            raise TypeError(f"Expected Transform, got {type(transform).__name__}")
        self._transforms[as_slot(slot)] = transform
        self._version += 1

    def get_transform(self, slot: SlotLike) -> Optional[Transform]:
        return self._transforms[as_slot(slot)]

    def clear_transform(self, slot: SlotLike) -> None:
        self._transforms[as_slot(slot)] = None
        self._version += 1

    def get_matrix(self, slot: SlotLike) -> np.ndarray:
        """4x4 matrix of the slot's transform, identity when untouched."""
        transform = self.get_transform(slot)
        if transform is None:
            return np.eye(4)
        return transform.to_matrix()

    def items(self) -> Iterator[Tuple[AssetSlot, Optional[Transform]]]:
        return iter(list(self._transforms.items()))

    def to_dict(self) -> dict:
        """Manifest block: ``{"version": n, "splat": {...} | None, ...}``."""
        data: dict = {"version": self._version}
        for slot, transform in self._transforms.items():
            data[slot.value] = transform.to_dict() if transform is not None else None
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "AlignmentState":
        """Rebuild state from a manifest block; absent slots stay untouched."""
        state = cls()
        for slot in AssetSlot:
            entry = data.get(slot.value)
            if entry is not None:
                state._transforms[slot] = Transform.from_dict(entry)
        state._version = int(data.get("version", 0))
        return state

    def __repr__(self) -> str:
        applied = [s.value for s, t in self._transforms.items() if t is not None]
        return f"AlignmentState(version={self._version}, applied={applied})"
