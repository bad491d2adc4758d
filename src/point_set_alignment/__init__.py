"""
Point-Set Alignment Package

Computes the similarity transform (rotation, uniform scale, translation)
that brings independently produced digitizations of one physical object
(Gaussian splat, textured mesh, point cloud) into a common frame.
Landmark alignment uses Horn's quaternion method on user-picked pairs;
dense clouds are refined with Iterative Closest Point (ICP). Per-asset
results are kept in an AlignmentState for the scene graph and the
project manifest.
"""

__version__ = "0.1.0"

from .alignment import *
from .utils import *

__all__ = [
    "alignment",
    "utils",
]
