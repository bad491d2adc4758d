"""
Utility Functions Module

Common utilities used across the alignment engine:
- Logging setup for entry points
- Typed configuration loading
- Point value types and input normalisation
- Transform decomposition (position, Euler rotation, uniform scale)
"""

from .logging import setup_logger
from .config import AppConfig, load_config
from .points import Point3D, Correspondence, as_point_array
from .coordinate_transform import Transform

__all__ = [
    "setup_logger",
    "AppConfig",
    "load_config",
    "Point3D",
    "Correspondence",
    "as_point_array",
    "Transform",
]
