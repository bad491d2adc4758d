"""
Configuration management for point-set-alignment.

Provides a typed pydantic model and YAML loader with sensible defaults.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Literal, Any, Dict

from pydantic import BaseModel, Field, ValidationError, model_validator
import yaml


# -----------------------
# Typed config structures
# -----------------------


class RotationSolverConfig(BaseModel):
    method: Literal["power", "eigh"] = Field(
        default="power",
        description="Dominant eigenvector extraction: 'power' iteration or exact 'eigh'",
    )
    max_iterations: int = Field(default=50, ge=1, description="Power iteration budget")
    norm_floor: float = Field(
        default=1e-10,
        gt=0.0,
        description="Stop power iteration when the update norm falls below this value",
    )


class LandmarkAlignmentConfig(BaseModel):
    estimate_scale: bool = Field(default=True)
    scale_floor: float = Field(
        default=1e-10,
        gt=0.0,
        description="Source spread below which the scale defaults to 1",
    )
    min_correspondences: int = Field(default=3, ge=1)
    strict: bool = Field(
        default=False,
        description="Reject fewer than min_correspondences pairs instead of best-effort output",
    )


class CoarseRegistrationConfig(BaseModel):
    enabled: bool = Field(default=True)
    method: Literal["centroid", "pca", "none"] = Field(default="centroid")
    estimate_scale: bool = Field(default=True)


class ICPConfig(BaseModel):
    max_iterations: int = Field(default=50, ge=1)
    rotation_method: Literal["power", "eigh"] = Field(
        default="eigh",
        description="Rotation solver for each ICP round; near-planar clouds need 'eigh'",
    )
    tolerance: float = Field(
        default=1e-6,
        ge=0.0,
        description="Convergence threshold on the change in mean correspondence distance",
    )
    max_correspondence_distance: Optional[float] = Field(
        default=None,
        gt=0.0,
        description="Reject pairs farther apart than this (None = keep all)",
    )
    min_correspondences: int = Field(default=3, ge=1)
    estimate_scale: bool = Field(default=True)
    subsample_size: Optional[int] = Field(
        default=None,
        ge=1,
        description="Random source subsample used for fitting (None = all points)",
    )

    @model_validator(mode="after")
    def _subsample_covers_minimum(self) -> "ICPConfig":
        if self.subsample_size is not None and self.subsample_size < self.min_correspondences:
            raise ValueError(
                f"subsample_size ({self.subsample_size}) must be at least "
                f"min_correspondences ({self.min_correspondences})"
            )
        return self


class LoggingConfig(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(default="INFO")
    file: Optional[str] = Field(default=None)


class AppConfig(BaseModel):
    rotation: RotationSolverConfig = Field(default_factory=RotationSolverConfig)
    landmarks: LandmarkAlignmentConfig = Field(default_factory=LandmarkAlignmentConfig)
    icp: ICPConfig = Field(default_factory=ICPConfig)
    coarse: CoarseRegistrationConfig = Field(default_factory=CoarseRegistrationConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# -----------------------
# Loader
# -----------------------


def _project_root() -> Path:
    """
    Resolve the repository root directory.

    File is at: repo_root/src/point_set_alignment/utils/config.py
    """
    return Path(__file__).resolve().parents[3]


def load_config(path: Optional[str | Path] = None, *, allow_missing: bool = True) -> AppConfig:
    """
    Load configuration from YAML into a typed AppConfig.

    Search order when path is None:
    1) repo_root/config/default.yaml
    2) if missing and allow_missing=True: return default AppConfig()

    Args:
        path: Explicit YAML file path.
        allow_missing: If True, returns defaults when file missing; otherwise raises.

    Returns:
        AppConfig instance
    """
    cfg_path: Path
    if path is None:
        cfg_path = _project_root() / "config" / "default.yaml"
    else:
        cfg_path = Path(path)

    if not cfg_path.exists():
        if allow_missing:
            return AppConfig()
        raise FileNotFoundError(f"Config file not found: {cfg_path}")

    with cfg_path.open("r", encoding="utf-8") as f:
        raw: Dict[str, Any] = yaml.safe_load(f) or {}

    try:
        return AppConfig.model_validate(raw)
    except ValidationError as e:
        raise ValueError(f"Invalid configuration in {cfg_path}: {e}")
