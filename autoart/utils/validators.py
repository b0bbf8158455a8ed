"""Configuration schemas and YAML config loading.

Provides centralized validation for all request-scoped configuration using
pydantic:
    - SplitConfig: palette quantization, simplification, stray-pixel cleanup
    - OptimizerConfig: action-set merging and spatial ordering thresholds
    - PathConfig: path generation algorithm and simplified drawing mode
    - PipelineConfig: complete pipeline request (autoart_pipeline.v1)

Every config object is passed explicitly through the pipeline; nothing is
stored in module globals, so independent pipeline runs may execute
concurrently with different settings.

Units:
    - Distances: pixels
    - Merge threshold: ΔE76 (CIELab units)

Usage:
    from autoart.utils import validators

    cfg = validators.load_pipeline_config("pipeline.yaml")
    split_cfg = validators.SplitConfig(color_count=8, algorithm="median_cut")
"""

from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from .color import ColorSpace
from .errors import InvalidConfigurationError


class Algorithm(str, Enum):
    """Palette quantization strategy."""
    KMEANS = "kmeans"
    MEDIAN_CUT = "median_cut"


class Initializer(str, Enum):
    """K-Means centroid initializer."""
    KMEANS_PP = "kmeans++"
    MEDIAN_CUT = "median_cut"


class PathAlgorithm(str, Enum):
    """Chunk traversal strategy."""
    DFS = "dfs"
    EDGE_FOLLOW = "edge_follow"


# ============================================================================
# SPLIT (QUANTIZATION) SCHEMA
# ============================================================================

class SplitConfig(BaseModel):
    """Color splitting request.

    The color count is a hard target for K-Means/Median-Cut; with
    simplified_split enabled it becomes an upper bound.
    """
    color_count: int = Field(12, ge=1, le=255, description="Palette size")
    algorithm: Algorithm = Field(Algorithm.KMEANS, description="Quantization strategy")
    color_space: ColorSpace = Field(ColorSpace.OKLAB, description="Working space for clustering")
    initializer: Initializer = Field(Initializer.KMEANS_PP, description="K-Means initializer")
    iterations: int = Field(12, ge=1, le=1000, description="K-Means iteration cap")
    remove_stray_pixels: bool = Field(False, description="Replace isolated pixels before masking")
    simplified_split: bool = Field(False, description="Merge perceptually near-identical colors")
    merge_threshold: float = Field(2.5, gt=0.0, le=100.0, description="Max ΔE76 for merging")
    min_preservation_ratio: float = Field(
        0.5, ge=0.0, le=1.0, description="Fraction of colors simplification must keep"
    )
    use_superpixels: bool = Field(True, description="Cluster superpixel means (K-Means only)")
    superpixels_per_color: int = Field(80, ge=1, le=1000, description="Desired superpixels per color")
    superpixel_iterations: int = Field(60, ge=1, le=500, description="Boundary relaxation passes")
    edge_weight: float = Field(10.0, ge=0.0, le=1000.0, description="Edge penalty strength")
    seed: Optional[int] = Field(None, description="RNG seed for reproducible clustering")

    model_config = {"frozen": True}


# ============================================================================
# PATH / OPTIMIZER SCHEMA
# ============================================================================

class OptimizerConfig(BaseModel):
    """Action-set optimizer thresholds."""
    enabled: bool = Field(True, description="Run the optimizer at all")
    small_set_threshold: int = Field(10, ge=1, description="Max points of a 'small' action set")
    cluster_distance: float = Field(25.0, gt=0.0, description="Max centroid distance for clustering (px)")
    min_cluster_size: int = Field(3, ge=1, description="Min small sets per cluster to merge")
    max_connected_distance: float = Field(
        1.5, gt=0.0, description="Max point distance counted as touching (1.5 = 8-connectivity)"
    )
    spatial_ordering: bool = Field(True, description="Serpentine band ordering of strokes")

    model_config = {"frozen": True}


class PathConfig(BaseModel):
    """Per-layer path generation settings."""
    algorithm: PathAlgorithm = Field(PathAlgorithm.DFS, description="Traversal algorithm")
    simplified_mode: bool = Field(False, description="Drop tiny action sets after optimization")
    min_action_set_size: int = Field(100, ge=1, description="Smallest set kept in simplified mode")
    optimizer: OptimizerConfig = Field(default_factory=OptimizerConfig)

    model_config = {"frozen": True}


# ============================================================================
# PIPELINE SCHEMA V1
# ============================================================================

class PipelineConfig(BaseModel):
    """Complete pipeline request (autoart_pipeline.v1 schema)."""
    schema_version: str = Field("autoart_pipeline.v1", alias="schema", description="Schema version")
    split: SplitConfig = Field(default_factory=SplitConfig)
    paths: PathConfig = Field(default_factory=PathConfig)
    max_workers: Optional[int] = Field(None, ge=1, le=64, description="Layer worker threads")

    model_config = {"frozen": True, "populate_by_name": True}

    @field_validator('schema_version')
    @classmethod
    def validate_schema(cls, v: str) -> str:
        if v != "autoart_pipeline.v1":
            raise ValueError(f"Expected schema 'autoart_pipeline.v1', got '{v}'")
        return v


# ============================================================================
# PUBLIC API
# ============================================================================

def parse_pipeline_config(data: Optional[Dict[str, Any]]) -> PipelineConfig:
    """Validate a plain dict (e.g. parsed YAML) into a PipelineConfig.

    Raises
    ------
    InvalidConfigurationError
        If validation fails; the message lists offending keys
    """
    try:
        return PipelineConfig(**(data or {}))
    except ValidationError as e:
        raise InvalidConfigurationError(f"Pipeline config validation failed: {e}") from e


def load_pipeline_config(path: Union[str, Path]) -> PipelineConfig:
    """Load and validate a pipeline config from YAML.

    Parameters
    ----------
    path : Union[str, Path]
        Path to an autoart_pipeline.v1 YAML file

    Returns
    -------
    PipelineConfig
        Validated configuration

    Raises
    ------
    FileNotFoundError
        If path doesn't exist
    InvalidConfigurationError
        If the YAML is malformed or validation fails
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Pipeline config not found: {path}")

    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise InvalidConfigurationError(f"Failed to parse YAML file {path}: {e}") from e

    if data is not None and not isinstance(data, dict):
        raise InvalidConfigurationError(f"Top level of {path} must be a mapping")

    try:
        return PipelineConfig(**(data or {}))
    except ValidationError as e:
        raise InvalidConfigurationError(f"Pipeline config validation failed at {path}: {e}") from e
