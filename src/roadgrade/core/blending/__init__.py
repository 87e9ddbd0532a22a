"""
Distance-field blending of road targets into terrain.

This module provides:
- Blend curves (linear, cosine, cubic, quintic)
- Road core rasterization and exact Euclidean distance fields
- A grid-hashed cross-section index for nearest lookups
- Adaptive single-pass / per-path strategy selection
- Masked post-processing smoothing of the road area
- Smoothing statistics and slope constraint checks
"""

from roadgrade.core.blending.blend_functions import blend_weight
from roadgrade.core.blending.blender import BlendResult, DistanceFieldBlender
from roadgrade.core.blending.distance_field import (
    bresenham_line,
    compute_distance_field,
    rasterize_core,
    rasterize_core_owners,
)
from roadgrade.core.blending.post_processing import PostProcessingSmoother, gaussian_kernel
from roadgrade.core.blending.spatial_index import CrossSectionSpatialIndex
from roadgrade.core.blending.statistics import compute_delta_map, compute_statistics, summarize_delta
from roadgrade.core.blending.strategy import (
    AdaptiveStrategySelector,
    BlendStrategy,
    PathBoundingBox,
    StrategyDecision,
    path_bounding_boxes,
)

__all__ = [
    "AdaptiveStrategySelector",
    "BlendResult",
    "BlendStrategy",
    "CrossSectionSpatialIndex",
    "DistanceFieldBlender",
    "PathBoundingBox",
    "PostProcessingSmoother",
    "StrategyDecision",
    "blend_weight",
    "bresenham_line",
    "compute_delta_map",
    "compute_distance_field",
    "compute_statistics",
    "gaussian_kernel",
    "path_bounding_boxes",
    "rasterize_core",
    "rasterize_core_owners",
    "summarize_delta",
]
