"""
Centerline extraction from road masks.

This module provides:
- Mask preprocessing (binarization, dilation, exclusions)
- Zhang-Suen skeletonization with spur pruning
- Path assembly into ordered, simplified polylines
"""

from roadgrade.core.skeleton.path_assembler import PathAssembler, densify_points, simplify_points
from roadgrade.core.skeleton.preprocess import apply_exclusions, dilate_mask, to_binary_mask
from roadgrade.core.skeleton.skeletonizer import (
    CellClass,
    Skeletonizer,
    SkeletonResult,
    classify_cells,
    find_endpoints,
    neighbor_count,
    prune_spurs,
    zhang_suen_thin,
)

__all__ = [
    "CellClass",
    "PathAssembler",
    "SkeletonResult",
    "Skeletonizer",
    "apply_exclusions",
    "classify_cells",
    "densify_points",
    "dilate_mask",
    "find_endpoints",
    "neighbor_count",
    "prune_spurs",
    "simplify_points",
    "to_binary_mask",
    "zhang_suen_thin",
]
