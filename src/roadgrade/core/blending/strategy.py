"""
Adaptive choice between single-pass and per-path blending.

Scattered roads are cheapest to blend box by box; dense or overlapping
networks are cheaper (and avoid ownership ambiguity) as one full pass.
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from roadgrade.core.config import Settings, settings as default_settings
from roadgrade.models.geometry import UnifiedRoadNetwork

logger = logging.getLogger(__name__)


class BlendStrategy(str, Enum):
    """How the blender walks the grid."""

    SINGLE_PASS = "single_pass"
    PER_PATH = "per_path"


@dataclass
class PathBoundingBox:
    """
    Pixel bounding box of one path including its affected range.

    Bounds are inclusive and clamped to the grid.
    """

    path_id: int
    min_x: int
    min_y: int
    max_x: int
    max_y: int
    section_count: int

    @property
    def pixel_count(self) -> int:
        return (self.max_x - self.min_x + 1) * (self.max_y - self.min_y + 1)

    @property
    def slices(self) -> Tuple[slice, slice]:
        """(row, col) slices selecting the box from a heightmap."""
        return slice(self.min_y, self.max_y + 1), slice(self.min_x, self.max_x + 1)

    def grown(self, pad: int, shape: Tuple[int, int]) -> "PathBoundingBox":
        """Copy grown by pad pixels on every side, clamped to the grid."""
        h, w = shape
        return PathBoundingBox(
            path_id=self.path_id,
            min_x=max(0, self.min_x - pad),
            min_y=max(0, self.min_y - pad),
            max_x=min(w - 1, self.max_x + pad),
            max_y=min(h - 1, self.max_y + pad),
            section_count=self.section_count,
        )


def path_bounding_boxes(
    network: UnifiedRoadNetwork, shape: Tuple[int, int], meters_per_pixel: float
) -> List[PathBoundingBox]:
    """
    Bounding box of every path's non-excluded sections, grown by its reach.

    The margin is ``ceil((width / 2 + range) / mpp)`` pixels using the
    owning material's parameters.

    Args:
        network: Road network with cross-sections
        shape: Heightmap (rows, cols)
        meters_per_pixel: Grid resolution

    Returns:
        One box per path that has usable sections inside the grid
    """
    h, w = shape
    boxes: List[PathBoundingBox] = []
    for spline in network.splines:
        centers = np.array(
            [cs.center for cs in spline.cross_sections if not cs.is_excluded], dtype=np.float64
        )
        if len(centers) == 0:
            continue
        margin = int(math.ceil(spline.parameters.max_affected_distance_meters / meters_per_pixel))
        pixels = centers / meters_per_pixel
        box = PathBoundingBox(
            path_id=spline.path_id,
            min_x=max(0, int(math.floor(pixels[:, 0].min())) - margin),
            min_y=max(0, int(math.floor(pixels[:, 1].min())) - margin),
            max_x=min(w - 1, int(math.ceil(pixels[:, 0].max())) + margin),
            max_y=min(h - 1, int(math.ceil(pixels[:, 1].max())) + margin),
            section_count=len(centers),
        )
        if box.max_x < box.min_x or box.max_y < box.min_y:
            logger.debug(f"Path {spline.path_id} lies outside the heightmap, no blend box")
            continue
        boxes.append(box)
    return boxes


@dataclass
class StrategyDecision:
    """
    Selected blend strategy with the numbers that led to it.

    Attributes:
        strategy: Chosen strategy
        reason: Human-readable rationale
        coverage: Summed box pixels / grid pixels (over 1 means overlap)
        largest_coverage: Largest single box / grid pixels
        path_count: Number of boxes considered
    """

    strategy: BlendStrategy
    reason: str
    coverage: float
    largest_coverage: float
    path_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "strategy": self.strategy.value,
            "reason": self.reason,
            "coverage": round(self.coverage, 4),
            "largest_coverage": round(self.largest_coverage, 4),
            "path_count": self.path_count,
        }


class AdaptiveStrategySelector:
    """
    Pick the blend strategy from per-path bounding box coverage.

    Args:
        config: Engine settings holding the coverage thresholds
    """

    def __init__(self, config: Optional[Settings] = None) -> None:
        self.config = config or default_settings

    def select(self, boxes: List[PathBoundingBox], shape: Tuple[int, int]) -> StrategyDecision:
        """
        Decide once for the whole network.

        Args:
            boxes: Per-path bounding boxes
            shape: Heightmap (rows, cols)

        Returns:
            StrategyDecision
        """
        total_pixels = float(shape[0] * shape[1])
        count = len(boxes)
        if count == 0 or total_pixels == 0:
            decision = StrategyDecision(BlendStrategy.SINGLE_PASS, "no paths to blend", 0.0, 0.0, 0)
            logger.info(f"Blend strategy: {decision.strategy.value} ({decision.reason})")
            return decision

        coverage = sum(b.pixel_count for b in boxes) / total_pixels
        largest = max(boxes, key=lambda b: b.pixel_count)
        largest_coverage = largest.pixel_count / total_pixels
        cfg = self.config

        if coverage > cfg.overlap_coverage_threshold:
            strategy = BlendStrategy.SINGLE_PASS
            reason = f"bounding boxes overlap significantly ({coverage:.0%} total coverage)"
        elif largest_coverage > cfg.single_pass_coverage_threshold:
            strategy = BlendStrategy.SINGLE_PASS
            reason = f"path {largest.path_id} covers {largest_coverage:.0%} of the terrain"
        elif count > cfg.dense_network_path_count and coverage > cfg.dense_network_coverage_threshold:
            strategy = BlendStrategy.SINGLE_PASS
            reason = f"{count} paths with {coverage:.0%} coverage (dense network)"
        elif count == 1:
            strategy = BlendStrategy.PER_PATH
            reason = "single path"
        elif count <= 5 and coverage < 0.4:
            strategy = BlendStrategy.PER_PATH
            reason = f"{count} scattered paths ({coverage:.0%} coverage)"
        elif coverage < 0.5:
            strategy = BlendStrategy.PER_PATH
            reason = f"moderate coverage ({coverage:.0%}) with {count} paths"
        else:
            strategy = BlendStrategy.SINGLE_PASS
            reason = f"road network density ({count} paths, {coverage:.0%} coverage)"

        decision = StrategyDecision(strategy, reason, coverage, largest_coverage, count)
        logger.info(f"Blend strategy: {strategy.value} ({reason})")
        return decision
