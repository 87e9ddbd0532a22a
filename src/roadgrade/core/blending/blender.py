"""
Distance-field terrain blender.

Rasterizes the road core from the cross-sections, computes the exact
Euclidean distance of every cell to it, resolves the nearest cross-section
of every cell within reach and blends the target elevation into the
terrain with a shoulder curve:

    t = clamp((d - w/2) / range, 0, 1)
    b = f(t)
    h = target + (original - target) * b

Cells on the core get the target exactly, cells beyond ``w/2 + range`` are
not touched. Where road cores overlap, the road with the higher priority
keeps its target. With the side slope clamp on, the shoulder rise is capped
by the side slope but still reaches the terrain at the outer edge.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np
from numpy.typing import NDArray

from roadgrade.core.blending.blend_functions import blend_weight
from roadgrade.core.blending.distance_field import compute_distance_field, rasterize_core_owners
from roadgrade.core.blending.spatial_index import CrossSectionSpatialIndex
from roadgrade.core.blending.strategy import (
    AdaptiveStrategySelector,
    BlendStrategy,
    PathBoundingBox,
    StrategyDecision,
    path_bounding_boxes,
)
from roadgrade.core.config import Settings, settings as default_settings
from roadgrade.models.geometry import SectionArrays, UnifiedRoadNetwork
from roadgrade.models.parameters import BlendFunctionType
from roadgrade.utils.logging import PerformanceTimer

logger = logging.getLogger(__name__)


@dataclass
class _SectionShoulders:
    """Per-section blend settings, aligned with the network's section order."""

    half_widths: NDArray[np.float64]
    ranges: NDArray[np.float64]
    side_limits: NDArray[np.float64]
    clamp_side: NDArray[np.bool_]
    priorities: NDArray[np.int64]
    functions: List[BlendFunctionType]
    function_ids: NDArray[np.int64]

    @classmethod
    def from_network(cls, network: UnifiedRoadNetwork) -> "_SectionShoulders":
        functions: List[BlendFunctionType] = []
        ranges, side, clamp, priorities, ids = [], [], [], [], []
        for spline in network.splines:
            params = spline.parameters
            if params.blend_function_type not in functions:
                functions.append(params.blend_function_type)
            fid = functions.index(params.blend_function_type)
            n = len(spline.cross_sections)
            ranges.extend([params.terrain_affected_range_meters] * n)
            side.extend([math.tan(math.radians(params.side_max_slope_degrees))] * n)
            clamp.extend([params.enable_side_slope_clamp] * n)
            priorities.extend([spline.priority] * n)
            ids.extend([fid] * n)
        widths = np.array([cs.width_m for cs in network.cross_sections], dtype=np.float64)
        return cls(
            half_widths=widths / 2.0,
            ranges=np.array(ranges, dtype=np.float64),
            side_limits=np.array(side, dtype=np.float64),
            clamp_side=np.array(clamp, dtype=bool),
            priorities=np.array(priorities, dtype=np.int64),
            functions=functions,
            function_ids=np.array(ids, dtype=np.int64),
        )

    @property
    def max_reach(self) -> float:
        if len(self.half_widths) == 0:
            return 0.0
        return float(np.max(self.half_widths + self.ranges))


@dataclass
class BlendResult:
    """
    Output of one blend.

    Attributes:
        heightmap: Blended heightmap (float64)
        core_mask: Rasterized road core
        distance_field: Distance to the core in meters
        nearest_section: Index of the section each written cell took its
            target from, -1 elsewhere
        shoulder_mask: Written cells outside the core
        decision: Strategy that was used
    """

    heightmap: NDArray[np.float64]
    core_mask: NDArray[np.bool_]
    distance_field: NDArray[np.float64]
    nearest_section: NDArray[np.int64] = field(repr=False)
    shoulder_mask: NDArray[np.bool_] = field(repr=False)
    decision: StrategyDecision

    @property
    def written_mask(self) -> NDArray[np.bool_]:
        return self.nearest_section >= 0


class DistanceFieldBlender:
    """
    Blend cross-section targets into a heightmap.

    Args:
        meters_per_pixel: Grid resolution
        config: Engine settings (index cell size, strategy thresholds)
    """

    def __init__(self, meters_per_pixel: float, config: Optional[Settings] = None) -> None:
        self.meters_per_pixel = meters_per_pixel
        self.config = config or default_settings
        self.selector = AdaptiveStrategySelector(self.config)

    def blend(
        self,
        heightmap: NDArray[np.floating],
        network: UnifiedRoadNetwork,
        strategy: Optional[BlendStrategy] = None,
    ) -> BlendResult:
        """
        Blend the network's cross-sections into a copy of the heightmap.

        Args:
            heightmap: Original terrain; never modified
            network: Road network with target elevations set
            strategy: Force a strategy instead of selecting one adaptively

        Returns:
            BlendResult
        """
        original = np.asarray(heightmap, dtype=np.float64)
        shape = original.shape
        sections = network.section_arrays()
        shoulders = _SectionShoulders.from_network(network)

        boxes = path_bounding_boxes(network, shape, self.meters_per_pixel)
        decision = self.selector.select(boxes, shape)
        if strategy is not None and strategy != decision.strategy:
            decision = StrategyDecision(
                strategy, "forced by caller", decision.coverage, decision.largest_coverage, decision.path_count
            )

        core_owner = rasterize_core_owners(sections, shape, self.meters_per_pixel, shoulders.priorities)
        core = core_owner >= 0
        distance = compute_distance_field(core, self.meters_per_pixel)
        result = original.copy()
        nearest_map = np.full(shape, -1, dtype=np.int64)
        shoulder_mask = np.zeros(shape, dtype=bool)

        if not core.any():
            logger.warning("No road core cells inside the heightmap, terrain left unchanged")
            return BlendResult(result, core, distance, nearest_map, shoulder_mask, decision)

        index = CrossSectionSpatialIndex(sections, self.meters_per_pixel, self.config.spatial_index_cell_size)
        band = distance <= shoulders.max_reach
        search_radius = shoulders.max_reach + float(np.max(shoulders.half_widths)) + self.meters_per_pixel * math.sqrt(2)

        with PerformanceTimer(f"blend_{decision.strategy.value}"):
            if decision.strategy == BlendStrategy.PER_PATH:
                # Cells owned by a path can sit up to a half width past its reach box
                pad = int(math.ceil(float(np.max(shoulders.half_widths)) / self.meters_per_pixel)) + 2
                for box in boxes:
                    self._blend_region(
                        original, result, distance, core_owner, band, index, sections, shoulders,
                        search_radius, nearest_map, shoulder_mask, box.grown(pad, shape),
                    )
            else:
                self._blend_region(
                    original, result, distance, core_owner, band, index, sections, shoulders,
                    search_radius, nearest_map, shoulder_mask, None,
                )

        written = nearest_map >= 0
        logger.info(
            f"Blended {int(written.sum())} cells "
            f"({int(np.count_nonzero(written & ~shoulder_mask))} road, "
            f"{int(shoulder_mask.sum())} shoulder)"
        )
        return BlendResult(result, core, distance, nearest_map, shoulder_mask, decision)

    def _blend_region(
        self,
        original: NDArray[np.float64],
        result: NDArray[np.float64],
        distance: NDArray[np.float64],
        core_owner: NDArray[np.int64],
        band: NDArray[np.bool_],
        index: CrossSectionSpatialIndex,
        sections: SectionArrays,
        shoulders: _SectionShoulders,
        search_radius: float,
        nearest_map: NDArray[np.int64],
        shoulder_mask: NDArray[np.bool_],
        box: Optional[PathBoundingBox],
    ) -> None:
        """Blend the band cells of one box (or the whole grid) in place."""
        if box is None:
            row_offset, col_offset = 0, 0
            rows, cols = np.nonzero(band)
        else:
            row_slice, col_slice = box.slices
            row_offset, col_offset = row_slice.start, col_slice.start
            rows, cols = np.nonzero(band[row_slice, col_slice])
            rows = rows + row_offset
            cols = cols + col_offset
        if len(rows) == 0:
            return

        points = np.column_stack([cols, rows]).astype(np.float64) * self.meters_per_pixel
        nearest, _ = index.nearest_many(points, radius=search_radius)

        # Core cells of a higher-priority road keep that road's target
        owner = core_owner[rows, cols]
        owned = (owner >= 0) & index.valid[np.maximum(owner, 0)]
        outranked = owned & (
            (nearest < 0)
            | (shoulders.priorities[np.maximum(owner, 0)] > shoulders.priorities[np.maximum(nearest, 0)])
        )
        nearest = np.where(outranked, owner, nearest)

        keep = nearest >= 0
        if box is not None:
            # Single writer per cell: only cells owned by this path
            keep &= sections.path_ids[np.maximum(nearest, 0)] == box.path_id
        rows, cols, nearest = rows[keep], cols[keep], nearest[keep]
        if len(rows) == 0:
            return

        d = distance[rows, cols]
        half = shoulders.half_widths[nearest]
        rng = shoulders.ranges[nearest]
        within = d <= half + rng
        rows, cols, nearest, d, half, rng = (
            rows[within], cols[within], nearest[within], d[within], half[within], rng[within]
        )

        targets = sections.targets[nearest]
        orig = original[rows, cols]
        t = np.where(rng > 0, (d - half) / np.where(rng > 0, rng, 1.0), 0.0)
        t = np.clip(t, 0.0, 1.0)

        weights = np.zeros_like(t)
        fids = shoulders.function_ids[nearest]
        for fid, function_type in enumerate(shoulders.functions):
            selected = fids == fid
            if selected.any():
                weights[selected] = blend_weight(t[selected], function_type)

        # Exact where the terrain already sits at the target
        rise = orig - targets
        offset = rise * weights
        in_shoulder = d > half

        clamp = in_shoulder & shoulders.clamp_side[nearest]
        if clamp.any():
            # Side slope cap measured from the road edge. Where the rise is too
            # large to cover within the range, the cap is relaxed to a slope
            # measured back from the outer edge, so the shoulder always meets
            # the terrain at t = 1.
            run = d[clamp] - half[clamp]
            slope = shoulders.side_limits[nearest[clamp]]
            limit = np.maximum(slope * run, np.abs(rise[clamp]) - slope * (rng[clamp] - run))
            offset[clamp] = np.clip(offset[clamp], -limit, limit)

        result[rows, cols] = targets + offset
        nearest_map[rows, cols] = nearest
        shoulder_mask[rows, cols] = in_shoulder
