"""
Smoothing result models.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
from numpy.typing import NDArray

from roadgrade.models.geometry import UnifiedRoadNetwork


@dataclass
class SmoothingStatistics:
    """
    Aggregate statistics of one smoothing run.

    Attributes:
        max_road_slope: Steepest longitudinal slope along any road (degrees)
        max_side_slope: Steepest shoulder slope (degrees)
        max_transverse_slope: Steepest slope across the road core (degrees)
        max_discontinuity: Largest height step between neighboring modified cells
        total_cut_volume: Volume removed (cubic meters)
        total_fill_volume: Volume added (cubic meters)
        pixels_modified: Cells whose height changed
        original_elevation_range: (min, max) before smoothing
        modified_elevation_range: (min, max) after smoothing
        strategy: Blend strategy that was used
        meets_all_constraints: No slope cap was exceeded
        constraint_violations: Human-readable violations
    """

    max_road_slope: float = 0.0
    max_side_slope: float = 0.0
    max_transverse_slope: float = 0.0
    max_discontinuity: float = 0.0
    total_cut_volume: float = 0.0
    total_fill_volume: float = 0.0
    pixels_modified: int = 0
    original_elevation_range: Tuple[float, float] = (0.0, 0.0)
    modified_elevation_range: Tuple[float, float] = (0.0, 0.0)
    strategy: Optional[str] = None
    meets_all_constraints: bool = True
    constraint_violations: List[str] = field(default_factory=list)

    @property
    def net_volume(self) -> float:
        """Fill minus cut (cubic meters)."""
        return self.total_fill_volume - self.total_cut_volume

    def add_violation(self, message: str) -> None:
        self.constraint_violations.append(message)
        self.meets_all_constraints = False

    def to_dict(self) -> Dict[str, Any]:
        """Convert statistics to dictionary."""
        return {
            "max_road_slope": round(self.max_road_slope, 3),
            "max_side_slope": round(self.max_side_slope, 3),
            "max_transverse_slope": round(self.max_transverse_slope, 3),
            "max_discontinuity": round(self.max_discontinuity, 4),
            "total_cut_volume": round(self.total_cut_volume, 2),
            "total_fill_volume": round(self.total_fill_volume, 2),
            "net_volume": round(self.net_volume, 2),
            "pixels_modified": self.pixels_modified,
            "original_elevation_range": self.original_elevation_range,
            "modified_elevation_range": self.modified_elevation_range,
            "strategy": self.strategy,
            "meets_all_constraints": self.meets_all_constraints,
            "constraint_violations": self.constraint_violations,
        }


@dataclass(frozen=True)
class SmoothingResult:
    """
    Output of a smoothing run.

    The arrays are read-only; copy them before editing.

    Attributes:
        modified_heightmap: Graded heightmap, same shape as the input
        delta_map: modified - original
        statistics: Aggregate statistics
        geometry: Road network the heightmap was graded with
    """

    modified_heightmap: NDArray[np.float32]
    delta_map: NDArray[np.float32]
    statistics: SmoothingStatistics
    geometry: UnifiedRoadNetwork

    def __post_init__(self) -> None:
        """Freeze the arrays."""
        if self.modified_heightmap.shape != self.delta_map.shape:
            raise ValueError(
                f"delta_map shape {self.delta_map.shape} does not match "
                f"heightmap shape {self.modified_heightmap.shape}"
            )
        self.modified_heightmap.flags.writeable = False
        self.delta_map.flags.writeable = False
