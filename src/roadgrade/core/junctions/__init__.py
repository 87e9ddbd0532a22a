"""
Junction detection and elevation harmonization.

This module provides:
- Endpoint clustering, T-junction and crossing detection
- Junction elevation computation and propagation into paths
- Endpoint tapering toward terrain
- Roundabout ring merging, connector trimming and ring elevation
"""

from roadgrade.core.junctions.detector import EndKey, JunctionDetector
from roadgrade.core.junctions.harmonizer import (
    HarmonizationResult,
    JunctionHarmonizer,
    distances_from_end,
    distances_from_index,
)
from roadgrade.core.junctions.roundabout import (
    RoundaboutHarmonizer,
    merge_ring_paths,
    prepare_roundabouts,
    trim_connector,
)

__all__ = [
    "EndKey",
    "HarmonizationResult",
    "JunctionDetector",
    "JunctionHarmonizer",
    "RoundaboutHarmonizer",
    "distances_from_end",
    "distances_from_index",
    "merge_ring_paths",
    "prepare_roundabouts",
    "trim_connector",
]
