"""
Data models for roadgrade.
"""

from roadgrade.models.geometry import (
    CrossSection,
    JunctionEnd,
    JunctionInfo,
    JunctionType,
    NetworkSpline,
    RoadGeometry,
    RoadPath,
    RoundaboutInfo,
    SectionArrays,
    SkeletonPath,
    UnifiedRoadNetwork,
)
from roadgrade.models.parameters import (
    BlendFunctionType,
    JunctionHarmonizationParameters,
    PostProcessingParameters,
    PostProcessingSmoothingType,
    RoadSmoothingParameters,
    SplineInterpolationType,
    SplineRoadParameters,
    road_priority,
)
from roadgrade.models.results import SmoothingResult, SmoothingStatistics

__all__ = [
    "BlendFunctionType",
    "CrossSection",
    "JunctionEnd",
    "JunctionHarmonizationParameters",
    "JunctionInfo",
    "JunctionType",
    "NetworkSpline",
    "PostProcessingParameters",
    "PostProcessingSmoothingType",
    "RoadGeometry",
    "RoadPath",
    "RoadSmoothingParameters",
    "RoundaboutInfo",
    "SectionArrays",
    "SkeletonPath",
    "SmoothingResult",
    "SmoothingStatistics",
    "SplineInterpolationType",
    "SplineRoadParameters",
    "UnifiedRoadNetwork",
    "road_priority",
]
