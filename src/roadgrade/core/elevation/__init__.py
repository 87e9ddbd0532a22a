"""
Longitudinal road elevation profiles.
"""

from roadgrade.core.elevation.filters import box_filter, butterworth_filter, enforce_max_slope
from roadgrade.core.elevation.profile import (
    ElevationProfileCalculator,
    apply_global_leveling,
    bilinear_sample,
)

__all__ = [
    "ElevationProfileCalculator",
    "apply_global_leveling",
    "bilinear_sample",
    "box_filter",
    "butterworth_filter",
    "enforce_max_slope",
]
