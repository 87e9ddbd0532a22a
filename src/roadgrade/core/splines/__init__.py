"""
Road spline fitting.
"""

from roadgrade.core.splines.spline import MIN_SPLINE_LENGTH, RoadSpline

__all__ = ["MIN_SPLINE_LENGTH", "RoadSpline"]
