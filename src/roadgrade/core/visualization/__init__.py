"""
Debug image rendering.
"""

from roadgrade.core.visualization.debug_images import DebugImageConfig, DebugImageWriter

__all__ = ["DebugImageConfig", "DebugImageWriter"]
