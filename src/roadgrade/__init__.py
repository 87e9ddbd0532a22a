"""
roadgrade - road-network terrain blending.

This package grades road surfaces into raster heightmaps: it extracts road
centerlines from painted masks, fits splines, builds smoothed elevation
profiles and blends them into the surrounding terrain with distance fields.
"""

__version__ = "0.1.0"
