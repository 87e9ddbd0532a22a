"""
Target elevation profiles along road splines.

Samples the terrain under a spline at the cross-section interval, smooths
the profile longitudinally, applies global leveling and turns the result into
cross-sections the blender can rasterize.
"""

import logging
from typing import Any, List, Optional

import numpy as np
from numpy.typing import NDArray

from roadgrade.core.elevation.filters import box_filter, butterworth_filter, enforce_max_slope
from roadgrade.core.skeleton.preprocess import to_binary_mask
from roadgrade.core.splines.spline import RoadSpline
from roadgrade.models.geometry import CrossSection
from roadgrade.models.parameters import RoadSmoothingParameters

logger = logging.getLogger(__name__)


def bilinear_sample(
    heightmap: NDArray[np.floating], points: NDArray[np.float64], meters_per_pixel: float
) -> NDArray[np.float64]:
    """
    Bilinearly interpolate heights at world positions.

    Positions outside the grid are clamped to the border.

    Args:
        heightmap: 2D heightmap indexed [row, col]
        points: (N, 2) world (x, y) positions in meters
        meters_per_pixel: Grid resolution

    Returns:
        (N,) heights
    """
    points = np.atleast_2d(np.asarray(points, dtype=np.float64))
    h, w = heightmap.shape
    x = np.clip(points[:, 0] / meters_per_pixel, 0.0, w - 1)
    y = np.clip(points[:, 1] / meters_per_pixel, 0.0, h - 1)

    x0 = np.minimum(np.floor(x).astype(np.int64), max(w - 2, 0))
    y0 = np.minimum(np.floor(y).astype(np.int64), max(h - 2, 0))
    x1 = np.minimum(x0 + 1, w - 1)
    y1 = np.minimum(y0 + 1, h - 1)
    fx = x - x0
    fy = y - y0

    grid = heightmap.astype(np.float64, copy=False)
    top = grid[y0, x0] + (grid[y0, x1] - grid[y0, x0]) * fx
    bottom = grid[y1, x0] + (grid[y1, x1] - grid[y1, x0]) * fx
    return top + (bottom - top) * fy


def apply_global_leveling(
    values: NDArray[np.float64], strength: float, mean: Optional[float] = None
) -> NDArray[np.float64]:
    """
    Pull a profile toward a common elevation.

    ``e = e + (mean - e) * s``; strength 0 keeps the profile, strength 1
    makes it constant.

    Args:
        values: Profile elevations
        strength: Leveling strength in [0, 1]
        mean: Elevation to level toward, defaults to the profile mean

    Returns:
        Leveled profile
    """
    values = np.asarray(values, dtype=np.float64)
    if strength <= 0 or len(values) == 0:
        return values.copy()
    if mean is not None:
        target = float(mean)
    elif np.ptp(values) == 0:
        target = float(values[0])
    else:
        target = float(np.mean(values))
    if strength >= 1:
        return np.full_like(values, target)
    return values + (target - values) * strength


class ElevationProfileCalculator:
    """
    Build graded cross-sections for road splines.

    Args:
        parameters: Smoothing parameters of the road material
        meters_per_pixel: Grid resolution
    """

    def __init__(self, parameters: RoadSmoothingParameters, meters_per_pixel: float) -> None:
        self.parameters = parameters
        self.meters_per_pixel = meters_per_pixel

    @property
    def window_samples(self) -> int:
        return self.parameters.smoothing_window_samples()

    def smooth(self, profile: NDArray[np.float64]) -> NDArray[np.float64]:
        """Low-pass a raw terrain profile with the configured filter."""
        spline_params = self.parameters.spline
        if spline_params.use_butterworth_filter:
            return butterworth_filter(profile, self.window_samples, spline_params.butterworth_filter_order)
        return box_filter(profile, self.window_samples)

    def target_profile(
        self,
        raw: NDArray[np.float64],
        leveling_mean: Optional[float] = None,
    ) -> NDArray[np.float64]:
        """
        Turn a raw terrain profile into target elevations.

        Args:
            raw: Terrain heights sampled along the spline
            leveling_mean: Network-wide elevation to level toward; None levels
                toward the profile's own mean

        Returns:
            Target elevation per sample
        """
        smoothed = self.smooth(raw)
        leveled = apply_global_leveling(
            smoothed, self.parameters.spline.global_leveling_strength, leveling_mean
        )
        if self.parameters.enable_max_slope_constraint:
            leveled = enforce_max_slope(
                leveled,
                self.parameters.cross_section_interval_meters,
                self.parameters.road_max_slope_degrees,
            )
        return leveled

    def raw_profile(self, spline: RoadSpline, heightmap: NDArray[np.floating]) -> NDArray[np.float64]:
        """Terrain heights at the cross-section positions of a spline."""
        distances = spline.sample_distances(self.parameters.cross_section_interval_meters)
        return bilinear_sample(heightmap, spline.points_at(distances), self.meters_per_pixel)

    def build_cross_sections(
        self,
        spline: RoadSpline,
        heightmap: NDArray[np.floating],
        path_id: int,
        exclusion_mask: Optional[NDArray[Any]] = None,
        leveling_mean: Optional[float] = None,
    ) -> List[CrossSection]:
        """
        Sample, smooth and level a spline into cross-sections.

        Args:
            spline: Road spline in world meters
            heightmap: Terrain heightmap
            path_id: Owning path id
            exclusion_mask: Cells where sections are flagged as excluded
            leveling_mean: Network-wide leveling elevation, if any

        Returns:
            Cross-sections ordered along the spline
        """
        interval = self.parameters.cross_section_interval_meters
        distances, points, tangents, normals = spline.sample_by_distance(interval)
        raw = bilinear_sample(heightmap, points, self.meters_per_pixel)
        targets = self.target_profile(raw, leveling_mean)
        excluded = self._excluded(points, exclusion_mask, heightmap.shape)

        width = self.parameters.road_width_meters
        sections = [
            CrossSection(
                center=points[i].copy(),
                normal=normals[i].copy(),
                tangent=tangents[i].copy(),
                target_elevation=float(targets[i]),
                width_m=width,
                path_id=path_id,
                local_index=i,
                distance_along=float(distances[i]),
                is_excluded=bool(excluded[i]),
            )
            for i in range(len(distances))
        ]

        logger.debug(
            f"Path {path_id}: {len(sections)} sections over {spline.total_length:.1f}m, "
            f"target range {targets.min():.2f}..{targets.max():.2f}"
        )
        return sections

    def _excluded(
        self,
        points: NDArray[np.float64],
        exclusion_mask: Optional[NDArray[Any]],
        shape: tuple,
    ) -> NDArray[np.bool_]:
        if exclusion_mask is None:
            return np.zeros(len(points), dtype=bool)
        exclusion = to_binary_mask(exclusion_mask)
        h, w = shape
        cols = np.clip((points[:, 0] / self.meters_per_pixel).astype(np.int64), 0, w - 1)
        rows = np.clip((points[:, 1] / self.meters_per_pixel).astype(np.int64), 0, h - 1)
        return exclusion[rows, cols]
