"""
Statistics and constraint checks of a blended heightmap.
"""

import logging
from typing import Optional

import numpy as np
from numpy.typing import NDArray

from roadgrade.core.blending.blender import BlendResult
from roadgrade.core.config import Settings, settings as default_settings
from roadgrade.models.geometry import NetworkSpline, UnifiedRoadNetwork
from roadgrade.models.results import SmoothingStatistics

logger = logging.getLogger(__name__)

# Slopes within this many degrees of the cap are not violations
SLOPE_TOLERANCE_DEGREES = 0.1


def compute_delta_map(original: NDArray[np.floating], modified: NDArray[np.floating]) -> NDArray[np.float64]:
    """Per-cell change, modified minus original."""
    return np.asarray(modified, dtype=np.float64) - np.asarray(original, dtype=np.float64)


def spline_max_slope(spline: NetworkSpline) -> float:
    """
    Steepest slope (degrees) between consecutive usable sections of a spline.

    Excluded sections and gaps across them are ignored.
    """
    sections = [cs for cs in spline.cross_sections if not cs.is_excluded]
    if len(sections) < 2:
        return 0.0
    targets = np.array([cs.target_elevation for cs in sections], dtype=np.float64)
    along = np.array([cs.distance_along for cs in sections], dtype=np.float64)
    rise = np.abs(np.diff(targets))
    run = np.diff(along)
    valid = run > 1e-6
    if not valid.any():
        return 0.0
    return float(np.degrees(np.arctan(np.max(rise[valid] / run[valid]))))


def _slope_degrees(heightmap: NDArray[np.float64], meters_per_pixel: float) -> NDArray[np.float64]:
    gy, gx = np.gradient(heightmap, meters_per_pixel)
    return np.degrees(np.arctan(np.hypot(gx, gy)))


def _max_discontinuity(modified: NDArray[np.float64], changed: NDArray[np.bool_]) -> float:
    """Largest height step between 4-neighbors where either cell changed."""
    steps = []
    if modified.shape[1] > 1:
        dx = np.abs(np.diff(modified, axis=1))
        touched = changed[:, 1:] | changed[:, :-1]
        if touched.any():
            steps.append(float(dx[touched].max()))
    if modified.shape[0] > 1:
        dy = np.abs(np.diff(modified, axis=0))
        touched = changed[1:, :] | changed[:-1, :]
        if touched.any():
            steps.append(float(dy[touched].max()))
    return max(steps, default=0.0)


def summarize_delta(
    original: NDArray[np.floating],
    modified: NDArray[np.floating],
    meters_per_pixel: float,
    config: Optional[Settings] = None,
) -> SmoothingStatistics:
    """
    Volume, modification and range statistics of a heightmap change.

    Slope fields are left at zero.
    """
    config = config or default_settings
    original = np.asarray(original, dtype=np.float64)
    modified = np.asarray(modified, dtype=np.float64)
    delta = compute_delta_map(original, modified)
    changed = np.abs(delta) > config.modified_pixel_threshold
    cell_area = meters_per_pixel * meters_per_pixel
    return SmoothingStatistics(
        pixels_modified=int(np.count_nonzero(changed)),
        total_cut_volume=float(-delta[changed & (delta < 0)].sum() * cell_area),
        total_fill_volume=float(delta[changed & (delta > 0)].sum() * cell_area),
        max_discontinuity=_max_discontinuity(modified, changed),
        original_elevation_range=(float(np.nanmin(original)), float(np.nanmax(original))),
        modified_elevation_range=(float(np.nanmin(modified)), float(np.nanmax(modified))),
    )


def compute_statistics(
    original: NDArray[np.floating],
    modified: NDArray[np.floating],
    network: UnifiedRoadNetwork,
    blend: BlendResult,
    meters_per_pixel: float,
    config: Optional[Settings] = None,
) -> SmoothingStatistics:
    """
    Summarize a smoothing run and check slope caps.

    Args:
        original: Heightmap before smoothing
        modified: Heightmap after smoothing
        network: Road network the heightmap was graded with
        blend: Blend output (core, shoulder and ownership maps)
        meters_per_pixel: Grid resolution
        config: Engine settings (modification threshold)

    Returns:
        SmoothingStatistics
    """
    modified = np.asarray(modified, dtype=np.float64)
    stats = summarize_delta(original, modified, meters_per_pixel, config)
    stats.strategy = blend.decision.strategy.value

    for spline in network.splines:
        slope = spline_max_slope(spline)
        stats.max_road_slope = max(stats.max_road_slope, slope)
        cap = spline.parameters.road_max_slope_degrees
        if slope > cap + SLOPE_TOLERANCE_DEGREES:
            stats.add_violation(
                f"Path {spline.path_id} ({spline.material_name}): road slope {slope:.1f} deg "
                f"exceeds {cap:.1f} deg"
            )

    written = blend.written_mask
    if written.any():
        slopes = _slope_degrees(modified, meters_per_pixel)
        core = written & ~blend.shoulder_mask
        if core.any():
            stats.max_transverse_slope = float(slopes[core].max())
        if blend.shoulder_mask.any():
            stats.max_side_slope = float(slopes[blend.shoulder_mask].max())
            _check_side_slopes(stats, slopes, blend, network)

    logger.info(
        f"Statistics: {stats.pixels_modified} cells modified, "
        f"cut {stats.total_cut_volume:.1f}m3, fill {stats.total_fill_volume:.1f}m3, "
        f"max road slope {stats.max_road_slope:.2f} deg, "
        f"{len(stats.constraint_violations)} violations"
    )
    return stats


def _check_side_slopes(
    stats: SmoothingStatistics,
    slopes: NDArray[np.float64],
    blend: BlendResult,
    network: UnifiedRoadNetwork,
) -> None:
    """Report materials whose shoulders exceed their side slope cap."""
    materials = network.materials
    caps = np.array(
        [s.parameters.side_max_slope_degrees for s in network.splines for _ in s.cross_sections],
        dtype=np.float64,
    )
    material_ids = np.array(
        [materials.index(s.material_name) for s in network.splines for _ in s.cross_sections],
        dtype=np.int64,
    )

    shoulder = blend.shoulder_mask
    owners = blend.nearest_section[shoulder]
    shoulder_slopes = slopes[shoulder]
    over = shoulder_slopes > caps[owners] + SLOPE_TOLERANCE_DEGREES
    if not over.any():
        return

    worst = np.full(len(materials), -np.inf)
    np.maximum.at(worst, material_ids[owners[over]], shoulder_slopes[over])
    for material_id in np.nonzero(np.isfinite(worst))[0]:
        material = materials[material_id]
        cap = network.splines_for_material(material)[0].parameters.side_max_slope_degrees
        stats.add_violation(
            f"{material}: side slope {worst[material_id]:.1f} deg exceeds {cap:.1f} deg"
        )
