"""
Road core rasterization and the exact distance field around it.
"""

import logging
from typing import List, Optional, Tuple

import numpy as np
from numpy.typing import NDArray
from scipy import ndimage

from roadgrade.models.geometry import SectionArrays
from roadgrade.utils.logging import PerformanceTimer, log_performance

logger = logging.getLogger(__name__)


def bresenham_line(x0: int, y0: int, x1: int, y1: int) -> List[Tuple[int, int]]:
    """
    Integer cells on the line between two pixel positions.

    Returns:
        (x, y) cells from start to end, both inclusive
    """
    cells = []
    dx = abs(x1 - x0)
    dy = -abs(y1 - y0)
    sx = 1 if x0 < x1 else -1
    sy = 1 if y0 < y1 else -1
    err = dx + dy
    x, y = x0, y0
    while True:
        cells.append((x, y))
        if x == x1 and y == y1:
            break
        e2 = 2 * err
        if e2 >= dy:
            err += dy
            x += sx
        if e2 <= dx:
            err += dx
            y += sy
    return cells


@log_performance(log_level=logging.DEBUG, threshold_ms=50)
def rasterize_core_owners(
    sections: SectionArrays,
    shape: Tuple[int, int],
    meters_per_pixel: float,
    priorities: Optional[NDArray[np.int64]] = None,
) -> NDArray[np.int64]:
    """
    Label the road core with the section that owns each cell.

    Every section draws one Bresenham line from edge to edge. Sections are
    drawn in ascending priority, so where cores overlap the cell belongs to
    the highest-priority road; equal priorities keep the network order.
    Excluded sections are skipped; cells outside the grid are clipped.

    Args:
        sections: Cross-section columns
        shape: Heightmap (rows, cols)
        meters_per_pixel: Grid resolution
        priorities: Road priority per section, None treats all sections alike

    Returns:
        Section index per core cell, -1 elsewhere
    """
    h, w = shape
    owners = np.full(shape, -1, dtype=np.int64)
    drawable = np.nonzero(~sections.excluded)[0]
    if priorities is not None:
        drawable = drawable[np.argsort(priorities[drawable], kind="stable")]
    for i in drawable:
        half = sections.widths[i] / 2.0
        left = sections.centers[i] - sections.normals[i] * half
        right = sections.centers[i] + sections.normals[i] * half
        cells = bresenham_line(
            int(left[0] / meters_per_pixel),
            int(left[1] / meters_per_pixel),
            int(right[0] / meters_per_pixel),
            int(right[1] / meters_per_pixel),
        )
        xs = np.fromiter((c[0] for c in cells), dtype=np.int64, count=len(cells))
        ys = np.fromiter((c[1] for c in cells), dtype=np.int64, count=len(cells))
        inside = (xs >= 0) & (xs < w) & (ys >= 0) & (ys < h)
        owners[ys[inside], xs[inside]] = i
    return owners


def rasterize_core(
    sections: SectionArrays, shape: Tuple[int, int], meters_per_pixel: float
) -> NDArray[np.bool_]:
    """Boolean road core mask, see rasterize_core_owners."""
    return rasterize_core_owners(sections, shape, meters_per_pixel) >= 0


def compute_distance_field(core: NDArray[np.bool_], meters_per_pixel: float) -> NDArray[np.float64]:
    """
    Exact Euclidean distance from every cell to the nearest core cell.

    Args:
        core: Boolean core mask
        meters_per_pixel: Grid resolution

    Returns:
        Distances in meters (0 on the core, inf everywhere when the core is empty)
    """
    if not core.any():
        return np.full(core.shape, np.inf, dtype=np.float64)
    with PerformanceTimer("distance_transform", log_level=logging.DEBUG):
        distances = ndimage.distance_transform_edt(~core)
    return distances * meters_per_pixel
