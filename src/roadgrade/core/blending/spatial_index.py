"""
Grid hash over cross-section centers for nearest-section lookups.
"""

import logging
import math
from typing import Dict, List, Optional, Tuple

import numpy as np
from numpy.typing import NDArray

from roadgrade.models.geometry import SectionArrays

logger = logging.getLogger(__name__)

DEFAULT_CELL_SIZE = 32
# Targets below this are treated as unset
MIN_VALID_ELEVATION = -1000.0
MAX_SEARCH_RANGE = 3

GridKey = Tuple[int, int]


class CrossSectionSpatialIndex:
    """
    Bucket cross-sections into square grid cells for fast neighbor queries.

    Excluded sections and sections without a usable target elevation are
    never returned.

    Args:
        sections: Cross-section columns to index
        meters_per_pixel: Grid resolution
        cell_size: Bucket size in pixels
    """

    def __init__(
        self, sections: SectionArrays, meters_per_pixel: float, cell_size: int = DEFAULT_CELL_SIZE
    ) -> None:
        self.sections = sections
        self.meters_per_pixel = meters_per_pixel
        self.cell_size = cell_size
        self._cell_meters = meters_per_pixel * cell_size
        self._buckets: Dict[GridKey, NDArray[np.int64]] = {}

        valid = (
            ~sections.excluded
            & np.isfinite(sections.targets)
            & (sections.targets >= MIN_VALID_ELEVATION)
        )
        self.valid: NDArray[np.bool_] = valid
        skipped = int(np.count_nonzero(~sections.excluded & ~valid))
        if skipped:
            logger.warning(f"Skipped {skipped} cross-sections with invalid target elevations")

        indices = np.nonzero(valid)[0]
        if len(indices):
            keys = self._keys(sections.centers[indices])
            grouped: Dict[GridKey, List[int]] = {}
            for idx, (gx, gy) in zip(indices.tolist(), keys.tolist()):
                grouped.setdefault((gx, gy), []).append(idx)
            self._buckets = {key: np.array(v, dtype=np.int64) for key, v in grouped.items()}
        self.size = int(len(indices))

    def _keys(self, points: NDArray[np.float64]) -> NDArray[np.int64]:
        return np.floor(points / self._cell_meters).astype(np.int64)

    def grid_key(self, point: NDArray[np.float64]) -> GridKey:
        """Bucket of a world position."""
        gx, gy = self._keys(np.asarray(point, dtype=np.float64).reshape(1, 2))[0]
        return int(gx), int(gy)

    def search_range(self, radius: float) -> int:
        """Bucket rings needed to cover a radius (meters), clamped to 1-3."""
        rings = int(math.ceil(radius / self._cell_meters)) + 1
        return max(1, min(rings, MAX_SEARCH_RANGE))

    def _candidates(self, key: GridKey, rings: int) -> NDArray[np.int64]:
        gx, gy = key
        found = [
            self._buckets[(gx + dx, gy + dy)]
            for dy in range(-rings, rings + 1)
            for dx in range(-rings, rings + 1)
            if (gx + dx, gy + dy) in self._buckets
        ]
        if not found:
            return np.zeros(0, dtype=np.int64)
        return np.concatenate(found)

    def find_nearest(self, point: NDArray[np.float64]) -> Tuple[Optional[int], float]:
        """
        Nearest section in the surrounding 3x3 buckets.

        Args:
            point: World position (x, y)

        Returns:
            (section index or None, distance in meters)
        """
        point = np.asarray(point, dtype=np.float64)
        candidates = self._candidates(self.grid_key(point), 1)
        if len(candidates) == 0:
            return None, float("inf")
        dists = np.linalg.norm(self.sections.centers[candidates] - point, axis=1)
        best = int(np.argmin(dists))
        return int(candidates[best]), float(dists[best])

    def find_within_radius(
        self, point: NDArray[np.float64], radius: float
    ) -> List[Tuple[int, float]]:
        """
        All sections within a radius of a world position.

        Returns:
            (section index, distance) pairs sorted by distance
        """
        point = np.asarray(point, dtype=np.float64)
        candidates = self._candidates(self.grid_key(point), self.search_range(radius))
        if len(candidates) == 0:
            return []
        dists = np.linalg.norm(self.sections.centers[candidates] - point, axis=1)
        inside = dists <= radius
        order = np.argsort(dists[inside], kind="stable")
        return [
            (int(i), float(d))
            for i, d in zip(candidates[inside][order], dists[inside][order])
        ]

    def nearest_many(
        self, points: NDArray[np.float64], radius: Optional[float] = None
    ) -> Tuple[NDArray[np.int64], NDArray[np.float64]]:
        """
        Nearest section for many world positions at once.

        Queries are grouped by bucket so each group is answered with a single
        distance matrix against its candidate sections.

        Args:
            points: (N, 2) world positions
            radius: Reach of the search, widens the bucket neighborhood
                (not capped like find_within_radius); None searches the 3x3
                neighborhood

        Returns:
            (indices, distances); index -1 and distance inf where nothing was found
        """
        points = np.asarray(points, dtype=np.float64).reshape(-1, 2)
        n = len(points)
        nearest = np.full(n, -1, dtype=np.int64)
        distances = np.full(n, np.inf, dtype=np.float64)
        if n == 0 or not self._buckets:
            return nearest, distances

        # Uncapped, the whole shoulder reach is searched
        rings = 1 if radius is None else max(1, int(math.ceil(radius / self._cell_meters)) + 1)
        keys = self._keys(points)
        unique_keys, inverse = np.unique(keys, axis=0, return_inverse=True)
        inverse = inverse.reshape(-1)
        order = np.argsort(inverse, kind="stable")
        bounds = np.searchsorted(inverse[order], np.arange(len(unique_keys) + 1))

        centers = self.sections.centers
        for group, (gx, gy) in enumerate(unique_keys.tolist()):
            candidates = self._candidates((gx, gy), rings)
            if len(candidates) == 0:
                continue
            members = order[bounds[group] : bounds[group + 1]]
            diff = points[members, None, :] - centers[None, candidates, :]
            dist = np.sqrt(np.einsum("ijk,ijk->ij", diff, diff))
            best = np.argmin(dist, axis=1)
            nearest[members] = candidates[best]
            distances[members] = dist[np.arange(len(members)), best]

        return nearest, distances

    def __len__(self) -> int:
        return self.size
