"""
Assemble ordered centerline paths from a skeleton.

Walks the skeleton into polylines, bridges nearby path ends, drops short
fragments and regularizes point spacing before spline fitting.
"""

import logging
import math
from typing import List, Optional, Tuple

import numpy as np
import shapely
from numpy.typing import NDArray
from shapely.geometry import LineString

from roadgrade.core.skeleton.skeletonizer import Cell, find_endpoints, walk_neighbors
from roadgrade.models.geometry import SkeletonPath
from roadgrade.models.parameters import SplineRoadParameters

logger = logging.getLogger(__name__)

# Cells used to estimate the incoming direction at a junction
_DIRECTION_LOOKBACK = 4


def _direction(from_cell: Cell, to_cell: Cell) -> NDArray[np.float64]:
    """Unit (x, y) direction between two (row, col) cells."""
    vec = np.array([to_cell[1] - from_cell[1], to_cell[0] - from_cell[0]], dtype=np.float64)
    norm = np.linalg.norm(vec)
    return vec / norm if norm > 0 else vec


def _angle_between(a: NDArray[np.float64], b: NDArray[np.float64]) -> float:
    """Angle in degrees between two unit vectors."""
    cos = float(np.clip(np.dot(a, b), -1.0, 1.0))
    return math.degrees(math.acos(cos))


def densify_points(points: NDArray[np.float64], max_spacing: float) -> NDArray[np.float64]:
    """
    Insert points so consecutive points are at most max_spacing apart.

    Args:
        points: (N, 2) polyline
        max_spacing: Maximum spacing

    Returns:
        Densified (M, 2) polyline, M >= N
    """
    if len(points) < 2 or max_spacing <= 0:
        return points.copy()
    line = shapely.segmentize(LineString(points), max_segment_length=max_spacing)
    return np.asarray(line.coords, dtype=np.float64)


def simplify_points(points: NDArray[np.float64], tolerance: float) -> NDArray[np.float64]:
    """
    Douglas-Peucker simplification keeping both ends.

    Args:
        points: (N, 2) polyline
        tolerance: Maximum perpendicular deviation; 0 returns a copy

    Returns:
        Simplified polyline with at least two points
    """
    if len(points) < 3 or tolerance <= 0:
        return points.copy()
    simplified = LineString(points).simplify(tolerance, preserve_topology=False)
    coords = np.asarray(simplified.coords, dtype=np.float64)
    if len(coords) < 2:
        return points[[0, -1]].copy()
    return coords


class PathAssembler:
    """
    Trace a skeleton into ordered paths.

    Args:
        parameters: Spline parameters (junction preference, bridging,
            filtering, densify and simplify settings)
        start_id: First path id to assign, so ids stay unique across materials
    """

    def __init__(self, parameters: SplineRoadParameters, start_id: int = 0) -> None:
        self.parameters = parameters
        self.start_id = start_id

    def assemble(self, skeleton: NDArray[np.bool_]) -> List[SkeletonPath]:
        """
        Full assembly: trace, bridge, filter, densify and simplify.

        Returns:
            All paths; short ones are returned with ``is_filtered=True``
        """
        raw = self.trace_paths(skeleton)
        if not raw:
            return []

        bridged = self.bridge_endpoints(raw)
        paths: List[SkeletonPath] = []
        filtered = 0
        for offset, points in enumerate(bridged):
            path = SkeletonPath(path_id=self.start_id + offset, points=points)
            path.is_closed = self._is_closed(points)
            if path.pixel_length < self.parameters.min_path_length_pixels:
                path.is_filtered = True
                filtered += 1
            else:
                dense = densify_points(points, self.parameters.densify_max_spacing_pixels)
                path.points = simplify_points(dense, self.parameters.simplify_tolerance_pixels)
            paths.append(path)

        if filtered:
            logger.warning(
                f"Discarded {filtered} paths shorter than "
                f"{self.parameters.min_path_length_pixels:.1f}px"
            )
        logger.info(f"Assembled {len(paths) - filtered} paths ({len(raw)} traced before bridging)")
        return paths

    def trace_paths(self, skeleton: NDArray[np.bool_]) -> List[NDArray[np.float64]]:
        """
        Walk every skeleton cell into polylines.

        Line ends start walks first so open roads are traced end to end;
        every remaining unvisited cell is then used as a start in raster
        order, so loops and fragments are never left untraced.

        Returns:
            List of (N, 2) pixel (x, y) polylines
        """
        visited = np.zeros(skeleton.shape, dtype=bool)
        polylines: List[NDArray[np.float64]] = []

        for start in find_endpoints(skeleton):
            if not visited[start]:
                polylines.append(self._walk_from(skeleton, start, visited))

        rows, cols = np.nonzero(skeleton & ~visited)
        for start in zip(rows.tolist(), cols.tolist()):
            if not visited[start]:
                polylines.append(self._walk_from(skeleton, start, visited))

        return polylines

    def _walk_from(
        self, skeleton: NDArray[np.bool_], start: Cell, visited: NDArray[np.bool_]
    ) -> NDArray[np.float64]:
        """Walk both directions from a start cell and join the halves."""
        visited[start] = True
        forward = self._walk(skeleton, [start], visited)
        backward = self._walk(skeleton, [start], visited)
        cells = backward[::-1] + forward[1:]
        return np.array([(c, r) for r, c in cells], dtype=np.float64)

    def _walk(
        self, skeleton: NDArray[np.bool_], path: List[Cell], visited: NDArray[np.bool_]
    ) -> List[Cell]:
        """Follow unvisited neighbors until the walk ends or a junction stops it."""
        while True:
            current = path[-1]
            candidates = walk_neighbors(skeleton, current, visited=visited)
            if not candidates:
                return path

            if len(candidates) == 1 or len(path) == 1:
                # A start cell inside a line leaves the other side for the backward walk
                nxt = candidates[0]
            else:
                chosen = self._choose_straight_exit(path, candidates)
                if chosen is None:
                    return path
                nxt = chosen

            visited[nxt] = True
            path.append(nxt)

    def _choose_straight_exit(self, path: List[Cell], candidates: List[Cell]) -> Optional[Cell]:
        """
        Pick the exit that continues the incoming direction at a junction.

        Returns:
            The straightest candidate when junction preference is enabled and
            its deviation is under the threshold, otherwise None
        """
        if not self.parameters.prefer_straight_through_junctions or len(path) < 2:
            return None

        current = path[-1]
        back = path[max(0, len(path) - 1 - _DIRECTION_LOOKBACK)]
        incoming = _direction(back, current)

        best: Optional[Cell] = None
        best_angle = float("inf")
        for cand in candidates:
            angle = _angle_between(incoming, _direction(current, cand))
            if angle < best_angle:
                best, best_angle = cand, angle

        if best_angle <= self.parameters.junction_angle_threshold:
            return best
        return None

    def _is_closed(self, points: NDArray[np.float64]) -> bool:
        if len(points) < 4:
            return False
        gap = float(np.linalg.norm(points[0] - points[-1]))
        return gap <= self.parameters.ordering_neighbor_radius_pixels

    def bridge_endpoints(self, polylines: List[NDArray[np.float64]]) -> List[NDArray[np.float64]]:
        """
        Join path ends of different paths that lie close together.

        Candidate pairs are joined greedily in order of distance weighted by
        how sharply the joined path would turn, so at a junction gap the two
        collinear halves are joined before the side road.

        Returns:
            Polylines after joining
        """
        max_distance = self.parameters.bridge_endpoint_max_distance_pixels
        lines = [p for p in polylines if len(p) > 0]
        if max_distance <= 0 or len(lines) < 2:
            return lines

        joins = 0
        while True:
            pair = self._best_bridge(lines, max_distance)
            if pair is None:
                break
            i, i_at_end, j, j_at_end = pair
            a = lines[i] if i_at_end else lines[i][::-1]
            b = lines[j] if not j_at_end else lines[j][::-1]
            lines[i] = np.vstack([a, b])
            del lines[j]
            joins += 1

        if joins:
            logger.debug(f"Bridged {joins} endpoint pairs within {max_distance:.1f}px")
        return lines

    def _best_bridge(
        self, lines: List[NDArray[np.float64]], max_distance: float
    ) -> Optional[Tuple[int, bool, int, bool]]:
        """Best (i, i_at_end, j, j_at_end) join or None."""
        best: Optional[Tuple[int, bool, int, bool]] = None
        best_score = float("inf")

        ends: List[Tuple[int, bool, NDArray[np.float64], NDArray[np.float64]]] = []
        for idx, line in enumerate(lines):
            if self._is_closed(line):
                continue
            for at_end in (False, True):
                if at_end:
                    point = line[-1]
                    inner = line[max(0, len(line) - 1 - _DIRECTION_LOOKBACK)]
                else:
                    point = line[0]
                    inner = line[min(len(line) - 1, _DIRECTION_LOOKBACK)]
                outward = point - inner
                norm = np.linalg.norm(outward)
                ends.append((idx, at_end, point, outward / norm if norm > 0 else outward))

        for a in range(len(ends)):
            i, i_at_end, p_i, out_i = ends[a]
            for b in range(a + 1, len(ends)):
                j, j_at_end, p_j, out_j = ends[b]
                if i == j:
                    continue
                gap = float(np.linalg.norm(p_j - p_i))
                if gap > max_distance:
                    continue
                # Both ends must face the gap
                offset = p_j - p_i
                if float(np.dot(out_i, offset)) < 0.0 or float(np.dot(out_j, -offset)) < 0.0:
                    continue
                # Outward directions of well-aligned ends point at each other
                alignment = -float(np.dot(out_i, out_j)) if np.any(out_i) and np.any(out_j) else 0.0
                if alignment < 0.0:
                    continue
                score = gap * (2.0 - alignment)
                if score < best_score:
                    best_score = score
                    best = (i, i_at_end, j, j_at_end)

        if best is None:
            return None
        i, i_at_end, j, j_at_end = best
        # Keep the lower index so deletion does not shift it
        if j < i:
            return j, j_at_end, i, i_at_end
        return best
