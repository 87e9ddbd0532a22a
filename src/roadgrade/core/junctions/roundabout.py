"""
Roundabout ring merging, connector trimming and ring elevation.
"""

import logging
import math
from typing import List, Optional, Set, Tuple

import numpy as np
import shapely
from numpy.typing import NDArray
from scipy import ndimage
from shapely.geometry import LineString, Point

from roadgrade.core.blending.blend_functions import blend_weight
from roadgrade.core.elevation.profile import bilinear_sample
from roadgrade.core.junctions.detector import EndKey
from roadgrade.core.junctions.harmonizer import distances_from_end
from roadgrade.models.geometry import (
    JunctionEnd,
    JunctionInfo,
    JunctionType,
    NetworkSpline,
    RoadPath,
    RoundaboutInfo,
    UnifiedRoadNetwork,
)

logger = logging.getLogger(__name__)

# Connector blends shorter than this are applied to the end section only
MIN_CONNECTOR_BLEND_METERS = 5.0


def merge_ring_paths(parts: List[NDArray[np.float64]], join_distance: float) -> List[NDArray[np.float64]]:
    """
    Chain roundabout ring parts into closed rings.

    Parts are appended end to end (reversed where needed) while another
    part starts or ends within ``join_distance`` of the chain's end.

    Args:
        parts: (N, 2) world polylines tagged as ring
        join_distance: Largest gap bridged between parts

    Returns:
        One closed polyline per ring (first point not repeated)
    """
    remaining = [np.asarray(p, dtype=np.float64) for p in parts if len(p) >= 2]
    rings: List[NDArray[np.float64]] = []
    while remaining:
        chain = remaining.pop(0)
        while True:
            tail = chain[-1]
            best: Optional[Tuple[float, int, bool]] = None
            for idx, part in enumerate(remaining):
                for reverse, head in ((False, part[0]), (True, part[-1])):
                    gap = float(np.linalg.norm(head - tail))
                    if gap <= join_distance and (best is None or gap < best[0]):
                        best = (gap, idx, reverse)
            if best is None:
                break
            _, idx, reverse = best
            part = remaining.pop(idx)
            chain = np.vstack([chain, part[::-1] if reverse else part])

        gap = float(np.linalg.norm(chain[0] - chain[-1]))
        if gap <= 1e-6:
            chain = chain[:-1]
        elif gap > join_distance:
            logger.warning(f"Roundabout ring left open by {gap:.1f}m, closing it")
        if len(chain) >= 3:
            rings.append(chain)
    return rings


def trim_connector(
    points: NDArray[np.float64], ring: NDArray[np.float64], ring_half_width: float
) -> Optional[NDArray[np.float64]]:
    """
    Cut a connecting road where it first enters the ring's road surface.

    The part running inside (or alongside) the ring is removed so the
    connector ends at the ring edge.

    Args:
        points: (N, 2) connector polyline
        ring: (M, 2) closed ring polyline
        ring_half_width: Half the ring road width

    Returns:
        Trimmed polyline, or None when nothing is left outside the ring
    """
    ring_line = LineString(np.vstack([ring, ring[:1]]))
    surface = ring_line.buffer(ring_half_width)
    start_dist = ring_line.distance(Point(points[0]))
    end_dist = ring_line.distance(Point(points[-1]))
    flip = start_dist < end_dist
    oriented = points[::-1] if flip else points

    if shapely.contains_xy(surface, oriented[0, 0], oriented[0, 1]):
        return None

    trimmed = None
    for i in range(1, len(oriented)):
        segment = LineString(oriented[i - 1 : i + 1])
        if not segment.intersects(surface):
            continue
        crossing = shapely.get_coordinates(segment.intersection(surface.boundary))
        if len(crossing) == 0:
            entry = oriented[i]
        else:
            entry = crossing[np.argmin(np.linalg.norm(crossing - oriented[i - 1], axis=1))]
        trimmed = np.vstack([oriented[:i], entry])
        break

    if trimmed is None:
        return points
    if len(trimmed) < 2 or LineString(trimmed).length < 1e-3:
        return None
    return trimmed[::-1] if flip else trimmed


def prepare_roundabouts(
    paths: List[RoadPath], ring_half_width: float, join_distance: float
) -> List[RoadPath]:
    """
    Merge ring parts into closed rings and trim the roads connecting to them.

    Args:
        paths: Caller-supplied paths, ring parts tagged ``is_roundabout``
        ring_half_width: Half the ring road width
        join_distance: Largest gap bridged between ring parts

    Returns:
        Paths with one closed path per ring and trimmed connectors
    """
    ring_parts = [p.points for p in paths if p.is_roundabout]
    if not ring_parts:
        return list(paths)

    rings = merge_ring_paths(ring_parts, join_distance)
    prepared = [RoadPath(points=ring, is_roundabout=True, closed=True) for ring in rings]
    trimmed_count = 0
    for path in paths:
        if path.is_roundabout:
            continue
        points: Optional[NDArray[np.float64]] = path.points
        for ring in rings:
            if points is None:
                break
            before = len(points)
            points = trim_connector(points, ring, ring_half_width)
            if points is not None and len(points) != before:
                trimmed_count += 1
        if points is None:
            logger.warning("Dropped a road lying entirely on a roundabout ring")
            continue
        prepared.append(RoadPath(points=points, closed=path.closed))

    logger.info(f"Merged {len(ring_parts)} ring parts into {len(rings)} roundabouts, trimmed {trimmed_count} connectors")
    return prepared


class RoundaboutHarmonizer:
    """
    Give roundabout rings one elevation and blend their connectors into it.

    Args:
        meters_per_pixel: Grid resolution
    """

    def __init__(self, meters_per_pixel: float) -> None:
        self.meters_per_pixel = meters_per_pixel

    def harmonize(
        self, network: UnifiedRoadNetwork, heightmap: NDArray[np.floating]
    ) -> Tuple[List[RoundaboutInfo], List[JunctionInfo], Set[EndKey]]:
        """
        Harmonize every ring in the network.

        Args:
            network: Network with ring splines flagged ``is_roundabout``
            heightmap: Original terrain

        Returns:
            (roundabouts, roundabout junctions, connector ends handled here)
        """
        roundabouts: List[RoundaboutInfo] = []
        junctions: List[JunctionInfo] = []
        handled: Set[EndKey] = set()

        rings = [
            s
            for s in network.splines
            if s.is_roundabout and s.cross_sections and s.parameters.junctions.enable_junction_harmonization
        ]
        for ring in rings:
            info, junction, ends = self._harmonize_ring(network, ring, heightmap, handled)
            roundabouts.append(info)
            if junction is not None:
                junctions.append(junction)
            handled |= ends

        if roundabouts:
            logger.info(f"Harmonized {len(roundabouts)} roundabouts with {len(handled)} connections")
        return roundabouts, junctions, handled

    def _harmonize_ring(
        self,
        network: UnifiedRoadNetwork,
        ring: NetworkSpline,
        heightmap: NDArray[np.floating],
        taken: Set[EndKey],
    ) -> Tuple[RoundaboutInfo, Optional[JunctionInfo], Set[EndKey]]:
        centers = np.array([cs.center for cs in ring.cross_sections], dtype=np.float64)
        center = centers.mean(axis=0)
        radius = float(np.linalg.norm(centers - center, axis=1).mean())
        ring_line = LineString(np.vstack([centers, centers[:1]]))
        ring_params = ring.parameters.junctions

        connections = self._find_connections(network, ring_line, ring, taken)
        terrain_mean = float(bilinear_sample(heightmap, centers, self.meters_per_pixel).mean())

        elevation = terrain_mean
        priority_sum = sum(float(s.priority) for s, _ in connections)
        if connections and priority_sum > 0:
            connection_mean = sum(
                (s.cross_sections[0] if is_start else s.cross_sections[-1]).target_elevation * s.priority
                for s, is_start in connections
            ) / priority_sum
            weight = math.sqrt(priority_sum / len(connections))
            elevation = (terrain_mean + connection_mean * weight) / (1.0 + weight)

        if ring_params.force_uniform_roundabout_elevation:
            ring.set_targets(np.full(len(ring.cross_sections), elevation))
        else:
            window = ring.parameters.smoothing_window_samples()
            smoothed = ndimage.uniform_filter1d(ring.targets(), size=min(window, len(ring.cross_sections)), mode="wrap")
            ring.set_targets(smoothed)

        ends: Set[EndKey] = set()
        junction_ends = [JunctionEnd(ring.path_id, 0, is_start=True, is_continuous=True)]
        for spline, is_start in connections:
            end_section = spline.cross_sections[0] if is_start else spline.cross_sections[-1]
            if ring_params.force_uniform_roundabout_elevation:
                target = elevation
            else:
                nearest = int(np.argmin(np.linalg.norm(centers - end_section.center, axis=1)))
                target = ring.cross_sections[nearest].target_elevation
            self._blend_connector(spline, is_start, target)
            ends.add((spline.path_id, is_start))
            junction_ends.append(JunctionEnd(spline.path_id, end_section.local_index, is_start=is_start))

        info = RoundaboutInfo(
            ring_path_id=ring.path_id,
            center=center,
            radius_m=radius,
            connector_path_ids=[s.path_id for s, _ in connections],
            ring_elevation=elevation if ring_params.force_uniform_roundabout_elevation else None,
        )
        junction = JunctionInfo(
            junction_id=-1,
            junction_type=JunctionType.ROUNDABOUT,
            position=center,
            ends=junction_ends,
            blend_distance_m=ring_params.junction_blend_distance_meters,
            blend_function_type=ring_params.blend_function_type,
            harmonized_elevation=elevation,
        )
        logger.debug(
            f"Roundabout {ring.path_id}: radius {radius:.1f}m, terrain mean {terrain_mean:.2f}m, "
            f"{len(connections)} connections, elevation {elevation:.2f}m"
        )
        return info, junction, ends

    def _find_connections(
        self,
        network: UnifiedRoadNetwork,
        ring_line: LineString,
        ring: NetworkSpline,
        taken: Set[EndKey],
    ) -> List[Tuple[NetworkSpline, bool]]:
        """Path ends lying on or near the ring."""
        reach = ring.parameters.road_width_meters / 2.0
        connections = []
        for spline in network.splines:
            if spline.is_roundabout or not spline.cross_sections or spline.spline.closed:
                continue
            tolerance = reach + spline.parameters.junctions.junction_detection_radius_meters
            for is_start in (True, False):
                if (spline.path_id, is_start) in taken:
                    continue
                cs = spline.cross_sections[0] if is_start else spline.cross_sections[-1]
                if ring_line.distance(Point(cs.center)) <= tolerance:
                    connections.append((spline, is_start))
        return connections

    @staticmethod
    def _blend_connector(spline: NetworkSpline, is_start: bool, target: float) -> None:
        """Blend a connecting road from its ring end toward its own profile."""
        params = spline.parameters.junctions
        dist = distances_from_end(spline.cross_sections, is_start)
        blend_distance = min(params.junction_blend_distance_meters, float(dist.max()) * 0.5)
        end = spline.cross_sections[0] if is_start else spline.cross_sections[-1]
        if blend_distance < MIN_CONNECTOR_BLEND_METERS:
            end.target_elevation = float(target)
            return
        weights = blend_weight(dist / blend_distance, params.blend_function_type)
        for cs, d, b in zip(spline.cross_sections, dist, weights):
            if d >= blend_distance:
                continue
            cs.target_elevation = float(target + (cs.target_elevation - target) * b)
