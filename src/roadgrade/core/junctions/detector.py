"""
Junction detection across a unified road network.

Finds where path ends meet (endpoint clusters), where a path ends on the
middle of another (T-junctions), where two paths cross without either ending
(crossings) and path ends that meet nothing (isolated endpoints).
"""

import logging
from collections import Counter
from dataclasses import dataclass
from typing import Dict, List, Optional, Set, Tuple

import networkx as nx
import numpy as np
from numpy.typing import NDArray
from scipy.spatial import cKDTree

from roadgrade.models.geometry import (
    JunctionEnd,
    JunctionInfo,
    JunctionType,
    NetworkSpline,
    UnifiedRoadNetwork,
)

logger = logging.getLogger(__name__)

# (path_id, is_start)
EndKey = Tuple[int, bool]


@dataclass
class _Endpoint:
    spline: NetworkSpline
    section_index: int
    is_start: bool
    position: NDArray[np.float64]

    @property
    def radius(self) -> float:
        return self.spline.parameters.junctions.junction_detection_radius_meters


@dataclass
class _Interior:
    """Non-endpoint, non-excluded sections in network order."""

    positions: NDArray[np.float64]
    path_ids: NDArray[np.int64]
    local_indices: NDArray[np.int64]
    half_widths: NDArray[np.float64]


class JunctionDetector:
    """
    Detect junctions in a road network.

    Roundabout rings and connector ends already attached to a ring are left
    to the roundabout harmonizer.

    Args:
        handled_ends: (path_id, is_start) ends that must not be detected again
    """

    def __init__(self, handled_ends: Optional[Set[EndKey]] = None) -> None:
        self.handled_ends = handled_ends or set()

    def detect(self, network: UnifiedRoadNetwork) -> List[JunctionInfo]:
        """
        Detect all junctions.

        Args:
            network: Network with cross-sections

        Returns:
            Junctions with consecutive ids; isolated endpoints included
        """
        endpoints = self._collect_endpoints(network)
        interior = self._collect_interior(network)

        junctions = self._cluster_endpoints(endpoints)
        t_count = self._attach_through_roads(junctions, interior, endpoints)
        junctions.extend(self._detect_crossings(network, interior, junctions))

        for junction_id, junction in enumerate(junctions):
            junction.junction_id = junction_id

        counts = Counter(j.junction_type.value for j in junctions)
        logger.info(
            f"Detected {len(junctions)} junctions from {len(endpoints)} endpoints "
            f"({t_count} through roads attached): {dict(counts)}"
        )
        return junctions

    def _collect_endpoints(self, network: UnifiedRoadNetwork) -> List[_Endpoint]:
        endpoints: List[_Endpoint] = []
        for spline in network.splines:
            if spline.is_roundabout or spline.spline.closed or not spline.cross_sections:
                continue
            for is_start in (True, False):
                if (spline.path_id, is_start) in self.handled_ends:
                    continue
                section = spline.cross_sections[0] if is_start else spline.cross_sections[-1]
                if section.is_excluded:
                    continue
                endpoints.append(
                    _Endpoint(spline, section.local_index, is_start, np.asarray(section.center, dtype=np.float64))
                )
        return endpoints

    def _collect_interior(self, network: UnifiedRoadNetwork) -> _Interior:
        positions, path_ids, local, half = [], [], [], []
        for spline in network.splines:
            if spline.is_roundabout:
                continue
            last = len(spline.cross_sections) - 1
            for cs in spline.cross_sections:
                if cs.is_excluded:
                    continue
                if not spline.spline.closed and cs.local_index in (0, last):
                    continue
                positions.append(cs.center)
                path_ids.append(spline.path_id)
                local.append(cs.local_index)
                half.append(cs.width_m / 2.0)
        return _Interior(
            positions=np.array(positions, dtype=np.float64).reshape(-1, 2),
            path_ids=np.array(path_ids, dtype=np.int64),
            local_indices=np.array(local, dtype=np.int64),
            half_widths=np.array(half, dtype=np.float64),
        )

    def _cluster_endpoints(self, endpoints: List[_Endpoint]) -> List[JunctionInfo]:
        """Single-linkage clustering of endpoints within their detection radius."""
        if not endpoints:
            return []

        graph = nx.Graph()
        graph.add_nodes_from(range(len(endpoints)))
        positions = np.array([ep.position for ep in endpoints])
        radii = np.array([ep.radius for ep in endpoints])
        tree = cKDTree(positions)
        for i, j in tree.query_pairs(float(radii.max())):
            if np.linalg.norm(positions[i] - positions[j]) <= max(radii[i], radii[j]):
                graph.add_edge(i, j)

        junctions: List[JunctionInfo] = []
        for component in nx.connected_components(graph):
            members = sorted(component)
            ends = [
                JunctionEnd(
                    path_id=endpoints[m].spline.path_id,
                    section_index=endpoints[m].section_index,
                    is_start=endpoints[m].is_start,
                )
                for m in members
            ]
            lead = endpoints[members[0]].spline.parameters.junctions
            junctions.append(
                JunctionInfo(
                    junction_id=-1,
                    junction_type=(
                        JunctionType.ENDPOINT_CLUSTER if len(members) > 1 else JunctionType.ISOLATED_ENDPOINT
                    ),
                    position=positions[members].mean(axis=0),
                    ends=ends,
                    blend_distance_m=lead.junction_blend_distance_meters,
                    blend_function_type=lead.blend_function_type,
                )
            )
        return junctions

    def _attach_through_roads(
        self,
        junctions: List[JunctionInfo],
        interior: _Interior,
        endpoints: List[_Endpoint],
    ) -> int:
        """
        Attach paths passing through a junction without ending there.

        The closest interior section of every other path within the
        detection radius of the junction becomes a continuous participant,
        turning the junction into a T-junction.

        Returns:
            Number of through roads attached
        """
        if len(interior.positions) == 0:
            return 0

        radius_by_path: Dict[int, float] = {ep.spline.path_id: ep.radius for ep in endpoints}
        tree = cKDTree(interior.positions)
        attached = 0
        for junction in junctions:
            radius = max(radius_by_path.get(pid, 0.0) for pid in junction.path_ids)
            ending_paths = set(junction.path_ids)
            hits = tree.query_ball_point(junction.position, radius)
            closest: Dict[int, Tuple[float, int]] = {}
            for hit in hits:
                path_id = int(interior.path_ids[hit])
                if path_id in ending_paths:
                    continue
                dist = float(np.linalg.norm(interior.positions[hit] - junction.position))
                if path_id not in closest or dist < closest[path_id][0]:
                    closest[path_id] = (dist, int(interior.local_indices[hit]))

            for path_id, (_, local_index) in sorted(closest.items(), key=lambda kv: kv[1][0]):
                junction.ends.append(
                    JunctionEnd(path_id=path_id, section_index=local_index, is_start=False, is_continuous=True)
                )
                attached += 1
            if closest:
                junction.junction_type = JunctionType.T_JUNCTION
        return attached

    def _detect_crossings(
        self,
        network: UnifiedRoadNetwork,
        interior: _Interior,
        existing: List[JunctionInfo],
    ) -> List[JunctionInfo]:
        """
        Find paths crossing each other away from their ends.

        Two interior sections of different paths closer than the wider road's
        half width mark a crossing; one crossing is kept per path pair, at
        the closest section pair.
        """
        if len(interior.positions) < 2:
            return []

        connected: Set[Tuple[int, int]] = set()
        for junction in existing:
            ids = sorted(set(junction.path_ids))
            for a_pos, a in enumerate(ids):
                for b in ids[a_pos + 1 :]:
                    connected.add((a, b))

        tree = cKDTree(interior.positions)
        best: Dict[Tuple[int, int], Tuple[float, int, int]] = {}
        for i, j in tree.query_pairs(float(interior.half_widths.max())):
            pa, pb = int(interior.path_ids[i]), int(interior.path_ids[j])
            if pa == pb:
                continue
            dist = float(np.linalg.norm(interior.positions[i] - interior.positions[j]))
            if dist > max(interior.half_widths[i], interior.half_widths[j]):
                continue
            if pa > pb:
                pa, pb, i, j = pb, pa, j, i
            if (pa, pb) in connected:
                continue
            if (pa, pb) not in best or dist < best[(pa, pb)][0]:
                best[(pa, pb)] = (dist, i, j)

        crossings: List[JunctionInfo] = []
        for (pa, pb), (_, i, j) in sorted(best.items()):
            params = network.get_spline(pa).parameters.junctions
            crossings.append(
                JunctionInfo(
                    junction_id=-1,
                    junction_type=JunctionType.CROSSING,
                    position=(interior.positions[i] + interior.positions[j]) / 2.0,
                    ends=[
                        JunctionEnd(pa, int(interior.local_indices[i]), is_start=False, is_continuous=True),
                        JunctionEnd(pb, int(interior.local_indices[j]), is_start=False, is_continuous=True),
                    ],
                    blend_distance_m=params.junction_blend_distance_meters,
                    blend_function_type=params.blend_function_type,
                )
            )
        return crossings
