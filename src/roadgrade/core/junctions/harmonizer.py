"""
Junction elevation harmonization.

Gives every junction one elevation, pulls the target elevations of the
participating paths toward it over the junction blend distance and tapers
dead ends back toward the terrain.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np
from numpy.typing import NDArray

from roadgrade.core.blending.blend_functions import blend_weight
from roadgrade.core.elevation.profile import bilinear_sample
from roadgrade.models.geometry import (
    CrossSection,
    JunctionEnd,
    JunctionInfo,
    JunctionType,
    NetworkSpline,
    UnifiedRoadNetwork,
)
from roadgrade.models.parameters import BlendFunctionType

logger = logging.getLogger(__name__)

# Added to endpoint distances in inverse distance weighting
IDW_EPSILON = 0.1
# Influences weaker than this are ignored
MIN_INFLUENCE = 0.001


def distances_from_end(sections: List[CrossSection], from_start: bool) -> NDArray[np.float64]:
    """
    Cumulative center-to-center distance of every section from one path end.

    Args:
        sections: Sections of one path, in order
        from_start: Measure from the first section (else from the last)

    Returns:
        Distances in meters, aligned with ``sections``
    """
    if not sections:
        return np.zeros(0)
    centers = np.array([cs.center for cs in sections], dtype=np.float64)
    steps = np.linalg.norm(np.diff(centers, axis=0), axis=1)
    if from_start:
        return np.concatenate([[0.0], np.cumsum(steps)])
    return np.concatenate([np.cumsum(steps[::-1])[::-1], [0.0]])


def distances_from_index(sections: List[CrossSection], index: int) -> NDArray[np.float64]:
    """Cumulative distance of every section from an interior section, both ways."""
    forward = distances_from_end(sections[index:], from_start=True)
    backward = distances_from_end(sections[: index + 1], from_start=False)
    return np.concatenate([backward[:-1], forward])


@dataclass
class HarmonizationResult:
    """
    Summary of a harmonization pass.

    Attributes:
        junctions_harmonized: Junctions that received an elevation
        propagated_sections: Sections pulled toward a junction
        tapered_sections: Sections changed by endpoint tapering
        max_change: Largest target change (meters)
        elevations: Harmonized elevation per junction id
    """

    junctions_harmonized: int = 0
    propagated_sections: int = 0
    tapered_sections: int = 0
    max_change: float = 0.0
    elevations: Dict[int, float] = field(default_factory=dict)


class JunctionHarmonizer:
    """
    Harmonize target elevations at detected junctions.

    Args:
        meters_per_pixel: Grid resolution, used for terrain lookups
    """

    def __init__(self, meters_per_pixel: float) -> None:
        self.meters_per_pixel = meters_per_pixel

    def harmonize(
        self,
        network: UnifiedRoadNetwork,
        junctions: List[JunctionInfo],
        heightmap: NDArray[np.floating],
    ) -> HarmonizationResult:
        """
        Compute junction elevations and propagate them into the paths.

        Args:
            network: Network whose section targets are updated in place
            junctions: Detected junctions
            heightmap: Original terrain (for endpoint tapering)

        Returns:
            HarmonizationResult
        """
        result = HarmonizationResult()
        before = {id(cs): cs.target_elevation for cs in network.cross_sections}

        for junction in junctions:
            if junction.junction_type == JunctionType.ISOLATED_ENDPOINT:
                continue
            elevation = self.junction_elevation(network, junction)
            if elevation is not None:
                junction.harmonized_elevation = elevation
                result.elevations[junction.junction_id] = elevation
                result.junctions_harmonized += 1

        result.propagated_sections = self._propagate(network, junctions)
        result.tapered_sections = self._taper_endpoints(network, junctions, heightmap)

        changes = [abs(cs.target_elevation - before[id(cs)]) for cs in network.cross_sections]
        result.max_change = max(changes, default=0.0)
        logger.info(
            f"Harmonized {result.junctions_harmonized} junctions: "
            f"{result.propagated_sections} sections propagated, "
            f"{result.tapered_sections} tapered, max change {result.max_change:.2f}m"
        )
        return result

    def junction_elevation(self, network: UnifiedRoadNetwork, junction: JunctionInfo) -> Optional[float]:
        """
        Elevation all participants of a junction meet at.

        - T-junction: the through road with the highest priority keeps its
          elevation at its closest section
        - crossing: priority-weighted mean of both paths
        - endpoint cluster: inverse-distance weighted mean of the endpoint
          elevations, scaled by road priority
        """
        participants = self._participants(network, junction)
        if not participants:
            return None

        if junction.junction_type == JunctionType.T_JUNCTION:
            through = [(s, e, cs) for s, e, cs in participants if e.is_continuous]
            _, _, section = max(through, key=lambda p: p[0].priority)
            return float(section.target_elevation)

        elevations = np.array([cs.target_elevation for _, _, cs in participants], dtype=np.float64)
        priorities = np.array([s.priority for s, _, _ in participants], dtype=np.float64)
        if junction.junction_type == JunctionType.CROSSING:
            weights = priorities
        else:
            distances = np.array(
                [np.linalg.norm(cs.center - junction.position) for _, _, cs in participants]
            )
            weights = priorities / (distances + IDW_EPSILON)

        if np.ptp(elevations) == 0:
            return float(elevations[0])
        if weights.sum() <= 0:
            return float(elevations.mean())
        return float(np.dot(weights, elevations) / weights.sum())

    def _participants(
        self, network: UnifiedRoadNetwork, junction: JunctionInfo
    ) -> List[Tuple[NetworkSpline, JunctionEnd, CrossSection]]:
        found = []
        for end in junction.ends:
            spline = network.get_spline(end.path_id)
            if spline is None or not spline.cross_sections:
                continue
            index = min(max(end.section_index, 0), len(spline.cross_sections) - 1)
            found.append((spline, end, spline.cross_sections[index]))
        return found

    def _propagate(self, network: UnifiedRoadNetwork, junctions: List[JunctionInfo]) -> int:
        """
        Blend junction elevations into the paths.

        Every section collects weight ``1 - f(dist / blend_distance)`` from
        each junction within reach; overlapping influences are averaged and
        their total (capped at 1) decides how far the section moves from
        its original target.

        Returns:
            Number of sections changed
        """
        influences: Dict[int, List[Tuple[float, float]]] = {}
        sections_by_key: Dict[int, CrossSection] = {}

        for junction in junctions:
            if junction.harmonized_elevation is None:
                continue
            for end in junction.ends:
                if junction.junction_type == JunctionType.T_JUNCTION and end.is_continuous:
                    continue
                spline = network.get_spline(end.path_id)
                if spline is None or not spline.cross_sections:
                    continue
                params = spline.parameters.junctions
                if end.is_continuous:
                    dist = distances_from_index(spline.cross_sections, end.section_index)
                else:
                    dist = distances_from_end(spline.cross_sections, end.is_start)
                weights = self._influence(dist, params.junction_blend_distance_meters, params.blend_function_type)
                for cs, weight in zip(spline.cross_sections, weights):
                    if weight > MIN_INFLUENCE:
                        influences.setdefault(id(cs), []).append((junction.harmonized_elevation, weight))
                        sections_by_key[id(cs)] = cs

        changed = 0
        for key, entries in influences.items():
            cs = sections_by_key[key]
            total = sum(w for _, w in entries)
            if all(e == entries[0][0] for e, _ in entries):
                junction_elevation = entries[0][0]
            else:
                junction_elevation = sum(e * w for e, w in entries) / total
            amount = min(total, 1.0)
            new = cs.target_elevation + (junction_elevation - cs.target_elevation) * amount
            if abs(new - cs.target_elevation) > MIN_INFLUENCE:
                changed += 1
            cs.target_elevation = float(new)
        return changed

    @staticmethod
    def _influence(
        distances: NDArray[np.float64], blend_distance: float, function_type: BlendFunctionType
    ) -> NDArray[np.float64]:
        if blend_distance <= 0:
            return np.where(distances <= 0, 1.0, 0.0)
        t = distances / blend_distance
        weights = 1.0 - blend_weight(t, function_type)
        return np.where(t < 1.0, weights, 0.0)

    def _taper_endpoints(
        self,
        network: UnifiedRoadNetwork,
        junctions: List[JunctionInfo],
        heightmap: NDArray[np.floating],
    ) -> int:
        """
        Pull isolated path ends partly back to the terrain.

        The end target becomes ``road * (1 - s) + terrain * s`` and fades
        into the untouched profile over the taper distance on a quintic curve.

        Returns:
            Number of sections changed
        """
        changed = 0
        for junction in junctions:
            if junction.junction_type != JunctionType.ISOLATED_ENDPOINT:
                continue
            for end in junction.ends:
                spline = network.get_spline(end.path_id)
                if spline is None or not spline.cross_sections:
                    continue
                params = spline.parameters.junctions
                if not params.enable_endpoint_taper:
                    continue

                terrain = float(bilinear_sample(heightmap, junction.position, self.meters_per_pixel)[0])
                strength = params.endpoint_terrain_blend_strength
                dist = distances_from_end(spline.cross_sections, end.is_start)
                t = dist / params.endpoint_taper_distance_meters
                fade = blend_weight(t, BlendFunctionType.QUINTIC)
                for cs, t_i, b in zip(spline.cross_sections, t, fade):
                    if t_i >= 1.0:
                        continue
                    original = cs.target_elevation
                    at_end = original + (terrain - original) * strength
                    cs.target_elevation = float(at_end + (original - at_end) * b)
                    if abs(cs.target_elevation - original) > MIN_INFLUENCE:
                        changed += 1
        return changed
