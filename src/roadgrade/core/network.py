"""
Unified road network construction.

Turns road masks or explicit centerlines of one or more materials into a
single network of splines with graded cross-sections. Path ids are unique
across materials so later stages can treat every road uniformly.
"""

import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence

import numpy as np
from numpy.typing import NDArray

from roadgrade.core.config import Settings, settings as default_settings
from roadgrade.core.elevation.profile import ElevationProfileCalculator
from roadgrade.core.errors import GeometryError
from roadgrade.core.junctions.roundabout import prepare_roundabouts
from roadgrade.core.logging_config import LogContext
from roadgrade.core.skeleton.path_assembler import PathAssembler
from roadgrade.core.skeleton.preprocess import apply_exclusions, to_binary_mask
from roadgrade.core.skeleton.skeletonizer import Skeletonizer
from roadgrade.core.splines.spline import RoadSpline
from roadgrade.models.geometry import NetworkSpline, RoadPath, UnifiedRoadNetwork
from roadgrade.models.parameters import RoadSmoothingParameters

logger = logging.getLogger(__name__)


@dataclass
class MaterialRoadInput:
    """
    Road description of one material layer.

    Exactly one of ``mask`` and ``paths`` is set.

    Attributes:
        material_name: Material layer name
        parameters: Smoothing parameters for this material
        mask: Road mask (bool, 0/1 or 0-255), same shape as the heightmap
        paths: Explicit centerlines in world meters
    """

    material_name: str
    parameters: RoadSmoothingParameters
    mask: Optional[NDArray[Any]] = None
    paths: Optional[List[RoadPath]] = None


@dataclass
class _PendingSpline:
    path_id: int
    spline: RoadSpline
    parameters: RoadSmoothingParameters
    material_name: str
    is_roundabout: bool


class UnifiedRoadNetworkBuilder:
    """
    Build a UnifiedRoadNetwork from per-material road inputs.

    Args:
        meters_per_pixel: Grid resolution
        config: Engine settings (spur prune cap)
    """

    def __init__(self, meters_per_pixel: float, config: Optional[Settings] = None) -> None:
        self.meters_per_pixel = meters_per_pixel
        self.config = config or default_settings
        self._next_id = 0

    def build(
        self,
        materials: Sequence[MaterialRoadInput],
        heightmap: NDArray[np.floating],
        network_leveling: bool = False,
        start_id: int = 0,
    ) -> UnifiedRoadNetwork:
        """
        Extract, fit and profile the roads of every material.

        Args:
            materials: Road inputs, processed in order
            heightmap: Terrain heightmap
            network_leveling: Level every path toward one network-wide mean
                instead of its own mean
            start_id: First path id, so separately built networks can be merged

        Returns:
            Network with graded cross-sections and consecutive global indices
        """
        network = UnifiedRoadNetwork()
        pending: List[_PendingSpline] = []
        self._next_id = start_id
        for material in materials:
            with LogContext(material=material.material_name):
                if material.mask is not None:
                    pending.extend(self._splines_from_mask(network, material))
                else:
                    pending.extend(self._splines_from_paths(material.paths or [], material))

        leveling_mean = self._network_mean(pending, heightmap) if network_leveling else None

        for item in pending:
            calculator = ElevationProfileCalculator(item.parameters, self.meters_per_pixel)
            sections = calculator.build_cross_sections(
                item.spline,
                heightmap,
                item.path_id,
                exclusion_mask=item.parameters.exclusion_mask,
                leveling_mean=leveling_mean,
            )
            network.splines.append(
                NetworkSpline(
                    path_id=item.path_id,
                    spline=item.spline,
                    parameters=item.parameters,
                    material_name=item.material_name,
                    cross_sections=sections,
                    is_roundabout=item.is_roundabout,
                )
            )

        network.reindex()
        logger.info(f"Built road network: {network.to_dict()}")
        return network

    def _splines_from_mask(
        self, network: UnifiedRoadNetwork, material: MaterialRoadInput
    ) -> List[_PendingSpline]:
        params = material.parameters
        spline_params = params.spline
        binary = apply_exclusions(to_binary_mask(material.mask), params.exclusion_mask)

        skeletonizer = Skeletonizer(
            dilation_radius=spline_params.skeleton_dilation_radius,
            min_path_length_pixels=spline_params.min_path_length_pixels,
            spur_prune_cap=min(spline_params.spur_prune_cap, self.config.spur_prune_cap),
        )
        skeleton = skeletonizer.skeletonize(binary)
        paths = PathAssembler(spline_params, start_id=self._next_id).assemble(skeleton.skeleton)
        self._next_id += len(paths)
        network.skeletons[material.material_name] = skeleton.skeleton
        network.paths[material.material_name] = paths

        splines: List[_PendingSpline] = []
        for path in paths:
            if path.is_filtered:
                continue
            try:
                spline = RoadSpline.from_pixels(
                    path.points,
                    self.meters_per_pixel,
                    spline_params.interpolation_type,
                    tension=spline_params.tension,
                    continuity=spline_params.continuity,
                    bias=spline_params.bias,
                    closed=path.is_closed,
                    path_id=path.path_id,
                )
            except GeometryError as e:
                logger.warning(f"Skipping path {path.path_id}: {e.message}")
                continue
            splines.append(_PendingSpline(path.path_id, spline, params, material.material_name, False))
        return splines

    def _splines_from_paths(self, paths: List[RoadPath], material: MaterialRoadInput) -> List[_PendingSpline]:
        params = material.parameters
        spline_params = params.spline
        prepared = prepare_roundabouts(
            paths,
            ring_half_width=params.road_width_meters / 2.0,
            join_distance=params.road_width_meters,
        )

        splines: List[_PendingSpline] = []
        for index, path in enumerate(prepared):
            try:
                spline = RoadSpline(
                    path.points,
                    interpolation_type=spline_params.interpolation_type,
                    tension=spline_params.tension,
                    continuity=spline_params.continuity,
                    bias=spline_params.bias,
                    closed=path.closed,
                )
            except GeometryError as e:
                logger.warning(f"Skipping road path {index}: {e.message}")
                continue
            splines.append(
                _PendingSpline(self._next_id, spline, params, material.material_name, path.is_roundabout)
            )
            self._next_id += 1

        logger.info(f"Fitted {len(splines)} splines from {len(paths)} road paths")
        return splines

    def _network_mean(self, pending: List[_PendingSpline], heightmap: NDArray[np.floating]) -> Optional[float]:
        """Mean smoothed terrain elevation over every path in the network."""
        profiles = []
        for item in pending:
            calculator = ElevationProfileCalculator(item.parameters, self.meters_per_pixel)
            profiles.append(calculator.smooth(calculator.raw_profile(item.spline, heightmap)))
        if not profiles:
            return None
        merged = np.concatenate(profiles)
        mean = float(merged[0]) if np.ptp(merged) == 0 else float(np.mean(merged))
        logger.info(f"Network leveling elevation: {mean:.2f}m")
        return mean
