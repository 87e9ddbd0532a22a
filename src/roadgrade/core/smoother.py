"""
Road smoothing entry points.

``smooth_roads`` grades the roads of one material into a heightmap;
``MultiMaterialRoadSmoother`` handles several materials, either one after
another or as one network with junctions harmonized across materials.

Every input is validated before any processing starts, and all problems
are reported together in one ValidationError. The input heightmap is
never modified.
"""

import logging
from pathlib import Path
from typing import Any, List, Optional, Sequence

import numpy as np
from numpy.typing import NDArray

from roadgrade.core.blending.blender import DistanceFieldBlender
from roadgrade.core.blending.post_processing import PostProcessingSmoother
from roadgrade.core.blending.statistics import compute_delta_map, compute_statistics, summarize_delta
from roadgrade.core.config import Settings, settings as default_settings
from roadgrade.core.errors import ValidationError
from roadgrade.core.junctions.detector import JunctionDetector
from roadgrade.core.junctions.harmonizer import JunctionHarmonizer
from roadgrade.core.junctions.roundabout import RoundaboutHarmonizer
from roadgrade.core.logging_config import add_log_context
from roadgrade.core.network import MaterialRoadInput, UnifiedRoadNetworkBuilder
from roadgrade.core.visualization.debug_images import DebugImageWriter
from roadgrade.models.geometry import JunctionInfo, RoadPath, UnifiedRoadNetwork
from roadgrade.models.parameters import RoadSmoothingParameters
from roadgrade.models.results import SmoothingResult, SmoothingStatistics
from roadgrade.utils.logging import PerformanceTimer

logger = logging.getLogger(__name__)


def validate_inputs(
    heightmap: Any,
    materials: Sequence[MaterialRoadInput],
    meters_per_pixel: float,
    config: Optional[Settings] = None,
) -> None:
    """
    Check every input and raise one error listing all problems.

    Args:
        heightmap: Terrain heightmap
        materials: Road inputs per material
        meters_per_pixel: Grid resolution
        config: Engine settings (grid size limit)

    Raises:
        ValidationError: When any input is invalid
    """
    config = config or default_settings
    errors: List[str] = []

    shape = None
    array = np.asarray(heightmap)
    if array.ndim != 2:
        errors.append(f"heightmap must be a 2D array (got {array.ndim} dimensions)")
    elif not np.issubdtype(array.dtype, np.number):
        errors.append(f"heightmap must be numeric (got dtype {array.dtype})")
    elif min(array.shape) < 2:
        errors.append(f"heightmap must be at least 2x2 (got {array.shape[0]}x{array.shape[1]})")
    elif array.size > config.max_grid_cells:
        errors.append(f"heightmap has {array.size} cells, the limit is {config.max_grid_cells}")
    else:
        shape = array.shape

    if not np.isfinite(meters_per_pixel) or meters_per_pixel <= 0:
        errors.append(f"meters_per_pixel must be greater than 0 (got {meters_per_pixel})")

    multiple = len(materials) > 1
    for material in materials:
        prefix = f"{material.material_name}: " if multiple else ""
        errors.extend(prefix + message for message in material.parameters.validate())

        if (material.mask is None) == (material.paths is None):
            errors.append(f"{prefix}exactly one of mask and paths must be given")
        if material.mask is not None and shape is not None and np.shape(material.mask) != shape:
            errors.append(
                f"{prefix}mask shape {np.shape(material.mask)} does not match heightmap shape {shape}"
            )
        if material.paths is not None:
            for index, path in enumerate(material.paths):
                if not isinstance(path, RoadPath):
                    errors.append(f"{prefix}paths[{index}] must be a RoadPath")
                elif len(path.points) < 2:
                    errors.append(f"{prefix}paths[{index}] needs at least 2 points")

        exclusion = material.parameters.exclusion_mask
        if exclusion is not None and shape is not None and np.ndim(exclusion) == 2 and np.shape(exclusion) != shape:
            errors.append(
                f"{prefix}exclusion_mask shape {np.shape(exclusion)} does not match heightmap shape {shape}"
            )

    if errors:
        raise ValidationError.from_messages(errors, context="road smoothing input")


def _output_dtype(heightmap: NDArray[Any]) -> np.dtype:
    if np.issubdtype(heightmap.dtype, np.floating):
        return heightmap.dtype
    return np.dtype(np.float32)


class _SmoothingRun:
    """One pass of the pipeline over a single network."""

    def __init__(self, meters_per_pixel: float, config: Settings):
        self.meters_per_pixel = meters_per_pixel
        self.config = config

    def run(
        self,
        heightmap: NDArray[Any],
        materials: Sequence[MaterialRoadInput],
        network_leveling: bool = False,
        start_id: int = 0,
    ) -> SmoothingResult:
        original = np.asarray(heightmap, dtype=np.float64)
        names = ",".join(m.material_name for m in materials)

        with add_log_context(material=names), PerformanceTimer("smooth_roads"):
            network = UnifiedRoadNetworkBuilder(self.meters_per_pixel, self.config).build(
                materials, original, network_leveling=network_leveling, start_id=start_id
            )
            network.junctions = self._harmonize(network, original)

            blend = DistanceFieldBlender(self.meters_per_pixel, self.config).blend(original, network)
            graded = blend.heightmap
            if PostProcessingSmoother.parameters_for(network) is not None:
                graded = PostProcessingSmoother(self.meters_per_pixel).apply(graded, network, blend)
            statistics = compute_statistics(original, graded, network, blend, self.meters_per_pixel, self.config)

            dtype = _output_dtype(np.asarray(heightmap))
            modified = graded.astype(dtype)
            delta = compute_delta_map(original, graded).astype(dtype)

            for material in materials:
                self._write_debug_images(network, material, original, graded)

        if not statistics.meets_all_constraints:
            for violation in statistics.constraint_violations:
                logger.warning(f"Constraint violation: {violation}")
        return SmoothingResult(modified, delta, statistics, network)

    def _harmonize(self, network: UnifiedRoadNetwork, heightmap: NDArray[np.float64]) -> List[JunctionInfo]:
        """Roundabouts first, then every other junction."""
        roundabouts, junctions, handled = RoundaboutHarmonizer(self.meters_per_pixel).harmonize(
            network, heightmap
        )
        network.roundabouts = roundabouts

        if any(s.parameters.junctions.enable_junction_harmonization for s in network.splines):
            detected = JunctionDetector(handled_ends=handled).detect(network)
            enabled = [j for j in detected if self._harmonization_enabled(network, j)]
            JunctionHarmonizer(self.meters_per_pixel).harmonize(network, enabled, heightmap)
            junctions.extend(detected)

        for junction_id, junction in enumerate(junctions):
            junction.junction_id = junction_id
        return junctions

    @staticmethod
    def _harmonization_enabled(network: UnifiedRoadNetwork, junction: JunctionInfo) -> bool:
        for path_id in junction.path_ids:
            spline = network.get_spline(path_id)
            if spline is not None and not spline.parameters.junctions.enable_junction_harmonization:
                return False
        return True

    def _write_debug_images(
        self,
        network: UnifiedRoadNetwork,
        material: MaterialRoadInput,
        original: NDArray[np.float64],
        modified: NDArray[np.float64],
    ) -> None:
        params = material.parameters
        if not params.wants_debug_images:
            return
        output_dir = Path(params.debug_output_directory or self.config.debug_output_dir)
        writer = DebugImageWriter(output_dir, self.meters_per_pixel)
        writer.write_all(network, material.material_name, params, original, modified)


def smooth_roads(
    heightmap: NDArray[Any],
    parameters: RoadSmoothingParameters,
    meters_per_pixel: float,
    mask: Optional[NDArray[Any]] = None,
    paths: Optional[List[RoadPath]] = None,
    material_name: str = "road",
    settings: Optional[Settings] = None,
    network_leveling: bool = False,
) -> SmoothingResult:
    """
    Grade the roads of one material into a heightmap.

    Args:
        heightmap: Terrain heightmap [row, column] in meters; never modified
        parameters: Smoothing parameters
        meters_per_pixel: Grid resolution
        mask: Road mask, same shape as the heightmap
        paths: Explicit centerlines in world meters, instead of a mask
        material_name: Name used in logs, debug images and the geometry
        settings: Engine settings, defaults to the module-level settings
        network_leveling: Level toward the mean of all paths instead of each
            path's own mean

    Returns:
        SmoothingResult with read-only arrays in the heightmap's float dtype

    Raises:
        ValidationError: When any parameter or input is invalid
    """
    config = settings or default_settings
    material = MaterialRoadInput(material_name, parameters, mask=mask, paths=paths)
    validate_inputs(heightmap, [material], meters_per_pixel, config)

    warning = parameters.leveling_range_warning()
    if warning:
        logger.warning(warning)

    return _SmoothingRun(meters_per_pixel, config).run(heightmap, [material], network_leveling)


class MultiMaterialRoadSmoother:
    """
    Smooth roads of several materials into one heightmap.

    Args:
        settings: Engine settings, defaults to the module-level settings
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.config = settings or default_settings

    def smooth_all_roads(
        self,
        heightmap: NDArray[Any],
        materials: Sequence[MaterialRoadInput],
        meters_per_pixel: float,
        enable_cross_material_harmonization: bool = True,
    ) -> Optional[SmoothingResult]:
        """
        Smooth every material's roads.

        Cross-material mode builds one network from all materials, so
        junctions between roads of different materials are harmonized. It
        applies when enabled, more than one material is given and at least
        one material has junction harmonization on. Otherwise materials are
        processed in order, each on the previous material's output.

        Args:
            heightmap: Terrain heightmap; never modified
            materials: Road inputs per material
            meters_per_pixel: Grid resolution
            enable_cross_material_harmonization: Allow cross-material mode

        Returns:
            SmoothingResult, or None when no material has roads

        Raises:
            ValidationError: When any parameter or input is invalid
        """
        if not materials:
            logger.info("No road materials given, nothing to smooth")
            return None

        validate_inputs(heightmap, materials, meters_per_pixel, self.config)
        for material in materials:
            warning = material.parameters.leveling_range_warning()
            if warning:
                logger.warning(f"{material.material_name}: {warning}")

        runner = _SmoothingRun(meters_per_pixel, self.config)
        cross_material = (
            enable_cross_material_harmonization
            and len(materials) > 1
            and any(m.parameters.junctions.enable_junction_harmonization for m in materials)
        )
        if cross_material:
            logger.info(f"Smoothing {len(materials)} materials as one network")
            return runner.run(heightmap, materials)

        logger.info(f"Smoothing {len(materials)} materials sequentially")
        results: List[SmoothingResult] = []
        current: NDArray[Any] = np.asarray(heightmap)
        next_id = 0
        for material in materials:
            result = runner.run(current, [material], start_id=next_id)
            results.append(result)
            current = result.modified_heightmap
            next_id = result.geometry.next_path_id()

        if len(results) == 1:
            return results[0]
        return self._combine(heightmap, results, meters_per_pixel)

    def _combine(
        self,
        heightmap: NDArray[Any],
        results: List[SmoothingResult],
        meters_per_pixel: float,
    ) -> SmoothingResult:
        """Merge sequential per-material results into one."""
        final = results[-1].modified_heightmap.copy()
        original = np.asarray(heightmap, dtype=np.float64)

        network = UnifiedRoadNetwork()
        for result in results:
            network.splines.extend(result.geometry.splines)
            network.junctions.extend(result.geometry.junctions)
            network.roundabouts.extend(result.geometry.roundabouts)
            network.skeletons.update(result.geometry.skeletons)
            network.paths.update(result.geometry.paths)
        for junction_id, junction in enumerate(network.junctions):
            junction.junction_id = junction_id
        network.reindex()

        statistics = self._merge_statistics(original, final, results, meters_per_pixel)
        delta = compute_delta_map(original, final).astype(final.dtype)
        return SmoothingResult(final, delta, statistics, network)

    def _merge_statistics(
        self,
        original: NDArray[np.float64],
        final: NDArray[Any],
        results: List[SmoothingResult],
        meters_per_pixel: float,
    ) -> SmoothingStatistics:
        stats = summarize_delta(original, final, meters_per_pixel, self.config)
        strategies = []
        for result in results:
            run = result.statistics
            stats.max_road_slope = max(stats.max_road_slope, run.max_road_slope)
            stats.max_side_slope = max(stats.max_side_slope, run.max_side_slope)
            stats.max_transverse_slope = max(stats.max_transverse_slope, run.max_transverse_slope)
            for violation in run.constraint_violations:
                stats.add_violation(violation)
            if run.strategy and run.strategy not in strategies:
                strategies.append(run.strategy)
        stats.strategy = ",".join(strategies) or None
        return stats
