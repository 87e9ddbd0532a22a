"""
Road smoothing parameter models.

Parameters are plain dataclasses grouped by concern. Each group exposes
``validate()`` returning a list of human-readable problems instead of raising,
so the smoother can report every out-of-range value in one error before any
processing starts.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np
from numpy.typing import NDArray


class BlendFunctionType(str, Enum):
    """Shoulder blend curve shapes."""

    LINEAR = "linear"
    COSINE = "cosine"
    CUBIC = "cubic"  # smoothstep
    QUINTIC = "quintic"  # smootherstep


class PostProcessingSmoothingType(str, Enum):
    """Filters available for smoothing the blended road area."""

    GAUSSIAN = "gaussian"
    BOX = "box"
    BILATERAL = "bilateral"  # edge preserving


class SplineInterpolationType(str, Enum):
    """How a road spline passes through its control points."""

    SMOOTH_INTERPOLATED = "smooth_interpolated"
    LINEAR_CONTROL_POINTS = "linear_control_points"


# Road priority by OSM highway tag, higher wins at junctions
OSM_ROAD_PRIORITY: Dict[str, int] = {
    "motorway": 100,
    "motorway_link": 95,
    "trunk": 90,
    "trunk_link": 85,
    "primary": 80,
    "primary_link": 75,
    "secondary": 70,
    "secondary_link": 65,
    "tertiary": 60,
    "tertiary_link": 55,
    "unclassified": 50,
    "residential": 45,
    "living_street": 42,
    "service": 40,
    "track": 30,
    "path": 20,
    "footway": 15,
    "cycleway": 15,
}

DEFAULT_ROAD_PRIORITY = 35


def road_priority(osm_road_type: Optional[str], road_width_meters: float) -> int:
    """
    Resolve the junction priority of a road.

    Args:
        osm_road_type: OSM highway tag, if the road came from OSM
        road_width_meters: Road width used when no tag is available

    Returns:
        Priority in [10, 100]; higher priority roads dominate junction elevations
    """
    if osm_road_type:
        return OSM_ROAD_PRIORITY.get(osm_road_type.lower(), DEFAULT_ROAD_PRIORITY)
    return int(min(max(road_width_meters * 5.0, 10.0), 100.0))


def _check_range(
    errors: List[str], name: str, value: float, low: float, high: float
) -> None:
    if value < low or value > high:
        errors.append(f"{name} must be between {low:g} and {high:g} (got {value:g})")


@dataclass
class SplineRoadParameters:
    """
    Centerline extraction and spline fitting parameters.

    Attributes:
        interpolation_type: Smooth (Kochanek-Bartels) or linear through control points
        densify_max_spacing_pixels: Maximum spacing between path points after densify
        ordering_neighbor_radius_pixels: Neighbor radius used when reordering points
        bridge_endpoint_max_distance_pixels: Join path endpoints closer than this
        simplify_tolerance_pixels: Douglas-Peucker tolerance, 0 disables it
        prefer_straight_through_junctions: Continue straight through junction cells
        junction_angle_threshold: Maximum deviation (degrees) for straight-through
        min_path_length_pixels: Paths shorter than this are discarded
        skeleton_dilation_radius: Mask dilation before thinning (pixels)
        spur_prune_cap: Upper bound on spur pruning iterations
        tension: Kochanek-Bartels tension (0 = Catmull-Rom, 1 = tight)
        continuity: Kochanek-Bartels continuity (-1 sharp, +1 smooth)
        bias: Kochanek-Bartels bias (-1 toward previous, +1 toward next)
        use_butterworth_filter: Butterworth low-pass instead of box filter
        butterworth_filter_order: Filter order (1-8), higher is flatter
        global_leveling_strength: 0 follows terrain, 1 flattens to the mean
    """

    interpolation_type: SplineInterpolationType = SplineInterpolationType.LINEAR_CONTROL_POINTS
    densify_max_spacing_pixels: float = 2.0
    ordering_neighbor_radius_pixels: float = 2.5
    bridge_endpoint_max_distance_pixels: float = 30.0
    simplify_tolerance_pixels: float = 0.5
    prefer_straight_through_junctions: bool = False
    junction_angle_threshold: float = 45.0
    min_path_length_pixels: float = 20.0
    skeleton_dilation_radius: int = 1
    spur_prune_cap: int = 10
    tension: float = 0.3
    continuity: float = 0.5
    bias: float = 0.0
    use_butterworth_filter: bool = True
    butterworth_filter_order: int = 3
    global_leveling_strength: float = 0.0

    def validate(self) -> List[str]:
        """
        Collect validation problems.

        Returns:
            List of error messages, empty when valid
        """
        errors: List[str] = []
        if self.densify_max_spacing_pixels <= 0:
            errors.append("densify_max_spacing_pixels must be greater than 0")
        if self.ordering_neighbor_radius_pixels < 1:
            errors.append("ordering_neighbor_radius_pixels must be at least 1")
        if self.bridge_endpoint_max_distance_pixels < 0:
            errors.append("bridge_endpoint_max_distance_pixels must be non-negative")
        if self.simplify_tolerance_pixels < 0:
            errors.append("simplify_tolerance_pixels must be non-negative")
        _check_range(errors, "junction_angle_threshold", self.junction_angle_threshold, 0, 180)
        if self.min_path_length_pixels < 0:
            errors.append("min_path_length_pixels must be non-negative")
        _check_range(errors, "skeleton_dilation_radius", self.skeleton_dilation_radius, 0, 5)
        if self.spur_prune_cap < 0:
            errors.append("spur_prune_cap must be non-negative")
        _check_range(errors, "tension", self.tension, 0, 1)
        _check_range(errors, "continuity", self.continuity, -1, 1)
        _check_range(errors, "bias", self.bias, -1, 1)
        _check_range(errors, "butterworth_filter_order", self.butterworth_filter_order, 1, 8)
        _check_range(errors, "global_leveling_strength", self.global_leveling_strength, 0, 1)
        return errors


@dataclass
class JunctionHarmonizationParameters:
    """
    Junction and endpoint elevation harmonization parameters.

    Attributes:
        enable_junction_harmonization: Master switch for this stage
        junction_detection_radius_meters: Endpoints closer than this form a junction
        junction_blend_distance_meters: Distance over which paths blend to the junction
        blend_function_type: Curve used for the junction blend
        enable_endpoint_taper: Taper isolated endpoints back toward terrain
        endpoint_taper_distance_meters: Length of the endpoint taper
        endpoint_terrain_blend_strength: 0 keeps road elevation, 1 matches terrain
        force_uniform_roundabout_elevation: Flatten roundabout rings to one elevation
    """

    enable_junction_harmonization: bool = True
    junction_detection_radius_meters: float = 20.0
    junction_blend_distance_meters: float = 40.0
    blend_function_type: BlendFunctionType = BlendFunctionType.COSINE
    enable_endpoint_taper: bool = True
    endpoint_taper_distance_meters: float = 30.0
    endpoint_terrain_blend_strength: float = 0.3
    force_uniform_roundabout_elevation: bool = True

    def validate(self) -> List[str]:
        """
        Collect validation problems.

        Returns:
            List of error messages, empty when valid
        """
        errors: List[str] = []
        if self.junction_detection_radius_meters <= 0:
            errors.append("junction_detection_radius_meters must be greater than 0")
        if self.junction_blend_distance_meters <= 0:
            errors.append("junction_blend_distance_meters must be greater than 0")
        if self.endpoint_taper_distance_meters <= 0:
            errors.append("endpoint_taper_distance_meters must be greater than 0")
        _check_range(
            errors,
            "endpoint_terrain_blend_strength",
            self.endpoint_terrain_blend_strength,
            0,
            1,
        )
        return errors


@dataclass
class PostProcessingParameters:
    """
    Smoothing applied to the blended road area after blending.

    Only cells within the widest road half width plus
    ``mask_extension_meters`` of a road are filtered; terrain further away
    keeps its blended value.

    Attributes:
        enable_post_processing_smoothing: Master switch for this stage
        smoothing_type: Gaussian, box or bilateral filter
        kernel_size: Filter window in pixels, odd and at least 3
        sigma: Gaussian and bilateral spatial sigma in pixels
        mask_extension_meters: Filtered band beyond the road edge
        iterations: Number of filter passes
    """

    enable_post_processing_smoothing: bool = False
    smoothing_type: PostProcessingSmoothingType = PostProcessingSmoothingType.GAUSSIAN
    kernel_size: int = 7
    sigma: float = 1.5
    mask_extension_meters: float = 6.0
    iterations: int = 1

    def validate(self) -> List[str]:
        """
        Collect validation problems.

        Returns:
            List of error messages, empty when valid
        """
        errors: List[str] = []
        if self.kernel_size < 3 or self.kernel_size % 2 == 0:
            errors.append(f"kernel_size must be an odd number of at least 3 (got {self.kernel_size})")
        if self.sigma <= 0:
            errors.append("sigma must be greater than 0")
        if self.mask_extension_meters < 0:
            errors.append("mask_extension_meters must be non-negative")
        if self.iterations < 1:
            errors.append("iterations must be at least 1")
        return errors


@dataclass
class RoadSmoothingParameters:
    """
    Complete smoothing configuration for one road material.

    Attributes:
        road_width_meters: Width of the flattened road core
        terrain_affected_range_meters: Shoulder width blended on each side
        road_max_slope_degrees: Longitudinal slope cap
        side_max_slope_degrees: Shoulder slope cap
        cross_section_interval_meters: Spacing of cross-sections along a spline
        longitudinal_smoothing_window_meters: Length of the profile low-pass window
        blend_function_type: Shoulder blend curve
        enable_max_slope_constraint: Clamp the profile to road_max_slope_degrees
        enable_side_slope_clamp: Clamp shoulders to side_max_slope_degrees
        osm_road_type: OSM highway tag used for junction priority
        exclusion_mask: Cells where no smoothing may happen (bridges, water)
        export_skeleton_debug_image: Write the skeleton overlay image
        export_spline_debug_image: Write the spline/cross-section overlay image
        export_smoothed_elevation_debug_image: Write the elevation heatmap
        export_junction_debug_image: Write the junction overlay image
        debug_output_directory: Where debug images are written
        spline: Centerline and spline parameters
        junctions: Junction harmonization parameters
        post_processing: Smoothing of the blended road area
    """

    road_width_meters: float = 8.0
    terrain_affected_range_meters: float = 15.0
    road_max_slope_degrees: float = 8.0
    side_max_slope_degrees: float = 30.0
    cross_section_interval_meters: float = 2.0
    longitudinal_smoothing_window_meters: float = 20.0
    blend_function_type: BlendFunctionType = BlendFunctionType.COSINE
    enable_max_slope_constraint: bool = False
    enable_side_slope_clamp: bool = True
    osm_road_type: Optional[str] = None
    exclusion_mask: Optional[NDArray[np.bool_]] = field(default=None, repr=False)
    export_skeleton_debug_image: bool = False
    export_spline_debug_image: bool = False
    export_smoothed_elevation_debug_image: bool = False
    export_junction_debug_image: bool = False
    debug_output_directory: Optional[Path] = None
    spline: SplineRoadParameters = field(default_factory=SplineRoadParameters)
    junctions: JunctionHarmonizationParameters = field(
        default_factory=JunctionHarmonizationParameters
    )
    post_processing: PostProcessingParameters = field(default_factory=PostProcessingParameters)

    @property
    def max_affected_distance_meters(self) -> float:
        """Distance from the centerline beyond which terrain is untouched."""
        return self.road_width_meters / 2.0 + self.terrain_affected_range_meters

    @property
    def priority(self) -> int:
        """Junction priority of this road material."""
        return road_priority(self.osm_road_type, self.road_width_meters)

    @property
    def wants_debug_images(self) -> bool:
        """Whether any debug image export is enabled."""
        return (
            self.export_skeleton_debug_image
            or self.export_spline_debug_image
            or self.export_smoothed_elevation_debug_image
            or self.export_junction_debug_image
        )

    def smoothing_window_samples(self) -> int:
        """
        Profile filter window in samples, derived from the window length in meters.

        Returns:
            Odd window size of at least 3 samples
        """
        window = int(round(self.longitudinal_smoothing_window_meters / self.cross_section_interval_meters))
        window = max(window, 3)
        if window % 2 == 0:
            window += 1
        return window

    def validate(self) -> List[str]:
        """
        Collect validation problems from this group and its nested groups.

        Returns:
            List of error messages, empty when valid
        """
        errors: List[str] = []
        if self.road_width_meters <= 0:
            errors.append("road_width_meters must be greater than 0")
        if self.terrain_affected_range_meters < 0:
            errors.append("terrain_affected_range_meters must be non-negative")
        _check_range(errors, "road_max_slope_degrees", self.road_max_slope_degrees, 0, 90)
        _check_range(errors, "side_max_slope_degrees", self.side_max_slope_degrees, 0, 90)
        if self.cross_section_interval_meters <= 0:
            errors.append("cross_section_interval_meters must be greater than 0")
        if self.longitudinal_smoothing_window_meters <= 0:
            errors.append("longitudinal_smoothing_window_meters must be greater than 0")
        if self.exclusion_mask is not None and np.ndim(self.exclusion_mask) != 2:
            errors.append("exclusion_mask must be a 2D array")

        errors.extend(self.spline.validate())
        errors.extend(self.junctions.validate())
        errors.extend(self.post_processing.validate())
        return errors

    def leveling_range_warning(self) -> Optional[str]:
        """
        Check the empirical leveling/affected-range guideline.

        Strong global leveling lifts or lowers the road away from the terrain,
        which needs a wide shoulder to avoid disconnected road patches.

        Returns:
            Warning text when the guideline is not met, otherwise None
        """
        strength = self.spline.global_leveling_strength
        if strength <= 0.5:
            return None
        recommended = 12.0 + 20.0 * strength
        if self.terrain_affected_range_meters < recommended:
            return (
                f"global_leveling_strength={strength:.2f} with "
                f"terrain_affected_range_meters={self.terrain_affected_range_meters:.1f}; "
                f"at least {recommended:.1f}m is recommended to avoid disconnected road segments"
            )
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert the scalar parameters to a dictionary for logging."""
        return {
            "road_width_meters": self.road_width_meters,
            "terrain_affected_range_meters": self.terrain_affected_range_meters,
            "road_max_slope_degrees": self.road_max_slope_degrees,
            "side_max_slope_degrees": self.side_max_slope_degrees,
            "cross_section_interval_meters": self.cross_section_interval_meters,
            "longitudinal_smoothing_window_meters": self.longitudinal_smoothing_window_meters,
            "blend_function_type": self.blend_function_type.value,
            "interpolation_type": self.spline.interpolation_type.value,
            "global_leveling_strength": self.spline.global_leveling_strength,
            "junction_harmonization": self.junctions.enable_junction_harmonization,
            "post_processing": self.post_processing.enable_post_processing_smoothing,
            "priority": self.priority,
        }
