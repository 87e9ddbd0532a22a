"""
Road geometry data models.

Coordinates follow one convention throughout the package: pixel positions
are ``(x, y)`` = ``(column, row)`` and world positions are pixel positions
multiplied by the meters-per-pixel scale. Heightmaps are indexed
``[row, column]``.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

import numpy as np
from numpy.typing import NDArray

from roadgrade.models.parameters import BlendFunctionType, RoadSmoothingParameters

if TYPE_CHECKING:
    from roadgrade.core.splines.spline import RoadSpline


@dataclass
class SkeletonPath:
    """
    Ordered centerline polyline traced from a skeleton.

    Attributes:
        path_id: Unique identifier within one extraction
        points: (N, 2) array of pixel (x, y) positions in walk order
        is_filtered: True when the path was dropped as too short
        is_closed: True when the walk returned to its start (loops, rings)
    """

    path_id: int
    points: NDArray[np.float64]
    is_filtered: bool = False
    is_closed: bool = False

    @property
    def pixel_length(self) -> float:
        """Polyline length in pixels."""
        if len(self.points) < 2:
            return 0.0
        return float(np.sum(np.linalg.norm(np.diff(self.points, axis=0), axis=1)))

    @property
    def start(self) -> NDArray[np.float64]:
        """First point (pixels)."""
        return self.points[0]

    @property
    def end(self) -> NDArray[np.float64]:
        """Last point (pixels)."""
        return self.points[-1]

    def __len__(self) -> int:
        return len(self.points)


@dataclass
class RoadPath:
    """
    Explicit centerline supplied by the caller instead of a mask.

    Attributes:
        points: (N, 2) world (x, y) positions in meters
        is_roundabout: Part of a roundabout ring; ring parts are merged
        closed: The path is a closed loop
    """

    points: NDArray[np.float64]
    is_roundabout: bool = False
    closed: bool = False

    def __post_init__(self) -> None:
        """Validate path shape."""
        self.points = np.asarray(self.points, dtype=np.float64)
        if self.points.ndim != 2 or self.points.shape[1] != 2:
            raise ValueError(f"Road path points must have shape (N, 2), got {self.points.shape}")


@dataclass
class CrossSection:
    """
    A sample along a road spline with its perpendicular and target elevation.

    Attributes:
        center: World position (x, y) in meters
        normal: Unit vector perpendicular to the road (right-hand side)
        tangent: Unit vector along the road
        target_elevation: Graded road elevation at this sample
        width_m: Road width at this sample
        path_id: Owning path
        local_index: Position along the owning path (monotonic)
        global_index: Position in the network-wide section list
        distance_along: Arclength from the path start in meters
        is_excluded: Inside an exclusion zone, never written to the terrain
    """

    center: NDArray[np.float64]
    normal: NDArray[np.float64]
    tangent: NDArray[np.float64]
    target_elevation: float
    width_m: float
    path_id: int
    local_index: int
    global_index: int = -1
    distance_along: float = 0.0
    is_excluded: bool = False

    @property
    def left_edge(self) -> NDArray[np.float64]:
        return self.center - self.normal * (self.width_m / 2.0)

    @property
    def right_edge(self) -> NDArray[np.float64]:
        return self.center + self.normal * (self.width_m / 2.0)


class JunctionType(str, Enum):
    """Kinds of road meeting points."""

    ENDPOINT_CLUSTER = "endpoint_cluster"
    T_JUNCTION = "t_junction"
    CROSSING = "crossing"
    ISOLATED_ENDPOINT = "isolated_endpoint"
    ROUNDABOUT = "roundabout"


@dataclass
class JunctionEnd:
    """
    One path taking part in a junction.

    Attributes:
        path_id: Participating path
        section_index: Local index of the section closest to the junction
        is_start: Whether the junction is at the path start (False for the end)
        is_continuous: The path runs through the junction instead of ending there
    """

    path_id: int
    section_index: int
    is_start: bool = True
    is_continuous: bool = False


@dataclass
class JunctionInfo:
    """
    A detected meeting point between paths, or an isolated endpoint.

    Attributes:
        junction_id: Unique identifier
        junction_type: Kind of junction
        position: World position (x, y) in meters
        ends: Participating paths
        blend_distance_m: Distance over which participants blend
        blend_function_type: Curve used for the blend
        harmonized_elevation: Elevation all participants meet at, once computed
    """

    junction_id: int
    junction_type: JunctionType
    position: NDArray[np.float64]
    ends: List[JunctionEnd] = field(default_factory=list)
    blend_distance_m: float = 0.0
    blend_function_type: BlendFunctionType = BlendFunctionType.COSINE
    harmonized_elevation: Optional[float] = None

    @property
    def path_ids(self) -> List[int]:
        return [end.path_id for end in self.ends]

    def to_dict(self) -> Dict[str, Any]:
        """Convert junction to dictionary."""
        return {
            "junction_id": self.junction_id,
            "junction_type": self.junction_type.value,
            "position": [float(self.position[0]), float(self.position[1])],
            "path_ids": self.path_ids,
            "blend_distance_m": self.blend_distance_m,
            "harmonized_elevation": self.harmonized_elevation,
        }


@dataclass
class RoundaboutInfo:
    """
    A roundabout ring and the roads connecting to it.

    Attributes:
        ring_path_id: Path id of the merged closed ring
        center: World position of the ring center (meters)
        radius_m: Mean ring radius
        connector_path_ids: Paths that end on the ring
        ring_elevation: Uniform ring elevation, when forced uniform
    """

    ring_path_id: int
    center: NDArray[np.float64]
    radius_m: float
    connector_path_ids: List[int] = field(default_factory=list)
    ring_elevation: Optional[float] = None


@dataclass
class NetworkSpline:
    """
    One road spline in the unified network.

    Attributes:
        path_id: Network-wide unique id
        spline: Fitted arclength-parameterized curve (world meters)
        parameters: Smoothing parameters of the owning material
        material_name: Owning material layer
        cross_sections: Sections along the spline, ordered by local_index
        is_roundabout: Part of a roundabout ring
    """

    path_id: int
    spline: "RoadSpline"
    parameters: RoadSmoothingParameters
    material_name: str
    cross_sections: List[CrossSection] = field(default_factory=list)
    is_roundabout: bool = False

    @property
    def priority(self) -> int:
        return self.parameters.priority

    @property
    def length_m(self) -> float:
        return self.spline.total_length

    def targets(self) -> NDArray[np.float64]:
        """Target elevations of the sections, in order."""
        return np.array([cs.target_elevation for cs in self.cross_sections], dtype=np.float64)

    def set_targets(self, values: NDArray[np.float64]) -> None:
        """Write target elevations back onto the sections, in order."""
        for cs, value in zip(self.cross_sections, values):
            cs.target_elevation = float(value)


@dataclass
class SectionArrays:
    """
    Column view of a list of cross-sections for vectorised passes.

    Attributes:
        centers: (N, 2) world positions
        normals: (N, 2) unit normals
        targets: (N,) target elevations
        widths: (N,) road widths
        path_ids: (N,) owning path ids
        excluded: (N,) exclusion flags
    """

    centers: NDArray[np.float64]
    normals: NDArray[np.float64]
    targets: NDArray[np.float64]
    widths: NDArray[np.float64]
    path_ids: NDArray[np.int64]
    excluded: NDArray[np.bool_]

    @classmethod
    def from_sections(cls, sections: List[CrossSection]) -> "SectionArrays":
        if not sections:
            return cls(
                centers=np.zeros((0, 2)),
                normals=np.zeros((0, 2)),
                targets=np.zeros(0),
                widths=np.zeros(0),
                path_ids=np.zeros(0, dtype=np.int64),
                excluded=np.zeros(0, dtype=bool),
            )
        return cls(
            centers=np.array([cs.center for cs in sections], dtype=np.float64),
            normals=np.array([cs.normal for cs in sections], dtype=np.float64),
            targets=np.array([cs.target_elevation for cs in sections], dtype=np.float64),
            widths=np.array([cs.width_m for cs in sections], dtype=np.float64),
            path_ids=np.array([cs.path_id for cs in sections], dtype=np.int64),
            excluded=np.array([cs.is_excluded for cs in sections], dtype=bool),
        )

    def __len__(self) -> int:
        return len(self.targets)


@dataclass
class UnifiedRoadNetwork:
    """
    All road splines of a terrain, across materials.

    This is the unit the junction harmonizer and the adaptive strategy
    selector work on, and the geometry returned to callers.

    Attributes:
        splines: Network splines keyed implicitly by their path_id
        junctions: Junctions detected during harmonization
        roundabouts: Roundabouts merged during harmonization
        skeletons: Skeleton per material (pixel grids), when extracted from masks
        paths: Traced skeleton paths per material, including filtered ones
    """

    splines: List[NetworkSpline] = field(default_factory=list)
    junctions: List[JunctionInfo] = field(default_factory=list)
    roundabouts: List[RoundaboutInfo] = field(default_factory=list)
    skeletons: Dict[str, NDArray[np.bool_]] = field(default_factory=dict, repr=False)
    paths: Dict[str, List[SkeletonPath]] = field(default_factory=dict, repr=False)

    @property
    def cross_sections(self) -> List[CrossSection]:
        """All sections, in network order."""
        return [cs for spline in self.splines for cs in spline.cross_sections]

    @property
    def materials(self) -> List[str]:
        seen: List[str] = []
        for spline in self.splines:
            if spline.material_name not in seen:
                seen.append(spline.material_name)
        return seen

    def next_path_id(self) -> int:
        return max((s.path_id for s in self.splines), default=-1) + 1

    def get_spline(self, path_id: int) -> Optional[NetworkSpline]:
        for spline in self.splines:
            if spline.path_id == path_id:
                return spline
        return None

    def splines_for_material(self, material_name: str) -> List[NetworkSpline]:
        return [s for s in self.splines if s.material_name == material_name]

    def reindex(self) -> None:
        """Assign consecutive global indices across all sections."""
        index = 0
        for spline in self.splines:
            for local_index, cs in enumerate(spline.cross_sections):
                cs.local_index = local_index
                cs.path_id = spline.path_id
                cs.global_index = index
                index += 1

    def section_arrays(self) -> SectionArrays:
        return SectionArrays.from_sections(self.cross_sections)

    def geometry_for(self, material_name: str) -> "RoadGeometry":
        """Per-material view of the network."""
        splines = self.splines_for_material(material_name)
        if not splines:
            raise KeyError(f"No splines for material '{material_name}'")
        return RoadGeometry(
            material_name=material_name,
            parameters=splines[0].parameters,
            splines=splines,
            paths=self.paths.get(material_name, []),
            skeleton=self.skeletons.get(material_name),
        )

    def bounds_pixels(self, meters_per_pixel: float) -> Optional[Tuple[float, float, float, float]]:
        """Bounding box (min_x, min_y, max_x, max_y) of all section centers in pixels."""
        sections = self.cross_sections
        if not sections:
            return None
        centers = np.array([cs.center for cs in sections]) / meters_per_pixel
        return (
            float(centers[:, 0].min()),
            float(centers[:, 1].min()),
            float(centers[:, 0].max()),
            float(centers[:, 1].max()),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Summary for logging and reports."""
        return {
            "spline_count": len(self.splines),
            "cross_section_count": sum(len(s.cross_sections) for s in self.splines),
            "materials": self.materials,
            "junction_count": len(self.junctions),
            "roundabout_count": len(self.roundabouts),
            "total_length_m": float(sum(s.length_m for s in self.splines)),
        }


@dataclass
class RoadGeometry:
    """
    Road geometry of one material.

    Attributes:
        material_name: Material layer
        parameters: Smoothing parameters of the material
        splines: Network splines of the material
        paths: Traced skeleton paths, when extracted from a mask
        skeleton: Skeleton grid, when extracted from a mask
    """

    material_name: str
    parameters: RoadSmoothingParameters
    splines: List[NetworkSpline] = field(default_factory=list)
    paths: List[SkeletonPath] = field(default_factory=list)
    skeleton: Optional[NDArray[np.bool_]] = field(default=None, repr=False)

    @property
    def cross_sections(self) -> List[CrossSection]:
        return [cs for spline in self.splines for cs in spline.cross_sections]

    @property
    def mask_shape(self) -> Optional[Tuple[int, ...]]:
        return None if self.skeleton is None else self.skeleton.shape
