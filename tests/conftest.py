"""
Shared fixtures for roadgrade tests.
"""

import numpy as np
import pytest

from roadgrade.core.config import Settings
from roadgrade.core.splines.spline import RoadSpline
from roadgrade.models.geometry import CrossSection, NetworkSpline, RoadPath, UnifiedRoadNetwork
from roadgrade.models.parameters import RoadSmoothingParameters, SplineInterpolationType


@pytest.fixture
def settings() -> Settings:
    """Engine settings independent of the environment."""
    return Settings(_env_file=None, environment="development")


@pytest.fixture
def flat_heightmap() -> np.ndarray:
    """Flat terrain at 10m, 80 rows x 160 columns."""
    return np.full((80, 160), 10.0, dtype=np.float32)


@pytest.fixture
def sloped_heightmap() -> np.ndarray:
    """Terrain rising 0.05m per column, 100 rows x 200 columns."""
    cols = np.arange(200, dtype=np.float64)
    return np.tile(cols * 0.05, (100, 1))


@pytest.fixture
def rolling_heightmap() -> np.ndarray:
    """Smooth hills, 100 rows x 200 columns."""
    rows, cols = np.mgrid[0:100, 0:200].astype(np.float64)
    return 20.0 + 3.0 * np.sin(cols / 15.0) + 2.0 * np.cos(rows / 11.0)


@pytest.fixture
def straight_road_mask() -> np.ndarray:
    """Horizontal road, 7 pixels wide, across the flat heightmap."""
    mask = np.zeros((80, 160), dtype=bool)
    mask[37:44, 20:140] = True
    return mask


@pytest.fixture
def straight_road_path() -> RoadPath:
    """Horizontal centerline at y = 50m over the 200m wide heightmaps."""
    return RoadPath(np.array([[10.0, 50.0], [190.0, 50.0]]))


@pytest.fixture
def road_parameters() -> RoadSmoothingParameters:
    """Default parameters with a short smoothing window."""
    params = RoadSmoothingParameters(longitudinal_smoothing_window_meters=10.0)
    return params


@pytest.fixture
def make_spline():
    """
    Factory for network splines with cross-sections every ``interval`` meters.

    ``target`` is either a constant elevation or a callable of the section
    center (x, y) in meters.
    """

    def _make(
        path_id,
        points,
        target=0.0,
        parameters=None,
        material="road",
        interval=2.0,
        is_roundabout=False,
    ):
        parameters = parameters or RoadSmoothingParameters()
        curve = RoadSpline(
            np.asarray(points, dtype=np.float64), SplineInterpolationType.LINEAR_CONTROL_POINTS
        )
        distances, centers, tangents, normals = curve.sample_by_distance(interval)
        sections = [
            CrossSection(
                center=centers[i],
                normal=normals[i],
                tangent=tangents[i],
                target_elevation=float(target(centers[i]) if callable(target) else target),
                width_m=parameters.road_width_meters,
                path_id=path_id,
                local_index=i,
                distance_along=float(distances[i]),
            )
            for i in range(len(distances))
        ]
        return NetworkSpline(
            path_id, curve, parameters, material, cross_sections=sections, is_roundabout=is_roundabout
        )

    return _make


@pytest.fixture
def make_network(make_spline):
    """Factory for indexed networks from (path_id, points, target) tuples."""

    def _make(*specs, parameters=None):
        network = UnifiedRoadNetwork(
            splines=[make_spline(pid, pts, tgt, parameters) for pid, pts, tgt in specs]
        )
        network.reindex()
        return network

    return _make
