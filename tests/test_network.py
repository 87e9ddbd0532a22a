"""
Tests for unified road network construction.
"""

import numpy as np
import pytest

from roadgrade.core.network import MaterialRoadInput, UnifiedRoadNetworkBuilder
from roadgrade.models.geometry import RoadPath
from roadgrade.models.parameters import RoadSmoothingParameters, SplineRoadParameters


def _leveled(strength: float) -> RoadSmoothingParameters:
    return RoadSmoothingParameters(spline=SplineRoadParameters(global_leveling_strength=strength))


class TestUnifiedRoadNetworkBuilder:
    """Tests for UnifiedRoadNetworkBuilder.build."""

    def test_from_paths(self, settings, sloped_heightmap, straight_road_path):
        """Test explicit centerlines become graded splines."""
        material = MaterialRoadInput("road", RoadSmoothingParameters(), paths=[straight_road_path])
        network = UnifiedRoadNetworkBuilder(1.0, settings).build([material], sloped_heightmap)

        assert len(network.splines) == 1
        spline = network.splines[0]
        assert spline.path_id == 0
        assert spline.material_name == "road"
        assert len(spline.cross_sections) == 91
        assert [cs.global_index for cs in network.cross_sections] == list(range(91))
        # Terrain rises 0.05m per meter along the road
        assert spline.cross_sections[45].target_elevation == pytest.approx(5.0, abs=0.05)

    def test_start_id(self, settings, sloped_heightmap, straight_road_path):
        """Test path ids start at the requested id."""
        material = MaterialRoadInput("road", RoadSmoothingParameters(), paths=[straight_road_path])
        network = UnifiedRoadNetworkBuilder(1.0, settings).build([material], sloped_heightmap, start_id=5)
        assert network.splines[0].path_id == 5
        assert network.next_path_id() == 6

    def test_from_mask(self, settings, flat_heightmap, straight_road_mask):
        """Test a road mask is skeletonized into splines."""
        material = MaterialRoadInput("asphalt", RoadSmoothingParameters(), mask=straight_road_mask)
        network = UnifiedRoadNetworkBuilder(1.0, settings).build([material], flat_heightmap)

        assert len(network.splines) >= 1
        assert "asphalt" in network.skeletons
        assert network.paths["asphalt"]
        np.testing.assert_allclose(network.splines[0].targets(), 10.0, atol=1e-5)

    def test_ids_unique_across_materials(self, settings, sloped_heightmap):
        """Test every material's paths get their own ids."""
        materials = [
            MaterialRoadInput("asphalt", RoadSmoothingParameters(), paths=[RoadPath([[10.0, 20.0], [90.0, 20.0]])]),
            MaterialRoadInput(
                "gravel",
                RoadSmoothingParameters(road_width_meters=4.0),
                paths=[RoadPath([[10.0, 80.0], [90.0, 80.0]]), RoadPath([[110.0, 80.0], [190.0, 80.0]])],
            ),
        ]
        network = UnifiedRoadNetworkBuilder(1.0, settings).build(materials, sloped_heightmap)

        assert [s.path_id for s in network.splines] == [0, 1, 2]
        assert network.materials == ["asphalt", "gravel"]
        assert network.get_spline(1).cross_sections[0].width_m == 4.0

    def test_degenerate_path_skipped(self, settings, flat_heightmap, caplog):
        """Test zero-length paths are logged and skipped."""
        paths = [RoadPath([[10.0, 10.0], [10.0, 10.0]]), RoadPath([[20.0, 40.0], [140.0, 40.0]])]
        material = MaterialRoadInput("road", RoadSmoothingParameters(), paths=paths)
        network = UnifiedRoadNetworkBuilder(1.0, settings).build([material], flat_heightmap)

        assert len(network.splines) == 1
        assert "Skipping road path 0" in caplog.text

    def test_path_leveling(self, settings, sloped_heightmap):
        """Test full leveling flattens each path to its own mean."""
        paths = [RoadPath([[10.0, 20.0], [90.0, 20.0]]), RoadPath([[110.0, 80.0], [190.0, 80.0]])]
        material = MaterialRoadInput("road", _leveled(1.0), paths=paths)
        network = UnifiedRoadNetworkBuilder(1.0, settings).build([material], sloped_heightmap)

        first, second = (s.targets() for s in network.splines)
        assert np.ptp(first) == pytest.approx(0.0)
        assert np.ptp(second) == pytest.approx(0.0)
        assert second[0] - first[0] == pytest.approx(5.0, abs=0.2)

    def test_network_leveling(self, settings, sloped_heightmap):
        """Test network leveling pulls every path to one elevation."""
        paths = [RoadPath([[10.0, 20.0], [90.0, 20.0]]), RoadPath([[110.0, 80.0], [190.0, 80.0]])]
        material = MaterialRoadInput("road", _leveled(1.0), paths=paths)
        network = UnifiedRoadNetworkBuilder(1.0, settings).build(
            [material], sloped_heightmap, network_leveling=True
        )

        targets = np.concatenate([s.targets() for s in network.splines])
        np.testing.assert_allclose(targets, targets[0])
        assert targets[0] == pytest.approx(5.0, abs=0.2)

    def test_exclusion_flags_sections(self, settings, flat_heightmap):
        """Test sections over excluded cells are flagged."""
        exclusion = np.zeros(flat_heightmap.shape, dtype=bool)
        exclusion[:, :60] = True
        params = RoadSmoothingParameters(exclusion_mask=exclusion)
        material = MaterialRoadInput("road", params, paths=[RoadPath([[20.0, 40.0], [140.0, 40.0]])])
        network = UnifiedRoadNetworkBuilder(1.0, settings).build([material], flat_heightmap)

        sections = network.cross_sections
        assert sections[0].is_excluded
        assert not sections[-1].is_excluded
