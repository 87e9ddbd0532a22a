"""
Tests for the road smoothing entry points.
"""

import logging
import math

import numpy as np
import pytest

from roadgrade.core.config import Settings
from roadgrade.core.errors import ValidationError
from roadgrade.core.network import MaterialRoadInput
from roadgrade.core.smoother import MultiMaterialRoadSmoother, smooth_roads, validate_inputs
from roadgrade.models.geometry import JunctionType, RoadPath
from roadgrade.models.parameters import (
    JunctionHarmonizationParameters,
    PostProcessingParameters,
    RoadSmoothingParameters,
    SplineRoadParameters,
)
from roadgrade.models.results import SmoothingResult


def _ring(center=(100.0, 50.0), radius=15.0, count=36):
    angles = np.linspace(0.0, 2 * math.pi, count, endpoint=False)
    return np.asarray(center) + radius * np.column_stack([np.cos(angles), np.sin(angles)])


class TestValidateInputs:
    """Tests for input validation."""

    def test_valid(self, settings, flat_heightmap, straight_road_mask):
        """Test valid input passes."""
        material = MaterialRoadInput("road", RoadSmoothingParameters(), mask=straight_road_mask)
        validate_inputs(flat_heightmap, [material], 1.0, settings)

    def test_all_errors_collected(self, settings, flat_heightmap):
        """Test every problem is reported in one error."""
        params = RoadSmoothingParameters(road_width_meters=-1.0, spline=SplineRoadParameters(tension=2.0))
        material = MaterialRoadInput("road", params, mask=np.zeros((5, 5), dtype=bool))

        with pytest.raises(ValidationError) as exc_info:
            validate_inputs(flat_heightmap, [material], 0.0, settings)

        errors = exc_info.value.errors
        assert len(errors) == 4
        assert any("road_width_meters" in e for e in errors)
        assert any("tension" in e for e in errors)
        assert any("meters_per_pixel" in e for e in errors)
        assert any("mask shape" in e for e in errors)
        assert exc_info.value.details["errors"] == errors

    def test_mask_or_paths_required(self, settings, flat_heightmap):
        """Test a material needs exactly one road source."""
        material = MaterialRoadInput("road", RoadSmoothingParameters())
        with pytest.raises(ValidationError, match="exactly one of mask and paths"):
            validate_inputs(flat_heightmap, [material], 1.0, settings)

    @pytest.mark.parametrize(
        "heightmap, message",
        [
            (np.zeros(10), "2D"),
            (np.zeros((1, 10)), "at least 2x2"),
            (np.array([["a", "b"], ["c", "d"]]), "numeric"),
        ],
    )
    def test_bad_heightmap(self, settings, heightmap, message):
        """Test malformed heightmaps are rejected."""
        material = MaterialRoadInput("road", RoadSmoothingParameters(), paths=[RoadPath([[0.0, 0.0], [5.0, 0.0]])])
        with pytest.raises(ValidationError, match=message):
            validate_inputs(heightmap, [material], 1.0, settings)

    def test_grid_limit(self, flat_heightmap, straight_road_mask):
        """Test grids above the configured size are rejected."""
        config = Settings(_env_file=None, max_grid_cells=100)
        material = MaterialRoadInput("road", RoadSmoothingParameters(), mask=straight_road_mask)
        with pytest.raises(ValidationError, match="the limit is 100"):
            validate_inputs(flat_heightmap, [material], 1.0, config)

    def test_material_prefix(self, settings, flat_heightmap, straight_road_mask):
        """Test messages name their material when several are given."""
        materials = [
            MaterialRoadInput("asphalt", RoadSmoothingParameters(), mask=straight_road_mask),
            MaterialRoadInput("gravel", RoadSmoothingParameters(road_width_meters=0.0), mask=straight_road_mask),
        ]
        with pytest.raises(ValidationError) as exc_info:
            validate_inputs(flat_heightmap, materials, 1.0, settings)
        assert exc_info.value.errors == ["gravel: road_width_meters must be greater than 0"]


class TestSmoothRoads:
    """Tests for smooth_roads."""

    def test_flat_road_is_noop(self, settings, flat_heightmap, straight_road_mask):
        """Test a road on flat terrain leaves the terrain as it was."""
        result = smooth_roads(
            flat_heightmap, RoadSmoothingParameters(), 1.0, mask=straight_road_mask, settings=settings
        )

        assert isinstance(result, SmoothingResult)
        np.testing.assert_allclose(result.modified_heightmap, 10.0, atol=1e-5)
        np.testing.assert_allclose(result.delta_map, 0.0, atol=1e-5)
        assert result.statistics.pixels_modified == 0
        assert result.statistics.meets_all_constraints

    def test_flat_float64_exact(self, settings, straight_road_mask):
        """Test flat float64 terrain comes back bit for bit."""
        heightmap = np.full((80, 160), 0.1, dtype=np.float64)
        result = smooth_roads(heightmap, RoadSmoothingParameters(), 1.0, mask=straight_road_mask, settings=settings)

        np.testing.assert_array_equal(result.modified_heightmap, heightmap)
        assert not result.delta_map.any()
        assert result.statistics.pixels_modified == 0

    def test_input_untouched_and_dtype(self, settings, flat_heightmap, straight_road_mask):
        """Test the input is not modified and the output keeps its dtype."""
        heightmap = flat_heightmap.copy()
        heightmap[:40] += 2.0
        original = heightmap.copy()

        result = smooth_roads(heightmap, RoadSmoothingParameters(), 1.0, mask=straight_road_mask, settings=settings)

        np.testing.assert_array_equal(heightmap, original)
        assert result.modified_heightmap.dtype == np.float32
        assert result.delta_map.dtype == np.float32
        assert not result.modified_heightmap.flags.writeable
        assert not result.delta_map.flags.writeable
        assert result.statistics.pixels_modified > 0

    def test_integer_heightmap(self, settings, straight_road_mask):
        """Test integer heightmaps produce float32 output."""
        heightmap = np.full((80, 160), 10, dtype=np.int16)
        result = smooth_roads(heightmap, RoadSmoothingParameters(), 1.0, mask=straight_road_mask, settings=settings)
        assert result.modified_heightmap.dtype == np.float32

    def test_invalid_parameters_raise(self, settings, flat_heightmap, straight_road_mask):
        """Test invalid parameters fail before any processing."""
        with pytest.raises(ValidationError):
            smooth_roads(
                flat_heightmap,
                RoadSmoothingParameters(cross_section_interval_meters=0.0),
                1.0,
                mask=straight_road_mask,
                settings=settings,
            )

    def test_gap_endpoints_meet(self, settings, sloped_heightmap):
        """Test two paths separated by a small gap meet at one elevation."""
        paths = [RoadPath([[10.0, 50.0], [100.0, 50.0]]), RoadPath([[103.0, 50.0], [190.0, 50.0]])]
        result = smooth_roads(sloped_heightmap, RoadSmoothingParameters(), 1.0, paths=paths, settings=settings)

        network = result.geometry
        end_a = network.get_spline(0).targets()[-1]
        start_b = network.get_spline(1).targets()[0]
        assert end_a == pytest.approx(start_b, abs=0.01)
        clusters = [j for j in network.junctions if j.junction_type == JunctionType.ENDPOINT_CLUSTER]
        assert len(clusters) == 1
        assert [j.junction_id for j in network.junctions] == list(range(len(network.junctions)))

    def test_harmonization_disabled(self, settings, sloped_heightmap):
        """Test no junctions are detected when harmonization is off."""
        params = RoadSmoothingParameters(
            junctions=JunctionHarmonizationParameters(enable_junction_harmonization=False)
        )
        paths = [RoadPath([[10.0, 50.0], [100.0, 50.0]]), RoadPath([[103.0, 50.0], [190.0, 50.0]])]
        result = smooth_roads(sloped_heightmap, params, 1.0, paths=paths, settings=settings)
        assert result.geometry.junctions == []

    def test_leveling_warning(self, settings, flat_heightmap, straight_road_mask, caplog):
        """Test strong leveling with a narrow shoulder is warned about."""
        params = RoadSmoothingParameters(spline=SplineRoadParameters(global_leveling_strength=0.9))
        smooth_roads(flat_heightmap, params, 1.0, mask=straight_road_mask, settings=settings)
        assert "recommended" in caplog.text

    def test_post_processing(self, settings, rolling_heightmap, straight_road_path):
        """Test post-processing smooths the road area and nothing far from it."""
        enabled = RoadSmoothingParameters(
            post_processing=PostProcessingParameters(enable_post_processing_smoothing=True, iterations=2)
        )
        plain = smooth_roads(
            rolling_heightmap, RoadSmoothingParameters(), 1.0, paths=[straight_road_path], settings=settings
        )
        smoothed = smooth_roads(rolling_heightmap, enabled, 1.0, paths=[straight_road_path], settings=settings)

        # The road is at row 50; the mask reaches 4m + 6m from its edge
        np.testing.assert_array_equal(smoothed.modified_heightmap[:30], plain.modified_heightmap[:30])
        np.testing.assert_array_equal(smoothed.modified_heightmap[71:], plain.modified_heightmap[71:])
        assert not np.array_equal(smoothed.modified_heightmap[40:61], plain.modified_heightmap[40:61])

    def test_log_records_carry_material(self, settings, flat_heightmap, straight_road_mask, caplog):
        """Test pipeline log records are tagged with the material name."""
        caplog.set_level(logging.INFO)
        smooth_roads(
            flat_heightmap, RoadSmoothingParameters(), 1.0, mask=straight_road_mask, material_name="asphalt",
            settings=settings,
        )

        tagged = [r for r in caplog.records if getattr(r, "material", None) == "asphalt"]
        assert tagged
        assert any(r.name == "roadgrade.core.blending.blender" for r in tagged)

    @pytest.mark.slow
    def test_roundabout(self, settings, sloped_heightmap):
        """Test a ring with two connectors is graded to one elevation."""
        ring = _ring()
        paths = [
            RoadPath(ring[:19], is_roundabout=True),
            RoadPath(np.vstack([ring[18:], ring[:1]]), is_roundabout=True),
            RoadPath([[20.0, 50.0], [100.0, 50.0]]),
            RoadPath([[100.0, 50.0], [180.0, 50.0]]),
        ]
        result = smooth_roads(sloped_heightmap, RoadSmoothingParameters(), 1.0, paths=paths, settings=settings)
        network = result.geometry

        assert len(network.roundabouts) == 1
        info = network.roundabouts[0]
        ring_spline = network.get_spline(info.ring_path_id)
        np.testing.assert_allclose(ring_spline.targets(), info.ring_elevation)
        assert len(info.connector_path_ids) == 2

        west, east = (network.get_spline(pid) for pid in info.connector_path_ids)
        assert west.targets()[-1] == pytest.approx(info.ring_elevation)
        assert east.targets()[0] == pytest.approx(info.ring_elevation)
        # Top of the ring, away from both connectors
        assert result.modified_heightmap[65, 100] == pytest.approx(info.ring_elevation, abs=1e-4)

    @pytest.mark.slow
    def test_debug_images(self, settings, flat_heightmap, straight_road_mask, tmp_path):
        """Test every requested debug image is written."""
        params = RoadSmoothingParameters(
            export_skeleton_debug_image=True,
            export_spline_debug_image=True,
            export_smoothed_elevation_debug_image=True,
            export_junction_debug_image=True,
            debug_output_directory=tmp_path,
        )
        smooth_roads(flat_heightmap, params, 1.0, mask=straight_road_mask, material_name="asphalt", settings=settings)

        for name in ("skeleton", "splines", "elevation", "junctions"):
            assert (tmp_path / f"asphalt_{name}.png").exists()


class TestMultiMaterialRoadSmoother:
    """Tests for MultiMaterialRoadSmoother.smooth_all_roads."""

    @pytest.fixture
    def materials(self):
        """Asphalt and gravel roads meeting end to end."""
        return [
            MaterialRoadInput("asphalt", RoadSmoothingParameters(), paths=[RoadPath([[10.0, 50.0], [100.0, 50.0]])]),
            MaterialRoadInput(
                "gravel",
                RoadSmoothingParameters(road_width_meters=5.0),
                paths=[RoadPath([[103.0, 50.0], [190.0, 50.0]])],
            ),
        ]

    def test_no_materials(self, settings, flat_heightmap):
        """Test nothing to smooth gives None."""
        assert MultiMaterialRoadSmoother(settings).smooth_all_roads(flat_heightmap, [], 1.0) is None

    def test_single_material(self, settings, flat_heightmap, straight_road_mask):
        """Test one material behaves like smooth_roads."""
        material = MaterialRoadInput("road", RoadSmoothingParameters(), mask=straight_road_mask)
        result = MultiMaterialRoadSmoother(settings).smooth_all_roads(flat_heightmap, [material], 1.0)
        np.testing.assert_allclose(result.modified_heightmap, 10.0, atol=1e-5)

    def test_cross_material_junction(self, settings, sloped_heightmap, materials):
        """Test roads of different materials are harmonized together."""
        result = MultiMaterialRoadSmoother(settings).smooth_all_roads(sloped_heightmap, materials, 1.0)
        network = result.geometry

        assert network.materials == ["asphalt", "gravel"]
        assert [s.path_id for s in network.splines] == [0, 1]
        end_a = network.get_spline(0).targets()[-1]
        start_b = network.get_spline(1).targets()[0]
        assert end_a == pytest.approx(start_b, abs=0.01)
        assert any(j.junction_type == JunctionType.ENDPOINT_CLUSTER for j in network.junctions)

    def test_sequential(self, settings, sloped_heightmap, materials):
        """Test sequential mode keeps ids unique and merges the results."""
        result = MultiMaterialRoadSmoother(settings).smooth_all_roads(
            sloped_heightmap, materials, 1.0, enable_cross_material_harmonization=False
        )
        network = result.geometry

        assert [s.path_id for s in network.splines] == [0, 1]
        assert network.materials == ["asphalt", "gravel"]
        assert not any(j.junction_type == JunctionType.ENDPOINT_CLUSTER for j in network.junctions)
        assert [j.junction_id for j in network.junctions] == list(range(len(network.junctions)))
        np.testing.assert_allclose(
            result.delta_map, result.modified_heightmap - sloped_heightmap, atol=1e-9
        )
        assert result.statistics.pixels_modified > 0

    def test_invalid_material_raises(self, settings, flat_heightmap, materials):
        """Test validation covers every material."""
        materials[1].parameters.road_width_meters = -2.0
        with pytest.raises(ValidationError, match="gravel"):
            MultiMaterialRoadSmoother(settings).smooth_all_roads(flat_heightmap, materials, 1.0)
