"""
Tests for path assembly from skeletons.
"""

import numpy as np
import pytest

from roadgrade.core.skeleton.path_assembler import PathAssembler, densify_points, simplify_points
from roadgrade.models.parameters import SplineRoadParameters


@pytest.fixture
def params():
    """Default spline parameters."""
    return SplineRoadParameters()


def line_skeleton(shape, row, col_ranges):
    skeleton = np.zeros(shape, dtype=bool)
    for start, stop in col_ranges:
        skeleton[row, start:stop] = True
    return skeleton


class TestPointHelpers:
    """Tests for densify and simplify."""

    def test_densify(self):
        """Test spacing never exceeds the maximum."""
        dense = densify_points(np.array([[0.0, 0.0], [10.0, 0.0]]), 2.0)
        steps = np.linalg.norm(np.diff(dense, axis=0), axis=1)
        assert len(dense) == 6
        assert steps.max() <= 2.0 + 1e-9
        np.testing.assert_array_equal(dense[-1], [10.0, 0.0])

    def test_simplify_collinear(self):
        """Test collinear points collapse to the two ends."""
        points = np.column_stack([np.arange(10.0), np.zeros(10)])
        np.testing.assert_array_equal(simplify_points(points, 0.5), [[0.0, 0.0], [9.0, 0.0]])

    def test_simplify_keeps_corner(self):
        """Test a real corner survives simplification."""
        points = np.array([[0.0, 0.0], [5.0, 0.0], [10.0, 0.0], [10.0, 5.0], [10.0, 10.0]])
        simplified = simplify_points(points, 0.5)
        assert [10.0, 0.0] in simplified.tolist()
        assert len(simplified) == 3

    def test_simplify_zero_tolerance(self):
        """Test tolerance 0 keeps every point."""
        points = np.column_stack([np.arange(5.0), np.zeros(5)])
        np.testing.assert_array_equal(simplify_points(points, 0.0), points)


class TestPathAssembler:
    """Tests for PathAssembler."""

    def test_straight_line(self, params):
        """Test a straight skeleton becomes one path."""
        skeleton = line_skeleton((20, 60), 10, [(5, 55)])
        paths = PathAssembler(params).assemble(skeleton)

        assert len(paths) == 1
        path = paths[0]
        assert path.path_id == 0
        assert not path.is_filtered
        assert not path.is_closed
        assert path.pixel_length == pytest.approx(49.0)
        assert sorted([path.start[0], path.end[0]]) == [5.0, 54.0]
        np.testing.assert_array_equal(path.points[:, 1], 10.0)

    def test_short_path_filtered(self, params, caplog):
        """Test paths under the minimum length are flagged."""
        skeleton = line_skeleton((20, 60), 10, [(5, 15)])
        paths = PathAssembler(params).assemble(skeleton)

        assert len(paths) == 1
        assert paths[0].is_filtered
        assert "Discarded 1 paths" in caplog.text

    def test_start_id(self, params):
        """Test ids start at the given offset."""
        skeleton = line_skeleton((20, 60), 10, [(5, 55)])
        assert PathAssembler(params, start_id=7).assemble(skeleton)[0].path_id == 7

    def test_bridges_gap(self, params):
        """Test collinear pieces with a small gap are joined."""
        skeleton = line_skeleton((20, 70), 10, [(5, 31), (36, 61)])
        paths = PathAssembler(params).assemble(skeleton)

        assert len(paths) == 1
        assert paths[0].pixel_length == pytest.approx(55.0)

    def test_no_bridge_when_disabled(self):
        """Test bridging distance 0 keeps pieces apart."""
        params = SplineRoadParameters(bridge_endpoint_max_distance_pixels=0.0)
        skeleton = line_skeleton((20, 70), 10, [(5, 31), (36, 61)])
        assert len(PathAssembler(params).assemble(skeleton)) == 2

    def test_closed_loop(self, params):
        """Test a ring is traced completely and flagged closed."""
        skeleton = np.zeros((30, 30), dtype=bool)
        skeleton[5, 5:25] = True
        skeleton[24, 5:25] = True
        skeleton[5:25, 5] = True
        skeleton[5:25, 24] = True

        paths = [p for p in PathAssembler(params).assemble(skeleton) if not p.is_filtered]

        assert len(paths) == 1
        assert paths[0].is_closed
        assert paths[0].pixel_length > 70

    @pytest.mark.parametrize("prefer_straight", [False, True])
    def test_crossing_gives_two_paths(self, prefer_straight):
        """Test a plus-shaped skeleton becomes two straight roads."""
        skeleton = np.zeros((41, 41), dtype=bool)
        skeleton[20, :] = True
        skeleton[:, 20] = True
        params = SplineRoadParameters(prefer_straight_through_junctions=prefer_straight)

        paths = [p for p in PathAssembler(params).assemble(skeleton) if not p.is_filtered]

        assert len(paths) == 2
        for path in paths:
            assert path.pixel_length >= 38.0
            extent = path.points.max(axis=0) - path.points.min(axis=0)
            assert min(extent) <= 1.0

    def test_empty_skeleton(self, params):
        """Test an empty skeleton gives no paths."""
        assert PathAssembler(params).assemble(np.zeros((10, 10), dtype=bool)) == []
