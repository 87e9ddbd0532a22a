"""
Tests for the cross-section grid index.
"""

import numpy as np
import pytest

from roadgrade.core.blending.spatial_index import CrossSectionSpatialIndex
from roadgrade.models.geometry import SectionArrays


def _random_sections(count: int, seed: int = 7, extent: float = 200.0) -> SectionArrays:
    rng = np.random.default_rng(seed)
    return SectionArrays(
        centers=rng.uniform(0.0, extent, (count, 2)),
        normals=np.tile([0.0, -1.0], (count, 1)),
        targets=rng.uniform(0.0, 50.0, count),
        widths=np.full(count, 8.0),
        path_ids=np.arange(count, dtype=np.int64) % 5,
        excluded=np.zeros(count, dtype=bool),
    )


@pytest.fixture
def sections():
    """Dense random sections over a 200m square."""
    return _random_sections(600)


@pytest.fixture
def queries():
    """Query positions over the same square."""
    return np.random.default_rng(11).uniform(0.0, 200.0, (80, 2))


class TestCrossSectionSpatialIndex:
    """Tests for CrossSectionSpatialIndex."""

    def test_size(self, sections):
        """Test every valid section is indexed."""
        assert len(CrossSectionSpatialIndex(sections, 1.0)) == 600

    def test_find_nearest_matches_brute_force(self, sections, queries):
        """Test nearest lookups agree with an exhaustive search."""
        index = CrossSectionSpatialIndex(sections, 1.0, cell_size=32)
        for point in queries:
            found, distance = index.find_nearest(point)
            brute = np.linalg.norm(sections.centers - point, axis=1)
            assert distance == pytest.approx(brute.min())
            assert brute[found] == pytest.approx(brute.min())

    def test_nearest_many_matches_find_nearest(self, sections, queries):
        """Test the batched lookup agrees with single lookups."""
        index = CrossSectionSpatialIndex(sections, 1.0, cell_size=16)
        nearest, distances = index.nearest_many(queries, radius=40.0)
        brute = np.linalg.norm(queries[:, None, :] - sections.centers[None, :, :], axis=2)

        np.testing.assert_allclose(distances, brute.min(axis=1))
        np.testing.assert_allclose(brute[np.arange(len(queries)), nearest], brute.min(axis=1))

    def test_find_within_radius(self, sections):
        """Test radius queries return every section inside, sorted."""
        index = CrossSectionSpatialIndex(sections, 1.0)
        point = np.array([100.0, 100.0])
        found = index.find_within_radius(point, 20.0)

        brute = np.linalg.norm(sections.centers - point, axis=1)
        assert sorted(i for i, _ in found) == sorted(np.nonzero(brute <= 20.0)[0].tolist())
        distances = [d for _, d in found]
        assert distances == sorted(distances)
        assert all(d <= 20.0 for d in distances)

    def test_invalid_sections_skipped(self, caplog):
        """Test excluded and unset targets are never returned."""
        sections = _random_sections(50)
        sections.targets[0] = np.nan
        sections.targets[1] = -5000.0
        sections.excluded[2] = True
        index = CrossSectionSpatialIndex(sections, 1.0)

        assert len(index) == 47
        assert not index.valid[:3].any()
        assert index.valid[3:].all()
        assert "Skipped 2 cross-sections" in caplog.text
        for i in range(3):
            found, distance = index.find_nearest(sections.centers[i])
            assert found not in (0, 1, 2)
            assert distance > 0.0

    def test_empty_index(self):
        """Test queries against no sections find nothing."""
        index = CrossSectionSpatialIndex(_random_sections(0), 1.0)
        assert index.find_nearest(np.array([1.0, 1.0])) == (None, float("inf"))
        nearest, distances = index.nearest_many(np.array([[1.0, 1.0]]))
        assert nearest[0] == -1
        assert np.isinf(distances[0])

    def test_search_range(self):
        """Test bucket rings grow with the radius and are clamped."""
        index = CrossSectionSpatialIndex(_random_sections(10), 1.0, cell_size=32)
        assert index.search_range(0.0) == 1
        assert index.search_range(10.0) == 2
        assert index.search_range(500.0) == 3

    def test_grid_key_uses_resolution(self):
        """Test bucket keys are computed in pixels."""
        index = CrossSectionSpatialIndex(_random_sections(10), 2.0, cell_size=32)
        assert index.grid_key(np.array([65.0, 130.0])) == (1, 2)
