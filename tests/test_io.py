"""
Tests for raster I/O.
"""

from pathlib import Path

import numpy as np
import pytest
import rasterio
from rasterio.transform import from_origin

from roadgrade.core.errors import RasterIOError, ValidationError
from roadgrade.core.io import combine_exclusion_layers, load_heightmap, load_mask, save_heightmap


def _write(path: Path, data: np.ndarray, nodata=None, cell_size: float = 1.0) -> Path:
    """Write a single-band GeoTIFF."""
    height, width = data.shape
    with rasterio.open(
        path,
        "w",
        driver="GTiff",
        height=height,
        width=width,
        count=1,
        dtype=data.dtype,
        transform=from_origin(0.0, height * cell_size, cell_size, cell_size),
        nodata=nodata,
    ) as dst:
        dst.write(data, 1)
    return path


class TestHeightmapIO:
    """Tests for loading and saving heightmaps."""

    def test_round_trip(self, tmp_path):
        """Test a saved heightmap loads back unchanged."""
        heightmap = np.arange(12 * 20, dtype=np.float32).reshape(12, 20) / 10.0
        path = save_heightmap(tmp_path / "out" / "terrain.tif", heightmap, meters_per_pixel=2.0)

        loaded = load_heightmap(path)
        np.testing.assert_array_equal(loaded.elevation, heightmap)
        assert loaded.meters_per_pixel == 2.0
        assert loaded.shape == (12, 20)
        assert loaded.elevation.dtype == np.float32

    def test_profile_reused(self, tmp_path):
        """Test saving with a source profile keeps its cell size."""
        source = _write(tmp_path / "source.tif", np.ones((8, 8), dtype=np.float32), cell_size=0.5)
        loaded = load_heightmap(source)

        path = save_heightmap(tmp_path / "copy.tif", loaded.elevation + 1.0, profile=loaded.profile)
        assert load_heightmap(path).meters_per_pixel == 0.5

    def test_missing_file(self, tmp_path):
        """Test a missing file raises RasterIOError."""
        with pytest.raises(RasterIOError) as exc_info:
            load_heightmap(tmp_path / "missing.tif")
        assert exc_info.value.error_code == "RASTER_IO_ERROR"
        assert "missing.tif" in exc_info.value.details["file_path"]

    def test_unreadable_file(self, tmp_path):
        """Test a file that is not a raster raises RasterIOError."""
        path = tmp_path / "notes.tif"
        path.write_text("not a raster")
        with pytest.raises(RasterIOError):
            load_heightmap(path)

    def test_nodata_filled(self, tmp_path):
        """Test no-data cells take the lowest valid height."""
        data = np.full((6, 6), 5.0, dtype=np.float32)
        data[0, 0] = -9999.0
        data[3, 4] = 2.0
        loaded = load_heightmap(_write(tmp_path / "holes.tif", data, nodata=-9999.0))

        assert loaded.elevation[0, 0] == 2.0
        assert loaded.elevation.max() == 5.0

    def test_all_nodata(self, tmp_path):
        """Test a raster without valid heights is rejected."""
        data = np.full((4, 4), -9999.0, dtype=np.float32)
        with pytest.raises(RasterIOError, match="no valid heights"):
            load_heightmap(_write(tmp_path / "empty.tif", data, nodata=-9999.0))


class TestMaskIO:
    """Tests for loading masks and combining exclusion layers."""

    @pytest.fixture
    def painted(self, tmp_path):
        """8-bit layer with road painted in the top rows."""
        data = np.zeros((10, 12), dtype=np.uint8)
        data[:3] = 255
        data[5] = 100
        return _write(tmp_path / "road.tif", data)

    def test_threshold(self, painted):
        """Test only values above 128 count as road."""
        mask = load_mask(painted)
        assert mask.dtype == np.bool_
        assert mask[:3].all()
        assert not mask[3:].any()

    def test_flip(self, painted):
        """Test masks stored bottom-up are flipped."""
        mask = load_mask(painted, flip_vertical=True)
        assert mask[-3:].all()
        assert not mask[:-3].any()

    def test_shape_mismatch(self, painted):
        """Test a mask of the wrong size is rejected."""
        with pytest.raises(ValidationError, match="expected"):
            load_mask(painted, expected_shape=(12, 10))

    def test_combine_layers(self):
        """Test exclusion layers are unioned."""
        water = np.zeros((4, 4), dtype=bool)
        water[0] = True
        bridges = np.zeros((4, 4), dtype=np.uint8)
        bridges[:, 0] = 255

        combined = combine_exclusion_layers([water, bridges])
        assert combined.sum() == 7
        assert combined[0].all()
        assert combined[:, 0].all()

    def test_combine_none(self):
        """Test no layers give no mask."""
        assert combine_exclusion_layers([]) is None

    def test_combine_shape_mismatch(self):
        """Test layers of different sizes are rejected."""
        with pytest.raises(ValidationError):
            combine_exclusion_layers([np.zeros((4, 4)), np.zeros((5, 5))])
