"""
Raster I/O for heightmaps, road masks and exclusion layers.

Reads and writes through rasterio, so any GDAL-supported raster (GeoTIFF,
PNG, ASCII grid) can serve as a heightmap or mask. Read failures raise
RasterIOError and are fatal for the invocation.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Tuple, Union

import numpy as np
import rasterio
from numpy.typing import NDArray
from rasterio.errors import RasterioError
from rasterio.transform import from_origin

from roadgrade.core.errors import RasterIOError, ValidationError
from roadgrade.core.skeleton.preprocess import to_binary_mask
from roadgrade.utils.logging import log_function_call

logger = logging.getLogger(__name__)


@dataclass
class HeightmapRaster:
    """
    A heightmap read from disk.

    Attributes:
        elevation: Heights [row, column] in meters (float32)
        meters_per_pixel: Cell size from the raster transform (1.0 when absent)
        profile: rasterio profile of the source, reused when saving
    """

    elevation: NDArray[np.float32]
    meters_per_pixel: float = 1.0
    profile: Dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def shape(self) -> Tuple[int, int]:
        return self.elevation.shape


def _read_band(file_path: Path) -> Tuple[NDArray[Any], Dict[str, Any], Optional[float], float]:
    if not file_path.exists():
        raise RasterIOError(f"Raster file not found: {file_path}", file_path=str(file_path))
    try:
        with rasterio.open(file_path) as src:
            data = src.read(1)
            profile = dict(src.profile)
            nodata = src.nodata
            cell_size = abs(src.transform.a) if src.transform is not None else 1.0
    except RasterioError as e:
        raise RasterIOError(f"Failed to read raster: {e}", file_path=str(file_path)) from e
    return data, profile, nodata, cell_size or 1.0


@log_function_call()
def load_heightmap(file_path: Union[str, Path]) -> HeightmapRaster:
    """
    Load a heightmap from the first band of a raster.

    No-data cells are filled with the lowest valid height.

    Args:
        file_path: Raster path

    Returns:
        HeightmapRaster

    Raises:
        RasterIOError: When the file is missing, unreadable or holds no valid heights
    """
    file_path = Path(file_path)
    data, profile, nodata, cell_size = _read_band(file_path)
    elevation = data.astype(np.float32)

    invalid = ~np.isfinite(elevation)
    if nodata is not None:
        invalid |= elevation == np.float32(nodata)
    if invalid.all():
        raise RasterIOError("Heightmap contains no valid heights", file_path=str(file_path))
    if invalid.any():
        fill = float(elevation[~invalid].min())
        elevation[invalid] = fill
        logger.warning(f"Filled {int(invalid.sum())} no-data cells with {fill:.2f}m")

    logger.info(
        f"Loaded heightmap {file_path.name}: {elevation.shape[1]}x{elevation.shape[0]}, "
        f"{cell_size:g}m/px, range {elevation.min():.2f}..{elevation.max():.2f}m"
    )
    return HeightmapRaster(elevation=elevation, meters_per_pixel=float(cell_size), profile=profile)


@log_function_call()
def load_mask(
    file_path: Union[str, Path],
    expected_shape: Optional[Tuple[int, int]] = None,
    flip_vertical: bool = False,
) -> NDArray[np.bool_]:
    """
    Load a road or exclusion mask from the first band of a raster.

    Args:
        file_path: Raster path (values above 128, or 1 in 0/1 rasters, are road)
        expected_shape: Heightmap shape the mask must match
        flip_vertical: Flip rows, for masks stored bottom-up

    Returns:
        Boolean mask

    Raises:
        RasterIOError: When the file is missing or unreadable
        ValidationError: When the mask shape does not match ``expected_shape``
    """
    file_path = Path(file_path)
    data, _, _, _ = _read_band(file_path)
    mask = to_binary_mask(data)
    if flip_vertical:
        mask = np.flipud(mask)

    if expected_shape is not None and mask.shape != tuple(expected_shape):
        raise ValidationError(
            f"Mask {file_path.name} has shape {mask.shape}, expected {tuple(expected_shape)}",
            field="mask",
        )
    logger.debug(f"Loaded mask {file_path.name}: {int(mask.sum())} road cells")
    return mask


def combine_exclusion_layers(
    layers: Sequence[NDArray[Any]], shape: Optional[Tuple[int, int]] = None
) -> Optional[NDArray[np.bool_]]:
    """
    Union several exclusion layers (bridges, water, buildings) into one mask.

    Args:
        layers: Masks in any form accepted by ``to_binary_mask``
        shape: Shape every layer must have

    Returns:
        Combined mask, or None when no layers are given

    Raises:
        ValidationError: When layer shapes disagree
    """
    if not layers:
        return None
    combined: Optional[NDArray[np.bool_]] = None
    for index, layer in enumerate(layers):
        binary = to_binary_mask(layer)
        reference = shape if shape is not None else (combined.shape if combined is not None else None)
        if reference is not None and binary.shape != tuple(reference):
            raise ValidationError(
                f"Exclusion layer {index} has shape {binary.shape}, expected {tuple(reference)}",
                field="exclusion_mask",
            )
        combined = binary if combined is None else combined | binary
    logger.info(f"Combined {len(layers)} exclusion layers: {int(combined.sum())} excluded cells")
    return combined


def save_heightmap(
    file_path: Union[str, Path],
    heightmap: NDArray[np.floating],
    meters_per_pixel: float = 1.0,
    profile: Optional[Dict[str, Any]] = None,
) -> Path:
    """
    Write a heightmap as a single-band float32 GeoTIFF.

    Args:
        file_path: Output path
        heightmap: Heights [row, column]
        meters_per_pixel: Cell size, used when no source profile is given
        profile: Source profile to keep georeferencing from

    Returns:
        Path written

    Raises:
        RasterIOError: When the file cannot be written
    """
    file_path = Path(file_path)
    data = np.asarray(heightmap, dtype=np.float32)
    height, width = data.shape

    out_profile: Dict[str, Any] = {
        "crs": None,
        "transform": from_origin(0.0, height * meters_per_pixel, meters_per_pixel, meters_per_pixel),
    }
    if profile:
        out_profile.update({k: v for k, v in profile.items() if k in ("crs", "transform")})
    out_profile.update(
        driver="GTiff", height=height, width=width, count=1, dtype="float32", nodata=None
    )

    try:
        file_path.parent.mkdir(parents=True, exist_ok=True)
        with rasterio.open(file_path, "w", **out_profile) as dst:
            dst.write(data, 1)
    except (RasterioError, OSError) as e:
        raise RasterIOError(f"Failed to write heightmap: {e}", file_path=str(file_path)) from e

    logger.info(f"Saved heightmap to {file_path}")
    return file_path
