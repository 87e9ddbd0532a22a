"""
Debug image rendering for road smoothing runs.

This module writes PNG overlays that show what each stage produced:
- Skeleton overlay (centerline cells on the road mask)
- Spline overlay (fitted splines, cross-sections and road edges)
- Smoothed elevation heatmap (modified terrain and change map)
- Junction overlay (detected junctions by type)
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

import matplotlib.pyplot as plt
import numpy as np
from matplotlib.axes import Axes
from matplotlib.figure import Figure
from numpy.typing import NDArray

from roadgrade.core.errors import ConfigurationError
from roadgrade.models.geometry import JunctionType, UnifiedRoadNetwork
from roadgrade.models.parameters import RoadSmoothingParameters

logger = logging.getLogger(__name__)

JUNCTION_COLORS: Dict[JunctionType, str] = {
    JunctionType.ENDPOINT_CLUSTER: "#d62728",
    JunctionType.T_JUNCTION: "#ff7f0e",
    JunctionType.CROSSING: "#9467bd",
    JunctionType.ISOLATED_ENDPOINT: "#7f7f7f",
    JunctionType.ROUNDABOUT: "#2ca02c",
}


@dataclass
class DebugImageConfig:
    """
    Rendering settings for debug images.

    Attributes:
        width: Figure width in inches
        height: Figure height in inches
        dpi: Dots per inch for output
        section_stride: Draw every n-th cross-section
        terrain_cmap: Colormap for elevation
        delta_cmap: Diverging colormap for the change map
    """

    width: float = 10.0
    height: float = 10.0
    dpi: int = 150
    section_stride: int = 5
    terrain_cmap: str = "terrain"
    delta_cmap: str = "RdBu_r"


class DebugImageWriter:
    """
    Write debug images for one material into an output directory.

    Args:
        output_dir: Directory the PNGs are written to (created if missing)
        meters_per_pixel: Grid resolution, to draw world geometry in pixels
        config: Rendering settings
    """

    def __init__(
        self,
        output_dir: Path,
        meters_per_pixel: float,
        config: Optional[DebugImageConfig] = None,
    ):
        self.output_dir = Path(output_dir)
        self.meters_per_pixel = meters_per_pixel
        self.config = config or DebugImageConfig()
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigurationError(
                f"Cannot create debug output directory: {e}",
                config_key="debug_output_directory",
                details={"path": str(self.output_dir)},
            ) from e

    def write_all(
        self,
        network: UnifiedRoadNetwork,
        material_name: str,
        parameters: RoadSmoothingParameters,
        original: NDArray[np.floating],
        modified: NDArray[np.floating],
    ) -> List[Path]:
        """
        Write every image the material's export flags ask for.

        Returns:
            Paths of the written images
        """
        written: List[Path] = []
        skeleton = network.skeletons.get(material_name)
        if parameters.export_skeleton_debug_image and skeleton is not None:
            written.append(self.write_skeleton(skeleton, material_name))
        if parameters.export_spline_debug_image:
            written.append(self.write_splines(network, material_name, original.shape))
        if parameters.export_smoothed_elevation_debug_image:
            written.append(self.write_elevation(original, modified, material_name))
        if parameters.export_junction_debug_image:
            written.append(self.write_junctions(network, material_name, original.shape))
        return written

    def write_skeleton(self, skeleton: NDArray[np.bool_], material_name: str) -> Path:
        """Skeleton cells in white on black."""
        fig, ax = self._figure(f"Skeleton: {material_name}")
        ax.imshow(skeleton, cmap="gray", interpolation="nearest", origin="upper")
        return self._save(fig, f"{material_name}_skeleton.png")

    def write_splines(self, network: UnifiedRoadNetwork, material_name: str, shape: tuple) -> Path:
        """Splines, road edges and a subset of cross-sections."""
        fig, ax = self._figure(f"Splines: {material_name}")
        self._frame(ax, shape)
        scale = 1.0 / self.meters_per_pixel
        for spline in network.splines_for_material(material_name):
            if not spline.cross_sections:
                continue
            centers = np.array([cs.center for cs in spline.cross_sections]) * scale
            left = np.array([cs.left_edge for cs in spline.cross_sections]) * scale
            right = np.array([cs.right_edge for cs in spline.cross_sections]) * scale
            color = "#2ca02c" if spline.is_roundabout else "#1f77b4"
            ax.plot(centers[:, 0], centers[:, 1], color=color, linewidth=1.2)
            ax.plot(left[:, 0], left[:, 1], color="#aec7e8", linewidth=0.6)
            ax.plot(right[:, 0], right[:, 1], color="#aec7e8", linewidth=0.6)
            for l_pt, r_pt in zip(left[:: self.config.section_stride], right[:: self.config.section_stride]):
                ax.plot([l_pt[0], r_pt[0]], [l_pt[1], r_pt[1]], color="#ffbb78", linewidth=0.4)
        return self._save(fig, f"{material_name}_splines.png")

    def write_elevation(
        self,
        original: NDArray[np.floating],
        modified: NDArray[np.floating],
        material_name: str,
    ) -> Path:
        """Smoothed terrain next to the change map."""
        fig, (terrain_ax, delta_ax) = plt.subplots(
            1, 2, figsize=(self.config.width * 2, self.config.height), dpi=self.config.dpi
        )
        terrain = terrain_ax.imshow(modified, cmap=self.config.terrain_cmap, origin="upper")
        terrain_ax.set_title(f"Smoothed elevation: {material_name}")
        fig.colorbar(terrain, ax=terrain_ax, label="Elevation (m)")

        delta = np.asarray(modified, dtype=np.float64) - np.asarray(original, dtype=np.float64)
        limit = max(float(np.nanmax(np.abs(delta))), 1e-6)
        change = delta_ax.imshow(delta, cmap=self.config.delta_cmap, vmin=-limit, vmax=limit, origin="upper")
        delta_ax.set_title("Change (m)")
        fig.colorbar(change, ax=delta_ax, label="Fill (+) / cut (-) (m)")
        return self._save(fig, f"{material_name}_elevation.png")

    def write_junctions(self, network: UnifiedRoadNetwork, material_name: str, shape: tuple) -> Path:
        """Splines with junction markers colored by type."""
        fig, ax = self._figure(f"Junctions: {material_name}")
        self._frame(ax, shape)
        scale = 1.0 / self.meters_per_pixel
        for spline in network.splines:
            if not spline.cross_sections:
                continue
            centers = np.array([cs.center for cs in spline.cross_sections]) * scale
            ax.plot(centers[:, 0], centers[:, 1], color="#c7c7c7", linewidth=1.0)

        seen = set()
        for junction in network.junctions:
            position = junction.position * scale
            label = junction.junction_type.value if junction.junction_type not in seen else None
            seen.add(junction.junction_type)
            ax.scatter(
                [position[0]],
                [position[1]],
                color=JUNCTION_COLORS[junction.junction_type],
                s=30,
                label=label,
                zorder=3,
            )
        if seen:
            ax.legend(loc="upper right", fontsize=8)
        return self._save(fig, f"{material_name}_junctions.png")

    def _figure(self, title: str) -> tuple:
        fig, ax = plt.subplots(figsize=(self.config.width, self.config.height), dpi=self.config.dpi)
        ax.set_title(title, fontweight="bold")
        return fig, ax

    @staticmethod
    def _frame(ax: Axes, shape: tuple) -> None:
        # Image convention: row 0 at the top
        ax.set_xlim(0, shape[1])
        ax.set_ylim(shape[0], 0)
        ax.set_aspect("equal", adjustable="box")

    def _save(self, fig: Figure, filename: str) -> Path:
        output_path = self.output_dir / filename
        fig.savefig(output_path, format="png", dpi=self.config.dpi, bbox_inches="tight")
        plt.close(fig)
        logger.info(f"Wrote debug image {output_path}")
        return output_path
