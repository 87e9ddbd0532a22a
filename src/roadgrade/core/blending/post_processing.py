"""
Masked smoothing of the blended road area.

Blending writes every cell from its own nearest cross-section, which can
leave faint ridges where neighboring cells took their targets from
different sections. This pass low-pass filters the road and a band beyond
its edge, leaving the rest of the terrain alone.

Every filter normalizes by the kernel weight that falls inside the grid,
so cells at the border average only their in-grid neighbors.
"""

import logging
from typing import Optional

import numpy as np
from numpy.typing import NDArray
from scipy import ndimage

from roadgrade.core.blending.blender import BlendResult
from roadgrade.models.geometry import UnifiedRoadNetwork
from roadgrade.models.parameters import PostProcessingParameters, PostProcessingSmoothingType
from roadgrade.utils.logging import PerformanceTimer

logger = logging.getLogger(__name__)

# Bilateral range sigma as a fraction of the spatial sigma
BILATERAL_RANGE_FACTOR = 0.5


def gaussian_kernel(size: int, sigma: float) -> NDArray[np.float64]:
    """Normalized ``size`` x ``size`` Gaussian kernel."""
    radius = size // 2
    ky, kx = np.mgrid[-radius : radius + 1, -radius : radius + 1].astype(np.float64)
    kernel = np.exp(-(kx**2 + ky**2) / (2.0 * sigma * sigma))
    return kernel / kernel.sum()


def _normalized_correlate(heightmap: NDArray[np.float64], kernel: NDArray[np.float64]) -> NDArray[np.float64]:
    weighted = ndimage.correlate(heightmap, kernel, mode="constant", cval=0.0)
    coverage = ndimage.correlate(np.ones_like(heightmap), kernel, mode="constant", cval=0.0)
    return weighted / coverage


def _bilateral(heightmap: NDArray[np.float64], size: int, sigma: float) -> NDArray[np.float64]:
    """Edge-preserving filter: neighbors far off in height get little weight."""
    radius = size // 2
    sigma_range = sigma * BILATERAL_RANGE_FACTOR
    rows, cols = heightmap.shape
    padded = np.pad(heightmap, radius, mode="constant", constant_values=np.nan)
    total = np.zeros_like(heightmap)
    weight_sum = np.zeros_like(heightmap)

    for dy in range(-radius, radius + 1):
        for dx in range(-radius, radius + 1):
            neighbor = padded[radius + dy : radius + dy + rows, radius + dx : radius + dx + cols]
            inside = ~np.isnan(neighbor)
            spatial = np.exp(-(dx * dx + dy * dy) / (2.0 * sigma * sigma))
            diff = np.where(inside, neighbor - heightmap, 0.0)
            weight = np.where(inside, spatial * np.exp(-(diff * diff) / (2.0 * sigma_range * sigma_range)), 0.0)
            total += weight * np.where(inside, neighbor, 0.0)
            weight_sum += weight

    # The center cell always contributes, so weight_sum > 0
    return total / weight_sum


class PostProcessingSmoother:
    """
    Filter the road area of a blended heightmap.

    Args:
        meters_per_pixel: Grid resolution
    """

    def __init__(self, meters_per_pixel: float):
        self.meters_per_pixel = meters_per_pixel

    @staticmethod
    def parameters_for(network: UnifiedRoadNetwork) -> Optional[PostProcessingParameters]:
        """Settings of the first path that enables post-processing, if any."""
        for spline in network.splines:
            params = spline.parameters.post_processing
            if params.enable_post_processing_smoothing:
                return params
        return None

    def smoothing_mask(
        self, network: UnifiedRoadNetwork, blend: BlendResult, params: PostProcessingParameters
    ) -> NDArray[np.bool_]:
        """
        Cells to filter: written by the blend and within the widest road's
        half width plus the mask extension of a road core.
        """
        if not network.splines:
            return np.zeros(blend.heightmap.shape, dtype=bool)
        max_half_width = max(s.parameters.road_width_meters for s in network.splines) / 2.0
        reach = max_half_width + params.mask_extension_meters
        return blend.written_mask & (blend.distance_field <= reach)

    def smooth(
        self,
        heightmap: NDArray[np.floating],
        mask: NDArray[np.bool_],
        params: PostProcessingParameters,
    ) -> NDArray[np.float64]:
        """
        Filter the masked cells of a heightmap.

        Each iteration filters the whole current surface and writes the
        result back to the masked cells only.

        Args:
            heightmap: Blended heightmap; never modified
            mask: Cells that may change
            params: Filter settings

        Returns:
            Smoothed copy of the heightmap (float64)
        """
        result = np.array(heightmap, dtype=np.float64)
        if not mask.any():
            return result

        kind = params.smoothing_type
        if kind == PostProcessingSmoothingType.GAUSSIAN:
            kernel = gaussian_kernel(params.kernel_size, params.sigma)
        elif kind == PostProcessingSmoothingType.BOX:
            kernel = np.ones((params.kernel_size, params.kernel_size), dtype=np.float64)
        elif kind != PostProcessingSmoothingType.BILATERAL:
            raise ValueError(f"Unknown post-processing smoothing type: {kind}")

        for _ in range(params.iterations):
            if kind == PostProcessingSmoothingType.BILATERAL:
                filtered = _bilateral(result, params.kernel_size, params.sigma)
            else:
                filtered = _normalized_correlate(result, kernel)
            result = np.where(mask, filtered, result)
        return result

    def apply(
        self, heightmap: NDArray[np.floating], network: UnifiedRoadNetwork, blend: BlendResult
    ) -> NDArray[np.float64]:
        """
        Smooth the road area when any path enables post-processing.

        Args:
            heightmap: Blended heightmap
            network: Network that was blended
            blend: Result of the blend, for its distance field and written cells

        Returns:
            Smoothed heightmap, or an unchanged float64 copy when disabled
        """
        params = self.parameters_for(network)
        if params is None:
            return np.array(heightmap, dtype=np.float64)

        mask = self.smoothing_mask(network, blend, params)
        logger.info(
            f"Post-processing: {params.smoothing_type.value} smoothing, kernel {params.kernel_size}, "
            f"sigma {params.sigma:.2f}, {params.iterations} iteration(s) over {int(mask.sum())} cells"
        )
        with PerformanceTimer("post_processing"):
            return self.smooth(heightmap, mask, params)
