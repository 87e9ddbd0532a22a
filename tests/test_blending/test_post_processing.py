"""
Tests for masked post-processing smoothing.
"""

import numpy as np
import pytest

from roadgrade.core.blending.blender import DistanceFieldBlender
from roadgrade.core.blending.post_processing import PostProcessingSmoother, gaussian_kernel
from roadgrade.models.parameters import (
    PostProcessingParameters,
    PostProcessingSmoothingType,
    RoadSmoothingParameters,
)

STRAIGHT = [[20.0, 40.0], [140.0, 40.0]]


def _enabled(**kwargs) -> RoadSmoothingParameters:
    return RoadSmoothingParameters(
        post_processing=PostProcessingParameters(enable_post_processing_smoothing=True, **kwargs)
    )


def _checkerboard(shape, amplitude=0.5):
    rows, cols = np.indices(shape)
    return np.where((rows + cols) % 2 == 0, amplitude, -amplitude)


@pytest.fixture
def smoother():
    """Post-processing at 1m per pixel."""
    return PostProcessingSmoother(1.0)


@pytest.fixture
def blended(settings, flat_heightmap, make_network):
    """Factory blending a 5m road into flat 10m terrain."""

    def _make(parameters):
        network = make_network((0, STRAIGHT, 5.0), parameters=parameters)
        return network, DistanceFieldBlender(1.0, settings).blend(flat_heightmap, network)

    return _make


class TestGaussianKernel:
    """Tests for gaussian_kernel."""

    def test_normalized_and_symmetric(self):
        """Test the kernel sums to one and peaks at the center."""
        kernel = gaussian_kernel(7, 1.5)
        assert kernel.shape == (7, 7)
        assert kernel.sum() == pytest.approx(1.0)
        assert kernel.argmax() == 24
        np.testing.assert_allclose(kernel, kernel.T)


class TestPostProcessingSmoother:
    """Tests for PostProcessingSmoother."""

    def test_disabled_is_copy(self, smoother, blended):
        """Test nothing changes when no path enables post-processing."""
        network, blend = blended(RoadSmoothingParameters())

        assert PostProcessingSmoother.parameters_for(network) is None
        result = smoother.apply(blend.heightmap, network, blend)
        np.testing.assert_array_equal(result, blend.heightmap)
        assert result is not blend.heightmap

    def test_mask_band(self, smoother, blended):
        """Test the mask covers the road plus the extension only."""
        params = _enabled(mask_extension_meters=6.0)
        network, blend = blended(params)
        mask = smoother.smoothing_mask(network, blend, params.post_processing)

        assert mask[40, 80]
        assert mask[32, 80]
        # Blended shoulder beyond the extension stays out of the mask
        assert blend.written_mask[24, 80]
        assert not mask[24, 80]
        assert not mask[2, 80]

    @pytest.mark.parametrize("kind", list(PostProcessingSmoothingType))
    def test_filters_reduce_noise(self, smoother, blended, kind):
        """Test every filter type flattens ripples on the road."""
        params = _enabled(smoothing_type=kind)
        network, blend = blended(params)
        noisy = blend.heightmap + _checkerboard(blend.heightmap.shape)

        mask = smoother.smoothing_mask(network, blend, params.post_processing)
        result = smoother.smooth(noisy, mask, params.post_processing)

        # Row 40 is at least 3 rows from the core edge, so the kernel sees only road
        ripple = np.abs(result[40, 60:100] - 5.0)
        assert ripple.max() < 0.4

    def test_outside_mask_untouched(self, smoother, blended):
        """Test cells outside the mask keep their values exactly."""
        params = _enabled()
        network, blend = blended(params)
        noisy = blend.heightmap + _checkerboard(blend.heightmap.shape)

        mask = smoother.smoothing_mask(network, blend, params.post_processing)
        result = smoother.smooth(noisy, mask, params.post_processing)

        np.testing.assert_array_equal(result[~mask], noisy[~mask])
        assert not np.array_equal(result[mask], noisy[mask])

    def test_input_not_modified(self, smoother, blended):
        """Test the heightmap passed in is left as it was."""
        params = _enabled()
        network, blend = blended(params)
        noisy = blend.heightmap + _checkerboard(blend.heightmap.shape)
        before = noisy.copy()

        smoother.apply(noisy, network, blend)

        np.testing.assert_array_equal(noisy, before)

    def test_more_iterations_smooth_more(self, smoother, blended):
        """Test repeated passes reduce the ripple further."""
        once = _enabled(kernel_size=3, sigma=0.8)
        twice = _enabled(kernel_size=3, sigma=0.8, iterations=3)
        network, blend = blended(once)
        noisy = blend.heightmap + _checkerboard(blend.heightmap.shape)
        mask = smoother.smoothing_mask(network, blend, once.post_processing)

        first = smoother.smooth(noisy, mask, once.post_processing)
        third = smoother.smooth(noisy, mask, twice.post_processing)

        assert np.abs(third[40, 60:100] - 5.0).max() < np.abs(first[40, 60:100] - 5.0).max()

    def test_border_cells_average_inside_grid(self, smoother):
        """Test a constant grid stays constant up to the border."""
        heightmap = np.full((12, 12), 3.0)
        mask = np.ones_like(heightmap, dtype=bool)

        for kind in PostProcessingSmoothingType:
            params = PostProcessingParameters(enable_post_processing_smoothing=True, smoothing_type=kind)
            np.testing.assert_allclose(smoother.smooth(heightmap, mask, params), 3.0)

    def test_empty_mask(self, smoother):
        """Test an empty mask returns an unchanged copy."""
        heightmap = np.arange(16, dtype=np.float64).reshape(4, 4)
        result = smoother.smooth(heightmap, np.zeros((4, 4), dtype=bool), PostProcessingParameters())
        np.testing.assert_array_equal(result, heightmap)


class TestPostProcessingParameters:
    """Tests for PostProcessingParameters."""

    def test_defaults(self):
        """Test default values."""
        params = PostProcessingParameters()
        assert params.enable_post_processing_smoothing is False
        assert params.smoothing_type == PostProcessingSmoothingType.GAUSSIAN
        assert params.kernel_size == 7
        assert params.sigma == 1.5
        assert params.mask_extension_meters == 6.0
        assert params.iterations == 1
        assert params.validate() == []

    @pytest.mark.parametrize(
        "kwargs, name",
        [
            ({"kernel_size": 4}, "kernel_size"),
            ({"kernel_size": 1}, "kernel_size"),
            ({"sigma": 0.0}, "sigma"),
            ({"mask_extension_meters": -1.0}, "mask_extension_meters"),
            ({"iterations": 0}, "iterations"),
        ],
    )
    def test_validation(self, kwargs, name):
        """Test out-of-range values are reported through the road parameters."""
        params = RoadSmoothingParameters(post_processing=PostProcessingParameters(**kwargs))
        errors = params.validate()
        assert len(errors) == 1
        assert name in errors[0]
