"""
Tests for road mask preprocessing.
"""

import numpy as np
import pytest

from roadgrade.core.errors import ValidationError
from roadgrade.core.skeleton.preprocess import (
    apply_exclusions,
    dilate_mask,
    disk_structure,
    to_binary_mask,
)


class TestToBinaryMask:
    """Tests for mask binarization."""

    def test_bool_mask_copied(self):
        """Test boolean masks are returned as a copy."""
        mask = np.array([[True, False], [False, True]])
        binary = to_binary_mask(mask)
        np.testing.assert_array_equal(binary, mask)
        assert binary is not mask

    def test_zero_one_mask(self):
        """Test 0/1 integer masks use non-zero as road."""
        mask = np.array([[0, 1], [1, 0]], dtype=np.uint8)
        np.testing.assert_array_equal(to_binary_mask(mask), mask.astype(bool))

    def test_eight_bit_threshold(self):
        """Test 8-bit layers use values above 128 as road."""
        mask = np.array([[0, 100, 128, 129, 255]], dtype=np.uint8)
        np.testing.assert_array_equal(to_binary_mask(mask), [[False, False, False, True, True]])

    def test_rejects_3d(self):
        """Test non-2D masks raise a validation error."""
        with pytest.raises(ValidationError) as exc_info:
            to_binary_mask(np.zeros((2, 2, 3)))
        assert exc_info.value.details["field"] == "mask"


class TestDilateMask:
    """Tests for mask dilation."""

    def test_disk_structure(self):
        """Test disk structuring element size."""
        assert disk_structure(1).sum() == 5
        assert disk_structure(2).sum() == 13

    def test_single_pixel(self):
        """Test a single pixel grows into a disk."""
        mask = np.zeros((9, 9), dtype=bool)
        mask[4, 4] = True
        dilated = dilate_mask(mask, 2)
        assert dilated.sum() == 13
        assert dilated[4, 2] and dilated[2, 4]
        assert not dilated[2, 2]

    def test_radius_zero(self):
        """Test radius 0 returns an unchanged copy."""
        mask = np.eye(5, dtype=bool)
        dilated = dilate_mask(mask, 0)
        np.testing.assert_array_equal(dilated, mask)
        assert dilated is not mask

    def test_negative_radius(self):
        """Test negative radius is rejected."""
        with pytest.raises(ValueError):
            dilate_mask(np.zeros((3, 3), dtype=bool), -1)


class TestApplyExclusions:
    """Tests for exclusion masks."""

    def test_removes_excluded_cells(self):
        """Test excluded cells are cleared from the road mask."""
        mask = np.ones((4, 4), dtype=bool)
        exclusion = np.zeros((4, 4), dtype=np.uint8)
        exclusion[:, :2] = 255
        result = apply_exclusions(mask, exclusion)
        assert not result[:, :2].any()
        assert result[:, 2:].all()

    def test_none_is_noop(self):
        """Test no exclusion leaves the mask alone."""
        mask = np.ones((3, 3), dtype=bool)
        assert apply_exclusions(mask, None) is mask

    def test_shape_mismatch(self):
        """Test mismatched exclusion shape raises."""
        with pytest.raises(ValidationError):
            apply_exclusions(np.ones((4, 4), dtype=bool), np.ones((3, 4), dtype=bool))
