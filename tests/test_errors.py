"""
Tests for the custom exception hierarchy.
"""

import pytest

from roadgrade.core.errors import (
    ConfigurationError,
    GeometryError,
    RasterIOError,
    RoadGradeException,
    ValidationError,
)


class TestRoadGradeException:
    """Tests for the base exception."""

    def test_basic_exception(self) -> None:
        """Test basic exception creation."""
        exc = RoadGradeException(message="Test error", error_code="TEST_ERROR")
        assert exc.message == "Test error"
        assert exc.error_code == "TEST_ERROR"
        assert exc.details == {}
        assert exc.suggestions == []

    def test_exception_with_details(self) -> None:
        """Test exception with details and suggestions."""
        exc = RoadGradeException(
            message="Test error",
            error_code="TEST_ERROR",
            details={"key": "value"},
            suggestions=["Try this"],
        )
        assert exc.details == {"key": "value"}
        assert exc.suggestions == ["Try this"]

    def test_to_dict(self) -> None:
        """Test exception to dictionary conversion."""
        exc = RoadGradeException(
            message="Test error",
            error_code="TEST_ERROR",
            details={"key": "value"},
            suggestions=["Try this"],
        )
        assert exc.to_dict() == {
            "error_code": "TEST_ERROR",
            "message": "Test error",
            "details": {"key": "value"},
            "suggestions": ["Try this"],
        }

    def test_str_representation(self) -> None:
        """Test string representation."""
        exc = RoadGradeException(message="Test error", error_code="TEST_ERROR")
        assert str(exc) == "TEST_ERROR: Test error"
        assert "RoadGradeException" in repr(exc)


class TestValidationError:
    """Tests for ValidationError."""

    def test_validation_error(self) -> None:
        """Test validation error carries its field and message list."""
        exc = ValidationError(message="Invalid mask", field="mask")
        assert exc.error_code == "VALIDATION_ERROR"
        assert exc.details["field"] == "mask"
        assert exc.errors == ["Invalid mask"]
        assert exc.details["errors"] == ["Invalid mask"]
        assert len(exc.suggestions) > 0

    def test_from_messages(self) -> None:
        """Test one error is built from all collected messages."""
        messages = ["road_width_meters must be greater than 0", "tension must be between 0 and 1 (got 2)"]
        exc = ValidationError.from_messages(messages, context="road smoothing input")

        assert exc.errors == messages
        assert exc.details["errors"] == messages
        assert exc.message.startswith("Invalid road smoothing input: ")
        assert "road_width_meters" in exc.message
        assert "tension" in exc.message

    def test_is_road_grade_exception(self) -> None:
        """Test validation errors are caught as the base class."""
        with pytest.raises(RoadGradeException):
            raise ValidationError("bad")


class TestGeometryError:
    """Tests for GeometryError."""

    def test_geometry_error(self) -> None:
        """Test geometry error with a path id."""
        exc = GeometryError("Spline needs at least 2 distinct points", path_id=7)
        assert exc.error_code == "GEOMETRY_ERROR"
        assert exc.details["path_id"] == 7
        assert len(exc.suggestions) > 0

    def test_geometry_error_without_path(self) -> None:
        """Test path id is omitted when unknown."""
        exc = GeometryError("Degenerate spline")
        assert "path_id" not in exc.details


class TestRasterIOError:
    """Tests for RasterIOError."""

    def test_raster_io_error(self) -> None:
        """Test raster error with a file path."""
        exc = RasterIOError("Raster file not found", file_path="/tmp/dem.tif")
        assert exc.error_code == "RASTER_IO_ERROR"
        assert exc.details["file_path"] == "/tmp/dem.tif"


class TestConfigurationError:
    """Tests for ConfigurationError."""

    def test_configuration_error(self) -> None:
        """Test configuration error with a key."""
        exc = ConfigurationError("Cannot create directory", config_key="debug_output_directory")
        assert exc.error_code == "CONFIGURATION_ERROR"
        assert exc.details["config_key"] == "debug_output_directory"
        assert len(exc.suggestions) > 0
