"""
Custom exception hierarchy for roadgrade.

Parameter problems are collected into a single ValidationError before any
processing starts. Degenerate geometry raises GeometryError inside the
stage that detects it; callers log and skip the affected path. Raster I/O
failures are fatal for the invocation.
"""

from typing import Any, Dict, List, Optional


class RoadGradeException(Exception):
    """
    Base exception for all roadgrade errors.

    Attributes:
        error_code: String identifier for the error type
        message: User-friendly error message
        details: Technical details for logging/debugging
        suggestions: Optional list of resolution suggestions
    """

    def __init__(
        self,
        message: str,
        error_code: str,
        details: Optional[Dict[str, Any]] = None,
        suggestions: Optional[List[str]] = None,
    ):
        """
        Initialize RoadGradeException.

        Args:
            message: User-friendly error message
            error_code: String identifier for the error type
            details: Technical details for logging
            suggestions: List of suggestions for resolution
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.suggestions = suggestions or []

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert exception to dictionary for reporting.

        Returns:
            Dictionary representation of the error
        """
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "suggestions": self.suggestions,
        }

    def __str__(self) -> str:
        """String representation of the exception."""
        return f"{self.error_code}: {self.message}"

    def __repr__(self) -> str:
        """Detailed string representation for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"error_code='{self.error_code}', "
            f"message='{self.message}')"
        )


class ValidationError(RoadGradeException):
    """
    Raised when input validation fails.

    Carries every collected message in ``errors`` (and in
    ``details["errors"]``) so callers can report all problems at once.
    """

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        errors: Optional[List[str]] = None,
        details: Optional[Dict[str, Any]] = None,
        suggestions: Optional[List[str]] = None,
    ):
        """
        Initialize ValidationError.

        Args:
            message: User-friendly error message
            field: Name of the field that failed validation
            errors: All validation messages collected for this failure
            details: Technical details about the validation failure
            suggestions: List of suggestions for fixing the validation error
        """
        error_details = details or {}
        if field:
            error_details["field"] = field
        self.errors = list(errors) if errors else [message]
        error_details["errors"] = self.errors

        super().__init__(
            message=message,
            error_code="VALIDATION_ERROR",
            details=error_details,
            suggestions=suggestions or ["Check the parameter ranges and try again"],
        )

    @classmethod
    def from_messages(cls, messages: List[str], context: str = "parameters") -> "ValidationError":
        """
        Build a single error from a list of validation messages.

        Args:
            messages: Collected validation messages (non-empty)
            context: What was being validated, used in the summary message

        Returns:
            ValidationError summarising all messages
        """
        summary = f"Invalid {context}: " + "; ".join(messages)
        return cls(summary, errors=messages)


class GeometryError(RoadGradeException):
    """
    Raised when road geometry is degenerate.

    Used for zero-length splines, too few control points or paths that
    collapse after simplification. Never fatal for a whole run: the
    offending path is skipped.
    """

    def __init__(
        self,
        message: str,
        path_id: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
        suggestions: Optional[List[str]] = None,
    ):
        """
        Initialize GeometryError.

        Args:
            message: User-friendly error message
            path_id: Identifier of the path that could not be processed
            details: Technical details about the geometry problem
            suggestions: List of suggestions for resolution
        """
        error_details = details or {}
        if path_id is not None:
            error_details["path_id"] = path_id

        default_suggestions = [
            "Check that the road mask does not contain single-pixel fragments",
            "Lower min_path_length_pixels or simplify_tolerance_pixels",
        ]

        super().__init__(
            message=message,
            error_code="GEOMETRY_ERROR",
            details=error_details,
            suggestions=suggestions or default_suggestions,
        )


class RasterIOError(RoadGradeException):
    """
    Raised when a heightmap, mask or exclusion raster cannot be read or written.
    """

    def __init__(
        self,
        message: str,
        file_path: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        suggestions: Optional[List[str]] = None,
    ):
        """
        Initialize RasterIOError.

        Args:
            message: User-friendly error message
            file_path: Path of the raster involved
            details: Technical details about the failure
            suggestions: List of suggestions for resolution
        """
        error_details = details or {}
        if file_path:
            error_details["file_path"] = file_path

        default_suggestions = [
            "Verify the file exists and is readable",
            "Check that the raster is a valid single-band image",
        ]

        super().__init__(
            message=message,
            error_code="RASTER_IO_ERROR",
            details=error_details,
            suggestions=suggestions or default_suggestions,
        )


class ConfigurationError(RoadGradeException):
    """
    Raised when engine configuration is invalid.
    """

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        suggestions: Optional[List[str]] = None,
    ):
        """
        Initialize ConfigurationError.

        Args:
            message: User-friendly error message
            config_key: Configuration key that is invalid
            details: Technical details about the configuration error
            suggestions: List of suggestions for resolution
        """
        error_details = details or {}
        if config_key:
            error_details["config_key"] = config_key

        default_suggestions = [
            "Check ROADGRADE_* environment variables are set correctly",
            "Verify .env file syntax",
        ]

        super().__init__(
            message=message,
            error_code="CONFIGURATION_ERROR",
            details=error_details,
            suggestions=suggestions or default_suggestions,
        )
