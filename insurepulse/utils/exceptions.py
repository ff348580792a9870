"""Custom exception classes for the application."""

from typing import Any, Optional, Sequence

from insurepulse.schemas.records import DefectReason, RejectedRow


class InsurePulseError(Exception):
    """Base exception for application errors."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.original_error = original_error


class NormalizationDefect(InsurePulseError):
    """Raised when a single raw row cannot become a canonical policy record.

    Row-level and recoverable: the batch validator records it and moves on.
    """

    def __init__(
        self,
        reason: DefectReason,
        message: str,
        field: Optional[str] = None,
        value: Any = None,
    ):
        super().__init__(message)
        self.reason = reason
        self.field = field
        self.value = value

    def to_rejected_row(self, row_index: int) -> RejectedRow:
        return RejectedRow(
            row_index=row_index,
            reason=self.reason,
            field=self.field,
            message=str(self),
        )


class StorageFailure(InsurePulseError):
    """Raised when a batch commit aborts. Nothing from the batch was applied."""

    def __init__(
        self,
        message: str,
        original_error: Optional[Exception] = None,
        defects: Sequence[RejectedRow] = (),
    ):
        super().__init__(message, original_error)
        self.defects = list(defects)


class ConfigurationError(InsurePulseError):
    """Raised when configuration is invalid or missing."""
    pass


class APIClientError(InsurePulseError):
    """Raised when an external API call fails."""
    pass


class APITimeoutError(APIClientError):
    """Raised when an external API call times out."""
    pass
