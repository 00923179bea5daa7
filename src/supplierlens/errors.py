"""Exception hierarchy shared by the resolution and scoring layers."""

from __future__ import annotations


class SupplierLensError(Exception):
    """Base class for all library errors."""


class InvalidRecordError(SupplierLensError, ValueError):
    """An input record is missing its identifier or is otherwise unusable."""

    def __init__(self, message: str, record_id: str | None = None) -> None:
        super().__init__(message)
        self.record_id = record_id


class RecordNotFoundError(SupplierLensError, KeyError):
    """A merge referenced a record that is not in the store."""

    def __init__(self, record_id: str) -> None:
        super().__init__(record_id)
        self.record_id = record_id

    def __str__(self) -> str:
        return f"Record not found: {self.record_id!r}"


class ConfigurationError(SupplierLensError, ValueError):
    """A configuration value is outside its permitted range."""


class WeightConfigurationError(ConfigurationError):
    """A weight set cannot be normalized to sum to 1.0."""
