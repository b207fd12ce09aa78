"""Exception types shared across the focus tracker."""

from __future__ import annotations


class ConfigurationError(ValueError):
    """Raised when timer settings are out of range."""


class StorageError(RuntimeError):
    """Raised by a storage collaborator when a read or write fails."""
