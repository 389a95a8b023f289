"""Exception hierarchy shared across registry loading, acquisition, and updates.

A registry run spans loading the persisted metadata tree, running acquisition
drivers, retrieving documents, validating them, and serialising the result.
This module groups those failure modes so callers can react to high-level
categories (a fatal load problem vs. a per-candidate retrieval failure) while
still reaching the specialised subclasses when finer handling is needed.
"""

from __future__ import annotations

from typing import Optional

__all__ = [
    "RegistryError",
    "ConfigurationError",
    "RegistryLoadError",
    "DriverError",
    "RetrievalError",
    "DocumentValidationError",
    "SerializationError",
    "UserConfigError",
]


class RegistryError(RuntimeError):
    """Base exception for registry loading, acquisition, or update failures."""


class ConfigurationError(RegistryError):
    """Raised when provider configuration or settings are invalid."""


class RegistryLoadError(RegistryError):
    """Raised when the persisted registry is missing or cannot be parsed."""


class DriverError(RegistryError):
    """Raised when an acquisition driver cannot reach or parse its index."""


class RetrievalError(RegistryError):
    """Raised when a document cannot be retrieved from its source."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        mediatype: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.mediatype = mediatype


class DocumentValidationError(RegistryError):
    """Raised when a document fails validation and the caller must stop."""

    def __init__(self, message: str, *, context: Optional[str] = None) -> None:
        super().__init__(message)
        self.context = context


class SerializationError(RegistryError):
    """Raised when every serialisation tier for the registry has failed."""


class UserConfigError(RuntimeError):
    """Raised when CLI arguments or option combinations are invalid."""
