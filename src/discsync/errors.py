"""Exception types shared across discsync."""

from __future__ import annotations


class DiscsyncError(Exception):
    """Base class for all discsync errors."""


class ConfigError(DiscsyncError):
    """Raised when configuration is missing or malformed."""


class TransportError(DiscsyncError):
    """Raised when the remote catalog cannot be fetched."""


class FetchError(DiscsyncError):
    """Raised when a cover image download does not succeed."""


class PersistenceError(DiscsyncError):
    """Raised when the record store rejects a read or write."""


class ValidationError(DiscsyncError):
    """Raised when remote data has an unexpected shape."""
