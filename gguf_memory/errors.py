# gguf_memory/errors.py
"""
Error taxonomy for memory estimation.

Every failure surfaced to callers derives from ``EstimationError`` so the CLI
(and library users) can catch one type and still inspect the concrete kind.
"""

from __future__ import annotations

from typing import Optional


class EstimationError(Exception):
    """Base class for all estimation failures."""


class FormatError(EstimationError):
    """Raised when a GGUF file is malformed or its metadata cannot be scanned."""


class MissingRequiredKeyError(EstimationError):
    """Raised when a metadata key without a defined fallback is absent."""

    def __init__(self, key: str, message: Optional[str] = None):
        self.key = key
        super().__init__(message or f"Required metadata key missing: {key}")


class InconsistentShardCountError(EstimationError):
    """Raised when filename and metadata disagree about the shard layout."""


class NetworkError(EstimationError):
    """Raised on transport failures, timeouts and unexpected HTTP statuses."""

    def __init__(self, message: str, *, url: Optional[str] = None, status: Optional[int] = None):
        self.url = url
        self.status = status
        super().__init__(message)


class SourceUnavailable(NetworkError):
    """Raised when a source's size cannot be discovered (missing file, no length)."""


class ValidationError(EstimationError, ValueError):
    """Raised on non-positive or out-of-range caller input."""


class EstimationCancelled(EstimationError):
    """Raised when the caller cancels an estimation in progress."""
