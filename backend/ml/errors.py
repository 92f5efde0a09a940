"""Error types raised by the channel analytics core.

Every error carries a stable ``code`` so callers can tell which step failed
without parsing messages, plus a ``context`` dict for structured logging.
"""

from __future__ import annotations

from typing import Any


class MLError(Exception):
    """Base class for analytics errors."""

    def __init__(self, code: str, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class MLInputError(MLError, ValueError):
    """Raised for invalid parameters, before any storage access."""


class SeriesReadError(MLError):
    """Raised when the series (or a side signal) cannot be read from storage."""


class SeriesInvalidError(MLError):
    """Raised when a stored series row fails validation. The whole read fails."""


class SeriesEmptyError(MLError):
    """Raised when training is requested for a channel with no history at all."""


class RepositoryError(MLError):
    """Raised by a single repository write step; the code names the step."""
