"""
Engine-originated errors.

These are authoritative domain errors owned by each engine. The
dispatcher never wraps, retries or re-classifies them.
"""

from __future__ import annotations

from typing import Optional


class PlatformError(Exception):
    """Base class for failures reported by a platform engine."""

    def __init__(
        self,
        platform: str,
        message: str,
        *,
        status_code: Optional[int] = None,
    ) -> None:
        self.platform = platform
        self.status_code = status_code
        super().__init__(message)


class ReceiptRejectedError(PlatformError):
    """The vendor rejected the receipt, token or transaction."""


class PlatformRequestError(PlatformError):
    """Transport failure or unexpected HTTP status from the vendor."""


class PlatformConfigurationError(PlatformError):
    """A credential required by the requested operation is not configured."""
