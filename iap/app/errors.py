"""
Dispatcher-originated error taxonomy.

This is a closed set. Each error is detected before any engine is invoked
and is delivered through the caller's completion channel on a later event
loop turn, never raised out of the call itself.

Engine-originated errors are NOT part of this taxonomy. They pass through
the dispatcher untouched (see ``iap.app.engines.errors``).
"""

from __future__ import annotations

from enum import Enum

from iap.app.schemas.operations import Operation


class DispatchErrorKind(str, Enum):
    VALIDATION = "validation_error"
    UNKNOWN_PLATFORM = "unknown_platform"
    UNSUPPORTED_OPERATION = "unsupported_operation"


class DispatchError(Exception):
    """
    Base class for errors raised by the dispatcher itself.
    """

    kind: DispatchErrorKind


class InputValidationError(DispatchError):
    """A required payment, response or transaction id is missing."""

    kind = DispatchErrorKind.VALIDATION


class UnknownPlatformError(DispatchError):
    kind = DispatchErrorKind.UNKNOWN_PLATFORM

    def __init__(self, platform: object) -> None:
        self.platform = platform
        super().__init__(f"Platform {platform} not recognized")


class UnsupportedOperationError(DispatchError):
    """The resolved engine does not expose an optional capability."""

    kind = DispatchErrorKind.UNSUPPORTED_OPERATION

    def __init__(self, platform: str, operation: Operation) -> None:
        self.platform = platform
        self.operation = operation
        super().__init__(
            f"Platform {platform} does not have a {operation.value} method"
        )
