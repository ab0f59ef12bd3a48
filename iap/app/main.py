"""
Composition root and module-level API.

The default dispatcher is built lazily from ``get_settings()`` the first
time an operation is called, inside the caller's event loop. Applications
that need explicit wiring (tests, custom engines) should construct a
Dispatcher directly instead.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

from iap.app.config import get_settings
from iap.app.dispatcher.completion import Completion
from iap.app.dispatcher.dispatcher import Dispatcher

_default: Optional[Dispatcher] = None


def get_dispatcher() -> Dispatcher:
    global _default
    if _default is None:
        _default = Dispatcher.from_settings(get_settings())
    return _default


async def shutdown() -> None:
    """
    Release the default dispatcher's HTTP client, if one was built.
    """
    global _default
    if _default is not None:
        await _default.aclose()
        _default = None


def verify_payment(
    platform: str, payment: Any, callback: Optional[Completion] = None
):
    return get_dispatcher().verify_payment(platform, payment, callback=callback)


def cancel_subscription(
    platform: str, payment: Any, callback: Optional[Completion] = None
):
    return get_dispatcher().cancel_subscription(
        platform, payment, callback=callback
    )


def is_cancelled(
    response: Mapping[str, Any], callback: Optional[Completion] = None
):
    return get_dispatcher().is_cancelled(response, callback=callback)


def is_expired(
    response: Mapping[str, Any], callback: Optional[Completion] = None
):
    return get_dispatcher().is_expired(response, callback=callback)


def acknowledge(
    platform: str, payment: Any, callback: Optional[Completion] = None
):
    return get_dispatcher().acknowledge(platform, payment, callback=callback)
