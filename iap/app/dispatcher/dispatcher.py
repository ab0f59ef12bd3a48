"""
Receipt verification dispatcher.

IMPORTANT:
The dispatcher is a DUMB ROUTER.

It MUST NOT:
- inspect payment contents beyond "is it present"
- retry, wrap or re-classify engine errors
- hold per-call state between calls

Every operation runs the same straight-line pipeline:
    1. pre-flight validation       -> InputValidationError
    2. platform resolution         -> UnknownPlatformError
    3. capability check            -> UnsupportedOperationError
    4. engine invocation           -> engine error, passed through as-is
    5. result normalization        (verify_payment only: stamp ``platform``)
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Dict, Mapping, Optional

import httpx

from iap.app.config import VerifierSettings
from iap.app.dispatcher.completion import completion_style
from iap.app.engines import VerificationEngine
from iap.app.engines.base import response_transaction_id
from iap.app.errors import (
    InputValidationError,
    UnknownPlatformError,
    UnsupportedOperationError,
)
from iap.app.registry.registry import EngineRegistry, build_default_registry
from iap.app.schemas.operations import Operation

logger = logging.getLogger(__name__)


class Dispatcher:
    """
    Platform-agnostic entry point for the five receipt lifecycle operations.

    Each public operation returns an awaitable task, or None when a
    ``callback(error, result)`` is supplied (see completion_style).
    """

    def __init__(
        self,
        registry: EngineRegistry,
        *,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """
        Direct constructor.

        ``client`` is only given when the dispatcher owns the HTTP client
        its engines share, so that aclose() can release it.
        """
        self._registry = registry
        self._client = client

    # ------------------------------------------------------------------
    # Integration constructor (composition root)
    # ------------------------------------------------------------------

    @classmethod
    def from_settings(cls, settings: VerifierSettings) -> "Dispatcher":
        """
        Construct a dispatcher wired to the bundled engines.
        """
        client = httpx.AsyncClient(timeout=settings.http_timeout_seconds)
        registry = build_default_registry(settings, client)
        logger.info("dispatcher: platforms registered: %s", registry.platforms())
        return cls(registry, client=client)

    @property
    def registry(self) -> EngineRegistry:
        return self._registry

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()

    async def __aenter__(self) -> "Dispatcher":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @completion_style
    async def verify_payment(self, platform: str, payment: Any) -> Dict[str, Any]:
        """
        Verify a receipt and tag the result with the originating platform.
        """
        if not payment:
            raise InputValidationError("No payment given")

        result = await self._dispatch(Operation.VERIFY_PAYMENT, platform, payment)

        # The dispatcher owns this field; whatever the engine set is replaced.
        return {**result, "platform": platform}

    @completion_style
    async def cancel_subscription(self, platform: str, payment: Any) -> Any:
        if not payment:
            raise InputValidationError("No payment given")
        return await self._dispatch(Operation.CANCEL_SUBSCRIPTION, platform, payment)

    @completion_style
    async def is_cancelled(self, response: Mapping[str, Any]) -> Any:
        """
        Re-dispatch a previous verify_payment result to its platform.
        """
        platform = self._response_platform(response)
        return await self._dispatch(Operation.IS_CANCELLED, platform, response)

    @completion_style
    async def is_expired(self, response: Mapping[str, Any]) -> Any:
        platform = self._response_platform(response)
        return await self._dispatch(Operation.IS_EXPIRED, platform, response)

    @completion_style
    async def acknowledge(self, platform: str, payment: Any) -> Any:
        if not payment:
            raise InputValidationError("No payment given")
        return await self._dispatch(Operation.ACKNOWLEDGE, platform, payment)

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    @staticmethod
    def _response_platform(response: Mapping[str, Any]) -> Any:
        if not response:
            raise InputValidationError("No response given")
        if not isinstance(response, Mapping) or not response_transaction_id(
            response
        ):
            raise InputValidationError("Response must have a transaction id")
        return response.get("platform")

    def _resolve(self, operation: Operation, platform: Any) -> VerificationEngine:
        engine = self._registry.resolve(platform)
        if engine is None:
            logger.info(
                "dispatcher: %s rejected, unknown platform %r",
                operation.value,
                platform,
            )
            raise UnknownPlatformError(platform)

        if not operation.mandatory and not engine.supports(operation):
            logger.info(
                "dispatcher: %s not supported by %s", operation.value, platform
            )
            raise UnsupportedOperationError(platform, operation)

        return engine

    async def _dispatch(
        self,
        operation: Operation,
        platform: Any,
        payload: Any,
    ) -> Any:
        engine = self._resolve(operation, platform)

        logger.debug("dispatcher: %s -> %s", operation.value, platform)
        try:
            outcome = getattr(engine, operation.value)(payload)
            if inspect.isawaitable(outcome):
                outcome = await outcome
        except Exception as exc:
            logger.warning(
                "dispatcher: %s failed on %s: %s: %s",
                operation.value,
                platform,
                type(exc).__name__,
                exc,
            )
            raise

        return outcome
