"""
In-memory engine doubles for dispatcher tests.

IMPORTANT:
- Deterministic
- No network access
- Record every call so tests can assert on what reached the engine
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, FrozenSet, Iterable, List, Tuple

from iap.app.schemas.operations import Operation


class FakeEngine:
    """
    Engine double with a configurable capability set.

    ``results`` maps an operation to the value it returns; ``errors`` maps
    an operation to the exception it raises. Unconfigured operations
    return an empty dict.
    """

    def __init__(
        self,
        capabilities: Iterable[Operation] = (),
        *,
        results: Dict[Operation, Any] | None = None,
        errors: Dict[Operation, BaseException] | None = None,
    ) -> None:
        self.capabilities: FrozenSet[Operation] = frozenset(capabilities)
        self._results = results or {}
        self._errors = errors or {}
        self.calls: List[Tuple[Operation, Any]] = []

    def supports(self, operation: Operation) -> bool:
        return operation.mandatory or operation in self.capabilities

    async def _complete(self, operation: Operation, payload: Any) -> Any:
        self.calls.append((operation, payload))
        # Complete on a later loop turn, like a real vendor round trip.
        await asyncio.sleep(0)
        if operation in self._errors:
            raise self._errors[operation]
        return self._results.get(operation, {})

    async def verify_payment(self, payment: Any) -> Any:
        return await self._complete(Operation.VERIFY_PAYMENT, payment)

    async def cancel_subscription(self, payment: Any) -> Any:
        return await self._complete(Operation.CANCEL_SUBSCRIPTION, payment)

    async def is_cancelled(self, response: Any) -> Any:
        return await self._complete(Operation.IS_CANCELLED, response)

    async def is_expired(self, response: Any) -> Any:
        return await self._complete(Operation.IS_EXPIRED, response)

    async def acknowledge(self, payment: Any) -> Any:
        return await self._complete(Operation.ACKNOWLEDGE, payment)


class SyncEngine:
    """Engine whose operations complete synchronously (plain functions)."""

    def supports(self, operation: Operation) -> bool:
        return operation in (Operation.VERIFY_PAYMENT, Operation.ACKNOWLEDGE)

    def verify_payment(self, payment: Any) -> Dict[str, Any]:
        return {"valid": True}

    def acknowledge(self, payment: Any) -> Dict[str, Any]:
        return {"acknowledged": True}


class CallbackRecorder:
    """
    Completion callback that records its invocations and can be awaited.
    """

    def __init__(self) -> None:
        self.calls: List[Tuple[BaseException | None, Any]] = []
        self._done = asyncio.Event()

    def __call__(self, error: BaseException | None, result: Any) -> None:
        self.calls.append((error, result))
        self._done.set()

    async def wait(self) -> Tuple[BaseException | None, Any]:
        await asyncio.wait_for(self._done.wait(), timeout=1)
        # Let any (erroneous) second invocation land before asserting.
        await asyncio.sleep(0)
        assert len(self.calls) == 1
        return self.calls[0]
