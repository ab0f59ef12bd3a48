from __future__ import annotations

from typing import (
    Any,
    ClassVar,
    FrozenSet,
    Mapping,
    Optional,
    Protocol,
    runtime_checkable,
)

import httpx

from iap.app.engines.errors import PlatformRequestError
from iap.app.schemas.operations import Operation


@runtime_checkable
class VerificationEngine(Protocol):
    """
    Capability contract every platform engine must satisfy.

    Implementations must:
    - always implement verify_payment
    - answer supports() truthfully for the optional operations, and
      implement a method named after Operation.value for each one
    - complete every operation exactly once (return or raise)
    - never set a ``platform`` field on verify_payment results
    """

    def supports(self, operation: Operation) -> bool:
        ...

    async def verify_payment(self, payment: Any) -> Mapping[str, Any]:
        ...


class StorefrontEngine:
    """
    Base class for the bundled HTTP engines.

    Subclasses declare their optional operations in CAPABILITIES and share
    one httpx.AsyncClient, injected by the composition root so connection
    pooling is preserved across calls.
    """

    PLATFORM: ClassVar[str]
    CAPABILITIES: ClassVar[FrozenSet[Operation]] = frozenset()

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    def supports(self, operation: Operation) -> bool:
        return operation.mandatory or operation in self.CAPABILITIES

    async def verify_payment(self, payment: Any) -> Mapping[str, Any]:
        raise NotImplementedError

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        url: str,
        **kwargs: Any,
    ) -> httpx.Response:
        """
        Issue a vendor request, translating transport failures.

        HTTP status handling is left to the caller since each vendor
        encodes rejection differently. Only the host is reported: Amazon
        and Roku embed credentials in the request path.
        """
        try:
            return await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise PlatformRequestError(
                self.PLATFORM,
                f"{method} {httpx.URL(url).host} failed: {exc}",
            ) from exc

    def _json(self, response: httpx.Response) -> dict:
        try:
            data = response.json()
        except ValueError as exc:
            raise PlatformRequestError(
                self.PLATFORM,
                "Vendor returned a non-JSON body",
                status_code=response.status_code,
            ) from exc
        if not isinstance(data, dict):
            raise PlatformRequestError(
                self.PLATFORM,
                "Vendor returned an unexpected JSON document",
                status_code=response.status_code,
            )
        return data


def payment_field(payment: Any, *names: str) -> Any:
    """
    Return the first present field among ``names`` from a mapping payment.
    """
    if not isinstance(payment, Mapping):
        return None
    for name in names:
        value = payment.get(name)
        if value:
            return value
    return None


def response_transaction_id(response: Any) -> Any:
    """
    Transaction id of a previous verify_payment result.

    ``transactionId`` is accepted as an alias for ``transaction_id``.
    """
    return payment_field(response, "transaction_id", "transactionId")


def epoch_ms(value: Any) -> Optional[int]:
    """Coerce a vendor millisecond timestamp (often a string) to int."""
    return int(value) if value not in (None, "") else None
