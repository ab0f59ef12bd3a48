"""
Roku Pay engine.

Validates transactions through the Roku transaction service
``validate-transaction`` endpoint.

Payment shape:
    str                                   transaction id, or
    {"transaction_id": str,
     "developer_token": str (optional, overrides IAP_ROKU_DEVELOPER_TOKEN)}
"""

from __future__ import annotations

import logging
import re
import time
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

import httpx

from iap.app.config import VerifierSettings
from iap.app.engines.base import (
    StorefrontEngine,
    payment_field,
    response_transaction_id,
)
from iap.app.engines.errors import (
    PlatformConfigurationError,
    PlatformRequestError,
    ReceiptRejectedError,
)
from iap.app.schemas.operations import Operation

logger = logging.getLogger(__name__)

VALIDATE_URL = (
    "https://apipub.roku.com/listen/transaction-service.svc/validate-transaction"
)

# Legacy WCF date literal, e.g. "/Date(1343213000000-0700)/"
_WCF_DATE = re.compile(r"/Date\((-?\d+)([+-]\d{4})?\)/")
_LONG_FRACTION = re.compile(r"(\.\d{6})\d+")


class RokuEngine(StorefrontEngine):
    PLATFORM = "roku"
    CAPABILITIES = frozenset({Operation.IS_CANCELLED, Operation.IS_EXPIRED})

    def __init__(
        self,
        client: httpx.AsyncClient,
        settings: VerifierSettings,
    ) -> None:
        super().__init__(client)
        self._settings = settings

    async def verify_payment(self, payment: Any) -> Dict[str, Any]:
        transaction_id = payment if isinstance(payment, str) else payment_field(
            payment, "transaction_id"
        )
        data = await self._validate(
            transaction_id,
            developer_token=payment_field(payment, "developer_token"),
        )

        return {
            "transaction_id": data.get("transactionId") or transaction_id,
            "product_id": data.get("productId"),
            "customer_id": data.get("rokuCustomerId"),
            "purchase_date": self._date(data, "purchaseDate"),
            "expiration_date": self._date(data, "expirationDate"),
            "cancelled": bool(data.get("cancelled")),
            "entitled": bool(data.get("isEntitled", True)),
        }

    async def is_cancelled(self, response: Mapping[str, Any]) -> Dict[str, Any]:
        data = await self._validate(response_transaction_id(response))
        return {"cancelled": bool(data.get("cancelled"))}

    async def is_expired(self, response: Mapping[str, Any]) -> Dict[str, Any]:
        data = await self._validate(response_transaction_id(response))
        expiration = self._date(data, "expirationDate")
        if expiration is None:
            return {"expired": False}
        return {"expired": expiration <= int(time.time() * 1000)}

    async def _validate(
        self,
        transaction_id: Any,
        *,
        developer_token: Any = None,
    ) -> dict:
        if not transaction_id:
            raise ReceiptRejectedError(self.PLATFORM, "Payment has no transaction_id")
        if not developer_token and self._settings.roku_developer_token is not None:
            developer_token = self._settings.roku_developer_token.get_secret_value()
        if not developer_token:
            raise PlatformConfigurationError(
                self.PLATFORM,
                "No Roku developer token configured",
            )

        response = await self._request(
            "GET",
            f"{VALIDATE_URL}/{developer_token}/{transaction_id}",
            headers={"Accept": "application/json"},
        )
        if response.status_code != 200:
            logger.warning("roku: validate-transaction HTTP %s", response.status_code)
            raise PlatformRequestError(
                self.PLATFORM,
                f"validate-transaction returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        data = self._json(response)
        if data.get("status") != "Success":
            raise ReceiptRejectedError(
                self.PLATFORM,
                data.get("errorMessage") or "Transaction rejected",
            )
        return data

    def _date(self, data: Mapping[str, Any], field: str) -> Optional[int]:
        try:
            return parse_roku_date(data.get(field))
        except ValueError as exc:
            logger.warning("roku: unparseable %s %r", field, data.get(field))
            raise PlatformRequestError(
                self.PLATFORM,
                f"Unparseable vendor date in {field}",
            ) from exc


def parse_roku_date(value: Any) -> Optional[int]:
    """
    Convert a Roku date (ISO 8601 or WCF literal) to epoch milliseconds.

    Naive ISO timestamps are taken as UTC. Raises ValueError for anything
    else.
    """
    if not value:
        return None
    match = _WCF_DATE.fullmatch(str(value))
    if match:
        return int(match.group(1))
    # .NET emits 7 fractional digits; fromisoformat accepts at most 6
    text = _LONG_FRACTION.sub(r"\1", str(value).replace("Z", "+00:00"))
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp() * 1000)
