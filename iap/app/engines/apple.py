"""
Apple App Store engine.

Validates receipts against the legacy ``verifyReceipt`` endpoint. Requests
always go to production first; status 21007 (sandbox receipt sent to
production) triggers a single retry against the sandbox endpoint, as
Apple recommends for apps under review.

Payment shape:
    str                                 base64 receipt data, or
    {"receipt": str,
     "secret": str (optional, overrides IAP_APPLE_SHARED_SECRET),
     "product_id": str (optional, restricts the matched transaction),
     "exclude_old_transactions": bool (optional)}
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Mapping, Optional

import httpx

from iap.app.config import VerifierSettings
from iap.app.engines.base import StorefrontEngine, epoch_ms, payment_field
from iap.app.engines.errors import PlatformRequestError, ReceiptRejectedError
from iap.app.schemas.operations import Operation

logger = logging.getLogger(__name__)

STATUS_OK = 0
STATUS_SANDBOX_RECEIPT = 21007
# Valid receipt whose auto-renewable subscription has expired.
STATUS_SUBSCRIPTION_EXPIRED = 21006


class AppleEngine(StorefrontEngine):
    PLATFORM = "apple"
    CAPABILITIES = frozenset({Operation.IS_EXPIRED})

    def __init__(
        self,
        client: httpx.AsyncClient,
        settings: VerifierSettings,
    ) -> None:
        super().__init__(client)
        self._settings = settings

    async def verify_payment(self, payment: Any) -> Dict[str, Any]:
        receipt = payment if isinstance(payment, str) else payment_field(
            payment, "receipt", "receipt_data"
        )
        if not receipt:
            raise ReceiptRejectedError(self.PLATFORM, "Payment has no receipt")

        body: Dict[str, Any] = {"receipt-data": receipt}

        secret = payment_field(payment, "secret")
        if not secret and self._settings.apple_shared_secret is not None:
            secret = self._settings.apple_shared_secret.get_secret_value()
        if secret:
            body["password"] = secret
        if payment_field(payment, "exclude_old_transactions"):
            body["exclude-old-transactions"] = True

        environment = "production"
        data = await self._post_receipt(
            str(self._settings.apple_production_url), body
        )

        if data.get("status") == STATUS_SANDBOX_RECEIPT:
            logger.info("apple: sandbox receipt sent to production, retrying")
            environment = "sandbox"
            data = await self._post_receipt(
                str(self._settings.apple_sandbox_url), body
            )

        status = data.get("status")
        if status not in (STATUS_OK, STATUS_SUBSCRIPTION_EXPIRED):
            raise ReceiptRejectedError(
                self.PLATFORM,
                f"Receipt rejected with status {status}",
            )

        latest = self._latest_transaction(
            data, product_id=payment_field(payment, "product_id")
        )

        return {
            "receipt": data.get("receipt"),
            "latest_receipt": data.get("latest_receipt"),
            "environment": environment,
            "transaction_id": latest.get("transaction_id"),
            "original_transaction_id": latest.get("original_transaction_id"),
            "product_id": latest.get("product_id"),
            "purchase_date": epoch_ms(latest.get("purchase_date_ms")),
            "expiration_date": epoch_ms(latest.get("expires_date_ms")),
            "cancelled": latest.get("cancellation_date_ms") is not None,
        }

    async def is_expired(self, response: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Decide expiry from a previous verify_payment result.

        Non-subscription purchases carry no expiration date and never expire.
        """
        expiration = response.get("expiration_date")
        if expiration is None:
            return {"expired": False}
        return {"expired": int(expiration) <= int(time.time() * 1000)}

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _post_receipt(self, url: str, body: Dict[str, Any]) -> dict:
        response = await self._request("POST", url, json=body)
        if response.status_code != 200:
            logger.warning("apple: verifyReceipt HTTP %s", response.status_code)
            raise PlatformRequestError(
                self.PLATFORM,
                f"verifyReceipt returned HTTP {response.status_code}",
                status_code=response.status_code,
            )
        return self._json(response)

    def _latest_transaction(
        self,
        data: Mapping[str, Any],
        *,
        product_id: Optional[str],
    ) -> Mapping[str, Any]:
        transactions: List[Mapping[str, Any]] = list(
            data.get("latest_receipt_info")
            or (data.get("receipt") or {}).get("in_app")
            or []
        )
        if product_id:
            transactions = [
                t for t in transactions if t.get("product_id") == product_id
            ]
        if not transactions:
            raise ReceiptRejectedError(
                self.PLATFORM,
                "Receipt contains no matching in-app purchase",
            )
        return max(
            transactions,
            key=lambda t: int(t.get("purchase_date_ms") or 0),
        )
