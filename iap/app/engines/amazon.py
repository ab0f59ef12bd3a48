"""
Amazon Appstore engine (Receipt Verification Service).

Payment shape:
    {"user_id": str, "receipt_id": str,
     "secret": str (optional, overrides IAP_AMAZON_SHARED_SECRET)}
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping

import httpx

from iap.app.config import VerifierSettings
from iap.app.engines.base import (
    StorefrontEngine,
    epoch_ms,
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

PRODUCTION_BASE_URL = "https://appstore-sdk.amazon.com/version/1.0"
SANDBOX_BASE_URL = "https://appstore-sdk.amazon.com/sandbox/version/1.0"

# RVS status codes
_INVALID_RECEIPT = {400, 410}
_INVALID_SECRET = 496
_INVALID_USER = 497


class AmazonEngine(StorefrontEngine):
    PLATFORM = "amazon"
    CAPABILITIES = frozenset({Operation.IS_CANCELLED})

    def __init__(
        self,
        client: httpx.AsyncClient,
        settings: VerifierSettings,
    ) -> None:
        super().__init__(client)
        self._settings = settings

    async def verify_payment(self, payment: Any) -> Dict[str, Any]:
        user_id = payment_field(payment, "user_id")
        receipt_id = payment_field(payment, "receipt_id", "receipt")
        data = await self._verify_receipt_id(
            user_id, receipt_id, secret=payment_field(payment, "secret")
        )

        return {
            "transaction_id": data.get("receiptId") or receipt_id,
            "user_id": user_id,
            "product_id": data.get("productId"),
            "product_type": data.get("productType"),
            "purchase_date": epoch_ms(data.get("purchaseDate")),
            "expiration_date": epoch_ms(data.get("renewalDate")),
            "cancelled": data.get("cancelDate") is not None,
            "test_transaction": bool(data.get("testTransaction")),
        }

    async def is_cancelled(self, response: Mapping[str, Any]) -> Dict[str, Any]:
        data = await self._verify_receipt_id(
            response.get("user_id"), response_transaction_id(response)
        )
        return {"cancelled": data.get("cancelDate") is not None}

    async def _verify_receipt_id(
        self,
        user_id: Any,
        receipt_id: Any,
        *,
        secret: Any = None,
    ) -> dict:
        if not (user_id and receipt_id):
            raise ReceiptRejectedError(
                self.PLATFORM,
                "Payment must have user_id and receipt_id",
            )
        if not secret and self._settings.amazon_shared_secret is not None:
            secret = self._settings.amazon_shared_secret.get_secret_value()
        if not secret:
            raise PlatformConfigurationError(
                self.PLATFORM,
                "No RVS shared secret configured",
            )

        base = SANDBOX_BASE_URL if self._settings.amazon_sandbox else PRODUCTION_BASE_URL
        url = (
            f"{base}/verifyReceiptId/developer/{secret}"
            f"/user/{user_id}/receiptId/{receipt_id}"
        )
        response = await self._request("GET", url)

        status = response.status_code
        if status == 200:
            return self._json(response)
        if status in _INVALID_RECEIPT or status == _INVALID_USER:
            raise ReceiptRejectedError(
                self.PLATFORM,
                f"Receipt rejected with HTTP {status}",
                status_code=status,
            )
        if status == _INVALID_SECRET:
            logger.error("amazon: RVS rejected the shared secret")
            raise PlatformConfigurationError(
                self.PLATFORM,
                "RVS rejected the shared secret",
                status_code=status,
            )
        logger.warning("amazon: RVS HTTP %s", status)
        raise PlatformRequestError(
            self.PLATFORM,
            f"RVS returned HTTP {status}",
            status_code=status,
        )
