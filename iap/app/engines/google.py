"""
Google Play engine.

Talks to the Android Publisher v3 REST API with an OAuth bearer token.
Token minting (service account JWT exchange) is the caller's concern: the
token comes from the payment's ``access_token`` field or from
IAP_GOOGLE_ACCESS_TOKEN.

Payment shape:
    {"package_name": str,
     "product_id": str,
     "purchase_token": str,
     "subscription": bool (optional, default False),
     "access_token": str (optional),
     "developer_payload": str (optional, acknowledge only)}

isCancelled / isExpired accept a previous verify_payment result, which
carries the same purchase reference fields.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Mapping

import httpx

from iap.app.config import VerifierSettings
from iap.app.engines.base import StorefrontEngine, epoch_ms, payment_field
from iap.app.engines.errors import (
    PlatformConfigurationError,
    PlatformRequestError,
    ReceiptRejectedError,
)
from iap.app.schemas.operations import Operation

logger = logging.getLogger(__name__)

PURCHASE_STATE_CANCELLED = 1
ACKNOWLEDGED = 1

_REJECTION_STATUSES = {400, 404, 410}


@dataclass(frozen=True)
class PurchaseRef:
    package_name: str
    product_id: str
    purchase_token: str
    subscription: bool
    access_token: str

    @property
    def kind(self) -> str:
        return "subscriptions" if self.subscription else "products"


class GoogleEngine(StorefrontEngine):
    PLATFORM = "google"
    CAPABILITIES = frozenset(
        {
            Operation.CANCEL_SUBSCRIPTION,
            Operation.IS_CANCELLED,
            Operation.IS_EXPIRED,
            Operation.ACKNOWLEDGE,
        }
    )

    def __init__(
        self,
        client: httpx.AsyncClient,
        settings: VerifierSettings,
    ) -> None:
        super().__init__(client)
        self._settings = settings

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def verify_payment(self, payment: Any) -> Dict[str, Any]:
        ref = self._purchase_ref(payment)
        data = await self._fetch(ref)

        if ref.subscription:
            purchase_date = data.get("startTimeMillis")
            expiration_date = data.get("expiryTimeMillis")
            cancelled = data.get("cancelReason") is not None
        else:
            purchase_date = data.get("purchaseTimeMillis")
            expiration_date = None
            cancelled = data.get("purchaseState") == PURCHASE_STATE_CANCELLED

        return {
            "transaction_id": data.get("orderId") or ref.purchase_token,
            "product_id": ref.product_id,
            "package_name": ref.package_name,
            "purchase_token": ref.purchase_token,
            "subscription": ref.subscription,
            "purchase_date": epoch_ms(purchase_date),
            "expiration_date": epoch_ms(expiration_date),
            "cancelled": cancelled,
            "acknowledged": data.get("acknowledgementState") == ACKNOWLEDGED,
        }

    async def cancel_subscription(self, payment: Any) -> Dict[str, Any]:
        ref = self._purchase_ref(payment)
        if not ref.subscription:
            raise ReceiptRejectedError(
                self.PLATFORM,
                "Only subscriptions can be cancelled",
            )
        await self._post(ref, "cancel")
        return {"cancelled": True}

    async def acknowledge(self, payment: Any) -> Dict[str, Any]:
        ref = self._purchase_ref(payment)
        body = {}
        developer_payload = payment_field(payment, "developer_payload")
        if developer_payload:
            body["developerPayload"] = developer_payload
        await self._post(ref, "acknowledge", json=body)
        return {"acknowledged": True}

    async def is_cancelled(self, response: Mapping[str, Any]) -> Dict[str, Any]:
        ref = self._purchase_ref(response)
        data = await self._fetch(ref)
        if ref.subscription:
            return {"cancelled": data.get("cancelReason") is not None}
        return {"cancelled": data.get("purchaseState") == PURCHASE_STATE_CANCELLED}

    async def is_expired(self, response: Mapping[str, Any]) -> Dict[str, Any]:
        ref = self._purchase_ref(response)
        if not ref.subscription:
            return {"expired": False}
        data = await self._fetch(ref)
        expiry = epoch_ms(data.get("expiryTimeMillis"))
        if expiry is None:
            return {"expired": False}
        return {"expired": expiry <= int(time.time() * 1000)}

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _purchase_ref(self, source: Any) -> PurchaseRef:
        package_name = payment_field(source, "package_name")
        product_id = payment_field(source, "product_id", "subscription_id")
        token = payment_field(source, "purchase_token", "token")
        if not (package_name and product_id and token):
            raise ReceiptRejectedError(
                self.PLATFORM,
                "Payment must have package_name, product_id and purchase_token",
            )

        access_token = payment_field(source, "access_token")
        if not access_token and self._settings.google_access_token is not None:
            access_token = self._settings.google_access_token.get_secret_value()
        if not access_token:
            raise PlatformConfigurationError(
                self.PLATFORM,
                "No Android Publisher access token configured",
            )

        return PurchaseRef(
            package_name=package_name,
            product_id=product_id,
            purchase_token=token,
            subscription=bool(payment_field(source, "subscription")),
            access_token=access_token,
        )

    def _url(self, ref: PurchaseRef, action: str = "") -> str:
        base = str(self._settings.google_api_base_url).rstrip("/")
        url = (
            f"{base}/applications/{ref.package_name}/purchases/"
            f"{ref.kind}/{ref.product_id}/tokens/{ref.purchase_token}"
        )
        return f"{url}:{action}" if action else url

    def _headers(self, ref: PurchaseRef) -> Dict[str, str]:
        return {"Authorization": f"Bearer {ref.access_token}"}

    async def _fetch(self, ref: PurchaseRef) -> dict:
        response = await self._request(
            "GET", self._url(ref), headers=self._headers(ref)
        )
        self._check_status(response, "get")
        return self._json(response)

    async def _post(self, ref: PurchaseRef, action: str, **kwargs: Any) -> None:
        response = await self._request(
            "POST", self._url(ref, action), headers=self._headers(ref), **kwargs
        )
        self._check_status(response, action)

    def _check_status(self, response: httpx.Response, action: str) -> None:
        if response.is_success:
            return
        status = response.status_code
        if status in _REJECTION_STATUSES:
            raise ReceiptRejectedError(
                self.PLATFORM,
                f"Purchase {action} rejected with HTTP {status}",
                status_code=status,
            )
        logger.warning("google: purchases %s HTTP %s", action, status)
        raise PlatformRequestError(
            self.PLATFORM,
            f"Android Publisher {action} returned HTTP {status}",
            status_code=status,
        )
