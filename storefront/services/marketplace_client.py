"""
LZT Market HTTP client.

Every request is signed with HMAC-SHA256 over
  METHOD|endpoint|timestamp|json(payload)
and carries X-API-KEY, X-API-SIGNATURE and X-API-TIMESTAMP headers.
"""

import hashlib
import hmac
import json
import logging
import time
from typing import Any, Optional

import httpx

from storefront.core.config import Settings, get_settings

logger = logging.getLogger(__name__)


class MarketplaceError(Exception):
    """Raised when the marketplace is unreachable or answers with an error."""


def as_int(value: Any) -> int:
    """Integer detail value; free-form input that is not a number counts as 0."""
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def map_details(item: dict) -> dict:
    """Map marketplace item details onto the catalog's details dict."""
    raw = item.get("details") or {}
    details: dict[str, Any] = {}

    if raw.get("rank"):
        details["rank"] = raw["rank"]
    if raw.get("skins_count"):
        details["skins"] = as_int(raw["skins_count"])
    if raw.get("region"):
        details["region"] = raw["region"]
    if raw.get("agents_count"):
        details["agents"] = as_int(raw["agents_count"])
    if raw.get("level"):
        details["level"] = as_int(raw["level"])
    if "email_verified" in raw:
        details["verification"] = bool(raw["email_verified"])
    if raw.get("valorant_points"):
        details["valorant_points"] = as_int(raw["valorant_points"])

    # Keep unmapped fields as-is
    for key, value in raw.items():
        details.setdefault(key, value)

    return details


class MarketplaceClient:
    """Signed client for the external account marketplace."""

    def __init__(self, settings: Optional[Settings] = None, transport: Optional[httpx.BaseTransport] = None):
        self.settings = settings or get_settings()
        self.api_key = self.settings.LZT_API_KEY
        self.api_secret = self.settings.LZT_API_SECRET
        self._client = httpx.Client(
            base_url=self.settings.LZT_BASE_URL,
            timeout=self.settings.LZT_TIMEOUT_SECONDS,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "MarketplaceClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def sign(self, method: str, endpoint: str, payload: Optional[dict] = None, timestamp: Optional[int] = None) -> dict:
        """Signature headers for one request."""
        timestamp = timestamp or int(time.time() * 1000)
        message = f"{method.upper()}|{endpoint}|{timestamp}|{json.dumps(payload or {}, separators=(',', ':'))}"
        signature = hmac.new(
            self.api_secret.encode("utf-8"),
            message.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()
        return {
            "X-API-KEY": self.api_key,
            "X-API-SIGNATURE": signature,
            "X-API-TIMESTAMP": str(timestamp),
        }

    def request(self, method: str, endpoint: str, payload: Optional[dict] = None) -> Any:
        method = method.upper()
        headers = self.sign(method, endpoint, payload)
        try:
            if method == "GET":
                response = self._client.request(method, endpoint, params=payload, headers=headers)
            else:
                response = self._client.request(method, endpoint, json=payload or {}, headers=headers)
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"[LZT API] {method} {endpoint} failed: {e}")
            raise MarketplaceError(str(e)) from e

    def get_products(self, filters: Optional[dict] = None) -> Any:
        return self.request("GET", "/products", filters or {})

    def get_product_details(self, product_id: str) -> Any:
        return self.request("GET", f"/products/{product_id}")

    def reserve_product(self, product_id: str) -> Any:
        return self.request("POST", f"/products/{product_id}/reserve", {})

    def purchase_product(self, reservation_id: str, payment_data: dict) -> Any:
        return self.request("POST", f"/reservations/{reservation_id}/purchase", payment_data)

    def cancel_reservation(self, reservation_id: str) -> Any:
        return self.request("POST", f"/reservations/{reservation_id}/cancel", {})

    def buy(self, product_id: str, payment_id: str) -> dict:
        """
        Reserve then purchase a marketplace item.
        Returns {"success", "message", "account"}; a failed purchase cancels the reservation.
        """
        logger.info(f"[LZT API] Buying product {product_id} for payment {payment_id}")
        try:
            reservation = self.reserve_product(product_id)
            reservation_data = (reservation or {}).get("data") or {}
            if not reservation.get("success") or not reservation_data.get("id"):
                return {"success": False, "message": "Could not reserve product on the marketplace", "account": None}

            purchase = self.purchase_product(reservation_data["id"], {
                "payment_id": payment_id,
                "payment_method": "pix",
                "amount": reservation_data.get("price"),
            })
            if not purchase.get("success") or not purchase.get("data"):
                self.cancel_reservation(reservation_data["id"])
                return {"success": False, "message": "Could not complete marketplace purchase", "account": None}
        except MarketplaceError as e:
            return {"success": False, "message": str(e), "account": None}

        account = purchase["data"].get("account") or {}
        return {
            "success": True,
            "message": "",
            "account": {
                "login": account.get("login"),
                "password": account.get("password"),
                "additional_info": account.get("additional_info"),
            },
        }
