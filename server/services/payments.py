"""Thin Stripe REST client: Checkout Sessions and webhook signature checks."""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import time
from dataclasses import dataclass

import httpx

from config import settings

logger = logging.getLogger(__name__)

WEBHOOK_TOLERANCE_SECONDS = 300


class PaymentError(Exception):
    """Raised when Stripe rejects or cannot be reached for a request."""


class WebhookSignatureError(Exception):
    pass


def _flatten(params: dict, prefix: str = "") -> list[tuple[str, str]]:
    """Encode nested dicts/lists into Stripe's ``a[b][0][c]=v`` form fields."""
    items: list[tuple[str, str]] = []
    for key, value in params.items():
        name = f"{prefix}[{key}]" if prefix else str(key)
        if value is None:
            continue
        if isinstance(value, dict):
            items.extend(_flatten(value, name))
        elif isinstance(value, (list, tuple)):
            for i, item in enumerate(value):
                if isinstance(item, dict):
                    items.extend(_flatten(item, f"{name}[{i}]"))
                else:
                    items.append((f"{name}[{i}]", str(item)))
        elif isinstance(value, bool):
            items.append((name, "true" if value else "false"))
        else:
            items.append((name, str(value)))
    return items


@dataclass
class CheckoutSession:
    id: str
    url: str


class StripeClient:
    def __init__(self, secret_key: str, base_url: str | None = None):
        self.secret_key = secret_key
        self.base_url = (base_url or settings.STRIPE_API_BASE).rstrip("/")

    def create_checkout_session(
        self,
        *,
        name: str,
        description: str | None,
        unit_amount_cents: int,
        mode: str,
        success_url: str,
        cancel_url: str,
        customer_email: str,
        metadata: dict,
        recurring_interval: str | None = None,
        currency: str = "usd",
    ) -> CheckoutSession:
        price_data: dict = {
            "currency": currency,
            "product_data": {"name": name, "description": description},
            "unit_amount": unit_amount_cents,
        }
        if recurring_interval:
            price_data["recurring"] = {"interval": recurring_interval}

        params = {
            "payment_method_types": ["card"],
            "line_items": [{"price_data": price_data, "quantity": 1}],
            "mode": mode,
            "success_url": success_url,
            "cancel_url": cancel_url,
            "customer_email": customer_email,
            "metadata": metadata,
        }
        try:
            resp = httpx.post(
                f"{self.base_url}/checkout/sessions",
                data=dict(_flatten(params)),
                auth=(self.secret_key, ""),
                timeout=30,
            )
        except httpx.HTTPError as exc:
            raise PaymentError(f"Stripe request failed: {exc}") from exc

        if resp.status_code >= 400:
            logger.warning("Stripe checkout failed: HTTP %s %s", resp.status_code, resp.text[:500])
            raise PaymentError(f"Stripe returned HTTP {resp.status_code}")

        try:
            data = resp.json()
            return CheckoutSession(id=data["id"], url=data["url"])
        except (ValueError, KeyError, TypeError) as exc:
            logger.warning("Unexpected Stripe checkout response: %s", resp.text[:500])
            raise PaymentError("Stripe returned an unexpected checkout response") from exc


def verify_webhook(payload: bytes, signature_header: str, secret: str, now: int | None = None) -> dict:
    """Validate a ``Stripe-Signature`` header and return the parsed event."""
    if not secret:
        raise WebhookSignatureError("Webhook secret not configured")
    if not signature_header:
        raise WebhookSignatureError("Missing signature header")

    timestamp = ""
    signatures: list[str] = []
    for part in signature_header.split(","):
        key, _, value = part.strip().partition("=")
        if key == "t":
            timestamp = value
        elif key == "v1":
            signatures.append(value)
    if not timestamp or not signatures:
        raise WebhookSignatureError("Malformed signature header")

    signed = f"{timestamp}.".encode() + payload
    expected = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    if not any(hmac.compare_digest(expected, sig) for sig in signatures):
        raise WebhookSignatureError("Signature mismatch")

    now = int(time.time()) if now is None else now
    try:
        ts = int(timestamp)
    except ValueError as exc:
        raise WebhookSignatureError("Malformed timestamp") from exc
    if abs(now - ts) > WEBHOOK_TOLERANCE_SECONDS:
        raise WebhookSignatureError("Timestamp outside tolerance")

    try:
        return json.loads(payload)
    except ValueError as exc:
        raise WebhookSignatureError("Payload is not JSON") from exc
