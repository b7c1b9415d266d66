"""Tests for services/payments.py: form encoding, checkout call, webhook signatures."""

from __future__ import annotations

import hashlib
import hmac
import json
import time
from unittest.mock import MagicMock, patch

import httpx
import pytest

from services.payments import (
    PaymentError,
    StripeClient,
    WebhookSignatureError,
    _flatten,
    verify_webhook,
)

SECRET = "whsec_test"


def _sign(payload: bytes, secret: str = SECRET, timestamp: int | None = None) -> str:
    ts = int(time.time()) if timestamp is None else timestamp
    sig = hmac.new(secret.encode(), f"{ts}.".encode() + payload, hashlib.sha256).hexdigest()
    return f"t={ts},v1={sig}"


class TestFlatten:
    def test_nested(self):
        fields = dict(_flatten({
            "mode": "payment",
            "line_items": [{"price_data": {"unit_amount": 500}, "quantity": 1}],
            "metadata": {"userId": "7"},
            "payment_method_types": ["card"],
        }))
        assert fields == {
            "mode": "payment",
            "line_items[0][price_data][unit_amount]": "500",
            "line_items[0][quantity]": "1",
            "metadata[userId]": "7",
            "payment_method_types[0]": "card",
        }

    def test_skips_none(self):
        assert _flatten({"a": None, "b": "x"}) == [("b", "x")]

    def test_bool(self):
        assert _flatten({"flag": True}) == [("flag", "true")]


class TestStripeClient:
    def _call(self, client, **overrides):
        kwargs = dict(
            name="Premium",
            description="All models",
            unit_amount_cents=1999,
            mode="subscription",
            recurring_interval="month",
            success_url="http://x/ok",
            cancel_url="http://x/no",
            customer_email="u@example.com",
            metadata={"userId": "1"},
        )
        kwargs.update(overrides)
        return client.create_checkout_session(**kwargs)

    def test_creates_session(self):
        resp = MagicMock(status_code=200)
        resp.json.return_value = {"id": "cs_123", "url": "https://checkout.stripe.com/c/cs_123"}
        with patch("services.payments.httpx.post", return_value=resp) as post:
            session = self._call(StripeClient("sk_test", base_url="https://stripe.test/v1"))

        assert session.id == "cs_123"
        assert session.url.startswith("https://checkout.stripe.com")
        assert post.call_args.args[0] == "https://stripe.test/v1/checkout/sessions"
        assert post.call_args.kwargs["auth"] == ("sk_test", "")
        data = post.call_args.kwargs["data"]
        assert data["line_items[0][price_data][recurring][interval]"] == "month"
        assert data["line_items[0][price_data][unit_amount]"] == "1999"
        assert data["customer_email"] == "u@example.com"

    def test_error_status(self):
        resp = MagicMock(status_code=401, text="bad key")
        with patch("services.payments.httpx.post", return_value=resp):
            with pytest.raises(PaymentError, match="HTTP 401"):
                self._call(StripeClient("sk_test"))

    def test_transport_error(self):
        with patch("services.payments.httpx.post", side_effect=httpx.ConnectTimeout("slow")):
            with pytest.raises(PaymentError):
                self._call(StripeClient("sk_test"))

    def test_non_json_success_body(self):
        resp = MagicMock(status_code=200, text="<html>maintenance</html>")
        resp.json.side_effect = ValueError("no json")
        with patch("services.payments.httpx.post", return_value=resp):
            with pytest.raises(PaymentError, match="unexpected checkout response"):
                self._call(StripeClient("sk_test"))

    def test_session_without_url(self):
        resp = MagicMock(status_code=200, text="{}")
        resp.json.return_value = {"id": "cs_123"}
        with patch("services.payments.httpx.post", return_value=resp):
            with pytest.raises(PaymentError):
                self._call(StripeClient("sk_test"))


class TestVerifyWebhook:
    def test_valid(self):
        payload = json.dumps({"type": "checkout.session.completed"}).encode()
        event = verify_webhook(payload, _sign(payload), SECRET)
        assert event["type"] == "checkout.session.completed"

    def test_wrong_secret(self):
        payload = b"{}"
        with pytest.raises(WebhookSignatureError, match="mismatch"):
            verify_webhook(payload, _sign(payload, secret="other"), SECRET)

    def test_tampered_payload(self):
        header = _sign(b'{"a": 1}')
        with pytest.raises(WebhookSignatureError):
            verify_webhook(b'{"a": 2}', header, SECRET)

    def test_stale_timestamp(self):
        payload = b"{}"
        old = int(time.time()) - 301
        with pytest.raises(WebhookSignatureError, match="tolerance"):
            verify_webhook(payload, _sign(payload, timestamp=old), SECRET)

    def test_within_tolerance(self):
        payload = b"{}"
        ts = 1_700_000_000
        assert verify_webhook(payload, _sign(payload, timestamp=ts), SECRET, now=ts + 299) == {}

    def test_missing_header(self):
        with pytest.raises(WebhookSignatureError):
            verify_webhook(b"{}", "", SECRET)

    def test_malformed_header(self):
        with pytest.raises(WebhookSignatureError, match="Malformed"):
            verify_webhook(b"{}", "garbage", SECRET)

    def test_secret_not_configured(self):
        with pytest.raises(WebhookSignatureError, match="not configured"):
            verify_webhook(b"{}", "t=1,v1=abc", "")

    def test_multiple_signatures(self):
        payload = b"{}"
        header = _sign(payload)
        ts, good = header.split(",")
        assert verify_webhook(payload, f"{ts},v1=deadbeef,{good}", SECRET) == {}
