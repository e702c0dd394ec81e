"""Test data factories using Faker for generating realistic Stripe payloads."""
import hashlib
import hmac
import json
import time
from typing import Any
from uuid import uuid4

from faker import Faker

fake = Faker()

WEBHOOK_SECRET = "whsec_test_secret"


def provider_id(prefix: str) -> str:
    """Stripe-style object id, e.g. ``sub_1a2b3c...``."""
    return f"{prefix}_{uuid4().hex[:24]}"


def unix_time(offset_days: int = 0) -> int:
    return int(time.time()) + offset_days * 86400


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    """
    Build a Stripe-Signature header for a payload.

    Args:
        payload: Raw request body
        secret: Endpoint signing secret
        timestamp: Signed timestamp (default: now)

    Returns:
        Header value in Stripe's ``t=...,v1=...`` format
    """
    ts = int(time.time()) if timestamp is None else timestamp
    signed = f"{ts}.{payload.decode('utf-8')}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={ts},v1={signature}"


def encode_event(event: dict[str, Any]) -> bytes:
    return json.dumps(event).encode("utf-8")


class StripeEventFactory:
    """Factory for Stripe event envelopes."""

    @staticmethod
    def create(event_type: str, data_object: dict[str, Any], overrides: dict[str, Any] | None = None) -> dict[str, Any]:
        """
        Create an event envelope.

        Args:
            event_type: Stripe event type
            data_object: Object placed under ``data.object``
            overrides: Optional field overrides

        Returns:
            dict: Event payload
        """
        data = {
            "id": provider_id("evt"),
            "object": "event",
            "type": event_type,
            "created": unix_time(),
            "livemode": False,
            "data": {"object": data_object},
        }
        if overrides:
            data.update(overrides)
        return data


class StripeSubscriptionFactory:
    """Factory for Stripe subscription objects."""

    @staticmethod
    def create(overrides: dict[str, Any] | None = None) -> dict[str, Any]:
        period_start = unix_time()
        data = {
            "id": provider_id("sub"),
            "object": "subscription",
            "customer": provider_id("cus"),
            "status": "active",
            "created": period_start,
            "billing_cycle_anchor": period_start,
            "trial_start": None,
            "trial_end": None,
            "canceled_at": None,
            "ended_at": None,
            "metadata": {},
            "items": {
                "object": "list",
                "data": [
                    {
                        "id": provider_id("si"),
                        "current_period_start": period_start,
                        "current_period_end": unix_time(offset_days=30),
                        "price": {
                            "id": provider_id("price"),
                            "nickname": f"{fake.word().title()} Plan",
                            "product": provider_id("prod"),
                            "unit_amount": fake.random_element([900, 1900, 4900]),
                            "currency": "usd",
                            "recurring": {"interval": "month", "interval_count": 1},
                        },
                    }
                ],
            },
        }
        if overrides:
            data.update(overrides)
        return data


class StripeInvoiceFactory:
    """Factory for Stripe invoice objects."""

    @staticmethod
    def create(overrides: dict[str, Any] | None = None) -> dict[str, Any]:
        amount = fake.random_element([900, 1900, 4900])
        data = {
            "id": provider_id("in"),
            "object": "invoice",
            "customer": provider_id("cus"),
            "subscription": provider_id("sub"),
            "payment_intent": provider_id("pi"),
            "number": f"INV-{fake.random_number(digits=6, fix_len=True)}",
            "amount_paid": amount,
            "amount_due": amount,
            "currency": "usd",
            "attempt_count": 1,
            "period_start": unix_time(),
            "period_end": unix_time(offset_days=30),
            "next_payment_attempt": unix_time(offset_days=3),
            "metadata": {},
        }
        if overrides:
            data.update(overrides)
        return data


class StripePaymentIntentFactory:
    """Factory for Stripe payment intent objects."""

    @staticmethod
    def create(overrides: dict[str, Any] | None = None) -> dict[str, Any]:
        data = {
            "id": provider_id("pi"),
            "object": "payment_intent",
            "customer": provider_id("cus"),
            "invoice": None,
            "payment_method": provider_id("pm"),
            "amount": fake.random_int(min=500, max=20000),
            "currency": "usd",
            "description": fake.sentence(nb_words=4),
            "last_payment_error": None,
            "cancellation_reason": None,
            "metadata": {},
        }
        if overrides:
            data.update(overrides)
        return data


class StripeCheckoutSessionFactory:
    """Factory for Stripe checkout session objects."""

    @staticmethod
    def create(overrides: dict[str, Any] | None = None) -> dict[str, Any]:
        data = {
            "id": provider_id("cs"),
            "object": "checkout.session",
            "customer": provider_id("cus"),
            "client_reference_id": None,
            "customer_email": fake.email(),
            "mode": "payment",
            "payment_intent": provider_id("pi"),
            "subscription": None,
            "amount_total": 2000,
            "currency": "usd",
            "payment_status": "paid",
            "metadata": {},
        }
        if overrides:
            data.update(overrides)
        return data


class StripeChargeFactory:
    """Factory for Stripe charge objects."""

    @staticmethod
    def create(overrides: dict[str, Any] | None = None) -> dict[str, Any]:
        data = {
            "id": provider_id("ch"),
            "object": "charge",
            "customer": provider_id("cus"),
            "payment_intent": provider_id("pi"),
            "amount": 5000,
            "amount_refunded": 5000,
            "currency": "usd",
            "refunds": {"object": "list", "data": []},
            "metadata": {},
        }
        if overrides:
            data.update(overrides)
        return data
