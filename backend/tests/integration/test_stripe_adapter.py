"""Tests for Stripe webhook signature verification."""
import pytest

from creditflow.adapters.stripe_adapter import StripeAdapter
from creditflow.exceptions import InvalidSignature, MalformedEvent
from tests.utils.factories import WEBHOOK_SECRET, StripeEventFactory, encode_event, sign_payload, unix_time


@pytest.fixture
def adapter() -> StripeAdapter:
    return StripeAdapter(webhook_secret=WEBHOOK_SECRET, tolerance=300)


@pytest.mark.asyncio
async def test_valid_signature_returns_decoded_event(adapter: StripeAdapter) -> None:
    event = StripeEventFactory.create("invoice.upcoming", {"id": "in_1"})
    payload = encode_event(event)

    decoded = await adapter.construct_webhook_event(payload, sign_payload(payload))

    assert decoded == event


@pytest.mark.asyncio
async def test_wrong_secret_is_invalid(adapter: StripeAdapter) -> None:
    payload = encode_event(StripeEventFactory.create("invoice.upcoming", {"id": "in_1"}))

    with pytest.raises(InvalidSignature):
        await adapter.construct_webhook_event(payload, sign_payload(payload, secret="whsec_other"))


@pytest.mark.asyncio
async def test_timestamp_outside_tolerance_is_invalid(adapter: StripeAdapter) -> None:
    payload = encode_event(StripeEventFactory.create("invoice.upcoming", {"id": "in_1"}))

    with pytest.raises(InvalidSignature):
        await adapter.construct_webhook_event(payload, sign_payload(payload, timestamp=unix_time() - 301 - 60))


@pytest.mark.asyncio
async def test_garbage_header_is_invalid(adapter: StripeAdapter) -> None:
    with pytest.raises(InvalidSignature):
        await adapter.construct_webhook_event(b"{}", "not-a-signature")


@pytest.mark.asyncio
async def test_missing_secret_rejects_all_payloads() -> None:
    payload = encode_event(StripeEventFactory.create("invoice.upcoming", {"id": "in_1"}))

    with pytest.raises(InvalidSignature):
        await StripeAdapter(webhook_secret="").construct_webhook_event(payload, sign_payload(payload))


@pytest.mark.asyncio
async def test_signed_non_json_is_malformed(adapter: StripeAdapter) -> None:
    payload = b"definitely not json"

    with pytest.raises(MalformedEvent):
        await adapter.construct_webhook_event(payload, sign_payload(payload))


@pytest.mark.asyncio
async def test_non_utf8_body_is_malformed(adapter: StripeAdapter) -> None:
    with pytest.raises(MalformedEvent):
        await adapter.construct_webhook_event(b"\xff\xfe", "t=1,v1=abc")
