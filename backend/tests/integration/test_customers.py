"""Integration tests for user to provider-customer links."""
import pytest
from httpx import AsyncClient

from creditflow.services.customer_service import CustomerService


@pytest.mark.asyncio
async def test_link_customer_endpoint(async_client: AsyncClient, session_factory) -> None:
    response = await async_client.post(
        "/v1/customers",
        json={"user_id": "user-link", "provider_customer_ref": "cus_link", "email": "link@example.com"},
    )

    assert response.status_code == 201
    assert response.json()["provider_customer_ref"] == "cus_link"
    async with session_factory() as session:
        assert await CustomerService(session).user_id_for("cus_link") == "user-link"


@pytest.mark.asyncio
async def test_relinking_replaces_customer(db_session) -> None:
    service = CustomerService(db_session)
    await service.link("user-move", "cus_old", email="old@example.com")

    customer = await service.link("user-move", "cus_new")

    assert customer.provider_customer_ref == "cus_new"
    assert customer.email == "old@example.com"
    assert await service.user_id_for("cus_old") is None
    assert await service.user_id_for("cus_new") == "user-move"


@pytest.mark.asyncio
async def test_unknown_or_empty_customer_resolves_to_none(db_session) -> None:
    service = CustomerService(db_session)

    assert await service.user_id_for("cus_nobody") is None
    assert await service.user_id_for(None) is None
