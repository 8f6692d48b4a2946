"""
Billing HTTP endpoints: plans, subscription overview, checkout, portal, webhook.
"""
from __future__ import annotations

from types import SimpleNamespace
from uuid import UUID

import pytest
import stripe

from saaskit.models.subscription import WorkspaceSubscription
from tests.conftest import (
    MEMBER,
    OUTSIDER,
    OWNER,
    auth_headers,
    sign_payload,
    simple_event,
    subscription_event,
)

CUSTOMER_ID = "cus_http"


@pytest.fixture(autouse=True)
def offline_stripe(monkeypatch):
    """Leituras do Stripe falham como se a rede estivesse fora."""

    def _unreachable(*args, **kwargs):
        raise stripe.APIConnectionError("stripe unreachable in tests")

    monkeypatch.setattr(stripe.Customer, "retrieve", _unreachable)
    monkeypatch.setattr(stripe.PaymentMethod, "list", _unreachable)


async def _workspace(client, db_session, *, with_member: bool = False, customer_id: str | None = None) -> str:
    response = await client.post("/api/workspaces", json={"name": "Acme"}, headers=auth_headers(OWNER))
    assert response.status_code == 201, response.text
    ws_id = response.json()["id"]

    if with_member:
        invite = await client.post(
            f"/api/workspaces/{ws_id}/members/invite",
            json={"email": MEMBER.email},
            headers=auth_headers(OWNER),
        )
        token = invite.json()["token"]
        await client.post(f"/api/invitations/{token}/accept", headers=auth_headers(MEMBER))

    if customer_id:
        subscription = await db_session.get(WorkspaceSubscription, UUID(ws_id))
        subscription.external_customer_id = customer_id
        await db_session.commit()

    return ws_id


async def _post_webhook(client, payload: bytes, signature: str | None):
    headers = {"content-type": "application/json"}
    if signature is not None:
        headers["stripe-signature"] = signature
    return await client.post("/api/billing/webhook", content=payload, headers=headers)


@pytest.mark.asyncio
async def test_list_plans_is_public(client) -> None:
    response = await client.get("/api/billing/plans")

    assert response.status_code == 200
    plans = response.json()
    assert [p["planId"] for p in plans] == ["free", "pro", "enterprise"]
    assert plans[1]["stripeMonthlyPriceId"] == "price_pro_month"


@pytest.mark.asyncio
async def test_subscription_requires_selected_workspace(client) -> None:
    response = await client.get("/api/billing/subscription", headers=auth_headers(OWNER))
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_subscription_overview_for_free_workspace(client, db_session) -> None:
    ws_id = await _workspace(client, db_session)

    response = await client.get("/api/billing/subscription", headers=auth_headers(OWNER, ws_id))

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["data"]["subscription"]["planId"] == "free"
    assert body["data"]["plan"]["name"] == "Free"
    assert body["data"]["paymentMethod"] is None


@pytest.mark.asyncio
async def test_subscription_overview_via_query_param(client, db_session) -> None:
    ws_id = await _workspace(client, db_session)

    response = await client.get(
        "/api/billing/subscription", params={"workspaceId": ws_id}, headers=auth_headers(OWNER),
    )
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_subscription_overview_forbidden_for_outsider(client, db_session) -> None:
    ws_id = await _workspace(client, db_session)

    response = await client.get("/api/billing/subscription", headers=auth_headers(OUTSIDER, ws_id))
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_invalid_workspace_header(client) -> None:
    response = await client.get(
        "/api/billing/subscription", headers=auth_headers(OWNER, "not-a-uuid"),
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_checkout_requires_manage_billing(client, db_session) -> None:
    ws_id = await _workspace(client, db_session, with_member=True)

    response = await client.post(
        "/api/billing/checkout",
        json={"planId": "pro"},
        headers=auth_headers(MEMBER, ws_id),
    )

    assert response.status_code == 403
    detail = response.json()["detail"]
    assert detail["requiredPermission"] == "manage-billing"
    assert detail["requiredRole"] == "owner"
    assert detail["currentRole"] == "member"


@pytest.mark.asyncio
async def test_checkout_creates_stripe_session(client, db_session, monkeypatch) -> None:
    ws_id = await _workspace(client, db_session)
    monkeypatch.setattr(stripe.Customer, "create", lambda **kwargs: SimpleNamespace(id="cus_new"))
    monkeypatch.setattr(
        stripe.checkout.Session,
        "create",
        lambda **kwargs: SimpleNamespace(id="cs_test", url="https://checkout.stripe.test/cs_test"),
    )

    response = await client.post(
        "/api/billing/checkout",
        json={"planId": "enterprise", "interval": "year"},
        headers=auth_headers(OWNER, ws_id),
    )

    assert response.status_code == 200, response.text
    assert response.json() == {
        "checkoutUrl": "https://checkout.stripe.test/cs_test",
        "sessionId": "cs_test",
    }

    overview = await client.get("/api/billing/subscription", headers=auth_headers(OWNER, ws_id))
    subscription = overview.json()["data"]["subscription"]
    assert subscription["externalCustomerId"] == "cus_new"
    assert subscription["planId"] == "free"


@pytest.mark.asyncio
async def test_checkout_rejects_foreign_return_url(client, db_session) -> None:
    ws_id = await _workspace(client, db_session)

    response = await client.post(
        "/api/billing/checkout",
        json={"planId": "pro", "successUrl": "https://evil.example.com/ok"},
        headers=auth_headers(OWNER, ws_id),
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_portal_without_customer(client, db_session) -> None:
    ws_id = await _workspace(client, db_session)

    response = await client.post("/api/billing/portal", json={}, headers=auth_headers(OWNER, ws_id))
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_webhook_rejects_bad_signature(client, db_session) -> None:
    ws_id = await _workspace(client, db_session, customer_id=CUSTOMER_ID)
    payload = subscription_event("customer.subscription.updated", customer=CUSTOMER_ID, price="price_pro_month")

    missing = await _post_webhook(client, payload, None)
    assert missing.status_code == 400

    forged = await _post_webhook(client, payload, sign_payload(payload, secret="whsec_forged"))
    assert forged.status_code == 400

    overview = await client.get("/api/billing/subscription", headers=auth_headers(OWNER, ws_id))
    assert overview.json()["data"]["subscription"]["planId"] == "free"


@pytest.mark.asyncio
async def test_webhook_upgrade_flows_into_entitlements(client, db_session) -> None:
    ws_id = await _workspace(client, db_session, customer_id=CUSTOMER_ID)
    payload = subscription_event("customer.subscription.created", customer=CUSTOMER_ID, price="price_pro_month")

    response = await _post_webhook(client, payload, sign_payload(payload))
    assert response.status_code == 200
    assert response.json() == {"received": True}

    check = await client.get(
        "/api/entitlements/check-feature",
        params={"feature": "advanced-analytics"},
        headers=auth_headers(OWNER, ws_id),
    )
    assert check.json()["allowed"] is True
    assert check.json()["currentPlan"] == "pro"


@pytest.mark.asyncio
async def test_webhook_acknowledges_unresolvable_events(client) -> None:
    payload = subscription_event("customer.subscription.updated", customer="cus_unknown", price="price_pro_month")

    response = await _post_webhook(client, payload, sign_payload(payload))
    assert response.status_code == 200
    assert response.json() == {"received": True}


@pytest.mark.asyncio
async def test_webhook_acknowledges_scalar_data_object(client, db_session) -> None:
    ws_id = await _workspace(client, db_session, customer_id=CUSTOMER_ID)
    payload = simple_event("customer.subscription.updated", "x", event_id="evt_scalar_http")

    response = await _post_webhook(client, payload, sign_payload(payload))

    assert response.status_code == 200
    assert response.json() == {"received": True}
    overview = await client.get("/api/billing/subscription", headers=auth_headers(OWNER, ws_id))
    assert overview.json()["data"]["subscription"]["planId"] == "free"
