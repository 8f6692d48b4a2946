"""
Pytest fixtures for backend tests.

Environment variables are set before importing the app so the settings
singleton picks them up.
"""
from __future__ import annotations

import hashlib
import hmac
import json
import os
import time
from collections.abc import AsyncGenerator
from typing import Any, Optional

os.environ.setdefault("AUTH_JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_dummy")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_secret")
os.environ.setdefault("STRIPE_PRO_MONTHLY_PRICE_ID", "price_pro_month")
os.environ.setdefault("STRIPE_PRO_YEARLY_PRICE_ID", "price_pro_year")
os.environ.setdefault("STRIPE_ENTERPRISE_MONTHLY_PRICE_ID", "price_ent_month")
os.environ.setdefault("STRIPE_ENTERPRISE_YEARLY_PRICE_ID", "price_ent_year")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from saaskit.core.database import Base, get_db
from saaskit.core.security import Principal, create_access_token
from saaskit.main import app
from saaskit.services.plan_catalog_service import ensure_default_plans

import saaskit.models  # noqa: F401

WEBHOOK_SECRET = os.environ["STRIPE_WEBHOOK_SECRET"]

OWNER = Principal(user_id="user-owner", email="owner@example.com", name="Olivia Owner")
ADMIN = Principal(user_id="user-admin", email="admin@example.com", name="Adam Admin")
MEMBER = Principal(user_id="user-member", email="member@example.com", name="Mia Member")
OUTSIDER = Principal(user_id="user-outsider", email="outsider@example.com", name="Oscar Outsider")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def auth_headers(principal: Principal, workspace_id: Any = None) -> dict[str, str]:
    """Authorization header (and optional workspace header) for ``principal``."""
    token = create_access_token(
        {"sub": principal.user_id, "email": principal.email, "name": principal.name}
    )
    headers = {"Authorization": f"Bearer {token}"}
    if workspace_id is not None:
        headers["X-Workspace-Id"] = str(workspace_id)
    return headers


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    """Build a ``stripe-signature`` header the way Stripe does (t=...,v1=...)."""
    ts = timestamp if timestamp is not None else int(time.time())
    signed = f"{ts}.".encode() + payload
    signature = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={ts},v1={signature}"


def subscription_event(
    event_type: str,
    *,
    customer: str,
    price: str,
    event_id: str = "evt_sub_1",
    subscription_id: str = "sub_123",
    status: str = "active",
    period_start: int = 1_700_000_000,
    period_end: int = 1_702_592_000,
    cancel_at_period_end: bool = False,
    trial_start: Optional[int] = None,
    trial_end: Optional[int] = None,
) -> bytes:
    """Minimal Stripe ``customer.subscription.*`` event body."""
    body = {
        "id": event_id,
        "object": "event",
        "type": event_type,
        "created": period_start,
        "livemode": False,
        "data": {
            "object": {
                "id": subscription_id,
                "object": "subscription",
                "customer": customer,
                "status": status,
                "current_period_start": period_start,
                "current_period_end": period_end,
                "cancel_at_period_end": cancel_at_period_end,
                "trial_start": trial_start,
                "trial_end": trial_end,
                "items": {
                    "object": "list",
                    "data": [{"id": "si_1", "price": {"id": price, "product": "prod_x"}}],
                },
            }
        },
    }
    return json.dumps(body).encode()


def simple_event(event_type: str, data_object: Any, event_id: str = "evt_simple") -> bytes:
    return json.dumps(
        {"id": event_id, "type": event_type, "data": {"object": data_object}}
    ).encode()


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def db_engine():
    """In-memory SQLite engine shared by every session of one test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Session with the plan catalog already seeded."""
    async with session_factory() as session:
        await ensure_default_plans(session)
        await session.commit()
        yield session


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def client(db_session, session_factory) -> AsyncGenerator[AsyncClient, None]:
    """
    Async HTTP client with get_db overridden to the in-memory database.
    """

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://testserver",
    ) as async_client:
        yield async_client

    app.dependency_overrides.clear()
