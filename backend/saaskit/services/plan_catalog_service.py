"""
Plan catalog service - persisted plans and Stripe price resolution.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from saaskit.core.config import settings
from saaskit.core.plans import PlanTier
from saaskit.models.plan import SubscriptionPlan

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedPrice:
    """Plan matched by a Stripe price id, with the interval of that price."""

    plan: SubscriptionPlan
    interval: str


def _default_plan_rows() -> list[dict]:
    return [
        {
            "plan_id": PlanTier.FREE.value,
            "name": "Free",
            "description": "Basic dashboard for individuals getting started",
            "monthly_price_cents": 0,
            "yearly_price_cents": 0,
            "sort_order": 0,
        },
        {
            "plan_id": PlanTier.PRO.value,
            "name": "Pro",
            "description": "Analytics, audit logs, exports and webhooks for growing teams",
            "monthly_price_cents": 2900,
            "yearly_price_cents": 29000,
            "stripe_product_id": settings.STRIPE_PRO_PRODUCT_ID or None,
            "stripe_monthly_price_id": settings.STRIPE_PRO_MONTHLY_PRICE_ID or None,
            "stripe_yearly_price_id": settings.STRIPE_PRO_YEARLY_PRICE_ID or None,
            "sort_order": 1,
        },
        {
            "plan_id": PlanTier.ENTERPRISE.value,
            "name": "Enterprise",
            "description": "API access, SSO, custom branding and priority support",
            "monthly_price_cents": 9900,
            "yearly_price_cents": 99000,
            "stripe_product_id": settings.STRIPE_ENTERPRISE_PRODUCT_ID or None,
            "stripe_monthly_price_id": settings.STRIPE_ENTERPRISE_MONTHLY_PRICE_ID or None,
            "stripe_yearly_price_id": settings.STRIPE_ENTERPRISE_YEARLY_PRICE_ID or None,
            "sort_order": 2,
        },
    ]


class PlanCatalogService:
    """Leitura do catalogo de planos."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def list_active_plans(self) -> list[SubscriptionPlan]:
        stmt = (
            select(SubscriptionPlan)
            .where(SubscriptionPlan.is_active.is_(True))
            .order_by(SubscriptionPlan.sort_order)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_plan(self, plan_id: str) -> SubscriptionPlan | None:
        return await self.db.get(SubscriptionPlan, plan_id)

    async def resolve_price(self, price_id: Optional[str]) -> ResolvedPrice | None:
        """
        Resolve um price id do Stripe para (plano, intervalo).

        Args:
            price_id: price_xxx vindo do evento.

        Returns:
            ResolvedPrice ou None quando nenhum plano usa esse price.
        """
        if not price_id:
            return None

        stmt = select(SubscriptionPlan).where(
            or_(
                SubscriptionPlan.stripe_monthly_price_id == price_id,
                SubscriptionPlan.stripe_yearly_price_id == price_id,
            )
        )
        result = await self.db.execute(stmt)
        plan = result.scalars().first()
        if plan is None:
            return None

        interval = "month" if plan.stripe_monthly_price_id == price_id else "year"
        return ResolvedPrice(plan=plan, interval=interval)

    async def price_id_for(self, plan_id: str, interval: str) -> str | None:
        plan = await self.get_plan(plan_id)
        if plan is None or not plan.is_active:
            return None
        if interval == "year":
            return plan.stripe_yearly_price_id
        return plan.stripe_monthly_price_id


async def ensure_default_plans(db: AsyncSession) -> int:
    """
    Cria os planos free/pro/enterprise que ainda nao existem.

    Price ids vazios em linhas existentes sao preenchidos a partir das settings;
    valores ja gravados nao sao sobrescritos.

    Returns:
        Numero de planos criados.
    """
    created = 0
    for row in _default_plan_rows():
        plan = await db.get(SubscriptionPlan, row["plan_id"])
        if plan is None:
            db.add(SubscriptionPlan(**row))
            created += 1
            continue
        for field in ("stripe_product_id", "stripe_monthly_price_id", "stripe_yearly_price_id"):
            if row.get(field) and not getattr(plan, field):
                setattr(plan, field, row[field])

    await db.flush()
    if created:
        logger.info("plan_catalog_seeded: created=%s", created)
    return created
