"""
SubscriptionPlan model - plan catalog rows with Stripe price mapping.
"""

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text

from saaskit.core.database import Base, utcnow


class SubscriptionPlan(Base):
    """
    Persisted plan catalog entry.

    ``plan_id`` is the catalog key referenced by WorkspaceSubscription and
    maps onto a ``PlanTier``. Stripe price ids are used to resolve
    webhook price references back to a plan and a billing interval.
    """

    __tablename__ = "subscription_plans"

    plan_id = Column(String(50), primary_key=True, comment="free|pro|enterprise")
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)

    # Pricing
    monthly_price_cents = Column(Integer, nullable=False, default=0)
    yearly_price_cents = Column(Integer, nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="usd")

    # Stripe integration
    stripe_product_id = Column(String(255), nullable=True)
    stripe_monthly_price_id = Column(String(255), nullable=True, unique=True, index=True)
    stripe_yearly_price_id = Column(String(255), nullable=True, unique=True, index=True)

    # Status / ordering
    is_active = Column(Boolean, default=True, nullable=False)
    sort_order = Column(Integer, default=0, nullable=False)

    # Timestamps
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(
        DateTime,
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<SubscriptionPlan(plan_id='{self.plan_id}', active={self.is_active})>"
