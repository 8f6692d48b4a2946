"""
WorkspaceSubscription model - one row per workspace, mirrored from Stripe.
"""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Uuid
from sqlalchemy.orm import relationship

from saaskit.core.database import Base, utcnow


class WorkspaceSubscription(Base):
    """
    Current subscription snapshot of a workspace.

    Created on plan ``free`` together with the workspace. Plan fields are
    written only by the webhook reconciler; checkout may bind the Stripe
    customer id once.
    """

    __tablename__ = "workspace_subscriptions"

    workspace_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("workspaces.id", ondelete="CASCADE"),
        primary_key=True,
    )
    plan_id = Column(
        String(50),
        ForeignKey("subscription_plans.plan_id", ondelete="RESTRICT"),
        nullable=False,
        default="free",
        index=True,
    )

    # Stripe IDs
    external_customer_id = Column(String(255), nullable=True, unique=True, index=True)
    external_subscription_id = Column(String(255), nullable=True, index=True)

    # Status
    status = Column(
        String(30),
        nullable=False,
        default="active",
        comment="active|past_due|canceled|trialing|incomplete|incomplete_expired|unpaid",
    )

    # Billing period
    current_period_start = Column(DateTime, nullable=True)
    current_period_end = Column(DateTime, nullable=True, comment="NULL = nunca expira (free)")
    cancel_at_period_end = Column(Boolean, default=False, nullable=False)
    billing_interval = Column(String(10), nullable=True, comment="month|year")
    trial_start = Column(DateTime, nullable=True)
    trial_end = Column(DateTime, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(
        DateTime,
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    # Relationships
    workspace = relationship("Workspace", back_populates="subscription")

    def __repr__(self) -> str:
        return (
            f"<WorkspaceSubscription(workspace_id={self.workspace_id}, "
            f"plan_id='{self.plan_id}', status='{self.status}')>"
        )
