"""
BillingWebhookEvent model - registro de todos os webhook events recebidos do Stripe.
"""
from uuid import uuid4

from sqlalchemy import Column, DateTime, Integer, String, Text, Uuid

from saaskit.core.database import Base, utcnow


class BillingWebhookEvent(Base):
    """
    Tracks every Stripe webhook event received (processed, ignored or dropped).

    Redeliveries update the same row and bump ``delivery_count``.
    Used for visibility and debugging billing issues only.
    """

    __tablename__ = "billing_webhook_events"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4, index=True)
    event_id = Column(
        String(255),
        nullable=False,
        unique=True,
        index=True,
        comment="evt_xxx do Stripe",
    )
    event_type = Column(String(100), nullable=False, index=True)
    status = Column(
        String(20),
        nullable=False,
        index=True,
        comment="processed|ignored|dropped",
    )
    customer_id = Column(String(255), nullable=True, comment="cus_xxx do Stripe")
    subscription_id = Column(String(255), nullable=True, comment="sub_xxx do Stripe")
    workspace_id = Column(Uuid(as_uuid=True), nullable=True, index=True)
    error_message = Column(Text, nullable=True)
    delivery_count = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    updated_at = Column(
        DateTime,
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<BillingWebhookEvent(event_id='{self.event_id}', "
            f"event_type='{self.event_type}', status='{self.status}')>"
        )
