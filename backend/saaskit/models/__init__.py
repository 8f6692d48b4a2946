"""
Database Models Package
SQLAlchemy ORM models.
"""

from saaskit.models.workspace import Workspace, WorkspaceInvitation, WorkspaceMember
from saaskit.models.plan import SubscriptionPlan
from saaskit.models.subscription import WorkspaceSubscription
from saaskit.models.billing_event import BillingWebhookEvent

__all__ = [
    "Workspace",
    "WorkspaceMember",
    "WorkspaceInvitation",
    "SubscriptionPlan",
    "WorkspaceSubscription",
    "BillingWebhookEvent",
]
