"""
Entitlements service - resolves (plan, role) for a principal in a workspace.

Resolution fails closed: anonymous callers, callers without a workspace,
non-members and storage failures all get ``free``/``member``.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from saaskit.core.plans import (
    Feature,
    PlanTier,
    get_plan_features,
    normalize_plan,
    plan_at_least,
    plan_includes_feature,
)
from saaskit.core.rbac import (
    Permission,
    WorkspaceRole,
    get_role_permissions,
    normalize_role,
    role_at_least,
    role_has_permission,
)
from saaskit.core.security import Principal
from saaskit.models.subscription import WorkspaceSubscription
from saaskit.models.workspace import WorkspaceMember

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EntitlementsContext:
    """
    Plan and role resolved for one request.

    Never cached beyond the request that built it.
    """

    plan: PlanTier = PlanTier.FREE
    role: WorkspaceRole = WorkspaceRole.MEMBER
    is_authenticated: bool = False
    workspace_id: Optional[UUID] = None
    is_member: bool = False

    def can_access_feature(self, feature: str | Feature) -> bool:
        return plan_includes_feature(self.plan, feature)

    def has_permission(self, permission: str | Permission) -> bool:
        return role_has_permission(self.role, permission)

    def has_plan(self, minimum: str | PlanTier) -> bool:
        return plan_at_least(self.plan, minimum)

    def has_role(self, minimum: str | WorkspaceRole) -> bool:
        return role_at_least(self.role, minimum)

    @property
    def features(self) -> frozenset[Feature]:
        return get_plan_features(self.plan)

    @property
    def permissions(self) -> frozenset[Permission]:
        return get_role_permissions(self.role)


ANONYMOUS_CONTEXT = EntitlementsContext()


class EntitlementsService:
    """Monta o EntitlementsContext a partir da subscription e do membership."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def resolve(
        self,
        principal: Optional[Principal],
        workspace_id: Optional[UUID],
    ) -> EntitlementsContext:
        """
        Resolve plan/role for ``principal`` in ``workspace_id``.

        Args:
            principal: Usuario autenticado ou None.
            workspace_id: Workspace ativo do request ou None.

        Returns:
            EntitlementsContext; never raises.
        """
        if principal is None:
            return ANONYMOUS_CONTEXT

        if workspace_id is None:
            return EntitlementsContext(is_authenticated=True)

        try:
            member = await self._get_member(workspace_id, principal.user_id)
            if member is None:
                return EntitlementsContext(is_authenticated=True, workspace_id=workspace_id)

            subscription = await self.db.get(WorkspaceSubscription, workspace_id)
        except SQLAlchemyError as exc:
            logger.error(
                "entitlements_resolution_failed: workspace=%s user=%s error=%s",
                workspace_id,
                principal.user_id,
                exc,
            )
            return EntitlementsContext(is_authenticated=True, workspace_id=workspace_id)

        plan = normalize_plan(subscription.plan_id if subscription is not None else None)
        return EntitlementsContext(
            plan=plan,
            role=normalize_role(member.role),
            is_authenticated=True,
            workspace_id=workspace_id,
            is_member=True,
        )

    async def _get_member(self, workspace_id: UUID, user_id: str) -> WorkspaceMember | None:
        stmt = select(WorkspaceMember).where(
            WorkspaceMember.workspace_id == workspace_id,
            WorkspaceMember.user_id == user_id,
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()
