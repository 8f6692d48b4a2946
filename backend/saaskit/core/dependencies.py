"""
FastAPI dependencies for auth, workspace context and entitlement guards.
"""
from collections.abc import Callable
from typing import Optional
from uuid import UUID

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from saaskit.core.config import settings
from saaskit.core.database import get_db
from saaskit.core.plans import Feature, PlanTier, required_plan_for
from saaskit.core.rbac import Permission, WorkspaceRole, required_role_for
from saaskit.core.security import Principal, principal_from_token
from saaskit.services.entitlements_service import EntitlementsContext, EntitlementsService

# Bearer token opcional: a ausencia vira 401 em get_current_principal
security = HTTPBearer(auto_error=False)


async def get_optional_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[Principal]:
    """Principal do token, ou None se ausente/invalido."""
    if credentials is None:
        return None
    return principal_from_token(credentials.credentials)


async def get_current_principal(
    principal: Optional[Principal] = Depends(get_optional_principal),
) -> Principal:
    """
    Dependency to get the current authenticated principal.

    Raises:
        HTTPException 401: If token is missing or invalid.

    Example:
        @router.get("/me")
        async def get_me(principal: Principal = Depends(get_current_principal)):
            return principal
    """
    if principal is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return principal


def _parse_workspace_id(raw: Optional[str]) -> Optional[UUID]:
    if not raw:
        return None
    try:
        return UUID(str(raw))
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="workspaceId invalido.",
        )


async def get_requested_workspace_id(request: Request) -> Optional[UUID]:
    """
    Workspace ativo do request.

    Ordem: path ``workspace_id``, header ``X-Workspace-Id``, cookie
    ``currentWorkspaceId``, query ``workspaceId``.
    """
    raw = (
        request.path_params.get("workspace_id")
        or request.headers.get(settings.WORKSPACE_HEADER)
        or request.cookies.get(settings.WORKSPACE_COOKIE)
        or request.query_params.get("workspaceId")
    )
    return _parse_workspace_id(raw)


async def get_entitlements(
    principal: Optional[Principal] = Depends(get_optional_principal),
    workspace_id: Optional[UUID] = Depends(get_requested_workspace_id),
    db: AsyncSession = Depends(get_db),
) -> EntitlementsContext:
    """Contexto de entitlements do request; anonimo resolve para free/member."""
    return await EntitlementsService(db).resolve(principal, workspace_id)


async def get_authenticated_entitlements(
    principal: Principal = Depends(get_current_principal),
    workspace_id: Optional[UUID] = Depends(get_requested_workspace_id),
    db: AsyncSession = Depends(get_db),
) -> EntitlementsContext:
    return await EntitlementsService(db).resolve(principal, workspace_id)


def _forbidden(message: str, **data: Optional[str]) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail={"message": message, **data},
    )


def _check_permission(context: EntitlementsContext, permission: Permission) -> None:
    if not context.has_permission(permission):
        raise _forbidden(
            f"Permissao '{permission.value}' negada.",
            requiredPermission=permission.value,
            requiredRole=required_role_for(permission).value,
            currentRole=context.role.value,
        )


def require_feature(feature: Feature) -> Callable[..., EntitlementsContext]:
    """
    Build dependency that requires the workspace plan to include ``feature``.

    Args:
        feature: Feature gated by plan.

    Returns:
        FastAPI dependency that yields the EntitlementsContext if authorized.
    """

    async def _feature_dependency(
        context: EntitlementsContext = Depends(get_authenticated_entitlements),
    ) -> EntitlementsContext:
        if not context.can_access_feature(feature):
            raise _forbidden(
                f"Feature '{feature.value}' nao disponivel no plano atual.",
                requiredFeature=feature.value,
                requiredPlan=required_plan_for(feature).value,
                currentPlan=context.plan.value,
            )
        return context

    return _feature_dependency


def require_permission(permission: Permission) -> Callable[..., EntitlementsContext]:
    """
    Build dependency that requires the member role to grant ``permission``.

    Args:
        permission: Permission gated by role.

    Returns:
        FastAPI dependency that yields the EntitlementsContext if authorized.
    """

    async def _permission_dependency(
        context: EntitlementsContext = Depends(get_authenticated_entitlements),
    ) -> EntitlementsContext:
        _check_permission(context, permission)
        return context

    return _permission_dependency


def require_plan(minimum: PlanTier) -> Callable[..., EntitlementsContext]:
    """Build dependency that requires a plan tier at or above ``minimum``."""

    async def _plan_dependency(
        context: EntitlementsContext = Depends(get_authenticated_entitlements),
    ) -> EntitlementsContext:
        if not context.has_plan(minimum):
            raise _forbidden(
                f"Plano '{minimum.value}' ou superior necessario.",
                requiredPlan=minimum.value,
                currentPlan=context.plan.value,
            )
        return context

    return _plan_dependency


def require_role(minimum: WorkspaceRole) -> Callable[..., EntitlementsContext]:
    """Build dependency that requires a workspace role at or above ``minimum``."""

    async def _role_dependency(
        context: EntitlementsContext = Depends(get_authenticated_entitlements),
    ) -> EntitlementsContext:
        if not context.has_role(minimum):
            raise _forbidden(
                f"Role '{minimum.value}' ou superior necessario.",
                requiredRole=minimum.value,
                currentRole=context.role.value,
            )
        return context

    return _role_dependency


async def require_workspace_member(
    context: EntitlementsContext = Depends(get_authenticated_entitlements),
) -> EntitlementsContext:
    """Exige workspace selecionado e membership do usuario nele."""
    if context.workspace_id is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Nenhum workspace selecionado.",
        )
    if not context.is_member:
        raise _forbidden(
            "Voce nao e membro deste workspace.",
            requiredRole=WorkspaceRole.MEMBER.value,
            currentRole=None,
        )
    return context


def require_workspace_permission(permission: Permission) -> Callable[..., EntitlementsContext]:
    """
    Build dependency that requires membership in the selected workspace
    and a role granting ``permission``.
    """

    async def _workspace_permission_dependency(
        context: EntitlementsContext = Depends(require_workspace_member),
    ) -> EntitlementsContext:
        _check_permission(context, permission)
        return context

    return _workspace_permission_dependency
