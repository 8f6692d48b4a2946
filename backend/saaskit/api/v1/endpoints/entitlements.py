"""
Entitlements endpoints - plan/role snapshot for the selected workspace.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from saaskit.core.dependencies import get_authenticated_entitlements
from saaskit.core.plans import FEATURES, required_plan_for
from saaskit.core.rbac import required_role_for
from saaskit.services.entitlements_service import EntitlementsContext
from saaskit.schemas.entitlements import (
    EntitlementsSnapshot,
    FeatureCheckResponse,
    FeatureInfo,
    PermissionCheckResponse,
)

router = APIRouter()


@router.get("", response_model=EntitlementsSnapshot)
async def get_entitlements_snapshot(
    context: EntitlementsContext = Depends(get_authenticated_entitlements),
) -> EntitlementsSnapshot:
    """Plano, role, features e permissoes resolvidos para o workspace atual."""
    return EntitlementsSnapshot(
        plan=context.plan.value,
        role=context.role.value,
        is_authenticated=context.is_authenticated,
        workspace_id=context.workspace_id,
        features=sorted(feature.value for feature in context.features),
        permissions=sorted(permission.value for permission in context.permissions),
    )


@router.get("/check-feature", response_model=FeatureCheckResponse)
async def check_feature(
    feature: str = Query(..., min_length=1),
    context: EntitlementsContext = Depends(get_authenticated_entitlements),
) -> FeatureCheckResponse:
    return FeatureCheckResponse(
        feature=feature,
        allowed=context.can_access_feature(feature),
        required_plan=required_plan_for(feature).value,
        current_plan=context.plan.value,
    )


@router.get("/check-permission", response_model=PermissionCheckResponse)
async def check_permission(
    permission: str = Query(..., min_length=1),
    context: EntitlementsContext = Depends(get_authenticated_entitlements),
) -> PermissionCheckResponse:
    return PermissionCheckResponse(
        permission=permission,
        allowed=context.has_permission(permission),
        required_role=required_role_for(permission).value,
        current_role=context.role.value,
    )


@router.get("/features", response_model=list[FeatureInfo])
async def list_features(
    context: EntitlementsContext = Depends(get_authenticated_entitlements),
) -> list[FeatureInfo]:
    """Catalogo completo de features com disponibilidade no plano atual."""
    return [
        FeatureInfo(
            id=definition.feature.value,
            name=definition.name,
            description=definition.description,
            required_plan=definition.required_plan.value,
            enabled=definition.enabled,
            beta=definition.beta,
            available=context.can_access_feature(definition.feature),
        )
        for definition in FEATURES.values()
    ]
