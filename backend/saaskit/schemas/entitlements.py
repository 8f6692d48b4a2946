"""
Pydantic schemas for Entitlements API.
"""
from typing import Optional
from uuid import UUID

from saaskit.schemas.base import CamelModel


class EntitlementsSnapshot(CamelModel):
    plan: str
    role: str
    is_authenticated: bool
    workspace_id: Optional[UUID] = None
    features: list[str]
    permissions: list[str]


class FeatureCheckResponse(CamelModel):
    feature: str
    allowed: bool
    required_plan: str
    current_plan: str


class PermissionCheckResponse(CamelModel):
    permission: str
    allowed: bool
    required_role: str
    current_role: str


class FeatureInfo(CamelModel):
    id: str
    name: str
    description: str
    required_plan: str
    enabled: bool
    beta: bool
    available: bool
