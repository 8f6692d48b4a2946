"""
Pydantic schemas for Workspace API.
"""
from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import EmailStr, Field

from saaskit.schemas.base import CamelModel


class WorkspaceCreate(CamelModel):
    """Schema para criacao de workspace."""

    name: str = Field(..., min_length=1, max_length=255)
    slug: Optional[str] = Field(None, min_length=1, max_length=48)
    description: Optional[str] = Field(None, max_length=2000)


class WorkspaceUpdate(CamelModel):
    """Schema para atualizacao de workspace."""

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=2000)


class WorkspaceResponse(CamelModel):
    """Schema para workspace em responses."""

    id: UUID
    name: str
    slug: str
    description: Optional[str] = None
    owner_id: str
    is_personal: bool
    member_count: int
    created_at: datetime
    updated_at: datetime


class WorkspaceWithRoleResponse(WorkspaceResponse):
    """Workspace na listagem do usuario, com o role dele."""

    role: str


class WorkspaceMemberResponse(CamelModel):
    """Schema para membro de workspace em responses."""

    id: UUID
    workspace_id: UUID
    user_id: str
    email: Optional[str] = None
    name: Optional[str] = None
    role: str
    invited_by: Optional[str] = None
    joined_at: datetime


class WorkspaceDetailResponse(WorkspaceResponse):
    """Workspace com o role do usuario atual."""

    current_role: str


class WorkspaceInviteRequest(CamelModel):
    """Schema para convite de membro ao workspace."""

    email: EmailStr
    role: str = Field(
        default="member",
        description="admin|member (owner nao pode ser atribuido via convite)",
    )
    message: Optional[str] = Field(None, max_length=1000)


class WorkspaceMemberRoleUpdate(CamelModel):
    """Schema para atualizacao de role de membro."""

    role: str = Field(..., description="admin|member")


class WorkspaceInvitationResponse(CamelModel):
    """Convite em responses. O token so e exposto na criacao."""

    id: UUID
    workspace_id: UUID
    email: str
    role: str
    status: str
    invited_by: str
    inviter_name: Optional[str] = None
    message: Optional[str] = None
    expires_at: datetime
    created_at: datetime


class WorkspaceInvitationCreatedResponse(WorkspaceInvitationResponse):
    token: str


class MemberExportResponse(CamelModel):
    workspace_id: UUID
    exported_at: datetime
    members: list[WorkspaceMemberResponse]
