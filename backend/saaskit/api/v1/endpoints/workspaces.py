"""
Workspace CRUD, member management and invitation endpoints.
"""
from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from saaskit.core.database import get_db, utcnow
from saaskit.core.dependencies import get_current_principal, require_feature, require_permission
from saaskit.core.plans import Feature
from saaskit.core.rbac import Permission
from saaskit.core.security import Principal
from saaskit.schemas.workspace import (
    MemberExportResponse,
    WorkspaceCreate,
    WorkspaceDetailResponse,
    WorkspaceInvitationCreatedResponse,
    WorkspaceInvitationResponse,
    WorkspaceInviteRequest,
    WorkspaceMemberResponse,
    WorkspaceMemberRoleUpdate,
    WorkspaceResponse,
    WorkspaceUpdate,
    WorkspaceWithRoleResponse,
)
from saaskit.services.workspace_service import WorkspaceService, WorkspaceServiceError

router = APIRouter()
invitations_router = APIRouter()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


_ERROR_STATUS = {
    "workspace_not_found": status.HTTP_404_NOT_FOUND,
    "member_not_found": status.HTTP_404_NOT_FOUND,
    "invitation_not_found": status.HTTP_404_NOT_FOUND,
    "workspace_forbidden": status.HTTP_403_FORBIDDEN,
    "owner_protected": status.HTTP_403_FORBIDDEN,
    "invitation_email_mismatch": status.HTTP_403_FORBIDDEN,
    "member_conflict": status.HTTP_409_CONFLICT,
    "invitation_conflict": status.HTTP_409_CONFLICT,
    "slug_conflict": status.HTTP_409_CONFLICT,
    "workspace_create_failed": status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def _raise_workspace_http_error(exc: WorkspaceServiceError) -> None:
    """
    Convert domain error to HTTP response.

    403s carry requiredRole/currentRole alongside the message.
    """
    status_code = _ERROR_STATUS.get(exc.code, status.HTTP_400_BAD_REQUEST)
    detail: str | dict = exc.detail
    if exc.data:
        detail = {"message": exc.detail, **exc.data}
    raise HTTPException(status_code=status_code, detail=detail) from exc


# ---------------------------------------------------------------------------
# Workspace CRUD
# ---------------------------------------------------------------------------


@router.get("", response_model=list[WorkspaceWithRoleResponse])
async def list_workspaces(
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> list[WorkspaceWithRoleResponse]:
    """Lista workspaces do usuario; cria o workspace pessoal no primeiro acesso."""
    svc = WorkspaceService(db)
    try:
        created = await svc.ensure_personal_workspace(principal)
    except WorkspaceServiceError as exc:
        _raise_workspace_http_error(exc)
    if created is not None:
        await db.commit()

    rows = await svc.list_user_workspaces(principal.user_id)
    return [
        WorkspaceWithRoleResponse.model_validate(
            {**WorkspaceResponse.model_validate(ws).model_dump(), "role": role}
        )
        for ws, role in rows
    ]


@router.post("", response_model=WorkspaceResponse, status_code=status.HTTP_201_CREATED)
async def create_workspace(
    payload: WorkspaceCreate,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> WorkspaceResponse:
    """Cria novo workspace com o usuario como owner e plano free."""
    svc = WorkspaceService(db)
    try:
        workspace = await svc.create_workspace(
            principal,
            payload.name,
            slug=payload.slug,
            description=payload.description,
        )
    except WorkspaceServiceError as exc:
        _raise_workspace_http_error(exc)
    await db.commit()
    await db.refresh(workspace)
    return WorkspaceResponse.model_validate(workspace)


@router.get("/{workspace_id}", response_model=WorkspaceDetailResponse)
async def get_workspace_detail(
    workspace_id: UUID,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> WorkspaceDetailResponse:
    """Retorna o workspace com o role do usuario atual."""
    svc = WorkspaceService(db)
    try:
        workspace, member = await svc.get_workspace_detail(workspace_id, principal.user_id)
    except WorkspaceServiceError as exc:
        _raise_workspace_http_error(exc)
    return WorkspaceDetailResponse.model_validate(
        {**WorkspaceResponse.model_validate(workspace).model_dump(), "current_role": member.role}
    )


@router.patch("/{workspace_id}", response_model=WorkspaceResponse)
async def update_workspace(
    workspace_id: UUID,
    payload: WorkspaceUpdate,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> WorkspaceResponse:
    """Atualiza nome/descricao do workspace (admin/owner)."""
    svc = WorkspaceService(db)
    try:
        workspace = await svc.update_workspace(
            workspace_id,
            principal.user_id,
            name=payload.name,
            description=payload.description,
        )
    except WorkspaceServiceError as exc:
        _raise_workspace_http_error(exc)
    await db.commit()
    await db.refresh(workspace)
    return WorkspaceResponse.model_validate(workspace)


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------


@router.get("/{workspace_id}/members", response_model=list[WorkspaceMemberResponse])
async def list_members(
    workspace_id: UUID,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> list[WorkspaceMemberResponse]:
    """Lista membros do workspace (qualquer membro)."""
    svc = WorkspaceService(db)
    try:
        members = await svc.list_members(workspace_id, principal.user_id)
    except WorkspaceServiceError as exc:
        _raise_workspace_http_error(exc)
    return [WorkspaceMemberResponse.model_validate(m) for m in members]


@router.get(
    "/{workspace_id}/members/export",
    response_model=MemberExportResponse,
    dependencies=[
        Depends(require_feature(Feature.DATA_EXPORT)),
        Depends(require_permission(Permission.EXPORT_DATA)),
    ],
)
async def export_members(
    workspace_id: UUID,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> MemberExportResponse:
    """Exporta membros do workspace (plano com data-export + owner)."""
    svc = WorkspaceService(db)
    try:
        members = await svc.list_members(workspace_id, principal.user_id)
    except WorkspaceServiceError as exc:
        _raise_workspace_http_error(exc)
    return MemberExportResponse(
        workspace_id=workspace_id,
        exported_at=utcnow(),
        members=[WorkspaceMemberResponse.model_validate(m) for m in members],
    )


@router.post(
    "/{workspace_id}/members/invite",
    response_model=WorkspaceInvitationCreatedResponse,
    status_code=status.HTTP_201_CREATED,
)
async def invite_member(
    workspace_id: UUID,
    payload: WorkspaceInviteRequest,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> WorkspaceInvitationCreatedResponse:
    """Cria convite pendente (admin/owner). O envio do email e externo."""
    svc = WorkspaceService(db)
    try:
        invitation = await svc.invite_member(
            workspace_id,
            principal,
            payload.email,
            payload.role,
            payload.message,
        )
    except WorkspaceServiceError as exc:
        _raise_workspace_http_error(exc)
    await db.commit()
    await db.refresh(invitation)
    return WorkspaceInvitationCreatedResponse.model_validate(invitation)


@router.delete("/{workspace_id}/members/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_member(
    workspace_id: UUID,
    user_id: str,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> Response:
    """Remove membro (admin/owner). O owner nao pode ser removido."""
    svc = WorkspaceService(db)
    try:
        await svc.remove_member(workspace_id, principal.user_id, user_id)
    except WorkspaceServiceError as exc:
        _raise_workspace_http_error(exc)
    await db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.patch("/{workspace_id}/members/{user_id}/role", response_model=WorkspaceMemberResponse)
async def update_member_role(
    workspace_id: UUID,
    user_id: str,
    payload: WorkspaceMemberRoleUpdate,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> WorkspaceMemberResponse:
    """Altera role de um membro (somente owner)."""
    svc = WorkspaceService(db)
    try:
        member = await svc.update_member_role(workspace_id, principal.user_id, user_id, payload.role)
    except WorkspaceServiceError as exc:
        _raise_workspace_http_error(exc)
    await db.commit()
    await db.refresh(member)
    return WorkspaceMemberResponse.model_validate(member)


# ---------------------------------------------------------------------------
# Invitations
# ---------------------------------------------------------------------------


@router.get("/{workspace_id}/invitations", response_model=list[WorkspaceInvitationResponse])
async def list_invitations(
    workspace_id: UUID,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> list[WorkspaceInvitationResponse]:
    """Lista convites pendentes e validos do workspace."""
    svc = WorkspaceService(db)
    try:
        invitations = await svc.list_invitations(workspace_id, principal.user_id)
    except WorkspaceServiceError as exc:
        _raise_workspace_http_error(exc)
    return [WorkspaceInvitationResponse.model_validate(inv) for inv in invitations]


@invitations_router.post("/{token}/accept", response_model=WorkspaceMemberResponse)
async def accept_invitation(
    token: str,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> WorkspaceMemberResponse:
    """Aceita o convite e entra no workspace."""
    svc = WorkspaceService(db)
    try:
        member = await svc.accept_invitation(token, principal)
    except WorkspaceServiceError as exc:
        _raise_workspace_http_error(exc)
    await db.commit()
    await db.refresh(member)
    return WorkspaceMemberResponse.model_validate(member)


@invitations_router.post("/{token}/decline", response_model=WorkspaceInvitationResponse)
async def decline_invitation(
    token: str,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> WorkspaceInvitationResponse:
    """Recusa o convite."""
    svc = WorkspaceService(db)
    try:
        invitation = await svc.decline_invitation(token, principal)
    except WorkspaceServiceError as exc:
        _raise_workspace_http_error(exc)
    await db.commit()
    await db.refresh(invitation)
    return WorkspaceInvitationResponse.model_validate(invitation)
