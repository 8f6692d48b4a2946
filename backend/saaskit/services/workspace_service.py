"""
Workspace service - workspaces, membros e convites.

Every mutating operation re-reads the actor's membership before acting.
A missing workspace is reported before a missing permission.
"""
from __future__ import annotations

import logging
import re
import secrets
from datetime import timedelta
from typing import Any, Optional
from uuid import UUID, uuid4

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from saaskit.core.config import settings
from saaskit.core.database import utcnow
from saaskit.core.plans import PlanTier
from saaskit.core.rbac import ASSIGNABLE_ROLES, WorkspaceRole, normalize_role, parse_role, role_at_least
from saaskit.core.security import Principal
from saaskit.models.subscription import WorkspaceSubscription
from saaskit.models.workspace import Workspace, WorkspaceInvitation, WorkspaceMember

logger = logging.getLogger(__name__)

_SLUG_INVALID_CHARS = re.compile(r"[^a-z0-9]+")
SLUG_MAX_LENGTH = 48
SLUG_SUFFIX_ATTEMPTS = 5


class WorkspaceServiceError(Exception):
    """Domain error for workspace operations."""

    def __init__(
        self,
        detail: str,
        code: str = "workspace_error",
        data: Optional[dict[str, Any]] = None,
    ) -> None:
        self.detail = detail
        self.code = code
        self.data = data or {}
        super().__init__(detail)


def slugify(value: str) -> str:
    """Lowercase, troca nao-alfanumericos por hifen e corta no limite."""
    slug = _SLUG_INVALID_CHARS.sub("-", value.lower()).strip("-")
    return slug[:SLUG_MAX_LENGTH].strip("-") or "workspace"


class WorkspaceService:
    """Operacoes de workspace, membros e convites."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def get_workspace(self, workspace_id: UUID) -> Workspace | None:
        stmt = select(Workspace).where(Workspace.id == workspace_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_workspace_member(
        self,
        workspace_id: UUID,
        user_id: str,
    ) -> WorkspaceMember | None:
        """
        Busca membership de um usuario em um workspace.

        Args:
            workspace_id: ID do workspace.
            user_id: ID do usuario (sub do token).

        Returns:
            WorkspaceMember ou None.
        """
        stmt = select(WorkspaceMember).where(
            WorkspaceMember.workspace_id == workspace_id,
            WorkspaceMember.user_id == user_id,
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_invitation_by_token(self, token: str) -> WorkspaceInvitation | None:
        stmt = select(WorkspaceInvitation).where(WorkspaceInvitation.token == token)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def list_user_workspaces(self, user_id: str) -> list[tuple[Workspace, str]]:
        """
        Lista workspaces onde o usuario e membro, com o role dele em cada um.

        Args:
            user_id: ID do usuario.

        Returns:
            Lista de (workspace, role).
        """
        stmt = (
            select(Workspace, WorkspaceMember.role)
            .join(WorkspaceMember, WorkspaceMember.workspace_id == Workspace.id)
            .where(WorkspaceMember.user_id == user_id)
            .order_by(Workspace.created_at)
        )
        result = await self.db.execute(stmt)
        return [(workspace, role) for workspace, role in result.all()]

    async def _require_workspace(self, workspace_id: UUID) -> Workspace:
        workspace = await self.get_workspace(workspace_id)
        if workspace is None:
            raise WorkspaceServiceError(
                "Workspace nao encontrado.",
                code="workspace_not_found",
            )
        return workspace

    async def _require_actor_role(
        self,
        workspace_id: UUID,
        actor_id: str,
        minimum: WorkspaceRole,
    ) -> WorkspaceMember:
        """
        Re-le o membership do ator e exige ``minimum``.

        Raises:
            WorkspaceServiceError: ``workspace_forbidden`` com requiredRole/currentRole.
        """
        member = await self.get_workspace_member(workspace_id, actor_id)
        current_role = normalize_role(member.role).value if member is not None else None
        if member is None or not role_at_least(member.role, minimum):
            if member is None:
                message = "Voce nao e membro deste workspace."
            else:
                message = f"Role insuficiente. Necessario: {minimum.value}."
            raise WorkspaceServiceError(
                message,
                code="workspace_forbidden",
                data={"requiredRole": minimum.value, "currentRole": current_role},
            )
        return member

    # ------------------------------------------------------------------
    # Slugs
    # ------------------------------------------------------------------

    async def _slug_exists(self, slug: str) -> bool:
        stmt = select(Workspace.id).where(Workspace.slug == slug)
        result = await self.db.execute(stmt)
        return result.first() is not None

    async def _generate_unique_slug(self, base: str) -> str:
        slug = slugify(base)
        if not await self._slug_exists(slug):
            return slug

        for _ in range(SLUG_SUFFIX_ATTEMPTS):
            candidate = f"{slug[:SLUG_MAX_LENGTH - 7]}-{secrets.token_hex(3)}"
            if not await self._slug_exists(candidate):
                return candidate

        return f"{slug[:SLUG_MAX_LENGTH - 33]}-{uuid4().hex}"

    # ------------------------------------------------------------------
    # Member count
    # ------------------------------------------------------------------

    async def _recount_members(self, workspace: Workspace) -> None:
        """Recalcula member_count a partir de um COUNT numa unica instrucao UPDATE."""
        await self.db.flush()
        live_count = (
            select(func.count(WorkspaceMember.id))
            .where(WorkspaceMember.workspace_id == workspace.id)
            .scalar_subquery()
        )
        await self.db.execute(
            update(Workspace)
            .where(Workspace.id == workspace.id)
            .values(member_count=live_count)
            .execution_options(synchronize_session=False)
        )
        await self.db.refresh(workspace, attribute_names=["member_count", "updated_at"])

    # ------------------------------------------------------------------
    # Workspaces
    # ------------------------------------------------------------------

    async def create_workspace(
        self,
        owner: Principal,
        name: str,
        *,
        slug: Optional[str] = None,
        description: Optional[str] = None,
        is_personal: bool = False,
    ) -> Workspace:
        """
        Cria workspace, adiciona owner como membro e cria a subscription free.

        Se qualquer escrita depois do workspace falhar, a sessao sofre rollback
        e nenhum workspace orfao fica persistido.

        Args:
            owner: Principal dono do workspace.
            name: Nome do workspace.
            slug: Slug explicito (409 se ja existir).
            description: Descricao opcional.
            is_personal: Marca workspace pessoal.

        Returns:
            Workspace criado.

        Raises:
            WorkspaceServiceError: ``slug_conflict`` ou ``workspace_create_failed``.
        """
        if slug:
            final_slug = slugify(slug)
            if await self._slug_exists(final_slug):
                raise WorkspaceServiceError(
                    f"Slug '{final_slug}' ja esta em uso.",
                    code="slug_conflict",
                )
        else:
            final_slug = await self._generate_unique_slug(name)

        workspace = Workspace(
            id=uuid4(),
            name=name.strip(),
            slug=final_slug,
            description=description,
            owner_id=owner.user_id,
            is_personal=is_personal,
            member_count=1,
        )
        self.db.add(workspace)
        try:
            await self.db.flush()
        except IntegrityError as exc:
            await self.db.rollback()
            raise WorkspaceServiceError(
                f"Slug '{final_slug}' ja esta em uso.",
                code="slug_conflict",
            ) from exc

        try:
            await self._add_owner_membership(workspace, owner)
            await self._add_free_subscription(workspace)
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.error(
                "workspace_create_failed: slug=%s owner=%s error=%s",
                final_slug,
                owner.user_id,
                exc,
            )
            raise WorkspaceServiceError(
                "Falha ao criar workspace.",
                code="workspace_create_failed",
            ) from exc

        logger.info(
            "workspace_created: id=%s slug=%s owner=%s personal=%s",
            workspace.id,
            workspace.slug,
            owner.user_id,
            is_personal,
        )
        return workspace

    async def _add_owner_membership(self, workspace: Workspace, owner: Principal) -> WorkspaceMember:
        member = WorkspaceMember(
            id=uuid4(),
            workspace_id=workspace.id,
            user_id=owner.user_id,
            email=owner.email.lower() if owner.email else None,
            name=owner.name,
            role=WorkspaceRole.OWNER.value,
        )
        self.db.add(member)
        await self.db.flush()
        return member

    async def _add_free_subscription(self, workspace: Workspace) -> WorkspaceSubscription:
        subscription = WorkspaceSubscription(
            workspace_id=workspace.id,
            plan_id=PlanTier.FREE.value,
            status="active",
            current_period_start=utcnow(),
            current_period_end=None,
            cancel_at_period_end=False,
        )
        self.db.add(subscription)
        await self.db.flush()
        return subscription

    async def create_personal_workspace(self, owner: Principal) -> Workspace:
        """Workspace pessoal criado no primeiro acesso do usuario."""
        base_slug = slugify(f"{owner.user_id}-personal")
        slug = None if await self._slug_exists(base_slug) else base_slug
        return await self.create_workspace(
            owner,
            settings.PERSONAL_WORKSPACE_NAME,
            slug=slug,
            description="Personal workspace",
            is_personal=True,
        )

    async def ensure_personal_workspace(self, principal: Principal) -> Workspace | None:
        """
        Garante que o usuario tenha ao menos um workspace.

        Returns:
            Workspace pessoal criado agora, ou None se ja existia algum membership.
        """
        stmt = select(WorkspaceMember.id).where(WorkspaceMember.user_id == principal.user_id).limit(1)
        result = await self.db.execute(stmt)
        if result.first() is not None:
            return None
        return await self.create_personal_workspace(principal)

    async def get_workspace_detail(
        self,
        workspace_id: UUID,
        actor_id: str,
    ) -> tuple[Workspace, WorkspaceMember]:
        workspace = await self._require_workspace(workspace_id)
        member = await self._require_actor_role(workspace_id, actor_id, WorkspaceRole.MEMBER)
        return workspace, member

    async def update_workspace(
        self,
        workspace_id: UUID,
        actor_id: str,
        *,
        name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Workspace:
        """Atualiza nome/descricao (admin ou owner)."""
        workspace = await self._require_workspace(workspace_id)
        await self._require_actor_role(workspace_id, actor_id, WorkspaceRole.ADMIN)

        if name is not None:
            workspace.name = name.strip()
        if description is not None:
            workspace.description = description

        await self.db.flush()
        return workspace

    # ------------------------------------------------------------------
    # Members
    # ------------------------------------------------------------------

    async def list_members(self, workspace_id: UUID, actor_id: str) -> list[WorkspaceMember]:
        await self._require_workspace(workspace_id)
        await self._require_actor_role(workspace_id, actor_id, WorkspaceRole.MEMBER)

        stmt = (
            select(WorkspaceMember)
            .where(WorkspaceMember.workspace_id == workspace_id)
            .order_by(WorkspaceMember.joined_at)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def remove_member(
        self,
        workspace_id: UUID,
        actor_id: str,
        target_user_id: str,
    ) -> None:
        """
        Remove membro do workspace.

        Args:
            workspace_id: ID do workspace.
            actor_id: Usuario executando a acao (admin ou owner).
            target_user_id: ID do usuario a remover.

        Raises:
            WorkspaceServiceError: Membro nao encontrado, ator sem permissao ou alvo e o owner.
        """
        workspace = await self._require_workspace(workspace_id)
        await self._require_actor_role(workspace_id, actor_id, WorkspaceRole.ADMIN)

        member = await self.get_workspace_member(workspace_id, target_user_id)
        if member is None:
            raise WorkspaceServiceError("Membro nao encontrado.", code="member_not_found")

        if normalize_role(member.role) == WorkspaceRole.OWNER:
            raise WorkspaceServiceError(
                "Nao e possivel remover o owner do workspace.",
                code="owner_protected",
            )

        await self.db.delete(member)
        await self._recount_members(workspace)
        logger.info(
            "member_removed: workspace=%s target=%s actor=%s",
            workspace_id,
            target_user_id,
            actor_id,
        )

    async def update_member_role(
        self,
        workspace_id: UUID,
        actor_id: str,
        target_user_id: str,
        new_role: str | WorkspaceRole,
    ) -> WorkspaceMember:
        """
        Altera o role de um membro (somente owner).

        Args:
            workspace_id: ID do workspace.
            actor_id: Usuario executando a acao.
            target_user_id: ID do membro alvo.
            new_role: admin ou member.

        Returns:
            WorkspaceMember atualizado.

        Raises:
            WorkspaceServiceError: Ator nao e owner, role invalido, alvo inexistente ou alvo e owner.
        """
        await self._require_workspace(workspace_id)
        await self._require_actor_role(workspace_id, actor_id, WorkspaceRole.OWNER)

        parsed_role = parse_role(new_role)
        if parsed_role not in ASSIGNABLE_ROLES:
            raise WorkspaceServiceError(
                "Role invalido. Use 'admin' ou 'member'.",
                code="invalid_role",
            )

        member = await self.get_workspace_member(workspace_id, target_user_id)
        if member is None:
            raise WorkspaceServiceError("Membro nao encontrado.", code="member_not_found")

        if normalize_role(member.role) == WorkspaceRole.OWNER:
            raise WorkspaceServiceError(
                "Nao e possivel alterar o role do owner.",
                code="owner_protected",
            )

        member.role = parsed_role.value
        await self.db.flush()
        return member

    # ------------------------------------------------------------------
    # Invitations
    # ------------------------------------------------------------------

    async def list_invitations(
        self,
        workspace_id: UUID,
        actor_id: str,
        *,
        include_expired: bool = False,
    ) -> list[WorkspaceInvitation]:
        """Convites pendentes do workspace (qualquer membro pode ler)."""
        await self._require_workspace(workspace_id)
        await self._require_actor_role(workspace_id, actor_id, WorkspaceRole.MEMBER)

        stmt = select(WorkspaceInvitation).where(
            WorkspaceInvitation.workspace_id == workspace_id,
            WorkspaceInvitation.status == "pending",
        )
        if not include_expired:
            stmt = stmt.where(WorkspaceInvitation.expires_at > utcnow())
        stmt = stmt.order_by(WorkspaceInvitation.created_at.desc())
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def invite_member(
        self,
        workspace_id: UUID,
        actor: Principal,
        email: str,
        role: str | WorkspaceRole,
        message: Optional[str] = None,
    ) -> WorkspaceInvitation:
        """
        Cria convite pendente com token de uso unico.

        O envio do email fica a cargo de quem chama.

        Raises:
            WorkspaceServiceError: Sem permissao, role invalido, ja e membro ou ja ha convite pendente.
        """
        await self._require_workspace(workspace_id)
        await self._require_actor_role(workspace_id, actor.user_id, WorkspaceRole.ADMIN)

        parsed_role = parse_role(role)
        if parsed_role not in ASSIGNABLE_ROLES:
            raise WorkspaceServiceError(
                "Role invalido para convite. Use 'admin' ou 'member'.",
                code="invalid_role",
            )

        normalized_email = email.strip().lower()

        member_stmt = select(WorkspaceMember.id).where(
            WorkspaceMember.workspace_id == workspace_id,
            func.lower(WorkspaceMember.email) == normalized_email,
        )
        if (await self.db.execute(member_stmt)).first() is not None:
            raise WorkspaceServiceError(
                "Usuario ja e membro deste workspace.",
                code="member_conflict",
            )

        now = utcnow()
        pending_stmt = select(WorkspaceInvitation.id).where(
            WorkspaceInvitation.workspace_id == workspace_id,
            WorkspaceInvitation.email == normalized_email,
            WorkspaceInvitation.status == "pending",
            WorkspaceInvitation.expires_at > now,
        )
        if (await self.db.execute(pending_stmt)).first() is not None:
            raise WorkspaceServiceError(
                "Ja existe um convite pendente para este email.",
                code="invitation_conflict",
            )

        invitation = WorkspaceInvitation(
            id=uuid4(),
            workspace_id=workspace_id,
            email=normalized_email,
            role=parsed_role.value,
            invited_by=actor.user_id,
            inviter_name=actor.name,
            token=secrets.token_urlsafe(32),
            status="pending",
            message=message,
            expires_at=now + timedelta(days=settings.INVITATION_EXPIRE_DAYS),
        )
        self.db.add(invitation)
        await self.db.flush()
        logger.info(
            "invitation_created: workspace=%s email=%s role=%s actor=%s",
            workspace_id,
            normalized_email,
            parsed_role.value,
            actor.user_id,
        )
        return invitation

    async def _require_open_invitation(self, token: str, principal: Principal) -> WorkspaceInvitation:
        invitation = await self.get_invitation_by_token(token)
        if invitation is None:
            raise WorkspaceServiceError("Convite nao encontrado.", code="invitation_not_found")

        if invitation.status != "pending" or invitation.is_expired():
            raise WorkspaceServiceError(
                "Convite expirado ou ja utilizado.",
                code="invitation_invalid",
            )

        if not principal.email or principal.email.strip().lower() != invitation.email:
            raise WorkspaceServiceError(
                "Este convite pertence a outro email.",
                code="invitation_email_mismatch",
            )
        return invitation

    async def accept_invitation(self, token: str, principal: Principal) -> WorkspaceMember:
        """
        Aceita o convite: cria o membership e consome o token.

        Returns:
            WorkspaceMember (novo, ou o ja existente se o usuario ja era membro).
        """
        invitation = await self._require_open_invitation(token, principal)
        workspace = await self._require_workspace(invitation.workspace_id)

        invitation.status = "accepted"
        invitation.responded_at = utcnow()

        existing = await self.get_workspace_member(workspace.id, principal.user_id)
        if existing is not None:
            await self.db.flush()
            return existing

        member = WorkspaceMember(
            id=uuid4(),
            workspace_id=workspace.id,
            user_id=principal.user_id,
            email=invitation.email,
            name=principal.name,
            role=normalize_role(invitation.role).value,
            invited_by=invitation.invited_by,
        )
        self.db.add(member)
        await self._recount_members(workspace)
        logger.info(
            "invitation_accepted: workspace=%s user=%s role=%s",
            workspace.id,
            principal.user_id,
            member.role,
        )
        return member

    async def decline_invitation(self, token: str, principal: Principal) -> WorkspaceInvitation:
        invitation = await self._require_open_invitation(token, principal)
        invitation.status = "declined"
        invitation.responded_at = utcnow()
        await self.db.flush()
        return invitation
