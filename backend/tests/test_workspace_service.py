"""
Workspace membership store: workspaces, members and invitations.
"""
from __future__ import annotations

from datetime import timedelta
from uuid import uuid4

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from saaskit.core.database import utcnow
from saaskit.core.security import Principal
from saaskit.models.subscription import WorkspaceSubscription
from saaskit.models.workspace import Workspace, WorkspaceInvitation, WorkspaceMember
from saaskit.services.workspace_service import WorkspaceService, WorkspaceServiceError, slugify
from tests.conftest import ADMIN, MEMBER, OUTSIDER, OWNER


async def _workspace_with_team(db_session):
    """Workspace do OWNER com ADMIN e MEMBER ja aceitos."""
    svc = WorkspaceService(db_session)
    workspace = await svc.create_workspace(OWNER, "Acme Corp")

    for principal, role in ((ADMIN, "admin"), (MEMBER, "member")):
        invitation = await svc.invite_member(workspace.id, OWNER, principal.email, role)
        await svc.accept_invitation(invitation.token, principal)

    await db_session.commit()
    return workspace


# ---------------------------------------------------------------------------
# Slugs
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("Acme Corp", "acme-corp"),
        ("  --Hello,  World!--  ", "hello-world"),
        ("!!!", "workspace"),
        ("a" * 80, "a" * 48),
    ],
)
def test_slugify(raw: str, expected: str) -> None:
    assert slugify(raw) == expected


# ---------------------------------------------------------------------------
# Workspaces
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_create_workspace_adds_owner_and_free_subscription(db_session) -> None:
    svc = WorkspaceService(db_session)
    workspace = await svc.create_workspace(OWNER, "Acme Corp", description="Main")
    await db_session.commit()

    assert workspace.slug == "acme-corp"
    assert workspace.owner_id == OWNER.user_id
    assert workspace.member_count == 1

    owner_member = await svc.get_workspace_member(workspace.id, OWNER.user_id)
    assert owner_member is not None
    assert owner_member.role == "owner"

    subscription = await db_session.get(WorkspaceSubscription, workspace.id)
    assert subscription is not None
    assert subscription.plan_id == "free"
    assert subscription.status == "active"
    assert subscription.external_customer_id is None


@pytest.mark.asyncio
async def test_create_workspace_rolls_back_when_membership_insert_fails(db_session, monkeypatch) -> None:
    svc = WorkspaceService(db_session)

    async def _boom(*args, **kwargs):
        raise SQLAlchemyError("insert failed")

    monkeypatch.setattr(svc, "_add_owner_membership", _boom)

    with pytest.raises(WorkspaceServiceError) as exc_info:
        await svc.create_workspace(OWNER, "Doomed")

    assert exc_info.value.code == "workspace_create_failed"
    count = (await db_session.execute(select(func.count(Workspace.id)))).scalar_one()
    assert count == 0


@pytest.mark.asyncio
async def test_duplicate_name_gets_suffixed_slug(db_session) -> None:
    svc = WorkspaceService(db_session)
    first = await svc.create_workspace(OWNER, "Acme")
    second = await svc.create_workspace(ADMIN, "Acme")

    assert first.slug == "acme"
    assert second.slug.startswith("acme-")
    assert second.slug != first.slug


@pytest.mark.asyncio
async def test_explicit_slug_conflict(db_session) -> None:
    svc = WorkspaceService(db_session)
    await svc.create_workspace(OWNER, "Acme", slug="acme")

    with pytest.raises(WorkspaceServiceError) as exc_info:
        await svc.create_workspace(ADMIN, "Other", slug="ACME")
    assert exc_info.value.code == "slug_conflict"


@pytest.mark.asyncio
async def test_ensure_personal_workspace_only_once(db_session) -> None:
    svc = WorkspaceService(db_session)

    created = await svc.ensure_personal_workspace(OWNER)
    assert created is not None
    assert created.is_personal is True

    assert await svc.ensure_personal_workspace(OWNER) is None
    rows = await svc.list_user_workspaces(OWNER.user_id)
    assert [(ws.id, role) for ws, role in rows] == [(created.id, "owner")]


@pytest.mark.asyncio
async def test_update_workspace_requires_admin(db_session) -> None:
    workspace = await _workspace_with_team(db_session)
    svc = WorkspaceService(db_session)

    updated = await svc.update_workspace(workspace.id, ADMIN.user_id, name="  Acme Inc ")
    assert updated.name == "Acme Inc"

    with pytest.raises(WorkspaceServiceError) as exc_info:
        await svc.update_workspace(workspace.id, MEMBER.user_id, name="Hijack")
    assert exc_info.value.code == "workspace_forbidden"
    assert exc_info.value.data == {"requiredRole": "admin", "currentRole": "member"}


@pytest.mark.asyncio
async def test_missing_workspace_is_reported_before_permission(db_session) -> None:
    svc = WorkspaceService(db_session)
    with pytest.raises(WorkspaceServiceError) as exc_info:
        await svc.list_members(uuid4(), OUTSIDER.user_id)
    assert exc_info.value.code == "workspace_not_found"


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_list_members_forbidden_for_outsider(db_session) -> None:
    workspace = await _workspace_with_team(db_session)
    svc = WorkspaceService(db_session)

    members = await svc.list_members(workspace.id, MEMBER.user_id)
    assert {m.user_id for m in members} == {OWNER.user_id, ADMIN.user_id, MEMBER.user_id}

    with pytest.raises(WorkspaceServiceError) as exc_info:
        await svc.list_members(workspace.id, OUTSIDER.user_id)
    assert exc_info.value.code == "workspace_forbidden"
    assert exc_info.value.data["currentRole"] is None


@pytest.mark.asyncio
async def test_remove_member_updates_member_count(db_session) -> None:
    workspace = await _workspace_with_team(db_session)
    assert workspace.member_count == 3

    svc = WorkspaceService(db_session)
    await svc.remove_member(workspace.id, ADMIN.user_id, MEMBER.user_id)
    await db_session.commit()

    assert workspace.member_count == 2
    assert await svc.get_workspace_member(workspace.id, MEMBER.user_id) is None


@pytest.mark.asyncio
async def test_owner_cannot_be_removed(db_session) -> None:
    workspace = await _workspace_with_team(db_session)
    svc = WorkspaceService(db_session)

    with pytest.raises(WorkspaceServiceError) as exc_info:
        await svc.remove_member(workspace.id, ADMIN.user_id, OWNER.user_id)
    assert exc_info.value.code == "owner_protected"


@pytest.mark.asyncio
async def test_remove_unknown_member(db_session) -> None:
    workspace = await _workspace_with_team(db_session)
    svc = WorkspaceService(db_session)

    with pytest.raises(WorkspaceServiceError) as exc_info:
        await svc.remove_member(workspace.id, OWNER.user_id, "ghost")
    assert exc_info.value.code == "member_not_found"


@pytest.mark.asyncio
async def test_only_owner_changes_roles(db_session) -> None:
    workspace = await _workspace_with_team(db_session)
    svc = WorkspaceService(db_session)

    with pytest.raises(WorkspaceServiceError) as exc_info:
        await svc.update_member_role(workspace.id, ADMIN.user_id, MEMBER.user_id, "admin")
    assert exc_info.value.code == "workspace_forbidden"
    assert exc_info.value.data == {"requiredRole": "owner", "currentRole": "admin"}

    member = await svc.update_member_role(workspace.id, OWNER.user_id, MEMBER.user_id, "ADMIN")
    assert member.role == "admin"


@pytest.mark.asyncio
async def test_role_change_rejects_owner_target_and_owner_role(db_session) -> None:
    workspace = await _workspace_with_team(db_session)
    svc = WorkspaceService(db_session)

    with pytest.raises(WorkspaceServiceError) as exc_info:
        await svc.update_member_role(workspace.id, OWNER.user_id, MEMBER.user_id, "owner")
    assert exc_info.value.code == "invalid_role"

    with pytest.raises(WorkspaceServiceError) as exc_info:
        await svc.update_member_role(workspace.id, OWNER.user_id, OWNER.user_id, "member")
    assert exc_info.value.code == "owner_protected"


# ---------------------------------------------------------------------------
# Invitations
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_invite_member_creates_pending_invitation(db_session) -> None:
    svc = WorkspaceService(db_session)
    workspace = await svc.create_workspace(OWNER, "Acme")

    invitation = await svc.invite_member(workspace.id, OWNER, " New@Example.com ", "member", "bem-vindo")

    assert invitation.email == "new@example.com"
    assert invitation.status == "pending"
    assert invitation.inviter_name == OWNER.name
    assert len(invitation.token) >= 32
    assert invitation.expires_at > utcnow() + timedelta(days=6)

    pending = await svc.list_invitations(workspace.id, OWNER.user_id)
    assert [i.id for i in pending] == [invitation.id]


@pytest.mark.asyncio
async def test_invite_conflicts(db_session) -> None:
    workspace = await _workspace_with_team(db_session)
    svc = WorkspaceService(db_session)

    with pytest.raises(WorkspaceServiceError) as exc_info:
        await svc.invite_member(workspace.id, OWNER, MEMBER.email.upper(), "member")
    assert exc_info.value.code == "member_conflict"

    await svc.invite_member(workspace.id, OWNER, "fresh@example.com", "member")
    with pytest.raises(WorkspaceServiceError) as exc_info:
        await svc.invite_member(workspace.id, ADMIN, "fresh@example.com", "admin")
    assert exc_info.value.code == "invitation_conflict"


@pytest.mark.asyncio
async def test_invite_rejects_owner_role_and_plain_members(db_session) -> None:
    workspace = await _workspace_with_team(db_session)
    svc = WorkspaceService(db_session)

    with pytest.raises(WorkspaceServiceError) as exc_info:
        await svc.invite_member(workspace.id, OWNER, "boss@example.com", "owner")
    assert exc_info.value.code == "invalid_role"

    with pytest.raises(WorkspaceServiceError) as exc_info:
        await svc.invite_member(workspace.id, MEMBER, "friend@example.com", "member")
    assert exc_info.value.code == "workspace_forbidden"


@pytest.mark.asyncio
async def test_accept_invitation_is_single_use(db_session) -> None:
    svc = WorkspaceService(db_session)
    workspace = await svc.create_workspace(OWNER, "Acme")
    invitation = await svc.invite_member(workspace.id, OWNER, OUTSIDER.email, "admin")

    member = await svc.accept_invitation(invitation.token, OUTSIDER)
    assert member.role == "admin"
    assert member.invited_by == OWNER.user_id
    assert workspace.member_count == 2
    assert invitation.status == "accepted"
    assert invitation.responded_at is not None

    with pytest.raises(WorkspaceServiceError) as exc_info:
        await svc.accept_invitation(invitation.token, OUTSIDER)
    assert exc_info.value.code == "invitation_invalid"


@pytest.mark.asyncio
async def test_accept_invitation_checks_email(db_session) -> None:
    svc = WorkspaceService(db_session)
    workspace = await svc.create_workspace(OWNER, "Acme")
    invitation = await svc.invite_member(workspace.id, OWNER, "someone@example.com", "member")

    with pytest.raises(WorkspaceServiceError) as exc_info:
        await svc.accept_invitation(invitation.token, OUTSIDER)
    assert exc_info.value.code == "invitation_email_mismatch"

    no_email = Principal(user_id="user-no-email")
    with pytest.raises(WorkspaceServiceError) as exc_info:
        await svc.accept_invitation(invitation.token, no_email)
    assert exc_info.value.code == "invitation_email_mismatch"


@pytest.mark.asyncio
async def test_expired_invitation_cannot_be_accepted(db_session) -> None:
    svc = WorkspaceService(db_session)
    workspace = await svc.create_workspace(OWNER, "Acme")
    invitation = await svc.invite_member(workspace.id, OWNER, OUTSIDER.email, "member")
    invitation.expires_at = utcnow() - timedelta(minutes=1)
    await db_session.flush()

    with pytest.raises(WorkspaceServiceError) as exc_info:
        await svc.accept_invitation(invitation.token, OUTSIDER)
    assert exc_info.value.code == "invitation_invalid"
    assert await svc.list_invitations(workspace.id, OWNER.user_id) == []


@pytest.mark.asyncio
async def test_unknown_invitation_token(db_session) -> None:
    svc = WorkspaceService(db_session)
    with pytest.raises(WorkspaceServiceError) as exc_info:
        await svc.accept_invitation("nope", OUTSIDER)
    assert exc_info.value.code == "invitation_not_found"


@pytest.mark.asyncio
async def test_decline_invitation(db_session) -> None:
    svc = WorkspaceService(db_session)
    workspace = await svc.create_workspace(OWNER, "Acme")
    invitation = await svc.invite_member(workspace.id, OWNER, OUTSIDER.email, "member")

    declined = await svc.decline_invitation(invitation.token, OUTSIDER)
    assert declined.status == "declined"

    count = (
        await db_session.execute(
            select(func.count(WorkspaceMember.id)).where(WorkspaceMember.workspace_id == workspace.id)
        )
    ).scalar_one()
    assert count == 1
    remaining = (
        await db_session.execute(
            select(WorkspaceInvitation).where(WorkspaceInvitation.status == "pending")
        )
    ).scalars().all()
    assert remaining == []
