"""
Workspace, WorkspaceMember and WorkspaceInvitation models.
"""
from datetime import datetime
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import relationship

from saaskit.core.database import Base, utcnow


class Workspace(Base):
    """
    Tenant boundary: owns members, invitations and exactly one subscription.

    Every user gets an auto-created personal workspace on first access.
    Plan/subscription are workspace-level, not user-level.
    """

    __tablename__ = "workspaces"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4, index=True)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False, unique=True, index=True)
    description = Column(Text, nullable=True)
    owner_id = Column(String(255), nullable=False, index=True, comment="sub do identity provider")
    is_personal = Column(Boolean, default=False, nullable=False)
    member_count = Column(
        Integer,
        nullable=False,
        default=1,
        comment="Derivado de COUNT(workspace_members); recalculado a cada mudanca",
    )

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(
        DateTime,
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    # Relationships
    members = relationship(
        "WorkspaceMember",
        back_populates="workspace",
        cascade="all, delete-orphan",
    )
    invitations = relationship(
        "WorkspaceInvitation",
        back_populates="workspace",
        cascade="all, delete-orphan",
    )
    subscription = relationship(
        "WorkspaceSubscription",
        back_populates="workspace",
        cascade="all, delete-orphan",
        uselist=False,
    )

    def __repr__(self) -> str:
        return (
            f"<Workspace(id={self.id}, name='{self.name}', "
            f"slug='{self.slug}', members={self.member_count})>"
        )


class WorkspaceMember(Base):
    """
    Membership of a user in a workspace, with role.
    """

    __tablename__ = "workspace_members"
    __table_args__ = (
        UniqueConstraint("workspace_id", "user_id", name="uq_workspace_member"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4, index=True)
    workspace_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("workspaces.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = Column(String(255), nullable=False, index=True)
    email = Column(String(320), nullable=True, index=True)
    name = Column(String(255), nullable=True)
    role = Column(
        String(20),
        nullable=False,
        default="member",
        comment="owner|admin|member",
    )
    invited_by = Column(String(255), nullable=True)
    joined_at = Column(DateTime, default=utcnow, nullable=False)

    # Relationships
    workspace = relationship("Workspace", back_populates="members")

    def __repr__(self) -> str:
        return (
            f"<WorkspaceMember(workspace_id={self.workspace_id}, "
            f"user_id={self.user_id}, role='{self.role}')>"
        )


class WorkspaceInvitation(Base):
    """
    Pending invitation to join a workspace; token is single-use.
    """

    __tablename__ = "workspace_invitations"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4, index=True)
    workspace_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("workspaces.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    email = Column(String(320), nullable=False, index=True)
    role = Column(String(20), nullable=False, default="member", comment="admin|member")
    invited_by = Column(String(255), nullable=False)
    inviter_name = Column(String(255), nullable=True)
    token = Column(String(128), nullable=False, unique=True, index=True)
    status = Column(
        String(20),
        nullable=False,
        default="pending",
        index=True,
        comment="pending|accepted|declined",
    )
    message = Column(Text, nullable=True)
    expires_at = Column(DateTime, nullable=False)
    responded_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    # Relationships
    workspace = relationship("Workspace", back_populates="invitations")

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or utcnow()) >= self.expires_at

    def __repr__(self) -> str:
        return (
            f"<WorkspaceInvitation(workspace_id={self.workspace_id}, "
            f"email='{self.email}', status='{self.status}')>"
        )
