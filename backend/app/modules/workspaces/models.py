"""
Workspace module database models.

A workspace is the family's shared ledger. Members reach it through
WorkspaceMember rows; every account, transaction and checkpoint is scoped
to exactly one workspace.
"""

from sqlalchemy import Column, String, ForeignKey, UniqueConstraint, Index

from app.core.config import settings
from app.shared.models.base import BaseModel


class Workspace(BaseModel):
    """A family/personal budget workspace."""

    __tablename__ = "workspaces"

    name = Column(String(200), nullable=False)
    currency = Column(String(3), nullable=False, default=settings.DEFAULT_CURRENCY)
    owner_id = Column(String(36), nullable=False)  # Identity provider user id


class WorkspaceMember(BaseModel):
    """Membership of a user in a workspace."""

    __tablename__ = "workspace_members"

    workspace_id = Column(String(36), ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(36), nullable=False)
    role = Column(String(20), nullable=False, default='member')  # 'owner', 'admin', 'member'

    __table_args__ = (
        UniqueConstraint('workspace_id', 'user_id', name='uq_workspace_member'),
        Index('idx_workspace_member_user', 'user_id'),
    )
