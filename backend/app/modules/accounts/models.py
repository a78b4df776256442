"""
Accounts module database models.
"""

from sqlalchemy import Column, String, Boolean, ForeignKey, Index

from app.core.config import settings
from app.shared.models.base import BaseModel


ACCOUNT_TYPES = ('checking', 'savings', 'credit', 'investment')


class Account(BaseModel):
    """A bank, savings, credit or investment account inside a workspace."""

    __tablename__ = "accounts"

    workspace_id = Column(String(36), ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(200), nullable=False)
    type = Column(String(20), nullable=False, default='checking')  # 'checking', 'savings', 'credit', 'investment'
    currency = Column(String(3), nullable=False, default=settings.DEFAULT_CURRENCY)
    is_default = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        Index('idx_account_workspace', 'workspace_id'),
    )
