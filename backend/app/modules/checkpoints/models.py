"""
Checkpoint module database models.

A checkpoint is a user-declared balance for one account on one date,
stored next to the balance the transactions say it should be.
"""

from sqlalchemy import Column, String, Numeric, Date, Text, ForeignKey, Index

from app.shared.models.base import BaseModel


CHECKPOINT_STATUSES = ('open', 'resolved', 'closed')


class Checkpoint(BaseModel):
    """Balance snapshot with its computed expectation and gap."""

    __tablename__ = "checkpoints"

    workspace_id = Column(String(36), ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False)
    account_id = Column(String(36), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False)
    date = Column(Date, nullable=False)

    actual_balance = Column(Numeric(18, 2), nullable=False)    # User-declared
    expected_balance = Column(Numeric(18, 2), nullable=False)  # Sum of transactions up to date
    gap = Column(Numeric(18, 2), nullable=False)               # actual - expected

    status = Column(String(10), nullable=False, default='open')  # 'open', 'resolved', 'closed'
    notes = Column(Text, nullable=True)
    created_by = Column(String(36), nullable=False)

    __table_args__ = (
        Index('idx_checkpoint_account_date', 'workspace_id', 'account_id', 'date'),
        Index('idx_checkpoint_status', 'status'),
    )
