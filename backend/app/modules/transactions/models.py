"""
Transactions module database models.

Amounts are stored positive; the type decides the sign applied to the
account balance. Deleting a transaction only sets deleted_at.
"""

from sqlalchemy import Column, String, Numeric, Date, DateTime, Text, ForeignKey, Index, case

from app.shared.models.base import BaseModel


TRANSACTION_TYPES = ('income', 'expense')


class Transaction(BaseModel):
    """An income or expense recorded against one account."""

    __tablename__ = "transactions"

    workspace_id = Column(String(36), ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False)
    account_id = Column(String(36), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False)

    amount = Column(Numeric(18, 2), nullable=False)  # Always positive
    type = Column(String(10), nullable=False)  # 'income' or 'expense'
    description = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    transaction_date = Column(Date, nullable=False)

    # Soft delete marker
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    created_by = Column(String(36), nullable=True)
    updated_by = Column(String(36), nullable=True)

    __table_args__ = (
        Index('idx_transaction_account_date', 'workspace_id', 'account_id', 'transaction_date'),
        Index('idx_transaction_deleted_at', 'deleted_at'),
    )

    @property
    def signed_amount(self):
        """Effect of this transaction on its account balance."""
        return self.amount if self.type == 'income' else -self.amount


# SQL expression mirroring Transaction.signed_amount, for aggregate queries
signed_amount_expr = case(
    (Transaction.type == 'income', Transaction.amount),
    else_=-Transaction.amount,
)
