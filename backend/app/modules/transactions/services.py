"""
Transaction writes and the checkpoint changes they imply.

Each write returns the (account_id, transaction_date) pairs whose
checkpoints may now be stale. Callers commit the write and then hand the
pairs to the checkpoint cascade.
"""

import logging
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Optional, List, Dict, Any, Tuple

from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.core.timezone import format_datetime_for_api, now_utc
from app.modules.accounts.services import get_workspace_account
from app.modules.transactions.models import Transaction, TRANSACTION_TYPES
from app.shared.models.base import MONEY_LIMIT

logger = logging.getLogger(__name__)

Change = Tuple[str, date]


class TransactionValidationError(ValueError):
    """Transaction input is malformed."""


class TransactionNotFoundError(LookupError):
    """Transaction does not exist in the workspace."""


class TransactionInput(BaseModel):
    """Request body for creating or updating a transaction."""
    account_id: Optional[str] = None
    amount: Optional[Decimal] = None
    type: Optional[str] = None
    transaction_date: Optional[date] = None
    description: Optional[str] = None
    notes: Optional[str] = None


def _validate_amount(amount) -> Decimal:
    try:
        value = Decimal(str(amount))
    except InvalidOperation:
        raise TransactionValidationError("Amount must be a number")
    if not value.is_finite() or value <= 0:
        raise TransactionValidationError("Amount must be a positive number")
    if value >= MONEY_LIMIT:
        raise TransactionValidationError("Amount is too large")

    try:
        return value.quantize(Decimal('0.01'))
    except InvalidOperation:
        raise TransactionValidationError("Amount is too large")


def _validate_type(value: str) -> str:
    if value not in TRANSACTION_TYPES:
        raise TransactionValidationError(f"Type must be one of: {', '.join(TRANSACTION_TYPES)}")
    return value


def _require_account(db: Session, account_id: Optional[str], workspace_id: str) -> str:
    if not account_id:
        raise TransactionValidationError("Account is required")
    if get_workspace_account(db, account_id, workspace_id) is None:
        raise TransactionValidationError("Account not found")
    return account_id


def get_transaction(db: Session, transaction_id: str, workspace_id: str) -> Transaction:
    """Fetch a transaction in the workspace, deleted or not."""
    transaction = db.query(Transaction).filter(
        Transaction.id == transaction_id,
        Transaction.workspace_id == workspace_id,
    ).first()
    if transaction is None:
        raise TransactionNotFoundError(f"Transaction {transaction_id} not found")
    return transaction


def create_transaction(
    db: Session,
    data: TransactionInput,
    workspace_id: str,
    user_id: str,
) -> Tuple[Transaction, List[Change]]:
    """Add a transaction; the session is flushed, not committed."""
    account_id = _require_account(db, data.account_id, workspace_id)
    if data.amount is None:
        raise TransactionValidationError("Amount is required")
    if data.transaction_date is None:
        raise TransactionValidationError("Transaction date is required")

    transaction = Transaction(
        workspace_id=workspace_id,
        account_id=account_id,
        amount=_validate_amount(data.amount),
        type=_validate_type(data.type or 'expense'),
        transaction_date=data.transaction_date,
        description=data.description,
        notes=data.notes,
        created_by=user_id,
        updated_by=user_id,
    )
    db.add(transaction)
    db.flush()

    return transaction, [(account_id, transaction.transaction_date)]


def update_transaction(
    db: Session,
    transaction_id: str,
    data: TransactionInput,
    workspace_id: str,
    user_id: str,
) -> Tuple[Transaction, List[Change]]:
    """
    Apply the provided fields.

    Both the old and the new (account, date) pairs are reported so that
    moving a transaction later in time or to another account refreshes
    the checkpoints it used to count toward.
    """
    transaction = get_transaction(db, transaction_id, workspace_id)
    if transaction.deleted_at is not None:
        raise TransactionValidationError("Cannot edit a deleted transaction")

    changes: List[Change] = [(transaction.account_id, transaction.transaction_date)]

    if data.account_id is not None:
        transaction.account_id = _require_account(db, data.account_id, workspace_id)
    if data.amount is not None:
        transaction.amount = _validate_amount(data.amount)
    if data.type is not None:
        transaction.type = _validate_type(data.type)
    if data.transaction_date is not None:
        transaction.transaction_date = data.transaction_date
    if data.description is not None:
        transaction.description = data.description
    if data.notes is not None:
        transaction.notes = data.notes

    transaction.updated_by = user_id
    db.flush()

    changes.append((transaction.account_id, transaction.transaction_date))
    return transaction, changes


def delete_transaction(
    db: Session,
    transaction_id: str,
    workspace_id: str,
    user_id: str,
) -> Tuple[Transaction, List[Change]]:
    """Soft delete: the row stays, balances stop counting it."""
    transaction = get_transaction(db, transaction_id, workspace_id)
    if transaction.deleted_at is not None:
        return transaction, []

    transaction.deleted_at = now_utc()
    transaction.updated_by = user_id
    db.flush()

    return transaction, [(transaction.account_id, transaction.transaction_date)]


def restore_transaction(
    db: Session,
    transaction_id: str,
    workspace_id: str,
    user_id: str,
) -> Tuple[Transaction, List[Change]]:
    """Undo a soft delete."""
    transaction = get_transaction(db, transaction_id, workspace_id)
    if transaction.deleted_at is None:
        return transaction, []

    transaction.deleted_at = None
    transaction.updated_by = user_id
    db.flush()

    return transaction, [(transaction.account_id, transaction.transaction_date)]


def list_transactions(
    db: Session,
    workspace_id: str,
    account_id: Optional[str] = None,
    include_deleted: bool = False,
    limit: int = 50,
    offset: int = 0,
) -> List[Transaction]:
    """Transactions newest first."""
    query = db.query(Transaction).filter(Transaction.workspace_id == workspace_id)

    if account_id:
        query = query.filter(Transaction.account_id == account_id)
    if not include_deleted:
        query = query.filter(Transaction.deleted_at.is_(None))

    return query.order_by(
        Transaction.transaction_date.desc(),
        Transaction.created_at.desc(),
    ).offset(offset).limit(limit).all()


def serialize_transaction(transaction: Transaction) -> Dict[str, Any]:
    """API representation of a transaction."""
    return {
        'id': transaction.id,
        'workspace_id': transaction.workspace_id,
        'account_id': transaction.account_id,
        'amount': float(transaction.amount),
        'type': transaction.type,
        'signed_amount': float(transaction.signed_amount),
        'transaction_date': transaction.transaction_date.isoformat() if transaction.transaction_date else None,
        'description': transaction.description,
        'notes': transaction.notes,
        'deleted_at': format_datetime_for_api(transaction.deleted_at),
        'created_by': transaction.created_by,
        'updated_by': transaction.updated_by,
        'created_at': format_datetime_for_api(transaction.created_at),
        'updated_at': format_datetime_for_api(transaction.updated_at),
    }
