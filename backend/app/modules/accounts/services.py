"""
Account management scoped to a workspace.

Balances are never stored on the account; they are always derived from
transactions. An account that already carries history cannot be deleted.
"""

import logging
from typing import Optional, List, Dict, Any

from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.core.timezone import format_datetime_for_api
from app.modules.accounts.models import Account, ACCOUNT_TYPES
from app.modules.checkpoints.models import Checkpoint
from app.modules.transactions.models import Transaction
from app.modules.workspaces.models import Workspace

logger = logging.getLogger(__name__)


class AccountValidationError(ValueError):
    """Account input is malformed."""


class AccountNotFoundError(LookupError):
    """Account does not exist in the workspace."""


class AccountInUseError(Exception):
    """Account still has transactions or checkpoints."""


class AccountInput(BaseModel):
    """Request body for creating or updating an account."""
    name: Optional[str] = None
    type: Optional[str] = None
    currency: Optional[str] = None
    is_default: Optional[bool] = None


def get_workspace_account(db: Session, account_id: str, workspace_id: str) -> Optional[Account]:
    """Return the account if it belongs to the workspace, else None."""
    return db.query(Account).filter(
        Account.id == account_id,
        Account.workspace_id == workspace_id,
    ).first()


def _require_account(db: Session, account_id: str, workspace_id: str) -> Account:
    account = get_workspace_account(db, account_id, workspace_id)
    if account is None:
        raise AccountNotFoundError(f"Account {account_id} not found")
    return account


def _clean_name(name: Optional[str]) -> str:
    cleaned = (name or '').strip()
    if not cleaned:
        raise AccountValidationError("Account name is required")
    if len(cleaned) > 200:
        raise AccountValidationError("Account name must be at most 200 characters")
    return cleaned


def _validate_type(value: str) -> str:
    if value not in ACCOUNT_TYPES:
        raise AccountValidationError(f"Type must be one of: {', '.join(ACCOUNT_TYPES)}")
    return value


def _validate_currency(value: str) -> str:
    code = value.strip().upper()
    if len(code) != 3 or not code.isalpha():
        raise AccountValidationError("Currency must be a 3-letter code")
    return code


def _clear_default(db: Session, workspace_id: str, keep_id: Optional[str] = None) -> None:
    """At most one default account per workspace."""
    query = db.query(Account).filter(
        Account.workspace_id == workspace_id,
        Account.is_default.is_(True),
    )
    if keep_id:
        query = query.filter(Account.id != keep_id)
    for account in query.all():
        account.is_default = False


def create_account(db: Session, data: AccountInput, workspace_id: str) -> Account:
    """
    Add an account to the workspace.

    Currency falls back to the workspace currency; the session is flushed,
    not committed.
    """
    name = _clean_name(data.name)
    account_type = _validate_type(data.type or 'checking')

    if data.currency:
        currency = _validate_currency(data.currency)
    else:
        workspace = db.query(Workspace).filter(Workspace.id == workspace_id).first()
        if workspace is None:
            raise AccountValidationError("Workspace not found")
        currency = workspace.currency

    if data.is_default:
        _clear_default(db, workspace_id)

    account = Account(
        workspace_id=workspace_id,
        name=name,
        type=account_type,
        currency=currency,
        is_default=bool(data.is_default),
    )
    db.add(account)
    db.flush()

    logger.info(f"Account {account.id} ({account_type}) created in workspace {workspace_id}")
    return account


def list_accounts(db: Session, workspace_id: str) -> List[Account]:
    """Accounts in creation order."""
    return db.query(Account).filter(
        Account.workspace_id == workspace_id,
    ).order_by(Account.created_at.asc()).all()


def update_account(db: Session, account_id: str, data: AccountInput, workspace_id: str) -> Account:
    """Apply the provided fields."""
    account = _require_account(db, account_id, workspace_id)

    if data.name is not None:
        account.name = _clean_name(data.name)
    if data.type is not None:
        account.type = _validate_type(data.type)
    if data.currency is not None:
        account.currency = _validate_currency(data.currency)
    if data.is_default is not None:
        if data.is_default:
            _clear_default(db, workspace_id, keep_id=account.id)
        account.is_default = data.is_default

    db.flush()
    return account


def delete_account(db: Session, account_id: str, workspace_id: str) -> str:
    """
    Hard delete an account with no history.

    Soft-deleted transactions still count as history, since they can be
    restored.
    """
    account = _require_account(db, account_id, workspace_id)

    has_transactions = db.query(Transaction.id).filter(
        Transaction.account_id == account_id,
    ).first() is not None
    if has_transactions:
        raise AccountInUseError("Cannot delete account with existing transactions")

    has_checkpoints = db.query(Checkpoint.id).filter(
        Checkpoint.account_id == account_id,
    ).first() is not None
    if has_checkpoints:
        raise AccountInUseError("Cannot delete account with existing checkpoints")

    db.delete(account)
    db.flush()

    logger.info(f"Account {account_id} deleted from workspace {workspace_id}")
    return account_id


def serialize_account(account: Account) -> Dict[str, Any]:
    """API representation of an account."""
    return {
        'id': account.id,
        'workspace_id': account.workspace_id,
        'name': account.name,
        'type': account.type,
        'currency': account.currency,
        'is_default': account.is_default,
        'created_at': format_datetime_for_api(account.created_at),
        'updated_at': format_datetime_for_api(account.updated_at),
    }
