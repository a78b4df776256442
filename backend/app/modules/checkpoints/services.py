"""
Checkpoint reconciliation service.

Responsibilities:
1. Expected balance: signed sum of live transactions up to a date
2. Gap: declared balance minus expected balance
3. Checkpoint records: create, review, list for the timeline
4. Cascade: refresh every checkpoint a transaction change can affect

Every checkpoint is recomputed from the full transaction history up to
its own date. No running balances are carried between checkpoints.
"""

import logging
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Optional, List, Dict, Any, Iterable, Tuple

from pydantic import BaseModel
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.timezone import format_datetime_for_api, parse_date_input, today_utc
from app.modules.accounts.services import get_workspace_account
from app.modules.checkpoints.models import Checkpoint, CHECKPOINT_STATUSES
from app.modules.transactions.models import Transaction, signed_amount_expr
from app.shared.models.base import MONEY_LIMIT

logger = logging.getLogger(__name__)

CENT = Decimal('0.01')


class CheckpointValidationError(ValueError):
    """Checkpoint input is malformed."""


class CheckpointNotFoundError(LookupError):
    """Checkpoint does not exist in the workspace."""


class CheckpointRecalculationError(RuntimeError):
    """Every checkpoint in a cascade failed to recalculate."""


class CheckpointForm(BaseModel):
    """Form-style checkpoint input. Every field arrives as an optional string."""
    account_id: Optional[str] = None
    date: Optional[str] = None
    actual_balance: Optional[str] = None


# =============================================================================
# Balance calculation
# =============================================================================

def calculate_expected_balance(
    db: Session,
    account_id: str,
    cutoff_date: date,
    workspace_id: str,
) -> Decimal:
    """
    Sum the signed amounts of all non-deleted transactions on the account
    dated on or before cutoff_date. Returns 0 when nothing matches.

    Data-access errors propagate to the caller.
    """
    total = db.query(
        func.coalesce(func.sum(signed_amount_expr), 0)
    ).filter(
        Transaction.workspace_id == workspace_id,
        Transaction.account_id == account_id,
        Transaction.deleted_at.is_(None),
        Transaction.transaction_date <= cutoff_date,
    ).scalar()

    return Decimal(str(total or 0)).quantize(CENT)


def calculate_gap(actual_balance, expected_balance):
    """Gap between the declared balance and the computed one."""
    return actual_balance - expected_balance


# =============================================================================
# Checkpoint records
# =============================================================================

def _parse_actual_balance(raw: Optional[str]) -> Decimal:
    """Absent or unparsable balances default to 0; NaN and infinities are rejected."""
    if raw is None or not str(raw).strip():
        return Decimal('0')

    try:
        value = Decimal(str(raw).strip())
    except InvalidOperation:
        return Decimal('0')

    if not value.is_finite():
        raise CheckpointValidationError("Actual balance must be a finite number")
    if abs(value) >= MONEY_LIMIT:
        raise CheckpointValidationError("Actual balance is too large")

    try:
        return value.quantize(CENT)
    except InvalidOperation:
        raise CheckpointValidationError("Actual balance is too large")


def _parse_checkpoint_date(raw: Optional[str]) -> date:
    if raw is None or not str(raw).strip():
        return today_utc()

    try:
        return parse_date_input(str(raw))
    except ValueError:
        raise CheckpointValidationError(f"Invalid checkpoint date: {raw}")


def create_checkpoint(
    db: Session,
    form: CheckpointForm,
    workspace_id: str,
    user_id: str,
) -> Checkpoint:
    """
    Validate form input, compute expected balance and gap, and add an open checkpoint.

    The session is flushed, not committed.
    """
    if not form.account_id:
        raise CheckpointValidationError("Account is required")

    checkpoint_date = _parse_checkpoint_date(form.date)
    actual_balance = _parse_actual_balance(form.actual_balance)

    if get_workspace_account(db, form.account_id, workspace_id) is None:
        raise CheckpointValidationError("Account not found")

    expected_balance = calculate_expected_balance(db, form.account_id, checkpoint_date, workspace_id)
    gap = calculate_gap(actual_balance, expected_balance)
    if abs(gap) >= MONEY_LIMIT:
        raise CheckpointValidationError("Balance gap is out of range")

    checkpoint = Checkpoint(
        workspace_id=workspace_id,
        account_id=form.account_id,
        date=checkpoint_date,
        actual_balance=actual_balance,
        expected_balance=expected_balance,
        gap=gap,
        status='open',
        notes=None,
        created_by=user_id,
    )
    db.add(checkpoint)
    db.flush()

    logger.info(
        f"Checkpoint {checkpoint.id} created for account {form.account_id} on {checkpoint_date}: "
        f"actual={actual_balance} expected={expected_balance} gap={gap}"
    )
    return checkpoint


def update_checkpoint(
    db: Session,
    checkpoint_id: str,
    workspace_id: str,
    status: Optional[str] = None,
    notes: Optional[str] = None,
) -> Checkpoint:
    """Change the review status or notes. Balances are left alone."""
    checkpoint = db.query(Checkpoint).filter(
        Checkpoint.id == checkpoint_id,
        Checkpoint.workspace_id == workspace_id,
    ).first()

    if checkpoint is None:
        raise CheckpointNotFoundError(f"Checkpoint {checkpoint_id} not found")

    if status is not None:
        if status not in CHECKPOINT_STATUSES:
            raise CheckpointValidationError(f"Invalid status: {status}")
        checkpoint.status = status
    if notes is not None:
        checkpoint.notes = notes

    db.flush()
    return checkpoint


def serialize_checkpoint(checkpoint: Checkpoint) -> Dict[str, Any]:
    """API representation of a checkpoint."""
    return {
        'id': checkpoint.id,
        'workspace_id': checkpoint.workspace_id,
        'account_id': checkpoint.account_id,
        'date': checkpoint.date.isoformat() if checkpoint.date else None,
        'actual_balance': float(checkpoint.actual_balance),
        'expected_balance': float(checkpoint.expected_balance),
        'gap': float(checkpoint.gap),
        'status': checkpoint.status,
        'notes': checkpoint.notes,
        'created_by': checkpoint.created_by,
        'created_at': format_datetime_for_api(checkpoint.created_at),
        'updated_at': format_datetime_for_api(checkpoint.updated_at),
    }


def count_period_transactions(
    db: Session,
    account_id: str,
    workspace_id: str,
    period_start: date,
    period_end: date,
) -> int:
    """Live transactions with period_start < transaction_date <= period_end."""
    return db.query(func.count(Transaction.id)).filter(
        Transaction.workspace_id == workspace_id,
        Transaction.account_id == account_id,
        Transaction.deleted_at.is_(None),
        Transaction.transaction_date > period_start,
        Transaction.transaction_date <= period_end,
    ).scalar() or 0


def list_checkpoints_for_timeline(
    db: Session,
    workspace_id: str,
    account_id: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """
    Checkpoints newest first, each with the length of its period and the
    number of transactions recorded in it.

    A period runs from the next-older checkpoint of the same account, or
    from the first of the checkpoint's month when there is none. A failed
    count degrades that entry to 0 instead of failing the listing.
    """
    query = db.query(Checkpoint).filter(Checkpoint.workspace_id == workspace_id)
    if account_id:
        query = query.filter(Checkpoint.account_id == account_id)

    checkpoints = query.order_by(Checkpoint.date.desc(), Checkpoint.created_at.desc()).all()

    # Oldest-first per account, so each checkpoint can find its predecessor
    previous_by_id: Dict[str, Optional[Checkpoint]] = {}
    last_seen: Dict[str, Checkpoint] = {}
    for checkpoint in reversed(checkpoints):
        previous_by_id[checkpoint.id] = last_seen.get(checkpoint.account_id)
        last_seen[checkpoint.account_id] = checkpoint

    timeline = []
    for checkpoint in checkpoints:
        previous = previous_by_id.get(checkpoint.id)
        period_start = previous.date if previous else checkpoint.date.replace(day=1)

        try:
            with db.begin_nested():
                transaction_count = count_period_transactions(
                    db, checkpoint.account_id, workspace_id, period_start, checkpoint.date
                )
        except SQLAlchemyError as e:
            logger.warning(f"Could not count transactions for checkpoint {checkpoint.id}: {e}")
            transaction_count = 0

        entry = serialize_checkpoint(checkpoint)
        entry['transaction_count'] = transaction_count
        entry['days_since_previous'] = (checkpoint.date - period_start).days
        timeline.append(entry)

    return timeline


# =============================================================================
# Cascade recalculation
# =============================================================================

def recalculate_affected_checkpoints(
    db: Session,
    transaction_date: date,
    account_id: str,
    workspace_id: str,
) -> Dict[str, Any]:
    """
    Refresh expected balance and gap of every checkpoint on the account
    dated on or after transaction_date, oldest first.

    Only changed checkpoints are written. Each checkpoint runs in its own
    savepoint; failures are collected as warnings. Raises
    CheckpointRecalculationError only when every checkpoint failed.
    The session is flushed, not committed.
    """
    affected = db.query(Checkpoint).filter(
        Checkpoint.workspace_id == workspace_id,
        Checkpoint.account_id == account_id,
        Checkpoint.date >= transaction_date,
    ).order_by(Checkpoint.date.asc(), Checkpoint.created_at.asc()).all()

    if not affected:
        return {'updated_count': 0, 'warnings': []}

    updated_count = 0
    warnings: List[str] = []

    for checkpoint in affected:
        checkpoint_id = checkpoint.id
        try:
            with db.begin_nested():
                expected_balance = calculate_expected_balance(db, account_id, checkpoint.date, workspace_id)
                gap = calculate_gap(checkpoint.actual_balance, expected_balance)

                changed = expected_balance != checkpoint.expected_balance or gap != checkpoint.gap
                if changed:
                    checkpoint.expected_balance = expected_balance
                    checkpoint.gap = gap
                    db.flush()
        except SQLAlchemyError as e:
            logger.warning(f"Failed to recalculate checkpoint {checkpoint_id}: {e}")
            warnings.append(f"Failed to update checkpoint {checkpoint_id}")
            continue

        if changed:
            updated_count += 1

    if len(warnings) == len(affected):
        logger.error(
            f"All {len(affected)} checkpoint updates failed for account {account_id} "
            f"in workspace {workspace_id}"
        )
        raise CheckpointRecalculationError(f"All checkpoint updates failed: {', '.join(warnings)}")

    if warnings:
        logger.warning(f"Some checkpoint updates failed: {', '.join(warnings)}")

    if updated_count:
        logger.info(f"Recalculated {updated_count} checkpoint(s) for account {account_id} from {transaction_date}")

    return {'updated_count': updated_count, 'warnings': warnings}


def recalculate_for_changes(
    db: Session,
    changes: Iterable[Tuple[str, date]],
    workspace_id: str,
) -> Dict[str, Any]:
    """
    Run the cascade once per account, from the earliest changed date.

    Accounts whose cascade fails completely are reported under 'errors'
    and do not stop the remaining accounts.
    """
    earliest: Dict[str, date] = {}
    for account_id, changed_date in changes:
        if account_id not in earliest or changed_date < earliest[account_id]:
            earliest[account_id] = changed_date

    result = {'updated_count': 0, 'warnings': [], 'errors': []}
    for account_id, since in sorted(earliest.items()):
        try:
            outcome = recalculate_affected_checkpoints(db, since, account_id, workspace_id)
        except CheckpointRecalculationError:
            result['errors'].append(f"Checkpoint recalculation failed for account {account_id}")
            continue
        result['updated_count'] += outcome['updated_count']
        result['warnings'].extend(outcome['warnings'])

    return result
