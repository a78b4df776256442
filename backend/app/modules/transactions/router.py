"""
Transaction API routes.

Every successful write is committed first, then the affected checkpoints
are recalculated and committed separately. A failed recalculation never
undoes the transaction write; it is reported in the response instead.
"""

import logging
from typing import Optional, List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.modules.checkpoints.services import recalculate_for_changes
from app.modules.transactions.services import (
    Change,
    TransactionInput,
    TransactionNotFoundError,
    TransactionValidationError,
    create_transaction,
    delete_transaction,
    list_transactions,
    restore_transaction,
    serialize_transaction,
    update_transaction,
)
from app.modules.workspaces.services import (
    WorkspaceContext,
    can_manage_checkpoints,
    get_workspace_context,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _recalculate_checkpoints(db: Session, changes: List[Change], workspace_id: str) -> dict:
    """Cascade after a committed write; failures are reported, not raised."""
    if not changes:
        return {"updated_count": 0}

    try:
        result = recalculate_for_changes(db, changes, workspace_id)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.error("Checkpoint recalculation failed after transaction write", exc_info=True)
        return {"updated_count": 0, "error": "Checkpoint recalculation failed"}

    if result["errors"]:
        logger.error(f"Checkpoint recalculation incomplete: {'; '.join(result['errors'])}")
        return {"updated_count": result["updated_count"], "error": "Checkpoint recalculation failed"}

    return {"updated_count": result["updated_count"]}


def _write(db: Session, operation, context: WorkspaceContext, *args, failure: str):
    """Run a transaction write and commit it, mapping errors to HTTP responses."""
    if not can_manage_checkpoints(context.role):
        raise HTTPException(status_code=403, detail="Not allowed to modify transactions")

    try:
        transaction, changes = operation(db, *args, context.workspace_id, context.user_id)
        db.commit()
    except TransactionNotFoundError:
        db.rollback()
        raise HTTPException(status_code=404, detail="Transaction not found")
    except TransactionValidationError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))
    except SQLAlchemyError:
        db.rollback()
        logger.error(failure, exc_info=True)
        raise HTTPException(status_code=500, detail=failure)

    return {
        "success": True,
        "transaction": serialize_transaction(transaction),
        "checkpoint_recalculation": _recalculate_checkpoints(db, changes, context.workspace_id),
    }


@router.get("")
async def get_transactions(
    account_id: Optional[str] = None,
    include_deleted: bool = False,
    limit: int = Query(default=50, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    context: WorkspaceContext = Depends(get_workspace_context),
):
    """List transactions with optional account filter."""
    transactions = list_transactions(
        db,
        context.workspace_id,
        account_id=account_id,
        include_deleted=include_deleted,
        limit=limit,
        offset=offset,
    )
    return {
        "transactions": [serialize_transaction(t) for t in transactions],
        "count": len(transactions),
    }


@router.post("", status_code=201)
async def add_transaction(
    data: TransactionInput,
    db: Session = Depends(get_db),
    context: WorkspaceContext = Depends(get_workspace_context),
):
    """Create a transaction and refresh checkpoints dated on or after it."""
    return _write(db, create_transaction, context, data, failure="Failed to create transaction")


@router.put("/{transaction_id}")
async def edit_transaction(
    transaction_id: str,
    data: TransactionInput,
    db: Session = Depends(get_db),
    context: WorkspaceContext = Depends(get_workspace_context),
):
    """Update a transaction and refresh checkpoints for its old and new position."""
    return _write(db, update_transaction, context, transaction_id, data, failure="Failed to update transaction")


@router.delete("/{transaction_id}")
async def remove_transaction(
    transaction_id: str,
    db: Session = Depends(get_db),
    context: WorkspaceContext = Depends(get_workspace_context),
):
    """Soft delete a transaction."""
    return _write(db, delete_transaction, context, transaction_id, failure="Failed to delete transaction")


@router.post("/{transaction_id}/restore")
async def undelete_transaction(
    transaction_id: str,
    db: Session = Depends(get_db),
    context: WorkspaceContext = Depends(get_workspace_context),
):
    """Restore a soft-deleted transaction."""
    return _write(db, restore_transaction, context, transaction_id, failure="Failed to restore transaction")
