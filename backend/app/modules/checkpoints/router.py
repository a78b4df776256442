"""
Checkpoint API routes.
Provides endpoints for balance checkpoints and their reconciliation timeline.
"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.modules.checkpoints.services import (
    CheckpointForm,
    CheckpointNotFoundError,
    CheckpointRecalculationError,
    CheckpointValidationError,
    create_checkpoint,
    list_checkpoints_for_timeline,
    recalculate_affected_checkpoints,
    serialize_checkpoint,
    update_checkpoint,
)
from app.modules.workspaces.services import (
    WorkspaceContext,
    can_manage_checkpoints,
    can_review_checkpoints,
    get_workspace_context,
)

logger = logging.getLogger(__name__)

router = APIRouter()


class CheckpointUpdate(BaseModel):
    """Request body for reviewing a checkpoint."""
    status: Optional[str] = None  # 'open', 'resolved', 'closed'
    notes: Optional[str] = None


class RecalculateRequest(BaseModel):
    """Request body for re-running the cascade by hand."""
    account_id: str
    transaction_date: date


@router.post("", status_code=201)
async def add_checkpoint(
    form: CheckpointForm,
    db: Session = Depends(get_db),
    context: WorkspaceContext = Depends(get_workspace_context),
):
    """
    Record the actual balance of an account on a date.

    The expected balance and gap are computed from the account's transactions.
    """
    if not can_manage_checkpoints(context.role):
        raise HTTPException(status_code=403, detail="Not allowed to create checkpoints")

    try:
        checkpoint = create_checkpoint(db, form, context.workspace_id, context.user_id)
        db.commit()
    except CheckpointValidationError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))
    except SQLAlchemyError:
        db.rollback()
        logger.error("Error creating checkpoint", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to create checkpoint")

    return {
        "success": True,
        "checkpoint": serialize_checkpoint(checkpoint),
    }


@router.get("/timeline")
async def get_timeline(
    account_id: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
    context: WorkspaceContext = Depends(get_workspace_context),
):
    """
    List checkpoints newest first for the timeline view.
    Each entry carries days_since_previous and transaction_count for its period.
    """
    try:
        checkpoints = list_checkpoints_for_timeline(db, context.workspace_id, account_id)
    except SQLAlchemyError:
        db.rollback()
        logger.error("Error fetching checkpoints", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch checkpoints")

    return {
        "checkpoints": checkpoints,
        "count": len(checkpoints),
    }


@router.patch("/{checkpoint_id}")
async def review_checkpoint(
    checkpoint_id: str,
    body: CheckpointUpdate,
    db: Session = Depends(get_db),
    context: WorkspaceContext = Depends(get_workspace_context),
):
    """Change the status or notes of a checkpoint."""
    if body.status is not None and not can_review_checkpoints(context.role):
        raise HTTPException(status_code=403, detail="Not allowed to change checkpoint status")

    try:
        checkpoint = update_checkpoint(
            db,
            checkpoint_id,
            context.workspace_id,
            status=body.status,
            notes=body.notes,
        )
        db.commit()
    except CheckpointNotFoundError:
        db.rollback()
        raise HTTPException(status_code=404, detail="Checkpoint not found")
    except CheckpointValidationError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))
    except SQLAlchemyError:
        db.rollback()
        logger.error(f"Error updating checkpoint {checkpoint_id}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to update checkpoint")

    return {
        "success": True,
        "checkpoint": serialize_checkpoint(checkpoint),
    }


@router.post("/recalculate")
async def recalculate(
    body: RecalculateRequest,
    db: Session = Depends(get_db),
    context: WorkspaceContext = Depends(get_workspace_context),
):
    """
    Re-run the checkpoint cascade for an account from a date.
    Used to retry after a failed recalculation.
    """
    try:
        result = recalculate_affected_checkpoints(
            db, body.transaction_date, body.account_id, context.workspace_id
        )
        db.commit()
    except CheckpointRecalculationError:
        db.rollback()
        logger.error(f"Checkpoint recalculation failed for account {body.account_id}", exc_info=True)
        raise HTTPException(status_code=500, detail="Checkpoint recalculation failed")
    except SQLAlchemyError:
        db.rollback()
        logger.error("Error during checkpoint recalculation", exc_info=True)
        raise HTTPException(status_code=500, detail="Checkpoint recalculation failed")

    return result
