"""
Account API routes.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.modules.accounts.services import (
    AccountInUseError,
    AccountInput,
    AccountNotFoundError,
    AccountValidationError,
    create_account,
    delete_account,
    list_accounts,
    serialize_account,
    update_account,
)
from app.modules.workspaces.services import (
    WorkspaceContext,
    can_manage_checkpoints,
    get_workspace_context,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _require_write(context: WorkspaceContext) -> None:
    if not can_manage_checkpoints(context.role):
        raise HTTPException(status_code=403, detail="Not allowed to modify accounts")


@router.get("")
async def get_accounts(
    db: Session = Depends(get_db),
    context: WorkspaceContext = Depends(get_workspace_context),
):
    """List the accounts of the active workspace."""
    accounts = list_accounts(db, context.workspace_id)
    return {
        "accounts": [serialize_account(a) for a in accounts],
        "count": len(accounts),
    }


@router.post("", status_code=201)
async def add_account(
    data: AccountInput,
    db: Session = Depends(get_db),
    context: WorkspaceContext = Depends(get_workspace_context),
):
    """Create an account in the active workspace."""
    _require_write(context)

    try:
        account = create_account(db, data, context.workspace_id)
        db.commit()
    except AccountValidationError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))
    except SQLAlchemyError:
        db.rollback()
        logger.error("Error creating account", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to create account")

    return {"success": True, "account": serialize_account(account)}


@router.patch("/{account_id}")
async def edit_account(
    account_id: str,
    data: AccountInput,
    db: Session = Depends(get_db),
    context: WorkspaceContext = Depends(get_workspace_context),
):
    """Rename an account or change its type, currency or default flag."""
    _require_write(context)

    try:
        account = update_account(db, account_id, data, context.workspace_id)
        db.commit()
    except AccountNotFoundError:
        db.rollback()
        raise HTTPException(status_code=404, detail="Account not found")
    except AccountValidationError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))
    except SQLAlchemyError:
        db.rollback()
        logger.error(f"Error updating account {account_id}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to update account")

    return {"success": True, "account": serialize_account(account)}


@router.delete("/{account_id}")
async def remove_account(
    account_id: str,
    db: Session = Depends(get_db),
    context: WorkspaceContext = Depends(get_workspace_context),
):
    """Delete an account that has no transactions or checkpoints."""
    _require_write(context)

    try:
        deleted_id = delete_account(db, account_id, context.workspace_id)
        db.commit()
    except AccountNotFoundError:
        db.rollback()
        raise HTTPException(status_code=404, detail="Account not found")
    except AccountInUseError as e:
        db.rollback()
        raise HTTPException(status_code=409, detail=str(e))
    except SQLAlchemyError:
        db.rollback()
        logger.error(f"Error deleting account {account_id}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to delete account")

    return {"success": True, "id": deleted_id}
