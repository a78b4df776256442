"""
Workspace API routes.

Creating and listing workspaces needs only a valid token. Member
management acts on the active workspace and is reserved for its owner.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.auth import TokenUser, get_current_user
from app.core.database import get_db
from app.modules.workspaces.services import (
    WorkspaceAccessError,
    WorkspaceContext,
    WorkspaceMemberError,
    WorkspaceNotFoundError,
    add_workspace_member,
    create_workspace,
    get_workspace_context,
    is_workspace_owner,
    list_members,
    list_user_workspaces,
    remove_workspace_member,
    serialize_member,
    serialize_workspace,
    transfer_ownership,
)

logger = logging.getLogger(__name__)

router = APIRouter()


class WorkspaceCreate(BaseModel):
    """Request body for a new workspace."""
    name: Optional[str] = None
    currency: Optional[str] = None


class MemberAdd(BaseModel):
    """Request body for adding a member or changing a member's role."""
    user_id: str
    role: str = 'member'  # 'admin' or 'member'


class OwnershipTransfer(BaseModel):
    """Request body for handing the workspace to another member."""
    new_owner_id: str


def _require_owner(context: WorkspaceContext, action: str) -> None:
    if not is_workspace_owner(context.role):
        raise HTTPException(status_code=403, detail=f"Only workspace owners can {action}")


@router.post("", status_code=201)
async def add_workspace(
    body: WorkspaceCreate,
    db: Session = Depends(get_db),
    user: TokenUser = Depends(get_current_user),
):
    """Create a workspace owned by the caller."""
    try:
        workspace = create_workspace(db, body.name, user.user_id, currency=body.currency)
        db.commit()
    except WorkspaceMemberError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))
    except SQLAlchemyError:
        db.rollback()
        logger.error("Error creating workspace", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to create workspace")

    return {"success": True, "workspace": serialize_workspace(workspace, role='owner')}


@router.get("")
async def get_workspaces(
    db: Session = Depends(get_db),
    user: TokenUser = Depends(get_current_user),
):
    """Workspaces the caller belongs to."""
    workspaces = list_user_workspaces(db, user.user_id)
    return {
        "workspaces": [serialize_workspace(w, role=role) for w, role in workspaces],
        "count": len(workspaces),
    }


@router.get("/members")
async def get_members(
    db: Session = Depends(get_db),
    context: WorkspaceContext = Depends(get_workspace_context),
):
    """Members of the active workspace."""
    members = list_members(db, context.workspace_id)
    return {
        "members": [serialize_member(m) for m in members],
        "count": len(members),
    }


@router.post("/members", status_code=201)
async def add_member(
    body: MemberAdd,
    db: Session = Depends(get_db),
    context: WorkspaceContext = Depends(get_workspace_context),
):
    """Add a user to the active workspace, or change their role."""
    _require_owner(context, "manage members")

    try:
        member = add_workspace_member(db, context.workspace_id, body.user_id, body.role)
        db.commit()
    except WorkspaceMemberError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))
    except SQLAlchemyError:
        db.rollback()
        logger.error(f"Error adding member {body.user_id}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to add member")

    return {"success": True, "member": serialize_member(member)}


@router.delete("/members/{user_id}")
async def remove_member(
    user_id: str,
    db: Session = Depends(get_db),
    context: WorkspaceContext = Depends(get_workspace_context),
):
    """Remove a member from the active workspace."""
    _require_owner(context, "remove members")

    try:
        remove_workspace_member(db, context.workspace_id, user_id)
        db.commit()
    except WorkspaceNotFoundError:
        db.rollback()
        raise HTTPException(status_code=404, detail="Member not found")
    except WorkspaceMemberError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))
    except SQLAlchemyError:
        db.rollback()
        logger.error(f"Error removing member {user_id}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to remove member")

    return {"success": True, "user_id": user_id}


@router.post("/transfer-ownership")
async def hand_over_workspace(
    body: OwnershipTransfer,
    db: Session = Depends(get_db),
    context: WorkspaceContext = Depends(get_workspace_context),
):
    """Make another member the owner; the caller becomes a member."""
    _require_owner(context, "transfer ownership")

    try:
        workspace = transfer_ownership(db, context.workspace_id, context.user_id, body.new_owner_id)
        db.commit()
    except WorkspaceAccessError as e:
        db.rollback()
        raise HTTPException(status_code=403, detail=str(e))
    except WorkspaceNotFoundError:
        db.rollback()
        raise HTTPException(status_code=404, detail="Workspace not found")
    except WorkspaceMemberError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))
    except SQLAlchemyError:
        db.rollback()
        logger.error("Error transferring workspace ownership", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to transfer ownership")

    return {"success": True, "workspace": serialize_workspace(workspace, role='member')}
