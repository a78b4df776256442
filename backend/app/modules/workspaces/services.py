"""
Workspace membership, role checks and member management.

Every checkpoint and transaction operation receives an explicit
workspace id; this module decides whether the caller may use it.
"""

import logging
from dataclasses import dataclass
from typing import Optional, List, Dict, Any, Tuple

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from app.core.auth import TokenUser, get_current_user
from app.core.config import settings
from app.core.database import get_db
from app.core.timezone import format_datetime_for_api
from app.modules.workspaces.models import Workspace, WorkspaceMember

logger = logging.getLogger(__name__)


ROLE_PERMISSIONS = {
    'owner': {'write', 'review'},
    'admin': {'write', 'review'},
    'member': {'write'},
}


class WorkspaceAccessError(Exception):
    """Raised when a user is not a member of the requested workspace."""


class WorkspaceMemberError(ValueError):
    """Membership change is not allowed or malformed."""


class WorkspaceNotFoundError(LookupError):
    """Workspace or member does not exist."""


@dataclass
class WorkspaceContext:
    """Caller identity resolved for a single request."""
    user_id: str
    workspace_id: str
    role: str


def verify_workspace_membership(db: Session, user_id: str, workspace_id: str) -> WorkspaceMember:
    """Return the membership row or raise WorkspaceAccessError."""
    membership = db.query(WorkspaceMember).filter(
        WorkspaceMember.user_id == user_id,
        WorkspaceMember.workspace_id == workspace_id,
    ).first()

    if membership is None:
        raise WorkspaceAccessError("User is not a member of this workspace")
    return membership


def can_manage_checkpoints(role: str) -> bool:
    """Whether the role may create checkpoints and transactions."""
    return 'write' in ROLE_PERMISSIONS.get(role, set())


def can_review_checkpoints(role: str) -> bool:
    """Whether the role may resolve or close checkpoints."""
    return 'review' in ROLE_PERMISSIONS.get(role, set())


def is_workspace_owner(role: str) -> bool:
    """Only the owner manages members and ownership."""
    return role == 'owner'


# =============================================================================
# Workspace management
# =============================================================================

def _clean_workspace_name(name: Optional[str]) -> str:
    cleaned = (name or '').strip()
    if not cleaned:
        raise WorkspaceMemberError("Workspace name is required")
    if len(cleaned) > 200:
        raise WorkspaceMemberError("Workspace name must be at most 200 characters")
    return cleaned


def create_workspace(db: Session, name: Optional[str], user_id: str, currency: Optional[str] = None) -> Workspace:
    """Create a workspace owned by user_id, with the owner's membership row."""
    code = (currency or settings.DEFAULT_CURRENCY).strip().upper()
    if len(code) != 3 or not code.isalpha():
        raise WorkspaceMemberError("Currency must be a 3-letter code")

    workspace = Workspace(name=_clean_workspace_name(name), currency=code, owner_id=user_id)
    db.add(workspace)
    db.flush()

    db.add(WorkspaceMember(workspace_id=workspace.id, user_id=user_id, role='owner'))
    db.flush()

    logger.info(f"Workspace {workspace.id} created by {user_id}")
    return workspace


def list_user_workspaces(db: Session, user_id: str) -> List[Tuple[Workspace, str]]:
    """Workspaces the user belongs to, with the user's role in each."""
    rows = db.query(Workspace, WorkspaceMember.role).join(
        WorkspaceMember, WorkspaceMember.workspace_id == Workspace.id,
    ).filter(
        WorkspaceMember.user_id == user_id,
    ).order_by(Workspace.created_at.asc()).all()
    return [(workspace, role) for workspace, role in rows]


def list_members(db: Session, workspace_id: str) -> List[WorkspaceMember]:
    return db.query(WorkspaceMember).filter(
        WorkspaceMember.workspace_id == workspace_id,
    ).order_by(WorkspaceMember.created_at.asc()).all()


def add_workspace_member(db: Session, workspace_id: str, user_id: str, role: str = 'member') -> WorkspaceMember:
    """
    Add a user to a workspace, or change the role of an existing member.

    The owner role is only ever assigned by transfer_ownership.
    """
    if role not in ROLE_PERMISSIONS:
        raise WorkspaceMemberError(f"Unknown role: {role}")
    if role == 'owner':
        raise WorkspaceMemberError("Ownership can only be transferred")

    existing = db.query(WorkspaceMember).filter(
        WorkspaceMember.workspace_id == workspace_id,
        WorkspaceMember.user_id == user_id,
    ).first()

    if existing:
        if existing.role == 'owner':
            raise WorkspaceMemberError("Cannot change the owner's role; transfer ownership instead")
        existing.role = role
        db.flush()
        return existing

    member = WorkspaceMember(workspace_id=workspace_id, user_id=user_id, role=role)
    db.add(member)
    db.flush()

    logger.info(f"User {user_id} added to workspace {workspace_id} as {role}")
    return member


def remove_workspace_member(db: Session, workspace_id: str, user_id: str) -> None:
    """Remove a member. The owner cannot be removed."""
    member = db.query(WorkspaceMember).filter(
        WorkspaceMember.workspace_id == workspace_id,
        WorkspaceMember.user_id == user_id,
    ).first()

    if member is None:
        raise WorkspaceNotFoundError("Member not found")
    if member.role == 'owner':
        raise WorkspaceMemberError("Cannot remove workspace owner")

    db.delete(member)
    db.flush()
    logger.info(f"User {user_id} removed from workspace {workspace_id}")


def transfer_ownership(db: Session, workspace_id: str, current_owner_id: str, new_owner_id: str) -> Workspace:
    """
    Hand the workspace to another member.

    The new owner must already be a member; the previous owner stays on as
    a plain member.
    """
    workspace = db.query(Workspace).filter(Workspace.id == workspace_id).first()
    if workspace is None:
        raise WorkspaceNotFoundError("Workspace not found")

    current = verify_workspace_membership(db, current_owner_id, workspace_id)
    if current.role != 'owner':
        raise WorkspaceAccessError("Only workspace owners can transfer ownership")

    if new_owner_id == current_owner_id:
        raise WorkspaceMemberError("User already owns this workspace")

    try:
        new_owner = verify_workspace_membership(db, new_owner_id, workspace_id)
    except WorkspaceAccessError:
        raise WorkspaceMemberError("New owner must be a member of the workspace")

    workspace.owner_id = new_owner_id
    new_owner.role = 'owner'
    current.role = 'member'
    db.flush()

    logger.info(f"Workspace {workspace_id} ownership transferred from {current_owner_id} to {new_owner_id}")
    return workspace


def serialize_workspace(workspace: Workspace, role: Optional[str] = None) -> Dict[str, Any]:
    data = {
        'id': workspace.id,
        'name': workspace.name,
        'currency': workspace.currency,
        'owner_id': workspace.owner_id,
        'created_at': format_datetime_for_api(workspace.created_at),
    }
    if role is not None:
        data['role'] = role
    return data


def serialize_member(member: WorkspaceMember) -> Dict[str, Any]:
    return {
        'user_id': member.user_id,
        'role': member.role,
        'joined_at': format_datetime_for_api(member.created_at),
    }


def get_workspace_context(
    user: TokenUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    x_workspace_id: Optional[str] = Header(default=None),
) -> WorkspaceContext:
    """
    Dependency resolving the active workspace for the request.

    The X-Workspace-Id header wins over the token's workspace_id claim.
    """
    workspace_id = x_workspace_id or user.workspace_id
    if not workspace_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No active workspace")

    try:
        membership = verify_workspace_membership(db, user.user_id, workspace_id)
    except WorkspaceAccessError:
        logger.warning(f"User {user.user_id} denied access to workspace {workspace_id}")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied to workspace")

    return WorkspaceContext(user_id=user.user_id, workspace_id=workspace_id, role=membership.role)
