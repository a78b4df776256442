"""
Authentication API routes.
"""

from fastapi import APIRouter, Depends
from app.core.auth import TokenUser, get_current_user

router = APIRouter()


@router.get("/verify")
async def verify_token(user: TokenUser = Depends(get_current_user)):
    """
    Verify the current token is valid.
    Returns token info if valid.
    """
    return {
        "valid": True,
        "user": user.user_id,
        "expires": user.expires,
    }


@router.get("/me")
async def get_me(user: TokenUser = Depends(get_current_user)):
    """
    Get current user info.
    """
    return {
        "user_id": user.user_id,
        "workspace_id": user.workspace_id,
        "authenticated": True,
    }
