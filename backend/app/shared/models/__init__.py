"""Shared database models."""

from app.shared.models.base import BaseModel, TimestampMixin, generate_uuid, MONEY_LIMIT

__all__ = [
    "BaseModel",
    "TimestampMixin",
    "generate_uuid",
    "MONEY_LIMIT",
]
