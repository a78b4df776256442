"""
Base model classes and mixins for all database models.
"""

import uuid
from decimal import Decimal

from sqlalchemy import Column, DateTime, String
from sqlalchemy.orm import declared_attr

from app.core.database import Base
from app.core.timezone import now_utc

# Money columns are Numeric(18, 2): fewer than 16 integer digits
MONEY_LIMIT = Decimal("1e16")


def generate_uuid() -> str:
    """New primary key value."""
    return str(uuid.uuid4())


class TimestampMixin:
    """Mixin that adds created_at and updated_at columns."""

    created_at = Column(DateTime(timezone=True), default=now_utc, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=now_utc, onupdate=now_utc, nullable=False)


class BaseModel(Base, TimestampMixin):
    """Base model with common fields for all entities."""

    __abstract__ = True

    id = Column(String(36), primary_key=True, default=generate_uuid)

    @declared_attr
    def __tablename__(cls) -> str:
        """Auto-generate table name from class name."""
        # Convert CamelCase to snake_case
        name = cls.__name__
        return ''.join(['_' + c.lower() if c.isupper() else c for c in name]).lstrip('_')
