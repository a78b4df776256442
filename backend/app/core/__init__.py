"""Core components: settings, database session, token verification."""

from app.core.config import settings, get_settings
from app.core.database import Base, SessionLocal, get_db, engine

__all__ = ["settings", "get_settings", "Base", "SessionLocal", "get_db", "engine"]
