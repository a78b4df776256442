"""
Shared fixtures: an in-memory SQLite database with savepoint support,
a seeded workspace, and an authenticated API client.
"""

import os
import sys
from datetime import date
from decimal import Decimal
from pathlib import Path
from types import SimpleNamespace

# Must be set before app.core.config builds its settings
os.environ.setdefault("DATABASE_URL", "sqlite://")

sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.auth import create_access_token
from app.core.database import Base, get_db
from app.core.timezone import now_utc
from app.modules.workspaces.models import Workspace, WorkspaceMember
from app.modules.accounts.models import Account
from app.modules.transactions.models import Transaction
from app.modules.checkpoints.models import Checkpoint  # noqa: F401  (registers the table)


OWNER_ID = "user-owner"
MEMBER_ID = "user-member"
OUTSIDER_ID = "user-outsider"


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite does not emit BEGIN itself, which breaks SAVEPOINT
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


def seed_workspace(session):
    """Workspace with an owner, a plain member and two accounts."""
    workspace = Workspace(name="Family", currency="UAH", owner_id=OWNER_ID)
    session.add(workspace)
    session.flush()

    session.add_all([
        WorkspaceMember(workspace_id=workspace.id, user_id=OWNER_ID, role="owner"),
        WorkspaceMember(workspace_id=workspace.id, user_id=MEMBER_ID, role="member"),
    ])

    card = Account(workspace_id=workspace.id, name="Card", type="checking", is_default=True)
    cash = Account(workspace_id=workspace.id, name="Cash", type="checking")
    session.add_all([card, cash])
    session.commit()

    return SimpleNamespace(
        workspace_id=workspace.id,
        account_id=card.id,
        other_account_id=cash.id,
        user_id=OWNER_ID,
    )


def record_transaction(session, ws, amount, on, type="income", account_id=None, deleted=False):
    """Insert a transaction row directly, bypassing the write services."""
    transaction = Transaction(
        workspace_id=ws.workspace_id,
        account_id=account_id or ws.account_id,
        amount=Decimal(str(amount)),
        type=type,
        transaction_date=on,
        created_by=ws.user_id,
        updated_by=ws.user_id,
        deleted_at=now_utc() if deleted else None,
    )
    session.add(transaction)
    session.commit()
    return transaction


@pytest.fixture
def workspace(db):
    return seed_workspace(db)


@pytest.fixture
def add_transaction(db, workspace):
    """Factory: add_transaction(amount, date, type='income', ...)."""
    def _add(amount, on, type="income", account_id=None, deleted=False):
        return record_transaction(db, workspace, amount, on, type=type, account_id=account_id, deleted=deleted)
    return _add


@pytest.fixture
def january_history(add_transaction):
    """Live transactions summing to 1000 by 2024-01-31, plus rows that must not count."""
    add_transaction("600", date(2024, 1, 5))
    add_transaction("500", date(2024, 1, 20))
    add_transaction("100", date(2024, 1, 25), type="expense")
    add_transaction("999", date(2024, 1, 10), deleted=True)
    add_transaction("300", date(2024, 2, 5))


# =============================================================================
# API fixtures
# =============================================================================

@pytest.fixture
def api_workspace(session_factory):
    """Seeded with a short-lived session so API requests own the connection."""
    session = session_factory()
    try:
        ws = seed_workspace(session)
        record_transaction(session, ws, "600", date(2024, 1, 5))
        record_transaction(session, ws, "500", date(2024, 1, 20))
        record_transaction(session, ws, "100", date(2024, 1, 25), type="expense")
    finally:
        session.close()
    return ws


@pytest.fixture
def client(session_factory):
    from fastapi.testclient import TestClient
    from app.main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def auth_headers(user_id, workspace_id=None):
    token = create_access_token(user_id, workspace_id=workspace_id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def owner_headers(api_workspace):
    return auth_headers(OWNER_ID, api_workspace.workspace_id)


@pytest.fixture
def member_headers(api_workspace):
    return auth_headers(MEMBER_ID, api_workspace.workspace_id)


@pytest.fixture
def outsider_headers(api_workspace):
    return auth_headers(OUTSIDER_ID, api_workspace.workspace_id)


@pytest.fixture
def headers_for():
    return auth_headers
