"""
Tests for checkpoint creation, review and the timeline listing.

Run with: pytest tests/test_checkpoints.py -v
"""

import pytest
from datetime import date
from decimal import Decimal
from unittest.mock import patch

from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from app.core.timezone import today_utc
from app.modules.checkpoints import services as checkpoint_services
from app.modules.checkpoints.models import Checkpoint
from app.modules.checkpoints.services import (
    CheckpointForm,
    CheckpointNotFoundError,
    CheckpointValidationError,
    create_checkpoint,
    list_checkpoints_for_timeline,
    serialize_checkpoint,
    update_checkpoint,
)


def _form(ws, **overrides):
    values = {"account_id": ws.account_id, "date": "2024-01-31", "actual_balance": "950"}
    values.update(overrides)
    return CheckpointForm(**values)


class TestCreateCheckpoint:
    """Tests for create_checkpoint."""

    def test_records_gap_against_history(self, db, workspace, january_history):
        checkpoint = create_checkpoint(db, _form(workspace), workspace.workspace_id, workspace.user_id)
        db.commit()

        assert checkpoint.date == date(2024, 1, 31)
        assert checkpoint.actual_balance == Decimal("950")
        assert checkpoint.expected_balance == Decimal("1000")
        assert checkpoint.gap == Decimal("-50")
        assert checkpoint.status == "open"
        assert checkpoint.notes is None
        assert checkpoint.created_by == workspace.user_id

    def test_gap_invariant_holds(self, db, workspace, january_history):
        checkpoint = create_checkpoint(
            db, _form(workspace, actual_balance="1234.56"), workspace.workspace_id, workspace.user_id
        )
        assert checkpoint.gap == checkpoint.actual_balance - checkpoint.expected_balance

    @pytest.mark.parametrize("raw", [None, "", "   ", "abc", "12,50"])
    def test_missing_or_unparsable_balance_defaults_to_zero(self, db, workspace, january_history, raw):
        checkpoint = create_checkpoint(
            db, _form(workspace, actual_balance=raw), workspace.workspace_id, workspace.user_id
        )

        assert checkpoint.actual_balance == Decimal("0")
        assert checkpoint.gap == Decimal("-1000")

    @pytest.mark.parametrize("raw", ["NaN", "Infinity", "-Infinity", "1e30", "1e17", "-1e16", "10000000000000000"])
    def test_non_finite_or_oversized_balance_rejected(self, db, workspace, raw):
        with pytest.raises(CheckpointValidationError):
            create_checkpoint(db, _form(workspace, actual_balance=raw), workspace.workspace_id, workspace.user_id)

        assert db.query(Checkpoint).count() == 0

    def test_missing_date_defaults_to_today(self, db, workspace):
        checkpoint = create_checkpoint(db, _form(workspace, date=None), workspace.workspace_id, workspace.user_id)
        assert checkpoint.date == today_utc()

    def test_datetime_input_uses_date_part(self, db, workspace):
        checkpoint = create_checkpoint(
            db, _form(workspace, date="2024-01-31T10:30:00Z"), workspace.workspace_id, workspace.user_id
        )
        assert checkpoint.date == date(2024, 1, 31)

    @pytest.mark.parametrize("raw", ["not-a-date", "2024-13-01", "31/01/2024"])
    def test_invalid_date_rejected(self, db, workspace, raw):
        with pytest.raises(CheckpointValidationError):
            create_checkpoint(db, _form(workspace, date=raw), workspace.workspace_id, workspace.user_id)

    def test_account_required(self, db, workspace):
        with pytest.raises(CheckpointValidationError, match="Account is required"):
            create_checkpoint(db, _form(workspace, account_id=None), workspace.workspace_id, workspace.user_id)

    def test_account_from_other_workspace_rejected(self, db, workspace):
        with pytest.raises(CheckpointValidationError, match="Account not found"):
            create_checkpoint(db, _form(workspace), "another-workspace", workspace.user_id)

    def test_gap_beyond_column_size_rejected(self, db, workspace, add_transaction):
        add_transaction("2000000000000000", date(2024, 1, 5), type="expense")

        with pytest.raises(CheckpointValidationError, match="out of range"):
            create_checkpoint(
                db, _form(workspace, actual_balance="9000000000000000"), workspace.workspace_id, workspace.user_id
            )

    def test_empty_history_expected_zero(self, db, workspace):
        checkpoint = create_checkpoint(db, _form(workspace, actual_balance="20"), workspace.workspace_id, workspace.user_id)
        assert checkpoint.expected_balance == Decimal("0")
        assert checkpoint.gap == Decimal("20")


class TestUpdateCheckpoint:
    """Tests for update_checkpoint."""

    @pytest.fixture
    def checkpoint(self, db, workspace, january_history):
        checkpoint = create_checkpoint(db, _form(workspace), workspace.workspace_id, workspace.user_id)
        db.commit()
        return checkpoint

    @pytest.mark.parametrize("status", ["resolved", "closed", "open"])
    def test_status_change(self, db, workspace, checkpoint, status):
        updated = update_checkpoint(db, checkpoint.id, workspace.workspace_id, status=status)
        assert updated.status == status

    def test_notes_change_keeps_balances(self, db, workspace, checkpoint):
        updated = update_checkpoint(db, checkpoint.id, workspace.workspace_id, notes="Cash withdrawal not logged")

        assert updated.notes == "Cash withdrawal not logged"
        assert updated.status == "open"
        assert updated.gap == Decimal("-50")

    def test_unknown_status_rejected(self, db, workspace, checkpoint):
        with pytest.raises(CheckpointValidationError):
            update_checkpoint(db, checkpoint.id, workspace.workspace_id, status="archived")

    def test_missing_checkpoint(self, db, workspace):
        with pytest.raises(CheckpointNotFoundError):
            update_checkpoint(db, "missing", workspace.workspace_id, status="resolved")

    def test_other_workspace_cannot_see_checkpoint(self, db, workspace, checkpoint):
        with pytest.raises(CheckpointNotFoundError):
            update_checkpoint(db, checkpoint.id, "another-workspace", notes="x")


class TestSerializeCheckpoint:
    """Tests for serialize_checkpoint."""

    def test_money_as_floats_and_iso_date(self, db, workspace, january_history):
        checkpoint = create_checkpoint(db, _form(workspace), workspace.workspace_id, workspace.user_id)
        db.commit()

        data = serialize_checkpoint(checkpoint)

        assert data["date"] == "2024-01-31"
        assert data["actual_balance"] == 950.0
        assert data["expected_balance"] == 1000.0
        assert data["gap"] == -50.0
        assert data["status"] == "open"
        assert data["created_at"].endswith("Z")


class TestTimeline:
    """Tests for list_checkpoints_for_timeline."""

    @pytest.fixture
    def history(self, db, workspace, add_transaction):
        for day in (date(2024, 1, 1), date(2024, 1, 5), date(2024, 1, 10),
                    date(2024, 1, 15), date(2024, 1, 31), date(2024, 2, 1)):
            add_transaction("10", day)
        add_transaction("10", date(2024, 1, 12), deleted=True)

        for account_id, on in (
            (workspace.account_id, "2024-01-10"),
            (workspace.account_id, "2024-01-31"),
            (workspace.account_id, "2024-02-15"),
            (workspace.other_account_id, "2024-01-20"),
        ):
            create_checkpoint(
                db, _form(workspace, account_id=account_id, date=on), workspace.workspace_id, workspace.user_id
            )
        db.commit()

    def test_newest_first(self, db, workspace, history):
        timeline = list_checkpoints_for_timeline(db, workspace.workspace_id)
        assert [c["date"] for c in timeline] == ["2024-02-15", "2024-01-31", "2024-01-20", "2024-01-10"]

    def test_days_since_previous_per_account(self, db, workspace, history):
        timeline = list_checkpoints_for_timeline(db, workspace.workspace_id)
        days = {c["date"]: c["days_since_previous"] for c in timeline}

        assert days == {
            "2024-02-15": 15,  # since 2024-01-31 on the same account
            "2024-01-31": 21,  # since 2024-01-10
            "2024-01-20": 19,  # other account: since the first of the month
            "2024-01-10": 9,   # first checkpoint: since the first of the month
        }

    def test_transaction_count_per_period(self, db, workspace, history):
        timeline = list_checkpoints_for_timeline(db, workspace.workspace_id, workspace.account_id)
        counts = {c["date"]: c["transaction_count"] for c in timeline}

        # Periods exclude their start date and include their end date
        assert counts == {
            "2024-02-15": 1,
            "2024-01-31": 2,
            "2024-01-10": 2,
        }

    def test_account_filter(self, db, workspace, history):
        timeline = list_checkpoints_for_timeline(db, workspace.workspace_id, workspace.other_account_id)

        assert len(timeline) == 1
        assert timeline[0]["account_id"] == workspace.other_account_id
        assert timeline[0]["transaction_count"] == 0

    def test_empty_workspace(self, db, workspace):
        assert list_checkpoints_for_timeline(db, workspace.workspace_id) == []

    def test_count_failure_degrades_to_zero(self, db, workspace, history):
        failure = OperationalError("SELECT count", {}, Exception("timeout"))
        with patch(
            "app.modules.checkpoints.services.count_period_transactions",
            side_effect=[failure, 5, 7, 9],
        ):
            timeline = list_checkpoints_for_timeline(db, workspace.workspace_id)

        assert [c["transaction_count"] for c in timeline] == [0, 5, 7, 9]
        assert all("days_since_previous" in c for c in timeline)

    def test_failed_count_statement_leaves_session_usable(self, db, workspace, history):
        real_count = checkpoint_services.count_period_transactions
        calls = {"n": 0}

        def _count(session, *args):
            calls["n"] += 1
            if calls["n"] == 1:
                session.execute(text("SELECT count(*) FROM no_such_table"))
            return real_count(session, *args)

        with patch("app.modules.checkpoints.services.count_period_transactions", side_effect=_count):
            timeline = list_checkpoints_for_timeline(db, workspace.workspace_id)

        # Only the failing entry degrades; later counts still hit the database
        assert [c["transaction_count"] for c in timeline] == [0, 2, 0, 2]
        assert db.query(Checkpoint).count() == 4
