"""Tests for the reminder ledger's SQL (mocked connection)."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.dialects import postgresql

from reminders.enums import BROADCAST_RECIPIENT, Channel, ReminderStatus, SkipReason
from reminders.notifications.ledger import ClaimResult, LedgerEntry, ReminderKey

FIRE_AT = datetime(2030, 1, 1, 12, 0, tzinfo=timezone.utc)
KEY = ReminderKey("evt1", "7", Channel.email, 60)


def _sql(stmt) -> str:
    return str(stmt.compile(dialect=postgresql.dialect()))


def _mock_transaction(mock_get_tx, first=None, rowcount=1):
    mock_conn = AsyncMock()
    mock_result = MagicMock()
    mock_result.first.return_value = first
    mock_result.rowcount = rowcount
    mock_conn.execute = AsyncMock(return_value=mock_result)
    mock_get_tx.return_value.__aenter__.return_value = mock_conn
    return mock_conn


class TestReminderKey:
    def test_for_user_stores_user_id_as_text(self):
        key = ReminderKey.for_user("evt1", 7, Channel.email, 60)

        assert key == KEY
        assert key.recipient == "7"

    def test_broadcast_uses_sentinel_recipient(self):
        key = ReminderKey.broadcast("evt1", 10)

        assert key.recipient == BROADCAST_RECIPIENT
        assert key.channel == Channel.social

    def test_keys_differing_only_in_lead_are_distinct(self):
        assert ReminderKey("e", "1", Channel.email, 60) != ReminderKey("e", "1", Channel.email, 10)


class TestLedgerEntry:
    def test_pending_unclaimed_is_unresolved(self):
        assert not LedgerEntry(ReminderStatus.pending, claimed=False).is_resolved

    def test_pending_claimed_is_resolved(self):
        assert LedgerEntry(ReminderStatus.pending, claimed=True).is_resolved

    def test_terminal_is_resolved(self):
        assert LedgerEntry(ReminderStatus.sent, claimed=True).is_resolved
        assert LedgerEntry(ReminderStatus.skipped, claimed=False).is_resolved


class TestTryClaim:
    @pytest.mark.asyncio
    async def test_returned_row_means_claimed(self):
        from reminders.notifications.ledger import try_claim

        with patch("reminders.notifications.ledger.get_transaction") as mock_get_tx:
            _mock_transaction(mock_get_tx, first=("evt1",))

            assert await try_claim(KEY, FIRE_AT) == ClaimResult.claimed

    @pytest.mark.asyncio
    async def test_no_row_means_already_claimed(self):
        from reminders.notifications.ledger import try_claim

        with patch("reminders.notifications.ledger.get_transaction") as mock_get_tx:
            _mock_transaction(mock_get_tx, first=None)

            assert await try_claim(KEY, FIRE_AT) == ClaimResult.already_claimed

    @pytest.mark.asyncio
    async def test_claim_is_a_single_conditional_upsert(self):
        """The claim must only take pending, unclaimed rows, in one statement."""
        from reminders.notifications.ledger import try_claim

        with patch("reminders.notifications.ledger.get_transaction") as mock_get_tx:
            mock_conn = _mock_transaction(mock_get_tx, first=("evt1",))
            await try_claim(KEY, FIRE_AT)

        assert mock_conn.execute.call_count == 1
        sql = _sql(mock_conn.execute.call_args[0][0])
        assert "ON CONFLICT (event_id, recipient, channel, lead_minutes) DO UPDATE" in sql
        assert "reminder_records.claimed_at IS NULL" in sql
        assert "reminder_records.status =" in sql
        assert "RETURNING" in sql


class TestMarkSkipped:
    @pytest.mark.asyncio
    async def test_only_unclaimed_adds_claim_condition(self):
        from reminders.notifications.ledger import mark_skipped

        with patch("reminders.notifications.ledger.get_transaction") as mock_get_tx:
            mock_conn = _mock_transaction(mock_get_tx, first=("evt1",))
            result = await mark_skipped(
                KEY, SkipReason.window_missed, FIRE_AT, only_unclaimed=True
            )

        assert result is True
        sql = _sql(mock_conn.execute.call_args[0][0])
        assert "claimed_at IS NULL" in sql

    @pytest.mark.asyncio
    async def test_owner_may_skip_its_own_claimed_row(self):
        from reminders.notifications.ledger import mark_skipped

        with patch("reminders.notifications.ledger.get_transaction") as mock_get_tx:
            mock_conn = _mock_transaction(mock_get_tx, first=("evt1",))
            await mark_skipped(KEY, SkipReason.timeout, FIRE_AT)

        sql = _sql(mock_conn.execute.call_args[0][0])
        assert "claimed_at IS NULL" not in sql

    @pytest.mark.asyncio
    async def test_terminal_row_is_left_alone(self):
        from reminders.notifications.ledger import mark_skipped

        with patch("reminders.notifications.ledger.get_transaction") as mock_get_tx:
            _mock_transaction(mock_get_tx, first=None)

            assert await mark_skipped(KEY, SkipReason.timeout, FIRE_AT) is False


class TestMarkSent:
    @pytest.mark.asyncio
    async def test_warns_when_row_not_pending(self, caplog):
        import logging

        from reminders.notifications.ledger import mark_sent

        with caplog.at_level(logging.WARNING):
            with patch("reminders.notifications.ledger.get_transaction") as mock_get_tx:
                _mock_transaction(mock_get_tx, rowcount=0)
                result = await mark_sent(KEY)

        assert result is False
        assert any("not pending" in r.message for r in caplog.records)


class TestRecordPending:
    @pytest.mark.asyncio
    async def test_empty_keys_do_not_touch_database(self):
        from reminders.notifications.ledger import record_pending

        with patch("reminders.notifications.ledger.get_transaction") as mock_get_tx:
            assert await record_pending([], FIRE_AT) == 0

        mock_get_tx.assert_not_called()

    @pytest.mark.asyncio
    async def test_existing_rows_are_not_overwritten(self):
        from reminders.notifications.ledger import record_pending

        with patch("reminders.notifications.ledger.get_transaction") as mock_get_tx:
            mock_conn = _mock_transaction(mock_get_tx, rowcount=1)
            await record_pending([KEY], FIRE_AT)

        sql = _sql(mock_conn.execute.call_args[0][0])
        assert "ON CONFLICT (event_id, recipient, channel, lead_minutes) DO NOTHING" in sql


class TestSkipPendingForEvent:
    @pytest.mark.asyncio
    async def test_keep_leaves_listed_keys_pending(self):
        from reminders.notifications.ledger import skip_pending_for_event

        kept = ReminderKey("evt1", "1", Channel.email, 60)
        dropped = ReminderKey("evt1", "2", Channel.email, 60)

        pending_result = MagicMock()
        pending_result.mappings.return_value.all.return_value = [
            {"event_id": k.event_id, "recipient": k.recipient, "channel": k.channel.value, "lead_minutes": k.lead_minutes}
            for k in (kept, dropped)
        ]
        update_result = MagicMock(rowcount=1)

        with patch("reminders.notifications.ledger.get_transaction") as mock_get_tx:
            mock_conn = AsyncMock()
            mock_conn.execute = AsyncMock(side_effect=[pending_result, update_result])
            mock_get_tx.return_value.__aenter__.return_value = mock_conn

            skipped = await skip_pending_for_event(
                "evt1", SkipReason.preference_changed, lead_minutes=60, keep=[kept]
            )

        assert skipped == 1
        # One select plus one update for the dropped key only
        assert mock_conn.execute.call_count == 2
        update_sql = _sql(mock_conn.execute.call_args_list[1][0][0])
        assert update_sql.startswith("UPDATE reminder_records")


class TestSkipOverduePending:
    @pytest.mark.asyncio
    async def test_fire_time_follows_current_event_start(self):
        from reminders.notifications.ledger import skip_overdue_pending

        with patch("reminders.notifications.ledger.get_transaction") as mock_get_tx:
            mock_conn = _mock_transaction(mock_get_tx, rowcount=3)
            skipped = await skip_overdue_pending(FIRE_AT)

        assert skipped == 3
        stmt = mock_conn.execute.call_args[0][0]
        compiled = stmt.compile(dialect=postgresql.dialect())
        sql = str(compiled)
        assert sql.startswith("UPDATE reminder_records")
        assert "reminder_records.claimed_at IS NULL" in sql
        assert "FROM events" in sql
        assert "reminder_records.event_id = events.event_id" in sql
        assert "events.start_time - make_interval(" in sql
        assert compiled.params["skip_reason"] == SkipReason.window_missed.value
        assert FIRE_AT in compiled.params.values()


class TestModuleSource:
    def test_compiles_without_warnings(self):
        """Docstrings must not carry invalid escape sequences."""
        import warnings
        from pathlib import Path

        from reminders.notifications import ledger

        source = Path(ledger.__file__).read_text()
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            compile(source, ledger.__file__, "exec")
