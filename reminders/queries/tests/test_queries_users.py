"""Tests for user and preference queries."""

import pytest
from unittest.mock import AsyncMock, MagicMock
from sqlalchemy.dialects import postgresql


def _result(first=None, rows=None):
    mock_result = MagicMock()
    mock_result.mappings.return_value.first.return_value = first
    mock_result.mappings.return_value.__iter__.return_value = iter(rows or [])
    return mock_result


def _rows(rows):
    mock_result = MagicMock()
    mock_result.__iter__.return_value = iter(rows)
    return mock_result


def _sql(mock_conn, call_index=0) -> str:
    stmt = mock_conn.execute.call_args_list[call_index][0][0]
    return str(stmt.compile(dialect=postgresql.dialect()))


class TestNormalizeEmail:
    def test_strips_and_lowercases(self):
        from reminders.queries.users import normalize_email

        assert normalize_email("  Alice@Example.COM ") == "alice@example.com"


class TestGetOrCreateUser:
    @pytest.mark.asyncio
    async def test_returns_existing_user(self):
        """Should not insert when the email is already known."""
        from reminders.queries.users import get_or_create_user

        mock_conn = AsyncMock()
        mock_conn.execute.return_value = _result(
            first={"user_id": 1, "email": "alice@example.com", "name": "Alice"}
        )

        user = await get_or_create_user(mock_conn, "Alice@example.com")

        assert user["user_id"] == 1
        assert mock_conn.execute.await_count == 1

    @pytest.mark.asyncio
    async def test_creates_missing_user_lowercased(self):
        from reminders.queries.users import get_or_create_user

        mock_conn = AsyncMock()
        mock_conn.execute.side_effect = [
            _result(first=None),
            _result(first={"user_id": 7, "email": "bob@example.com", "name": None}),
        ]

        user = await get_or_create_user(mock_conn, "BOB@example.com")

        assert user["user_id"] == 7
        insert_sql = _sql(mock_conn, 1)
        assert "ON CONFLICT (email) DO NOTHING" in insert_sql
        params = mock_conn.execute.call_args_list[1][0][0].compile(dialect=postgresql.dialect()).params
        assert params["email"] == "bob@example.com"

    @pytest.mark.asyncio
    async def test_lost_insert_race_reads_winner(self):
        from reminders.queries.users import get_or_create_user

        mock_conn = AsyncMock()
        mock_conn.execute.side_effect = [
            _result(first=None),
            _result(first=None),
            _result(first={"user_id": 9, "email": "carol@example.com", "name": None}),
        ]

        user = await get_or_create_user(mock_conn, "carol@example.com")

        assert user["user_id"] == 9

    @pytest.mark.asyncio
    async def test_updates_changed_name(self):
        from reminders.queries.users import get_or_create_user

        mock_conn = AsyncMock()
        mock_conn.execute.side_effect = [
            _result(first={"user_id": 1, "email": "alice@example.com", "name": "Al"}),
            _result(first={"user_id": 1, "email": "alice@example.com", "name": "Alice"}),
        ]

        user = await get_or_create_user(mock_conn, "alice@example.com", name="Alice")

        assert user["name"] == "Alice"
        assert _sql(mock_conn, 1).startswith("UPDATE users")


class TestEnsurePreferences:
    @pytest.mark.asyncio
    async def test_insert_ignores_existing_row(self):
        from reminders.queries.users import ensure_preferences

        mock_conn = AsyncMock()

        await ensure_preferences(mock_conn, 3)

        assert "ON CONFLICT (user_id) DO NOTHING" in _sql(mock_conn)


class TestEventTypeOverrides:
    @pytest.mark.asyncio
    async def test_maps_user_to_enabled(self):
        from reminders.queries.users import get_event_type_overrides

        mock_conn = AsyncMock()
        mock_conn.execute.return_value = _result(
            rows=[{"user_id": 1, "is_enabled": False}, {"user_id": 2, "is_enabled": True}]
        )

        overrides = await get_event_type_overrides(mock_conn, "workshop")

        assert overrides == {1: False, 2: True}

    @pytest.mark.asyncio
    async def test_set_preference_upserts(self):
        from reminders.queries.users import set_event_type_preference

        mock_conn = AsyncMock()

        await set_event_type_preference(mock_conn, 1, "workshop", False)

        assert "ON CONFLICT (user_id, event_type) DO UPDATE" in _sql(mock_conn)


class TestEnableEventTypeForAutoUsers:
    @pytest.mark.asyncio
    async def test_no_auto_users_inserts_nothing(self):
        from reminders.queries.users import enable_event_type_for_auto_users

        mock_conn = AsyncMock()
        mock_conn.execute.return_value = _rows([])

        assert await enable_event_type_for_auto_users(mock_conn, "workshop") == 0
        assert mock_conn.execute.await_count == 1

    @pytest.mark.asyncio
    async def test_creates_rows_for_auto_users(self):
        from reminders.queries.users import enable_event_type_for_auto_users

        mock_conn = AsyncMock()
        select_result = _rows([(1,), (4,)])
        insert_result = MagicMock(rowcount=2)
        mock_conn.execute.side_effect = [select_result, insert_result]

        created = await enable_event_type_for_auto_users(mock_conn, "workshop")

        assert created == 2
        assert "ON CONFLICT (user_id, event_type) DO NOTHING" in _sql(mock_conn, 1)
