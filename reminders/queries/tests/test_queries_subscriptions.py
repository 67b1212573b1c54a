"""Tests for push subscription queries."""

from datetime import datetime, timezone

import pytest
from unittest.mock import AsyncMock, MagicMock
from sqlalchemy.dialects import postgresql

NOW = datetime(2030, 5, 1, 12, 0, tzinfo=timezone.utc)


def _sql(mock_conn) -> str:
    stmt = mock_conn.execute.call_args[0][0]
    return str(stmt.compile(dialect=postgresql.dialect()))


class TestRegisterPushSubscription:
    @pytest.mark.asyncio
    async def test_upserts_by_endpoint(self):
        """Re-registering an endpoint moves it rather than duplicating it."""
        from reminders.queries.push_subscriptions import register_push_subscription

        mock_conn = AsyncMock()
        mock_result = MagicMock()
        mock_result.mappings.return_value.first.return_value = {
            "subscription_id": 5,
            "user_id": 2,
            "endpoint": "https://push.example.com/a",
        }
        mock_conn.execute.return_value = mock_result

        row = await register_push_subscription(
            mock_conn, 2, "https://push.example.com/a", {"p256dh": "k", "auth": "a"}
        )

        assert row["subscription_id"] == 5
        sql = _sql(mock_conn)
        assert "ON CONFLICT (endpoint) DO UPDATE" in sql
        assert "RETURNING" in sql


class TestActiveSubscriptions:
    @pytest.mark.asyncio
    async def test_expired_subscriptions_filtered(self):
        from reminders.queries.push_subscriptions import get_active_subscriptions

        mock_conn = AsyncMock()
        mock_result = MagicMock()
        mock_result.mappings.return_value = [{"subscription_id": 1, "user_id": 2}]
        mock_conn.execute.return_value = mock_result

        rows = await get_active_subscriptions(mock_conn, 2, NOW)

        assert rows == [{"subscription_id": 1, "user_id": 2}]
        sql = _sql(mock_conn)
        assert "push_subscriptions.expires_at IS NULL" in sql
        assert "push_subscriptions.expires_at >" in sql

    @pytest.mark.asyncio
    async def test_user_ids_with_subscriptions(self):
        from reminders.queries.push_subscriptions import (
            get_user_ids_with_active_subscriptions,
        )

        mock_conn = AsyncMock()
        mock_result = MagicMock()
        mock_result.__iter__.return_value = iter([(1,), (3,)])
        mock_conn.execute.return_value = mock_result

        assert await get_user_ids_with_active_subscriptions(mock_conn, NOW) == {1, 3}


class TestDeleteSubscription:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("rowcount,expected", [(1, True), (0, False)])
    async def test_reports_whether_row_removed(self, rowcount, expected):
        from reminders.queries.push_subscriptions import delete_subscription

        mock_conn = AsyncMock()
        mock_conn.execute.return_value = MagicMock(rowcount=rowcount)

        assert await delete_subscription(mock_conn, "https://push.example.com/a") is expected
