"""Tests for database URL handling."""

from unittest.mock import patch

import pytest


@pytest.mark.parametrize(
    "raw",
    [
        "postgresql://u:p@db:5432/reminders",
        "postgres://u:p@db:5432/reminders",
        "postgresql+asyncpg://u:p@db:5432/reminders",
    ],
)
def test_async_and_sync_urls_from_any_scheme(raw):
    from reminders.database import get_async_database_url, get_sync_database_url

    with patch.dict("os.environ", {"DATABASE_URL": raw}):
        assert get_async_database_url() == "postgresql+asyncpg://u:p@db:5432/reminders"
        assert get_sync_database_url() == "postgresql://u:p@db:5432/reminders"


def test_missing_url_raises():
    from reminders.database import get_async_database_url

    with patch.dict("os.environ", {}, clear=True):
        with pytest.raises(ValueError):
            get_async_database_url()


def test_job_store_url_gets_connect_timeout():
    from reminders.notifications.scheduler import _get_database_url

    with patch.dict("os.environ", {"DATABASE_URL": "postgresql://u:p@db/r?sslmode=require"}):
        assert _get_database_url() == "postgresql://u:p@db/r?sslmode=require&connect_timeout=5"


def test_job_store_url_empty_without_database():
    from reminders.notifications.scheduler import _get_database_url

    with patch.dict("os.environ", {}, clear=True):
        assert _get_database_url() == ""


@pytest.mark.asyncio
async def test_check_connection_false_when_unconfigured():
    from reminders.database import check_connection

    with patch.dict("os.environ", {}, clear=True):
        assert await check_connection() is False
