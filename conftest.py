"""Root pytest configuration."""

from pathlib import Path
from unittest.mock import patch

import pytest
from dotenv import load_dotenv

# Load environment variables before tests run
_root = Path(__file__).parent
load_dotenv(_root / ".env")
load_dotenv(_root / ".env.local", override=True)


@pytest.fixture(scope="session")
def event_loop_policy():
    """Use default event loop policy for all async tests."""
    import asyncio

    return asyncio.DefaultEventLoopPolicy()


@pytest.fixture(autouse=True)
def no_real_delivery():
    """
    Blank out transport credentials picked up from .env.

    Tests that exercise a channel patch its credential back in themselves.
    """
    with patch("reminders.notifications.channels.email.SENDGRID_API_KEY", None), patch(
        "reminders.notifications.channels.push.VAPID_PRIVATE_KEY", None
    ), patch("reminders.notifications.channels.social.TWITTER_ACCESS_TOKEN", None):
        yield
