"""
Social broadcast channel - posts to Twitter/X via the v2 API.

One public post per (event, lead time), not per user.
"""

import logging
import os
from datetime import datetime, timedelta, timezone

import httpx

from reminders.notifications.outcomes import (
    Delivered,
    DeliveryOutcome,
    PermanentFailure,
    RateLimited,
    TransientFailure,
)

logger = logging.getLogger(__name__)


TWITTER_API_URL = os.environ.get("TWITTER_API_URL", "https://api.twitter.com/2/tweets")
TWITTER_ACCESS_TOKEN = os.environ.get("TWITTER_ACCESS_TOKEN")

MAX_POST_LENGTH = 280

# Used when a 429 arrives without a reset header (Twitter windows are 15 min)
DEFAULT_RATE_LIMIT_WINDOW = timedelta(minutes=15)


def is_social_configured() -> bool:
    return bool(TWITTER_ACCESS_TOKEN)


def truncate_post(text: str) -> str:
    if len(text) <= MAX_POST_LENGTH:
        return text
    return text[: MAX_POST_LENGTH - 3].rstrip() + "..."


def parse_rate_limit_reset(headers: httpx.Headers, now: datetime) -> datetime:
    """Reset instant from x-rate-limit-reset (epoch seconds)."""
    raw = headers.get("x-rate-limit-reset")
    if raw:
        try:
            return datetime.fromtimestamp(int(raw), tz=timezone.utc)
        except ValueError:
            logger.warning(f"Unparseable x-rate-limit-reset header: {raw!r}")
    return now + DEFAULT_RATE_LIMIT_WINDOW


async def post_status(text: str, timeout: float = 15.0) -> DeliveryOutcome:
    """
    Publish one post.

    Returns:
        Delivered(post id), RateLimited(reset_at), PermanentFailure or
        TransientFailure. Never raises.
    """
    if not is_social_configured():
        logger.warning("Social posting not configured (TWITTER_ACCESS_TOKEN not set)")
        return PermanentFailure("social-not-configured")

    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            response = await client.post(
                TWITTER_API_URL,
                json={"text": truncate_post(text)},
                headers={"Authorization": f"Bearer {TWITTER_ACCESS_TOKEN}"},
            )
    except httpx.TimeoutException:
        return TransientFailure("timeout")
    except httpx.HTTPError as e:
        logger.error(f"Social post failed: {e}")
        return TransientFailure(str(e) or type(e).__name__)

    if response.status_code in (200, 201):
        # Posted either way; the id is only for logs
        try:
            post_id = (response.json().get("data") or {}).get("id")
        except (ValueError, AttributeError):
            logger.warning(f"Social post accepted with unreadable body: {response.text[:200]}")
            post_id = None
        return Delivered(detail=post_id)

    if response.status_code == 429:
        reset_at = parse_rate_limit_reset(response.headers, datetime.now(timezone.utc))
        logger.warning(f"Social post rate limited until {reset_at.isoformat()}")
        return RateLimited(reset_at=reset_at)

    logger.error(f"Social post rejected ({response.status_code}): {response.text[:200]}")
    if 400 <= response.status_code < 500:
        return PermanentFailure(f"social-{response.status_code}")
    return TransientFailure(f"social-{response.status_code}")
