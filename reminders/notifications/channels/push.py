"""Browser push delivery channel (Web Push with VAPID)."""

import json
import logging
import os
from http import HTTPStatus

from pywebpush import WebPushException, webpush

from reminders.notifications.outcomes import (
    Delivered,
    DeliveryOutcome,
    EndpointGone,
    PermanentFailure,
    TransientFailure,
)

logger = logging.getLogger(__name__)


VAPID_PUBLIC_KEY = os.environ.get("VAPID_PUBLIC_KEY")
VAPID_PRIVATE_KEY = os.environ.get("VAPID_PRIVATE_KEY")
VAPID_EMAIL = os.environ.get("VAPID_EMAIL", "reminders@example.org")

GONE_STATUS_CODES = {HTTPStatus.GONE, HTTPStatus.NOT_FOUND}


def is_push_configured() -> bool:
    return bool(VAPID_PRIVATE_KEY)


def _vapid_claims() -> dict[str, str]:
    sub = VAPID_EMAIL if VAPID_EMAIL.startswith("mailto:") else f"mailto:{VAPID_EMAIL}"
    return {"sub": sub}


def _extract_status_code(exc: WebPushException) -> int | None:
    """HTTP status from a pywebpush exception, when the push service answered."""
    response = getattr(exc, "response", None)
    if response is None:
        return None
    status = getattr(response, "status_code", None)
    return status if isinstance(status, int) else None


def send_push(
    endpoint: str,
    keys: dict[str, str],
    payload: dict,
    timeout: float | None = None,
) -> DeliveryOutcome:
    """
    Push one payload to one browser subscription.

    Blocking; callers on the event loop run it in a thread.

    Returns:
        Delivered, EndpointGone (subscription should be deleted),
        PermanentFailure or TransientFailure. Never raises.
    """
    if not is_push_configured():
        logger.warning("Web push not configured (VAPID_PRIVATE_KEY not set)")
        return PermanentFailure("push-not-configured")

    try:
        webpush(
            subscription_info={"endpoint": endpoint, "keys": keys},
            data=json.dumps(payload),
            vapid_private_key=VAPID_PRIVATE_KEY,
            vapid_claims=_vapid_claims(),
            timeout=timeout,
        )
        return Delivered()
    except WebPushException as e:
        status = _extract_status_code(e)
        if status in GONE_STATUS_CODES:
            logger.info(f"Push endpoint gone ({status}): {endpoint[:60]}")
            return EndpointGone(reason=f"endpoint-gone-{status}", status_code=status)
        logger.error(f"Push delivery failed ({status}): {e}")
        return TransientFailure(f"push-{status or 'error'}")
    except Exception as e:
        logger.error(f"Push delivery failed: {e}")
        return TransientFailure(str(e) or type(e).__name__)
