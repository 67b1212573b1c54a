"""Google Calendar API client (read-only)."""

import json
import logging
import os
from datetime import datetime, time, timezone
from typing import Any

import sentry_sdk
from google.oauth2 import service_account
from googleapiclient.discovery import build, Resource
from googleapiclient.errors import HttpError

from reminders.enums import DEFAULT_EVENT_TYPE

logger = logging.getLogger(__name__)


CALENDAR_ID = os.environ.get("GOOGLE_CALENDAR_ID")
API_KEY = os.environ.get("GOOGLE_CALENDAR_API_KEY")
CREDENTIALS_FILE = os.environ.get("GOOGLE_CALENDAR_CREDENTIALS_FILE")
CREDENTIALS_JSON = os.environ.get("GOOGLE_CALENDAR_CREDENTIALS_JSON")
SCOPES = ["https://www.googleapis.com/auth/calendar.readonly"]

PAGE_SIZE = 250

_service: Resource | None = None


def _is_rate_limit_error(exception: Exception) -> bool:
    """Check if exception is a Google API rate limit error."""
    if isinstance(exception, HttpError):
        return exception.resp.status == 429
    return False


def _log_calendar_error(exception: Exception, operation: str) -> None:
    """
    Log calendar API errors with appropriate severity.

    Rate limits get warning level + specific Sentry event.
    Other errors get error level.
    """
    if _is_rate_limit_error(exception):
        logger.warning(f"Google Calendar rate limit hit during {operation}")
        sentry_sdk.capture_message(
            f"Google Calendar rate limit: {operation}",
            level="warning",
        )
    else:
        logger.error(f"Google Calendar API error during {operation}: {exception}")
        sentry_sdk.capture_exception(exception)


def _has_service_account() -> bool:
    if CREDENTIALS_JSON:
        return True
    return bool(CREDENTIALS_FILE and os.path.exists(CREDENTIALS_FILE))


def is_calendar_configured() -> bool:
    """A calendar id plus either an API key (public calendar) or a service account."""
    return bool(CALENDAR_ID) and (bool(API_KEY) or _has_service_account())


def get_calendar_service() -> Resource | None:
    """
    Get or create Google Calendar API service.

    Supports credentials from:
    - GOOGLE_CALENDAR_CREDENTIALS_JSON env var (for Railway/Heroku)
    - GOOGLE_CALENDAR_CREDENTIALS_FILE path (for local dev)
    - GOOGLE_CALENDAR_API_KEY (public calendars only)

    Returns None if not configured.
    """
    global _service

    if _service is not None:
        return _service

    if not is_calendar_configured():
        return None

    try:
        if _has_service_account():
            if CREDENTIALS_JSON:
                creds = service_account.Credentials.from_service_account_info(
                    json.loads(CREDENTIALS_JSON),
                    scopes=SCOPES,
                )
            else:
                creds = service_account.Credentials.from_service_account_file(
                    CREDENTIALS_FILE,
                    scopes=SCOPES,
                )
            _service = build("calendar", "v3", credentials=creds, cache_discovery=False)
        else:
            _service = build("calendar", "v3", developerKey=API_KEY, cache_discovery=False)
        return _service
    except Exception as e:
        logger.warning(f"Failed to initialize Google Calendar service: {e}")
        return None


def _parse_time(value: dict) -> datetime | None:
    """
    Google gives either dateTime (timed) or date (all-day). All-day events
    start at midnight UTC.
    """
    if value.get("dateTime"):
        parsed = datetime.fromisoformat(value["dateTime"].replace("Z", "+00:00"))
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)
    if value.get("date"):
        day = datetime.strptime(value["date"], "%Y-%m-%d").date()
        return datetime.combine(day, time.min, tzinfo=timezone.utc)
    return None


def event_type_for(item: dict) -> str:
    """
    Tag used for per-type opt-in.

    An explicit `event_type` in the event's shared extended properties wins;
    otherwise the title is the type, so recurring events share one tag.
    Google's own `eventType` field (default, focusTime, outOfOffice, ...) says
    nothing about what the event is and is ignored.
    """
    shared = (item.get("extendedProperties") or {}).get("shared") or {}
    tag = (shared.get("event_type") or "").strip()
    if tag:
        return tag
    return (item.get("summary") or "").strip() or DEFAULT_EVENT_TYPE


def parse_event(item: dict) -> dict[str, Any] | None:
    """
    Convert a Calendar API event into an events row.

    Returns None for cancelled events and items without a usable time range.
    """
    if not item.get("id") or item.get("status") == "cancelled":
        return None

    start = _parse_time(item.get("start", {}))
    end = _parse_time(item.get("end", {}))
    if start is None or end is None or start >= end:
        logger.warning(f"Skipping calendar event {item.get('id')} with invalid times")
        return None

    return {
        "event_id": item["id"],
        "title": item.get("summary") or "No Title",
        "description": item.get("description") or "",
        "start_time": start,
        "end_time": end,
        "event_type": event_type_for(item),
        "html_link": item.get("htmlLink"),
    }


def list_upcoming_events(
    window_start: datetime,
    window_end: datetime,
) -> list[dict[str, Any]] | None:
    """
    Fetch every event starting in the window, recurring ones expanded.

    Blocking; callers on the event loop run it in a thread.

    Returns:
        Parsed event rows, or None if calendar not configured.

    Raises:
        HttpError: The API call failed (already logged and reported)
    """
    service = get_calendar_service()
    if not service:
        return None

    events: list[dict[str, Any]] = []
    page_token = None
    while True:
        try:
            response = (
                service.events()
                .list(
                    calendarId=CALENDAR_ID,
                    timeMin=window_start.isoformat(),
                    timeMax=window_end.isoformat(),
                    singleEvents=True,
                    orderBy="startTime",
                    maxResults=PAGE_SIZE,
                    pageToken=page_token,
                )
                .execute()
            )
        except HttpError as e:
            _log_calendar_error(e, operation="list_upcoming_events")
            raise

        for item in response.get("items", []):
            event = parse_event(item)
            if event:
                events.append(event)

        page_token = response.get("nextPageToken")
        if not page_token:
            return events
