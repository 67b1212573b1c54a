"""Database queries using SQLAlchemy Core.

Every function takes an open AsyncConnection so callers control the
transaction boundary.
"""

from .events import (
    get_event,
    get_upcoming_events,
    get_known_event_types,
    upsert_event,
    mark_missing_events_deleted,
)
from .users import (
    normalize_email,
    get_user_by_email,
    get_or_create_user,
    ensure_preferences,
    get_active_users_with_preferences,
    get_event_type_overrides,
    set_event_type_preference,
    enable_event_type_for_auto_users,
)
from .push_subscriptions import (
    register_push_subscription,
    get_active_subscriptions,
    get_user_ids_with_active_subscriptions,
    delete_subscription,
)

__all__ = [
    "get_event",
    "get_upcoming_events",
    "get_known_event_types",
    "upsert_event",
    "mark_missing_events_deleted",
    "normalize_email",
    "get_user_by_email",
    "get_or_create_user",
    "ensure_preferences",
    "get_active_users_with_preferences",
    "get_event_type_overrides",
    "set_event_type_preference",
    "enable_event_type_for_auto_users",
    "register_push_subscription",
    "get_active_subscriptions",
    "get_user_ids_with_active_subscriptions",
    "delete_subscription",
]
