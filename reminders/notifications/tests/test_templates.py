"""Tests for reminder templates and context building."""

from datetime import datetime, timezone
from unittest.mock import patch

import pytest

EVENT = {
    "event_id": "evt1",
    "title": "Reading group",
    "description": "  Chapter 3  ",
    "start_time": datetime(2030, 5, 1, 18, 0, tzinfo=timezone.utc),
    "html_link": None,
}


class TestLeadPhrase:
    @pytest.mark.parametrize(
        "lead,expected",
        [(60, "in 1 hour"), (120, "in 2 hours"), (10, "in 10 minutes"), (1, "in 1 minute")],
    )
    def test_wording(self, lead, expected):
        from reminders.notifications.context import lead_phrase

        assert lead_phrase(lead) == expected


class TestBuildReminderContext:
    def test_builds_utc_times_and_urls(self):
        from reminders.notifications.context import build_reminder_context

        with patch(
            "reminders.notifications.context.get_frontend_url",
            return_value="https://app.example.com",
        ):
            context = build_reminder_context(EVENT, 60)

        assert context["start_time"] == "Wednesday, May 01 at 18:00 UTC"
        assert context["start_clock"] == "18:00 UTC"
        assert context["description"] == "Chapter 3"
        assert context["event_url"] == "https://app.example.com/events/evt1"
        assert context["preferences_url"] == "https://app.example.com/preferences"

    def test_prefers_calendar_link(self):
        from reminders.notifications.context import build_reminder_context

        event = {**EVENT, "html_link": "https://calendar.example.com/e"}

        assert build_reminder_context(event, 10)["event_url"] == "https://calendar.example.com/e"


class TestTemplates:
    def test_every_message_type_has_every_channel(self):
        from reminders.notifications.templates import load_templates

        templates = load_templates()
        channels = {"email_subject", "email_body", "push_title", "push_body", "social"}

        for message_type in ("reminder_1h", "reminder_10m", "reminder"):
            assert channels <= set(templates[message_type])

    @pytest.mark.parametrize(
        "lead,expected",
        [(60, "reminder_1h"), (10, "reminder_10m"), (30, "reminder"), (1440, "reminder")],
    )
    def test_message_type_for_lead(self, lead, expected):
        from reminders.notifications.templates import reminder_message_type

        assert reminder_message_type(lead) == expected

    def test_templates_render_with_reminder_context(self):
        from reminders.notifications.context import build_reminder_context
        from reminders.notifications.templates import get_message, load_templates

        for message_type, channels in load_templates().items():
            for channel in channels:
                text = get_message(message_type, channel, build_reminder_context(EVENT, 30))
                assert "{" not in text

    def test_generic_subject_uses_lead_phrase(self):
        from reminders.notifications.context import build_reminder_context
        from reminders.notifications.templates import get_message

        subject = get_message(
            "reminder", "email_subject", build_reminder_context(EVENT, 30)
        )

        assert subject == "Reminder: Reading group starts in 30 minutes"
