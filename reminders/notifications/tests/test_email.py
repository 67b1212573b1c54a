"""Tests for the SendGrid email channel."""

import pytest
from unittest.mock import MagicMock, patch
from python_http_client.exceptions import HTTPError

from reminders.notifications.outcomes import Delivered, PermanentFailure, TransientFailure


def _mock_sendgrid(status_code=202, headers=None):
    mock_client = MagicMock()
    mock_response = MagicMock()
    mock_response.status_code = status_code
    mock_response.headers = headers or {}
    mock_client.send.return_value = mock_response
    return mock_client


class TestMarkdownRendering:
    def test_markdown_to_html_converts_links(self):
        from reminders.notifications.channels.email import markdown_to_html

        html = markdown_to_html("See [the event](https://example.com/e)\nThanks")

        assert '<a href="https://example.com/e">the event</a>' in html
        assert "<br>" in html

    def test_markdown_to_plain_text(self):
        from reminders.notifications.channels.email import markdown_to_plain_text

        assert (
            markdown_to_plain_text("[Join](https://example.com)")
            == "Join (https://example.com)"
        )


class TestBuildMessage:
    def test_recipients_are_bcc_only(self):
        from reminders.notifications.channels.email import FROM_EMAIL, build_message

        message = build_message(
            ["a@example.com", "b@example.com"], "Subject", "[Join](https://example.com)"
        ).get()

        assert len(message["personalizations"]) == 1
        personalization = message["personalizations"][0]
        assert [to["email"] for to in personalization["to"]] == [FROM_EMAIL]
        assert [bcc["email"] for bcc in personalization["bcc"]] == [
            "a@example.com",
            "b@example.com",
        ]
        assert message["from"]["email"] == FROM_EMAIL
        assert message["subject"] == "Subject"
        contents = {c["type"]: c["value"] for c in message["content"]}
        assert contents["text/plain"] == "Join (https://example.com)"
        assert '<a href="https://example.com">Join</a>' in contents["text/html"]


class TestSendEmail:
    def test_not_configured_is_permanent(self):
        from reminders.notifications.channels.email import send_email

        with patch("reminders.notifications.channels.email.SENDGRID_API_KEY", None), patch(
            "reminders.notifications.channels.email._client", None
        ):
            outcome = send_email(["a@example.com"], "s", "b")

        assert outcome == PermanentFailure("email-not-configured")

    @patch("reminders.notifications.channels.email._get_sendgrid_client")
    def test_accepted_is_delivered(self, mock_get_client):
        from reminders.notifications.channels.email import send_email

        mock_client = _mock_sendgrid(202, {"X-Message-Id": "msg-1"})
        mock_get_client.return_value = mock_client

        outcome = send_email(["a@example.com", "b@example.com"], "s", "b")

        assert outcome == Delivered(detail="msg-1")
        mock_client.send.assert_called_once()
        sent = mock_client.send.call_args[0][0].get()
        assert len(sent["personalizations"][0]["bcc"]) == 2

    @patch("reminders.notifications.channels.email._get_sendgrid_client")
    def test_empty_batch_sends_nothing(self, mock_get_client):
        from reminders.notifications.channels.email import send_email

        mock_client = _mock_sendgrid()
        mock_get_client.return_value = mock_client

        assert send_email([], "s", "b") == PermanentFailure("no-recipients")
        mock_client.send.assert_not_called()

    @pytest.mark.parametrize(
        "status,expected",
        [
            (400, PermanentFailure("sendgrid-400")),
            (401, PermanentFailure("sendgrid-401")),
            (429, TransientFailure("sendgrid-429")),
            (503, TransientFailure("sendgrid-503")),
        ],
    )
    @patch("reminders.notifications.channels.email._get_sendgrid_client")
    def test_http_error_classification(self, mock_get_client, status, expected):
        from reminders.notifications.channels.email import send_email

        mock_client = MagicMock()
        mock_client.send.side_effect = HTTPError(status, "nope", b'{"errors": []}', {})
        mock_get_client.return_value = mock_client

        assert send_email(["a@example.com"], "s", "b") == expected

    @patch("reminders.notifications.channels.email._get_sendgrid_client")
    def test_unexpected_status_without_exception_is_classified(self, mock_get_client):
        from reminders.notifications.channels.email import send_email

        mock_get_client.return_value = _mock_sendgrid(302)

        assert send_email(["a@example.com"], "s", "b") == PermanentFailure("sendgrid-302")

    @patch("reminders.notifications.channels.email._get_sendgrid_client")
    def test_network_error_is_transient(self, mock_get_client):
        from reminders.notifications.channels.email import send_email

        mock_client = MagicMock()
        mock_client.send.side_effect = OSError("connection refused")
        mock_get_client.return_value = mock_client

        assert send_email(["a@example.com"], "s", "b") == TransientFailure(
            "connection refused"
        )
