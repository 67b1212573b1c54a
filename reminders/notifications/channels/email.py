"""SendGrid email delivery channel."""

import logging
import os
import re

from python_http_client.exceptions import HTTPError
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Bcc, Mail, Personalization, To

from reminders.notifications.outcomes import (
    Delivered,
    DeliveryOutcome,
    PermanentFailure,
    TransientFailure,
)

logger = logging.getLogger(__name__)


SENDGRID_API_KEY = os.environ.get("SENDGRID_API_KEY")
FROM_EMAIL = os.environ.get("FROM_EMAIL", "reminders@example.org")
FROM_NAME = os.environ.get("FROM_NAME", "Event Reminders")

# Regex to match markdown links: [text](url)
MARKDOWN_LINK_PATTERN = re.compile(r"\[([^\]]+)\]\(([^)]+)\)")

_client: SendGridAPIClient | None = None


def markdown_to_html(text: str) -> str:
    """
    Convert markdown-style links to HTML and wrap in basic HTML structure.

    Converts [text](url) to <a href="url">text</a> and preserves line breaks.
    """
    html_body = MARKDOWN_LINK_PATTERN.sub(r'<a href="\2">\1</a>', text)
    html_body = html_body.replace("\n", "<br>\n")

    return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
</head>
<body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; line-height: 1.5; color: #333;">
{html_body}
</body>
</html>"""


def markdown_to_plain_text(text: str) -> str:
    """Converts [text](url) to text (url) for the plain text part."""
    return MARKDOWN_LINK_PATTERN.sub(r"\1 (\2)", text)


def is_email_configured() -> bool:
    return bool(SENDGRID_API_KEY)


def _get_sendgrid_client() -> SendGridAPIClient | None:
    """Get or create SendGrid client singleton."""
    global _client
    if _client is None and SENDGRID_API_KEY:
        _client = SendGridAPIClient(SENDGRID_API_KEY)
    return _client


def build_message(to_emails: list[str], subject: str, body: str) -> Mail:
    """
    One message for many recipients.

    Recipients go in BCC so nobody sees anyone else's address; the visible
    To is the sender itself.
    """
    message = Mail(
        from_email=(FROM_EMAIL, FROM_NAME),
        subject=subject,
        plain_text_content=markdown_to_plain_text(body),
        html_content=markdown_to_html(body),
    )

    personalization = Personalization()
    personalization.add_to(To(FROM_EMAIL, FROM_NAME))
    for address in to_emails:
        personalization.add_bcc(Bcc(address))
    message.add_personalization(personalization)
    return message


def classify_status(status_code: int) -> DeliveryOutcome:
    """Outcome for a SendGrid response status."""
    if status_code in (200, 201, 202):
        return Delivered()
    # 429 and 5xx may succeed later; other 4xx won't
    if status_code == 429 or status_code >= 500:
        return TransientFailure(f"sendgrid-{status_code}")
    return PermanentFailure(f"sendgrid-{status_code}")


def send_email(to_emails: list[str], subject: str, body: str) -> DeliveryOutcome:
    """
    Send one email to a batch of recipients via SendGrid.

    Blocking; the dispatcher runs it in a worker thread. The body can contain
    markdown-style links [text](url) which will be converted to HTML links.
    Both plain text and HTML versions are sent.

    Args:
        to_emails: Recipient addresses (all BCC)
        subject: Email subject line
        body: Email body (may contain markdown links)

    Returns:
        Delivered, TransientFailure or PermanentFailure. Never raises.
    """
    client = _get_sendgrid_client()
    if not client:
        logger.warning("SendGrid not configured (SENDGRID_API_KEY not set)")
        return PermanentFailure("email-not-configured")

    if not to_emails:
        return PermanentFailure("no-recipients")

    try:
        response = client.send(build_message(to_emails, subject, body))
    except HTTPError as e:
        logger.error(
            f"SendGrid rejected email to {len(to_emails)} recipients "
            f"({e.status_code}): {str(e.body)[:200]}"
        )
        return classify_status(e.status_code)
    except Exception as e:
        logger.error(f"Failed to send email to {len(to_emails)} recipients: {e}")
        return TransientFailure(str(e) or type(e).__name__)

    outcome = classify_status(response.status_code)
    if isinstance(outcome, Delivered):
        return Delivered(detail=response.headers.get("X-Message-Id"))

    logger.error(
        f"SendGrid rejected email to {len(to_emails)} recipients ({response.status_code})"
    )
    return outcome
