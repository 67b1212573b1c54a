"""Message template loading and rendering."""

from pathlib import Path

import yaml


_templates: dict | None = None


def load_templates() -> dict:
    """
    Load message templates from YAML file.

    Caches templates after first load.
    """
    global _templates
    if _templates is not None:
        return _templates

    yaml_path = Path(__file__).parent / "messages.yaml"
    with open(yaml_path) as f:
        _templates = yaml.safe_load(f)

    return _templates


def render_message(template: str, context: dict) -> str:
    """
    Render a message template with context variables.

    Raises:
        KeyError: If a required variable is missing from context
    """
    return template.format(**context)


def get_message(message_type: str, channel: str, context: dict) -> str:
    """
    Get and render a message for a specific type and channel.

    Args:
        message_type: e.g., "reminder_1h", "reminder_10m", "reminder"
        channel: e.g., "email_subject", "email_body", "push_title", "social"
        context: Variables to substitute

    Returns:
        Rendered message string
    """
    templates = load_templates()
    template = templates[message_type][channel]
    return render_message(template, context)


def reminder_message_type(lead_minutes: int) -> str:
    """Template key for a lead time; leads without their own wording use the generic one."""
    key = f"reminder_{lead_minutes}m"
    if lead_minutes == 60:
        key = "reminder_1h"
    return key if key in load_templates() else "reminder"
