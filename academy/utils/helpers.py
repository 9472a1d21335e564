"""
Common utility functions for the academy portal.

This module provides reusable helper functions for:
- Date/time formatting (ISO-8601 with UTC)
- Markdown to HTML conversion with sanitization (mail bodies)
- Reading JSON request payloads
"""

from datetime import datetime, date, timezone

from flask import request
from markupsafe import Markup
from werkzeug.exceptions import BadRequest
import markdown
import bleach


def format_utc_iso(dt):
    """Return a UTC ISO-8601 string (with trailing Z) for a datetime or None."""
    if not dt:
        return None
    if isinstance(dt, date) and not isinstance(dt, datetime):
        return dt.isoformat()
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    else:
        dt = dt.astimezone(timezone.utc)
    return dt.isoformat().replace("+00:00", "Z")


def parse_datetime(value, field_name):
    """
    Parse an ISO-8601 string from a request payload into a naive UTC datetime.

    Accepts a trailing ``Z``. Raises BadRequest naming the field when the
    value cannot be parsed.
    """
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
        except ValueError:
            raise BadRequest(f"{field_name} must be an ISO-8601 date.")
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def get_json_payload(expect=dict):
    """Return the request's JSON body, rejecting anything but the expected type."""
    data = request.get_json(silent=True)
    if data is None:
        data = expect()
    if not isinstance(data, expect):
        kind = 'an array' if expect is list else 'an object'
        raise BadRequest(f"Request body must be {kind}.")
    return data


def render_markdown(text):
    """
    Convert Markdown text to sanitized HTML.

    Used for outgoing mail bodies so administrators can format broadcast
    messages. Newlines are preserved as line breaks.

    Args:
        text: Markdown formatted text string

    Returns:
        Markup object containing sanitized HTML
    """
    if not text:
        return Markup('')

    md = markdown.Markdown(extensions=[
        'extra',
        'nl2br',
        'sane_lists',
    ])
    html = md.convert(text)

    allowed_tags = [
        'p', 'br', 'span', 'div',
        'h1', 'h2', 'h3', 'h4', 'h5', 'h6',
        'strong', 'em', 'u', 's', 'del', 'code', 'pre',
        'ul', 'ol', 'li',
        'a',
        'table', 'thead', 'tbody', 'tr', 'th', 'td',
        'blockquote',
        'hr',
    ]

    allowed_attributes = {
        'a': ['href', 'title', 'rel'],
        'th': ['align'],
        'td': ['align'],
    }

    cleaner = bleach.Cleaner(
        tags=allowed_tags,
        attributes=allowed_attributes,
        protocols=['http', 'https', 'mailto'],
        strip=True,
        strip_comments=True,
    )
    return Markup(cleaner.clean(html))
