"""
Utility modules for the academy portal.

This package contains reusable helpers and custom types:
- encryption: PIIEncryptedType for secure PII field storage
- helpers: Common utility functions (date formatting, payload parsing, markdown)
- payloads: Declarative mapping of camelCase JSON payloads onto models
"""

from academy.utils.encryption import PIIEncryptedType
from academy.utils.helpers import format_utc_iso, get_json_payload, parse_datetime, render_markdown
from academy.utils.payloads import Field, apply_fields

__all__ = [
    'PIIEncryptedType',
    'Field',
    'apply_fields',
    'format_utc_iso',
    'get_json_payload',
    'parse_datetime',
    'render_markdown',
]
