"""
Declarative request payload mapping.

Routes describe the camelCase JSON keys they accept as a list of Field
entries; apply_fields() validates each value and copies it onto a model.
"""

from collections import namedtuple
from decimal import Decimal, InvalidOperation

from werkzeug.exceptions import BadRequest

from academy.utils.helpers import parse_datetime


Field = namedtuple('Field', ['key', 'attr', 'kind', 'required', 'choices'], defaults=('str', False, None))


def parse_int(value, message):
    """Return ``value`` as an int; only integers and ASCII digit strings qualify."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str) and value.isascii() and value.isdigit():
        return int(value)
    raise BadRequest(message)


def _coerce(field, value):
    kind = field.kind
    if kind == 'str':
        if not isinstance(value, str):
            raise BadRequest(f"{field.key} must be a string.")
        value = value.strip()
        return value or None
    if kind == 'int':
        return parse_int(value, f"{field.key} must be an integer.")
    if kind == 'bool':
        if not isinstance(value, bool):
            raise BadRequest(f"{field.key} must be true or false.")
        return value
    if kind == 'decimal':
        if isinstance(value, bool):
            raise BadRequest(f"{field.key} must be a number.")
        try:
            number = Decimal(str(value))
        except InvalidOperation:
            raise BadRequest(f"{field.key} must be a number.")
        if not number.is_finite() or number < 0:
            raise BadRequest(f"{field.key} must be a non-negative number.")
        return number
    if kind == 'datetime':
        return parse_datetime(value, field.key)
    if kind == 'list':
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise BadRequest(f"{field.key} must be an array of strings.")
        return [v.strip() for v in value if v.strip()]
    if kind == 'json':
        return value
    if kind == 'enum':
        try:
            return field.choices.from_string(value)
        except ValueError:
            raise BadRequest(f"{field.key} must be one of: {', '.join(field.choices.values())}.")
    if kind == 'choice':
        if value not in field.choices:
            raise BadRequest(f"{field.key} must be one of: {', '.join(field.choices)}.")
        return value
    raise ValueError(f"Unknown field kind: {kind}")


def apply_fields(obj, data, fields, partial=False):
    """
    Validate ``data`` against ``fields`` and set the values on ``obj``.

    With ``partial`` (updates) absent keys are left untouched; otherwise a
    missing required key is a BadRequest. A required key may never be cleared.
    """
    for field in fields:
        if field.key not in data:
            if field.required and not partial:
                raise BadRequest(f"{field.key} is required.")
            continue
        raw = data[field.key]
        value = None if raw is None or raw == '' else _coerce(field, raw)
        if value is None and field.required:
            raise BadRequest(f"{field.key} is required.")
        setattr(obj, field.attr, value)
    return obj
