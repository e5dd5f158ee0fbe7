"""Identifier helpers shared by every conversion stage."""
import re

__all__ = ["PARAMETER_PREFIX", "sanitize", "strip_brackets", "parameter_identifier", "quote_literal"]

PARAMETER_PREFIX = "p_"

_WHITESPACE = re.compile(r'\s+')
_INVALID = re.compile(r'[^a-z0-9_]')


def sanitize(name: str) -> str:
    """Lowercase, collapse whitespace to ``_`` and drop anything outside ``[a-z0-9_]``.

    This is the naming rule used when the Access tables were imported, so
    sanitized names line up with the PostgreSQL objects. Idempotent.
    """
    return _INVALID.sub('', _WHITESPACE.sub('_', (name or '').lower()))


def strip_brackets(name: str) -> str:
    return (name or '').replace('[', '').replace(']', '').strip()


def parameter_identifier(name: str) -> str:
    """``[Start Date]`` -> ``p_start_date``."""
    return PARAMETER_PREFIX + sanitize(strip_brackets(name))


def quote_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"
