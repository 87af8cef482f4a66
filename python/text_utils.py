"""
Shared text utilities for the QuickMatch screening system

SECURITY: Record values come from external batches and are sanitized
before they reach any log line.
"""

import re
from typing import Any, Iterable

_CONTROL_CHARS = re.compile(r'[\r\n\x00-\x1f\x7f-\x9f]')
_WHITESPACE = re.compile(r'\s+')


def sanitize_for_logging(text: Any) -> str:
    """Sanitize record values for safe logging, preventing log injection

    Removes newlines, carriage returns, and other control characters
    that could be used to inject fake log entries.

    Args:
        text: Record value

    Returns:
        Sanitized text safe for logging
    """
    if not text:
        return ''
    sanitized = _CONTROL_CHARS.sub(' ', str(text))
    sanitized = _WHITESPACE.sub(' ', sanitized).strip()
    return sanitized[:500] if len(sanitized) > 500 else sanitized


def as_value(value: Any) -> str:
    """Coerce a raw attribute value to a string; None becomes empty"""
    if value is None:
        return ''
    if isinstance(value, str):
        return value
    return str(value)


def format_list(items: Iterable[str]) -> str:
    """Render attribute names the way clause labels are displayed: [a, b]"""
    return '[' + ', '.join(items) + ']'
