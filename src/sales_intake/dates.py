"""Month-token normalization: many spellings in, one ``"<M>月"`` label out."""

from __future__ import annotations

import re
from datetime import date, datetime
from typing import Any


class InvalidDate(ValueError):
    """Raised when a token cannot be resolved to a month in 1..12."""


# Tried in order; the first full match with a month in range wins. Bare
# numeric tokens come last so "3" is never claimed by a year-bearing format.
MONTH_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("M月", re.compile(r"([0-9]{1,2})月")),
    ("MM月", re.compile(r"([0-9]{2})月")),
    ("YYYY-MM", re.compile(r"[0-9]{4}-([0-9]{2})")),
    ("YYYY年M月", re.compile(r"[0-9]{4}年([0-9]{1,2})月")),
    ("YYYY年MM月", re.compile(r"[0-9]{4}年([0-9]{2})月")),
    ("YYYY/MM", re.compile(r"[0-9]{4}/([0-9]{2})")),
    ("M", re.compile(r"([0-9]{1,2})")),
    ("MM", re.compile(r"([0-9]{2})")),
)

_LEADING_DIGITS_RE = re.compile(r"^([0-9]{1,2})")


def _stringify(token: Any) -> str:
    if isinstance(token, float) and token.is_integer():
        return str(int(token))
    return str(token).strip()


def _label(month: int) -> str:
    return f"{month}月"


def normalize_month(token: Any) -> str:
    """Return the ``"<M>月"`` label for *token*.

    Accepts ``"3月"``, ``"03月"``, ``"2025-03"``, ``"2025/03"``, ``"2025年3月"``,
    ``"3"`` and ``3``; spreadsheet date cells contribute their own month. Any
    year component is discarded.

    Raises
    ------
    InvalidDate
        If *token* is empty or no accepted format yields a month in 1..12.
    """
    if token is None or (isinstance(token, str) and not token.strip()):
        raise InvalidDate("month is empty")

    if isinstance(token, (datetime, date)):
        return _label(token.month)

    text = _stringify(token)
    if not text:
        raise InvalidDate("month is empty")

    for _name, pattern in MONTH_PATTERNS:
        match = pattern.fullmatch(text)
        if match is None:
            continue
        month = int(match.group(1))
        if 1 <= month <= 12:
            return _label(month)

    match = _LEADING_DIGITS_RE.match(text)
    if match:
        month = int(match.group(1))
        if 1 <= month <= 12:
            return _label(month)

    raise InvalidDate(f"Unrecognized month format: {text!r}")
