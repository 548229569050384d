"""Header resolution — map a file's header row onto the five record fields."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from types import MappingProxyType

from sales_intake import RECORD_FIELDS
from sales_intake.models import ErrorCode, FieldError

SynonymTable = Mapping[str, tuple[str, ...]]

COLUMN_SYNONYMS: SynonymTable = MappingProxyType(
    {
        "month": ("月份", "month", "月", "Month", "MONTH"),
        "actual": ("实际值", "actual", "实际", "Actual", "ACTUAL", "本期"),
        "lastYear": (
            "去年同期值", "lastYear", "last_year", "去年", "LastYear", "LAST_YEAR", "上年同期",
        ),
        "mom": ("环比", "mom", "MoM", "MOM", "环比增长", "环比增长率"),
        "yoy": ("同比", "yoy", "YoY", "YOY", "同比增长", "同比增长率"),
    }
)


@dataclass(frozen=True)
class ColumnMap:
    """The literal header string carrying each record field in one file."""

    month: str
    actual: str
    lastYear: str  # noqa: N815 - mirrors the canonical record key
    mom: str
    yoy: str

    def as_dict(self) -> dict[str, str]:
        return {name: getattr(self, name) for name in RECORD_FIELDS}


def _fold(text: object) -> str:
    return str(text).strip().casefold()


def extend_synonyms(
    extra: Mapping[str, Iterable[str]], base: SynonymTable = COLUMN_SYNONYMS
) -> SynonymTable:
    """Return a new table with *extra* spellings appended to *base*.

    Raises
    ------
    ValueError
        If *extra* names a field that is not a record field.
    """
    unknown = sorted(set(extra) - set(RECORD_FIELDS))
    if unknown:
        raise ValueError(
            f"Unknown field(s): {', '.join(unknown)}. Expected one of: {', '.join(RECORD_FIELDS)}"
        )
    merged: dict[str, tuple[str, ...]] = {}
    for name in RECORD_FIELDS:
        spellings = list(base.get(name, ()))
        for header in extra.get(name, ()):
            if header not in spellings:
                spellings.append(header)
        merged[name] = tuple(spellings)
    return MappingProxyType(merged)


def find_column(headers: Sequence[object], synonyms: Iterable[str]) -> str | None:
    """Return the first header (in file order) equal to any synonym, ignoring case."""
    accepted = {_fold(s) for s in synonyms}
    for header in headers:
        if _fold(header) in accepted:
            return str(header)
    return None


def resolve_columns(
    headers: Sequence[object], synonyms: SynonymTable = COLUMN_SYNONYMS
) -> tuple[ColumnMap | None, list[FieldError]]:
    """Resolve every record field against *headers* in one pass.

    Returns ``(column_map, [])`` when all fields resolve, otherwise
    ``(None, errors)`` with one ``MISSING_COLUMN`` error per unresolved field.
    """
    found: dict[str, str] = {}
    errors: list[FieldError] = []
    for name in RECORD_FIELDS:
        accepted = synonyms.get(name, ())
        header = find_column(headers, accepted)
        if header is None:
            errors.append(
                FieldError(
                    field=name,
                    message=f"Missing column for {name}; expected one of: {', '.join(accepted)}",
                    code=ErrorCode.MISSING_COLUMN,
                )
            )
        else:
            found[name] = header

    if errors:
        return None, errors
    return ColumnMap(**found), []
