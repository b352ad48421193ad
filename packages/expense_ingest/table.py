"""Table normalization and header detection.

A parser always reports its first row as ``headers``; whether that row really
is a header is decided here. Row 0 is a header when any of its cells names a
known column (amount, date, description, ...) as a whole word in English or
Russian, or when it holds no digits while the first data row does. Otherwise
every non-empty row, including row 0, is data.
"""

from __future__ import annotations

import re
from collections.abc import Sequence

from .logging_setup import get_logger
from .models import NormalizedTable, RawTable, Row

_logger = get_logger("expense_ingest.table")

HEADER_KEYWORDS: tuple[str, ...] = (
    "amount",
    "sum",
    "date",
    "description",
    "details",
    "city",
    "time",
    "note",
    "сумма",
    "дата",
    "описание",
    "назначение",
    "город",
    "время",
    "примечание",
    "комментарий",
)

_DIGIT_RE = re.compile(r"\d")
# Whole words with an optional plural "s"
_HEADER_WORD_RE = re.compile(
    r"\b(?:" + "|".join(map(re.escape, HEADER_KEYWORDS)) + r")s?\b", re.IGNORECASE
)


def _trim(row: Sequence[str]) -> Row:
    return tuple(cell.strip() for cell in row)


def _has_digit(row: Row) -> bool:
    return any(_DIGIT_RE.search(cell) for cell in row)


def looks_like_header(first: Row, following: Row | None) -> bool:
    """Apply the keyword/digit heuristic to a candidate header row."""

    if any(_HEADER_WORD_RE.search(cell) for cell in first if cell):
        return True
    if following is None:
        return False
    return not _has_digit(first) and _has_digit(following)


def normalize_table(raw: RawTable) -> NormalizedTable:
    """Trim cells, drop empty rows, and split off the header when detected."""

    first = _trim(raw.headers)
    body = [r for r in (_trim(row) for row in raw.rows) if any(r)]

    if looks_like_header(first, body[0] if body else None):
        _logger.debug("table:header detected cells=%d rows=%d", len(first), len(body))
        return NormalizedTable(has_header=True, header=first, data_rows=tuple(body))

    rows = ([first] if any(first) else []) + body
    _logger.debug("table:no header rows=%d", len(rows))
    return NormalizedTable(has_header=False, header=None, data_rows=tuple(rows))


__all__ = ["HEADER_KEYWORDS", "looks_like_header", "normalize_table"]
