"""Duplicate flagging against already-recorded expenses.

Public surface:
- ``LedgerEntry``: the three fields duplicates are compared on.
- ``is_duplicate``: same date, amounts within one cent, same description
  after case-fold and trim.
- ``flag_duplicates``: mark staged rows; rows are never dropped here.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from decimal import Decimal
from typing import NamedTuple

from .logging_setup import get_logger
from .models import BulkExpenseRow

_logger = get_logger("expense_ingest.duplicates")

AMOUNT_TOLERANCE = Decimal("0.01")


class LedgerEntry(NamedTuple):
    expense_date: str
    amount: Decimal
    description: str


def _fold(description: str) -> str:
    return description.strip().casefold()


def is_duplicate(new: LedgerEntry, existing: LedgerEntry) -> bool:
    if new.expense_date != existing.expense_date:
        return False
    if abs(Decimal(new.amount) - Decimal(existing.amount)) >= AMOUNT_TOLERANCE:
        return False
    return _fold(new.description) == _fold(existing.description)


@dataclass(frozen=True, slots=True)
class DuplicateFlag:
    row_index: int
    temp_id: str
    match: LedgerEntry


def flag_duplicates(
    rows: Sequence[BulkExpenseRow], existing: Iterable[LedgerEntry]
) -> list[DuplicateFlag]:
    """Return one flag per staged row that duplicates an existing entry."""

    by_date: dict[str, list[LedgerEntry]] = defaultdict(list)
    for entry in existing:
        by_date[entry.expense_date].append(entry)

    flags: list[DuplicateFlag] = []
    for i, row in enumerate(rows):
        candidate = LedgerEntry(row.expense_date, row.amount, row.description)
        for entry in by_date.get(row.expense_date, ()):
            if is_duplicate(candidate, entry):
                flags.append(DuplicateFlag(row_index=i, temp_id=row.temp_id, match=entry))
                break
    if flags:
        _logger.info("duplicates:flagged count=%d of=%d", len(flags), len(rows))
    return flags


__all__ = [
    "AMOUNT_TOLERANCE",
    "DuplicateFlag",
    "LedgerEntry",
    "flag_duplicates",
    "is_duplicate",
]
