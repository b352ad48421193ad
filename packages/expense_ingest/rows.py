"""Row building: apply a column mapping to a normalized table.

For every data row the enabled, visible columns are folded into a draft:

- ``amount`` goes through :func:`~expense_ingest.normalizers.parse_amount`
  and is stored as an absolute value; a malformed amount leaves it unset.
- ``date`` may also yield a time, which wins over a mapped ``time`` column.
- Without a mapped ``city`` the description is run through city extraction;
  a hit above ``auto_accept`` replaces the description with its cleaned form
  and queues a :class:`~expense_ingest.models.CityFromDescriptionReview`
  unless it also clears ``no_review``.

A draft becomes a :class:`~expense_ingest.models.BulkExpenseRow` only when it
has a positive amount and a description; otherwise it is counted as skipped.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from .cities import CityCatalog, extract_city_from_description
from .keywords import KeywordCategorizer
from .logging_setup import get_logger
from .mapping import column_label
from .models import (
    BuildResult,
    BulkExpenseRow,
    CityFromDescriptionReview,
    ColumnMapping,
    ExpenseField,
    ImportStats,
    NormalizedTable,
    ReviewItem,
    Row,
)
from .normalizers import parse_amount, parse_date_and_time, parse_time

_logger = get_logger("expense_ingest.rows")

CITY_AUTO_ACCEPT = 0.6


def new_temp_id() -> str:
    return str(uuid.uuid4())


@dataclass(slots=True)
class _Draft:
    amount: Decimal | None = None
    description: str = ""
    city: str = ""
    expense_date: str | None = None
    date_time: str | None = None
    column_time: str | None = None
    notes: str = ""


def _active(mappings: Sequence[ColumnMapping]) -> list[ColumnMapping]:
    return [m for m in mappings if m.enabled and not m.hidden and m.target_fields]


def _description_label(mappings: Sequence[ColumnMapping]) -> str:
    visible = [m for m in mappings if not m.hidden]
    for pos, m in enumerate(visible):
        if ExpenseField.DESCRIPTION in m.target_fields:
            return column_label(pos)
    return ""


def _apply(draft: _Draft, fld: ExpenseField, cell: str) -> None:
    match fld:
        case ExpenseField.AMOUNT:
            try:
                draft.amount = abs(parse_amount(cell))
            except ValueError:
                _logger.debug("rows:bad amount cell=%r", cell)
                draft.amount = None
        case ExpenseField.DESCRIPTION:
            draft.description = cell
        case ExpenseField.CITY:
            draft.city = cell
        case ExpenseField.DATE:
            draft.expense_date, draft.date_time = parse_date_and_time(cell)
        case ExpenseField.TIME:
            draft.column_time = parse_time(cell)
        case ExpenseField.NOTES:
            draft.notes = cell


def _draft_for(row: Row, active: Sequence[ColumnMapping]) -> _Draft:
    draft = _Draft()
    for m in active:
        cell = row[m.source_index].strip() if m.source_index < len(row) else ""
        if not cell:
            continue
        for fld in m.target_fields:
            _apply(draft, fld, cell)
    return draft


def build_rows(
    table: NormalizedTable,
    mappings: Sequence[ColumnMapping],
    *,
    catalog: CityCatalog | None = None,
    categorizer: KeywordCategorizer | None = None,
    auto_accept: float = CITY_AUTO_ACCEPT,
    no_review: float | None = None,
    today: date | None = None,
    id_factory: Callable[[], str] = new_temp_id,
) -> BuildResult:
    """Turn ``table.data_rows`` into staged expense rows.

    Parameters
    ----------
    catalog:
        City catalog used for extraction scoring and ``city_id`` resolution.
        Without one only the built-in known-city list is consulted.
    categorizer:
        When given, rows are pre-categorized for display in the grid.
    auto_accept:
        Description-derived cities are used only above this confidence.
    no_review:
        Confidence at or above which an extracted city skips the review
        queue; ``None`` reviews every description-derived city.
    """

    catalog = catalog or CityCatalog()
    fallback_date = (today or date.today()).isoformat()
    active = _active(mappings)
    label = _description_label(mappings)
    stats = ImportStats(total_rows=len(table.data_rows))
    rows: list[BulkExpenseRow] = []
    reviews: list[ReviewItem] = []

    for raw in table.data_rows:
        draft = _draft_for(raw, active)
        if draft.amount is None or draft.amount <= 0 or not draft.description:
            stats.skipped_rows += 1
            continue

        if draft.date_time:
            expense_time = draft.date_time
            stats.detected_times += 1
        elif draft.column_time:
            expense_time = draft.column_time
            stats.manual_times += 1
        else:
            expense_time = None

        temp_id = id_factory()
        description = draft.description
        city = draft.city
        review: CityFromDescriptionReview | None = None
        if city:
            stats.manual_cities += 1
        else:
            found = extract_city_from_description(description, catalog)
            if found.city and found.confidence > auto_accept:
                city = catalog.display_name(found.city)
                description = found.clean_description or description
                stats.auto_detected_cities += 1
                if no_review is None or found.confidence < no_review:
                    review = CityFromDescriptionReview(
                        row_index=len(rows),
                        temp_id=temp_id,
                        column_label=label,
                        source_value=draft.description,
                        extracted_city=found.display_city or city,
                        cleaned_description=description,
                        confidence=found.confidence,
                    )

        resolved = catalog.resolve(city) if city else None
        if resolved is not None:
            city = resolved.name
        match = categorizer.categorize(description) if categorizer is not None else None

        rows.append(
            BulkExpenseRow(
                temp_id=temp_id,
                amount=draft.amount,
                description=description,
                expense_date=draft.expense_date or fallback_date,
                notes=draft.notes,
                category_id=match.category_id if match else None,
                expense_time=expense_time,
                city=city,
                city_id=resolved.city_id if resolved else None,
                matched_keywords=match.matched_keywords if match else (),
            )
        )
        if review is not None:
            reviews.append(review)

    stats.imported_rows = len(rows)
    _logger.info(
        "rows:built imported=%d skipped=%d reviews=%d",
        stats.imported_rows,
        stats.skipped_rows,
        len(reviews),
    )
    return BuildResult(rows=tuple(rows), stats=stats, review_items=tuple(reviews))


def description_rows(
    descriptions: Sequence[str],
    *,
    today: date | None = None,
    id_factory: Callable[[], str] = new_temp_id,
) -> tuple[BulkExpenseRow, ...]:
    """Rows for a single-column paste: description only, amount left at zero."""

    iso = (today or date.today()).isoformat()
    return tuple(
        BulkExpenseRow(
            temp_id=id_factory(), amount=Decimal("0"), description=d.strip(), expense_date=iso
        )
        for d in descriptions
        if d.strip()
    )


def format_build_summary(stats: ImportStats) -> str:
    return (
        f"Imported {stats.imported_rows} of {stats.total_rows} rows, "
        f"skipped {stats.skipped_rows}; "
        f"cities: {stats.auto_detected_cities} auto-detected, {stats.manual_cities} from column; "
        f"times: {stats.detected_times} detected, {stats.manual_times} from column"
    )


__all__ = [
    "CITY_AUTO_ACCEPT",
    "build_rows",
    "description_rows",
    "format_build_summary",
    "new_temp_id",
]
