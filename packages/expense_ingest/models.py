"""Data models shared across the ingestion pipeline.

Parsers produce :class:`RawTable`; the normalizer turns it into a
:class:`NormalizedTable`; the mapping engine describes each column with a
:class:`ColumnMapping`; the row builder emits :class:`BulkExpenseRow` values
together with :class:`ImportStats` and review items; the commit collaborator
accepts :class:`ExpensePayload` models and answers with a
:class:`CommitResult`.

Immutable snapshots (frozen dataclasses, tuples) are passed between stages so a
later stage can never rewrite an earlier stage's output in place.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# ---------------------------------------------------------------------------
# Parser output
# ---------------------------------------------------------------------------

type Row = tuple[str, ...]


@dataclass(frozen=True, slots=True)
class RawTable:
    """Parser output: a header row plus data rows, all raw strings."""

    headers: Row
    rows: tuple[Row, ...]

    @classmethod
    def from_lists(cls, headers: Sequence[str], rows: Iterable[Sequence[str]]) -> RawTable:
        return cls(headers=tuple(headers), rows=tuple(tuple(r) for r in rows))

    @property
    def total_rows(self) -> int:
        return len(self.rows)


@dataclass(frozen=True, slots=True)
class TableInfo:
    """One table discovered inside a multi-table (HTML) statement.

    Attributes
    ----------
    index:
        Zero-based position of the ``<table>`` in document order.
    description:
        Best-guess human label (caption, nearby heading, class/id hint, or a
        summary of the header keywords).
    preview:
        The first few rows with long cells elided.
    """

    index: int
    description: str
    row_count: int
    column_count: int
    has_headers: bool
    preview: tuple[Row, ...]


@dataclass(frozen=True, slots=True)
class NormalizedTable:
    """Trimmed table with the header decision already made."""

    has_header: bool
    header: Row | None
    data_rows: tuple[Row, ...]

    @property
    def column_count(self) -> int:
        widths = [len(r) for r in self.data_rows]
        if self.header is not None:
            widths.append(len(self.header))
        return max(widths, default=0)

    @property
    def first_row(self) -> Row:
        """The row used for one-cell column previews (header when present)."""

        if self.header is not None:
            return self.header
        return self.data_rows[0] if self.data_rows else ()


# ---------------------------------------------------------------------------
# Column mapping
# ---------------------------------------------------------------------------


class ExpenseField(StrEnum):
    """Semantic expense fields a column can be mapped onto."""

    AMOUNT = "amount"
    DESCRIPTION = "description"
    CITY = "city"
    DATE = "date"
    TIME = "time"
    NOTES = "notes"

    @classmethod
    def from_identifier(cls, raw: object) -> ExpenseField | None:
        """Return the field for ``raw`` or ``None`` for unknown/legacy-skip values."""

        if not isinstance(raw, str):
            return None
        key = raw.strip().lower()
        key = _LEGACY_FIELD_ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError:
            return None


# Identifiers written by earlier single-field mappings
_LEGACY_FIELD_ALIASES: dict[str, str] = {
    "expense_date": "date",
    "expense_time": "time",
}

REQUIRED_FIELDS: tuple[ExpenseField, ...] = (ExpenseField.AMOUNT, ExpenseField.DESCRIPTION)


class ColumnMapping(BaseModel):
    """The role of one table column, as persisted between imports.

    Serialized with camelCase aliases (``sourceIndex``, ``targetFields``) via
    ``model_dump(by_alias=True, mode="json")``. Loading filters unknown field
    identifiers and migrates the legacy single ``targetField`` shape.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    source_index: int = Field(alias="sourceIndex", ge=0)
    target_fields: tuple[ExpenseField, ...] = Field(default=(), alias="targetFields")
    enabled: bool = False
    preview: str = ""
    hidden: bool = False

    @model_validator(mode="before")
    @classmethod
    def _migrate_single_field(cls, data: Any) -> Any:
        if not isinstance(data, Mapping):
            return data
        if "targetFields" in data or "target_fields" in data or "targetField" not in data:
            return data
        migrated = dict(data)
        legacy = migrated.pop("targetField")
        migrated["targetFields"] = [legacy] if legacy else []
        return migrated

    @field_validator("target_fields", mode="before")
    @classmethod
    def _drop_unknown_fields(cls, v: Any) -> tuple[ExpenseField, ...]:
        if v is None:
            return ()
        if isinstance(v, str):
            v = [v]
        out: list[ExpenseField] = []
        for item in v:
            f = ExpenseField.from_identifier(item)
            if f is not None and f not in out:
                out.append(f)
        return tuple(out)

    @model_validator(mode="after")
    def _derive_enabled(self) -> ColumnMapping:
        if self.hidden:
            self.target_fields = ()
        self.enabled = bool(self.target_fields)
        return self


# ---------------------------------------------------------------------------
# Row builder output
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class BulkExpenseRow:
    """One expense ready for commit.

    ``expense_date`` is ISO ``YYYY-MM-DD``; ``expense_time`` is ``HH:MM``.
    Grid edits produce new instances via :func:`dataclasses.replace`.
    """

    temp_id: str
    amount: Decimal
    description: str
    expense_date: str
    notes: str = ""
    category_id: str | None = None
    expense_time: str | None = None
    city: str = ""
    city_id: str | None = None
    matched_keywords: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class CityFromDescriptionReview:
    """A city extracted from free-text description awaiting confirmation."""

    row_index: int
    temp_id: str
    column_label: str
    source_value: str
    extracted_city: str
    cleaned_description: str
    confidence: float
    kind: Literal["city-from-description"] = "city-from-description"


# New review kinds join this union; consumers ``match`` on the class.
type ReviewItem = CityFromDescriptionReview


@dataclass(slots=True)
class ImportStats:
    """Counters for one row-building pass."""

    total_rows: int = 0
    imported_rows: int = 0
    skipped_rows: int = 0
    auto_detected_cities: int = 0
    manual_cities: int = 0
    detected_times: int = 0
    manual_times: int = 0


@dataclass(frozen=True, slots=True)
class BuildResult:
    rows: tuple[BulkExpenseRow, ...]
    stats: ImportStats
    review_items: tuple[ReviewItem, ...]


# ---------------------------------------------------------------------------
# Commit interface
# ---------------------------------------------------------------------------

MAX_EXPENSE_AMOUNT = Decimal("999999.99")
_HHMM_RE = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")

type InputMethod = Literal["single", "bulk_table", "voice", "text"]


class ExpensePayload(BaseModel):
    """Normalized expense as accepted by the commit collaborator."""

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    amount: Decimal = Field(gt=0, le=MAX_EXPENSE_AMOUNT)
    description: str = Field(min_length=1, max_length=500)
    notes: str = Field(default="", max_length=1000)
    category_id: str | None = None
    expense_date: date
    expense_time: str | None = None
    city_id: str | None = None
    city_input: str | None = None
    input_method: InputMethod = "bulk_table"

    @field_validator("amount")
    @classmethod
    def _two_decimals(cls, v: Decimal) -> Decimal:
        return v.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

    @field_validator("category_id", "city_id", "city_input", "expense_time", mode="before")
    @classmethod
    def _blank_is_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("expense_time")
    @classmethod
    def _time_is_hhmm(cls, v: str | None) -> str | None:
        if v is None:
            return None
        m = _HHMM_RE.match(v)
        if m is None:
            raise ValueError("expense_time must be HH:MM")
        return f"{int(m.group(1)):02d}:{m.group(2)}"

    @field_validator("expense_date")
    @classmethod
    def _not_far_future(cls, v: date) -> date:
        if v > date.today() + timedelta(days=365):
            raise ValueError("expense_date is more than a year in the future")
        return v


def row_payload(
    row: BulkExpenseRow, *, input_method: InputMethod = "bulk_table"
) -> dict[str, Any]:
    """Return the commit payload mapping for a staged row (unvalidated)."""

    return {
        "amount": row.amount,
        "description": row.description,
        "notes": row.notes,
        "category_id": row.category_id,
        "expense_date": row.expense_date,
        "expense_time": row.expense_time,
        "city_id": row.city_id,
        "city_input": row.city or None,
        "input_method": input_method,
    }


@dataclass(frozen=True, slots=True)
class RowError:
    row: int
    message: str


@dataclass(frozen=True, slots=True)
class CommitStats:
    success: int
    failed: int
    uncategorized: int
    total: int


@dataclass(frozen=True, slots=True)
class CommitResult:
    """Outcome of a bulk commit; ``errors`` are keyed by 1-based row number."""

    success: bool
    stats: CommitStats | None = None
    errors: tuple[RowError, ...] = field(default_factory=tuple)
    error: str | None = None


__all__ = [
    "REQUIRED_FIELDS",
    "BuildResult",
    "BulkExpenseRow",
    "CityFromDescriptionReview",
    "ColumnMapping",
    "CommitResult",
    "CommitStats",
    "ExpenseField",
    "ExpensePayload",
    "ImportStats",
    "InputMethod",
    "NormalizedTable",
    "RawTable",
    "ReviewItem",
    "Row",
    "RowError",
    "TableInfo",
    "row_payload",
]
