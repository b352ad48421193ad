"""Column mapping engine: which table column feeds which expense field.

State is one :class:`FieldAssignment` per field of the fixed vocabulary plus
a set of hidden columns and a display order. A field sits on at most one
column; a column may carry several fields (``"31.12.2023 14:05"`` feeds both
date and time).

Labels (``A``, ``B``, ... ``Z``, then ``27``, ``28``, ...) are positional over
the *visible* display order and never expose the source index.

A saved mapping is only reused when it describes exactly as many columns as
the current table. Compatibility is keyed on width alone, so inserting or
reordering columns in an export goes undetected (known limitation).
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from .logging_setup import get_logger
from .models import REQUIRED_FIELDS, ColumnMapping, ExpenseField

_logger = get_logger("expense_ingest.mapping")


@dataclass(frozen=True, slots=True)
class FieldAssignment:
    field: ExpenseField
    assigned_column: int | None
    required: bool


def column_label(position: int) -> str:
    """Label for a zero-based visible position: letters first, then numbers."""

    if position < 26:
        return chr(ord("A") + position)
    return str(position + 1)


# ----------------------------------------------------------------------------
# Load / validate
# ----------------------------------------------------------------------------


def load_saved_mapping(raw: Any, column_count: int) -> list[ColumnMapping] | None:
    """Validate a persisted mapping record against the current table width.

    Returns ``None`` (ignore, do not coerce) when ``raw`` is not a list, its
    length differs from ``column_count``, or an entry is malformed. Unknown
    field identifiers are dropped and the legacy single-field entry shape is
    migrated by :class:`~expense_ingest.models.ColumnMapping`.
    """

    if not isinstance(raw, list) or len(raw) != column_count:
        return None
    try:
        mappings = [ColumnMapping.model_validate(entry) for entry in raw]
    except ValidationError:
        _logger.warning("mapping:saved mapping is malformed; ignoring", exc_info=True)
        return None
    if any(m.source_index >= column_count for m in mappings):
        return None
    return mappings


def serialize_mapping(mappings: Iterable[ColumnMapping]) -> list[dict[str, Any]]:
    return [m.model_dump(by_alias=True, mode="json") for m in mappings]


# ----------------------------------------------------------------------------
# Editor
# ----------------------------------------------------------------------------


class MappingEditor:
    """Interactive column-to-field assignment for one table.

    Parameters
    ----------
    column_count:
        Width of the table being mapped.
    preview_row:
        Cells shown as one-cell previews (usually the header row).
    saved:
        A mapping previously returned by :func:`load_saved_mapping`; ignored
        when it does not describe ``column_count`` columns.
    """

    def __init__(
        self,
        column_count: int,
        preview_row: Sequence[str] = (),
        saved: Sequence[ColumnMapping] | None = None,
    ) -> None:
        self.column_count = column_count
        self._preview = list(preview_row)
        self._assigned: dict[ExpenseField, int | None] = {f: None for f in ExpenseField}
        self._hidden: set[int] = set()
        self._order: list[int] = list(range(column_count))
        if saved is not None and len(saved) == column_count:
            self._restore(saved)

    def _restore(self, saved: Sequence[ColumnMapping]) -> None:
        order = [m.source_index for m in saved]
        if sorted(order) == self._order:
            self._order = order
        for m in saved:
            if m.hidden:
                self._hidden.add(m.source_index)
                continue
            for f in m.target_fields:
                self._assigned[f] = m.source_index

    # -- queries -------------------------------------------------------------

    @property
    def assignments(self) -> list[FieldAssignment]:
        return [
            FieldAssignment(field=f, assigned_column=col, required=f in REQUIRED_FIELDS)
            for f, col in self._assigned.items()
        ]

    @property
    def hidden_columns(self) -> frozenset[int]:
        return frozenset(self._hidden)

    def visible_columns(self) -> list[int]:
        return [c for c in self._order if c not in self._hidden]

    def label_for(self, column: int) -> str | None:
        """Visible label of source ``column`` or ``None`` when hidden."""

        visible = self.visible_columns()
        if column not in visible:
            return None
        return column_label(visible.index(column))

    def column_for_label(self, label: str) -> int:
        """Resolve a visible label (``"B"``, ``"b"``, or 1-based ``"2"``)."""

        visible = self.visible_columns()
        s = label.strip().upper()
        if s.isdigit():
            pos = int(s) - 1
        elif len(s) == 1 and "A" <= s <= "Z":
            pos = ord(s) - ord("A")
        else:
            raise ValueError(f"invalid column label: {label!r}")
        if not 0 <= pos < len(visible):
            raise ValueError(f"no visible column {label!r}")
        return visible[pos]

    def fields_for(self, column: int) -> tuple[ExpenseField, ...]:
        if column in self._hidden:
            return ()
        return tuple(f for f, col in self._assigned.items() if col == column)

    def assigned_column(self, field: ExpenseField) -> int | None:
        return self._assigned[field]

    def missing_required(self) -> list[ExpenseField]:
        return [f for f in REQUIRED_FIELDS if self._assigned[f] is None]

    def is_complete(self) -> bool:
        return not self.missing_required()

    # -- edits ---------------------------------------------------------------

    def _check_column(self, column: int) -> None:
        if not 0 <= column < self.column_count:
            raise IndexError(f"column {column} is out of range (0..{self.column_count - 1})")

    def assign(self, field: ExpenseField, column: int) -> None:
        """Toggle ``field`` on ``column``: clears it if already there, else moves it."""

        self._check_column(column)
        if column in self._hidden:
            raise ValueError(f"column {column} is hidden")
        if self._assigned[field] == column:
            self._assigned[field] = None
        else:
            self._assigned[field] = column

    def unassign(self, field: ExpenseField) -> None:
        self._assigned[field] = None

    def hide_column(self, column: int) -> None:
        self._check_column(column)
        self._hidden.add(column)
        for f, col in self._assigned.items():
            if col == column:
                self._assigned[f] = None

    def show_column(self, column: int) -> None:
        self._check_column(column)
        self._hidden.discard(column)

    def move_column(self, column: int, position: int) -> None:
        """Move source ``column`` to display ``position`` (clamped)."""

        self._check_column(column)
        self._order.remove(column)
        position = max(0, min(position, len(self._order)))
        self._order.insert(position, column)

    # -- output --------------------------------------------------------------

    def to_mappings(self) -> list[ColumnMapping]:
        """One :class:`ColumnMapping` per column, in display order."""

        out: list[ColumnMapping] = []
        for column in self._order:
            hidden = column in self._hidden
            out.append(
                ColumnMapping(
                    source_index=column,
                    target_fields=self.fields_for(column),
                    preview=self._preview[column] if column < len(self._preview) else "",
                    hidden=hidden,
                )
            )
        return out


__all__ = [
    "FieldAssignment",
    "MappingEditor",
    "column_label",
    "load_saved_mapping",
    "serialize_mapping",
]
