"""Import session: the state machine behind a bulk statement import.

States and the operations that move between them::

    IDLE --load--> LOADED --open_mapping--> MAPPING
    MAPPING --apply_mapping(direct=False)--> PREVIEWING | REVIEW_PENDING
    MAPPING --apply_mapping(direct=True)---> DIRECT_SAVING -> REVIEW_PENDING | COMMITTING
    REVIEW_PENDING --confirm_review--> PREVIEWING (grid) | COMMITTING (direct)
    REVIEW_PENDING --cancel_review--> MAPPING | IDLE
    PREVIEWING --commit_grid--> COMMITTING --> DONE | FAILED
    FAILED --retry--> COMMITTING

Nothing is written before ``COMMITTING``, so cancelling or resetting earlier is
a pure discard. Commit never mutates the staged rows; a failed batch can be
resubmitted unchanged with :meth:`ImportSession.retry`. A direct save commits
its own batch (:attr:`ImportSession.direct_batch`) and leaves rows staged in
the preview grid alone.

Collaborators are injected: an :class:`ExpenseCommitter` performs the bulk
write and a :class:`CatalogSource` supplies the keyword and city dictionaries,
loaded once per session before the first row build.
"""

from __future__ import annotations

import dataclasses
import re
from collections.abc import Iterable, Mapping, Sequence
from datetime import date
from enum import StrEnum
from os import PathLike
from pathlib import Path
from typing import Any, Literal, Protocol

from ..cities import CityCatalog, CityRecord
from ..duplicates import DuplicateFlag, LedgerEntry, flag_duplicates
from ..errors import InvalidTransitionError
from ..ingest.utils import detect_format, list_tables, load_statement, parse_clipboard
from ..keywords import KeywordCategorizer, KeywordEntry
from ..logging_setup import get_logger
from ..mapping import MappingEditor
from ..mapping_store import (
    SettingsStore,
    load_column_mapping,
    load_table_index,
    save_column_mapping,
    save_table_index,
)
from ..models import (
    BuildResult,
    BulkExpenseRow,
    CityFromDescriptionReview,
    ColumnMapping,
    CommitResult,
    ImportStats,
    NormalizedTable,
    RawTable,
    ReviewItem,
    TableInfo,
    row_payload,
)
from ..rows import CITY_AUTO_ACCEPT, build_rows, description_rows
from ..table import normalize_table

_logger = get_logger("expense_ingest.workflows.import_flow")


class ImportState(StrEnum):
    IDLE = "idle"
    LOADED = "loaded"
    MAPPING = "mapping"
    PREVIEWING = "previewing"
    DIRECT_SAVING = "direct_saving"
    REVIEW_PENDING = "review_pending"
    COMMITTING = "committing"
    DONE = "done"
    FAILED = "failed"


class ExpenseCommitter(Protocol):
    def commit(self, payloads: Sequence[Mapping[str, Any]]) -> CommitResult: ...


class CatalogSource(Protocol):
    def load_keywords(self) -> list[KeywordEntry]: ...

    def load_cities(self) -> list[CityRecord]: ...


_HHMM_RE = re.compile(r"^([01]?\d|2[0-3]):[0-5]\d$")
_EDITABLE_FIELDS = frozenset(
    {"amount", "description", "notes", "category_id", "expense_date", "expense_time", "city"}
)

type Branch = Literal["preview", "direct"]


class ImportSession:
    """One import, from a parsed table to a committed batch.

    Parameters
    ----------
    committer:
        Bulk writer used by the ``COMMITTING`` step.
    catalogs:
        Keyword and city dictionaries; without one only the built-in list of
        known cities is used and rows stay uncategorized until commit.
    store:
        Preference store for the last column mapping and HTML table index.
    """

    def __init__(
        self,
        *,
        committer: ExpenseCommitter | None = None,
        catalogs: CatalogSource | None = None,
        store: SettingsStore | None = None,
        auto_accept: float = CITY_AUTO_ACCEPT,
        no_review: float | None = None,
        today: date | None = None,
    ) -> None:
        self._committer = committer
        self._catalogs = catalogs
        self._store = store
        self._auto_accept = auto_accept
        self._no_review = no_review
        self._today = today

        self.state = ImportState.IDLE
        self._city_catalog: CityCatalog | None = None
        self._categorizer: KeywordCategorizer | None = None
        self._reset_data()

    def _reset_data(self, *, keep_grid: bool = False) -> None:
        self.raw: RawTable | None = None
        self.table: NormalizedTable | None = None
        self.tables: list[TableInfo] = []
        self.editor: MappingEditor | None = None
        if not keep_grid:
            self.grid: list[BulkExpenseRow] = []
        self.direct_batch: list[BulkExpenseRow] = []
        self.pending: BuildResult | None = None
        self.stats: ImportStats | None = None
        self.result: CommitResult | None = None
        self.last_error: str | None = None
        self._branch: Branch = "preview"

    # -- plumbing ------------------------------------------------------------

    def _require(self, operation: str, *allowed: ImportState) -> None:
        if self.state not in allowed:
            raise InvalidTransitionError(operation, self.state)

    def _move(self, new: ImportState) -> None:
        _logger.info("import:state %s -> %s", self.state, new)
        self.state = new

    def _ensure_catalogs(self) -> tuple[CityCatalog, KeywordCategorizer | None]:
        if self._city_catalog is None:
            if self._catalogs is None:
                self._city_catalog = CityCatalog()
            else:
                self._city_catalog = CityCatalog(self._catalogs.load_cities())
                self._categorizer = KeywordCategorizer(self._catalogs.load_keywords())
                _logger.info(
                    "import:catalogs loaded cities=%d keywords=%d",
                    len(self._city_catalog),
                    len(self._categorizer),
                )
        return self._city_catalog, self._categorizer

    # -- loading -------------------------------------------------------------

    _LOADABLE = (
        ImportState.IDLE,
        ImportState.LOADED,
        ImportState.PREVIEWING,
        ImportState.DONE,
        ImportState.FAILED,
    )

    def load(self, raw: RawTable) -> None:
        """Stage a parsed table; rows already staged in the grid are kept."""

        self._require("load a table", *self._LOADABLE)
        table = normalize_table(raw)
        if self.state in (ImportState.DONE, ImportState.FAILED):
            self._reset_data(keep_grid=True)
        self.raw = raw
        self.table = table
        self.editor = None
        self.pending = None
        self._move(ImportState.LOADED)

    def load_file(self, path: str | PathLike[str], *, table_index: int | None = None) -> None:
        """Parse and stage a statement file.

        For HTML statements with several tables an explicit ``table_index`` is
        remembered; without one the remembered index is reused when in range.
        Parser errors propagate before any state changes.
        """

        self._require("load a file", *self._LOADABLE)
        p = Path(path)
        tables: list[TableInfo] = []
        if detect_format(p) == "html":
            tables = list_tables(p)
            if table_index is None and self._store is not None and len(tables) > 1:
                table_index = load_table_index(self._store, len(tables))
        raw = load_statement(p, table_index=table_index)
        if table_index is not None and self._store is not None and tables:
            save_table_index(self._store, table_index)
        self.load(raw)
        self.tables = tables

    def load_text(self, text: str) -> None:
        """Stage pasted cells; a single column becomes description-only grid rows."""

        self._require("paste text", *self._LOADABLE)
        raw = parse_clipboard(text)
        if max((len(r) for r in (raw.headers, *raw.rows)), default=0) > 1:
            self.load(raw)
            return
        if self.state in (ImportState.DONE, ImportState.FAILED):
            self._reset_data(keep_grid=True)
        cells = [r[0] for r in (raw.headers, *raw.rows) if r]
        self.grid.extend(description_rows(cells, today=self._today))
        self._branch = "preview"
        self._move(ImportState.PREVIEWING)

    # -- mapping -------------------------------------------------------------

    def open_mapping(self) -> MappingEditor:
        self._require("open the column mapping", ImportState.LOADED, ImportState.MAPPING)
        assert self.table is not None
        if self.editor is None:
            saved = None
            if self._store is not None:
                saved = load_column_mapping(self._store, self.table.column_count)
            self.editor = MappingEditor(self.table.column_count, self.table.first_row, saved)
        self._move(ImportState.MAPPING)
        return self.editor

    def apply_mapping(
        self, *, direct: bool = False, mappings: Sequence[ColumnMapping] | None = None
    ) -> ImportState:
        """Build rows from the current mapping and branch on review items."""

        self._require("apply the column mapping", ImportState.MAPPING)
        assert self.table is not None and self.editor is not None
        if mappings is None:
            if not self.editor.is_complete():
                missing = ", ".join(f.value for f in self.editor.missing_required())
                raise ValueError(f"required fields are not mapped: {missing}")
            mappings = self.editor.to_mappings()
        if self._store is not None:
            save_column_mapping(self._store, mappings)

        catalog, categorizer = self._ensure_catalogs()
        built = build_rows(
            self.table,
            mappings,
            catalog=catalog,
            categorizer=categorizer,
            auto_accept=self._auto_accept,
            no_review=self._no_review,
            today=self._today,
        )
        self.stats = built.stats
        self._branch = "direct" if direct else "preview"
        self._move(ImportState.DIRECT_SAVING if direct else ImportState.PREVIEWING)

        if built.review_items:
            self.pending = built
            self._move(ImportState.REVIEW_PENDING)
            return self.state
        return self._accept(built.rows)

    def _accept(self, rows: Sequence[BulkExpenseRow]) -> ImportState:
        self.pending = None
        if self._branch == "direct":
            self.direct_batch = list(rows)
            return self._commit(self.direct_batch)
        self.grid.extend(rows)
        self.raw = None
        self.table = None
        if self.state != ImportState.PREVIEWING:
            self._move(ImportState.PREVIEWING)
        return self.state

    # -- review --------------------------------------------------------------

    @property
    def review_items(self) -> tuple[ReviewItem, ...]:
        return self.pending.review_items if self.pending is not None else ()

    def confirm_review(self, decisions: Mapping[int, bool] | None = None) -> ImportState:
        """Accept the reviewed batch.

        ``decisions`` maps a review item's ``row_index`` to ``False`` to reject
        the extracted city (restoring the original description); unlisted items
        are accepted.
        """

        self._require("confirm review", ImportState.REVIEW_PENDING)
        assert self.pending is not None
        rows = list(self.pending.rows)
        rejected = {i for i, ok in (decisions or {}).items() if not ok}
        for item in self.pending.review_items:
            match item:
                case CityFromDescriptionReview(row_index=i, source_value=original):
                    if i in rejected:
                        rows[i] = self._revert_city(rows[i], original)
        if rejected:
            _logger.info("import:review rejected=%d", len(rejected))
        return self._accept(rows)

    def _revert_city(self, row: BulkExpenseRow, original: str) -> BulkExpenseRow:
        changes: dict[str, Any] = {"description": original, "city": "", "city_id": None}
        if self._categorizer is not None:
            match = self._categorizer.categorize(original)
            changes["category_id"] = match.category_id
            changes["matched_keywords"] = match.matched_keywords
        if self.stats is not None and self.stats.auto_detected_cities:
            self.stats.auto_detected_cities -= 1
        return dataclasses.replace(row, **changes)

    def cancel_review(self) -> ImportState:
        self._require("cancel review", ImportState.REVIEW_PENDING)
        self.pending = None
        self._move(ImportState.MAPPING if self.raw is not None else ImportState.IDLE)
        return self.state

    # -- grid ----------------------------------------------------------------

    def _index_of(self, temp_id: str) -> int:
        for i, row in enumerate(self.grid):
            if row.temp_id == temp_id:
                return i
        raise KeyError(temp_id)

    def update_row(self, temp_id: str, **changes: Any) -> BulkExpenseRow:
        self._require("edit the grid", ImportState.PREVIEWING, ImportState.FAILED)
        unknown = set(changes) - _EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"not editable: {', '.join(sorted(unknown))}")
        i = self._index_of(temp_id)
        if "city" in changes:
            catalog, _ = self._ensure_catalogs()
            resolved = catalog.resolve(changes["city"] or "")
            changes["city_id"] = resolved.city_id if resolved else None
        self.grid[i] = dataclasses.replace(self.grid[i], **changes)
        return self.grid[i]

    def remove_row(self, temp_id: str) -> None:
        self._require("edit the grid", ImportState.PREVIEWING, ImportState.FAILED)
        del self.grid[self._index_of(temp_id)]

    def validate_grid(self) -> dict[str, str]:
        """Return ``{"<temp_id>-<field>": message}`` for every invalid cell."""

        errors: dict[str, str] = {}
        for row in self.grid:
            if row.amount <= 0:
                errors[f"{row.temp_id}-amount"] = "Amount must be greater than 0"
            if not row.description.strip():
                errors[f"{row.temp_id}-description"] = "Description is required"
            if not row.expense_date:
                errors[f"{row.temp_id}-expense_date"] = "Date is required"
            if row.expense_time and not _HHMM_RE.match(row.expense_time.strip()):
                errors[f"{row.temp_id}-expense_time"] = "Time must be HH:MM"
        return errors

    def flag_duplicates(self, existing: Iterable[LedgerEntry]) -> list[DuplicateFlag]:
        self._require("flag duplicates", ImportState.PREVIEWING, ImportState.FAILED)
        return flag_duplicates(self.grid, existing)

    def remove_flagged(self, flags: Iterable[DuplicateFlag]) -> int:
        ids = {f.temp_id for f in flags}
        before = len(self.grid)
        self.grid = [r for r in self.grid if r.temp_id not in ids]
        return before - len(self.grid)

    # -- commit --------------------------------------------------------------

    def commit_grid(self) -> ImportState:
        self._require("commit the grid", ImportState.PREVIEWING)
        self._branch = "preview"
        return self._commit(list(self.grid))

    def retry(self) -> ImportState:
        """Resubmit the batch that failed, unchanged unless edited in the grid."""

        self._require("retry the commit", ImportState.FAILED)
        if self._branch == "direct":
            return self._commit(self.direct_batch)
        return self._commit(list(self.grid))

    def _commit(self, rows: list[BulkExpenseRow]) -> ImportState:
        if self._committer is None:
            raise RuntimeError("no committer configured for this import session")
        if not rows:
            raise ValueError("nothing to commit")
        self._move(ImportState.COMMITTING)
        payloads = [row_payload(r) for r in rows]
        try:
            result = self._committer.commit(payloads)
        except Exception as exc:
            self.last_error = str(exc)
            self._move(ImportState.FAILED)
            raise
        self.result = result
        if not result.success:
            self.last_error = result.error or "commit failed"
            self._move(ImportState.FAILED)
            return self.state
        self.last_error = None
        if self._branch == "direct":
            self.direct_batch = []
        else:
            self.grid = []
        self._move(ImportState.DONE)
        return self.state

    def reset(self) -> None:
        self._require(
            "reset",
            *(s for s in ImportState if s is not ImportState.COMMITTING),
        )
        self._reset_data()
        self._move(ImportState.IDLE)


def format_commit_summary(result: CommitResult) -> str:
    if result.stats is None:
        return result.error or "Commit failed"
    s = result.stats
    return (
        f"Created {s.success} of {s.total}, {s.failed} with errors, "
        f"{s.uncategorized} uncategorized"
    )


__all__ = [
    "CatalogSource",
    "ExpenseCommitter",
    "ImportSession",
    "ImportState",
    "format_commit_summary",
]
