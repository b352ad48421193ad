"""Public API surface for the ``expense_ingest`` package.

This module serves as a stable import surface: the concrete implementations
live in the pipeline modules and are re-exported here. DB-backed helpers are
imported from ``expense_ingest.persistence`` directly so importing the API
does not require a configured database.
"""

from __future__ import annotations

from collections.abc import Sequence
from os import PathLike

from .cities import (
    CityCatalog,
    batch_extract_cities,
    city_stats,
    extract_city_from_description,
    format_city_display,
)
from .duplicates import flag_duplicates, is_duplicate
from .ingest.utils import list_tables, load_statement, parse_clipboard, parse_statement
from .keywords import CategorizationStats, KeywordCategorizer, categorization_stats
from .mapping import MappingEditor, load_saved_mapping, serialize_mapping
from .models import BuildResult, ColumnMapping
from .normalizers import parse_amount, parse_date, parse_date_and_time, parse_time
from .rows import build_rows, format_build_summary
from .table import normalize_table
from .workflows.import_flow import ImportSession, ImportState, format_commit_summary


def build_rows_from_file(
    path: str | PathLike[str],
    mappings: Sequence[ColumnMapping],
    *,
    table_index: int | None = None,
    catalog: CityCatalog | None = None,
    categorizer: KeywordCategorizer | None = None,
) -> BuildResult:
    """Parse, normalize and map a statement file in one call (no review, no commit)."""

    table = normalize_table(load_statement(path, table_index=table_index))
    return build_rows(table, mappings, catalog=catalog, categorizer=categorizer)


__all__ = [
    "CategorizationStats",
    "ImportSession",
    "ImportState",
    "MappingEditor",
    "batch_extract_cities",
    "build_rows",
    "build_rows_from_file",
    "categorization_stats",
    "city_stats",
    "extract_city_from_description",
    "flag_duplicates",
    "format_build_summary",
    "format_city_display",
    "format_commit_summary",
    "is_duplicate",
    "list_tables",
    "load_saved_mapping",
    "load_statement",
    "normalize_table",
    "parse_amount",
    "parse_clipboard",
    "parse_date",
    "parse_date_and_time",
    "parse_statement",
    "parse_time",
    "serialize_mapping",
]
