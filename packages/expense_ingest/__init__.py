"""Public interface for the ``expense_ingest`` package.

Symbol re-exports only: the API functions and the public models/types.
"""

from .api import (
    ImportSession,
    ImportState,
    MappingEditor,
    build_rows,
    build_rows_from_file,
    extract_city_from_description,
    flag_duplicates,
    load_statement,
    normalize_table,
    parse_amount,
    parse_clipboard,
    parse_date,
    parse_statement,
)
from .errors import IngestError, InvalidTransitionError
from .models import (
    BuildResult,
    BulkExpenseRow,
    CityFromDescriptionReview,
    ColumnMapping,
    CommitResult,
    ExpenseField,
    ImportStats,
    NormalizedTable,
    RawTable,
    TableInfo,
)

__all__ = [
    # API
    "ImportSession",
    "ImportState",
    "MappingEditor",
    "build_rows",
    "build_rows_from_file",
    "extract_city_from_description",
    "flag_duplicates",
    "load_statement",
    "normalize_table",
    "parse_amount",
    "parse_clipboard",
    "parse_date",
    "parse_statement",
    # Models / types
    "BuildResult",
    "BulkExpenseRow",
    "CityFromDescriptionReview",
    "ColumnMapping",
    "CommitResult",
    "ExpenseField",
    "ImportStats",
    "IngestError",
    "InvalidTransitionError",
    "NormalizedTable",
    "RawTable",
    "TableInfo",
]
