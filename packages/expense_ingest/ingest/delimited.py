"""Delimited-text statements (CSV, semicolon and tab separated exports).

The delimiter is chosen from the first non-blank line: ``;`` when present,
else a tab, else a comma. Tokenizing is delegated to the stdlib :mod:`csv`
reader so quoted fields keep embedded delimiters (and newlines).
"""

from __future__ import annotations

import csv
import re
from io import StringIO

from ..errors import EmptyInputError, IngestError
from ..logging_setup import get_logger
from ..models import RawTable

_logger = get_logger("expense_ingest.ingest.delimited")

_WRAPPING_QUOTES_RE = re.compile(r'^"|"$')


def detect_delimiter(first_line: str) -> str:
    if ";" in first_line:
        return ";"
    if "\t" in first_line:
        return "\t"
    return ","


def _clean_cell(value: str) -> str:
    return _WRAPPING_QUOTES_RE.sub("", value.strip()).strip()


def read_delimited_rows(text: str, *, delimiter: str | None = None) -> list[list[str]]:
    """Tokenize ``text`` into trimmed rows, dropping blank lines.

    ``delimiter`` overrides detection from the first non-blank line.
    """

    first = next((ln for ln in text.splitlines() if ln.strip()), None)
    if first is None:
        raise EmptyInputError("The file is empty or contains no data")
    delimiter = delimiter or detect_delimiter(first)
    _logger.debug("delimited:detected delimiter=%r", delimiter)

    rows: list[list[str]] = []
    with StringIO(text) as f:
        reader = csv.reader(f, delimiter=delimiter, skipinitialspace=True)
        try:
            for record in reader:
                cells = [_clean_cell(c) for c in record]
                if any(cells):
                    rows.append(cells)
        except csv.Error as exc:
            raise IngestError(
                f"Malformed delimited text near line {reader.line_num}: {exc}"
            ) from exc
    if not rows:
        raise EmptyInputError("The file is empty or contains no data")
    return rows


def parse_delimited(text: str) -> RawTable:
    """Parse delimited text; the first row becomes ``headers``."""

    rows = read_delimited_rows(text)
    table = RawTable.from_lists(rows[0], rows[1:])
    _logger.debug(
        "delimited:parsed headers=%d rows=%d", len(table.headers), table.total_rows
    )
    return table


__all__ = ["detect_delimiter", "parse_delimited", "read_delimited_rows"]
