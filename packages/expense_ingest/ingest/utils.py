"""Statement loading shared by the CLI, the API, and the import session.

Picks a parser from the file extension, decodes raw bytes, and exposes the
clipboard-paste entry point. Unknown extensions are read as delimited text.
"""

from __future__ import annotations

from os import PathLike
from pathlib import Path
from typing import Literal

from ..logging_setup import get_logger
from ..models import RawTable, TableInfo
from .delimited import parse_delimited, read_delimited_rows
from .html_tables import analyze_html, parse_html
from .ofx import ofx_codec, parse_ofx
from .spreadsheet import parse_spreadsheet

_logger = get_logger("expense_ingest.ingest.utils")

type StatementFormat = Literal["delimited", "html", "spreadsheet", "ofx"]

_EXTENSION_FORMATS: dict[str, StatementFormat] = {
    "csv": "delimited",
    "txt": "delimited",
    "html": "html",
    "htm": "html",
    "xlsx": "spreadsheet",
    "xls": "spreadsheet",
    "ofx": "ofx",
    "qfx": "ofx",
}

# Legacy bank exports in the region are Windows-1251 when not UTF-8
_FALLBACK_CODEC = "cp1251"


def detect_format(filename: str | PathLike[str]) -> StatementFormat:
    ext = Path(filename).suffix.lower().lstrip(".")
    return _EXTENSION_FORMATS.get(ext, "delimited")


def decode_statement(content: bytes, fmt: StatementFormat = "delimited") -> str:
    """Decode statement bytes: OFX header charset, else UTF-8, else cp1251."""

    codec = ofx_codec(content) if fmt == "ofx" else None
    if codec:
        return content.decode(codec, errors="replace")
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError:
        _logger.debug("decode:utf-8 failed; falling back to %s", _FALLBACK_CODEC)
        return content.decode(_FALLBACK_CODEC, errors="replace")


def parse_statement(
    content: bytes | str,
    filename: str | PathLike[str],
    *,
    table_index: int | None = None,
) -> RawTable:
    """Parse statement ``content`` with the parser implied by ``filename``.

    ``table_index`` only applies to HTML statements; ``None`` auto-selects.

    Raises
    ------
    IngestError
        Any parser failure, including the unsupported-spreadsheet stub.
    """

    fmt = detect_format(filename)
    _logger.debug("statement:format=%s file=%s", fmt, Path(filename).name)
    if fmt == "spreadsheet":
        raw = content if isinstance(content, bytes) else content.encode("utf-8")
        return parse_spreadsheet(raw)
    text = decode_statement(content, fmt) if isinstance(content, bytes) else content
    if fmt == "html":
        return parse_html(text, table_index)
    if fmt == "ofx":
        return parse_ofx(text)
    return parse_delimited(text)


def load_statement(path: str | PathLike[str], *, table_index: int | None = None) -> RawTable:
    p = Path(path)
    return parse_statement(p.read_bytes(), p, table_index=table_index)


def list_tables(path: str | PathLike[str]) -> list[TableInfo]:
    """Describe the tables of an HTML statement (empty for other formats)."""

    p = Path(path)
    if detect_format(p) != "html":
        return []
    return analyze_html(decode_statement(p.read_bytes(), "html"))


def parse_clipboard(text: str) -> RawTable:
    """Parse pasted spreadsheet cells (tab-separated unless none are present)."""

    first = next((ln for ln in text.splitlines() if ln.strip()), "")
    delimiter = "\t" if "\t" in first else None
    rows = read_delimited_rows(text, delimiter=delimiter)
    return RawTable.from_lists(rows[0], rows[1:])


__all__ = [
    "StatementFormat",
    "decode_statement",
    "detect_format",
    "list_tables",
    "load_statement",
    "parse_clipboard",
    "parse_statement",
]
