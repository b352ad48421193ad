"""Format-specific statement parsers producing :class:`~expense_ingest.models.RawTable`."""

from .delimited import parse_delimited
from .html_tables import analyze_html, parse_html
from .ofx import parse_ofx
from .spreadsheet import parse_spreadsheet
from .utils import detect_format, load_statement, parse_clipboard, parse_statement

__all__ = [
    "analyze_html",
    "detect_format",
    "load_statement",
    "parse_clipboard",
    "parse_delimited",
    "parse_html",
    "parse_ofx",
    "parse_spreadsheet",
    "parse_statement",
]
