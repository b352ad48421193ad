"""Binary spreadsheet workbooks (``.xlsx``/``.xls``) are not read.

Workbooks are rejected up front with guidance to export the sheet as
delimited text, instead of being fed to a text parser that would produce
garbage rows.
"""

from __future__ import annotations

from ..errors import UnsupportedFormatError
from ..models import RawTable

SPREADSHEET_GUIDANCE = (
    "Spreadsheet workbooks (.xlsx/.xls) are not supported. "
    "Save the sheet as CSV and import that file instead."
)


def parse_spreadsheet(content: bytes) -> RawTable:
    raise UnsupportedFormatError(SPREADSHEET_GUIDANCE)


__all__ = ["SPREADSHEET_GUIDANCE", "parse_spreadsheet"]
