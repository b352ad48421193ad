"""OFX/QFX transaction-record statements.

Only the ``<STMTTRN>`` blocks are read. Both the SGML flavor (unclosed leaf
tags) and the XML flavor are accepted because every field is pulled with a
pattern that stops at the next tag or line break.
"""

from __future__ import annotations

import re

from ..errors import NoTransactionsFoundError
from ..logging_setup import get_logger
from ..models import RawTable

_logger = get_logger("expense_ingest.ingest.ofx")

OFX_HEADERS: tuple[str, ...] = ("Date", "Amount", "Description", "Balance")

_BLOCK_RE = re.compile(r"<STMTTRN>(.*?)</STMTTRN>", re.IGNORECASE | re.DOTALL)
_DTPOSTED_RE = re.compile(r"<DTPOSTED>\s*(\d{8})", re.IGNORECASE)
_TRNAMT_RE = re.compile(r"<TRNAMT>\s*([-+\d.,]+)", re.IGNORECASE)
_MEMO_RE = re.compile(r"<MEMO>\s*([^<\r\n]+)", re.IGNORECASE)
_NAME_RE = re.compile(r"<NAME>\s*([^<\r\n]+)", re.IGNORECASE)

# OFX 1.x SGML header values -> Python codec names
_CHARSET_CODECS: dict[str, str] = {
    "1251": "cp1251",
    "WINDOWS-1251": "cp1251",
    "1252": "cp1252",
    "WINDOWS-1252": "cp1252",
    "CP1252": "cp1252",
    "ISO-8859-1": "latin-1",
    "UTF-8": "utf-8",
    "ASCII": "ascii",
    "USASCII": "ascii",
}


def ofx_codec(content: bytes) -> str | None:
    """Return the codec named by an OFX SGML header block, if any."""

    head = content[:1024].decode("ascii", errors="ignore")
    fields: dict[str, str] = {}
    for line in head.splitlines():
        line = line.strip()
        if line.startswith("<"):
            break
        key, sep, value = line.partition(":")
        if sep:
            fields[key.strip().upper()] = value.strip().upper()
    for key in ("CHARSET", "ENCODING"):
        codec = _CHARSET_CODECS.get(fields.get(key, ""))
        if codec:
            return codec
    return None


def _first(pattern: re.Pattern[str], block: str) -> str:
    m = pattern.search(block)
    return m.group(1).strip() if m else ""


def parse_ofx(text: str) -> RawTable:
    """Return one ``[date, amount, description, balance]`` row per block.

    Raises
    ------
    NoTransactionsFoundError
        When the text contains no ``<STMTTRN>`` block.
    """

    blocks = _BLOCK_RE.findall(text)
    if not blocks:
        raise NoTransactionsFoundError("No transactions were found in the OFX file")

    rows: list[list[str]] = []
    for block in blocks:
        posted = _first(_DTPOSTED_RE, block)
        date = f"{posted[:4]}-{posted[4:6]}-{posted[6:8]}" if posted else ""
        description = _first(_MEMO_RE, block) or _first(_NAME_RE, block) or "Transaction"
        rows.append([date, _first(_TRNAMT_RE, block), description, ""])
    _logger.debug("ofx:parsed transactions=%d", len(rows))
    return RawTable.from_lists(OFX_HEADERS, rows)


__all__ = ["OFX_HEADERS", "ofx_codec", "parse_ofx"]
