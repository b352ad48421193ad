"""HTML statements: table discovery and transaction-table extraction.

Bank portals export statements as web pages holding several ``<table>``
elements (account header, balance summary, operations). The stdlib
:class:`html.parser.HTMLParser` is used to build a light table model (rows,
cells, ``th``/``td`` kind, ``class``/``id``, ``colspan``, the ``thead``
section) plus the short text blocks that precede each table, which is all the
heuristics below need.

Public surface:

- :func:`analyze_html` lists every table as :class:`TableInfo` so a human can
  pick one.
- :func:`parse_html` extracts ``headers`` and cleaned data rows from the
  selected table, dropping section headers, totals/footer rows, and rows that
  are much shorter than the header.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from html.parser import HTMLParser

from ..errors import (
    NoTablesFoundError,
    NoTransactionsFoundError,
    SpreadsheetFramesetError,
    TableIndexError,
)
from ..logging_setup import get_logger
from ..models import RawTable, Row, TableInfo

_logger = get_logger("expense_ingest.ingest.html_tables")

PREVIEW_ROWS = 4
PREVIEW_CELL_CHARS = 30

# Rows this much shorter than the header are treated as layout noise
_SHORT_ROW_TOLERANCE = 2

_CAPTION_BLOCK_TAGS = frozenset({"h1", "h2", "h3", "h4", "h5", "h6", "p", "div"})
_CELL_TAGS = frozenset({"td", "th"})
_SECTION_TAGS = frozenset({"thead", "tbody", "tfoot"})

_SECTION_WORDS = ("операции", "итого", "зачислено", "списано")
_FOOTER_KEYWORDS = (
    "итого",
    "всего",
    "сумма",
    "total",
    "остаток",
    "баланс",
    "выписка сформирована",
    "количество операций",
    "зачислено",
    "списано",
    "задолженность",
    "просроченная",
    "вознаграждение",
    "комиссия",
)
_DATE_TOKEN_RE = re.compile(r"\d{1,2}[.\-/]\d{1,2}[.\-/]\d{2,4}")

_MONEY_CLASS_HINTS = ("debit", "credit", "amount", "sum")
_MONEY_WITH_CURRENCY_RE = re.compile(r"[\d\s,.\-]+(руб|₽|RUB|BYN|USD|EUR)", re.IGNORECASE)
_BARE_NUMBER_RE = re.compile(r"^\s*[\d\s,.\-]+\s*$")

_ENTITY_LEFTOVERS = (
    ("&nbsp;", " "),
    ("&amp;", "&"),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&quot;", '"'),
    ("\xa0", " "),
)
_WS_RE = re.compile(r"\s+")


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------


def clean_html_text(text: str) -> str:
    """Collapse whitespace and decode the entities that survive a parse."""

    for entity, replacement in _ENTITY_LEFTOVERS:
        text = text.replace(entity, replacement)
    return _WS_RE.sub(" ", text).strip()


def clean_money_text(text: str) -> str:
    """Strip currency decoration from a money cell, keeping its sign."""

    sign = text[0] if text[:1] in ("-", "+") else ""
    digits = re.sub(r"[^\d,.\s\-]", "", text).strip()
    if sign and digits.startswith(sign):
        digits = digits[1:].lstrip()
    has_space = bool(_WS_RE.search(digits))
    if has_space and "," in digits:
        digits = _WS_RE.sub("", digits).replace(",", ".")
    elif has_space:
        digits = _WS_RE.sub("", digits)
    return f"{sign}{digits}"


def _truncate(text: str, limit: int = PREVIEW_CELL_CHARS) -> str:
    return text[:limit] + "..." if len(text) > limit else text


# ---------------------------------------------------------------------------
# Light table model
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class _Cell:
    tag: str
    css_class: str
    colspan: int
    parts: list[str] = field(default_factory=list)

    @property
    def text(self) -> str:
        return clean_html_text("".join(self.parts))


@dataclass(slots=True)
class _TableRow:
    section: str | None
    cells: list[_Cell] = field(default_factory=list)

    @property
    def texts(self) -> list[str]:
        return [c.text for c in self.cells]


@dataclass(slots=True)
class _Table:
    index: int
    css_class: str
    element_id: str
    preceding_texts: tuple[str, ...]
    rows: list[_TableRow] = field(default_factory=list)
    caption_parts: list[str] = field(default_factory=list)
    has_thead: bool = False
    # Parser cursor
    section: str | None = None
    open_row: _TableRow | None = None
    open_cell: _Cell | None = None
    in_caption: bool = False

    @property
    def caption(self) -> str:
        return clean_html_text("".join(self.caption_parts))


class _StatementHTMLParser(HTMLParser):
    """Collect tables, sheet links, and caption-like text blocks."""

    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.tables: list[_Table] = []
        self.sheet_links: list[str] = []
        self.saw_frameset = False
        self._open: list[_Table] = []
        self._blocks: list[list[str]] = []
        self._recent_blocks: list[str] = []

    # -- table bookkeeping -------------------------------------------------

    @staticmethod
    def _close_cell(table: _Table) -> None:
        if table.open_cell is not None and table.open_row is not None:
            table.open_row.cells.append(table.open_cell)
        table.open_cell = None

    def _close_row(self, table: _Table) -> None:
        self._close_cell(table)
        if table.open_row is not None:
            table.rows.append(table.open_row)
        table.open_row = None

    def _open_table(self, attrs: dict[str, str | None]) -> None:
        # Nearest block first; only blocks closed since the previous table count
        preceding = tuple(reversed(self._recent_blocks[-3:])) if not self._open else ()
        table = _Table(
            index=len(self.tables),
            css_class=(attrs.get("class") or "").strip(),
            element_id=(attrs.get("id") or "").strip(),
            preceding_texts=preceding,
        )
        self.tables.append(table)
        self._open.append(table)
        self._recent_blocks.clear()

    # -- HTMLParser hooks --------------------------------------------------

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        t = tag.lower()
        amap = {k.lower(): v for k, v in attrs}
        if t == "frameset" or t == "frame":
            self.saw_frameset = True
        elif t == "link":
            href = amap.get("href") or ""
            if "sheet" in href.lower():
                self.sheet_links.append(href)
        if t == "table":
            self._open_table(amap)
            return
        if not self._open:
            if t in _CAPTION_BLOCK_TAGS:
                self._blocks.append([])
            return

        table = self._open[-1]
        if t in _SECTION_TAGS:
            self._close_row(table)
            table.section = t
            if t == "thead":
                table.has_thead = True
        elif t == "caption":
            table.in_caption = True
        elif t == "tr":
            self._close_row(table)
            table.open_row = _TableRow(section=table.section)
        elif t in _CELL_TAGS:
            self._close_cell(table)
            if table.open_row is None:
                table.open_row = _TableRow(section=table.section)
            try:
                colspan = int(amap.get("colspan") or 1)
            except ValueError:
                colspan = 1
            table.open_cell = _Cell(tag=t, css_class=(amap.get("class") or ""), colspan=colspan)
        elif t == "br" and table.open_cell is not None:
            table.open_cell.parts.append(" ")

    def handle_endtag(self, tag: str) -> None:
        t = tag.lower()
        if t == "table":
            if self._open:
                table = self._open.pop()
                self._close_row(table)
            self._recent_blocks.clear()
            return
        if not self._open:
            if t in _CAPTION_BLOCK_TAGS and self._blocks:
                text = clean_html_text("".join(self._blocks.pop()))
                if text:
                    self._recent_blocks.append(text)
            return

        table = self._open[-1]
        if t in _SECTION_TAGS:
            self._close_row(table)
            table.section = None
        elif t == "caption":
            table.in_caption = False
        elif t == "tr":
            self._close_row(table)
        elif t in _CELL_TAGS:
            self._close_cell(table)

    def handle_data(self, data: str) -> None:
        if self._open:
            table = self._open[-1]
            if table.open_cell is not None:
                table.open_cell.parts.append(data)
            elif table.in_caption:
                table.caption_parts.append(data)
            return
        for block in self._blocks:
            block.append(data)

    def close(self) -> None:
        super().close()
        while self._open:
            self._close_row(self._open.pop())


def _parse_document(content: str) -> _StatementHTMLParser:
    parser = _StatementHTMLParser()
    parser.feed(content)
    parser.close()
    return parser


def _load_tables(content: str) -> list[_Table]:
    doc = _parse_document(content)
    if not doc.tables:
        looks_like_spreadsheet = (
            "Excel.Sheet" in content or "Microsoft Excel" in content or doc.saw_frameset
        )
        if looks_like_spreadsheet and doc.sheet_links:
            raise SpreadsheetFramesetError(
                "This is a spreadsheet export split into frames. Save it as "
                '"Web Page, Complete" or export a single sheet, then try again.'
            )
        raise NoTablesFoundError("No tables were found in the HTML file")
    _logger.debug("html:found tables=%d", len(doc.tables))
    return doc.tables


# ---------------------------------------------------------------------------
# Table discovery
# ---------------------------------------------------------------------------


def _header_keyword_label(table: _Table, number: int) -> str | None:
    if not table.rows:
        return None
    headers = [t.lower() for t in table.rows[0].texts if t]
    if not headers:
        return None

    def any_has(*words: str) -> bool:
        return any(w in h for h in headers for w in words)

    if any_has(
        "дата операции", "дата отражения", "место операции", "код авторизации"
    ):
        return f"Transaction details ({number})"
    if any_has("дата", "сумма", "операция", "date", "amount", "transaction"):
        return f"Transactions table {number}"
    if any_has("остаток", "задолженность", "период", "balance", "period"):
        return f"Account summary ({number})"
    return f'Table "{", ".join(headers[:2])}" ({number})'


def _describe(table: _Table) -> str:
    number = table.index + 1
    if table.caption:
        return table.caption
    for text in table.preceding_texts:
        if 10 < len(text) < 100 and not text.isdigit():
            return text

    css = table.css_class
    if "section_3" in css or "transactions" in css:
        return f"Transaction details ({number})"
    if "section_2" in css:
        return f"Account summary ({number})"
    if "section_1" in css:
        return f"Account information ({number})"
    if css:
        return f"Table {number} (class: {css})"
    if table.element_id:
        return f"Table {number} (id: {table.element_id})"
    return _header_keyword_label(table, number) or f"Table {number}"


def analyze_html(content: str) -> list[TableInfo]:
    """Describe every ``<table>`` in ``content`` for selection by a human.

    Raises
    ------
    SpreadsheetFramesetError
        The page is a frameset saved from a spreadsheet application.
    NoTablesFoundError
        The page holds no tables at all.
    """

    infos: list[TableInfo] = []
    for table in _load_tables(content):
        first = table.rows[0] if table.rows else None
        preview: tuple[Row, ...] = tuple(
            tuple(_truncate(t) for t in row.texts) for row in table.rows[:PREVIEW_ROWS]
        )
        infos.append(
            TableInfo(
                index=table.index,
                description=_describe(table),
                row_count=len(table.rows),
                column_count=len(first.cells) if first else 0,
                has_headers=bool(first and any(c.tag == "th" for c in first.cells)),
                preview=preview,
            )
        )
    return infos


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------


def _auto_select(tables: list[_Table]) -> _Table:
    """Prefer tables whose class/id marks them as the operations list."""

    def matches(t: _Table, needle: str) -> bool:
        return needle in t.css_class.lower() or needle in t.element_id.lower()

    checks = (
        lambda t: "section_3" in t.css_class.split(),
        lambda t: "transactions" in t.css_class.split(),
        lambda t: matches(t, "transaction"),
        lambda t: matches(t, "operation"),
    )
    for check in checks:
        for table in tables:
            if check(table):
                return table
    return tables[0]


def is_money_cell(css_class: str, text: str) -> bool:
    lowered = css_class.lower()
    if any(hint in lowered for hint in _MONEY_CLASS_HINTS):
        return True
    return bool(_MONEY_WITH_CURRENCY_RE.search(text) or _BARE_NUMBER_RE.match(text))


def is_footer_row(cells: list[str]) -> bool:
    """Totals/balance/count rows carry a keyword and no date-like token."""

    joined = " ".join(cells).lower()
    if not any(k in joined for k in _FOOTER_KEYWORDS):
        return False
    return _DATE_TOKEN_RE.search(joined) is None


def _is_section_header(row: _TableRow, cells: list[str]) -> bool:
    if not any(c.colspan > 1 for c in row.cells):
        return False
    return any(w in cell.lower() for cell in cells for w in _SECTION_WORDS)


def _row_values(row: _TableRow) -> list[str]:
    values: list[str] = []
    for cell in row.cells:
        text = cell.text
        if text and is_money_cell(cell.css_class, text):
            text = clean_money_text(text)
        values.append(text)
    return values


def parse_html(content: str, table_index: int | None = None) -> RawTable:
    """Extract headers and data rows from one table of an HTML statement.

    Parameters
    ----------
    content:
        Decoded HTML text.
    table_index:
        Zero-based table to read (see :func:`analyze_html`). ``None`` picks
        the table that looks most like an operations list.
    """

    tables = _load_tables(content)
    if table_index is None:
        table = _auto_select(tables)
    elif 0 <= table_index < len(tables):
        table = tables[table_index]
    else:
        raise TableIndexError(
            f"Table {table_index + 1} does not exist; the file has {len(tables)} table(s)"
        )
    if not table.rows:
        raise NoTransactionsFoundError("The selected table has no rows")

    header_row = next((r for r in table.rows if r.section == "thead"), table.rows[0])
    headers = header_row.texts
    if table.has_thead:
        body = [r for r in table.rows if r.section not in ("thead", "tfoot")]
    else:
        body = [r for r in table.rows[1:] if r.section != "tfoot"]

    data: list[list[str]] = []
    for row in body:
        cells = _row_values(row)
        if not any(cells):
            continue
        if _is_section_header(row, cells):
            continue
        if is_footer_row(cells):
            _logger.debug("html:skip footer row=%r", cells)
            continue
        if len(cells) < len(headers) - _SHORT_ROW_TOLERANCE:
            continue
        data.append(cells)

    if not data:
        raise NoTransactionsFoundError("No transaction rows were found in the table")
    _logger.debug("html:parsed table=%d headers=%d rows=%d", table.index, len(headers), len(data))
    return RawTable.from_lists(headers, data)


__all__ = [
    "analyze_html",
    "clean_html_text",
    "clean_money_text",
    "is_footer_row",
    "is_money_cell",
    "parse_html",
]
