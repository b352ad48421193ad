"""Cell-level normalizers: amount, date, and time.

Bank exports mix locales freely, so the helpers here accept the common
spellings seen in statements (``1 234,56``, ``1.234,56``, ``1,234.56``,
``(50.00)``; ``31.12.2023 9:05``, ``20231231``) and return canonical values:
``Decimal`` amounts, ISO ``YYYY-MM-DD`` dates, and ``HH:MM`` times.

Malformed amounts raise ``ValueError``; the row builder treats that as a
skipped row. Dates never raise and fall back to today, matching how statements
with an unexpected date column are still importable.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from datetime import date
from decimal import Decimal, InvalidOperation

from dateutil import parser as date_parser

# ---------------------------------------------------------------------------
# Amounts
# ---------------------------------------------------------------------------

_AMOUNT_JUNK_RE = re.compile(r"[^\d.,\s]")
_WS_RE = re.compile(r"\s+")


def _split_sign(s: str) -> tuple[bool, str]:
    """Strip leading sign/parenthesis markers in any order; return (negative, rest)."""

    negative = False
    while s:
        if s[0] in "-−":
            negative = True
            s = s[1:].lstrip()
        elif s[0] == "+":
            s = s[1:].lstrip()
        elif s[0] == "(":
            negative = True
            s = s[1:].rstrip(")").strip()
        else:
            break
    return negative, s


def parse_amount(raw: str) -> Decimal:
    """Parse a locale-formatted amount into a signed ``Decimal``.

    Separator disambiguation:

    - spaces and a comma: spaces group thousands, the comma is decimal
    - comma and dot: whichever appears last is decimal, the other groups
    - a single comma with at most two digits after it is decimal
    - any other commas group thousands

    Raises
    ------
    ValueError
        When nothing numeric remains after cleanup.
    """

    if raw is None:
        raise ValueError("amount is required")
    s = raw.strip()
    if not s:
        raise ValueError("amount is empty")

    # Currency codes/symbols may precede the sign ("BYN -12,50", "$(5.00)")
    negative, s = _split_sign(re.sub(r"^[^\d\s()+\-−.,]+", "", s).strip())
    s = _AMOUNT_JUNK_RE.sub("", s).strip()

    if _WS_RE.search(s):
        s = _WS_RE.sub("", s)
        if "," in s:
            s = s.replace(",", ".", 1) if "." not in s else s.replace(",", "")
    elif "," in s and "." in s:
        if s.rfind(",") > s.rfind("."):
            s = s.replace(".", "").replace(",", ".")
        else:
            s = s.replace(",", "")
    elif "," in s:
        head, _, tail = s.partition(",")
        if s.count(",") == 1 and len(tail) <= 2:
            s = f"{head}.{tail}"
        else:
            s = s.replace(",", "")

    try:
        d = Decimal(s)
    except InvalidOperation as exc:
        raise ValueError(f"invalid amount: {raw!r}") from exc
    if not d.is_finite():
        raise ValueError(f"invalid amount: {raw!r}")
    return -abs(d) if negative else d


# ---------------------------------------------------------------------------
# Dates and times
# ---------------------------------------------------------------------------

_MIN_YEAR = 1900
_MAX_YEAR = 2100

_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::\d{2})?$")


def parse_time(raw: str | None) -> str | None:
    """Return ``HH:MM`` for a valid ``H:MM``/``HH:MM[:SS]`` token, else ``None``."""

    if not raw:
        return None
    m = _TIME_RE.match(raw.strip())
    if m is None:
        return None
    hour, minute = int(m.group(1)), int(m.group(2))
    if hour > 23 or minute > 59:
        return None
    return f"{hour:02d}:{minute:02d}"


type _DateParts = tuple[str, str, str, str | None]
"""(year, month, day, time) captured from a matched cell."""


def _dmy(m: re.Match[str]) -> _DateParts:
    return m.group(3), m.group(2), m.group(1), None


def _dmy_time(m: re.Match[str]) -> _DateParts:
    return m.group(3), m.group(2), m.group(1), m.group(4)


def _ymd(m: re.Match[str]) -> _DateParts:
    return m.group(1), m.group(2), m.group(3), None


# Ordered; the first matcher whose result lands inside (1900, 2100) wins.
_DATE_FORMATS: tuple[tuple[re.Pattern[str], Callable[[re.Match[str]], _DateParts]], ...] = (
    (re.compile(r"^(\d{4})-(\d{2})-(\d{2})$"), _ymd),
    (re.compile(r"^(\d{2})\.(\d{2})\.(\d{4})\s+(\d{2}:\d{2})$"), _dmy_time),
    (re.compile(r"^(\d{2})\.(\d{2})\.(\d{4})\s+(\d{1,2}:\d{2})$"), _dmy_time),
    (re.compile(r"^(\d{1,2})\.(\d{1,2})\.(\d{4})\s+(\d{1,2}:\d{2})$"), _dmy_time),
    (re.compile(r"^(\d{2})\.(\d{2})\.(\d{4})$"), _dmy),
    (re.compile(r"^(\d{2})/(\d{2})/(\d{4})$"), _dmy),
    (re.compile(r"^(\d{2})-(\d{2})-(\d{4})$"), _dmy),
    (re.compile(r"^(\d{4})(\d{2})(\d{2})$"), _ymd),
    (re.compile(r"^(\d{1,2})\.(\d{1,2})\.(\d{4})$"), _dmy),
    (re.compile(r"^(\d{4})\.(\d{2})\.(\d{2})$"), _ymd),
)


def _in_range(d: date) -> bool:
    return _MIN_YEAR < d.year < _MAX_YEAR


def _today_iso() -> str:
    return date.today().isoformat()


def _match_known_format(s: str) -> tuple[str, str | None] | None:
    for pattern, extract in _DATE_FORMATS:
        m = pattern.match(s)
        if m is None:
            continue
        year, month, day, time_part = extract(m)
        try:
            d = date(int(year), int(month), int(day))
        except ValueError:
            continue
        if not _in_range(d):
            continue
        return d.isoformat(), parse_time(time_part)
    return None


_ISO_SHAPE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def _generic_parse(s: str) -> tuple[str, str | None] | None:
    # ISO-shaped cells were already judged by the strict matcher
    if _ISO_SHAPE_RE.match(s):
        return None
    try:
        dt = date_parser.parse(s, dayfirst=True)
    except (ValueError, OverflowError):
        return None
    if not _in_range(dt.date()):
        return None
    has_time = ":" in s
    return dt.date().isoformat(), (f"{dt.hour:02d}:{dt.minute:02d}" if has_time else None)


def parse_date_and_time(raw: str | None) -> tuple[str, str | None]:
    """Return ``(iso_date, hhmm_or_None)`` for a date cell.

    Combined ``DD.MM.YYYY H:MM`` cells yield both parts. Cells none of the
    ordered matchers accept go through ``dateutil`` (day first), e.g.
    ``2023/12/31`` or ``Dec 31, 2023``; anything still unparsed, or outside
    the year window, yields today's date and no time.
    """

    s = (raw or "").strip()
    if not s:
        return _today_iso(), None
    return _match_known_format(s) or _generic_parse(s) or (_today_iso(), None)


def parse_date(raw: str | None) -> str:
    """Return an ISO ``YYYY-MM-DD`` string for ``raw`` (today when unparseable)."""

    return parse_date_and_time(raw)[0]


__all__ = [
    "parse_amount",
    "parse_date",
    "parse_date_and_time",
    "parse_time",
]
