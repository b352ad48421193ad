"""City extraction from statement descriptions and catalog resolution.

Card statements in the region embed the merchant city in the description in a
handful of shapes (``BY KEBAB FACTORY, MINSK``, ``BY SUPERMARKET LOGOYSK``,
``TAXI MINSKBY ORDER``, ``Shop "GOMEL"``). :data:`CITY_PATTERNS` lists them in
priority order as ``(pattern, base confidence, capture mapping)`` entries;
appending a pattern never changes how earlier ones tie-break.

Scoring: the base confidence of the matching pattern, plus ``+0.3`` when the
token is a known city or ``+0.2`` when it is a catalog synonym, capped at
``1.0``. A token that is neither is not a city and the pattern is skipped.
The highest score across all patterns wins; ties keep the earlier pattern.

Resolution maps a city string (extracted or typed in a column) onto the
catalog by case-insensitive canonical name, then synonym. Failures are
counted in an :class:`UnrecognizedCityCounter` and flushed to the tracker once
per name with the total number of mentions.
"""

from __future__ import annotations

import re
from collections import Counter
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass

from .logging_setup import get_logger

_logger = get_logger("expense_ingest.cities")

DEFAULT_KNOWN_CITIES: tuple[str, ...] = (
    "MINSK",
    "GOMEL",
    "MOGILEV",
    "VITEBSK",
    "GRODNO",
    "BREST",
    "LOGOYSK",
    "BORISOV",
    "BARANOVICHI",
    "PINSK",
    "ORSHA",
    "MOZYR",
    "NOVOPOLOTSK",
    "LIDA",
    "MOLODECHNO",
    "SOLIGORSK",
    "SLUTSK",
    "ZHLOBIN",
    "SVETLOGORSK",
    "RECHITSA",
    "BOBRUISK",
    "POLOTSK",
    "МИНСК",
    "ГОМЕЛЬ",
    "МОГИЛЕВ",
    "ВИТЕБСК",
    "ГРОДНО",
    "БРЕСТ",
    "ЛОГОЙСК",
    "БОРИСОВ",
    "БАРАНОВИЧИ",
    "ПИНСК",
    "ОРША",
    "МОЗЫРЬ",
    "НОВОПОЛОЦК",
    "ЛИДА",
    "МОЛОДЕЧНО",
    "СОЛИГОРСК",
    "СЛУЦК",
    "ЖЛОБИН",
    "СВЕТЛОГОРСК",
    "РЕЧИЦА",
    "БОБРУЙСК",
    "ПОЛОЦК",
)

KNOWN_CITY_BONUS = 0.3
SYNONYM_BONUS = 0.2

# ----------------------------------------------------------------------------
# Catalog
# ----------------------------------------------------------------------------


def format_city_display(value: str) -> str:
    """``"NOVOPOLOTSK"`` -> ``"Novopolotsk"``; every word capitalized."""

    return " ".join(w[:1].upper() + w[1:] for w in value.lower().split())


@dataclass(frozen=True, slots=True)
class CityRecord:
    id: str
    name: str
    synonyms: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class ResolvedCity:
    city_id: str | None
    name: str
    matched_synonym: str | None = None


class CityCatalog:
    """Known cities (built-in list plus catalog records) with synonym lookup.

    Built-in names are recognized for scoring but carry no ``city_id``; only
    catalog records resolve to an id.
    """

    def __init__(
        self,
        cities: Iterable[CityRecord] = (),
        *,
        known_cities: Iterable[str] = DEFAULT_KNOWN_CITIES,
    ) -> None:
        self._by_name: dict[str, CityRecord] = {}
        self._by_synonym: dict[str, tuple[CityRecord, str]] = {}
        for record in cities:
            self._by_name.setdefault(record.name.strip().casefold(), record)
            for syn in record.synonyms:
                if syn.strip():
                    self._by_synonym.setdefault(syn.strip().casefold(), (record, syn.strip()))
        self._known = {c.casefold() for c in known_cities} | set(self._by_name)

    def __len__(self) -> int:
        return len(self._by_name)

    def is_known(self, token: str) -> bool:
        return token.strip().casefold() in self._known

    def synonym_target(self, token: str) -> CityRecord | None:
        hit = self._by_synonym.get(token.strip().casefold())
        return hit[0] if hit else None

    def resolve(self, name: str) -> ResolvedCity | None:
        """Look ``name`` up by canonical name, then synonym (case-insensitive)."""

        key = name.strip().casefold()
        if not key:
            return None
        record = self._by_name.get(key)
        if record is not None:
            return ResolvedCity(city_id=record.id, name=record.name)
        hit = self._by_synonym.get(key)
        if hit is not None:
            record, synonym = hit
            return ResolvedCity(city_id=record.id, name=record.name, matched_synonym=synonym)
        return None

    def display_name(self, token: str) -> str:
        record = self._by_name.get(token.strip().casefold())
        return record.name if record is not None else format_city_display(token)


_DEFAULT_CATALOG = CityCatalog()


# ----------------------------------------------------------------------------
# Extraction
# ----------------------------------------------------------------------------

_LETTERS = "A-ZА-ЯЁ"


@dataclass(frozen=True, slots=True)
class CityPattern:
    name: str
    regex: re.Pattern[str]
    confidence: float
    city_group: int
    clean: Callable[[re.Match[str]], str]


def _group(n: int) -> Callable[[re.Match[str]], str]:
    return lambda m: (m.group(n) or "").strip()


def _around(before: int, after: int) -> Callable[[re.Match[str]], str]:
    return lambda m: f"{(m.group(before) or '').strip()} {(m.group(after) or '').strip()}".strip()


CITY_PATTERNS: tuple[CityPattern, ...] = (
    CityPattern(
        "prefix-name-comma-city",
        re.compile(rf"^(BY|MN)\s+(.+?),\s*([{_LETTERS}]+)$", re.IGNORECASE),
        0.9,
        3,
        _group(2),
    ),
    CityPattern(
        "prefix-name-city",
        re.compile(rf"^(BY|MN)\s+(.+?)\s+([{_LETTERS}]+)$", re.IGNORECASE),
        0.8,
        3,
        _group(2),
    ),
    CityPattern(
        "city-glued-to-prefix",
        re.compile(rf"^(?:(.*?)\s+)?([{_LETTERS}]{{2,}})(?-i:BY|MN)\s+(.+)$", re.IGNORECASE),
        0.7,
        2,
        _group(3),
    ),
    CityPattern(
        "quoted-city",
        re.compile(rf"^(.+?)\s*[(\"']([{_LETTERS}]+)[)\"'](.*)$", re.IGNORECASE),
        0.6,
        2,
        _around(1, 3),
    ),
    CityPattern(
        "comma-city",
        re.compile(rf"^(.+?),\s*([{_LETTERS}]+)(.*)$", re.IGNORECASE),
        0.5,
        2,
        _around(1, 3),
    ),
    # Bare trailing word; only clears the auto-accept bar for known cities
    CityPattern(
        "trailing-city",
        re.compile(rf"^(.+?)\s+([{_LETTERS}]+)$", re.IGNORECASE),
        0.4,
        2,
        _group(1),
    ),
)


@dataclass(frozen=True, slots=True)
class CityExtraction:
    """Outcome of :func:`extract_city_from_description`.

    ``city`` is the upper-cased token (the canonical catalog name when it
    matched a synonym); ``display_city`` is the human form.
    """

    original_description: str
    clean_description: str
    city: str | None
    display_city: str | None
    confidence: float
    pattern: str | None = None
    matched_synonym: str | None = None


_PREFIX_RE = re.compile(r"^(BY|MN)\s+", re.IGNORECASE)
_PUNCT_RE = re.compile(r"[\",]")


def clean_description(text: str, *, city: str | None = None) -> str:
    """Drop the country prefix and a standalone city token; title-case words."""

    text = _PREFIX_RE.sub("", text)
    text = _PUNCT_RE.sub(" ", text)
    words = text.split()
    if city:
        words = [w for w in words if w.casefold() != city.casefold()]
    return " ".join(w[:1].upper() + w[1:] for w in (w.lower() for w in words))


def _score(
    token: str, base: float, catalog: CityCatalog
) -> tuple[float, str, str | None] | None:
    """Return (confidence, canonical token, matched synonym), or ``None`` when
    the token is neither a known city nor a synonym."""

    if catalog.is_known(token):
        return min(base + KNOWN_CITY_BONUS, 1.0), token, None
    target = catalog.synonym_target(token)
    if target is not None:
        return min(base + SYNONYM_BONUS, 1.0), target.name.upper(), token
    return None


def extract_city_from_description(
    description: str, catalog: CityCatalog | None = None
) -> CityExtraction:
    """Find the most plausible city mentioned in ``description``.

    Returns an extraction with ``city=None`` and zero confidence when no
    pattern matches; the original text is then kept as the clean description.
    """

    catalog = catalog or _DEFAULT_CATALOG
    original = (description or "").strip()
    best = CityExtraction(
        original_description=original,
        clean_description=original,
        city=None,
        display_city=None,
        confidence=0.0,
    )
    if not original:
        return best

    for pattern in CITY_PATTERNS:
        m = pattern.regex.match(original)
        if m is None:
            continue
        token = m.group(pattern.city_group).upper()
        scored = _score(token, pattern.confidence, catalog)
        if scored is None:
            continue
        confidence, canonical, synonym = scored
        if confidence <= best.confidence:
            continue
        display = catalog.display_name(canonical)
        best = CityExtraction(
            original_description=original,
            clean_description=clean_description(pattern.clean(m) or original, city=token),
            city=canonical,
            display_city=f"{display} ({format_city_display(synonym)})" if synonym else display,
            confidence=confidence,
            pattern=pattern.name,
            matched_synonym=synonym,
        )
    if best.city is not None:
        _logger.debug(
            "cities:extracted city=%s confidence=%.2f pattern=%s",
            best.city,
            best.confidence,
            best.pattern,
        )
    return best


def batch_extract_cities(
    descriptions: Sequence[str], catalog: CityCatalog | None = None
) -> list[CityExtraction]:
    return [extract_city_from_description(d, catalog) for d in descriptions]


@dataclass(frozen=True, slots=True)
class CityStats:
    total: int
    with_city: int
    by_city: dict[str, int]


def city_stats(descriptions: Sequence[str], catalog: CityCatalog | None = None) -> CityStats:
    """Count descriptions whose best extraction scores above 0.5, per city."""

    counts: Counter[str] = Counter()
    for result in batch_extract_cities(descriptions, catalog):
        if result.city and result.confidence > 0.5:
            counts[result.city] += 1
    return CityStats(total=len(descriptions), with_city=sum(counts.values()), by_city=dict(counts))


# ----------------------------------------------------------------------------
# Unrecognized cities
# ----------------------------------------------------------------------------


class UnrecognizedCityCounter:
    """Case-insensitive mention counts, keeping the first spelling seen."""

    def __init__(self) -> None:
        self._names: dict[str, str] = {}
        self._counts: Counter[str] = Counter()

    def add(self, name: str, occurrences: int = 1) -> None:
        cleaned = name.strip()
        if not cleaned or occurrences <= 0:
            return
        key = cleaned.casefold()
        self._names.setdefault(key, cleaned)
        self._counts[key] += occurrences

    def items(self) -> list[tuple[str, int]]:
        return [(self._names[k], n) for k, n in self._counts.items()]

    def __len__(self) -> int:
        return len(self._counts)

    def flush(self, remember: Callable[[str, int], None]) -> int:
        """Report each name once with its total count; returns names flushed."""

        items = self.items()
        for name, occurrences in items:
            remember(name, occurrences)
        self._names.clear()
        self._counts.clear()
        return len(items)


__all__ = [
    "CITY_PATTERNS",
    "DEFAULT_KNOWN_CITIES",
    "CityCatalog",
    "CityExtraction",
    "CityPattern",
    "CityRecord",
    "CityStats",
    "ResolvedCity",
    "UnrecognizedCityCounter",
    "batch_extract_cities",
    "city_stats",
    "clean_description",
    "extract_city_from_description",
    "format_city_display",
]
