"""In-memory keyword categorizer.

The keyword list (with synonyms) is loaded once per bulk run. A description
matches the first entry whose keyword or any synonym is a case-insensitive
substring of it; entries are tried in the order supplied (the catalog loader
returns the most recently created first). No scoring, no longest-match.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from .logging_setup import get_logger

_logger = get_logger("expense_ingest.keywords")


@dataclass(frozen=True, slots=True)
class KeywordEntry:
    keyword: str
    category_id: str
    synonyms: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class CategoryMatch:
    category_id: str | None
    matched_keywords: tuple[str, ...] = ()
    auto_categorized: bool = False


NO_MATCH = CategoryMatch(category_id=None)


class KeywordCategorizer:
    def __init__(self, entries: Iterable[KeywordEntry] = ()) -> None:
        self._entries: list[tuple[KeywordEntry, str, tuple[tuple[str, str], ...]]] = []
        for entry in entries:
            base = entry.keyword.strip().casefold()
            syns = tuple((s.strip(), s.strip().casefold()) for s in entry.synonyms if s.strip())
            self._entries.append((entry, base, syns))

    def __len__(self) -> int:
        return len(self._entries)

    def categorize(self, description: str) -> CategoryMatch:
        """Return the category of the first matching keyword.

        ``matched_keywords`` holds the literal that fired: the keyword itself,
        or ``"keyword (synonym)"`` when a synonym matched.
        """

        text = (description or "").strip().casefold()
        if not text:
            return NO_MATCH
        for entry, base, synonyms in self._entries:
            if base and base in text:
                return CategoryMatch(entry.category_id, (entry.keyword,), True)
            for literal, folded in synonyms:
                if folded in text:
                    label = f"{entry.keyword} ({literal})"
                    return CategoryMatch(entry.category_id, (label,), True)
        return NO_MATCH


@dataclass(frozen=True, slots=True)
class CategorizationStats:
    total: int
    categorized: int
    uncategorized: int

    @property
    def rate(self) -> float:
        """Categorized share in percent."""

        return self.categorized / self.total * 100 if self.total else 0.0


def categorization_stats(results: Sequence[CategoryMatch]) -> CategorizationStats:
    categorized = sum(1 for r in results if r.category_id is not None)
    return CategorizationStats(
        total=len(results), categorized=categorized, uncategorized=len(results) - categorized
    )


__all__ = [
    "NO_MATCH",
    "CategorizationStats",
    "CategoryMatch",
    "KeywordCategorizer",
    "KeywordEntry",
    "categorization_stats",
]
