from decimal import Decimal

from expense_ingest.api import categorization_stats
from expense_ingest.duplicates import LedgerEntry, flag_duplicates, is_duplicate
from expense_ingest.keywords import KeywordCategorizer, KeywordEntry
from expense_ingest.models import BulkExpenseRow


def _categorizer() -> KeywordCategorizer:
    return KeywordCategorizer(
        [
            KeywordEntry("coffee", "cat-cafe", ("кофе",)),
            KeywordEntry("shop", "cat-shop"),
            KeywordEntry("coffee shop", "cat-never"),
        ]
    )


def test_first_matching_keyword_wins_in_supplied_order():
    match = _categorizer().categorize("Coffee Shop Minsk")
    assert match.category_id == "cat-cafe"
    assert match.matched_keywords == ("coffee",)
    assert match.auto_categorized is True


def test_synonym_match_records_keyword_and_synonym():
    match = _categorizer().categorize("Утренний КОФЕ")
    assert match.category_id == "cat-cafe"
    assert match.matched_keywords == ("coffee (кофе)",)


def test_no_match_and_empty_description():
    categorizer = _categorizer()
    assert categorizer.categorize("Taxi").category_id is None
    assert categorizer.categorize("   ").auto_categorized is False
    stats = categorization_stats(
        [categorizer.categorize("coffee"), categorizer.categorize("taxi")]
    )
    assert (stats.total, stats.categorized, stats.uncategorized) == (2, 1, 1)
    assert stats.rate == 50.0


def test_amounts_within_a_cent_are_duplicates():
    existing = LedgerEntry("2024-01-01", Decimal("10.00"), "Coffee Shop")
    assert is_duplicate(LedgerEntry("2024-01-01", Decimal("10.005"), " coffee shop "), existing)
    assert not is_duplicate(LedgerEntry("2024-01-01", Decimal("10.02"), "Coffee Shop"), existing)
    assert not is_duplicate(LedgerEntry("2024-01-02", Decimal("10.00"), "Coffee Shop"), existing)
    assert not is_duplicate(LedgerEntry("2024-01-01", Decimal("10.00"), "Tea Shop"), existing)


def test_flag_duplicates_marks_rows_without_dropping_them():
    rows = [
        BulkExpenseRow("t1", Decimal("5.00"), "Tea", "2024-01-01"),
        BulkExpenseRow("t2", Decimal("7.00"), "Cake", "2024-01-01"),
    ]
    existing = [LedgerEntry("2024-01-01", Decimal("5.00"), "TEA")]
    flags = flag_duplicates(rows, existing)
    assert [(f.row_index, f.temp_id) for f in flags] == [(0, "t1")]
    assert len(rows) == 2
