from datetime import date
from decimal import Decimal
from itertools import count

import pytest

from expense_ingest.api import build_rows_from_file
from expense_ingest.cities import CityCatalog, CityRecord
from expense_ingest.ingest.delimited import parse_delimited
from expense_ingest.keywords import KeywordCategorizer, KeywordEntry
from expense_ingest.models import ColumnMapping, ImportStats
from expense_ingest.rows import build_rows, description_rows, format_build_summary
from expense_ingest.table import normalize_table

TODAY = date(2024, 5, 1)


def _ids():
    seq = count(1)
    return lambda: f"row-{next(seq)}"


def _mapping(*fields: str | tuple[str, ...] | None, hidden: tuple[int, ...] = ()):
    out = []
    for i, f in enumerate(fields):
        targets = () if f is None else (f if isinstance(f, tuple) else (f,))
        out.append(ColumnMapping(source_index=i, target_fields=targets, hidden=i in hidden))
    return out


def _table(text: str):
    return normalize_table(parse_delimited(text))


def test_statement_line_becomes_row_with_resolved_city():
    catalog = CityCatalog([CityRecord(id="c1", name="Minsk")])
    built = build_rows(
        _table("01.01.2024,100.50,Coffee Minsk"),
        _mapping("date", "amount", "description"),
        catalog=catalog,
        today=TODAY,
        id_factory=_ids(),
    )

    assert built.stats.skipped_rows == 0
    assert built.stats.imported_rows == 1
    (row,) = built.rows
    assert row.temp_id == "row-1"
    assert row.expense_date == "2024-01-01"
    assert row.amount == Decimal("100.50")
    assert row.description == "Coffee"
    assert row.city == "Minsk"
    assert row.city_id == "c1"

    (item,) = built.review_items
    assert item.row_index == 0
    assert item.column_label == "C"
    assert item.source_value == "Coffee Minsk"
    assert item.confidence == pytest.approx(0.7)
    assert built.stats.auto_detected_cities == 1


def test_rows_without_positive_amount_or_description_are_skipped():
    text = "\n".join(
        [
            "01.01.2024,abc,Tea",
            "01.01.2024,0,Tea",
            "01.01.2024,5,",
            "02.01.2024,\"-12,50\",Cake",
        ]
    )
    built = build_rows(
        _table(text), _mapping("date", "amount", "description"), today=TODAY
    )
    assert built.stats.total_rows == 4
    assert built.stats.skipped_rows == 3
    (row,) = built.rows
    assert row.amount == Decimal("12.50")
    assert row.expense_date == "2024-01-02"


def test_time_in_date_cell_wins_over_time_column():
    text = "31.12.2023 14:05,5,Tea,09:00\n31.12.2023,6,Tea,09:30\n31.12.2023,7,Tea,"
    built = build_rows(
        _table(text), _mapping("date", "amount", "description", "time"), today=TODAY
    )
    assert [r.expense_time for r in built.rows] == ["14:05", "09:30", None]
    assert built.stats.detected_times == 1
    assert built.stats.manual_times == 1


def test_missing_date_falls_back_to_today():
    built = build_rows(_table("5,Tea"), _mapping("amount", "description"), today=TODAY)
    assert built.rows[0].expense_date == "2024-05-01"


def test_city_column_skips_extraction():
    built = build_rows(
        _table("01.01.2024,5,Coffee Minsk,Gomel"),
        _mapping("date", "amount", "description", "city"),
        today=TODAY,
    )
    (row,) = built.rows
    assert row.city == "Gomel"
    assert row.description == "Coffee Minsk"
    assert built.review_items == ()
    assert built.stats.manual_cities == 1
    assert built.stats.auto_detected_cities == 0


def test_confident_city_can_skip_review():
    built = build_rows(
        _table("01.01.2024,5,BY SUPERMARKET LOGOYSK"),
        _mapping("date", "amount", "description"),
        no_review=0.9,
        today=TODAY,
    )
    (row,) = built.rows
    assert row.description == "Supermarket"
    assert row.city == "Logoysk"
    assert built.review_items == ()
    assert built.stats.auto_detected_cities == 1


def test_low_confidence_city_is_ignored():
    built = build_rows(
        _table("01.01.2024,5,\"Lunch, Springfield\""),
        _mapping("date", "amount", "description"),
        today=TODAY,
    )
    (row,) = built.rows
    assert row.description == "Lunch, Springfield"
    assert row.city == ""
    assert built.review_items == ()


def test_hidden_columns_are_ignored_and_labels_skip_them():
    built = build_rows(
        _table("999,01.01.2024,5,Coffee Minsk"),
        _mapping("amount", "date", "amount", "description", hidden=(0,)),
        today=TODAY,
    )
    (row,) = built.rows
    assert row.amount == Decimal("5")
    assert built.review_items[0].column_label == "C"


def test_one_column_can_feed_several_fields():
    built = build_rows(
        _table("31.12.2023 14:05,5,Tea"),
        _mapping(("date", "time"), "amount", "description"),
        today=TODAY,
    )
    (row,) = built.rows
    assert (row.expense_date, row.expense_time) == ("2023-12-31", "14:05")


def test_categorizer_sees_cleaned_description():
    categorizer = KeywordCategorizer([KeywordEntry("coffee", "cat-cafe")])
    built = build_rows(
        _table("01.01.2024,5,Coffee Minsk"),
        _mapping("date", "amount", "description"),
        categorizer=categorizer,
        today=TODAY,
    )
    (row,) = built.rows
    assert row.category_id == "cat-cafe"
    assert row.matched_keywords == ("coffee",)


def test_description_rows_drop_blank_cells():
    rows = description_rows(["Milk", "  ", " Bread "], today=TODAY, id_factory=_ids())
    assert [(r.temp_id, r.description, r.amount) for r in rows] == [
        ("row-1", "Milk", Decimal("0")),
        ("row-2", "Bread", Decimal("0")),
    ]
    assert {r.expense_date for r in rows} == {"2024-05-01"}


def test_build_summary_text():
    stats = ImportStats(
        total_rows=5,
        imported_rows=4,
        skipped_rows=1,
        auto_detected_cities=2,
        manual_cities=1,
        detected_times=3,
        manual_times=0,
    )
    assert format_build_summary(stats) == (
        "Imported 4 of 5 rows, skipped 1; cities: 2 auto-detected, 1 from column; "
        "times: 3 detected, 0 from column"
    )


def test_build_rows_from_file_runs_parse_normalize_and_map(tmp_path):
    path = tmp_path / "statement.csv"
    path.write_text("Date;Amount;Description\n05.02.2024;1 234,50;Rent\n", encoding="utf-8")
    built = build_rows_from_file(path, _mapping("date", "amount", "description"))
    (row,) = built.rows
    assert (row.expense_date, row.amount, row.description) == (
        "2024-02-05",
        Decimal("1234.50"),
        "Rent",
    )
