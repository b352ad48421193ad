from datetime import date
from decimal import Decimal

from ledger_db.client import session_scope
from ledger_db.models.expenses import Expense, UnrecognizedCity
from sqlalchemy import select

from expense_ingest.persistence import (
    DatabaseCatalogSource,
    DatabaseCommitter,
    commit_bulk_expenses,
    load_city_records,
    load_existing_expenses,
    load_keyword_entries,
    remember_unrecognized_city,
)
from tests.helpers.db import bootstrap_sqlite_db, seed_cities, seed_keywords


def _ledger(tmp_path):
    url = bootstrap_sqlite_db(tmp_path / "ledger.db")
    categories = seed_keywords(
        database_url=url,
        keywords=[
            ("coffee", "Cafe", ["кофе"]),
            ("coffee beans", "Groceries", []),
        ],
    )
    cities = seed_cities(database_url=url, cities={"Minsk": ["Mensk"], "Gomel": []})
    return url, categories, cities


def test_dictionaries_load_newest_keyword_first(tmp_path):
    url, categories, cities = _ledger(tmp_path)
    with session_scope(database_url=url) as session:
        entries = load_keyword_entries(session)
        records = load_city_records(session)

    assert [e.keyword for e in entries] == ["coffee beans", "coffee"]
    assert entries[1].synonyms == ("кофе",)
    assert entries[1].category_id == categories["Cafe"]
    assert [(r.name, r.synonyms) for r in records] == [("Gomel", ()), ("Minsk", ("Mensk",))]
    assert records[1].id == cities["Minsk"]


def test_bulk_commit_categorizes_resolves_and_reports_row_errors(tmp_path):
    url, categories, cities = _ledger(tmp_path)
    payloads = [
        {
            "amount": Decimal("5"),
            "description": "Coffee beans 1kg",
            "expense_date": "2024-01-01",
            "city_input": "Mensk",
        },
        {"amount": "0", "description": "Nothing", "expense_date": "2024-01-01"},
        {
            "amount": "3.456",
            "description": "Taxi",
            "expense_date": "2024-01-02",
            "expense_time": "9:05",
            "city_id": "not-a-city",
            "city_input": "Springfield",
        },
        {
            "amount": "2",
            "description": "Утренний кофе",
            "expense_date": "2024-01-02",
            "city_input": "springfield",
            "notes": "",
        },
    ]

    with session_scope(database_url=url) as session:
        result = commit_bulk_expenses(session, payloads)

    assert result.success is True
    assert result.stats is not None
    assert (result.stats.success, result.stats.failed, result.stats.total) == (3, 1, 4)
    assert result.stats.uncategorized == 1
    (row_error,) = result.errors
    assert row_error.row == 2
    assert row_error.message.startswith("amount:")

    with session_scope(database_url=url) as session:
        expenses = {
            e.description: e for e in session.execute(select(Expense)).scalars()
        }
        beans = expenses["Coffee beans 1kg"]
        assert beans.category_id == categories["Groceries"]
        assert beans.matched_keywords == ["coffee beans"]
        assert beans.auto_categorized is True
        assert beans.city_id == cities["Minsk"]
        assert beans.status == "categorized"

        taxi = expenses["Taxi"]
        assert taxi.amount == Decimal("3.46")
        assert taxi.expense_time == "09:05"
        assert taxi.city_id is None
        assert taxi.raw_city_input == "Springfield"
        assert taxi.status == "uncategorized"

        morning = expenses["Утренний кофе"]
        assert morning.matched_keywords == ["coffee (кофе)"]
        assert morning.notes is None

        (unknown,) = session.execute(select(UnrecognizedCity)).scalars()
        assert (unknown.name, unknown.frequency) == ("Springfield", 2)


def test_unrecognized_city_counter_accumulates(tmp_path):
    url, _, _ = _ledger(tmp_path)
    with session_scope(database_url=url) as session:
        remember_unrecognized_city(session, "Springfield")
        remember_unrecognized_city(session, " springfield ", occurrences=3)
        remember_unrecognized_city(session, "   ")

    with session_scope(database_url=url) as session:
        (unknown,) = session.execute(select(UnrecognizedCity)).scalars()
        assert unknown.frequency == 4
        assert unknown.first_seen <= unknown.last_seen


def test_empty_and_all_invalid_batches_fail(tmp_path):
    url, _, _ = _ledger(tmp_path)
    with session_scope(database_url=url) as session:
        empty = commit_bulk_expenses(session, [])
        invalid = commit_bulk_expenses(
            session, [{"amount": "-1", "description": "x", "expense_date": "2024-01-01"}]
        )

    assert (empty.success, empty.error) == (False, "No data to create")
    assert (invalid.success, invalid.error) == (False, "No valid rows to create")
    assert [e.row for e in invalid.errors] == [1]


def test_existing_expenses_in_date_window(tmp_path):
    url, _, _ = _ledger(tmp_path)
    committer = DatabaseCommitter(database_url=url)
    result = committer.commit(
        [
            {"amount": "10", "description": "Tea", "expense_date": "2024-01-01"},
            {"amount": "11", "description": "Cake", "expense_date": "2024-02-01"},
        ]
    )
    assert result.success is True

    with session_scope(database_url=url) as session:
        entries = load_existing_expenses(session, date(2024, 1, 1), date(2024, 1, 31))
    assert [(e.expense_date, e.amount, e.description) for e in entries] == [
        ("2024-01-01", Decimal("10.00"), "Tea")
    ]


def test_catalog_source_reads_through_its_own_sessions(tmp_path):
    url, categories, _ = _ledger(tmp_path)
    source = DatabaseCatalogSource(database_url=url)
    assert [c.name for c in source.load_cities()] == ["Gomel", "Minsk"]
    assert source.load_keywords()[0].category_id == categories["Groceries"]
