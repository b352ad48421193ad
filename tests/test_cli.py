from pathlib import Path

from ledger_db.client import session_scope
from ledger_db.models.expenses import Expense
from sqlalchemy import func, select
from typer.testing import CliRunner

from expense_ingest.cli import app
from tests.helpers.db import bootstrap_sqlite_db, seed_cities, seed_keywords

runner = CliRunner()

MAP_ARGS = ["--map", "date=A", "--map", "amount=B", "--map", "description=C"]

TWO_TABLES = """
<html><body>
<h2>Account summary</h2>
<table><tr><td>Name</td><td>Value</td></tr><tr><td>Opening</td><td>10</td></tr></table>
<h2>Transactions</h2>
<table>
<tr><th>Date</th><th>Amount</th><th>Description</th></tr>
<tr><td>01.01.2024</td><td>100.50</td><td>Coffee Minsk</td></tr>
</table>
</body></html>
"""


def _statement(tmp_path: Path) -> Path:
    path = tmp_path / "statement.csv"
    path.write_text(
        "Date,Amount,Description\n01.01.2024,100.50,Coffee Minsk\n02.01.2024,7,Tea\n",
        encoding="utf-8",
    )
    return path


def test_import_needs_a_database_url(tmp_path):
    result = runner.invoke(app, ["import", str(_statement(tmp_path)), *MAP_ARGS])
    assert result.exit_code == 2
    assert "DATABASE_URL" in result.output


def test_dry_run_prints_staged_rows_without_a_database(tmp_path):
    result = runner.invoke(
        app, ["import", str(_statement(tmp_path)), *MAP_ARGS, "--yes", "--dry-run"]
    )
    assert result.exit_code == 0, result.output
    assert "Imported 2 of 2 rows, skipped 0" in result.output
    assert "2024-01-01\t100.50\tCoffee [Minsk]" in result.output
    assert "2024-01-02\t7\tTea" in result.output


def test_incomplete_mapping_lists_columns(tmp_path):
    result = runner.invoke(
        app, ["import", str(_statement(tmp_path)), "--map", "amount=B", "--dry-run"]
    )
    assert result.exit_code == 2
    assert "description" in result.output
    assert "C: 'Description' -> -" in result.output


def test_bad_map_option_is_a_usage_error(tmp_path):
    result = runner.invoke(
        app, ["import", str(_statement(tmp_path)), "--map", "amount", "--dry-run"]
    )
    assert result.exit_code == 2
    assert "FIELD=COLUMN" in result.output


def test_missing_file_is_reported(tmp_path):
    result = runner.invoke(app, ["import", str(tmp_path / "nope.csv"), "--dry-run"])
    assert result.exit_code == 1
    assert "File not found" in result.output


def test_import_commits_then_skips_duplicates(tmp_path):
    url = bootstrap_sqlite_db(tmp_path / "ledger.db")
    seed_keywords(database_url=url, keywords=[("coffee", "Cafe", [])])
    seed_cities(database_url=url, cities={"Minsk": []})
    statement = str(_statement(tmp_path))

    first = runner.invoke(
        app, ["import", statement, *MAP_ARGS, "--yes", "--database-url", url]
    )
    assert first.exit_code == 0, first.output
    assert "Created 2 of 2, 0 with errors, 1 uncategorized" in first.output

    second = runner.invoke(
        app, ["import", statement, "--yes", "--skip-duplicates", "--database-url", url]
    )
    assert second.exit_code == 0, second.output
    assert "Skipped 2 duplicate row(s)." in second.output
    assert "Nothing to import." in second.output

    with session_scope(database_url=url) as session:
        assert session.execute(select(func.count(Expense.id))).scalar_one() == 2


def test_skip_duplicates_requires_preview(tmp_path):
    result = runner.invoke(
        app,
        [
            "import",
            str(_statement(tmp_path)),
            "--direct",
            "--skip-duplicates",
            "--database-url",
            "sqlite+pysqlite:///unused.db",
        ],
    )
    assert result.exit_code == 2


def test_mapping_show_and_reset(tmp_path):
    runner.invoke(app, ["import", str(_statement(tmp_path)), *MAP_ARGS, "--yes", "--dry-run"])

    shown = runner.invoke(app, ["mapping", "show", "3"])
    assert shown.exit_code == 0
    assert "A: 'Date' -> date" in shown.output
    assert "B: 'Amount' -> amount" in shown.output

    assert runner.invoke(app, ["mapping", "reset"]).exit_code == 0
    after = runner.invoke(app, ["mapping", "show", "3"])
    assert "No saved mapping for 3 columns." in after.output


def test_tables_lists_html_tables(tmp_path):
    path = tmp_path / "statement.html"
    path.write_text(TWO_TABLES, encoding="utf-8")
    result = runner.invoke(app, ["tables", str(path)])
    assert result.exit_code == 0, result.output
    assert "[0] " in result.output
    assert "[1] " in result.output
    assert "Coffee Minsk" in result.output


def test_tables_on_csv_explains_itself(tmp_path):
    result = runner.invoke(app, ["tables", str(_statement(tmp_path))])
    assert result.exit_code == 0
    assert "Only HTML statements" in result.output


def test_init_db_creates_tables(tmp_path):
    url = f"sqlite+pysqlite:///{tmp_path / 'fresh.db'}"
    result = runner.invoke(app, ["init-db", "--database-url", url])
    assert result.exit_code == 0, result.output
    assert "Ledger tables are ready." in result.output
