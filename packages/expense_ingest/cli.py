"""CLI for the ``expense_ingest`` package.

This module exposes callable command handlers (``cmd_tables``,
``cmd_import``, ...) and a Typer-based console interface. Environment
variables (notably ``DATABASE_URL``) are loaded from a local ``.env`` using
``python-dotenv`` before delegating to command logic. Business logic lives in
``expense_ingest.workflows.import_flow`` and related modules.

Handlers print user-facing failures as ``Error: ...`` on stderr and return
``1``; configuration problems (no database URL, bad ``--map`` syntax) return
``2``.
"""

from __future__ import annotations

import sys
from collections.abc import Sequence
from datetime import date
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv
from typer.models import ArgumentInfo

from .errors import IngestError
from .logging_setup import configure_logging
from .mapping import MappingEditor
from .models import ExpenseField


def _err(message: str) -> None:
    print(f"Error: {message}", file=sys.stderr)


def _parse_map_option(option: str) -> tuple[ExpenseField, str]:
    field_name, sep, label = option.partition("=")
    fld = ExpenseField.from_identifier(field_name)
    if not sep or fld is None or not label.strip():
        raise ValueError(f"invalid --map {option!r}; expected FIELD=COLUMN (e.g. amount=B)")
    return fld, label.strip()


def _apply_map_options(editor: MappingEditor, options: Sequence[str]) -> None:
    for option in options:
        fld, label = _parse_map_option(option)
        column = editor.column_for_label(label)
        if editor.assigned_column(fld) != column:
            editor.assign(fld, column)


def _print_columns(editor: MappingEditor, header: Sequence[str]) -> None:
    for column in editor.visible_columns():
        preview = header[column] if column < len(header) else ""
        fields = ", ".join(f.value for f in editor.fields_for(column)) or "-"
        print(f"  {editor.label_for(column)}: {preview!r} -> {fields}")


# ---- Command handlers ---------------------------------------------------------


def cmd_tables(path: str) -> int:
    """List the tables of an HTML statement with a short preview of each."""

    from .ingest.utils import detect_format, list_tables

    if detect_format(path) != "html":
        print("Only HTML statements can hold several tables.")
        return 0
    try:
        tables = list_tables(path)
    except FileNotFoundError:
        _err(f"File not found: {path}")
        return 1
    except IngestError as e:
        _err(str(e))
        return 1

    for info in tables:
        print(
            f"[{info.index}] {info.description} "
            f"({info.row_count} rows x {info.column_count} columns)"
        )
        for row in info.preview:
            print("    " + " | ".join(row))
    return 0


def cmd_import(
    path: str,
    *,
    table_index: int | None = None,
    map_options: Sequence[str] = (),
    direct: bool = False,
    assume_yes: bool = False,
    dry_run: bool = False,
    skip_duplicates: bool = False,
    database_url: str | None = None,
) -> int:
    """Import a statement file into the ledger.

    Steps: load and normalize the file, seed the column mapping from the last
    saved one and apply ``--map`` overrides, build rows, confirm cities taken
    from descriptions (unless ``assume_yes``), then commit. ``dry_run`` stops
    after printing the staged rows.
    """

    from ledger_db.client import resolve_database_url

    from .duplicates import LedgerEntry
    from .mapping_store import SettingsStore
    from .persistence import DatabaseCatalogSource, DatabaseCommitter, load_existing_expenses
    from .rows import format_build_summary
    from .term_ui import confirm_review_items
    from .workflows.import_flow import ImportSession, ImportState, format_commit_summary

    url: str | None
    try:
        url = resolve_database_url(database_url)
    except RuntimeError as e:
        if not dry_run:
            _err(str(e))
            return 2
        url = None
    if skip_duplicates and direct:
        _err("--skip-duplicates needs the preview mode (drop --direct)")
        return 2
    if dry_run:
        direct = False

    session = ImportSession(
        committer=DatabaseCommitter(database_url=url) if url else None,
        catalogs=DatabaseCatalogSource(database_url=url) if url else None,
        store=SettingsStore(),
    )

    try:
        session.load_file(path, table_index=table_index)
    except FileNotFoundError:
        _err(f"File not found: {path}")
        return 1
    except IngestError as e:
        _err(str(e))
        return 1

    assert session.table is not None
    header = session.table.first_row
    editor = session.open_mapping()
    try:
        _apply_map_options(editor, map_options)
    except ValueError as e:
        _err(str(e))
        return 2
    if not editor.is_complete():
        missing = ", ".join(f.value for f in editor.missing_required())
        _err(f"map the required fields first ({missing}) with --map FIELD=COLUMN")
        _print_columns(editor, header)
        return 2

    try:
        state = session.apply_mapping(direct=direct)
        if state is ImportState.REVIEW_PENDING:
            decisions = None if assume_yes else confirm_review_items(session.review_items)
            state = session.confirm_review(decisions)
    except Exception as e:
        _err(f"import failed: {e}")
        return 1

    if session.stats is not None:
        print(format_build_summary(session.stats))

    if state is ImportState.PREVIEWING:
        if skip_duplicates and session.grid and url:
            dates = [date.fromisoformat(r.expense_date) for r in session.grid]
            from ledger_db.client import session_scope

            existing: list[LedgerEntry]
            with session_scope(database_url=url) as db:
                existing = load_existing_expenses(db, min(dates), max(dates))
            flags = session.flag_duplicates(existing)
            removed = session.remove_flagged(flags)
            if removed:
                print(f"Skipped {removed} duplicate row(s).")

        for row in session.grid:
            city = f" [{row.city}]" if row.city else ""
            time = f" {row.expense_time}" if row.expense_time else ""
            print(f"{row.expense_date}{time}\t{row.amount}\t{row.description}{city}")

        errors = session.validate_grid()
        for key, message in sorted(errors.items()):
            _err(f"{key}: {message}")
        if errors:
            return 1
        if dry_run:
            return 0
        if not session.grid:
            print("Nothing to import.")
            return 0
        try:
            state = session.commit_grid()
        except Exception as e:
            _err(f"commit failed: {e}")
            return 1

    if session.result is not None:
        print(format_commit_summary(session.result))
        for row_error in session.result.errors:
            _err(f"row {row_error.row}: {row_error.message}")
    return 0 if state is ImportState.DONE else 1


def cmd_mapping_show(column_count: int) -> int:
    from .mapping_store import SettingsStore, load_column_mapping

    store = SettingsStore()
    mappings = load_column_mapping(store, column_count)
    if mappings is None:
        print(f"No saved mapping for {column_count} columns.")
        return 0
    previews = [m.preview for m in sorted(mappings, key=lambda m: m.source_index)]
    editor = MappingEditor(column_count, previews, mappings)
    _print_columns(editor, previews)
    hidden = sorted(editor.hidden_columns)
    if hidden:
        print("  hidden: " + ", ".join(str(c + 1) for c in hidden))
    return 0


def cmd_mapping_reset() -> int:
    from .mapping_store import MAPPING_KEY, TABLE_INDEX_KEY, SettingsStore

    store = SettingsStore()
    store.delete(MAPPING_KEY)
    store.delete(TABLE_INDEX_KEY)
    print("Saved column mapping cleared.")
    return 0


def cmd_init_db(database_url: str | None = None) -> int:
    """Create the ledger tables on a fresh database (alembic owns upgrades)."""

    from ledger_db import metadata
    from ledger_db.client import get_engine, resolve_database_url

    try:
        url = resolve_database_url(database_url)
    except RuntimeError as e:
        _err(str(e))
        return 2
    try:
        metadata.create_all(get_engine(database_url=url))
    except Exception as e:
        _err(f"failed to create tables: {e}")
        return 1
    print("Ledger tables are ready.")
    return 0


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Import bank statements (CSV, HTML, OFX) into the expense ledger. "
        "Loads DATABASE_URL from a local .env before running."
    ),
)
mapping_app = typer.Typer(no_args_is_help=True, help="Inspect or clear the saved column mapping.")
app.add_typer(mapping_app, name="mapping")

# Module-level argument object to satisfy ruff B008 (no calls in parameter
# defaults).
FILE_ARGUMENT: ArgumentInfo = typer.Argument(
    ...,
    help="Statement file (.csv, .txt, .html, .ofx, .qfx)",
    dir_okay=False,
    file_okay=True,
    exists=False,  # the handler reports missing files itself
)


def _exit(code: int) -> None:
    if code:
        raise typer.Exit(code)


@app.command("tables")
def tables_cmd(path: Annotated[Path, FILE_ARGUMENT]) -> None:
    """List the tables found in an HTML statement."""

    _exit(cmd_tables(str(path)))


@app.command("import")
def import_cmd(
    path: Annotated[Path, FILE_ARGUMENT],
    *,
    table: int | None = typer.Option(None, "--table", help="HTML table index (see `tables`)."),
    map_options: list[str] | None = typer.Option(  # noqa: B008
        None, "--map", help="Assign a field to a column label, e.g. --map amount=B."
    ),
    direct: bool = typer.Option(
        False, "--direct/--preview", help="Commit right away instead of staging a preview."
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Accept every detected city."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Stop before writing anything."),
    skip_duplicates: bool = typer.Option(
        False, "--skip-duplicates", help="Drop rows already present in the ledger."
    ),
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Parse, map, review and commit a statement."""

    _exit(
        cmd_import(
            str(path),
            table_index=table,
            map_options=map_options or (),
            direct=direct,
            assume_yes=yes,
            dry_run=dry_run,
            skip_duplicates=skip_duplicates,
            database_url=database_url,
        )
    )


@mapping_app.command("show")
def mapping_show_cmd(columns: int = typer.Argument(..., min=1, help="Table width.")) -> None:
    """Show the saved mapping for a table of COLUMNS columns."""

    _exit(cmd_mapping_show(columns))


@mapping_app.command("reset")
def mapping_reset_cmd() -> None:
    """Forget the saved mapping and table selection."""

    _exit(cmd_mapping_reset())


@app.command("init-db")
def init_db_cmd(
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Create the ledger tables."""

    _exit(cmd_init_db(database_url))


@app.callback()
def _root() -> None:
    """Load ``.env`` from the working directory and configure logging."""

    # override=False keeps variables already set in the environment
    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging()


def main() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
