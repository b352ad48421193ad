"""Persistence integration for expense_ingest.

Functions here read the keyword and city dictionaries and write expenses to
the ledger database owned by ``libs/ledger_db``. They take an open SQLAlchemy
session; committing is the caller's job (``ledger_db.client.session_scope``).

Scope:
- Load the keyword list (newest first) and the city catalog with synonyms.
- Create-or-increment unrecognized city names.
- Bulk-insert validated expense payloads, collecting per-row errors.
- Read existing expenses in a date window for duplicate flagging.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import UTC, date, datetime
from typing import Any

from ledger_db.models.expenses import CategoryKeyword, City, Expense, UnrecognizedCity
from pydantic import ValidationError
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .cities import CityCatalog, CityRecord, UnrecognizedCityCounter
from .duplicates import LedgerEntry
from .keywords import KeywordCategorizer, KeywordEntry
from .logging_setup import get_logger
from .models import CommitResult, CommitStats, ExpensePayload, RowError

_logger = get_logger("expense_ingest.persistence")


# ----------------------------------------------------------------------------
# Dictionaries
# ----------------------------------------------------------------------------


def load_keyword_entries(session: Session) -> list[KeywordEntry]:
    """Return keywords most-recently-created first (the categorizer's match order)."""

    stmt = select(CategoryKeyword).order_by(
        CategoryKeyword.created_at.desc(), CategoryKeyword.id.desc()
    )
    return [
        KeywordEntry(
            keyword=kw.keyword,
            category_id=kw.category_id,
            synonyms=tuple(s.synonym for s in kw.synonyms),
        )
        for kw in session.execute(stmt).scalars()
    ]


def load_city_records(session: Session) -> list[CityRecord]:
    stmt = select(City).order_by(City.name)
    return [
        CityRecord(id=c.id, name=c.name, synonyms=tuple(s.synonym for s in c.synonyms))
        for c in session.execute(stmt).scalars()
    ]


def remember_unrecognized_city(session: Session, name: str, occurrences: int = 1) -> None:
    """Create ``name`` in the unrecognized list or add ``occurrences`` to it."""

    cleaned = name.strip()
    if not cleaned or occurrences <= 0:
        return
    now = datetime.now(UTC)
    existing = session.execute(
        select(UnrecognizedCity).where(func.lower(UnrecognizedCity.name) == cleaned.lower())
    ).scalar_one_or_none()
    if existing is not None:
        existing.frequency += occurrences
        existing.last_seen = now
    else:
        session.add(
            UnrecognizedCity(name=cleaned, frequency=occurrences, first_seen=now, last_seen=now)
        )
    session.flush()


def load_existing_expenses(session: Session, start: date, end: date) -> list[LedgerEntry]:
    """Expenses dated within ``[start, end]`` as duplicate-comparison entries."""

    stmt = select(Expense.expense_date, Expense.amount, Expense.description).where(
        Expense.expense_date.between(start, end)
    )
    return [
        LedgerEntry(expense_date=d.isoformat(), amount=amount, description=description)
        for d, amount, description in session.execute(stmt).all()
    ]


# ----------------------------------------------------------------------------
# Bulk commit
# ----------------------------------------------------------------------------


def _first_error(exc: ValidationError) -> str:
    err = exc.errors()[0]
    loc = ".".join(str(p) for p in err.get("loc", ()))
    return f"{loc}: {err['msg']}" if loc else str(err["msg"])


def commit_bulk_expenses(
    session: Session, payloads: Sequence[Mapping[str, Any]]
) -> CommitResult:
    """Validate and insert ``payloads`` as one batch.

    Invalid rows are reported as ``RowError(row=<1-based>, message)`` and do
    not stop valid siblings. Rows without a category are categorized against
    the keyword list; city input is resolved against the catalog and misses
    are tallied into the unrecognized list once per name after the insert.
    """

    if not payloads:
        return CommitResult(success=False, error="No data to create")

    categorizer = KeywordCategorizer(load_keyword_entries(session))
    catalog = CityCatalog(load_city_records(session), known_cities=())
    known_ids = {c.id for c in session.execute(select(City.id)).scalars()}
    unrecognized = UnrecognizedCityCounter()

    expenses: list[Expense] = []
    errors: list[RowError] = []
    for i, raw in enumerate(payloads, start=1):
        try:
            p = ExpensePayload.model_validate(dict(raw))
        except ValidationError as exc:
            errors.append(RowError(row=i, message=_first_error(exc)))
            continue

        category_id = p.category_id
        matched: list[str] = []
        auto = False
        if category_id is None:
            match = categorizer.categorize(p.description)
            category_id = match.category_id
            matched = list(match.matched_keywords)
            auto = match.auto_categorized

        city_id = p.city_id if p.city_id in known_ids else None
        if city_id is None and p.city_input:
            resolved = catalog.resolve(p.city_input)
            if resolved is not None:
                city_id = resolved.city_id
            else:
                unrecognized.add(p.city_input)

        expenses.append(
            Expense(
                amount=p.amount,
                description=p.description,
                notes=p.notes or None,
                category_id=category_id,
                expense_date=p.expense_date,
                expense_time=p.expense_time,
                city_id=city_id,
                raw_city_input=p.city_input,
                input_method=p.input_method,
                status="categorized" if category_id else "uncategorized",
                matched_keywords=matched,
                auto_categorized=auto,
            )
        )

    if not expenses:
        _logger.warning("commit:no valid rows total=%d", len(payloads))
        return CommitResult(success=False, errors=tuple(errors), error="No valid rows to create")

    session.add_all(expenses)
    session.flush()
    unrecognized.flush(lambda name, n: remember_unrecognized_city(session, name, n))

    stats = CommitStats(
        success=len(expenses),
        failed=len(errors),
        uncategorized=sum(1 for e in expenses if e.status == "uncategorized"),
        total=len(payloads),
    )
    _logger.info(
        "commit:done success=%d failed=%d uncategorized=%d",
        stats.success,
        stats.failed,
        stats.uncategorized,
    )
    return CommitResult(success=True, stats=stats, errors=tuple(errors))


# ----------------------------------------------------------------------------
# Session collaborators
# ----------------------------------------------------------------------------


class DatabaseCommitter:
    """Commit collaborator writing through ``ledger_db.client.session_scope``."""

    def __init__(self, *, database_url: str | None = None) -> None:
        self.database_url = database_url

    def commit(self, payloads: Sequence[Mapping[str, Any]]) -> CommitResult:
        from ledger_db.client import session_scope

        with session_scope(database_url=self.database_url) as session:
            return commit_bulk_expenses(session, payloads)


class DatabaseCatalogSource:
    def __init__(self, *, database_url: str | None = None) -> None:
        self.database_url = database_url

    def load_keywords(self) -> list[KeywordEntry]:
        from ledger_db.client import session_scope

        with session_scope(database_url=self.database_url) as session:
            return load_keyword_entries(session)

    def load_cities(self) -> list[CityRecord]:
        from ledger_db.client import session_scope

        with session_scope(database_url=self.database_url) as session:
            return load_city_records(session)


__all__ = [
    "DatabaseCatalogSource",
    "DatabaseCommitter",
    "commit_bulk_expenses",
    "load_city_records",
    "load_existing_expenses",
    "load_keyword_entries",
    "remember_unrecognized_city",
]
