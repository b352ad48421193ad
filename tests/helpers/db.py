"""DB helpers for tests: bootstrap a temporary SQLite ledger and seed catalogs."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from datetime import UTC, datetime, timedelta
from pathlib import Path

from ledger_db import Base
from ledger_db.client import get_engine, session_scope
from ledger_db.models.expenses import (
    Category,
    CategoryKeyword,
    City,
    CitySynonym,
    KeywordSynonym,
)


def bootstrap_sqlite_db(db_file: Path) -> str:
    """Create a SQLite database file, initialize the schema, and return the URL.

    Using a file-backed SQLite DB ensures multiple SQLAlchemy connections share
    the same state (in-memory DBs are per-connection by default).
    """

    url = f"sqlite+pysqlite:///{db_file}"
    db_file.parent.mkdir(parents=True, exist_ok=True)
    Base.metadata.create_all(bind=get_engine(database_url=url))
    return url


def seed_keywords(
    *,
    database_url: str,
    keywords: Sequence[tuple[str, str, Sequence[str]]],
) -> dict[str, str]:
    """Insert ``(keyword, category_name, synonyms)`` rows; return category ids by name.

    Keywords receive strictly increasing ``created_at`` values in the given
    order, so the last one listed is the most recent.
    """

    base = datetime(2024, 1, 1, tzinfo=UTC)
    category_ids: dict[str, str] = {}
    with session_scope(database_url=database_url) as session:
        for i, (keyword, category_name, synonyms) in enumerate(keywords):
            if category_name not in category_ids:
                category = Category(name=category_name)
                session.add(category)
                session.flush()
                category_ids[category_name] = category.id
            kw = CategoryKeyword(
                keyword=keyword,
                category_id=category_ids[category_name],
                created_at=base + timedelta(minutes=i),
            )
            kw.synonyms = [KeywordSynonym(synonym=s) for s in synonyms]
            session.add(kw)
    return category_ids


def seed_cities(*, database_url: str, cities: Mapping[str, Iterable[str]]) -> dict[str, str]:
    """Insert cities with their synonyms; return city ids by name."""

    ids: dict[str, str] = {}
    with session_scope(database_url=database_url) as session:
        for name, synonyms in cities.items():
            city = City(name=name)
            city.synonyms = [CitySynonym(synonym=s) for s in synonyms]
            session.add(city)
            session.flush()
            ids[name] = city.id
    return ids
