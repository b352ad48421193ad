"""ledger_db: expense ledger database library (SQLAlchemy/Alembic).

Public exports
--------------
- ``Base`` and ``metadata`` for Alembic autogenerate/targeting
- ORM models in ``ledger_db.models.expenses`` (re-exported for convenience)
- Engine/session helpers in ``ledger_db.client``
"""

from __future__ import annotations

from .models.expenses import (
    Base,
    Category,
    CategoryKeyword,
    City,
    CitySynonym,
    Expense,
    KeywordSynonym,
    UnrecognizedCity,
)

# Re-export SQLAlchemy metadata for Alembic's env.py
metadata = Base.metadata

__all__ = [
    "Base",
    "metadata",
    "Category",
    "CategoryKeyword",
    "City",
    "CitySynonym",
    "Expense",
    "KeywordSynonym",
    "UnrecognizedCity",
]
