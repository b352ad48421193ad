"""SQLAlchemy models registry for the expense ledger database."""

from .expenses import (
    Base,
    Category,
    CategoryKeyword,
    City,
    CitySynonym,
    Expense,
    KeywordSynonym,
    UnrecognizedCity,
)

__all__ = [
    "Base",
    "Category",
    "CategoryKeyword",
    "City",
    "CitySynonym",
    "Expense",
    "KeywordSynonym",
    "UnrecognizedCity",
]
