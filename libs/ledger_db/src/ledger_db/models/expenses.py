from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    false,
    func,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


def _new_id() -> str:
    return str(uuid.uuid4())


# ---------------------------
# Reference: categories + keywords
# ---------------------------


class Category(Base):
    __tablename__ = "categories"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class CategoryKeyword(Base):
    __tablename__ = "category_keywords"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    keyword: Mapped[str] = mapped_column(String, nullable=False)
    category_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("categories.id", ondelete="CASCADE"), nullable=False
    )
    # Ordering key for categorization: most recently created keyword wins ties
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    synonyms: Mapped[list[KeywordSynonym]] = relationship(
        back_populates="keyword", cascade="all, delete-orphan", lazy="selectin"
    )


class KeywordSynonym(Base):
    __tablename__ = "keyword_synonyms"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    keyword_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("category_keywords.id", ondelete="CASCADE"), nullable=False
    )
    synonym: Mapped[str] = mapped_column(String, nullable=False)

    keyword: Mapped[CategoryKeyword] = relationship(back_populates="synonyms")


# ---------------------------
# Reference: cities
# ---------------------------


class City(Base):
    __tablename__ = "cities"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    synonyms: Mapped[list[CitySynonym]] = relationship(
        back_populates="city", cascade="all, delete-orphan", lazy="selectin"
    )


class CitySynonym(Base):
    __tablename__ = "city_synonyms"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    city_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("cities.id", ondelete="CASCADE"), nullable=False
    )
    synonym: Mapped[str] = mapped_column(String, nullable=False)

    city: Mapped[City] = relationship(back_populates="synonyms")


class UnrecognizedCity(Base):
    """Free-text city names that failed catalog resolution, kept for triage."""

    __tablename__ = "unrecognized_cities"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String, nullable=False)
    frequency: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("1"))
    first_seen: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_seen: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        CheckConstraint("frequency >= 1", name="ck_unrecognized_cities_frequency"),
    )


# ---------------------------
# Core: expenses
# ---------------------------


class Expense(Base):
    __tablename__ = "expenses"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    category_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("categories.id", ondelete="SET NULL"), nullable=True
    )
    expense_date: Mapped[date] = mapped_column(Date, nullable=False)
    # "HH:MM"; kept textual so the value round-trips exactly as entered
    expense_time: Mapped[str | None] = mapped_column(String(5), nullable=True)
    city_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("cities.id", ondelete="SET NULL"), nullable=True
    )
    raw_city_input: Mapped[str | None] = mapped_column(Text, nullable=True)
    input_method: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(
        String, nullable=False, server_default=text("'uncategorized'")
    )
    matched_keywords: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    auto_categorized: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=false()
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_expenses_amount_positive"),
        CheckConstraint(
            "status in ('categorized','uncategorized')",
            name="ck_expenses_status",
        ),
        CheckConstraint(
            "input_method in ('single','bulk_table','voice','text')",
            name="ck_expenses_input_method",
        ),
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
