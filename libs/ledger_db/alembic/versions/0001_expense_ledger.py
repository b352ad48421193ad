# ruff: noqa: I001
"""Expense ledger tables: categories, keywords, cities, expenses.

Revision ID: 0001_expense_ledger
Revises: None
Create Date: 2026-10-17
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0001_expense_ledger"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
    )


def upgrade() -> None:
    op.create_table(
        "categories",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        _created_at(),
    )

    op.create_table(
        "category_keywords",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("keyword", sa.String(), nullable=False),
        sa.Column(
            "category_id",
            sa.String(36),
            sa.ForeignKey("categories.id", ondelete="CASCADE"),
            nullable=False,
        ),
        _created_at(),
    )
    op.create_index(
        "ix_category_keywords_created_at", "category_keywords", ["created_at"], unique=False
    )

    op.create_table(
        "keyword_synonyms",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "keyword_id",
            sa.String(36),
            sa.ForeignKey("category_keywords.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("synonym", sa.String(), nullable=False),
    )

    op.create_table(
        "cities",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        _created_at(),
    )

    op.create_table(
        "city_synonyms",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "city_id",
            sa.String(36),
            sa.ForeignKey("cities.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("synonym", sa.String(), nullable=False),
    )

    op.create_table(
        "unrecognized_cities",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("frequency", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("first_seen", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_seen", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("frequency >= 1", name="ck_unrecognized_cities_frequency"),
    )
    # Create-or-increment looks names up case-insensitively
    op.create_index(
        "uniq_unrecognized_cities_lower_name",
        "unrecognized_cities",
        [sa.text("lower(name)")],
        unique=True,
    )

    op.create_table(
        "expenses",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column(
            "category_id",
            sa.String(36),
            sa.ForeignKey("categories.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("expense_date", sa.Date(), nullable=False),
        sa.Column("expense_time", sa.String(5), nullable=True),
        sa.Column(
            "city_id",
            sa.String(36),
            sa.ForeignKey("cities.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("raw_city_input", sa.Text(), nullable=True),
        sa.Column("input_method", sa.String(), nullable=False),
        sa.Column(
            "status", sa.String(), nullable=False, server_default=sa.text("'uncategorized'")
        ),
        sa.Column("matched_keywords", sa.JSON(), nullable=False),
        sa.Column("auto_categorized", sa.Boolean(), nullable=False, server_default=sa.false()),
        _created_at(),
        sa.CheckConstraint("amount > 0", name="ck_expenses_amount_positive"),
        sa.CheckConstraint(
            "status in ('categorized','uncategorized')",
            name="ck_expenses_status",
        ),
        sa.CheckConstraint(
            "input_method in ('single','bulk_table','voice','text')",
            name="ck_expenses_input_method",
        ),
    )
    op.create_index("ix_expenses_expense_date", "expenses", ["expense_date"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_expenses_expense_date", table_name="expenses")
    op.drop_table("expenses")
    op.drop_index("uniq_unrecognized_cities_lower_name", table_name="unrecognized_cities")
    op.drop_table("unrecognized_cities")
    op.drop_table("city_synonyms")
    op.drop_table("cities")
    op.drop_table("keyword_synonyms")
    op.drop_index("ix_category_keywords_created_at", table_name="category_keywords")
    op.drop_table("category_keywords")
    op.drop_table("categories")
