# ruff: noqa: I001
"""Counters, parties and transaction source tables.

Revision ID: 0001_erp_core
Revises: None
Create Date: 2026-10-19
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0001_erp_core"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamp(name: str) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
    )


def _party_table(name: str, *extra: sa.Column) -> None:
    op.create_table(
        name,
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("code", sa.String(32), nullable=False, unique=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column(
            "current_balance",
            sa.Numeric(18, 4),
            nullable=False,
            server_default=sa.text("0"),
        ),
        *extra,
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )


def _document_table(
    name: str,
    *,
    party_column: str,
    party_table: str,
    amount_column: str,
    extra: Sequence[sa.Column] = (),
    constraints: Sequence[sa.CheckConstraint] = (),
) -> None:
    op.create_table(
        name,
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("prefix", sa.String(16), nullable=False, server_default=sa.text("''")),
        sa.Column("code", sa.String(32), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column(
            party_column,
            sa.Integer(),
            sa.ForeignKey(f"{party_table}.id"),
            nullable=False,
        ),
        sa.Column(amount_column, sa.Numeric(18, 4), nullable=False),
        *extra,
        _timestamp("created_at"),
        *constraints,
    )
    op.create_index(f"ix_{name}_{party_column}", name, [party_column], unique=False)


def upgrade() -> None:
    op.create_table(
        "erp_counters",
        sa.Column("namespace", sa.String(64), primary_key=True),
        sa.Column("current_value", sa.BigInteger(), nullable=False),
        sa.Column("display_width", sa.Integer(), nullable=False),
        sa.Column("starting_value", sa.BigInteger(), nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.CheckConstraint("display_width >= 1", name="ck_erp_counter_width"),
        sa.CheckConstraint(
            "current_value >= starting_value", name="ck_erp_counter_monotonic"
        ),
    )

    _party_table("erp_customers", sa.Column("salesperson_id", sa.Integer(), nullable=True))
    _party_table("erp_suppliers")

    _document_table(
        "erp_sales",
        party_column="customer_id",
        party_table="erp_customers",
        amount_column="total_usd",
        extra=[sa.Column("approved_by", sa.Integer(), nullable=True)],
    )
    _document_table(
        "erp_customer_payments",
        party_column="customer_id",
        party_table="erp_customers",
        amount_column="amount_usd",
        extra=[sa.Column("approved_by", sa.Integer(), nullable=True)],
    )
    _document_table(
        "erp_customer_returns",
        party_column="customer_id",
        party_table="erp_customers",
        amount_column="total_usd",
        extra=[
            sa.Column("approved_by", sa.Integer(), nullable=True),
            sa.Column("return_received_by", sa.Integer(), nullable=True),
        ],
    )
    _document_table(
        "erp_customer_credit_debit_notes",
        party_column="customer_id",
        party_table="erp_customers",
        amount_column="amount_usd",
        extra=[sa.Column("type", sa.String(8), nullable=False)],
        constraints=[
            sa.CheckConstraint("type in ('credit','debit')", name="ck_erp_customer_note_type")
        ],
    )

    _document_table(
        "erp_purchases",
        party_column="supplier_id",
        party_table="erp_suppliers",
        amount_column="total_usd",
    )
    _document_table(
        "erp_supplier_payments",
        party_column="supplier_id",
        party_table="erp_suppliers",
        amount_column="amount_usd",
    )
    _document_table(
        "erp_purchase_returns",
        party_column="supplier_id",
        party_table="erp_suppliers",
        amount_column="total_usd",
    )
    _document_table(
        "erp_supplier_credit_debit_notes",
        party_column="supplier_id",
        party_table="erp_suppliers",
        amount_column="amount_usd",
        extra=[sa.Column("type", sa.String(8), nullable=False)],
        constraints=[
            sa.CheckConstraint("type in ('credit','debit')", name="ck_erp_supplier_note_type")
        ],
    )


def downgrade() -> None:
    for name in (
        "erp_supplier_credit_debit_notes",
        "erp_purchase_returns",
        "erp_supplier_payments",
        "erp_purchases",
        "erp_customer_credit_debit_notes",
        "erp_customer_returns",
        "erp_customer_payments",
        "erp_sales",
    ):
        op.drop_table(name)
    op.drop_table("erp_suppliers")
    op.drop_table("erp_customers")
    op.drop_table("erp_counters")
