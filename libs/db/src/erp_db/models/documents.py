"""Transaction source tables read by the statement aggregator.

Each table holds one kind of ledger-affecting document for one party type.
Codes on these rows come from ``erp_counters`` (one namespace per table); the
document's display code is ``prefix + code``.
"""

from __future__ import annotations

import datetime as dt
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from .ledger import Base


class _DocumentColumns:
    """Columns shared by every transaction source table."""

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    prefix: Mapped[str] = mapped_column(String(16), nullable=False, server_default=text("''"))
    code: Mapped[str] = mapped_column(String(32), nullable=False)
    # Module-qualified: the attribute name would shadow a bare ``date``.
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


# ---------------------------
# Customer side
# ---------------------------


class Sale(_DocumentColumns, Base):
    __tablename__ = "erp_sales"

    customer_id: Mapped[int] = mapped_column(
        ForeignKey("erp_customers.id"), nullable=False, index=True
    )
    total_usd: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False)
    # Unapproved invoices are drafts and never reach the statement.
    approved_by: Mapped[int | None] = mapped_column(Integer, nullable=True)


class CustomerPayment(_DocumentColumns, Base):
    __tablename__ = "erp_customer_payments"

    customer_id: Mapped[int] = mapped_column(
        ForeignKey("erp_customers.id"), nullable=False, index=True
    )
    amount_usd: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False)
    approved_by: Mapped[int | None] = mapped_column(Integer, nullable=True)


class CustomerReturn(_DocumentColumns, Base):
    __tablename__ = "erp_customer_returns"

    customer_id: Mapped[int] = mapped_column(
        ForeignKey("erp_customers.id"), nullable=False, index=True
    )
    total_usd: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False)
    approved_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    # Set once the returned goods are physically back in stock.
    return_received_by: Mapped[int | None] = mapped_column(Integer, nullable=True)


class CustomerCreditDebitNote(_DocumentColumns, Base):
    __tablename__ = "erp_customer_credit_debit_notes"

    customer_id: Mapped[int] = mapped_column(
        ForeignKey("erp_customers.id"), nullable=False, index=True
    )
    type: Mapped[str] = mapped_column(String(8), nullable=False)
    amount_usd: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False)

    __table_args__ = (
        CheckConstraint("type in ('credit','debit')", name="ck_erp_customer_note_type"),
    )


# ---------------------------
# Supplier side
# ---------------------------


class Purchase(_DocumentColumns, Base):
    __tablename__ = "erp_purchases"

    supplier_id: Mapped[int] = mapped_column(
        ForeignKey("erp_suppliers.id"), nullable=False, index=True
    )
    total_usd: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False)


class SupplierPayment(_DocumentColumns, Base):
    __tablename__ = "erp_supplier_payments"

    supplier_id: Mapped[int] = mapped_column(
        ForeignKey("erp_suppliers.id"), nullable=False, index=True
    )
    amount_usd: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False)


class PurchaseReturn(_DocumentColumns, Base):
    __tablename__ = "erp_purchase_returns"

    supplier_id: Mapped[int] = mapped_column(
        ForeignKey("erp_suppliers.id"), nullable=False, index=True
    )
    total_usd: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False)


class SupplierCreditDebitNote(_DocumentColumns, Base):
    __tablename__ = "erp_supplier_credit_debit_notes"

    supplier_id: Mapped[int] = mapped_column(
        ForeignKey("erp_suppliers.id"), nullable=False, index=True
    )
    type: Mapped[str] = mapped_column(String(8), nullable=False)
    amount_usd: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False)

    __table_args__ = (
        CheckConstraint("type in ('credit','debit')", name="ck_erp_supplier_note_type"),
    )


__all__ = [
    "Sale",
    "CustomerPayment",
    "CustomerReturn",
    "CustomerCreditDebitNote",
    "Purchase",
    "SupplierPayment",
    "PurchaseReturn",
    "SupplierCreditDebitNote",
]
