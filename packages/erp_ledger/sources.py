"""Transaction sources feeding customer and supplier statements.

Each party type reads four source tables. ``SourceSpec`` records where a source
lives and which rows count (approval gates); ``fetch_source`` applies the
party, date-range and free-text predicates the same way for every source; the
per-kind normalizers turn ORM rows into ``TransactionRecord`` values.

The debit/credit side of every ``TransactionKind`` is decided in exactly one
place, ``_SIDE`` below, and is the same for customers and suppliers.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from erp_db.models import (
    Customer,
    CustomerCreditDebitNote,
    CustomerPayment,
    CustomerReturn,
    Purchase,
    PurchaseReturn,
    Sale,
    Supplier,
    SupplierCreditDebitNote,
    SupplierPayment,
)
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from .models import (
    ZERO,
    PartyRef,
    PartyType,
    SourceKind,
    StatementFilters,
    TransactionKind,
    TransactionRecord,
)

_DEBIT = "debit"
_CREDIT = "credit"

_SIDE: dict[TransactionKind, str] = {
    TransactionKind.INVOICE: _DEBIT,
    TransactionKind.DEBIT_NOTE: _DEBIT,
    TransactionKind.PAYMENT: _CREDIT,
    TransactionKind.RETURN: _CREDIT,
    TransactionKind.CREDIT_NOTE: _CREDIT,
}

_AMOUNT_QUANTUM = Decimal("0.0001")


@dataclass(frozen=True, slots=True)
class SourceSpec:
    """Where one source kind lives for one party type."""

    kind: SourceKind
    model: Any
    party_column: str
    amount_column: str
    label: str
    # Columns that must be non-null for a row to count (approval gates).
    required: tuple[str, ...] = ()

    @property
    def table(self) -> str:
        return self.model.__tablename__

    @property
    def rank(self) -> int:
        # Same-day, same-timestamp rows order by source in this sequence.
        return _RANK[self.kind]


_RANK: dict[SourceKind, int] = {
    SourceKind.INVOICE: 0,
    SourceKind.PAYMENT: 1,
    SourceKind.RETURN: 2,
    SourceKind.CREDIT_DEBIT_NOTE: 3,
}

SOURCES: dict[PartyType, tuple[SourceSpec, ...]] = {
    PartyType.CUSTOMER: (
        SourceSpec(
            SourceKind.INVOICE,
            Sale,
            "customer_id",
            "total_usd",
            "Sale Invoice",
            required=("approved_by",),
        ),
        SourceSpec(
            SourceKind.PAYMENT,
            CustomerPayment,
            "customer_id",
            "amount_usd",
            "Payment",
            required=("approved_by",),
        ),
        SourceSpec(
            SourceKind.RETURN,
            CustomerReturn,
            "customer_id",
            "total_usd",
            "Sales Return",
            required=("approved_by", "return_received_by"),
        ),
        SourceSpec(
            SourceKind.CREDIT_DEBIT_NOTE,
            CustomerCreditDebitNote,
            "customer_id",
            "amount_usd",
            "Credit/Debit Note",
        ),
    ),
    PartyType.SUPPLIER: (
        SourceSpec(SourceKind.INVOICE, Purchase, "supplier_id", "total_usd", "Purchase"),
        SourceSpec(SourceKind.PAYMENT, SupplierPayment, "supplier_id", "amount_usd", "Payment"),
        SourceSpec(
            SourceKind.RETURN, PurchaseReturn, "supplier_id", "total_usd", "Purchase Return"
        ),
        SourceSpec(
            SourceKind.CREDIT_DEBIT_NOTE,
            SupplierCreditDebitNote,
            "supplier_id",
            "amount_usd",
            "Credit/Debit Note",
        ),
    ),
}

PARTY_MODELS: dict[PartyType, Any] = {
    PartyType.CUSTOMER: Customer,
    PartyType.SUPPLIER: Supplier,
}


def party_type_of(party: Any) -> PartyType:
    for party_type, model in PARTY_MODELS.items():
        if isinstance(party, model):
            return party_type
    raise ValueError(f"not a customer or supplier: {type(party).__name__}")


def party_ref(party: Any) -> PartyRef:
    return PartyRef(id=party.id, code=party.code, name=party.name)


def _to_amount(raw: Any) -> Decimal:
    if raw is None:
        return ZERO
    return Decimal(str(raw)).quantize(_AMOUNT_QUANTUM, rounding=ROUND_HALF_UP)


# ---------------------------------------------------------------------------
# Query
# ---------------------------------------------------------------------------


def fetch_source(
    session: Session,
    spec: SourceSpec,
    party_id: int,
    filters: StatementFilters,
) -> list[Any]:
    """Return the rows of one source that belong on the party's statement.

    Search is a case-insensitive substring match over ``note``, ``code`` and
    ``prefix`` with LIKE wildcards in the term escaped, so ``"50%"`` matches
    literally on every backend.
    """

    model = spec.model
    stmt = select(model).where(getattr(model, spec.party_column) == party_id)
    for column in spec.required:
        stmt = stmt.where(getattr(model, column).is_not(None))
    if filters.from_date is not None:
        stmt = stmt.where(model.date >= filters.from_date)
    if filters.to_date is not None:
        stmt = stmt.where(model.date <= filters.to_date)
    term = filters.search_term
    if term is not None:
        stmt = stmt.where(
            or_(
                model.note.icontains(term, autoescape=True),
                model.code.icontains(term, autoescape=True),
                model.prefix.icontains(term, autoescape=True),
            )
        )
    stmt = stmt.order_by(model.date, model.created_at, model.id)
    return list(session.scalars(stmt))


# ---------------------------------------------------------------------------
# Normalizers
# ---------------------------------------------------------------------------


def _record(
    row: Any,
    spec: SourceSpec,
    party: PartyRef,
    kind: TransactionKind,
    label: str,
) -> TransactionRecord:
    amount = _to_amount(getattr(row, spec.amount_column))
    debit, credit = (amount, ZERO) if _SIDE[kind] == _DEBIT else (ZERO, amount)
    return TransactionRecord(
        id=row.id,
        display_code=f"{row.prefix or ''}{row.code}",
        kind=kind,
        source=spec.kind,
        label=label,
        date=row.date,
        note=row.note,
        debit_amount=debit,
        credit_amount=credit,
        party=party,
        source_table=spec.table,
        tie_break_key=(
            row.created_at is None,
            row.created_at or datetime.min,
            spec.rank,
            row.id,
        ),
    )


def _normalize_invoice(row: Any, spec: SourceSpec, party: PartyRef) -> TransactionRecord:
    return _record(row, spec, party, TransactionKind.INVOICE, spec.label)


def _normalize_payment(row: Any, spec: SourceSpec, party: PartyRef) -> TransactionRecord:
    return _record(row, spec, party, TransactionKind.PAYMENT, spec.label)


def _normalize_return(row: Any, spec: SourceSpec, party: PartyRef) -> TransactionRecord:
    return _record(row, spec, party, TransactionKind.RETURN, spec.label)


def _normalize_note(row: Any, spec: SourceSpec, party: PartyRef) -> TransactionRecord:
    if row.type == "credit":
        return _record(row, spec, party, TransactionKind.CREDIT_NOTE, "Credit Note")
    if row.type == "debit":
        return _record(row, spec, party, TransactionKind.DEBIT_NOTE, "Debit Note")
    raise ValueError(f"{spec.table} row {row.id} has unknown note type {row.type!r}")


_NORMALIZERS: dict[SourceKind, Callable[[Any, SourceSpec, PartyRef], TransactionRecord]] = {
    SourceKind.INVOICE: _normalize_invoice,
    SourceKind.PAYMENT: _normalize_payment,
    SourceKind.RETURN: _normalize_return,
    SourceKind.CREDIT_DEBIT_NOTE: _normalize_note,
}


def normalize_rows(
    rows: Iterable[Any], spec: SourceSpec, party: PartyRef
) -> list[TransactionRecord]:
    normalize = _NORMALIZERS[spec.kind]
    return [normalize(row, spec, party) for row in rows]


def collect_transactions(
    session: Session,
    party_type: PartyType,
    party: Any,
    filters: StatementFilters,
) -> list[TransactionRecord]:
    """Fetch and normalize every included source for ``party``, concatenated.

    Sources are read in ``SOURCES`` order; the result is not yet sorted across
    sources.
    """

    ref = party_ref(party)
    out: list[TransactionRecord] = []
    for spec in SOURCES[party_type]:
        if filters.transaction_type is not None and spec.kind != filters.transaction_type:
            continue
        rows = fetch_source(session, spec, party.id, filters)
        out.extend(normalize_rows(rows, spec, ref))
    return out


__all__ = [
    "PARTY_MODELS",
    "SOURCES",
    "SourceSpec",
    "collect_transactions",
    "fetch_source",
    "normalize_rows",
    "party_ref",
    "party_type_of",
]
