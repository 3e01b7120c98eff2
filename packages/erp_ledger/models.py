"""Data models for ``erp_ledger`` statements.

Statement rows are plain frozen dataclasses built in memory per request and
never persisted. Request filters are a pydantic model so that malformed input
(unparseable dates, unknown transaction types) fails at construction time with
a ``pydantic.ValidationError`` before any query runs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

ZERO = Decimal("0")

# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class PartyType(StrEnum):
    CUSTOMER = "customer"
    SUPPLIER = "supplier"


class SourceKind(StrEnum):
    """The four transaction-producing categories merged into a statement."""

    INVOICE = "invoice"
    PAYMENT = "payment"
    RETURN = "return"
    CREDIT_DEBIT_NOTE = "credit_debit_note"


class TransactionKind(StrEnum):
    """Ledger meaning of one normalized row (notes split by direction)."""

    INVOICE = "invoice"
    PAYMENT = "payment"
    RETURN = "return"
    CREDIT_NOTE = "credit_note"
    DEBIT_NOTE = "debit_note"


# Names accepted for ``transaction_type`` besides the SourceKind values; these
# are the spellings the customer/supplier statement endpoints used.
_SOURCE_ALIASES: dict[str, SourceKind] = {
    "sale": SourceKind.INVOICE,
    "sales": SourceKind.INVOICE,
    "purchase": SourceKind.INVOICE,
    "purchases": SourceKind.INVOICE,
    "payments": SourceKind.PAYMENT,
    "returns": SourceKind.RETURN,
    "purchase_returns": SourceKind.RETURN,
    "credit_note": SourceKind.CREDIT_DEBIT_NOTE,
    "debit_note": SourceKind.CREDIT_DEBIT_NOTE,
}


def parse_source_kind(raw: str | SourceKind) -> SourceKind:
    """Map a ``transaction_type`` value to a ``SourceKind`` or raise ``ValueError``."""

    if isinstance(raw, SourceKind):
        return raw
    key = str(raw).strip().lower()
    try:
        return SourceKind(key)
    except ValueError:
        pass
    if key in _SOURCE_ALIASES:
        return _SOURCE_ALIASES[key]
    allowed = sorted({k.value for k in SourceKind} | set(_SOURCE_ALIASES))
    raise ValueError(f"unknown transaction_type {raw!r}; allowed: {', '.join(allowed)}")


# ---------------------------------------------------------------------------
# Statement rows
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class PartyRef:
    """Counterparty identity carried on each statement row."""

    id: int
    code: str
    name: str


@dataclass(frozen=True, slots=True)
class TransactionRecord:
    """One ledger-affecting document normalized to a common shape.

    ``debit_amount`` increases what the party owes the business and
    ``credit_amount`` decreases it; both are non-negative USD amounts.
    ``balance`` is the running total after this row in chronological order and
    stays ``0`` until the statement fold assigns it.
    """

    id: int
    display_code: str
    kind: TransactionKind
    source: SourceKind
    label: str
    date: date
    note: str | None
    debit_amount: Decimal
    credit_amount: Decimal
    party: PartyRef
    source_table: str
    tie_break_key: tuple[bool, datetime, int, int]
    balance: Decimal = ZERO

    @property
    def amount(self) -> Decimal:
        """Signed effect on the balance (positive for debits)."""

        return self.debit_amount - self.credit_amount

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "code": self.display_code,
            "type": self.label,
            "kind": self.kind.value,
            "transaction_type": self.source.value,
            "date": self.date.isoformat(),
            "note": self.note,
            "amount": str(self.amount),
            "debit": str(self.debit_amount),
            "credit": str(self.credit_amount),
            "balance": str(self.balance),
            "party": {"id": self.party.id, "code": self.party.code, "name": self.party.name},
            "source_table": self.source_table,
        }


@dataclass(frozen=True, slots=True)
class BalanceSnapshot:
    total_debit: Decimal = ZERO
    total_credit: Decimal = ZERO
    ending_balance: Decimal = ZERO

    def to_dict(self) -> dict[str, str]:
        return {
            "total_debit": str(self.total_debit),
            "total_credit": str(self.total_credit),
            "balance": str(self.ending_balance),
        }


@dataclass(frozen=True, slots=True)
class StatementPage:
    """A 1-based slice of an already balance-annotated statement."""

    items: tuple[TransactionRecord, ...]
    total: int
    per_page: int
    current_page: int

    @property
    def last_page(self) -> int:
        return max(1, -(-self.total // self.per_page))

    def to_dict(self) -> dict[str, Any]:
        return {
            "current_page": self.current_page,
            "per_page": self.per_page,
            "total": self.total,
            "last_page": self.last_page,
        }


@dataclass(frozen=True, slots=True)
class Statement:
    """Result of ``build_statement``.

    ``transactions`` always holds the full display-ordered sequence; ``page``
    is set when pagination was requested. ``snapshot`` covers the full
    sequence regardless of paging.
    """

    party_type: PartyType
    party: PartyRef
    transactions: tuple[TransactionRecord, ...]
    snapshot: BalanceSnapshot
    page: StatementPage | None = None
    balance_updated: bool = False

    def to_dict(self) -> dict[str, Any]:
        rows = self.page.items if self.page is not None else self.transactions
        out: dict[str, Any] = {
            "party_type": self.party_type.value,
            "party": {"id": self.party.id, "code": self.party.code, "name": self.party.name},
            "data": [r.to_dict() for r in rows],
            "stats": self.snapshot.to_dict(),
            "balance_updated": self.balance_updated,
        }
        if self.page is not None:
            out["pagination"] = self.page.to_dict()
        return out


# ---------------------------------------------------------------------------
# Bulk recalculation report
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class PartyBalanceChange:
    party_id: int
    code: str
    name: str
    old_balance: Decimal
    new_balance: Decimal

    @property
    def difference(self) -> Decimal:
        return self.new_balance - self.old_balance

    def to_dict(self) -> dict[str, Any]:
        return {
            "party_id": self.party_id,
            "code": self.code,
            "name": self.name,
            "old_balance": str(self.old_balance),
            "new_balance": str(self.new_balance),
            "difference": str(self.difference),
        }


@dataclass(slots=True)
class RecalculationReport:
    total_parties: int = 0
    updated_details: list[PartyBalanceChange] = field(default_factory=list)
    failed_ids: list[int] = field(default_factory=list)

    @property
    def updated_count(self) -> int:
        return len(self.updated_details)

    @property
    def unchanged_count(self) -> int:
        return self.total_parties - self.updated_count - len(self.failed_ids)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_parties": self.total_parties,
            "updated_count": self.updated_count,
            "unchanged_count": self.unchanged_count,
            "failed_ids": list(self.failed_ids),
            "updated_details": [c.to_dict() for c in self.updated_details],
        }


# ---------------------------------------------------------------------------
# Request filters
# ---------------------------------------------------------------------------


class StatementFilters(BaseModel):
    """Optional narrowing of a statement plus its display order.

    Presence matters: any of ``from_date``, ``to_date``, ``search`` or
    ``transaction_type`` being set (even to an empty string for ``search``)
    marks the view as filtered, and filtered views never write the computed
    balance back onto the party. ``sort_direction`` only affects display order.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    from_date: date | None = None
    to_date: date | None = None
    search: str | None = None
    transaction_type: SourceKind | None = None
    sort_direction: Literal["asc", "desc"] = "desc"

    @field_validator("transaction_type", mode="before")
    @classmethod
    def _parse_transaction_type(cls, v: Any) -> SourceKind | None:
        if v is None:
            return None
        return parse_source_kind(v)

    @field_validator("sort_direction", mode="before")
    @classmethod
    def _normalize_direction(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v

    @model_validator(mode="after")
    def _check_range(self) -> StatementFilters:
        if self.from_date and self.to_date and self.from_date > self.to_date:
            raise ValueError("from_date must be on or before to_date")
        return self

    @property
    def search_term(self) -> str | None:
        """Trimmed search text, or ``None`` when nothing is left to match."""

        if self.search is None:
            return None
        term = self.search.strip()
        return term or None

    @property
    def has_narrowing_filters(self) -> bool:
        return (
            self.from_date is not None
            or self.to_date is not None
            or self.search is not None
            or self.transaction_type is not None
        )


__all__ = [
    "ZERO",
    "PartyType",
    "SourceKind",
    "TransactionKind",
    "parse_source_kind",
    "PartyRef",
    "TransactionRecord",
    "BalanceSnapshot",
    "StatementPage",
    "Statement",
    "PartyBalanceChange",
    "RecalculationReport",
    "StatementFilters",
]
