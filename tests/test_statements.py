from __future__ import annotations

from datetime import UTC, date, datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest
from erp_db import (
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
from erp_db.client import session_scope
from pydantic import ValidationError

from erp_ledger.models import PartyRef, PartyType, SourceKind, StatementFilters, TransactionKind
from erp_ledger.sources import SOURCES, normalize_rows
from erp_ledger.statements import build_statement, find_party, fold_balances, paginate
from tests.helpers.db import add_customer, add_document, add_supplier

# ---- Fixtures ----------------------------------------------------------------


@pytest.fixture()
def acme(db_url: str) -> int:
    """Customer with one invoice (800), one payment (500), one credit note (100).

    Also carries rows the approval gates must exclude.
    """

    with session_scope(database_url=db_url) as s:
        c = add_customer(s, "50000000", "Acme Trading")
        add_document(
            s, Sale, c, 800, date(2024, 3, 1), prefix="INV", code="001000",
            note="March invoice", approved_by=1,
        )
        add_document(s, CustomerPayment, c, 500, date(2024, 3, 5), code="001000", approved_by=1)
        add_document(
            s, CustomerCreditDebitNote, c, 100, date(2024, 3, 10), code="001000",
            type="credit", note="Damaged goods",
        )
        # Excluded: draft invoice, unapproved payment, return not yet received.
        add_document(s, Sale, c, 999, date(2024, 3, 2), code="001001")
        add_document(s, CustomerPayment, c, 77, date(2024, 3, 3), code="001001")
        add_document(s, CustomerReturn, c, 50, date(2024, 3, 4), code="001000", approved_by=1)
        return c.id


def _statement(url: str, customer_id: int, filters: StatementFilters | None = None, **kw):
    with session_scope(database_url=url) as s:
        return build_statement(s, s.get(Customer, customer_id), filters, **kw)


def _stored_balance(url: str, model, party_id: int) -> Decimal:
    with session_scope(database_url=url) as s:
        return s.get(model, party_id).current_balance


# ---- Fold --------------------------------------------------------------------


def test_fold_matches_independent_totals(db_url: str, acme: int) -> None:
    st = _statement(db_url, acme)

    assert st.snapshot.total_debit == Decimal("800")
    assert st.snapshot.total_credit == Decimal("600")
    assert st.snapshot.ending_balance == Decimal("200")
    assert [r.kind for r in st.transactions] == [
        TransactionKind.CREDIT_NOTE,
        TransactionKind.PAYMENT,
        TransactionKind.INVOICE,
    ]
    # Default display is newest first; the newest row carries the ending balance.
    assert st.transactions[0].balance == Decimal("200")
    assert st.transactions[-1].balance == Decimal("800")


def test_approval_gates_exclude_unapproved_documents(db_url: str, acme: int) -> None:
    st = _statement(db_url, acme)
    assert {r.debit_amount + r.credit_amount for r in st.transactions} == {
        Decimal("800"),
        Decimal("500"),
        Decimal("100"),
    }


def test_received_return_is_included(db_url: str) -> None:
    with session_scope(database_url=db_url) as s:
        c = add_customer(s, "50000001", "Beta")
        add_document(s, Sale, c, 300, date(2024, 1, 1), approved_by=1)
        add_document(
            s, CustomerReturn, c, 120, date(2024, 1, 2), approved_by=1, return_received_by=2
        )
        cid = c.id
    st = _statement(db_url, cid)
    assert st.snapshot.ending_balance == Decimal("180")
    assert st.transactions[0].label == "Sales Return"


def test_empty_statement_resets_stored_balance(db_url: str) -> None:
    with session_scope(database_url=db_url) as s:
        cid = add_customer(s, "50000002", "Idle", balance=75).id
    st = _statement(db_url, cid)
    assert st.transactions == ()
    assert st.snapshot.ending_balance == 0
    assert st.balance_updated is True
    assert _stored_balance(db_url, Customer, cid) == 0


# ---- Sign convention ---------------------------------------------------------


def test_credits_reduce_and_debits_increase_balance(db_url: str) -> None:
    with session_scope(database_url=db_url) as s:
        c = add_customer(s, "50000003", "Gamma")
        add_document(s, Sale, c, 300, date(2024, 2, 1), approved_by=1)
        add_document(
            s, CustomerReturn, c, 100, date(2024, 2, 2), approved_by=1, return_received_by=1
        )
        add_document(s, CustomerPayment, c, 100, date(2024, 2, 3), approved_by=1)
        add_document(s, CustomerCreditDebitNote, c, 100, date(2024, 2, 4), type="debit")
        cid = c.id

    st = _statement(db_url, cid, StatementFilters(sort_direction="asc"))
    balances = [r.balance for r in st.transactions]
    assert balances == [Decimal("300"), Decimal("200"), Decimal("100"), Decimal("200")]
    kinds = [r.kind for r in st.transactions]
    assert kinds == [
        TransactionKind.INVOICE,
        TransactionKind.RETURN,
        TransactionKind.PAYMENT,
        TransactionKind.DEBIT_NOTE,
    ]
    debit_note = st.transactions[-1]
    assert debit_note.label == "Debit Note"
    assert debit_note.amount == Decimal("100")


def test_supplier_statement_uses_the_same_sign_table(db_url: str) -> None:
    with session_scope(database_url=db_url) as s:
        sup = add_supplier(s, "001000", "Northwind Supply")
        add_document(s, Purchase, sup, 1000, date(2024, 4, 1), prefix="PO")
        add_document(s, SupplierPayment, sup, 400, date(2024, 4, 2))
        add_document(s, PurchaseReturn, sup, 100, date(2024, 4, 3))
        add_document(s, SupplierCreditDebitNote, sup, 50, date(2024, 4, 4), type="debit")
        sid = sup.id

    with session_scope(database_url=db_url) as s:
        st = build_statement(s, s.get(Supplier, sid))
    assert st.party_type.value == "supplier"
    assert st.snapshot.total_debit == Decimal("1050")
    assert st.snapshot.total_credit == Decimal("500")
    assert st.snapshot.ending_balance == Decimal("550")
    assert [r.label for r in reversed(st.transactions)] == [
        "Purchase",
        "Payment",
        "Purchase Return",
        "Debit Note",
    ]
    assert _stored_balance(db_url, Supplier, sid) == Decimal("550")


# ---- Ordering ----------------------------------------------------------------


def test_sort_direction_orders_dates(db_url: str, acme: int) -> None:
    asc = _statement(db_url, acme, StatementFilters(sort_direction="asc")).transactions
    desc = _statement(db_url, acme, StatementFilters(sort_direction="desc")).transactions

    asc_dates = [r.date for r in asc]
    desc_dates = [r.date for r in desc]
    assert asc_dates == sorted(asc_dates)
    assert desc_dates == sorted(desc_dates, reverse=True)
    assert list(desc) == list(reversed(asc))


def test_running_balance_does_not_depend_on_display_order(db_url: str, acme: int) -> None:
    asc = _statement(db_url, acme, StatementFilters(sort_direction="asc")).transactions
    desc = _statement(db_url, acme, StatementFilters(sort_direction="desc")).transactions
    by_row = {(r.source_table, r.id): r.balance for r in asc}
    assert {(r.source_table, r.id): r.balance for r in desc} == by_row


def test_same_day_rows_follow_creation_order(db_url: str) -> None:
    with session_scope(database_url=db_url) as s:
        c = add_customer(s, "50000004", "Delta")
        # Payment created before the invoice on the same day.
        add_document(s, CustomerPayment, c, 40, date(2024, 5, 1), approved_by=1)
        add_document(s, Sale, c, 100, date(2024, 5, 1), approved_by=1)
        cid = c.id
    st = _statement(db_url, cid, StatementFilters(sort_direction="asc"))
    assert [r.kind for r in st.transactions] == [TransactionKind.PAYMENT, TransactionKind.INVOICE]
    assert [r.balance for r in st.transactions] == [Decimal("-40"), Decimal("60")]


def test_creation_time_compares_across_utc_offsets() -> None:
    day = date(2024, 5, 1)
    plus_two = timezone(timedelta(hours=2))

    def _sale(row_id: int, amount: int, created_at: datetime | None) -> SimpleNamespace:
        return SimpleNamespace(
            id=row_id, prefix="", code=f"00{row_id}", date=day, note=None,
            created_at=created_at, total_usd=amount,
        )

    rows = [
        _sale(1, 30, None),
        _sale(2, 10, datetime(2024, 5, 1, 9, 0, tzinfo=UTC)),
        # 08:00 UTC, written with a +02:00 offset.
        _sale(3, 20, datetime(2024, 5, 1, 10, 0, tzinfo=plus_two)),
    ]
    records = normalize_rows(
        rows, SOURCES[PartyType.CUSTOMER][0], PartyRef(id=1, code="50000000", name="Acme")
    )
    ordered, snapshot = fold_balances(records)
    assert [r.id for r in ordered] == [3, 2, 1]
    assert [r.balance for r in ordered] == [Decimal("20"), Decimal("30"), Decimal("60")]
    assert snapshot.ending_balance == Decimal("60")


# ---- Write-back --------------------------------------------------------------


def test_unfiltered_statement_writes_back_balance_once(db_url: str, acme: int) -> None:
    first = _statement(db_url, acme)
    assert first.balance_updated is True
    assert _stored_balance(db_url, Customer, acme) == Decimal("200")

    second = _statement(db_url, acme)
    assert second.balance_updated is False
    assert _stored_balance(db_url, Customer, acme) == Decimal("200")


def test_build_statement_refreshes_loaded_party(db_url: str, acme: int) -> None:
    with session_scope(database_url=db_url) as s:
        party = s.get(Customer, acme)
        build_statement(s, party)
        assert party.current_balance == Decimal("200")
        assert party not in s.dirty


@pytest.mark.parametrize(
    "filters",
    [
        StatementFilters(search="invoice"),
        StatementFilters(search=""),
        StatementFilters(from_date=date(2024, 1, 1)),
        StatementFilters(to_date=date(2030, 1, 1)),
        StatementFilters(transaction_type="payment"),
    ],
)
def test_filtered_statement_never_writes_back(
    db_url: str, acme: int, filters: StatementFilters
) -> None:
    with session_scope(database_url=db_url) as s:
        s.get(Customer, acme).current_balance = Decimal("12345")

    st = _statement(db_url, acme, filters)
    assert st.balance_updated is False
    assert _stored_balance(db_url, Customer, acme) == Decimal("12345")


def test_sort_direction_alone_is_not_a_filter(db_url: str, acme: int) -> None:
    st = _statement(db_url, acme, StatementFilters(sort_direction="asc"))
    assert st.balance_updated is True


# ---- Filters -----------------------------------------------------------------


def test_date_range_is_inclusive(db_url: str, acme: int) -> None:
    st = _statement(
        db_url, acme, StatementFilters(from_date="2024-03-05", to_date="2024-03-10")
    )
    assert [r.kind for r in st.transactions] == [
        TransactionKind.CREDIT_NOTE,
        TransactionKind.PAYMENT,
    ]
    assert st.snapshot.ending_balance == Decimal("-600")


@pytest.mark.parametrize(
    ("term", "expected"),
    [
        ("MARCH", {TransactionKind.INVOICE}),
        ("inv", {TransactionKind.INVOICE}),
        ("damaged", {TransactionKind.CREDIT_NOTE}),
        ("001000", {TransactionKind.INVOICE, TransactionKind.PAYMENT, TransactionKind.CREDIT_NOTE}),
        ("no such text", set()),
    ],
)
def test_search_matches_note_code_or_prefix(
    db_url: str, acme: int, term: str, expected: set[TransactionKind]
) -> None:
    st = _statement(db_url, acme, StatementFilters(search=term))
    assert {r.kind for r in st.transactions} == expected


def test_search_treats_wildcards_literally(db_url: str) -> None:
    with session_scope(database_url=db_url) as s:
        c = add_customer(s, "50000005", "Epsilon")
        add_document(s, CustomerPayment, c, 10, date(2024, 6, 1), note="50% deposit", approved_by=1)
        add_document(s, CustomerPayment, c, 20, date(2024, 6, 2), note="500 final", approved_by=1)
        cid = c.id
    st = _statement(db_url, cid, StatementFilters(search="50%"))
    assert [r.note for r in st.transactions] == ["50% deposit"]


@pytest.mark.parametrize(
    ("raw", "kind"),
    [
        ("payment", TransactionKind.PAYMENT),
        ("sale", TransactionKind.INVOICE),
        ("invoice", TransactionKind.INVOICE),
        ("credit_debit_note", TransactionKind.CREDIT_NOTE),
    ],
)
def test_transaction_type_restricts_to_one_source(
    db_url: str, acme: int, raw: str, kind: TransactionKind
) -> None:
    st = _statement(db_url, acme, StatementFilters(transaction_type=raw))
    assert [r.kind for r in st.transactions] == [kind]


# ---- Filter validation -------------------------------------------------------


def test_filters_parse_and_normalize() -> None:
    f = StatementFilters(
        from_date="2024-01-01", sort_direction="ASC", transaction_type="Purchase_Returns"
    )
    assert f.from_date == date(2024, 1, 1)
    assert f.sort_direction == "asc"
    assert f.transaction_type is SourceKind.RETURN
    assert f.has_narrowing_filters is True
    assert StatementFilters().has_narrowing_filters is False
    assert StatementFilters(search="  ").search_term is None


@pytest.mark.parametrize(
    "kwargs",
    [
        {"transaction_type": "refund"},
        {"sort_direction": "sideways"},
        {"from_date": "not-a-date"},
        {"from_date": "2024-02-01", "to_date": "2024-01-01"},
        {"page": 2},
    ],
)
def test_invalid_filters_are_rejected(kwargs: dict) -> None:
    with pytest.raises(ValidationError):
        StatementFilters(**kwargs)


# ---- Pagination --------------------------------------------------------------


def test_pagination_slices_display_order_and_keeps_full_totals(db_url: str, acme: int) -> None:
    st = _statement(db_url, acme, page=2, per_page=2)
    assert st.page is not None
    assert st.page.total == 3
    assert st.page.last_page == 2
    assert [r.kind for r in st.page.items] == [TransactionKind.INVOICE]
    assert st.page.items[0].balance == Decimal("800")
    assert st.snapshot.ending_balance == Decimal("200")
    assert len(st.transactions) == 3

    rendered = st.to_dict()
    assert len(rendered["data"]) == 1
    assert rendered["pagination"] == {"current_page": 2, "per_page": 2, "total": 3, "last_page": 2}


def test_page_past_the_end_is_empty(db_url: str, acme: int) -> None:
    st = _statement(db_url, acme, page=5)
    assert st.page is not None
    assert st.page.per_page == 15
    assert st.page.items == ()


def test_paginate_rejects_non_positive_values() -> None:
    with pytest.raises(ValueError):
        paginate((), 0)
    with pytest.raises(ValueError):
        paginate((), 1, per_page=0)


def test_fold_of_nothing_is_zero() -> None:
    rows, snapshot = fold_balances([])
    assert rows == []
    assert snapshot.ending_balance == snapshot.total_debit == snapshot.total_credit == 0


# ---- Party lookup ------------------------------------------------------------


def test_find_party_by_code_then_name(db_url: str, acme: int) -> None:
    with session_scope(database_url=db_url) as s:
        add_customer(s, "50000009", "Acme Holdings")
    with session_scope(database_url=db_url) as s:
        assert find_party(s, "customer", "50000000").id == acme
        # Name matches are case-insensitive; alphabetical first wins.
        assert find_party(s, "customer", "acme").name == "Acme Holdings"
        assert find_party(s, "customer", "trading").id == acme
        assert find_party(s, "customer", "zzz") is None
        assert find_party(s, "supplier", "acme") is None
        assert find_party(s, "customer", "  ") is None
        with pytest.raises(ValueError):
            find_party(s, "employee", "acme")


def test_build_statement_rejects_non_party(db_url: str) -> None:
    with session_scope(database_url=db_url) as s:
        with pytest.raises(ValueError):
            build_statement(s, object())
