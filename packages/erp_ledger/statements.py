"""Customer and supplier statements with running balances.

``build_statement`` merges the four transaction sources of one party into a
single chronological ledger, folds a running balance over it and, when the
view is unfiltered, writes the ending balance back onto the party row.
``bulk_recalculate`` repeats the unfiltered computation for every active
party of one type, batch by batch.

Balance convention (identical for both party types)::

    balance = sum(debit) - sum(credit)

Running balances are folded in chronological order, so they do not depend on
the requested display direction; ``desc`` is the exact reverse of ``asc``.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Sequence
from dataclasses import replace
from decimal import Decimal
from typing import Any

from erp_db.client import session_scope
from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import set_committed_value

from . import config
from .logging_setup import get_logger
from .models import (
    ZERO,
    BalanceSnapshot,
    PartyBalanceChange,
    PartyType,
    RecalculationReport,
    Statement,
    StatementFilters,
    StatementPage,
    TransactionRecord,
)
from .sources import PARTY_MODELS, collect_transactions, party_ref, party_type_of

logger = get_logger("erp_ledger.statements")


def _coerce_party_type(party_type: PartyType | str) -> PartyType:
    try:
        return PartyType(str(party_type).strip().lower())
    except ValueError:
        raise ValueError(
            f"unknown party type {party_type!r}; expected 'customer' or 'supplier'"
        ) from None


def party_model(party_type: PartyType | str) -> Any:
    """ORM class holding parties of ``party_type``."""

    return PARTY_MODELS[_coerce_party_type(party_type)]


def _chronological_key(record: TransactionRecord) -> tuple[Any, ...]:
    return (record.date, *record.tie_break_key)


def fold_balances(
    records: Iterable[TransactionRecord],
) -> tuple[list[TransactionRecord], BalanceSnapshot]:
    """Sort ``records`` chronologically and attach the running balance.

    Returns the annotated records (oldest first) and the totals over all of
    them. The ending balance equals ``total_debit - total_credit``.
    """

    ordered = sorted(records, key=_chronological_key)
    running = ZERO
    total_debit = ZERO
    total_credit = ZERO
    annotated: list[TransactionRecord] = []
    for record in ordered:
        running += record.debit_amount - record.credit_amount
        total_debit += record.debit_amount
        total_credit += record.credit_amount
        annotated.append(replace(record, balance=running))
    snapshot = BalanceSnapshot(
        total_debit=total_debit,
        total_credit=total_credit,
        ending_balance=running,
    )
    return annotated, snapshot


def paginate(
    records: Sequence[TransactionRecord],
    page: int,
    per_page: int = config.DEFAULT_STATEMENT_PER_PAGE,
) -> StatementPage:
    """Slice an already annotated sequence; pages are 1-based."""

    if page < 1:
        raise ValueError("page must be >= 1")
    if per_page < 1:
        raise ValueError("per_page must be >= 1")
    start = (page - 1) * per_page
    return StatementPage(
        items=tuple(records[start : start + per_page]),
        total=len(records),
        per_page=per_page,
        current_page=page,
    )


def _write_back(session: Session, party: Any, ending: Decimal) -> bool:
    """Persist ``ending`` on the party row when it differs from the stored value."""

    model = type(party)
    result = session.execute(
        update(model)
        .where(model.id == party.id, model.current_balance != ending)
        .values(current_balance=ending, updated_at=func.now())
        .execution_options(synchronize_session=False)
    )
    # Keep the loaded instance in step without marking it dirty.
    set_committed_value(party, "current_balance", ending)
    return result.rowcount == 1


def build_statement(
    session: Session,
    party: Any,
    filters: StatementFilters | None = None,
    *,
    page: int | None = None,
    per_page: int | None = None,
) -> Statement:
    """Build the ledger statement of ``party`` (a ``Customer`` or ``Supplier``).

    Parameters
    ----------
    session:
        Open session; the caller owns the transaction and commits it. Any
        balance write-back happens inside that transaction.
    party:
        Loaded party instance.
    filters:
        Optional narrowing and display direction. When any narrowing filter is
        present the computed balance is partial and is never written back.
    page, per_page:
        Request a 1-based page of the display-ordered rows. Totals in the
        returned snapshot always cover the whole (filtered) sequence.

    Returns
    -------
    Statement
        ``transactions`` in display order with running balances attached,
        the snapshot, the optional page, and whether the party's stored
        balance changed.
    """

    filters = filters or StatementFilters()
    party_type = party_type_of(party)

    records = collect_transactions(session, party_type, party, filters)
    chronological, snapshot = fold_balances(records)
    if filters.sort_direction == "desc":
        chronological.reverse()
    display = tuple(chronological)

    statement_page = None
    if page is not None or per_page is not None:
        statement_page = paginate(
            display,
            page if page is not None else 1,
            per_page if per_page is not None else config.DEFAULT_STATEMENT_PER_PAGE,
        )

    updated = False
    if not filters.has_narrowing_filters:
        updated = _write_back(session, party, snapshot.ending_balance)
        if updated:
            logger.info(
                "%s %s balance set to %s (%d transactions)",
                party_type.value,
                party.code,
                snapshot.ending_balance,
                len(display),
            )

    return Statement(
        party_type=party_type,
        party=party_ref(party),
        transactions=display,
        snapshot=snapshot,
        page=statement_page,
        balance_updated=updated,
    )


def find_party(session: Session, party_type: PartyType | str, term: str) -> Any | None:
    """Resolve a party by exact code, else by case-insensitive name substring.

    Name matches resolve to the alphabetically first name (then lowest id).
    Returns ``None`` when ``term`` is blank or nothing matches.
    """

    model = party_model(party_type)
    needle = (term or "").strip()
    if not needle:
        return None
    by_code = session.scalars(select(model).where(model.code == needle)).first()
    if by_code is not None:
        return by_code
    return session.scalars(
        select(model)
        .where(model.name.icontains(needle, autoescape=True))
        .order_by(model.name, model.id)
        .limit(1)
    ).first()


def bulk_recalculate(
    party_type: PartyType | str,
    *,
    party_ids: Iterable[int] | None = None,
    batch_size: int | None = None,
    database_url: str | None = None,
    stop: threading.Event | None = None,
) -> RecalculationReport:
    """Recompute and store the balance of every active party of ``party_type``.

    Parties are visited in id order in batches of ``batch_size`` (default
    ``ERP_RECALC_BATCH_SIZE`` or 100), each batch in its own session. Every
    party is committed on its own: a storage error, a party deleted mid-run or
    malformed source data is logged, rolled back and recorded in
    ``failed_ids`` without affecting the others.
    When ``stop`` is set, no further batch is started.
    """

    pt = _coerce_party_type(party_type)
    size = config.recalc_batch_size() if batch_size is None else batch_size
    if size < 1:
        raise ValueError("batch_size must be >= 1")

    model = PARTY_MODELS[pt]
    criteria = [model.is_active.is_(True)]
    if party_ids is not None:
        ids = sorted({int(i) for i in party_ids})
        if not ids:
            return RecalculationReport()
        criteria.append(model.id.in_(ids))

    with session_scope(database_url=database_url) as session:
        expected = session.scalar(select(func.count()).select_from(model).where(*criteria)) or 0
    logger.info("Recalculating %d %s balances (batch size %d)", expected, pt.value, size)

    report = RecalculationReport()
    last_id = 0
    batch_no = 0
    while True:
        if stop is not None and stop.is_set():
            logger.info("Recalculation stopped after %d batches", batch_no)
            break
        with session_scope(database_url=database_url) as session:
            # Plain rows: a rollback for one party must not expire the others.
            batch = session.execute(
                select(model.id, model.code, model.name, model.current_balance)
                .where(*criteria, model.id > last_id)
                .order_by(model.id)
                .limit(size)
            ).all()
            if not batch:
                break
            batch_no += 1
            for row in batch:
                last_id = row.id
                report.total_parties += 1
                old_balance = ZERO if row.current_balance is None else Decimal(row.current_balance)
                try:
                    party = session.get(model, row.id)
                    if party is None:
                        raise LookupError(f"{pt.value} id={row.id} no longer exists")
                    statement = build_statement(session, party)
                    session.commit()
                except (SQLAlchemyError, LookupError, ValueError):
                    session.rollback()
                    logger.warning(
                        "Balance recalculation failed for %s id=%s", pt.value, row.id, exc_info=True
                    )
                    report.failed_ids.append(row.id)
                    continue
                if statement.balance_updated:
                    report.updated_details.append(
                        PartyBalanceChange(
                            party_id=row.id,
                            code=row.code,
                            name=row.name,
                            old_balance=old_balance,
                            new_balance=statement.snapshot.ending_balance,
                        )
                    )
        logger.info(
            "Batch %d done: %d/%d parties, %d updated, %d failed",
            batch_no,
            report.total_parties,
            expected,
            report.updated_count,
            len(report.failed_ids),
        )

    logger.info(
        "Recalculated %s balances: %d total, %d updated, %d unchanged, %d failed",
        pt.value,
        report.total_parties,
        report.updated_count,
        report.unchanged_count,
        len(report.failed_ids),
    )
    return report


__all__ = [
    "build_statement",
    "bulk_recalculate",
    "find_party",
    "fold_balances",
    "paginate",
    "party_model",
]
