"""DB helpers for tests: bootstrap a temporary SQLite DB and seed ledger rows."""

from __future__ import annotations

import itertools
import os
from datetime import UTC, date, datetime, timedelta
from decimal import Decimal
from pathlib import Path
from typing import Any

from erp_db import Base, Customer, Supplier
from erp_db.client import get_engine
from sqlalchemy import event
from sqlalchemy.orm import Session

# Monotonic creation timestamps keep same-day ordering deterministic.
_CLOCK = itertools.count()
_EPOCH = datetime(2024, 1, 1, tzinfo=UTC)


def bootstrap_sqlite_db(db_file: Path, *, set_default_env: bool = False) -> str:
    """Create a SQLite database file, initialize schema, and return the URL.

    Using a file-backed SQLite DB lets several SQLAlchemy connections (and
    threads) share the same state; in-memory DBs are per-connection.
    """

    url = f"sqlite+pysqlite:///{db_file}"
    db_file.parent.mkdir(parents=True, exist_ok=True)
    engine = get_engine(database_url=url)

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_conn, _):  # pragma: no cover - tiny bridge
        dbapi_conn.execute("PRAGMA foreign_keys = ON")

    Base.metadata.create_all(bind=engine)

    if set_default_env:
        os.environ.setdefault("DATABASE_URL", url)
    return url


def next_created_at() -> datetime:
    return _EPOCH + timedelta(seconds=next(_CLOCK))


def add_customer(
    session: Session,
    code: str,
    name: str,
    *,
    balance: Decimal | int | str = 0,
    is_active: bool = True,
) -> Customer:
    now = next_created_at()
    row = Customer(
        code=code,
        name=name,
        is_active=is_active,
        current_balance=Decimal(str(balance)),
        created_at=now,
        updated_at=now,
    )
    session.add(row)
    session.flush()
    return row


def add_supplier(
    session: Session,
    code: str,
    name: str,
    *,
    balance: Decimal | int | str = 0,
    is_active: bool = True,
) -> Supplier:
    now = next_created_at()
    row = Supplier(
        code=code,
        name=name,
        is_active=is_active,
        current_balance=Decimal(str(balance)),
        created_at=now,
        updated_at=now,
    )
    session.add(row)
    session.flush()
    return row


def add_document(
    session: Session,
    model: Any,
    party: Customer | Supplier,
    amount: Decimal | int | str,
    on: date,
    *,
    code: str | None = None,
    prefix: str = "",
    note: str | None = None,
    created_at: datetime | None = None,
    **extra: Any,
) -> Any:
    """Insert one transaction source row for ``party``.

    The amount lands in ``total_usd`` or ``amount_usd``, whichever ``model``
    has. Extra keyword arguments set gate columns (``approved_by``...) or the
    note ``type``.
    """

    amount_col = "total_usd" if hasattr(model, "total_usd") else "amount_usd"
    party_col = "customer_id" if isinstance(party, Customer) else "supplier_id"
    values: dict[str, Any] = {
        party_col: party.id,
        amount_col: Decimal(str(amount)),
        "date": on,
        "code": code or f"{next(_CLOCK):06d}",
        "prefix": prefix,
        "note": note,
        "created_at": created_at or next_created_at(),
        **extra,
    }
    row = model(**values)
    session.add(row)
    session.flush()
    return row
