"""Sequential, gap-free document codes backed by the ``erp_counters`` table.

Every namespace (``"customers"``, ``"sales"``, ``"customer_payments"``...) owns
one counter row. ``current_value`` on that row is the number the next
allocation hands out, so:

- ``peek_next`` reads it (creating the row on first use) without moving it;
- ``allocate_next`` advances it with one atomic ``UPDATE ... RETURNING`` and
  returns the pre-increment value;
- ``claim_code`` advances it only when a caller-supplied code equals the
  current suggestion (compare-and-swap).

All functions take the caller's ``Session`` and never commit: the row lock
taken by the increment is held until the caller commits, which is what
serializes concurrent allocators. Keep the surrounding transaction short.
"""

from __future__ import annotations

from dataclasses import dataclass, replace

from erp_db.models import Counter
from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from .config import code_start_override
from .logging_setup import get_logger

logger = get_logger("erp_ledger.sequences")


class SequenceUnavailableError(RuntimeError):
    """The counter store could not complete an allocation (lock timeout, outage).

    Transient: no code was handed out, so the whole request can be retried.
    """

    def __init__(self, namespace: str, reason: str) -> None:
        super().__init__(f"sequence {namespace!r} unavailable: {reason}")
        self.namespace = namespace


@dataclass(frozen=True, slots=True)
class NamespaceConfig:
    """Seed and display convention for one counter namespace."""

    starting_value: int
    display_width: int = 6

    def __post_init__(self) -> None:
        if self.starting_value < 0:
            raise ValueError("starting_value must be non-negative")
        if self.display_width < 1:
            raise ValueError("display_width must be >= 1")


DEFAULT_NAMESPACE_CONFIG = NamespaceConfig(starting_value=1000, display_width=6)

_REGISTRY: dict[str, NamespaceConfig] = {
    "customers": NamespaceConfig(starting_value=50_000_000, display_width=8),
    "suppliers": DEFAULT_NAMESPACE_CONFIG,
    "sales": DEFAULT_NAMESPACE_CONFIG,
    "customer_payments": DEFAULT_NAMESPACE_CONFIG,
    "customer_returns": DEFAULT_NAMESPACE_CONFIG,
    "customer_credit_debit_notes": DEFAULT_NAMESPACE_CONFIG,
    "purchases": DEFAULT_NAMESPACE_CONFIG,
    "supplier_payments": DEFAULT_NAMESPACE_CONFIG,
    "purchase_returns": DEFAULT_NAMESPACE_CONFIG,
    "supplier_credit_debit_notes": DEFAULT_NAMESPACE_CONFIG,
}


def known_namespaces() -> list[str]:
    return sorted(_REGISTRY)


def namespace_config(namespace: str) -> NamespaceConfig:
    """Return the effective config for ``namespace``.

    Unknown namespaces get ``DEFAULT_NAMESPACE_CONFIG``. The starting value can
    be overridden per namespace with ``ERP_<NAMESPACE>_CODE_START``.
    """

    base = _REGISTRY.get(namespace, DEFAULT_NAMESPACE_CONFIG)
    start = code_start_override(namespace, base.starting_value)
    return base if start == base.starting_value else replace(base, starting_value=start)


def format_code(value: int, width: int) -> str:
    """Left-pad ``value`` with zeros to at least ``width`` digits; never truncate."""

    if width < 1:
        raise ValueError("width must be >= 1")
    if value < 0:
        raise ValueError("code values are non-negative")
    return f"{value:0{width}d}"


def _validate_namespace(namespace: str) -> str:
    ns = (namespace or "").strip()
    if not ns:
        raise ValueError("namespace must be a non-empty string")
    if len(ns) > 64:
        raise ValueError("namespace must be at most 64 characters")
    return ns


def _ensure_counter(session: Session, namespace: str, config: NamespaceConfig) -> None:
    """Create the counter row seeded with ``config`` unless it already exists.

    On SQLite and Postgres this is a single ``INSERT ... ON CONFLICT DO
    NOTHING``; issuing a write first also means SQLite takes its write lock
    up front instead of upgrading a read lock later in the transaction.
    """

    values = {
        "namespace": namespace,
        "current_value": config.starting_value,
        "display_width": config.display_width,
        "starting_value": config.starting_value,
    }
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        session.execute(
            pg_insert(Counter).values(**values).on_conflict_do_nothing(
                index_elements=[Counter.namespace]
            )
        )
        return
    if dialect == "sqlite":
        session.execute(
            sqlite_insert(Counter).values(**values).on_conflict_do_nothing(
                index_elements=[Counter.namespace]
            )
        )
        return

    if session.get(Counter, namespace) is not None:
        return
    try:
        with session.begin_nested():
            session.add(Counter(**values))
    except IntegrityError:
        # Another transaction created the row first; its seed wins.
        logger.debug("counter %s created concurrently", namespace)


def _increment(session: Session, namespace: str) -> tuple[int, int]:
    """Advance the counter by one; return ``(pre_increment_value, width)``."""

    stmt = (
        update(Counter)
        .where(Counter.namespace == namespace)
        .values(current_value=Counter.current_value + 1, updated_at=func.now())
        .execution_options(synchronize_session=False)
    )
    if session.get_bind().dialect.update_returning:
        row = session.execute(
            stmt.returning(Counter.current_value, Counter.display_width)
        ).one()
        return row.current_value - 1, row.display_width

    # No UPDATE ... RETURNING: lock the row first, then increment.
    locked = session.execute(
        select(Counter.current_value, Counter.display_width)
        .where(Counter.namespace == namespace)
        .with_for_update()
    ).one()
    session.execute(stmt)
    return locked.current_value, locked.display_width


def _read(session: Session, namespace: str) -> tuple[int, int]:
    row = session.execute(
        select(Counter.current_value, Counter.display_width).where(
            Counter.namespace == namespace
        )
    ).one()
    return row.current_value, row.display_width


def peek_next(
    session: Session,
    namespace: str,
    *,
    config: NamespaceConfig | None = None,
) -> str:
    """Return the code the next ``allocate_next`` would assign, without consuming it.

    The counter row is created on first use (seeded with the namespace's
    starting value); otherwise there are no side effects.
    """

    ns = _validate_namespace(namespace)
    cfg = config or namespace_config(ns)
    try:
        _ensure_counter(session, ns, cfg)
        value, width = _read(session, ns)
    except OperationalError as exc:
        logger.warning("peek on sequence %s failed: %s", ns, exc)
        raise SequenceUnavailableError(ns, str(exc.orig or exc)) from exc
    return format_code(value, width)


def allocate_next(
    session: Session,
    namespace: str,
    *,
    config: NamespaceConfig | None = None,
) -> str:
    """Atomically assign the next code in ``namespace`` and advance the counter.

    Concurrent callers serialize on the counter row and each receives a
    distinct value; together they form a contiguous run. ``config`` only
    matters when the row does not exist yet.

    Raises
    ------
    SequenceUnavailableError
        The store rejected the read-modify-write (lock timeout, lost
        connection). Nothing was assigned.
    """

    ns = _validate_namespace(namespace)
    cfg = config or namespace_config(ns)
    try:
        _ensure_counter(session, ns, cfg)
        value, width = _increment(session, ns)
    except OperationalError as exc:
        logger.warning("allocation on sequence %s failed: %s", ns, exc)
        raise SequenceUnavailableError(ns, str(exc.orig or exc)) from exc

    code = format_code(value, width)
    logger.debug("allocated %s from sequence %s", code, ns)
    return code


def claim_code(
    session: Session,
    namespace: str,
    code: str,
    *,
    config: NamespaceConfig | None = None,
) -> bool:
    """Consume the current suggestion only when ``code`` is exactly that suggestion.

    Used when an operator types their own code: a custom code leaves the
    counter untouched, while typing the suggested code must not let a later
    ``allocate_next`` hand the same code out again. Returns whether the
    counter advanced. A concurrent allocation between the read and the
    compare-and-swap makes this return ``False``.
    """

    ns = _validate_namespace(namespace)
    cfg = config or namespace_config(ns)
    try:
        _ensure_counter(session, ns, cfg)
        value, width = _read(session, ns)
        if code != format_code(value, width):
            return False
        result = session.execute(
            update(Counter)
            .where(Counter.namespace == ns, Counter.current_value == value)
            .values(current_value=value + 1, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
    except OperationalError as exc:
        logger.warning("claim on sequence %s failed: %s", ns, exc)
        raise SequenceUnavailableError(ns, str(exc.orig or exc)) from exc

    claimed = result.rowcount == 1
    if claimed:
        logger.debug("claimed suggested code %s from sequence %s", code, ns)
    return claimed


__all__ = [
    "DEFAULT_NAMESPACE_CONFIG",
    "NamespaceConfig",
    "SequenceUnavailableError",
    "allocate_next",
    "claim_code",
    "format_code",
    "known_namespaces",
    "namespace_config",
    "peek_next",
]
