"""CLI for the ``erp_ledger`` package.

Exposes callable command handlers (``cmd_next_code``, ``cmd_statement``,
``cmd_recalculate_balances``) that return a process exit status, plus a
Typer-based console interface around them. ``.env`` in the working directory
is loaded by the root callback before any command runs, so ``DATABASE_URL``
can live there.
"""

from __future__ import annotations

import json
import sys
from collections.abc import Sequence
from datetime import date
from pathlib import Path
from typing import Any

import typer
from dotenv import load_dotenv
from pydantic import ValidationError

from .logging_setup import configure_logging
from .models import PartyType


def _emit_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, sort_keys=False))


def _error(message: str) -> int:
    print(f"Error: {message}", file=sys.stderr)
    return 1


def cmd_next_code(namespace: str, *, reserve: bool = False, database_url: str | None = None) -> int:
    """Print the next code in ``namespace``; consume it when ``reserve`` is set."""

    from erp_db.client import session_scope

    from .sequences import SequenceUnavailableError, allocate_next, peek_next

    try:
        with session_scope(database_url=database_url) as session:
            if reserve:
                code = allocate_next(session, namespace)
            else:
                code = peek_next(session, namespace)
    except SequenceUnavailableError as e:
        return _error(f"{e}; retry later")
    except (RuntimeError, ValueError) as e:
        return _error(str(e))

    print(code)
    return 0


def cmd_statement(
    party_type: str,
    party: str,
    *,
    from_date: date | str | None = None,
    to_date: date | str | None = None,
    search: str | None = None,
    transaction_type: str | None = None,
    sort_direction: str = "desc",
    page: int | None = None,
    per_page: int | None = None,
    database_url: str | None = None,
) -> int:
    """Resolve ``party`` by code or name and print its statement as JSON.

    An unfiltered statement also stores the recomputed balance on the party.
    """

    from erp_db.client import session_scope

    from .models import StatementFilters
    from .statements import build_statement, find_party

    raw: dict[str, Any] = {"sort_direction": sort_direction}
    for key, value in (
        ("from_date", from_date),
        ("to_date", to_date),
        ("search", search),
        ("transaction_type", transaction_type),
    ):
        if value is not None:
            raw[key] = value
    try:
        filters = StatementFilters(**raw)
    except ValidationError as e:
        return _error(f"invalid statement filters: {e}")

    try:
        with session_scope(database_url=database_url) as session:
            found = find_party(session, party_type, party)
            if found is None:
                return _error(f"no {party_type} matches {party!r}")
            statement = build_statement(session, found, filters, page=page, per_page=per_page)
    except (RuntimeError, ValueError) as e:
        return _error(str(e))

    _emit_json(statement.to_dict())
    return 0


def cmd_recalculate_balances(
    party_type: str,
    *,
    party_ids: Sequence[int] | None = None,
    batch_size: int | None = None,
    database_url: str | None = None,
) -> int:
    """Recalculate stored balances and print the report as JSON.

    Exits non-zero when any party failed; the report is printed either way.
    """

    from .statements import bulk_recalculate

    try:
        report = bulk_recalculate(
            party_type,
            party_ids=party_ids or None,
            batch_size=batch_size,
            database_url=database_url,
        )
    except (RuntimeError, ValueError) as e:
        return _error(str(e))

    _emit_json(report.to_dict())
    if report.failed_ids:
        return _error(f"{len(report.failed_ids)} parties failed; see log for details")
    return 0


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Document code sequences and customer/supplier statements. "
        "Loads DATABASE_URL from a local .env before running."
    ),
)


def _finish(status: int) -> None:
    if status:
        raise typer.Exit(status)


def _database_url(ctx: typer.Context) -> str | None:
    return (ctx.obj or {}).get("database_url")


@app.command("next-code")
def next_code_cmd(
    ctx: typer.Context,
    namespace: str = typer.Argument(..., help="Counter namespace, e.g. sales or customers."),
    *,
    reserve: bool = typer.Option(
        False, "--reserve", help="Consume the code instead of only previewing it."
    ),
) -> None:
    """Print the next document code of a namespace."""

    _finish(cmd_next_code(namespace, reserve=reserve, database_url=_database_url(ctx)))


@app.command("statement")
def statement_cmd(
    ctx: typer.Context,
    *,
    party_type: PartyType = typer.Option(..., "--party-type", help="customer or supplier."),
    party: str = typer.Option(..., "--party", help="Party code, or part of its name."),
    from_date: str | None = typer.Option(None, help="Inclusive start date (YYYY-MM-DD)."),
    to_date: str | None = typer.Option(None, help="Inclusive end date (YYYY-MM-DD)."),
    search: str | None = typer.Option(None, help="Match note, code or prefix."),
    transaction_type: str | None = typer.Option(
        None, help="invoice, payment, return or credit_debit_note."
    ),
    sort_direction: str = typer.Option("desc", help="Display order: asc or desc."),
    page: int | None = typer.Option(None, min=1, help="1-based page to print."),
    per_page: int | None = typer.Option(None, min=1, help="Rows per page (default 15)."),
) -> None:
    """Print a party statement with running balances as JSON."""

    # Dates are passed through as text; StatementFilters parses and validates them.
    status = cmd_statement(
        party_type.value,
        party,
        from_date=from_date,
        to_date=to_date,
        search=search,
        transaction_type=transaction_type,
        sort_direction=sort_direction,
        page=page,
        per_page=per_page,
        database_url=_database_url(ctx),
    )
    _finish(status)


@app.command("recalculate-balances")
def recalculate_balances_cmd(
    ctx: typer.Context,
    *,
    party_type: PartyType = typer.Option(..., "--party-type", help="customer or supplier."),
    party_id: list[int] | None = typer.Option(
        None, "--party-id", help="Restrict to these party ids (repeatable)."
    ),
    batch_size: int | None = typer.Option(
        None, min=1, help="Parties per batch (default ERP_RECALC_BATCH_SIZE or 100)."
    ),
) -> None:
    """Recompute every active party's stored balance and print a report."""

    status = cmd_recalculate_balances(
        party_type.value,
        party_ids=party_id,
        batch_size=batch_size,
        database_url=_database_url(ctx),
    )
    _finish(status)


@app.callback(invoke_without_command=True)
def _root(
    ctx: typer.Context,
    *,
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Root command.

    Loads ``.env`` from the current working directory (without overriding any
    already-set environment variables) and configures package logging.
    """

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging()
    ctx.obj = {"database_url": database_url}

    if ctx.invoked_subcommand is None:
        typer.echo("No subcommand provided. Use --help to see available commands.")
        raise typer.Exit(1)


def main() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
