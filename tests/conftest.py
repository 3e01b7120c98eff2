"""Pytest configuration for test isolation.

The database client caches one engine per process, and several settings are
read from the environment on every call. Each test gets a fresh engine and an
environment without ledger overrides so that a URL or code-start value set by
one test never leaks into the next.
"""

from __future__ import annotations

import os
import sys
from collections.abc import Iterator
from pathlib import Path

import pytest

# Make the workspace packages importable without an install: `packages/` for
# `erp_ledger`, `libs/db/src` for `erp_db`, and the repo root for `tests.helpers`.
_ROOT = Path(__file__).resolve().parents[1]
sys.path[:0] = [
    p
    for p in [str(_ROOT / "packages"), str(_ROOT / "libs" / "db" / "src"), str(_ROOT)]
    if p not in sys.path
]

from erp_db.client import reset_engine  # noqa: E402


@pytest.fixture(autouse=True)
def _isolate_engine_and_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Dispose the shared engine around each test and drop ledger env overrides."""

    for name in list(os.environ):
        if name.startswith("ERP_") or name == "DATABASE_URL":
            monkeypatch.delenv(name, raising=False)
    reset_engine()
    yield
    reset_engine()


@pytest.fixture()
def db_url(tmp_path: Path) -> str:
    """URL of a freshly bootstrapped file-backed SQLite database."""

    from tests.helpers.db import bootstrap_sqlite_db

    return bootstrap_sqlite_db(tmp_path / "ledger.sqlite3")
