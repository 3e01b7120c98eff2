"""Environment-driven settings for ``erp_ledger``.

Values are read lazily on every call so that tests (and long-running hosts
that reload ``.env``) see the current environment. Malformed values fall back
to the documented default and are logged, never raised.
"""

from __future__ import annotations

import os

from .logging_setup import get_logger

logger = get_logger("erp_ledger.config")

DEFAULT_RECALC_BATCH_SIZE = 100
DEFAULT_STATEMENT_PER_PAGE = 15


def _env_int(name: str, default: int, *, minimum: int | None = None) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw.strip())
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r; using %d", name, raw, default)
        return default
    if minimum is not None and value < minimum:
        logger.warning("Ignoring %s=%d below minimum %d; using %d", name, value, minimum, default)
        return default
    return value


def code_start_override(namespace: str, default: int) -> int:
    """Starting value for ``namespace`` honoring ``ERP_<NAMESPACE>_CODE_START``."""

    return _env_int(f"ERP_{namespace.upper()}_CODE_START", default, minimum=0)


def recalc_batch_size() -> int:
    return _env_int("ERP_RECALC_BATCH_SIZE", DEFAULT_RECALC_BATCH_SIZE, minimum=1)


__all__ = [
    "DEFAULT_RECALC_BATCH_SIZE",
    "DEFAULT_STATEMENT_PER_PAGE",
    "code_start_override",
    "recalc_batch_size",
]
