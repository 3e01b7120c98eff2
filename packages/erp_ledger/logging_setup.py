"""Logging configuration for the ``erp_ledger`` package.

Entry points (the CLI, a host web application) call ``configure_logging()``
once at startup. Library modules never attach handlers themselves; they only
call ``get_logger("erp_ledger.<module>")``.

Environment
-----------
``ERP_LEDGER_LOG_LEVEL``
    Level name or number used when ``configure_logging`` gets no explicit
    level. Defaults to ``INFO``.
``ERP_LEDGER_SQL_ECHO``
    When truthy, SQLAlchemy statement logging (``sqlalchemy.engine``) is routed
    through the same handler at INFO.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO

_PKG_LOGGER_NAME = "erp_ledger"
_DEFAULT_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"
_CONFIGURED = False


def _parse_level(level: int | str | None) -> int:
    if isinstance(level, int):
        return level
    if level is None:
        env_val = os.getenv("ERP_LEDGER_LOG_LEVEL")
        if not env_val:
            return logging.INFO
        level = env_val
    name = level.strip().upper()
    if name.isdigit():
        return int(name)
    numeric = logging.getLevelName(name)
    return numeric if isinstance(numeric, int) else logging.INFO


def _truthy(raw: str | None) -> bool:
    return (raw or "").strip().lower() in {"1", "true", "yes", "on"}


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] = sys.stderr,
) -> None:
    """Attach a single ``StreamHandler`` to the package logger (idempotent).

    Parameters
    ----------
    level:
        ``int`` or level name. ``None`` falls back to ``ERP_LEDGER_LOG_LEVEL``
        and then to ``logging.INFO``.
    fmt:
        Optional format string; defaults to ``_DEFAULT_FORMAT``.
    stream:
        Output stream for the handler (``sys.stderr`` by default).
    """

    global _CONFIGURED
    if _CONFIGURED:
        return

    resolved = _parse_level(level)
    handler = logging.StreamHandler(stream)
    handler.setLevel(resolved)
    handler.setFormatter(logging.Formatter(fmt or _DEFAULT_FORMAT))

    logger = logging.getLogger(_PKG_LOGGER_NAME)
    for existing in list(logger.handlers):
        if isinstance(existing, logging.NullHandler):
            logger.removeHandler(existing)
    logger.setLevel(resolved)
    logger.addHandler(handler)
    logger.propagate = False

    if _truthy(os.getenv("ERP_LEDGER_SQL_ECHO")):
        sql_logger = logging.getLogger("sqlalchemy.engine")
        sql_logger.setLevel(logging.INFO)
        sql_logger.addHandler(handler)

    _CONFIGURED = True


def get_logger(name: str) -> logging.Logger:
    """Return a logger by name; silent until an application configures output."""

    pkg_logger = logging.getLogger(_PKG_LOGGER_NAME)
    if not _CONFIGURED and not pkg_logger.handlers:
        pkg_logger.addHandler(logging.NullHandler())
    return logging.getLogger(name)


__all__ = ["configure_logging", "get_logger"]
