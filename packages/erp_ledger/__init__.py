"""Public interface for the ``erp_ledger`` package.

Document code sequences and customer/supplier statements. This module only
re-exports the stable import surface; logic lives in ``sequences`` and
``statements``.
"""

from .models import (
    BalanceSnapshot,
    PartyBalanceChange,
    PartyType,
    RecalculationReport,
    SourceKind,
    Statement,
    StatementFilters,
    StatementPage,
    TransactionKind,
    TransactionRecord,
)
from .sequences import (
    NamespaceConfig,
    SequenceUnavailableError,
    allocate_next,
    claim_code,
    format_code,
    peek_next,
)
from .statements import build_statement, bulk_recalculate, find_party

__all__ = [
    # Sequences
    "peek_next",
    "allocate_next",
    "claim_code",
    "format_code",
    "NamespaceConfig",
    "SequenceUnavailableError",
    # Statements
    "build_statement",
    "bulk_recalculate",
    "find_party",
    # Models / types
    "StatementFilters",
    "TransactionRecord",
    "BalanceSnapshot",
    "Statement",
    "StatementPage",
    "RecalculationReport",
    "PartyBalanceChange",
    "PartyType",
    "TransactionKind",
    "SourceKind",
]
