"""erp_db: shared database library (SQLAlchemy/Alembic).

Public exports
--------------
- ``Base`` and ``metadata`` for Alembic autogenerate/targeting
- ORM models in ``erp_db.models`` (re-exported for convenience)
- Engine/session helpers in ``erp_db.client``
"""

from __future__ import annotations

from .models import (
    Base,
    Counter,
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

# Re-export SQLAlchemy metadata for Alembic's env.py
metadata = Base.metadata

__all__ = [
    "Base",
    "metadata",
    "Counter",
    "Customer",
    "Supplier",
    "Sale",
    "CustomerPayment",
    "CustomerReturn",
    "CustomerCreditDebitNote",
    "Purchase",
    "SupplierPayment",
    "PurchaseReturn",
    "SupplierCreditDebitNote",
]
