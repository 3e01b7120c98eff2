"""Shared SQLAlchemy models registry for the ledger database.

Counters and parties live in ``ledger``; the transaction source tables read by
statements live in ``documents``.
"""

from .documents import (
    CustomerCreditDebitNote,
    CustomerPayment,
    CustomerReturn,
    Purchase,
    PurchaseReturn,
    Sale,
    SupplierCreditDebitNote,
    SupplierPayment,
)
from .ledger import Base, Counter, Customer, Supplier

__all__ = [
    "Base",
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
