# erp_ledger/database/__init__.py
"""
Data layer public API.

Usage:
    from erp_ledger.database import (
        DataSnapshot, Patch, apply_patch, merge_patches,
        Invoice, InvoiceLine, Payment, Party, Note, Item, Expense, Bank,
        CashTransaction, PurchaseLot, DomainError,
    )
"""

from .records import (
    Bank,
    CashTransaction,
    DomainError,
    Expense,
    Invoice,
    InvoiceLine,
    Item,
    Note,
    Party,
    Payment,
    PurchaseLot,
)
from .snapshot import DataSnapshot, Patch, apply_patch, merge_patches

__all__ = [
    # records
    "Bank",
    "CashTransaction",
    "DomainError",
    "Expense",
    "Invoice",
    "InvoiceLine",
    "Item",
    "Note",
    "Party",
    "Payment",
    "PurchaseLot",
    # snapshot
    "DataSnapshot",
    "Patch",
    "apply_patch",
    "merge_patches",
]
