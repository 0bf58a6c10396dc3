# erp_ledger/modules/invoices/__init__.py

from .lifecycle import (
    InvoiceValidationError,
    delete_invoice,
    freeze_fx,
    next_invoice_number,
    save_invoice,
)

__all__ = [
    "InvoiceValidationError",
    "next_invoice_number",
    "freeze_fx",
    "save_invoice",
    "delete_invoice",
]
