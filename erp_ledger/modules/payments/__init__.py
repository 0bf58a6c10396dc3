# erp_ledger/modules/payments/__init__.py

from .payment_utilities.calculations import InvoiceStatus, get_invoice_status, outstanding_invoices
from .payment_utilities.partial_payment_manager import (
    AllocationError,
    AllocationMismatchError,
    AllocationPlan,
    allocate_customer_payment,
    allocate_vendor_payment,
)
from .payment_utilities.party_resolution import UNRESOLVED, PartyRef, resolve_party
from .sync import (
    PaymentValidationError,
    delete_payment,
    plan_payment,
    recalculate_and_sync_invoices,
    record_payment,
    update_payment,
)

__all__ = [
    # status
    "InvoiceStatus",
    "get_invoice_status",
    "outstanding_invoices",
    # allocation
    "AllocationError",
    "AllocationMismatchError",
    "AllocationPlan",
    "allocate_customer_payment",
    "allocate_vendor_payment",
    # party inference
    "UNRESOLVED",
    "PartyRef",
    "resolve_party",
    # persistence
    "PaymentValidationError",
    "recalculate_and_sync_invoices",
    "plan_payment",
    "record_payment",
    "update_payment",
    "delete_payment",
]
