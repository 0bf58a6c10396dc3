"""
payment_utilities/partial_payment_manager.py

Split a single entered payment amount across a party's open invoices.

- Auto mode: oldest invoice first, each gets min(remaining, due).
- Manual mode: the user's per-invoice values are taken as entered; the only
  check is the aggregate one done by `validate_allocation` at save time.

The result of either mode is an `AllocationPlan`; `build_payment_records`
turns a validated plan into one Payment row per touched invoice.

Pure functions; no snapshot access. Excess amount is reported as
`unallocated`, never turned into an advance/prepayment record.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP, ROUND_DOWN, InvalidOperation, getcontext
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from ....constants import (
    CURRENCY_STEP,
    METHOD_BANK,
    MONEY_TOLERANCE,
    PARTY_FOR_FLOW,
)
from ....database.records import DomainError
from ....utils.money import to_number
from .calculations import OpenInvoice

# Keep plenty of precision for intermediate math; round only with helpers below
getcontext().prec = 28

_log = logging.getLogger(__name__)

# -----------------------------
# Strategy enum (strings)
# -----------------------------
STRATEGY_OLDEST_FIRST = "oldest_first"
STRATEGY_DUE_DATE = "due_date"
STRATEGY_BIGGEST_FIRST = "biggest_remaining"

STRATEGIES = (STRATEGY_OLDEST_FIRST, STRATEGY_DUE_DATE, STRATEGY_BIGGEST_FIRST)

__all__ = [
    "STRATEGY_OLDEST_FIRST",
    "STRATEGY_DUE_DATE",
    "STRATEGY_BIGGEST_FIRST",
    "AllocationError",
    "AllocationMismatchError",
    "AllocationPlan",
    "auto_allocate",
    "manual_allocate",
    "validate_allocation",
    "build_payment_records",
    "allocate_customer_payment",
    "allocate_vendor_payment",
    "round_down_to_step",
    "round_to_step",
    "sum_due",
]


class AllocationError(DomainError):
    """The allocation cannot be turned into payment records."""


class AllocationMismatchError(AllocationError):
    """Allocated total differs from the payment amount by more than the tolerance."""

    def __init__(self, amount: float, allocated: float):
        self.amount = amount
        self.allocated = allocated
        super().__init__(
            f"Total allocated amount ({allocated:.2f}) must match the payment amount ({amount:.2f})."
        )


# -----------------------------
# Rounding & utility helpers
# -----------------------------

def _to_decimal(x: Any) -> Decimal:
    try:
        return Decimal(str(to_number(x)))
    except (InvalidOperation, ValueError, TypeError):
        return Decimal("0")


def _step_quant(step: float) -> Decimal:
    d = _to_decimal(step)
    # fallback to 0.01 if invalid/zero
    if d <= 0:
        d = Decimal(str(CURRENCY_STEP))
    return d


def _floor_step(dec: Decimal, q: Decimal) -> Decimal:
    return (dec / q).to_integral_value(rounding=ROUND_DOWN) * q


def round_down_to_step(x: float, step: float = CURRENCY_STEP) -> float:
    """Round DOWN (floor) to the nearest step using Decimal for determinism."""
    # Example: x=10.037, step=0.01 -> 10.03
    return float(_floor_step(_to_decimal(x), _step_quant(step)))


def round_to_step(x: float, step: float = CURRENCY_STEP) -> float:
    """Round to nearest step using **half-up** (typical financial rounding)."""
    q = _step_quant(step)
    # Example: x=10.005, step=0.01 -> 10.01
    return float((_to_decimal(x) / q).quantize(Decimal("1"), rounding=ROUND_HALF_UP) * q)


def _open_invoice(doc: Union[OpenInvoice, Mapping[str, Any]]) -> OpenInvoice:
    if isinstance(doc, OpenInvoice):
        return doc
    return OpenInvoice(
        id=str(doc.get("id") or ""),
        date=str(doc.get("date") or ""),
        due=to_number(doc.get("due")),
        number=doc.get("number"),
    )


def _safe_due(val: Any) -> float:
    f = to_number(val)
    return f if f > 0 else 0.0


def sum_due(invoices: Iterable[Union[OpenInvoice, Mapping[str, Any]]]) -> float:
    return float(sum(_safe_due(_open_invoice(d).due) for d in invoices))


# -----------------------------
# Plan envelope
# -----------------------------

@dataclass
class AllocationPlan:
    requested: float
    allocations: Dict[str, float] = field(default_factory=dict)  # invoice id -> amount, in fill order
    allocated_total: float = 0.0
    unallocated: float = 0.0
    warnings: List[str] = field(default_factory=list)

    def positive(self) -> Dict[str, float]:
        """Only the invoices that actually receive money."""
        return {k: v for k, v in self.allocations.items() if v > 0}

    def as_dict(self) -> Dict[str, Any]:
        return {
            "requested_total": self.requested,
            "allocated_total": self.allocated_total,
            "unallocated": self.unallocated,
            "allocations": dict(self.allocations),
            "warnings": list(self.warnings),
        }


def _sorted_docs(docs: List[OpenInvoice], strategy: str) -> List[OpenInvoice]:
    def _key_oldest(d: OpenInvoice):
        return (d.date or "", d.id)

    def _key_biggest(d: OpenInvoice):
        return (-d.due, d.date or "", d.id)

    if strategy == STRATEGY_BIGGEST_FIRST:
        return sorted(docs, key=_key_biggest)
    # OpenInvoice carries no separate due date; the invoice date stands in for it
    return sorted(docs, key=_key_oldest)


# -----------------------------
# Core allocation engine
# -----------------------------

def auto_allocate(
    amount: float,
    invoices: Iterable[Union[OpenInvoice, Mapping[str, Any]]],
    *,
    strategy: str = STRATEGY_OLDEST_FIRST,
    currency_step: float = CURRENCY_STEP,
) -> AllocationPlan:
    """
    Greedy fill: each invoice (in strategy order) gets min(remaining, due),
    floored to the currency step. Invoices reached after the amount is
    exhausted get 0. Same inputs always give the same plan.
    """
    if strategy not in STRATEGIES:
        raise ValueError(f"unknown allocation strategy {strategy!r}")

    q = _step_quant(currency_step)
    requested = max(Decimal("0"), _floor_step(_to_decimal(amount), q))
    docs = _sorted_docs([_open_invoice(d) for d in invoices], strategy)

    warnings: List[str] = []
    if requested == 0:
        warnings.append("Nothing to allocate.")

    pool = requested
    allocations: Dict[str, float] = {}
    for d in docs:
        due = _floor_step(max(Decimal("0"), _to_decimal(d.due)), q)
        want = min(pool, due) if pool > 0 else Decimal("0")
        allocations[d.id] = float(want)
        pool -= want

    if not docs:
        warnings.append("No open balance to allocate.")
    elif pool > 0:
        warnings.append("Requested amount exceeds combined remaining; some amount left unallocated.")

    allocated = requested - pool
    plan = AllocationPlan(
        requested=float(requested),
        allocations=allocations,
        allocated_total=float(allocated),
        unallocated=float(pool),
        warnings=warnings,
    )
    _log.debug(
        "auto_allocate: amount=%s invoices=%d allocated=%s unallocated=%s",
        plan.requested, len(docs), plan.allocated_total, plan.unallocated,
    )
    return plan


def manual_allocate(
    amount: float,
    overrides: Mapping[str, Any],
    invoices: Optional[Iterable[Union[OpenInvoice, Mapping[str, Any]]]] = None,
    *,
    currency_step: float = CURRENCY_STEP,
) -> AllocationPlan:
    """
    User-entered allocation. Values are kept as entered (rounded to the
    step); negative or non-numeric values become 0. Nothing is capped at the
    invoice's due; overpayment only produces a warning.

    When `invoices` is given, the plan lists them in oldest-first order and
    ignores override ids that are not among them.
    """
    requested = round_to_step(max(0.0, to_number(amount)), currency_step)
    warnings: List[str] = []
    allocations: Dict[str, float] = {}

    if invoices is None:
        for inv_id, val in overrides.items():
            allocations[str(inv_id)] = round_to_step(max(0.0, to_number(val)), currency_step)
    else:
        docs = _sorted_docs([_open_invoice(d) for d in invoices], STRATEGY_OLDEST_FIRST)
        known = {d.id for d in docs}
        for d in docs:
            v = round_to_step(max(0.0, to_number(overrides.get(d.id))), currency_step)
            allocations[d.id] = v
            if v - d.due > MONEY_TOLERANCE:
                warnings.append(f"Allocation to {d.number or d.id} exceeds its due amount.")
        for inv_id in overrides:
            if str(inv_id) not in known:
                warnings.append(f"Invoice {inv_id} is not open for this party; ignored.")

    allocated = round_to_step(sum(allocations.values()), currency_step)
    return AllocationPlan(
        requested=requested,
        allocations=allocations,
        allocated_total=allocated,
        unallocated=round_to_step(requested - allocated, currency_step),
        warnings=warnings,
    )


def validate_allocation(
    plan: Union[AllocationPlan, Mapping[str, Any]],
    amount: Optional[float] = None,
    *,
    tol: float = MONEY_TOLERANCE,
) -> float:
    """
    Save-time check. Returns the allocated total, or raises:
      - AllocationError when nothing is allocated
      - AllocationMismatchError when |allocated - amount| > tol
    `amount` defaults to the plan's requested amount.
    """
    if isinstance(plan, AllocationPlan):
        values = plan.allocations.values()
        if amount is None:
            amount = plan.requested
    else:
        values = plan.values()
    amount = to_number(amount)

    allocated = round_to_step(sum(max(0.0, to_number(v)) for v in values))
    if allocated <= 0:
        raise AllocationError("No allocations made.")
    if abs(allocated - amount) > tol + 1e-9:
        raise AllocationMismatchError(amount, allocated)
    return allocated


def build_payment_records(
    plan: Union[AllocationPlan, Mapping[str, Any]],
    *,
    base_id: str,
    payment_type: str,
    party_id: str,
    date: str,
    method: str,
    bank_id: Optional[str] = None,
    discount: float = 0.0,
    notes: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """
    One Payment dict per invoice with a positive allocation.

    Ids are "<base_id>_<invoiceId>". The flat discount goes on the first
    record only; bankId is written only for bank payments.
    """
    allocations = plan.allocations if isinstance(plan, AllocationPlan) else plan
    party_type = PARTY_FOR_FLOW.get(payment_type)
    if party_type is None:
        raise ValueError(f"payment type must be 'in' or 'out', got {payment_type!r}")

    records: List[Dict[str, Any]] = []
    for invoice_id, value in allocations.items():
        allocated = to_number(value)
        if allocated <= 0:
            continue
        rec: Dict[str, Any] = {
            "id": f"{base_id}_{invoice_id}",
            "type": payment_type,
            "partyId": party_id,
            "partyType": party_type,
            "invoiceId": invoice_id,
            "amount": allocated,
            "discount": 0.0,
            "date": date,
            "method": method,
            "notes": notes or "",
        }
        if method == METHOD_BANK:
            rec["bankId"] = bank_id
        records.append(rec)

    disc = to_number(discount)
    if disc > 0 and records:
        records[0]["discount"] = disc
    return records


# -----------------------------
# Party-flavoured entry points
# -----------------------------

def _allocate(
    amount: float,
    invoices: Iterable[Union[OpenInvoice, Mapping[str, Any]]],
    *,
    strategy: str,
    currency_step: float,
    user_overrides: Optional[Mapping[str, Any]],
) -> AllocationPlan:
    invoices = list(invoices)
    if user_overrides:
        return manual_allocate(amount, user_overrides, invoices, currency_step=currency_step)
    return auto_allocate(amount, invoices, strategy=strategy, currency_step=currency_step)


def allocate_customer_payment(
    amount: float,
    sales: Iterable[Union[OpenInvoice, Mapping[str, Any]]],
    *,
    strategy: str = STRATEGY_OLDEST_FIRST,
    currency_step: float = CURRENCY_STEP,
    user_overrides: Optional[Mapping[str, Any]] = None,  # sale_id -> amount
) -> AllocationPlan:
    """Split 'amount' across given open sales. Returns an allocation plan."""
    return _allocate(amount, sales, strategy=strategy, currency_step=currency_step,
                     user_overrides=user_overrides)


def allocate_vendor_payment(
    amount: float,
    purchases: Iterable[Union[OpenInvoice, Mapping[str, Any]]],
    *,
    strategy: str = STRATEGY_OLDEST_FIRST,
    currency_step: float = CURRENCY_STEP,
    user_overrides: Optional[Mapping[str, Any]] = None,  # purchase_id -> amount
) -> AllocationPlan:
    """Split 'amount' across given open purchases. Returns an allocation plan."""
    return _allocate(amount, purchases, strategy=strategy, currency_step=currency_step,
                     user_overrides=user_overrides)


def flow_for_party(party_type: str) -> str:
    """'in' for customers, 'out' for suppliers."""
    for flow, ptype in PARTY_FOR_FLOW.items():
        if ptype == party_type:
            return flow
    raise ValueError(f"party_type must be 'customer' or 'supplier', got {party_type!r}")
