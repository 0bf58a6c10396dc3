"""
payment_utilities/debit_credit_manager.py

Helpers to classify cash/bank direction and compute In/Out/Net totals for
lists of movement rows (plain dicts built by modules/cash_bank/ledger.py):

- receipt:      amount>0 = inflow,  amount<0 = outflow (payment in, cash add, transfer in)
- disbursement: amount>0 = outflow, amount<0 = inflow  (payment out, expense, cash remove, transfer out)
- adjustment:   signed; amount>0 = inflow

Row keys read here: 'kind', 'amount', 'account' ('cash' or a bank id).
Use 'where' and 'group_totals' to pivot by account or source.
"""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Tuple

from ....utils.money import to_number

__all__ = [
    "KIND_RECEIPT",
    "KIND_DISBURSEMENT",
    "KIND_ADJUSTMENT",
    "CASH_ACCOUNT",
    "classify_direction",
    "signed_amount",
    "is_bank_row",
    "split_in_out",
    "totals",
    "group_totals",
    "present_row",
]

KIND_RECEIPT = "receipt"
KIND_DISBURSEMENT = "disbursement"
KIND_ADJUSTMENT = "adjustment"

CASH_ACCOUNT = "cash"


def _get(row: Dict[str, Any], key: str, default: Any = None) -> Any:
    return row.get(key, default)


def _match(row: Dict[str, Any], where: Dict[str, Any] | None) -> bool:
    if where is None:
        return True
    return all(_get(row, k, None) == v for k, v in where.items())


# ----------- API -----------

def classify_direction(row: Dict[str, Any]) -> Tuple[str, float]:
    """
    Return ("inflow"|"outflow"|"none", magnitude: float>=0).
    Unknown kind or zero amount => ('none', ...).
    """
    kind = str(_get(row, "kind", "")).strip().lower()
    amount = to_number(_get(row, "amount", 0.0))

    if amount == 0.0:
        return "none", 0.0

    if kind in (KIND_RECEIPT, KIND_ADJUSTMENT):
        return ("inflow", abs(amount)) if amount > 0 else ("outflow", abs(amount))
    if kind == KIND_DISBURSEMENT:
        return ("outflow", abs(amount)) if amount > 0 else ("inflow", abs(amount))

    return "none", abs(amount)


def signed_amount(row: Dict[str, Any]) -> float:
    """+magnitude for inflows, -magnitude for outflows, 0 otherwise."""
    direction, mag = classify_direction(row)
    if direction == "inflow":
        return mag
    if direction == "outflow":
        return -mag
    return 0.0


def is_bank_row(row: Dict[str, Any]) -> bool:
    account = _get(row, "account", None)
    return account is not None and account != CASH_ACCOUNT


def split_in_out(rows: Iterable[Dict[str, Any]], *, bank_only: bool = False) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
    """Return (inflows, outflows); rows classified 'none' are dropped."""
    inflows: List[Dict[str, Any]] = []
    outflows: List[Dict[str, Any]] = []
    for r in rows:
        if bank_only and not is_bank_row(r):
            continue
        direction, _mag = classify_direction(r)
        if direction == "inflow":
            inflows.append(r)
        elif direction == "outflow":
            outflows.append(r)
    return inflows, outflows


def totals(
    rows: Iterable[Dict[str, Any]],
    *,
    bank_only: bool = False,
    where: Dict[str, Any] | None = None,
) -> Dict[str, float]:
    """
    Return {"in": float, "out": float, "net": float}.
    Applies 'where' as an equality filter on row keys if provided.
    """
    total_in = 0.0
    total_out = 0.0
    for r in rows:
        if bank_only and not is_bank_row(r):
            continue
        if not _match(r, where):
            continue
        direction, mag = classify_direction(r)
        if direction == "inflow":
            total_in += mag
        elif direction == "outflow":
            total_out += mag
    return {"in": total_in, "out": total_out, "net": total_in - total_out}


def group_totals(
    rows: Iterable[Dict[str, Any]],
    group_key: str,
    *,
    bank_only: bool = False,
    where: Dict[str, Any] | None = None,
) -> List[Tuple[object, Dict[str, float]]]:
    """
    Return sorted list of (group_value, {"in":..., "out":..., "net":...}).
    Groups sort by str(value), with None last.
    """
    buckets: Dict[object, Dict[str, float]] = {}
    for r in rows:
        if bank_only and not is_bank_row(r):
            continue
        if not _match(r, where):
            continue
        direction, mag = classify_direction(r)
        if direction == "none":
            continue
        bucket = buckets.setdefault(_get(r, group_key, None), {"in": 0.0, "out": 0.0, "net": 0.0})
        if direction == "inflow":
            bucket["in"] += mag
        else:
            bucket["out"] += mag
        bucket["net"] = bucket["in"] - bucket["out"]

    return sorted(buckets.items(), key=lambda kv: (kv[0] is None, str(kv[0])))


def present_row(row: Dict[str, Any]) -> Dict[str, Any]:
    """
    Shallow copy with 'direction', 'abs_amount' and 'sign'
    (+1 inflow, -1 outflow, 0 none) added.
    """
    out = dict(row)
    direction, mag = classify_direction(row)
    sign = {"inflow": 1, "outflow": -1}.get(direction, 0)
    out.update({"direction": direction, "abs_amount": mag, "sign": sign})
    return out
