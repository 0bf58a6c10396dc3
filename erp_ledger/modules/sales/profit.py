"""
modules/sales/profit.py

Profit of a sale from FIFO cost of goods.

    revenue (line)  = unit price x quantity
    profit  (line)  = revenue - cogs
    totalProfit     = sum of line profits
    netProfit       = totalProfit - the sale's own discount (flat or percent)

Results are recomputed from the full purchase/sale history; use
ProfitCalculator to reuse one FIFO pass across many sales.
"""
from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Dict, List, Mapping, Optional, Union

from ...constants import KIND_SALE
from ...database.normalize import normalize_invoice
from ...database.records import Invoice
from ...database.snapshot import DataSnapshot
from ...utils.helpers import in_range, range_bounds
from ..inventory.fifo import FifoPass, SaleCogs, fifo_pass

__all__ = ["DRAFT_SALE_ID", "get_profit_of_sale", "ProfitCalculator"]

_log = logging.getLogger(__name__)

# stands in for the id of a sale that has not been saved yet
DRAFT_SALE_ID = "__draft__"

SaleLike = Union[Invoice, Mapping[str, Any]]


def _as_sale(sale: SaleLike) -> Invoice:
    if isinstance(sale, Invoice):
        return sale
    return normalize_invoice(sale, KIND_SALE)


def _empty_profit() -> Dict[str, Any]:
    return {"totalProfit": 0.0, "netProfit": 0.0, "revenue": 0.0, "cogs": 0.0, "discount": 0.0, "itemProfits": {}}


def _profit_from_cogs(sale: Invoice, cogs: Optional[SaleCogs]) -> Dict[str, Any]:
    item_cogs = cogs.item_cogs if cogs else {}
    sources: Dict[str, List[str]] = {}
    for line in (cogs.lines if cogs else []):
        bucket = sources.setdefault(line.item_id, [])
        if line.cost_source not in bucket:
            bucket.append(line.cost_source)

    # lines of the same item are reported together
    per_item: Dict[str, Dict[str, float]] = {}
    for li in sale.lines:
        agg = per_item.setdefault(li.item_id, {"quantity": 0.0, "revenue": 0.0})
        agg["quantity"] += li.quantity
        agg["revenue"] += li.unit_price.local * li.quantity

    item_profits: Dict[str, Dict[str, Any]] = {}
    for item_id, agg in per_item.items():
        c = item_cogs.get(item_id, 0.0)
        qty = agg["quantity"]
        item_profits[item_id] = {
            "quantity": qty,
            "revenue": agg["revenue"],
            "cogs": c,
            "profit": agg["revenue"] - c,
            "cogs_unit": c / qty if qty > 0 else 0.0,
            "cogs_total": c,
            "cost_source": "+".join(sources.get(item_id, [])) or "none",
        }

    revenue = sum(v["revenue"] for v in item_profits.values())
    total_cogs = sum(v["cogs"] for v in item_profits.values())
    total_profit = sum(v["profit"] for v in item_profits.values())
    discount = sale.discount.local
    return {
        "totalProfit": total_profit,
        "netProfit": total_profit - discount,
        "revenue": revenue,
        "cogs": total_cogs,
        "discount": discount,
        "itemProfits": item_profits,
    }


def _with_draft(snapshot: DataSnapshot, sale: Invoice) -> tuple[Invoice, List[Invoice]]:
    """Sales history with `sale` in it: replacing its saved version, or appended."""
    if not sale.id:
        sale = replace(sale, id=DRAFT_SALE_ID)
    if sale.id in snapshot.sales_by_id:
        return sale, [sale if s.id == sale.id else s for s in snapshot.sales]
    return sale, snapshot.sales + [sale]


def get_profit_of_sale(sale: Optional[SaleLike], snapshot: DataSnapshot) -> Dict[str, Any]:
    """
    {"totalProfit", "netProfit", "revenue", "cogs", "discount",
     "itemProfits": {itemId: {profit, revenue, cogs, cogs_unit, cogs_total, ...}}}

    `sale` may be a saved sale, an edited copy of one, or an unsaved draft
    (raw dict or Invoice); drafts are costed as if saved.
    """
    if sale is None:
        return _empty_profit()
    inv = _as_sale(sale)
    if not inv.lines:
        return _empty_profit()
    inv, sales = _with_draft(snapshot, inv)
    fifo = fifo_pass(snapshot.purchases, sales, snapshot.items_by_id)
    return _profit_from_cogs(inv, fifo.cogs_by_sale.get(inv.id))


class ProfitCalculator:
    """
    Memoizes one FIFO pass over a snapshot.

    Saved sales are answered from the cached pass; anything else (drafts,
    edited copies) falls back to get_profit_of_sale.
    """

    def __init__(self, snapshot: DataSnapshot):
        self.snapshot = snapshot
        self._fifo: Optional[FifoPass] = None

    @property
    def fifo(self) -> FifoPass:
        if self._fifo is None:
            self._fifo = fifo_pass(self.snapshot.purchases, self.snapshot.sales, self.snapshot.items_by_id)
        return self._fifo

    def profit_of(self, sale: Optional[SaleLike]) -> Dict[str, Any]:
        if sale is None:
            return _empty_profit()
        inv = _as_sale(sale)
        saved = self.snapshot.sales_by_id.get(inv.id) if inv.id else None
        if saved is not inv:
            return get_profit_of_sale(inv, self.snapshot)
        return _profit_from_cogs(inv, self.fifo.cogs_by_sale.get(inv.id))

    def profit_by_id(self, sale_id: str) -> Dict[str, Any]:
        sale = self.snapshot.sales_by_id.get(sale_id)
        if sale is None:
            raise ValueError(f"unknown sale id {sale_id!r}")
        return self.profit_of(sale)

    def summary(self, date_range: Optional[tuple] = None) -> Dict[str, float]:
        """Revenue / cogs / profit / discounts over the saved sales in range."""
        lo_hi = range_bounds(*date_range) if date_range else (None, None)
        totals = {"sales": 0, "revenue": 0.0, "cogs": 0.0, "totalProfit": 0.0, "discount": 0.0, "netProfit": 0.0}
        for sale in self.snapshot.sales:
            if not in_range(sale.date, lo_hi):
                continue
            p = self.profit_of(sale)
            totals["sales"] += 1
            for key in ("revenue", "cogs", "totalProfit", "discount", "netProfit"):
                totals[key] += p[key]
        _log.debug("profit summary: %s", totals)
        return totals
