"""
modules/inventory/fifo.py

Purchase lots and the FIFO walk that costs every sale line.

One pass over the whole history: lots are consumed oldest-first across all
sales in date order, so a lot partly used by an earlier sale is only
partly available to later ones. Serial-tracked units are costed from the
exact lot that brought the serial in.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional

from ...database.records import Invoice, Item, PurchaseLot
from ...utils.helpers import sort_instant

__all__ = [
    "COST_FIFO",
    "COST_SERIAL",
    "COST_FALLBACK",
    "COST_NONE",
    "LineCogs",
    "SaleCogs",
    "FifoPass",
    "build_purchase_lots",
    "fifo_pass",
    "run_fifo",
]

_log = logging.getLogger(__name__)

_EPS = 1e-9

# where a line's cost came from
COST_FIFO = "fifo"
COST_SERIAL = "serial"
COST_FALLBACK = "fallback"  # item.purchasePrice, no lot left
COST_NONE = "none"          # no lot and no purchase price: cost 0


@dataclass
class LineCogs:
    item_id: str
    quantity: float
    cogs: float
    cost_sources: List[str] = field(default_factory=list)

    @property
    def cost_source(self) -> str:
        if not self.cost_sources:
            return COST_NONE
        if len(self.cost_sources) == 1:
            return self.cost_sources[0]
        return "+".join(self.cost_sources)


@dataclass
class SaleCogs:
    sale_id: str
    cogs: float = 0.0
    item_cogs: Dict[str, float] = field(default_factory=dict)
    lines: List[LineCogs] = field(default_factory=list)


@dataclass
class FifoPass:
    cogs_by_sale: Dict[str, SaleCogs]
    lots: List[PurchaseLot]  # with qty_remaining after every sale


def build_purchase_lots(purchases: Iterable[Invoice]) -> List[PurchaseLot]:
    """
    One lot per purchase line with quantity > 0, sorted by purchase date
    (stable, so same-day lines keep their entry order).
    Cost is the stored local unit price, else foreign x rate.
    """
    lots: List[PurchaseLot] = []
    for p in purchases:
        for li in p.lines:
            if li.quantity <= 0:
                continue
            cost = li.unit_price.local or li.unit_price.foreign * p.fx_rate_to_business
            lots.append(PurchaseLot(
                item_id=li.item_id,
                date=p.date,
                qty_remaining=li.quantity,
                unit_cost_local=cost,
                purchase_id=p.id,
                serials=list(li.serials),
            ))
    lots.sort(key=lambda lot: sort_instant(lot.date))
    return lots


def _take_fifo(queue: List[PurchaseLot], qty: float) -> tuple[float, float]:
    """Consume up to `qty` from the queue; returns (cost, qty still unfilled)."""
    cost = 0.0
    for lot in queue:
        if qty <= _EPS:
            break
        if lot.qty_remaining <= _EPS:
            continue
        take = min(qty, lot.qty_remaining)
        cost += take * lot.unit_cost_local
        lot.qty_remaining -= take
        qty -= take
    return cost, max(0.0, qty)


def fifo_pass(
    purchases: Iterable[Invoice],
    sales: Iterable[Invoice],
    items: Optional[Mapping[str, Item]] = None,
) -> FifoPass:
    items = items or {}
    lots = build_purchase_lots(purchases)

    queues: Dict[str, List[PurchaseLot]] = defaultdict(list)
    by_serial: Dict[str, PurchaseLot] = {}
    for lot in lots:
        queues[lot.item_id].append(lot)
        for s in lot.serials:
            by_serial.setdefault(s, lot)

    sale_lines = [
        (sale, li)
        for sale in sales
        for li in sale.lines
        if li.quantity > 0
    ]
    sale_lines.sort(key=lambda pair: sort_instant(pair[0].date))

    result: Dict[str, SaleCogs] = {}
    for sale, li in sale_lines:
        entry = result.setdefault(sale.id, SaleCogs(sale_id=sale.id))
        item = items.get(li.item_id)
        qty_left = li.quantity
        cost = 0.0
        sources: List[str] = []

        if (item is not None and item.has_imei) or li.serials:
            for serial in li.serials:
                if qty_left <= _EPS:
                    break
                lot = by_serial.get(serial)
                if lot is None or lot.item_id != li.item_id:
                    continue
                cost += lot.unit_cost_local
                if lot.qty_remaining >= 1:
                    lot.qty_remaining -= 1
                qty_left -= 1
                if COST_SERIAL not in sources:
                    sources.append(COST_SERIAL)

        if qty_left > _EPS:
            fifo_cost, unfilled = _take_fifo(queues.get(li.item_id, []), qty_left)
            if unfilled < qty_left:
                sources.append(COST_FIFO)
            cost += fifo_cost
            qty_left = unfilled

        if qty_left > _EPS:
            fallback = item.purchase_price if item is not None else 0.0
            cost += qty_left * fallback
            sources.append(COST_FALLBACK if fallback > 0 else COST_NONE)
            _log.warning(
                "sale %s: %.4g unit(s) of item %s had no purchase lot; costed at %.2f",
                sale.id, qty_left, li.item_id, fallback,
            )

        entry.cogs += cost
        entry.item_cogs[li.item_id] = entry.item_cogs.get(li.item_id, 0.0) + cost
        entry.lines.append(LineCogs(item_id=li.item_id, quantity=li.quantity, cogs=cost, cost_sources=sources))

    _log.debug("fifo_pass: %d lot(s), %d sale line(s)", len(lots), len(sale_lines))
    return FifoPass(cogs_by_sale=result, lots=lots)


def run_fifo(
    purchases: Iterable[Invoice],
    sales: Iterable[Invoice],
    items: Optional[Mapping[str, Item]] = None,
) -> Dict[str, SaleCogs]:
    """{sale_id: SaleCogs} for every sale with at least one positive line."""
    return fifo_pass(purchases, sales, items).cogs_by_sale
