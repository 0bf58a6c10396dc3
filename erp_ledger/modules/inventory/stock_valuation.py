"""
Per-item stock valuation snapshot.

On hand and stock value come from the FIFO lots still open after every
sale has been costed (modules/inventory/fifo.py), so the valuation always
agrees with the cost of goods used for profit.

- on_hand            remaining lot quantity
- stock_value        sum(remaining qty x lot cost)
- avg_purchase_price stock_value / on_hand (0 when nothing on hand)
- last_sale_price / last_sale_date from the latest sale line
- status             'Out of Stock' (<= 0), 'Low Stock' (<= threshold), else 'In Stock'
- available_serials  serials purchased and not yet sold
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from ...constants import STOCK_IN, STOCK_LOW, STOCK_OUT
from ...database.records import Invoice, Item
from ...database.snapshot import DataSnapshot
from .fifo import fifo_pass

_log = logging.getLogger(__name__)


@dataclass
class StockRow:
    item_id: str
    name: str
    on_hand: float = 0.0
    stock_value: float = 0.0
    avg_purchase_price: float = 0.0
    last_sale_price: Optional[float] = None
    last_sale_date: Optional[datetime] = None
    status: str = STOCK_OUT
    available_serials: List[str] = field(default_factory=list)


@dataclass
class SerialTrail:
    serial: str
    item: Optional[Item]
    purchase: Invoice
    sale: Optional[Invoice] = None

    @property
    def in_stock(self) -> bool:
        return self.sale is None


def stock_status(on_hand: float, low_threshold: float) -> str:
    if on_hand <= 0:
        return STOCK_OUT
    if low_threshold and on_hand <= low_threshold:
        return STOCK_LOW
    return STOCK_IN


def stock_summary(snapshot: DataSnapshot) -> List[StockRow]:
    """One row per item, in the snapshot's item order."""
    fifo = fifo_pass(snapshot.purchases, snapshot.sales, snapshot.items_by_id)

    on_hand: Dict[str, float] = {}
    value: Dict[str, float] = {}
    for lot in fifo.lots:
        if lot.qty_remaining <= 0:
            continue
        on_hand[lot.item_id] = on_hand.get(lot.item_id, 0.0) + lot.qty_remaining
        value[lot.item_id] = value.get(lot.item_id, 0.0) + lot.qty_remaining * lot.unit_cost_local

    last_sale: Dict[str, tuple] = {}
    sold_serials = set()
    for sale in snapshot.sales:
        for li in sale.lines:
            sold_serials.update(li.serials)
            prev = last_sale.get(li.item_id)
            if prev is None or (sale.date is not None and (prev[0] is None or sale.date > prev[0])):
                last_sale[li.item_id] = (sale.date, li.unit_price.local)

    purchased_serials: Dict[str, List[str]] = {}
    for p in snapshot.purchases:
        for li in p.lines:
            purchased_serials.setdefault(li.item_id, []).extend(li.serials)

    rows: List[StockRow] = []
    for item in snapshot.items:
        qty = on_hand.get(item.id, 0.0)
        val = value.get(item.id, 0.0)
        sold_at = last_sale.get(item.id)
        rows.append(StockRow(
            item_id=item.id,
            name=item.name,
            on_hand=qty,
            stock_value=val,
            avg_purchase_price=val / qty if qty > 0 else 0.0,
            last_sale_price=sold_at[1] if sold_at else None,
            last_sale_date=sold_at[0] if sold_at else None,
            status=stock_status(qty, item.low_stock_threshold),
            available_serials=[s for s in purchased_serials.get(item.id, []) if s not in sold_serials],
        ))
    _log.debug("stock_summary: %d item(s)", len(rows))
    return rows


def total_stock_value(snapshot: DataSnapshot) -> float:
    return sum(r.stock_value for r in stock_summary(snapshot))


def find_serial(serial: str, snapshot: DataSnapshot) -> Optional[SerialTrail]:
    """
    Purchase (and sale, if sold) that carried `serial`; None when no
    purchase has it.
    """
    serial = (serial or "").strip()
    if not serial:
        return None
    purchase = next((p for p in snapshot.purchases if any(serial in li.serials for li in p.lines)), None)
    if purchase is None:
        return None
    line = next(li for li in purchase.lines if serial in li.serials)
    sale = next((s for s in snapshot.sales if any(serial in li.serials for li in s.lines)), None)
    return SerialTrail(
        serial=serial,
        item=snapshot.items_by_id.get(line.item_id),
        purchase=purchase,
        sale=sale,
    )
