"""
modules/reporting/statement_render.py

HTML party statement from a LedgerResult. The HTML is self-contained so a
caller can show it, save it or hand it to a PDF converter.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Union

from jinja2 import Template

from ...config import TEMPLATES_DIR, BusinessSettings
from ...constants import PARTY_CUSTOMER
from ...database.records import Party
from ...utils.money import format_money
from .party_ledger import LedgerResult

__all__ = ["STATEMENT_TEMPLATE", "render_party_ledger_html"]

_log = logging.getLogger(__name__)

STATEMENT_TEMPLATE = "party_ledger.html"


def _load_template(name: str) -> Template:
    path = TEMPLATES_DIR / name
    try:
        source = path.read_text(encoding="utf-8")
    except OSError as e:
        _log.error("Failed to load statement template at %s: %s", path, e, exc_info=True)
        raise FileNotFoundError(f"Statement template not found: {path}") from e
    return Template(source, autoescape=True)


def _party_fields(party: Union[Party, Mapping[str, Any], None]) -> Dict[str, Any]:
    if party is None:
        return {"id": "", "name": "", "contact": None, "address": None, "party_type": PARTY_CUSTOMER}
    if isinstance(party, Party):
        return {
            "id": party.id,
            "name": party.name,
            "contact": party.contact,
            "address": party.address,
            "party_type": party.party_type,
        }
    return {
        "id": party.get("id", ""),
        "name": party.get("name", ""),
        "contact": party.get("contact") or party.get("phone"),
        "address": party.get("address"),
        "party_type": party.get("party_type") or party.get("partyType") or PARTY_CUSTOMER,
    }


def _closing_label(closing: float, is_customer: bool) -> str:
    if abs(closing) < 0.005:
        return "No balance (account settled)"
    if is_customer:
        return "Total receivable from customer" if closing > 0 else "Total payable to customer"
    return "Total payable to supplier" if closing < 0 else "Total receivable from supplier"


def render_party_ledger_html(
    result: LedgerResult,
    party: Union[Party, Mapping[str, Any], None],
    settings: Optional[BusinessSettings] = None,
    title: Optional[str] = None,
) -> str:
    """Render a statement; amounts use the business currency symbol."""
    settings = settings or BusinessSettings()
    info = _party_fields(party)
    is_customer = info["party_type"] == PARTY_CUSTOMER

    def money(v: float) -> str:
        return format_money(v, settings.currency_symbol)

    rows: List[Dict[str, Any]] = []
    for tx in result.transactions:
        rows.append({
            "date": tx.date.strftime("%Y-%m-%d") if tx.date else "",
            "type": tx.type,
            "ref_id": tx.ref_id,
            "debit": money(tx.debit) if tx.debit else "",
            "credit": money(tx.credit) if tx.credit else "",
            "balance": money(tx.balance),
        })

    html = _load_template(STATEMENT_TEMPLATE).render(
        title=title or f"Statement of Account: {info['name'] or info['id']}",
        company_name=settings.company_name,
        currency=settings.currency,
        party=info,
        party_label="Customer" if is_customer else "Supplier",
        rows=rows,
        opening_balance=money(result.opening_balance),
        closing_balance=money(result.closing_balance),
        total_debit=money(result.totals.get("debit", 0.0)),
        total_credit=money(result.totals.get("credit", 0.0)),
        total_label=_closing_label(result.closing_balance, is_customer),
        total_amount=money(abs(result.closing_balance)),
    )
    _log.debug("rendered statement for %s (%d row(s))", info["id"], len(rows))
    return html
