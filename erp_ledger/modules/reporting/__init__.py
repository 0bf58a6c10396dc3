# erp_ledger/modules/reporting/__init__.py

from .credit_management import PartyBalance, payables, receivables
from .party_ledger import LedgerResult, LedgerRow, build_ledger_data
from .statement_render import render_party_ledger_html

__all__ = [
    "LedgerRow",
    "LedgerResult",
    "build_ledger_data",
    "PartyBalance",
    "receivables",
    "payables",
    "render_party_ledger_html",
]
