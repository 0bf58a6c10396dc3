# erp_ledger/modules/cash_bank/__init__.py

from .ledger import (
    account_statement,
    balances,
    bank_balance,
    cash_balance,
    movements,
    reconcile_balances,
)

__all__ = [
    "movements",
    "cash_balance",
    "bank_balance",
    "balances",
    "account_statement",
    "reconcile_balances",
]
