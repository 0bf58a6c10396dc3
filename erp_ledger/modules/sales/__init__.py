# erp_ledger/modules/sales/__init__.py

from .profit import ProfitCalculator, get_profit_of_sale

__all__ = ["ProfitCalculator", "get_profit_of_sale"]
