# erp_ledger/modules/inventory/__init__.py

from .fifo import FifoPass, SaleCogs, fifo_pass, run_fifo
from .stock_valuation import StockRow, find_serial, stock_summary, total_stock_value

__all__ = [
    "FifoPass",
    "SaleCogs",
    "fifo_pass",
    "run_fifo",
    "StockRow",
    "stock_summary",
    "total_stock_value",
    "find_serial",
]
