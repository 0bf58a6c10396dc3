"""
erp_ledger: invoice/payment reconciliation and party ledgers for a
small-business ERP.

Everything here is pure computation over an in-memory data snapshot:
callers load records, call an engine, and persist the returned values or
patches themselves.
"""

__version__ = "0.3.0"
