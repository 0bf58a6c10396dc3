# erp_ledger/constants.py
APP_NAME = "ERP Ledger"

# ---------- Currency ----------
DEFAULT_CURRENCY = "AED"
DEFAULT_CURRENCY_SYMBOL = "AED"
DEFAULT_SUPPORTED_CURRENCIES = ("PKR", "USD", "GBP", "EUR", "AED")
DEFAULT_COMPANY_NAME = "ERP Pro"

# Amounts closer than this are considered equal (one cent).
MONEY_TOLERANCE = 0.01
CURRENCY_STEP = 0.01

# ---------- Invoices ----------
KIND_SALE = "sale"
KIND_PURCHASE = "purchase"
INVOICE_KINDS = (KIND_SALE, KIND_PURCHASE)

SEQUENCE_PREFIX = {KIND_SALE: "S-", KIND_PURCHASE: "P-"}
SEQUENCE_WIDTH = 4

# ---------- Parties ----------
PARTY_CUSTOMER = "customer"
PARTY_SUPPLIER = "supplier"
PARTY_TYPES = (PARTY_CUSTOMER, PARTY_SUPPLIER)

# ---------- Payments ----------
FLOW_IN = "in"
FLOW_OUT = "out"

METHOD_CASH = "cash"
METHOD_BANK = "bank"

# invoice kind -> (payment flow, party type)
FLOW_FOR_KIND = {KIND_SALE: FLOW_IN, KIND_PURCHASE: FLOW_OUT}
PARTY_FOR_KIND = {KIND_SALE: PARTY_CUSTOMER, KIND_PURCHASE: PARTY_SUPPLIER}
PARTY_FOR_FLOW = {FLOW_IN: PARTY_CUSTOMER, FLOW_OUT: PARTY_SUPPLIER}

FLOW_ALIASES = {
    "in": FLOW_IN,
    "payment_in": FLOW_IN,
    "customer_payment": FLOW_IN,
    "out": FLOW_OUT,
    "payment_out": FLOW_OUT,
    "supplier_payment": FLOW_OUT,
}

# Bookkeeping moves that never show on a party statement.
INTERNAL_TYPES = frozenset({
    "cash_adjustment",
    "bank_transfer",
    "opening_balance_seed",
    "rounding",
    "internal_settlement",
    "auto_cash_post",
})

# ---------- Stock ----------
STOCK_IN = "In Stock"
STOCK_LOW = "Low Stock"
STOCK_OUT = "Out of Stock"
