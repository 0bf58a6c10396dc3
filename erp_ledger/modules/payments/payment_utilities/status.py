from __future__ import annotations
from typing import Iterable, Optional

# ---------- Canonical set & order ----------
PAID = "Paid"
PARTIAL = "Partial"
CREDIT = "Credit"

VALID_STATUSES: tuple[str, ...] = (PAID, PARTIAL, CREDIT)
STATUS_ORDER: dict[str, int] = {s: i for i, s in enumerate(VALID_STATUSES)}  # Paid=0, Partial=1, Credit=2

# ---------- Descriptions (UI copy / tooltips) ----------
DESCRIPTIONS = {
    PAID:    "Fully settled by payments and discounts.",
    PARTIAL: "Part of the invoice total has been paid.",
    CREDIT:  "Nothing paid yet; the full total is on credit.",
}

# Style tokens the UI can map to colors/icons
STYLES = {
    PAID:    {"badge": "success", "fg": "#065F46", "bg": "#D1FAE5"},
    PARTIAL: {"badge": "warning", "fg": "#92400E", "bg": "#FEF3C7"},
    CREDIT:  {"badge": "danger",  "fg": "#991B1B", "bg": "#FEE2E2"},
}

_BY_LOWER = {s.lower(): s for s in VALID_STATUSES}
# labels older records may carry in their payment_status field
_SYNONYMS = {"unpaid": CREDIT, "due": CREDIT}


# ---------- API ----------

def normalize(status: Optional[str]) -> Optional[str]:
    """Canonical status ('Paid'/'Partial'/'Credit') or None if empty/unknown."""
    if status is None:
        return None
    s = str(status).strip().lower()
    if not s:
        return None
    return _BY_LOWER.get(s) or _SYNONYMS.get(s)


def is_valid(status: Optional[str]) -> bool:
    return normalize(status) is not None


def ensure_valid(status: str) -> str:
    """
    Return the canonical status if valid; raise ValueError if not.
    """
    s = normalize(status)
    if s is None:
        raise ValueError("payment_status must be one of: Paid, Partial, Credit")
    return s


def description(status: str) -> str:
    """Short human description for tooltips; empty string if unknown."""
    s = normalize(status)
    return DESCRIPTIONS.get(s, "") if s else ""


def style_tokens(status: str) -> dict:
    """
    Return a small style dict: e.g., {'badge': 'success', 'fg': '#065F46', 'bg': '#D1FAE5'}.
    Unknown statuses fall back to the Credit style.
    """
    s = normalize(status)
    return STYLES.get(s, STYLES[CREDIT]) if s else STYLES[CREDIT]


def sort_key(status: str) -> int:
    """Stable sort key; unknown statuses sort after known ones."""
    s = normalize(status)
    return STATUS_ORDER.get(s, 999) if s else 999


def sort_statuses(statuses: Iterable[str]) -> list[str]:
    """Return a new list sorted by canonical order."""
    return sorted(statuses, key=sort_key)
