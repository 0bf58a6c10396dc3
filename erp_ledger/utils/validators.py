# utils/validators.py
import math


def non_empty(text) -> bool:
    """
    True if `text` is not None/empty after stripping whitespace.
    """
    return bool(text and str(text).strip())


# ---- Numeric parsing & validators ----
# Stricter than utils.money.to_number: these back form validation, where
# "abc", NaN or an infinite amount must be rejected instead of read as 0.

def try_parse_float(x):
    """
    Best-effort parse to a finite float.

    Returns:
        (ok: bool, value: float|None)

    ok == False means parsing failed (or gave NaN/inf) and value is None.
    """
    if isinstance(x, bool):
        return False, None
    try:
        val = float(x)
    except (TypeError, ValueError):
        return False, None
    if not math.isfinite(val):
        return False, None
    return True, val


def parse_float(x) -> float:
    """
    Strict parse to float; raises ValueError with a clear message on failure.
    Used by save-time validation where bad input must be surfaced rather
    than read as 0.
    """
    ok, val = try_parse_float(x)
    if not ok:
        raise ValueError(f"Could not parse '{x}' as a number.")
    return val  # type: ignore[return-value]


def is_non_negative_number(x) -> bool:
    ok, val = try_parse_float(x)
    return bool(ok and val >= 0)


def is_strictly_positive_number(x) -> bool:
    """True iff x parses to a finite float greater than 0 (payment amounts)."""
    ok, val = try_parse_float(x)
    return bool(ok and val > 0)
