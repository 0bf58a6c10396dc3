# tests/test_snapshot.py
import copy

import pytest

from erp_ledger.config import BusinessSettings
from erp_ledger.database import DataSnapshot, apply_patch, merge_patches
from erp_ledger.database.normalize import normalize_invoice, normalize_payment


# ---------------------------------------------------------------------------
# Load-boundary normalization
# ---------------------------------------------------------------------------

def test_purchase_aliases_resolve_once():
    inv = normalize_invoice(
        {"id": "p1", "supplierId": "s1", "fx_rate_to_business": 3.6725,
         "totalCost": 100, "totalCost_base": 367.25, "paidAmount_base": 50},
        "purchase",
    )
    assert inv.total.foreign == 100
    assert inv.total.local == pytest.approx(367.25)
    assert inv.paid_amount_local == 50
    assert inv.party_type == "supplier"
    assert inv.payment_flow == "out"


def test_total_local_derived_from_foreign_when_missing():
    inv = normalize_invoice({"id": "s1", "total": 20, "fx_rate_to_business": 2}, "sale")
    assert inv.total.local == 40
    # no number: ref falls back to the id tail
    assert inv.ref == "s1"


def test_total_built_from_lines_when_not_stored():
    inv = normalize_invoice(
        {"id": "s9", "items": [{"itemId": "i1", "quantity": 2, "price": 50}],
         "discount": {"type": "percent", "value": 10}},
        "sale",
    )
    assert inv.subtotal.local == 100
    assert inv.discount.local == pytest.approx(10)
    assert inv.total.local == pytest.approx(90)
    assert inv.discount_rule == {"type": "percent", "value": 10}


def test_payment_type_aliases_and_linked_invoice_ref():
    p = normalize_payment({"id": "x", "type": "payment_in", "amount": "25", "linkedInvoices": ["S-0003"]})
    assert p.type == "in"
    assert p.amount == 25
    assert p.ref == "S-0003"
    assert not p.is_internal

    internal = normalize_payment({"id": "y", "type": "bank_transfer", "amount": 5})
    assert internal.is_internal
    flagged = normalize_payment({"id": "z", "type": "in", "amount": 5, "meta": {"internal": True}})
    assert flagged.is_internal


def test_bad_party_type_is_dropped():
    p = normalize_payment({"id": "x", "type": "in", "partyId": "c1", "partyType": "vendor"})
    assert p.party_type is None


def test_business_settings_defaults_and_overrides():
    assert BusinessSettings.from_mapping(None).currency == "AED"
    s = BusinessSettings.from_mapping({"currency": "pkr", "supportedCurrencies": ["USD"], "cashOpeningBalance": "1,000"})
    assert s.currency == "PKR"
    assert s.currency_symbol == "PKR"
    assert "PKR" in s.supported_currencies
    assert s.cash_opening_balance == 1000


def test_snapshot_lookups(make_snapshot, make_sale, make_purchase):
    snap = make_snapshot(sales=[make_sale("s1", 10)], purchases=[make_purchase("p1", 20)])
    assert set(snap.invoice_index()) == {"s1", "p1"}
    assert snap.find_party("customer", "c1").name == "Alice Trading"
    assert snap.find_party("supplier", "nobody") is None
    assert snap.items_by_id["i2"].has_imei
    with pytest.raises(ValueError):
        snap.parties("vendor")
    with pytest.raises(ValueError):
        snap.invoices("quote")


# ---------------------------------------------------------------------------
# Patches
# ---------------------------------------------------------------------------

def test_apply_patch_leaves_input_untouched(raw_data, make_sale):
    raw_data["sales"] = [make_sale("s1", 100), make_sale("s2", 50)]
    before = copy.deepcopy(raw_data)

    out = apply_patch(raw_data, {
        "sales": {"s1": {"payment_status": "Paid"}},
        "settings": {"companyName": "New Name"},
        "cashInHand": 42,
    })

    assert raw_data == before
    assert out["sales"][0]["payment_status"] == "Paid"
    assert "payment_status" not in out["sales"][1]
    assert out["settings"]["companyName"] == "New Name"
    assert out["settings"]["currency"] == "AED"
    assert out["cashInHand"] == 42


def test_list_value_replaces_collection(raw_data):
    out = apply_patch(raw_data, {"payments": [{"id": "only"}]})
    assert out["payments"] == [{"id": "only"}]


def test_record_merge_into_missing_collection_keeps_a_list():
    out = apply_patch({"purchases": None}, {
        "sales": {"x": {"payment_status": "Paid"}},
        "purchases": {"y": {"paid": 1}},
        "settings": {"companyName": "Fresh"},
    })
    assert out["sales"] == []
    assert out["purchases"] == []
    assert out["settings"] == {"companyName": "Fresh"}
    assert DataSnapshot.from_dict(out).sales == []


def test_merge_patches_accumulates_record_updates():
    merged = merge_patches(
        {"sales": {"a": {"x": 1}}},
        None,
        {"sales": {"a": {"y": 2}, "b": {"x": 3}}},
    )
    assert merged == {"sales": {"a": {"x": 1, "y": 2}, "b": {"x": 3}}}


def test_merge_patches_applies_record_updates_onto_a_list():
    merged = merge_patches({"sales": [{"id": "a"}, {"id": "b"}]}, {"sales": {"b": {"paid": 5}}})
    assert merged["sales"] == [{"id": "a"}, {"id": "b", "paid": 5}]


def test_with_patch_renormalizes(make_snapshot, make_sale):
    snap = make_snapshot(sales=[make_sale("s1", 100)])
    after = snap.with_patch({"sales": {"s1": {"paidAmount": 30}}})
    assert after.sales_by_id["s1"].paid_amount_local == 30
    assert snap.sales_by_id["s1"].paid_amount_local == 0


def test_raw_list_returns_copies(make_snapshot, make_sale):
    snap = make_snapshot(sales=[make_sale("s1", 100)])
    rows = snap.raw_list("sales")
    rows[0]["customerId"] = "changed"
    assert snap.raw["sales"][0]["customerId"] == "c1"
    assert DataSnapshot.from_dict(None).sales == []
