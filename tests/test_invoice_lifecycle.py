# tests/test_invoice_lifecycle.py
import copy

import pytest

from erp_ledger.modules.invoices import (
    InvoiceValidationError,
    delete_invoice,
    freeze_fx,
    next_invoice_number,
    save_invoice,
)
from erp_ledger.modules.invoices.lifecycle import INLINE_SOURCE, inline_payment_for
from erp_ledger.modules.payments import recalculate_and_sync_invoices


def _sale_draft(line, **over):
    d = {
        "id": "SX",
        "customerId": "c1",
        "date": "2025-03-01",
        "items": [line("i1", 2, 50)],
        "paidAmount": 40,
    }
    d.update(over)
    return d


# ---------------------------------------------------------------------------
# Suite A: numbering & FX freezing
# ---------------------------------------------------------------------------

def test_next_invoice_number():
    assert next_invoice_number("sale", []) == "S-0001"
    assert next_invoice_number("sale", ["S-0001", "S-0009", "X-12", "S-abc"]) == "S-0010"
    assert next_invoice_number("purchase", [{"purchaseNumber": "P-0041"}]) == "P-0042"
    with pytest.raises(ValueError):
        next_invoice_number("quote", [])


def test_freeze_fx_purchase(make_line):
    out = freeze_fx({
        "fx_rate_to_business": 3.6725,
        "items": [make_line("i1", 2, 50)],
        "shipping_foreign": 10,
        "paidAmount_base": 100,
    }, "purchase")
    rate = 3.6725
    assert out["total_foreign"] == pytest.approx(110)
    assert out["total_local"] == pytest.approx(110 * rate)
    assert out["totalCost_base"] == pytest.approx(out["total_local"])
    assert out["items"][0]["unitPrice_base"] == pytest.approx(50 * rate)
    assert out["items"][0]["line_total_local"] == pytest.approx(100 * rate)
    assert out["balance_local"] == pytest.approx(110 * rate - 100)
    assert out["totalQuantity"] == 2


def test_freeze_fx_bad_rate_reads_as_one(make_line):
    out = freeze_fx({"fx_rate_to_business": 0, "items": [make_line("i1", 1, 20)]}, "purchase")
    assert out["fx_rate_to_business"] == 1.0
    assert out["total_local"] == 20


def test_freeze_fx_sale_discount_rule(make_line):
    out = freeze_fx({"items": [make_line("i1", 4, 50)], "discount": 10, "discountType": "percent"}, "sale")
    assert out["discount"] == {"type": "percent", "value": 10.0}
    assert out["discount_foreign"] == pytest.approx(20)
    assert out["total_foreign"] == pytest.approx(180)
    assert "discountType" not in out

    flat = freeze_fx({"items": [make_line("i1", 4, 50)], "discount": {"type": "flat", "value": 15}}, "sale")
    assert flat["total_local"] == pytest.approx(185)


def test_freeze_fx_does_not_touch_draft(make_line):
    draft = {"fx_rate_to_business": 2, "items": [make_line("i1", 1, 10)]}
    before = copy.deepcopy(draft)
    freeze_fx(draft, "purchase")
    assert draft == before


# ---------------------------------------------------------------------------
# Suite B: save
# ---------------------------------------------------------------------------

def test_save_new_sale_writes_inline_payment(make_snapshot, make_line):
    snap = make_snapshot()
    patch = save_invoice(snap, "sale", _sale_draft(make_line))

    (saved,) = patch["sales"]
    assert saved["saleNumber"] == "S-0001"
    assert saved["total_local"] == 100
    assert saved["payment_status"] == "Partial"
    assert saved["paid_amount_local"] == 40
    assert saved["balance_local"] == 60

    (inline,) = patch["payments"]
    assert inline["source"] == INLINE_SOURCE
    assert inline["invoiceId"] == "SX"
    assert inline["amount"] == 40
    assert inline["type"] == "in"
    assert inline["notes"] == "Payment for Sale #S-0001"


def test_resave_replaces_only_inline_payment(make_snapshot, make_line, make_payment):
    snap = make_snapshot()
    snap = snap.with_patch(save_invoice(snap, "sale", _sale_draft(make_line)))
    inline_id = inline_payment_for(snap, "SX").id
    snap = snap.with_patch({"payments": snap.raw_list("payments") + [
        make_payment("later", 30, invoice="SX", party="c1"),
    ]})

    # the form shows the invoice's total paid; the inline row takes what "later" does not cover
    patch = save_invoice(snap, "sale", _sale_draft(make_line, saleNumber="S-0001", paidAmount=100))
    rows = {p["id"]: p for p in patch["payments"]}
    assert set(rows) == {inline_id, "later"}
    assert rows[inline_id]["amount"] == 70
    (saved,) = patch["sales"]
    assert saved["payment_status"] == "Paid"
    assert saved["paid_amount_local"] == 100


def test_resaving_stored_record_keeps_payments(make_snapshot, make_line, make_payment):
    snap = make_snapshot()
    snap = snap.with_patch(save_invoice(snap, "sale", _sale_draft(make_line)))
    snap = snap.with_patch({"payments": snap.raw_list("payments") + [
        make_payment("later", 30, invoice="SX", party="c1"),
    ]})
    snap = snap.with_patch(recalculate_and_sync_invoices(["SX"], snap.payments, snap))
    stored = snap.raw_list("sales")[0]
    assert stored["paid_amount_local"] == 70

    patch = save_invoice(snap, "sale", stored)
    assert sorted(p["amount"] for p in patch["payments"]) == [30, 40]
    assert patch["sales"][0]["paid_amount_local"] == 70


def test_paid_below_other_payments_rejected(make_snapshot, make_line, make_payment):
    snap = make_snapshot()
    snap = snap.with_patch(save_invoice(snap, "sale", _sale_draft(make_line)))
    snap = snap.with_patch({"payments": snap.raw_list("payments") + [
        make_payment("later", 30, invoice="SX", party="c1"),
    ]})
    with pytest.raises(InvoiceValidationError, match="already recorded as payments"):
        save_invoice(snap, "sale", _sale_draft(make_line, paidAmount=10))


def test_resave_with_zero_paid_removes_inline(make_snapshot, make_line):
    snap = make_snapshot()
    snap = snap.with_patch(save_invoice(snap, "sale", _sale_draft(make_line)))
    patch = save_invoice(snap, "sale", _sale_draft(make_line, saleNumber="S-0001", paidAmount=0))
    assert patch["payments"] == []
    assert patch["sales"][0]["payment_status"] == "Credit"


def test_save_foreign_purchase(make_snapshot, make_line):
    snap = make_snapshot()
    patch = save_invoice(snap, "purchase", {
        "id": "PX", "supplierId": "s1", "date": "2025-03-01", "currency": "USD",
        "fx_rate_to_business": 3.6725, "items": [make_line("i1", 10, 5)],
    })
    (saved,) = patch["purchases"]
    assert saved["purchaseNumber"] == "P-0001"
    assert saved["total_local"] == pytest.approx(50 * 3.6725)
    assert saved["payment_status"] == "Credit"
    assert patch["payments"] == []


@pytest.mark.parametrize(
    "over, message",
    [
        ({"customerId": None}, "select a customer"),
        ({"customerId": "ghost"}, "Unknown customer"),
        ({"items": []}, "at least one item"),
        ({"items": [{"itemId": "i1", "quantity": 0, "price": 5}]}, "product and quantity"),
        ({"items": [{"itemId": "i1", "quantity": 1, "price": 0}]}, "unit price"),
        ({"paidAmount": 150}, "greater than the total"),
        ({"paidAmount": -5}, "cannot be negative"),
        ({"paidAmount": 10, "paymentMethod": "bank"}, "bank account"),
    ],
)
def test_save_sale_validation(make_snapshot, make_line, over, message):
    with pytest.raises(InvoiceValidationError, match=message):
        save_invoice(make_snapshot(), "sale", _sale_draft(make_line, **over))


def test_duplicate_number_rejected(make_snapshot, make_sale, make_line):
    snap = make_snapshot(sales=[make_sale("S1", 10, number="S-0005")])
    with pytest.raises(InvoiceValidationError, match="unique"):
        save_invoice(snap, "sale", _sale_draft(make_line, saleNumber="S-0005"))


def test_serial_rules(make_snapshot, make_purchase, make_line):
    snap = make_snapshot(purchases=[
        make_purchase("P1", 800, items=[make_line("i2", 2, 400, ["IMEI-1", "IMEI-2"])]),
    ])
    # one serial per unit
    with pytest.raises(InvoiceValidationError, match="serial"):
        save_invoice(snap, "sale", _sale_draft(make_line, items=[make_line("i2", 2, 600, ["IMEI-1"])], paidAmount=0))
    # never purchased
    with pytest.raises(InvoiceValidationError, match="never purchased"):
        save_invoice(snap, "sale", _sale_draft(make_line, items=[make_line("i2", 1, 600, ["IMEI-9"])], paidAmount=0))
    # repeated in the same invoice
    with pytest.raises(InvoiceValidationError, match="Duplicate"):
        save_invoice(snap, "sale", _sale_draft(make_line, items=[make_line("i2", 2, 600, ["IMEI-1", "IMEI-1"])],
                                               paidAmount=0))
    # bought twice
    with pytest.raises(InvoiceValidationError, match="already exists"):
        save_invoice(snap, "purchase", {"supplierId": "s1", "items": [make_line("i2", 1, 400, ["IMEI-2"])]})

    sold = snap.with_patch(save_invoice(snap, "sale", _sale_draft(
        make_line, id="S1", items=[make_line("i2", 1, 600, ["IMEI-1"])], paidAmount=0)))
    with pytest.raises(InvoiceValidationError, match="already been sold"):
        save_invoice(sold, "sale", _sale_draft(make_line, id="S2", items=[make_line("i2", 1, 600, ["IMEI-1"])],
                                               paidAmount=0))


# ---------------------------------------------------------------------------
# Suite C: delete
# ---------------------------------------------------------------------------

def test_delete_sale_removes_its_payments(make_snapshot, make_sale, make_payment):
    snap = make_snapshot(
        sales=[make_sale("S1", 100), make_sale("S2", 50)],
        payments=[make_payment("a", 100, invoice="S1"), make_payment("b", 50, invoice="S2")],
    )
    patch = delete_invoice(snap, "S1")
    assert [s["id"] for s in patch["sales"]] == ["S2"]
    assert [p["id"] for p in patch["payments"]] == ["b"]


def test_delete_purchase_blocked_when_items_sold(make_snapshot, make_sale, make_purchase, make_line):
    snap = make_snapshot(
        purchases=[make_purchase("P1", 50, date="2025-01-01", items=[make_line("i1", 5, 10)])],
        sales=[make_sale("S1", 40, date="2025-01-10", items=[make_line("i1", 2, 20)])],
    )
    with pytest.raises(InvoiceValidationError, match="have been sold"):
        delete_invoice(snap, "P1")


def test_delete_purchase_allowed_when_only_earlier_sales(make_snapshot, make_sale, make_purchase, make_line):
    snap = make_snapshot(
        purchases=[make_purchase("P2", 50, date="2025-02-01", items=[make_line("i1", 5, 10)])],
        sales=[make_sale("S1", 40, date="2025-01-10", items=[make_line("i1", 2, 20)])],
    )
    patch = delete_invoice(snap, "P2")
    assert patch["purchases"] == []


def test_delete_unknown_invoice(make_snapshot):
    with pytest.raises(InvoiceValidationError, match="not found"):
        delete_invoice(make_snapshot(), "missing")
