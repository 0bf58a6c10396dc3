# tests/test_party_ledger.py
import copy

import pytest

from erp_ledger.modules.payments import UNRESOLVED, resolve_party
from erp_ledger.modules.payments.payment_utilities.party_resolution import belongs_to, unresolved_payments
from erp_ledger.modules.reporting import build_ledger_data, payables, receivables


def _ledger(snap, party_id="c1", party_type="customer", **kw):
    return build_ledger_data(party_type, party_id, snap, **kw)


# ---------------------------------------------------------------------------
# Suite A: customer ledger
# ---------------------------------------------------------------------------

def test_sale_then_payment(make_snapshot, make_sale, make_payment):
    snap = make_snapshot(
        sales=[make_sale("S1", 500)],
        payments=[make_payment("p1", 200, invoice="S1", party="c1")],
    )
    res = _ledger(snap)
    assert [r.type for r in res.transactions] == ["Sale", "Payment In"]
    assert [r.balance for r in res.transactions] == [500, 300]
    assert res.transactions[1].ref_id == "S-S1"
    assert res.opening_balance == 0
    assert res.closing_balance == 300
    assert res.totals == {"debit": 500, "credit": 200}


def test_inline_paid_not_counted_twice(make_snapshot, make_sale, make_payment):
    snap = make_snapshot(
        sales=[make_sale("S1", 500, paid=200)],
        payments=[make_payment("p1", 200, invoice="S1", party="c1")],
    )
    res = _ledger(snap)
    assert [r.source_id for r in res.transactions] == ["S1", "p1"]
    assert res.closing_balance == 300


def test_inline_paid_without_payment_rows(make_snapshot, make_sale):
    snap = make_snapshot(sales=[make_sale("S1", 500, paid=200)])
    res = _ledger(snap)
    inline = res.transactions[1]
    assert inline.source_id == "inline-sale-S1"
    assert inline.type == "Payment In"
    assert inline.credit == 200
    assert res.closing_balance == 300


def test_unlinked_payment_with_same_amount_covers_inline(make_snapshot, make_sale, make_payment):
    snap = make_snapshot(
        sales=[make_sale("S1", 500, paid=200)],
        payments=[make_payment("p1", 200, party="c1")],
    )
    res = _ledger(snap)
    assert [r.source_id for r in res.transactions] == ["S1", "p1"]


def test_party_inferred_through_invoice(make_snapshot, make_sale, make_payment):
    snap = make_snapshot(
        sales=[make_sale("S1", 500)],
        payments=[make_payment("legacy", 100, invoice="S1")],
    )
    assert _ledger(snap).closing_balance == 400
    assert _ledger(snap, party_id="c2").transactions == []


def test_unresolved_and_internal_rows_left_out(make_snapshot, make_sale, make_payment, caplog):
    snap = make_snapshot(
        sales=[make_sale("S1", 500)],
        payments=[
            make_payment("orphan", 80),
            make_payment("t1", 300, type="bank_transfer", party="c1", party_type="customer"),
            make_payment("adj", 10, type="cash_adjustment", invoice="S1"),
        ],
    )
    res = _ledger(snap)
    assert [r.type for r in res.transactions] == ["Sale"]

    orphan = snap.payments[0]
    assert resolve_party(orphan, snap.invoice_index()) is UNRESOLVED
    assert not UNRESOLVED
    assert not belongs_to(orphan, "customer", "c1", snap.invoice_index())
    assert [p.id for p in unresolved_payments(snap)] == ["orphan"]
    assert "no resolvable party" in caplog.text


def test_payment_without_id_counted_once(make_snapshot, make_sale):
    row = {"type": "in", "partyId": "c1", "partyType": "customer", "amount": 50, "date": "2025-01-05"}
    snap = make_snapshot(sales=[make_sale("S1", 500)], payments=[row, copy.deepcopy(row)])
    res = _ledger(snap)
    assert res.closing_balance == 450
    assert len(res.transactions) == 2


def test_payment_discount_is_its_own_row(make_snapshot, make_sale, make_payment):
    snap = make_snapshot(
        sales=[make_sale("S1", 500)],
        payments=[make_payment("p1", 180, invoice="S1", party="c1", discount=20)],
    )
    res = _ledger(snap)
    assert [(r.type, r.credit) for r in res.transactions[1:]] == [("Payment In", 180), ("Discount", 20)]
    assert res.closing_balance == 300


def test_credit_note_reduces_balance(make_snapshot, make_sale):
    snap = make_snapshot(
        sales=[make_sale("S1", 500)],
        credit_notes=[{"id": "cn1", "customerId": "c1", "date": "2025-01-07", "amount": 50, "noteNumber": "CN-1"}],
    )
    res = _ledger(snap)
    note = res.transactions[-1]
    assert (note.type, note.ref_id, note.credit, note.doc_type) == ("Credit Note", "CN-1", 50, "sales_return")
    assert res.closing_balance == 450


# ---------------------------------------------------------------------------
# Suite B: range & search
# ---------------------------------------------------------------------------

@pytest.fixture
def busy(make_snapshot, make_sale, make_payment):
    return make_snapshot(
        sales=[make_sale("S1", 500, date="2025-01-01"), make_sale("S2", 100, date="2025-02-01")],
        payments=[make_payment("p1", 200, invoice="S1", party="c1", date="2025-01-05")],
    )


def test_date_range_opening_balance(busy):
    res = _ledger(busy, date_range=("2025-01-03", "2025-01-31"))
    assert res.opening_balance == 500
    assert [r.source_id for r in res.transactions] == ["p1"]
    assert res.transactions[0].balance == 300
    assert res.closing_balance == 300

    same = _ledger(busy, date_range={"from": "2025-01-03", "to": "2025-01-31"})
    assert same.as_dict() == res.as_dict()


def test_range_end_covers_whole_day(busy):
    res = _ledger(busy, date_range=(None, "2025-01-05"))
    assert [r.source_id for r in res.transactions] == ["S1", "p1"]


def test_search_keeps_true_balances(busy):
    res = _ledger(busy, search="payment")
    assert [r.source_id for r in res.transactions] == ["p1"]
    assert res.transactions[0].balance == 300
    assert res.closing_balance == 400
    assert res.totals == {"debit": 0, "credit": 200}


def test_as_dict_shape(busy):
    out = _ledger(busy).as_dict()
    assert set(out) == {"transactions", "openingBalance", "closingBalance", "totals"}
    assert out["transactions"][0]["ref_id"] == "S-S1"


def test_accepts_raw_mapping(raw_data, make_sale):
    raw_data["sales"] = [make_sale("S1", 75)]
    assert build_ledger_data("customer", "c1", raw_data).closing_balance == 75


def test_empty_and_bad_party(busy):
    assert _ledger(busy, party_id="").transactions == []
    assert _ledger(busy, party_id=None).closing_balance == 0
    with pytest.raises(ValueError):
        build_ledger_data("vendor", "s1", busy)


# ---------------------------------------------------------------------------
# Suite C: supplier ledger
# ---------------------------------------------------------------------------

def test_supplier_balance_runs_negative(make_snapshot, make_purchase, make_payment):
    snap = make_snapshot(
        purchases=[make_purchase("PU1", 1000)],
        payments=[make_payment("x", 400, type="out", invoice="PU1", party="s1")],
        debit_notes=[{"id": "dn1", "supplierId": "s1", "date": "2025-01-09", "amount": 100}],
    )
    res = _ledger(snap, party_id="s1", party_type="supplier")
    assert [r.type for r in res.transactions] == ["Purchase", "Payment Out", "Debit Note"]
    assert [r.balance for r in res.transactions] == [-1000, -600, -500]
    assert res.transactions[1].debit == 400


# ---------------------------------------------------------------------------
# Suite D: receivables / payables
# ---------------------------------------------------------------------------

def test_receivables(make_snapshot, make_sale, make_payment):
    snap = make_snapshot(
        sales=[
            make_sale("S1", 500, date="2025-01-01"),
            make_sale("S2", 100, date="2025-02-01"),
            make_sale("S3", 70, date="2025-01-10", customer="c2", paid=70),
        ],
        payments=[make_payment("p1", 500, invoice="S1", party="c1")],
    )
    rows = receivables(snap)
    assert [r.party_id for r in rows] == ["c1"]
    alice = rows[0]
    assert (alice.invoiced, alice.paid, alice.balance) == (600, 500, 100)
    assert alice.open_invoices == 1
    assert alice.oldest_unpaid_date.date().isoformat() == "2025-02-01"

    everyone = receivables(snap, include_zero=True)
    assert [r.party_id for r in everyone] == ["c1", "c2"]
    bob = everyone[1]
    assert (bob.name, bob.paid, bob.balance, bob.open_invoices) == ("Bob Stores", 70, 0, 0)
    assert bob.oldest_unpaid_date is None


def test_payables_positive_when_we_owe(make_snapshot, make_purchase, make_payment):
    snap = make_snapshot(
        purchases=[make_purchase("PU1", 1000)],
        payments=[make_payment("x", 400, type="out", invoice="PU1", party="s1")],
    )
    (gulf,) = payables(snap)
    assert gulf.name == "Gulf Supplies"
    assert (gulf.invoiced, gulf.paid, gulf.balance) == (1000, 400, 600)
    assert gulf.open_invoices == 1
