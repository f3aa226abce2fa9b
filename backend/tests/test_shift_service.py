"""
Cash shift lifecycle tests.

Covers:
- one OPEN shift per location
- expected cash = start + cash sales, variance = counted - expected
- X/Z summary counts
"""
import unittest

import pytest

from rims.ledger import Ledger, LedgerSettings, LineItem, MemoryStore, NotFoundError
from rims.ledger import inventory_service, return_service, sales_service, shift_service
from rims.ledger.shift_service import ShiftError
from rims.validation import ValidationError


def test_reconciliation_with_location_price(ledger, item_a):
    inventory_service.set_location_price(ledger, item_a.id, "loc-2", 250)
    shift = shift_service.open_shift(ledger, location_id="loc-2", start_amount_cents=100)

    sales_service.process_sale(ledger, location_id="loc-2", lines=[LineItem(item_a.id, 1)])
    closed = shift_service.close_shift(ledger, shift.id, end_amount_cents=340, notes="short a dime")

    assert closed.expected_amount_cents == 350
    assert closed.variance_cents == -10
    assert closed.status == "CLOSED"
    assert closed.end_time is not None
    assert closed.notes == "short a dime"


def test_card_sales_not_expected_in_drawer(ledger, item_a):
    shift = shift_service.open_shift(ledger, location_id="loc-2", start_amount_cents=1000)
    sales_service.process_sale(ledger, location_id="loc-2", lines=[LineItem(item_a.id, 1)], payment_method="CARD")

    closed = shift_service.close_shift(ledger, shift.id, end_amount_cents=1000)

    assert closed.expected_amount_cents == 1000
    assert closed.variance_cents == 0


def test_summary_counts_sales_and_refunds(ledger, item_a, item_b):
    shift = shift_service.open_shift(ledger, location_id="loc-2", start_amount_cents=0)
    sale = sales_service.process_sale(
        ledger, location_id="loc-2", lines=[LineItem(item_a.id, 1), LineItem(item_b.id, 1)]
    )
    sales_service.process_sale(ledger, location_id="loc-2", lines=[LineItem(item_a.id, 1)], payment_method="CARD")
    return_service.process_refund(
        ledger, original_transaction_id=sale.id, location_id="loc-2", lines=[LineItem(item_b.id, 1)]
    )

    summary = shift_service.shift_summary(ledger, shift.id)

    assert summary["sales_count"] == 2
    assert summary["refunds_count"] == 1
    assert summary["total_takings_cents"] == 3000 - 2000 + 1000
    assert summary["expected_cash_cents"] == 1000
    assert summary["is_closed"] is False
    assert summary["variance_cents"] is None


def test_shift_persisted_with_sale(ledger, store, item_a):
    shift = shift_service.open_shift(ledger, location_id="loc-2", start_amount_cents=0)
    sales_service.process_sale(ledger, location_id="loc-2", lines=[LineItem(item_a.id, 1)])

    stored = {r["id"]: r for r in store.fetch_all("cash_shifts")}
    assert stored[shift.id]["cash_sales_cents"] == 1000


class TestShiftRegistry(unittest.TestCase):
    """One OPEN shift per location, tracked across open/close."""

    def setUp(self):
        self.ledger = Ledger(MemoryStore(), settings=LedgerSettings(sync_mode="inline"))

    def tearDown(self):
        self.ledger.close()

    def test_second_open_at_same_location_rejected(self):
        shift_service.open_shift(self.ledger, location_id="loc-2", start_amount_cents=0)
        with self.assertRaises(ShiftError):
            shift_service.open_shift(self.ledger, location_id="loc-2", start_amount_cents=0)

    def test_other_locations_independent(self):
        a = shift_service.open_shift(self.ledger, location_id="loc-2", start_amount_cents=0)
        b = shift_service.open_shift(self.ledger, location_id="loc-3", start_amount_cents=0)
        self.assertEqual(shift_service.get_open_shift(self.ledger, "loc-2"), a)
        self.assertEqual(shift_service.get_open_shift(self.ledger, "loc-3"), b)

    def test_reopen_after_close(self):
        first = shift_service.open_shift(self.ledger, location_id="loc-2", start_amount_cents=0)
        shift_service.close_shift(self.ledger, first.id, end_amount_cents=0)
        self.assertIsNone(shift_service.get_open_shift(self.ledger, "loc-2"))

        second = shift_service.open_shift(self.ledger, location_id="loc-2", start_amount_cents=500)
        self.assertNotEqual(first.id, second.id)

    def test_double_close_rejected(self):
        shift = shift_service.open_shift(self.ledger, location_id="loc-2", start_amount_cents=0)
        shift_service.close_shift(self.ledger, shift.id, end_amount_cents=0)
        with self.assertRaises(ShiftError):
            shift_service.close_shift(self.ledger, shift.id, end_amount_cents=0)

    def test_unknown_shift(self):
        with self.assertRaises(NotFoundError):
            shift_service.close_shift(self.ledger, "SHIFT-NOPE", end_amount_cents=0)

    def test_negative_float_rejected(self):
        with self.assertRaises(ShiftError):
            shift_service.open_shift(self.ledger, location_id="loc-2", start_amount_cents=-1)

    def test_non_integer_amount_rejected(self):
        with self.assertRaises(ValidationError):
            shift_service.open_shift(self.ledger, location_id="loc-2", start_amount_cents=10.5)


@pytest.mark.parametrize("counted,variance", [(1000, 0), (1200, 200), (900, -100)])
def test_variance_sign(ledger, counted, variance):
    shift = shift_service.open_shift(ledger, location_id="loc-1", start_amount_cents=1000)
    closed = shift_service.close_shift(ledger, shift.id, end_amount_cents=counted)
    assert closed.variance_cents == variance
