"""
Supplier and purchase order tests.

Lifecycle: ORDERED -> RECEIVED (once) or CANCELLED.
"""
from datetime import date, timedelta

import pytest

from rims.ledger import BatchInfo, NotFoundError, PurchaseOrderLine, TransactionType
from rims.ledger import inventory_service, purchasing_service
from rims.ledger.entities import PO_STATUS_CANCELLED, PO_STATUS_ORDERED, PO_STATUS_RECEIVED
from rims.ledger.purchasing_service import PurchaseOrderError
from rims.validation import ValidationError


@pytest.fixture
def supplier(ledger):
    return purchasing_service.add_supplier(
        ledger, name="TechSupply Co", contact_person="John Tech", email="contact@techsupply.co", rating=4.8
    )


@pytest.fixture
def po(ledger, supplier, item_a, item_b):
    return purchasing_service.create_purchase_order(
        ledger,
        supplier_id=supplier.id,
        lines=[
            PurchaseOrderLine(item_a.id, quantity=20, cost_price_cents=350),
            {"item_id": item_b.id, "quantity": 6, "cost_price_cents": 800},
        ],
    )


class TestSuppliers:
    def test_rating_bounds(self, ledger):
        with pytest.raises(ValidationError):
            purchasing_service.add_supplier(ledger, name="Bad", rating=5.5)

    def test_update_and_delete(self, ledger, store, supplier):
        purchasing_service.update_supplier(ledger, supplier.id, phone="555-0101", rating=4)
        assert store.fetch_all("suppliers")[0]["phone"] == "555-0101"

        purchasing_service.delete_supplier(ledger, supplier.id)
        assert ledger.suppliers == {}
        assert store.fetch_all("suppliers") == []

    def test_unknown_field_rejected(self, ledger, supplier):
        with pytest.raises(ValidationError):
            purchasing_service.update_supplier(ledger, supplier.id, credit_limit=100)


class TestPurchaseOrders:
    def test_created_ordered_with_fixed_total(self, ledger, po, item_a):
        assert po.status == PO_STATUS_ORDERED
        assert po.total_cost_cents == 20 * 350 + 6 * 800

        # later catalog cost changes do not move the order total
        inventory_service.update_item(ledger, item_a.id, cost_price_cents=999)
        assert po.total_cost_cents == 11800

    def test_wire_format_uses_items_key(self, po):
        data = po.to_dict()
        assert len(data["items"]) == 2
        assert data["items"][0]["quantity"] == 20

    def test_needs_lines(self, ledger, supplier):
        with pytest.raises(PurchaseOrderError):
            purchasing_service.create_purchase_order(ledger, supplier_id=supplier.id, lines=[])

    def test_unknown_supplier(self, ledger, item_a):
        with pytest.raises(NotFoundError):
            purchasing_service.create_purchase_order(
                ledger, supplier_id="SUP-NOPE", lines=[PurchaseOrderLine(item_a.id, 1, 100)]
            )

    def test_receive_posts_restock_per_line(self, ledger, po, item_a, item_b):
        before = len(ledger.transactions)

        purchasing_service.receive_purchase_order(ledger, po.id, "loc-1", invoice_number="INV-77")

        assert po.status == PO_STATUS_RECEIVED
        assert po.invoice_number == "INV-77"
        assert po.received_location_id == "loc-1"
        assert item_a.quantity_at("loc-1") == 20
        assert item_b.quantity_at("loc-1") == 6

        new = ledger.transactions[before:]
        assert [tx.type for tx in new] == [TransactionType.RESTOCK, TransactionType.RESTOCK]
        assert all(tx.reason == f"PO Received: {po.id} (Inv: INV-77)" for tx in new)

    def test_receive_twice_rejected(self, ledger, po, item_a):
        purchasing_service.receive_purchase_order(ledger, po.id, "loc-1")
        with pytest.raises(PurchaseOrderError):
            purchasing_service.receive_purchase_order(ledger, po.id, "loc-1")
        assert item_a.quantity_at("loc-1") == 20

    def test_receive_with_batch(self, ledger, po, item_b):
        expiry = date.today() + timedelta(days=90)
        purchasing_service.receive_purchase_order(
            ledger, po.id, "loc-1", batches={item_b.id: BatchInfo("MUG-2025", expiry)}
        )
        assert [(b.batch_number, b.quantity, b.location_id) for b in item_b.batches] == [
            ("MUG-2025", 6, "loc-1")
        ]

    def test_deleted_item_line_skipped(self, ledger, po, item_a, item_b):
        inventory_service.delete_item(ledger, item_a.id)
        purchasing_service.receive_purchase_order(ledger, po.id, "loc-1")
        assert po.status == PO_STATUS_RECEIVED
        assert item_b.quantity_at("loc-1") == 6

    def test_cancel(self, ledger, po):
        purchasing_service.update_purchase_order_status(ledger, po.id, PO_STATUS_CANCELLED)
        assert po.status == PO_STATUS_CANCELLED
        with pytest.raises(PurchaseOrderError):
            purchasing_service.receive_purchase_order(ledger, po.id, "loc-1")

    def test_status_cannot_be_set_to_received(self, ledger, po):
        with pytest.raises(PurchaseOrderError):
            purchasing_service.update_purchase_order_status(ledger, po.id, PO_STATUS_RECEIVED)
        assert po.status == PO_STATUS_ORDERED
