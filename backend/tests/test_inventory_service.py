"""
Stock ledger primitive tests.

Covers the invariants every workflow relies on:
1. stock_quantity always equals the sum of the distribution
2. removals clamp at zero instead of going negative
3. one Transaction per non-zero change, quantity == abs(delta)
4. FEFO batch depletion
5. explicit transaction types (no reason-text classification)
"""
from datetime import date, timedelta

import pytest

from conftest import assert_ledger_consistent
from rims.ledger import BatchInfo, NotFoundError, StockAdjustment, TransactionType
from rims.ledger import inventory_service
from rims.ledger.inventory_service import InventoryError
from rims.validation import ValidationError


class TestAddItem:
    def test_initial_stock_at_one_location_zero_elsewhere(self, ledger, item_a):
        assert item_a.stock_distribution == {"loc-1": 0, "loc-2": 10, "loc-3": 0}
        assert item_a.stock_quantity == 10

    def test_initial_stock_logged_as_restock(self, ledger, item_a):
        assert len(ledger.transactions) == 1
        tx = ledger.transactions[0]
        assert tx.type == TransactionType.RESTOCK
        assert tx.reason == "Initial Stock"
        assert tx.quantity == 10
        assert tx.location_id == "loc-2"
        assert tx.user_name == "Admin"

    def test_zero_initial_stock_records_nothing(self, ledger):
        inventory_service.add_item(ledger, sku="X-1", name="Empty", location_id="loc-1")
        assert ledger.transactions == []

    def test_duplicate_sku_rejected(self, ledger, item_a):
        with pytest.raises(InventoryError):
            inventory_service.add_item(ledger, sku="ELEC-001", name="Dup", location_id="loc-1")

    def test_unknown_location_rejected(self, ledger):
        with pytest.raises(NotFoundError):
            inventory_service.add_item(ledger, sku="X-2", name="Nowhere", location_id="loc-99")
        assert ledger.inventory == {}

    def test_initial_batch_recorded(self, ledger):
        expiry = date.today() + timedelta(days=30)
        item = inventory_service.add_item(
            ledger,
            sku="GROC-1",
            name="Milk",
            location_id="loc-2",
            initial_stock=12,
            batch=BatchInfo("LOT-1", expiry),
        )
        assert len(item.batches) == 1
        assert item.batches[0].quantity == 12
        assert item.earliest_expiry == expiry

    def test_persisted_to_store(self, ledger, store, item_a):
        stored = store.fetch_all("inventory")
        assert [r["id"] for r in stored] == [item_a.id]
        assert stored[0]["stock_distribution"]["loc-2"] == 10
        assert len(store.fetch_all("transactions")) == 1


class TestAdjustStock:
    def test_floor_at_zero_clamp(self, ledger, item_a):
        inventory_service.adjust_stock(ledger, item_a.id, "loc-3", 5)

        tx = inventory_service.adjust_stock(ledger, item_a.id, "loc-3", -10, reason="Damaged")

        assert item_a.quantity_at("loc-3") == 0
        assert item_a.stock_quantity == 10
        assert tx.quantity == 10
        assert_ledger_consistent(ledger)

    def test_one_transaction_per_change(self, ledger, item_a):
        before = len(ledger.transactions)
        for delta in (3, -2, 7, -1):
            tx = inventory_service.adjust_stock(ledger, item_a.id, "loc-1", delta)
            assert tx.quantity == abs(delta)
        assert len(ledger.transactions) == before + 4
        assert item_a.stock_quantity == 10 + 3 - 2 + 7 - 1
        assert_ledger_consistent(ledger)

    def test_zero_delta_is_noop(self, ledger, item_a):
        version = item_a.version
        assert inventory_service.adjust_stock(ledger, item_a.id, "loc-2", 0) is None
        assert len(ledger.transactions) == 1
        assert item_a.version == version

    def test_default_types_ignore_reason_text(self, ledger, item_a):
        down = inventory_service.adjust_stock(ledger, item_a.id, "loc-2", -1, reason="Sale at counter")
        up = inventory_service.adjust_stock(ledger, item_a.id, "loc-2", 1, reason="Audit Correction")
        assert down.type == TransactionType.ADJUSTMENT
        assert up.type == TransactionType.RESTOCK

    def test_explicit_type(self, ledger, item_a):
        tx = inventory_service.adjust_stock(
            ledger, item_a.id, "loc-2", -1, type=TransactionType.AUDIT, reason="Count"
        )
        assert tx.type == TransactionType.AUDIT

    def test_fefo_depletion(self, ledger, item_a):
        today = date.today()
        inventory_service.adjust_stock(ledger, item_a.id, "loc-1", 5, batch=BatchInfo("LATE", today + timedelta(days=10)))
        inventory_service.adjust_stock(ledger, item_a.id, "loc-1", 5, batch=BatchInfo("SOON", today + timedelta(days=5)))

        inventory_service.adjust_stock(ledger, item_a.id, "loc-1", -7)

        remaining = [b for b in item_a.batches if b.location_id == "loc-1"]
        assert len(remaining) == 1
        assert remaining[0].batch_number == "LATE"
        assert remaining[0].quantity == 3
        assert item_a.quantity_at("loc-1") == 3

    def test_fefo_only_touches_the_location(self, ledger, item_a):
        soon = date.today() + timedelta(days=1)
        inventory_service.adjust_stock(ledger, item_a.id, "loc-1", 4, batch=BatchInfo("W", soon))
        inventory_service.adjust_stock(ledger, item_a.id, "loc-3", 4, batch=BatchInfo("N", soon))

        inventory_service.adjust_stock(ledger, item_a.id, "loc-3", -4)

        assert [b.batch_number for b in item_a.batches] == ["W"]

    def test_same_batch_number_not_merged(self, ledger, item_a):
        info = BatchInfo("LOT-7", date.today() + timedelta(days=3))
        inventory_service.adjust_stock(ledger, item_a.id, "loc-1", 3, batch=info)
        inventory_service.adjust_stock(ledger, item_a.id, "loc-1", 3, batch=info)
        assert [b.quantity for b in item_a.batches] == [3, 3]

    def test_version_and_timestamp_bumped(self, ledger, item_a):
        version = item_a.version
        inventory_service.adjust_stock(ledger, item_a.id, "loc-2", -1)
        assert item_a.version == version + 1
        assert item_a.last_updated is not None

    def test_unknown_item_changes_nothing(self, ledger, item_a):
        with pytest.raises(NotFoundError):
            inventory_service.adjust_stock(ledger, "missing", "loc-2", 5)
        with pytest.raises(NotFoundError):
            inventory_service.adjust_stock(ledger, item_a.id, "loc-99", 5)
        assert len(ledger.transactions) == 1

    def test_non_integer_delta_rejected(self, ledger, item_a):
        with pytest.raises(ValidationError):
            inventory_service.adjust_stock(ledger, item_a.id, "loc-2", 1.5)

    def test_low_stock_notified_once_on_crossing(self, ledger, item_a):
        seen = []
        ledger.on_low_stock(lambda item, loc: seen.append((item.id, loc)))

        inventory_service.adjust_stock(ledger, item_a.id, "loc-2", -7)  # 3, above threshold 2
        inventory_service.adjust_stock(ledger, item_a.id, "loc-2", -1)  # 2, crosses
        inventory_service.adjust_stock(ledger, item_a.id, "loc-2", -1)  # already low

        assert seen == [(item_a.id, "loc-2")]

    def test_store_receives_item_then_transaction(self, ledger, store, item_a):
        store.calls.clear()
        inventory_service.adjust_stock(ledger, item_a.id, "loc-2", -1)
        assert store.calls == [("upsert", "inventory"), ("upsert", "transactions")]


class TestBulkAdjust:
    def test_one_transaction_per_nonzero_and_one_store_call(self, ledger, store, item_a, item_b):
        store.calls.clear()

        txs = inventory_service.bulk_adjust_stock(
            ledger,
            [StockAdjustment(item_a.id, -3), StockAdjustment(item_b.id, 0), StockAdjustment(item_b.id, 4)],
            "loc-2",
            "Bulk Adjustment",
        )

        assert [(tx.item_id, tx.quantity, tx.type) for tx in txs] == [
            (item_a.id, 3, TransactionType.ADJUSTMENT),
            (item_b.id, 4, TransactionType.RESTOCK),
        ]
        assert item_a.quantity_at("loc-2") == 7
        assert item_b.quantity_at("loc-2") == 9
        assert store.calls == [("batch", None)]
        assert_ledger_consistent(ledger)

    def test_unknown_item_rejects_whole_batch(self, ledger, item_a):
        with pytest.raises(NotFoundError):
            inventory_service.bulk_adjust_stock(
                ledger,
                [StockAdjustment(item_a.id, -3), StockAdjustment("missing", 2)],
                "loc-2",
            )
        assert item_a.quantity_at("loc-2") == 10
        assert len(ledger.transactions) == 1

    def test_all_zero_does_not_touch_store(self, ledger, store, item_a):
        store.calls.clear()
        assert inventory_service.bulk_adjust_stock(ledger, [StockAdjustment(item_a.id, 0)], "loc-2") == []
        assert store.calls == []


class TestCatalog:
    def test_update_item_rejects_stock_fields(self, ledger, item_a):
        with pytest.raises(InventoryError):
            inventory_service.update_item(ledger, item_a.id, stock_quantity=99)
        with pytest.raises(InventoryError):
            inventory_service.update_item(ledger, item_a.id, stock_distribution={"loc-1": 5})
        assert item_a.stock_quantity == 10

    def test_update_item_prices(self, ledger, item_a):
        version = item_a.version
        inventory_service.update_item(ledger, item_a.id, selling_price_cents=1250, name="Scanner v2")
        assert item_a.selling_price_cents == 1250
        assert item_a.name == "Scanner v2"
        assert item_a.version == version + 1

    def test_update_item_rejects_negative_price(self, ledger, item_a):
        with pytest.raises(ValidationError):
            inventory_service.update_item(ledger, item_a.id, cost_price_cents=-1)

    def test_location_price_override(self, ledger, item_a):
        inventory_service.set_location_price(ledger, item_a.id, "loc-3", 1199)
        assert inventory_service.price_for_location(ledger, item_a.id, "loc-3") == 1199
        assert inventory_service.price_for_location(ledger, item_a.id, "loc-2") == 1000

        inventory_service.set_location_price(ledger, item_a.id, "loc-3", None)
        assert inventory_service.price_for_location(ledger, item_a.id, "loc-3") == 1000

    def test_delete_item_keeps_history(self, ledger, store, item_a):
        inventory_service.delete_item(ledger, item_a.id)
        assert item_a.id not in ledger.inventory
        assert len(ledger.transactions) == 1
        assert store.fetch_all("inventory") == []
        with pytest.raises(NotFoundError):
            inventory_service.delete_item(ledger, item_a.id)

    def test_search_items(self, ledger, item_a, item_b):
        assert inventory_service.search_items(ledger, "mug") == [item_b]
        assert inventory_service.search_items(ledger, "elec-001") == [item_a]
        assert len(inventory_service.search_items(ledger, "")) == 2

    def test_add_location(self, ledger):
        location = inventory_service.add_location(ledger, name="Airport Kiosk", address="Terminal 2")
        assert ledger.get_location(location.id).name == "Airport Kiosk"
        with pytest.raises(ValidationError):
            inventory_service.add_location(ledger, name="Bad", type="SHED")
