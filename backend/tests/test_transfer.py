"""
Inter-location transfer tests.

A transfer moves stock between two locations of the same item as one
operation: both legs or neither, total unchanged, two TRANSFER rows.
"""
from datetime import date, timedelta

import pytest

from conftest import assert_ledger_consistent
from rims.ledger import BatchInfo, NotFoundError, TransactionType
from rims.ledger import inventory_service
from rims.ledger.inventory_service import TransferError
from rims.validation import ValidationError


def test_transfer_moves_stock_and_keeps_total(ledger, item_a):
    tx_out, tx_in = inventory_service.transfer_stock(ledger, item_a.id, "loc-2", "loc-3", 3)

    assert item_a.quantity_at("loc-2") == 7
    assert item_a.quantity_at("loc-3") == 3
    assert item_a.stock_quantity == 10
    assert_ledger_consistent(ledger)

    assert tx_out.type == TransactionType.TRANSFER
    assert tx_in.type == TransactionType.TRANSFER
    assert tx_out.quantity == tx_in.quantity == 3
    assert tx_out.location_id == "loc-2"
    assert tx_out.to_location_id == "loc-3"
    assert tx_in.location_id == "loc-3"


def test_transfer_reasons_name_the_other_location(ledger, item_a):
    tx_out, tx_in = inventory_service.transfer_stock(ledger, item_a.id, "loc-2", "loc-1", 2)
    assert tx_out.reason == "Transfer Out to Main Warehouse"
    assert tx_in.reason == "Transfer In from Downtown Store"


def test_transfer_is_one_store_batch(ledger, store, item_a):
    store.calls.clear()
    inventory_service.transfer_stock(ledger, item_a.id, "loc-2", "loc-3", 1)
    assert store.calls == [("batch", None)]
    assert len(store.fetch_all("transactions")) == 3


def test_insufficient_stock_changes_nothing(ledger, item_a):
    version = item_a.version
    with pytest.raises(TransferError):
        inventory_service.transfer_stock(ledger, item_a.id, "loc-2", "loc-3", 11)

    assert item_a.stock_distribution == {"loc-1": 0, "loc-2": 10, "loc-3": 0}
    assert item_a.version == version
    assert len(ledger.transactions) == 1


def test_same_location_rejected(ledger, item_a):
    with pytest.raises(TransferError):
        inventory_service.transfer_stock(ledger, item_a.id, "loc-2", "loc-2", 1)


def test_quantity_must_be_positive(ledger, item_a):
    with pytest.raises(ValidationError):
        inventory_service.transfer_stock(ledger, item_a.id, "loc-2", "loc-3", 0)


def test_unknown_ids_rejected(ledger, item_a):
    with pytest.raises(NotFoundError):
        inventory_service.transfer_stock(ledger, "missing", "loc-2", "loc-3", 1)
    with pytest.raises(NotFoundError):
        inventory_service.transfer_stock(ledger, item_a.id, "loc-2", "loc-99", 1)
    assert item_a.quantity_at("loc-2") == 10


def test_batches_follow_the_stock(ledger):
    soon = date.today() + timedelta(days=5)
    later = date.today() + timedelta(days=40)
    item = inventory_service.add_item(
        ledger, sku="GROC-7", name="Yogurt", location_id="loc-1", initial_stock=4, batch=BatchInfo("A", soon)
    )
    inventory_service.adjust_stock(ledger, item.id, "loc-1", 6, batch=BatchInfo("B", later))

    inventory_service.transfer_stock(ledger, item.id, "loc-1", "loc-2", 5)

    at_store = sorted((b.batch_number, b.quantity) for b in item.batches if b.location_id == "loc-2")
    at_warehouse = [(b.batch_number, b.quantity) for b in item.batches if b.location_id == "loc-1"]
    assert at_store == [("A", 4), ("B", 1)]
    assert at_warehouse == [("B", 5)]
    assert_ledger_consistent(ledger)
