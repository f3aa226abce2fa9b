"""
Pytest fixtures for RIMS backend tests.

Provides the store service app on in-memory SQLite, a test client, and a
ledger over a recording MemoryStore in inline sync mode, seeded with two
items and a customer.
"""

import pytest

from rims import create_app
from rims.extensions import db
from rims.ledger import Ledger, LedgerSettings, MemoryStore
from rims.ledger import customer_service, inventory_service


class RecordingStore(MemoryStore):
    """MemoryStore that remembers every write call, in order."""

    def __init__(self, path=None):
        super().__init__(path)
        self.calls = []

    def upsert(self, collection, record):
        self.calls.append(("upsert", collection))
        super().upsert(collection, record)

    def delete(self, collection, record_id):
        self.calls.append(("delete", collection))
        return super().delete(collection, record_id)

    def submit_batch(self, **batch):
        self.calls.append(("batch", None))
        return super().submit_batch(**batch)

    def batch_calls(self):
        return [c for c in self.calls if c[0] == "batch"]


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Empty every table before the test."""
    with app.app_context():
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        db.session.rollback()


@pytest.fixture(scope='function')
def store():
    return RecordingStore()


@pytest.fixture(scope='function')
def ledger(store):
    """Ledger that flushes every write before returning."""
    ledger = Ledger(store, settings=LedgerSettings(sync_mode="inline"))
    yield ledger
    ledger.close()


@pytest.fixture(scope='function')
def item_a(ledger):
    """10 units at Downtown Store (loc-2), 10.00 each."""
    return inventory_service.add_item(
        ledger,
        sku="ELEC-001",
        name="Wireless Barcode Scanner",
        category="Electronics",
        supplier="TechSupply Co",
        cost_price_cents=400,
        selling_price_cents=1000,
        low_stock_threshold=2,
        location_id="loc-2",
        initial_stock=10,
    )


@pytest.fixture(scope='function')
def item_b(ledger):
    """5 units at Downtown Store (loc-2), 20.00 each."""
    return inventory_service.add_item(
        ledger,
        sku="HOME-102",
        name="Ceramic Coffee Mug Set",
        category="Home",
        supplier="HomeGoods Inc",
        cost_price_cents=900,
        selling_price_cents=2000,
        low_stock_threshold=1,
        location_id="loc-2",
        initial_stock=5,
    )


@pytest.fixture(scope='function')
def customer(ledger):
    return customer_service.add_customer(ledger, name="Jane Doe", phone="555-0199", email="jane@example.com")


def assert_ledger_consistent(ledger):
    """stock_quantity equals the distribution sum and nothing is negative."""
    for item in ledger.inventory.values():
        assert item.stock_quantity == sum(item.stock_distribution.values()), item.sku
        assert all(qty >= 0 for qty in item.stock_distribution.values()), item.sku
        for location_id, qty in item.stock_distribution.items():
            batched = sum(b.quantity for b in item.batches if b.location_id == location_id)
            assert batched <= qty, f"{item.sku} batches exceed stock at {location_id}"
