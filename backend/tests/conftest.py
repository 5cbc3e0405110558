"""
Pytest fixtures for pharmacy backend tests.

Provides test database setup, product factories, a fault-injecting store
and the test client.
"""

import uuid

import pytest

from pharmacy import create_app
from pharmacy.errors import StoreError
from pharmacy.extensions import db, local_cache
from pharmacy.models import Product
from pharmacy.services.store import SqlStore


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LOCAL_CACHE_PATH': None,
        'STOCK_TAKE_AUTOSAVE_SECONDS': 0.05,
        'STORE_RETRY_BACKOFF_SECONDS': 0,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app, db_session):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database (and empty progress cache) for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        local_cache.clear()

        yield db.session

        # Cleanup after test
        manager = app.extensions.pop("stock_take_manager", None)
        if manager is not None:
            manager.close()
        db.session.rollback()


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory for products with sensible defaults (stock 50, cost 10.00)."""
    def _make(name="Paracetamol 500mg", **overrides):
        values = {
            "name": name,
            "category": "Analgesics",
            "supplier": "MedSupply Ltd",
            "batch_number": "B1",
            "current_stock": 50,
            "min_stock_level": 10,
            "cost_price_cents": 1000,
            "selling_price_cents": 1330,
            "barcode": uuid.uuid4().hex[:16].upper(),
        }
        values.update(overrides)
        product = Product(**values)
        db_session.add(product)
        db_session.commit()
        return product

    return _make


@pytest.fixture(scope='function')
def reload(db_session):
    """Fresh copy of a row from the database."""
    def _reload(instance):
        db_session.expire_all()
        return db_session.get(type(instance), instance.id)

    return _reload


class FlakyStore(SqlStore):
    """
    SqlStore that raises StoreError on chosen calls.

    failures maps (method, collection) -> the 1-based call number that fails.
    Each rule fires once; every other call goes to the database.
    """

    def __init__(self, failures: dict):
        self.failures = dict(failures)
        self.counts: dict = {}
        self.calls: list = []

    def _maybe_fail(self, method, collection):
        self.calls.append((method, collection))
        key = (method, collection)
        if key not in self.failures:
            return
        self.counts[key] = self.counts.get(key, 0) + 1
        if self.counts[key] == self.failures[key]:
            raise StoreError(
                f"injected {method} failure on {collection}", collection=collection, action=method
            )

    def select(self, collection, **kwargs):
        self._maybe_fail("select", collection)
        return super().select(collection, **kwargs)

    def get(self, collection, row_id):
        self._maybe_fail("get", collection)
        return super().get(collection, row_id)

    def insert(self, collection, values):
        self._maybe_fail("insert", collection)
        return super().insert(collection, values)

    def insert_many(self, collection, rows):
        self._maybe_fail("insert_many", collection)
        return super().insert_many(collection, rows)

    def update(self, collection, row_id, values):
        self._maybe_fail("update", collection)
        return super().update(collection, row_id, values)

    def delete(self, collection, row_id):
        self._maybe_fail("delete", collection)
        return super().delete(collection, row_id)


@pytest.fixture(scope='function')
def flaky_store():
    """Factory: flaky_store({("update", "products"): 2})."""
    return FlakyStore
