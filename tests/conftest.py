"""
Shared pytest fixtures.

Everything runs against the in-memory database, one fresh database per test.
"""
import pytest

from app_firebase import create_app
from config import TestingConfig
from firebase_store import MockDatabase, RecordStore
from reconciliation import ReconciliationEngine


@pytest.fixture
def database():
    return MockDatabase()


@pytest.fixture
def store(database):
    return RecordStore(database, 'test-app', 'owner-1')


@pytest.fixture
def engine(store):
    return ReconciliationEngine(store)


@pytest.fixture
def batch_data():
    """500 purchased + 10 free chicks at 0.50, budgeted to sell at 6.00."""
    return {
        'name': 'Batch 1',
        'breed': 'Cobb 500',
        'purchase_date': '2024-03-01',
        'purchased_chick_count': 500,
        'free_chick_count': 10,
        'chick_price': 0.50,
        'proposed_selling_price_per_bird': 6.00,
        'estimated_feed_cost': 300,
    }


@pytest.fixture
def batch(engine, batch_data):
    return engine.create_batch(batch_data)['record']


@pytest.fixture
def feed_item(engine):
    return engine.create_supply_item({
        'name': 'Broiler Starter',
        'unit': 'kg',
        'category': 'Feed',
        'current_stock': 100,
        'buffer_stock': 20,
    })['record']


@pytest.fixture
def medication_item(engine):
    return engine.create_supply_item({
        'name': 'Amprolium',
        'unit': 'g',
        'category': 'Medication',
        'current_stock': 10,
    })['record']


@pytest.fixture
def app():
    app = create_app(TestingConfig)
    yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth_headers():
    return {'X-User-Id': 'farmer-1'}
