"""
Pytest fixtures for clothpos backend tests.

Provides test database setup, store/supplier/customer fixtures, product
factories and the Flask test client.
"""

from decimal import Decimal

import pytest

from clothpos import create_app
from clothpos.config import TestConfig
from clothpos.extensions import db
from clothpos.models import Store, Supplier, Customer


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

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
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def store(db_session):
    s = Store(name="Main Store", code="MAIN", is_active=True)
    db_session.add(s)
    db_session.commit()
    return s


@pytest.fixture(scope='function')
def other_store(db_session):
    s = Store(name="Branch Store", code="BRANCH", is_active=True)
    db_session.add(s)
    db_session.commit()
    return s


@pytest.fixture(scope='function')
def supplier(db_session, store):
    sup = Supplier(store_id=store.id, name="Gul Textiles", phone="0300-1111111")
    db_session.add(sup)
    db_session.commit()
    return sup


@pytest.fixture(scope='function')
def second_supplier(db_session, store):
    sup = Supplier(store_id=store.id, name="Lahore Fabrics", phone="0300-2222222")
    db_session.add(sup)
    db_session.commit()
    return sup


@pytest.fixture(scope='function')
def customer(db_session, store):
    c = Customer(store_id=store.id, name="Ayesha Khan", phone="0321-5555555")
    db_session.add(c)
    db_session.commit()
    return c


@pytest.fixture(scope='function')
def make_simple(store):
    """Factory for SIMPLE products created through the catalog service."""
    from clothpos.services.catalog_service import create_product

    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        data = {
            "kind": "SIMPLE",
            "sku": f"shirt-{counter['n']}",
            "name": f"Cotton Shirt {counter['n']}",
            "buying_price": Decimal("120"),
            "selling_price": Decimal("200"),
            "stock_level": Decimal("10"),
        }
        data.update(overrides)
        return create_product(store_id=store.id, data=data)

    return _make


@pytest.fixture(scope='function')
def make_raw(store):
    """Factory for RAW_MATERIAL (fabric by the meter) products."""
    from clothpos.services.catalog_service import create_product

    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        data = {
            "kind": "RAW_MATERIAL",
            "sku": f"lawn-{counter['n']}",
            "name": f"Lawn Fabric {counter['n']}",
            "buying_price": Decimal("300"),
            "selling_price": Decimal("450"),
            "total_meters": Decimal("120"),
            "meters_per_unit": Decimal("4"),
        }
        data.update(overrides)
        return create_product(store_id=store.id, data=data)

    return _make


@pytest.fixture(scope='function')
def make_combo(store):
    """Factory for a 3-piece COMBO_SET (Qameez 2.5 m x10, Shalwar 1.5 m x8, Dupatta 2.0 m x10)."""
    from clothpos.services.catalog_service import create_product

    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        data = {
            "kind": "COMBO_SET",
            "sku": f"suit-{counter['n']}",
            "name": f"Embroidered Suit {counter['n']}",
            "buying_price": Decimal("2400"),
            "selling_price": Decimal("3500"),
            "components": [
                {"name": "Qameez", "meters": "2.5", "buying_price": "1200", "selling_price": "1800", "stock_level": 10},
                {"name": "Shalwar", "meters": "1.5", "buying_price": "600", "selling_price": "900", "stock_level": 8},
                {"name": "Dupatta", "meters": "2.0", "buying_price": "600", "selling_price": "1000", "stock_level": 10},
            ],
            "can_sell_separate": True,
            "can_sell_partial_set": True,
            "partial_set_prices": [
                {"components": ["Qameez", "Shalwar"], "selling_price": "2500"},
            ],
        }
        data.update(overrides)
        return create_product(store_id=store.id, data=data)

    return _make
