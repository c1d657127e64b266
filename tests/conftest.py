"""
Shared fixtures: an application bound to in-memory SQLite with a fresh
schema per test, plus a minimal catalog (supplier, two warehouses, products).
"""

from decimal import Decimal

import pytest

from backoffice import create_app
from backoffice.extensions import db
from backoffice.models import Supplier, Warehouse, Product


@pytest.fixture
def app():
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def cli_runner(app):
    return app.test_cli_runner()


@pytest.fixture
def supplier(app):
    supplier = Supplier(name="Atlas Foods")
    supplier.save()
    return supplier


@pytest.fixture
def warehouse(app):
    warehouse = Warehouse(name="Main")
    warehouse.save()
    return warehouse


@pytest.fixture
def other_warehouse(app):
    warehouse = Warehouse(name="Cold room")
    warehouse.save()
    return warehouse


def make_product(sku, name, stock="0", cost="0"):
    product = Product(sku=sku, name=name, stock=Decimal(stock), cost_price=Decimal(cost))
    product.save()
    return product


@pytest.fixture
def rice(app):
    return make_product("RICE-1", "Rice")


@pytest.fixture
def sugar(app):
    return make_product("SUGAR-1", "Sugar")
