"""
Pytest fixtures for ManagePME backend tests.

Provides an in-memory database, a per-test table wipe, and the catalog and
party rows most tests start from.
"""

import pytest

from managepme import create_app
from managepme.extensions import db
from managepme.services import parties_service, products_service


USER_ID = 1
OTHER_USER_ID = 2


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BASE_CURRENCY': 'TND',
        'INVOICE_DUE_DAYS': 30,
        'CREDIT_OVERDUE_DAYS_DEFAULT': 30,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(autouse=True)
def db_session(app):
    """Fresh data for each test, same schema."""
    meta = db.metadata
    for table in reversed(meta.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()

    yield db.session

    db.session.rollback()


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def auth_headers():
    return {"X-User-Id": str(USER_ID)}


@pytest.fixture
def product(db_session):
    """stock 10, sells at 20, bought at 12."""
    return products_service.create_product(
        {
            "sku": "CAF-250",
            "name": "Café moulu 250g",
            "barcode": "6191234567890",
            "sale_price": 20,
            "purchase_price": 12,
            "stock_current": 10,
            "stock_min": 2,
        },
        user_id=USER_ID,
    )


@pytest.fixture
def other_product(db_session):
    return products_service.create_product(
        {
            "sku": "THE-100",
            "name": "Thé vert 100g",
            "sale_price": "7.5",
            "purchase_price": "4.2",
            "stock_current": 5,
        },
        user_id=USER_ID,
    )


@pytest.fixture
def customer(db_session):
    return parties_service.create_client({
        "first_name": "Amine",
        "last_name": "Ben Salah",
        "email": "amine@example.tn",
        "phone": "+216 20 000 001",
    })


@pytest.fixture
def supplier(db_session):
    return parties_service.create_supplier({"name": "Grossiste du Sahel", "phone": "+216 73 000 000"})
