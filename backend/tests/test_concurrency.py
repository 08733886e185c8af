"""
Concurrent checkout tests.

Runs against a file-backed SQLite database (threads each get their own
connection) to verify:
- Stock decrements on one product serialize: no oversell
- The stock cache still equals the ledger sum afterwards
- Document numbers stay unique under contention
"""

import threading

import pytest

from managepme import create_app
from managepme.extensions import db
from managepme.models import Product, Sale
from managepme.services import products_service, sales_service, stock_service
from managepme.services.errors import InsufficientStockError

from conftest import USER_ID


WORKERS = 10


@pytest.fixture
def file_app(tmp_path):
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'concurrency.db'}",
        'TRANSACTION_RETRY_ATTEMPTS': 25,
        'TRANSACTION_RETRY_BACKOFF': 0.005,
    })
    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


def _seed_product(app, stock):
    with app.app_context():
        product = products_service.create_product(
            {"sku": "CONC-1", "name": "Produit concurrent", "sale_price": 10, "purchase_price": 6, "stock_current": stock},
            user_id=USER_ID,
        )
        return product.id


def _run_checkouts(app, product_id, count):
    results = []
    lock = threading.Lock()
    barrier = threading.Barrier(count)

    def worker():
        with app.app_context():
            try:
                barrier.wait()
                sale = sales_service.create_sale(
                    {"items": [{"product_id": product_id, "quantity": 1}]},
                    USER_ID,
                )
                with lock:
                    results.append(sale.document_number)
            except Exception as exc:
                with lock:
                    results.append(exc)
            finally:
                db.session.remove()

    threads = [threading.Thread(target=worker) for _ in range(count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return results


def test_concurrent_checkout_never_oversells(file_app):
    product_id = _seed_product(file_app, stock=5)

    results = _run_checkouts(file_app, product_id, WORKERS)

    numbers = [r for r in results if isinstance(r, str)]
    errors = [r for r in results if not isinstance(r, str)]
    assert len(numbers) == 5
    assert len(errors) == 5
    assert all(isinstance(e, InsufficientStockError) for e in errors), errors
    assert len(set(numbers)) == 5

    with file_app.app_context():
        product = db.session.get(Product, product_id)
        assert product.stock_current == 0
        assert product.stock_current == stock_service.ledger_quantity(product_id)
        assert db.session.query(Sale).count() == 5


def test_concurrent_checkout_with_enough_stock(file_app):
    product_id = _seed_product(file_app, stock=50)

    results = _run_checkouts(file_app, product_id, WORKERS)

    assert all(isinstance(r, str) for r in results), results
    assert len(set(results)) == WORKERS

    with file_app.app_context():
        product = db.session.get(Product, product_id)
        assert product.stock_current == 50 - WORKERS
        assert product.stock_current == stock_service.ledger_quantity(product_id)
