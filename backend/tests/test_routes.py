"""
HTTP API tests.

Verifies:
- Protected endpoints return 401 without X-User-Id
- Service errors map to their status codes with a JSON body
- The main flows work end to end through the blueprints
"""

import pytest


class TestUnauthenticatedAccess:
    """All business endpoints return 401 without the user header."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/products"),
            ("POST", "/api/products"),
            ("GET", "/api/stock/movements"),
            ("POST", "/api/sales"),
            ("GET", "/api/sales"),
            ("POST", "/api/sales/1/cancel"),
            ("POST", "/api/sales/1/refunds"),
            ("POST", "/api/sales/1/payments"),
            ("GET", "/api/credits/clients"),
            ("GET", "/api/credits/overdue-count"),
            ("POST", "/api/purchases"),
            ("POST", "/api/purchases/1/receive"),
            ("POST", "/api/quotes"),
            ("POST", "/api/quotes/1/convert"),
            ("POST", "/api/cash-registers/open"),
            ("GET", "/api/currency/convert"),
            ("GET", "/api/clients"),
            ("GET", "/api/settings"),
            ("GET", "/api/categories"),
            ("POST", "/api/inventory-counts"),
            ("POST", "/api/inventory-counts/1/validate"),
            ("GET", "/api/dashboard/stats"),
        ],
    )
    def test_requires_user(self, client, method, path):
        response = client.open(path, method=method, json={})
        assert response.status_code == 401

    def test_rejects_malformed_header(self, client):
        response = client.get("/api/sales", headers={"X-User-Id": "abc"})
        assert response.status_code == 401


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.get_json()["database"]["status"] == "healthy"


class TestSalesApi:
    def test_checkout_refund_and_cancel(self, client, auth_headers, product):
        response = client.post("/api/sales", headers=auth_headers, json={
            "type": "TICKET",
            "payment_method": "CASH",
            "items": [{"product_id": product.id, "quantity": 4, "unit_price": 20, "discount": 5}],
        })
        assert response.status_code == 201
        sale = response.get_json()["sale"]
        assert sale["total"] == 75.0
        assert sale["items"][0]["margin"] == 27.0

        response = client.post(f"/api/sales/{sale['id']}/refunds", headers=auth_headers, json={
            "items": [{"sale_item_id": sale["items"][0]["id"], "quantity": 2}],
        })
        assert response.status_code == 201
        assert response.get_json()["refund"]["refund_amount"] == 40.0

        response = client.get(f"/api/products/{product.id}", headers=auth_headers)
        assert response.get_json()["product"]["stock_current"] == 8

        response = client.post(f"/api/sales/{sale['id']}/cancel", headers=auth_headers)
        assert response.status_code == 200
        assert response.get_json()["sale"]["status"] == "CANCELLED"

        response = client.post(f"/api/sales/{sale['id']}/cancel", headers=auth_headers)
        assert response.status_code == 409

    def test_insufficient_stock_is_409(self, client, auth_headers, product):
        response = client.post("/api/sales", headers=auth_headers, json={
            "items": [{"product_id": product.id, "quantity": 11}],
        })
        assert response.status_code == 409
        body = response.get_json()
        assert "Café moulu 250g" in body["error"]
        assert body["details"]["requested_quantity"] == 11

    def test_validation_error_is_400(self, client, auth_headers):
        response = client.post("/api/sales", headers=auth_headers, json={"items": []})
        assert response.status_code == 400

    def test_unknown_sale_is_404(self, client, auth_headers):
        assert client.get("/api/sales/999", headers=auth_headers).status_code == 404

    def test_payments(self, client, auth_headers, product, customer):
        response = client.post("/api/sales", headers=auth_headers, json={
            "type": "INVOICE",
            "payment_method": "CREDIT",
            "client_id": customer.id,
            "items": [{"product_id": product.id, "quantity": 1}],
        })
        sale_id = response.get_json()["sale"]["id"]

        response = client.post(f"/api/sales/{sale_id}/payments", headers=auth_headers, json={"amount": 10})
        assert response.status_code == 200
        assert response.get_json()["sale"]["balance_due"] == 14.0

        response = client.post(f"/api/sales/{sale_id}/payments", headers=auth_headers, json={"amount": 15})
        assert response.status_code == 400

        response = client.get(f"/api/sales/{sale_id}/payments", headers=auth_headers)
        assert len(response.get_json()["payments"]) == 1


class TestCreditsApi:
    def test_summary_and_overdue_count(self, client, auth_headers, product, customer):
        client.post("/api/sales", headers=auth_headers, json={
            "payment_method": "CREDIT",
            "client_id": customer.id,
            "due_date": "2020-01-01T00:00:00Z",
            "items": [{"product_id": product.id, "quantity": 2}],
        })

        response = client.get("/api/credits/clients?overdue_min_days=30&limit=5", headers=auth_headers)
        assert response.status_code == 200
        body = response.get_json()
        assert body["total"] == 1
        assert body["limit"] == 5
        assert body["data"][0]["total_due"] == 40.0

        response = client.get("/api/credits/overdue-count?days=30", headers=auth_headers)
        assert response.get_json() == {"count": 1, "threshold_days": 30}

        response = client.get(f"/api/credits/clients/{customer.id}", headers=auth_headers)
        assert response.get_json()["unpaid_sales"][0]["days_overdue"] > 30

    def test_bad_query_arg(self, client, auth_headers):
        response = client.get("/api/credits/clients?page=abc", headers=auth_headers)
        assert response.status_code == 400


class TestPurchasesApi:
    def test_create_and_receive(self, client, auth_headers, supplier, product):
        response = client.post("/api/purchases", headers=auth_headers, json={
            "supplier_id": supplier.id,
            "items": [{"product_id": product.id, "quantity": 5, "unit_price": 11}],
        })
        assert response.status_code == 201
        purchase = response.get_json()["purchase"]

        response = client.post(f"/api/purchases/{purchase['id']}/receive", headers=auth_headers, json={
            "items": [{"item_id": purchase["items"][0]["id"], "received_quantity": 5}],
        })
        assert response.status_code == 200
        assert response.get_json()["purchase"]["status"] == "RECEIVED"

        response = client.get(f"/api/products/{product.id}", headers=auth_headers)
        assert response.get_json()["product"]["stock_current"] == 15


class TestQuotesApi:
    def test_convert_once(self, client, auth_headers, product, customer):
        response = client.post("/api/quotes", headers=auth_headers, json={
            "client_id": customer.id,
            "items": [{"product_id": product.id, "quantity": 1}],
        })
        assert response.status_code == 201
        quote_id = response.get_json()["quote"]["id"]

        response = client.post(f"/api/quotes/{quote_id}/convert", headers=auth_headers, json={})
        assert response.status_code == 201
        assert response.get_json()["sale"]["document_number"] == "INV-000001"

        response = client.post(f"/api/quotes/{quote_id}/convert", headers=auth_headers, json={})
        assert response.status_code == 409


class TestRegistersApi:
    def test_open_close_cycle(self, client, auth_headers):
        response = client.post("/api/cash-registers/open", headers=auth_headers, json={"initial_amount": 50})
        assert response.status_code == 201
        register_id = response.get_json()["register"]["id"]

        assert client.post("/api/cash-registers/open", headers=auth_headers, json={}).status_code == 409

        response = client.get("/api/cash-registers/current", headers=auth_headers)
        assert response.get_json()["register"]["id"] == register_id

        response = client.post(
            f"/api/cash-registers/{register_id}/close",
            headers={"X-User-Id": "2"},
            json={"actual_amount": 50},
        )
        assert response.status_code == 403

        response = client.post(
            f"/api/cash-registers/{register_id}/close", headers=auth_headers, json={"actual_amount": 52}
        )
        assert response.status_code == 200
        assert response.get_json()["register"]["difference"] == 2.0


class TestCurrencyApi:
    def test_rates_and_conversion(self, client, auth_headers, app):
        from managepme.services import currency_service
        currency_service.seed_currencies()

        response = client.post("/api/currency/rates", headers=auth_headers, json={
            "code": "EUR", "rate": 3.35, "rate_date": "2020-01-01",
        })
        assert response.status_code == 201

        response = client.get("/api/currency/convert?amount=10&from=EUR&to=TND", headers=auth_headers)
        assert response.get_json() == {"amount": 33.5}

        response = client.get("/api/currency/convert?amount=10&from=XYZ&to=TND&strict=1", headers=auth_headers)
        assert response.status_code == 404

        response = client.put("/api/currency/default", headers=auth_headers, json={"code": "EUR"})
        assert response.get_json() == {"default_currency_code": "EUR"}


class TestProductsApi:
    def test_create_patch_and_lookup(self, client, auth_headers):
        response = client.post("/api/products", headers=auth_headers, json={
            "sku": "HUI-1L", "name": "Huile d'olive 1L", "sale_price": 18, "purchase_price": 13, "stock_current": 3,
        })
        assert response.status_code == 201
        product_id = response.get_json()["product"]["id"]

        response = client.patch(f"/api/products/{product_id}", headers=auth_headers, json={
            "sale_price": 19, "price_change_reason": "Nouvelle récolte",
        })
        assert response.status_code == 200

        response = client.get(f"/api/products/{product_id}/price-history", headers=auth_headers)
        assert [h["reason"] for h in response.get_json()["items"]] == ["Nouvelle récolte", "Prix initial"]

        response = client.get("/api/products/barcode/HUI-1L", headers=auth_headers)
        assert response.get_json()["product"]["id"] == product_id

        response = client.post("/api/products", headers=auth_headers, json={"sku": "HUI-1L", "name": "x", "sale_price": 1})
        assert response.status_code == 409


def test_settings_api(client, auth_headers):
    response = client.put("/api/settings/credit_overdue_days_threshold", headers=auth_headers, json={"value": "15"})
    assert response.status_code == 200

    response = client.get("/api/settings", headers=auth_headers)
    assert response.get_json()["settings"]["credit_overdue_days_threshold"] == "15"

    response = client.put("/api/settings/nope", headers=auth_headers, json={"value": "1"})
    assert response.status_code == 400


class TestCatalogueApi:
    def test_category_crud(self, client, auth_headers, product):
        response = client.post("/api/categories", headers=auth_headers, json={"name": "Boissons"})
        assert response.status_code == 201
        category_id = response.get_json()["category"]["id"]

        response = client.post("/api/categories", headers=auth_headers, json={"name": "boissons"})
        assert response.status_code == 409

        client.patch(f"/api/products/{product.id}", headers=auth_headers, json={"category_id": category_id})
        response = client.get(f"/api/categories/{category_id}", headers=auth_headers)
        assert response.get_json()["category"]["product_count"] == 1

        response = client.delete(f"/api/categories/{category_id}", headers=auth_headers)
        assert response.status_code == 409

        response = client.patch(f"/api/categories/{category_id}", headers=auth_headers, json={"name": "Cafés"})
        assert response.get_json()["category"]["name"] == "Cafés"

        response = client.get("/api/categories", headers=auth_headers)
        assert [c["name"] for c in response.get_json()["items"]] == ["Cafés"]

    def test_inventory_count_flow(self, client, auth_headers, product):
        response = client.post("/api/inventory-counts", headers=auth_headers, json={"notes": "Rayon café"})
        assert response.status_code == 201
        count_id = response.get_json()["count"]["id"]

        response = client.post(f"/api/inventory-counts/{count_id}/items", headers=auth_headers, json={
            "product_id": product.id, "counted_qty": 7,
        })
        assert response.status_code == 201
        assert response.get_json()["item"]["difference"] == -3

        response = client.post(f"/api/inventory-counts/{count_id}/validate", headers=auth_headers)
        assert response.status_code == 409

        for step in ("start", "complete", "validate"):
            response = client.post(f"/api/inventory-counts/{count_id}/{step}", headers=auth_headers)
            assert response.status_code == 200

        assert response.get_json()["count"]["status"] == "VALIDATED"
        response = client.get(f"/api/products/{product.id}", headers=auth_headers)
        assert response.get_json()["product"]["stock_current"] == 7

    def test_dashboard(self, client, auth_headers, product):
        client.post("/api/sales", headers=auth_headers, json={"items": [{"product_id": product.id, "quantity": 2}]})

        response = client.get("/api/dashboard/stats", headers=auth_headers)
        assert response.status_code == 200
        assert response.get_json()["total_revenue"] == 40.0

        response = client.get("/api/dashboard/sales-chart?group_by=month", headers=auth_headers)
        assert response.status_code == 200
        assert response.get_json()["rows"][0]["sales_count"] == 1

        response = client.get("/api/dashboard/sales-chart?group_by=year", headers=auth_headers)
        assert response.status_code == 400
