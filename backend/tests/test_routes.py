"""
HTTP surface: status codes for each domain error and the JSON shapes clients read.
"""

from decimal import Decimal

import pytest


def _create_shirt(client, store, **overrides):
    body = {
        "store_id": store.id,
        "kind": "SIMPLE",
        "sku": "tee-1",
        "name": "Printed Tee",
        "buying_price": 150,
        "selling_price": 250,
        "stock_level": 4,
    }
    body.update(overrides)
    return client.post("/api/products", json=body)


class TestHealth:
    def test_health(self, client, db_session):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["status"] == "healthy"
        assert data["checks"]["database"]["status"] == "healthy"


class TestProductRoutes:
    def test_create_and_fetch(self, client, store):
        resp = _create_shirt(client, store)
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["product"]["sku"] == "TEE-1"
        assert Decimal(body["product"]["stock_level"]) == Decimal("4")
        assert body["lock"] == {"product_id": body["product"]["id"], "locked": False, "sales_count": 0}

        resp = client.get(f"/api/products/{body['product']['id']}")
        assert resp.status_code == 200
        assert resp.get_json()["product"]["name"] == "Printed Tee"

    def test_create_combo(self, client, store):
        resp = client.post("/api/products", json={
            "store_id": store.id,
            "kind": "COMBO_SET",
            "sku": "suit-x",
            "name": "Lawn Suit",
            "selling_price": 4000,
            "components": [
                {"name": "Kurta", "meters": 3, "stock_level": 5},
                {"name": "Trouser", "meters": 2, "stock_level": 7},
            ],
        })
        assert resp.status_code == 201
        product = resp.get_json()["product"]
        assert Decimal(product["stock_level"]) == Decimal("5")
        assert Decimal(product["total_combo_meters"]) == Decimal("5")
        assert [c["name"] for c in product["components"]] == ["Kurta", "Trouser"]

    def test_missing_fields(self, client, store):
        resp = client.post("/api/products", json={"store_id": store.id, "sku": "x"})
        assert resp.status_code == 400
        assert "Missing required fields" in resp.get_json()["error"]

    def test_unknown_field(self, client, store):
        resp = _create_shirt(client, store, calculated_units=3)
        assert resp.status_code == 400

    def test_price_with_too_many_places(self, client, store):
        resp = _create_shirt(client, store, buying_price="150.12345")
        assert resp.status_code == 400
        assert "decimal places" in resp.get_json()["error"]

    def test_duplicate_sku_conflict(self, client, store):
        assert _create_shirt(client, store).status_code == 201
        resp = _create_shirt(client, store, sku="TEE-1 ")
        assert resp.status_code == 409

    def test_not_found(self, client, store):
        assert client.get("/api/products/999").status_code == 404
        assert client.patch("/api/products/999", json={"name": "X"}).status_code == 404

    def test_wrong_store_is_not_found(self, client, store, other_store):
        product_id = _create_shirt(client, store).get_json()["product"]["id"]
        resp = client.get(f"/api/products/{product_id}?store_id={other_store.id}")
        assert resp.status_code == 404

    def test_list_requires_store(self, client, store):
        assert client.get("/api/products").status_code == 400
        _create_shirt(client, store)
        resp = client.get(f"/api/products?store_id={store.id}&search=tee")
        assert resp.get_json()["count"] == 1

    def test_lookup_and_barcode_check(self, client, store):
        _create_shirt(client, store, barcode="4006381333931")
        resp = client.get(f"/api/products/lookup?store_id={store.id}&sku=tee-1")
        assert resp.status_code == 200
        assert resp.get_json()["product"]["barcode"] == "4006381333931"

        resp = client.get(f"/api/products/barcode-check?store_id={store.id}&barcode=4006381333931")
        assert resp.get_json() == {"exists": True}
        assert client.get(f"/api/products/lookup?store_id={store.id}").status_code == 400

    def test_delete_is_soft(self, client, store):
        product_id = _create_shirt(client, store).get_json()["product"]["id"]
        resp = client.delete(f"/api/products/{product_id}")
        assert resp.status_code == 200
        assert resp.get_json()["product"]["is_active"] is False
        assert client.get(f"/api/products/{product_id}").status_code == 200


class TestStockRoutes:
    def test_restock_then_history(self, client, store, supplier):
        product_id = _create_shirt(client, store).get_json()["product"]["id"]
        resp = client.post(f"/api/products/{product_id}/restock", json={
            "quantity": 6,
            "buying_price": 140,
            "supplier_id": supplier.id,
            "invoice_number": "GT-778",
            "purchase_date": "2026-09-30T10:00:00Z",
        })
        assert resp.status_code == 201
        body = resp.get_json()
        assert Decimal(body["entry"]["total_cost"]) == Decimal("840")
        assert body["entry"]["supplier_name"] == "Gul Textiles"
        assert Decimal(body["summary"]["stock_level"]) == Decimal("10")

        resp = client.get(f"/api/products/{product_id}/history?limit=1")
        data = resp.get_json()
        assert data["count"] == 1
        assert data["items"][0]["invoice_number"] == "GT-778"

    def test_restock_validation(self, client, store):
        product_id = _create_shirt(client, store).get_json()["product"]["id"]
        resp = client.post(f"/api/products/{product_id}/restock", json={"quantity": 0, "buying_price": 10})
        assert resp.status_code == 400
        resp = client.post(f"/api/products/{product_id}/restock", json={"quantity": 1})
        assert resp.status_code == 400

    def test_adjust_below_zero_conflicts(self, client, store):
        product_id = _create_shirt(client, store).get_json()["product"]["id"]
        resp = client.post(f"/api/products/{product_id}/adjust", json={"quantity": -5})
        assert resp.status_code == 409

    def test_initial_stock_view(self, client, store):
        product_id = _create_shirt(client, store).get_json()["product"]["id"]
        data = client.get(f"/api/products/{product_id}/initial-stock").get_json()
        assert len(data["items"]) == 1
        assert Decimal(data["total_cost"]) == Decimal("600")
        assert data["lock"]["locked"] is False


class TestSaleAndRefundRoutes:
    @pytest.fixture
    def sold(self, client, store, customer):
        product_id = _create_shirt(client, store).get_json()["product"]["id"]
        resp = client.post("/api/sales", json={
            "store_id": store.id,
            "items": [{"product_id": product_id, "quantity": 4}],
            "paid_amount": 400,
            "customer_id": customer.id,
        })
        assert resp.status_code == 201
        return product_id, resp.get_json()["sale"]

    def test_sale_shape(self, client, sold):
        _, sale = sold
        assert Decimal(sale["total_amount"]) == Decimal("1000")
        assert sale["payment_status"] == "PARTIAL"
        assert Decimal(sale["outstanding_amount"]) == Decimal("600")

        data = client.get(f"/api/sales/{sale['id']}").get_json()["sale"]
        assert data["refund_state"] == "NONE"

    def test_locked_price_edit_is_400(self, client, sold):
        product_id, _ = sold
        resp = client.patch(f"/api/products/{product_id}", json={"selling_price": 300})
        assert resp.status_code == 400
        assert "locked" in resp.get_json()["error"]
        assert client.get(f"/api/products/{product_id}/lock").get_json()["locked"] is True

    def test_insufficient_stock_is_409(self, client, store, sold):
        product_id, _ = sold
        resp = client.post("/api/sales", json={
            "store_id": store.id,
            "items": [{"product_id": product_id, "quantity": 1}],
            "paid_amount": 250,
        })
        assert resp.status_code == 409

    def test_refund_over_ceiling_is_422(self, client, sold):
        product_id, sale = sold
        resp = client.post(f"/api/sales/{sale['id']}/refunds", json={
            "items": [{"product_id": product_id, "quantity": 2}],
            "method": "CASH",
        })
        assert resp.status_code == 422
        body = resp.get_json()
        assert Decimal(body["refundable"]) == Decimal("400")
        assert Decimal(body["refund_total"]) == Decimal("500")

    def test_refund_flow(self, client, sold):
        product_id, sale = sold
        items = [{"product_id": product_id, "quantity": 1}]

        preview = client.post(f"/api/sales/{sale['id']}/refund-preview", json={"items": items}).get_json()
        assert Decimal(preview["debt_reduction"]) == Decimal("250")
        assert Decimal(preview["cash_payout"]) == Decimal("0")

        resp = client.post(f"/api/sales/{sale['id']}/refunds", json={"items": items, "method": "CASH"})
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["sale"]["refund_state"] == "PARTIAL"
        assert Decimal(body["refund"]["debt_reduction"]) == Decimal("250")
        assert len(body["sale"]["refund_history"]) == 1

        summary = client.get(f"/api/sales/{sale['id']}/refundable").get_json()
        assert Decimal(summary["items"][0]["available"]) == Decimal("3")

    def test_refund_errors(self, client, sold):
        product_id, sale = sold
        resp = client.post(f"/api/sales/{sale['id']}/refunds", json={"items": [], "method": "CASH"})
        assert resp.status_code == 400
        resp = client.post(f"/api/sales/{sale['id']}/refunds", json={
            "items": [{"product_id": product_id, "quantity": 5}],
            "method": "CASH",
        })
        assert resp.status_code == 400
        resp = client.post("/api/sales/9999/refunds", json={
            "items": [{"product_id": product_id, "quantity": 1}],
            "method": "CASH",
        })
        assert resp.status_code == 404

    def test_payment_route(self, client, sold):
        _, sale = sold
        resp = client.post(f"/api/sales/{sale['id']}/payments", json={"amount": 600, "method": "CASH"})
        assert resp.status_code == 201
        assert resp.get_json()["sale"]["payment_status"] == "PAID"


class TestLedgerRoute:
    def test_events_for_one_entry(self, client, store):
        product_id = _create_shirt(client, store).get_json()["product"]["id"]
        entry = client.post(f"/api/products/{product_id}/restock", json={"quantity": 2, "buying_price": 150})
        entry_id = entry.get_json()["entry"]["id"]

        resp = client.get(f"/api/ledger?store_id={store.id}&entity_type=stock_entry&entity_id={entry_id}")
        assert resp.status_code == 200
        items = resp.get_json()["items"]
        assert [e["event_type"] for e in items] == ["stock.restock"]
        assert Decimal(items[0]["amount"]) == Decimal("300")

    def test_category_filter_and_store_required(self, client, store):
        _create_shirt(client, store)
        assert client.get("/api/ledger").status_code == 400
        items = client.get(f"/api/ledger?store_id={store.id}&category=product").get_json()["items"]
        assert [e["event_type"] for e in items] == ["product.created"]
