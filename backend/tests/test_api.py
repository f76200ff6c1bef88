"""
HTTP API tests.

Verifies:
- Unauthenticated requests return 401
- Roles without the action get 403
- Domain errors map to {"error", "kind", "details"} with the right status
- End-to-end purchase -> stock -> sale -> invoice flow over HTTP
"""

import pytest

from tradesphere import set_identity_provider
from tradesphere.permissions import allowed


# =============================================================================
# UNAUTHENTICATED ACCESS (401)
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without identity headers."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/me"),
            ("GET", "/api/products"),
            ("POST", "/api/products"),
            ("GET", "/api/suppliers"),
            ("GET", "/api/customers"),
            ("GET", "/api/warehouses"),
            ("POST", "/api/locations"),
            ("GET", "/api/stock"),
            ("POST", "/api/stock/in"),
            ("POST", "/api/stock/transfer"),
            ("GET", "/api/purchase-orders"),
            ("POST", "/api/purchase-orders/1/receive"),
            ("POST", "/api/sales-orders/1/ship"),
            ("GET", "/api/invoices"),
            ("POST", "/api/invoices/1/payments"),
            ("POST", "/api/payments/1/void"),
            ("GET", "/api/audit-events"),
            ("GET", "/api/ledger/reconcile"),
            ("GET", "/api/batches"),
            ("POST", "/api/serial-numbers"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"
        assert resp.get_json()["kind"] == "unauthenticated"

    def test_no_provider_means_no_user(self, app, client, admin_headers):
        installed = app.extensions["tradesphere.identity_provider"]
        set_identity_provider(app, None)
        try:
            resp = client.get("/api/me", headers=admin_headers)
            assert resp.status_code == 401
        finally:
            set_identity_provider(app, installed)


# =============================================================================
# ROLE CHECKS (403)
# =============================================================================


class TestPermissions:

    @pytest.mark.parametrize(
        "method,path",
        [
            ("POST", "/api/products"),
            ("POST", "/api/stock/in"),
            ("POST", "/api/purchase-orders"),
            ("POST", "/api/invoices"),
            ("POST", "/api/invoices/1/payments"),
            ("POST", "/api/warehouses"),
            ("POST", "/api/batches"),
            ("POST", "/api/serial-numbers/1/sell"),
        ],
    )
    def test_viewer_cannot_mutate(self, client, db_session, viewer_headers, method, path):
        resp = getattr(client, method.lower())(path, json={}, headers=viewer_headers)
        assert resp.status_code == 403
        body = resp.get_json()
        assert body["kind"] == "permission_denied"
        assert body["required_permission"]

    def test_operator_moves_stock_but_cannot_invoice(self, client, operator_headers, make_product, default_loc):
        product = make_product()
        resp = client.post("/api/stock/in", json={
            "product_id": product.id, "location_id": default_loc.id, "quantity": 3,
        }, headers=operator_headers)
        assert resp.status_code == 201

        resp = client.post("/api/invoices", json={}, headers=operator_headers)
        assert resp.status_code == 403

    def test_only_admin_manages_settings(self, client, db_session, admin_headers, manager_headers):
        assert client.get("/api/audit-events", headers=manager_headers).status_code == 403
        assert client.get("/api/audit-events", headers=admin_headers).status_code == 200

    def test_unknown_role_denied(self, client, db_session):
        headers = {"X-User-Id": "9", "X-User-Role": "INTERN"}
        assert client.get("/api/products", headers=headers).status_code == 403

    def test_me_lists_allowed_actions(self, client, db_session, viewer_headers):
        resp = client.get("/api/me", headers=viewer_headers)
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["user"] == {"id": 4, "role": "VIEWER"}
        assert "VIEW_PRODUCT" in body["allowed_actions"]
        assert "STOCK_IN" not in body["allowed_actions"]

    def test_custom_permission_oracle(self, app, client, db_session, viewer_headers, app_config):
        app_config(PERMISSION_ORACLE=lambda role, action: role == "VIEWER")
        resp = client.post("/api/warehouses", json={"code": "X", "name": "X"}, headers=viewer_headers)
        assert resp.status_code == 201

        with app.test_request_context():
            assert allowed("ADMIN", "VIEW_PRODUCT") is False


# =============================================================================
# ERROR MAPPING
# =============================================================================


class TestErrorMapping:

    def test_validation_error_shape(self, client, db_session, admin_headers):
        resp = client.post("/api/products", json={"name": "No SKU"}, headers=admin_headers)
        assert resp.status_code == 400
        body = resp.get_json()
        assert body["kind"] == "validation_error"
        assert body["details"]["field"] == "sku"
        assert "sku" in body["error"]

    def test_not_found(self, client, db_session, admin_headers):
        resp = client.get("/api/products/9999", headers=admin_headers)
        assert resp.status_code == 404
        assert resp.get_json()["kind"] == "not_found"

    def test_invalid_transition_is_conflict(self, client, admin_headers, supplier):
        order = client.post("/api/purchase-orders", json={"supplier_id": supplier.id}, headers=admin_headers)
        order_id = order.get_json()["id"]

        resp = client.post(f"/api/purchase-orders/{order_id}/status", json={"status": "RECEIVED"},
                           headers=admin_headers)
        assert resp.status_code == 409
        assert resp.get_json()["kind"] == "invalid_transition"

    def test_insufficient_stock_is_conflict(self, client, admin_headers, make_product, default_loc):
        product = make_product(opening_stock=2, opening_location_id=default_loc.id)
        resp = client.post("/api/stock/out", json={
            "product_id": product.id, "location_id": default_loc.id, "quantity": 5,
        }, headers=admin_headers)

        assert resp.status_code == 409
        body = resp.get_json()
        assert body["kind"] == "insufficient_stock"
        assert body["details"]["available"] == 2
        assert body["details"]["required"] == 5

    def test_unexpected_failure_is_logged_500(self, client, db_session, admin_headers, monkeypatch, caplog):
        from tradesphere.services import stock_ledger_service

        def _broken(**kwargs):
            raise RuntimeError("database went away")

        monkeypatch.setattr(stock_ledger_service, "list_movements", _broken)
        resp = client.get("/api/stock/movements", headers=admin_headers)

        assert resp.status_code == 500
        assert resp.get_json() == {"error": "Internal server error", "kind": "internal_error", "details": {}}
        assert "Failed to list movements" in caplog.text

    def test_current_stock_not_writable(self, client, admin_headers, make_product):
        product = make_product()
        resp = client.patch(f"/api/products/{product.id}", json={"current_stock": 50}, headers=admin_headers)
        assert resp.status_code == 400

    def test_reconcile_reports_drift(self, client, admin_headers, make_product, default_loc):
        from tradesphere.extensions import db
        from tradesphere.models import Product

        product = make_product(opening_stock=3, opening_location_id=default_loc.id)
        assert client.get("/api/ledger/reconcile", headers=admin_headers).get_json()["status"] == "consistent"

        db.session.query(Product).filter_by(id=product.id).update({"current_stock": 4})
        db.session.commit()

        resp = client.get("/api/ledger/reconcile", headers=admin_headers)
        assert resp.status_code == 500
        body = resp.get_json()
        assert body["kind"] == "consistency_fault"
        assert body["details"]["drift"][0]["product_id"] == product.id


# =============================================================================
# HAPPY PATHS
# =============================================================================


class TestEndToEnd:

    def test_warehouse_and_location_endpoints(self, client, db_session, admin_headers):
        wh = client.post("/api/warehouses", json={"code": "west", "name": "West"}, headers=admin_headers)
        assert wh.status_code == 201
        wh_id = wh.get_json()["id"]

        zone = client.post("/api/locations", json={
            "warehouse_id": wh_id, "code": "Z1", "name": "Zone 1", "type": "ZONE",
        }, headers=admin_headers)
        assert zone.status_code == 201

        rack = client.post("/api/locations", json={
            "warehouse_id": wh_id, "code": "Z1-R1", "name": "Rack", "type": "RACK",
            "parent_id": zone.get_json()["id"],
        }, headers=admin_headers)
        assert rack.status_code == 201

        resp = client.get(f"/api/warehouses/{wh_id}/default-location", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json()["code"] == "Z1"

    def test_purchase_receive_sell_invoice(self, client, admin_headers, warehouse, default_loc, supplier, customer):
        created = client.post("/api/products", json={
            "sku": "wid-1", "name": "Widget", "price_cents": 2000, "cost_cents": 500,
        }, headers=admin_headers)
        assert created.status_code == 201
        product = created.get_json()
        assert product["sku"] == "WID-1"
        assert product["current_stock"] == 0

        # Purchase 10 and receive
        po = client.post("/api/purchase-orders", json={"supplier_id": supplier.id}, headers=admin_headers).get_json()
        resp = client.post(f"/api/purchase-orders/{po['id']}/items", json={
            "product_id": product["id"], "quantity": 10,
        }, headers=admin_headers)
        assert resp.get_json()["total_cents"] == 5000
        for status in ("SENT", "CONFIRMED"):
            resp = client.post(f"/api/purchase-orders/{po['id']}/status", json={"status": status},
                               headers=admin_headers)
            assert resp.status_code == 200
        resp = client.post(f"/api/purchase-orders/{po['id']}/receive", json={"warehouse_id": warehouse.id},
                           headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "RECEIVED"

        detail = client.get(f"/api/products/{product['id']}", headers=admin_headers).get_json()
        assert detail["current_stock"] == 10
        assert [(i["location_id"], i["quantity"]) for i in detail["stock_by_location"]] == [
            (default_loc.id, 10)
        ]

        # Sell 4 and ship
        so = client.post("/api/sales-orders", json={"customer_id": customer.id}, headers=admin_headers).get_json()
        assert so["shipping_address"] == "1 Main St"
        client.post(f"/api/sales-orders/{so['id']}/items", json={"product_id": product["id"], "quantity": 4},
                    headers=admin_headers)
        for status in ("PENDING", "CONFIRMED"):
            client.post(f"/api/sales-orders/{so['id']}/status", json={"status": status}, headers=admin_headers)
        resp = client.post(f"/api/sales-orders/{so['id']}/ship", json={"warehouse_id": warehouse.id},
                           headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "SHIPPED"

        movements = client.get(f"/api/stock/movements?product_id={product['id']}", headers=admin_headers)
        assert [m["type"] for m in movements.get_json()["items"]] == ["OUT", "IN"]

        # Invoice and pay in two parts
        inv = client.post("/api/invoices", json={
            "type": "SALES", "customer_id": customer.id, "due_date": "2999-12-31",
        }, headers=admin_headers)
        assert inv.status_code == 201
        inv_id = inv.get_json()["id"]
        client.post(f"/api/invoices/{inv_id}/items", json={"product_id": product["id"], "quantity": 4},
                    headers=admin_headers)
        sent = client.post(f"/api/invoices/{inv_id}/status", json={"status": "SENT"}, headers=admin_headers)
        assert sent.get_json()["total_cents"] == 8000

        resp = client.post(f"/api/invoices/{inv_id}/payments", json={"amount_cents": 3000}, headers=admin_headers)
        assert resp.status_code == 201
        assert resp.get_json()["invoice"]["status"] == "PARTIAL"
        assert resp.get_json()["invoice"]["amount_due_cents"] == 5000
        payment_id = resp.get_json()["payment"]["id"]

        resp = client.post(f"/api/payments/{payment_id}/void", json={"reason": "Bounced"}, headers=admin_headers)
        assert resp.status_code == 200
        assert client.get(f"/api/invoices/{inv_id}", headers=admin_headers).get_json()["status"] == "SENT"

        resp = client.post(f"/api/invoices/{inv_id}/payments", json={"amount_cents": 8000, "method": "CASH"},
                           headers=admin_headers)
        assert resp.get_json()["invoice"]["status"] == "PAID"

        summary = client.get("/api/invoices/summary", headers=admin_headers).get_json()
        assert summary["by_status"]["PAID"] == 1
        assert summary["total_receivable_cents"] == 0

        assert client.get("/api/ledger/reconcile", headers=admin_headers).get_json()["status"] == "consistent"

    def test_transfer_endpoint(self, client, operator_headers, make_product, default_loc, second_loc):
        product = make_product(opening_stock=5, opening_location_id=default_loc.id)
        resp = client.post("/api/stock/transfer", json={
            "product_id": product.id,
            "from_location_id": default_loc.id,
            "to_location_id": second_loc.id,
            "quantity": 5,
        }, headers=operator_headers)
        assert resp.status_code == 201
        assert resp.get_json()["type"] == "TRANSFER"

        levels = client.get(f"/api/stock?product_id={product.id}", headers=operator_headers).get_json()
        assert [(i["location_id"], i["quantity"]) for i in levels["items"]] == [(second_loc.id, 5)]

    def test_batch_endpoints(self, client, operator_headers, viewer_headers, make_product, customer):
        product = make_product()
        resp = client.post("/api/batches", json={
            "product_id": product.id,
            "batch_number": "lot-9",
            "initial_qty": 4,
            "expiry_date": "2026-03-05",
        }, headers=operator_headers)
        assert resp.status_code == 201
        batch_id = resp.get_json()["id"]

        resp = client.post(f"/api/batches/{batch_id}/adjust", json={"adjustment": -6}, headers=operator_headers)
        assert resp.status_code == 409
        assert resp.get_json()["kind"] == "insufficient_stock"

        resp = client.post(f"/api/batches/{batch_id}/adjust", json={"adjustment": -1}, headers=operator_headers)
        assert resp.status_code == 201
        assert resp.get_json()["batch"]["current_qty"] == 3

        detail = client.get(f"/api/batches/{batch_id}", headers=viewer_headers).get_json()
        assert [m["signed_quantity"] for m in detail["movements"]] == [4, -1]

        report = client.get("/api/batches/expiring?days=10&as_of=2026-03-01", headers=viewer_headers).get_json()
        assert [(r["batch_number"], r["urgency"]) for r in report["items"]] == [("LOT-9", "CRITICAL")]

        resp = client.post("/api/serial-numbers", json={
            "product_id": product.id, "serial_number": "SN-9", "batch_id": batch_id,
        }, headers=operator_headers)
        assert resp.status_code == 201
        serial_id = resp.get_json()["id"]

        sell = {"customer_id": customer.id}
        resp = client.post(f"/api/serial-numbers/{serial_id}/sell", json=sell, headers=operator_headers)
        assert resp.get_json()["status"] == "SOLD"
        resp = client.post(f"/api/serial-numbers/{serial_id}/sell", json=sell, headers=operator_headers)
        assert resp.status_code == 409

        assert client.delete(f"/api/batches/{batch_id}", headers=operator_headers).status_code == 400


class TestPublicEndpoints:

    def test_health(self, client, db_session):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.get_json()["checks"]["database"]["status"] == "healthy"


# =============================================================================
# CLI
# =============================================================================


class TestCli:

    def test_reconcile_clean(self, app, make_product, default_loc):
        make_product(opening_stock=1, opening_location_id=default_loc.id)
        result = app.test_cli_runner().invoke(args=["ledger", "reconcile"])
        assert result.exit_code == 0
        assert "consistent" in result.output

    def test_reconcile_drift_exits_nonzero(self, app, make_product, default_loc):
        from tradesphere.extensions import db
        from tradesphere.models import StockItem

        product = make_product(opening_stock=2, opening_location_id=default_loc.id)
        db.session.query(StockItem).filter_by(product_id=product.id).update({"quantity": 1})
        db.session.commit()

        result = app.test_cli_runner().invoke(args=["ledger", "reconcile", "--product-id", str(product.id)])
        assert result.exit_code == 1
        assert "FAIL" in result.output

    def test_low_stock(self, app, make_product):
        make_product(sku="LOW-1", reorder_point=5)
        result = app.test_cli_runner().invoke(args=["catalog", "low-stock"])
        assert result.exit_code == 0
        assert "LOW-1" in result.output

    def test_mark_overdue_rejects_bad_date(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["invoices", "mark-overdue", "--as-of", "yesterday"])
        assert result.exit_code != 0

    def test_expiring_batches(self, app, make_product):
        from tradesphere.services import batch_service

        product = make_product(sku="YOGURT")
        batch_service.create_batch(product_id=product.id, batch_number="Y-1", initial_qty=2, expiry_date="2026-03-04")

        result = app.test_cli_runner().invoke(args=["batches", "expiring", "--as-of", "2026-03-01"])
        assert result.exit_code == 0
        assert "Y-1" in result.output
        assert "CRITICAL" in result.output

        result = app.test_cli_runner().invoke(args=["batches", "expiring", "--days", "0"])
        assert result.exit_code != 0
