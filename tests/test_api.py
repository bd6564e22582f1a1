"""
HTTP surface tests. All fixtures here go through the API: the per-test
database has a single shared connection, so a test must not hold a
service session open while requests run.
"""

from datetime import date

import pytest


@pytest.fixture
def block_id(client):
    resp = client.post("/blocks", json={"name": "Paver-A", "available_qty": 100, "price_per_unit": 50})
    assert resp.status_code == 201
    return resp.json()["id"]


@pytest.fixture
def customer_id(client):
    resp = client.post("/customers", json={"name": "Ravi Constructions", "phone": "9876543210"})
    assert resp.status_code == 201
    return resp.json()["id"]


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_sale_end_to_end(client, block_id, customer_id):
    resp = client.post("/sales/", json={
        "customer_id": customer_id,
        "items": [{"block_id": block_id, "quantity": 10}],
        "amount_paid": 200,
        "payment_mode": "upi",
    })
    assert resp.status_code == 201
    invoice = resp.json()
    assert invoice["invoice_number"] == f"INV-{date.today().year}-0001"
    assert invoice["total_amount"] == 500.0
    assert invoice["balance_due"] == 300.0
    assert invoice["payment_status"] == "partial"
    assert invoice["items"][0]["block_name"] == "Paver-A"

    assert client.get(f"/blocks/{block_id}").json()["available_qty"] == 90
    customer = client.get(f"/customers/{customer_id}").json()
    assert customer["pending_dues"] == 300.0
    assert customer["total_business"] == 500.0

    assert [c["id"] for c in client.get("/customers/with-dues").json()] == [customer_id]
    assert len(client.get(f"/customers/{customer_id}/invoices").json()) == 1
    assert client.get(f"/sales/{invoice['id']}").json()["invoice_number"] == invoice["invoice_number"]

    resp = client.post(f"/customers/{customer_id}/payments", json={"amount": 300})
    assert resp.status_code == 200
    assert resp.json()["pending_dues"] == 0.0

    summary = client.get("/cashbook/summary").json()
    assert summary["total_receipts"] == 500.0


def test_sale_error_statuses(client, block_id, customer_id):
    resp = client.post("/sales/", json={"customer_id": customer_id, "items": []})
    assert resp.status_code == 400
    assert resp.json()["error"] == "ValidationError"

    resp = client.post("/sales/", json={"customer_id": customer_id, "items": [{"block_id": block_id, "quantity": 101}]})
    assert resp.status_code == 409
    body = resp.json()
    assert body["error"] == "InsufficientStockError"
    assert body["available"] == 100
    assert body["requested"] == 101

    resp = client.post("/sales/", json={"customer_id": 999, "items": [{"block_id": block_id, "quantity": 1}]})
    assert resp.status_code == 404

    assert client.get(f"/blocks/{block_id}").json()["available_qty"] == 100
    assert client.get("/sales/").json() == []


def test_overpaying_dues_is_bad_request(client, customer_id):
    resp = client.post(f"/customers/{customer_id}/payments", json={"amount": 10})
    assert resp.status_code == 400


def test_block_stock_endpoint(client, block_id):
    resp = client.post(f"/blocks/{block_id}/stock", json={"type": "out", "quantity": 30})
    assert resp.json()["available_qty"] == 70

    resp = client.post(f"/blocks/{block_id}/stock", json={"type": "out", "quantity": 71})
    assert resp.status_code == 409

    resp = client.post(f"/blocks/{block_id}/stock", json={"type": "in", "quantity": 5})
    assert resp.json()["available_qty"] == 75


def test_material_purchase(client):
    material = client.post("/materials", json={
        "name": "Cement", "category": "cement", "unit": "bags", "current_stock": 10, "min_stock_level": 20
    }).json()
    assert material["is_low_stock"] is True
    assert [m["id"] for m in client.get("/materials?low_stock=true").json()] == [material["id"]]

    resp = client.post(f"/materials/{material['id']}/purchase", json={"quantity": 40, "total_cost": 16000})
    assert resp.status_code == 200
    assert resp.json()["current_stock"] == 50.0

    entries = client.get("/cashbook/", params={"type": "payment"}).json()
    assert entries[0]["amount"] == 16000.0
    assert entries[0]["category"] == "Material"


def test_production_flow(client, block_id):
    batch = client.post("/production/batches", json={"block_id": block_id, "target_qty": 200}).json()
    assert batch["batch_number"] == "BATCH-0001"
    assert batch["progress"] == 0

    batch = client.post(f"/production/batches/{batch['id']}/production", json={"added_qty": 150}).json()
    assert batch["progress"] == 75

    resp = client.post(f"/production/batches/{batch['id']}/complete")
    assert resp.json()["status"] == "complete"
    assert client.get(f"/blocks/{block_id}").json()["available_qty"] == 250

    resp = client.post(f"/production/batches/{batch['id']}/complete")
    assert resp.status_code == 409


def test_paused_batch_resume_is_not_implemented(client, block_id):
    batch = client.post("/production/batches", json={"block_id": block_id, "target_qty": 10}).json()
    client.post(f"/production/batches/{batch['id']}/pause")

    resp = client.post(f"/production/batches/{batch['id']}/resume")
    assert resp.status_code == 409
    assert resp.json()["error"] == "TransitionNotImplementedError"


def test_transport_flow(client, block_id, customer_id):
    invoice = client.post("/sales/", json={
        "customer_id": customer_id, "items": [{"block_id": block_id, "quantity": 5}]
    }).json()
    vehicle = client.post("/transport/vehicles", json={"name": "Tata 407", "registration": "KA-01-AB-1234"}).json()
    assert vehicle["status"] == "available"

    resp = client.post(f"/transport/vehicles/{vehicle['id']}/dispatch", json={"invoice_id": invoice["id"]})
    assert resp.json()["status"] == "on_delivery"

    resp = client.post(f"/transport/deliveries/{invoice['id']}/delivered")
    assert resp.json()["delivery_status"] == "delivered"
    assert client.get("/transport/vehicles").json()[0]["status"] == "available"


def test_members_crud(client):
    member = client.post("/members", json={"name": "Suresh", "role": "driver", "salary": 15000}).json()
    assert member["joining_date"]

    resp = client.patch(f"/members/{member['id']}", json={"status": "inactive"})
    assert resp.json()["status"] == "inactive"
    assert client.get("/members", params={"status": "active"}).json() == []

    assert client.delete(f"/members/{member['id']}").status_code == 200
    assert client.get(f"/members/{member['id']}").status_code == 404


def test_customer_totals_are_read_only(client, customer_id):
    resp = client.patch(f"/customers/{customer_id}", json={"phone": "9000000000"})
    assert resp.json()["phone"] == "9000000000"
    assert resp.json()["pending_dues"] == 0.0


def test_dashboard_and_export(client, block_id, customer_id):
    client.post("/sales/", json={
        "customer_id": customer_id, "items": [{"block_id": block_id, "quantity": 2}], "amount_paid": 100
    })
    client.post("/cashbook/", json={"type": "payment", "category": "Diesel", "amount": 40})

    stats = client.get("/reports/dashboard").json()
    assert stats["today_revenue"] == 100.0
    assert stats["today_expenses"] == 40.0
    assert stats["in_hand_amount"] == 60.0
    assert stats["total_stock"] == 98

    resp = client.get("/reports/cashbook.xlsx")
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith(
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    )
    assert resp.content[:2] == b"PK"
