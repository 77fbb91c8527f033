"""
Restock request tests.

Verifies:
- Approval adds exactly requested_quantity to the live stock
- A request can be decided once
- Request bookkeeping and the stock change land together
"""

import pytest

from bfactory.extensions import db
from bfactory.models import Product, RestockRequest
from bfactory.services import restock_service
from bfactory.validation import NotFoundError, PermissionDeniedError, ValidationError

from conftest import make_product


class TestCreateRequest:

    def test_snapshots_current_quantity(self, client, product, outlet_headers):
        resp = client.post(
            "/api/restock/request",
            json={"productId": product.id, "requestedQuantity": 25},
            headers=outlet_headers,
        )
        assert resp.status_code == 201
        body = resp.json["request"]
        assert body["current_quantity"] == 10
        assert body["requested_quantity"] == 25
        assert body["status"] == "pending"
        assert body["reason"] == "Stock replenishment"

    @pytest.mark.parametrize(
        "payload",
        [
            {"requestedQuantity": 5},
            {"productId": 1},
            {"productId": 1, "requestedQuantity": 0},
        ],
    )
    def test_invalid_payloads(self, db_session, outlet, product, payload):
        with pytest.raises(ValidationError):
            restock_service.create_request(outlet, payload)

    def test_unknown_product(self, db_session, outlet):
        with pytest.raises(NotFoundError):
            restock_service.create_request(outlet, {"productId": 777, "requestedQuantity": 1})

    def test_cannot_restock_another_outlets_product(self, db_session, other_outlet, product):
        with pytest.raises(PermissionDeniedError):
            restock_service.create_request(other_outlet, {"productId": product.id, "requestedQuantity": 1})

    def test_customer_cannot_request(self, client, product, customer_headers):
        resp = client.post(
            "/api/restock/request",
            json={"productId": product.id, "requestedQuantity": 1},
            headers=customer_headers,
        )
        assert resp.status_code == 403


class TestProcessRequest:

    @pytest.fixture
    def pending(self, db_session, outlet, product):
        return restock_service.create_request(outlet, {"productId": product.id, "requestedQuantity": 15})

    def test_approval_adds_requested_quantity(self, client, admin, admin_headers, pending, product):
        resp = client.put(
            f"/api/restock/process/{pending.id}",
            json={"status": "approved", "adminNote": "ok"},
            headers=admin_headers,
        )
        assert resp.status_code == 200

        db.session.expire_all()
        assert db.session.get(Product, product.id).quantity == 25
        request = db.session.get(RestockRequest, pending.id)
        assert request.status == "approved"
        assert request.admin_note == "ok"
        assert request.processed_by_user_id == admin.id
        assert request.processed_at is not None

    def test_rejection_leaves_stock(self, db_session, admin, pending, product):
        restock_service.process_request(admin, pending.id, {"status": "rejected"})

        db.session.expire_all()
        assert db.session.get(Product, product.id).quantity == 10

    def test_second_decision_is_rejected_and_stock_unchanged(self, client, admin_headers, pending, product):
        first = client.put(f"/api/restock/process/{pending.id}", json={"status": "approved"}, headers=admin_headers)
        second = client.put(f"/api/restock/process/{pending.id}", json={"status": "approved"}, headers=admin_headers)

        assert first.status_code == 200
        assert second.status_code == 400
        assert second.json["message"] == "This request has already been processed"
        db.session.expire_all()
        assert db.session.get(Product, product.id).quantity == 25

    def test_invalid_status(self, db_session, admin, pending):
        with pytest.raises(ValidationError, match="Invalid status"):
            restock_service.process_request(admin, pending.id, {"status": "maybe"})

    def test_unknown_request(self, db_session, admin):
        with pytest.raises(NotFoundError):
            restock_service.process_request(admin, 404, {"status": "approved"})

    def test_outlet_cannot_process(self, client, outlet_headers, pending):
        resp = client.put(f"/api/restock/process/{pending.id}", json={"status": "approved"}, headers=outlet_headers)
        assert resp.status_code == 403


class TestListing:

    def test_outlet_sees_only_own_requests(self, client, db_session, outlet, other_outlet, product, outlet_headers):
        theirs = make_product(db_session, other_outlet, name="Koose")
        mine = restock_service.create_request(outlet, {"productId": product.id, "requestedQuantity": 2})
        restock_service.create_request(other_outlet, {"productId": theirs.id, "requestedQuantity": 3})

        resp = client.get("/api/restock/outlet-requests", headers=outlet_headers)
        assert [r["id"] for r in resp.json["requests"]] == [mine.id]

    def test_admin_sees_all(self, client, db_session, outlet, product, admin_headers):
        restock_service.create_request(outlet, {"productId": product.id, "requestedQuantity": 2})
        restock_service.create_request(outlet, {"productId": product.id, "requestedQuantity": 4})

        resp = client.get("/api/restock/all?status=pending", headers=admin_headers)
        assert resp.json["count"] == 2
        assert resp.json["requests"][0]["product"]["name"] == "Waakye"
