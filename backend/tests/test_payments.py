"""
Payment tests.

Paystack and MTN MoMo are stubbed with httpx.MockTransport (see the
`gateway` fixture); nothing leaves the process.
"""

import hashlib
import hmac
import json

import httpx
import pytest

from bfactory.extensions import db
from bfactory.models import Notification, Order, Payment, Product
from bfactory.services import order_service, payment_service
from bfactory.validation import ConflictError, NotFoundError


def _paystack_body(status="success"):
    return {"status": True, "message": "Verification successful", "data": {"status": status, "amount": 150000}}


@pytest.fixture
def order(db_session, customer, product):
    return order_service.create_order(
        {
            "items": [{"productId": product.id, "quantity": 1}],
            "address": "12 Oxford Street",
            "city": "Accra",
            "phoneNumber": "+233201234567",
            "paymentMethod": "paystack",
            "totalPrice": 1500,
            "paymentReference": "MOMO-TX-1",
        },
        user=customer,
    )


def _save_payload(order, outlet, reference="PSK-REF-1"):
    return {
        "reference": reference,
        "amount": 1500,
        "currency": "GHS",
        "orderId": order.id,
        "outletId": outlet.id,
        "email": "ama@example.com",
    }


# =============================================================================
# PAYSTACK
# =============================================================================


class TestPaystack:

    def test_successful_verification_records_paid_payment(self, client, gateway, order, outlet, customer_headers):
        gateway.add("GET", "/transaction/verify/PSK-REF-1", httpx.Response(200, json=_paystack_body()))

        resp = client.post("/api/route/paystack/save", json=_save_payload(order, outlet), headers=customer_headers)

        assert resp.status_code == 201
        assert resp.json["payment"]["status"] == "paid"
        assert resp.json["payment"]["method"] == "paystack"
        assert gateway.requests[0].headers["Authorization"] == "Bearer sk_test_secret"

        db.session.expire_all()
        refreshed = db.session.get(Order, order.id)
        assert refreshed.payment_status == "paid"
        assert refreshed.payment_reference == "PSK-REF-1"
        assert refreshed.status == "pending"

        events = db.session.query(Notification).filter_by(event="order.payment_updated").all()
        assert {n.room for n in events} == {f"user:{order.user_id}", f"outlet:{outlet.id}"}

    def test_failed_verification_is_400_and_writes_nothing(self, client, gateway, order, outlet):
        gateway.add("GET", "/transaction/verify/", httpx.Response(200, json=_paystack_body("failed")))

        resp = client.post("/api/route/paystack/save", json=_save_payload(order, outlet))

        assert resp.status_code == 400
        assert resp.json["message"] == "Transaction not successful"
        db.session.expire_all()
        assert db.session.query(Payment).count() == 0
        assert db.session.get(Order, order.id).payment_status == "unpaid"

    def test_gateway_http_error_is_502(self, client, gateway, order, outlet):
        gateway.add("GET", "/transaction/verify/", httpx.Response(500, json={"message": "boom"}))

        resp = client.post("/api/route/paystack/save", json=_save_payload(order, outlet))
        assert resp.status_code == 502
        assert db.session.query(Payment).count() == 0

    def test_gateway_unreachable_is_502(self, client, gateway, order, outlet):
        gateway.add("GET", "/transaction/verify/", httpx.ConnectError("connection refused"))

        resp = client.post("/api/route/paystack/save", json=_save_payload(order, outlet))
        assert resp.status_code == 502

    @pytest.mark.parametrize("missing", ["reference", "amount", "orderId", "outletId", "email"])
    def test_missing_field_is_400(self, client, gateway, order, outlet, missing):
        payload = _save_payload(order, outlet)
        payload.pop(missing)

        resp = client.post("/api/route/paystack/save", json=payload)
        assert resp.status_code == 400
        assert gateway.requests == []

    def test_duplicate_reference_is_409(self, client, gateway, order, outlet):
        gateway.add("GET", "/transaction/verify/", httpx.Response(200, json=_paystack_body()))

        first = client.post("/api/route/paystack/save", json=_save_payload(order, outlet))
        second = client.post("/api/route/paystack/save", json=_save_payload(order, outlet))

        assert first.status_code == 201
        assert second.status_code == 409
        assert db.session.query(Payment).count() == 1

    def test_outlet_payment_listing(self, client, gateway, order, outlet, outlet_headers):
        gateway.add("GET", "/transaction/verify/", httpx.Response(200, json=_paystack_body()))
        client.post("/api/route/paystack/save", json=_save_payload(order, outlet, "PSK-A"))

        resp = client.get(f"/api/route/paystack/outlet/{outlet.id}", headers=outlet_headers)
        assert resp.status_code == 200
        assert [p["reference"] for p in resp.json["payments"]] == ["PSK-A"]


# =============================================================================
# RECORD PAYMENT
# =============================================================================


class TestRecordPayment:

    def test_records_without_gateway(self, db_session, order):
        payment = payment_service.record_payment({
            "reference": "CASH-1",
            "orderId": order.id,
            "amount": 1500,
            "paymentMethod": "cash",
        })
        assert payment.status == "pending"
        assert payment.currency == "GHS"

    def test_duplicate_reference(self, db_session, order):
        data = {"reference": "CASH-2", "orderId": order.id, "amount": 100, "paymentMethod": "cash"}
        payment_service.record_payment(data)
        with pytest.raises(ConflictError):
            payment_service.record_payment(data)


# =============================================================================
# MTN MOBILE MONEY
# =============================================================================


class TestMomo:

    def test_successful_status_marks_order_paid(self, db_session, order):
        payment_service.apply_momo_status("MOMO-TX-1", "SUCCESSFUL")

        db.session.expire_all()
        assert db.session.get(Order, order.id).payment_status == "paid"
        payment = db.session.query(Payment).filter_by(reference="MOMO-TX-1").one()
        assert payment.status == "paid"
        assert payment.method == "momo"
        assert payment.amount_cents == 1500

    def test_success_twice_records_one_payment(self, db_session, order):
        payment_service.apply_momo_status("MOMO-TX-1", "SUCCESSFUL")
        payment_service.apply_momo_status("MOMO-TX-1", "SUCCESSFUL")
        assert db.session.query(Payment).count() == 1

    @pytest.mark.parametrize("status", ["FAILED", "REJECTED", "TIMEOUT"])
    def test_failure_states_mark_order_failed(self, db_session, order, status):
        payment_service.apply_momo_status("MOMO-TX-1", status)

        db.session.expire_all()
        assert db.session.get(Order, order.id).payment_status == "failed"
        assert db.session.query(Payment).one().status == "failed"

    def test_pending_changes_nothing(self, db_session, order):
        payment_service.apply_momo_status("MOMO-TX-1", "PENDING")

        db.session.expire_all()
        assert db.session.get(Order, order.id).payment_status == "unpaid"
        assert db.session.query(Payment).count() == 0
        assert db.session.query(Notification).count() == 0

    def test_unknown_transaction(self, db_session, order):
        with pytest.raises(NotFoundError):
            payment_service.apply_momo_status("NOPE", "SUCCESSFUL")

    def test_webhook_without_credentials_uses_body_status(self, client, gateway, order):
        resp = client.post("/api/route/mtn-momo/verify/MOMO-TX-1", json={"status": "SUCCESSFUL"})

        assert resp.status_code == 200
        assert gateway.requests == []
        db.session.expire_all()
        assert db.session.get(Order, order.id).payment_status == "paid"

    def test_webhook_defaults_to_failed(self, client, gateway, order):
        client.post("/api/route/mtn-momo/verify/MOMO-TX-1", json={})

        db.session.expire_all()
        assert db.session.get(Order, order.id).payment_status == "failed"

    def test_webhook_prefers_mtn_status(self, app, client, gateway, order):
        app.config["MTN_CONSUMER_KEY"] = "key"
        app.config["MTN_CONSUMER_SECRET"] = "secret"
        gateway.add(
            "GET",
            "/collection/v1_0/requesttopay/MOMO-TX-1",
            httpx.Response(200, json={"status": "SUCCESSFUL"}),
        )

        resp = client.post("/api/route/mtn-momo/verify/MOMO-TX-1", json={"status": "FAILED"})

        assert resp.status_code == 200
        assert gateway.requests[0].headers["Ocp-Apim-Subscription-Key"] == "key"
        assert gateway.requests[0].headers["X-Target-Environment"] == "sandbox"
        db.session.expire_all()
        assert db.session.get(Order, order.id).payment_status == "paid"

    def test_webhook_falls_back_when_mtn_errors(self, app, client, gateway, order):
        app.config["MTN_CONSUMER_KEY"] = "key"
        app.config["MTN_CONSUMER_SECRET"] = "secret"
        gateway.add("GET", "/collection/", httpx.Response(500))

        client.post("/api/route/mtn-momo/verify/MOMO-TX-1", json={"status": "REJECTED"})

        db.session.expire_all()
        assert db.session.get(Order, order.id).payment_status == "failed"

    def test_webhook_for_unknown_transaction_still_acknowledged(self, client, gateway, db_session):
        resp = client.post("/api/route/mtn-momo/verify/UNKNOWN", json={"status": "SUCCESSFUL"})
        assert resp.status_code == 200

    def test_admin_route_applies_status(self, client, order, admin_headers):
        resp = client.put(
            "/api/route/verifyMomoPayment/MOMO-TX-1",
            json={"status": "SUCCESSFUL"},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.json["order"]["payment_status"] == "paid"


class TestMomoOrdering:
    """Callbacks for one transaction can arrive in any order."""

    def test_failure_after_success_keeps_order_paid(self, db_session, order):
        payment_service.apply_momo_status("MOMO-TX-1", "SUCCESSFUL")
        payment_service.apply_momo_status("MOMO-TX-1", "FAILED")

        db.session.expire_all()
        assert db.session.get(Order, order.id).payment_status == "paid"
        assert [p.status for p in db.session.query(Payment).all()] == ["paid"]

    def test_success_after_failure_settles_the_payment(self, db_session, order):
        payment_service.apply_momo_status("MOMO-TX-1", "FAILED")
        payment_service.apply_momo_status("MOMO-TX-1", "SUCCESSFUL")

        db.session.expire_all()
        assert db.session.get(Order, order.id).payment_status == "paid"
        assert [p.status for p in db.session.query(Payment).all()] == ["paid"]

    def test_failure_after_success_publishes_nothing(self, db_session, order):
        payment_service.apply_momo_status("MOMO-TX-1", "SUCCESSFUL")
        before = db.session.query(Notification).count()

        payment_service.apply_momo_status("MOMO-TX-1", "TIMEOUT")
        assert db.session.query(Notification).count() == before

    def test_mtn_array_body_falls_back_to_webhook_status(self, app, client, gateway, order):
        app.config["MTN_CONSUMER_KEY"] = "key"
        app.config["MTN_CONSUMER_SECRET"] = "secret"
        gateway.add("GET", "/collection/", httpx.Response(200, json=[{"status": "FAILED"}]))

        resp = client.post("/api/route/mtn-momo/verify/MOMO-TX-1", json={"status": "SUCCESSFUL"})

        assert resp.status_code == 200
        db.session.expire_all()
        assert db.session.get(Order, order.id).payment_status == "paid"

    def test_webhook_array_body_is_treated_as_failed(self, client, gateway, order):
        resp = client.post("/api/route/mtn-momo/verify/MOMO-TX-1", json=["SUCCESSFUL"])

        assert resp.status_code == 200
        db.session.expire_all()
        assert db.session.get(Order, order.id).payment_status == "failed"

    def test_paystack_array_body_is_not_successful(self, client, gateway, order, outlet):
        gateway.add("GET", "/transaction/verify/", httpx.Response(200, json=["success"]))

        resp = client.post("/api/route/paystack/save", json=_save_payload(order, outlet))
        assert resp.status_code == 400
        assert db.session.query(Payment).count() == 0


# =============================================================================
# STOCK ON PAYMENT
# =============================================================================


class TestStockOnPayment:

    def test_gateway_order_keeps_stock_until_paid(self, db_session, order, product):
        db.session.expire_all()
        assert db.session.get(Product, product.id).quantity == 10

        payment_service.apply_momo_status("MOMO-TX-1", "SUCCESSFUL")

        db.session.expire_all()
        assert db.session.get(Product, product.id).quantity == 9
        assert db.session.get(Order, order.id).stock_deducted_at is not None

    def test_failed_payment_leaves_stock(self, db_session, order, product):
        payment_service.apply_momo_status("MOMO-TX-1", "FAILED")

        db.session.expire_all()
        assert db.session.get(Product, product.id).quantity == 10

    def test_stock_leaves_once_across_gateways(self, client, gateway, order, outlet, product):
        payment_service.apply_momo_status("MOMO-TX-1", "SUCCESSFUL")
        gateway.add("GET", "/transaction/verify/", httpx.Response(200, json=_paystack_body()))
        client.post("/api/route/paystack/save", json=_save_payload(order, outlet))

        db.session.expire_all()
        assert db.session.get(Product, product.id).quantity == 9

    def test_paid_order_with_short_stock_floors_at_zero(self, db_session, order, product):
        db.session.expire_all()
        live = db.session.get(Product, product.id)
        live.quantity = 0
        db.session.commit()

        payment_service.apply_momo_status("MOMO-TX-1", "SUCCESSFUL")

        db.session.expire_all()
        assert db.session.get(Product, product.id).quantity == 0
        assert db.session.get(Order, order.id).payment_status == "paid"


# =============================================================================
# PAYSTACK WEBHOOK
# =============================================================================


def _signed(event: dict, secret: str = "sk_test_secret"):
    body = json.dumps(event).encode()
    signature = hmac.new(secret.encode(), body, hashlib.sha512).hexdigest()
    return body, {"X-Paystack-Signature": signature, "Content-Type": "application/json"}


def _charge_success(reference="MOMO-TX-1", amount=1500):
    return {
        "event": "charge.success",
        "data": {"reference": reference, "amount": amount, "customer": {"email": "ama@example.com"}},
    }


class TestPaystackWebhook:

    def test_charge_success_marks_order_paid(self, client, order, product):
        body, headers = _signed(_charge_success())

        resp = client.post("/api/route/paystack/webhook", data=body, headers=headers)

        assert resp.status_code == 200
        assert resp.json == {"received": True}
        db.session.expire_all()
        assert db.session.get(Order, order.id).payment_status == "paid"
        payment = db.session.query(Payment).one()
        assert payment.method == "paystack"
        assert payment.status == "paid"
        assert payment.payer_email == "ama@example.com"
        assert db.session.get(Product, product.id).quantity == 9

    def test_redelivery_records_one_payment(self, client, order, product):
        body, headers = _signed(_charge_success())
        client.post("/api/route/paystack/webhook", data=body, headers=headers)
        client.post("/api/route/paystack/webhook", data=body, headers=headers)

        db.session.expire_all()
        assert db.session.query(Payment).count() == 1
        assert db.session.get(Product, product.id).quantity == 9

    def test_bad_signature_is_401(self, client, order):
        body, headers = _signed(_charge_success(), secret="not-the-secret")

        resp = client.post("/api/route/paystack/webhook", data=body, headers=headers)

        assert resp.status_code == 401
        assert resp.json["message"] == "Invalid signature"
        db.session.expire_all()
        assert db.session.get(Order, order.id).payment_status == "unpaid"

    def test_missing_signature_is_401(self, client, order):
        resp = client.post("/api/route/paystack/webhook", json=_charge_success())
        assert resp.status_code == 401

    def test_other_events_are_acknowledged(self, client, order):
        body, headers = _signed({"event": "transfer.success", "data": {"reference": "MOMO-TX-1"}})

        resp = client.post("/api/route/paystack/webhook", data=body, headers=headers)

        assert resp.status_code == 200
        assert db.session.query(Payment).count() == 0

    def test_unknown_reference_is_acknowledged(self, client, order):
        body, headers = _signed(_charge_success(reference="NOBODY"))

        resp = client.post("/api/route/paystack/webhook", data=body, headers=headers)

        assert resp.status_code == 200
        assert db.session.query(Payment).count() == 0
