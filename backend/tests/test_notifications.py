"""Notification polling, room fan-out and outbox retention."""

from datetime import timedelta

from bfactory.models import Notification
from bfactory.services import notification_service, order_service
from bfactory.time_utils import utcnow


def _order(customer, product):
    return order_service.create_order(
        {
            "items": [{"productId": product.id, "quantity": 1}],
            "address": "12 Oxford Street",
            "city": "Accra",
            "phoneNumber": "+233201234567",
            "paymentMethod": "cash",
            "totalPrice": 1500,
        },
        user=customer,
    )


def test_customer_sees_own_room_only(client, db_session, customer, product, customer_headers):
    order = _order(customer, product)
    order_service.update_status(order.id, "shipped")

    resp = client.get("/api/notifications", headers=customer_headers)

    assert resp.status_code == 200
    assert resp.json["rooms"] == [f"user:{customer.id}"]
    assert len(resp.json["notifications"]) == 1
    event = resp.json["notifications"][0]
    assert event["event"] == notification_service.EVENT_ORDER_STATUS
    assert event["payload"]["status"] == "shipped"


def test_outlet_also_polls_outlet_room(client, db_session, customer, outlet, product, outlet_headers):
    order = _order(customer, product)
    order_service.update_status(order.id, "processing")

    resp = client.get("/api/notifications", headers=outlet_headers)

    assert resp.json["rooms"] == [f"user:{outlet.id}", f"outlet:{outlet.id}"]
    assert [n["room"] for n in resp.json["notifications"]] == [f"outlet:{outlet.id}"]


def test_other_users_events_are_hidden(client, db_session, customer, product, admin_headers):
    order = _order(customer, product)
    order_service.update_status(order.id, "shipped")

    resp = client.get("/api/notifications", headers=admin_headers)
    assert resp.json["notifications"] == []


def test_limit_is_validated(client, customer_headers):
    assert client.get("/api/notifications?limit=0", headers=customer_headers).status_code == 400


def test_requires_login(client, db_session):
    assert client.get("/api/notifications").status_code == 401


def _aged(db_session, room, days):
    row = notification_service.publish(room, notification_service.EVENT_ORDER_STATUS, {"status": "shipped"})
    db_session.flush()
    row.created_at = utcnow() - timedelta(days=days)
    db_session.commit()
    return row


def test_cleanup_keeps_recent_rows(db_session):
    _aged(db_session, "user:1", 45)
    _aged(db_session, "user:1", 31)
    recent = _aged(db_session, "user:1", 2)

    assert notification_service.cleanup_notifications() == 2
    assert [n.id for n in db_session.query(Notification).all()] == [recent.id]


def test_cleanup_command(app, db_session):
    _aged(db_session, "outlet:7", 10)
    _aged(db_session, "outlet:7", 1)

    result = app.test_cli_runner().invoke(args=["maintenance", "cleanup-notifications", "--days", "7"])

    assert result.exit_code == 0
    assert "Deleted 1 notifications older than 7 days." in result.output
    db_session.expire_all()
    assert db_session.query(Notification).count() == 1
