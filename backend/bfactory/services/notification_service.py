# Overview: Room-based publish channel for order/payment status pushes.

from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timedelta
from typing import Callable, Iterable

from flask import current_app

from ..extensions import db
from ..models import Notification
from bfactory.time_utils import utcnow


EVENT_ORDER_STATUS = "order.status_updated"
EVENT_PAYMENT_STATUS = "order.payment_updated"

# Outbox rows older than this are swept by `flask maintenance cleanup-notifications`
RETENTION_DAYS = 30

# In-process listeners keyed by room; a push transport (websocket bridge,
# SSE stream) registers here. Delivery is best-effort.
_subscribers: dict[str, list[Callable[[str, str, dict], None]]] = defaultdict(list)


def user_room(user_id: int) -> str:
    return f"user:{user_id}"


def outlet_room(outlet_id: int) -> str:
    return f"outlet:{outlet_id}"


def subscribe(room: str, callback: Callable[[str, str, dict], None]) -> None:
    _subscribers[room].append(callback)


def unsubscribe(room: str, callback: Callable[[str, str, dict], None]) -> None:
    listeners = _subscribers.get(room)
    if listeners and callback in listeners:
        listeners.remove(callback)
        if not listeners:
            _subscribers.pop(room, None)


def clear_subscribers() -> None:
    _subscribers.clear()


def publish(room: str, event: str, payload: dict) -> Notification:
    """
    Publish an event to a room.

    The row is added to the caller's session (committed with the caller's
    unit of work). Listener failures are logged and never raised.
    """
    notification = Notification(room=room, event=event, payload=payload)
    db.session.add(notification)

    for callback in list(_subscribers.get(room, ())):
        try:
            callback(room, event, payload)
        except Exception:
            current_app.logger.exception("Notification listener failed for room %s", room)

    return notification


def publish_order_event(order, event: str, payload: dict) -> list[str]:
    """
    Fan an order event out to its owner and every distinct outlet on it.

    Returns the rooms published to.
    """
    rooms = []
    if order.user_id is not None:
        rooms.append(user_room(order.user_id))
    rooms.extend(outlet_room(outlet_id) for outlet_id in order.outlet_ids)

    for room in rooms:
        publish(room, event, payload)
    return rooms


def recent(rooms: Iterable[str], since: datetime | None = None, limit: int = 50) -> list[Notification]:
    query = db.session.query(Notification).filter(Notification.room.in_(list(rooms)))
    if since is not None:
        query = query.filter(Notification.created_at > since)
    return query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()


def cleanup_notifications(older_than_days: int = RETENTION_DAYS, now: datetime | None = None) -> int:
    """Delete outbox rows older than the retention window. Returns the count."""
    cutoff = (now or utcnow()) - timedelta(days=older_than_days)
    deleted = (
        db.session.query(Notification)
        .filter(Notification.created_at < cutoff)
        .delete(synchronize_session=False)
    )
    db.session.commit()
    return deleted
