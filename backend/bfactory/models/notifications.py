from __future__ import annotations

from ..extensions import db
from bfactory.time_utils import to_utc_z


class Notification(db.Model):
    """Persisted event published to a room (user:<id> / outlet:<id>)."""
    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("ix_notifications_room_created", "room", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    room = db.Column(db.String(64), nullable=False)
    event = db.Column(db.String(64), nullable=False)
    payload = db.Column(db.JSON, nullable=False, default=dict)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "room": self.room,
            "event": self.event,
            "payload": self.payload,
            "created_at": to_utc_z(self.created_at),
        }
