from __future__ import annotations

from ..extensions import db
from bfactory.time_utils import to_utc_z


class Subscription(db.Model):
    """
    Time-boxed plan entitlement for an outlet/admin account.

    Eligibility is status == active AND end_date in the future; a cancelled
    subscription keeps its end_date. Expired rows are flipped to
    status=expired, never deleted.
    """
    __tablename__ = "subscriptions"
    __table_args__ = (
        db.Index("ix_subscriptions_user_status_end", "user_id", "status", "end_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    plan = db.Column(db.String(16), nullable=False, default="free")
    status = db.Column(db.String(16), nullable=False, default="active")

    start_date = db.Column(db.DateTime(timezone=True), nullable=False)
    end_date = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    auto_renew = db.Column(db.Boolean, nullable=False, default=False)
    payment_id = db.Column(db.Integer, db.ForeignKey("payments.id"), nullable=True)

    features = db.Column(db.JSON, nullable=False, default=list)
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    currency = db.Column(db.String(8), nullable=False, default="GHS")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True, onupdate=db.func.now())

    user = db.relationship("User", backref=db.backref("subscriptions", lazy=True, cascade="all, delete-orphan"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "plan": self.plan,
            "status": self.status,
            "start_date": to_utc_z(self.start_date),
            "end_date": to_utc_z(self.end_date),
            "auto_renew": self.auto_renew,
            "payment_id": self.payment_id,
            "features": list(self.features or []),
            "price_cents": self.price_cents,
            "currency": self.currency,
            "created_at": to_utc_z(self.created_at),
        }
