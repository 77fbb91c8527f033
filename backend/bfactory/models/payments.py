from __future__ import annotations

from ..extensions import db
from bfactory.time_utils import to_utc_z


class Payment(db.Model):
    """
    One payment attempt against an order.

    One row per reference. Status only moves forward: a pending or failed
    attempt may later settle as paid, and paid is final. A retry under a
    new reference is a new row.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.Index("ix_payments_outlet_created", "outlet_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    reference = db.Column(db.String(128), nullable=False, unique=True, index=True)

    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="SET NULL"), nullable=True, index=True)
    outlet_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    payer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    payer_email = db.Column(db.String(255), nullable=True)
    payer_phone = db.Column(db.String(32), nullable=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    currency = db.Column(db.String(8), nullable=False, default="GHS")
    method = db.Column(db.String(16), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default="pending", index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("Order", backref=db.backref("payments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "reference": self.reference,
            "order_id": self.order_id,
            "outlet_id": self.outlet_id,
            "payer_id": self.payer_id,
            "payer_email": self.payer_email,
            "payer_phone": self.payer_phone,
            "amount_cents": self.amount_cents,
            "currency": self.currency,
            "method": self.method,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
        }
