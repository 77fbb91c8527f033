from __future__ import annotations

from ..extensions import db
from bfactory.time_utils import to_utc_z


class RestockRequest(db.Model):
    """
    Outlet-initiated stock replenishment, gated by an admin decision.

    current_quantity is the product's stock when the request was filed
    (audit only; approval adds requested_quantity to the live counter).
    """
    __tablename__ = "restock_requests"
    __table_args__ = (
        db.CheckConstraint("requested_quantity >= 1", name="ck_restock_requested_positive"),
        db.Index("ix_restock_requests_outlet_status", "outlet_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    outlet_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    requested_quantity = db.Column(db.Integer, nullable=False)
    current_quantity = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    reason = db.Column(db.String(255), nullable=False)
    admin_note = db.Column(db.String(500), nullable=False, default="")

    processed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    processed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", backref=db.backref("restock_requests", lazy=True, cascade="all, delete-orphan"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product": {
                "name": self.product.name,
                "quantity": self.product.quantity,
            } if self.product else None,
            "outlet_id": self.outlet_id,
            "requested_quantity": self.requested_quantity,
            "current_quantity": self.current_quantity,
            "status": self.status,
            "reason": self.reason,
            "admin_note": self.admin_note,
            "processed_at": to_utc_z(self.processed_at) if self.processed_at else None,
            "processed_by_user_id": self.processed_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
