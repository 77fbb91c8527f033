from __future__ import annotations

from ..extensions import db
from bfactory.time_utils import to_utc_z


# Fulfilment lifecycle
ORDER_PENDING = "pending"
ORDER_PROCESSING = "processing"
ORDER_SHIPPED = "shipped"
ORDER_DELIVERED = "delivered"
ORDER_CANCELLED = "cancelled"
VALID_ORDER_STATUSES = (ORDER_PENDING, ORDER_PROCESSING, ORDER_SHIPPED, ORDER_DELIVERED, ORDER_CANCELLED)

# Payment state, orthogonal to fulfilment
PAYMENT_UNPAID = "unpaid"
PAYMENT_PAID = "paid"
PAYMENT_FAILED = "failed"
VALID_ORDER_PAYMENT_STATUSES = (PAYMENT_UNPAID, PAYMENT_PAID, PAYMENT_FAILED)


class Order(db.Model):
    """
    Checkout document.

    Line items are frozen snapshots (see OrderItem); total_price_cents is
    stored as submitted by the client.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_user_created", "user_id", "created_at"),
        db.Index("ix_orders_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(32), nullable=False, unique=True, index=True)

    # Registered customer, or NULL for guest checkout
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    guest_name = db.Column(db.String(120), nullable=True)
    guest_email = db.Column(db.String(255), nullable=True)
    guest_phone = db.Column(db.String(32), nullable=True)

    # Shipping
    address = db.Column(db.String(200), nullable=False)
    city = db.Column(db.String(100), nullable=False)
    state = db.Column(db.String(100), nullable=True)
    postal_code = db.Column(db.String(20), nullable=True)
    phone_number = db.Column(db.String(32), nullable=False)

    payment_method = db.Column(db.String(32), nullable=False)
    payment_reference = db.Column(db.String(128), nullable=True, index=True)

    total_price_cents = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default=ORDER_PENDING)
    payment_status = db.Column(db.String(16), nullable=False, default=PAYMENT_UNPAID, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True, onupdate=db.func.now())
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)
    # Set once the line quantities have left product stock
    stock_deducted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    user = db.relationship("User", backref=db.backref("orders", lazy=True))
    items = db.relationship(
        "OrderItem",
        backref="order",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )

    @property
    def outlet_ids(self) -> list[int]:
        """Distinct outlets across the line items, in first-seen order."""
        seen: list[int] = []
        for item in self.items:
            if item.outlet_id is not None and item.outlet_id not in seen:
                seen.append(item.outlet_id)
        return seen

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_number": self.order_number,
            "user_id": self.user_id,
            "guest": {
                "name": self.guest_name,
                "email": self.guest_email,
                "phone": self.guest_phone,
            } if self.user_id is None else None,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "postal_code": self.postal_code,
            "phone_number": self.phone_number,
            "payment_method": self.payment_method,
            "payment_reference": self.payment_reference,
            "total_price_cents": self.total_price_cents,
            "status": self.status,
            "payment_status": self.payment_status,
            "items": [item.to_dict() for item in self.items],
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at) if self.updated_at else None,
            "delivered_at": to_utc_z(self.delivered_at) if self.delivered_at else None,
            "stock_deducted": self.stock_deducted_at is not None,
        }


class OrderItem(db.Model):
    """
    Product snapshot captured at checkout.

    product_id is kept for analytics joins only; name/price/image are never
    re-read from the live product. outlet_id is denormalized so outlet
    order lookups are index scans.
    """
    __tablename__ = "order_items"
    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="ck_order_items_quantity_positive"),
        db.Index("ix_order_items_outlet_order", "outlet_id", "order_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True)
    outlet_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    name = db.Column(db.String(200), nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    image_url = db.Column(db.String(512), nullable=True)
    quantity = db.Column(db.Integer, nullable=False)

    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents * self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "outlet_id": self.outlet_id,
            "name": self.name,
            "unit_price_cents": self.unit_price_cents,
            "image_url": self.image_url,
            "quantity": self.quantity,
            "line_total_cents": self.line_total_cents,
        }
