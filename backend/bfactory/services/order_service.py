# Overview: Service-layer operations for orders; encapsulates business logic and database work.

"""
Order Service

DESIGN PRINCIPLES:
- Orders snapshot product name/price/image at checkout; later catalog
  edits never alter an existing order
- The submitted totalPrice is stored as-is (not recomputed server-side)
- Stock is checked at checkout. Cash-style orders take it immediately;
  gateway orders take it once payment succeeds (deduct_order_stock)
- Fulfilment status and payment status are separate fields
- Any fulfilment status may follow any other; only the value is validated
- Status changes fan out to the owner's room and each outlet's room
"""

from __future__ import annotations

import uuid

from flask import current_app
from sqlalchemy import and_

from ..extensions import db
from ..models import Order, OrderItem, Product, User
from ..models.orders import (
    ORDER_DELIVERED,
    VALID_ORDER_PAYMENT_STATUSES,
    VALID_ORDER_STATUSES,
)
from ..models.users import ROLE_ADMIN, ROLE_OUTLET
from ..validation import (
    NotFoundError,
    PermissionDeniedError,
    PHONE_PATTERN,
    ValidationError,
    check_length,
    parse_choice,
    parse_int,
    parse_money,
    require_fields,
)
from . import catalog_service, notification_service
from .concurrency import run_with_retry
from bfactory.time_utils import utcnow


# =============================================================================
# ORDER CREATION
# =============================================================================

# Stock for these leaves the shelf when the gateway confirms payment
GATEWAY_METHODS = ("paystack", "momo")


def _generate_order_number() -> str:
    return f"ORD-{uuid.uuid4().hex[:8].upper()}"


def _parse_items(raw_items) -> list[tuple[int, int]]:
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("At least one order item is required")

    items = []
    for index, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object")
        product_id = raw.get("productId", raw.get("product_id", raw.get("product")))
        if product_id is None:
            raise ValidationError(f"items[{index}].productId is required")
        items.append((
            parse_int(product_id, f"items[{index}].productId", minimum=1),
            parse_int(raw.get("quantity"), f"items[{index}].quantity", minimum=1),
        ))
    return items


def _parse_guest(data: dict) -> dict:
    info = data.get("userInfo") or {}
    if not isinstance(info, dict):
        raise ValidationError("userInfo must be an object")
    if not info.get("name") or not (info.get("email") or info.get("phone")):
        raise ValidationError("Guest checkout requires userInfo.name and an email or phone")
    return {
        "guest_name": check_length(info.get("name"), "userInfo.name", 120),
        "guest_email": check_length(info.get("email"), "userInfo.email", 255),
        "guest_phone": check_length(info.get("phone"), "userInfo.phone", 32),
    }


def create_order(data: dict, user: User | None = None) -> Order:
    """
    Create an order from {productId, quantity} items.

    All referenced products are loaded in one query and snapshotted into
    OrderItem rows together with their owning outlet.

    Raises:
        ValidationError: malformed items or shipping fields, or a product
            has less stock than the order asks for
        NotFoundError: a referenced product does not exist
    """
    require_fields(data, "address", "city", "phoneNumber", "paymentMethod")
    if data.get("totalPrice") is None:
        raise ValidationError("Missing required fields: totalPrice")

    items = _parse_items(data.get("items", data.get("products")))
    total_price_cents = parse_money(data["totalPrice"], "totalPrice")

    phone = str(data["phoneNumber"]).strip()
    if not PHONE_PATTERN.match(phone):
        raise ValidationError("Invalid phone number format")

    wanted: dict[int, int] = {}
    for product_id, quantity in items:
        wanted[product_id] = wanted.get(product_id, 0) + quantity

    products = {
        p.id: p
        for p in db.session.query(Product).filter(Product.id.in_(list(wanted))).all()
    }
    for product_id, _ in items:
        if product_id not in products:
            raise NotFoundError(f"Product not found with id {product_id}")
    catalog_service.check_stock(products, wanted)

    order = Order(
        order_number=_generate_order_number(),
        user_id=user.id if user else None,
        address=check_length(data["address"], "address", 200),
        city=check_length(data["city"], "city", 100),
        state=check_length(data.get("state"), "state", 100),
        postal_code=check_length(data.get("postalCode"), "postalCode", 20),
        phone_number=phone,
        payment_method=check_length(data["paymentMethod"], "paymentMethod", 32),
        payment_reference=check_length(data.get("paymentReference"), "paymentReference", 128),
        total_price_cents=total_price_cents,
    )
    if user is None:
        for key, value in _parse_guest(data).items():
            setattr(order, key, value)

    for product_id, quantity in items:
        product = products[product_id]
        order.items.append(OrderItem(
            product_id=product.id,
            outlet_id=product.outlet_id,
            name=product.name,
            unit_price_cents=product.price_cents,
            image_url=product.image_url,
            quantity=quantity,
        ))

    def _persist():
        db.session.add(order)
        if order.payment_method.lower() not in GATEWAY_METHODS:
            catalog_service.deduct_stock(wanted)
            order.stock_deducted_at = utcnow()
        db.session.commit()
        return order

    return run_with_retry(_persist)


def _order_quantities(order: Order) -> dict[int, int]:
    wanted: dict[int, int] = {}
    for item in order.items:
        if item.product_id is not None:
            wanted[item.product_id] = wanted.get(item.product_id, 0) + item.quantity
    return wanted


def deduct_order_stock(order: Order) -> bool:
    """
    Take a paid order's items out of stock, once.

    Runs in the caller's transaction. The customer has already paid, so a
    shortfall floors the product at zero and is logged rather than raised.
    Returns False when the order's stock had already been taken.
    """
    if order.stock_deducted_at is not None:
        return False
    short = catalog_service.deduct_stock(_order_quantities(order), strict=False)
    if short:
        current_app.logger.warning(
            "Order %s paid with insufficient stock for products %s", order.order_number, short
        )
    order.stock_deducted_at = utcnow()
    return True


# =============================================================================
# ORDER STATUS
# =============================================================================

def get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if not order:
        raise NotFoundError("Order not found")
    return order


def ensure_can_view(actor: User, order: Order) -> None:
    if actor.role == ROLE_ADMIN or order.user_id == actor.id:
        return
    if actor.role == ROLE_OUTLET and actor.id in order.outlet_ids:
        return
    raise PermissionDeniedError("Not authorized to access this order")


def update_status(order_id: int, status, actor: User | None = None) -> tuple[Order, bool]:
    """
    Set the fulfilment status.

    Returns (order, changed). When the status is unchanged nothing is
    written and nothing is published.
    """
    if status is None or status == "":
        raise ValidationError("Status is required")
    status = parse_choice(status, "status", VALID_ORDER_STATUSES)

    order = get_order(order_id)
    if actor is not None and actor.role == ROLE_OUTLET and actor.id not in order.outlet_ids:
        raise PermissionDeniedError("Not authorized to update this order")

    if order.status == status:
        return order, False

    previous = order.status
    order.status = status
    if status == ORDER_DELIVERED:
        order.delivered_at = utcnow()

    notification_service.publish_order_event(
        order,
        notification_service.EVENT_ORDER_STATUS,
        {
            "orderId": order.id,
            "orderNumber": order.order_number,
            "status": status,
            "previousStatus": previous,
        },
    )
    db.session.commit()
    return order, True


def delete_order(order_id: int) -> None:
    order = get_order(order_id)
    db.session.delete(order)
    db.session.commit()


# =============================================================================
# QUERIES
# =============================================================================

def _apply_filters(query, *, search=None, status=None, payment_status=None, start=None, end=None):
    if search:
        query = query.filter(Order.order_number.ilike(f"%{search.strip()}%"))
    if status:
        query = query.filter(Order.status == parse_choice(status, "status", VALID_ORDER_STATUSES))
    if payment_status:
        query = query.filter(
            Order.payment_status == parse_choice(payment_status, "paymentStatus", VALID_ORDER_PAYMENT_STATUSES)
        )
    if start:
        query = query.filter(Order.created_at >= start)
    if end:
        query = query.filter(Order.created_at <= end)
    return query


def _paginate(query, page: int, limit: int) -> dict:
    total = query.order_by(None).count()
    orders = (
        query.order_by(Order.created_at.desc(), Order.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    total_pages = (total + limit - 1) // limit if total > 0 else 1
    return {
        "orders": orders,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def list_orders(*, page: int = 1, limit: int = 20, **filters) -> dict:
    return _paginate(_apply_filters(db.session.query(Order), **filters), page, limit)


def list_user_orders(user_id: int, *, page: int = 1, limit: int = 20, **filters) -> dict:
    query = db.session.query(Order).filter(Order.user_id == user_id)
    return _paginate(_apply_filters(query, **filters), page, limit)


def list_outlet_orders(outlet_id: int, *, page: int = 1, limit: int = 20, **filters) -> dict:
    """
    Orders containing at least one item from the outlet.

    Uses the indexed OrderItem.outlet_id rather than scanning orders.
    """
    outlet = db.session.get(User, outlet_id)
    if not outlet or outlet.role != ROLE_OUTLET:
        raise NotFoundError("Outlet not found")

    has_outlet_item = (
        db.session.query(OrderItem.id)
        .filter(and_(OrderItem.order_id == Order.id, OrderItem.outlet_id == outlet_id))
        .exists()
    )
    query = db.session.query(Order).filter(has_outlet_item)
    return _paginate(_apply_filters(query, **filters), page, limit)


def find_by_payment_reference(reference: str) -> Order | None:
    return db.session.query(Order).filter(Order.payment_reference == reference).first()
