# backend/bfactory/services/restock_service.py
"""
Restock requests: outlets ask, admins decide.

Approval applies the stock increment and the request bookkeeping in a
single transaction; the counter moves through an UPDATE expression, never
a read-modify-write.
"""
from __future__ import annotations

from ..extensions import db
from ..models import Product, RestockRequest, User
from ..models.users import ROLE_ADMIN
from ..validation import (
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
    check_length,
    parse_choice,
    parse_int,
)
from .concurrency import lock_for_update, run_with_retry
from bfactory.time_utils import utcnow


STATUS_PENDING = "pending"
STATUS_APPROVED = "approved"
STATUS_REJECTED = "rejected"
DECISIONS = (STATUS_APPROVED, STATUS_REJECTED)

DEFAULT_REASON = "Stock replenishment"


def create_request(actor: User, data: dict) -> RestockRequest:
    """
    File a restock request for a product.

    Outlets may only request stock for their own products.
    """
    data = data or {}
    if data.get("productId") in (None, "") or data.get("requestedQuantity") in (None, ""):
        raise ValidationError("Product ID and requested quantity are required")

    product_id = parse_int(data["productId"], "productId", minimum=1)
    quantity = parse_int(data["requestedQuantity"], "requestedQuantity", minimum=1)

    product = db.session.get(Product, product_id)
    if not product:
        raise NotFoundError("Product not found")
    if actor.role != ROLE_ADMIN and product.outlet_id != actor.id:
        raise PermissionDeniedError("You can only request stock for your own products")

    request = RestockRequest(
        product_id=product.id,
        outlet_id=product.outlet_id if actor.role == ROLE_ADMIN else actor.id,
        requested_quantity=quantity,
        current_quantity=product.quantity,
        reason=check_length(data.get("reason") or DEFAULT_REASON, "reason", 255),
        status=STATUS_PENDING,
    )
    db.session.add(request)
    db.session.commit()
    return request


def process_request(actor: User, request_id: int, data: dict) -> RestockRequest:
    """
    Approve or reject a pending request.

    Raises:
        ValidationError: invalid decision, or the request was already processed
        NotFoundError: unknown request or its product is gone
    """
    data = data or {}
    status = str(data.get("status") or "").strip().lower()
    if status not in DECISIONS:
        raise ValidationError("Invalid status")
    note = check_length(data.get("adminNote") or "", "adminNote", 500)

    def _op():
        request = lock_for_update(
            db.session.query(RestockRequest).filter(RestockRequest.id == request_id)
        ).first()
        if not request:
            raise NotFoundError("Restock request not found")
        if request.status != STATUS_PENDING:
            raise ValidationError("This request has already been processed")

        if status == STATUS_APPROVED:
            updated = (
                db.session.query(Product)
                .filter(Product.id == request.product_id)
                .update(
                    {Product.quantity: Product.quantity + request.requested_quantity},
                    synchronize_session=False,
                )
            )
            if not updated:
                raise NotFoundError("Product not found")

        request.status = status
        request.admin_note = note
        request.processed_at = utcnow()
        request.processed_by_user_id = actor.id
        db.session.commit()

        if request.product is not None:
            db.session.refresh(request.product)
        return request

    return run_with_retry(_op)


def list_all(status: str | None = None) -> list[RestockRequest]:
    query = db.session.query(RestockRequest)
    if status:
        query = query.filter(
            RestockRequest.status == parse_choice(status, "status", (STATUS_PENDING,) + DECISIONS)
        )
    return query.order_by(RestockRequest.created_at.desc(), RestockRequest.id.desc()).all()


def list_for_outlet(outlet_id: int) -> list[RestockRequest]:
    return (
        db.session.query(RestockRequest)
        .filter(RestockRequest.outlet_id == outlet_id)
        .order_by(RestockRequest.created_at.desc(), RestockRequest.id.desc())
        .all()
    )
