# Overview: Flask API routes for orders; parses input and returns JSON responses.

"""
Order Routes

Checkout is open to guests; listing is scoped by role. A customer sees
their own orders, an outlet sees orders carrying its items, and admins
see everything.
"""

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth, require_role, optional_auth
from ..models.users import ROLE_ADMIN, ROLE_OUTLET
from ..services import order_service, payment_service
from ..validation import PermissionDeniedError, parse_date_param, parse_end_date_param, parse_pagination


orders_bp = Blueprint("orders", __name__, url_prefix="/api/route")


def _list_filters() -> dict:
    args = request.args
    return {
        "search": args.get("search"),
        "status": args.get("status"),
        "payment_status": args.get("paymentStatus"),
        "start": parse_date_param(args.get("startDate"), "startDate"),
        "end": parse_end_date_param(args.get("endDate"), "endDate"),
    }


def _listing(result: dict):
    return jsonify({
        "success": True,
        "orders": [o.to_dict() for o in result["orders"]],
        "pagination": result["pagination"],
    })


@orders_bp.post("/createOrder")
@optional_auth
def create_order_route():
    order = order_service.create_order(request.get_json(silent=True) or {}, user=g.current_user)
    return jsonify({"success": True, "message": "Order created successfully", "order": order.to_dict()}), 201


@orders_bp.get("/getOrders")
@require_auth
@require_role(ROLE_ADMIN)
def list_orders_route():
    page, limit = parse_pagination(request.args)
    return _listing(order_service.list_orders(page=page, limit=limit, **_list_filters()))


@orders_bp.get("/getOrder/<int:order_id>")
@require_auth
def get_order_route(order_id: int):
    order = order_service.get_order(order_id)
    order_service.ensure_can_view(g.current_user, order)
    return jsonify({"success": True, "order": order.to_dict()})


@orders_bp.put("/updateOrder/<int:order_id>")
@require_auth
@require_role(ROLE_ADMIN, ROLE_OUTLET)
def update_order_route(order_id: int):
    data = request.get_json(silent=True) or {}
    order, changed = order_service.update_status(order_id, data.get("status"), actor=g.current_user)
    message = "Order status updated" if changed else "Order status unchanged"
    return jsonify({"success": True, "message": message, "order": order.to_dict()})


@orders_bp.delete("/deleteOrder/<int:order_id>")
@require_auth
@require_role(ROLE_ADMIN)
def delete_order_route(order_id: int):
    order_service.delete_order(order_id)
    return jsonify({"success": True, "message": "Order deleted successfully"})


@orders_bp.get("/getOrdersByUser/<int:user_id>")
@require_auth
def user_orders_route(user_id: int):
    if g.current_user.role != ROLE_ADMIN and g.current_user.id != user_id:
        raise PermissionDeniedError("Not authorized to view these orders")
    page, limit = parse_pagination(request.args)
    return _listing(order_service.list_user_orders(user_id, page=page, limit=limit, **_list_filters()))


@orders_bp.get("/getOutletOrders/<int:outlet_id>")
@require_auth
@require_role(ROLE_ADMIN, ROLE_OUTLET)
def outlet_orders_route(outlet_id: int):
    if g.current_user.role == ROLE_OUTLET and g.current_user.id != outlet_id:
        raise PermissionDeniedError("Not authorized to view these orders")
    page, limit = parse_pagination(request.args)
    return _listing(order_service.list_outlet_orders(outlet_id, page=page, limit=limit, **_list_filters()))


@orders_bp.put("/verifyMomoPayment/<transaction_id>")
@require_auth
@require_role(ROLE_ADMIN)
def verify_momo_payment_route(transaction_id: str):
    """Apply a MoMo status to the order carrying this transaction id."""
    data = request.get_json(silent=True) or {}
    order = payment_service.apply_momo_status(
        transaction_id, data.get("status"), payer_phone=data.get("phoneNumber")
    )
    return jsonify({"success": True, "order": order.to_dict()})
