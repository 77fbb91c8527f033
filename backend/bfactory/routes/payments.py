# Overview: Flask API routes for payments; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth, require_role, optional_auth
from ..models.users import ROLE_ADMIN, ROLE_OUTLET
from ..services import payment_service
from ..services.task_runner import run_in_background
from ..validation import PermissionDeniedError


payments_bp = Blueprint("payments", __name__, url_prefix="/api/route")


@payments_bp.post("/payments")
@require_auth
@require_role(ROLE_ADMIN)
def record_payment_route():
    """Record a payment without contacting any gateway."""
    payment = payment_service.record_payment(request.get_json(silent=True) or {}, payer=None)
    return jsonify({"success": True, "payment": payment.to_dict()}), 201


@payments_bp.post("/paystack/save")
@optional_auth
def paystack_save_route():
    payment = payment_service.verify_paystack(request.get_json(silent=True) or {}, payer=g.current_user)
    return jsonify({
        "success": True,
        "message": "Payment verified and saved",
        "payment": payment.to_dict(),
    }), 201


@payments_bp.get("/outlet/<int:outlet_id>")
@payments_bp.get("/paystack/outlet/<int:outlet_id>")
@require_auth
@require_role(ROLE_ADMIN, ROLE_OUTLET)
def outlet_payments_route(outlet_id: int):
    if g.current_user.role == ROLE_OUTLET and g.current_user.id != outlet_id:
        raise PermissionDeniedError("Not authorized to view these payments")
    payments = payment_service.list_outlet_payments(outlet_id)
    return jsonify({"success": True, "count": len(payments), "payments": [p.to_dict() for p in payments]})


@payments_bp.post("/mtn-momo/verify/<transaction_id>")
def momo_webhook_route(transaction_id: str):
    """
    MTN callback. Acknowledged immediately; verification and the order
    update run in the background.
    """
    payload = request.get_json(silent=True) or {}
    run_in_background(payment_service.process_momo_webhook, transaction_id, payload)
    return jsonify({"success": True, "message": "Webhook received"}), 200


@payments_bp.post("/paystack/webhook")
def paystack_webhook_route():
    """
    Paystack event callback. The raw body must carry a valid
    X-Paystack-Signature; unknown events are acknowledged and ignored.
    """
    payment_service.verify_paystack_signature(
        request.get_data(cache=True),
        request.headers.get("X-Paystack-Signature"),
    )
    payment_service.handle_paystack_event(request.get_json(silent=True))
    return jsonify({"received": True}), 200
