# Overview: Flask API routes for seller subscriptions; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth, require_role
from ..models.users import ROLE_ADMIN
from ..services import subscription_service
from ..validation import PermissionDeniedError


subscriptions_bp = Blueprint("subscriptions", __name__, url_prefix="/api/route")


@subscriptions_bp.post("/subscription")
@require_auth
def create_subscription_route():
    subscription = subscription_service.create(g.current_user, request.get_json(silent=True) or {})
    return jsonify({
        "success": True,
        "message": f"Successfully subscribed to {subscription.plan} plan",
        "subscription": subscription.to_dict(),
    }), 201


@subscriptions_bp.get("/subscription/user/<int:user_id>")
@require_auth
def user_subscription_route(user_id: int):
    if g.current_user.role != ROLE_ADMIN and g.current_user.id != user_id:
        raise PermissionDeniedError("Not authorized to view this subscription")

    subscription = subscription_service.get_active_for_user(user_id)
    if subscription is None:
        return jsonify({
            "success": True,
            "hasActiveSubscription": False,
            "message": "No active subscription found",
        })
    return jsonify({
        "success": True,
        "hasActiveSubscription": True,
        "subscription": subscription.to_dict(),
    })


@subscriptions_bp.put("/subscription/cancel/<int:subscription_id>")
@require_auth
def cancel_subscription_route(subscription_id: int):
    subscription_service.cancel(g.current_user, subscription_id)
    return jsonify({"success": True, "message": "Subscription cancelled successfully"})


@subscriptions_bp.put("/subscription/renew")
@require_auth
def renew_subscription_route():
    subscription = subscription_service.renew(g.current_user, request.get_json(silent=True) or {})
    return jsonify({
        "success": True,
        "message": "Subscription renewed successfully",
        "subscription": subscription.to_dict(),
    })


@subscriptions_bp.put("/subscription/upgrade")
@require_auth
def upgrade_subscription_route():
    subscription = subscription_service.upgrade(g.current_user, request.get_json(silent=True) or {})
    return jsonify({
        "success": True,
        "message": "Subscription upgraded to pro successfully",
        "subscription": subscription.to_dict(),
    })


@subscriptions_bp.get("/subscriptions")
@require_auth
@require_role(ROLE_ADMIN)
def list_subscriptions_route():
    subscriptions = subscription_service.list_all()
    return jsonify({
        "success": True,
        "count": len(subscriptions),
        "subscriptions": [s.to_dict() for s in subscriptions],
    })
