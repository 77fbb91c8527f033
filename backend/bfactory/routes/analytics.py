# Overview: Flask API routes for analytics and the admin dashboard; parses input and returns JSON responses.

"""
Analytics Routes

Outlet sales analytics (subscription gated), per-outlet sales listing,
the admin sales report and the admin dashboard summary.
"""

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth, require_role, require_subscription
from ..models.users import ROLE_ADMIN, ROLE_OUTLET
from ..services import analytics_service
from ..validation import PermissionDeniedError, ValidationError


analytics_bp = Blueprint("analytics", __name__, url_prefix="/api/analytics")
dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")


def _resolve_outlet_id():
    """Outlets are pinned to themselves; admins must name one."""
    requested = request.args.get("outletId")
    user = g.current_user
    if user.role == ROLE_OUTLET:
        if requested not in (None, "") and str(requested) != str(user.id):
            raise PermissionDeniedError("Not authorized to view this outlet's analytics")
        return user.id
    if requested in (None, ""):
        raise ValidationError("outletId is required")
    return requested


@analytics_bp.get("")
@require_auth
@require_role(ROLE_OUTLET, ROLE_ADMIN)
@require_subscription("analytics")
def sales_analytics_route():
    result = analytics_service.sales_analytics(
        _resolve_outlet_id(),
        period=request.args.get("period", "daily"),
        day=request.args.get("date"),
    )
    return jsonify({"success": True, "analytics": result})


@analytics_bp.get("/sales")
@require_auth
@require_role(ROLE_OUTLET, ROLE_ADMIN)
def outlet_sales_route():
    result = analytics_service.outlet_sales(
        _resolve_outlet_id(),
        start=request.args.get("startDate"),
        end=request.args.get("endDate"),
    )
    return jsonify({"success": True, **result})


@analytics_bp.get("/admin/sales-report")
@require_auth
@require_role(ROLE_ADMIN)
def sales_report_route():
    result = analytics_service.sales_report(
        start=request.args.get("startDate"),
        end=request.args.get("endDate"),
    )
    return jsonify({"success": True, "report": result})


@dashboard_bp.get("/stats")
@require_auth
@require_role(ROLE_ADMIN)
def dashboard_stats_route():
    return jsonify({"success": True, "stats": analytics_service.dashboard_stats()})
