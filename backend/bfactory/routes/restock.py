# Overview: Flask API routes for restock requests; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth, require_role
from ..models.users import ROLE_ADMIN, ROLE_OUTLET
from ..services import restock_service


restock_bp = Blueprint("restock", __name__, url_prefix="/api/restock")


@restock_bp.post("/request")
@require_auth
@require_role(ROLE_OUTLET, ROLE_ADMIN)
def create_request_route():
    restock = restock_service.create_request(g.current_user, request.get_json(silent=True) or {})
    return jsonify({
        "success": True,
        "message": "Restock request submitted successfully",
        "request": restock.to_dict(),
    }), 201


@restock_bp.get("/all")
@require_auth
@require_role(ROLE_ADMIN)
def list_requests_route():
    requests = restock_service.list_all(status=request.args.get("status"))
    return jsonify({"success": True, "count": len(requests), "requests": [r.to_dict() for r in requests]})


@restock_bp.get("/outlet-requests")
@require_auth
@require_role(ROLE_OUTLET)
def outlet_requests_route():
    requests = restock_service.list_for_outlet(g.current_user.id)
    return jsonify({"success": True, "count": len(requests), "requests": [r.to_dict() for r in requests]})


@restock_bp.put("/process/<int:request_id>")
@require_auth
@require_role(ROLE_ADMIN)
def process_request_route(request_id: int):
    restock = restock_service.process_request(g.current_user, request_id, request.get_json(silent=True) or {})
    return jsonify({
        "success": True,
        "message": f"Restock request {restock.status}",
        "request": restock.to_dict(),
    })
