# Overview: Flask API route for polling the caller's notification rooms.

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth
from ..models.users import ROLE_OUTLET
from ..services import notification_service
from ..validation import parse_date_param, parse_int


notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.get("")
@require_auth
def recent_notifications_route():
    """
    Events for the caller's own rooms, newest first.

    Query params: since (ISO-8601), limit (default 50, max 200).
    """
    user = g.current_user
    rooms = [notification_service.user_room(user.id)]
    if user.role == ROLE_OUTLET:
        rooms.append(notification_service.outlet_room(user.id))

    limit = min(parse_int(request.args.get("limit", 50), "limit", minimum=1), 200)
    since = parse_date_param(request.args.get("since"), "since")

    notifications = notification_service.recent(rooms, since=since, limit=limit)
    return jsonify({
        "success": True,
        "rooms": rooms,
        "notifications": [n.to_dict() for n in notifications],
    })
