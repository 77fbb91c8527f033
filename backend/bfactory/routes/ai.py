# Overview: Flask API route for the shop assistant.

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth
from ..services import assistant_service


ai_bp = Blueprint("ai", __name__, url_prefix="/api/ai")


@ai_bp.post("/ask")
@require_auth
def ask_route():
    data = request.get_json(silent=True) or {}
    answer = assistant_service.ask(data.get("question"), user=g.current_user)
    return jsonify({"success": True, "answer": answer})
