# Overview: Flask API routes for auth and user management; parses input and returns JSON responses.

# backend/bfactory/routes/auth.py
"""
Authentication and user API routes

- Self-registration for customers and outlets (never admins)
- Opaque session tokens returned in the body and as an httponly cookie
- Admin-only user listing, deletion, entitlement grants and outlet verification
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import auth_service
from ..services import session_service
from ..decorators import require_auth, require_role, TOKEN_COOKIE
from ..models.users import ROLE_ADMIN
from ..validation import require_fields


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _session_response(user, status_code: int = 200, message: str = "Login successful"):
    session, token = session_service.create_session(
        user_id=user.id,
        user_agent=request.headers.get("User-Agent"),
        ip_address=request.remote_addr,
    )
    response = jsonify({
        "success": True,
        "message": message,
        "user": user.to_dict(),
        "token": token,
        "expires_at": session.to_dict()["expires_at"],
    })
    response.set_cookie(
        TOKEN_COOKIE,
        token,
        max_age=current_app.config["SESSION_HOURS"] * 3600,
        httponly=True,
        samesite="Lax",
    )
    return response, status_code


@auth_bp.post("/create")
def register_route():
    """Register a customer or outlet account."""
    user = auth_service.register(request.get_json(silent=True) or {})
    return jsonify({"success": True, "message": "User created successfully", "user": user.to_dict()}), 201


@auth_bp.post("/login")
def login_route():
    data = require_fields(request.get_json(silent=True), "email", "password")
    user = auth_service.authenticate(data["email"], data["password"])
    return _session_response(user)


@auth_bp.post("/create/google")
def google_route():
    user = auth_service.google_sign_in(request.get_json(silent=True) or {})
    return _session_response(user, message="Google sign-in successful")


@auth_bp.post("/logout")
@require_auth
def logout_route():
    session_service.revoke_session(g.token)
    response = jsonify({"success": True, "message": "User has been logged out"})
    response.delete_cookie(TOKEN_COOKIE)
    return response


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({"success": True, "user": g.current_user.to_dict()})


@auth_bp.put("/password")
@require_auth
def change_password_route():
    """Change the caller's password; other sessions are signed out."""
    auth_service.change_password(g.current_user, request.get_json(silent=True) or {}, keep_token=g.token)
    return jsonify({"success": True, "message": "Password updated successfully"})


@auth_bp.put("/update/<int:user_id>")
@require_auth
def update_route(user_id: int):
    user = auth_service.update_user(g.current_user, user_id, request.get_json(silent=True) or {})
    return jsonify({"success": True, "user": user.to_dict()})


@auth_bp.get("/get-all-users")
@require_auth
@require_role(ROLE_ADMIN)
def list_users_route():
    users = auth_service.list_users(role=request.args.get("role"))
    return jsonify({"success": True, "count": len(users), "users": [u.to_dict() for u in users]})


@auth_bp.delete("/delete/<int:user_id>")
@require_auth
@require_role(ROLE_ADMIN)
def delete_route(user_id: int):
    auth_service.delete_user(user_id)
    return jsonify({"success": True, "message": "User has been deleted"})


@auth_bp.post("/entitlements")
@require_auth
@require_role(ROLE_ADMIN)
def grant_entitlement_route():
    entitlement = auth_service.grant_entitlement(g.current_user, request.get_json(silent=True) or {})
    return jsonify({"success": True, "entitlement": entitlement.to_dict()}), 201


@auth_bp.get("/outlets/pending")
@require_auth
@require_role(ROLE_ADMIN)
def pending_outlets_route():
    outlets = auth_service.list_pending_outlets()
    return jsonify({"success": True, "count": len(outlets), "outlets": [o.to_dict() for o in outlets]})


@auth_bp.put("/outlets/<int:outlet_id>/verify")
@require_auth
@require_role(ROLE_ADMIN)
def verify_outlet_route(outlet_id: int):
    outlet = auth_service.verify_outlet(outlet_id)
    return jsonify({"success": True, "message": "Outlet verified successfully", "outlet": outlet.to_dict()})
