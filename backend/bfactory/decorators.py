# Overview: Request and role decorators for API routes.

from functools import wraps
from flask import request, g

from .services import session_service, subscription_service
from .validation import AuthenticationError, PermissionDeniedError


TOKEN_COOKIE = "access_token"


def _extract_token() -> str | None:
    """Bearer header first, then the access_token cookie set at login."""
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header.split(" ", 1)[1].strip() or None
    return request.cookies.get(TOKEN_COOKIE) or None


def _load_user(token: str | None):
    if not token:
        return None
    return session_service.validate_session(token)


def require_auth(f):
    """
    Require a valid session.

    Sets g.current_user and g.token. Raises AuthenticationError (401) when
    the token is missing, unknown, expired, revoked, or belongs to an
    inactive account.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _extract_token()
        if not token:
            raise AuthenticationError("Authentication required")

        user = _load_user(token)
        if not user:
            raise AuthenticationError("Invalid or expired token")

        g.current_user = user
        g.token = token
        return f(*args, **kwargs)

    return decorated_function


def optional_auth(f):
    """Attach g.current_user when a valid token is present; None otherwise."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _extract_token()
        g.current_user = _load_user(token)
        g.token = token if g.current_user else None
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """
    Require one of the given roles. Must be stacked under @require_auth.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = getattr(g, "current_user", None)
            if user is None:
                raise AuthenticationError("Authentication required")
            if user.role not in roles:
                raise PermissionDeniedError("Access denied")
            return f(*args, **kwargs)

        return decorated_function
    return decorator


def require_subscription(feature: str = "analytics"):
    """
    Require an active subscription or an entitlement for `feature`.

    Admins always pass.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = getattr(g, "current_user", None)
            if user is None:
                raise AuthenticationError("Authentication required")
            if not subscription_service.has_feature_access(user, feature):
                raise PermissionDeniedError("An active subscription is required")
            return f(*args, **kwargs)

        return decorated_function
    return decorator
