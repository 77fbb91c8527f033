# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication and User Management Service

Every account has exactly one role (user, outlet, admin). Passwords are
hashed with bcrypt and checked for strength on every write.

ADMIN SAFETY:
- Deleting, demoting or deactivating the last active admin is refused
- Only admins may change a user's role or status
"""

import re
import secrets

import bcrypt

from ..extensions import db
from ..models import User, Entitlement, SessionToken
from ..models.users import (
    ROLE_ADMIN,
    ROLE_OUTLET,
    ROLE_USER,
    STATUS_ACTIVE,
    VALID_ROLES,
    VALID_USER_STATUSES,
)
from ..validation import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
    check_length,
    parse_choice,
    parse_date_param,
    parse_int,
    require_fields,
)
from . import session_service
from bfactory.time_utils import utcnow


# Roles a visitor may pick for themselves on registration
SELF_SERVICE_ROLES = (ROLE_USER, ROLE_OUTLET)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character (!@#$%^&*(),.'":{}|<>)
    """
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt with cost factor 12.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    return _bcrypt_hash(password)


def _bcrypt_hash(password: str) -> str:
    salt = bcrypt.gensalt(rounds=12)
    return bcrypt.hashpw(password.encode('utf-8'), salt).decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Return True if password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed hash in the database
        return False


def _normalize_email(email: str) -> str:
    email = str(email).strip().lower()
    if not EMAIL_PATTERN.match(email):
        raise ValidationError("Invalid email address")
    return email


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


def find_by_email(email: str) -> User | None:
    return db.session.query(User).filter_by(email=str(email).strip().lower()).first()


def create_user(
    *,
    name: str,
    email: str,
    password: str,
    role: str = ROLE_USER,
    phone_number: str | None = None,
    profile_picture: str | None = None,
    store_name: str | None = None,
    description: str | None = None,
) -> User:
    """
    Create a user account.

    Raises:
        ValidationError: bad email/role/password
        ConflictError: email already registered
    """
    email = _normalize_email(email)
    role = parse_choice(role, "role", VALID_ROLES)

    if find_by_email(email):
        raise ConflictError("Email already exists")

    user = User(
        name=check_length(name, "name", 120),
        email=email,
        password_hash=hash_password(password),
        role=role,
        status=STATUS_ACTIVE,
        phone_number=check_length(phone_number, "phone_number", 32),
        profile_picture=profile_picture,
        store_name=check_length(store_name, "store_name", 120) if role == ROLE_OUTLET else None,
        description=description if role == ROLE_OUTLET else None,
    )
    db.session.add(user)
    db.session.commit()
    return user


def register(data: dict) -> User:
    """Self-service registration; admin accounts cannot be self-created."""
    require_fields(data, "name", "email", "password")
    role = (data.get("role") or data.get("usersRole") or ROLE_USER)
    role = parse_choice(role, "role", SELF_SERVICE_ROLES)
    return create_user(
        name=data["name"],
        email=data["email"],
        password=data["password"],
        role=role,
        phone_number=data.get("phoneNumber"),
        profile_picture=data.get("profilePicture"),
        store_name=data.get("storeName"),
        description=data.get("description"),
    )


def authenticate(email: str, password: str) -> User:
    """
    Check credentials and refresh last_login_at.

    Raises AuthenticationError for unknown email, wrong password, or an
    inactive account (same message for the first two).
    """
    user = find_by_email(email)
    if not user or not verify_password(password, user.password_hash):
        raise AuthenticationError("Invalid email or password")

    if not user.is_active:
        raise AuthenticationError("Account is inactive")

    user.last_login_at = utcnow()
    db.session.commit()
    return user


def google_sign_in(data: dict) -> User:
    """
    Log in a Google-authenticated user, creating the account on first sight.

    The identity provider has already vouched for the email; a random
    password is stored when none is supplied.
    """
    require_fields(data, "email", "name")
    existing = find_by_email(data["email"])
    if existing:
        if not existing.is_active:
            raise AuthenticationError("Account is inactive")
        existing.last_login_at = utcnow()
        db.session.commit()
        return existing

    role = parse_choice(data.get("role") or data.get("usersRole") or ROLE_USER, "role", SELF_SERVICE_ROLES)
    password = data.get("password")
    user = User(
        name=check_length(data["name"], "name", 120),
        email=_normalize_email(data["email"]),
        password_hash=hash_password(password) if password else _bcrypt_hash(secrets.token_urlsafe(32)),
        role=role,
        status=STATUS_ACTIVE,
        phone_number=data.get("phoneNumber"),
        profile_picture=data.get("profilePicture"),
        last_login_at=utcnow(),
    )
    db.session.add(user)
    db.session.commit()
    return user


def _active_admin_count(exclude_user_id: int | None = None) -> int:
    query = db.session.query(User).filter(User.role == ROLE_ADMIN, User.status == STATUS_ACTIVE)
    if exclude_user_id is not None:
        query = query.filter(User.id != exclude_user_id)
    return query.count()


def _guard_last_admin(user: User, action: str) -> None:
    if user.role == ROLE_ADMIN and user.is_active and _active_admin_count(exclude_user_id=user.id) == 0:
        raise ValidationError(f"Cannot {action} the last admin user")


def update_user(actor: User, user_id: int, data: dict) -> User:
    """
    Update a profile. Users may edit themselves; admins may edit anyone and
    are the only ones allowed to change role or status.
    """
    user = get_user(user_id)
    is_admin = actor.role == ROLE_ADMIN

    if not is_admin and actor.id != user.id:
        raise PermissionDeniedError("Access denied")

    if "name" in data and data["name"]:
        user.name = check_length(data["name"], "name", 120)
    if "email" in data and data["email"]:
        email = _normalize_email(data["email"])
        other = find_by_email(email)
        if other and other.id != user.id:
            raise ConflictError("Email already exists")
        user.email = email
    if "phoneNumber" in data:
        user.phone_number = check_length(data["phoneNumber"], "phone_number", 32)
    if "profilePicture" in data:
        user.profile_picture = data["profilePicture"]
    if user.role == ROLE_OUTLET:
        if "storeName" in data:
            user.store_name = check_length(data["storeName"], "store_name", 120)
        if "description" in data:
            user.description = data["description"]

    new_role = data.get("role") or data.get("usersRole")
    if new_role is not None:
        if not is_admin:
            raise PermissionDeniedError("Only admins can change roles")
        new_role = parse_choice(new_role, "role", VALID_ROLES)
        if new_role != ROLE_ADMIN:
            _guard_last_admin(user, "demote")
        user.role = new_role

    new_status = data.get("status")
    if new_status is not None:
        if not is_admin:
            raise PermissionDeniedError("Only admins can change account status")
        new_status = parse_choice(new_status, "status", VALID_USER_STATUSES)
        if new_status != STATUS_ACTIVE:
            _guard_last_admin(user, "deactivate")
            session_service.revoke_all_user_sessions(user.id, "User account deactivated", commit=False)
        user.status = new_status

    if data.get("password"):
        user.password_hash = hash_password(data["password"])

    db.session.commit()
    return user


def delete_user(user_id: int) -> None:
    """
    Delete a user account (admin action).

    Raises ValidationError when the target is the last active admin.
    """
    user = get_user(user_id)
    _guard_last_admin(user, "delete")
    db.session.query(SessionToken).filter_by(user_id=user.id).delete(synchronize_session=False)
    db.session.query(Entitlement).filter_by(user_id=user.id).delete(synchronize_session=False)
    db.session.delete(user)
    db.session.commit()


def list_users(role: str | None = None) -> list[User]:
    query = db.session.query(User)
    if role:
        query = query.filter(User.role == parse_choice(role, "role", VALID_ROLES))
    return query.order_by(User.created_at.desc(), User.id.desc()).all()


def grant_entitlement(actor: User, data: dict) -> Entitlement:
    """
    Grant (or refresh) a feature entitlement for a user.

    Replaces any previous grant of the same feature for that user.
    """
    require_fields(data, "userId", "feature")
    user = get_user(parse_int(data["userId"], "userId"))
    feature = check_length(data["feature"], "feature", 64)
    expires_at = parse_date_param(data.get("expiresAt"), "expiresAt")

    entitlement = db.session.query(Entitlement).filter_by(user_id=user.id, feature=feature).first()
    if entitlement is None:
        entitlement = Entitlement(user_id=user.id, feature=feature)
        db.session.add(entitlement)

    entitlement.granted_by_user_id = actor.id
    entitlement.granted_at = utcnow()
    entitlement.expires_at = expires_at
    entitlement.reason = check_length(data.get("reason"), "reason", 255)
    db.session.commit()
    return entitlement


def change_password(user: User, data: dict, *, keep_token: str | None = None) -> User:
    """
    Replace the caller's password after checking the current one.

    Every other session of the user is revoked; the one identified by
    keep_token stays signed in.
    """
    require_fields(data, "currentPassword", "newPassword")
    if not verify_password(str(data["currentPassword"]), user.password_hash):
        raise AuthenticationError("Current password is incorrect")

    user.password_hash = hash_password(str(data["newPassword"]))
    session_service.revoke_all_user_sessions(
        user.id, "Password changed", commit=False, keep_token=keep_token
    )
    db.session.commit()
    return user


def list_pending_outlets() -> list[User]:
    """Outlet accounts still waiting on an admin to verify them, oldest first."""
    return (
        db.session.query(User)
        .filter(User.role == ROLE_OUTLET, User.is_verified.is_(False))
        .order_by(User.created_at.asc(), User.id.asc())
        .all()
    )


def verify_outlet(outlet_id: int) -> User:
    outlet = db.session.get(User, outlet_id)
    if not outlet or outlet.role != ROLE_OUTLET:
        raise NotFoundError("Outlet not found")
    if not outlet.is_verified:
        outlet.is_verified = True
        outlet.verified_at = utcnow()
        db.session.commit()
    return outlet
