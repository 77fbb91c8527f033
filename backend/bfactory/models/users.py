from __future__ import annotations

from ..extensions import db
from bfactory.time_utils import to_utc_z


ROLE_USER = "user"
ROLE_OUTLET = "outlet"
ROLE_ADMIN = "admin"
VALID_ROLES = (ROLE_USER, ROLE_OUTLET, ROLE_ADMIN)

STATUS_ACTIVE = "active"
STATUS_INACTIVE = "inactive"
VALID_USER_STATUSES = (STATUS_ACTIVE, STATUS_INACTIVE)


class User(db.Model):
    """
    Account for customers, outlets (sellers) and admins.

    Outlets are users with role=outlet; store_name/description carry the
    storefront metadata. status=inactive blocks login without deleting
    order or payment history.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.Index("ix_users_role_status", "role", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(255), nullable=False, unique=True, index=True)

    # Bcrypt hashed password
    password_hash = db.Column(db.String(255), nullable=False)

    phone_number = db.Column(db.String(32), nullable=True)
    profile_picture = db.Column(db.String(512), nullable=True)

    role = db.Column(db.String(16), nullable=False, default=ROLE_USER)
    status = db.Column(db.String(16), nullable=False, default=STATUS_ACTIVE)

    # Outlet storefront
    store_name = db.Column(db.String(120), nullable=True)
    description = db.Column(db.Text, nullable=True)

    # Admin sign-off on an outlet storefront
    is_verified = db.Column(db.Boolean, nullable=False, default=False)
    verified_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    @property
    def is_active(self) -> bool:
        return self.status == STATUS_ACTIVE

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone_number": self.phone_number,
            "profile_picture": self.profile_picture,
            "role": self.role,
            "status": self.status,
            "store_name": self.store_name,
            "description": self.description,
            "is_verified": self.is_verified,
            "verified_at": to_utc_z(self.verified_at) if self.verified_at else None,
            "created_at": to_utc_z(self.created_at),
            "last_login_at": to_utc_z(self.last_login_at) if self.last_login_at else None,
        }


class SessionToken(db.Model):
    """
    Opaque bearer token for an authenticated user.

    Only the SHA-256 hash is stored; the plaintext goes to the client once.
    """
    __tablename__ = "session_tokens"
    __table_args__ = (
        db.Index("ix_session_tokens_user_active", "user_id", "is_revoked"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    token_hash = db.Column(db.String(255), nullable=False, unique=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    is_revoked = db.Column(db.Boolean, nullable=False, default=False, index=True)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    revoked_reason = db.Column(db.String(255), nullable=True)

    user_agent = db.Column(db.String(255), nullable=True)
    ip_address = db.Column(db.String(64), nullable=True)

    user = db.relationship("User", backref=db.backref("sessions", lazy=True, cascade="all, delete-orphan"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
            "expires_at": to_utc_z(self.expires_at),
            "is_revoked": self.is_revoked,
        }


class Entitlement(db.Model):
    """
    Explicit per-user feature grant (e.g. analytics without a subscription).

    AUDIT: records who granted it and why; optional expiry.
    """
    __tablename__ = "entitlements"
    __table_args__ = (
        db.UniqueConstraint("user_id", "feature", name="uq_entitlement_user_feature"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    feature = db.Column(db.String(64), nullable=False)

    granted_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    granted_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    expires_at = db.Column(db.DateTime(timezone=True), nullable=True)
    reason = db.Column(db.String(255), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "feature": self.feature,
            "granted_by_user_id": self.granted_by_user_id,
            "granted_at": to_utc_z(self.granted_at),
            "expires_at": to_utc_z(self.expires_at) if self.expires_at else None,
            "reason": self.reason,
        }
