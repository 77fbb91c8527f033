# Overview: Service-layer operations for login sessions; opaque bearer tokens hashed at rest.

"""
Session Service

The plaintext token leaves the server once, at login (JSON body and the
access_token cookie). Only its SHA-256 digest is stored. A session is live
while it is unrevoked, unexpired, and its user is active.
"""

import hashlib
import secrets
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import SessionToken, User
from bfactory.time_utils import utcnow


# Revoked or expired rows are kept this long for auditing
RETENTION_DAYS = 30


def generate_token() -> str:
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """SHA-256 hex digest; tokens carry 256 bits of entropy so no salt."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _unrevoked(token: str):
    return db.session.query(SessionToken).filter(
        SessionToken.token_hash == hash_token(token),
        SessionToken.is_revoked.is_(False),
    )


def _revoke(session: SessionToken, reason: str, now=None) -> None:
    session.is_revoked = True
    session.revoked_at = now or utcnow()
    session.revoked_reason = reason


def create_session(
    user_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> tuple[SessionToken, str]:
    """
    Open a session for user_id.

    Returns (session row, plaintext token). The lifetime is SESSION_HOURS.
    """
    token = generate_token()
    now = utcnow()
    session = SessionToken(
        user_id=user_id,
        token_hash=hash_token(token),
        created_at=now,
        expires_at=now + timedelta(hours=current_app.config.get("SESSION_HOURS", 24)),
        user_agent=(user_agent or "")[:255] or None,
        ip_address=ip_address,
        is_revoked=False,
    )
    db.session.add(session)
    db.session.commit()
    return session, token


def validate_session(token: str) -> User | None:
    """
    Resolve a token to its user, or None.

    A session whose user has been deactivated is revoked on sight.
    """
    session = _unrevoked(token).first()
    if session is None:
        return None

    now = utcnow()
    if session.expires_at < now:
        return None

    user = session.user
    if user is None or not user.is_active:
        _revoke(session, "User account deactivated", now)
        db.session.commit()
        return None
    return user


def revoke_session(token: str, reason: str = "User logout") -> bool:
    session = _unrevoked(token).first()
    if session is None:
        return False
    _revoke(session, reason)
    db.session.commit()
    return True


def revoke_all_user_sessions(
    user_id: int, reason: str, *, commit: bool = True, keep_token: str | None = None
) -> int:
    """
    Revoke every live session of a user (deactivation, password change).

    keep_token spares the session making the request.
    Returns the number of sessions revoked.
    """
    query = db.session.query(SessionToken).filter(
        SessionToken.user_id == user_id, SessionToken.is_revoked.is_(False)
    )
    if keep_token:
        query = query.filter(SessionToken.token_hash != hash_token(keep_token))
    count = (
        query
        .update(
            {
                SessionToken.is_revoked: True,
                SessionToken.revoked_at: utcnow(),
                SessionToken.revoked_reason: reason,
            },
            synchronize_session=False,
        )
    )
    if commit:
        db.session.commit()
    return count


def cleanup_expired_sessions() -> int:
    """Delete dead sessions older than RETENTION_DAYS (`flask maintenance cleanup-sessions`)."""
    now = utcnow()
    deleted = (
        db.session.query(SessionToken)
        .filter(
            db.or_(SessionToken.expires_at < now, SessionToken.is_revoked.is_(True)),
            SessionToken.created_at < now - timedelta(days=RETENTION_DAYS),
        )
        .delete(synchronize_session=False)
    )
    db.session.commit()
    return deleted
