# Overview: Flask API route for service health; database reachability and gateway configuration.

import time

from flask import Blueprint, current_app

from ..extensions import db
from ..models import Order, SessionToken, User
from bfactory.time_utils import utcnow, to_utc_z


system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """Run a few cheap counts and time them."""
    started = time.perf_counter()
    try:
        details = {
            "users": db.session.query(User).count(),
            "orders": db.session.query(Order).count(),
            "active_sessions": db.session.query(SessionToken).filter_by(is_revoked=False).count(),
        }
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round((time.perf_counter() - started) * 1000, 2),
            "error": "Database error",
        }
    return {
        "status": "healthy",
        "latency_ms": round((time.perf_counter() - started) * 1000, 2),
        "details": details,
    }


def gateway_configuration() -> dict:
    config = current_app.config
    return {
        "paystack": bool(config.get("PAYSTACK_SECRET_KEY")),
        "mtn_momo": bool(config.get("MTN_CONSUMER_KEY") and config.get("MTN_CONSUMER_SECRET")),
        "ai_assistant": bool(config.get("GITHUB_TOKEN")),
    }


@system_bp.get("/health")
def health():
    """
    200 while the database answers, 503 otherwise.

    Unconfigured gateways are reported but only degrade their features.
    """
    database = check_database_health()
    return {
        "status": database["status"],
        "timestamp": to_utc_z(utcnow()),
        "checks": {"database": database, "gateways": gateway_configuration()},
    }, 503 if database["status"] == "unhealthy" else 200
