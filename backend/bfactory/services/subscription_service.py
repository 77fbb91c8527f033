# Overview: Service-layer operations for subscriptions; encapsulates business logic and database work.

"""
Subscription Service

Plans are fixed-term: free runs 14 days, pro runs one calendar month.
A subscription counts only while status == active AND end_date is in the
future. Cancelling keeps end_date; expiry flips status instead of
deleting the row.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from ..extensions import db
from ..models import Entitlement, Payment, Subscription, User
from ..models.users import ROLE_ADMIN
from ..validation import (
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
    parse_choice,
    parse_int,
    require_fields,
)
from bfactory.time_utils import add_months, utcnow


PLAN_FREE = "free"
PLAN_PRO = "pro"
VALID_PLANS = (PLAN_FREE, PLAN_PRO)

STATUS_ACTIVE = "active"
STATUS_CANCELLED = "cancelled"
STATUS_EXPIRED = "expired"

FREE_TRIAL_DAYS = 14

PLAN_FEATURES = {
    PLAN_FREE: ["Basic Analytics", "Limited Product Listings", "Standard Support"],
    PLAN_PRO: [
        "Advanced Analytics",
        "Unlimited Product Listings",
        "Priority Support",
        "Featured Listings",
        "Custom Branding",
    ],
}

# Pesewas (GHS 300.00 / month)
PLAN_PRICES = {PLAN_FREE: 0, PLAN_PRO: 30000}


def plan_window(plan: str, start: datetime) -> datetime:
    """End date of a plan started at `start`."""
    if plan == PLAN_FREE:
        return start + timedelta(days=FREE_TRIAL_DAYS)
    return add_months(start, 1)


def _get(subscription_id) -> Subscription:
    subscription = db.session.get(Subscription, parse_int(subscription_id, "subscriptionId", minimum=1))
    if not subscription:
        raise NotFoundError("Subscription not found")
    return subscription


def _ensure_owner_or_admin(actor: User, subscription: Subscription) -> None:
    if actor.role != ROLE_ADMIN and subscription.user_id != actor.id:
        raise PermissionDeniedError("Not authorized to manage this subscription")


def _payment_id(value) -> int | None:
    if value in (None, ""):
        return None
    payment_id = parse_int(value, "paymentId", minimum=1)
    if not db.session.get(Payment, payment_id):
        raise NotFoundError("Payment not found")
    return payment_id


def _active_query(user_id: int):
    return db.session.query(Subscription).filter(
        Subscription.user_id == user_id,
        Subscription.status == STATUS_ACTIVE,
        Subscription.end_date > utcnow(),
    )


def get_active_for_user(user_id: int) -> Subscription | None:
    return _active_query(user_id).order_by(Subscription.end_date.desc()).first()


def _ensure_no_other_active(subscription: Subscription) -> None:
    """Reactivating is refused while the user holds a different live plan."""
    other = _active_query(subscription.user_id).filter(Subscription.id != subscription.id).first()
    if other:
        raise ValidationError("User already has an active subscription")


def create(actor: User, data: dict) -> Subscription:
    """
    Start a subscription for the actor (admins may pass userId).

    Raises:
        ValidationError: bad plan, or the user already has an active plan
        NotFoundError: unknown user or payment
    """
    require_fields(data, "plan")
    plan = parse_choice(data["plan"], "plan", VALID_PLANS)

    user_id = actor.id
    if data.get("userId") not in (None, ""):
        user_id = parse_int(data["userId"], "userId", minimum=1)
        if user_id != actor.id and actor.role != ROLE_ADMIN:
            raise PermissionDeniedError("Not authorized to subscribe another user")
        if not db.session.get(User, user_id):
            raise NotFoundError("User not found")

    if get_active_for_user(user_id):
        raise ValidationError("User already has an active subscription")

    start = utcnow()
    subscription = Subscription(
        user_id=user_id,
        plan=plan,
        status=STATUS_ACTIVE,
        start_date=start,
        end_date=plan_window(plan, start),
        auto_renew=bool(data.get("autoRenew", False)),
        payment_id=_payment_id(data.get("paymentId")),
        features=list(PLAN_FEATURES[plan]),
        price_cents=PLAN_PRICES[plan],
        currency="GHS",
    )
    db.session.add(subscription)
    db.session.commit()
    return subscription


def renew(actor: User, data: dict) -> Subscription:
    """Restart the current plan's window from now, expired or not."""
    require_fields(data, "subscriptionId")
    subscription = _get(data["subscriptionId"])
    _ensure_owner_or_admin(actor, subscription)
    _ensure_no_other_active(subscription)

    start = utcnow()
    subscription.start_date = start
    subscription.end_date = plan_window(subscription.plan, start)
    subscription.status = STATUS_ACTIVE
    subscription.payment_id = _payment_id(data.get("paymentId"))
    db.session.commit()
    return subscription


def upgrade(actor: User, data: dict) -> Subscription:
    require_fields(data, "subscriptionId")
    subscription = _get(data["subscriptionId"])
    _ensure_owner_or_admin(actor, subscription)

    if subscription.plan == PLAN_PRO:
        raise ValidationError("Subscription is already on pro plan")
    _ensure_no_other_active(subscription)

    start = utcnow()
    subscription.plan = PLAN_PRO
    subscription.start_date = start
    subscription.end_date = plan_window(PLAN_PRO, start)
    subscription.status = STATUS_ACTIVE
    subscription.payment_id = _payment_id(data.get("paymentId"))
    subscription.features = list(PLAN_FEATURES[PLAN_PRO])
    subscription.price_cents = PLAN_PRICES[PLAN_PRO]
    db.session.commit()
    return subscription


def cancel(actor: User, subscription_id) -> Subscription:
    subscription = _get(subscription_id)
    _ensure_owner_or_admin(actor, subscription)
    subscription.status = STATUS_CANCELLED
    db.session.commit()
    return subscription


def list_all() -> list[Subscription]:
    return (
        db.session.query(Subscription)
        .order_by(Subscription.created_at.desc(), Subscription.id.desc())
        .all()
    )


def expire_overdue(now: datetime | None = None) -> int:
    """
    Flip active subscriptions past their end_date to expired.

    Returns the number of rows changed.
    """
    now = now or utcnow()
    count = (
        db.session.query(Subscription)
        .filter(Subscription.status == STATUS_ACTIVE, Subscription.end_date <= now)
        .update({Subscription.status: STATUS_EXPIRED}, synchronize_session=False)
    )
    db.session.commit()
    return count


def has_feature_access(user: User, feature: str = "analytics") -> bool:
    """
    True for admins, holders of an unexpired entitlement for `feature`,
    or users with an active subscription.
    """
    if user.role == ROLE_ADMIN:
        return True

    now = utcnow()
    entitlement = (
        db.session.query(Entitlement.id)
        .filter(
            Entitlement.user_id == user.id,
            Entitlement.feature == feature,
            (Entitlement.expires_at.is_(None)) | (Entitlement.expires_at > now),
        )
        .first()
    )
    if entitlement:
        return True

    return get_active_for_user(user.id) is not None
