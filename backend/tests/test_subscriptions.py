"""
Subscription tests: plan windows, single active plan, renew/upgrade/cancel,
expiry, and the analytics feature gate.
"""

from datetime import datetime, timedelta

import pytest

from bfactory.extensions import db
from bfactory.models import Entitlement, Subscription
from bfactory.services import subscription_service
from bfactory.services.subscription_service import PLAN_FEATURES, plan_window
from bfactory.time_utils import utcnow
from bfactory.validation import NotFoundError, PermissionDeniedError, ValidationError


class TestPlanWindows:

    def test_free_is_fourteen_days(self):
        start = datetime(2026, 3, 5, 9, 30)
        assert plan_window("free", start) - start == timedelta(days=14)

    def test_pro_is_one_calendar_month(self):
        assert plan_window("pro", datetime(2026, 3, 5, 9, 30)) == datetime(2026, 4, 5, 9, 30)

    def test_pro_clamps_to_month_end(self):
        assert plan_window("pro", datetime(2026, 1, 31)) == datetime(2026, 2, 28)
        assert plan_window("pro", datetime(2028, 1, 31)) == datetime(2028, 2, 29)


class TestCreate:

    def test_free_plan(self, client, outlet, outlet_headers):
        resp = client.post("/api/route/subscription", json={"plan": "free"}, headers=outlet_headers)

        assert resp.status_code == 201
        sub = resp.json["subscription"]
        assert sub["user_id"] == outlet.id
        assert sub["status"] == "active"
        assert sub["price_cents"] == 0
        assert sub["features"] == PLAN_FEATURES["free"]
        assert resp.json["message"] == "Successfully subscribed to free plan"

    def test_pro_plan_price(self, db_session, outlet):
        sub = subscription_service.create(outlet, {"plan": "pro"})
        assert sub.price_cents == 30000
        assert sub.currency == "GHS"
        assert sub.end_date == plan_window("pro", sub.start_date)

    def test_second_active_subscription_is_rejected(self, client, outlet_headers):
        client.post("/api/route/subscription", json={"plan": "free"}, headers=outlet_headers)
        resp = client.post("/api/route/subscription", json={"plan": "pro"}, headers=outlet_headers)

        assert resp.status_code == 400
        assert resp.json["message"] == "User already has an active subscription"

    def test_expired_subscription_does_not_block(self, db_session, outlet):
        old = subscription_service.create(outlet, {"plan": "free"})
        old.end_date = utcnow() - timedelta(days=1)
        db_session.commit()

        assert subscription_service.create(outlet, {"plan": "pro"}).plan == "pro"

    def test_unknown_plan(self, db_session, outlet):
        with pytest.raises(ValidationError):
            subscription_service.create(outlet, {"plan": "platinum"})

    def test_cannot_subscribe_someone_else(self, db_session, outlet, other_outlet):
        with pytest.raises(PermissionDeniedError):
            subscription_service.create(outlet, {"plan": "free", "userId": other_outlet.id})

    def test_admin_can_subscribe_an_outlet(self, db_session, admin, outlet):
        sub = subscription_service.create(admin, {"plan": "free", "userId": outlet.id})
        assert sub.user_id == outlet.id


class TestLifecycle:

    @pytest.fixture
    def subscription(self, db_session, outlet):
        return subscription_service.create(outlet, {"plan": "free"})

    def test_lookup_by_user(self, client, outlet, outlet_headers, subscription):
        resp = client.get(f"/api/route/subscription/user/{outlet.id}", headers=outlet_headers)
        assert resp.json["hasActiveSubscription"] is True
        assert resp.json["subscription"]["id"] == subscription.id

    def test_cancel_keeps_end_date_and_drops_eligibility(self, client, outlet, outlet_headers, subscription):
        end_date = subscription.end_date

        resp = client.put(f"/api/route/subscription/cancel/{subscription.id}", headers=outlet_headers)
        assert resp.status_code == 200

        db.session.expire_all()
        cancelled = db.session.get(Subscription, subscription.id)
        assert cancelled.status == "cancelled"
        assert cancelled.end_date == end_date

        resp = client.get(f"/api/route/subscription/user/{outlet.id}", headers=outlet_headers)
        assert resp.json["hasActiveSubscription"] is False

    def test_renew_reactivates_expired(self, db_session, outlet, subscription):
        subscription.status = "expired"
        subscription.end_date = utcnow() - timedelta(days=3)
        db_session.commit()

        renewed = subscription_service.renew(outlet, {"subscriptionId": subscription.id})

        assert renewed.status == "active"
        assert renewed.end_date - renewed.start_date == timedelta(days=14)
        assert renewed.end_date > utcnow()

    def test_upgrade_to_pro(self, client, outlet_headers, subscription):
        resp = client.put(
            "/api/route/subscription/upgrade",
            json={"subscriptionId": subscription.id},
            headers=outlet_headers,
        )
        assert resp.status_code == 200
        body = resp.json["subscription"]
        assert body["plan"] == "pro"
        assert body["price_cents"] == 30000
        assert body["features"] == PLAN_FEATURES["pro"]

    def test_upgrade_when_already_pro(self, db_session, outlet, subscription):
        subscription_service.upgrade(outlet, {"subscriptionId": subscription.id})
        with pytest.raises(ValidationError):
            subscription_service.upgrade(outlet, {"subscriptionId": subscription.id})

    def test_renewing_old_plan_while_another_is_active(self, db_session, outlet, subscription):
        subscription_service.cancel(outlet, subscription.id)
        current = subscription_service.create(outlet, {"plan": "pro"})

        with pytest.raises(ValidationError, match="already has an active subscription"):
            subscription_service.renew(outlet, {"subscriptionId": subscription.id})

        db_session.expire_all()
        assert db_session.get(Subscription, subscription.id).status == "cancelled"
        assert subscription_service.get_active_for_user(outlet.id).id == current.id

    def test_upgrading_old_plan_while_another_is_active(self, client, db_session, outlet, outlet_headers, subscription):
        subscription_service.cancel(outlet, subscription.id)
        subscription_service.create(outlet, {"plan": "free"})

        resp = client.put(
            "/api/route/subscription/upgrade",
            json={"subscriptionId": subscription.id},
            headers=outlet_headers,
        )
        assert resp.status_code == 400

        active = (
            db_session.query(Subscription)
            .filter_by(user_id=outlet.id, status="active")
            .count()
        )
        assert active == 1

    def test_renewing_the_live_plan_is_allowed(self, db_session, outlet, subscription):
        renewed = subscription_service.renew(outlet, {"subscriptionId": subscription.id})
        assert renewed.id == subscription.id
        assert renewed.status == "active"

    def test_unknown_subscription(self, db_session, outlet):
        with pytest.raises(NotFoundError):
            subscription_service.renew(outlet, {"subscriptionId": 999})

    def test_list_all_is_admin_only(self, client, outlet_headers, admin_headers, subscription):
        assert client.get("/api/route/subscriptions", headers=outlet_headers).status_code == 403

        resp = client.get("/api/route/subscriptions", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["count"] == 1

    def test_expire_overdue_keeps_rows(self, db_session, outlet, subscription):
        subscription.end_date = utcnow() - timedelta(minutes=1)
        db_session.commit()

        assert subscription_service.expire_overdue() == 1

        db.session.expire_all()
        row = db.session.get(Subscription, subscription.id)
        assert row is not None
        assert row.status == "expired"


class TestFeatureAccess:

    def test_admin_always_has_access(self, db_session, admin):
        assert subscription_service.has_feature_access(admin) is True

    def test_outlet_without_subscription(self, db_session, outlet):
        assert subscription_service.has_feature_access(outlet) is False

    def test_entitlement_grants_access(self, db_session, outlet, admin):
        db_session.add(Entitlement(user_id=outlet.id, feature="analytics", granted_by_user_id=admin.id))
        db_session.commit()
        assert subscription_service.has_feature_access(outlet) is True

    def test_expired_entitlement_does_not(self, db_session, outlet):
        db_session.add(Entitlement(
            user_id=outlet.id,
            feature="analytics",
            expires_at=utcnow() - timedelta(days=1),
        ))
        db_session.commit()
        assert subscription_service.has_feature_access(outlet) is False

    def test_active_subscription_grants_access(self, db_session, outlet):
        subscription_service.create(outlet, {"plan": "free"})
        assert subscription_service.has_feature_access(outlet) is True
