"""
Tests for billing_api/routers/user_subscription.py
"""
import json

import httpx

from billing_api.crud import activity_log_crud, subscription_crud, user_crud
from billing_api.main import app
from billing_api.models.subscription import SubscriptionPlan, SubscriptionStatus
from billing_api.schemas.billing import SubscriptionCreate, UserCreate
from billing_api.services.creem_service import CreemService, get_creem_service

URL = "/api/user/subscription"


async def _subscribe(db, email, **kwargs):
    user = await user_crud.get_by_email(db, email) or await user_crud.create(db, obj_in=UserCreate(email=email))
    subscription = await subscription_crud.create(db, obj_in=SubscriptionCreate(
        user_id=user.id,
        plan=kwargs.pop("plan", SubscriptionPlan.STARTER),
        **kwargs,
    ))
    return subscription.id


class TestGetSubscription:
    async def test_returns_display_name_and_trial_flag(self, client, db, current_user):
        await _subscribe(db, current_user.email, status=SubscriptionStatus.TRIALING)

        response = await client.get(URL)

        assert response.status_code == 200
        subscription = response.json()["subscription"]
        assert subscription["plan"] == "starter"
        assert subscription["planDisplayName"] == "Basic"
        assert subscription["isTrial"] is True
        assert subscription["cancelAtPeriodEnd"] is False

    async def test_ignores_cancelled_subscriptions(self, client, db, current_user):
        await _subscribe(db, current_user.email, status=SubscriptionStatus.CANCELED)
        response = await client.get(URL)
        assert response.json() == {"success": True, "subscription": None}

    async def test_unknown_user_has_no_subscription(self, client):
        response = await client.get(URL)
        assert response.json()["subscription"] is None

    async def test_degraded_mode_is_503(self, degraded_client):
        response = await degraded_client.get(URL)
        assert response.status_code == 503


class TestCancelSubscription:
    async def test_cancel_at_period_end(self, client, db, current_user):
        subscription_id = await _subscribe(db, current_user.email, plan=SubscriptionPlan.PRO)

        response = await client.post(f"{URL}/cancel", json={})

        assert response.status_code == 200
        body = response.json()
        assert body["subscription"] == {"id": str(subscription_id), "cancelAtPeriodEnd": True, "status": "active"}
        subscription = await subscription_crud.get(db, subscription_id)
        assert subscription.cancel_at_period_end is True
        assert subscription.status == SubscriptionStatus.ACTIVE

        logs, _ = await activity_log_crud.get_multi(db)
        assert logs[0].action == "user.subscription.cancelled"
        assert logs[0].meta_data["plan"] == "pro"
        assert logs[0].meta_data["provider_cancelled"] is False

    async def test_cancel_immediately(self, client, db, current_user):
        subscription_id = await _subscribe(db, current_user.email)

        response = await client.post(f"{URL}/cancel", json={"cancelImmediately": True})

        assert response.json()["message"] == "Subscription cancelled immediately"
        subscription = await subscription_crud.get(db, subscription_id)
        assert subscription.status == SubscriptionStatus.CANCELED
        assert subscription.cancel_at_period_end is False

    async def test_already_pending_short_circuits(self, client, db, current_user):
        await _subscribe(db, current_user.email, cancel_at_period_end=True)

        response = await client.post(f"{URL}/cancel")

        assert response.json()["alreadyCancelled"] is True
        assert await activity_log_crud.count(db) == 0

    async def test_no_active_subscription_is_404(self, client):
        response = await client.post(f"{URL}/cancel", json={})
        assert response.status_code == 404

    async def test_cancels_at_provider_when_id_is_stored(self, client, db, current_user):
        await _subscribe(db, current_user.email, external_subscription_id="sub_creem_1")
        calls = []

        def handler(request):
            calls.append((request.url.path, json.loads(request.content)))
            return httpx.Response(200, json={"data": {"status": "canceled"}})

        creem = CreemService(api_key="creem_key", base_url="https://creem.test", transport=httpx.MockTransport(handler))
        app.dependency_overrides[get_creem_service] = lambda: creem

        response = await client.post(f"{URL}/cancel", json={"cancelImmediately": False})

        assert response.status_code == 200
        assert calls == [("/v1/subscriptions/sub_creem_1/cancel", {"cancelImmediately": False})]

    async def test_provider_failure_is_not_fatal(self, client, db, current_user):
        subscription_id = await _subscribe(db, current_user.email, external_subscription_id="sub_creem_2")

        def handler(request):
            return httpx.Response(500, json={"error": {"message": "upstream"}})

        creem = CreemService(api_key="creem_key", base_url="https://creem.test", transport=httpx.MockTransport(handler))
        app.dependency_overrides[get_creem_service] = lambda: creem

        response = await client.post(f"{URL}/cancel", json={})

        assert response.status_code == 200
        assert (await subscription_crud.get(db, subscription_id)).cancel_at_period_end is True
