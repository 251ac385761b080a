from datetime import datetime, timedelta

import pytest

from lessonhub.domain.entitlements import SubscriptionStatus
from tests.conftest import make_event, post_webhook, subscription_object

PREMIUM_REQUIRED = "Premium subscription required to access this lesson"


class TestLessonDetail:

    def test_free_lesson_is_public(self, client, free_lesson):
        response = client.get(f"/api/lessons/{free_lesson.id}")

        assert response.status_code == 200
        assert response.get_json()["data"]["id"] == free_lesson.id

    def test_premium_lesson_anonymous(self, client, premium_lesson):
        response = client.get(f"/api/lessons/{premium_lesson.id}")

        assert response.status_code == 403
        assert response.get_json() == {"success": False, "message": PREMIUM_REQUIRED}

    def test_premium_lesson_without_subscription(self, client, user, premium_lesson, access_token):
        response = client.authenticated_get(f"/api/lessons/{premium_lesson.id}", token=access_token(user))

        assert response.status_code == 403
        assert response.get_json()["message"] == PREMIUM_REQUIRED

    def test_premium_lesson_with_subscription(self, client, subscriber, premium_lesson, access_token):
        response = client.authenticated_get(f"/api/lessons/{premium_lesson.id}", token=access_token(subscriber))

        assert response.status_code == 200
        assert response.get_json()["data"]["isPremium"] is True

    def test_expired_period_is_not_entitled(self, client, create_user, premium_lesson, access_token):
        lapsed = create_user(
            status=SubscriptionStatus.ACTIVE,
            customer_id="cus_lapsed",
            subscription_id="sub_lapsed",
            period_end=datetime.utcnow() - timedelta(minutes=1),
        )

        response = client.authenticated_get(f"/api/lessons/{premium_lesson.id}", token=access_token(lapsed))

        assert response.status_code == 403

    def test_invalid_token_is_treated_as_anonymous(self, client, free_lesson, premium_lesson):
        headers = {"Authorization": "Bearer garbage"}

        assert client.get(f"/api/lessons/{free_lesson.id}", headers=headers).status_code == 200
        assert client.get(f"/api/lessons/{premium_lesson.id}", headers=headers).status_code == 403

    def test_unknown_lesson(self, client):
        response = client.get("/api/lessons/does-not-exist")

        assert response.status_code == 404
        assert response.get_json() == {"success": False, "message": "Lesson not found"}

    @pytest.mark.webhook
    def test_cancellation_takes_effect_on_next_request(self, client, subscriber, premium_lesson, access_token):
        token = access_token(subscriber)
        url = f"/api/lessons/{premium_lesson.id}"
        assert client.authenticated_get(url, token=token).status_code == 200

        event = make_event(
            "customer.subscription.deleted",
            subscription_object(subscriber.stripe_customer_id, status="canceled", subscription_id="sub_test_123"),
        )
        assert post_webhook(client, event).status_code == 200

        response = client.authenticated_get(url, token=token)
        assert response.status_code == 403
        assert response.get_json()["message"] == PREMIUM_REQUIRED


class TestPremiumRoute:

    def test_requires_token(self, client, premium_lesson):
        response = client.get(f"/api/lessons/premium/{premium_lesson.id}")

        assert response.status_code == 401
        assert response.get_json()["message"] == "Access token is required"

    def test_requires_subscription(self, client, user, premium_lesson, access_token):
        response = client.authenticated_get(f"/api/lessons/premium/{premium_lesson.id}", token=access_token(user))

        assert response.status_code == 403
        assert response.get_json()["message"] == "Active subscription required to access this content"

    def test_subscriber(self, client, subscriber, premium_lesson, access_token):
        response = client.authenticated_get(
            f"/api/lessons/premium/{premium_lesson.id}", token=access_token(subscriber)
        )

        assert response.status_code == 200


class TestListing:

    def test_anonymous_sees_only_free_lessons(self, client, free_lesson, premium_lesson):
        response = client.get("/api/lessons")

        data = response.get_json()["data"]
        assert [item["id"] for item in data["items"]] == [free_lesson.id]
        assert data["total"] == 1

    def test_premium_filter_is_overridden_for_unentitled(self, client, user, free_lesson, premium_lesson, access_token):
        response = client.authenticated_get("/api/lessons?isPremium=true", token=access_token(user))

        assert response.status_code == 200
        assert [item["id"] for item in response.get_json()["data"]["items"]] == [free_lesson.id]

    def test_subscriber_sees_everything(self, client, subscriber, free_lesson, premium_lesson, access_token):
        response = client.authenticated_get("/api/lessons", token=access_token(subscriber))

        assert response.get_json()["data"]["total"] == 2

    def test_subscriber_premium_filter(self, client, subscriber, free_lesson, premium_lesson, access_token):
        response = client.authenticated_get("/api/lessons?isPremium=true", token=access_token(subscriber))

        assert [item["id"] for item in response.get_json()["data"]["items"]] == [premium_lesson.id]

    def test_pagination(self, client, lesson_factory):
        for order in range(5):
            lesson_factory(order=order)

        data = client.get("/api/lessons?page=2&limit=2").get_json()["data"]

        assert data["page"] == 2
        assert data["limit"] == 2
        assert data["total"] == 5
        assert data["totalPages"] == 3
        assert [item["order"] for item in data["items"]] == [2, 3]

    @pytest.mark.parametrize("query", ["page=0", "limit=1000", "page=abc", "isPremium=maybe"])
    def test_bad_query_parameters(self, client, query):
        assert client.get(f"/api/lessons?{query}").status_code == 400

    def test_category(self, client, lesson_factory):
        design = lesson_factory(category="design")
        lesson_factory(category="programming")

        data = client.get("/api/lessons/category/design").get_json()["data"]

        assert [item["id"] for item in data["items"]] == [design.id]

    def test_search(self, client, lesson_factory):
        match = lesson_factory(title="Mastering asyncio")
        lesson_factory(title="Intro to CSS", description="Layouts", tags=["css"])
        lesson_factory(title="Hidden asyncio", is_premium=True)

        data = client.get("/api/lessons/search?q=asyncio").get_json()["data"]

        assert [item["id"] for item in data["items"]] == [match.id]

    def test_search_requires_query(self, client):
        response = client.get("/api/lessons/search")

        assert response.status_code == 400
        assert response.get_json()["message"] == "Search query is required"


class TestLessonAdmin:

    @pytest.fixture
    def payload(self):
        return {
            "title": "Decorators",
            "description": "Wrapping functions",
            "content": "def decorator(fn): ...",
            "duration": 30,
            "category": "programming",
            "author": "Staff",
            "tags": ["python"],
            "isPremium": True,
        }

    def test_admin_creates_lesson(self, client, admin, access_token, payload):
        response = client.authenticated_post("/api/lessons", token=access_token(admin), json=payload)

        assert response.status_code == 201
        data = response.get_json()["data"]
        assert data["title"] == "Decorators"
        assert data["isPremium"] is True

    def test_user_cannot_create_lesson(self, client, subscriber, access_token, payload):
        response = client.authenticated_post("/api/lessons", token=access_token(subscriber), json=payload)

        assert response.status_code == 403
        assert response.get_json()["message"] == "Insufficient permissions"

    def test_create_validation(self, client, admin, access_token, payload):
        payload["duration"] = 0
        del payload["title"]

        response = client.authenticated_post("/api/lessons", token=access_token(admin), json=payload)

        assert response.status_code == 400
        assert len(response.get_json()["errors"]) == 2

    def test_admin_updates_lesson(self, client, admin, access_token, free_lesson):
        response = client.authenticated_put(
            f"/api/lessons/{free_lesson.id}", token=access_token(admin), json={"isPremium": True}
        )

        assert response.status_code == 200
        assert response.get_json()["data"]["isPremium"] is True

    def test_admin_deletes_lesson(self, client, admin, access_token, free_lesson):
        lesson_id = free_lesson.id

        response = client.authenticated_delete(f"/api/lessons/{lesson_id}", token=access_token(admin))

        assert response.status_code == 200
        assert client.get(f"/api/lessons/{lesson_id}").status_code == 404
