import hashlib
import hmac
import json
import time
from datetime import datetime, timedelta

import pytest
from faker import Faker

from lessonhub import create_app
from lessonhub.domain.entitlements import SubscriptionStatus
from lessonhub.errors import PaymentProviderError
from lessonhub.extensions import db
from lessonhub.models import Lesson, User, UserRole
from lessonhub.services.billing_client import (
    STRIPE_SIGNATURE_HEADER,
    BillingClient,
    verify_webhook_payload,
)

# Initialize Faker for generating test data
fake = Faker()

WEBHOOK_SECRET = "whsec_test_secret"
DEFAULT_PASSWORD = "Password123"
WEBHOOK_URL = "/api/subscriptions/webhook"


# Custom pytest marks for organizing tests
def pytest_configure(config):
    config.addinivalue_line(
        "markers",
        "db: mark test as database-intensive"
    )
    config.addinivalue_line(
        "markers",
        "auth: mark test as authentication-related"
    )
    config.addinivalue_line(
        "markers",
        "payment: mark test as payment-related"
    )
    config.addinivalue_line(
        "markers",
        "webhook: mark test as exercising provider webhooks"
    )


class FakeBillingClient(BillingClient):
    """In-memory provider; webhook signatures are checked exactly like Stripe's."""

    def __init__(self, webhook_secret=WEBHOOK_SECRET):
        self.webhook_secret = webhook_secret
        self.customers = {}
        self.subscriptions = {}
        self.checkout_sessions = []
        self.portal_sessions = []
        self.fail_with = None

    def create_customer(self, email, name, metadata=None):
        customer_id = f"cus_fake_{len(self.customers) + 1}"
        self.customers[customer_id] = {"id": customer_id, "email": email, "name": name, "metadata": metadata or {}}
        return self.customers[customer_id]

    def create_checkout_session(self, customer_id, price_id, success_url, cancel_url):
        session = {
            "id": f"cs_test_{len(self.checkout_sessions) + 1}",
            "url": f"https://checkout.stripe.test/{customer_id}",
            "customer": customer_id,
            "price": price_id,
        }
        self.checkout_sessions.append(session)
        return session

    def create_billing_portal_session(self, customer_id, return_url):
        session = {"id": f"bps_{len(self.portal_sessions) + 1}", "url": f"https://billing.stripe.test/{customer_id}"}
        self.portal_sessions.append(session)
        return session

    def get_subscription(self, subscription_id):
        if self.fail_with is not None:
            raise self.fail_with
        if subscription_id not in self.subscriptions:
            raise PaymentProviderError("No such subscription", status_code=400)
        return dict(self.subscriptions[subscription_id])

    def cancel_subscription(self, subscription_id, at_period_end=True):
        subscription = self.get_subscription(subscription_id)
        subscription["cancel_at_period_end"] = at_period_end
        self.subscriptions[subscription_id] = subscription
        return dict(subscription)

    def construct_event(self, payload, signature_header):
        return verify_webhook_payload(payload, signature_header, self.webhook_secret)


# ========== PROVIDER PAYLOAD HELPERS ==========

def to_timestamp(value):
    return int((value - datetime(1970, 1, 1)).total_seconds())


def sign_payload(payload, secret=WEBHOOK_SECRET, timestamp=None):
    """Build a Stripe-Signature header for a raw body"""
    timestamp = timestamp or int(time.time())
    signature = hmac.new(
        secret.encode("utf-8"),
        f"{timestamp}.{payload}".encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()
    return f"t={timestamp},v1={signature}"


def subscription_object(customer_id, status="active", subscription_id="sub_test_123", period_end=None, **overrides):
    period_end = period_end or datetime.utcnow().replace(microsecond=0) + timedelta(days=30)
    subscription = {
        "id": subscription_id,
        "object": "subscription",
        "customer": customer_id,
        "status": status,
        "current_period_start": to_timestamp(period_end - timedelta(days=30)),
        "current_period_end": to_timestamp(period_end),
        "cancel_at_period_end": False,
    }
    subscription.update(overrides)
    return subscription


def make_event(event_type, data_object, created=None, event_id=None):
    return {
        "id": event_id or f"evt_{fake.uuid4().replace('-', '')[:24]}",
        "object": "event",
        "type": event_type,
        "created": created or int(time.time()),
        "data": {"object": data_object},
    }


def post_webhook(client, event, secret=WEBHOOK_SECRET, signature=None):
    payload = json.dumps(event)
    return client.post(
        WEBHOOK_URL,
        data=payload,
        content_type="application/json",
        headers={STRIPE_SIGNATURE_HEADER: signature if signature is not None else sign_payload(payload, secret)},
    )


# ========== APPLICATION FIXTURES ==========

@pytest.fixture()
def billing_client():
    return FakeBillingClient()


@pytest.fixture()
def app(billing_client):
    """Fresh application and in-memory database per test"""
    app = create_app("testing", billing_client=billing_client)

    with app.app_context():
        db.create_all()

        yield app

        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    """Test client with helper methods"""
    client = app.test_client()

    def login(self, email, password=DEFAULT_PASSWORD):
        return self.post("/api/auth/login", json={
            "email": email,
            "password": password
        })

    def authenticated_get(self, url, token=None, **kwargs):
        headers = kwargs.pop("headers", {})
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return self.get(url, headers=headers, **kwargs)

    def authenticated_post(self, url, token=None, **kwargs):
        headers = kwargs.pop("headers", {})
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return self.post(url, headers=headers, **kwargs)

    def authenticated_put(self, url, token=None, **kwargs):
        headers = kwargs.pop("headers", {})
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return self.put(url, headers=headers, **kwargs)

    def authenticated_delete(self, url, token=None, **kwargs):
        headers = kwargs.pop("headers", {})
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return self.delete(url, headers=headers, **kwargs)

    client.login = login.__get__(client)
    client.authenticated_get = authenticated_get.__get__(client)
    client.authenticated_post = authenticated_post.__get__(client)
    client.authenticated_put = authenticated_put.__get__(client)
    client.authenticated_delete = authenticated_delete.__get__(client)

    return client


@pytest.fixture()
def token_service(app):
    return app.extensions["token_service"]


# ========== DATA FIXTURES ==========

@pytest.fixture
def user_data():
    """Valid registration payload"""
    return {
        "email": fake.unique.email().lower(),
        "password": DEFAULT_PASSWORD,
        "firstName": fake.first_name(),
        "lastName": fake.last_name(),
    }


@pytest.fixture
def create_user(app):
    """Factory persisting a user, optionally with a subscription snapshot"""
    def _create_user(email=None, password=DEFAULT_PASSWORD, role=UserRole.USER, status=None,
                     customer_id=None, subscription_id=None, period_end=None):
        user = User(
            email=email or fake.unique.email().lower(),
            first_name=fake.first_name(),
            last_name=fake.last_name(),
            role=role,
            subscription_status=(status or SubscriptionStatus.INACTIVE).value,
            stripe_customer_id=customer_id,
            stripe_subscription_id=subscription_id,
            current_period_end=period_end,
        )
        user.set_password(password)
        db.session.add(user)
        db.session.commit()
        return user

    return _create_user


@pytest.fixture
def user(create_user):
    return create_user()


@pytest.fixture
def subscriber(create_user):
    return create_user(
        status=SubscriptionStatus.ACTIVE,
        customer_id="cus_subscriber",
        subscription_id="sub_test_123",
        period_end=datetime.utcnow() + timedelta(days=30),
    )


@pytest.fixture
def admin(create_user):
    return create_user(role=UserRole.ADMIN)


@pytest.fixture
def access_token(token_service):
    """Issue an access token for a persisted user"""
    def _access_token(user):
        return token_service.issue_access(user)

    return _access_token


@pytest.fixture
def lesson_factory(app):
    def _lesson_factory(**overrides):
        data = {
            "title": fake.sentence(nb_words=4),
            "description": fake.paragraph(),
            "content": fake.text(),
            "duration": fake.random_int(min=5, max=120),
            "category": "programming",
            "tags": ["python"],
            "is_premium": False,
            "author": fake.name(),
            "order": 0,
        }
        data.update(overrides)
        lesson = Lesson(**data)
        db.session.add(lesson)
        db.session.commit()
        return lesson

    return _lesson_factory


@pytest.fixture
def free_lesson(lesson_factory):
    return lesson_factory(title="Free lesson", is_premium=False)


@pytest.fixture
def premium_lesson(lesson_factory):
    return lesson_factory(title="Premium lesson", is_premium=True)
