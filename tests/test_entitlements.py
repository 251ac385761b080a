from datetime import datetime, timedelta

import pytest

from lessonhub.domain.entitlements import SubscriptionSnapshot, SubscriptionStatus, is_active

NOW = datetime(2026, 1, 15, 12, 0, 0)


@pytest.mark.parametrize("status, period_end, expected", [
    (SubscriptionStatus.ACTIVE, NOW + timedelta(days=1), True),
    (SubscriptionStatus.ACTIVE, NOW - timedelta(seconds=1), False),
    (SubscriptionStatus.ACTIVE, NOW, False),
    (SubscriptionStatus.ACTIVE, None, False),
    (SubscriptionStatus.CANCELLED, NOW + timedelta(days=10), False),
    (SubscriptionStatus.PAST_DUE, NOW + timedelta(days=10), False),
    (SubscriptionStatus.INACTIVE, None, False),
])
def test_is_active(status, period_end, expected):
    snapshot = SubscriptionSnapshot(status=status, current_period_end=period_end)

    assert is_active(snapshot, NOW) is expected


def test_missing_snapshot_is_not_entitled():
    assert is_active(None, NOW) is False


def test_default_snapshot_is_inactive():
    snapshot = SubscriptionSnapshot()

    assert snapshot.status == SubscriptionStatus.INACTIVE
    assert is_active(snapshot, NOW) is False


def test_snapshot_serializes_camel_case():
    snapshot = SubscriptionSnapshot(
        status=SubscriptionStatus.ACTIVE,
        stripe_customer_id="cus_1",
        stripe_subscription_id="sub_1",
        current_period_end=NOW,
    )

    assert snapshot.to_dict() == {
        "status": "active",
        "stripeCustomerId": "cus_1",
        "stripeSubscriptionId": "sub_1",
        "currentPeriodEnd": NOW.isoformat(),
    }
