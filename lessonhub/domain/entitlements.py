from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    CANCELLED = "cancelled"
    PAST_DUE = "past_due"


@dataclass(frozen=True)
class SubscriptionSnapshot:
    """
    Locally cached billing state embedded in a user.
    Only registration and the reconciler produce new snapshots.
    """
    status: SubscriptionStatus = SubscriptionStatus.INACTIVE
    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None
    current_period_end: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "stripeCustomerId": self.stripe_customer_id,
            "stripeSubscriptionId": self.stripe_subscription_id,
            "currentPeriodEnd": self.current_period_end.isoformat() if self.current_period_end else None,
        }


def is_active(snapshot: Optional[SubscriptionSnapshot], now: datetime) -> bool:
    """
    Pure entitlement predicate: active status and a period end in the future.
    Callers must pass a snapshot loaded during the current request.
    """
    if snapshot is None or snapshot.current_period_end is None:
        return False
    return snapshot.status == SubscriptionStatus.ACTIVE and snapshot.current_period_end > now
