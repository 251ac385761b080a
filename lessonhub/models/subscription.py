# subscription.py
from datetime import datetime, timedelta
import uuid

from lessonhub.extensions import db
from lessonhub.domain.entitlements import SubscriptionStatus

EXPIRING_SOON_WINDOW = timedelta(days=7)


class SubscriptionRecord(db.Model):
    """
    Durable mirror of the last-known provider subscription state, one row per user.
    Written only by the subscription reconciler.
    """

    __tablename__ = "subscriptions"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = db.Column(
        db.String(36),
        db.ForeignKey("users.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
        index=True,
    )

    stripe_customer_id = db.Column(db.String(100), nullable=False, index=True)
    stripe_subscription_id = db.Column(db.String(100), nullable=False, index=True)

    status = db.Column(db.String(20), nullable=False, default=SubscriptionStatus.INACTIVE.value)
    provider_status = db.Column(db.String(40), nullable=True)

    current_period_start = db.Column(db.DateTime, nullable=True)
    current_period_end = db.Column(db.DateTime, nullable=True)
    cancel_at_period_end = db.Column(db.Boolean, nullable=False, default=False)

    # Provider timestamp of the event whose state is stored here
    last_event_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    @property
    def is_active(self):
        return (
            self.status == SubscriptionStatus.ACTIVE.value
            and self.current_period_end is not None
            and self.current_period_end > datetime.utcnow()
        )

    @property
    def is_expiring_soon(self):
        if not self.is_active:
            return False
        return self.current_period_end - datetime.utcnow() <= EXPIRING_SOON_WINDOW

    def is_stale(self, event_at):
        """True when an event describes state older than what is stored"""
        if event_at is None or self.last_event_at is None:
            return False
        return event_at < self.last_event_at

    def is_superseded(self, event_at, subscription_id, period_end, initial=False):
        """
        True when an event must not overwrite the stored state.

        Provider timestamps are whole seconds, so events sharing the stored
        second are ordered by content: a creation event never follows another
        event of the same subscription, and a billing period never moves back.
        """
        if self.is_stale(event_at):
            return True
        if event_at is None or event_at != self.last_event_at:
            return False
        if initial and subscription_id == self.stripe_subscription_id:
            return True
        return (
            period_end is not None
            and self.current_period_end is not None
            and period_end < self.current_period_end
        )

    def to_dict(self):
        return {
            "id": self.id,
            "userId": self.user_id,
            "stripeCustomerId": self.stripe_customer_id,
            "stripeSubscriptionId": self.stripe_subscription_id,
            "status": self.status,
            "currentPeriodStart": self.current_period_start.isoformat() if self.current_period_start else None,
            "currentPeriodEnd": self.current_period_end.isoformat() if self.current_period_end else None,
            "cancelAtPeriodEnd": self.cancel_at_period_end,
            "isActive": self.is_active,
            "isExpiringSoon": self.is_expiring_soon,
        }

    def __repr__(self):
        return f"<SubscriptionRecord user={self.user_id} status={self.status}>"
