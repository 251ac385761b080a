"""
User-initiated billing flows: checkout, billing portal, status and cancel.

These flows never change the subscription state themselves; the provider
confirms every change through a webhook that the reconciler applies.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError

from lessonhub.errors import ValidationError
from lessonhub.extensions import db
from lessonhub.models.subscription import SubscriptionRecord
from lessonhub.models.user import User
from lessonhub.services.billing_client import BillingClient

logger = logging.getLogger(__name__)

NO_SUBSCRIPTION_MESSAGE = "No subscription found for this user"


def _isoformat(timestamp):
    if timestamp is None:
        return None
    return datetime.fromtimestamp(int(timestamp), tz=timezone.utc).isoformat()


class SubscriptionService:

    def __init__(self, billing_client: BillingClient):
        self.billing = billing_client

    def ensure_customer(self, user: User) -> str:
        """Create the provider customer on first use and remember its id."""
        if user.stripe_customer_id:
            return user.stripe_customer_id

        customer = self.billing.create_customer(
            email=user.email,
            name=user.full_name,
            metadata={"userId": user.id},
        )
        try:
            user.stripe_customer_id = customer["id"]
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            raise

        logger.info("Billing customer created", extra={"user_id": user.id, "customer_id": customer["id"]})
        return user.stripe_customer_id

    def create_checkout_session(self, user: User, price_id: str, success_url: str, cancel_url: str) -> dict:
        customer_id = self.ensure_customer(user)
        session = self.billing.create_checkout_session(customer_id, price_id, success_url, cancel_url)
        return {"sessionId": session.get("id"), "url": session.get("url")}

    def create_billing_portal_session(self, user: User, return_url: str) -> dict:
        if not user.stripe_customer_id:
            raise ValidationError(NO_SUBSCRIPTION_MESSAGE)
        session = self.billing.create_billing_portal_session(user.stripe_customer_id, return_url)
        return {"url": session.get("url")}

    def get_status(self, user: User) -> dict:
        if not user.stripe_subscription_id:
            return {"hasSubscription": False, "subscription": None}

        remote = self.billing.get_subscription(user.stripe_subscription_id)
        local = SubscriptionRecord.query.filter_by(user_id=user.id).first()

        return {
            "hasSubscription": True,
            "subscription": {
                "id": remote.get("id"),
                "status": remote.get("status"),
                "currentPeriodStart": _isoformat(remote.get("current_period_start")),
                "currentPeriodEnd": _isoformat(remote.get("current_period_end")),
                "cancelAtPeriodEnd": bool(remote.get("cancel_at_period_end")),
                "localStatus": local.status if local else None,
                # Entitlement comes from the stored snapshot only
                "isActive": user.has_active_subscription(),
            },
        }

    def cancel(self, user: User) -> dict:
        if not user.stripe_subscription_id:
            raise ValidationError(NO_SUBSCRIPTION_MESSAGE)

        subscription = self.billing.cancel_subscription(user.stripe_subscription_id, at_period_end=True)
        logger.info(
            "Cancellation requested",
            extra={"user_id": user.id, "subscription_id": user.stripe_subscription_id},
        )
        return {
            "cancelAtPeriodEnd": bool(subscription.get("cancel_at_period_end")),
            "currentPeriodEnd": _isoformat(subscription.get("current_period_end")),
        }
