"""
Brings the local subscription state in line with the billing provider.

Each webhook event is mapped onto two views of the same state: the snapshot
embedded in the user (read by the entitlement check) and the standalone
SubscriptionRecord. Both are overwritten with the provider's values, never
merged, in one transaction. Replaying an event is therefore harmless, and an
event older than the stored state is skipped.
"""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from lessonhub.domain.entitlements import SubscriptionSnapshot, SubscriptionStatus
from lessonhub.errors import UserNotFoundError
from lessonhub.extensions import db
from lessonhub.models.subscription import SubscriptionRecord
from lessonhub.models.user import User
from lessonhub.services.billing_client import BillingClient

logger = logging.getLogger(__name__)

SUBSCRIPTION_CREATED = "customer.subscription.created"
SUBSCRIPTION_UPDATED = "customer.subscription.updated"
SUBSCRIPTION_DELETED = "customer.subscription.deleted"
INVOICE_PAYMENT_SUCCEEDED = "invoice.payment_succeeded"
INVOICE_PAID = "invoice.paid"
INVOICE_PAYMENT_FAILED = "invoice.payment_failed"

# provider status -> SubscriptionRecord.status
RECORD_STATUS_MAP = {
    "active": SubscriptionStatus.ACTIVE,
    "past_due": SubscriptionStatus.PAST_DUE,
    "unpaid": SubscriptionStatus.PAST_DUE,
    "canceled": SubscriptionStatus.CANCELLED,
    "incomplete_expired": SubscriptionStatus.CANCELLED,
}


class ReconcileResult(str, Enum):
    APPLIED = "applied"
    STALE = "stale"
    IGNORED = "ignored"


class SubscriptionReconciler:

    def __init__(self, billing_client: BillingClient):
        self.billing = billing_client
        self._handlers = {
            SUBSCRIPTION_CREATED: self._on_subscription_created,
            SUBSCRIPTION_UPDATED: self._on_subscription_changed,
            SUBSCRIPTION_DELETED: self._on_subscription_deleted,
            INVOICE_PAYMENT_SUCCEEDED: self._on_invoice,
            INVOICE_PAID: self._on_invoice,
            INVOICE_PAYMENT_FAILED: self._on_invoice,
        }

    def handle_event(self, event: Dict[str, Any]) -> ReconcileResult:
        event_type = event.get("type")
        handler = self._handlers.get(event_type)
        if handler is None:
            logger.info(
                f"Unhandled webhook event type: {event_type}",
                extra={"event_id": event.get("id"), "event_type": event_type},
            )
            return ReconcileResult.IGNORED

        data_object = (event.get("data") or {}).get("object") or {}
        event_at = _from_timestamp(event.get("created"))

        logger.info(
            f"Reconciling {event_type}",
            extra={"event_id": event.get("id"), "event_type": event_type},
        )
        return handler(data_object, event_at)

    # ========== EVENT HANDLERS ==========

    def _on_subscription_created(self, subscription, event_at):
        return self.apply_subscription_state(subscription, event_at, initial=True)

    def _on_subscription_changed(self, subscription, event_at):
        return self.apply_subscription_state(subscription, event_at)

    def _on_subscription_deleted(self, subscription, event_at):
        return self.apply_subscription_state(subscription, event_at, deleted=True)

    def _on_invoice(self, invoice, event_at):
        subscription_id = _invoice_subscription_ref(invoice)
        if not subscription_id:
            logger.info("Invoice is not tied to a subscription", extra={"invoice_id": invoice.get("id")})
            return ReconcileResult.IGNORED

        # The fetched object is the provider's current state, newer than any event
        subscription = self.billing.get_subscription(subscription_id)
        return self.apply_subscription_state(subscription, event_at, authoritative=True)

    # ========== STATE APPLICATION ==========

    def apply_subscription_state(
        self,
        subscription: Dict[str, Any],
        event_at: Optional[datetime] = None,
        deleted: bool = False,
        authoritative: bool = False,
        initial: bool = False,
    ) -> ReconcileResult:
        customer_id = _ref(subscription.get("customer"))
        subscription_id = subscription.get("id")

        try:
            user = (
                User.query.filter_by(stripe_customer_id=customer_id).first()
                if customer_id else None
            )
            if user is None:
                raise UserNotFoundError()

            record = (
                SubscriptionRecord.query
                .filter_by(user_id=user.id)
                .with_for_update()
                .first()
            )

            provider_status = subscription.get("status")
            period_start, period_end = _subscription_period(subscription)

            if (
                record is not None
                and not authoritative
                and record.is_superseded(event_at, subscription_id, period_end, initial=initial)
            ):
                db.session.rollback()
                logger.info(
                    "Skipping out-of-order subscription event",
                    extra={
                        "user_id": user.id,
                        "subscription_id": subscription_id,
                        "event_at": event_at.isoformat(),
                        "stored_event_at": record.last_event_at.isoformat(),
                    },
                )
                return ReconcileResult.STALE

            # A fetched subscription that is already canceled reads like its deletion event
            if provider_status == "canceled":
                deleted = True

            if deleted:
                snapshot_status = SubscriptionStatus.CANCELLED
                record_status = SubscriptionStatus.CANCELLED
                cancel_at_period_end = True
                snapshot_period_end = user.current_period_end or period_end
            else:
                snapshot_status = (
                    SubscriptionStatus.ACTIVE if provider_status == "active" else SubscriptionStatus.INACTIVE
                )
                record_status = RECORD_STATUS_MAP.get(provider_status, SubscriptionStatus.INACTIVE)
                cancel_at_period_end = bool(subscription.get("cancel_at_period_end"))
                snapshot_period_end = period_end

            user.apply_snapshot(SubscriptionSnapshot(
                status=snapshot_status,
                stripe_customer_id=customer_id,
                stripe_subscription_id=subscription_id,
                current_period_end=snapshot_period_end,
            ))

            if record is None:
                record = SubscriptionRecord(user_id=user.id)
                db.session.add(record)

            record.stripe_customer_id = customer_id
            record.stripe_subscription_id = subscription_id
            record.status = record_status.value
            record.provider_status = provider_status
            record.cancel_at_period_end = cancel_at_period_end
            if not deleted or record.current_period_end is None:
                record.current_period_start = period_start
                record.current_period_end = period_end
            if event_at is not None and (record.last_event_at is None or event_at > record.last_event_at):
                record.last_event_at = event_at

            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            raise

        logger.info(
            "Subscription state applied",
            extra={
                "user_id": user.id,
                "subscription_id": subscription_id,
                "snapshot_status": snapshot_status.value,
                "record_status": record_status.value,
            },
        )
        return ReconcileResult.APPLIED


def _ref(value) -> Optional[str]:
    """Provider references arrive either as an id or as an expanded object."""
    if isinstance(value, dict):
        return value.get("id")
    return value


def _from_timestamp(value) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc).replace(tzinfo=None)


def _subscription_period(subscription) -> Tuple[Optional[datetime], Optional[datetime]]:
    start = subscription.get("current_period_start")
    end = subscription.get("current_period_end")

    # Newer API versions only carry the period on subscription items
    if end is None:
        items = (subscription.get("items") or {}).get("data") or []
        if items:
            start = items[0].get("current_period_start")
            end = items[0].get("current_period_end")

    return _from_timestamp(start), _from_timestamp(end)


def _invoice_subscription_ref(invoice) -> Optional[str]:
    subscription = invoice.get("subscription")
    if subscription:
        return _ref(subscription)
    details = ((invoice.get("parent") or {}).get("subscription_details") or {})
    return _ref(details.get("subscription"))
