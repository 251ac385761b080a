import logging

import sentry_sdk
from flask import Blueprint, request

from lessonhub.errors import DataIntegrityError, PaymentProviderError, ValidationError
from lessonhub.middleware.auth import current_user, require_auth
from lessonhub.models.webhook_event import WebhookEventStatus
from lessonhub.services.billing_client import STRIPE_SIGNATURE_HEADER, get_billing_client
from lessonhub.services.subscription_reconciler import ReconcileResult, SubscriptionReconciler
from lessonhub.services.subscription_service import SubscriptionService
from lessonhub.services.webhook_idempotency import is_event_processed, record_event_outcome
from lessonhub.utils.responses import success_response
from lessonhub.utils.validators import get_json_body, require_string, validate_url

logger = logging.getLogger(__name__)

bp = Blueprint("subscriptions", __name__, url_prefix="/api/subscriptions")


def _url_field(data, field):
    value = require_string(data, field)
    if not validate_url(value):
        raise ValidationError(f"{field} must be a valid URL")
    return value


@bp.route("/create-checkout-session", methods=["POST"])
@require_auth
def create_checkout_session():
    data = get_json_body()
    price_id = require_string(data, "priceId", "Price ID is required")
    success_url = _url_field(data, "successUrl")
    cancel_url = _url_field(data, "cancelUrl")

    session = SubscriptionService(get_billing_client()).create_checkout_session(
        current_user(), price_id, success_url, cancel_url
    )
    return success_response("Checkout session created successfully", session)


@bp.route("/create-billing-portal-session", methods=["POST"])
@require_auth
def create_billing_portal_session():
    return_url = _url_field(get_json_body(), "returnUrl")
    session = SubscriptionService(get_billing_client()).create_billing_portal_session(
        current_user(), return_url
    )
    return success_response("Billing portal session created successfully", session)


@bp.route("/status", methods=["GET"])
@require_auth
def subscription_status():
    status = SubscriptionService(get_billing_client()).get_status(current_user())
    message = (
        "Subscription status retrieved successfully"
        if status["hasSubscription"] else "No subscription found"
    )
    return success_response(message, status)


@bp.route("/cancel", methods=["POST"])
@require_auth
def cancel_subscription():
    result = SubscriptionService(get_billing_client()).cancel(current_user())
    return success_response("Subscription cancelled successfully", result)


@bp.route("/webhook", methods=["POST"])
def stripe_webhook():
    """
    Provider webhook. Signature verification gates everything; after that the
    delivery is acknowledged unless a retry could succeed.
    """
    billing_client = get_billing_client()
    event = billing_client.construct_event(
        request.get_data(),
        request.headers.get(STRIPE_SIGNATURE_HEADER),
    )
    event_id = event.get("id")
    event_type = event.get("type")

    if is_event_processed(event_id):
        logger.info("Duplicate webhook delivery", extra={"event_id": event_id, "event_type": event_type})
        return success_response("Webhook already processed")

    try:
        result = SubscriptionReconciler(billing_client).handle_event(event)
    except DataIntegrityError as e:
        # Retrying will not help; alert and acknowledge
        logger.error(
            f"Webhook reconciliation failed: {e.message}",
            extra={"event_id": event_id, "event_type": event_type},
        )
        sentry_sdk.capture_exception(e)
        record_event_outcome(event_id, event_type, WebhookEventStatus.FAILED, e.message)
        return success_response("Webhook received")
    except PaymentProviderError as e:
        record_event_outcome(event_id, event_type, WebhookEventStatus.FAILED, e.message)
        raise

    status = WebhookEventStatus.IGNORED if result == ReconcileResult.IGNORED else WebhookEventStatus.PROCESSED
    record_event_outcome(event_id, event_type, status)
    return success_response("Webhook processed successfully", {"result": result.value})
