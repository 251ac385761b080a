"""
Billing provider capability.

The application talks to the provider only through ``BillingClient``; the
Stripe implementation is built in the app factory and tests inject a fake.
All provider failures surface as PaymentProviderError.
"""

import json
import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Optional

import stripe
from flask import current_app

from lessonhub.errors import PaymentProviderError, WebhookSignatureError

logger = logging.getLogger(__name__)

STRIPE_SIGNATURE_HEADER = "Stripe-Signature"


class BillingClient(ABC):

    @abstractmethod
    def create_customer(self, email: str, name: str, metadata: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        ...

    @abstractmethod
    def create_checkout_session(self, customer_id: str, price_id: str, success_url: str, cancel_url: str) -> Dict[str, Any]:
        ...

    @abstractmethod
    def create_billing_portal_session(self, customer_id: str, return_url: str) -> Dict[str, Any]:
        ...

    @abstractmethod
    def get_subscription(self, subscription_id: str) -> Dict[str, Any]:
        ...

    @abstractmethod
    def cancel_subscription(self, subscription_id: str, at_period_end: bool = True) -> Dict[str, Any]:
        ...

    @abstractmethod
    def construct_event(self, payload: bytes, signature_header: Optional[str]) -> Dict[str, Any]:
        """Verify the webhook signature and return the decoded event."""
        ...


def verify_webhook_payload(payload: bytes, signature_header: Optional[str], secret: str, tolerance: int = 300) -> Dict[str, Any]:
    """
    Check a Stripe-format signature (``t=...,v1=...``) over the raw body.
    Runs before any handler; nothing is decoded from an unverified body.
    """
    if not secret:
        logger.error("Webhook secret is not configured; rejecting delivery")
        raise WebhookSignatureError()
    if not signature_header:
        raise WebhookSignatureError()

    try:
        body = payload.decode("utf-8")
        stripe.WebhookSignature.verify_header(body, signature_header, secret, tolerance)
    except (UnicodeDecodeError, stripe.SignatureVerificationError) as e:
        logger.warning(f"Webhook signature rejected: {e}")
        raise WebhookSignatureError()

    try:
        event = json.loads(body)
    except ValueError:
        raise WebhookSignatureError("Webhook payload is not valid JSON")

    if not isinstance(event, dict) or "type" not in event:
        raise WebhookSignatureError("Webhook payload is not a provider event")
    return event


@contextmanager
def stripe_operation_context(operation_name: str, **context_vars):
    """
    Log a Stripe call and translate SDK errors into PaymentProviderError.

    Example:
        with stripe_operation_context("create_customer", email=email):
            stripe.Customer.create(...)
    """
    start_time = datetime.now()
    logger.info(
        f"Starting Stripe operation: {operation_name}",
        extra={"operation": operation_name, **context_vars},
    )
    try:
        yield
    except (stripe.InvalidRequestError, stripe.CardError) as e:
        logger.warning(
            f"Stripe rejected operation: {operation_name}",
            extra={"operation": operation_name, "error_message": str(e), **context_vars},
        )
        raise PaymentProviderError(e.user_message or str(e), status_code=400)
    except stripe.StripeError as e:
        duration = (datetime.now() - start_time).total_seconds()
        logger.error(
            f"Stripe operation failed: {operation_name}",
            exc_info=True,
            extra={
                "operation": operation_name,
                "duration_seconds": duration,
                "error_type": type(e).__name__,
                **context_vars,
            },
        )
        raise PaymentProviderError(f"Payment provider error during {operation_name}", status_code=502)
    else:
        duration = (datetime.now() - start_time).total_seconds()
        logger.info(
            f"Stripe operation completed: {operation_name}",
            extra={"operation": operation_name, "duration_seconds": duration, **context_vars},
        )


def _to_dict(stripe_object) -> Dict[str, Any]:
    # str() of a StripeObject is its JSON form
    return json.loads(str(stripe_object))


class StripeBillingClient(BillingClient):
    """BillingClient backed by the Stripe SDK; the API key is passed per request."""

    def __init__(self, api_key: str, webhook_secret: str, tolerance: int = 300):
        self._api_key = api_key
        self._webhook_secret = webhook_secret
        self._tolerance = tolerance

    @classmethod
    def from_config(cls, config) -> "StripeBillingClient":
        return cls(
            api_key=config["STRIPE_SECRET_KEY"],
            webhook_secret=config["STRIPE_WEBHOOK_SECRET"],
            tolerance=config.get("STRIPE_WEBHOOK_TOLERANCE", 300),
        )

    def create_customer(self, email, name, metadata=None):
        with stripe_operation_context("create_customer", email=email):
            customer = stripe.Customer.create(
                api_key=self._api_key,
                email=email,
                name=name,
                metadata=metadata or {},
            )
        return _to_dict(customer)

    def create_checkout_session(self, customer_id, price_id, success_url, cancel_url):
        with stripe_operation_context("create_checkout_session", customer_id=customer_id, price_id=price_id):
            session = stripe.checkout.Session.create(
                api_key=self._api_key,
                customer=customer_id,
                mode="subscription",
                payment_method_types=["card"],
                line_items=[{"price": price_id, "quantity": 1}],
                success_url=success_url,
                cancel_url=cancel_url,
                allow_promotion_codes=True,
                billing_address_collection="required",
            )
        return _to_dict(session)

    def create_billing_portal_session(self, customer_id, return_url):
        with stripe_operation_context("create_billing_portal_session", customer_id=customer_id):
            session = stripe.billing_portal.Session.create(
                api_key=self._api_key,
                customer=customer_id,
                return_url=return_url,
            )
        return _to_dict(session)

    def get_subscription(self, subscription_id):
        with stripe_operation_context("get_subscription", subscription_id=subscription_id):
            subscription = stripe.Subscription.retrieve(subscription_id, api_key=self._api_key)
        return _to_dict(subscription)

    def cancel_subscription(self, subscription_id, at_period_end=True):
        with stripe_operation_context("cancel_subscription", subscription_id=subscription_id):
            subscription = stripe.Subscription.modify(
                subscription_id,
                api_key=self._api_key,
                cancel_at_period_end=at_period_end,
            )
        return _to_dict(subscription)

    def construct_event(self, payload, signature_header):
        return verify_webhook_payload(payload, signature_header, self._webhook_secret, self._tolerance)


def get_billing_client() -> BillingClient:
    return current_app.extensions["billing_client"]
