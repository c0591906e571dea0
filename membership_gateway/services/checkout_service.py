"""Checkout service — builds Stripe Checkout Sessions for subscriptions.

The session carries the local subscription id in
subscription_data.metadata.ms_relationship_id. That metadata is the only
thing later webhooks trust to find the local subscription; the
success/cancel return URLs are informational and never confirm payment.
"""

import hashlib
import hmac
import logging
from urllib.parse import urlencode

from membership_gateway.services import external_ids
from membership_gateway.services.stripe_gateway import field

logger = logging.getLogger(__name__)

CORRELATION_KEY = "ms_relationship_id"
RETURN_PATH = "/checkout/return"


def make_return_nonce(settings, subscription_id):
    """Short HMAC tying a return URL to one gateway + subscription."""
    message = f"{settings.gateway_id}_{subscription_id}".encode("utf-8")
    digest = hmac.new(settings.secret.encode("utf-8"), message, hashlib.sha256)
    return digest.hexdigest()[:20]


def verify_return_nonce(settings, subscription_id, nonce):
    expected = make_return_nonce(settings, subscription_id)
    return hmac.compare_digest(expected, nonce or "")


def build_return_urls(settings, subscription_id, step):
    """Return (success_url, cancel_url) for a checkout session."""
    args = {
        "step": step,
        "gateway": settings.gateway_id,
        CORRELATION_KEY: subscription_id,
        "nonce": make_return_nonce(settings, subscription_id),
    }
    base = f"{settings.base_url}{RETURN_PATH}"
    success_url = f"{base}?{urlencode({'success': 1, **args})}"
    cancel_url = f"{base}?{urlencode({'success': 0, **args})}"
    return success_url, cancel_url


def build_session_args(member, customer, plan_id, subscription_id, settings, step):
    """Stripe checkout.Session.create parameters.

    With a known customer the session is attached to it; otherwise Stripe
    creates one from customer_email.
    """
    success_url, cancel_url = build_return_urls(settings, subscription_id, step)
    session_args = {
        "payment_method_types": ["card"],
        "subscription_data": {
            "items": [{"plan": plan_id}],
            "metadata": {CORRELATION_KEY: subscription_id},
        },
        "success_url": success_url,
        "cancel_url": cancel_url,
    }
    customer_id = field(customer, "id")
    if customer_id:
        session_args["customer"] = customer_id
    else:
        session_args["customer_email"] = member.email
    return session_args


def create_session(member, membership_id, subscription_id, step, gateway):
    """Create a Checkout Session and return its id.

    Returns "" when the session cannot be created (unconfigured gateway,
    unknown plan, Stripe error). Callers must then hide the checkout
    button instead of rendering a broken one.
    """
    settings = gateway.settings
    if not settings.is_configured():
        logger.warning("Checkout requested but Stripe keys are not configured")
        return ""

    found = gateway.find_customer(member)
    customer = found.value if found.ok else None

    plan_id = external_ids.plan_id(membership_id, settings)
    session_args = build_session_args(
        member, customer, plan_id, subscription_id, settings, step
    )

    result = gateway.create_session(session_args)
    if not result.ok:
        logger.error(
            f"Checkout session failed for subscription {subscription_id} "
            f"(plan {plan_id}): {result.error.value} {result.message}"
        )
        return ""

    return result.value
