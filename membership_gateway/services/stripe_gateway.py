"""Stripe gateway — every call into the Stripe SDK goes through here.

Responsible for:
- Applying the API key, pinned API version and app info before each call
- Checkout Session creation
- Customer lookup / creation / card attach
- Plan and coupon create-or-update (delete + recreate) and delete
- Subscription retrieval
- Webhook signature verification

Stripe exceptions never leave this module. Each public method returns a
GatewayResult; callers branch on `result.ok` / `result.error`.
"""

import logging
from dataclasses import dataclass
from datetime import date
from enum import Enum

import stripe
from flask import current_app

from membership_gateway import __version__
from membership_gateway.services.gateway_settings import GatewaySettings

logger = logging.getLogger(__name__)

APP_NAME = "Membership Gateway - Stripe Checkout"


class GatewayErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    INVALID_REQUEST = "invalid_request"
    AUTHENTICATION = "authentication"
    NETWORK = "network"
    API = "api"
    VERIFICATION = "verification"


@dataclass(frozen=True)
class GatewayResult:
    """Outcome of one gateway call."""

    ok: bool
    value: object = None
    error: GatewayErrorKind | None = None
    message: str = ""

    @classmethod
    def success(cls, value=None):
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error, message=""):
        return cls(ok=False, error=error, message=message)

    @property
    def not_found(self):
        return self.error == GatewayErrorKind.NOT_FOUND


def classify_error(exc):
    """Map a Stripe SDK exception to a GatewayErrorKind."""
    if isinstance(exc, stripe.SignatureVerificationError):
        return GatewayErrorKind.VERIFICATION
    if isinstance(exc, stripe.InvalidRequestError):
        if exc.code == "resource_missing" or exc.http_status == 404:
            return GatewayErrorKind.NOT_FOUND
        return GatewayErrorKind.INVALID_REQUEST
    if isinstance(exc, (stripe.AuthenticationError, stripe.PermissionError)):
        return GatewayErrorKind.AUTHENTICATION
    if isinstance(exc, stripe.APIConnectionError):
        return GatewayErrorKind.NETWORK
    return GatewayErrorKind.API


def field(obj, key, default=None):
    """Read one key from a Stripe object or a plain dict.

    Stripe objects support subscripting and `in` but not `.get`.
    """
    if obj is None or key not in obj:
        return default
    return obj[key]


def get_gateway():
    """Build a gateway for the current app's configuration."""
    return StripeGateway(GatewaySettings.from_config(current_app.config))


class StripeGateway:
    """Thin, exception-free wrapper over the Stripe SDK."""

    def __init__(self, settings):
        self.settings = settings

    @property
    def id(self):
        return self.settings.gateway_id

    def _configure(self):
        stripe.api_key = self.settings.secret_key
        # Without a pinned version Stripe uses the account default, which
        # may not accept the plan-based Checkout payload.
        stripe.api_version = self.settings.api_version
        stripe.set_app_info(APP_NAME, version=__version__, url=self.settings.site_url)

    def _call(self, label, fn, *args, **kwargs):
        """Run one SDK call, converting Stripe errors into a failed result."""
        self._configure()
        try:
            return GatewayResult.success(fn(*args, **kwargs))
        except stripe.StripeError as e:
            kind = classify_error(e)
            if kind == GatewayErrorKind.NOT_FOUND:
                logger.info(f"Stripe {label}: not found ({e.user_message or e})")
            else:
                logger.error(f"Stripe {label} failed [{kind.value}]: {e}")
            return GatewayResult.failure(kind, str(e))

    # ──────────────────────────────────────────────
    # Checkout Sessions
    # ──────────────────────────────────────────────

    def create_session(self, session_args):
        """Create a Checkout Session. Value is the session id."""
        result = self._call(
            "checkout.Session.create", stripe.checkout.Session.create, **session_args
        )
        if not result.ok:
            return result
        return GatewayResult.success(result.value.id)

    # ──────────────────────────────────────────────
    # Customers
    # ──────────────────────────────────────────────

    def find_customer(self, member):
        """Retrieve the member's stored Stripe customer.

        Value is the customer or None. A customer deleted on the Stripe
        dashboard clears the stored reference (caller commits).
        """
        customer_id = member.get_gateway_profile(self.id, "customer_id")
        if not customer_id:
            return GatewayResult.success(None)

        result = self._call("Customer.retrieve", stripe.Customer.retrieve, customer_id)
        if not result.ok:
            if result.not_found:
                member.set_gateway_profile(self.id, "customer_id", "")
                return GatewayResult.success(None)
            return result

        customer = result.value
        if field(customer, "deleted"):
            logger.info(f"Stripe customer {customer_id} was deleted remotely; unlinking member {member.id}")
            member.set_gateway_profile(self.id, "customer_id", "")
            return GatewayResult.success(None)

        return GatewayResult.success(customer)

    def find_or_create_customer(self, member, token):
        """Return the member's Stripe customer, creating it with the card token if needed."""
        found = self.find_customer(member)
        if found.ok and found.value is not None:
            added = self.add_card(member, found.value, token)
            return found if added.ok else added

        result = self._call(
            "Customer.create", stripe.Customer.create, source=token, email=member.email
        )
        if result.ok:
            member.set_gateway_profile(self.id, "customer_id", result.value.id)
        return result

    def add_card(self, member, customer, token):
        """Attach a card to the customer, make it default and remember it on the profile."""
        if not token:
            return GatewayResult.success(None)

        result = self._call(
            "Customer.create_source", stripe.Customer.create_source, customer.id, source=token
        )
        if not result.ok:
            return result

        card = result.value
        modified = self._call(
            "Customer.modify", stripe.Customer.modify, customer.id, default_source=card.id
        )
        if not modified.ok:
            return modified

        exp = date(int(card.exp_year), int(card.exp_month), 1)
        member.set_gateway_profile(self.id, "card_exp", exp.isoformat())
        member.set_gateway_profile(self.id, "card_num", card.last4)
        return GatewayResult.success(card)

    # ──────────────────────────────────────────────
    # Plans
    # ──────────────────────────────────────────────

    def retrieve_plan(self, plan_id):
        return self._call("Plan.retrieve", stripe.Plan.retrieve, plan_id)

    def delete_plan(self, plan_id):
        return self._call("Plan.delete", stripe.Plan.delete, plan_id)

    def create_or_update_plan(self, plan_data):
        """Replace the remote plan with plan_data.

        Stripe only allows renaming a plan, so any existing plan is deleted
        and a new one created under the same id. A zero amount means
        delete only.
        """
        plan_id = plan_data["id"]

        existing = self.retrieve_plan(plan_id)
        if existing.ok:
            deleted = self.delete_plan(plan_id)
            if not deleted.ok and not deleted.not_found:
                return deleted
        elif not existing.not_found:
            return existing

        if plan_data.get("amount", 0) <= 0:
            return GatewayResult.success(None)

        params = {k: v for k, v in plan_data.items() if v is not None}
        return self._call("Plan.create", stripe.Plan.create, **params)

    # ──────────────────────────────────────────────
    # Coupons
    # ──────────────────────────────────────────────

    def retrieve_coupon(self, coupon_id):
        return self._call("Coupon.retrieve", stripe.Coupon.retrieve, coupon_id)

    def delete_coupon(self, coupon_id):
        return self._call("Coupon.delete", stripe.Coupon.delete, coupon_id)

    def create_or_update_coupon(self, coupon_data):
        """Replace the remote coupon with coupon_data (coupons are immutable too)."""
        coupon_id = coupon_data["id"]

        existing = self.retrieve_coupon(coupon_id)
        if existing.ok:
            deleted = self.delete_coupon(coupon_id)
            if not deleted.ok and not deleted.not_found:
                return deleted
        elif not existing.not_found:
            return existing

        params = {k: v for k, v in coupon_data.items() if v is not None}
        return self._call("Coupon.create", stripe.Coupon.create, **params)

    # ──────────────────────────────────────────────
    # Subscriptions
    # ──────────────────────────────────────────────

    def retrieve_subscription(self, subscription_id):
        if not subscription_id:
            return GatewayResult.failure(GatewayErrorKind.NOT_FOUND, "No subscription id")
        return self._call(
            "Subscription.retrieve", stripe.Subscription.retrieve, subscription_id
        )

    # ──────────────────────────────────────────────
    # Webhooks
    # ──────────────────────────────────────────────

    def verify_and_parse_webhook(self, payload, sig_header):
        """Verify the Stripe-Signature header and construct the event.

        Value is the verified event. A bad signature or a payload that is
        not valid JSON fails with VERIFICATION.
        """
        try:
            event = stripe.Webhook.construct_event(
                payload, sig_header, self.settings.signing_secret
            )
        except ValueError as e:
            return GatewayResult.failure(GatewayErrorKind.VERIFICATION, f"Invalid payload: {e}")
        except stripe.SignatureVerificationError as e:
            return GatewayResult.failure(GatewayErrorKind.VERIFICATION, f"Invalid signature: {e}")
        return GatewayResult.success(event)
