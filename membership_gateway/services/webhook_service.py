"""Webhook service — reconciles Stripe events into local subscription state.

Responsible for:
- Verifying the webhook signature (through the gateway)
- Filtering to the whitelisted event types
- Dispatching to one handler per event type
- Recording every delivery and its outcome in stripe_events

Delivery is at-least-once and unordered, so every handler is safe to run
twice: payments advance past an already-paid invoice, cancellation of a
cancelled subscription is a no-op, and system subscriptions are never
touched. Handlers that cannot find the local subscription log it and the
delivery is still acknowledged; Stripe retrying would not help.
"""

import logging

from membership_gateway.extensions import db
from membership_gateway.models.event import MembershipEvent
from membership_gateway.models.stripe_event import StripeEvent
from membership_gateway.models.subscription import Subscription
from membership_gateway.services import billing_service
from membership_gateway.services.checkout_service import CORRELATION_KEY
from membership_gateway.services.stripe_gateway import field

logger = logging.getLogger(__name__)

OUTCOME_PROCESSED = "processed"
OUTCOME_IGNORED = "ignored"
OUTCOME_UNRESOLVED = "unresolved"
OUTCOME_SKIPPED = "skipped"
OUTCOME_ERROR = "error"


# ──────────────────────────────────────────────
# Entry points
# ──────────────────────────────────────────────

def verify_webhook(payload, sig_header, gateway):
    """Verify signature + parse. Returns a GatewayResult holding the event."""
    return gateway.verify_and_parse_webhook(payload, sig_header)


def handle_webhook_event(event, gateway):
    """Process a verified Stripe webhook event.

    Returns the delivery outcome. Never raises: the endpoint acknowledges
    every verified delivery.
    """
    event_id = event["id"]
    event_type = event["type"]

    if not gateway.settings.accepts_event(event_type):
        logger.debug(f"Ignoring non-whitelisted webhook {event_type} ({event_id})")
        _record_delivery(event_id, event_type, OUTCOME_IGNORED)
        return OUTCOME_IGNORED

    handler = HANDLERS.get(event_type, _handle_noop)
    try:
        outcome = handler(event, gateway)
        db.session.commit()
    except Exception as e:
        logger.error(f"Error handling {event_type} ({event_id}): {e}", exc_info=True)
        db.session.rollback()
        outcome = OUTCOME_ERROR

    _record_delivery(event_id, event_type, outcome)
    return outcome


def _record_delivery(event_id, event_type, outcome):
    db.session.add(StripeEvent(
        stripe_event_id=event_id,
        event_type=event_type,
        outcome=outcome,
    ))
    db.session.commit()


# ──────────────────────────────────────────────
# Correlation
# ──────────────────────────────────────────────

def _resolve_subscription(event, gateway):
    """Find the local subscription a remote event concerns.

    Reads ms_relationship_id from the remote subscription's metadata.
    Returns the Subscription or None (already logged).
    """
    obj = event["data"]["object"]
    is_subscription = field(obj, "object") == "subscription"
    remote_id = field(obj, "id") if is_subscription else field(obj, "subscription")

    result = gateway.retrieve_subscription(remote_id)
    if result.ok:
        remote = result.value
    elif is_subscription:
        # Deleted subscriptions can still be read from the event payload
        remote = obj
    else:
        logger.warning(
            f"{event['type']}: cannot retrieve Stripe subscription {remote_id} "
            f"({result.error.value if result.error else 'unknown'})"
        )
        return None

    correlation_id = field(field(remote, "metadata"), CORRELATION_KEY)
    if not correlation_id:
        logger.warning(
            f"{event['type']}: Stripe subscription {remote_id} has no {CORRELATION_KEY}"
        )
        return None

    subscription = billing_service.get_subscription(correlation_id)
    if subscription is None:
        logger.warning(
            f"{event['type']}: no local subscription {correlation_id} "
            f"for Stripe subscription {remote_id}"
        )
    return subscription


# ──────────────────────────────────────────────
# Event Handlers
# ──────────────────────────────────────────────

def _handle_noop(event, gateway):
    """checkout.session.completed: reconciliation waits for the invoice events."""
    return OUTCOME_IGNORED


def _handle_customer_created(event, gateway):
    """Link a new Stripe customer to the local member with the same email."""
    customer = event["data"]["object"]
    email = field(customer, "email")

    member = billing_service.get_member_by_email(email)
    if member is None:
        logger.warning(f"customer.created: no local member for {email or '(no email)'}")
        return OUTCOME_UNRESOLVED

    customer_id = field(customer, "id")
    member.set_gateway_profile(gateway.id, "customer_id", customer_id)
    db.session.flush()
    logger.info(f"Linked Stripe customer {customer_id} to member {member.id}")
    return OUTCOME_PROCESSED


def _handle_payment_succeeded(event, gateway):
    """Mark the subscription's due invoice paid.

    If the current invoice is already paid (a renewal, a duplicate
    delivery, or a read that raced the previous one) the next invoice
    becomes current and is paid instead.
    """
    remote_invoice = event["data"]["object"]

    subscription = _resolve_subscription(event, gateway)
    if subscription is None:
        return OUTCOME_UNRESOLVED
    if subscription.is_system():
        logger.info(f"invoice.payment_succeeded: skipping system subscription {subscription.id}")
        return OUTCOME_SKIPPED

    invoice = billing_service.get_current_invoice(subscription)
    if invoice.is_paid():
        invoice = billing_service.get_next_invoice(subscription)
        subscription.current_invoice_number = invoice.invoice_number

    invoice.subscription_id = subscription.id
    invoice.membership_id = subscription.membership_id

    if invoice.total == 0:
        invoice.changed()
        note = "No payment for free membership"
    else:
        invoice.pay_it(gateway.id, field(remote_invoice, "id"))
        note = "Payment successful"
        if gateway.settings.renewal_notifications:
            billing_service.log_membership_event(
                MembershipEvent.TYPE_RENEWED,
                subscription,
                description=f"Membership renewed (invoice #{invoice.invoice_number})",
                metadata={"invoice_id": invoice.id},
            )

    invoice.add_notes(note)
    invoice.gateway_id = gateway.id

    billing_service.log_membership_event(
        MembershipEvent.TYPE_PAYMENT,
        subscription,
        description=note,
        metadata={
            "gateway": gateway.id,
            "invoice_id": invoice.id,
            "external_id": field(remote_invoice, "id"),
            "amount_paid": field(remote_invoice, "amount_paid"),
        },
    )
    db.session.flush()
    logger.info(
        f"invoice.payment_succeeded: invoice #{invoice.invoice_number} of "
        f"subscription {subscription.id} -> {invoice.status}"
    )
    return OUTCOME_PROCESSED


def _handle_invoice_created(event, gateway):
    """Stripe started billing after a trial: move trial_expired -> pending."""
    subscription = _resolve_subscription(event, gateway)
    if subscription is None:
        return OUTCOME_UNRESOLVED
    if subscription.is_system():
        return OUTCOME_SKIPPED

    membership = subscription.membership
    if (
        gateway.settings.trial_addon
        and membership.has_trial()
        and subscription.status == Subscription.STATUS_TRIAL_EXPIRED
    ):
        subscription.status = Subscription.STATUS_PENDING
        billing_service.log_membership_event(
            MembershipEvent.TYPE_TRIAL_ENDED,
            subscription,
            description="Trial ended, billing started",
        )
        db.session.flush()
        logger.info(f"invoice.created: subscription {subscription.id} trial_expired -> pending")

    return OUTCOME_PROCESSED


def _handle_cancellation(event, gateway):
    """customer.subscription.deleted / invoice.payment_failed: cancel locally."""
    subscription = _resolve_subscription(event, gateway)
    if subscription is None:
        return OUTCOME_UNRESOLVED
    if subscription.is_system():
        return OUTCOME_SKIPPED

    billing_service.cancel_subscription(
        subscription, reason=f"Stripe {event['type']}"
    )
    return OUTCOME_PROCESSED


HANDLERS = {
    "checkout.session.completed": _handle_noop,
    "customer.created": _handle_customer_created,
    "invoice.created": _handle_invoice_created,
    "invoice.payment_succeeded": _handle_payment_succeeded,
    "invoice.payment_failed": _handle_cancellation,
    "customer.subscription.deleted": _handle_cancellation,
}
