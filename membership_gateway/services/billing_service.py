"""Billing service — local subscription / invoice helpers.

Responsible for:
- Resolving the current and next invoice of a subscription
- Cancelling a subscription
- Looking up members by email
- Logging membership events (renewals, payments, cancellations)

These are the membership platform's side of the contract; the webhook
reconciler calls them and never touches invoice rows directly beyond
status / references / notes.
"""

import logging

from membership_gateway.extensions import db
from membership_gateway.models.event import MembershipEvent
from membership_gateway.models.invoice import Invoice
from membership_gateway.models.member import Member
from membership_gateway.models.subscription import Subscription

logger = logging.getLogger(__name__)


def get_subscription(subscription_id):
    """Return the Subscription for a correlation id, or None."""
    try:
        subscription_id = int(subscription_id)
    except (TypeError, ValueError):
        return None
    return db.session.get(Subscription, subscription_id)


def get_member_by_email(email):
    if not email:
        return None
    return Member.query.filter_by(email=email.lower().strip()).first()


def _get_or_create_invoice(subscription, invoice_number):
    invoice = Invoice.query.filter_by(
        subscription_id=subscription.id,
        invoice_number=invoice_number,
    ).first()
    if invoice:
        return invoice

    membership = subscription.membership
    invoice = Invoice(
        subscription_id=subscription.id,
        membership_id=subscription.membership_id,
        member_id=subscription.member_id,
        invoice_number=invoice_number,
        total=membership.price if membership and not membership.is_free else 0,
        status=Invoice.STATUS_BILLED,
    )
    db.session.add(invoice)
    db.session.flush()
    return invoice


def get_current_invoice(subscription):
    """The invoice currently due for this subscription (created on demand)."""
    return _get_or_create_invoice(subscription, subscription.current_invoice_number)


def get_next_invoice(subscription):
    """The invoice after the current one (created on demand)."""
    return _get_or_create_invoice(subscription, subscription.current_invoice_number + 1)


def get_previous_invoice(subscription):
    """The invoice before the current one, or None for the first period."""
    if subscription.current_invoice_number <= 1:
        return None
    return Invoice.query.filter_by(
        subscription_id=subscription.id,
        invoice_number=subscription.current_invoice_number - 1,
    ).first()


def cancel_subscription(subscription, reason=""):
    """Cancel a subscription. Already-cancelled subscriptions are left alone.

    Returns True if the status changed.
    """
    if subscription.status in (
        Subscription.STATUS_CANCELED,
        Subscription.STATUS_DEACTIVATED,
    ):
        return False

    old_status = subscription.status
    subscription.status = Subscription.STATUS_CANCELED
    log_membership_event(
        MembershipEvent.TYPE_CANCELLED,
        subscription,
        description=reason or "Subscription cancelled",
        metadata={"old_status": old_status},
    )
    db.session.flush()
    logger.info(f"Cancelled subscription {subscription.id} (was {old_status})")
    return True


def log_membership_event(event_type, subscription, description="", metadata=None):
    """Record a membership event for this subscription."""
    event = MembershipEvent(
        event_type=event_type,
        member_id=subscription.member_id,
        subscription_id=subscription.id,
        description=description,
        metadata_=metadata or {},
    )
    db.session.add(event)
    db.session.flush()
    return event
