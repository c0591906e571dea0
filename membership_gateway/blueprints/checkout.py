"""Checkout blueprint — /checkout/*

Routes:
- POST /checkout/session — create a Stripe Checkout Session for a subscription
- GET  /checkout/return  — landing after Stripe redirects back (informational)
- POST /checkout/card    — save a card token on the member's Stripe customer

Payment is confirmed only by the invoice.payment_succeeded webhook. The
return route reports what the database says and never marks anything paid.
"""

import logging

from flask import Blueprint, abort, jsonify, request
from flask_login import current_user, login_required

from membership_gateway.extensions import db, limiter
from membership_gateway.models.subscription import Subscription
from membership_gateway.services import billing_service, checkout_service
from membership_gateway.services.stripe_gateway import get_gateway

logger = logging.getLogger(__name__)

checkout_bp = Blueprint("checkout", __name__, url_prefix="/checkout")


def _own_subscription(subscription_id):
    """Load a subscription belonging to the current member or 404."""
    subscription = billing_service.get_subscription(subscription_id)
    if subscription is None or subscription.member_id != current_user.id:
        abort(404)
    return subscription


# ──────────────────────────────────────────────
# POST /checkout/session
# ──────────────────────────────────────────────

@checkout_bp.route("/session", methods=["POST"])
@login_required
@limiter.limit("20 per minute")
def create_session():
    """Create a Checkout Session for one of the member's subscriptions.

    Body: {"subscription_id": int, "step": str?}
    The plan always comes from the subscription's own membership.
    Returns {"available": false} when no checkout can be offered, so the
    page hides the button instead of rendering a broken one.
    """
    data = request.get_json(silent=True) or {}
    subscription = _own_subscription(data.get("subscription_id"))
    step = data.get("step") or "process_purchase"

    gateway = get_gateway()
    settings = gateway.settings

    if not settings.active or not settings.is_configured():
        return jsonify({"available": False}), 200

    if subscription.status in (Subscription.STATUS_CANCELED, Subscription.STATUS_DEACTIVATED):
        return jsonify({"available": False}), 200

    session_id = checkout_service.create_session(
        member=current_user,
        membership_id=subscription.membership_id,
        subscription_id=subscription.id,
        step=step,
        gateway=gateway,
    )
    # find_customer may have unlinked a remotely deleted customer
    db.session.commit()

    if not session_id:
        return jsonify({"available": False}), 200

    return jsonify({
        "available": True,
        "session_id": session_id,
        "publishable_key": settings.publishable_key,
        "sandbox": not settings.live_mode,
        "checkout_version": settings.checkout_version,
    }), 200


# ──────────────────────────────────────────────
# GET /checkout/return
# ──────────────────────────────────────────────

@checkout_bp.route("/return")
@login_required
def checkout_return():
    """Stripe redirect target for both success and cancel.

    The success flag only decides the wording. Invoice status comes from
    the database, which the webhook updates asynchronously; the page is
    expected to poll until it flips.
    """
    subscription_id = request.args.get(checkout_service.CORRELATION_KEY)
    settings = get_gateway().settings

    if not checkout_service.verify_return_nonce(settings, subscription_id, request.args.get("nonce")):
        abort(400)

    subscription = _own_subscription(subscription_id)
    invoice = billing_service.get_current_invoice(subscription)
    db.session.commit()

    return jsonify({
        "subscription_id": subscription.id,
        "subscription_status": subscription.status,
        "invoice_status": invoice.status,
        "returned_from": "success" if request.args.get("success") == "1" else "cancel",
        "confirmed": invoice.is_paid(),
    }), 200


# ──────────────────────────────────────────────
# POST /checkout/card
# ──────────────────────────────────────────────

@checkout_bp.route("/card", methods=["POST"])
@login_required
@limiter.limit("10 per minute")
def update_card():
    """Attach a card token to the member's Stripe customer.

    Body: {"token": str}. Creates the customer on first use.
    """
    data = request.get_json(silent=True) or {}
    token = (data.get("token") or "").strip()
    if not token:
        return jsonify({"error": "Card token is required."}), 400

    gateway = get_gateway()
    if not gateway.settings.is_configured():
        return jsonify({"updated": False}), 200

    result = gateway.find_or_create_customer(current_user, token)
    # The gateway profile changes even when a later call fails
    db.session.commit()

    if not result.ok:
        logger.warning(f"Card update failed for member {current_user.id}: {result.message}")
        return jsonify({"updated": False}), 200

    return jsonify({
        "updated": True,
        "card_num": current_user.get_gateway_profile(gateway.id, "card_num"),
        "card_exp": current_user.get_gateway_profile(gateway.id, "card_exp"),
    }), 200
