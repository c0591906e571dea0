"""Webhooks blueprint — /stripe/webhooks

Receives Stripe webhook events. CSRF-exempt, no session required.
Raw body is required for signature verification.
"""

import logging

from flask import Blueprint, request, jsonify

from membership_gateway.services.stripe_gateway import get_gateway
from membership_gateway.services.webhook_service import verify_webhook, handle_webhook_event

logger = logging.getLogger(__name__)

webhooks_bp = Blueprint("webhooks", __name__, url_prefix="/stripe")


@webhooks_bp.route("/webhooks", methods=["POST"])
def stripe_webhook():
    """Receive and process Stripe webhook events.

    1. Get raw body (required for signature verification)
    2. Verify signature with the signing secret of the active mode
    3. Pass to handle_webhook_event (whitelist + dispatch)
    4. Return 200 to acknowledge receipt, whatever the handler outcome

    CSRF is exempted for this blueprint in create_app().
    """
    payload = request.get_data(as_text=True)
    sig_header = request.headers.get("Stripe-Signature")

    if not sig_header:
        logger.warning("Webhook received without Stripe-Signature header")
        return jsonify({"error": "Missing signature"}), 400

    gateway = get_gateway()

    # --- Verify signature ---
    result = verify_webhook(payload, sig_header, gateway)
    if not result.ok:
        logger.warning(f"Webhook verification failed: {result.message}")
        return jsonify({"error": "Invalid signature"}), 400

    # --- Process event ---
    outcome = handle_webhook_event(result.value, gateway)
    return jsonify({"status": outcome}), 200
