"""Stripe event model (delivery log).

Every verified webhook delivery is recorded with the outcome of its
handler. Deliveries that could not be correlated to a local subscription
show up here as "unresolved" for operator follow-up.

Not a dedupe gate: Stripe retries are reprocessed and the handlers
themselves are idempotent.
"""

import uuid

from membership_gateway.extensions import db


class StripeEvent(db.Model):
    __tablename__ = "stripe_events"

    OUTCOMES = [
        "processed",
        "ignored",
        "unresolved",
        "skipped",
        "error",
    ]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    stripe_event_id = db.Column(
        db.String(255), index=True, nullable=False
    )  # e.g. "evt_1Abc..."
    event_type = db.Column(
        db.String(255), nullable=False
    )  # e.g. "invoice.payment_succeeded"
    outcome = db.Column(db.String(20), nullable=False)
    received_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    def __repr__(self):
        return f"<StripeEvent {self.stripe_event_id} ({self.event_type}: {self.outcome})>"
