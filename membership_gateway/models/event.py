"""Membership event model.

Typed log of subscription lifecycle events (renewals, payments,
cancellations). Renewal rows drive member notifications; payment rows
double as the gateway transaction log.
"""

import uuid

from membership_gateway.extensions import db


class MembershipEvent(db.Model):
    __tablename__ = "membership_events"

    TYPE_RENEWED = "renewed"
    TYPE_PAYMENT = "payment"
    TYPE_CANCELLED = "cancelled"
    TYPE_TRIAL_ENDED = "trial_ended"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    event_type = db.Column(db.String(50), nullable=False)
    member_id = db.Column(
        db.Integer, db.ForeignKey("members.id"), nullable=True
    )
    subscription_id = db.Column(
        db.Integer, db.ForeignKey("subscriptions.id"), nullable=True
    )
    description = db.Column(db.String(500), nullable=True)
    metadata_ = db.Column(
        "metadata", db.JSON, default=dict
    )  # extra context, named metadata_ to avoid Python builtin clash
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    def __repr__(self):
        return f"<MembershipEvent {self.event_type} sub={self.subscription_id}>"
