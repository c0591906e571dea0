"""Subscription model (a member's relationship to a membership).

The id of this row is the correlation id embedded in Stripe subscription
metadata as `ms_relationship_id`.
"""

from membership_gateway.extensions import db


class Subscription(db.Model):
    __tablename__ = "subscriptions"

    STATUS_PENDING = "pending"
    STATUS_TRIAL = "trial"
    STATUS_TRIAL_EXPIRED = "trial_expired"
    STATUS_ACTIVE = "active"
    STATUS_EXPIRED = "expired"
    STATUS_CANCELED = "canceled"
    STATUS_DEACTIVATED = "deactivated"

    id = db.Column(db.Integer, primary_key=True)
    member_id = db.Column(
        db.Integer, db.ForeignKey("members.id"), nullable=False
    )
    membership_id = db.Column(
        db.Integer, db.ForeignKey("memberships.id"), nullable=False
    )
    status = db.Column(db.String(20), nullable=False, default=STATUS_PENDING)
    gateway_id = db.Column(db.String(50), nullable=True)
    current_invoice_number = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    member = db.relationship("Member", back_populates="subscriptions")
    membership = db.relationship("Membership", back_populates="subscriptions")
    invoices = db.relationship(
        "Invoice", back_populates="subscription", lazy="dynamic"
    )

    def is_system(self):
        """System subscriptions are never billed or reconciled."""
        return self.membership is not None and self.membership.is_system()

    def __repr__(self):
        return f"<Subscription {self.id} ({self.status})>"
