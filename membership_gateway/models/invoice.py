"""Invoice model.

Owned by the membership platform. The gateway only flips status, stamps
gateway/external references, and appends notes.
"""

from datetime import datetime, timezone

from membership_gateway.extensions import db


class Invoice(db.Model):
    __tablename__ = "invoices"

    STATUS_BILLED = "billed"
    STATUS_PENDING = "pending"
    STATUS_PAID = "paid"
    STATUS_FAILED = "failed"

    id = db.Column(db.Integer, primary_key=True)
    subscription_id = db.Column(
        db.Integer, db.ForeignKey("subscriptions.id"), nullable=False
    )  # a.k.a. ms_relationship_id
    membership_id = db.Column(
        db.Integer, db.ForeignKey("memberships.id"), nullable=False
    )
    member_id = db.Column(
        db.Integer, db.ForeignKey("members.id"), nullable=False
    )
    invoice_number = db.Column(db.Integer, nullable=False, default=1)
    total = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    status = db.Column(db.String(20), nullable=False, default=STATUS_BILLED)
    gateway_id = db.Column(db.String(50), nullable=True)
    external_id = db.Column(db.String(255), nullable=True)  # e.g. "in_1Abc..."
    notes = db.Column(db.JSON, default=list)
    pay_date = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    __table_args__ = (
        db.UniqueConstraint(
            "subscription_id", "invoice_number", name="uq_subscription_invoice"
        ),
    )

    # --- Relationships ---
    subscription = db.relationship("Subscription", back_populates="invoices")

    def is_paid(self):
        return self.status == self.STATUS_PAID

    def pay_it(self, gateway_id, external_id=""):
        """Mark this invoice paid and activate its subscription."""
        self.status = self.STATUS_PAID
        self.gateway_id = gateway_id
        if external_id:
            self.external_id = external_id
        self.pay_date = datetime.now(timezone.utc)

        subscription = self.subscription
        if subscription is not None and subscription.status != subscription.STATUS_ACTIVE:
            subscription.status = subscription.STATUS_ACTIVE
            subscription.gateway_id = gateway_id

    def changed(self):
        """Re-evaluate the invoice after an edit. Zero-total invoices settle as paid."""
        if self.total is not None and self.total == 0 and not self.is_paid():
            self.status = self.STATUS_PAID
            self.pay_date = datetime.now(timezone.utc)

    def add_notes(self, note):
        self.notes = list(self.notes or []) + [note]

    def __repr__(self):
        return f"<Invoice #{self.invoice_number} sub={self.subscription_id} ({self.status})>"
