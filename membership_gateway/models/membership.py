"""Membership and coupon models.

- Membership: a purchasable plan. Recurring paid memberships are mirrored
  to Stripe as plans.
- Coupon: a discount code mirrored to Stripe as a coupon.
"""

from membership_gateway.extensions import db


class Membership(db.Model):
    __tablename__ = "memberships"

    # -- Types: base and guest are system memberships --
    TYPE_SIMPLE = "simple"
    TYPE_BASE = "base"
    TYPE_GUEST = "guest"
    SYSTEM_TYPES = (TYPE_BASE, TYPE_GUEST)

    # -- Payment types --
    PAYMENT_TYPE_PERMANENT = "permanent"
    PAYMENT_TYPE_FINITE = "finite"
    PAYMENT_TYPE_DATE_RANGE = "date-range"
    PAYMENT_TYPE_RECURRING = "recurring"

    # -- Period types (pay cycle and trial) --
    PERIOD_DAYS = "days"
    PERIOD_WEEKS = "weeks"
    PERIOD_MONTHS = "months"
    PERIOD_YEARS = "years"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    type = db.Column(db.String(20), nullable=False, default=TYPE_SIMPLE)
    active = db.Column(db.Boolean, default=True)
    is_free = db.Column(db.Boolean, default=False)
    price = db.Column(db.Numeric(10, 2), default=0)
    payment_type = db.Column(
        db.String(20), nullable=False, default=PAYMENT_TYPE_PERMANENT
    )
    pay_cycle_period_unit = db.Column(db.Integer, default=1)
    pay_cycle_period_type = db.Column(db.String(10), default=PERIOD_MONTHS)
    trial_period_enabled = db.Column(db.Boolean, default=False)
    trial_period_unit = db.Column(db.Integer, default=0)
    trial_period_type = db.Column(db.String(10), default=PERIOD_DAYS)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    subscriptions = db.relationship(
        "Subscription", back_populates="membership", lazy="dynamic"
    )

    def is_system(self):
        return self.type in self.SYSTEM_TYPES

    def has_trial(self):
        return bool(
            self.trial_period_enabled
            and not self.is_free
            and (self.trial_period_unit or 0) > 0
        )

    def __repr__(self):
        return f"<Membership {self.name} ({self.payment_type})>"


class Coupon(db.Model):
    __tablename__ = "coupons"

    TYPE_VALUE = "value"
    TYPE_PERCENT = "percent"

    DURATION_ONCE = "once"
    DURATION_FOREVER = "forever"

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(50), unique=True, nullable=False)
    discount_type = db.Column(db.String(10), nullable=False, default=TYPE_VALUE)
    discount = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    duration = db.Column(db.String(10), nullable=False, default=DURATION_ONCE)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    def __repr__(self):
        return f"<Coupon {self.code}>"
