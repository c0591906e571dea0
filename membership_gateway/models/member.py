"""Member model.

Stores authentication credentials, profile info, and the per-gateway
profile blob (e.g. the remote Stripe customer reference).
Flask-Login integration via UserMixin.
"""

from flask_login import UserMixin

from membership_gateway.extensions import db


class Member(UserMixin, db.Model):
    __tablename__ = "members"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    full_name = db.Column(db.String(255))
    is_admin = db.Column(db.Boolean, default=False)
    is_active = db.Column(db.Boolean, default=True)
    gateway_profiles = db.Column(db.JSON, default=dict)  # {gateway_id: {key: value}}
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    # --- Relationships ---
    subscriptions = db.relationship(
        "Subscription", back_populates="member", lazy="dynamic"
    )

    def get_gateway_profile(self, gateway_id, key):
        """Return a single value from this member's profile for a gateway."""
        profile = (self.gateway_profiles or {}).get(gateway_id) or {}
        return profile.get(key)

    def set_gateway_profile(self, gateway_id, key, value):
        """Set a single value on this member's profile for a gateway.

        Reassigns the whole dict so SQLAlchemy notices the JSON change.
        """
        profiles = dict(self.gateway_profiles or {})
        profile = dict(profiles.get(gateway_id) or {})
        profile[key] = value
        profiles[gateway_id] = profile
        self.gateway_profiles = profiles

    def __repr__(self):
        return f"<Member {self.email}>"
