"""Gateway settings — the configuration shared by every gateway component.

Built from the Flask app config and passed explicitly into the gateway,
the plan synchronizer, the checkout session builder and the webhook
reconciler. Nothing in the services reads current_app.config directly
for Stripe keys.
"""

from dataclasses import dataclass, field

GATEWAY_ID = "stripecheckout"

MODE_LIVE = "live"
MODE_TEST = "test"

# Event types the webhook endpoint acts on. Anything else is acknowledged
# without dispatch.
DEFAULT_WEBHOOK_EVENTS = frozenset({
    "checkout.session.completed",
    "customer.created",
    "invoice.created",
    "invoice.payment_succeeded",
    "invoice.payment_failed",
    "customer.subscription.deleted",
})

CHECKOUT_VERSION = "v3"  # Stripe.js redirectToCheckout with a session id


@dataclass
class KeyPair:
    """Publishable/secret/signing key triple for one Stripe mode."""

    publishable_key: str = ""
    secret_key: str = ""
    signing_secret: str = ""


@dataclass
class GatewaySettings:
    gateway_id: str = GATEWAY_ID
    live_mode: bool = False
    live_keys: KeyPair = field(default_factory=KeyPair)
    test_keys: KeyPair = field(default_factory=KeyPair)
    api_version: str = "2019-09-09"
    active: bool = True
    site_url: str = ""
    base_url: str = ""
    currency: str = "USD"
    secret: str = ""  # app SECRET_KEY, signs return-URL nonces
    renewal_notifications: bool = False
    trial_addon: bool = False
    coupons_enabled: bool = False
    webhook_events: frozenset = DEFAULT_WEBHOOK_EVENTS
    checkout_version: str = CHECKOUT_VERSION

    @classmethod
    def from_config(cls, config):
        """Build settings from a Flask config mapping."""
        settings = cls(
            api_version=config.get("STRIPE_API_VERSION") or "2019-09-09",
            active=bool(config.get("STRIPE_CHECKOUT_ACTIVE", True)),
            site_url=config.get("SITE_URL") or "",
            base_url=(config.get("APP_BASE_URL") or "").rstrip("/"),
            currency=config.get("CURRENCY") or "USD",
            secret=config.get("SECRET_KEY") or "",
            renewal_notifications=bool(config.get("RENEWAL_NOTIFICATIONS_ENABLED")),
            trial_addon=bool(config.get("TRIAL_ADDON_ENABLED")),
            coupons_enabled=bool(config.get("COUPON_ADDON_ENABLED")),
        )
        settings.set_keys(
            MODE_LIVE,
            publishable_key=config.get("STRIPE_LIVE_PUBLISHABLE_KEY"),
            secret_key=config.get("STRIPE_LIVE_SECRET_KEY"),
            signing_secret=config.get("STRIPE_LIVE_WEBHOOK_SECRET"),
        )
        settings.set_keys(
            MODE_TEST,
            publishable_key=config.get("STRIPE_TEST_PUBLISHABLE_KEY"),
            secret_key=config.get("STRIPE_TEST_SECRET_KEY"),
            signing_secret=config.get("STRIPE_TEST_WEBHOOK_SECRET"),
        )
        settings.set_live_mode(bool(config.get("STRIPE_LIVE_MODE")))
        return settings

    # ──────────────────────────────────────────────
    # Setters
    # ──────────────────────────────────────────────

    def set_keys(self, mode, publishable_key=None, secret_key=None, signing_secret=None):
        """Replace the key triple of one mode ("live" or "test")."""
        if mode not in (MODE_LIVE, MODE_TEST):
            raise ValueError(f"Unknown Stripe mode: {mode}")
        keys = KeyPair(
            publishable_key=publishable_key or "",
            secret_key=secret_key or "",
            signing_secret=signing_secret or "",
        )
        if mode == MODE_LIVE:
            self.live_keys = keys
        else:
            self.test_keys = keys

    def set_live_mode(self, live):
        self.live_mode = bool(live)

    # ──────────────────────────────────────────────
    # Mode-dependent accessors
    # ──────────────────────────────────────────────

    @property
    def mode(self):
        return MODE_LIVE if self.live_mode else MODE_TEST

    @property
    def _keys(self):
        return self.live_keys if self.live_mode else self.test_keys

    @property
    def publishable_key(self):
        return self._keys.publishable_key

    @property
    def secret_key(self):
        """The secret key should not leave the gateway layer."""
        return self._keys.secret_key

    @property
    def signing_secret(self):
        return self._keys.signing_secret

    def is_configured(self):
        return bool(self.publishable_key and self.secret_key)

    def accepts_event(self, event_type):
        return event_type in self.webhook_events

    def __repr__(self):
        # Keep keys out of logs and tracebacks.
        return (
            f"<GatewaySettings {self.gateway_id} mode={self.mode} "
            f"active={self.active} configured={self.is_configured()}>"
        )
