import os


def _flag(name, default=""):
    return os.environ.get(name, default).lower() in ("1", "true", "yes")


class Config:
    """Base configuration. Shared across all environments."""

    # --- Required ---
    SECRET_KEY = os.environ.get("SECRET_KEY")

    # Handle DATABASE_URL: some PaaS providers use "postgres://"
    # which SQLAlchemy 1.4+ doesn't accept.
    _db_url = os.environ.get("DATABASE_URL", "")
    if _db_url.startswith("postgres://"):
        _db_url = _db_url.replace("postgres://", "postgresql://", 1)
    SQLALCHEMY_DATABASE_URI = _db_url or None

    # --- Stripe: two key triples, one toggle ---
    STRIPE_LIVE_MODE = _flag("STRIPE_LIVE_MODE")
    STRIPE_LIVE_PUBLISHABLE_KEY = os.environ.get("STRIPE_LIVE_PUBLISHABLE_KEY")
    STRIPE_LIVE_SECRET_KEY = os.environ.get("STRIPE_LIVE_SECRET_KEY")
    STRIPE_LIVE_WEBHOOK_SECRET = os.environ.get("STRIPE_LIVE_WEBHOOK_SECRET")
    STRIPE_TEST_PUBLISHABLE_KEY = os.environ.get("STRIPE_TEST_PUBLISHABLE_KEY")
    STRIPE_TEST_SECRET_KEY = os.environ.get("STRIPE_TEST_SECRET_KEY")
    STRIPE_TEST_WEBHOOK_SECRET = os.environ.get("STRIPE_TEST_WEBHOOK_SECRET")

    # Pinned: later API versions dropped subscription_data.items on Checkout.
    STRIPE_API_VERSION = os.environ.get("STRIPE_API_VERSION", "2019-09-09")
    STRIPE_CHECKOUT_ACTIVE = _flag("STRIPE_CHECKOUT_ACTIVE", "true")

    # --- Site identity / pricing ---
    SITE_URL = os.environ.get("SITE_URL", "http://localhost:5000")
    APP_BASE_URL = os.environ.get("APP_BASE_URL", "http://localhost:5000")
    CURRENCY = os.environ.get("CURRENCY", "USD")

    # --- Add-ons ---
    RENEWAL_NOTIFICATIONS_ENABLED = _flag("RENEWAL_NOTIFICATIONS_ENABLED")
    TRIAL_ADDON_ENABLED = _flag("TRIAL_ADDON_ENABLED")
    COUPON_ADDON_ENABLED = _flag("COUPON_ADDON_ENABLED")

    # --- SQLAlchemy ---
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,
    }

    # --- Session / cookies ---
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    REMEMBER_COOKIE_HTTPONLY = True
    REMEMBER_COOKIE_SAMESITE = "Lax"

    # --- WTF / CSRF ---
    WTF_CSRF_ENABLED = True

    @staticmethod
    def validate():
        """Fail fast if required env vars are missing."""
        required = [
            "SECRET_KEY",
            "DATABASE_URL",
            "SITE_URL",
            "APP_BASE_URL",
        ]
        # Only the key triple for the selected mode is mandatory
        prefix = "STRIPE_LIVE_" if _flag("STRIPE_LIVE_MODE") else "STRIPE_TEST_"
        required += [
            f"{prefix}PUBLISHABLE_KEY",
            f"{prefix}SECRET_KEY",
            f"{prefix}WEBHOOK_SECRET",
        ]
        missing = [v for v in required if not os.environ.get(v)]
        if missing:
            raise RuntimeError(
                f"Missing required environment variables: {', '.join(missing)}"
            )


class DevConfig(Config):
    """Local development."""

    DEBUG = True
    SESSION_COOKIE_SECURE = False
    REMEMBER_COOKIE_SECURE = False


class TestConfig(Config):
    """Testing: in-memory SQLite, CSRF disabled."""

    TESTING = True
    DEBUG = True
    SECRET_KEY = "test-secret-key-not-for-production"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_ENGINE_OPTIONS = {}
    STRIPE_LIVE_MODE = False
    STRIPE_LIVE_PUBLISHABLE_KEY = "pk_live_fake"
    STRIPE_LIVE_SECRET_KEY = "sk_live_fake"
    STRIPE_LIVE_WEBHOOK_SECRET = "whsec_live_fake"
    STRIPE_TEST_PUBLISHABLE_KEY = "pk_test_fake"
    STRIPE_TEST_SECRET_KEY = "sk_test_fake"
    STRIPE_TEST_WEBHOOK_SECRET = "whsec_test_fake"
    STRIPE_CHECKOUT_ACTIVE = True
    SITE_URL = "https://members.example.org"
    APP_BASE_URL = "http://localhost:5000"
    CURRENCY = "USD"
    RENEWAL_NOTIFICATIONS_ENABLED = False  # override per-test as needed
    TRIAL_ADDON_ENABLED = False
    COUPON_ADDON_ENABLED = False
    WTF_CSRF_ENABLED = False  # disable CSRF for test forms
    RATELIMIT_ENABLED = False  # disable rate limiting in tests
    SESSION_COOKIE_SECURE = False
    REMEMBER_COOKIE_SECURE = False
    SERVER_NAME = "localhost"

    @staticmethod
    def validate():
        """Keys are hardcoded in test mode."""
        pass


class ProdConfig(Config):
    """Production."""

    DEBUG = False
    SESSION_COOKIE_SECURE = True
    REMEMBER_COOKIE_SECURE = True


config_by_name = {
    "development": DevConfig,
    "production": ProdConfig,
    "testing": TestConfig,
}
