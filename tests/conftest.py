"""Shared test fixtures for the membership gateway test suite.

Provides:
- app: Flask app configured for testing (in-memory SQLite, CSRF off)
- client: Flask test client
- db_session: clean database per test (tables created/dropped)
- seed_data: admin, member, memberships, subscriptions and a first invoice
- gateway: StripeGateway built from the test config
"""

from decimal import Decimal

import pytest
from werkzeug.security import generate_password_hash

from membership_gateway import create_app
from membership_gateway.extensions import db as _db
from membership_gateway.models.invoice import Invoice
from membership_gateway.models.member import Member
from membership_gateway.models.membership import Membership
from membership_gateway.models.subscription import Subscription
from membership_gateway.services.stripe_gateway import get_gateway


@pytest.fixture(scope="session")
def app():
    """Create the Flask application configured for testing."""
    app = create_app("testing")
    yield app


@pytest.fixture(autouse=True)
def db_session(app):
    """Create all tables before each test, drop after."""
    with app.app_context():
        _db.create_all()
        yield _db.session
        _db.session.rollback()
        _db.drop_all()


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture
def gateway(app, db_session):
    return get_gateway()


@pytest.fixture
def seed_data(app, db_session):
    """Seed an admin, a member, three memberships and two subscriptions.

    - gold: $9.99 / month recurring with a 7 day trial
    - free: free permanent membership
    - base: system membership (never billed)

    Returns a dict of plain ids so tests don't depend on object state.
    """
    admin = Member(
        email="admin@members.local",
        password_hash=generate_password_hash("admin123"),
        full_name="Admin User",
        is_admin=True,
    )
    member = Member(
        email="jane@example.com",
        password_hash=generate_password_hash("janepass"),
        full_name="Jane Member",
    )
    _db.session.add_all([admin, member])

    gold = Membership(
        name="Gold",
        price=Decimal("9.99"),
        payment_type=Membership.PAYMENT_TYPE_RECURRING,
        pay_cycle_period_unit=1,
        pay_cycle_period_type=Membership.PERIOD_MONTHS,
        trial_period_enabled=True,
        trial_period_unit=7,
        trial_period_type=Membership.PERIOD_DAYS,
    )
    free = Membership(
        name="Free",
        is_free=True,
        price=Decimal("0"),
        payment_type=Membership.PAYMENT_TYPE_PERMANENT,
    )
    base = Membership(
        name="Visitors",
        type=Membership.TYPE_BASE,
        price=Decimal("0"),
        payment_type=Membership.PAYMENT_TYPE_PERMANENT,
    )
    _db.session.add_all([gold, free, base])
    _db.session.flush()

    subscription = Subscription(
        member_id=member.id,
        membership_id=gold.id,
        status=Subscription.STATUS_PENDING,
    )
    system_subscription = Subscription(
        member_id=member.id,
        membership_id=base.id,
        status=Subscription.STATUS_ACTIVE,
    )
    _db.session.add_all([subscription, system_subscription])
    _db.session.flush()

    invoice = Invoice(
        subscription_id=subscription.id,
        membership_id=gold.id,
        member_id=member.id,
        invoice_number=1,
        total=Decimal("9.99"),
    )
    _db.session.add(invoice)
    _db.session.commit()

    return {
        "admin_id": admin.id,
        "member_id": member.id,
        "member_email": member.email,
        "gold_id": gold.id,
        "free_id": free.id,
        "base_id": base.id,
        "subscription_id": subscription.id,
        "system_subscription_id": system_subscription.id,
        "invoice_id": invoice.id,
    }
