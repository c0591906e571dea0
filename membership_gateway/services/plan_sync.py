"""Plan sync — mirrors memberships and coupons to Stripe plans and coupons.

Responsible for:
- Building the Stripe payload (intent) for a membership or coupon
- Skipping the Stripe call when the sync cache says nothing changed
- Deleting the remote plan of memberships that are free / not recurring
- Batch sync of everything when the gateway is activated

Never raises into the caller: a membership save must succeed even when
Stripe is down. A failed sync simply retries on the next save or batch.
"""

import json
import logging
from dataclasses import asdict, dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from enum import Enum

from membership_gateway.extensions import db
from membership_gateway.models.membership import Coupon, Membership
from membership_gateway.services import external_ids, sync_cache

logger = logging.getLogger(__name__)

# pay_cycle_period_type -> (Stripe interval, max interval_count)
INTERVALS = {
    Membership.PERIOD_DAYS: ("day", 365),
    Membership.PERIOD_WEEKS: ("week", 52),
    Membership.PERIOD_MONTHS: ("month", 12),
    Membership.PERIOD_YEARS: ("year", 1),
}

PERIOD_DAYS = {
    Membership.PERIOD_DAYS: 1,
    Membership.PERIOD_WEEKS: 7,
    Membership.PERIOD_MONTHS: 30,
    Membership.PERIOD_YEARS: 365,
}


class SyncOutcome(str, Enum):
    UNCHANGED = "unchanged"   # cache hit, no Stripe call
    SYNCED = "synced"         # remote created / replaced
    DELETED = "deleted"       # remote plan removed (free / non-recurring)
    SKIPPED = "skipped"       # gateway inactive or nothing to do
    FAILED = "failed"         # Stripe call failed, will retry next time


@dataclass
class PlanIntent:
    """Desired state of one Stripe plan."""

    id: str
    amount: int
    currency: str = None
    product_name: str = None
    interval: str = None
    interval_count: int = None
    trial_period_days: int = None

    def to_params(self):
        """Stripe Plan.create parameters."""
        return {
            "id": self.id,
            "amount": self.amount,
            "currency": self.currency,
            "product": {"name": self.product_name},
            "interval": self.interval,
            "interval_count": self.interval_count,
            "trial_period_days": self.trial_period_days,
        }

    def fingerprint(self):
        return json.dumps(asdict(self), sort_keys=True)


@dataclass
class CouponIntent:
    """Desired state of one Stripe coupon. Exactly one of amount_off / percent_off."""

    id: str
    duration: str
    amount_off: int = None
    percent_off: float = None
    currency: str = None
    name: str = None

    def to_params(self):
        return asdict(self)

    def fingerprint(self):
        return json.dumps(asdict(self), sort_keys=True)


# ──────────────────────────────────────────────
# Payload builders
# ──────────────────────────────────────────────

def to_minor_units(value):
    """Convert a decimal amount to integer cents. Non-numeric input gives 0."""
    try:
        amount = abs(Decimal(str(value))) * 100
        return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    except (InvalidOperation, TypeError, ValueError):
        return 0


def period_in_days(unit, period_type):
    return int(unit or 0) * PERIOD_DAYS.get(period_type, 1)


def is_billable(membership):
    """Only paid recurring memberships get a Stripe plan."""
    return (
        not membership.is_free
        and membership.payment_type == Membership.PAYMENT_TYPE_RECURRING
    )


def build_plan_intent(membership, settings):
    """Build the Stripe plan payload for a membership.

    Non-billable memberships produce an intent with amount 0, which
    means "there must be no remote plan".
    """
    plan_id = external_ids.plan_id(membership.id, settings)
    if not is_billable(membership):
        return PlanIntent(id=plan_id, amount=0)

    trial_days = None
    if membership.has_trial():
        trial_days = period_in_days(
            membership.trial_period_unit, membership.trial_period_type
        )

    interval, max_count = INTERVALS.get(
        membership.pay_cycle_period_type, INTERVALS[Membership.PERIOD_DAYS]
    )
    interval_count = max(1, min(max_count, int(membership.pay_cycle_period_unit or 1)))

    return PlanIntent(
        id=plan_id,
        amount=to_minor_units(membership.price),
        currency=settings.currency,
        product_name=membership.name,
        interval=interval,
        interval_count=interval_count,
        trial_period_days=trial_days,
    )


def build_coupon_intent(coupon, settings):
    """Build the Stripe coupon payload for a local coupon."""
    coupon_id = external_ids.coupon_id(coupon.id, settings)
    duration = (
        Coupon.DURATION_FOREVER
        if coupon.duration == Coupon.DURATION_FOREVER
        else Coupon.DURATION_ONCE
    )

    if coupon.discount_type == Coupon.TYPE_PERCENT:
        try:
            percent = float(min(Decimal("100"), abs(Decimal(str(coupon.discount)))))
        except (InvalidOperation, TypeError, ValueError):
            percent = 0.0
        return CouponIntent(
            id=coupon_id,
            duration=duration,
            percent_off=percent,
            name=coupon.code,
        )

    # currency is only valid alongside amount_off
    return CouponIntent(
        id=coupon_id,
        duration=duration,
        amount_off=to_minor_units(coupon.discount),
        currency=settings.currency,
        name=coupon.code,
    )


# ──────────────────────────────────────────────
# Single-entity sync
# ──────────────────────────────────────────────

def sync_plan(membership, gateway):
    """Create/replace/delete the Stripe plan of one membership."""
    settings = gateway.settings
    if not settings.active or not settings.is_configured():
        return SyncOutcome.SKIPPED

    intent = build_plan_intent(membership, settings)
    key = sync_cache.cache_key(intent.id)
    fingerprint = intent.fingerprint()

    if sync_cache.get(key) == fingerprint:
        return SyncOutcome.UNCHANGED

    if intent.amount == 0:
        outcome = _delete_plan_if_present(intent.id, gateway)
    else:
        result = gateway.create_or_update_plan(intent.to_params())
        if not result.ok:
            logger.error(
                f"Plan sync failed for membership {membership.id} "
                f"({intent.id}): {result.error.value} {result.message}"
            )
            return SyncOutcome.FAILED
        logger.info(f"Synced plan {intent.id} for membership {membership.id}")
        outcome = SyncOutcome.SYNCED

    if outcome != SyncOutcome.FAILED:
        sync_cache.set(key, fingerprint)
    return outcome


def _delete_plan_if_present(plan_id, gateway):
    existing = gateway.retrieve_plan(plan_id)
    if existing.not_found:
        return SyncOutcome.SKIPPED
    if not existing.ok:
        return SyncOutcome.FAILED

    deleted = gateway.delete_plan(plan_id)
    if not deleted.ok and not deleted.not_found:
        return SyncOutcome.FAILED
    logger.info(f"Deleted plan {plan_id}: membership is no longer billable")
    return SyncOutcome.DELETED


def sync_coupon(coupon, gateway):
    """Create/replace the Stripe coupon of one local coupon."""
    settings = gateway.settings
    if not settings.active or not settings.is_configured():
        return SyncOutcome.SKIPPED

    intent = build_coupon_intent(coupon, settings)
    key = sync_cache.cache_key(intent.id)
    fingerprint = intent.fingerprint()

    if sync_cache.get(key) == fingerprint:
        return SyncOutcome.UNCHANGED

    result = gateway.create_or_update_coupon(intent.to_params())
    if not result.ok:
        logger.error(
            f"Coupon sync failed for coupon {coupon.id} "
            f"({intent.id}): {result.error.value} {result.message}"
        )
        return SyncOutcome.FAILED

    sync_cache.set(key, fingerprint)
    logger.info(f"Synced coupon {intent.id} for coupon {coupon.id}")
    return SyncOutcome.SYNCED


def delete_coupon(local_id, gateway):
    """Remove the Stripe coupon of a local coupon. Not-found counts as done."""
    settings = gateway.settings
    coupon_id = external_ids.coupon_id(local_id, settings)
    sync_cache.delete(sync_cache.cache_key(coupon_id))

    if not settings.is_configured():
        return SyncOutcome.SKIPPED

    result = gateway.delete_coupon(coupon_id)
    if result.ok:
        return SyncOutcome.DELETED
    if result.not_found:
        return SyncOutcome.SKIPPED
    logger.error(f"Coupon delete failed for {coupon_id}: {result.error.value} {result.message}")
    return SyncOutcome.FAILED


# ──────────────────────────────────────────────
# Batch sync
# ──────────────────────────────────────────────

def sync_all(gateway):
    """Sync every membership (and every coupon when coupons are enabled).

    Used on gateway activation. One item failing never stops the batch.
    Returns a dict of outcome -> count.
    """
    counts = {}
    if not gateway.settings.active:
        logger.info("Stripe Checkout gateway inactive; batch sync skipped")
        return counts

    items = [(sync_plan, m) for m in Membership.query.order_by(Membership.id).all()]
    if gateway.settings.coupons_enabled:
        items += [(sync_coupon, c) for c in Coupon.query.order_by(Coupon.id).all()]

    for sync, item in items:
        try:
            outcome = sync(item, gateway)
            db.session.commit()
        except Exception as e:
            logger.error(f"Batch sync error for {item!r}: {e}", exc_info=True)
            db.session.rollback()
            outcome = SyncOutcome.FAILED
        counts[outcome.value] = counts.get(outcome.value, 0) + 1

    logger.info(f"Stripe batch sync finished: {counts}")
    return counts
