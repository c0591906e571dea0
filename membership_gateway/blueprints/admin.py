"""Admin blueprint — /admin/*

Membership and coupon maintenance. Every save pushes the change to Stripe
right after the local commit; a Stripe failure never blocks the save.
All routes protected by @admin_required decorator.

Route Map:
  POST   /admin/memberships            — Create membership (+ plan sync)
  PUT    /admin/memberships/<id>       — Update membership (+ plan sync)
  POST   /admin/coupons                — Create coupon (+ coupon sync)
  PUT    /admin/coupons/<id>           — Update coupon (+ coupon sync)
  DELETE /admin/coupons/<id>           — Delete coupon (local + Stripe)
  POST   /admin/gateway/sync           — Sync every plan / coupon
"""

import logging
from decimal import Decimal, InvalidOperation

from flask import Blueprint, abort, jsonify, request

from membership_gateway.decorators import admin_required
from membership_gateway.extensions import db
from membership_gateway.models.membership import Coupon, Membership
from membership_gateway.services import external_ids, plan_sync
from membership_gateway.services.stripe_gateway import get_gateway

logger = logging.getLogger(__name__)

admin_bp = Blueprint("admin", __name__, url_prefix="/admin")

MEMBERSHIP_FIELDS = (
    "name",
    "type",
    "active",
    "is_free",
    "price",
    "payment_type",
    "pay_cycle_period_unit",
    "pay_cycle_period_type",
    "trial_period_enabled",
    "trial_period_unit",
    "trial_period_type",
)

COUPON_FIELDS = ("code", "discount_type", "discount", "duration")

DECIMAL_FIELDS = ("price", "discount")
INTEGER_FIELDS = ("pay_cycle_period_unit", "trial_period_unit")


def _apply_fields(obj, data, fields):
    """Copy whitelisted fields from the JSON body onto a model. Returns errors."""
    errors = []
    for field in fields:
        if field not in data:
            continue
        value = data[field]
        if field in DECIMAL_FIELDS:
            try:
                value = Decimal(str(value))
            except (InvalidOperation, TypeError, ValueError):
                errors.append(f"{field} must be a number.")
                continue
        elif field in INTEGER_FIELDS:
            try:
                value = int(str(value))
            except ValueError:
                errors.append(f"{field} must be a whole number.")
                continue
            if value < 0:
                errors.append(f"{field} must not be negative.")
                continue
        setattr(obj, field, value)
    return errors


def _membership_json(membership, outcome):
    return {
        "id": membership.id,
        "name": membership.name,
        "plan_id": external_ids.plan_id(membership.id, get_gateway().settings),
        "sync": outcome.value,
    }


# ══════════════════════════════════════════════
#  MEMBERSHIPS
# ══════════════════════════════════════════════

def _save_membership(membership, data):
    errors = _apply_fields(membership, data, MEMBERSHIP_FIELDS)
    if not membership.name:
        errors.append("name is required.")
    if errors:
        db.session.rollback()
        return jsonify({"error": " ".join(errors)}), 422

    db.session.add(membership)
    db.session.commit()

    # Membership saved: mirror it to Stripe
    outcome = plan_sync.sync_plan(membership, get_gateway())
    db.session.commit()
    return jsonify(_membership_json(membership, outcome)), 200


@admin_bp.route("/memberships", methods=["POST"])
@admin_required
def create_membership():
    return _save_membership(Membership(), request.get_json(silent=True) or {})


@admin_bp.route("/memberships/<int:membership_id>", methods=["PUT"])
@admin_required
def update_membership(membership_id):
    membership = db.session.get(Membership, membership_id) or abort(404)
    return _save_membership(membership, request.get_json(silent=True) or {})


# ══════════════════════════════════════════════
#  COUPONS
# ══════════════════════════════════════════════

def _save_coupon(coupon, data):
    errors = _apply_fields(coupon, data, COUPON_FIELDS)
    coupon.discount_type = coupon.discount_type or Coupon.TYPE_VALUE
    coupon.duration = coupon.duration or Coupon.DURATION_ONCE
    if not coupon.code:
        errors.append("code is required.")
    if coupon.discount_type not in (Coupon.TYPE_VALUE, Coupon.TYPE_PERCENT):
        errors.append("discount_type must be 'value' or 'percent'.")
    if coupon.duration not in (Coupon.DURATION_ONCE, Coupon.DURATION_FOREVER):
        errors.append("duration must be 'once' or 'forever'.")
    if errors:
        db.session.rollback()
        return jsonify({"error": " ".join(errors)}), 422

    db.session.add(coupon)
    db.session.commit()

    gateway = get_gateway()
    if gateway.settings.coupons_enabled:
        outcome = plan_sync.sync_coupon(coupon, gateway)
        db.session.commit()
    else:
        outcome = plan_sync.SyncOutcome.SKIPPED

    return jsonify({
        "id": coupon.id,
        "code": coupon.code,
        "coupon_id": external_ids.coupon_id(coupon.id, gateway.settings),
        "sync": outcome.value,
    }), 200


@admin_bp.route("/coupons", methods=["POST"])
@admin_required
def create_coupon():
    return _save_coupon(Coupon(), request.get_json(silent=True) or {})


@admin_bp.route("/coupons/<int:coupon_id>", methods=["PUT"])
@admin_required
def update_coupon(coupon_id):
    coupon = db.session.get(Coupon, coupon_id) or abort(404)
    return _save_coupon(coupon, request.get_json(silent=True) or {})


@admin_bp.route("/coupons/<int:coupon_id>", methods=["DELETE"])
@admin_required
def remove_coupon(coupon_id):
    coupon = db.session.get(Coupon, coupon_id) or abort(404)
    outcome = plan_sync.delete_coupon(coupon.id, get_gateway())
    db.session.delete(coupon)
    db.session.commit()
    return jsonify({"id": coupon_id, "sync": outcome.value}), 200


# ══════════════════════════════════════════════
#  GATEWAY
# ══════════════════════════════════════════════

@admin_bp.route("/gateway/sync", methods=["POST"])
@admin_required
def sync_gateway():
    """Push every membership (and coupon, if enabled) to Stripe."""
    counts = plan_sync.sync_all(get_gateway())
    return jsonify({"counts": counts}), 200
