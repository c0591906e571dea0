"""Auth blueprint — /auth/*

Email + password login and logout for members and admins.
"""

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_user, logout_user
from werkzeug.security import check_password_hash

from membership_gateway.extensions import limiter
from membership_gateway.models.member import Member

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


# ──────────────────────────────────────────────
# POST /auth/login
# ──────────────────────────────────────────────

@auth_bp.route("/login", methods=["POST"])
@limiter.limit("15 per minute", methods=["POST"])
def login():
    """Standard email + password login. Accepts JSON or form data."""
    data = request.get_json(silent=True) if request.is_json else request.form
    data = data or {}
    email = (data.get("email") or "").lower().strip()
    password = data.get("password") or ""

    if not email or not password:
        return jsonify({"error": "Email and password are required."}), 400

    member = Member.query.filter_by(email=email).first()

    if member is None or not check_password_hash(member.password_hash, password):
        return jsonify({"error": "Invalid email or password."}), 401

    if not member.is_active:
        return jsonify({"error": "Your account has been deactivated."}), 403

    login_user(member, remember=bool(data.get("remember")))
    return jsonify({"id": member.id, "email": member.email}), 200


# ──────────────────────────────────────────────
# GET /auth/logout
# ──────────────────────────────────────────────

@auth_bp.route("/logout")
def logout():
    """Log out."""
    if current_user.is_authenticated:
        logout_user()
    return jsonify({"status": "logged_out"}), 200
