import os
import logging

import click
from flask import Flask, jsonify
from werkzeug.security import generate_password_hash

from membership_gateway.config import config_by_name
from membership_gateway.extensions import db, migrate, login_manager, csrf, limiter

__version__ = "1.0.0"


def create_app(config_name=None):
    """Application factory."""

    if config_name is None:
        config_name = os.environ.get("FLASK_ENV", "development")

    app = Flask(__name__)
    app.config.from_object(config_by_name[config_name])

    # --- Validate required env vars (skip in testing) ---
    if config_name != "testing":
        try:
            config_by_name[config_name].validate()
        except RuntimeError as e:
            app.logger.warning(f"Config validation: {e}")

    # --- Init extensions ---
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    csrf.init_app(app)
    limiter.init_app(app)

    # --- Import models so Alembic can discover them ---
    with app.app_context():
        from membership_gateway import models  # noqa: F401

    # --- Register blueprints ---
    from membership_gateway.blueprints.auth import auth_bp
    from membership_gateway.blueprints.checkout import checkout_bp
    from membership_gateway.blueprints.admin import admin_bp
    from membership_gateway.blueprints.webhooks import webhooks_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(checkout_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(webhooks_bp)

    # Webhooks are signed by Stripe, not CSRF-protected
    csrf.exempt(webhooks_bp)

    # --- Error handlers ---
    @app.errorhandler(400)
    def bad_request(e):
        return jsonify({"error": "Bad request"}), 400

    @app.errorhandler(403)
    def forbidden(e):
        return jsonify({"error": "Forbidden"}), 403

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(500)
    def server_error(e):
        return jsonify({"error": "Server error"}), 500

    # --- CLI commands ---
    register_cli(app)

    # --- Security headers ---
    @app.after_request
    def add_security_headers(response):
        """Add security headers to every response."""
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Content-Security-Policy"] = (
            "default-src 'self'; "
            "script-src 'self' https://js.stripe.com; "
            "connect-src 'self' https://api.stripe.com; "
            "frame-src https://js.stripe.com https://hooks.stripe.com; "
            "form-action 'self' https://checkout.stripe.com; "
            "frame-ancestors 'none';"
        )
        # Strict Transport Security (only in production)
        if not app.debug:
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )
        return response

    # --- Logging ---
    if not app.debug:
        logging.basicConfig(level=logging.INFO)

    return app


def register_cli(app):
    """Register custom CLI commands with the Flask app."""

    @app.cli.command("seed-admin")
    @click.option("--email", default="admin@members.local", help="Admin email")
    @click.option("--password", default="admin123", help="Admin password")
    def seed_admin(email, password):
        """Create an admin member.

        Usage:
            flask seed-admin
            flask seed-admin --email admin@example.com --password s3cret
        """
        from membership_gateway.models.member import Member

        existing = Member.query.filter_by(email=email).first()
        if existing:
            click.echo(f"Admin already exists: {email}")
            return

        db.session.add(Member(
            email=email,
            password_hash=generate_password_hash(password),
            full_name="Admin",
            is_admin=True,
        ))
        db.session.commit()
        click.echo(f"Created admin: {email}")

    @app.cli.command("stripe-sync")
    def stripe_sync():
        """Create/update every Stripe plan (and coupon) from local records.

        Run after activating the gateway or switching live/test mode.
        """
        from membership_gateway.services.plan_sync import sync_all
        from membership_gateway.services.stripe_gateway import get_gateway

        gateway = get_gateway()
        if not gateway.settings.is_configured():
            click.echo(f"ERROR: Stripe {gateway.settings.mode} keys are not set.")
            return

        counts = sync_all(gateway)
        click.echo(f"Stripe sync ({gateway.settings.mode} mode): {counts}")

    @app.cli.command("verify-stripe-plans")
    def verify_stripe_plans():
        """Check that every billable membership has its plan on Stripe."""
        from membership_gateway.models.membership import Membership
        from membership_gateway.services import external_ids
        from membership_gateway.services.plan_sync import is_billable
        from membership_gateway.services.stripe_gateway import get_gateway

        gateway = get_gateway()
        if not gateway.settings.is_configured():
            click.echo(f"ERROR: Stripe {gateway.settings.mode} keys are not set.")
            return

        click.echo(f"Stripe key mode: {gateway.settings.mode}")
        click.echo("")
        for membership in Membership.query.order_by(Membership.id).all():
            plan_id = external_ids.plan_id(membership.id, gateway.settings)
            billable = is_billable(membership)
            result = gateway.retrieve_plan(plan_id)
            if result.ok:
                state = "present" if billable else "present (STALE: membership not billable)"
            elif result.not_found:
                state = "MISSING" if billable else "absent"
            else:
                state = f"ERROR: {result.message}"
            click.echo(f"  {membership.name}: {plan_id}")
            click.echo(f"    {state}")

    @app.cli.command("purge-sync-cache")
    def purge_sync_cache():
        """Delete expired sync cache rows."""
        from membership_gateway.services import sync_cache

        removed = sync_cache.purge_expired()
        db.session.commit()
        click.echo(f"Removed {removed} expired entries")
