import os
import logging

import click
from flask import Flask, jsonify

from saleflow.config import config_by_name
from saleflow.extensions import db, migrate, login_manager, csrf, limiter


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

    # --- Payment collaborator (built once, shared read-only) ---
    from saleflow.services.stripe_service import StripeCheckoutClient
    app.extensions["payments"] = StripeCheckoutClient.from_config(app.config)

    # --- Import models so Alembic can discover them ---
    with app.app_context():
        from saleflow import models  # noqa: F401

    # --- Register blueprints ---
    from saleflow.blueprints.auth import auth_bp
    from saleflow.blueprints.drafts import drafts_bp
    from saleflow.blueprints.webhooks import webhooks_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(drafts_bp)
    app.register_blueprint(webhooks_bp)

    # Webhooks are CSRF-exempt; Stripe signs the raw body instead
    csrf.exempt(webhooks_bp)

    # --- Error handlers ---
    @app.errorhandler(404)
    def not_found(e):
        return jsonify(ok=False, code="NOT_FOUND", error="Not found"), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify(ok=False, code="METHOD_NOT_ALLOWED", error="Method not allowed"), 405

    @app.errorhandler(429)
    def rate_limited(e):
        return jsonify(ok=False, code="RATE_LIMITED", error="Too many requests"), 429

    @app.errorhandler(500)
    def server_error(e):
        return jsonify(ok=False, code="INTERNAL_ERROR", error="Internal server error"), 500

    # --- CLI commands ---
    register_cli(app)

    # --- Security headers ---
    @app.after_request
    def add_security_headers(response):
        """Add security headers to every response."""
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Cache-Control"] = "no-store"
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

    @app.cli.command("replay-webhook-event")
    @click.argument("event_id")
    def replay_webhook_event(event_id):
        """Re-run a Stripe event whose finalization failed.

        Only events recorded with an error (and never processed) are
        replayed; the event body is fetched from Stripe again.

        Usage:
            flask replay-webhook-event evt_1Abc...
        """
        from saleflow.services.finalize_service import replay_event

        try:
            success, message = replay_event(event_id)
        except ValueError as e:
            click.echo(f"ERROR: {e}")
            raise SystemExit(1)

        if success:
            click.echo(f"{event_id}: {message}")
        else:
            click.echo(f"{event_id}: FAILED ({message})")
            raise SystemExit(1)

    @app.cli.command("list-failed-webhook-events")
    def list_failed_webhook_events():
        """Show ledger rows waiting for replay."""
        from saleflow.models.stripe_event import StripeWebhookEvent

        rows = (
            StripeWebhookEvent.query
            .filter(
                StripeWebhookEvent.processed_at.is_(None),
                StripeWebhookEvent.error_message.isnot(None),
            )
            .order_by(StripeWebhookEvent.created_at)
            .all()
        )
        if not rows:
            click.echo("No failed webhook events.")
            return
        for row in rows:
            click.echo(
                f"{row.event_id}  {row.event_type}  replays={row.replay_count}  "
                f"{row.error_message}"
            )
