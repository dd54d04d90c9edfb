import logging

import click
from flask import Flask, jsonify
from flask_migrate import Migrate

from config import Config
from models import db
from routes import admin_bp, booking_bp, health_bp, payments_bp, webhook_bp
from security.admin_auth import hash_password
from services.context import EXTENSION_KEY, build_services, get_services
from services.errors import ServiceError
from services.payments import poll_payment_status


def create_app(config_object=None):
    app = Flask(__name__)
    app.config.from_object(config_object or Config)

    logging.basicConfig(
        level=app.config.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(booking_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(webhook_bp)
    app.register_blueprint(admin_bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    if app.config.get("BOOKING_STORE") == "sql" and app.config.get("AUTO_CREATE_TABLES"):
        with app.app_context():
            db.create_all()

    # store, payment adapters and notifier live as long as the app
    app.extensions[EXTENSION_KEY] = build_services(app.config)

    @app.errorhandler(ServiceError)
    def _service_error(exc):
        body = {"error": exc.message}
        field = getattr(exc, "field", None)
        if field:
            body["field"] = field
        return jsonify(body), exc.status_code

    @app.errorhandler(404)
    def _not_found(exc):
        return jsonify(error="Route not found"), 404

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return resp

    register_cli(app)

    return app

#-------------------------

def register_cli(app):
    @app.cli.command("hash-admin-password")
    @click.argument("password")
    def hash_admin_password(password):
        """Print a bcrypt hash to use as ADMIN_PASSWORD_HASH."""
        click.echo(hash_password(password))

    @app.cli.command("wait-payment")
    @click.argument("booking_id")
    def wait_payment(booking_id):
        """Poll a booking until its payment is paid/failed or the bound is hit."""
        store = get_services().store
        result = poll_payment_status(
            lambda: store.get(booking_id).payment_status,
            attempts=app.config.get("PAYMENT_POLL_ATTEMPTS", 12),
            interval=app.config.get("PAYMENT_POLL_INTERVAL_SECONDS", 5),
        )
        click.echo(f"{booking_id}: {result.status} after {result.attempts} attempt(s)")

#-------------------------


if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5000)
