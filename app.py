import logging

import click
from flask import Flask
from flask_migrate import Migrate
from werkzeug.exceptions import HTTPException

from config import Config
from models import db
from routes import auth_bp, health_bp
from security.policy import SecurityPolicy
from security.services import AuthServices, get_services
from utils.account_cleanup import cleanup_unverified_accounts
from utils.auth_context import load_current_user
from utils.emailer import Mailer
from utils.log_config import configure_logging
from utils.responses import ApiError, fail

logger = logging.getLogger(__name__)


def create_app(config_object=Config, mailer=None, **overrides):
    app = Flask(__name__)
    app.config.from_object(config_object)
    app.config.update(overrides)

    configure_logging(app.config.get("LOG_LEVEL"))

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(auth_bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    policy = SecurityPolicy.from_config(app.config)
    AuthServices(policy, mailer or Mailer.from_config(app.config)).init_app(app)

    @app.before_request
    def _load_user():
        load_current_user()

    @app.errorhandler(ApiError)
    def _api_error(err):
        return fail(err.status, err.message, err.code, **err.extra)

    @app.errorhandler(HTTPException)
    def _http_error(err):
        return fail(err.code, err.description, err.name.upper().replace(" ", "_"))

    @app.errorhandler(Exception)
    def _unexpected_error(err):
        db.session.rollback()
        logger.exception("Unhandled error")
        return fail(500, "Something went wrong. Please try again", "INTERNAL_ERROR")

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
    @app.cli.command("cleanup-unverified")
    @click.option("--warning-days", type=int, default=None, help="Warn accounts older than this.")
    @click.option("--deletion-days", type=int, default=None, help="Delete accounts older than this.")
    @click.option("--no-warnings", is_flag=True, help="Only delete, do not send reminder emails.")
    def cleanup_unverified(warning_days, deletion_days, no_warnings):
        """Remind, then delete, accounts that never verified their email."""
        if not app.config.get("ACCOUNT_CLEANUP_ENABLED", True):
            click.echo("Account cleanup is disabled (ACCOUNT_CLEANUP_ENABLED=false)")
            return

        services = get_services()
        result = cleanup_unverified_accounts(
            services.store,
            services.mailer,
            services.policy,
            warning_days=warning_days if warning_days is not None else app.config["ACCOUNT_CLEANUP_WARNING_DAYS"],
            deletion_days=deletion_days if deletion_days is not None else app.config["ACCOUNT_CLEANUP_DELETION_DAYS"],
            send_warnings=not no_warnings,
        )
        click.echo(f"Deleted {result.deleted_count} account(s), sent {result.warning_emails_sent} warning(s)")

    @app.cli.command("make-verified")
    @click.argument("email")
    def make_verified(email):
        """Mark a user's email as verified (support bootstrap)."""
        services = get_services()
        user = services.store.find_user_by_email(email)
        if not user:
            click.echo("User not found")
            return

        services.store.update_user(
            user,
            is_email_verified=True,
            two_factor_otp=None,
            email_verify_token=None,
            email_verify_expires=None,
        )
        click.echo(f"{user.email} marked as verified")

#-------------------------


if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)
