"""
Flask application factory for the subscription-gated lesson platform.
Configuration is validated up front so a misconfigured deployment fails
at startup rather than on the first request.
"""

import logging
from datetime import datetime
from typing import Optional

import sentry_sdk
from flask import Flask, jsonify
from sentry_sdk.integrations.flask import FlaskIntegration
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from lessonhub.config import Environment, get_config
from lessonhub.error_handlers import register_error_handlers
from lessonhub.extensions import db, init_extensions
from lessonhub.logging_config import setup_logging
from lessonhub.middleware.request_id import init_request_id_middleware
from lessonhub.security.tokens import TokenService
from lessonhub.services.billing_client import BillingClient, StripeBillingClient

logger = logging.getLogger(__name__)


def setup_sentry(app: Flask) -> None:
    """Initialize Sentry error tracking"""
    sentry_dsn = app.config.get("SENTRY_DSN")

    if sentry_dsn and app.config.get("ENV") == Environment.PRODUCTION:
        sentry_sdk.init(
            dsn=sentry_dsn,
            integrations=[FlaskIntegration()],
            traces_sample_rate=app.config.get("SENTRY_TRACES_SAMPLE_RATE", 0.1),
            environment=Environment.PRODUCTION.value,
            release=app.config.get("APP_VERSION", "1.0.0"),
            send_default_pii=False,
        )
        app.logger.info("Sentry error tracking initialized")


def setup_security_headers(app: Flask) -> None:
    """Add security headers to all responses"""

    @app.after_request
    def add_security_headers(response):
        for header, value in app.config.get("SECURITY_HEADERS", {}).items():
            if header not in response.headers:
                response.headers[header] = value
        return response


def init_services(app: Flask, billing_client: Optional[BillingClient] = None) -> None:
    """Build the stateless services once and hang them off app.extensions"""
    app.extensions["token_service"] = TokenService.from_config(app.config)
    app.extensions["billing_client"] = billing_client or StripeBillingClient.from_config(app.config)


def register_routes(app: Flask) -> None:
    from lessonhub.routes.auth_routes import bp as auth_bp
    from lessonhub.routes.lesson_routes import bp as lessons_bp
    from lessonhub.routes.subscription_routes import bp as subscriptions_bp
    from lessonhub.routes.user_routes import bp as users_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(lessons_bp)
    app.register_blueprint(subscriptions_bp)
    app.register_blueprint(users_bp)

    @app.route("/health", methods=["GET"])
    def health_check():
        health_status = {
            "status": "healthy",
            "timestamp": datetime.utcnow().isoformat(),
            "environment": app.config["ENV"].value,
            "version": app.config.get("APP_VERSION", "1.0.0"),
            "checks": {},
        }

        try:
            db.session.execute(text("SELECT 1"))
            health_status["checks"]["database"] = "healthy"
        except SQLAlchemyError as e:
            logger.error("Health check database failure", exc_info=e)
            health_status["checks"]["database"] = "unhealthy"
            health_status["status"] = "degraded"

        return jsonify(health_status), 200 if health_status["status"] == "healthy" else 503


def create_app(config_name: Optional[str] = None, billing_client: Optional[BillingClient] = None) -> Flask:
    """
    Application factory.

    Args:
        config_name: development, production or testing (defaults to FLASK_CONFIG)
        billing_client: provider client to use instead of the Stripe one
    """
    app = Flask(__name__)

    config = get_config(config_name)
    app.config.from_object(config)

    init_request_id_middleware(app)
    setup_logging(app)
    setup_sentry(app)

    init_extensions(app)
    init_services(app, billing_client)
    setup_security_headers(app)
    register_error_handlers(app)
    register_routes(app)

    # Import models so metadata is complete for create_all and migrations
    from lessonhub import models  # noqa: F401

    app.logger.info(f"Application started in {config.ENV.value} mode")
    return app
