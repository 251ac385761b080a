# lessonhub/extensions.py
"""
Flask extensions shared across the application.
Instances are created unbound and attached in init_extensions().
"""

import logging

from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
migrate = Migrate()
cors = CORS()
limiter = Limiter(key_func=get_remote_address)

logger = logging.getLogger(__name__)


def init_extensions(app):
    """Initialize all Flask extensions."""
    db.init_app(app)
    logger.info("SQLAlchemy initialized")

    migrate.init_app(app, db)
    logger.info("Flask-Migrate initialized")

    init_cors(app)
    logger.info("CORS initialized")

    limiter.init_app(app)
    if not app.config.get("RATELIMIT_ENABLED", True):
        logger.info("Rate limiting disabled by configuration")

    return app


def init_cors(app):
    """Initialize CORS for the API routes only."""
    cors.init_app(
        app,
        resources={r"/api/*": {"origins": app.config.get("CORS_ORIGINS", [])}},
        supports_credentials=app.config.get("CORS_SUPPORTS_CREDENTIALS", False),
        allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
        expose_headers=["X-Request-ID"],
        max_age=600,
    )


__all__ = ["db", "migrate", "cors", "limiter", "init_extensions"]
