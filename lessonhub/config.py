"""
Configuration management for the lesson platform.
Secrets are read lazily from the environment and validated so that a
production deployment fails fast instead of running with weak settings.
"""

import os
import logging
import warnings
from datetime import timedelta
from enum import Enum
from typing import Any, Dict
from urllib.parse import urlparse

logger = logging.getLogger(__name__)


class Environment(str, Enum):
    """Environment types"""
    DEVELOPMENT = "development"
    PRODUCTION = "production"
    TESTING = "testing"


class ConfigurationError(Exception):
    """Raised when configuration validation fails"""
    pass


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


class BaseConfig:
    """
    Settings shared by every environment.
    Anything secret is an env-backed property so it is resolved on use.
    """

    # ============================================
    # APPLICATION META
    # ============================================
    APP_NAME = os.getenv("APP_NAME", "LessonHub")
    APP_VERSION = os.getenv("APP_VERSION", "1.0.0")

    ENV = Environment.DEVELOPMENT
    DEBUG = False
    TESTING = False
    PROPAGATE_EXCEPTIONS = False

    # ============================================
    # SECURITY KEYS
    # ============================================
    @property
    def SECRET_KEY(self):
        key = os.getenv("SECRET_KEY")
        if not key:
            if self.ENV == Environment.PRODUCTION:
                raise ConfigurationError("SECRET_KEY is required in production")
            return "dev-secret-key-change-immediately-in-production"
        return key

    @property
    def JWT_ACCESS_SECRET(self):
        """Signing secret for short-lived access tokens"""
        key = os.getenv("JWT_SECRET")
        if not key:
            if self.ENV == Environment.PRODUCTION:
                raise ConfigurationError("JWT_SECRET is required in production")
            warnings.warn("JWT_SECRET not set, using development fallback")
            return "dev-access-secret-change-immediately"
        if len(key) < 32 and self.ENV == Environment.PRODUCTION:
            raise ConfigurationError("JWT_SECRET must be at least 32 characters in production")
        return key

    @property
    def JWT_REFRESH_SECRET(self):
        """Signing secret for refresh tokens, never shared with access tokens"""
        key = os.getenv("JWT_REFRESH_SECRET")
        if not key:
            if self.ENV == Environment.PRODUCTION:
                raise ConfigurationError("JWT_REFRESH_SECRET is required in production")
            warnings.warn("JWT_REFRESH_SECRET not set, using development fallback")
            return "dev-refresh-secret-change-immediately"
        if len(key) < 32 and self.ENV == Environment.PRODUCTION:
            raise ConfigurationError("JWT_REFRESH_SECRET must be at least 32 characters in production")
        return key

    JWT_ALGORITHM = "HS256"
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(minutes=int(os.getenv("JWT_ACCESS_MINUTES", "15")))
    JWT_REFRESH_TOKEN_EXPIRES = timedelta(days=int(os.getenv("JWT_REFRESH_DAYS", "7")))

    # ============================================
    # DATABASE CONFIGURATION
    # ============================================
    @property
    def SQLALCHEMY_DATABASE_URI(self):
        uri = os.getenv("DATABASE_URL")

        if not uri:
            if self.ENV == Environment.PRODUCTION:
                raise ConfigurationError("DATABASE_URL is required in production")
            uri = "sqlite:///lessonhub.db"

        parsed = urlparse(uri)
        if self.ENV == Environment.PRODUCTION and parsed.scheme == "sqlite":
            raise ConfigurationError("SQLite is not allowed in production. Use PostgreSQL or MySQL.")

        # Heroku-style URLs are not accepted by SQLAlchemy 1.4+
        if uri.startswith("postgres://"):
            uri = uri.replace("postgres://", "postgresql://", 1)
        return uri

    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # ============================================
    # STRIPE
    # ============================================
    @property
    def STRIPE_SECRET_KEY(self):
        key = os.getenv("STRIPE_SECRET_KEY")

        if not key:
            if self.ENV == Environment.PRODUCTION:
                raise ConfigurationError("STRIPE_SECRET_KEY is required in production")
            return "sk_test_xxx"

        if self.ENV == Environment.PRODUCTION and key.startswith("sk_test"):
            raise ConfigurationError("Stripe test key detected in production!")

        return key

    @property
    def STRIPE_WEBHOOK_SECRET(self):
        secret = os.getenv("STRIPE_WEBHOOK_SECRET")

        if not secret and self.ENV == Environment.PRODUCTION:
            raise ConfigurationError("STRIPE_WEBHOOK_SECRET is required in production")

        return secret or ""

    STRIPE_WEBHOOK_TOLERANCE = int(os.getenv("STRIPE_WEBHOOK_TOLERANCE", "300"))

    # ============================================
    # CORS
    # ============================================
    @property
    def CORS_ORIGINS(self):
        origins = os.getenv("CORS_ORIGINS", "")
        if origins:
            origin_list = [origin.strip() for origin in origins.split(",") if origin.strip()]
            if self.ENV == Environment.PRODUCTION and "*" in origin_list:
                raise ConfigurationError("CORS wildcard ('*') is not allowed in production")
            return origin_list

        frontend_url = os.getenv("FRONTEND_URL", "http://localhost:3000").rstrip("/")
        return [frontend_url]

    CORS_SUPPORTS_CREDENTIALS = True

    # ============================================
    # RATE LIMITING
    # ============================================
    RATELIMIT_ENABLED = _env_flag("RATELIMIT_ENABLED", "true")
    RATELIMIT_STORAGE_URI = os.getenv("RATELIMIT_STORAGE_URI", "memory://")
    RATELIMIT_HEADERS_ENABLED = True
    AUTH_RATE_LIMIT = os.getenv("AUTH_RATE_LIMIT", "10 per minute")

    # ============================================
    # LOGGING & MONITORING
    # ============================================
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
    LOG_REQUESTS = _env_flag("LOG_REQUESTS")
    SENTRY_DSN = os.getenv("SENTRY_DSN")
    SENTRY_TRACES_SAMPLE_RATE = float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.1"))

    # ============================================
    # PAGINATION
    # ============================================
    PAGINATION_DEFAULT_LIMIT = 10
    PAGINATION_MAX_LIMIT = 100

    SECURITY_HEADERS = {
        "X-Content-Type-Options": "nosniff",
        "X-Frame-Options": "DENY",
        "Referrer-Policy": "strict-origin-when-cross-origin",
    }

    def validate(self) -> None:
        """Cross-field checks that cannot live in a single property"""
        if self.JWT_ACCESS_SECRET == self.JWT_REFRESH_SECRET:
            message = "JWT_SECRET and JWT_REFRESH_SECRET must differ"
            if self.ENV == Environment.PRODUCTION:
                raise ConfigurationError(message)
            warnings.warn(message)

    def to_dict(self) -> Dict[str, Any]:
        """Safe view of the configuration, secrets excluded"""
        return {
            "environment": self.ENV.value,
            "debug": self.DEBUG,
            "app_name": self.APP_NAME,
            "version": self.APP_VERSION,
            "access_token_minutes": int(self.JWT_ACCESS_TOKEN_EXPIRES.total_seconds() // 60),
            "refresh_token_days": self.JWT_REFRESH_TOKEN_EXPIRES.days,
            "rate_limit_enabled": self.RATELIMIT_ENABLED,
        }

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} env={self.ENV.value}>"


class DevelopmentConfig(BaseConfig):
    """Development configuration"""

    ENV = Environment.DEVELOPMENT
    DEBUG = _env_flag("FLASK_DEBUG", "true")
    LOG_REQUESTS = True


class ProductionConfig(BaseConfig):
    """Production configuration"""

    ENV = Environment.PRODUCTION
    DEBUG = False

    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_size": int(os.getenv("DATABASE_POOL_SIZE", "10")),
        "max_overflow": int(os.getenv("DATABASE_MAX_OVERFLOW", "20")),
        "pool_recycle": int(os.getenv("DATABASE_POOL_RECYCLE", "3600")),
        "pool_pre_ping": True,
    }

    SECURITY_HEADERS = {
        **BaseConfig.SECURITY_HEADERS,
        "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
    }


class TestingConfig(BaseConfig):
    """Testing configuration"""

    ENV = Environment.TESTING
    DEBUG = False
    TESTING = True

    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    JWT_ACCESS_SECRET = "test-access-secret-with-enough-length"
    JWT_REFRESH_SECRET = "test-refresh-secret-with-enough-length"
    STRIPE_SECRET_KEY = "sk_test_mock"
    STRIPE_WEBHOOK_SECRET = "whsec_test_secret"
    RATELIMIT_ENABLED = False
    CORS_ORIGINS = ["*"]
    LOG_LEVEL = "WARNING"
    LOG_REQUESTS = False
    SENTRY_DSN = None


CONFIG_MAP = {
    Environment.DEVELOPMENT: DevelopmentConfig,
    Environment.PRODUCTION: ProductionConfig,
    Environment.TESTING: TestingConfig,
}


def get_config(env: str = None) -> BaseConfig:
    """Get configuration based on environment"""
    if env is None:
        env = os.getenv("FLASK_CONFIG", os.getenv("FLASK_ENV", "development"))

    try:
        config_class = CONFIG_MAP[Environment(env.lower())]
    except ValueError:
        raise ConfigurationError(f"Unknown environment: {env}")

    config = config_class()
    config.validate()
    logger.debug(f"Loaded {config!r}")
    return config
