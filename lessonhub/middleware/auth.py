"""
Request-time access guard.

Decorators compose in route order: ``require_auth`` or ``optional_auth``
resolve the caller into ``g.identity``; ``require_role`` and
``require_subscription`` then authorize that identity. An identity is either
``Identity`` (verified user) or ``Anonymous`` whose ``reason`` says whether a
credential was never sent (None) or was sent and rejected.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from functools import wraps
from typing import Callable, Optional, Union

from flask import g, request

from lessonhub.domain.entitlements import is_active
from lessonhub.errors import (
    AuthenticationError,
    AuthorizationError,
    InvalidTokenError,
    TokenExpiredError,
)
from lessonhub.extensions import db
from lessonhub.models.user import User
from lessonhub.security.tokens import get_token_service

logger = logging.getLogger(__name__)

ACCESS_TOKEN_REQUIRED_MESSAGE = "Access token is required"
SUBSCRIPTION_REQUIRED_MESSAGE = "Active subscription required to access this content"


@dataclass(frozen=True)
class Identity:
    user: User
    claims: dict = field(default_factory=dict)

    is_authenticated = True


@dataclass(frozen=True)
class Anonymous:
    reason: Optional[str] = None

    is_authenticated = False
    user = None

    @property
    def attempted(self) -> bool:
        return self.reason is not None


RequestIdentity = Union[Identity, Anonymous]


def _bearer_token() -> Optional[str]:
    header = request.headers.get("Authorization")
    if header is None:
        return None
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer":
        return ""
    return token.strip()


def resolve_identity() -> RequestIdentity:
    token = _bearer_token()
    if token is None:
        return Anonymous()
    if not token:
        return Anonymous(reason="malformed_header")

    try:
        claims = get_token_service().verify_access(token)
    except TokenExpiredError:
        return Anonymous(reason="token_expired")
    except InvalidTokenError:
        return Anonymous(reason="invalid_token")

    # Always a fresh row so a cancellation applied a moment ago is visible
    user = db.session.get(User, claims["userId"], populate_existing=True)
    if user is None:
        return Anonymous(reason="unknown_user")
    return Identity(user=user, claims=claims)


def current_identity() -> RequestIdentity:
    return g.get("identity") or Anonymous()


def current_user() -> Optional[User]:
    return current_identity().user


def is_entitled(identity: Optional[RequestIdentity] = None) -> bool:
    identity = identity or current_identity()
    if not identity.is_authenticated:
        return False
    return is_active(identity.user.subscription, datetime.utcnow())


def require_auth(fn: Callable) -> Callable:
    """Reject the request with 401 unless a valid access token is presented."""
    @wraps(fn)
    def wrapper(*args, **kwargs):
        identity = resolve_identity()
        if not identity.is_authenticated:
            logger.info(
                "Authentication rejected",
                extra={"reason": identity.reason or "missing_token", "path": request.path},
            )
            if not identity.attempted:
                raise AuthenticationError(ACCESS_TOKEN_REQUIRED_MESSAGE)
            raise InvalidTokenError()
        g.identity = identity
        return fn(*args, **kwargs)

    return wrapper


def optional_auth(fn: Callable) -> Callable:
    """Resolve the caller if possible; anonymous callers are let through."""
    @wraps(fn)
    def wrapper(*args, **kwargs):
        identity = resolve_identity()
        if not identity.is_authenticated and identity.attempted:
            logger.debug("Optional authentication failed", extra={"reason": identity.reason})
        g.identity = identity
        return fn(*args, **kwargs)

    return wrapper


def require_role(*roles: str) -> Callable:
    """Must be applied below require_auth."""
    def decorator(fn: Callable) -> Callable:
        @wraps(fn)
        def wrapper(*args, **kwargs):
            identity = current_identity()
            if not identity.is_authenticated:
                raise AuthenticationError()
            if identity.user.role not in roles:
                logger.warning(
                    "Role check failed",
                    extra={"user_id": identity.user.id, "role": identity.user.role, "allowed": list(roles)},
                )
                raise AuthorizationError()
            return fn(*args, **kwargs)

        return wrapper

    return decorator


def require_subscription(fn: Callable) -> Callable:
    """Must be applied below require_auth."""
    @wraps(fn)
    def wrapper(*args, **kwargs):
        identity = current_identity()
        if not identity.is_authenticated:
            raise AuthenticationError()
        if not is_entitled(identity):
            logger.info("Subscription required", extra={"user_id": identity.user.id})
            raise AuthorizationError(SUBSCRIPTION_REQUIRED_MESSAGE)
        return fn(*args, **kwargs)

    return wrapper
