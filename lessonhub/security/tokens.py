"""
Access/refresh token issuing and verification.

Access and refresh tokens are signed with two distinct secrets so a leak of
one class of secret cannot be used to forge the other.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

import jwt
from flask import current_app

from lessonhub.errors import InvalidTokenError, TokenExpiredError

logger = logging.getLogger(__name__)

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    refresh_expires_at: datetime

    def to_dict(self):
        return {"accessToken": self.access_token, "refreshToken": self.refresh_token}


class TokenService:
    """Stateless signer/verifier. The secrets are read-only after startup."""

    def __init__(
        self,
        access_secret: str,
        refresh_secret: str,
        access_expires: timedelta = timedelta(minutes=15),
        refresh_expires: timedelta = timedelta(days=7),
        algorithm: str = "HS256",
    ):
        if not access_secret or not refresh_secret:
            raise ValueError("Both access and refresh secrets are required")
        self._access_secret = access_secret
        self._refresh_secret = refresh_secret
        self.access_expires = access_expires
        self.refresh_expires = refresh_expires
        self.algorithm = algorithm

    @classmethod
    def from_config(cls, config) -> "TokenService":
        return cls(
            access_secret=config["JWT_ACCESS_SECRET"],
            refresh_secret=config["JWT_REFRESH_SECRET"],
            access_expires=config["JWT_ACCESS_TOKEN_EXPIRES"],
            refresh_expires=config["JWT_REFRESH_TOKEN_EXPIRES"],
            algorithm=config.get("JWT_ALGORITHM", "HS256"),
        )

    # ========== ISSUING ==========

    def issue_access(self, user, now: Optional[datetime] = None) -> str:
        now = now or _utcnow()
        payload = {
            "userId": user.id,
            "email": user.email,
            "role": user.role,
            "type": ACCESS_TOKEN_TYPE,
            "iat": now,
            "exp": now + self.access_expires,
        }
        return jwt.encode(payload, self._access_secret, algorithm=self.algorithm)

    def issue_refresh(self, user, now: Optional[datetime] = None) -> str:
        now = now or _utcnow()
        payload = {
            "userId": user.id,
            "type": REFRESH_TOKEN_TYPE,
            "jti": uuid.uuid4().hex,
            "iat": now,
            "exp": now + self.refresh_expires,
        }
        return jwt.encode(payload, self._refresh_secret, algorithm=self.algorithm)

    def issue_pair(self, user) -> TokenPair:
        now = _utcnow()
        return TokenPair(
            access_token=self.issue_access(user, now),
            refresh_token=self.issue_refresh(user, now),
            refresh_expires_at=now + self.refresh_expires,
        )

    # ========== VERIFYING ==========

    def verify_access(self, token: str) -> dict:
        return self._decode(token, self._access_secret, ACCESS_TOKEN_TYPE)

    def verify_refresh(self, token: str) -> dict:
        return self._decode(token, self._refresh_secret, REFRESH_TOKEN_TYPE)

    def _decode(self, token: str, secret: str, expected_type: str) -> dict:
        if not token:
            raise InvalidTokenError()
        try:
            payload = jwt.decode(
                token,
                secret,
                algorithms=[self.algorithm],
                options={"require": ["exp", "iat"]},
            )
        except jwt.ExpiredSignatureError:
            raise TokenExpiredError()
        except jwt.InvalidTokenError as e:
            logger.debug(f"Rejected {expected_type} token: {e}")
            raise InvalidTokenError()

        if payload.get("type") != expected_type or not payload.get("userId"):
            raise InvalidTokenError()
        return payload


def _utcnow() -> datetime:
    # exp/iat are whole seconds on the wire
    return datetime.utcnow().replace(microsecond=0)


def get_token_service() -> TokenService:
    return current_app.extensions["token_service"]
