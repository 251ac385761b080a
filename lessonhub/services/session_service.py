"""
Session lifecycle: registration, login, refresh-token rotation and logout.

The live refresh tokens of a user are the rows of ``refresh_tokens``.
Rotation deletes the presented token and inserts its replacement in a
single transaction; the delete is conditional, so when two refreshes race
on the same token only one of them removes a row and the other is rejected.
"""

import logging
from datetime import datetime
from typing import Tuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from werkzeug.security import check_password_hash, generate_password_hash

from lessonhub.domain.entitlements import SubscriptionStatus
from lessonhub.errors import (
    ConflictError,
    InvalidCredentialsError,
    InvalidRefreshTokenError,
    InvalidTokenError,
)
from lessonhub.extensions import db
from lessonhub.models.refresh_token import RefreshToken, hash_token
from lessonhub.models.user import User, UserRole
from lessonhub.security.tokens import TokenPair, TokenService, get_token_service

logger = logging.getLogger(__name__)

DUPLICATE_EMAIL_MESSAGE = "User with this email already exists"

# Compared against when the email is unknown so both login failures cost the same
_DUMMY_PASSWORD_HASH = generate_password_hash("lessonhub-timing-equalizer")


class SessionManager:

    def __init__(self, token_service: TokenService):
        self.tokens = token_service

    def register(self, email: str, password: str, first_name: str, last_name: str) -> Tuple[User, TokenPair]:
        if User.query.filter_by(email=email).first() is not None:
            raise ConflictError(DUPLICATE_EMAIL_MESSAGE)

        user = User(
            email=email,
            first_name=first_name,
            last_name=last_name,
            role=UserRole.USER,
            subscription_status=SubscriptionStatus.INACTIVE.value,
        )
        user.set_password(password)

        try:
            db.session.add(user)
            db.session.flush()
            pair = self._store_new_pair(user)
            db.session.commit()
        except IntegrityError:
            # Lost a race with a concurrent registration for the same email
            db.session.rollback()
            raise ConflictError(DUPLICATE_EMAIL_MESSAGE)
        except SQLAlchemyError:
            db.session.rollback()
            raise

        logger.info("User registered", extra={"user_id": user.id})
        return user, pair

    def login(self, email: str, password: str) -> Tuple[User, TokenPair]:
        user = User.query.filter_by(email=email).first()

        if user is None:
            check_password_hash(_DUMMY_PASSWORD_HASH, password or "")
            logger.info("Login failed", extra={"reason": "unknown_email"})
            raise InvalidCredentialsError()

        if not user.check_password(password or ""):
            logger.info("Login failed", extra={"reason": "bad_password", "user_id": user.id})
            raise InvalidCredentialsError()

        try:
            pair = self._store_new_pair(user)
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            raise

        logger.info("User logged in", extra={"user_id": user.id})
        return user, pair

    def refresh(self, refresh_token: str) -> TokenPair:
        # Every failure below surfaces with the same message
        try:
            payload = self.tokens.verify_refresh(refresh_token)
        except InvalidTokenError:
            raise InvalidRefreshTokenError()

        user = db.session.get(User, payload["userId"])
        if user is None:
            raise InvalidRefreshTokenError()

        try:
            consumed = (
                RefreshToken.query
                .filter_by(user_id=user.id, token_hash=hash_token(refresh_token))
                .delete(synchronize_session=False)
            )
            if consumed != 1:
                db.session.rollback()
                logger.warning(
                    "Refresh token is not in the live set",
                    extra={"user_id": user.id},
                )
                raise InvalidRefreshTokenError()

            pair = self._store_new_pair(user)
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            raise

        logger.info("Refresh token rotated", extra={"user_id": user.id})
        return pair

    def logout(self, refresh_token: str) -> None:
        """Idempotent: an unknown or already revoked token is not an error."""
        try:
            removed = (
                RefreshToken.query
                .filter_by(token_hash=hash_token(refresh_token))
                .delete(synchronize_session=False)
            )
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            raise

        logger.info("Logout", extra={"revoked": bool(removed)})

    def _store_new_pair(self, user: User) -> TokenPair:
        """Issue a pair and add its refresh token to the live set (caller commits)."""
        pair = self.tokens.issue_pair(user)

        RefreshToken.query.filter(
            RefreshToken.user_id == user.id,
            RefreshToken.expires_at <= datetime.utcnow(),
        ).delete(synchronize_session=False)

        db.session.add(RefreshToken.for_token(user.id, pair.refresh_token, pair.refresh_expires_at))
        return pair


def get_session_manager() -> SessionManager:
    return SessionManager(get_token_service())
