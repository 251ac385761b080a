from flask import Blueprint, current_app

from lessonhub.errors import NotFoundError, ValidationError
from lessonhub.extensions import db, limiter
from lessonhub.middleware.auth import current_user, require_auth
from lessonhub.models.user import User
from lessonhub.services.session_service import get_session_manager
from lessonhub.utils.responses import success_response
from lessonhub.utils.validators import (
    get_json_body,
    normalize_email,
    raise_if_errors,
    validate_email,
    validate_name,
    validate_password,
)

bp = Blueprint("auth", __name__, url_prefix="/api/auth")

REFRESH_TOKEN_REQUIRED_MESSAGE = "Refresh token is required"


def auth_rate_limit():
    return current_app.config.get("AUTH_RATE_LIMIT", "10 per minute")


def _refresh_token_from(data):
    token = data.get("refreshToken")
    if not isinstance(token, str) or not token.strip():
        raise ValidationError(REFRESH_TOKEN_REQUIRED_MESSAGE)
    return token.strip()


@bp.route("/register", methods=["POST"])
@limiter.limit(auth_rate_limit)
def register():
    data = get_json_body()
    errors = []

    email = normalize_email(data.get("email"))
    if not validate_email(email):
        errors.append("Please provide a valid email")

    password = data.get("password")
    ok, message = validate_password(password if isinstance(password, str) else None)
    if not ok:
        errors.append(message)

    first_name, error = validate_name(data.get("firstName"), "First name")
    if error:
        errors.append(error)
    last_name, error = validate_name(data.get("lastName"), "Last name")
    if error:
        errors.append(error)

    raise_if_errors(errors)

    user, tokens = get_session_manager().register(email, password, first_name, last_name)
    return success_response(
        "User registered successfully",
        {"user": user.to_dict(), "tokens": tokens.to_dict()},
        201,
    )


@bp.route("/login", methods=["POST"])
@limiter.limit(auth_rate_limit)
def login():
    data = get_json_body()
    email = normalize_email(data.get("email"))
    password = data.get("password")

    if not validate_email(email) or not isinstance(password, str) or not password:
        raise ValidationError("Email and password are required")

    user, tokens = get_session_manager().login(email, password)
    return success_response(
        "Login successful",
        {"user": user.to_dict(), "tokens": tokens.to_dict()},
    )


@bp.route("/refresh", methods=["POST"])
@limiter.limit(auth_rate_limit)
def refresh():
    token = _refresh_token_from(get_json_body())
    tokens = get_session_manager().refresh(token)
    return success_response("Token refreshed successfully", {"tokens": tokens.to_dict()})


@bp.route("/logout", methods=["POST"])
def logout():
    token = _refresh_token_from(get_json_body())
    get_session_manager().logout(token)
    return success_response("Logout successful")


@bp.route("/profile", methods=["GET"])
@require_auth
def profile():
    return success_response("Profile retrieved successfully", current_user().to_dict())


@bp.route("/profile/<user_id>", methods=["GET"])
@require_auth
def profile_by_id(user_id):
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return success_response("Profile retrieved successfully", user.to_dict())
