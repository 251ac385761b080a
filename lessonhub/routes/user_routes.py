import logging
import math

from flask import Blueprint, current_app, request
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from lessonhub.errors import ConflictError, NotFoundError, ValidationError
from lessonhub.extensions import db
from lessonhub.middleware.auth import current_user, require_auth, require_role
from lessonhub.models.user import User, UserRole
from lessonhub.utils.responses import success_response
from lessonhub.utils.validators import (
    get_json_body,
    normalize_email,
    raise_if_errors,
    validate_email,
    validate_name,
)

logger = logging.getLogger(__name__)

bp = Blueprint("users", __name__, url_prefix="/api/users")

EMAIL_TAKEN_MESSAGE = "Email is already taken"


def _get_user_or_404(user_id):
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


@bp.route("/profile", methods=["PUT"])
@require_auth
def update_profile():
    data = get_json_body()
    user = current_user()
    errors = []

    # password, role and subscription are not editable here
    if "firstName" in data:
        first_name, error = validate_name(data.get("firstName"), "First name")
        if error:
            errors.append(error)
        else:
            user.first_name = first_name

    if "lastName" in data:
        last_name, error = validate_name(data.get("lastName"), "Last name")
        if error:
            errors.append(error)
        else:
            user.last_name = last_name

    if "email" in data:
        email = normalize_email(data.get("email"))
        if not validate_email(email):
            errors.append("Please provide a valid email")
        elif email != user.email:
            if User.query.filter(User.email == email, User.id != user.id).first():
                errors.append(EMAIL_TAKEN_MESSAGE)
            else:
                user.email = email

    if errors:
        db.session.rollback()
    raise_if_errors(errors)

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(EMAIL_TAKEN_MESSAGE)
    except SQLAlchemyError:
        db.session.rollback()
        raise

    logger.info("Profile updated", extra={"user_id": user.id})
    return success_response("Profile updated successfully", user.to_dict())


@bp.route("", methods=["GET"])
@bp.route("/", methods=["GET"])
@require_auth
@require_role(UserRole.ADMIN)
def list_users():
    try:
        page = int(request.args.get("page", 1))
        limit = int(request.args.get("limit", current_app.config.get("PAGINATION_DEFAULT_LIMIT", 10)))
    except ValueError:
        raise ValidationError("page and limit must be integers")

    max_limit = current_app.config.get("PAGINATION_MAX_LIMIT", 100)
    if page < 1 or not 1 <= limit <= max_limit:
        raise ValidationError(f"page must be positive and limit between 1 and {max_limit}")

    query = User.query.order_by(User.created_at.desc())
    total = query.count()
    users = query.offset((page - 1) * limit).limit(limit).all()

    return success_response("Users retrieved successfully", {
        "items": [user.to_dict() for user in users],
        "total": total,
        "page": page,
        "limit": limit,
        "totalPages": math.ceil(total / limit),
    })


@bp.route("/<user_id>", methods=["GET"])
@require_auth
@require_role(UserRole.ADMIN)
def get_user(user_id):
    return success_response("User retrieved successfully", _get_user_or_404(user_id).to_dict())


@bp.route("/<user_id>", methods=["DELETE"])
@require_auth
@require_role(UserRole.ADMIN)
def delete_user(user_id):
    user = _get_user_or_404(user_id)
    if user.id == current_user().id:
        raise ValidationError("Administrators cannot delete their own account")

    try:
        db.session.delete(user)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise

    logger.info("User deleted", extra={"user_id": user_id, "deleted_by": current_user().id})
    return success_response("User deleted successfully")
