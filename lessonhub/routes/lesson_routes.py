from flask import Blueprint, current_app, request

from lessonhub.errors import ValidationError
from lessonhub.middleware.auth import (
    is_entitled,
    optional_auth,
    require_auth,
    require_role,
    require_subscription,
)
from lessonhub.models.user import UserRole
from lessonhub.services import lesson_service
from lessonhub.utils.responses import success_response
from lessonhub.utils.validators import get_json_body

bp = Blueprint("lessons", __name__, url_prefix="/api/lessons")


def _int_arg(name, default, minimum, maximum):
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer")
    if value < minimum or value > maximum:
        raise ValidationError(f"{name} must be between {minimum} and {maximum}")
    return value


def _bool_arg(name):
    raw = request.args.get(name)
    if raw is None or raw == "":
        return None
    if raw.lower() not in ("true", "false"):
        raise ValidationError(f"{name} must be true or false")
    return raw.lower() == "true"


def _pagination():
    config = current_app.config
    max_limit = config.get("PAGINATION_MAX_LIMIT", 100)
    page = _int_arg("page", 1, 1, 10 ** 6)
    limit = _int_arg("limit", config.get("PAGINATION_DEFAULT_LIMIT", 10), 1, max_limit)
    return page, limit


@bp.route("", methods=["GET"])
@bp.route("/", methods=["GET"])
@optional_auth
def list_lessons():
    page, limit = _pagination()
    result = lesson_service.list_lessons(
        page,
        limit,
        entitled=is_entitled(),
        category=request.args.get("category") or None,
        is_premium=_bool_arg("isPremium"),
    )
    return success_response("Lessons retrieved successfully", result)


@bp.route("/search", methods=["GET"])
@optional_auth
def search_lessons():
    query = (request.args.get("q") or "").strip()
    if not query:
        raise ValidationError("Search query is required")

    page, limit = _pagination()
    result = lesson_service.list_lessons(
        page,
        limit,
        entitled=is_entitled(),
        category=request.args.get("category") or None,
        is_premium=_bool_arg("isPremium"),
        search=query,
    )
    return success_response("Search results retrieved successfully", result)


@bp.route("/category/<category>", methods=["GET"])
@optional_auth
def lessons_by_category(category):
    page, limit = _pagination()
    result = lesson_service.list_lessons(
        page,
        limit,
        entitled=is_entitled(),
        category=category,
        is_premium=_bool_arg("isPremium"),
    )
    return success_response("Lessons retrieved successfully", result)


@bp.route("/<lesson_id>", methods=["GET"])
@optional_auth
def get_lesson(lesson_id):
    lesson = lesson_service.get_lesson(lesson_id)
    lesson_service.ensure_can_view(lesson, is_entitled())
    return success_response("Lesson retrieved successfully", lesson.to_dict())


@bp.route("/premium/<lesson_id>", methods=["GET"])
@require_auth
@require_subscription
def get_premium_lesson(lesson_id):
    lesson = lesson_service.get_lesson(lesson_id)
    return success_response("Lesson retrieved successfully", lesson.to_dict())


@bp.route("", methods=["POST"])
@bp.route("/", methods=["POST"])
@require_auth
@require_role(UserRole.ADMIN)
def create_lesson():
    lesson = lesson_service.create_lesson(get_json_body())
    return success_response("Lesson created successfully", lesson.to_dict(), 201)


@bp.route("/<lesson_id>", methods=["PUT"])
@require_auth
@require_role(UserRole.ADMIN)
def update_lesson(lesson_id):
    lesson = lesson_service.update_lesson(lesson_id, get_json_body())
    return success_response("Lesson updated successfully", lesson.to_dict())


@bp.route("/<lesson_id>", methods=["DELETE"])
@require_auth
@require_role(UserRole.ADMIN)
def delete_lesson(lesson_id):
    lesson_service.delete_lesson(lesson_id)
    return success_response("Lesson deleted successfully")
