"""Catalog queries and admin edits for lessons, with premium gating."""

import logging
import math
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError

from lessonhub.errors import AuthorizationError, NotFoundError, ValidationError
from lessonhub.extensions import db
from lessonhub.models.lesson import Lesson
from lessonhub.utils.validators import raise_if_errors, validate_url

logger = logging.getLogger(__name__)

PREMIUM_REQUIRED_MESSAGE = "Premium subscription required to access this lesson"
LESSON_NOT_FOUND_MESSAGE = "Lesson not found"

MAX_DURATION_MINUTES = 480
MAX_TAG_LENGTH = 50
STRING_LIMITS = {
    "title": 200,
    "description": 1000,
    "category": 100,
    "author": 100,
}


def effective_premium_filter(requested: Optional[bool], entitled: bool) -> Optional[bool]:
    """Unentitled callers only ever see free lessons, whatever they ask for."""
    if not entitled:
        return False
    return requested


def list_lessons(page, limit, entitled, category=None, is_premium=None, search=None):
    query = Lesson.query

    if category:
        query = query.filter(Lesson.category == category)

    premium_filter = effective_premium_filter(is_premium, entitled)
    if premium_filter is not None:
        query = query.filter(Lesson.is_premium.is_(premium_filter))

    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(
            Lesson.title.ilike(pattern),
            Lesson.description.ilike(pattern),
            db.cast(Lesson.tags, db.String).ilike(pattern),
        ))

    total = query.count()
    items = (
        query.order_by(Lesson.order.asc(), Lesson.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    return {
        "items": [lesson.to_dict() for lesson in items],
        "total": total,
        "page": page,
        "limit": limit,
        "totalPages": math.ceil(total / limit) if limit else 0,
    }


def get_lesson(lesson_id: str) -> Lesson:
    lesson = db.session.get(Lesson, lesson_id)
    if lesson is None:
        raise NotFoundError(LESSON_NOT_FOUND_MESSAGE)
    return lesson


def ensure_can_view(lesson: Lesson, entitled: bool) -> Lesson:
    if lesson.is_premium and not entitled:
        raise AuthorizationError(PREMIUM_REQUIRED_MESSAGE)
    return lesson


def validate_lesson_payload(data, partial=False):
    errors = []
    required = ("title", "description", "content", "duration", "category", "author")

    for field in required:
        if partial and field not in data:
            continue
        value = data.get(field)
        if value is None or (isinstance(value, str) and not value.strip()):
            errors.append(f"{field} is required")

    for field, limit in STRING_LIMITS.items():
        value = data.get(field)
        if value is None:
            continue
        if not isinstance(value, str):
            errors.append(f"{field} must be a string")
        elif len(value) > limit:
            errors.append(f"{field} cannot exceed {limit} characters")

    if "content" in data and data["content"] is not None and not isinstance(data["content"], str):
        errors.append("content must be a string")

    if "duration" in data and data["duration"] is not None:
        duration = data["duration"]
        if isinstance(duration, bool) or not isinstance(duration, int) or not 1 <= duration <= MAX_DURATION_MINUTES:
            errors.append(f"duration must be an integer between 1 and {MAX_DURATION_MINUTES}")

    for field in ("videoUrl", "thumbnailUrl"):
        if data.get(field) and not validate_url(data[field]):
            errors.append(f"{field} must be a valid http(s) URL")

    if "tags" in data:
        tags = data["tags"]
        if not isinstance(tags, list) or not all(isinstance(tag, str) for tag in tags):
            errors.append("tags must be a list of strings")
        elif any(len(tag) > MAX_TAG_LENGTH for tag in tags):
            errors.append(f"Each tag cannot exceed {MAX_TAG_LENGTH} characters")

    if "isPremium" in data and not isinstance(data["isPremium"], bool):
        errors.append("isPremium must be a boolean")

    if "order" in data and (isinstance(data["order"], bool) or not isinstance(data["order"], int)):
        errors.append("order must be an integer")

    raise_if_errors(errors)


def create_lesson(data) -> Lesson:
    validate_lesson_payload(data)
    lesson = Lesson(tags=[], is_premium=False, order=0)
    lesson.update_from_dict(data)

    try:
        db.session.add(lesson)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise

    logger.info("Lesson created", extra={"lesson_id": lesson.id, "premium": lesson.is_premium})
    return lesson


def update_lesson(lesson_id, data) -> Lesson:
    if not data:
        raise ValidationError("No fields to update")
    validate_lesson_payload(data, partial=True)
    lesson = get_lesson(lesson_id)
    lesson.update_from_dict(data)

    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise

    logger.info("Lesson updated", extra={"lesson_id": lesson.id})
    return lesson


def delete_lesson(lesson_id) -> None:
    lesson = get_lesson(lesson_id)
    try:
        db.session.delete(lesson)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise

    logger.info("Lesson deleted", extra={"lesson_id": lesson_id})
