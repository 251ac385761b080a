from datetime import datetime

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from lessonhub.extensions import db
from lessonhub.models.webhook_event import WebhookEvent, WebhookEventStatus

COMPLETED_STATUSES = (WebhookEventStatus.PROCESSED, WebhookEventStatus.IGNORED)


def is_event_processed(event_id: str) -> bool:
    if not event_id:
        return False
    return (
        db.session.query(WebhookEvent)
        .filter(WebhookEvent.event_id == event_id, WebhookEvent.status.in_(COMPLETED_STATUSES))
        .first()
        is not None
    )


def _find_event(event_id: str):
    return WebhookEvent.query.filter_by(event_id=event_id).first()


def _save_outcome(record, event_id, event_type, status, error):
    try:
        if record is None:
            record = WebhookEvent(event_id=event_id, event_type=event_type or "unknown")
            db.session.add(record)

        record.status = status
        record.error = error
        record.processed_at = datetime.utcnow()
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise
    return record


def record_event_outcome(event_id: str, event_type: str, status: str, error: str = None):
    if not event_id:
        return None

    try:
        return _save_outcome(_find_event(event_id), event_id, event_type, status, error)
    except IntegrityError:
        # A concurrent delivery of the same event inserted the row first
        return _save_outcome(_find_event(event_id), event_id, event_type, status, error)
