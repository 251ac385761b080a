from datetime import datetime

from lessonhub.extensions import db


class WebhookEventStatus:
    PROCESSED = "processed"
    IGNORED = "ignored"
    FAILED = "failed"


class WebhookEvent(db.Model):
    """Ledger of provider webhook deliveries, keyed by the provider event id."""

    __tablename__ = "webhook_events"

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(db.String(255), unique=True, nullable=False, index=True)
    event_type = db.Column(db.String(255), nullable=False)
    status = db.Column(db.String(20), nullable=False)
    error = db.Column(db.Text, nullable=True)
    received_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    processed_at = db.Column(db.DateTime, nullable=True)

    def __repr__(self):
        return f"<WebhookEvent {self.event_id} {self.event_type} {self.status}>"
