from lessonhub.models.user import User, UserRole
from lessonhub.models.refresh_token import RefreshToken
from lessonhub.models.subscription import SubscriptionRecord
from lessonhub.models.lesson import Lesson
from lessonhub.models.webhook_event import WebhookEvent, WebhookEventStatus

__all__ = [
    "User",
    "UserRole",
    "RefreshToken",
    "SubscriptionRecord",
    "Lesson",
    "WebhookEvent",
    "WebhookEventStatus",
]
