from datetime import datetime
import uuid

from lessonhub.extensions import db


class Lesson(db.Model):
    __tablename__ = "lessons"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.String(1000), nullable=False)
    content = db.Column(db.Text, nullable=False)
    video_url = db.Column(db.String(500), nullable=True)
    thumbnail_url = db.Column(db.String(500), nullable=True)
    duration = db.Column(db.Integer, nullable=False)  # minutes
    category = db.Column(db.String(100), nullable=False, index=True)
    tags = db.Column(db.JSON, nullable=False, default=list)
    is_premium = db.Column(db.Boolean, nullable=False, default=False, index=True)
    author = db.Column(db.String(100), nullable=False)
    order = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        db.Index("idx_lesson_category_premium", "category", "is_premium"),
        db.Index("idx_lesson_order_created", "order", "created_at"),
    )

    # camelCase API field -> column attribute
    FIELD_MAP = {
        "title": "title",
        "description": "description",
        "content": "content",
        "videoUrl": "video_url",
        "thumbnailUrl": "thumbnail_url",
        "duration": "duration",
        "category": "category",
        "tags": "tags",
        "isPremium": "is_premium",
        "author": "author",
        "order": "order",
    }

    def update_from_dict(self, data):
        for field, attribute in self.FIELD_MAP.items():
            if field in data:
                setattr(self, attribute, data[field])

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "content": self.content,
            "videoUrl": self.video_url,
            "thumbnailUrl": self.thumbnail_url,
            "duration": self.duration,
            "category": self.category,
            "tags": list(self.tags or []),
            "isPremium": self.is_premium,
            "author": self.author,
            "order": self.order,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Lesson {self.title!r} premium={self.is_premium}>"
