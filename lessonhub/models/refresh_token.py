from datetime import datetime
import hashlib

from lessonhub.extensions import db


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class RefreshToken(db.Model):
    """One live refresh credential. Removing the row revokes the token."""

    __tablename__ = "refresh_tokens"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    token_hash = db.Column(db.String(64), nullable=False, unique=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    expires_at = db.Column(db.DateTime, nullable=False)

    @classmethod
    def for_token(cls, user_id: str, token: str, expires_at: datetime) -> "RefreshToken":
        return cls(user_id=user_id, token_hash=hash_token(token), expires_at=expires_at)

    @property
    def is_expired(self):
        return self.expires_at <= datetime.utcnow()

    def __repr__(self):
        return f"<RefreshToken user={self.user_id} expires={self.expires_at}>"
