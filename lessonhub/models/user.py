from datetime import datetime
import uuid

from werkzeug.security import generate_password_hash, check_password_hash

from lessonhub.extensions import db
from lessonhub.domain.entitlements import SubscriptionSnapshot, SubscriptionStatus, is_active


class UserRole:
    USER = "user"
    ADMIN = "admin"

    ALL = (USER, ADMIN)


class User(db.Model):
    __tablename__ = "users"

    # ========== IDENTIFICATION ==========
    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = db.Column(db.String(254), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    first_name = db.Column(db.String(50), nullable=False)
    last_name = db.Column(db.String(50), nullable=False)
    role = db.Column(db.String(20), nullable=False, default=UserRole.USER)

    # ========== SUBSCRIPTION SNAPSHOT ==========
    subscription_status = db.Column(
        db.String(20), nullable=False, default=SubscriptionStatus.INACTIVE.value
    )
    stripe_customer_id = db.Column(db.String(100), unique=True, nullable=True, index=True)
    stripe_subscription_id = db.Column(db.String(100), nullable=True)
    current_period_end = db.Column(db.DateTime, nullable=True)

    # ========== TIMESTAMPS ==========
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # ========== RELATIONSHIPS ==========
    refresh_tokens = db.relationship(
        "RefreshToken",
        backref="user",
        lazy=True,
        cascade="all, delete-orphan",
    )
    subscription_record = db.relationship(
        "SubscriptionRecord",
        backref="user",
        uselist=False,
        cascade="all, delete-orphan",
    )

    # ========== PASSWORD MANAGEMENT ==========

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    # ========== SUBSCRIPTION ==========

    @property
    def subscription(self) -> SubscriptionSnapshot:
        return SubscriptionSnapshot(
            status=SubscriptionStatus(self.subscription_status or SubscriptionStatus.INACTIVE.value),
            stripe_customer_id=self.stripe_customer_id,
            stripe_subscription_id=self.stripe_subscription_id,
            current_period_end=self.current_period_end,
        )

    def apply_snapshot(self, snapshot: SubscriptionSnapshot):
        """Overwrite the embedded snapshot with provider-authoritative values"""
        self.subscription_status = snapshot.status.value
        self.stripe_customer_id = snapshot.stripe_customer_id
        self.stripe_subscription_id = snapshot.stripe_subscription_id
        self.current_period_end = snapshot.current_period_end

    def has_active_subscription(self, now=None) -> bool:
        return is_active(self.subscription, now or datetime.utcnow())

    @property
    def is_admin(self):
        return self.role == UserRole.ADMIN

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}"

    # ========== SERIALIZATION ==========

    def to_dict(self):
        """Public representation; password hash and refresh tokens never leave the model"""
        return {
            "id": self.id,
            "email": self.email,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "role": self.role,
            "subscription": self.subscription.to_dict(),
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<User {self.email}>"
