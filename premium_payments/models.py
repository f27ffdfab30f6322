from datetime import datetime, timezone
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, JSON, String
from sqlalchemy.types import TypeDecorator
from premium_payments.database import Base


def utcnow():
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Timezone-aware UTC datetimes, also on SQLite which stores them naive."""
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    firebase_uid = Column(String, unique=True, nullable=False, index=True)  # identity provider uid
    email = Column(String, nullable=False, index=True)
    name = Column(String)
    photo_url = Column(String)
    is_premium = Column(Boolean, nullable=False, default=False)
    role = Column(String, nullable=False, default="user")             # user | admin
    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)


class Payment(Base):
    __tablename__ = "payments"
    __table_args__ = (
        Index("ix_payments_user_status", "user_id", "status"),
    )

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    firebase_uid = Column(String, nullable=False, index=True)
    email = Column(String, nullable=False)
    stripe_session_id = Column(String, unique=True, nullable=False)
    stripe_payment_intent_id = Column(String, unique=True)   # NULLs never collide
    amount = Column(Integer, nullable=False)                  # subunits
    currency = Column(String, nullable=False, default="bdt")
    status = Column(String, nullable=False, default="pending")  # pending | completed | failed | refunded
    payment_method = Column(String)
    customer_name = Column(String)
    payment_date = Column(UTCDateTime)
    payment_metadata = Column(JSON)
    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)
