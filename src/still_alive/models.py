from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.orm import declarative_base

Base = declarative_base()

DEFAULT_MIA_THRESHOLD_HRS = 24
DEFAULT_EMERGENCY_MULTIPLIER = 2
DEFAULT_LAST_WORDS_THRESHOLD_HRS = 48
MAX_CONTACTS = 3
MAX_LAST_WORDS_LENGTH = 500


class AlertType(str, enum.Enum):
    EMERGENCY_EMAIL = "EMERGENCY_EMAIL"
    EMERGENCY_SMS = "EMERGENCY_SMS"
    LAST_WORDS_EMAIL = "LAST_WORDS_EMAIL"


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    email: Mapped[str] = mapped_column(String(320))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    contacts: Mapped[list[EmergencyContact]] = relationship(
        "EmergencyContact", back_populates="user", cascade="all, delete-orphan"
    )


class UserSettings(Base):
    __tablename__ = "user_settings"

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), primary_key=True)
    mia_threshold_hrs: Mapped[int] = mapped_column(Integer, default=DEFAULT_MIA_THRESHOLD_HRS)
    emergency_mode_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    emergency_mode_end_time: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    emergency_mode_multiplier: Mapped[int] = mapped_column(
        Integer, default=DEFAULT_EMERGENCY_MULTIPLIER
    )


class CheckIn(Base):
    __tablename__ = "checkins"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    check_in_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    streak_count: Mapped[int] = mapped_column(Integer, default=1)


class EmergencyContact(Base):
    __tablename__ = "emergency_contacts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    name: Mapped[str] = mapped_column(String(255))
    email: Mapped[str] = mapped_column(String(320))
    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    is_confirmed: Mapped[bool] = mapped_column(Boolean, default=False)
    confirmation_token: Mapped[str | None] = mapped_column(
        String(64), nullable=True, unique=True, index=True
    )
    confirmation_expires: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    user: Mapped[User] = relationship("User", back_populates="contacts")

    __table_args__ = (UniqueConstraint("user_id", "email"),)


class LastWords(Base):
    __tablename__ = "last_words"

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), primary_key=True)
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    delivery_threshold: Mapped[int] = mapped_column(
        Integer, default=DEFAULT_LAST_WORDS_THRESHOLD_HRS
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class MiaNotificationState(Base):
    """Which check-in each notification class has already fired for."""

    __tablename__ = "mia_notification_state"

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), primary_key=True)
    pre_alert_for_checkin_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    emergency_for_checkin_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    last_words_for_checkin_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class AlertDelivery(Base):
    __tablename__ = "alert_deliveries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, index=True)
    checkin_id: Mapped[int] = mapped_column(Integer, index=True)
    # For LAST_WORDS_EMAIL this holds the user's own id.
    contact_id: Mapped[int] = mapped_column(Integer)
    type: Mapped[AlertType] = mapped_column(Enum(AlertType))
    ok: Mapped[bool] = mapped_column(Boolean, default=False)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (UniqueConstraint("checkin_id", "contact_id", "type"),)
