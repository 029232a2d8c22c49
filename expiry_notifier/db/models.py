from typing import List, Optional
from datetime import datetime
import enum
import uuid

from sqlalchemy import (
    String,
    Text,
    ForeignKey,
    Enum,
    Index,
    func,
    UniqueConstraint,
    DateTime,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


def _new_id() -> str:
    return str(uuid.uuid4())


# Enums
class NotificationChannel(enum.Enum):
    PUSH = "push"
    EMAIL = "email"


class ExpiryCondition(enum.Enum):
    EXPIRED = "expired"
    EXPIRING_SOON = "expiring_soon"


# Base model with common audit fields
class AuditMixin:
    """Mixin for common audit fields"""

    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )


# Models
class User(Base, AuditMixin):
    """Read-only to the notifier; owned by the user directory upstream."""

    __tablename__ = "users"

    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    email: Mapped[Optional[str]] = mapped_column(String(320))  # RFC 5321 max length
    username: Mapped[Optional[str]] = mapped_column(String(100))

    # Relationships
    device_tokens: Mapped[List["DeviceToken"]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )

    __table_args__ = (Index("idx_users_email", "email"),)


class DeviceToken(Base, AuditMixin):
    __tablename__ = "device_tokens"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False
    )
    token: Mapped[str] = mapped_column(String(512), nullable=False)

    # Relationships
    user: Mapped["User"] = relationship(back_populates="device_tokens")

    __table_args__ = (
        UniqueConstraint("user_id", "token", name="uq_device_tokens_user_token"),
        Index("idx_device_tokens_user_id", "user_id"),
    )


class Extinguisher(Base, AuditMixin):
    """An asset record; expiry is stored as naive UTC."""

    __tablename__ = "extinguishers"

    id: Mapped[str] = mapped_column(String(128), primary_key=True, default=_new_id)
    name: Mapped[Optional[str]] = mapped_column(String(255))
    expiry: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    # Not a foreign key: the owning user may be removed upstream
    user_id: Mapped[Optional[str]] = mapped_column(String(128))

    __table_args__ = (
        Index("idx_extinguishers_expiry", "expiry"),
        Index("idx_extinguishers_user_id", "user_id"),
    )


class NotificationMarker(Base):
    """
    Ledger of successful dispatches.

    One row per (asset, channel, bucket, recipient). The bucket key embeds the
    expiry value, so renewing an extinguisher yields new, unmarked buckets.
    """

    __tablename__ = "notification_markers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    asset_id: Mapped[str] = mapped_column(String(128), nullable=False)
    channel: Mapped[NotificationChannel] = mapped_column(
        Enum(NotificationChannel), nullable=False
    )
    bucket: Mapped[str] = mapped_column(String(64), nullable=False)
    # Push token or user id; empty when the marker covers the whole channel
    recipient: Mapped[str] = mapped_column(String(512), nullable=False, default="")
    notified_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint(
            "asset_id",
            "channel",
            "bucket",
            "recipient",
            name="uq_notif_markers_asset_channel_bucket_recipient",
        ),
        Index("idx_notif_markers_asset_id", "asset_id"),
    )


class OutboundMail(Base, AuditMixin):
    """Outbound mail queue drained by the external mail delivery extension."""

    __tablename__ = "outbound_mail"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    # JSON list stored as Text - serialize/deserialize in application
    recipients: Mapped[str] = mapped_column(Text, nullable=False)
    subject: Mapped[str] = mapped_column(String(255), nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    # Written by the delivery extension, never by the notifier
    delivery_state: Mapped[Optional[str]] = mapped_column(String(32))

    __table_args__ = (Index("idx_outbound_mail_created_at", "created_at"),)
