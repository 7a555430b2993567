"""Notification outbox ORM model."""

from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from rentflow.models import Base, BaseModel


class OutboxStatus(str, Enum):
    """Delivery state of an outbox row."""

    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class NotificationOutbox(Base, BaseModel):
    """Notification intent written in the same transaction as a financial change.

    Rows are delivered after commit by NotificationDispatcher; delivery failures
    leave the row retryable and never touch the financial state.
    """

    __tablename__ = "notification_outbox"

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    status: Mapped[OutboxStatus] = mapped_column(
        SQLEnum(OutboxStatus),
        nullable=False,
        default=OutboxStatus.PENDING,
        index=True,
    )
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<NotificationOutbox(id={self.id}, user_id={self.user_id}, "
            f"status={self.status}, attempts={self.attempts})>"
        )


__all__ = ["NotificationOutbox", "OutboxStatus"]
