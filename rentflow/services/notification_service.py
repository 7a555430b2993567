"""
Notification outbox and dispatcher.

Handles:
- Enqueueing notification intents inside the caller's financial transaction
- Draining the outbox after commit through a pluggable transport
- Log-only and in-memory transports (the in-memory one is used in tests)
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from rentflow.models.notification import NotificationOutbox, OutboxStatus

logger = logging.getLogger(__name__)

MAX_DELIVERY_ATTEMPTS = 5


class NotificationTransport(ABC):
    """Abstract base class for notification transports (web push, email, ...)."""

    @abstractmethod
    def send(self, user_id: int, title: str, body: str, url: str | None = None) -> None:
        """Deliver one notification to a user.

        Raises:
            Exception: any delivery failure; the dispatcher records and retries it
        """


class LogTransport(NotificationTransport):
    """Transport that only logs deliveries.

    Default when no push/email integration is configured.
    """

    def send(self, user_id: int, title: str, body: str, url: str | None = None) -> None:
        logger.info("notification: user_id=%d title=%r url=%s", user_id, title, url)


class MockTransport(NotificationTransport):
    """In-memory mock transport for testing.

    Stores all messages in memory instead of delivering them.
    """

    def __init__(self, fail_for: set[int] | None = None):
        """Initialize with empty message log.

        Args:
            fail_for: user ids whose deliveries raise, to exercise retries
        """
        self.messages: list[Dict[str, Any]] = []
        self.fail_for = fail_for or set()

    def send(self, user_id: int, title: str, body: str, url: str | None = None) -> None:
        if user_id in self.fail_for:
            raise ConnectionError(f"delivery to user {user_id} failed")
        self.messages.append({"user_id": user_id, "title": title, "body": body, "url": url})
        logger.debug(f"[MOCK] Notification queued for {user_id}: {title}")

    def get_messages(self, user_id: Optional[int] = None) -> list[Dict[str, Any]]:
        """Retrieve stored messages, optionally filtered by user_id."""
        if user_id is None:
            return self.messages
        return [m for m in self.messages if m["user_id"] == user_id]

    def clear(self):
        """Clear all stored messages."""
        self.messages = []


class NotificationService:
    """Writes notification intents into the outbox.

    Never commits: the row belongs to the caller's transaction, so a rolled back
    payment leaves no notification behind.
    """

    def __init__(self, db: Session):
        self.db = db

    def enqueue(
        self,
        user_id: int | None,
        title: str,
        body: str,
        url: str | None = None,
    ) -> NotificationOutbox | None:
        """Add a pending notification for a user (skipped when user_id is None)."""
        if user_id is None:
            return None
        row = NotificationOutbox(
            user_id=user_id,
            title=title,
            body=body,
            url=url,
            status=OutboxStatus.PENDING,
            attempts=0,
        )
        self.db.add(row)
        return row


class NotificationDispatcher:
    """Delivers pending outbox rows; independent of any financial transaction."""

    def __init__(self, session_factory: sessionmaker, transport: NotificationTransport):
        self.session_factory = session_factory
        self.transport = transport

    def drain(self, limit: int = 100) -> int:
        """Deliver up to ``limit`` pending notifications.

        Failures are logged and recorded on the row, never raised. A row that
        keeps failing is marked FAILED after MAX_DELIVERY_ATTEMPTS.

        Returns:
            Number of notifications delivered
        """
        delivered = 0
        db: Session = self.session_factory()
        try:
            rows = (
                db.execute(
                    select(NotificationOutbox)
                    .where(NotificationOutbox.status == OutboxStatus.PENDING)
                    .order_by(NotificationOutbox.id)
                    .limit(limit)
                )
                .scalars()
                .all()
            )
            for row in rows:
                row.attempts += 1
                try:
                    self.transport.send(row.user_id, row.title, row.body, row.url)
                except Exception as e:
                    row.last_error = str(e)
                    if row.attempts >= MAX_DELIVERY_ATTEMPTS:
                        row.status = OutboxStatus.FAILED
                    logger.warning(
                        "Notification %d delivery failed (attempt %d): %s",
                        row.id,
                        row.attempts,
                        e,
                    )
                else:
                    row.status = OutboxStatus.SENT
                    row.sent_at = datetime.now(timezone.utc)
                    row.last_error = None
                    delivered += 1
                db.commit()
        except Exception as e:
            db.rollback()
            logger.error("Notification outbox drain aborted: %s", e, exc_info=True)
        finally:
            db.close()

        return delivered


__all__ = [
    "NotificationTransport",
    "LogTransport",
    "MockTransport",
    "NotificationService",
    "NotificationDispatcher",
    "MAX_DELIVERY_ATTEMPTS",
]
