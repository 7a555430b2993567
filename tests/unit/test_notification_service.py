"""Unit tests for the notification outbox and dispatcher."""

from sqlalchemy import select

from rentflow.models import NotificationOutbox, OutboxStatus, User
from rentflow.services.notification_service import (
    MAX_DELIVERY_ATTEMPTS,
    MockTransport,
    NotificationDispatcher,
    NotificationService,
)


def _user(db_session, name="Tess") -> int:
    user = User(name=name)
    db_session.add(user)
    db_session.commit()
    return user.id


class TestNotificationService:
    def test_enqueue_does_not_commit(self, db_session, session_factory):
        user_id = _user(db_session)

        NotificationService(db_session).enqueue(user_id, "Hello", "Body")
        db_session.rollback()

        other = session_factory()
        try:
            assert other.execute(select(NotificationOutbox)).scalars().all() == []
        finally:
            other.close()

    def test_enqueue_without_user_is_skipped(self, db_session):
        assert NotificationService(db_session).enqueue(None, "Hello", "Body") is None


class TestNotificationDispatcher:
    def test_drain_delivers_pending_rows(self, db_session, session_factory):
        user_id = _user(db_session)
        NotificationService(db_session).enqueue(user_id, "Payment received", "₱100", url="/p/1")
        db_session.commit()
        transport = MockTransport()

        delivered = NotificationDispatcher(session_factory, transport).drain()

        assert delivered == 1
        assert transport.get_messages(user_id) == [
            {"user_id": user_id, "title": "Payment received", "body": "₱100", "url": "/p/1"}
        ]
        db_session.expire_all()
        row = db_session.execute(select(NotificationOutbox)).scalar_one()
        assert row.status == OutboxStatus.SENT
        assert row.attempts == 1
        assert row.sent_at is not None

    def test_sent_rows_are_not_redelivered(self, db_session, session_factory):
        user_id = _user(db_session)
        NotificationService(db_session).enqueue(user_id, "Hi", "Body")
        db_session.commit()
        transport = MockTransport()
        dispatcher = NotificationDispatcher(session_factory, transport)

        dispatcher.drain()
        assert dispatcher.drain() == 0
        assert len(transport.messages) == 1

    def test_failure_is_recorded_not_raised(self, db_session, session_factory):
        failing_id = _user(db_session, "Failing")
        ok_id = _user(db_session, "Ok")
        service = NotificationService(db_session)
        service.enqueue(failing_id, "A", "Body")
        service.enqueue(ok_id, "B", "Body")
        db_session.commit()
        transport = MockTransport(fail_for={failing_id})

        delivered = NotificationDispatcher(session_factory, transport).drain()

        assert delivered == 1
        db_session.expire_all()
        failed = db_session.execute(
            select(NotificationOutbox).where(NotificationOutbox.user_id == failing_id)
        ).scalar_one()
        assert failed.status == OutboxStatus.PENDING
        assert failed.attempts == 1
        assert "failed" in failed.last_error

    def test_row_marked_failed_after_max_attempts(self, db_session, session_factory):
        user_id = _user(db_session)
        NotificationService(db_session).enqueue(user_id, "A", "Body")
        db_session.commit()
        dispatcher = NotificationDispatcher(session_factory, MockTransport(fail_for={user_id}))

        for _ in range(MAX_DELIVERY_ATTEMPTS):
            dispatcher.drain()

        db_session.expire_all()
        row = db_session.execute(select(NotificationOutbox)).scalar_one()
        assert row.status == OutboxStatus.FAILED
        assert row.attempts == MAX_DELIVERY_ATTEMPTS
        assert dispatcher.drain() == 0


class TestMockTransport:
    def test_clear(self):
        transport = MockTransport()
        transport.send(1, "t", "b")
        transport.clear()
        assert transport.get_messages() == []
