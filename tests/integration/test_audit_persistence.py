"""Integration tests for persisting authorization audit events."""

from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from warden.authz.audit import AuditEmitter, AuthorizationAuditEvent, DatabaseAuditSink
from warden.authz.types import Allow, Deny, DenyReason, Scope
from warden.core.audit import AuditLogger
from warden.db.models import AuditEventType, AuditSeverity


def make_event(decision, tenant_id, user_id, module="students", action="read", **kwargs):
    return AuthorizationAuditEvent.from_decision(
        decision, module=module, action=action, user_id=user_id, tenant_id=tenant_id, **kwargs
    )


@pytest.mark.asyncio
class TestAuditLogger:
    """Tests for AuditLogger against the audit_events table."""

    async def test_log_event_persists(self, db_session: AsyncSession):
        tenant_id = uuid4()
        logger = AuditLogger(db_session)

        event = await logger.log_event(
            event_type=AuditEventType.AUTHZ_DENIED,
            event_data={"reason": "no_grant"},
            severity=AuditSeverity.WARNING,
            tenant_id=tenant_id,
            resource_type="students",
            resource_id="delete",
        )

        assert event.audit_id is not None
        assert event.event_type == "authz.denied"
        assert event.severity == "warning"
        events = await logger.query_events(tenant_id=tenant_id)
        assert [e.audit_id for e in events] == [event.audit_id]

    async def test_query_filters(self, db_session: AsyncSession):
        tenant_id, user_id = uuid4(), uuid4()
        logger = AuditLogger(db_session)
        now = datetime.now(UTC)

        await logger.log_event(
            AuditEventType.AUTHZ_ALLOWED,
            {},
            tenant_id=tenant_id,
            user_id=user_id,
            occurred_at=now - timedelta(hours=2),
        )
        await logger.log_event(
            AuditEventType.AUTHZ_DENIED,
            {},
            tenant_id=tenant_id,
            user_id=user_id,
            occurred_at=now - timedelta(minutes=5),
        )
        await logger.log_event(AuditEventType.AUTHZ_DENIED, {}, tenant_id=uuid4())

        denied = await logger.query_events(
            tenant_id=tenant_id, event_type=AuditEventType.AUTHZ_DENIED
        )
        recent = await logger.query_events(user_id=user_id, start_date=now - timedelta(hours=1))
        everything = await logger.query_events(user_id=user_id)

        assert len(denied) == 1
        assert len(recent) == 1
        assert [e.event_type for e in everything] == ["authz.denied", "authz.allowed"]

    async def test_query_pagination(self, db_session: AsyncSession):
        tenant_id = uuid4()
        logger = AuditLogger(db_session)
        for _ in range(3):
            await logger.log_event(AuditEventType.AUTHZ_ALLOWED, {}, tenant_id=tenant_id)

        assert len(await logger.query_events(tenant_id=tenant_id, limit=2)) == 2
        assert len(await logger.query_events(tenant_id=tenant_id, limit=2, offset=2)) == 1


@pytest.mark.asyncio
class TestDatabaseAuditSink:
    """Tests for DatabaseAuditSink behind the AuditEmitter."""

    async def test_sink_writes_decision(self, sessionmaker: async_sessionmaker[AsyncSession]):
        tenant_id, user_id, correlation_id = uuid4(), uuid4(), uuid4()
        sink = DatabaseAuditSink(sessionmaker)

        await sink.emit(
            make_event(
                Allow(Scope.OWN, owner_id=user_id),
                tenant_id,
                user_id,
                correlation_id=correlation_id,
            )
        )

        async with sessionmaker() as session:
            events = await AuditLogger(session).query_events(correlation_id=correlation_id)

        assert len(events) == 1
        stored = events[0]
        assert stored.event_type == "authz.allowed"
        assert stored.severity == "info"
        assert stored.user_id == user_id
        assert stored.resource_type == "students"
        assert stored.resource_id == "read"
        assert stored.event_data["scope"] == "own"

    async def test_emitter_drains_to_database(
        self, sessionmaker: async_sessionmaker[AsyncSession]
    ):
        tenant_id, user_id = uuid4(), uuid4()
        emitter = AuditEmitter(DatabaseAuditSink(sessionmaker))
        await emitter.start()

        assert emitter.emit_nowait(make_event(Allow(Scope.FULL), tenant_id, user_id))
        assert emitter.emit_nowait(
            make_event(Deny(DenyReason.NO_GRANT), tenant_id, user_id, action="delete")
        )
        await emitter.stop()

        async with sessionmaker() as session:
            events = await AuditLogger(session).query_events(tenant_id=tenant_id)

        assert emitter.emitted == 2
        assert emitter.dropped == 0
        assert sorted(e.event_type for e in events) == ["authz.allowed", "authz.denied"]
        denied = next(e for e in events if e.event_type == "authz.denied")
        assert denied.severity == "warning"
        assert denied.event_data["reason"] == "no_grant"
