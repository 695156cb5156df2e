"""Persistence of authorization audit events."""

from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from warden.db.models.audit import AuditEvent, AuditEventType, AuditSeverity

MAX_QUERY_LIMIT = 1000


class AuditLogger:
    """Append and query rows of the ``audit_events`` table.

    Rows are never updated. The logger adds and flushes; committing is left
    to whoever owns the session.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def log_event(
        self,
        event_type: AuditEventType | str,
        event_data: dict[str, Any],
        severity: AuditSeverity | str = AuditSeverity.INFO,
        tenant_id: UUID | None = None,
        user_id: UUID | None = None,
        correlation_id: UUID | None = None,
        resource_type: str | None = None,
        resource_id: str | None = None,
        occurred_at: datetime | None = None,
    ) -> AuditEvent:
        """Append one event.

        Args:
            event_type: authz.allowed or authz.denied
            event_data: JSON serializable payload
            severity: Event severity level (default: INFO)
            tenant_id: Tenant the decision was made under
            user_id: User the decision was made for
            correlation_id: Correlation id of the originating request
            resource_type: Requested module
            resource_id: Requested action
            occurred_at: Decision time (default: now)
        """
        event = AuditEvent(
            event_type=AuditEventType(event_type).value,
            severity=AuditSeverity(severity).value,
            tenant_id=tenant_id,
            user_id=user_id,
            correlation_id=correlation_id,
            resource_type=resource_type,
            resource_id=resource_id,
            event_data=event_data,
            occurred_at=occurred_at or datetime.now(UTC),
        )
        self.db.add(event)
        await self.db.flush()
        return event

    async def query_events(
        self,
        tenant_id: UUID | None = None,
        user_id: UUID | None = None,
        event_type: AuditEventType | str | None = None,
        correlation_id: UUID | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[AuditEvent]:
        """Matching events, newest first.

        ``limit`` is capped at MAX_QUERY_LIMIT; date bounds are inclusive.
        """
        query = self._filtered(
            select(AuditEvent),
            tenant_id=tenant_id,
            user_id=user_id,
            event_type=event_type,
            correlation_id=correlation_id,
            start_date=start_date,
            end_date=end_date,
        )
        query = (
            query.order_by(AuditEvent.occurred_at.desc(), AuditEvent.audit_id.desc())
            .limit(min(limit, MAX_QUERY_LIMIT))
            .offset(offset)
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    def _filtered(
        query: Select,
        *,
        tenant_id: UUID | None,
        user_id: UUID | None,
        event_type: AuditEventType | str | None,
        correlation_id: UUID | None,
        start_date: datetime | None,
        end_date: datetime | None,
    ) -> Select:
        conditions = []
        if tenant_id is not None:
            conditions.append(AuditEvent.tenant_id == tenant_id)
        if user_id is not None:
            conditions.append(AuditEvent.user_id == user_id)
        if event_type is not None:
            conditions.append(AuditEvent.event_type == AuditEventType(event_type).value)
        if correlation_id is not None:
            conditions.append(AuditEvent.correlation_id == correlation_id)
        if start_date is not None:
            conditions.append(AuditEvent.occurred_at >= start_date)
        if end_date is not None:
            conditions.append(AuditEvent.occurred_at <= end_date)
        return query.where(*conditions) if conditions else query
