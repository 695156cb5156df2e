"""Fire-and-forget audit emission for authorization decisions.

Decisions are handed to an :class:`AuditEmitter`, which queues them and
delivers them to an :class:`AuditSink` from a background task. Emission never
blocks or fails the decision: when the queue is full, the emitter is stopped,
or the sink raises, the event is dropped, logged and counted. Delivery is
at-most-once.
"""

import asyncio
import contextlib
from datetime import UTC, datetime
from typing import Protocol, runtime_checkable
from uuid import UUID

from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from warden.authz.types import Allow, Decision
from warden.core.audit import AuditLogger
from warden.core.context import get_current_context_or_none
from warden.core.logging import get_logger
from warden.db.models.audit import AuditEventType, AuditSeverity
from warden.observability.metrics import record_audit_dropped

logger = get_logger(__name__)


class AuthorizationAuditEvent(BaseModel):
    """Record of one authorization decision."""

    module: str
    action: str
    user_id: UUID
    tenant_id: UUID
    decision: str = Field(description="allow or deny")
    reason: str | None = None
    scope: str | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    correlation_id: UUID | None = None

    model_config = {"frozen": True}

    @property
    def allowed(self) -> bool:
        return self.decision == "allow"

    @classmethod
    def from_decision(
        cls,
        decision: Decision,
        *,
        module: str,
        action: str,
        user_id: UUID,
        tenant_id: UUID,
        correlation_id: UUID | None = None,
    ) -> "AuthorizationAuditEvent":
        """Build an event from a decision.

        The correlation id defaults to the one of the current request context.
        """
        if correlation_id is None:
            ctx = get_current_context_or_none()
            correlation_id = ctx.correlation_id if ctx else None

        if isinstance(decision, Allow):
            return cls(
                module=module,
                action=action,
                user_id=user_id,
                tenant_id=tenant_id,
                decision="allow",
                scope=decision.scope.value,
                correlation_id=correlation_id,
            )
        return cls(
            module=module,
            action=action,
            user_id=user_id,
            tenant_id=tenant_id,
            decision="deny",
            reason=decision.reason.value,
            correlation_id=correlation_id,
        )


@runtime_checkable
class AuditSink(Protocol):
    """Destination for authorization audit events."""

    async def emit(self, event: AuthorizationAuditEvent) -> None:
        """Deliver one event. May raise; the emitter absorbs failures."""
        ...


class LoggingAuditSink:
    """Writes audit events to the structured log."""

    def __init__(self, event_name: str = "authz_audit"):
        self.event_name = event_name
        self._logger = get_logger("warden.audit")

    async def emit(self, event: AuthorizationAuditEvent) -> None:
        self._logger.info(self.event_name, **event.model_dump(mode="json"))


class DatabaseAuditSink:
    """Persists audit events to the ``audit_events`` table."""

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]):
        self.sessionmaker = sessionmaker

    async def emit(self, event: AuthorizationAuditEvent) -> None:
        async with self.sessionmaker() as session:
            await AuditLogger(session).log_event(
                event_type=AuditEventType.AUTHZ_ALLOWED
                if event.allowed
                else AuditEventType.AUTHZ_DENIED,
                severity=AuditSeverity.INFO if event.allowed else AuditSeverity.WARNING,
                event_data=event.model_dump(mode="json"),
                tenant_id=event.tenant_id,
                user_id=event.user_id,
                correlation_id=event.correlation_id,
                resource_type=event.module,
                resource_id=event.action,
                occurred_at=event.timestamp,
            )
            await session.commit()


class AuditEmitter:
    """Bounded queue plus background worker in front of an audit sink.

    Example:
        emitter = AuditEmitter(LoggingAuditSink(), max_queue_size=1000)
        await emitter.start()
        emitter.emit_nowait(event)
        ...
        await emitter.stop()
    """

    def __init__(self, sink: AuditSink, max_queue_size: int = 1000):
        self.sink = sink
        self.max_queue_size = max_queue_size
        self._queue: asyncio.Queue[AuthorizationAuditEvent] | None = None
        self._worker: asyncio.Task[None] | None = None
        self.emitted = 0
        self.dropped = 0

    @property
    def is_running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    async def start(self) -> None:
        """Start the delivery worker. Calling start twice is a no-op."""
        if self.is_running:
            return
        self._queue = asyncio.Queue(maxsize=self.max_queue_size)
        self._worker = asyncio.create_task(self._run(), name="warden-audit-emitter")
        logger.info("audit_emitter_started", sink=type(self.sink).__name__)

    async def stop(self, drain_timeout: float = 5.0) -> None:
        """Deliver queued events (bounded by ``drain_timeout``) and stop the worker."""
        if self._worker is None or self._queue is None:
            return

        queue, worker = self._queue, self._worker
        self._queue, self._worker = None, None

        try:
            async with asyncio.timeout(drain_timeout):
                await queue.join()
        except TimeoutError:
            logger.warning("audit_emitter_drain_timeout", pending=queue.qsize())

        worker.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await worker

        while not queue.empty():
            queue.get_nowait()
            self._drop("stopped")

        logger.info("audit_emitter_stopped", emitted=self.emitted, dropped=self.dropped)

    def emit_nowait(self, event: AuthorizationAuditEvent) -> bool:
        """Queue an event for delivery without waiting.

        Returns:
            True if the event was queued, False if it was dropped
        """
        if self._queue is None:
            self._drop("stopped", event)
            return False
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self._drop("queue_full", event)
            return False
        return True

    async def _run(self) -> None:
        queue = self._queue
        assert queue is not None
        while True:
            event = await queue.get()
            try:
                await self.sink.emit(event)
                self.emitted += 1
            except Exception as e:
                self._drop("sink_error", event, error=str(e))
            finally:
                queue.task_done()

    def _drop(
        self,
        cause: str,
        event: AuthorizationAuditEvent | None = None,
        **kwargs: object,
    ) -> None:
        self.dropped += 1
        record_audit_dropped(cause)
        logger.warning(
            "audit_event_dropped",
            cause=cause,
            module=event.module if event else None,
            action=event.action if event else None,
            **kwargs,
        )
