"""Tests for fire-and-forget audit emission."""

import asyncio
from uuid import uuid4

import pytest
from prometheus_client import REGISTRY

from warden.authz.audit import (
    AuditEmitter,
    AuditSink,
    AuthorizationAuditEvent,
    LoggingAuditSink,
)
from warden.authz.types import Allow, Deny, DenyReason, Scope


def dropped_count(cause: str) -> float:
    return REGISTRY.get_sample_value("warden_audit_events_dropped_total", {"cause": cause}) or 0.0


def make_event(**overrides) -> AuthorizationAuditEvent:
    data = {
        "module": "students",
        "action": "read",
        "user_id": uuid4(),
        "tenant_id": uuid4(),
        "decision": "allow",
        "scope": "own",
    }
    data.update(overrides)
    return AuthorizationAuditEvent(**data)


class ListSink:
    """Sink collecting delivered events."""

    def __init__(self) -> None:
        self.events: list[AuthorizationAuditEvent] = []

    async def emit(self, event: AuthorizationAuditEvent) -> None:
        self.events.append(event)


class BrokenSink:
    """Sink that always fails."""

    async def emit(self, event: AuthorizationAuditEvent) -> None:
        raise ConnectionError("audit backend down")


class BlockingSink:
    """Sink that waits until released."""

    def __init__(self) -> None:
        self.release = asyncio.Event()
        self.events: list[AuthorizationAuditEvent] = []

    async def emit(self, event: AuthorizationAuditEvent) -> None:
        await self.release.wait()
        self.events.append(event)


class TestAuthorizationAuditEvent:
    """Tests for building audit events from decisions."""

    def test_from_allow(self) -> None:
        user, tenant = uuid4(), uuid4()
        event = AuthorizationAuditEvent.from_decision(
            Allow(Scope.OWN, owner_id=user),
            module="students",
            action="read",
            user_id=user,
            tenant_id=tenant,
        )

        assert event.allowed is True
        assert event.scope == "own"
        assert event.reason is None
        assert event.correlation_id is None
        assert event.timestamp.tzinfo is not None

    def test_from_deny(self) -> None:
        correlation_id = uuid4()
        event = AuthorizationAuditEvent.from_decision(
            Deny(DenyReason.STORE_UNAVAILABLE),
            module="fees",
            action="export",
            user_id=uuid4(),
            tenant_id=uuid4(),
            correlation_id=correlation_id,
        )

        assert event.allowed is False
        assert event.reason == "store_unavailable"
        assert event.scope is None
        assert event.correlation_id == correlation_id


class TestSinks:
    """Tests for the built-in sinks."""

    def test_sinks_satisfy_protocol(self) -> None:
        assert isinstance(LoggingAuditSink(), AuditSink)
        assert isinstance(ListSink(), AuditSink)

    async def test_logging_sink(self) -> None:
        await LoggingAuditSink().emit(make_event())


class TestAuditEmitter:
    """Tests for AuditEmitter."""

    async def test_delivers_events(self) -> None:
        sink = ListSink()
        emitter = AuditEmitter(sink)
        await emitter.start()

        event = make_event()
        assert emitter.emit_nowait(event) is True
        await emitter.stop()

        assert sink.events == [event]
        assert emitter.emitted == 1
        assert emitter.is_running is False

    async def test_start_twice_is_noop(self) -> None:
        emitter = AuditEmitter(ListSink())
        await emitter.start()
        await emitter.start()

        assert emitter.is_running
        await emitter.stop()

    async def test_drops_when_not_started(self) -> None:
        emitter = AuditEmitter(ListSink())
        before = dropped_count("stopped")

        assert emitter.emit_nowait(make_event()) is False
        assert emitter.dropped == 1
        assert dropped_count("stopped") == before + 1

    async def test_drops_when_queue_full(self) -> None:
        sink = BlockingSink()
        emitter = AuditEmitter(sink, max_queue_size=1)
        await emitter.start()
        before = dropped_count("queue_full")

        # First event is taken by the worker, second fills the queue
        assert emitter.emit_nowait(make_event()) is True
        await asyncio.sleep(0)
        assert emitter.emit_nowait(make_event()) is True
        assert emitter.emit_nowait(make_event()) is False

        assert dropped_count("queue_full") == before + 1

        sink.release.set()
        await emitter.stop()
        assert len(sink.events) == 2

    async def test_sink_failure_is_absorbed(self) -> None:
        emitter = AuditEmitter(BrokenSink())
        await emitter.start()
        before = dropped_count("sink_error")

        emitter.emit_nowait(make_event())
        emitter.emit_nowait(make_event())
        await emitter.stop()

        assert emitter.emitted == 0
        assert emitter.dropped == 2
        assert dropped_count("sink_error") == before + 2

    async def test_stop_drops_undelivered_after_drain_timeout(self) -> None:
        sink = BlockingSink()
        emitter = AuditEmitter(sink, max_queue_size=10)
        await emitter.start()
        before = dropped_count("stopped")

        for _ in range(3):
            emitter.emit_nowait(make_event())
        await asyncio.sleep(0)
        await emitter.stop(drain_timeout=0.05)

        # One event was in flight when the worker was cancelled, two were queued
        assert dropped_count("stopped") == before + 2
        assert sink.events == []

    async def test_emit_never_blocks(self) -> None:
        emitter = AuditEmitter(BlockingSink(), max_queue_size=1)
        await emitter.start()

        results = [emitter.emit_nowait(make_event()) for _ in range(100)]

        assert results.count(True) >= 1
        assert results.count(False) >= 98
        await emitter.stop(drain_timeout=0.01)

    @pytest.mark.parametrize("size", [1, 5])
    def test_queue_size(self, size: int) -> None:
        assert AuditEmitter(ListSink(), max_queue_size=size).max_queue_size == size
