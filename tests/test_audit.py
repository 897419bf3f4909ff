"""
Tests for audit records, stores, escalation and the audit sink.
"""

import json
import logging
import threading

import pytest

from propauth.audit import (
    AuditRecord,
    AuditSink,
    CallbackEscalationTransport,
    EventType,
    InMemoryAuditStore,
    JsonLinesAuditStore,
    LoggingEscalationTransport,
)
from propauth.config import AuditConfig
from propauth.types import (
    AccessRequest,
    Action,
    Decision,
    DecisionReason,
    ResourceKind,
)


def deny(reason=DecisionReason.CONDITION_FAILED) -> Decision:
    return Decision(allowed=False, computed_at=0.0, reason=reason)


@pytest.fixture
def admin_request(broker) -> AccessRequest:
    return AccessRequest(broker, ResourceKind.ADMIN, Action.UPDATE, "settings")


@pytest.fixture
def building_request(broker, north_office) -> AccessRequest:
    return AccessRequest(broker, ResourceKind.BUILDING, Action.READ, "N001", north_office)


class TestAuditRecord:
    """Tests for AuditRecord."""

    def test_from_request(self, building_request, north_office):
        record = AuditRecord.from_request(building_request, deny())
        assert record.identity_id == "broker_1"
        assert record.identity_label == "broker@example.com"
        assert record.role == "broker"
        assert record.action == "read"
        assert record.resource_kind == "building"
        assert record.resource_id == "N001"
        assert record.reason == "condition_failed"
        assert record.resource_metadata == north_office.to_dict()
        assert record.allowed is False
        assert record.event_type is EventType.PERMISSION_DENIED

    def test_without_identity(self):
        request = AccessRequest(None, ResourceKind.BUILDING, Action.READ)
        record = AuditRecord.from_request(request, deny(DecisionReason.NO_IDENTITY))
        assert record.identity_id == ""
        assert record.role is None
        assert record.resource_metadata is None

    def test_unique_ids(self, building_request):
        first = AuditRecord.from_request(building_request, deny())
        second = AuditRecord.from_request(building_request, deny())
        assert first.record_id != second.record_id

    def test_suspicious_event_type(self, admin_request):
        record = AuditRecord.from_request(admin_request, deny(), suspicious=True)
        assert record.event_type is EventType.SUSPICIOUS_ACTIVITY

    def test_json_is_single_line_and_restorable(self, building_request):
        record = AuditRecord.from_request(building_request, deny())
        line = record.to_json()
        assert "\n" not in line
        assert '"event_type":"permission_denied"' in line
        restored = AuditRecord.from_dict(json.loads(line))
        assert restored == record


class TestStores:
    """Tests for the audit stores."""

    def test_in_memory(self, building_request, broker):
        store = InMemoryAuditStore()
        store.append(AuditRecord.from_request(building_request, deny()))
        assert len(store) == 1
        assert store.for_identity(broker.identity_id)[0].resource_id == "N001"
        assert store.for_identity("someone_else") == []
        store.clear()
        assert store.records() == []

    def test_json_lines(self, temp_audit_path, building_request, admin_request):
        with JsonLinesAuditStore(temp_audit_path) as store:
            store.append(AuditRecord.from_request(building_request, deny()))
            store.append(AuditRecord.from_request(admin_request, deny(), suspicious=True))
            records = store.read_all()

        assert temp_audit_path.exists()
        assert [r.resource_kind for r in records] == ["building", "admin"]
        assert records[1].suspicious
        assert len(temp_audit_path.read_text().splitlines()) == 2

    def test_json_lines_appends_across_instances(self, temp_audit_path, building_request):
        for _ in range(2):
            with JsonLinesAuditStore(temp_audit_path) as store:
                store.append(AuditRecord.from_request(building_request, deny()))
        assert len(JsonLinesAuditStore(temp_audit_path).read_all()) == 2

    def test_json_lines_missing_file(self, temp_audit_path):
        assert JsonLinesAuditStore(temp_audit_path).read_all() == []


class TestEscalationTransports:
    """Tests for escalation transports."""

    def test_logging_transport(self, admin_request, caplog):
        record = AuditRecord.from_request(admin_request, deny(), suspicious=True)
        with caplog.at_level(logging.CRITICAL, logger="propauth.security"):
            LoggingEscalationTransport().escalate(record)
        assert "SECURITY ALERT" in caplog.text
        assert "broker_1" in caplog.text

    def test_callback_transport(self, admin_request):
        received = []
        record = AuditRecord.from_request(admin_request, deny(), suspicious=True)
        CallbackEscalationTransport(received.append).escalate(record)
        assert received == [record]


class TestIsSuspicious:
    """Tests for the suspicious-denial classifier."""

    def test_non_admin_on_admin_kind(self, admin_request):
        assert AuditSink.is_suspicious(admin_request)

    def test_admin_on_admin_kind(self, admin):
        request = AccessRequest(admin, ResourceKind.ADMIN, Action.DELETE)
        assert not AuditSink.is_suspicious(request)

    def test_other_kinds(self, building_request):
        assert not AuditSink.is_suspicious(building_request)

    def test_string_kind(self, viewer):
        assert AuditSink.is_suspicious(AccessRequest(viewer, "admin", "read"))

    def test_no_identity(self):
        assert AuditSink.is_suspicious(AccessRequest(None, ResourceKind.ADMIN, Action.READ))


class TestAuditSink:
    """Tests for AuditSink."""

    def test_records_denial(self, audit_sink, audit_store, building_request, escalations):
        audit_sink.record_denial(building_request, deny())
        assert len(audit_store) == 1
        assert escalations == []

    def test_one_escalation_per_suspicious_denial(
        self, audit_sink, audit_store, admin_request, escalations
    ):
        for _ in range(3):
            audit_sink.record_denial(admin_request, deny())
        assert len(audit_store) == 3
        assert len(escalations) == 3
        assert all(r.suspicious for r in escalations)
        assert len({r.record_id for r in escalations}) == 3

    def test_escalation_disabled(self, audit_store, admin_request, escalations):
        sink = AuditSink(
            audit_store,
            CallbackEscalationTransport(escalations.append),
            AuditConfig(escalate_suspicious=False, synchronous=True),
        )
        sink.record_denial(admin_request, deny())
        assert len(audit_store) == 1
        assert escalations == []

    def test_disabled(self, audit_store, building_request):
        sink = AuditSink(audit_store, config=AuditConfig(enabled=False, synchronous=True))
        sink.record_denial(building_request, deny())
        assert len(audit_store) == 0

    def test_store_failure_is_swallowed(self, admin_request, escalations, caplog):
        class BrokenStore:
            def append(self, record):
                raise OSError("disk full")

        sink = AuditSink(
            BrokenStore(),
            CallbackEscalationTransport(escalations.append),
            AuditConfig(synchronous=True),
        )
        with caplog.at_level(logging.ERROR, logger="propauth.audit.sink"):
            sink.record_denial(admin_request, deny())
        assert "Audit store failed" in caplog.text
        assert len(escalations) == 1

    def test_escalation_failure_is_swallowed(self, audit_store, admin_request):
        def explode(record):
            raise RuntimeError("pager down")

        sink = AuditSink(
            audit_store,
            CallbackEscalationTransport(explode),
            AuditConfig(synchronous=True),
        )
        sink.record_denial(admin_request, deny())
        assert len(audit_store) == 1

    def test_logs_denials(self, audit_sink, building_request, caplog):
        with caplog.at_level(logging.WARNING, logger="propauth.audit.sink"):
            audit_sink.record_denial(building_request, deny())
            audit_sink.record_denial(
                building_request, deny(DecisionReason.METADATA_UNAVAILABLE)
            )
        messages = [r.getMessage() for r in caplog.records]
        assert any(m.startswith("Permission denied: identity=broker_1") for m in messages)
        assert any("metadata unavailable" in m for m in messages)

    def test_background_worker_does_not_block(self, building_request):
        release = threading.Event()
        stored = []

        class SlowStore:
            def append(self, record):
                release.wait(5)
                stored.append(record)

        sink = AuditSink(SlowStore())
        try:
            sink.record_denial(building_request, deny())
            assert stored == []
            release.set()
            sink.flush(timeout=5)
            assert len(stored) == 1
        finally:
            release.set()
            sink.close()

    def test_backlog_is_bounded(self, building_request, caplog):
        release = threading.Event()
        stored = []

        class BlockedStore:
            def append(self, record):
                release.wait(5)
                stored.append(record)

        sink = AuditSink(BlockedStore(), config=AuditConfig(max_pending=3))
        try:
            with caplog.at_level(logging.WARNING, logger="propauth.audit.sink"):
                for _ in range(10):
                    sink.record_denial(building_request, deny())
            assert sink.pending_count == 3
            assert sink.dropped_count == 7
            assert any("Audit backlog full" in r.getMessage() for r in caplog.records)

            release.set()
            sink.flush(timeout=5)
            assert len(stored) == 3
            assert sink.pending_count == 0

            sink.record_denial(building_request, deny())
            sink.flush(timeout=5)
            assert len(stored) == 4
            assert sink.dropped_count == 7
        finally:
            release.set()
            sink.close()

    def test_background_processing_order(self, audit_store, building_request, admin_request):
        sink = AuditSink(audit_store)
        sink.record_denial(building_request, deny())
        sink.record_denial(admin_request, deny())
        sink.flush(timeout=5)
        assert [r.resource_kind for r in audit_store.records()] == ["building", "admin"]
        sink.close()

    def test_closed_sink_drops_records(self, audit_store, building_request):
        sink = AuditSink(audit_store)
        sink.close()
        sink.record_denial(building_request, deny())
        sink.flush()
        assert len(audit_store) == 0

    def test_context_manager(self, audit_store, building_request):
        with AuditSink(audit_store) as sink:
            sink.record_denial(building_request, deny())
        assert len(audit_store) == 1
