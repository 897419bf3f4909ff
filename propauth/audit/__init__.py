"""
Audit components for propauth.

- AuditRecord: one denied access attempt
- AuditStore implementations: InMemoryAuditStore, JsonLinesAuditStore
- EscalationTransport implementations: LoggingEscalationTransport,
  CallbackEscalationTransport
- AuditSink: fire-and-forget recorder that ties them together

Example:
    >>> from propauth.audit import AuditSink, JsonLinesAuditStore
    >>> sink = AuditSink(store=JsonLinesAuditStore("./audit/denials.jsonl"))
"""

from propauth.audit.escalation import (
    CallbackEscalationTransport,
    EscalationTransport,
    LoggingEscalationTransport,
)
from propauth.audit.events import AuditRecord, EventType
from propauth.audit.sink import AuditSink
from propauth.audit.stores import AuditStore, InMemoryAuditStore, JsonLinesAuditStore

__all__ = [
    "AuditRecord",
    "EventType",
    "AuditStore",
    "InMemoryAuditStore",
    "JsonLinesAuditStore",
    "EscalationTransport",
    "LoggingEscalationTransport",
    "CallbackEscalationTransport",
    "AuditSink",
]
