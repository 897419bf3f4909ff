"""
Audit sink for propauth.

The sink records denied decisions and escalates suspicious ones. It is a
side channel: record_denial() returns immediately, the store and the
escalation transport run on a single background worker, and no failure in
either ever reaches the caller or changes a decision.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, Any

from propauth.audit.escalation import EscalationTransport, LoggingEscalationTransport
from propauth.audit.events import AuditRecord
from propauth.audit.stores import AuditStore, InMemoryAuditStore
from propauth.config import AuditConfig
from propauth.types import DecisionReason, ResourceKind, Role

if TYPE_CHECKING:
    from propauth.types import AccessRequest, Decision

logger = logging.getLogger(__name__)


class AuditSink:
    """
    Best-effort recorder of denials.

    Features:
        - Fire-and-forget: storage and escalation run off the caller's thread
        - One escalation per suspicious denied attempt, no deduplication
        - Store and transport failures are logged and swallowed
        - The backlog is bounded by config.max_pending; overflow is dropped
        - Denials are also written to the standard logging module

    Example:
        >>> store = InMemoryAuditStore()
        >>> alerts = []
        >>> sink = AuditSink(store, CallbackEscalationTransport(alerts.append))
        >>> sink.record_denial(request, decision)
        >>> sink.flush()
        >>> len(store)
        1
    """

    def __init__(
        self,
        store: AuditStore | None = None,
        escalation: EscalationTransport | None = None,
        config: AuditConfig | None = None,
    ) -> None:
        """
        Initialize the sink.

        Args:
            store: Where records go. Defaults to an InMemoryAuditStore.
            escalation: Where suspicious denials are escalated. Defaults to
                a LoggingEscalationTransport.
            config: Audit configuration.
        """
        self.store = store if store is not None else InMemoryAuditStore()
        self.escalation = escalation if escalation is not None else LoggingEscalationTransport()
        self.config = config or AuditConfig()

        self._executor: ThreadPoolExecutor | None = None
        if not self.config.synchronous:
            self._executor = ThreadPoolExecutor(
                max_workers=1,
                thread_name_prefix="propauth-audit",
            )
        self._closed = False
        self._pending = 0
        self._dropped = 0
        self._lock = threading.Lock()

    @staticmethod
    def is_suspicious(request: AccessRequest) -> bool:
        """
        Check if a denied request should be escalated.

        A non-admin reaching for the administrative surface is suspicious.
        """
        identity = request.identity
        role = identity.role if identity else None
        return request.kind_name == ResourceKind.ADMIN.value and role is not Role.ADMIN

    def record_denial(self, request: AccessRequest, decision: Decision) -> None:
        """
        Record a denied decision.

        Never raises and never waits on the store or the escalation
        transport.

        Args:
            request: The denied access attempt.
            decision: The deny decision.
        """
        try:
            if not self.config.enabled:
                return

            record = AuditRecord.from_request(
                request, decision, suspicious=self.is_suspicious(request)
            )
            self._log_denial(record)

            if self._executor is None:
                self._process(record)
                return

            with self._lock:
                if self._closed:
                    logger.warning(f"Audit sink closed, dropping record {record.record_id}")
                    return
                if self._pending >= self.config.max_pending:
                    self._dropped += 1
                    logger.warning(
                        f"Audit backlog full ({self._pending} pending), "
                        f"dropping record {record.record_id}"
                    )
                    return
                self._executor.submit(self._process_pending, record)
                self._pending += 1
        except Exception:
            logger.exception("Failed to record denial")

    def _process_pending(self, record: AuditRecord) -> None:
        try:
            self._process(record)
        finally:
            with self._lock:
                self._pending -= 1

    def _process(self, record: AuditRecord) -> None:
        try:
            self.store.append(record)
        except Exception:
            logger.exception(f"Audit store failed for record {record.record_id}")

        if record.suspicious and self.config.escalate_suspicious:
            try:
                self.escalation.escalate(record)
            except Exception:
                logger.exception(f"Escalation failed for record {record.record_id}")

    def _log_denial(self, record: AuditRecord) -> None:
        target = f"{record.action} on {record.resource_kind}:{record.resource_id or ''}"
        if record.reason == DecisionReason.METADATA_UNAVAILABLE.value:
            logger.warning(
                f"Permission denied (metadata unavailable): "
                f"identity={record.identity_id} {target}"
            )
        else:
            logger.warning(
                f"Permission denied: identity={record.identity_id} "
                f"role={record.role} {target} reason={record.reason}"
            )

    @property
    def pending_count(self) -> int:
        """Records waiting for the background worker."""
        with self._lock:
            return self._pending

    @property
    def dropped_count(self) -> int:
        """Records dropped because the backlog was full."""
        with self._lock:
            return self._dropped

    def flush(self, timeout: float | None = None) -> None:
        """
        Wait until every record submitted so far has been processed.

        Args:
            timeout: Maximum seconds to wait.
        """
        with self._lock:
            if self._executor is None or self._closed:
                return
            marker = self._executor.submit(lambda: None)
        marker.result(timeout)

    def close(self) -> None:
        """Process pending records and stop the worker."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        if self._executor is not None:
            self._executor.shutdown(wait=True)

    def __enter__(self) -> AuditSink:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
