"""
Escalation transports for propauth.

An escalation is a fire-and-forget notification that a suspicious denial
happened. The transport decides where it goes (pager, chat, SIEM); this
library only decides when to send one. There is no deduplication here:
every suspicious denied attempt produces exactly one escalate() call.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Protocol, runtime_checkable

from propauth.audit.events import AuditRecord


@runtime_checkable
class EscalationTransport(Protocol):
    """Channel that suspicious denials are escalated to."""

    def escalate(self, record: AuditRecord) -> None:
        ...


class LoggingEscalationTransport:
    """Escalates by logging a security alert at CRITICAL level."""

    def __init__(self, logger_name: str = "propauth.security") -> None:
        self._logger = logging.getLogger(logger_name)

    def escalate(self, record: AuditRecord) -> None:
        self._logger.critical(
            f"SECURITY ALERT: suspicious activity by identity={record.identity_id} "
            f"role={record.role} attempting {record.action} on {record.resource_kind}",
            extra={"audit_record": record.to_dict()},
        )


class CallbackEscalationTransport:
    """
    Escalates by calling a function.

    Example:
        >>> alerts = []
        >>> transport = CallbackEscalationTransport(alerts.append)
    """

    def __init__(self, callback: Callable[[AuditRecord], None]) -> None:
        self._callback = callback

    def escalate(self, record: AuditRecord) -> None:
        self._callback(record)
