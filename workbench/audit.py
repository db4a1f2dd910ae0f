"""Audit event writer.

Events are enriched with the actor details from the request context and then
handed to every registered writer.  The default writer emits one JSON log line
on the ``workbench.audit`` logger; ``DynamoAuditWriter`` also stores events.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, Protocol

from workbench.context import RequestContext
from workbench.db import DynamoTable
from workbench.errors import bad_request
from workbench.utils import generate_id, utc_now_iso

LOGGER = logging.getLogger("workbench.audit")


class AuditWriter(Protocol):
    def write(self, event: Dict[str, Any]) -> None:
        ...


class LoggingAuditWriter:
    """Writes each event as a single JSON log record."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or LOGGER

    def write(self, event: Dict[str, Any]) -> None:
        self.logger.info(json.dumps({"log_event_type": "audit", **event}, default=str))


class DynamoAuditWriter:
    """Persists events to a DynamoDB table keyed by ``id``."""

    def __init__(self, table: DynamoTable):
        self.table = table

    def write(self, event: Dict[str, Any]) -> None:
        self.table.put({"id": generate_id(), **event})


class AuditWriterService:
    """Prepares audit events and fans them out to the writers."""

    def __init__(self, writers: Optional[List[AuditWriter]] = None):
        self.writers: List[AuditWriter] = list(writers) if writers else [LoggingAuditWriter()]

    def prepare(self, request_context: Optional[RequestContext], event: Dict[str, Any]) -> Dict[str, Any]:
        if not event.get("action"):
            raise bad_request("audit event is missing the 'action' field")

        prepared = dict(event)
        prepared.setdefault("message", event["action"])
        prepared.setdefault("timestamp", utc_now_iso())
        if request_context is not None:
            principal = request_context.principal
            prepared.setdefault("actor", request_context.uid)
            prepared.setdefault("ip_address", request_context.ip_address)
            if principal is not None:
                prepared.setdefault("first_name", principal.first_name)
                prepared.setdefault("last_name", principal.last_name)
                prepared.setdefault("user_role", principal.user_role)
        return prepared

    def write(self, request_context: Optional[RequestContext], event: Dict[str, Any]) -> Dict[str, Any]:
        """Prepare ``event`` and pass it to every writer.

        Args:
            request_context: Context of the request being audited
            event: Dict with at least ``action``; ``body`` is optional

        Returns:
            The prepared event
        """
        prepared = self.prepare(request_context, event)
        for writer in self.writers:
            writer.write(prepared)
        return prepared

    def write_and_forget(self, request_context: Optional[RequestContext], event: Dict[str, Any]) -> None:
        """Like :meth:`write` but never raises; failures are logged."""
        try:
            self.write(request_context, event)
        except Exception as e:
            LOGGER.error("Failed to write audit event %s: %s", event.get("action"), e)
