"""Audit event tracking for intake and moderation actions.

Every submission, status change, report and webhook delivery attempt is
recorded as an append-only :class:`AuditEvent`.  Events are kept in memory
for the lifetime of the process and listed newest first.
"""

from __future__ import annotations

import csv
import io
import json
import logging
import threading
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Optional

from intake.common import Page, new_id, paginate, utc_now

logger = logging.getLogger(__name__)


class AuditKind(str, Enum):
    form_submission = "form-submission"
    submission_status = "submission-status"
    contact_shared = "contact-shared"
    contact_status = "contact-status"
    comment_submitted = "comment-submitted"
    comment_status = "comment-status"
    comment_reported = "comment-reported"


class DeliveryStatus(str, Enum):
    queued = "queued"
    succeeded = "succeeded"
    failed = "failed"
    received = "received"


@dataclass
class AuditEvent:
    """A single audit record."""

    site_id: str
    kind: AuditKind
    status: DeliveryStatus
    id: str = ""
    created_at: str = ""
    status_code: Optional[int] = None
    error: Optional[str] = None
    request_id: Optional[str] = None
    target: Optional[str] = None
    form_id: Optional[str] = None
    submission_id: Optional[str] = None
    contact_id: Optional[str] = None
    comment_id: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.id:
            self.id = new_id("event")
        if not self.created_at:
            self.created_at = utc_now()
        if isinstance(self.kind, str):
            self.kind = AuditKind(self.kind)
        if isinstance(self.status, str):
            self.status = DeliveryStatus(self.status)


_CSV_COLUMNS = [
    "id", "created_at", "site_id", "kind", "status", "status_code", "error",
    "request_id", "target", "form_id", "submission_id", "contact_id", "comment_id",
]


class AuditTracker:
    """Append-only, in-memory audit log."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._events: list[AuditEvent] = []

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def track(
        self,
        site_id: str,
        kind: AuditKind | str,
        status: DeliveryStatus | str = DeliveryStatus.received,
        **details: Any,
    ) -> Optional[AuditEvent]:
        """Record an event and return it.

        Tracking never fails the caller: a malformed event is logged and
        dropped, and None is returned.
        """
        try:
            event = AuditEvent(site_id=site_id, kind=kind, status=status, **details)
        except (TypeError, ValueError):
            logger.exception("Dropping malformed audit event %s/%s", kind, status)
            return None
        with self._lock:
            self._events.append(event)
        return event

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_events(
        self,
        site_id: str,
        *,
        kind: Optional[AuditKind | str] = None,
        request_id: Optional[str] = None,
        form_id: Optional[str] = None,
        comment_id: Optional[str] = None,
        contact_id: Optional[str] = None,
        submission_id: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Page[AuditEvent]:
        """Return filtered events for *site_id*, newest first."""
        with self._lock:
            events = [e for e in self._events if e.site_id == site_id]
        events.reverse()

        if kind:
            wanted = AuditKind(kind)
            events = [e for e in events if e.kind == wanted]
        if request_id:
            events = [e for e in events if e.request_id == request_id]
        if form_id:
            events = [e for e in events if e.form_id == form_id]
        if comment_id:
            events = [e for e in events if e.comment_id == comment_id]
        if contact_id:
            events = [e for e in events if e.contact_id == contact_id]
        if submission_id:
            events = [e for e in events if e.submission_id == submission_id]

        return paginate(events, limit, offset)

    def export_events(self, site_id: str, fmt: str = "json", **filters: Any) -> str:
        """Export events in the specified format (``json`` or ``csv``)."""
        filters.setdefault("limit", 10000)
        events = self.list_events(site_id, **filters).items

        if fmt == "csv":
            buffer = io.StringIO()
            writer = csv.writer(buffer, lineterminator="\n")
            writer.writerow(_CSV_COLUMNS)
            for e in events:
                row = asdict(e)
                row["kind"] = e.kind.value
                row["status"] = e.status.value
                writer.writerow(["" if row[c] is None else row[c] for c in _CSV_COLUMNS])
            return buffer.getvalue()

        return json.dumps([event_to_dict(e) for e in events], indent=2)

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)


def event_to_dict(event: AuditEvent) -> dict[str, Any]:
    data = asdict(event)
    data["kind"] = event.kind.value
    data["status"] = event.status.value
    return data
