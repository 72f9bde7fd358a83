"""Outbound notification webhooks.

Delivery is at-most-once and best effort: one POST per event, no retry and
no backoff.  Each attempt is recorded in the audit log as ``queued`` before
the request and ``succeeded``/``failed`` after it.  A failed delivery never
propagates to the caller.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, Optional

import httpx

from intake.security.audit_log import AuditEvent, AuditKind, AuditTracker, DeliveryStatus

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0


def build_payload(
    kind: AuditKind | str,
    *,
    form_id: str,
    site_id: str,
    values: Optional[dict[str, Any]] = None,
    submission_id: Optional[str] = None,
    contact_id: Optional[str] = None,
    contact_status: Optional[str] = None,
    status: Optional[str] = None,
    page_id: Optional[str] = None,
    post_id: Optional[str] = None,
) -> dict[str, Any]:
    """Build the JSON body sent to a form's notification webhook."""
    payload: dict[str, Any] = {
        "kind": AuditKind(kind).value,
        "formId": form_id,
        "siteId": site_id,
        "submissionId": submission_id,
        "contactId": contact_id,
        "contactStatus": contact_status,
        "status": status,
        "pageId": page_id,
        "postId": post_id,
        "values": values or {},
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    return {k: v for k, v in payload.items() if v is not None}


class WebhookDispatcher:
    """Posts webhook payloads and records each attempt."""

    def __init__(
        self,
        audit: AuditTracker,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._audit = audit
        self._timeout = timeout
        self._transport = transport

    @staticmethod
    def compute_signature(payload_bytes: bytes, secret: str) -> str:
        """Compute HMAC-SHA256 signature for a payload."""
        mac = hmac.new(secret.encode("utf-8"), payload_bytes, hashlib.sha256)
        return f"sha256={mac.hexdigest()}"

    async def deliver(
        self,
        *,
        site_id: str,
        kind: AuditKind,
        target: str,
        payload: dict[str, Any],
        headers: Optional[dict[str, str]] = None,
        secret: str = "",
        request_id: Optional[str] = None,
        form_id: Optional[str] = None,
        submission_id: Optional[str] = None,
        contact_id: Optional[str] = None,
    ) -> Optional[AuditEvent]:
        """Attempt a single delivery and return the final audit event."""
        refs = {
            "target": target,
            "request_id": request_id,
            "form_id": form_id,
            "submission_id": submission_id,
            "contact_id": contact_id,
        }
        self._audit.track(site_id, kind, DeliveryStatus.queued, **refs)

        body = json.dumps(payload).encode("utf-8")
        request_headers: dict[str, str] = {"Content-Type": "application/json"}
        request_headers.update(headers or {})
        if secret:
            request_headers["x-backy-signature"] = self.compute_signature(body, secret)

        start = time.monotonic()
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(target, content=body, headers=request_headers)
        except Exception as exc:
            message = str(exc) or exc.__class__.__name__
            logger.warning("Webhook %s to %s failed: %s", kind.value, target, message)
            return self._audit.track(
                site_id,
                kind,
                DeliveryStatus.failed,
                error=message,
                metadata={"duration_ms": int((time.monotonic() - start) * 1000)},
                **refs,
            )

        duration = {"duration_ms": int((time.monotonic() - start) * 1000)}
        if not response.is_success:
            logger.warning("Webhook %s to %s returned %s", kind.value, target, response.status_code)
            return self._audit.track(
                site_id,
                kind,
                DeliveryStatus.failed,
                status_code=response.status_code,
                error=f"Webhook returned {response.status_code}",
                metadata=duration,
                **refs,
            )

        return self._audit.track(
            site_id,
            kind,
            DeliveryStatus.succeeded,
            status_code=response.status_code,
            metadata=duration,
            **refs,
        )
