"""Tests for the audit tracker and webhook delivery."""

import asyncio
import csv
import io
import json

import httpx

from intake.security.audit_log import AuditKind, AuditTracker, DeliveryStatus
from intake.security.webhook_manager import WebhookDispatcher, build_payload

TARGET = "https://hooks.example.com/intake"


def _deliver(dispatcher, **kwargs):
    payload = build_payload(AuditKind.form_submission, form_id="form-1", site_id="site-a", values={"a": 1})
    return asyncio.run(
        dispatcher.deliver(
            site_id="site-a",
            kind=AuditKind.form_submission,
            target=TARGET,
            payload=payload,
            form_id="form-1",
            **kwargs,
        )
    )


# ---------------------------------------------------------------------------
# Audit tracker
# ---------------------------------------------------------------------------


def test_events_are_listed_newest_first_and_filtered():
    audit = AuditTracker()
    audit.track("site-a", AuditKind.comment_submitted, comment_id="c1", request_id="r1")
    audit.track("site-a", AuditKind.comment_status, comment_id="c1")
    audit.track("site-a", AuditKind.form_submission, form_id="f1", request_id="r1")
    audit.track("site-b", AuditKind.form_submission, form_id="f1")

    page = audit.list_events("site-a")
    assert [e.kind for e in page.items] == [
        AuditKind.form_submission,
        AuditKind.comment_status,
        AuditKind.comment_submitted,
    ]
    assert audit.list_events("site-a", request_id="r1").count == 2
    assert audit.list_events("site-a", comment_id="c1").count == 2
    assert audit.list_events("site-a", kind="form-submission").count == 1


def test_list_events_paginates():
    audit = AuditTracker()
    for i in range(5):
        audit.track("site-a", AuditKind.comment_reported, comment_id=f"c{i}")
    page = audit.list_events("site-a", limit=2, offset=2)
    assert [e.comment_id for e in page.items] == ["c2", "c1"]
    assert page.pagination.total == 5
    assert page.pagination.has_more


def test_malformed_event_is_dropped_not_raised():
    audit = AuditTracker()
    assert audit.track("site-a", "not-a-kind") is None
    assert audit.track("site-a", AuditKind.comment_status, bogus_field=1) is None
    assert len(audit) == 0


def test_export_json_and_csv():
    audit = AuditTracker()
    audit.track("site-a", AuditKind.contact_status, contact_id="k1", metadata={"to": "qualified"})

    data = json.loads(audit.export_events("site-a", "json"))
    assert data[0]["kind"] == "contact-status"
    assert data[0]["metadata"] == {"to": "qualified"}

    rows = list(csv.DictReader(io.StringIO(audit.export_events("site-a", "csv"))))
    assert rows[0]["contact_id"] == "k1"
    assert rows[0]["status"] == "received"


# ---------------------------------------------------------------------------
# Webhook delivery
# ---------------------------------------------------------------------------


def test_successful_delivery_records_queued_then_succeeded():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(204)

    audit = AuditTracker()
    dispatcher = WebhookDispatcher(audit, transport=httpx.MockTransport(handler))
    event = _deliver(dispatcher, headers={"x-backy-form-id": "form-1"})

    assert event.status == DeliveryStatus.succeeded
    assert event.status_code == 204
    assert "duration_ms" in event.metadata
    statuses = [e.status for e in audit.list_events("site-a").items]
    assert statuses == [DeliveryStatus.succeeded, DeliveryStatus.queued]

    body = json.loads(seen[0].content)
    assert body["kind"] == "form-submission"
    assert body["formId"] == "form-1"
    assert "submissionId" not in body
    assert seen[0].headers["x-backy-form-id"] == "form-1"
    assert "x-backy-signature" not in seen[0].headers


def test_secret_signs_the_body():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200)

    dispatcher = WebhookDispatcher(AuditTracker(), transport=httpx.MockTransport(handler))
    _deliver(dispatcher, secret="s3cret")

    expected = WebhookDispatcher.compute_signature(seen[0].content, "s3cret")
    assert seen[0].headers["x-backy-signature"] == expected
    assert expected.startswith("sha256=")


def test_non_2xx_is_recorded_as_failed():
    dispatcher = WebhookDispatcher(
        AuditTracker(), transport=httpx.MockTransport(lambda request: httpx.Response(503))
    )
    event = _deliver(dispatcher)
    assert event.status == DeliveryStatus.failed
    assert event.status_code == 503
    assert event.error == "Webhook returned 503"


def test_network_error_is_recorded_not_raised():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    audit = AuditTracker()
    dispatcher = WebhookDispatcher(audit, transport=httpx.MockTransport(handler))
    event = _deliver(dispatcher)

    assert event.status == DeliveryStatus.failed
    assert event.status_code is None
    assert "connection refused" in event.error
    assert len(audit) == 2


def test_payload_omits_empty_optionals():
    payload = build_payload(
        "contact-status", form_id="f", site_id="s", contact_id="k1", contact_status="archived"
    )
    assert payload["contactStatus"] == "archived"
    assert payload["values"] == {}
    assert "pageId" not in payload
    assert "timestamp" in payload
