"""Tests for moderation status transitions and report escalation."""

import pytest

from intake.errors import InvalidReportReasonError, InvalidStatusError, NotFoundError
from intake.moderation.blocklist import IdentityBlocklist
from intake.moderation.models import Comment, FormSubmission, ModerationStatus
from intake.moderation.state_machine import AUTO_ESCALATION_ACTOR, ModerationStateMachine
from intake.moderation.store import CommentStore, SubmissionStore
from intake.security.audit_log import AuditKind, AuditTracker


def _machine() -> ModerationStateMachine:
    return ModerationStateMachine(SubmissionStore(), CommentStore(), IdentityBlocklist(), AuditTracker())


def _add_comment(machine, status="pending", site_id="site-a", **kwargs) -> Comment:
    return machine.comments.insert(
        Comment(
            site_id=site_id,
            target_type="post",
            target_id="post-1",
            content="Hello",
            status=status,
            author_email="troll@example.com",
            ip_hash="hash-1",
            **kwargs,
        )
    )


def _status_events(machine, site_id="site-a", kind=AuditKind.comment_status):
    return machine.audit.list_events(site_id, kind=kind).items


def test_approve_comment_stamps_reviewer_and_emits_one_event():
    machine = _machine()
    comment = _add_comment(machine)

    updated = machine.update_comment_status(comment.id, "approved", actor="mod@site")
    assert updated.status == ModerationStatus.approved
    assert updated.reviewed_by == "mod@site"
    assert updated.reviewed_at

    events = _status_events(machine)
    assert len(events) == 1
    assert events[0].metadata == {"from": "pending", "to": "approved", "actor": "mod@site"}


def test_block_comment_adds_identity_to_blocklist():
    machine = _machine()
    comment = _add_comment(machine)

    updated = machine.update_comment_status(comment.id, "blocked", actor="mod")
    assert updated.block_reason == "Blocked by moderator"
    assert updated.blocked_by == "mod"
    assert updated.blocked_at
    assert machine.blocklist.is_blocked("site-a", email="troll@example.com") is not None
    assert machine.blocklist.is_blocked("site-a", ip_hash="hash-1") is not None


def test_restoring_clears_block_and_rejection_metadata():
    machine = _machine()
    comment = _add_comment(machine)
    machine.update_comment_status(comment.id, "blocked", block_reason="abuse")
    restored = machine.update_comment_status(comment.id, "approved")
    assert restored.block_reason is None
    assert restored.blocked_by is None
    assert restored.blocked_at is None

    machine.update_comment_status(comment.id, "rejected", rejection_reason="off topic")
    assert machine.comments.get(comment.id).rejection_reason == "off topic"
    restored = machine.update_comment_status(comment.id, "pending")
    assert restored.rejection_reason is None


def test_spam_and_reject_do_not_touch_blocklist():
    machine = _machine()
    comment = _add_comment(machine)
    machine.update_comment_status(comment.id, "spam")
    machine.update_comment_status(comment.id, "rejected")
    assert machine.blocklist.list_entries("site-a") == []


def test_invalid_statuses_raise():
    machine = _machine()
    comment = _add_comment(machine)
    with pytest.raises(InvalidStatusError):
        machine.update_comment_status(comment.id, "deleted")

    submission = machine.submissions.insert(
        FormSubmission(site_id="site-a", form_id="form-1", values={}, status="pending")
    )
    with pytest.raises(InvalidStatusError):
        machine.update_submission_status(submission.id, "blocked")


def test_unknown_or_foreign_comment_is_not_found():
    machine = _machine()
    comment = _add_comment(machine, site_id="site-b")
    with pytest.raises(NotFoundError):
        machine.update_comment_status("comment-missing", "approved")
    with pytest.raises(NotFoundError):
        machine.update_comment_status(comment.id, "approved", site_id="site-a")
    assert machine.comments.get(comment.id).status == ModerationStatus.pending


def test_submission_status_update_emits_event():
    machine = _machine()
    submission = machine.submissions.insert(
        FormSubmission(site_id="site-a", form_id="form-1", values={"a": 1}, status="pending")
    )
    updated = machine.update_submission_status(submission.id, "approved", reviewed_by="mod")
    assert updated.status == ModerationStatus.approved
    assert updated.reviewed_by == "mod"

    events = _status_events(machine, kind=AuditKind.submission_status)
    assert len(events) == 1
    assert events[0].submission_id == submission.id
    assert events[0].metadata["to"] == "approved"


def test_bulk_update_reports_missing_and_foreign_ids():
    machine = _machine()
    mine = _add_comment(machine)
    foreign = _add_comment(machine, site_id="site-b")

    result = machine.bulk_update_comment_status(
        "site-a", [mine.id, foreign.id, "comment-missing"], "spam"
    )
    assert [c.id for c in result.updated] == [mine.id]
    assert result.missing_ids == [foreign.id, "comment-missing"]


def test_bulk_update_validates_status_first():
    machine = _machine()
    mine = _add_comment(machine)
    with pytest.raises(InvalidStatusError):
        machine.bulk_update_comment_status("site-a", [mine.id], "nope")
    assert machine.comments.get(mine.id).status == ModerationStatus.pending


def test_bulk_submission_update_scopes_to_form():
    machine = _machine()
    a = machine.submissions.insert(FormSubmission(site_id="s", form_id="f1", values={}, status="pending"))
    b = machine.submissions.insert(FormSubmission(site_id="s", form_id="f2", values={}, status="pending"))

    result = machine.bulk_update_submission_status("f1", [a.id, b.id], "rejected")
    assert [s.id for s in result.updated] == [a.id]
    assert result.missing_ids == [b.id]


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


def test_report_counts_and_reasons():
    machine = _machine()
    comment = _add_comment(machine)

    machine.report_comment(comment.id, " Spam ")
    reported = machine.report_comment(comment.id, "spam")
    assert reported.report_count == 2
    assert reported.report_reasons == {"spam"}
    assert len(_status_events(machine, kind=AuditKind.comment_reported)) == 2


def test_unknown_report_reason_raises():
    machine = _machine()
    comment = _add_comment(machine)
    with pytest.raises(InvalidReportReasonError):
        machine.report_comment(comment.id, "boring")
    assert machine.comments.get(comment.id).report_count == 0


def test_approved_comment_escalates_to_spam_on_third_report():
    machine = _machine()
    comment = _add_comment(machine, status="approved")

    machine.report_comment(comment.id, "spam")
    second = machine.report_comment(comment.id, "abuse")
    assert second.status == ModerationStatus.approved

    third = machine.report_comment(comment.id, "harassment")
    assert third.status == ModerationStatus.spam
    assert third.reviewed_by == AUTO_ESCALATION_ACTOR
    assert third.report_reasons == {"spam", "abuse", "harassment"}

    events = _status_events(machine)
    assert len(events) == 1
    assert events[0].metadata["actor"] == AUTO_ESCALATION_ACTOR
    assert events[0].metadata["to"] == "spam"


def test_pending_comment_does_not_escalate():
    machine = _machine()
    comment = _add_comment(machine)
    for _ in range(4):
        reported = machine.report_comment(comment.id, "spam")
    assert reported.status == ModerationStatus.pending
    assert _status_events(machine) == []
