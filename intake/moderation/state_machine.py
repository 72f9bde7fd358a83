"""Moderation state machine for submissions and comments.

Lifecycle::

    pending -> approved | rejected | spam | blocked (comments only)

Moderators may move an item between any two statuses valid for its kind.
Side effects of a transition:

- into ``blocked``: block metadata is stamped and the author's email and IP
  hash are added to the identity blocklist;
- into ``rejected``: the optional rejection reason is stored;
- from a negative status back into ``pending``/``approved``: block metadata
  and the rejection reason are cleared.

Every transition stamps the reviewer and emits exactly one ``*-status``
audit event.  Report escalation (three reports on an approved comment) is a
separate rule that moves the comment straight to ``spam`` without going
through the spam classifier.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Generic, Iterable, Optional, TypeVar

from intake.common import utc_now
from intake.config import IntakeSettings
from intake.errors import InvalidReportReasonError, InvalidStatusError, NotFoundError
from intake.moderation.blocklist import IdentityBlocklist
from intake.moderation.models import (
    COMMENT_STATUSES,
    NEGATIVE_STATUSES,
    OPEN_STATUSES,
    REPORT_REASONS,
    SUBMISSION_STATUSES,
    Comment,
    FormSubmission,
    ModerationStatus,
)
from intake.moderation.store import CommentStore, SubmissionStore
from intake.security.audit_log import AuditKind, AuditTracker

logger = logging.getLogger(__name__)

AUTO_ESCALATION_ACTOR = "system:auto-escalation"
DEFAULT_BLOCK_REASON = "Blocked by moderator"

R = TypeVar("R")


@dataclass
class BulkUpdateResult(Generic[R]):
    """Records that were updated and requested ids that were not found."""

    updated: list[R] = field(default_factory=list)
    missing_ids: list[str] = field(default_factory=list)


def _parse_status(status: ModerationStatus | str, allowed: frozenset[ModerationStatus], kind: str) -> ModerationStatus:
    try:
        parsed = ModerationStatus(status)
    except ValueError:
        raise InvalidStatusError(f"Unknown {kind} status '{status}'") from None
    if parsed not in allowed:
        raise InvalidStatusError(f"Status '{parsed.value}' is not valid for a {kind}")
    return parsed


def normalize_report_reason(reason: str) -> str:
    """Return the canonical reason or raise InvalidReportReasonError."""
    normalized = (reason or "").strip().lower()
    if normalized not in REPORT_REASONS:
        raise InvalidReportReasonError(
            f"Unknown report reason '{reason}'. Must be one of: {', '.join(REPORT_REASONS)}"
        )
    return normalized


class ModerationStateMachine:
    """Applies moderator decisions and report escalation."""

    def __init__(
        self,
        submissions: SubmissionStore,
        comments: CommentStore,
        blocklist: IdentityBlocklist,
        audit: AuditTracker,
        settings: Optional[IntakeSettings] = None,
    ) -> None:
        self.submissions = submissions
        self.comments = comments
        self.blocklist = blocklist
        self.audit = audit
        self.settings = settings or IntakeSettings()

    # ------------------------------------------------------------------
    # Submissions
    # ------------------------------------------------------------------

    def update_submission_status(
        self,
        submission_id: str,
        status: ModerationStatus | str,
        *,
        reviewed_by: Optional[str] = None,
        actor: Optional[str] = None,
        request_id: Optional[str] = None,
        form_id: Optional[str] = None,
    ) -> FormSubmission:
        """Move one submission to *status*.  Raises NotFoundError if unknown."""
        new_status = _parse_status(status, SUBMISSION_STATUSES, "submission")
        reviewer = reviewed_by or actor
        previous: dict[str, ModerationStatus] = {}

        def apply(submission: FormSubmission) -> None:
            if form_id and submission.form_id != form_id:
                return
            now = utc_now()
            previous["status"] = submission.status
            submission.status = new_status
            submission.reviewed_by = reviewer
            submission.reviewed_at = now
            submission.updated_at = now

        updated = self.submissions.update(submission_id, apply)
        if updated is None or "status" not in previous:
            raise NotFoundError("submission", submission_id)

        self.audit.track(
            updated.site_id,
            AuditKind.submission_status,
            request_id=request_id or updated.request_id,
            form_id=updated.form_id,
            submission_id=updated.id,
            metadata={"from": previous["status"].value, "to": new_status.value, "actor": reviewer},
        )
        logger.info(
            "Submission %s: %s -> %s", updated.id, previous["status"].value, new_status.value
        )
        return updated

    def bulk_update_submission_status(
        self,
        form_id: str,
        submission_ids: Iterable[str],
        status: ModerationStatus | str,
        **kwargs: Optional[str],
    ) -> BulkUpdateResult[FormSubmission]:
        """Apply the same status to each submission independently."""
        _parse_status(status, SUBMISSION_STATUSES, "submission")
        result: BulkUpdateResult[FormSubmission] = BulkUpdateResult()
        for submission_id in dict.fromkeys(submission_ids):
            try:
                result.updated.append(
                    self.update_submission_status(submission_id, status, form_id=form_id, **kwargs)
                )
            except NotFoundError:
                result.missing_ids.append(submission_id)
        return result

    # ------------------------------------------------------------------
    # Comments
    # ------------------------------------------------------------------

    def update_comment_status(
        self,
        comment_id: str,
        status: ModerationStatus | str,
        *,
        site_id: Optional[str] = None,
        reviewed_by: Optional[str] = None,
        actor: Optional[str] = None,
        rejection_reason: Optional[str] = None,
        block_reason: Optional[str] = None,
        request_id: Optional[str] = None,
    ) -> Comment:
        """Move one comment to *status*.  Raises NotFoundError if unknown."""
        new_status = _parse_status(status, COMMENT_STATUSES, "comment")
        reviewer = reviewed_by or actor
        previous: dict[str, ModerationStatus] = {}

        def apply(comment: Comment) -> None:
            if site_id and comment.site_id != site_id:
                return
            now = utc_now()
            previous["status"] = comment.status

            if new_status == ModerationStatus.blocked:
                comment.block_reason = block_reason or DEFAULT_BLOCK_REASON
                comment.blocked_by = reviewer
                comment.blocked_at = now
            elif new_status == ModerationStatus.rejected:
                if rejection_reason:
                    comment.rejection_reason = rejection_reason
            elif new_status in OPEN_STATUSES and comment.status in NEGATIVE_STATUSES:
                comment.block_reason = None
                comment.blocked_by = None
                comment.blocked_at = None
                comment.rejection_reason = None

            comment.status = new_status
            comment.reviewed_by = reviewer
            comment.reviewed_at = now
            comment.updated_at = now

        updated = self.comments.update(comment_id, apply)
        if updated is None or "status" not in previous:
            raise NotFoundError("comment", comment_id)

        if new_status == ModerationStatus.blocked:
            self.blocklist.block(
                updated.site_id,
                email=updated.author_email,
                ip_hash=updated.ip_hash,
                reason=updated.block_reason or DEFAULT_BLOCK_REASON,
                actor=reviewer,
                request_id=request_id,
            )

        self.audit.track(
            updated.site_id,
            AuditKind.comment_status,
            request_id=request_id or updated.request_id,
            comment_id=updated.id,
            metadata={"from": previous["status"].value, "to": new_status.value, "actor": reviewer},
        )
        logger.info("Comment %s: %s -> %s", updated.id, previous["status"].value, new_status.value)
        return updated

    def bulk_update_comment_status(
        self,
        site_id: str,
        comment_ids: Iterable[str],
        status: ModerationStatus | str,
        **kwargs: Optional[str],
    ) -> BulkUpdateResult[Comment]:
        """Apply the same status to each comment independently.

        Each item is updated atomically on its own; there is no cross-item
        transaction.  Ids that are unknown or belong to another site are
        returned in ``missing_ids``.
        """
        _parse_status(status, COMMENT_STATUSES, "comment")
        result: BulkUpdateResult[Comment] = BulkUpdateResult()
        for comment_id in dict.fromkeys(comment_ids):
            try:
                result.updated.append(
                    self.update_comment_status(comment_id, status, site_id=site_id, **kwargs)
                )
            except NotFoundError:
                result.missing_ids.append(comment_id)
        return result

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    def report_comment(
        self,
        comment_id: str,
        reason: str,
        *,
        site_id: Optional[str] = None,
        actor: Optional[str] = None,
        request_id: Optional[str] = None,
    ) -> Comment:
        """Record a report and escalate an approved comment past the threshold."""
        normalized = normalize_report_reason(reason)
        threshold = self.settings.report_escalation_threshold
        outcome: dict[str, object] = {}

        def apply(comment: Comment) -> None:
            if site_id and comment.site_id != site_id:
                return
            now = utc_now()
            comment.report_count += 1
            comment.report_reasons.add(normalized)
            comment.updated_at = now
            outcome["found"] = True
            if comment.status == ModerationStatus.approved and comment.report_count >= threshold:
                comment.status = ModerationStatus.spam
                comment.reviewed_by = AUTO_ESCALATION_ACTOR
                comment.reviewed_at = now
                outcome["escalated"] = True

        updated = self.comments.update(comment_id, apply)
        if updated is None or not outcome.get("found"):
            raise NotFoundError("comment", comment_id)

        self.audit.track(
            updated.site_id,
            AuditKind.comment_reported,
            request_id=request_id,
            comment_id=updated.id,
            metadata={"reason": normalized, "report_count": updated.report_count, "actor": actor},
        )

        if outcome.get("escalated"):
            self.audit.track(
                updated.site_id,
                AuditKind.comment_status,
                request_id=request_id,
                comment_id=updated.id,
                metadata={
                    "from": ModerationStatus.approved.value,
                    "to": ModerationStatus.spam.value,
                    "actor": AUTO_ESCALATION_ACTOR,
                    "rule": "report-threshold",
                    "report_count": updated.report_count,
                },
            )
            logger.info(
                "Comment %s escalated to spam after %d reports", updated.id, updated.report_count
            )
        return updated
