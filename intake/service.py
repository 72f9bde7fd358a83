"""Intake orchestration: the flows behind the public and admin endpoints.

:class:`IntakeService` wires the catalog, classifier, stores, deduper, state
machine and audit tracker together.  Each intake call runs synchronously and
returns the webhook jobs it produced; the caller schedules
:meth:`IntakeService.dispatch` after responding, so no lock is held while a
webhook is in flight.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterable, Optional

import httpx

from intake.common import Page
from intake.config import IntakeSettings
from intake.contacts.deduper import ContactDeduper, ContactStore
from intake.contacts.models import Contact, ContactShareContext, ContactStatus
from intake.errors import CommentsDisabledError, CommentThreadError, InactiveFormError, NotFoundError
from intake.forms.models import CommentPolicy, FormDefinition, Site
from intake.forms.registry import CatalogRegistry, load_catalog
from intake.moderation.blocklist import BlocklistEntry, IdentityBlocklist
from intake.moderation.classifier import IntakeContext, SpamClassifier
from intake.moderation.models import (
    OPEN_STATUSES,
    ClassificationResult,
    Comment,
    FormSubmission,
    ModerationStatus,
    TargetType,
)
from intake.moderation.state_machine import BulkUpdateResult, ModerationStateMachine
from intake.moderation.store import CommentStore, SubmissionStore
from intake.security.audit_log import AuditEvent, AuditKind, AuditTracker
from intake.security.webhook_manager import WebhookDispatcher, build_payload

logger = logging.getLogger(__name__)

DEFAULT_SUCCESS_MESSAGE = "Thanks! Your submission has been received."
COMMENT_PENDING_MESSAGE = "Your comment is awaiting moderation."
COMMENT_APPROVED_MESSAGE = "Your comment has been published."


def _status_filter(status: Optional[str], enum: type) -> Any:
    """Listing filter for *status*.  `all` or an unknown value means no filter."""
    try:
        return enum(status) if status else None
    except ValueError:
        return None


@dataclass
class WebhookJob:
    """One outbound notification, ready for :meth:`WebhookDispatcher.deliver`."""

    site_id: str
    kind: AuditKind
    target: str
    payload: dict[str, Any]
    headers: dict[str, str] = field(default_factory=dict)
    secret: str = ""
    request_id: Optional[str] = None
    form_id: Optional[str] = None
    submission_id: Optional[str] = None
    contact_id: Optional[str] = None


@dataclass
class SubmissionOutcome:
    result: ClassificationResult
    message: str
    submission: Optional[FormSubmission] = None
    contact: Optional[Contact] = None
    webhooks: list[WebhookJob] = field(default_factory=list)


@dataclass
class CommentOutcome:
    result: ClassificationResult
    message: str
    comment: Optional[Comment] = None


class IntakeService:
    """Composition root for one running intake pipeline."""

    def __init__(
        self,
        settings: Optional[IntakeSettings] = None,
        catalog: Optional[CatalogRegistry] = None,
        clock: Callable[[], float] = time.time,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.settings = settings or IntakeSettings()
        self.catalog = catalog or CatalogRegistry()
        self.blocklist = IdentityBlocklist()
        self.classifier = SpamClassifier(self.blocklist, self.settings, clock)
        self.submissions = SubmissionStore()
        self.comments = CommentStore()
        self.contacts = ContactDeduper(ContactStore())
        self.audit = AuditTracker()
        self.moderation = ModerationStateMachine(
            self.submissions, self.comments, self.blocklist, self.audit, self.settings
        )
        self.webhooks = WebhookDispatcher(
            self.audit, timeout=self.settings.webhook_timeout_seconds, transport=transport
        )

    @classmethod
    def from_settings(cls, settings: IntakeSettings, **kwargs: Any) -> IntakeService:
        """Build a service and load the catalog named by ``settings.catalog_path``."""
        catalog = None
        if settings.catalog_path:
            catalog = load_catalog(Path(settings.catalog_path))
            logger.info("Loaded catalog from %s", settings.catalog_path)
        return cls(settings=settings, catalog=catalog, **kwargs)

    # ------------------------------------------------------------------
    # Catalog lookups
    # ------------------------------------------------------------------

    def resolve_site(self, site_id: str) -> Site:
        return self.catalog.get_site(site_id)

    def resolve_form(self, site_id: str, form_id: str) -> tuple[Site, FormDefinition]:
        site = self.catalog.get_site(site_id)
        return site, self.catalog.get_form(site.id, form_id)

    # ------------------------------------------------------------------
    # Form intake
    # ------------------------------------------------------------------

    def submit_form(
        self,
        site_id: str,
        form_id: str,
        values: dict[str, Any],
        context: IntakeContext,
        *,
        page_id: Optional[str] = None,
        post_id: Optional[str] = None,
        contact_share_override: Optional[dict[str, Any]] = None,
    ) -> SubmissionOutcome:
        """Validate, classify and store one form submission.

        Raises NotFoundError for an unknown site or form and
        InactiveFormError for a form that is switched off.  Rejected and
        blocked submissions are returned without being stored.
        """
        site, form = self.resolve_form(site_id, form_id)
        if not form.is_active:
            raise InactiveFormError(f"Form {form.id} is not accepting submissions")

        result = self.classifier.classify_form(form, values, context)
        if not result.ok:
            message = result.spam_message or "Submission failed validation."
            return SubmissionOutcome(result=result, message=message)

        submission = self.submissions.insert(
            FormSubmission(
                site_id=site.id,
                form_id=form.id,
                values=dict(values),
                status=result.status,
                page_id=page_id or form.page_id,
                post_id=post_id or form.post_id,
                ip_hash=context.ip_hash,
                user_agent=context.user_agent,
                request_id=context.request_id,
            )
        )

        contact = None
        if submission.status in OPEN_STATUSES:
            contact = self.contacts.build_contact_share_from_submission(
                site.id,
                form.id,
                submission.values,
                ContactShareContext(
                    status=submission.status,
                    source_submission_id=submission.id,
                    request_id=submission.request_id,
                    page_id=submission.page_id,
                    post_id=submission.post_id,
                    ip_hash=submission.ip_hash,
                ),
                form.resolve_contact_share(contact_share_override),
            )

        self.audit.track(
            site.id,
            AuditKind.form_submission,
            request_id=submission.request_id,
            form_id=form.id,
            submission_id=submission.id,
            contact_id=contact.id if contact else None,
            metadata={
                "status": submission.status.value,
                "spam_flags": [f.value for f in result.spam_flags],
            },
        )
        if contact is not None:
            self.audit.track(
                site.id,
                AuditKind.contact_shared,
                request_id=submission.request_id,
                form_id=form.id,
                submission_id=submission.id,
                contact_id=contact.id,
            )

        logger.info(
            "Stored submission %s for form %s as %s", submission.id, form.id, submission.status.value
        )
        return SubmissionOutcome(
            result=result,
            message=form.success_message or DEFAULT_SUCCESS_MESSAGE,
            submission=submission,
            contact=contact,
            webhooks=self._submission_webhooks(form, submission, contact),
        )

    def _submission_webhooks(
        self,
        form: FormDefinition,
        submission: FormSubmission,
        contact: Optional[Contact],
    ) -> list[WebhookJob]:
        if not form.notification_webhook:
            return []
        if submission.status in (ModerationStatus.spam, ModerationStatus.rejected):
            return []

        jobs = [
            WebhookJob(
                site_id=submission.site_id,
                kind=AuditKind.form_submission,
                target=form.notification_webhook,
                payload=build_payload(
                    AuditKind.form_submission,
                    form_id=form.id,
                    site_id=submission.site_id,
                    values=submission.values,
                    submission_id=submission.id,
                    contact_id=contact.id if contact else None,
                    status=submission.status.value,
                    page_id=submission.page_id,
                    post_id=submission.post_id,
                ),
                headers={
                    "x-backy-site-id": submission.site_id,
                    "x-backy-form-id": form.id,
                    "x-backy-submission-id": submission.id,
                },
                secret=form.webhook_secret,
                request_id=submission.request_id,
                form_id=form.id,
                submission_id=submission.id,
                contact_id=contact.id if contact else None,
            )
        ]
        if contact is not None:
            jobs.append(self._contact_webhook(form, contact, AuditKind.contact_shared, submission.id))
        return jobs

    def _contact_webhook(
        self,
        form: FormDefinition,
        contact: Contact,
        kind: AuditKind,
        submission_id: Optional[str] = None,
    ) -> WebhookJob:
        return WebhookJob(
            site_id=contact.site_id,
            kind=kind,
            target=form.notification_webhook or "",
            payload=build_payload(
                kind,
                form_id=form.id,
                site_id=contact.site_id,
                values={
                    "name": contact.name,
                    "email": contact.email,
                    "phone": contact.phone,
                    "notes": contact.notes,
                },
                submission_id=submission_id or contact.source_submission_id,
                contact_id=contact.id,
                contact_status=contact.status.value,
                page_id=contact.page_id,
                post_id=contact.post_id,
            ),
            secret=form.webhook_secret,
            request_id=contact.request_id,
            form_id=form.id,
            submission_id=submission_id or contact.source_submission_id,
            contact_id=contact.id,
        )

    # ------------------------------------------------------------------
    # Submissions (admin)
    # ------------------------------------------------------------------

    def list_submissions(self, site_id: str, form_id: str, **filters: Any) -> Page[FormSubmission]:
        _, form = self.resolve_form(site_id, form_id)
        filters["status"] = _status_filter(filters.get("status"), ModerationStatus)
        return self.submissions.list_submissions(form.id, **filters)

    def get_submission(self, site_id: str, form_id: str, submission_id: str) -> FormSubmission:
        site, form = self.resolve_form(site_id, form_id)
        submission = self.submissions.get(submission_id)
        if submission is None or submission.site_id != site.id or submission.form_id != form.id:
            raise NotFoundError("submission", submission_id)
        return submission

    def update_submission_status(
        self, site_id: str, form_id: str, submission_id: str, status: str, **kwargs: Optional[str]
    ) -> FormSubmission:
        submission = self.get_submission(site_id, form_id, submission_id)
        return self.moderation.update_submission_status(
            submission.id, status, form_id=submission.form_id, **kwargs
        )

    def bulk_update_submissions(
        self, site_id: str, form_id: str, submission_ids: Iterable[str], status: str, **kwargs: Optional[str]
    ) -> BulkUpdateResult[FormSubmission]:
        _, form = self.resolve_form(site_id, form_id)
        return self.moderation.bulk_update_submission_status(form.id, submission_ids, status, **kwargs)

    # ------------------------------------------------------------------
    # Contacts (admin)
    # ------------------------------------------------------------------

    def list_contacts(self, site_id: str, form_id: str, **filters: Any) -> Page[Contact]:
        _, form = self.resolve_form(site_id, form_id)
        filters["status"] = _status_filter(filters.get("status"), ContactStatus)
        return self.contacts.store.list_contacts(form.id, **filters)

    def update_contact_status(
        self,
        site_id: str,
        form_id: str,
        contact_id: str,
        status: ContactStatus | str,
        *,
        actor: Optional[str] = None,
        request_id: Optional[str] = None,
    ) -> tuple[Contact, list[WebhookJob]]:
        """Change a contact's status and return the notification to send."""
        site, form = self.resolve_form(site_id, form_id)
        existing = self.contacts.store.get(contact_id)
        if existing is None or existing.site_id != site.id or existing.form_id != form.id:
            raise NotFoundError("contact", contact_id)

        previous = existing.status
        contact = self.contacts.update_contact_status(contact_id, status)
        if contact is None:
            raise NotFoundError("contact", contact_id)

        self.audit.track(
            site.id,
            AuditKind.contact_status,
            request_id=request_id,
            form_id=form.id,
            contact_id=contact.id,
            metadata={"from": previous.value, "to": contact.status.value, "actor": actor},
        )
        jobs = []
        if form.notification_webhook:
            jobs.append(self._contact_webhook(form, contact, AuditKind.contact_status))
        return contact, jobs

    # ------------------------------------------------------------------
    # Comment intake
    # ------------------------------------------------------------------

    def submit_comment(
        self,
        site_id: str,
        target_type: TargetType | str,
        target_id: str,
        content: str,
        context: IntakeContext,
        *,
        author_name: Optional[str] = None,
        author_email: Optional[str] = None,
        author_website: Optional[str] = None,
        user_id: Optional[str] = None,
        parent_id: Optional[str] = None,
    ) -> CommentOutcome:
        """Classify and store one comment.

        Raises CommentsDisabledError when the site does not take comments and
        CommentThreadError for a reply that cannot attach to *parent_id*.
        """
        site = self.resolve_site(site_id)
        policy = self.catalog.get_comment_policy(site.id)
        if not policy.enabled:
            raise CommentsDisabledError(f"Comments are disabled for site {site.id}")

        target = TargetType(target_type)
        if parent_id:
            self._check_parent(site.id, target, target_id, parent_id, policy)

        content = (content or "").strip()
        result = self.classifier.classify_comment(
            site_id=site.id,
            target_key=f"{target.value}:{target_id}",
            content=content,
            policy=policy,
            context=context,
            author_name=author_name,
            author_email=author_email,
            user_id=user_id,
        )
        if not result.ok:
            return CommentOutcome(result=result, message=result.spam_message)

        comment = self.comments.insert(
            Comment(
                site_id=site.id,
                target_type=target,
                target_id=target_id,
                content=content,
                status=result.status,
                parent_id=parent_id or None,
                author_name=author_name,
                author_email=author_email,
                author_website=author_website,
                user_id=user_id,
                ip_hash=context.ip_hash,
                user_agent=context.user_agent,
                request_id=context.request_id,
            )
        )
        self.audit.track(
            site.id,
            AuditKind.comment_submitted,
            request_id=comment.request_id,
            comment_id=comment.id,
            metadata={
                "status": comment.status.value,
                "target": f"{target.value}:{target_id}",
                "spam_flags": [f.value for f in result.spam_flags],
            },
        )
        logger.info("Stored comment %s on %s:%s as %s", comment.id, target.value, target_id, comment.status.value)

        if comment.status == ModerationStatus.approved:
            message = COMMENT_APPROVED_MESSAGE
        else:
            message = COMMENT_PENDING_MESSAGE
        return CommentOutcome(result=result, message=message, comment=comment)

    def _check_parent(
        self,
        site_id: str,
        target: TargetType,
        target_id: str,
        parent_id: str,
        policy: CommentPolicy,
    ) -> None:
        if not policy.allow_replies:
            raise CommentThreadError("Replies are disabled.")
        parent = self.comments.get(parent_id)
        if (
            parent is None
            or parent.site_id != site_id
            or parent.target_type != target
            or parent.target_id != target_id
        ):
            raise CommentThreadError("Parent comment not found in this thread.")
        if self.comments.depth_of(parent_id) + 1 > policy.max_depth:
            raise CommentThreadError(f"Replies can be nested at most {policy.max_depth} levels deep.")

    # ------------------------------------------------------------------
    # Comments (admin)
    # ------------------------------------------------------------------

    def list_comments(self, site_id: str, **filters: Any) -> Page[Comment]:
        site = self.resolve_site(site_id)
        filters["status"] = _status_filter(filters.get("status"), ModerationStatus)
        return self.comments.list_comments(site.id, **filters)

    def get_comment(self, site_id: str, comment_id: str) -> Comment:
        site = self.resolve_site(site_id)
        comment = self.comments.get(comment_id)
        if comment is None or comment.site_id != site.id:
            raise NotFoundError("comment", comment_id)
        return comment

    def update_comment_status(
        self, site_id: str, comment_id: str, status: str, **kwargs: Optional[str]
    ) -> Comment:
        site = self.resolve_site(site_id)
        return self.moderation.update_comment_status(comment_id, status, site_id=site.id, **kwargs)

    def bulk_update_comments(
        self, site_id: str, comment_ids: Iterable[str], status: str, **kwargs: Optional[str]
    ) -> BulkUpdateResult[Comment]:
        site = self.resolve_site(site_id)
        return self.moderation.bulk_update_comment_status(site.id, comment_ids, status, **kwargs)

    def report_comment(self, site_id: str, comment_id: str, reason: str, **kwargs: Optional[str]) -> Comment:
        site = self.resolve_site(site_id)
        return self.moderation.report_comment(comment_id, reason, site_id=site.id, **kwargs)

    # ------------------------------------------------------------------
    # Blocklist and audit
    # ------------------------------------------------------------------

    def list_blocklist(self, site_id: str) -> list[BlocklistEntry]:
        return self.blocklist.list_entries(self.resolve_site(site_id).id)

    def block_identity(self, site_id: str, **kwargs: Optional[str]) -> list[BlocklistEntry]:
        return self.blocklist.block(self.resolve_site(site_id).id, **kwargs)

    def list_events(self, site_id: str, **filters: Any) -> Page[AuditEvent]:
        return self.audit.list_events(self.resolve_site(site_id).id, **filters)

    def export_events(self, site_id: str, fmt: str = "json", **filters: Any) -> str:
        return self.audit.export_events(self.resolve_site(site_id).id, fmt, **filters)

    # ------------------------------------------------------------------
    # Webhook dispatch
    # ------------------------------------------------------------------

    async def dispatch(self, jobs: Iterable[WebhookJob]) -> list[Optional[AuditEvent]]:
        """Deliver *jobs* in order.  Failures are recorded, never raised."""
        events = []
        for job in jobs:
            events.append(
                await self.webhooks.deliver(
                    site_id=job.site_id,
                    kind=job.kind,
                    target=job.target,
                    payload=job.payload,
                    headers=job.headers,
                    secret=job.secret,
                    request_id=job.request_id,
                    form_id=job.form_id,
                    submission_id=job.submission_id,
                    contact_id=job.contact_id,
                )
            )
        return events
