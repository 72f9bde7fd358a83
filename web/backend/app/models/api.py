"""Pydantic models for API request/response serialization.

These models mirror the intake dataclasses.  Bodies use camelCase on the wire
(``pageId``, ``rateLimitBypass``); snake_case names are accepted too.
"""

from __future__ import annotations

from dataclasses import asdict
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def to_wire(record: Any) -> dict[str, Any]:
    """Dataclass -> plain dict with enum values and sorted sets."""
    data = asdict(record)
    for key, value in data.items():
        if isinstance(value, Enum):
            data[key] = value.value
        elif isinstance(value, set):
            data[key] = sorted(value)
    return data


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PaginationResponse(CamelModel):
    """Mirrors intake.common.Pagination."""

    total: int = 0
    limit: int = 20
    offset: int = 0
    has_more: bool = False


class FieldViolationResponse(CamelModel):
    """Mirrors intake.validation.engine.FieldViolation."""

    field: str
    message: str
    rule: str = ""


class StatusUpdateRequest(CamelModel):
    status: str
    reviewed_by: Optional[str] = None
    actor: Optional[str] = None
    rejection_reason: Optional[str] = None
    block_reason: Optional[str] = None
    request_id: Optional[str] = None


class BulkStatusUpdateRequest(StatusUpdateRequest):
    ids: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Form submissions
# ---------------------------------------------------------------------------


class ContactShareOverride(CamelModel):
    """Per-request override of a form's contact-share mapping."""

    enabled: Optional[bool] = None
    name_field: Optional[str] = None
    email_field: Optional[str] = None
    phone_field: Optional[str] = None
    notes_field: Optional[str] = None
    dedupe_by_email: Optional[bool] = None


class FormSubmissionRequest(CamelModel):
    values: dict[str, Any] = Field(default_factory=dict)
    honeypot: str = ""
    page_id: Optional[str] = None
    post_id: Optional[str] = None
    request_id: Optional[str] = None
    started_at: Optional[Union[float, str]] = None
    rate_limit_bypass: bool = False
    contact_share_override: Optional[ContactShareOverride] = None


class SubmissionResponse(CamelModel):
    """Mirrors intake.moderation.models.FormSubmission."""

    id: str
    site_id: str
    form_id: str
    values: dict[str, Any] = Field(default_factory=dict)
    status: str
    page_id: Optional[str] = None
    post_id: Optional[str] = None
    ip_hash: Optional[str] = None
    user_agent: Optional[str] = None
    request_id: Optional[str] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[str] = None
    submitted_at: str = ""
    updated_at: str = ""


class ContactResponse(CamelModel):
    """Mirrors intake.contacts.models.Contact."""

    id: str
    site_id: str
    form_id: str
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    notes: Optional[str] = None
    status: str = "new"
    source_submission_id: Optional[str] = None
    request_id: Optional[str] = None
    page_id: Optional[str] = None
    post_id: Optional[str] = None
    ip_hash: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""


class SubmissionCreatedResponse(CamelModel):
    success: bool = True
    status: str
    message: str = ""
    spam_flags: list[str] = Field(default_factory=list)
    submission: SubmissionResponse
    contact: Optional[ContactResponse] = None


class SubmissionListResponse(CamelModel):
    submissions: list[SubmissionResponse] = Field(default_factory=list)
    count: int = 0
    pagination: PaginationResponse = Field(default_factory=PaginationResponse)


class BulkSubmissionResponse(CamelModel):
    updated: list[SubmissionResponse] = Field(default_factory=list)
    updated_count: int = 0
    missing_ids: list[str] = Field(default_factory=list)


class ContactStatusRequest(CamelModel):
    status: str
    actor: Optional[str] = None
    request_id: Optional[str] = None


class ContactListResponse(CamelModel):
    contacts: list[ContactResponse] = Field(default_factory=list)
    count: int = 0
    pagination: PaginationResponse = Field(default_factory=PaginationResponse)


# ---------------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------------


class CommentRequest(CamelModel):
    content: str = ""
    author_name: Optional[str] = None
    author_email: Optional[str] = None
    author_website: Optional[str] = None
    user_id: Optional[str] = None
    parent_id: Optional[str] = None
    honeypot: str = ""
    request_id: Optional[str] = None
    started_at: Optional[Union[float, str]] = None
    rate_limit_bypass: bool = False


class CommentResponse(CamelModel):
    """Mirrors intake.moderation.models.Comment."""

    id: str
    site_id: str
    target_type: str
    target_id: str
    content: str
    status: str
    parent_id: Optional[str] = None
    author_name: Optional[str] = None
    author_email: Optional[str] = None
    author_website: Optional[str] = None
    user_id: Optional[str] = None
    ip_hash: Optional[str] = None
    user_agent: Optional[str] = None
    request_id: Optional[str] = None
    report_count: int = 0
    report_reasons: list[str] = Field(default_factory=list)
    block_reason: Optional[str] = None
    blocked_by: Optional[str] = None
    blocked_at: Optional[str] = None
    rejection_reason: Optional[str] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""


class CommentCreatedResponse(CamelModel):
    success: bool = True
    status: str
    message: str = ""
    spam_flags: list[str] = Field(default_factory=list)
    comment: CommentResponse


class CommentListResponse(CamelModel):
    comments: list[CommentResponse] = Field(default_factory=list)
    count: int = 0
    pagination: PaginationResponse = Field(default_factory=PaginationResponse)


class BulkCommentResponse(CamelModel):
    updated: list[CommentResponse] = Field(default_factory=list)
    updated_count: int = 0
    missing_ids: list[str] = Field(default_factory=list)


class ReportRequest(CamelModel):
    reason: str
    actor: Optional[str] = None
    request_id: Optional[str] = None


class ReportReasonsResponse(CamelModel):
    reasons: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Audit events and blocklist
# ---------------------------------------------------------------------------


class AuditEventResponse(CamelModel):
    """Mirrors intake.security.audit_log.AuditEvent."""

    id: str
    site_id: str
    kind: str
    status: str
    created_at: str = ""
    status_code: Optional[int] = None
    error: Optional[str] = None
    request_id: Optional[str] = None
    target: Optional[str] = None
    form_id: Optional[str] = None
    submission_id: Optional[str] = None
    contact_id: Optional[str] = None
    comment_id: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class EventListResponse(CamelModel):
    events: list[AuditEventResponse] = Field(default_factory=list)
    count: int = 0
    pagination: PaginationResponse = Field(default_factory=PaginationResponse)


class EventExportResponse(CamelModel):
    format: str
    content: str
    count: int = 0


class BlockRequest(CamelModel):
    email: Optional[str] = None
    ip_hash: Optional[str] = None
    reason: str = ""
    actor: Optional[str] = None
    request_id: Optional[str] = None


class BlocklistEntryResponse(CamelModel):
    """Mirrors intake.moderation.blocklist.BlocklistEntry."""

    site_id: str
    kind: str
    value: str
    reason: str
    actor: Optional[str] = None
    request_id: Optional[str] = None
    created_at: str = ""


class BlocklistResponse(CamelModel):
    entries: list[BlocklistEntryResponse] = Field(default_factory=list)
    count: int = 0
