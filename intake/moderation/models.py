"""Data models for submission and comment moderation."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from intake.common import new_id, utc_now
from intake.validation.engine import FieldViolation


class ModerationStatus(str, Enum):
    """Every status a classifier or moderator can produce."""

    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    spam = "spam"
    blocked = "blocked"


SUBMISSION_STATUSES = frozenset(
    {ModerationStatus.pending, ModerationStatus.approved, ModerationStatus.rejected, ModerationStatus.spam}
)
COMMENT_STATUSES = frozenset(ModerationStatus)

# Statuses a moderator can restore an item *into* that lift block metadata
OPEN_STATUSES = frozenset({ModerationStatus.pending, ModerationStatus.approved})
NEGATIVE_STATUSES = frozenset({ModerationStatus.rejected, ModerationStatus.spam, ModerationStatus.blocked})


class SpamFlag(str, Enum):
    """Which signal decided a classification."""

    validation = "validation"
    blocked_actor = "blocked-actor"
    honeypot = "honeypot"
    timing = "timing"
    rate_limit = "rate-limit"
    duplicate = "duplicate"


class TargetType(str, Enum):
    """Entities a comment thread can hang off."""

    page = "page"
    post = "post"


REPORT_REASONS: tuple[str, ...] = (
    "spam",
    "harassment",
    "abuse",
    "hate-speech",
    "off-topic",
    "copyright",
    "privacy",
    "other",
)


@dataclass
class ClassificationResult:
    """Outcome of validation + spam classification for one intake call."""

    ok: bool
    status: ModerationStatus
    validation: list[FieldViolation] = field(default_factory=list)
    spam_flags: list[SpamFlag] = field(default_factory=list)
    spam_message: str = ""


@dataclass
class FormSubmission:
    """A stored form submission."""

    site_id: str
    form_id: str
    values: dict[str, Any]
    status: ModerationStatus
    id: str = ""
    page_id: Optional[str] = None
    post_id: Optional[str] = None
    ip_hash: Optional[str] = None
    user_agent: Optional[str] = None
    request_id: Optional[str] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[str] = None
    submitted_at: str = ""
    updated_at: str = ""

    def __post_init__(self) -> None:
        if not self.id:
            self.id = new_id("submission")
        if not self.submitted_at:
            self.submitted_at = utc_now()
        if not self.updated_at:
            self.updated_at = self.submitted_at
        if isinstance(self.status, str):
            self.status = ModerationStatus(self.status)


@dataclass
class Comment:
    """A stored comment on a page or post."""

    site_id: str
    target_type: TargetType
    target_id: str
    content: str
    status: ModerationStatus
    id: str = ""
    parent_id: Optional[str] = None
    author_name: Optional[str] = None
    author_email: Optional[str] = None
    author_website: Optional[str] = None
    user_id: Optional[str] = None
    ip_hash: Optional[str] = None
    user_agent: Optional[str] = None
    request_id: Optional[str] = None
    report_count: int = 0
    report_reasons: set[str] = field(default_factory=set)
    block_reason: Optional[str] = None
    blocked_by: Optional[str] = None
    blocked_at: Optional[str] = None
    rejection_reason: Optional[str] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""

    def __post_init__(self) -> None:
        if not self.id:
            self.id = new_id("comment")
        if not self.created_at:
            self.created_at = utc_now()
        if not self.updated_at:
            self.updated_at = self.created_at
        if isinstance(self.status, str):
            self.status = ModerationStatus(self.status)
        if isinstance(self.target_type, str):
            self.target_type = TargetType(self.target_type)
        self.report_reasons = set(self.report_reasons)
