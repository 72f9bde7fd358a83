"""Contact records built from form submissions."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from intake.common import new_id, utc_now
from intake.moderation.models import ModerationStatus


class ContactStatus(str, Enum):
    """Sales-style lifecycle of a contact."""

    new = "new"
    contacted = "contacted"
    qualified = "qualified"
    archived = "archived"


@dataclass
class Contact:
    """Identity details shared through a form submission."""

    site_id: str
    form_id: str
    id: str = ""
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    notes: Optional[str] = None
    status: ContactStatus = ContactStatus.new
    source_submission_id: Optional[str] = None
    request_id: Optional[str] = None
    page_id: Optional[str] = None
    post_id: Optional[str] = None
    ip_hash: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""

    def __post_init__(self) -> None:
        if not self.id:
            self.id = new_id("contact")
        if not self.created_at:
            self.created_at = utc_now()
        if not self.updated_at:
            self.updated_at = self.created_at
        if isinstance(self.status, str):
            self.status = ContactStatus(self.status)


@dataclass
class ContactShareContext:
    """Where the shared contact data came from."""

    status: ModerationStatus
    source_submission_id: Optional[str] = None
    request_id: Optional[str] = None
    page_id: Optional[str] = None
    post_id: Optional[str] = None
    ip_hash: Optional[str] = None


@dataclass
class ExtractedContact:
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    notes: Optional[str] = None

    @property
    def has_identity(self) -> bool:
        return bool(self.name or self.email or self.phone)
