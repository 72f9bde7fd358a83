"""Catalog models: sites, form definitions and comment policies."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Optional


class ModerationMode(str, Enum):
    """Default outcome when no spam signal fires."""

    manual = "manual"
    auto_approve = "auto-approve"


class RuleType(str, Enum):
    """Declarative validation rule kinds."""

    required = "required"
    min_length = "minLength"
    max_length = "maxLength"
    pattern = "pattern"
    min = "min"
    max = "max"


FIELD_TYPES = {
    "text", "email", "number", "textarea", "select", "checkbox",
    "radio", "date", "tel", "url", "file",
}


@dataclass
class Site:
    """A published site that owns forms and comment threads."""

    id: str
    slug: str
    name: str = ""


@dataclass
class ValidationRule:
    """One rule attached to a form field."""

    type: RuleType
    value: Optional[str | int | float] = None
    message: str = ""

    def __post_init__(self) -> None:
        if isinstance(self.type, str):
            self.type = RuleType(self.type)


@dataclass
class FieldDefinition:
    """A single input declared by a form."""

    key: str
    label: str = ""
    type: str = "text"
    required: bool = False
    validation: list[ValidationRule] = field(default_factory=list)
    options: list[str] = field(default_factory=list)
    placeholder: str = ""

    def __post_init__(self) -> None:
        if not self.label:
            self.label = self.key.replace("_", " ").capitalize()
        if self.type not in FIELD_TYPES:
            raise ValueError(f"Unknown field type '{self.type}' for field '{self.key}'")


@dataclass
class ContactShareConfig:
    """Which submitted fields are copied into a Contact record.

    Empty ``email_field``/``phone_field`` mean "first field of type email/tel".
    """

    enabled: bool = True
    name_field: str = "name"
    email_field: str = ""
    phone_field: str = ""
    notes_field: str = "message"
    dedupe_by_email: bool = True

    def merged(self, override: Optional[dict[str, Any]]) -> ContactShareConfig:
        """Return a copy with the non-None keys of *override* applied."""
        if not override:
            return replace(self)
        allowed = {k: v for k, v in override.items() if v is not None and k in self.__dataclass_fields__}
        return replace(self, **allowed)


@dataclass
class FormDefinition:
    """A form embedded on a page or post."""

    id: str
    site_id: str
    name: str
    fields: list[FieldDefinition] = field(default_factory=list)
    title: str = ""
    page_id: Optional[str] = None
    post_id: Optional[str] = None
    is_active: bool = True
    enable_honeypot: bool = True
    moderation_mode: ModerationMode = ModerationMode.manual
    notification_webhook: Optional[str] = None
    webhook_secret: str = ""
    success_message: str = ""
    contact_share: ContactShareConfig = field(default_factory=ContactShareConfig)

    def __post_init__(self) -> None:
        if isinstance(self.moderation_mode, str):
            self.moderation_mode = ModerationMode(self.moderation_mode)

    def first_field_of_type(self, field_type: str) -> Optional[FieldDefinition]:
        for f in self.fields:
            if f.type == field_type:
                return f
        return None

    def resolve_contact_share(self, override: Optional[dict[str, Any]] = None) -> ContactShareConfig:
        """Merge a per-request override and fill the auto-detected field keys."""
        config = self.contact_share.merged(override)
        if not config.email_field:
            email = self.first_field_of_type("email")
            config.email_field = email.key if email else "email"
        if not config.phone_field:
            phone = self.first_field_of_type("tel")
            config.phone_field = phone.key if phone else "phone"
        return config


@dataclass
class CommentPolicy:
    """Per-site commenting rules."""

    enabled: bool = True
    allow_guests: bool = True
    require_name: bool = False
    require_email: bool = False
    allow_replies: bool = True
    max_depth: int = 3
    enable_honeypot: bool = True
    moderation_mode: ModerationMode = ModerationMode.manual

    def __post_init__(self) -> None:
        if isinstance(self.moderation_mode, str):
            self.moderation_mode = ModerationMode(self.moderation_mode)
