"""Contact deduplication — merge shared submission data into Contact records.

Contacts are unique by normalized email within a (site, form) pair when
``dedupe_by_email`` is enabled.  A repeat submission merges its notes into
the existing contact and moves it back to ``new``; spam submissions never
create or modify a contact.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Mapping, Optional

from intake.common import Page, normalize_email, paginate, utc_now
from intake.contacts.models import Contact, ContactShareContext, ContactStatus, ExtractedContact
from intake.errors import InvalidStatusError
from intake.forms.models import ContactShareConfig
from intake.moderation.models import ModerationStatus
from intake.moderation.store import RecordTable

logger = logging.getLogger(__name__)


class ContactStore(RecordTable[Contact]):
    """Contacts, keyed by id."""

    def find_by_email(self, site_id: str, form_id: str, email: str) -> Optional[Contact]:
        key = normalize_email(email)
        if not key:
            return None
        for contact in self.all():
            if (
                contact.site_id == site_id
                and contact.form_id == form_id
                and normalize_email(contact.email) == key
            ):
                return contact
        return None

    def list_contacts(
        self,
        form_id: str,
        *,
        status: Optional[ContactStatus] = None,
        request_id: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Page[Contact]:
        records = [c for c in self.all() if c.form_id == form_id]
        if status:
            records = [c for c in records if c.status == status]
        if request_id:
            records = [c for c in records if c.request_id == request_id]
        records.reverse()
        records.sort(key=lambda c: c.updated_at, reverse=True)
        return paginate(records, limit, offset)


def _text(values: Mapping[str, Any], key: str) -> Optional[str]:
    if not key:
        return None
    value = values.get(key)
    if value is None or isinstance(value, (dict, list)):
        return None
    text = str(value).strip()
    return text or None


def extract_contact(values: Mapping[str, Any], config: ContactShareConfig) -> ExtractedContact:
    """Pull name/email/phone/notes out of submitted values."""
    email = _text(values, config.email_field)
    return ExtractedContact(
        name=_text(values, config.name_field),
        email=email.lower() if email else None,
        phone=_text(values, config.phone_field),
        notes=_text(values, config.notes_field),
    )


def _merge_into(contact: Contact, extracted: ExtractedContact, context: ContactShareContext) -> None:
    if extracted.notes:
        contact.notes = f"{contact.notes}\n{extracted.notes}" if contact.notes else extracted.notes
    if not contact.name and extracted.name:
        contact.name = extracted.name
    if not contact.phone and extracted.phone:
        contact.phone = extracted.phone
    contact.status = ContactStatus.new
    contact.request_id = context.request_id or contact.request_id
    contact.updated_at = utc_now()


class ContactDeduper:
    """Creates or merges contacts from submissions that opted into sharing."""

    def __init__(self, store: Optional[ContactStore] = None) -> None:
        self.store = store or ContactStore()
        self._lock = threading.RLock()

    def build_contact_share_from_submission(
        self,
        site_id: str,
        form_id: str,
        values: Mapping[str, Any],
        context: ContactShareContext,
        config: Optional[ContactShareConfig] = None,
    ) -> Optional[Contact]:
        """Create, merge or look up the contact for one submission.

        Returns the resulting contact, or None when nothing was shared.
        """
        config = config or ContactShareConfig(email_field="email", phone_field="phone")
        if not config.enabled:
            return None

        extracted = extract_contact(values, config)
        is_spam = context.status == ModerationStatus.spam

        with self._lock:
            if config.dedupe_by_email and extracted.email:
                existing = self.store.find_by_email(site_id, form_id, extracted.email)
                if existing is not None:
                    if is_spam:
                        return existing
                    merged = self.store.update(
                        existing.id, lambda c: _merge_into(c, extracted, context)
                    )
                    logger.info("Merged submission into contact %s", existing.id)
                    return merged

            if is_spam or not extracted.has_identity:
                return None

            contact = Contact(
                site_id=site_id,
                form_id=form_id,
                name=extracted.name,
                email=extracted.email,
                phone=extracted.phone,
                notes=extracted.notes,
                status=ContactStatus.new,
                source_submission_id=context.source_submission_id,
                request_id=context.request_id,
                page_id=context.page_id,
                post_id=context.post_id,
                ip_hash=context.ip_hash,
            )
            logger.info("Created contact %s for form %s", contact.id, form_id)
            return self.store.insert(contact)

    def update_contact_status(self, contact_id: str, status: ContactStatus | str) -> Optional[Contact]:
        """Set a contact's status.  Returns None for an unknown contact."""
        try:
            new_status = ContactStatus(status)
        except ValueError:
            raise InvalidStatusError(f"Unknown contact status '{status}'") from None

        def apply(contact: Contact) -> None:
            contact.status = new_status
            contact.updated_at = utc_now()

        return self.store.update(contact_id, apply)
