"""Tests for contact sharing and deduplication."""

from concurrent.futures import ThreadPoolExecutor

import pytest

from intake.contacts.deduper import ContactDeduper, extract_contact
from intake.contacts.models import ContactShareContext, ContactStatus
from intake.errors import InvalidStatusError
from intake.forms.models import ContactShareConfig, FieldDefinition, FormDefinition
from intake.moderation.models import ModerationStatus

CONFIG = ContactShareConfig(email_field="email", phone_field="phone")


def _ctx(status=ModerationStatus.pending, **kwargs) -> ContactShareContext:
    return ContactShareContext(status=status, **kwargs)


def test_extract_contact_strips_and_lowercases():
    extracted = extract_contact(
        {"name": "  Ada ", "email": " ADA@Example.com ", "phone": "", "message": "hi"}, CONFIG
    )
    assert extracted.name == "Ada"
    assert extracted.email == "ada@example.com"
    assert extracted.phone is None
    assert extracted.notes == "hi"


def test_same_email_merges_into_one_contact():
    deduper = ContactDeduper()
    first = deduper.build_contact_share_from_submission(
        "site-a", "form-1", {"name": "Ada", "email": "Ada@Example.com", "message": "First note"}, _ctx(), CONFIG
    )
    second = deduper.build_contact_share_from_submission(
        "site-a",
        "form-1",
        {"email": "ada@example.com ", "phone": "555-0100", "message": "Second note"},
        _ctx(request_id="req-2"),
        CONFIG,
    )

    assert first.id == second.id
    assert len(deduper.store) == 1
    assert second.notes == "First note\nSecond note"
    assert second.name == "Ada"
    assert second.phone == "555-0100"
    assert second.request_id == "req-2"


def test_repeated_note_is_appended_again():
    deduper = ContactDeduper()
    values = {"email": "a@example.com", "message": "Please call me"}
    deduper.build_contact_share_from_submission("s", "f", values, _ctx(), CONFIG)
    merged = deduper.build_contact_share_from_submission("s", "f", values, _ctx(), CONFIG)
    assert merged.notes == "Please call me\nPlease call me"


def test_submission_without_note_keeps_existing_notes():
    deduper = ContactDeduper()
    deduper.build_contact_share_from_submission(
        "s", "f", {"email": "a@example.com", "message": "First"}, _ctx(), CONFIG
    )
    merged = deduper.build_contact_share_from_submission("s", "f", {"email": "a@example.com"}, _ctx(), CONFIG)
    assert merged.notes == "First"


def test_concurrent_shares_with_same_email_make_one_contact():
    deduper = ContactDeduper()
    values = {"email": "a@example.com", "message": "hello"}

    def share(_):
        return deduper.build_contact_share_from_submission("s", "f", values, _ctx(), CONFIG)

    with ThreadPoolExecutor(max_workers=16) as pool:
        contacts = list(pool.map(share, range(40)))

    assert len(deduper.store) == 1
    assert len({c.id for c in contacts}) == 1
    assert deduper.store.list_contacts("f").items[0].notes.split("\n") == ["hello"] * 40


def test_merge_resets_status_to_new():
    deduper = ContactDeduper()
    contact = deduper.build_contact_share_from_submission(
        "s", "f", {"email": "a@example.com"}, _ctx(), CONFIG
    )
    deduper.update_contact_status(contact.id, "qualified")
    merged = deduper.build_contact_share_from_submission(
        "s", "f", {"email": "a@example.com", "message": "again"}, _ctx(), CONFIG
    )
    assert merged.status == ContactStatus.new


def test_dedupe_is_scoped_to_site_and_form():
    deduper = ContactDeduper()
    values = {"email": "a@example.com"}
    a = deduper.build_contact_share_from_submission("s", "f1", values, _ctx(), CONFIG)
    b = deduper.build_contact_share_from_submission("s", "f2", values, _ctx(), CONFIG)
    assert a.id != b.id


def test_dedupe_disabled_creates_new_contacts():
    deduper = ContactDeduper()
    config = ContactShareConfig(email_field="email", dedupe_by_email=False)
    values = {"email": "a@example.com"}
    a = deduper.build_contact_share_from_submission("s", "f", values, _ctx(), config)
    b = deduper.build_contact_share_from_submission("s", "f", values, _ctx(), config)
    assert a.id != b.id


def test_spam_never_creates_or_modifies():
    deduper = ContactDeduper()
    spam = _ctx(status=ModerationStatus.spam)
    assert deduper.build_contact_share_from_submission("s", "f", {"email": "x@example.com"}, spam, CONFIG) is None

    existing = deduper.build_contact_share_from_submission(
        "s", "f", {"email": "a@example.com", "message": "real"}, _ctx(), CONFIG
    )
    returned = deduper.build_contact_share_from_submission(
        "s", "f", {"email": "a@example.com", "message": "buy pills"}, spam, CONFIG
    )
    assert returned.id == existing.id
    assert returned.notes == "real"


def test_no_identity_means_no_contact():
    deduper = ContactDeduper()
    assert deduper.build_contact_share_from_submission("s", "f", {"message": "hi"}, _ctx(), CONFIG) is None


def test_disabled_config_shares_nothing():
    deduper = ContactDeduper()
    config = ContactShareConfig(enabled=False)
    assert deduper.build_contact_share_from_submission("s", "f", {"name": "Ada"}, _ctx(), config) is None


def test_update_contact_status():
    deduper = ContactDeduper()
    contact = deduper.build_contact_share_from_submission("s", "f", {"name": "Ada"}, _ctx(), CONFIG)
    assert deduper.update_contact_status(contact.id, "contacted").status == ContactStatus.contacted
    assert deduper.update_contact_status("contact-missing", "contacted") is None
    with pytest.raises(InvalidStatusError):
        deduper.update_contact_status(contact.id, "vip")


def test_list_contacts_filters_by_status():
    deduper = ContactDeduper()
    a = deduper.build_contact_share_from_submission("s", "f", {"email": "a@example.com"}, _ctx(), CONFIG)
    deduper.build_contact_share_from_submission("s", "f", {"email": "b@example.com"}, _ctx(), CONFIG)
    deduper.update_contact_status(a.id, "archived")

    page = deduper.store.list_contacts("f", status=ContactStatus.archived)
    assert [c.id for c in page.items] == [a.id]
    assert deduper.store.list_contacts("f").count == 2


def test_form_resolves_contact_fields_from_types():
    form = FormDefinition(
        id="f",
        site_id="s",
        name="f",
        fields=[FieldDefinition(key="work_email", type="email"), FieldDefinition(key="mobile", type="tel")],
    )
    config = form.resolve_contact_share({"notesField": None, "notes_field": "comments"})
    assert config.email_field == "work_email"
    assert config.phone_field == "mobile"
    assert config.notes_field == "comments"
