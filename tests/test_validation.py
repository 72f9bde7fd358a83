"""Tests for the validation engine."""

import pytest

from intake.forms.models import FieldDefinition, ValidationRule
from intake.validation import is_empty, is_valid_email, validate_submission


def _contact_fields() -> list[FieldDefinition]:
    return [
        FieldDefinition(key="name", required=True),
        FieldDefinition(key="email", type="email"),
        FieldDefinition(
            key="message",
            type="textarea",
            validation=[ValidationRule(type="minLength", value=10)],
        ),
    ]


def test_contact_payload_collects_every_violation():
    violations = validate_submission(
        _contact_fields(), {"name": "", "email": "bad", "message": "hi"}
    )
    assert [v.field for v in violations] == ["name", "email", "message"]
    assert [v.rule for v in violations] == ["required", "email", "minLength"]


def test_valid_payload_has_no_violations():
    violations = validate_submission(
        _contact_fields(),
        {"name": "Ada", "email": "ada@example.com", "message": "Hello there, friend"},
    )
    assert violations == []


def test_optional_empty_fields_skip_rules():
    fields = [
        FieldDefinition(
            key="nickname",
            validation=[
                ValidationRule(type="minLength", value=3),
                ValidationRule(type="pattern", value="^[a-z]+$"),
            ],
        )
    ]
    assert validate_submission(fields, {}) == []
    assert validate_submission(fields, {"nickname": "   "}) == []


def test_explicit_required_rule_is_not_doubled():
    fields = [
        FieldDefinition(
            key="name",
            required=True,
            validation=[ValidationRule(type="required", message="Tell us your name")],
        )
    ]
    violations = validate_submission(fields, {"name": None})
    assert len(violations) == 1
    assert violations[0].message == "Tell us your name"


def test_length_bounds():
    fields = [
        FieldDefinition(
            key="code",
            validation=[
                ValidationRule(type="minLength", value=2),
                ValidationRule(type="maxLength", value=4),
            ],
        )
    ]
    assert validate_submission(fields, {"code": "ab"}) == []
    assert validate_submission(fields, {"code": "abcd"}) == []
    assert [v.rule for v in validate_submission(fields, {"code": "a"})] == ["minLength"]
    assert [v.rule for v in validate_submission(fields, {"code": "abcde"})] == ["maxLength"]


def test_numeric_bounds_accept_numeric_strings():
    fields = [
        FieldDefinition(
            key="age",
            type="number",
            validation=[ValidationRule(type="min", value=18), ValidationRule(type="max", value=99)],
        )
    ]
    assert validate_submission(fields, {"age": "42"}) == []
    assert validate_submission(fields, {"age": 18}) == []
    assert [v.rule for v in validate_submission(fields, {"age": 12})] == ["min"]
    assert [v.rule for v in validate_submission(fields, {"age": "120"})] == ["max"]


def test_non_numeric_value_ignores_numeric_bounds():
    fields = [FieldDefinition(key="age", validation=[ValidationRule(type="min", value=18)])]
    assert validate_submission(fields, {"age": "eighteen"}) == []


def test_pattern_matches_anywhere_in_value():
    fields = [FieldDefinition(key="ref", validation=[ValidationRule(type="pattern", value=r"\d{3}")])]
    assert validate_submission(fields, {"ref": "ref-123"}) == []
    assert len(validate_submission(fields, {"ref": "ref-12"})) == 1


def test_invalid_pattern_is_reported_as_violation():
    fields = [FieldDefinition(key="ref", validation=[ValidationRule(type="pattern", value="([")])]
    violations = validate_submission(fields, {"ref": "anything"})
    assert len(violations) == 1
    assert "invalid validation pattern" in violations[0].message


def test_email_field_with_rules_skips_implicit_check():
    fields = [
        FieldDefinition(key="email", type="email", validation=[ValidationRule(type="maxLength", value=50)])
    ]
    assert validate_submission(fields, {"email": "not-an-email"}) == []


def test_custom_messages_override_defaults():
    fields = [
        FieldDefinition(
            key="zip",
            validation=[ValidationRule(type="pattern", value=r"^\d{5}$", message="Five digits please")],
        )
    ]
    assert validate_submission(fields, {"zip": "abc"})[0].message == "Five digits please"


def test_unknown_field_type_is_rejected():
    with pytest.raises(ValueError):
        FieldDefinition(key="x", type="hologram")


def test_is_empty():
    assert is_empty(None)
    assert is_empty("  ")
    assert is_empty([])
    assert not is_empty(0)
    assert not is_empty(False)
    assert not is_empty("x")


def test_is_valid_email():
    assert is_valid_email("a@b.co")
    assert is_valid_email("  a.b+c@example.org ")
    assert not is_valid_email("bad")
    assert not is_valid_email("a@b")
    assert not is_valid_email("a b@c.de")
