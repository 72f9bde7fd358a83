"""Validation engine — evaluate declared field rules against submitted values.

Every rule of every field is evaluated and all violations are collected, in
field declaration order and rule declaration order, so a caller can show
them together.  An empty list means the values are valid.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Sequence

from intake.forms.models import FieldDefinition, RuleType, ValidationRule

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


@dataclass
class FieldViolation:
    """A single failed rule."""

    field: str
    message: str
    rule: str = ""


def is_empty(value: Any) -> bool:
    """True for missing values, blank strings and empty collections."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) == 0
    return False


def is_valid_email(value: str) -> bool:
    return bool(EMAIL_PATTERN.match(value.strip()))


def _as_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    return str(value)


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def _default_message(field: FieldDefinition, rule: RuleType, value: Any = None) -> str:
    label = field.label
    if rule == RuleType.required:
        return f"{label} is required."
    if rule == RuleType.min_length:
        return f"{label} must be at least {value} characters."
    if rule == RuleType.max_length:
        return f"{label} must be at most {value} characters."
    if rule == RuleType.pattern:
        return f"{label} has an invalid format."
    if rule == RuleType.min:
        return f"{label} must be at least {value}."
    if rule == RuleType.max:
        return f"{label} must be at most {value}."
    return f"{label} is invalid."


def _check_rule(field: FieldDefinition, rule: ValidationRule, value: Any) -> Optional[FieldViolation]:
    """Evaluate one rule; return a violation or None."""
    message = rule.message or _default_message(field, rule.type, rule.value)
    empty = is_empty(value)

    if rule.type == RuleType.required:
        return FieldViolation(field.key, message, rule.type.value) if empty else None

    if rule.type == RuleType.pattern:
        try:
            compiled = re.compile(str(rule.value or ""))
        except re.error:
            return FieldViolation(
                field.key, f"{field.label} has an invalid validation pattern.", rule.type.value
            )
        if empty:
            return None
        return None if compiled.search(_as_text(value)) else FieldViolation(field.key, message, rule.type.value)

    if empty:
        return None

    if rule.type in (RuleType.min_length, RuleType.max_length):
        bound = _as_number(rule.value)
        if bound is None:
            return None
        length = len(_as_text(value))
        if rule.type == RuleType.min_length and length < bound:
            return FieldViolation(field.key, message, rule.type.value)
        if rule.type == RuleType.max_length and length > bound:
            return FieldViolation(field.key, message, rule.type.value)
        return None

    if rule.type in (RuleType.min, RuleType.max):
        number = _as_number(value)
        bound = _as_number(rule.value)
        if number is None or bound is None:
            return None
        if rule.type == RuleType.min and number < bound:
            return FieldViolation(field.key, message, rule.type.value)
        if rule.type == RuleType.max and number > bound:
            return FieldViolation(field.key, message, rule.type.value)
        return None

    return None


def validate_field(field: FieldDefinition, value: Any) -> list[FieldViolation]:
    """Return every violation for a single field."""
    violations: list[FieldViolation] = []
    rules = field.validation

    has_required_rule = any(r.type == RuleType.required for r in rules)
    if field.required and not has_required_rule and is_empty(value):
        violations.append(
            FieldViolation(field.key, _default_message(field, RuleType.required), RuleType.required.value)
        )

    if not rules:
        if field.type == "email" and not is_empty(value) and not is_valid_email(_as_text(value)):
            violations.append(
                FieldViolation(field.key, f"{field.label} must be a valid email address.", "email")
            )
        return violations

    for rule in rules:
        violation = _check_rule(field, rule, value)
        if violation is not None:
            violations.append(violation)
    return violations


def validate_submission(
    fields: Sequence[FieldDefinition], values: Mapping[str, Any]
) -> list[FieldViolation]:
    """Validate *values* against *fields*.  Returns an empty list when valid."""
    violations: list[FieldViolation] = []
    for field in fields:
        violations.extend(validate_field(field, values.get(field.key)))
    return violations
