"""Validation — declarative field rules for form submissions."""

from intake.validation.engine import FieldViolation, is_empty, is_valid_email, validate_submission

__all__ = ["FieldViolation", "is_empty", "is_valid_email", "validate_submission"]
