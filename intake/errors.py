"""Exception types raised by the intake package.

Validation problems and spam classifications are *not* exceptions; they are
returned as values.  These types cover lookups and invalid moderator input.
"""

from __future__ import annotations


class IntakeError(Exception):
    """Base class for intake errors."""


class NotFoundError(IntakeError, LookupError):
    """An unknown site, form, submission, comment or contact was referenced."""

    def __init__(self, kind: str, identifier: str) -> None:
        super().__init__(f"{kind.capitalize()} {identifier} not found")
        self.kind = kind
        self.identifier = identifier


class InactiveFormError(IntakeError):
    """The form exists but is not collecting submissions."""


class InvalidStatusError(IntakeError, ValueError):
    """A status value is unknown or not valid for the record kind."""


class InvalidReportReasonError(IntakeError, ValueError):
    """A comment report used a reason outside the enumerated set."""


class CommentsDisabledError(IntakeError):
    """The site's comment policy does not accept new comments."""


class CommentThreadError(IntakeError):
    """A reply points at a parent outside its thread or nests too deeply."""

    def __init__(self, message: str, field: str = "parentId") -> None:
        super().__init__(message)
        self.field = field
