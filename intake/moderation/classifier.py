"""Spam classifier for form submissions and comments.

Signals are evaluated in a fixed order and the first one that fires decides
the outcome:

1. empty comment content                 -> rejected  (validation)
2. blocked identity                      -> blocked   (blocked-actor)
3. oversized / malformed comment         -> rejected  (validation)
4. trusted ``rate_limit_bypass`` caller  -> moderation-mode default
5. filled honeypot                       -> spam      (honeypot)
6. filled faster than a human could      -> spam      (timing)
7. rate limit exceeded                   -> spam      (rate-limit)
8. repeated content signature            -> spam      (duplicate)
9. nothing fired                         -> moderation-mode default

Form submissions run the validation engine before step 2.  A honeypot hit
outranks field violations: bots are classified as spam, not told which
fields to fix.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Mapping, Optional

from intake.common import normalize_email
from intake.config import IntakeSettings
from intake.forms.models import CommentPolicy, FormDefinition, ModerationMode
from intake.moderation.blocklist import IdentityBlocklist
from intake.moderation.models import ClassificationResult, ModerationStatus, SpamFlag
from intake.moderation.rate_limiter import FixedWindowRateLimiter
from intake.moderation.signatures import DuplicateDetector, comment_signature, form_signature
from intake.validation.engine import FieldViolation, is_empty, is_valid_email, validate_submission

logger = logging.getLogger(__name__)

_MESSAGES = {
    SpamFlag.validation: "Submission failed validation.",
    SpamFlag.blocked_actor: "Submission blocked.",
    SpamFlag.honeypot: "Submission flagged as spam.",
    SpamFlag.timing: "Submission was completed too quickly.",
    SpamFlag.rate_limit: "Too many submissions. Please try again later.",
    SpamFlag.duplicate: "Duplicate submission detected.",
}


@dataclass
class IntakeContext:
    """Request metadata that accompanies a submission or comment."""

    honeypot: str = ""
    ip_hash: Optional[str] = None
    user_agent: Optional[str] = None
    request_id: Optional[str] = None
    rate_limit_bypass: bool = False
    started_at: Optional[int | float | str] = None


def parse_started_at(raw: Optional[int | float | str]) -> Optional[float]:
    """Return the client start time as epoch milliseconds, or None if unusable."""
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        return float(raw)
    text = raw.strip()
    if not text:
        return None
    try:
        return float(text)
    except ValueError:
        pass
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed.timestamp() * 1000


def _default_status(mode: ModerationMode) -> ModerationStatus:
    if mode == ModerationMode.auto_approve:
        return ModerationStatus.approved
    return ModerationStatus.pending


def _identity(ip_hash: Optional[str], email: Optional[str]) -> str:
    if ip_hash and ip_hash.strip():
        return ip_hash.strip()
    return normalize_email(email) or "anonymous"


def _flagged(status: ModerationStatus, flag: SpamFlag, ok: bool = True, **kwargs: Any) -> ClassificationResult:
    return ClassificationResult(
        ok=ok,
        status=status,
        spam_flags=[flag],
        spam_message=_MESSAGES[flag],
        **kwargs,
    )


class SpamClassifier:
    """Orchestrates blocklist, content checks, heuristics and rate signals."""

    def __init__(
        self,
        blocklist: IdentityBlocklist,
        settings: Optional[IntakeSettings] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings or IntakeSettings()
        self.blocklist = blocklist
        self._clock = clock
        s = self.settings
        self.form_limiter = FixedWindowRateLimiter(s.form_rate_window_seconds, s.form_rate_limit, clock)
        self.comment_limiter = FixedWindowRateLimiter(
            s.comment_rate_window_seconds, s.comment_rate_limit, clock
        )
        self.form_duplicates = DuplicateDetector(
            s.form_duplicate_horizon_seconds, clock, s.signature_history_size
        )
        self.comment_duplicates = DuplicateDetector(
            s.comment_duplicate_horizon_seconds, clock, s.signature_history_size
        )

    # ------------------------------------------------------------------
    # Shared signal chain (steps 4-9)
    # ------------------------------------------------------------------

    def _evaluate_signals(
        self,
        *,
        mode: ModerationMode,
        honeypot_enabled: bool,
        context: IntakeContext,
        limiter: FixedWindowRateLimiter,
        duplicates: DuplicateDetector,
        key: tuple[str, str, str],
        signature: str,
    ) -> ClassificationResult:
        if context.rate_limit_bypass:
            return ClassificationResult(ok=True, status=_default_status(mode))

        if honeypot_enabled and not is_empty(context.honeypot):
            return _flagged(ModerationStatus.spam, SpamFlag.honeypot)

        started_ms = parse_started_at(context.started_at)
        if started_ms is not None:
            elapsed = self._clock() * 1000 - started_ms
            if elapsed < self.settings.min_fill_ms:
                return _flagged(ModerationStatus.spam, SpamFlag.timing)

        if limiter.hit(key).limited:
            return _flagged(ModerationStatus.spam, SpamFlag.rate_limit)

        if duplicates.check_and_record(key, signature):
            return _flagged(ModerationStatus.spam, SpamFlag.duplicate)

        return ClassificationResult(ok=True, status=_default_status(mode))

    # ------------------------------------------------------------------
    # Forms
    # ------------------------------------------------------------------

    @staticmethod
    def submitter_email(form: FormDefinition, values: Mapping[str, Any]) -> Optional[str]:
        """Pick the submitted email used for blocklist and identity lookups."""
        share = form.resolve_contact_share()
        candidate = values.get(share.email_field)
        if isinstance(candidate, str) and candidate.strip():
            return candidate
        email_field = form.first_field_of_type("email")
        if email_field is not None:
            candidate = values.get(email_field.key)
            if isinstance(candidate, str) and candidate.strip():
                return candidate
        return None

    def classify_form(
        self,
        form: FormDefinition,
        values: Mapping[str, Any],
        context: IntakeContext,
    ) -> ClassificationResult:
        """Validate and classify one form submission."""
        violations = validate_submission(form.fields, values)
        honeypot_hit = (
            form.enable_honeypot
            and not context.rate_limit_bypass
            and not is_empty(context.honeypot)
        )
        if violations and not honeypot_hit:
            return _flagged(
                ModerationStatus.rejected, SpamFlag.validation, ok=False, validation=violations
            )

        email = self.submitter_email(form, values)
        entry = self.blocklist.is_blocked(form.site_id, email=email, ip_hash=context.ip_hash)
        if entry is not None:
            logger.info("Blocked submission to form %s: %s", form.id, entry.reason)
            return _flagged(ModerationStatus.blocked, SpamFlag.blocked_actor, ok=False)

        result = self._evaluate_signals(
            mode=form.moderation_mode,
            honeypot_enabled=form.enable_honeypot,
            context=context,
            limiter=self.form_limiter,
            duplicates=self.form_duplicates,
            key=(form.site_id, form.id, _identity(context.ip_hash, email)),
            signature=form_signature(values),
        )
        if result.spam_flags:
            logger.info(
                "Form %s submission classified %s (%s)",
                form.id,
                result.status.value,
                ", ".join(f.value for f in result.spam_flags),
            )
        return result

    # ------------------------------------------------------------------
    # Comments
    # ------------------------------------------------------------------

    def _comment_violations(
        self,
        policy: CommentPolicy,
        content: str,
        author_name: Optional[str],
        author_email: Optional[str],
        user_id: Optional[str],
    ) -> list[FieldViolation]:
        violations: list[FieldViolation] = []
        limit = self.settings.max_comment_length
        if len(content) > limit:
            violations.append(
                FieldViolation("content", f"Comment must be at most {limit} characters.", "maxLength")
            )
        if not policy.allow_guests and not user_id:
            violations.append(FieldViolation("userId", "Sign in to comment.", "required"))
        if policy.require_name and is_empty(author_name):
            violations.append(FieldViolation("authorName", "Name is required.", "required"))
        if is_empty(author_email):
            if policy.require_email:
                violations.append(FieldViolation("authorEmail", "Email is required.", "required"))
        elif not is_valid_email(author_email or ""):
            violations.append(
                FieldViolation("authorEmail", "Enter a valid email address.", "email")
            )
        return violations

    def classify_comment(
        self,
        *,
        site_id: str,
        target_key: str,
        content: str,
        policy: CommentPolicy,
        context: IntakeContext,
        author_name: Optional[str] = None,
        author_email: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> ClassificationResult:
        """Classify one comment for the thread identified by *target_key*."""
        if is_empty(content):
            return _flagged(
                ModerationStatus.rejected,
                SpamFlag.validation,
                ok=False,
                validation=[FieldViolation("content", "Comment content is required.", "required")],
            )

        entry = self.blocklist.is_blocked(site_id, email=author_email, ip_hash=context.ip_hash)
        if entry is not None:
            logger.info("Blocked comment on %s: %s", target_key, entry.reason)
            return _flagged(ModerationStatus.blocked, SpamFlag.blocked_actor, ok=False)

        violations = self._comment_violations(policy, content, author_name, author_email, user_id)
        if violations:
            return _flagged(
                ModerationStatus.rejected, SpamFlag.validation, ok=False, validation=violations
            )

        result = self._evaluate_signals(
            mode=policy.moderation_mode,
            honeypot_enabled=policy.enable_honeypot,
            context=context,
            limiter=self.comment_limiter,
            duplicates=self.comment_duplicates,
            key=(site_id, target_key, _identity(context.ip_hash, author_email)),
            signature=comment_signature(content),
        )
        if result.spam_flags:
            logger.info(
                "Comment on %s classified %s (%s)",
                target_key,
                result.status.value,
                ", ".join(f.value for f in result.spam_flags),
            )
        return result
