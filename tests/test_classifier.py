"""Tests for the spam classifier."""

from intake.config import IntakeSettings
from intake.forms.models import CommentPolicy, FieldDefinition, FormDefinition, ValidationRule
from intake.moderation.blocklist import IdentityBlocklist
from intake.moderation.classifier import IntakeContext, SpamClassifier, parse_started_at
from intake.moderation.models import ModerationStatus, SpamFlag


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _form(**overrides) -> FormDefinition:
    defaults = dict(
        id="form-contact",
        site_id="site-a",
        name="contact",
        fields=[
            FieldDefinition(key="name", required=True),
            FieldDefinition(key="email", type="email"),
            FieldDefinition(
                key="message",
                type="textarea",
                validation=[ValidationRule(type="minLength", value=10)],
            ),
        ],
    )
    defaults.update(overrides)
    return FormDefinition(**defaults)


def _values(i: int = 0) -> dict:
    return {"name": f"Ada {i}", "email": "ada@example.com", "message": f"Hello number {i}, nice site"}


def _classifier(clock=None, blocklist=None, **settings) -> SpamClassifier:
    return SpamClassifier(
        blocklist or IdentityBlocklist(),
        IntakeSettings(**settings),
        clock or FakeClock(),
    )


# ---------------------------------------------------------------------------
# Forms
# ---------------------------------------------------------------------------


def test_clean_submission_uses_moderation_default():
    classifier = _classifier()
    result = classifier.classify_form(_form(), _values(), IntakeContext(ip_hash="h1"))
    assert result.ok
    assert result.status == ModerationStatus.pending
    assert result.spam_flags == []

    auto = classifier.classify_form(
        _form(moderation_mode="auto-approve"), _values(1), IntakeContext(ip_hash="h1")
    )
    assert auto.status == ModerationStatus.approved


def test_validation_failure_rejects_without_classifying():
    classifier = _classifier()
    result = classifier.classify_form(
        _form(), {"name": "", "email": "bad", "message": "hi"}, IntakeContext(ip_hash="h1")
    )
    assert not result.ok
    assert result.status == ModerationStatus.rejected
    assert result.spam_flags == [SpamFlag.validation]
    assert len(result.validation) == 3


def test_honeypot_is_spam_regardless_of_validity():
    classifier = _classifier()
    result = classifier.classify_form(
        _form(), {"name": "", "email": "bad"}, IntakeContext(honeypot="http://buy.example")
    )
    assert result.ok
    assert result.status == ModerationStatus.spam
    assert result.spam_flags == [SpamFlag.honeypot]


def test_honeypot_ignored_when_form_disables_it():
    classifier = _classifier()
    result = classifier.classify_form(
        _form(enable_honeypot=False), _values(), IntakeContext(honeypot="filled")
    )
    assert result.status == ModerationStatus.pending


def test_rate_limit_bypass_skips_spam_checks():
    classifier = _classifier()
    result = classifier.classify_form(
        _form(), _values(), IntakeContext(honeypot="filled", rate_limit_bypass=True)
    )
    assert result.ok
    assert result.status == ModerationStatus.pending
    assert result.spam_flags == []


def test_blocked_identity_is_not_ok():
    blocklist = IdentityBlocklist()
    blocklist.block("site-a", email="ada@example.com")
    classifier = _classifier(blocklist=blocklist)

    result = classifier.classify_form(_form(), _values(), IntakeContext(ip_hash="h1"))
    assert not result.ok
    assert result.status == ModerationStatus.blocked
    assert result.spam_flags == [SpamFlag.blocked_actor]


def test_fast_fill_is_spam():
    clock = FakeClock()
    classifier = _classifier(clock)
    started = clock.now * 1000 - 300

    result = classifier.classify_form(_form(), _values(), IntakeContext(started_at=started))
    assert result.status == ModerationStatus.spam
    assert result.spam_flags == [SpamFlag.timing]

    slow = classifier.classify_form(
        _form(), _values(1), IntakeContext(started_at=str(int(clock.now * 1000 - 5000)))
    )
    assert slow.status == ModerationStatus.pending


def test_ninth_submission_in_window_is_rate_limited():
    clock = FakeClock()
    classifier = _classifier(clock)
    form = _form()

    results = [classifier.classify_form(form, _values(i), IntakeContext(ip_hash="h1")) for i in range(9)]
    assert all(r.status == ModerationStatus.pending for r in results[:8])
    assert results[8].status == ModerationStatus.spam
    assert results[8].spam_flags == [SpamFlag.rate_limit]

    clock.now += 61
    after = classifier.classify_form(form, _values(99), IntakeContext(ip_hash="h1"))
    assert after.status == ModerationStatus.pending


def test_duplicate_within_horizon_then_clear_after():
    clock = FakeClock()
    classifier = _classifier(clock)
    form = _form()

    first = classifier.classify_form(form, _values(), IntakeContext(ip_hash="h1"))
    clock.now += 5
    second = classifier.classify_form(form, _values(), IntakeContext(ip_hash="h1"))
    clock.now += 601
    third = classifier.classify_form(form, _values(), IntakeContext(ip_hash="h1"))

    assert first.status == ModerationStatus.pending
    assert second.status == ModerationStatus.spam
    assert second.spam_flags == [SpamFlag.duplicate]
    assert third.status == ModerationStatus.pending


def test_identity_falls_back_to_email():
    clock = FakeClock()
    classifier = _classifier(clock, form_rate_limit=1)
    form = _form()

    classifier.classify_form(form, _values(0), IntakeContext())
    other = {**_values(1), "email": "grace@example.com"}
    assert classifier.classify_form(form, other, IntakeContext()).status == ModerationStatus.pending
    limited = classifier.classify_form(form, _values(2), IntakeContext())
    assert limited.spam_flags == [SpamFlag.rate_limit]


# ---------------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------------


def _comment(classifier, content="Lovely write-up, thanks!", policy=None, context=None, **kwargs):
    return classifier.classify_comment(
        site_id="site-a",
        target_key="post:post-1",
        content=content,
        policy=policy or CommentPolicy(),
        context=context or IntakeContext(ip_hash="h1"),
        **kwargs,
    )


def test_empty_comment_is_rejected():
    result = _comment(_classifier(), content="   ")
    assert not result.ok
    assert result.status == ModerationStatus.rejected
    assert result.validation[0].field == "content"


def test_blocked_commenter_is_blocked():
    blocklist = IdentityBlocklist()
    blocklist.block("site-a", ip_hash="h1")
    result = _comment(_classifier(blocklist=blocklist))
    assert result.status == ModerationStatus.blocked
    assert result.spam_flags == [SpamFlag.blocked_actor]


def test_blocklist_outranks_length_check():
    blocklist = IdentityBlocklist()
    blocklist.block("site-a", ip_hash="h1")
    result = _comment(_classifier(blocklist=blocklist), content="x" * 6000)
    assert result.status == ModerationStatus.blocked


def test_oversized_comment_is_rejected():
    result = _comment(_classifier(), content="x" * 5001)
    assert result.status == ModerationStatus.rejected
    assert result.validation[0].rule == "maxLength"


def test_policy_requirements():
    policy = CommentPolicy(require_name=True, require_email=True, allow_guests=False)
    result = _comment(_classifier(), policy=policy)
    assert {v.field for v in result.validation} == {"userId", "authorName", "authorEmail"}

    bad_email = _comment(_classifier(), author_email="nope")
    assert bad_email.validation[0].rule == "email"


def test_comment_rate_limit_and_duplicates():
    clock = FakeClock()
    classifier = _classifier(clock)

    assert _comment(classifier, content="First!").status == ModerationStatus.pending
    dup = _comment(classifier, content="  first! ")
    assert dup.spam_flags == [SpamFlag.duplicate]

    results = [_comment(classifier, content=f"comment {i}") for i in range(11)]
    assert results[-1].spam_flags == [SpamFlag.rate_limit]


def test_auto_approve_comment_policy():
    result = _comment(_classifier(), policy=CommentPolicy(moderation_mode="auto-approve"))
    assert result.status == ModerationStatus.approved


def test_parse_started_at():
    assert parse_started_at(None) is None
    assert parse_started_at("") is None
    assert parse_started_at("garbage") is None
    assert parse_started_at(1500) == 1500.0
    assert parse_started_at("1500") == 1500.0
    assert parse_started_at("1970-01-01T00:00:01Z") == 1000.0
