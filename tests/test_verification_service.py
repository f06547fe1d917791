from datetime import timedelta

import pytest

from errors import (
    AccountNotFound,
    EmailDeliveryFailed,
    InvalidOrExpiredCode,
    NoVerifiedRequest,
    PasswordMismatch,
    PasswordTooWeak,
    ValidationError,
)
from models.profile import Profile
from models.reset_code import ResetCode
from models.verification_code import VerificationCode
from services import verification_service
from services.verification_service import (
    RESET_CODE,
    RESET_OTP,
    SIGNUP_OTP,
    VerificationService,
    utcnow,
)
from utils.one_time_codes import hash_code
from utils.passwords import verify_password


@pytest.fixture
def service(db):
    return VerificationService(db)


@pytest.fixture
def fixed_code(monkeypatch):
    monkeypatch.setattr(verification_service, "generate_code", lambda: "482913")
    return "482913"


def test_issue_persists_hashed_record_and_mails_code(service, db, mailer, fixed_code):
    result = service.issue_code("a@b.com", SIGNUP_OTP, mailer)

    assert result["ttl_minutes"] == 5
    record = db.query(VerificationCode).filter_by(email="a@b.com").one()
    assert record.used is False
    assert record.code_hash == hash_code("482913")
    assert record.code_hash != "482913"
    assert mailer.last_code("a@b.com") == "482913"
    assert "5 minutes" in mailer.sent[-1]["text"]


def test_issue_sets_expiry_from_ttl(service, db, mailer):
    before = utcnow().replace(tzinfo=None)
    service.issue_code("a@b.com", RESET_OTP, mailer)
    record = db.query(ResetCode).filter_by(email="a@b.com").one()
    expires_at = record.expires_at.replace(tzinfo=None)
    assert before + timedelta(minutes=15) <= expires_at <= before + timedelta(minutes=16)


def test_issue_rejects_empty_email(service, mailer):
    with pytest.raises(ValidationError):
        service.issue_code("   ", SIGNUP_OTP, mailer)
    assert mailer.sent == []


def test_generated_codes_are_six_digits(service, mailer):
    for _ in range(20):
        service.issue_code("a@b.com", SIGNUP_OTP, mailer)
        code = mailer.last_code()
        assert 100000 <= int(code) <= 999999


def test_delivery_failure_keeps_record_valid(service, db, failing_mailer, fixed_code):
    with pytest.raises(EmailDeliveryFailed):
        service.issue_code("a@b.com", SIGNUP_OTP, failing_mailer)

    record = db.query(VerificationCode).filter_by(email="a@b.com").one()
    assert record.used is False
    service.verify_code("a@b.com", "482913", SIGNUP_OTP)


def test_verify_succeeds_exactly_once(service, db, mailer, fixed_code):
    service.issue_code("a@b.com", SIGNUP_OTP, mailer)

    service.verify_code("a@b.com", "482913", SIGNUP_OTP)
    record = db.query(VerificationCode).filter_by(email="a@b.com").one()
    assert record.used is True

    with pytest.raises(InvalidOrExpiredCode) as excinfo:
        service.verify_code("a@b.com", "482913", SIGNUP_OTP)
    assert excinfo.value.message == "Invalid or expired OTP"


def test_wrong_code_and_missing_record_fail_the_same_way(service, mailer, fixed_code):
    with pytest.raises(InvalidOrExpiredCode) as no_record:
        service.verify_code("nobody@b.com", "482913", SIGNUP_OTP)

    service.issue_code("a@b.com", SIGNUP_OTP, mailer)
    with pytest.raises(InvalidOrExpiredCode) as wrong_code:
        service.verify_code("a@b.com", "111111", SIGNUP_OTP)

    assert no_record.value.to_dict() == wrong_code.value.to_dict()


def test_wrong_code_does_not_consume_record(service, db, mailer, fixed_code):
    service.issue_code("a@b.com", SIGNUP_OTP, mailer)
    with pytest.raises(InvalidOrExpiredCode):
        service.verify_code("a@b.com", "000000", SIGNUP_OTP)
    service.verify_code("a@b.com", "482913", SIGNUP_OTP)


def test_expired_code_fails_even_though_unused(service, db, mailer, fixed_code):
    service.issue_code("a@b.com", SIGNUP_OTP, mailer)
    db.query(VerificationCode).update({"expires_at": utcnow() - timedelta(minutes=1)})
    db.commit()

    with pytest.raises(InvalidOrExpiredCode):
        service.verify_code("a@b.com", "482913", SIGNUP_OTP)
    assert db.query(VerificationCode).one().used is False


def test_reissue_invalidates_previous_signup_code(service, db, mailer, monkeypatch):
    codes = iter(["111111", "222222"])
    monkeypatch.setattr(verification_service, "generate_code", lambda: next(codes))
    service.issue_code("a@b.com", SIGNUP_OTP, mailer)
    service.issue_code("a@b.com", SIGNUP_OTP, mailer)

    with pytest.raises(InvalidOrExpiredCode):
        service.verify_code("a@b.com", "111111", SIGNUP_OTP)
    service.verify_code("a@b.com", "222222", SIGNUP_OTP)
    assert db.query(VerificationCode).filter_by(email="a@b.com").count() == 2


def test_reissue_removes_previous_reset_rows(service, db, mailer, make_profile):
    make_profile()
    service.issue_reset_code("a@b.com", RESET_OTP, mailer)
    service.verify_code("a@b.com", mailer.last_code(), RESET_OTP)
    service.issue_reset_code("a@b.com", RESET_OTP, mailer)

    rows = db.query(ResetCode).filter_by(email="a@b.com").all()
    assert len(rows) == 1
    assert rows[0].verified is False
    with pytest.raises(NoVerifiedRequest):
        service.complete_reset("a@b.com", "newpass1")


def test_codes_are_scoped_to_their_email(service, mailer, fixed_code):
    service.issue_code("a@b.com", SIGNUP_OTP, mailer)
    with pytest.raises(InvalidOrExpiredCode):
        service.verify_code("c@d.com", "482913", SIGNUP_OTP)


def test_concurrent_consumption_succeeds_only_once(service, mailer, fixed_code, session_factory, monkeypatch):
    service.issue_code("a@b.com", SIGNUP_OTP, mailer)
    real_matches = verification_service.code_matches

    def matches_then_lose_race(submitted, stored_hash):
        # Another request consumes the row between our read and our update
        other = session_factory()
        try:
            other.query(VerificationCode).update({"used": True})
            other.commit()
        finally:
            other.close()
        return real_matches(submitted, stored_hash)

    monkeypatch.setattr(verification_service, "code_matches", matches_then_lose_race)
    with pytest.raises(InvalidOrExpiredCode):
        service.verify_code("a@b.com", "482913", SIGNUP_OTP)


def test_reset_code_ledger_is_separate_from_signup(service, mailer, make_profile, fixed_code):
    make_profile()
    service.issue_code("a@b.com", SIGNUP_OTP, mailer)
    with pytest.raises(InvalidOrExpiredCode):
        service.verify_code("a@b.com", "482913", RESET_OTP)


def test_reset_issue_for_unknown_email_writes_and_sends_nothing(service, db, mailer):
    result = service.issue_reset_code("ghost@b.com", RESET_OTP, mailer)

    assert result["ttl_minutes"] == 15
    assert db.query(ResetCode).count() == 0
    assert mailer.sent == []


@pytest.mark.parametrize("password", ["", "a", "short", "12345"])
def test_complete_reset_rejects_short_passwords_before_storage(password):
    class ExplodingSession:
        def __getattr__(self, name):
            raise AssertionError("storage must not be touched")

    with pytest.raises(PasswordTooWeak) as excinfo:
        VerificationService(ExplodingSession()).complete_reset("a@b.com", password)
    assert excinfo.value.message == "Password must be at least 6 characters"


def test_complete_reset_without_verify_fails(service, mailer, make_profile):
    make_profile()
    service.issue_reset_code("a@b.com", RESET_OTP, mailer)
    with pytest.raises(NoVerifiedRequest):
        service.complete_reset("a@b.com", "newpass1")


def test_complete_reset_updates_password_and_clears_rows(service, db, mailer, make_profile):
    profile = make_profile(password="oldpass1")
    service.issue_reset_code("a@b.com", RESET_OTP, mailer)
    service.verify_code("a@b.com", mailer.last_code(), RESET_OTP)

    service.complete_reset("a@b.com", "newpass1")

    db.expire_all()
    stored = db.query(Profile).filter_by(id=profile.id).one()
    assert verify_password("newpass1", stored.password)
    assert not verify_password("oldpass1", stored.password)
    assert db.query(ResetCode).filter_by(email="a@b.com").count() == 0

    # The same verification cannot be replayed
    with pytest.raises(NoVerifiedRequest):
        service.complete_reset("a@b.com", "another1")


def test_complete_reset_rechecks_expiry_after_verification(service, db, mailer, make_profile):
    make_profile()
    service.issue_reset_code("a@b.com", RESET_OTP, mailer)
    service.verify_code("a@b.com", mailer.last_code(), RESET_OTP)
    db.query(ResetCode).update({"expires_at": utcnow() - timedelta(minutes=1)})
    db.commit()

    with pytest.raises(NoVerifiedRequest):
        service.complete_reset("a@b.com", "newpass1")


def test_complete_reset_without_account_keeps_verified_row(service, db):
    now = utcnow()
    db.add(ResetCode(
        email="ghost@b.com",
        code_hash=hash_code("123456"),
        created_at=now,
        expires_at=now + timedelta(minutes=15),
        verified=True,
    ))
    db.commit()

    with pytest.raises(AccountNotFound):
        service.complete_reset("ghost@b.com", "newpass1")
    assert db.query(ResetCode).filter_by(email="ghost@b.com", verified=True).count() == 1


def test_reset_password_with_code_in_one_step(service, db, mailer, make_profile):
    make_profile(password="oldpass1")
    service.issue_reset_code("a@b.com", RESET_CODE, mailer)

    service.reset_password_with_code("a@b.com", mailer.last_code(), "newpass1", "newpass1")

    db.expire_all()
    assert verify_password("newpass1", db.query(Profile).one().password)
    assert db.query(ResetCode).count() == 0


def test_reset_password_with_code_accepts_already_verified_code(service, db, mailer, make_profile):
    make_profile()
    service.issue_reset_code("a@b.com", RESET_CODE, mailer)
    code = mailer.last_code()
    service.verify_code("a@b.com", code, RESET_CODE)

    service.reset_password_with_code("a@b.com", code, "newpass1", "newpass1")
    db.expire_all()
    assert verify_password("newpass1", db.query(Profile).one().password)


def test_reset_password_with_code_checks_inputs(service, mailer, make_profile):
    make_profile()
    service.issue_reset_code("a@b.com", RESET_CODE, mailer)
    code = mailer.last_code()

    with pytest.raises(PasswordMismatch):
        service.reset_password_with_code("a@b.com", code, "newpass1", "newpass2")
    with pytest.raises(PasswordTooWeak):
        service.reset_password_with_code("a@b.com", code, "abc", "abc")
    with pytest.raises(InvalidOrExpiredCode) as excinfo:
        service.reset_password_with_code("a@b.com", "000000", "newpass1", "newpass1")
    assert excinfo.value.message == "Invalid or expired reset code"


def test_purge_expired_removes_only_expired_rows(service, db, mailer):
    service.issue_code("live@b.com", SIGNUP_OTP, mailer)
    now = utcnow()
    db.add(VerificationCode(
        email="old@b.com", code_hash=hash_code("123456"),
        created_at=now - timedelta(minutes=10), expires_at=now - timedelta(minutes=5), used=False,
    ))
    db.add(ResetCode(
        email="old@b.com", code_hash=hash_code("654321"),
        created_at=now - timedelta(minutes=30), expires_at=now - timedelta(minutes=15), verified=True,
    ))
    db.commit()

    assert service.purge_expired() == 2
    assert db.query(VerificationCode).count() == 1
    assert db.query(ResetCode).count() == 0


def test_purge_script_counts_expired_rows(db):
    from scripts.purge_expired_codes import count_expired

    now = utcnow()
    db.add(VerificationCode(
        email="old@b.com", code_hash=hash_code("123456"),
        created_at=now - timedelta(minutes=10), expires_at=now - timedelta(minutes=5), used=True,
    ))
    db.commit()
    assert count_expired(db) == 1
