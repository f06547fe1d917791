"""
One-time code workflow: issue, verify and password reset completion.

Codes live in two ledgers (signup OTPs in ``verification_codes``, recovery
codes in ``reset_codes``). A record is Pending until its consumption flag is
set (Consumed) or ``expires_at`` passes (Expired); neither state goes back to
Pending. Consumption is a single conditional UPDATE whose affected-row count
decides success, so concurrent verifications of one code succeed at most once.
"""
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from errors import (
    AccountNotFound,
    EmailDeliveryFailed,
    InvalidOrExpiredCode,
    NoVerifiedRequest,
    PasswordMismatch,
    PasswordTooWeak,
    StorageError,
    ValidationError,
)
from models.profile import Profile
from models.reset_code import ResetCode
from models.verification_code import VerificationCode
from templates.code_email_configs import PASSWORD_RESET_EMAIL_CONFIG, SIGNUP_OTP_EMAIL_CONFIG
from templates.code_email_template import CodeEmailTemplate
from utils.logger_factory import new_logger
from utils.one_time_codes import code_matches, generate_code, hash_code
from utils.passwords import hash_password, is_strong_enough

log = new_logger("verification_service")

OTP_TTL_MINUTES = int(os.getenv("OTP_TTL_MINUTES", 5))
RESET_CODE_TTL_MINUTES = int(os.getenv("RESET_CODE_TTL_MINUTES", 15))


class CodePolicy:
    """Which ledger a flow writes to, how long its codes live and how it words failures."""

    def __init__(self, name, model, ttl_minutes, email_config, invalid_message, delete_on_reissue):
        self.name = name
        self.model = model
        self.ttl_minutes = ttl_minutes
        self.email_config = email_config
        self.invalid_message = invalid_message
        # Superseded reset rows are removed rather than flagged, since the
        # flag on that ledger means "verified" and would authorise a reset.
        self.delete_on_reissue = delete_on_reissue


SIGNUP_OTP = CodePolicy(
    "signup_otp", VerificationCode, OTP_TTL_MINUTES, SIGNUP_OTP_EMAIL_CONFIG,
    "Invalid or expired OTP", delete_on_reissue=False,
)
RESET_OTP = CodePolicy(
    "reset_otp", ResetCode, RESET_CODE_TTL_MINUTES, PASSWORD_RESET_EMAIL_CONFIG,
    "Invalid or expired OTP", delete_on_reissue=True,
)
RESET_CODE = CodePolicy(
    "reset_code", ResetCode, RESET_CODE_TTL_MINUTES, PASSWORD_RESET_EMAIL_CONFIG,
    "Invalid or expired reset code", delete_on_reissue=True,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_email(email: str) -> str:
    if email is None or not email.strip():
        raise ValidationError("Email is required")
    return email.strip()


class VerificationService:
    """Ledger operations bound to one database session."""

    def __init__(self, db: Session):
        self.db = db

    def issue_code(self, email: str, policy: CodePolicy, mailer) -> Dict[str, Any]:
        """
        Persist a fresh code for ``email`` and mail it.

        Outstanding pending codes for the same email are invalidated first.
        The record is committed before the email goes out, so a delivery
        failure leaves a valid but undelivered code behind.

        Returns:
            {"ttl_minutes": int, "expires_at": datetime}

        Raises:
            ValidationError: email is empty
            StorageError: the ledger write failed
            EmailDeliveryFailed: the transport raised after the commit
        """
        email = normalize_email(email)
        model = policy.model
        flag = model.consumed_flag
        now = utcnow()
        expires_at = now + timedelta(minutes=policy.ttl_minutes)
        code = generate_code()

        record = model(
            email=email,
            code_hash=hash_code(code),
            created_at=now,
            expires_at=expires_at,
            **{flag: False},
        )
        try:
            if policy.delete_on_reissue:
                superseded = self.db.query(model).filter(model.email == email).delete(
                    synchronize_session=False
                )
            else:
                superseded = self.db.query(model).filter(
                    model.email == email, model.consumed_column().is_(False)
                ).update({flag: True}, synchronize_session=False)
            self.db.add(record)
            self.db.commit()
            self.db.refresh(record)
        except SQLAlchemyError:
            self.db.rollback()
            log.exception(f"Failed to store {policy.name} for {email}")
            raise StorageError()
        log.info(f"Issued {policy.name} [{record.to_dict()}], superseded {superseded} earlier record(s)")

        subject, text, html = CodeEmailTemplate(policy.email_config).render(code, policy.ttl_minutes)
        try:
            mailer.send(email, subject, text, html)
        except Exception:
            log.exception(f"Failed to deliver {policy.name} to {email}; record {record.id} stays valid")
            raise EmailDeliveryFailed()
        return {"ttl_minutes": policy.ttl_minutes, "expires_at": expires_at}

    def issue_reset_code(self, email: str, policy: CodePolicy, mailer) -> Dict[str, Any]:
        """
        Issue a recovery code only when a profile owns ``email``.

        Unknown emails get the same result without any write or email, so the
        response body does not reveal which addresses are registered.

        Timing still differs: an unknown email returns immediately, while a
        known one waits for the mail transport. A known email whose delivery
        fails raises EmailDeliveryFailed (500) instead of returning the generic
        result. No artificial delay is added to hide either case.
        """
        email = normalize_email(email)
        try:
            exists = self.db.query(Profile.id).filter(Profile.email == email).first() is not None
        except SQLAlchemyError:
            self.db.rollback()
            log.exception(f"Failed to look up profile for {email}")
            raise StorageError()
        if not exists:
            log.info(f"No profile for {email}; {policy.name} not issued")
            return {"ttl_minutes": policy.ttl_minutes, "expires_at": None}
        return self.issue_code(email, policy, mailer)

    def verify_code(self, email: str, submitted_code: str, policy: CodePolicy):
        """
        Consume the most recent live code for ``email`` if it matches.

        Raises InvalidOrExpiredCode when there is no live record, when the
        code does not match and when a concurrent caller consumed it first.
        """
        email = normalize_email(email)
        model = policy.model
        flag = model.consumed_flag
        now = utcnow()
        try:
            record = (
                self.db.query(model)
                .filter(
                    model.email == email,
                    model.consumed_column().is_(False),
                    model.expires_at > now,
                )
                .order_by(model.created_at.desc(), model.id.desc())
                .first()
            )
            if record is None or not submitted_code or not code_matches(submitted_code, record.code_hash):
                log.info(f"{policy.name} verification failed for {email}")
                raise InvalidOrExpiredCode(policy.invalid_message)

            claimed = self.db.query(model).filter(
                model.id == record.id,
                model.consumed_column().is_(False),
                model.expires_at > now,
            ).update({flag: True}, synchronize_session=False)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            log.exception(f"Failed to verify {policy.name} for {email}")
            raise StorageError()

        if claimed != 1:
            log.info(f"{policy.name} record {record.id} was consumed concurrently")
            raise InvalidOrExpiredCode(policy.invalid_message)
        log.info(f"{policy.name} record {record.id} consumed for {email}")
        return record

    def complete_reset(self, email: str, new_password: str) -> None:
        """
        Replace the password of ``email`` after a verified recovery code.

        Raises:
            PasswordTooWeak: checked before any storage access
            NoVerifiedRequest: no verified, unexpired reset record
            AccountNotFound: no profile owns ``email``
        """
        if not is_strong_enough(new_password):
            raise PasswordTooWeak()
        email = normalize_email(email)
        now = utcnow()
        # bcrypt runs before any row is touched
        hashed = hash_password(new_password)
        try:
            record = (
                self.db.query(ResetCode)
                .filter(
                    ResetCode.email == email,
                    ResetCode.verified.is_(True),
                    ResetCode.expires_at > now,
                )
                .order_by(ResetCode.created_at.desc(), ResetCode.id.desc())
                .first()
            )
            if record is None:
                log.info(f"No verified reset request for {email}")
                raise NoVerifiedRequest()

            # Claim the verified row so two concurrent resets cannot both use it
            claimed = self.db.query(ResetCode).filter(ResetCode.id == record.id).delete(
                synchronize_session=False
            )
            if claimed != 1:
                self.db.rollback()
                raise NoVerifiedRequest()

            updated = self.db.query(Profile).filter(Profile.email == email).update(
                {"password": hashed}, synchronize_session=False
            )
            if updated == 0:
                self.db.rollback()
                log.info(f"Verified reset for {email} but no profile matches")
                raise AccountNotFound()

            remaining = self.db.query(ResetCode).filter(ResetCode.email == email).delete(
                synchronize_session=False
            )
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            log.exception(f"Failed to complete password reset for {email}")
            raise StorageError()
        log.info(f"Password reset for {email}; cleared {remaining + 1} reset record(s)")

    def reset_password_with_code(self, email: str, reset_code: str, new_password: str,
                                 confirm_password: str) -> None:
        """Verify a recovery code (if not already verified) and reset in one call."""
        if new_password != confirm_password:
            raise PasswordMismatch()
        if not is_strong_enough(new_password):
            raise PasswordTooWeak()
        email = normalize_email(email)
        now = utcnow()
        try:
            record = (
                self.db.query(ResetCode)
                .filter(ResetCode.email == email, ResetCode.expires_at > now)
                .order_by(ResetCode.created_at.desc(), ResetCode.id.desc())
                .first()
            )
            if record is None or not reset_code or not code_matches(reset_code, record.code_hash):
                log.info(f"reset_code check failed for {email}")
                raise InvalidOrExpiredCode(RESET_CODE.invalid_message)
            if not record.verified:
                claimed = self.db.query(ResetCode).filter(
                    ResetCode.id == record.id,
                    ResetCode.verified.is_(False),
                ).update({"verified": True}, synchronize_session=False)
                self.db.commit()
                if claimed != 1:
                    raise InvalidOrExpiredCode(RESET_CODE.invalid_message)
        except SQLAlchemyError:
            self.db.rollback()
            log.exception(f"Failed to check reset code for {email}")
            raise StorageError()
        self.complete_reset(email, new_password)

    def purge_expired(self) -> int:
        """Remove expired rows from both ledgers. Returns the number deleted."""
        now = utcnow()
        try:
            deleted = 0
            for model in (VerificationCode, ResetCode):
                deleted += self.db.query(model).filter(model.expires_at <= now).delete(
                    synchronize_session=False
                )
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            log.exception("Failed to purge expired codes")
            raise StorageError()
        if deleted > 0:
            log.info(f"Purged {deleted} expired code record(s)")
        return deleted
