from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from database import get_db
from schemas.verification_code import (
    ActionResponse,
    CodeSentResponse,
    EmailRequest,
    ResetPasswordRequest,
    UpdatePasswordRequest,
    VerifyOtpRequest,
    VerifyResetCodeRequest,
)
from services.email_service import get_mailer
from services.verification_service import RESET_CODE, RESET_OTP, VerificationService
from utils.logger_factory import new_logger


router = APIRouter()

# Same body whether or not the email is registered
GENERIC_SENT_MESSAGE = "If an account exists for this email, a reset code has been sent."


# --- OTP flow: send, verify, then update ---

@router.post("/reset/send-otp", response_model=CodeSentResponse)
def reset_send_otp(payload: EmailRequest, db: Session = Depends(get_db), mailer=Depends(get_mailer)):
    log = new_logger("reset_send_otp")
    log.info(f"Password reset OTP requested for {payload.email}")
    result = VerificationService(db).issue_reset_code(payload.email, RESET_OTP, mailer)
    return CodeSentResponse(message=GENERIC_SENT_MESSAGE, expires_in_minutes=result["ttl_minutes"])


@router.post("/reset/verify-otp", response_model=ActionResponse)
def reset_verify_otp(payload: VerifyOtpRequest, db: Session = Depends(get_db)):
    log = new_logger("reset_verify_otp")
    log.info(f"Verifying password reset OTP for {payload.email}")
    VerificationService(db).verify_code(payload.email, payload.otp, RESET_OTP)
    return ActionResponse(message="OTP verified. You can now set a new password.")


@router.post("/reset/update-password", response_model=ActionResponse)
def reset_update_password(payload: UpdatePasswordRequest, db: Session = Depends(get_db)):
    log = new_logger("reset_update_password")
    log.info(f"Updating password for {payload.email}")
    VerificationService(db).complete_reset(payload.email, payload.new_password)
    return ActionResponse(message="Password updated successfully")


# --- Reset code flow: forgot, verify, reset ---

@router.post("/forgot-password", response_model=CodeSentResponse)
def forgot_password(payload: EmailRequest, db: Session = Depends(get_db), mailer=Depends(get_mailer)):
    log = new_logger("forgot_password")
    log.info(f"Reset code requested for {payload.email}")
    result = VerificationService(db).issue_reset_code(payload.email, RESET_CODE, mailer)
    return CodeSentResponse(message=GENERIC_SENT_MESSAGE, expires_in_minutes=result["ttl_minutes"])


@router.post("/verify-reset-code", response_model=ActionResponse)
def verify_reset_code(payload: VerifyResetCodeRequest, db: Session = Depends(get_db)):
    log = new_logger("verify_reset_code")
    log.info(f"Verifying reset code for {payload.email}")
    VerificationService(db).verify_code(payload.email, payload.reset_code, RESET_CODE)
    return ActionResponse(message="Reset code verified")


@router.post("/reset-password", response_model=ActionResponse)
def reset_password(payload: ResetPasswordRequest, db: Session = Depends(get_db)):
    log = new_logger("reset_password")
    log.info(f"Resetting password with code for {payload.email}")
    VerificationService(db).reset_password_with_code(
        payload.email,
        payload.reset_code,
        payload.new_password,
        payload.confirm_password,
    )
    return ActionResponse(message="Password has been reset successfully")
