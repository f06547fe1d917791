from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from database import get_db
from schemas.verification_code import ActionResponse, CodeSentResponse, EmailRequest, VerifyOtpRequest
from services.email_service import get_mailer
from services.verification_service import SIGNUP_OTP, VerificationService
from utils.logger_factory import new_logger


router = APIRouter()


@router.post("/send-otp", response_model=CodeSentResponse)
def send_otp(payload: EmailRequest, db: Session = Depends(get_db), mailer=Depends(get_mailer)):
    log = new_logger("send_otp")
    log.info(f"Sending signup OTP to {payload.email}")
    result = VerificationService(db).issue_code(payload.email, SIGNUP_OTP, mailer)
    return CodeSentResponse(
        message="OTP sent to your email",
        expires_in_minutes=result["ttl_minutes"],
    )


@router.post("/verify-otp", response_model=ActionResponse)
def verify_otp(payload: VerifyOtpRequest, db: Session = Depends(get_db)):
    log = new_logger("verify_otp")
    log.info(f"Verifying signup OTP for {payload.email}")
    VerificationService(db).verify_code(payload.email, payload.otp, SIGNUP_OTP)
    return ActionResponse(message="Email verified successfully")
