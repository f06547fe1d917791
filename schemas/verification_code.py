from pydantic import BaseModel, Field, field_validator
from typing import Optional


def _required(value, label: str) -> str:
    # Accept numbers for codes sent as JSON integers
    if isinstance(value, int) and not isinstance(value, bool):
        value = str(value)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValueError(f"{label} is required")
    return value.strip() if isinstance(value, str) else value


class EmailRequest(BaseModel):
    email: str

    @field_validator("email", mode="before")
    @classmethod
    def email_required(cls, v):
        return _required(v, "Email")


class VerifyOtpRequest(EmailRequest):
    otp: str

    @field_validator("otp", mode="before")
    @classmethod
    def otp_required(cls, v):
        return _required(v, "OTP")


class UpdatePasswordRequest(EmailRequest):
    # Length is enforced by the reset service so the message stays uniform
    new_password: str = Field(..., alias="newPassword")

    class Config:
        validate_by_name = True


class VerifyResetCodeRequest(EmailRequest):
    reset_code: str

    @field_validator("reset_code", mode="before")
    @classmethod
    def reset_code_required(cls, v):
        return _required(v, "Reset code")


class ResetPasswordRequest(VerifyResetCodeRequest):
    new_password: str
    confirm_password: str


class ActionResponse(BaseModel):
    success: bool = True
    message: str


class CodeSentResponse(ActionResponse):
    expires_in_minutes: Optional[int] = None
