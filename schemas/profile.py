from pydantic import BaseModel, field_validator
from typing import Optional

from models.profile import Profile


class ProfileDTO(BaseModel):
    id: Optional[int] = None
    full_name: Optional[str] = None
    email: str
    address: Optional[str] = None
    department: Optional[str] = None
    salary_range: Optional[str] = None
    subject_to_teach: Optional[str] = None
    photo: Optional[str] = None
    whatsapp_number: Optional[str] = None
    id_photo: Optional[str] = None

    class Config:
        from_attributes = True

    @classmethod
    def from_model(cls, profile: Profile):
        return cls.model_validate(profile)


class LoginRequest(BaseModel):
    email: str
    password: str

    @field_validator("email", "password", mode="before")
    @classmethod
    def not_blank(cls, v, info):
        if v is None or (isinstance(v, str) and not v.strip()):
            raise ValueError(f"{info.field_name.capitalize()} is required")
        return v


class ProfileResponse(BaseModel):
    success: bool = True
    message: str
    user: ProfileDTO
