from sqlalchemy import Column, Boolean, Index
from database import Base
from models.code_record import CodeRecordMixin


class VerificationCode(CodeRecordMixin, Base):
    """Signup email OTPs."""
    __tablename__ = "verification_codes"
    consumed_flag = "used"
    __table_args__ = (Index("idx_verification_codes_email_created_at", "email", "created_at"),)

    used = Column(Boolean, default=False, nullable=False)
