from sqlalchemy import Column, Boolean, Index
from database import Base
from models.code_record import CodeRecordMixin


class ResetCode(CodeRecordMixin, Base):
    """Password recovery codes. ``verified`` marks a code the owner has proven."""
    __tablename__ = "reset_codes"
    consumed_flag = "verified"
    __table_args__ = (Index("idx_reset_codes_email_created_at", "email", "created_at"),)

    verified = Column(Boolean, default=False, nullable=False)
