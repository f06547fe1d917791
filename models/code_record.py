from sqlalchemy import Column, Integer, String, DateTime


class CodeRecordMixin:
    """
    Columns shared by every ledger of issued one-time codes.

    Subclasses add their own boolean consumption flag and name it in
    ``consumed_flag`` so the verification service can address it generically.
    """
    consumed_flag = None

    id = Column(Integer, primary_key=True)
    email = Column(String(256), index=True, nullable=False)
    code_hash = Column(String(64), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)

    @classmethod
    def consumed_column(cls):
        return getattr(cls, cls.consumed_flag)

    def to_dict(self):
        # code_hash is deliberately left out; it must never reach logs or clients
        return {
            'id': self.id,
            'email': self.email,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'expires_at': self.expires_at.isoformat() if self.expires_at else None,
            self.consumed_flag: getattr(self, self.consumed_flag),
        }
