from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.sql import func
from database import Base


# Fields a client may set directly through the create/update endpoints
EDITABLE_FIELDS = (
    'full_name',
    'email',
    'address',
    'department',
    'salary_range',
    'subject_to_teach',
    'whatsapp_number',
)


class Profile(Base):
    __tablename__ = 'profiles'
    id = Column(Integer, primary_key=True)
    full_name = Column(String(255))
    email = Column(String(256), unique=True, index=True, nullable=False)
    password = Column(String(128), nullable=False)  # bcrypt hash
    address = Column(String(255))
    department = Column(String(128), index=True)
    salary_range = Column(String(64))
    subject_to_teach = Column(String(128), index=True)
    photo = Column(String(255))  # stored upload filename
    whatsapp_number = Column(String(32))
    id_photo = Column(String(255))  # stored upload filename

    created_at = Column(DateTime, nullable=False, default=func.now(), server_default=func.now())
    updated_at = Column(DateTime, nullable=False, default=func.now(), server_default=func.now(), onupdate=func.now())

    def __init__(self, **kwargs):
        for field in kwargs:
            setattr(self, field, kwargs[field])

    @classmethod
    def from_dict(cls, data):
        return cls(**data)

    def to_dict(self):
        return {
            'id': self.id,
            'full_name': self.full_name,
            'email': self.email,
            'address': self.address,
            'department': self.department,
            'salary_range': self.salary_range,
            'subject_to_teach': self.subject_to_teach,
            'photo': self.photo,
            'whatsapp_number': self.whatsapp_number,
            'id_photo': self.id_photo,
        }
