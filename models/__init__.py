from .profile import Profile
from .verification_code import VerificationCode
from .reset_code import ResetCode

__all__ = ['Profile', 'VerificationCode', 'ResetCode']
