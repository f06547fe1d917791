"""
Code Email Configurations
One entry per flow that mails a one-time code
"""

# Signup email verification
SIGNUP_OTP_EMAIL_CONFIG = {
    'subject': 'Your Tutor Profiles Verification Code',
    'heading': 'Your Verification Code',
    'instructions': 'Enter this code in the app to verify your email address.',
    'accent_color': '#3c82f6',
}

# Password recovery
PASSWORD_RESET_EMAIL_CONFIG = {
    'subject': 'Your Tutor Profiles Password Reset Code',
    'heading': 'Reset Your Password',
    'instructions': 'Enter this code in the app to choose a new password.',
    'accent_color': '#d9480f',
}
