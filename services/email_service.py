import os
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from fastapi import Request

from utils.logger_factory import new_logger


class SmtpMailer:
    """
    Mail transport used to deliver one-time codes.

    Built once at application startup and kept on ``app.state.mailer``;
    routers receive it through ``get_mailer`` so tests can swap in a fake
    exposing the same ``send`` method.
    """

    def __init__(self, host: str, port: int, username: str | None, password: str | None,
                 from_email: str, timeout: int = 30):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.from_email = from_email
        self.timeout = timeout

    @classmethod
    def from_env(cls) -> "SmtpMailer":
        return cls(
            host=os.environ.get("EMAIL_SERVER_HOST", "smtp.gmail.com"),
            port=int(os.environ.get("EMAIL_SERVER_PORT", 587)),
            username=os.environ.get("EMAIL_SERVER_USER"),
            password=os.environ.get("EMAIL_SERVER_PASS"),
            from_email=os.environ.get("EMAIL_FROM", "noreply@tutorprofiles.app"),
        )

    def send(self, to_email: str, subject: str, text: str, html: str) -> None:
        """Send a multipart/alternative message. SMTP and socket errors propagate."""
        log = new_logger("smtp_send")
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self.from_email
        msg["To"] = to_email

        # Attach text first, then HTML (some clients pick the first alternative)
        msg.attach(MIMEText(text, "plain"))
        msg.attach(MIMEText(html, "html"))

        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            server.starttls()
            if self.username:
                server.login(self.username, self.password)
            server.sendmail(self.from_email, [to_email], msg.as_string())
        log.info(f"Sent '{subject}' to {to_email}")

    def close(self) -> None:
        # Connections are opened per message; nothing is held between sends
        new_logger("smtp_close").info(f"Mail transport released [{self.host}:{self.port}], no pooled connection held")


def get_mailer(request: Request):
    """Return the mail transport stored on app.state."""
    return request.app.state.mailer
