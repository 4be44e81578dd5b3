import smtplib
import logging
from typing import Optional
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from pydantic import BaseModel

from collegenews.errors import SendError

logger = logging.getLogger(__name__)


class MailMessage(BaseModel):
    sender: str
    to: str
    subject: str
    text: str
    html: Optional[str] = None


class SmtpMailer:
    """Envia uma mensagem por conexão SMTP; qualquer falha vira SendError."""

    TIMEOUT = 30

    def __init__(
        self,
        host: str,
        port: int = 587,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: bool = True,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls

    @classmethod
    def from_settings(cls, settings) -> "SmtpMailer":
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_user,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
        )

    @staticmethod
    def build_mime(message: MailMessage) -> MIMEMultipart:
        mime = MIMEMultipart("alternative")
        mime["From"] = message.sender
        mime["To"] = message.to
        mime["Subject"] = message.subject
        mime.attach(MIMEText(message.text, "plain", "utf-8"))
        if message.html:
            mime.attach(MIMEText(message.html, "html", "utf-8"))
        return mime

    def send(self, message: MailMessage) -> None:
        mime = self.build_mime(message)
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.TIMEOUT) as server:
                if self.use_tls:
                    server.starttls()
                if self.username and self.password:
                    server.login(self.username, self.password)
                server.sendmail(message.sender, [message.to], mime.as_string())
        except (smtplib.SMTPException, OSError) as e:
            raise SendError(f"could not send to {message.to}: {e}") from e
        logger.debug("Sent '%s' to %s", message.subject, message.to)
