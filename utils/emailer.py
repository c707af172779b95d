import logging
import smtplib
from concurrent.futures import ThreadPoolExecutor
from email.message import EmailMessage
from typing import Mapping, Optional

logger = logging.getLogger(__name__)


class Mailer:
    """SMTP transport. `send` reports success; callers must check it."""

    def __init__(
        self,
        host: Optional[str],
        port: int = 587,
        username: Optional[str] = None,
        password: Optional[str] = None,
        from_email: Optional[str] = None,
        use_tls: bool = True,
        timeout: int = 10,
        sender_name: str = "JobsDB",
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.from_email = from_email or username
        self.use_tls = use_tls
        self.timeout = timeout
        self.sender_name = sender_name
        self._executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="mailer")

    @classmethod
    def from_config(cls, config: Mapping) -> "Mailer":
        return cls(
            host=config.get("SMTP_HOST"),
            port=config.get("SMTP_PORT", 587),
            username=config.get("SMTP_USERNAME"),
            password=config.get("SMTP_PASSWORD"),
            from_email=config.get("SMTP_FROM_EMAIL"),
            use_tls=config.get("SMTP_USE_TLS", True),
            timeout=config.get("SMTP_TIMEOUT_SECONDS", 10),
            sender_name=config.get("APP_NAME", "JobsDB"),
        )

    def send(self, to_email: str, subject: str, html: str) -> bool:
        if not self.host or not self.from_email:
            logger.error("Email not configured; dropping message", extra={"subject": subject})
            return False

        msg = EmailMessage()
        msg["From"] = f"{self.sender_name} <{self.from_email}>"
        msg["To"] = to_email
        msg["Subject"] = subject
        msg.set_content("This message requires an HTML capable mail client.")
        msg.add_alternative(html, subtype="html")

        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                if self.use_tls:
                    server.starttls()
                if self.username and self.password:
                    server.login(self.username, self.password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError):
            logger.exception("Email sending failed", extra={"subject": subject})
            return False

        logger.info("Email sent", extra={"subject": subject})
        return True

    def send_detached(self, to_email: str, subject: str, html: str) -> None:
        """Fire and forget; the outcome is only logged."""
        future = self._executor.submit(self.send, to_email, subject, html)
        future.add_done_callback(_log_detached_result)


def _log_detached_result(future) -> None:
    exc = future.exception()
    if exc is not None:
        logger.error("Detached email task crashed", exc_info=exc)
    elif not future.result():
        logger.warning("Detached email was not delivered")
