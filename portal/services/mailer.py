from __future__ import annotations

import smtplib
import ssl
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass
from email.message import EmailMessage

from portal.logging import get_logger, log_auth_event

logger = get_logger("mail")


@dataclass(frozen=True)
class OutboundMessage:
    address: str
    subject: str
    body: str


class DeliveryFailed(Exception):
    pass


def redact_address(address: str) -> str:
    if "@" not in address:
        return "redacted"
    local, domain = address.split("@", 1)
    return f"{local[:2]}***@{domain}"


class Mailer:
    def send(self, address: str, subject: str, body: str) -> None:
        raise NotImplementedError


class LogMailer(Mailer):
    """Development mailer: logs the message instead of sending it."""

    def __init__(self) -> None:
        self.outbox: list[OutboundMessage] = []

    def send(self, address: str, subject: str, body: str) -> None:
        self.outbox.append(OutboundMessage(address, subject, body))
        logger.info("Mail not configured; dropping message to=%s subject=%s", redact_address(address), subject)


class SmtpMailer(Mailer):
    def __init__(
        self,
        host: str,
        port: int,
        from_email: str,
        user: str | None = None,
        password: str | None = None,
        timeout: int = 20,
    ) -> None:
        self.host = host
        self.port = port
        self.from_email = from_email
        self.user = user
        self.password = password
        self.timeout = timeout

    def send(self, address: str, subject: str, body: str) -> None:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self.from_email
        msg["To"] = address
        msg.set_content(body)

        context = ssl.create_default_context()
        try:
            if self.port == 465:
                with smtplib.SMTP_SSL(self.host, self.port, context=context, timeout=self.timeout) as server:
                    self._login(server)
                    server.send_message(msg)
            else:
                with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                    server.starttls(context=context)
                    self._login(server)
                    server.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            raise DeliveryFailed(f"SMTP delivery via {self.host}:{self.port} failed") from exc
        logger.info("Mail sent to=%s subject=%s", redact_address(address), subject)

    def _login(self, server: smtplib.SMTP) -> None:
        if self.user and self.password:
            server.login(self.user, self.password)


class DeliveryQueue:
    """Hands messages to a mailer off the request path.

    Delivery is best effort: failures are logged and never reach the caller.
    """

    def __init__(self, mailer: Mailer, executor: Executor | None = None, max_workers: int = 2) -> None:
        self.mailer = mailer
        self.executor = executor or ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="portal-mail")

    def submit(self, message: OutboundMessage) -> Future | None:
        try:
            return self.executor.submit(self._deliver, message)
        except RuntimeError:
            logger.exception("Mail executor rejected message to=%s", redact_address(message.address))
            return None

    def shutdown(self, wait: bool = True) -> None:
        self.executor.shutdown(wait=wait)

    def _deliver(self, message: OutboundMessage) -> bool:
        try:
            self.mailer.send(message.address, message.subject, message.body)
        except Exception as exc:
            log_auth_event(
                "mail_delivery",
                "failed",
                reason="delivery_failed",
                metadata={"to": redact_address(message.address), "error": repr(exc)},
            )
            logger.warning("Could not deliver message to=%s", redact_address(message.address))
            return False
        return True


def build_mailer(settings) -> Mailer:
    if settings.smtp_host and settings.mail_from:
        return SmtpMailer(
            host=settings.smtp_host,
            port=settings.smtp_port,
            from_email=settings.mail_from,
            user=settings.smtp_user,
            password=settings.smtp_password,
        )
    return LogMailer()
