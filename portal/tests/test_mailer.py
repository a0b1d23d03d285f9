from __future__ import annotations

import smtplib
import unittest
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

from portal.services import DeliveryFailed, DeliveryQueue, LogMailer, Mailer, OutboundMessage, SmtpMailer, build_mailer
from portal.services.mailer import redact_address
from portal.tests.support import InlineExecutor


class BrokenMailer(Mailer):
    def __init__(self) -> None:
        self.attempts = 0

    def send(self, address: str, subject: str, body: str) -> None:
        self.attempts += 1
        raise DeliveryFailed("relay refused")


class DeliveryQueueTests(unittest.TestCase):
    def test_delivers_through_mailer(self) -> None:
        mailer = LogMailer()
        queue = DeliveryQueue(mailer, executor=InlineExecutor())

        future = queue.submit(OutboundMessage("a@example.edu", "Hi", "Body"))

        self.assertTrue(future.result())
        self.assertEqual(mailer.outbox, [OutboundMessage("a@example.edu", "Hi", "Body")])

    def test_failures_are_logged_not_raised(self) -> None:
        mailer = BrokenMailer()
        queue = DeliveryQueue(mailer, executor=InlineExecutor())

        with self.assertLogs("portal.mail", level="WARNING"):
            future = queue.submit(OutboundMessage("a@example.edu", "Hi", "Body"))

        self.assertFalse(future.result())
        self.assertEqual(mailer.attempts, 1)

    def test_background_executor(self) -> None:
        mailer = LogMailer()
        queue = DeliveryQueue(mailer, max_workers=1)
        try:
            queue.submit(OutboundMessage("b@example.edu", "Code", "123456")).result(timeout=5)
        finally:
            queue.shutdown()
        self.assertEqual(len(mailer.outbox), 1)
        self.assertIsNone(queue.submit(OutboundMessage("b@example.edu", "Code", "654321")))


class SmtpMailerTests(unittest.TestCase):
    def test_starttls_delivery(self) -> None:
        server = MagicMock()
        with patch("portal.services.mailer.smtplib.SMTP") as smtp:
            smtp.return_value.__enter__.return_value = server
            SmtpMailer("smtp.example.edu", 587, "portal@example.edu", "user", "pw").send("a@example.edu", "Hi", "Body")

        server.starttls.assert_called_once()
        server.login.assert_called_once_with("user", "pw")
        sent = server.send_message.call_args[0][0]
        self.assertEqual(sent["To"], "a@example.edu")
        self.assertEqual(sent["From"], "portal@example.edu")

    def test_transport_errors_become_delivery_failed(self) -> None:
        with patch("portal.services.mailer.smtplib.SMTP", side_effect=OSError("connection refused")):
            with self.assertRaises(DeliveryFailed):
                SmtpMailer("smtp.example.edu", 587, "portal@example.edu").send("a@example.edu", "Hi", "Body")

        with patch("portal.services.mailer.smtplib.SMTP_SSL", side_effect=smtplib.SMTPConnectError(421, "busy")):
            with self.assertRaises(DeliveryFailed):
                SmtpMailer("smtp.example.edu", 465, "portal@example.edu").send("a@example.edu", "Hi", "Body")


class BuildMailerTests(unittest.TestCase):
    def settings(self, **overrides) -> SimpleNamespace:
        values = {
            "smtp_host": None,
            "smtp_port": 587,
            "smtp_user": None,
            "smtp_password": None,
            "mail_from": None,
        }
        values.update(overrides)
        return SimpleNamespace(**values)

    def test_log_mailer_without_smtp(self) -> None:
        self.assertIsInstance(build_mailer(self.settings()), LogMailer)

    def test_smtp_mailer_when_configured(self) -> None:
        mailer = build_mailer(self.settings(smtp_host="smtp.example.edu", mail_from="portal@example.edu"))
        self.assertIsInstance(mailer, SmtpMailer)
        self.assertEqual(mailer.port, 587)

    def test_redact_address(self) -> None:
        self.assertEqual(redact_address("student@example.edu"), "st***@example.edu")
        self.assertEqual(redact_address("nobody"), "redacted")


if __name__ == "__main__":
    unittest.main()
