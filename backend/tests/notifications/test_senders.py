import logging
from typing import Any

import pytest
from app.config import Settings
from app.notifications import senders
from app.notifications.messages import EmailMessage


class FakeSMTP:
    instances: list["FakeSMTP"] = []

    def __init__(self, host: str, port: int, timeout: float) -> None:
        self.host = host
        self.port = port
        self.calls: list[tuple[str, Any]] = []
        FakeSMTP.instances.append(self)

    def __enter__(self) -> "FakeSMTP":
        return self

    def __exit__(self, *exc: object) -> bool:
        return False

    def starttls(self) -> None:
        self.calls.append(("starttls", None))

    def login(self, user: str, password: str) -> None:
        self.calls.append(("login", (user, password)))

    def sendmail(self, from_addr: str, to_addrs: list[str], body: str) -> None:
        self.calls.append(("sendmail", (from_addr, to_addrs, body)))


def _message() -> EmailMessage:
    return EmailMessage(
        to="ada@example.com",
        subject="Booking confirmed",
        body="See you soon",
        from_name="Appointment Desk",
        reply_to="desk@example.com",
    )


def test_build_sender_falls_back_to_log_sender() -> None:
    assert isinstance(senders.build_sender(Settings()), senders.LogEmailSender)
    configured = Settings(smtp_host="smtp.example.com", smtp_from_email="noreply@example.com")
    assert isinstance(senders.build_sender(configured), senders.SmtpEmailSender)


@pytest.mark.asyncio
async def test_smtp_sender_uses_starttls_and_login(monkeypatch: pytest.MonkeyPatch) -> None:
    FakeSMTP.instances.clear()
    monkeypatch.setattr(senders.smtplib, "SMTP", FakeSMTP)
    settings = Settings(
        smtp_host="smtp.example.com",
        smtp_port=2525,
        smtp_user="mailer",
        smtp_password="secret",
        smtp_from_email="noreply@example.com",
    )

    await senders.SmtpEmailSender(settings).send(_message())

    [server] = FakeSMTP.instances
    assert (server.host, server.port) == ("smtp.example.com", 2525)
    names = [name for name, _ in server.calls]
    assert names == ["starttls", "login", "sendmail"]
    from_addr, to_addrs, body = server.calls[-1][1]
    assert from_addr == "noreply@example.com"
    assert to_addrs == ["ada@example.com"]
    assert "Subject: Booking confirmed" in body
    assert "Reply-To: desk@example.com" in body


@pytest.mark.asyncio
async def test_log_sender_only_logs(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.INFO, logger=senders.__name__):
        await senders.LogEmailSender().send(_message())
    assert "ada@example.com" in caplog.text
