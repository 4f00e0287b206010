"""Tests for email delivery sinks."""
import pytest

from config.settings import settings
from src.services import mailer
from src.services.mailer import LogMailer, SmtpMailer, build_delivery_sink


class FakeSMTP:
    instances: list["FakeSMTP"] = []

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.tls = False
        self.login_args = None
        self.messages = []
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        self.tls = True

    def login(self, username, password):
        self.login_args = (username, password)

    def send_message(self, msg):
        self.messages.append(msg)


@pytest.fixture
def fake_smtp(monkeypatch):
    FakeSMTP.instances = []
    monkeypatch.setattr(mailer.smtplib, "SMTP", FakeSMTP)
    return FakeSMTP


class TestSmtpMailer:
    @pytest.mark.asyncio
    async def test_sends_plain_text_message(self, fake_smtp):
        sink = SmtpMailer("smtp.example.com", 587, "bot", "secret", "wishlist@example.com", timeout=5)
        assert await sink.send("alice@example.com", "Back in Stock: Lamp", "Lamp is back") is True

        [conn] = fake_smtp.instances
        assert (conn.host, conn.port, conn.timeout) == ("smtp.example.com", 587, 5)
        assert conn.tls is True
        assert conn.login_args == ("bot", "secret")
        [msg] = conn.messages
        assert msg["To"] == "alice@example.com"
        assert msg["From"] == "wishlist@example.com"
        assert msg["Subject"] == "Back in Stock: Lamp"
        assert "Lamp is back" in msg.get_content()

    @pytest.mark.asyncio
    async def test_no_tls_no_login(self, fake_smtp):
        sink = SmtpMailer("localhost", 25, "", "", "wishlist@example.com", use_tls=False)
        await sink.send("alice@example.com", "Hi", "Body")
        [conn] = fake_smtp.instances
        assert conn.tls is False
        assert conn.login_args is None

    @pytest.mark.asyncio
    async def test_errors_propagate(self, monkeypatch):
        def refuse(*args, **kwargs):
            raise ConnectionRefusedError("no server")

        monkeypatch.setattr(mailer.smtplib, "SMTP", refuse)
        sink = SmtpMailer("localhost", 25, "", "", "wishlist@example.com")
        with pytest.raises(ConnectionRefusedError):
            await sink.send("alice@example.com", "Hi", "Body")


class TestLogMailer:
    @pytest.mark.asyncio
    async def test_keeps_outbox(self):
        sink = LogMailer()
        assert await sink.send("alice@example.com", "Subject", "Body") is True
        assert sink.outbox == [("alice@example.com", "Subject", "Body")]


class TestBuildDeliverySink:
    def test_log_mailer_without_smtp(self, monkeypatch):
        monkeypatch.setattr(settings, "SMTP_HOST", "")
        assert isinstance(build_delivery_sink(), LogMailer)

    def test_smtp_when_configured(self, monkeypatch):
        monkeypatch.setattr(settings, "SMTP_HOST", "smtp.example.com")
        monkeypatch.setattr(settings, "SMTP_PORT", 2525)
        sink = build_delivery_sink()
        assert isinstance(sink, SmtpMailer)
        assert sink.host == "smtp.example.com"
        assert sink.port == 2525
