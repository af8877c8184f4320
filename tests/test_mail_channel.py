"""
Tests for the SMTP mail channel: error classification, MIME layout and pooling.

The pool is exercised with a fake SMTP connection patched in place of
_connect, so nothing touches the network.
"""
import asyncio
import smtplib
import socket
import threading
import time

import pytest

from resumerefresh.core.errors import ConfigurationError, FailureReason, TransmissionFailure
from resumerefresh.email.mail_channel import (
    OutboundMessage,
    SMTPConnectionPool,
    build_mime_message,
    classify_smtp_error,
)


def _message(**overrides) -> OutboundMessage:
    values = dict(
        to="Jane Doe <jane.doe@gmail.com>",
        from_addr="Hirefy - Resume Update <hr@hirefy.com>",
        subject="Update Your Resume Information",
        html_body="<p>html</p>",
        text_body="plain",
        amp_body="<html ⚡4email></html>",
        headers={"X-Email-Type": "Resume-Refreshment-Request"},
    )
    values.update(overrides)
    return OutboundMessage(**values)


# ============================================================
# Error classification
# ============================================================


class TestClassifySmtpError:
    @pytest.mark.parametrize("error", [
        socket.timeout("timed out"),
        TimeoutError(),
        ConnectionResetError(),
        BrokenPipeError(),
        smtplib.SMTPServerDisconnected("Connection unexpectedly closed"),
        smtplib.SMTPConnectError(421, b"try later"),
        smtplib.SMTPResponseException(421, b"Service not available"),
    ])
    def test_transient(self, error):
        failure = classify_smtp_error(error)
        assert failure.transient
        assert failure.reason == FailureReason.TIMEOUT

    def test_auth(self):
        failure = classify_smtp_error(smtplib.SMTPAuthenticationError(535, b"bad credentials"))
        assert not failure.transient
        assert failure.reason == FailureReason.AUTH

    @pytest.mark.parametrize("error", [
        smtplib.SMTPRecipientsRefused({"x@y.com": (550, b"no such user")}),
        smtplib.SMTPSenderRefused(553, b"sender rejected", "hr@hirefy.com"),
        smtplib.SMTPDataError(554, b"spam"),
        smtplib.SMTPResponseException(550, b"nope"),
    ])
    def test_rejected(self, error):
        failure = classify_smtp_error(error)
        assert not failure.transient
        assert failure.reason == FailureReason.REJECTED

    @pytest.mark.parametrize("error", [
        socket.gaierror("Name or service not known"),
        ConnectionRefusedError(),
        ValueError("odd"),
    ])
    def test_unknown(self, error):
        failure = classify_smtp_error(error)
        assert not failure.transient
        assert failure.reason == FailureReason.UNKNOWN

    def test_passthrough(self):
        original = TransmissionFailure("already classified", FailureReason.AUTH)
        assert classify_smtp_error(original) is original


# ============================================================
# MIME layout
# ============================================================


class TestBuildMimeMessage:
    def test_part_order_plain_amp_html(self):
        mime = build_mime_message(_message(), "<id@hirefy.com>")
        types = [part.get_content_type() for part in mime.get_payload()]

        assert mime.get_content_type() == "multipart/alternative"
        assert types == ["text/plain", "text/x-amp-html", "text/html"]

    def test_static_only_has_no_amp_part(self):
        mime = build_mime_message(_message(amp_body=None), "<id@hirefy.com>")
        types = [part.get_content_type() for part in mime.get_payload()]

        assert types == ["text/plain", "text/html"]

    def test_headers(self):
        mime = build_mime_message(_message(reply_to="hr@hirefy.com"), "<id@hirefy.com>")

        assert mime["Message-ID"] == "<id@hirefy.com>"
        assert mime["X-Email-Type"] == "Resume-Refreshment-Request"
        assert mime["Reply-To"] == "hr@hirefy.com"
        assert mime["To"] == "Jane Doe <jane.doe@gmail.com>"


# ============================================================
# Pool
# ============================================================


class FakeSMTP:
    """Stands in for a connected, authenticated smtplib.SMTP."""

    active = 0
    peak = 0
    lock = threading.Lock()

    def __init__(self, send_error=None, alive=True, delay=0.0):
        self.send_error = send_error
        self.alive = alive
        self.delay = delay
        self.sent = []
        self.closed = False
        self.quit_called = False

    def noop(self):
        if not self.alive:
            raise smtplib.SMTPServerDisconnected("gone")
        return 250, b"OK"

    def send_message(self, msg, from_addr=None, to_addrs=None):
        with FakeSMTP.lock:
            FakeSMTP.active += 1
            FakeSMTP.peak = max(FakeSMTP.peak, FakeSMTP.active)
        try:
            time.sleep(self.delay)
            if self.send_error:
                raise self.send_error
            self.sent.append((from_addr, to_addrs, msg))
            return {}
        finally:
            with FakeSMTP.lock:
                FakeSMTP.active -= 1

    def quit(self):
        self.quit_called = True

    def close(self):
        self.closed = True


@pytest.fixture
def pool():
    return SMTPConnectionPool("smtp.test.local", 587, "hr@hirefy.com", "secret", pool_size=2)


@pytest.fixture
def connections(monkeypatch, pool):
    """Patch _connect to hand out FakeSMTP instances; returns the list created."""
    created = []
    FakeSMTP.active = 0
    FakeSMTP.peak = 0

    def connect():
        conn = FakeSMTP(delay=0.02)
        created.append(conn)
        return conn

    monkeypatch.setattr(pool, "_connect", connect)
    monkeypatch.setattr(pool, "_verify_sync", lambda: None)
    return created


class TestConnectionPool:
    def test_from_settings_requires_credentials(self, settings):
        settings.smtp_password = ""
        with pytest.raises(ConfigurationError):
            SMTPConnectionPool.from_settings(settings)

    def test_from_settings(self, settings):
        pool = SMTPConnectionPool.from_settings(settings)
        assert pool.pool_size == settings.mail.pool_size
        assert pool.greeting_timeout == settings.mail.greeting_timeout
        assert pool.username == "hr@hirefy.com"

    @pytest.mark.asyncio
    async def test_transmit_returns_message_id(self, pool, connections):
        message_id = await pool.transmit(_message())

        assert message_id.startswith("<") and message_id.endswith("@hirefy.com>")
        from_addr, to_addrs, mime = connections[0].sent[0]
        assert from_addr == "hr@hirefy.com"
        assert to_addrs == ["jane.doe@gmail.com"]
        assert mime["Message-ID"] == message_id
        await pool.close()

    @pytest.mark.asyncio
    async def test_idle_connection_is_reused(self, pool, connections):
        await pool.transmit(_message())
        await pool.transmit(_message())

        assert len(connections) == 1
        assert len(connections[0].sent) == 2
        await pool.close()

    @pytest.mark.asyncio
    async def test_dead_idle_connection_is_replaced(self, pool, connections):
        await pool.transmit(_message())
        connections[0].alive = False

        await pool.transmit(_message())

        assert len(connections) == 2
        assert connections[0].closed
        await pool.close()

    @pytest.mark.asyncio
    async def test_concurrency_bounded_by_pool_size(self, pool, connections):
        await asyncio.gather(*(pool.transmit(_message()) for _ in range(6)))

        assert FakeSMTP.peak <= 2
        assert len(connections) <= 2
        assert pool.idle_connections <= 2
        await pool.close()

    @pytest.mark.asyncio
    async def test_failed_send_discards_connection_and_classifies(self, monkeypatch, pool):
        broken = FakeSMTP(send_error=smtplib.SMTPServerDisconnected("closed"))
        monkeypatch.setattr(pool, "_connect", lambda: broken)
        monkeypatch.setattr(pool, "_verify_sync", lambda: None)

        with pytest.raises(TransmissionFailure) as exc_info:
            await pool.transmit(_message())

        assert exc_info.value.transient
        assert broken.closed
        assert pool.idle_connections == 0
        await pool.close()

    @pytest.mark.asyncio
    async def test_close_quits_idle_connections(self, pool, connections):
        await pool.transmit(_message())
        await pool.close()

        assert connections[0].quit_called
        assert pool.idle_connections == 0

    @pytest.mark.asyncio
    async def test_transmit_after_close_fails(self, pool, connections):
        await pool.open()
        await pool.close()

        with pytest.raises(TransmissionFailure):
            await pool.transmit(_message())

    @pytest.mark.asyncio
    async def test_background_verify_failure_is_logged_not_raised(self, monkeypatch, pool):
        def fail():
            raise smtplib.SMTPAuthenticationError(535, b"bad credentials")

        monkeypatch.setattr(pool, "_verify_sync", fail)

        await pool.open()
        await asyncio.sleep(0.05)
        await pool.close()

    @pytest.mark.asyncio
    async def test_verify_raises_classified_failure(self, monkeypatch, pool):
        def fail():
            raise smtplib.SMTPAuthenticationError(535, b"bad credentials")

        monkeypatch.setattr(pool, "_verify_sync", fail)

        with pytest.raises(TransmissionFailure) as exc_info:
            await pool.verify()
        assert exc_info.value.reason == FailureReason.AUTH
