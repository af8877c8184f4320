"""
Mail Channel - Pooled SMTP transport for outbound messages.

smtplib is blocking, so every network step runs in a worker thread while
the event loop only hands connections in and out of the idle pool.
"""
import asyncio
import smtplib
import ssl
from dataclasses import dataclass, field
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formatdate, make_msgid, parseaddr
from typing import Optional, Protocol

from resumerefresh.core.errors import (
    FailureReason,
    TransmissionFailure,
    TransientTransmissionFailure,
    PermanentTransmissionFailure,
)
from resumerefresh.utils.logger import get_logger

logger = get_logger("mail")

# SMTP "service not available, closing transmission channel"
SMTP_SERVICE_UNAVAILABLE = 421


@dataclass
class OutboundMessage:
    to: str
    from_addr: str
    subject: str
    html_body: str
    text_body: str = ""
    amp_body: Optional[str] = None
    headers: dict[str, str] = field(default_factory=dict)
    reply_to: Optional[str] = None

    @property
    def envelope_from(self) -> str:
        return parseaddr(self.from_addr)[1] or self.from_addr

    @property
    def envelope_to(self) -> str:
        return parseaddr(self.to)[1] or self.to


class MailChannel(Protocol):
    async def open(self) -> None: ...

    async def verify(self) -> None: ...

    async def transmit(self, message: OutboundMessage) -> str: ...

    async def close(self) -> None: ...


def build_mime_message(message: OutboundMessage, message_id: str) -> MIMEMultipart:
    """
    multipart/alternative with parts ordered plain → AMP → HTML.
    Clients render the last part they understand, and AMP hosts require the
    AMP part to come before the HTML part.
    """
    msg = MIMEMultipart("alternative")

    msg["Subject"] = message.subject
    msg["From"] = message.from_addr
    msg["To"] = message.to
    msg["Date"] = formatdate(localtime=True)
    msg["Message-ID"] = message_id
    if message.reply_to:
        msg["Reply-To"] = message.reply_to

    for name, value in message.headers.items():
        msg[name] = value

    if message.text_body:
        msg.attach(MIMEText(message.text_body, "plain", "utf-8"))
    if message.amp_body:
        msg.attach(MIMEText(message.amp_body, "x-amp-html", "utf-8"))
    msg.attach(MIMEText(message.html_body, "html", "utf-8"))

    return msg


def classify_smtp_error(error: BaseException) -> TransmissionFailure:
    """Map an smtplib / socket error onto the transient vs permanent taxonomy."""
    if isinstance(error, TransmissionFailure):
        return error

    detail = str(error) or error.__class__.__name__

    if isinstance(error, smtplib.SMTPAuthenticationError):
        return PermanentTransmissionFailure(f"Authentication rejected: {detail}", FailureReason.AUTH)

    if isinstance(error, (smtplib.SMTPRecipientsRefused, smtplib.SMTPSenderRefused, smtplib.SMTPDataError)):
        return PermanentTransmissionFailure(f"Message rejected: {detail}", FailureReason.REJECTED)

    if isinstance(error, smtplib.SMTPServerDisconnected):
        return TransientTransmissionFailure(f"Server disconnected: {detail}")

    if isinstance(error, smtplib.SMTPResponseException):
        if error.smtp_code == SMTP_SERVICE_UNAVAILABLE or isinstance(error, smtplib.SMTPConnectError):
            return TransientTransmissionFailure(f"Server unavailable: {detail}")
        return PermanentTransmissionFailure(f"Message rejected: {detail}", FailureReason.REJECTED)

    if isinstance(error, TimeoutError):
        return TransientTransmissionFailure(f"Timed out: {detail}")

    if isinstance(error, (ConnectionResetError, ConnectionAbortedError, BrokenPipeError)):
        return TransientTransmissionFailure(f"Connection reset: {detail}")

    return PermanentTransmissionFailure(f"Send failed: {detail}", FailureReason.UNKNOWN)


class _TimeoutMixin:
    """Separate bounds for TCP connect, the 220 greeting, and later socket reads."""

    def __init__(self, host, port, *, connection_timeout, greeting_timeout, socket_timeout, **kwargs):
        self.connection_timeout = connection_timeout
        self.greeting_timeout = greeting_timeout
        self.socket_timeout = socket_timeout
        super().__init__(host, port, timeout=socket_timeout, **kwargs)
        if self.sock is not None:
            self.sock.settimeout(socket_timeout)

    def _get_socket(self, host, port, timeout):
        sock = super()._get_socket(host, port, self.connection_timeout)
        sock.settimeout(self.greeting_timeout)
        return sock


class _TimedSMTP(_TimeoutMixin, smtplib.SMTP):
    pass


class _TimedSMTPSSL(_TimeoutMixin, smtplib.SMTP_SSL):
    pass


class SMTPConnectionPool:
    """Bounded pool of reusable SMTP connections with an explicit lifecycle."""

    def __init__(
        self,
        host: str,
        port: int,
        username: str = "",
        password: str = "",
        *,
        secure: bool = False,
        require_tls: bool = True,
        verify_certificates: bool = True,
        pool_size: int = 5,
        connection_timeout: float = 15.0,
        greeting_timeout: float = 10.0,
        socket_timeout: float = 30.0,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.secure = secure
        self.require_tls = require_tls
        self.verify_certificates = verify_certificates
        self.pool_size = pool_size
        self.connection_timeout = connection_timeout
        self.greeting_timeout = greeting_timeout
        self.socket_timeout = socket_timeout

        self._semaphore = asyncio.Semaphore(pool_size)
        self._idle: list[smtplib.SMTP] = []
        self._verify_task: Optional[asyncio.Task] = None
        self._opened = False
        self._closed = False

    @classmethod
    def from_settings(cls, settings) -> "SMTPConnectionPool":
        settings.require_mail_credentials()
        mail = settings.mail
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_user,
            password=settings.smtp_password,
            secure=settings.smtp_secure,
            require_tls=mail.require_tls,
            verify_certificates=mail.verify_certificates,
            pool_size=mail.pool_size,
            connection_timeout=mail.connection_timeout,
            greeting_timeout=mail.greeting_timeout,
            socket_timeout=mail.socket_timeout,
        )

    @property
    def idle_connections(self) -> int:
        return len(self._idle)

    async def open(self) -> None:
        """Mark the pool usable and verify the server in the background."""
        if self._opened:
            return
        self._opened = True
        self._closed = False
        logger.info(
            f"📧 SMTP pool: {self.host}:{self.port} (secure={self.secure}, "
            f"user={self.username or '-'}, size={self.pool_size})"
        )
        self._verify_task = asyncio.create_task(self._background_verify())

    async def verify(self) -> None:
        """Open, greet and authenticate one throwaway connection. Raises TransmissionFailure."""
        try:
            await asyncio.to_thread(self._verify_sync)
        except Exception as e:
            raise classify_smtp_error(e) from e

    async def transmit(self, message: OutboundMessage) -> str:
        """Send one message on a pooled connection and return its Message-ID."""
        if self._closed:
            raise PermanentTransmissionFailure("Mail channel is closed", FailureReason.UNKNOWN)
        if not self._opened:
            await self.open()

        domain = message.envelope_from.rpartition("@")[2] or None
        message_id = make_msgid(domain=domain)
        mime = build_mime_message(message, message_id)

        async with self._semaphore:
            conn = self._idle.pop() if self._idle else None
            try:
                conn = await asyncio.to_thread(self._send_sync, conn, mime, message)
            except Exception as e:
                raise classify_smtp_error(e) from e
            await self._release(conn)

        return message_id

    async def close(self) -> None:
        self._closed = True
        self._opened = False
        if self._verify_task and not self._verify_task.done():
            self._verify_task.cancel()
        idle, self._idle = self._idle, []
        if idle:
            await asyncio.to_thread(self._quit_all, idle)
        logger.info("📧 SMTP pool closed")

    async def _background_verify(self) -> None:
        try:
            await self.verify()
            logger.info("   ✅ SMTP connection verified")
        except TransmissionFailure as e:
            logger.error(f"   ❌ SMTP verification failed ({e.reason.value}): {e}")

    async def _release(self, conn: smtplib.SMTP) -> None:
        if self._closed or len(self._idle) >= self.pool_size:
            await asyncio.to_thread(self._quit_all, [conn])
        else:
            self._idle.append(conn)

    def _ssl_context(self) -> ssl.SSLContext:
        context = ssl.create_default_context()
        if not self.verify_certificates:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        return context

    def _connect(self) -> smtplib.SMTP:
        timeouts = {
            "connection_timeout": self.connection_timeout,
            "greeting_timeout": self.greeting_timeout,
            "socket_timeout": self.socket_timeout,
        }
        if self.secure:
            conn = _TimedSMTPSSL(self.host, self.port, context=self._ssl_context(), **timeouts)
        else:
            conn = _TimedSMTP(self.host, self.port, **timeouts)

        try:
            conn.ehlo()
            if not self.secure:
                if conn.has_extn("starttls"):
                    conn.starttls(context=self._ssl_context())
                    conn.ehlo()
                elif self.require_tls:
                    raise PermanentTransmissionFailure(
                        f"{self.host} does not offer STARTTLS and TLS is required",
                        FailureReason.REJECTED,
                    )
            if self.username:
                conn.login(self.username, self.password)
        except Exception:
            self._discard(conn)
            raise
        return conn

    def _is_alive(self, conn: smtplib.SMTP) -> bool:
        try:
            code, _ = conn.noop()
            return code == 250
        except (smtplib.SMTPException, OSError):
            return False

    def _send_sync(self, conn: Optional[smtplib.SMTP], mime: MIMEMultipart, message: OutboundMessage) -> smtplib.SMTP:
        if conn is not None and not self._is_alive(conn):
            self._discard(conn)
            conn = None
        if conn is None:
            conn = self._connect()

        try:
            conn.send_message(mime, from_addr=message.envelope_from, to_addrs=[message.envelope_to])
        except Exception:
            self._discard(conn)
            raise
        return conn

    def _verify_sync(self) -> None:
        conn = self._connect()
        try:
            conn.noop()
        finally:
            self._quit_all([conn])

    @staticmethod
    def _discard(conn: smtplib.SMTP) -> None:
        try:
            conn.close()
        except OSError:
            pass

    @staticmethod
    def _quit_all(connections: list[smtplib.SMTP]) -> None:
        for conn in connections:
            try:
                conn.quit()
            except (smtplib.SMTPException, OSError):
                SMTPConnectionPool._discard(conn)
