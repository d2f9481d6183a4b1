"""
Delivery Channel
Pooled aiosmtplib client for the outbound mail relay
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional

import aiosmtplib

from app.errors import ConfigurationError, DeliveryTimeout, RelayError
from app.services.composer import NotificationMessage

logger = logging.getLogger(__name__)

SMTP_ERRORS = (aiosmtplib.SMTPException, OSError)


@dataclass
class _PooledConnection:
    smtp: aiosmtplib.SMTP
    messages_sent: int = 0
    last_used: float = 0.0


class DeliveryChannel:
    """
    Connection-limited SMTP client.

    At most ``max_connections`` connections are open at once; senders beyond
    that wait for a free slot. A connection is recycled after
    ``max_messages`` messages (None means never). Failed sends are not retried.
    """

    def __init__(
        self,
        hostname: str,
        port: int,
        username: str = "",
        password: str = "",
        *,
        use_tls: bool = True,
        start_tls: Optional[bool] = None,
        validate_certs: bool = True,
        max_connections: int = 1,
        max_messages: Optional[int] = None,
        send_timeout: float = 30.0,
        connect_timeout: float = 10.0,
        idle_check_seconds: float = 30.0,
        smtp_factory: Optional[Callable[..., aiosmtplib.SMTP]] = None,
    ):
        if max_connections < 1:
            raise ValueError("max_connections must be at least 1")
        self.hostname = hostname
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.start_tls = start_tls
        self.validate_certs = validate_certs
        self.max_connections = max_connections
        self.max_messages = max_messages
        self.send_timeout = send_timeout
        self.connect_timeout = connect_timeout
        self.idle_check_seconds = idle_check_seconds
        self._smtp_factory = smtp_factory or aiosmtplib.SMTP
        self._slots = asyncio.Semaphore(max_connections)
        self._idle: list[_PooledConnection] = []
        self._closed = False

    @classmethod
    def from_settings(cls, settings, **kwargs) -> "DeliveryChannel":
        return cls(
            hostname=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.email_user,
            password=settings.email_password,
            use_tls=settings.smtp_use_tls,
            # Certificate checks are relaxed outside production
            validate_certs=settings.is_production,
            max_connections=settings.relay_max_connections,
            max_messages=settings.relay_max_messages,
            send_timeout=settings.email_send_timeout,
            **kwargs,
        )

    @property
    def idle_connections(self) -> int:
        return len(self._idle)

    def _new_client(self) -> aiosmtplib.SMTP:
        return self._smtp_factory(
            hostname=self.hostname,
            port=self.port,
            use_tls=self.use_tls,
            start_tls=self.start_tls,
            validate_certs=self.validate_certs,
            timeout=self.connect_timeout,
        )

    async def _open(self) -> aiosmtplib.SMTP:
        """Connect and authenticate a new client"""
        smtp = self._new_client()
        try:
            await smtp.connect()
            if self.username and self.password:
                await smtp.login(self.username, self.password)
        except BaseException:
            smtp.close()
            raise
        return smtp

    async def _is_usable(self, conn: _PooledConnection) -> bool:
        if not conn.smtp.is_connected:
            conn.smtp.close()
            return False
        loop = asyncio.get_running_loop()
        if loop.time() - conn.last_used < self.idle_check_seconds:
            return True
        try:
            await conn.smtp.noop()
        except SMTP_ERRORS:
            conn.smtp.close()
            return False
        except BaseException:
            # Cancelled mid-check: the connection is off the idle list already
            conn.smtp.close()
            raise
        return True

    async def _acquire(self) -> _PooledConnection:
        await self._slots.acquire()
        try:
            while self._idle:
                conn = self._idle.pop()
                if await self._is_usable(conn):
                    return conn
            return _PooledConnection(smtp=await self._open())
        except BaseException:
            self._slots.release()
            raise

    def _release(self, conn: _PooledConnection, *, discard: bool = False) -> None:
        try:
            exhausted = self.max_messages is not None and conn.messages_sent >= self.max_messages
            if discard or exhausted or self._closed:
                conn.smtp.close()
            else:
                conn.last_used = asyncio.get_running_loop().time()
                self._idle.append(conn)
        finally:
            self._slots.release()

    async def _deliver(self, email) -> None:
        try:
            conn = await self._acquire()
        except SMTP_ERRORS as exc:
            raise RelayError(f"Relay connection failed: {exc}") from exc

        # Anything short of an accepted message, cancellation included,
        # leaves the SMTP session in an unknown state
        discard = True
        try:
            await conn.smtp.send_message(email)
            conn.messages_sent += 1
            discard = False
        except SMTP_ERRORS as exc:
            raise RelayError(f"Relay rejected message: {exc}") from exc
        finally:
            self._release(conn, discard=discard)

    async def send(self, message: NotificationMessage, timeout: Optional[float] = None) -> str:
        """
        Deliver one message to the relay.

        Args:
            message: Composed notification
            timeout: Seconds to wait before giving up; defaults to send_timeout

        Returns:
            The Message-ID of the accepted message

        Raises:
            DeliveryTimeout: the deadline passed; the in-flight send is cancelled
            RelayError: the relay refused the connection, credentials or message
        """
        if self._closed:
            raise RelayError("Delivery channel is closed")

        deadline = self.send_timeout if timeout is None else timeout
        email = message.to_email_message()
        message_id = email["Message-ID"]

        try:
            await asyncio.wait_for(self._deliver(email), timeout=deadline)
        except asyncio.TimeoutError:
            logger.warning(
                "relay.send_timeout", extra={"message_id": message_id, "timeout": deadline}
            )
            raise DeliveryTimeout("Email sending timeout")

        logger.info("relay.sent", extra={"message_id": message_id, "subject": message.subject})
        return message_id

    async def verify(self) -> None:
        """
        Check that the relay is reachable and accepts our credentials.

        Uses a dedicated connection so that pooled sessions are untouched.

        Raises:
            ConfigurationError: on any connection, TLS or authentication failure
        """
        try:
            smtp = await asyncio.wait_for(self._open(), timeout=self.connect_timeout)
            try:
                await smtp.quit()
            finally:
                smtp.close()
        except (asyncio.TimeoutError, *SMTP_ERRORS) as exc:
            raise ConfigurationError(str(exc) or exc.__class__.__name__) from exc

    async def close(self) -> None:
        """Close idle pooled connections; in-flight ones close when released"""
        self._closed = True
        idle, self._idle = self._idle, []
        for conn in idle:
            try:
                await conn.smtp.quit()
            except SMTP_ERRORS as exc:
                logger.debug("relay.quit_failed", extra={"error": str(exc)})
            finally:
                conn.smtp.close()
