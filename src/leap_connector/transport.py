"""
Secure transport to a single LEAP processor.

Wraps one TLS connection, frames outbound messages and converts socket
activity into the small event vocabulary in leap_connector.events.
"""

import asyncio
import logging
import os
import socket
import ssl
import tempfile
from contextlib import contextmanager
from enum import Enum
from typing import Any, Iterator, Optional

from cryptography import x509
from cryptography.hazmat.primitives import hashes

from .credentials import CredentialSet
from .errors import (
    IncompleteCredentialsError,
    LeapConnectionError,
    NotConnectedError,
    WriteError,
)
from .events import Data, Disconnect, Error, EventSource, Timeout, TransportEvent
from .framing import encode_message

logger = logging.getLogger(__name__)


class TrustPolicy(Enum):
    """How the peer certificate is verified."""
    # Verify the peer chain against the paired authority only. No hostname
    # check and no system trust store.
    PINNED_AUTHORITY = "pinned"
    # Accept any peer certificate. Needed by endpoints with self-issued certs.
    UNVERIFIED = "unverified"
    # Platform trust store with hostname checking.
    SYSTEM = "system"


class TransportState(Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSED = "closed"


def _current_task() -> Optional[asyncio.Task]:
    # disconnect() may be called after the event loop has stopped
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


@contextmanager
def _identity_files(credentials: CredentialSet) -> Iterator[tuple[str, str]]:
    """Write the client certificate and key to temp files.

    ssl.SSLContext.load_cert_chain() only accepts file paths, so the PEM
    content lives on disk for the duration of the load.
    """
    temp_files = []
    try:
        for data in (credentials.client_certificate, credentials.client_private_key):
            f = tempfile.NamedTemporaryFile(mode="wb", suffix=".pem", delete=False)
            temp_files.append(f.name)
            with f:
                f.write(data)
        yield temp_files[0], temp_files[1]
    finally:
        for name in temp_files:
            try:
                os.unlink(name)
            except OSError:
                pass


def build_ssl_context(
    credentials: CredentialSet,
    trust_policy: TrustPolicy = TrustPolicy.PINNED_AUTHORITY,
) -> ssl.SSLContext:
    """Create a client SSL context for a credential set.

    Args:
        credentials: A complete credential set
        trust_policy: How the peer certificate is verified

    Returns:
        Configured SSL context presenting the client identity

    Raises:
        ssl.SSLError: If the certificate or key cannot be loaded
    """
    if trust_policy is TrustPolicy.SYSTEM:
        context = ssl.create_default_context(ssl.Purpose.SERVER_AUTH)
    else:
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
        context.check_hostname = False
        if trust_policy is TrustPolicy.PINNED_AUTHORITY:
            context.verify_mode = ssl.CERT_REQUIRED
            context.load_verify_locations(cadata=credentials.authority_chain.decode("ascii"))
        else:
            context.verify_mode = ssl.CERT_NONE

    with _identity_files(credentials) as (cert_path, key_path):
        context.load_cert_chain(certfile=cert_path, keyfile=key_path)

    return context


class Transport:
    """One encrypted duplex connection to one processor.

    Events are delivered to handlers registered on ``events`` only while a
    session is active, in the order the socket produced them. A Timeout is
    always followed by exactly one Disconnect.
    """

    KEEPALIVE_INTERVAL = 10  # seconds between TCP keepalive probes
    IDLE_TIMEOUT = 30.0  # seconds without inbound data before the link is dead
    HANDSHAKE_TIMEOUT = 10.0
    READ_CHUNK = 65536

    def __init__(
        self,
        host: str,
        port: int,
        credentials: Optional[CredentialSet],
        trust_policy: TrustPolicy = TrustPolicy.PINNED_AUTHORITY,
    ):
        """Initialize the transport.

        Args:
            host: Processor address
            port: Processor port
            credentials: Credential set used for the client identity, or None
                when the processor has not been paired
            trust_policy: How the processor certificate is verified
        """
        self.host = host
        self.port = port
        self.credentials = credentials
        self.trust_policy = trust_policy
        self.events = EventSource()

        self._state = TransportState.IDLE
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._read_task: Optional[asyncio.Task] = None
        self._idle_timer: Optional[asyncio.TimerHandle] = None
        self._protocol: Optional[str] = None
        self._peer_fingerprint: Optional[str] = None

    @property
    def state(self) -> TransportState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._state is TransportState.CONNECTED and self._writer is not None

    @property
    def protocol(self) -> Optional[str]:
        """TLS version label negotiated by the last successful connect."""
        return self._protocol

    @property
    def peer_fingerprint(self) -> Optional[str]:
        """SHA256 fingerprint of the processor certificate, if one was sent."""
        return self._peer_fingerprint

    async def connect(self) -> str:
        """Open the secure session.

        Returns:
            Human readable label of the negotiated TLS version

        Raises:
            IncompleteCredentialsError: If the credential set is partial
            LeapConnectionError: If the socket or handshake fails
        """
        if self._state in (TransportState.CONNECTING, TransportState.CONNECTED):
            raise LeapConnectionError(f"Transport to {self.host}:{self.port} is already {self._state.value}")

        if self.credentials is None:
            raise IncompleteCredentialsError(f"No credentials for {self.host}:{self.port}, refusing to connect")
        if not self.credentials.is_complete():
            raise IncompleteCredentialsError("Credential set is incomplete, refusing to connect")

        try:
            context = build_ssl_context(self.credentials, self.trust_policy)
        except (ssl.SSLError, ValueError) as e:
            raise LeapConnectionError("Credential material could not be loaded") from e

        self._state = TransportState.CONNECTING
        logger.debug("Connecting to %s:%s (%s)", self.host, self.port, self.trust_policy.value)

        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port, ssl=context),
                timeout=self.HANDSHAKE_TIMEOUT,
            )
        except (OSError, asyncio.TimeoutError) as e:
            self._state = TransportState.IDLE
            logger.warning("Connection to %s:%s failed: %s", self.host, self.port, e)
            raise LeapConnectionError(f"Failed to connect to {self.host}:{self.port}") from e
        except BaseException:
            self._state = TransportState.IDLE
            raise

        ssl_object = writer.get_extra_info("ssl_object")
        self._protocol = (ssl_object.version() if ssl_object else None) or "Unknown"
        self._peer_fingerprint = self._fingerprint(ssl_object)

        self._reader = reader
        self._writer = writer
        self._state = TransportState.CONNECTED

        self._configure_keepalive(writer.get_extra_info("socket"))
        self._arm_idle_timer()
        self._read_task = asyncio.create_task(self._read_loop(reader))

        logger.info("Connected to %s:%s using %s", self.host, self.port, self._protocol)
        return self._protocol

    def disconnect(self) -> None:
        """Tear down the session. Never raises; a no-op without a session."""
        if self._writer is None:
            return

        logger.info("Disconnecting from %s:%s", self.host, self.port)
        self._release()

    async def write(self, message: Any) -> None:
        """Send one message as a newline terminated JSON record.

        Resolves once the transport has accepted the bytes.

        Raises:
            NotConnectedError: If there is no live session
            WriteError: If the transport rejects the write
        """
        writer = self._writer
        if writer is None or self._state is not TransportState.CONNECTED:
            raise NotConnectedError(f"No session to {self.host}:{self.port}")

        frame = encode_message(message)
        try:
            writer.write(frame)
            await writer.drain()
        except (OSError, RuntimeError) as e:
            raise WriteError(f"Write to {self.host}:{self.port} failed") from e

    async def __aenter__(self) -> "Transport":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.disconnect()

    def _configure_keepalive(self, sock: Any) -> None:
        """Enable aggressive TCP keepalive so dead peers are found quickly."""
        if sock is None:
            return
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)
            if hasattr(socket, "TCP_KEEPIDLE"):
                sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPIDLE, self.KEEPALIVE_INTERVAL)
            elif hasattr(socket, "TCP_KEEPALIVE"):
                sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPALIVE, self.KEEPALIVE_INTERVAL)
            if hasattr(socket, "TCP_KEEPINTVL"):
                sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPINTVL, self.KEEPALIVE_INTERVAL)
        except OSError as e:
            logger.debug("Could not configure keepalive: %s", e)

    @staticmethod
    def _fingerprint(ssl_object: Any) -> Optional[str]:
        if ssl_object is None:
            return None
        der = ssl_object.getpeercert(binary_form=True)
        if not der:
            return None
        certificate = x509.load_der_x509_certificate(der)
        return certificate.fingerprint(hashes.SHA256()).hex().upper()

    def _arm_idle_timer(self) -> None:
        if self._idle_timer is not None:
            self._idle_timer.cancel()
        loop = asyncio.get_running_loop()
        self._idle_timer = loop.call_later(self.IDLE_TIMEOUT, self._on_idle_timeout)

    def _on_idle_timeout(self) -> None:
        self._idle_timer = None
        if not self.connected:
            return
        logger.warning("No data from %s:%s for %ss", self.host, self.port, self.IDLE_TIMEOUT)
        # Release first so a Timeout handler cannot swallow the Disconnect.
        self._release()
        self.events.fire(Timeout())
        self.events.fire(Disconnect())

    async def _read_loop(self, reader: asyncio.StreamReader) -> None:
        try:
            while True:
                data = await reader.read(self.READ_CHUNK)
                if not data:
                    logger.info("Peer %s:%s closed the connection", self.host, self.port)
                    break
                self._arm_idle_timer()
                self.events.fire(Data(data))
                if not self.connected:
                    # a handler disconnected us
                    return
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("Transport error on %s:%s: %s", self.host, self.port, e)
            if self.connected:
                self.events.fire(Error(e))
        self._end_session(Disconnect())

    def _end_session(self, event: TransportEvent) -> None:
        """Release the session and deliver its final event."""
        if not self.connected:
            return
        self._release()
        self.events.fire(event)

    def _release(self) -> None:
        """Detach timers and the reader, then close the socket.

        Errors raised while closing are logged and dropped.
        """
        writer = self._writer
        self._writer = None
        self._reader = None
        self._state = TransportState.CLOSED

        if self._idle_timer is not None:
            self._idle_timer.cancel()
            self._idle_timer = None

        task = self._read_task
        self._read_task = None
        if task is not None and task is not _current_task():
            try:
                task.cancel()
            except RuntimeError as e:
                logger.debug("Could not cancel reader: %s", e)

        if writer is None:
            return

        try:
            writer.close()
        except Exception as e:
            logger.debug("Error closing connection gracefully: %s", e)

        try:
            writer.transport.abort()
        except Exception as e:
            logger.debug("Error aborting connection: %s", e)
