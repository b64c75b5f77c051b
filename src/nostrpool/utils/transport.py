"""WebSocket transport for relay sessions.

Defines the two small protocols a
[RelaySession][nostrpool.core.session.RelaySession] depends on,
[Connector][nostrpool.utils.transport.Connector] and
[Connection][nostrpool.utils.transport.Connection], and the default aiohttp
implementation [WebSocketConnector][nostrpool.utils.transport.WebSocketConnector].
Tests substitute an in-memory connector.

Note:
    Clearnet and local relays are first tried with full TLS verification.
    When that fails with a certificate error and ``allow_insecure=True``,
    the connection is retried with an unverified SSL context. Overlay
    networks (Tor, I2P, Lokinet) always go through the configured SOCKS5
    proxy and never fall back, as the overlay itself provides encryption.

Examples:
    ```python
    connector = WebSocketConnector(TransportConfig(proxy_url="socks5://127.0.0.1:9050"))
    connection = await connector.connect(RelayUrl("wss://relay.damus.io"), timeout=10.0)
    await connection.send('["REQ","s",{"limit":1}]')
    frame = await connection.recv()
    await connection.close()
    ```
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import ssl
from typing import Final, Protocol

import aiohttp
from aiohttp_socks import ProxyConnector
from pydantic import BaseModel, Field

from nostrpool.exceptions import RelaySSLError, RelayTimeoutError, TransportError
from nostrpool.models.relay import RelayUrl  # noqa: TC001


DEFAULT_TIMEOUT: Final[float] = 10.0

logger = logging.getLogger("utils.transport")


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------


class Connection(Protocol):
    """An open, full-duplex text frame channel to one relay."""

    async def send(self, text: str) -> None:
        """Send one text frame. Raises TransportError when the channel is gone."""

    async def recv(self) -> str | None:
        """Return the next text frame, or None once the channel has closed."""

    async def close(self) -> None:
        """Release the channel. Idempotent and never raises."""


class Connector(Protocol):
    """Factory for [Connection][nostrpool.utils.transport.Connection] objects."""

    async def connect(self, url: RelayUrl, timeout: float) -> Connection:  # noqa: ASYNC109
        """Open a connection or raise TransportError."""


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class TransportConfig(BaseModel):
    """WebSocket transport settings.

    Attributes:
        allow_insecure: Retry clearnet relays without certificate
            verification after an SSL failure.
        proxy_url: SOCKS5 proxy for overlay relays (``socks5://host:port``).
        heartbeat: Seconds between WebSocket pings; a missing pong closes
            the connection.
        close_timeout: Seconds allowed for a graceful close.
        max_message_size: Largest accepted inbound frame in bytes.
    """

    allow_insecure: bool = Field(default=False, description="Fall back to unverified TLS")
    proxy_url: str | None = Field(default=None, description="SOCKS5 proxy for overlay relays")
    heartbeat: float = Field(default=30.0, gt=0.0, description="WebSocket ping interval")
    close_timeout: float = Field(default=5.0, gt=0.0, description="Graceful close timeout")
    max_message_size: int = Field(
        default=4 * 1024 * 1024, ge=1024, description="Max inbound frame size in bytes"
    )


# ---------------------------------------------------------------------------
# SSL classification
# ---------------------------------------------------------------------------

# Multi-word patterns avoid false positives from unrelated errors
# (e.g. DNS "cannot verify hostname").
_SSL_ERROR_PATTERNS: tuple[str, ...] = (
    "ssl certificate",
    "certificate verify",
    "certificate has expired",
    "self signed certificate",
    "self-signed certificate",
    "unable to get local issuer",
    "x509",
    "tlsv1 alert",
    "ssl handshake",
    "tls handshake failed",
    "certificate_unknown",
    "certificate_expired",
    "ssl error",
    "tls error",
    "cert verify failed",
)


def _is_ssl_error(error: BaseException) -> bool:
    """Check if an exception indicates an SSL/TLS certificate error."""
    if isinstance(error, ssl.SSLError | aiohttp.ClientSSLError):
        return True
    error_lower = str(error).lower()
    return any(pattern in error_lower for pattern in _SSL_ERROR_PATTERNS)


def _insecure_ssl_context() -> ssl.SSLContext:
    context = ssl.create_default_context()
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return context


# ---------------------------------------------------------------------------
# aiohttp implementation
# ---------------------------------------------------------------------------


class WebSocketConnection:
    """[Connection][nostrpool.utils.transport.Connection] backed by an aiohttp WebSocket."""

    def __init__(
        self,
        ws: aiohttp.ClientWebSocketResponse,
        session: aiohttp.ClientSession,
        close_timeout: float = 5.0,
    ) -> None:
        self._ws = ws
        self._session = session
        self._close_timeout = close_timeout

    async def send(self, text: str) -> None:
        if self._ws.closed:
            raise TransportError("websocket is closed")
        try:
            await self._ws.send_str(text)
        except (aiohttp.ClientError, ConnectionError, RuntimeError) as e:
            raise TransportError(f"send failed: {e}") from e

    async def recv(self) -> str | None:
        while True:
            try:
                msg = await self._ws.receive()
            except (aiohttp.ClientError, ConnectionError) as e:
                logger.debug("ws_receive_failed error=%s", e)
                return None

            if msg.type == aiohttp.WSMsgType.TEXT:
                return str(msg.data)
            if msg.type == aiohttp.WSMsgType.BINARY:
                try:
                    return bytes(msg.data).decode("utf-8")
                except UnicodeDecodeError:
                    logger.debug("ws_binary_frame_dropped size=%s", len(msg.data))
                    continue
            if msg.type in (aiohttp.WSMsgType.PING, aiohttp.WSMsgType.PONG):
                continue
            # CLOSE, CLOSING, CLOSED, ERROR -> connection terminated
            return None

    async def close(self) -> None:
        # aiohttp can raise ClientError, ServerDisconnectedError, etc. during
        # close; teardown must not propagate them.
        with contextlib.suppress(Exception):
            await asyncio.wait_for(self._ws.close(), timeout=self._close_timeout)
        with contextlib.suppress(Exception):
            await asyncio.wait_for(self._session.close(), timeout=self._close_timeout)


class WebSocketConnector:
    """Default [Connector][nostrpool.utils.transport.Connector] built on aiohttp.

    Overlay relays are reached through ``aiohttp_socks.ProxyConnector``.
    Clearnet and local relays use TLS verification first, with an optional
    unverified fallback.
    """

    def __init__(self, config: TransportConfig | None = None) -> None:
        self._config = config or TransportConfig()

    @property
    def config(self) -> TransportConfig:
        return self._config

    async def connect(self, url: RelayUrl, timeout: float = DEFAULT_TIMEOUT) -> WebSocketConnection:  # noqa: ASYNC109
        """Open a WebSocket to ``url``.

        Raises:
            TransportError: If the proxy is missing for an overlay relay or
                the connection fails.
            RelayTimeoutError: If the handshake takes longer than ``timeout``.
            RelaySSLError: If TLS verification fails and insecure fallback
                is not allowed (or also fails).
        """
        if url.is_overlay:
            if self._config.proxy_url is None:
                raise TransportError(f"proxy_url required for {url.network} relay: {url.url}")
            connector = ProxyConnector.from_url(self._config.proxy_url, rdns=True)
            return await self._open(url.url, connector, timeout)

        logger.debug("ssl_connecting relay=%s", url.url)
        try:
            return await self._open(url.url, aiohttp.TCPConnector(), timeout)
        except RelaySSLError as e:
            if url.scheme != "wss" or not self._config.allow_insecure:
                raise
            logger.debug("ssl_fallback_insecure relay=%s error=%s", url.url, e)

        connector = aiohttp.TCPConnector(ssl=_insecure_ssl_context())
        connection = await self._open(url.url, connector, timeout)
        logger.debug("insecure_connected relay=%s", url.url)
        return connection

    async def _open(
        self,
        url: str,
        connector: aiohttp.BaseConnector,
        timeout: float,  # noqa: ASYNC109
    ) -> WebSocketConnection:
        client_timeout = aiohttp.ClientTimeout(total=None, connect=timeout, sock_connect=timeout)
        session = aiohttp.ClientSession(connector=connector, timeout=client_timeout)

        try:
            async with asyncio.timeout(timeout):
                ws = await session.ws_connect(
                    url,
                    heartbeat=self._config.heartbeat,
                    max_msg_size=self._config.max_message_size,
                )
        except TimeoutError:
            await session.close()
            logger.debug("ws_timeout url=%s", url)
            raise RelayTimeoutError(f"Connection timeout: {url}") from None
        except asyncio.CancelledError:
            await session.close()
            raise
        except (aiohttp.ClientError, ssl.SSLError, OSError) as e:
            await session.close()
            logger.debug("ws_connect_failed url=%s error=%s", url, e)
            if _is_ssl_error(e):
                raise RelaySSLError(f"SSL failure for {url}: {e}") from e
            raise TransportError(f"Connection failed: {url} ({e})") from e

        return WebSocketConnection(ws, session, close_timeout=self._config.close_timeout)
