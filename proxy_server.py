"""
proxy_server.py — Forwarding proxy with CONNECT tunnels and request rewriting.

Architecture
------------
A ``ForwardProxy`` instance binds a local TCP port that any HTTP client
can use as its proxy.  Every accepted connection is handled in its own
task and never touches another connection's state; the only shared
objects are the read-only ``AddressTable`` and the upstream setting.

Per connection the pipeline is strictly sequential:

1. **sniff** — one read from the client (``read_buffer_size`` bytes at
   most).  ``CONNECT host:port`` selects *tunnel* mode; an absolute-form
   ``GET http://host[:port]/path`` selects *rewrite* mode, where the
   request line is turned into origin-form and forwarded together with
   every byte already read after it.
2. **resolve** — the destination is rewritten through the override
   table, first by exact ``host:port`` and then by host alone.
3. **dial** — directly, or through a SOCKS5 upstream.
4. **acknowledge** — tunnel mode only: a fixed ``200 Connection
   established`` banner is sent to the client.
5. **relay** — two copy loops race; the first one to finish decides
   whether the server or the client closed, and the other is torn down.

Failures before the relay simply drop the client connection; nothing is
ever written back on error.

Key components:

* **ForwardProxy** — owns the ``asyncio.Server`` and live-connection set.
* **_ConnectionHandler** — the per-connection pipeline above.
* **Dialer** / **Socks5Client** — outbound connection strategies.
* **ManagedConnection** — ``(StreamReader, StreamWriter)`` pair with a
  safe ``close()``.
"""

from __future__ import annotations

import asyncio
import ipaddress
import logging
import re
import struct
import traceback
from asyncio import StreamReader, StreamWriter
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from address_table import AddressTable


# ============================================================================
# Configuration
# ============================================================================


@dataclass(frozen=True)
class ProxyConfig:
    """Tunable knobs for the proxy.

    Attributes
    ----------
    read_buffer_size:
        Size of the single sniffing read and of every relay read.
        Requests whose first line does not fit are rejected.
    connect_timeout:
        Deadline in seconds for the outbound TCP connect plus the
        optional SOCKS5 handshake.  ``None`` waits indefinitely.
    proxy_name:
        Value of the ``Host:`` header in the CONNECT success banner.
    """

    read_buffer_size: int = 4096
    connect_timeout: Optional[float] = None
    proxy_name: str = "Forward Proxy"


DEFAULT_CONFIG = ProxyConfig()

# A fixed target equal to this (case-insensitively) means "sniff every connection".
SNIFF_TARGET = "proxy"
DEFAULT_PORT = 80
DEFAULT_SOCKS_PORT = 1080


# ============================================================================
# Errors
# ============================================================================


class ErrorKind(Enum):
    """Why a connection was dropped before relaying."""

    COMM_ERROR = "upstream negotiation failed"
    CONNECT_CLOSED = "connect closed"
    EMPTY_COMMAND = "empty command"
    UNKNOWN_COMMAND = "unknown command"
    UNKNOWN_FORMAT = "unknown format"
    IO_ERROR = "io error"


class ProxyError(Exception):
    """A per-connection failure.  ``kind`` is what callers branch on."""

    def __init__(self, kind: ErrorKind, detail: str = ""):
        super().__init__(f"{kind.value}: {detail}" if detail else kind.value)
        self.kind = kind
        self.detail = detail


class Socks5Error(ConnectionError):
    """The SOCKS5 upstream rejected or botched the handshake."""


# ============================================================================
# Data Classes
# ============================================================================


class ProxyMode(Enum):
    """How the client expects its first request to be treated."""

    TUNNEL = "tunnel"
    REWRITE = "rewrite"


class RelayOutcome(Enum):
    """Final state of a connection, as reported in the log."""

    SERVER_CLOSED = "server closed"
    CLIENT_CLOSED = "client closed"
    TARGET_UNREACHABLE = "target unreachable"


@dataclass(frozen=True)
class Destination:
    """A dialable ``(host, port)`` pair."""

    host: str
    port: int

    @classmethod
    def parse(cls, address: str, default_port: int = DEFAULT_PORT) -> Destination:
        """Split ``host[:port]`` on the last colon.

        Bracketed IPv6 literals (``[::1]:443``) lose their brackets.
        A missing port becomes *default_port*.
        """
        if address.startswith("["):
            host, _, rest = address[1:].partition("]")
            port_str = rest[1:] if rest.startswith(":") else ""
        else:
            host, sep, port_str = address.rpartition(":")
            if not sep:
                host, port_str = port_str, ""
        if not host:
            raise ProxyError(ErrorKind.UNKNOWN_FORMAT, f"no host in {address!r}")
        if not port_str:
            return cls(host, default_port)
        try:
            port = int(port_str)
        except ValueError:
            raise ProxyError(
                ErrorKind.UNKNOWN_FORMAT, f"bad port in {address!r}"
            ) from None
        if not 0 < port < 65536:
            raise ProxyError(ErrorKind.UNKNOWN_FORMAT, f"bad port in {address!r}")
        return cls(host, port)

    def __str__(self) -> str:
        host = f"[{self.host}]" if ":" in self.host else self.host
        return f"{host}:{self.port}"


@dataclass(frozen=True)
class SniffedRequest:
    """What the first client read told us.

    ``leftover`` is every byte received after the first line.
    ``request_line`` is the rewritten origin-form line (rewrite mode only,
    terminator included).
    """

    mode: ProxyMode
    destination: str
    leftover: bytes = b""
    request_line: bytes = b""

    @property
    def upstream_payload(self) -> bytes:
        """Bytes the upstream must receive before relaying starts."""
        if self.mode is ProxyMode.REWRITE:
            return self.request_line + self.leftover
        # The CONNECT header block is for us; only what follows it is tunnel data.
        match = _HEADER_END.search(self.leftover)
        if match is None:
            return b""
        return self.leftover[match.end():]


_HEADER_END = re.compile(rb"(?:^|\n)\r?\n")


# ============================================================================
# Connection Wrapper
# ============================================================================


class ManagedConnection:
    """Thin wrapper around an ``(StreamReader, StreamWriter)`` pair.

    ``close()`` is idempotent and never raises, so it can be called from
    every ``finally`` block that might own the connection.
    """

    __slots__ = ("reader", "writer", "_closed")

    def __init__(self, reader: StreamReader, writer: StreamWriter):
        self.reader = reader
        self.writer = writer
        self._closed = False

    async def close(self, force: bool = False) -> None:
        """Close the underlying transport.

        Parameters
        ----------
        force:
            If ``True``, abort the transport immediately instead of
            waiting for buffered data to flush.  Used for bulk teardown
            when the proxy stops, where the peer may already be gone.
        """
        if self._closed:
            return
        self._closed = True
        try:
            transport = self.writer.transport
            if force:
                transport.abort()
                return
            if transport is None or transport.is_closing():
                return
            self.writer.close()
            await asyncio.wait_for(self.writer.wait_closed(), timeout=2.0)
        except TimeoutError:
            try:
                transport = self.writer.transport
                if transport and not transport.is_closing():
                    transport.abort()
            except Exception as e:
                logger.debug(e)
            logger.trace("Connection close timed out, aborted")
        except Exception as e:
            logger.debug("Connection close error: %s", e)

    @property
    def closed(self) -> bool:
        return self._closed or self.writer.is_closing()

    @property
    def peer(self) -> str:
        """``ip:port`` of the remote end, or ``unknown``."""
        peername = self.writer.get_extra_info("peername")
        if not peername:
            return "unknown"
        return f"{peername[0]}:{peername[1]}"


# ============================================================================
# SOCKS5 Client
# ============================================================================


class Socks5Client:
    """Async SOCKS5 CONNECT client (no-auth method only)."""

    ERRORS = {
        1: "General failure",
        2: "Not allowed",
        3: "Network unreachable",
        4: "Host unreachable",
        5: "Connection refused",
        6: "TTL expired",
        7: "Command not supported",
        8: "Address type not supported",
    }

    @staticmethod
    def split_proxy(proxy: str) -> tuple[str, int]:
        """``[user@]host[:port]`` -> ``(host, port)``; the user part is dropped.

        Raises ``ProxyError`` with ``UNKNOWN_FORMAT`` for a missing host or
        a bad port.
        """
        address = Destination.parse(proxy.rpartition("@")[2], DEFAULT_SOCKS_PORT)
        return address.host, address.port

    @staticmethod
    def encode_address(host: str, port: int) -> bytes:
        """ATYP + address + port for a CONNECT request."""
        try:
            ip = ipaddress.ip_address(host)
        except ValueError:
            try:
                domain = host.encode("idna")
            except UnicodeError as e:
                raise Socks5Error(f"SOCKS5: bad hostname {host!r}") from e
            if len(domain) > 255:
                raise Socks5Error(f"SOCKS5: hostname too long ({len(domain)} bytes)")
            return b"\x03" + bytes([len(domain)]) + domain + struct.pack(">H", port)
        atyp = b"\x01" if ip.version == 4 else b"\x04"
        return atyp + ip.packed + struct.pack(">H", port)

    @staticmethod
    async def connect(
        proxy: str,
        target_host: str,
        target_port: int,
        timeout: Optional[float] = None,
    ) -> tuple[StreamReader, StreamWriter]:
        """Open a SOCKS5 tunnel to ``target_host:target_port`` via *proxy*.

        Parameters
        ----------
        proxy:
            ``host:port`` of the SOCKS5 proxy.  ``user@host:port`` is
            accepted but the user part is stripped (no auth sent).
        target_host:
            Hostname or IP literal the SOCKS5 proxy should connect to.
        target_port:
            The port the SOCKS5 proxy should connect to.
        timeout:
            Overall timeout for the TCP connect, then again for the
            SOCKS5 handshake + CONNECT.  ``None`` disables it.

        Raises
        ------
        Socks5Error
            The proxy refused the method or the CONNECT, or hung up
            mid-handshake.
        OSError
            The proxy itself could not be reached.
        """
        proxy_host, proxy_port = Socks5Client.split_proxy(proxy)

        reader, writer = await asyncio.wait_for(
            asyncio.open_connection(proxy_host, proxy_port), timeout=timeout
        )

        try:
            async with asyncio.timeout(timeout):
                # Greeting: version 5, 1 method (no-auth)
                writer.write(b"\x05\x01\x00")
                await writer.drain()

                resp = await reader.readexactly(2)
                if resp[0] != 0x05 or resp[1] != 0x00:
                    raise Socks5Error("SOCKS5 handshake failed")

                request = b"\x05\x01\x00" + Socks5Client.encode_address(
                    target_host, target_port
                )
                writer.write(request)
                await writer.drain()

                resp = await reader.readexactly(4)
                if resp[0] != 0x05:
                    raise Socks5Error("SOCKS5: bad reply version")
                if resp[1] != 0x00:
                    raise Socks5Error(
                        f"SOCKS5: {Socks5Client.ERRORS.get(resp[1], 'Unknown error')}"
                    )

                # Drain the bound address so the socket is ready for data
                atyp = resp[3]
                if atyp == 0x01:  # IPv4 + port
                    await reader.readexactly(6)
                elif atyp == 0x03:  # Domain + port
                    length = (await reader.readexactly(1))[0]
                    await reader.readexactly(length + 2)
                elif atyp == 0x04:  # IPv6 + port
                    await reader.readexactly(18)
                else:
                    raise Socks5Error(f"SOCKS5: unknown address type {atyp}")

            return reader, writer
        except asyncio.IncompleteReadError as e:
            await ManagedConnection(reader, writer).close(force=True)
            raise Socks5Error("SOCKS5 proxy closed during handshake") from e
        except BaseException:
            await ManagedConnection(reader, writer).close(force=True)
            raise


# ============================================================================
# Request Sniffing
# ============================================================================


def sniff(data: bytes) -> SniffedRequest:
    """Classify the first bytes a client sent.

    Raises ``ProxyError`` with ``CONNECT_CLOSED`` for no data,
    ``EMPTY_COMMAND`` when there is no complete first line,
    ``UNKNOWN_FORMAT`` for a malformed line or absolute URI, and
    ``UNKNOWN_COMMAND`` for methods other than CONNECT and GET.
    """
    if not data:
        raise ProxyError(ErrorKind.CONNECT_CLOSED)

    eol = data.find(b"\n")
    if eol < 0:
        raise ProxyError(ErrorKind.EMPTY_COMMAND, "no line terminator in first read")
    line, leftover = data[: eol + 1], data[eol + 1:]
    if not line.strip():
        raise ProxyError(ErrorKind.EMPTY_COMMAND)

    logger.trace("%s", line.decode("utf-8", errors="replace").rstrip())

    parts = line.split(b" ", 2)
    if len(parts) < 3:
        raise ProxyError(ErrorKind.UNKNOWN_FORMAT, repr(line))
    method, target, version = parts

    verb = method.strip().upper()
    if verb == b"CONNECT":
        mode = ProxyMode.TUNNEL
        authority = target
        request_line = b""
    elif verb == b"GET":
        marker = target.find(b"//")
        if marker < 0:
            raise ProxyError(ErrorKind.UNKNOWN_FORMAT, f"not an absolute URI: {target!r}")
        rest = target[marker + 2:]
        slash = rest.find(b"/")
        if slash <= 0:
            raise ProxyError(ErrorKind.UNKNOWN_FORMAT, f"no authority or path: {target!r}")
        mode = ProxyMode.REWRITE
        authority, path = rest[:slash], rest[slash:]
        request_line = b"GET " + path + b" " + version
    else:
        raise ProxyError(ErrorKind.UNKNOWN_COMMAND, repr(method))

    destination = authority.decode("utf-8", errors="replace")
    if not destination:
        raise ProxyError(ErrorKind.UNKNOWN_FORMAT, repr(line))
    if ":" not in destination:
        destination = f"{destination}:{DEFAULT_PORT}"

    return SniffedRequest(mode, destination, leftover, request_line)


async def sniff_request(reader: StreamReader, size: int) -> SniffedRequest:
    """Read once from *reader* (at most *size* bytes) and ``sniff`` it.

    The read is never extended: a first line longer than *size* is
    rejected, and the part of a CONNECT header block that arrives after
    this read is relayed to the upstream as tunnel data.
    """
    try:
        data = await reader.read(size)
    except OSError as e:
        raise ProxyError(ErrorKind.IO_ERROR, str(e)) from e
    return sniff(data)


# ============================================================================
# Resolution
# ============================================================================


def resolve(destination: str, table: AddressTable) -> str:
    """Apply *table* overrides to ``host:port``.

    An exact match replaces the whole string verbatim (the replacement may
    omit the port).  Otherwise a host-only match replaces the host and
    keeps the original port.  Unmatched destinations pass through.
    """
    override = table.get(destination)
    if override is not None:
        return override
    host, sep, port = destination.rpartition(":")
    if sep:
        override = table.get(host)
        if override is not None:
            return f"{override}:{port}"
    return destination


# ============================================================================
# Dialing
# ============================================================================


class Dialer:
    """Opens the upstream connection, directly or through SOCKS5.

    Each call is single-shot; nothing is retried.
    """

    __slots__ = ("upstream", "config")

    def __init__(self, upstream: Optional[str] = None, config: ProxyConfig = DEFAULT_CONFIG):
        self.upstream = upstream or None
        self.config = config

    async def dial(self, destination: str, payload: bytes = b"") -> ManagedConnection:
        """Connect to *destination* and write *payload* before returning.

        Raises ``ProxyError`` with ``COMM_ERROR`` when the SOCKS5 upstream
        fails the handshake, ``IO_ERROR`` for any transport failure and
        ``UNKNOWN_FORMAT`` when either address cannot be parsed.
        """
        target = Destination.parse(destination)
        route = f"{target} via {self.upstream}" if self.upstream else str(target)
        try:
            if self.upstream:
                reader, writer = await Socks5Client.connect(
                    self.upstream, target.host, target.port, self.config.connect_timeout
                )
            else:
                reader, writer = await asyncio.wait_for(
                    asyncio.open_connection(target.host, target.port),
                    timeout=self.config.connect_timeout,
                )
        except Socks5Error as e:
            raise ProxyError(ErrorKind.COMM_ERROR, f"{route}: {e}") from e
        except (OSError, UnicodeError, asyncio.TimeoutError) as e:
            raise ProxyError(ErrorKind.IO_ERROR, f"{route}: {e!r}") from e

        conn = ManagedConnection(reader, writer)
        if payload:
            try:
                writer.write(payload)
                await writer.drain()
            except OSError as e:
                await conn.close(force=True)
                raise ProxyError(ErrorKind.IO_ERROR, f"{route}: {e!r}") from e
        return conn


# ============================================================================
# Relay
# ============================================================================


async def relay(
    client: ManagedConnection,
    upstream: ManagedConnection,
    buffer_size: int = DEFAULT_CONFIG.read_buffer_size,
) -> RelayOutcome:
    """Copy bytes both ways until either direction ends.

    The first direction to hit EOF or an error wins; the other copy loop
    is cancelled.  Closing the streams is left to the caller.
    """

    async def pipe(src: ManagedConnection, dst: ManagedConnection) -> None:
        try:
            while True:
                data = await src.reader.read(buffer_size)
                if not data:
                    break
                dst.writer.write(data)
                await dst.writer.drain()
        except OSError as e:
            logger.trace("Pipe ended: %r", e)

    from_server = asyncio.create_task(pipe(upstream, client))
    from_client = asyncio.create_task(pipe(client, upstream))
    try:
        done, pending = await asyncio.wait(
            [from_server, from_client], return_when=asyncio.FIRST_COMPLETED
        )
        for t in pending:
            t.cancel()
            try:
                await t
            except asyncio.CancelledError:
                pass
    except asyncio.CancelledError:
        from_server.cancel()
        from_client.cancel()
        raise

    if from_server in done:
        return RelayOutcome.SERVER_CLOSED
    return RelayOutcome.CLIENT_CLOSED


# ============================================================================
# Connection Handler
# ============================================================================


class _ConnectionHandler:
    """Runs sniff -> resolve -> dial -> (banner) -> relay for one client."""

    __slots__ = ("_proxy", "table", "dialer", "target", "config", "banner")

    def __init__(
        self,
        proxy: ForwardProxy,
        table: AddressTable,
        dialer: Dialer,
        target: str,
        config: ProxyConfig,
    ):
        self._proxy = proxy
        self.table = table
        self.dialer = dialer
        self.target = target
        self.config = config
        self.banner = (
            "HTTP/1.1 200 Connection established\r\n"
            f"Host: {config.proxy_name}\r\n"
            "Connection: keep-alive\r\n"
            "Content-Length: 0\r\n\r\n"
        ).encode()

    async def handle_client(self, reader: StreamReader, writer: StreamWriter) -> None:
        """Entry point for each new connection (called by ``asyncio.Server``)."""
        client = ManagedConnection(reader, writer)
        self._proxy._track_connection(client)
        try:
            await self.process(client)
        except Exception:
            logger.error("Client handler error: %s", traceback.format_exc())
        finally:
            self._proxy._untrack_connection(client)
            await client.close()

    async def process(self, client: ManagedConnection) -> RelayOutcome:
        peer = client.peer
        logger.info("client %s connected.", peer)

        outcome = RelayOutcome.TARGET_UNREACHABLE
        upstream: Optional[ManagedConnection] = None
        try:
            upstream = await self._open_upstream(client)
            self._proxy._track_connection(upstream)
            outcome = await relay(client, upstream, self.config.read_buffer_size)
        except ProxyError as e:
            logger.debug("[%s] %s: %s", peer, e.kind.name, e.detail or e.kind.value)
        finally:
            if upstream:
                self._proxy._untrack_connection(upstream)
                await upstream.close()
            logger.info("%s connection %s.", outcome.value, peer)
        return outcome

    async def _open_upstream(self, client: ManagedConnection) -> ManagedConnection:
        if self.target.lower() != SNIFF_TARGET:
            return await self.dialer.dial(self.target)

        request = await sniff_request(client.reader, self.config.read_buffer_size)
        destination = resolve(request.destination, self.table)
        logger.debug("proxy connect %s", destination)

        upstream = await self.dialer.dial(destination, request.upstream_payload)
        if request.mode is ProxyMode.TUNNEL:
            try:
                client.writer.write(self.banner)
                await client.writer.drain()
            except OSError as e:
                await upstream.close(force=True)
                raise ProxyError(ErrorKind.IO_ERROR, f"banner: {e!r}") from e
        return upstream


# ============================================================================
# ForwardProxy
# ============================================================================


class ForwardProxy:
    """The listening side of the proxy.

    Usage::

        table = load_address_table("map.txt", "hosts.json")
        proxy = ForwardProxy(table, upstream="127.0.0.1:9050", port=1080)
        port = await proxy.start()
        await proxy.serve_forever()

    Parameters
    ----------
    table:
        Override table, fully built before ``start()``.
    upstream:
        ``host:port`` of a SOCKS5 proxy, or ``None`` to dial directly.
    target:
        ``"proxy"`` to sniff every connection, or a fixed ``host[:port]``
        that every connection is dialed to without sniffing.
    """

    def __init__(
        self,
        table: Optional[AddressTable] = None,
        upstream: Optional[str] = None,
        target: str = SNIFF_TARGET,
        host: str = "0.0.0.0",
        port: int = 1080,
        config: ProxyConfig = DEFAULT_CONFIG,
    ):
        self.host = host
        self.port = port
        self.config = config
        self.table = table if table is not None else AddressTable()
        self.upstream: Optional[str] = upstream or None
        self.target = target

        self._handler: Optional[_ConnectionHandler] = None
        self._server: Optional[asyncio.Server] = None
        self._active_connections: set[ManagedConnection] = set()
        self._previous_exception_handler: Any = None

    # -- lifecycle ---------------------------------------------------------

    async def start(self, sock: Any = None) -> int:
        """Start listening, on *sock* if given.  Returns the bound port."""
        self._handler = _ConnectionHandler(
            self,
            self.table,
            Dialer(self.upstream, self.config),
            self.target,
            self.config,
        )
        if sock is not None:
            self._server = await asyncio.start_server(self._handler.handle_client, sock=sock)
        else:
            self._server = await asyncio.start_server(
                self._handler.handle_client,
                self.host,
                self.port,
                reuse_address=True,
            )

        # Accept failures are reported through the loop's exception handler
        # while the server keeps listening; route them to our log.
        loop = asyncio.get_running_loop()
        default_handler = loop.get_exception_handler()
        self._previous_exception_handler = default_handler

        def _accept_exception_handler(
            loop: asyncio.AbstractEventLoop, context: dict
        ) -> None:
            msg = context.get("message", "")
            if isinstance(msg, str) and "accept" in msg:
                logger.error("Accept failed: %s (%s)", msg, context.get("exception"))
                return
            if default_handler:
                default_handler(loop, context)
            else:
                loop.default_exception_handler(context)

        loop.set_exception_handler(_accept_exception_handler)

        sockname = self._server.sockets[0].getsockname()
        self.host, self.port = sockname[0], sockname[1]
        logger.info(
            "ForwardProxy listening on %s:%d (target: %s, socks: %s)",
            self.host,
            self.port,
            self.target,
            self.upstream or "direct",
        )
        return self.port

    async def serve_forever(self) -> None:
        if self._server is None:
            raise RuntimeError("ForwardProxy.start() must be awaited first")
        await self._server.serve_forever()

    async def stop(self) -> None:
        """Stop accepting new connections and close all active ones."""
        if self._server:
            self._server.close()
            await self.close_all_connections()
            await self._server.wait_closed()
            self._server = None
            asyncio.get_running_loop().set_exception_handler(
                self._previous_exception_handler
            )
        self._handler = None
        logger.info("ForwardProxy stopped (was :%d)", self.port)

    async def close_all_connections(self) -> None:
        """Abort every live client and upstream connection."""
        conns = list(self._active_connections)
        if conns:
            logger.info("Closing %d active connections", len(conns))
        await asyncio.gather(
            *(c.close(force=True) for c in conns), return_exceptions=True
        )

    @property
    def active_connections(self) -> int:
        return len(self._active_connections)

    def _track_connection(self, conn: ManagedConnection) -> None:
        self._active_connections.add(conn)

    def _untrack_connection(self, conn: ManagedConnection) -> None:
        self._active_connections.discard(conn)


# ============================================================================
# Logging
# ============================================================================


class CustomLogger(logging.Logger):
    def trace(self, message: object, *args: Any, stacklevel: int = 1, **kwargs: Any) -> None:
        if self.isEnabledFor(5):
            self._log(5, message, args, **kwargs, stacklevel=stacklevel + 1)


logging.setLoggerClass(CustomLogger)
logging.addLevelName(5, "TRACE")


class ColoredFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        colors = {
            5: "\033[0;37m",
            logging.DEBUG: "\033[0m",
            logging.INFO: "\033[34m",
            logging.WARNING: "\033[1;33m",
            logging.ERROR: "\033[1;31m",
            logging.CRITICAL: "\033[1;37;41m",
        }
        c = colors.get(record.levelno, "\033[0m")
        record.elapsed = f"{record.relativeCreated / 1000.0:8.3f}"  # type: ignore[attr-defined]
        record.msg = f"{c}{record.msg}\033[0m"
        record.levelname = f"{c}{record.levelname:<8}\033[0m"
        return super().format(record)


logger: CustomLogger = logging.getLogger(__name__)  # type: ignore[assignment]
logger.setLevel(logging.DEBUG)

log_handler = logging.StreamHandler()
log_handler.setLevel(5)
log_handler.setFormatter(
    ColoredFormatter(
        "%(elapsed)s | %(levelname)-8s | %(filename)s | %(funcName)s[%(lineno)d] | %(message)s"
    )
)
logger.addHandler(log_handler)
