"""Socket transport shared by the IMAP and SMTP clients.

Every protocol turn is synchronous: a command line is written and flushed,
then the caller blocks on the reply. Reads return text decoded as latin-1 so
that one character always maps to one byte on the wire; literal byte counts
announced by the server can then be honoured exactly.
"""

import socket
import ssl
from typing import Optional

from mailwire.utils.errors import (
    ConnectError,
    ConnectionClosedError,
    NetworkTimeoutError,
    TlsError,
    TransportError,
)
from mailwire.utils.logging import get_logger

logger = get_logger(__name__)

CRLF = b"\r\n"
WIRE_ENCODING = "latin-1"


class Timeouts:
    """Socket timeouts (in seconds)."""

    CONNECT = 10.0
    READ = 30.0


def create_tls_context() -> ssl.SSLContext:
    """Build the client TLS context.

    Certificate chain and hostname checks are disabled: any server
    certificate is accepted. This is a known security caveat of the client.
    """
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return context


## Connection


class Connection:
    """A connected socket with CRLF line framing."""

    def __init__(self, sock, host: str = "", port: int = 0, tls: bool = False):
        """Wrap an already connected socket.

        Args:
            sock: Connected socket (plain or TLS)
            host: Remote host name, for logging
            port: Remote port, for logging
            tls: Whether the socket is encrypted
        """
        self.host = host
        self.port = port
        self.tls = tls
        self._sock = sock
        self._reader = sock.makefile("rb")
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _require_open(self) -> None:
        if self._closed:
            raise ConnectionClosedError(
                "Connection is closed", details={"host": self.host, "port": self.port}
            )

    def read_line(self) -> Optional[str]:
        """Read one CRLF-terminated line.

        Returns:
            The line without its terminator, or None at end of stream

        Raises:
            NetworkTimeoutError: If the read timeout expires
            TransportError: On any other socket failure
        """
        self._require_open()
        try:
            raw = self._reader.readline()
        except TimeoutError as e:
            raise NetworkTimeoutError(
                f"Timed out reading from {self.host}:{self.port}"
            ) from e
        except OSError as e:
            raise TransportError(f"Read from {self.host} failed: {e}") from e

        if not raw:
            return None

        if raw.endswith(CRLF):
            raw = raw[:-2]
        elif raw.endswith(b"\n"):
            raw = raw[:-1]

        return raw.decode(WIRE_ENCODING)

    def read_bytes(self, count: int) -> bytes:
        """Read exactly ``count`` bytes.

        Raises:
            ConnectionClosedError: If the stream ends first
            NetworkTimeoutError: If the read timeout expires
        """
        self._require_open()
        chunks = []
        remaining = count

        try:
            while remaining > 0:
                chunk = self._reader.read(remaining)
                if not chunk:
                    raise ConnectionClosedError(
                        f"Connection closed with {remaining} of {count} bytes unread",
                        details={"host": self.host},
                    )
                chunks.append(chunk)
                remaining -= len(chunk)
        except TimeoutError as e:
            raise NetworkTimeoutError(
                f"Timed out reading from {self.host}:{self.port}"
            ) from e
        except ConnectionClosedError:
            raise
        except OSError as e:
            raise TransportError(f"Read from {self.host} failed: {e}") from e

        return b"".join(chunks)

    def write_bytes(self, data: bytes) -> None:
        """Send raw bytes immediately."""
        self._require_open()
        try:
            self._sock.sendall(data)
        except TimeoutError as e:
            raise NetworkTimeoutError(
                f"Timed out writing to {self.host}:{self.port}"
            ) from e
        except OSError as e:
            raise TransportError(f"Write to {self.host} failed: {e}") from e

    def write_line(self, line: str) -> None:
        """Send one line, UTF-8 encoded, terminated with CRLF."""
        self.write_bytes(line.encode("utf-8") + CRLF)

    def detach(self):
        """Hand over the raw socket; this connection becomes unusable."""
        self._require_open()
        self._reader.close()
        self._closed = True
        sock, self._sock = self._sock, None
        return sock

    def close(self) -> None:
        """Close the socket. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        for resource in (self._reader, self._sock):
            try:
                resource.close()
            except OSError as e:
                logger.debug(f"Ignoring error while closing socket: {e}")


## Socket Factories


def _connect(host: str, port: int, connect_timeout: float, read_timeout: float):
    try:
        sock = socket.create_connection((host, port), timeout=connect_timeout)
    except TimeoutError as e:
        raise NetworkTimeoutError(
            f"Connection to {host}:{port} timed out",
            details={"host": host, "port": port},
        ) from e
    except OSError as e:
        raise ConnectError(
            f"Cannot connect to {host}:{port}: {e}",
            details={"host": host, "port": port},
        ) from e

    sock.settimeout(read_timeout)
    return sock


def _wrap(sock, host: str, port: int):
    try:
        return create_tls_context().wrap_socket(sock, server_hostname=host)
    except ssl.SSLError as e:
        sock.close()
        raise TlsError(
            f"TLS handshake with {host}:{port} failed: {e}",
            details={"host": host, "port": port},
        ) from e
    except TimeoutError as e:
        sock.close()
        raise NetworkTimeoutError(
            f"TLS handshake with {host}:{port} timed out",
            details={"host": host, "port": port},
        ) from e
    except OSError as e:
        sock.close()
        raise TlsError(
            f"TLS handshake with {host}:{port} failed: {e}",
            details={"host": host, "port": port},
        ) from e


def open_plain_socket(
    host: str,
    port: int,
    connect_timeout: float = Timeouts.CONNECT,
    read_timeout: float = Timeouts.READ,
) -> Connection:
    """Open an unencrypted connection (SMTP before STARTTLS).

    Raises:
        ConnectError: If the TCP connection fails
        NetworkTimeoutError: If connecting times out
    """
    sock = _connect(host, port, connect_timeout, read_timeout)
    logger.debug("Opened plain connection", extra={"host": host, "port": port})
    return Connection(sock, host, port, tls=False)


def open_tls_socket(
    host: str,
    port: int,
    connect_timeout: float = Timeouts.CONNECT,
    read_timeout: float = Timeouts.READ,
) -> Connection:
    """Open a direct TLS connection (IMAP 993, SMTP 465).

    Raises:
        ConnectError: If the TCP connection fails
        TlsError: If the handshake fails
        NetworkTimeoutError: If connecting or the handshake times out
    """
    sock = _wrap(_connect(host, port, connect_timeout, read_timeout), host, port)
    logger.info(
        "Opened TLS connection without certificate verification",
        extra={"host": host, "port": port},
    )
    return Connection(sock, host, port, tls=True)


def upgrade_to_tls(connection: Connection, host: str) -> Connection:
    """Run a client-mode TLS handshake over an open plain connection.

    The handshake happens on the same TCP stream. The passed connection must
    not be used afterwards.

    Raises:
        TlsError: If the handshake fails
    """
    sock = connection.detach()
    tls_sock = _wrap(sock, host, connection.port)
    logger.info(
        "Upgraded connection to TLS without certificate verification",
        extra={"host": host, "port": connection.port},
    )
    return Connection(tls_sock, host, connection.port, tls=True)
