"""
Tests for the socket transport: factories, TLS upgrade and line framing
"""
import ssl
from unittest.mock import Mock, patch

import pytest

from mailwire.core.email.transport import (
    Connection,
    create_tls_context,
    open_plain_socket,
    open_tls_socket,
    upgrade_to_tls,
)
from mailwire.utils.errors import (
    ConnectError,
    ConnectionClosedError,
    NetworkTimeoutError,
    TlsError,
)

from test_helpers import FakeSocket, make_connection, server_script

CREATE_CONNECTION = "mailwire.core.email.transport.socket.create_connection"


class TestTlsContext:
    """Test the trust-all client context"""

    def test_certificate_checks_are_disabled(self):
        context = create_tls_context()

        assert context.verify_mode == ssl.CERT_NONE
        assert context.check_hostname is False


class TestSocketFactories:
    """Test open_tls_socket and open_plain_socket"""

    def test_open_tls_socket_wraps_connected_socket(self):
        """The TCP socket gets the read timeout and is wrapped for the host"""
        raw = Mock()
        wrapped = FakeSocket(server_script("* OK ready"))

        with patch(CREATE_CONNECTION, return_value=raw) as mock_connect, \
                patch.object(ssl.SSLContext, "wrap_socket", return_value=wrapped) as mock_wrap:
            connection = open_tls_socket("imap.example.com", 993, connect_timeout=5, read_timeout=20)

        mock_connect.assert_called_once_with(("imap.example.com", 993), timeout=5)
        raw.settimeout.assert_called_once_with(20)
        mock_wrap.assert_called_once_with(raw, server_hostname="imap.example.com")
        assert connection.tls
        assert connection.read_line() == "* OK ready"

    def test_open_plain_socket_is_not_wrapped(self):
        raw = Mock()
        raw.makefile.return_value = FakeSocket(server_script("220 hi")).makefile()

        with patch(CREATE_CONNECTION, return_value=raw), \
                patch.object(ssl.SSLContext, "wrap_socket") as mock_wrap:
            connection = open_plain_socket("smtp.example.com", 587)

        mock_wrap.assert_not_called()
        assert not connection.tls
        assert connection.read_line() == "220 hi"

    def test_connect_timeout(self):
        with patch(CREATE_CONNECTION, side_effect=TimeoutError("timed out")):
            with pytest.raises(NetworkTimeoutError) as exc_info:
                open_tls_socket("imap.example.com", 993)

        assert exc_info.value.details == {"host": "imap.example.com", "port": 993}

    def test_connection_refused(self):
        with patch(CREATE_CONNECTION, side_effect=ConnectionRefusedError("refused")):
            with pytest.raises(ConnectError):
                open_plain_socket("smtp.example.com", 25)

    def test_handshake_failure_closes_socket(self):
        """A failed handshake raises TlsError and releases the TCP socket"""
        raw = Mock()

        with patch(CREATE_CONNECTION, return_value=raw), \
                patch.object(ssl.SSLContext, "wrap_socket", side_effect=ssl.SSLError("bad record")):
            with pytest.raises(TlsError):
                open_tls_socket("imap.example.com", 993)

        raw.close.assert_called_once()


class TestUpgrade:
    """Test STARTTLS socket upgrade"""

    def test_upgrade_rewraps_the_same_socket(self):
        """The plain socket is detached and wrapped; the old object is dead"""
        plain, plain_sock = make_connection(port=587, tls=False)
        wrapped = FakeSocket(server_script("250 secured"))

        with patch.object(ssl.SSLContext, "wrap_socket", return_value=wrapped) as mock_wrap:
            upgraded = upgrade_to_tls(plain, "smtp.example.com")

        mock_wrap.assert_called_once_with(plain_sock, server_hostname="smtp.example.com")
        assert plain.closed
        assert not plain_sock.closed
        assert upgraded.tls
        assert upgraded.port == 587
        assert upgraded.read_line() == "250 secured"

        with pytest.raises(ConnectionClosedError):
            plain.write_line("NOOP")

    def test_failed_upgrade_raises_tls_error(self):
        plain, plain_sock = make_connection(port=587, tls=False)

        with patch.object(ssl.SSLContext, "wrap_socket", side_effect=OSError("reset")):
            with pytest.raises(TlsError):
                upgrade_to_tls(plain, "smtp.example.com")

        assert plain_sock.closed


class TestConnection:
    """Test line and literal framing"""

    def test_read_line_strips_terminators(self):
        connection, _ = make_connection(b"first\r\nsecond\nlast")

        assert connection.read_line() == "first"
        assert connection.read_line() == "second"
        assert connection.read_line() == "last"
        assert connection.read_line() is None

    def test_read_line_maps_bytes_one_to_one(self):
        connection, _ = make_connection("Zoë".encode("utf-8") + b"\r\n")

        line = connection.read_line()

        assert len(line) == len("Zoë".encode("utf-8"))
        assert line.encode("latin-1") == "Zoë".encode("utf-8")

    def test_read_bytes_exact_count(self):
        connection, _ = make_connection(b"hello world\r\n")

        assert connection.read_bytes(5) == b"hello"
        assert connection.read_line() == " world"

    def test_read_bytes_short_read(self):
        """The stream ending inside a literal is a closed connection"""
        connection, _ = make_connection(b"abc")

        with pytest.raises(ConnectionClosedError):
            connection.read_bytes(5)

    def test_read_timeout(self):
        sock = Mock()
        sock.makefile.return_value.readline.side_effect = TimeoutError("timed out")
        connection = Connection(sock, "imap.example.com", 993, tls=True)

        with pytest.raises(NetworkTimeoutError):
            connection.read_line()

    def test_write_line_appends_crlf(self):
        connection, sock = make_connection()

        connection.write_line("EHLO example.org")

        assert bytes(sock.sent) == b"EHLO example.org\r\n"

    def test_close_is_idempotent(self):
        connection, sock = make_connection()

        connection.close()
        connection.close()

        assert sock.closed
        assert connection.closed
        with pytest.raises(ConnectionClosedError):
            connection.read_line()
