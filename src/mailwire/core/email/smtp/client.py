"""Blocking SMTP client: EHLO, STARTTLS, AUTH LOGIN and one-shot sends."""

import base64
from enum import Enum
from typing import List, Optional, Set, Tuple

from mailwire.core.email.transport import (
    Connection,
    Timeouts,
    open_plain_socket,
    open_tls_socket,
    upgrade_to_tls,
)
from mailwire.core.models.email import Email
from mailwire.utils.errors import (
    ConnectionClosedError,
    InvalidStateError,
    MailwireError,
    SmtpError,
)
from mailwire.utils.logging import get_logger, log_call

from .constants import SMTPPorts, SMTPResponse
from .message import build_message_lines, dot_stuff

logger = get_logger(__name__)


class SmtpState(Enum):
    """Connection states."""

    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    AUTHENTICATED = "authenticated"


def _b64(value: str) -> str:
    return base64.b64encode(value.encode("utf-8")).decode("ascii")


class SMTPClient:
    """SMTP submission client for a single connection.

    After any failure mid-transaction the session is in an undefined state;
    close it and connect again.
    """

    def __init__(
        self,
        connect_timeout: float = Timeouts.CONNECT,
        read_timeout: float = Timeouts.READ,
        ehlo_name: Optional[str] = None,
    ):
        """Initialise a disconnected client.

        Args:
            connect_timeout: TCP/TLS connect timeout in seconds
            read_timeout: Per-read socket timeout in seconds
            ehlo_name: Name announced in EHLO (defaults to the server host)
        """
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout
        self.ehlo_name = ehlo_name
        self.state = SmtpState.DISCONNECTED
        self.extensions: Set[str] = set()
        self.host: Optional[str] = None
        self._conn: Optional[Connection] = None

    def __enter__(self) -> "SMTPClient":
        return self

    def __exit__(self, exc_type, exc_value, exc_tb) -> None:
        self.quit()

    def _require(self, operation: str, *states: SmtpState) -> None:
        if self.state not in states:
            raise InvalidStateError(
                f"Cannot {operation} while {self.state.value}",
                details={"operation": operation, "state": self.state.value},
            )

    ## Wire Handling

    def _read_reply(self, command: str) -> Tuple[int, str]:
        """Read a (possibly multiline) reply.

        Continuation lines carry ``-`` in the fourth column; the reply ends
        at the first line whose fourth character is a space.

        Returns:
            Tuple of (status code, full reply text)
        """
        lines: List[str] = []

        while True:
            line = self._conn.read_line()
            if line is None:
                raise ConnectionClosedError(
                    "Connection closed while waiting for SMTP reply",
                    details={"command": command, "partial": "\r\n".join(lines)},
                )

            lines.append(line)
            if len(line) < 4 or line[3] == " ":
                break

        text = "\r\n".join(lines)
        logger.debug(f"← {lines[-1]}")

        try:
            return int(lines[-1][:3]), text
        except ValueError:
            raise SmtpError(
                command=command,
                raw_response=text,
                message="Malformed SMTP reply",
            ) from None

    def _expect(self, command: str, expected: int, log_as: Optional[str] = None) -> str:
        """Send one command line and require the given reply code."""
        shown = log_as or command
        logger.debug(f"→ {shown}")
        self._conn.write_line(command)
        return self._expect_reply(shown, expected)

    def _expect_reply(self, command: str, expected: int) -> str:
        code, text = self._read_reply(command)
        if code != expected:
            raise SmtpError(
                command=command,
                raw_response=text,
                message=f"{command.split(':', 1)[0]} failed: expected {expected}, got {code}",
            )
        return text

    def _ehlo(self) -> None:
        reply = self._expect(f"EHLO {self.ehlo_name or self.host}", SMTPResponse.OK)
        self.extensions = {
            line[4:].split(" ", 1)[0].upper()
            for line in reply.split("\r\n")[1:]
            if len(line) > 4
        }

    ## Session

    @log_call
    def connect(
        self, host: str, port: int = SMTPPorts.STARTTLS, use_tls: bool = True
    ) -> None:
        """Connect, read the greeting, EHLO and upgrade with STARTTLS.

        Port 465 uses TLS from the start. On port 587 with ``use_tls`` the
        session is upgraded and EHLO is repeated over the encrypted channel.

        Raises:
            SmtpError: On an unexpected greeting or reply
            TransportError: If the socket or TLS setup fails
        """
        self._require("connect", SmtpState.DISCONNECTED)

        if port == SMTPPorts.SSL:
            self._conn = open_tls_socket(host, port, self.connect_timeout, self.read_timeout)
        else:
            self._conn = open_plain_socket(host, port, self.connect_timeout, self.read_timeout)

        self.host = host

        try:
            self._expect_reply("CONNECT", SMTPResponse.READY)
            self._ehlo()

            if use_tls and port == SMTPPorts.STARTTLS:
                self._expect("STARTTLS", SMTPResponse.READY)
                self._conn = upgrade_to_tls(self._conn, host)
                self._ehlo()
        except MailwireError:
            self.close()
            raise

        self.state = SmtpState.CONNECTED
        logger.info(
            "Connected to SMTP server",
            extra={"host": host, "port": port, "tls": self._conn.tls},
        )

    @log_call
    def authenticate(self, username: str, password: str) -> None:
        """AUTH LOGIN with the given credentials.

        Raises:
            SmtpError: If any step is answered with an unexpected code
        """
        self._require("authenticate", SmtpState.CONNECTED)

        self._expect("AUTH LOGIN", SMTPResponse.AUTH_CONTINUE)
        self._expect(_b64(username), SMTPResponse.AUTH_CONTINUE, log_as="(username)")
        self._expect(_b64(password), SMTPResponse.AUTH_SUCCESS, log_as="(password)")

        self.state = SmtpState.AUTHENTICATED
        logger.info("SMTP authentication successful", extra={"host": self.host})

    @log_call
    def send(self, email: Email) -> None:
        """Deliver one message over an authenticated session.

        Every recipient in ``to`` and then ``cc`` gets its own RCPT TO, so Cc
        addresses receive the message as well (a plain RCPT loop over ``to``
        alone would silently drop them). The first rejected recipient aborts
        before DATA. The message is rendered before MAIL FROM, so a header
        value that would break the framing is refused without any I/O.

        Raises:
            InvalidStateError: If the session is not authenticated
            SmtpError: If any command is answered with an unexpected code
            ValueError: If the message has no recipients or a header value
                contains a line break
        """
        self._require("send", SmtpState.AUTHENTICATED)

        recipients = list(email.to) + list(email.cc)
        if not recipients:
            raise ValueError("Email has no recipients")

        content = dot_stuff(build_message_lines(email))

        self._expect(f"MAIL FROM:<{email.sender}>", SMTPResponse.OK)

        for recipient in recipients:
            self._expect(f"RCPT TO:<{recipient}>", SMTPResponse.OK)

        self._expect("DATA", SMTPResponse.START_DATA)

        for line in content:
            self._conn.write_line(line)

        self._expect(".", SMTPResponse.OK)

        logger.info(
            "Email sent",
            extra={"recipients": len(recipients), "attachments": len(email.attachments)},
        )

    @log_call
    def quit(self) -> None:
        """Send QUIT and close the socket. Safe to call repeatedly."""
        if self._conn is None or self._conn.closed:
            self.close()
            return

        try:
            self._expect("QUIT", SMTPResponse.CLOSING)
        except MailwireError as e:
            logger.debug(f"QUIT failed, closing anyway: {e}")
        finally:
            self.close()

    def close(self) -> None:
        """Tear down the socket without QUIT."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None
        self.state = SmtpState.DISCONNECTED
