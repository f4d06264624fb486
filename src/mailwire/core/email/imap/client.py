"""Blocking IMAP client over a single TLS connection."""

from enum import Enum
from typing import Iterable, List, Optional, Set

from mailwire.core.email.transport import Connection, Timeouts, open_tls_socket
from mailwire.core.models.email import Email, MimeBody
from mailwire.core.models.folder import Folder
from mailwire.utils.errors import (
    ConnectionClosedError,
    ImapError,
    InvalidStateError,
    MailwireError,
)
from mailwire.utils.logging import get_logger, log_call

from .constants import IMAPCommands, IMAPFlags, IMAPPorts, IMAPResponse
from .parser import (
    LITERAL_AT_EOL,
    build_sequence_set,
    parse_body_text_response,
    parse_capabilities,
    parse_fetch_response,
    parse_folder_list,
    parse_message_count,
    parse_search_response,
    quote_imap_string,
    tagged_status,
)

logger = get_logger(__name__)

CRLF = "\r\n"


class ImapState(Enum):
    """Connection states. Only ``close`` moves backwards."""

    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    AUTHENTICATED = "authenticated"
    SELECTED = "selected"


class IMAPClient:
    """IMAP4rev1 client issuing one tagged command at a time.

    Message numbers are sequence numbers and shift after every EXPUNGE.
    """

    def __init__(
        self,
        connect_timeout: float = Timeouts.CONNECT,
        read_timeout: float = Timeouts.READ,
    ):
        """Initialise a disconnected client.

        Args:
            connect_timeout: TCP/TLS connect timeout in seconds
            read_timeout: Per-read socket timeout in seconds
        """
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout
        self.state = ImapState.DISCONNECTED
        self.selected_folder: Optional[str] = None
        self.capabilities: Set[str] = set()
        self.host: Optional[str] = None
        self._conn: Optional[Connection] = None
        self._tag_counter = 0

    def __enter__(self) -> "IMAPClient":
        return self

    def __exit__(self, exc_type, exc_value, exc_tb) -> None:
        self.logout()

    ## State Handling

    def _require(self, operation: str, *states: ImapState) -> None:
        if self.state not in states:
            raise InvalidStateError(
                f"Cannot {operation} while {self.state.value}",
                details={
                    "operation": operation,
                    "state": self.state.value,
                    "allowed": [s.value for s in states],
                },
            )

    def _next_tag(self) -> str:
        self._tag_counter += 1
        return f"{IMAPCommands.TAG_PREFIX}{self._tag_counter:03d}"

    ## Wire Handling

    def read_full_response(self, tag: str, command: str = "") -> str:
        """Read until the line tagged ``tag`` and return the raw response.

        Literal payloads announced with ``{n}`` are read by exact byte
        count and are never inspected for the tag.

        Args:
            tag: Tag of the command being answered
            command: Command text, for error reporting

        Returns:
            All lines (and literals) up to and including the tagged line

        Raises:
            ConnectionClosedError: If the stream ends before the tagged line
        """
        parts: List[str] = []
        continuation = False

        while True:
            line = self._conn.read_line()
            if line is None:
                raise ConnectionClosedError(
                    f"Connection closed while waiting for {tag}",
                    details={"command": command, "partial": "".join(parts)[-500:]},
                )

            parts.append(line + CRLF)

            literal = LITERAL_AT_EOL.search(line)
            if literal:
                data = self._conn.read_bytes(int(literal.group(1)))
                parts.append(data.decode("latin-1"))
                continuation = True
                continue

            if not continuation and line.startswith(tag + " "):
                return "".join(parts)

            continuation = False

    def _send_command(self, command: str, log_as: Optional[str] = None) -> str:
        """Send a tagged command and return its full response.

        Raises:
            ImapError: If the tagged status is not OK
        """
        tag = self._next_tag()
        shown = log_as or command
        logger.debug(f"→ {tag} {shown}")

        self._conn.write_line(f"{tag} {command}")
        response = self.read_full_response(tag, shown)
        return self._check_response(tag, shown, response)

    def _send_literal_command(self, prefix: str, payload: str) -> str:
        """Send ``prefix {n}`` followed by a synchronising literal."""
        data = payload.encode("utf-8")
        tag = self._next_tag()
        command = f"{prefix} {{{len(data)}}}"
        logger.debug(f"→ {tag} {command}")

        self._conn.write_line(f"{tag} {command}")

        while True:
            line = self._conn.read_line()
            if line is None:
                raise ConnectionClosedError(
                    f"Connection closed while waiting for continuation of {tag}",
                    details={"command": command},
                )
            if line.startswith(IMAPResponse.CONTINUATION):
                break
            if line.startswith(tag + " "):
                return self._check_response(tag, command, line + CRLF)

        self._conn.write_bytes(data + CRLF.encode("ascii"))
        response = self.read_full_response(tag, command)
        return self._check_response(tag, command, response)

    def _check_response(self, tag: str, command: str, response: str) -> str:
        tagged_line = response.rstrip(CRLF).rsplit(CRLF, 1)[-1]
        status, text = tagged_status(tagged_line, tag)
        logger.debug(f"← {tagged_line}")

        if status != IMAPResponse.OK:
            raise ImapError(
                command=command,
                raw_response=response,
                message=f"{command.split(' ', 1)[0]} failed: {status} {text}".strip(),
            )

        return response

    ## Session

    @log_call
    def connect(self, host: str, port: int = IMAPPorts.SSL) -> None:
        """Open a TLS connection and read the server greeting.

        Args:
            host: IMAP server host name
            port: IMAP server port (default 993)

        Raises:
            ImapError: If the greeting does not start with ``* OK``
            TransportError: If the socket or TLS setup fails
        """
        self._require("connect", ImapState.DISCONNECTED)

        conn = open_tls_socket(host, port, self.connect_timeout, self.read_timeout)
        try:
            greeting = conn.read_line()
        except MailwireError:
            conn.close()
            raise

        if greeting is None or not greeting.startswith(IMAPResponse.GREETING):
            conn.close()
            raise ImapError(
                command="CONNECT",
                raw_response=greeting or "",
                message=f"Unexpected IMAP greeting from {host}",
            )

        self._conn = conn
        self.host = host
        self._tag_counter = 0
        self.capabilities = parse_capabilities(greeting)
        self.state = ImapState.CONNECTED

        logger.info("Connected to IMAP server", extra={"host": host, "port": port})

    @log_call
    def login(self, username: str, password: str) -> None:
        """Authenticate with LOGIN.

        Raises:
            ImapError: If the server answers NO or BAD
            InvalidStateError: If not freshly connected
            ValueError: If a credential contains a line break
        """
        self._require("login", ImapState.CONNECTED)

        response = self._send_command(
            f"LOGIN {quote_imap_string(username)} {quote_imap_string(password)}",
            log_as=f"LOGIN {quote_imap_string(username)} ****",
        )

        self.capabilities |= parse_capabilities(response)
        self.state = ImapState.AUTHENTICATED
        logger.info("IMAP login successful", extra={"host": self.host})

    def capability(self) -> Set[str]:
        """Query and remember the server capabilities."""
        self._require(
            "query capabilities",
            ImapState.CONNECTED,
            ImapState.AUTHENTICATED,
            ImapState.SELECTED,
        )
        self.capabilities = parse_capabilities(self._send_command("CAPABILITY"))
        return self.capabilities

    @log_call
    def logout(self) -> None:
        """Send LOGOUT and close the socket. Safe to call repeatedly."""
        if self._conn is None or self._conn.closed:
            self.close()
            return

        try:
            self._send_command("LOGOUT")
        except MailwireError as e:
            logger.debug(f"LOGOUT failed, closing anyway: {e}")
        finally:
            self.close()

    def close(self) -> None:
        """Tear down the socket without a LOGOUT."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None
        self.state = ImapState.DISCONNECTED
        self.selected_folder = None

    ## Mailboxes

    @log_call
    def select_folder(self, name: str) -> int:
        """SELECT a folder and return its message count.

        Raises:
            ImapError: If the folder cannot be selected
        """
        self._require("select a folder", ImapState.AUTHENTICATED, ImapState.SELECTED)

        try:
            response = self._send_command(f"SELECT {quote_imap_string(name)}")
        except ImapError:
            # a failed SELECT leaves no folder selected
            self.state = ImapState.AUTHENTICATED
            self.selected_folder = None
            raise

        count = parse_message_count(response)
        self.state = ImapState.SELECTED
        self.selected_folder = name

        logger.debug("Folder selected", extra={"folder": name, "count": count})
        return count

    @log_call
    def list_folders(self) -> List[Folder]:
        """List all folders visible to the account."""
        self._require("list folders", ImapState.AUTHENTICATED, ImapState.SELECTED)
        return parse_folder_list(self._send_command(IMAPCommands.LIST_ALL))

    ## Fetching

    @log_call
    def fetch_emails(self, start: int, end: int) -> List[Email]:
        """Fetch messages ``start..end`` (1-indexed, inclusive).

        Args:
            start: First message number
            end: Last message number

        Returns:
            One Email per FETCH response, in server order

        Raises:
            ValueError: If the range is empty or not 1-indexed
            ImapError: If the FETCH fails
        """
        self._require("fetch", ImapState.SELECTED)

        if start < 1 or end < start:
            raise ValueError(f"Invalid message range {start}:{end}")

        response = self._send_command(f"FETCH {start}:{end} {IMAPCommands.FETCH_ITEMS}")
        return parse_fetch_response(response)

    @log_call
    def fetch_emails_by_numbers(self, numbers: Iterable[int]) -> List[Email]:
        """Fetch an arbitrary set of message numbers with one FETCH."""
        self._require("fetch", ImapState.SELECTED)

        sequence = build_sequence_set(numbers)
        if not sequence:
            return []

        response = self._send_command(f"FETCH {sequence} {IMAPCommands.FETCH_ITEMS}")
        return parse_fetch_response(response)

    @log_call
    def fetch_email_body(self, message_number: int) -> MimeBody:
        """Fetch and decode ``BODY[TEXT]`` of one message."""
        self._require("fetch", ImapState.SELECTED)

        response = self._send_command(
            f"FETCH {message_number} {IMAPCommands.BODY_TEXT}"
        )
        return parse_body_text_response(response)

    ## Searching

    @log_call
    def search_emails(self, keyword: str) -> List[int]:
        """Search the selected folder for ``keyword``.

        Tries a UTF-8 TEXT search, then a plain TEXT search, then the union
        of SUBJECT, FROM and BODY searches.
        """
        self._require("search", ImapState.SELECTED)

        keyword = keyword.strip()
        if not keyword:
            return []

        for prefix in ("SEARCH CHARSET UTF-8 TEXT", "SEARCH TEXT"):
            try:
                return parse_search_response(
                    self._send_literal_command(prefix, keyword)
                )
            except ImapError as e:
                logger.debug(f"{prefix} rejected, trying next strategy: {e.message}")

        found: Set[int] = set()
        for criterion in ("SUBJECT", "FROM", "BODY"):
            response = self._send_literal_command(f"SEARCH {criterion}", keyword)
            found.update(parse_search_response(response))

        return sorted(found)

    ## Flags And Moves

    @log_call
    def update_flags(self, message_number: int, flags: Iterable[str], add: bool) -> None:
        """Add or remove flags with STORE."""
        self._require("store flags", ImapState.SELECTED)

        action = "+FLAGS" if add else "-FLAGS"
        self._send_command(f"STORE {message_number} {action} ({' '.join(flags)})")

    def mark_as_read(self, message_number: int, read: bool = True) -> None:
        self.update_flags(message_number, [IMAPFlags.SEEN], read)

    def toggle_star(self, message_number: int, starred: bool) -> None:
        self.update_flags(message_number, [IMAPFlags.FLAGGED], starred)

    def mark_as_deleted(self, message_number: int) -> None:
        self.update_flags(message_number, [IMAPFlags.DELETED], True)

    @log_call
    def copy_email(self, message_number: int, folder: str) -> None:
        """COPY one message into another folder."""
        self._require("copy", ImapState.SELECTED)
        self._send_command(f"COPY {message_number} {quote_imap_string(folder)}")

    @log_call
    def expunge(self) -> None:
        """Remove ``\\Deleted`` messages. Message numbers shift afterwards."""
        self._require("expunge", ImapState.SELECTED)
        self._send_command("EXPUNGE")

    @log_call
    def delete_email(self, message_number: int) -> None:
        """Flag a message ``\\Deleted`` and expunge."""
        self.mark_as_deleted(message_number)
        self.expunge()

    @log_call
    def move_email(self, message_number: int, folder: str) -> None:
        """Move a message, with MOVE when advertised, else COPY and delete."""
        self._require("move", ImapState.SELECTED)

        if "MOVE" in self.capabilities:
            self._send_command(f"MOVE {message_number} {quote_imap_string(folder)}")
            return

        self.copy_email(message_number, folder)
        self.mark_as_deleted(message_number)
        self.expunge()
