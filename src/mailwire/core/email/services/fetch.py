"""Mailbox service - folder-level operations on top of the IMAP client"""

import time
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, TypeVar

from mailwire.core.email.imap.client import IMAPClient
from mailwire.core.email.imap.constants import BatchConfig, IMAPFolders
from mailwire.core.models.email import Email, MimeBody
from mailwire.core.models.folder import Folder
from mailwire.utils.config_manager import ConfigManager
from mailwire.utils.email_utils import process_emails
from mailwire.utils.errors import MailwireError, TransportError
from mailwire.utils.logging import get_logger, log_call

from .results import OperationResult

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class FetchStats:
    """Statistics for one fetch operation."""

    folder: str = ""
    message_count: int = 0
    emails_fetched: int = 0
    batches: int = 0
    total_duration: float = 0.0


class MailboxService:
    """Select-if-needed wrappers, batching and post-processing for IMAP.

    Every public method returns an :class:`OperationResult`; protocol and
    transport errors never escape.
    """

    def __init__(
        self,
        client: Optional[IMAPClient] = None,
        batch_size: int = BatchConfig.FETCH_BATCH_SIZE,
    ):
        """Initialise the mailbox service.

        Args:
            client: IMAPClient to drive (a new one by default)
            batch_size: Messages per FETCH command
        """
        self.client = client or IMAPClient()
        self.batch_size = max(1, batch_size)
        self.last_stats: Optional[FetchStats] = None

    @classmethod
    def from_config(cls, config_manager: ConfigManager) -> "MailboxService":
        """Build a service using the configured timeouts and batch size."""
        network = config_manager.config.network
        client = IMAPClient(
            connect_timeout=network.connect_timeout,
            read_timeout=network.read_timeout,
        )
        return cls(client, batch_size=config_manager.config.fetch.batch_size)

    def _run(self, operation: str, func: Callable[[], T], **context) -> OperationResult[T]:
        try:
            return OperationResult.success(func())
        except MailwireError as e:
            logger.error(
                f"{operation} failed: {e.message}",
                extra={"operation": operation, "error_kind": e.kind, **context},
            )
            if isinstance(e, TransportError):
                # unread replies may still be in flight; the session is unusable
                self.client.close()
            return OperationResult.failure(e, operation=operation)
        except ValueError as e:
            logger.error(f"{operation} refused: {e}", extra={"operation": operation, **context})
            return OperationResult.invalid(str(e), operation=operation)

    def _ensure_selected(self, folder: str) -> int:
        """Select ``folder`` unless it already is. Returns the count if selected."""
        if self.client.selected_folder == folder:
            return -1
        return self.client.select_folder(folder)

    def _fetch_batched(self, numbers: List[int], stats: FetchStats) -> List[Email]:
        emails: List[Email] = []
        for offset in range(0, len(numbers), self.batch_size):
            batch = numbers[offset : offset + self.batch_size]
            emails.extend(self.client.fetch_emails(batch[0], batch[-1]))
            stats.batches += 1
        return emails

    ## Session

    @log_call
    def connect(
        self, host: str, port: int, username: str, password: str
    ) -> OperationResult[None]:
        """Connect and log in."""

        def _connect() -> None:
            self.client.connect(host, port)
            self.client.login(username, password)

        result = self._run("connect", _connect, host=host)
        if not result.ok:
            self.client.close()
        return result

    @log_call
    def disconnect(self) -> None:
        """Log out; always leaves the client closed."""
        self.client.logout()

    ## Fetching

    @log_call
    def fetch_recent_emails(
        self, folder: str = IMAPFolders.INBOX, count: int = BatchConfig.RECENT_COUNT
    ) -> OperationResult[List[Email]]:
        """Fetch the newest ``count`` messages of a folder, newest first."""

        def _fetch() -> List[Email]:
            start_time = time.time()
            stats = FetchStats(folder=folder)
            self.last_stats = stats

            total = self.client.select_folder(folder)
            stats.message_count = total

            if total == 0:
                logger.info("Folder is empty", extra={"folder": folder})
                return []

            first = max(1, total - count + 1)
            emails = self._fetch_batched(list(range(first, total + 1)), stats)

            stats.emails_fetched = len(emails)
            stats.total_duration = time.time() - start_time
            logger.info(
                "Fetched recent emails",
                extra={
                    "folder": folder,
                    "count": len(emails),
                    "batches": stats.batches,
                    "duration": round(stats.total_duration, 2),
                },
            )
            return process_emails(emails)

        return self._run("fetch recent emails", _fetch, folder=folder)

    @log_call
    def fetch_email_range(
        self, folder: str, start: int, end: int
    ) -> OperationResult[List[Email]]:
        """Fetch messages ``start..end`` of a folder, newest first."""

        def _fetch() -> List[Email]:
            stats = FetchStats(folder=folder)
            self.last_stats = stats
            self._ensure_selected(folder)
            emails = self._fetch_batched(list(range(start, end + 1)), stats)
            stats.emails_fetched = len(emails)
            return process_emails(emails)

        return self._run("fetch email range", _fetch, folder=folder)

    @log_call
    def fetch_email_body(self, folder: str, message_number: int) -> OperationResult[MimeBody]:
        """Fetch the decoded body of one message."""

        def _fetch() -> MimeBody:
            self._ensure_selected(folder)
            return self.client.fetch_email_body(message_number)

        return self._run("fetch email body", _fetch, folder=folder)

    @log_call
    def search_emails(self, folder: str, keyword: str) -> OperationResult[List[Email]]:
        """Search a folder server-side and fetch the matches."""

        def _search() -> List[Email]:
            self._ensure_selected(folder)
            numbers = self.client.search_emails(keyword)
            if not numbers:
                return []

            emails: List[Email] = []
            for offset in range(0, len(numbers), self.batch_size):
                batch = numbers[offset : offset + self.batch_size]
                emails.extend(self.client.fetch_emails_by_numbers(batch))
            return process_emails(emails)

        return self._run("search emails", _search, folder=folder)

    @log_call
    def list_folders(self) -> OperationResult[List[Folder]]:
        return self._run("list folders", self.client.list_folders)

    ## Changes

    @log_call
    def update_flags(
        self, folder: str, message_number: int, flags: Iterable[str], add: bool
    ) -> OperationResult[None]:
        """Add or remove flags on one message."""

        def _update() -> None:
            self._ensure_selected(folder)
            self.client.update_flags(message_number, list(flags), add)

        return self._run("update flags", _update, folder=folder)

    def mark_as_read(self, folder: str, message_number: int) -> OperationResult[None]:
        def _mark() -> None:
            self._ensure_selected(folder)
            self.client.mark_as_read(message_number)

        return self._run("mark as read", _mark, folder=folder)

    def toggle_star(
        self, folder: str, message_number: int, starred: bool
    ) -> OperationResult[None]:
        """Set or clear \\Flagged on one message."""

        def _toggle() -> None:
            self._ensure_selected(folder)
            self.client.toggle_star(message_number, starred)

        return self._run("toggle star", _toggle, folder=folder)

    @log_call
    def delete_email(self, folder: str, message_number: int) -> OperationResult[None]:
        """Delete and expunge one message."""

        def _delete() -> None:
            self._ensure_selected(folder)
            self.client.delete_email(message_number)

        return self._run("delete email", _delete, folder=folder)

    @log_call
    def move_email(
        self, folder: str, message_number: int, target: str
    ) -> OperationResult[None]:
        """Move one message to ``target``."""

        def _move() -> None:
            self._ensure_selected(folder)
            self.client.move_email(message_number, target)

        return self._run("move email", _move, folder=folder, target=target)
