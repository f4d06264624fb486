"""IMAP constants and configuration values."""

from dataclasses import dataclass


class IMAPResponse:
    """Standard IMAP response codes."""

    OK = "OK"
    NO = "NO"
    BAD = "BAD"
    GREETING = "* OK"
    CONTINUATION = "+"


class IMAPPorts:
    """Standard IMAP ports."""

    SSL = 993
    PLAIN = 143


class IMAPCommands:
    """Fixed command arguments."""

    TAG_PREFIX = "A"
    FETCH_ITEMS = (
        "(FLAGS BODY[HEADER.FIELDS (FROM TO SUBJECT DATE MESSAGE-ID)] BODY.PEEK[])"
    )
    BODY_TEXT = "BODY[TEXT]"
    LIST_ALL = 'LIST "" "*"'


@dataclass
class BatchConfig:
    """Configuration for batch operations."""

    FETCH_BATCH_SIZE: int = 25  # Number of emails to fetch per FETCH command
    RECENT_COUNT: int = 50  # Default size of a recent-mail page


class IMAPFolders:
    """Standard IMAP folder names."""

    INBOX = "INBOX"


class IMAPFlags:
    """Standard IMAP flags."""

    SEEN = "\\Seen"  # Read/unread status
    FLAGGED = "\\Flagged"  # Starred/flagged
    DELETED = "\\Deleted"  # Marked for deletion
    ANSWERED = "\\Answered"  # Has been replied to
    DRAFT = "\\Draft"  # Is a draft
    NOSELECT = "\\Noselect"  # LIST attribute: folder cannot be selected
