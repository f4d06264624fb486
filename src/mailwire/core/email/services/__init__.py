"""Service layer over the IMAP and SMTP clients."""

from .fetch import FetchStats, MailboxService
from .results import ErrorInfo, OperationResult
from .send import SendService, SendStats

__all__ = [
    "ErrorInfo",
    "FetchStats",
    "MailboxService",
    "OperationResult",
    "SendService",
    "SendStats",
]
