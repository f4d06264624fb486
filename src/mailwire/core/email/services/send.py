"""Email send service - validates, composes and submits one message per call."""

import time
from dataclasses import dataclass, field
from typing import List, Optional

from mailwire.core.email.smtp.client import SMTPClient
from mailwire.core.email.smtp.constants import SMTPPorts
from mailwire.core.models.attachment import Attachment
from mailwire.core.models.email import Email
from mailwire.utils.config_manager import ConfigManager
from mailwire.utils.email_utils import validate_email_address
from mailwire.utils.errors import MailwireError
from mailwire.utils.logging import get_logger, log_call

from .results import ErrorInfo

logger = get_logger(__name__)


@dataclass
class SendStats:
    """Statistics for email send operations."""

    success: bool = False
    send_duration: float = 0.0
    recipients: List[str] = field(default_factory=list)
    error: Optional[ErrorInfo] = None

    @property
    def error_message(self) -> Optional[str]:
        return self.error.message if self.error else None


class SendService:
    """Compose and send messages over an SMTPClient.

    Failures come back in :class:`SendStats`; nothing is retried.
    """

    def __init__(self, client: Optional[SMTPClient] = None, sender_email: str = ""):
        """Initialise email send service.

        Args:
            client: SMTPClient to drive (a new one by default)
            sender_email: Address used for ``From`` and ``MAIL FROM``
        """
        self.client = client or SMTPClient()
        self.sender_email = sender_email

    @classmethod
    def from_config(cls, config_manager: ConfigManager) -> "SendService":
        account = config_manager.get_account_config()
        network = config_manager.config.network
        client = SMTPClient(
            connect_timeout=network.connect_timeout,
            read_timeout=network.read_timeout,
        )
        return cls(client, sender_email=account.email or account.username)

    @log_call
    def connect(
        self,
        host: str,
        port: int = SMTPPorts.STARTTLS,
        use_tls: bool = True,
        username: Optional[str] = None,
        password: Optional[str] = None,
    ) -> Optional[ErrorInfo]:
        """Connect and, when credentials are given, authenticate.

        Sending needs an authenticated session; without credentials every
        later send_email reports a state error.

        Returns:
            None on success, otherwise what went wrong
        """
        try:
            self.client.connect(host, port, use_tls)
            if username and password:
                self.client.authenticate(username, password)
            return None
        except MailwireError as e:
            logger.error(
                f"SMTP connect failed: {e.message}",
                extra={"host": host, "port": port, "error_kind": e.kind},
            )
            self.client.close()
            return ErrorInfo.from_exception(e)

    def disconnect(self) -> None:
        self.client.quit()

    def _validated(self, addresses: List[str]) -> List[str]:
        valid = []
        for address in addresses:
            normalized, error = validate_email_address(address)
            if error:
                raise ValueError(error)
            valid.append(normalized)
        return valid

    @log_call
    def send_email(
        self,
        to: List[str] | str,
        subject: str,
        body: str,
        cc: Optional[List[str]] = None,
        attachments: Optional[List[Attachment]] = None,
    ) -> SendStats:
        """Validate recipients, build the message and send it.

        Args:
            to: Recipient address or addresses
            subject: Email subject
            body: Plain-text body
            cc: Optional CC recipients
            attachments: Optional attachments

        Returns:
            SendStats with operation statistics
        """
        stats = SendStats()
        start_time = time.time()
        to_list = [to] if isinstance(to, str) else list(to)

        try:
            email = Email.compose(self.sender_email, self._validated(to_list), subject, body)
            for address in self._validated(cc or []):
                email.add_cc(address)
            for attachment in attachments or []:
                email.add_attachment(attachment)

            stats.recipients = email.to + email.cc
            logger.info(
                "Sending email",
                extra={"recipient_count": len(stats.recipients), "subject": subject[:50]},
            )

            self.client.send(email)
            stats.success = True

        except MailwireError as e:
            stats.error = ErrorInfo.from_exception(e)
            logger.error(
                f"Email send failed: {e.message}",
                extra={"error_kind": e.kind, "command": stats.error.command},
            )
            # a failed transaction leaves the session in an unknown state
            self.client.close()

        except ValueError as e:
            stats.error = ErrorInfo.validation(str(e))
            logger.error(f"Email send failed: {e}")

        stats.send_duration = time.time() - start_time
        if stats.success:
            logger.info(
                "Email sent successfully",
                extra={"duration": round(stats.send_duration, 2)},
            )
        return stats

    def quick_send(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        to: List[str] | str,
        subject: str,
        body: str,
        use_tls: bool = True,
    ) -> SendStats:
        """Connect, authenticate, send one message and quit."""
        error = self.connect(host, port, use_tls, username, password)
        if error is not None:
            return SendStats(error=error)

        try:
            return self.send_email(to, subject, body)
        finally:
            self.disconnect()
