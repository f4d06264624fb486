"""Email domain models"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from .attachment import Attachment


@dataclass
class MimeBody:
    """Decoded content of a message body."""

    plain_text: str = ""
    html: str = ""
    attachments: List[Attachment] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.plain_text or self.html or self.attachments)


@dataclass
class Email:
    """A fetched or composed message.

    ``message_number`` is the folder-relative IMAP sequence number. It is
    only meaningful until the next EXPUNGE on that folder.
    """

    message_number: int = 0
    uid: int = 0
    message_id: str = ""
    sender: str = ""
    to: List[str] = field(default_factory=list)
    cc: List[str] = field(default_factory=list)
    subject: str = ""
    body: str = ""
    body_html: str = ""
    is_html: bool = False
    date: Optional[datetime] = None
    flags: List[str] = field(default_factory=list)
    size: int = 0
    attachments: List[Attachment] = field(default_factory=list)

    @classmethod
    def compose(
        cls, sender: str, to: List[str] | str, subject: str, body: str
    ) -> "Email":
        """Build an outgoing message."""
        recipients = [to] if isinstance(to, str) else list(to)
        return cls(sender=sender, to=recipients, subject=subject, body=body)

    def add_to(self, address: str) -> None:
        self.to.append(address)

    def add_cc(self, address: str) -> None:
        self.cc.append(address)

    def add_attachment(self, attachment: Attachment) -> None:
        self.attachments.append(attachment)

    def add_flag(self, flag: str) -> None:
        """Add a flag unless already present."""
        if flag not in self.flags:
            self.flags.append(flag)

    def has_flag(self, flag: str) -> bool:
        return flag in self.flags

    def remove_flag(self, flag: str) -> None:
        if flag in self.flags:
            self.flags.remove(flag)

    def toggle_flag(self, flag: str) -> None:
        if self.has_flag(flag):
            self.remove_flag(flag)
        else:
            self.add_flag(flag)

    @property
    def is_read(self) -> bool:
        return self.has_flag("Seen")

    @property
    def is_flagged(self) -> bool:
        return self.has_flag("Flagged")

    def has_attachments(self) -> bool:
        """Check if email has attachments."""
        return len(self.attachments) > 0

    def apply_body(self, body: MimeBody) -> None:
        """Merge decoded body content into this message."""
        self.body = body.plain_text
        self.body_html = body.html
        self.is_html = bool(body.html)
        self.attachments = list(body.attachments)

    def get_preview(self, max_length: int = 100) -> str:
        """Get a one-line preview of the body."""
        text = " ".join(self.body.split())

        if len(text) <= max_length:
            return text

        return text[: max_length - 3] + "..."
