"""Mailbox folder model."""

from dataclasses import dataclass
from typing import Optional


@dataclass
class Folder:
    """A mailbox as reported by one LIST line."""

    name: str
    full_path: Optional[str] = None
    message_count: int = 0
    unread_count: int = 0
    selectable: bool = True

    def __post_init__(self):
        if self.full_path is None:
            self.full_path = self.name
