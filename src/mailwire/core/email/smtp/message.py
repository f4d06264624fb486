"""RFC 5322 serialisation of outgoing messages."""

import re
import time
from datetime import datetime, timezone
from email.utils import format_datetime
from typing import List, Optional

from mailwire.core.email.mime.encoded_words import encode_header_value
from mailwire.core.email.mime.transfer import encode_base64_lines
from mailwire.core.models.attachment import Attachment
from mailwire.core.models.email import Email

from .constants import MessageDefaults

_LINE_BREAK = re.compile(r"\r\n|\r|\n")


def body_lines(text: str) -> List[str]:
    """Split a body into lines regardless of its line-ending style."""
    return _LINE_BREAK.split(text or "")


def dot_stuff(lines: List[str]) -> List[str]:
    """Double a leading dot so no line can end the DATA section early."""
    return ["." + line if line.startswith(".") else line for line in lines]


def new_boundary() -> str:
    return f"{MessageDefaults.BOUNDARY_PREFIX}{int(time.time() * 1000)}"


def _single_line(name: str, value: str) -> str:
    """Refuse header values that would start a new line on the wire."""
    if "\r" in value or "\n" in value:
        raise ValueError(f"{name} must not contain line breaks")
    return value


def _quoted(value: str) -> str:
    encoded = encode_header_value(_single_line("Attachment filename", value))
    if encoded != value:
        return encoded
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


def _header_lines(email: Email, now: datetime) -> List[str]:
    lines = [
        f"Date: {format_datetime(now)}",
        f"From: {_single_line('From', email.sender)}",
        f"To: {', '.join(_single_line('To', address) for address in email.to)}",
    ]

    if email.cc:
        lines.append(f"Cc: {', '.join(_single_line('Cc', address) for address in email.cc)}")

    subject = _single_line("Subject", email.subject or MessageDefaults.NO_SUBJECT)
    lines.append(f"Subject: {encode_header_value(subject)}")
    lines.append("MIME-Version: 1.0")
    return lines


def _text_part_headers() -> List[str]:
    return [
        f"Content-Type: text/plain; charset={MessageDefaults.CHARSET}",
        "Content-Transfer-Encoding: 8bit",
    ]


def _attachment_lines(attachment: Attachment) -> List[str]:
    name = _quoted(attachment.filename)
    return [
        f"Content-Type: {_single_line('Content-Type', attachment.content_type)}; name={name}",
        "Content-Transfer-Encoding: base64",
        f"Content-Disposition: attachment; filename={name}",
        "",
        *encode_base64_lines(attachment.data, MessageDefaults.BASE64_LINE_LENGTH),
    ]


def build_message_lines(
    email: Email,
    now: Optional[datetime] = None,
    boundary: Optional[str] = None,
) -> List[str]:
    """Render an Email as the lines sent after DATA (before dot-stuffing).

    Plain messages are a single 8bit UTF-8 text part. Messages with
    attachments become multipart/mixed with one base64 part per file.
    """
    now = now or datetime.now(timezone.utc).astimezone()
    lines = _header_lines(email, now)

    if not email.attachments:
        lines.extend(_text_part_headers())
        lines.append("")
        lines.extend(body_lines(email.body))
        return lines

    boundary = boundary or new_boundary()
    lines.append(f'Content-Type: multipart/mixed; boundary="{boundary}"')
    lines.append("")
    lines.append(MessageDefaults.PREAMBLE)
    lines.append("")

    lines.append(f"--{boundary}")
    lines.extend(_text_part_headers())
    lines.append("")
    lines.extend(body_lines(email.body))

    for attachment in email.attachments:
        lines.append(f"--{boundary}")
        lines.extend(_attachment_lines(attachment))

    lines.append(f"--{boundary}--")
    return lines
