"""Multipart body decoding.

Turns a raw RFC 5322 message (or a bare ``BODY[TEXT]`` section) into a
:class:`MimeBody`. Decoding never raises: a part that cannot be decoded is
logged and skipped, and everything else is still returned.
"""

import re
from typing import List, Optional, Tuple

from mailwire.core.models.attachment import Attachment
from mailwire.core.models.email import MimeBody
from mailwire.utils.logging import get_logger

from .encoded_words import decode_header_value
from .headers import (
    Headers,
    content_type_of,
    get_param,
    header_value,
    parse_headers,
    wire_text,
)
from .html_text import html_to_text
from .transfer import (
    decode_binary_payload,
    decode_quoted_printable,
    decode_transfer_encoding,
)

logger = get_logger(__name__)

MAX_DEPTH = 10
DEFAULT_FILENAME = "attachment"

_HEAD_BODY_SEPARATOR = re.compile(r"\r?\n\r?\n")
_CLOSING_DELIMITER = re.compile(r"(?m)^--(\S+?)--[ \t]*\r?$")
_OPENING_DELIMITER = re.compile(r"(?m)^--(\S{6,})[ \t]*\r?$")
_HTML_MARKERS = re.compile(r"<\s*(html|body|div|p|table|br)\b", re.IGNORECASE)
_QP_MARKERS = re.compile(r"=[0-9A-F]{2}|=\r?\n")


## Splitting


def split_head_body(raw: str) -> Tuple[str, str]:
    """Split an entity at the first blank line.

    An entity starting with a blank line has no headers. An entity with no
    blank line at all is taken to be headers only.
    """
    if raw.startswith("\r\n"):
        return "", raw[2:]
    if raw.startswith("\n"):
        return "", raw[1:]

    match = _HEAD_BODY_SEPARATOR.search(raw)
    if not match:
        return raw, ""

    return raw[: match.start()], raw[match.end() :]


def _delimiter(boundary: str) -> re.Pattern:
    return re.compile(r"(?m)^--" + re.escape(boundary) + r"(--)?[ \t]*\r?$")


def split_multipart(body: str, boundary: str) -> List[str]:
    """Return the raw parts between boundary delimiter lines.

    The preamble and epilogue are discarded. A missing closing delimiter
    lets the last part run to the end of the body.
    """
    delimiters = list(_delimiter(boundary).finditer(body))
    parts = []

    for index, current in enumerate(delimiters):
        if current.group(1):
            break

        start = current.end()
        if body.startswith("\r\n", start):
            start += 2
        elif body.startswith("\n", start):
            start += 1

        end = delimiters[index + 1].start() if index + 1 < len(delimiters) else len(body)
        part = body[start:end]

        # the line break before a delimiter belongs to the delimiter
        if part.endswith("\r\n"):
            part = part[:-2]
        elif part.endswith("\n"):
            part = part[:-1]

        parts.append(part)

    return parts


def guess_boundary(text: str) -> Optional[str]:
    """Find the boundary of a multipart body whose headers are missing."""
    for match in _CLOSING_DELIMITER.finditer(text):
        candidate = match.group(1)
        opening = re.compile(r"(?m)^--" + re.escape(candidate) + r"[ \t]*\r?$")
        if opening.search(text):
            return candidate

    match = _OPENING_DELIMITER.search(text)
    return match.group(1) if match else None


## Parts


def _is_attachment(media: str, headers: Headers) -> bool:
    disposition = header_value(headers, "Content-Disposition").lower()
    if "attachment" in disposition:
        return True

    if media in ("text/plain", "text/html"):
        return False

    if media.startswith("multipart/"):
        return False

    return True


def extract_attachment(headers: Headers, body: str) -> Attachment:
    """Build an attachment from a part's headers and raw body."""
    content_type = header_value(headers, "Content-Type")
    disposition = header_value(headers, "Content-Disposition")

    filename = get_param(disposition, "filename") or get_param(content_type, "name")
    filename = decode_header_value(wire_text(filename)).strip() if filename else ""

    encoding = header_value(headers, "Content-Transfer-Encoding")

    return Attachment(
        filename=filename or DEFAULT_FILENAME,
        content_type=content_type_of(headers),
        data=decode_binary_payload(body, encoding),
    )


def _append(existing: str, text: str) -> str:
    text = text.strip()
    if not text:
        return existing
    return f"{existing}\n{text}" if existing else text


def _decode_entity(headers: Headers, body: str, out: MimeBody, depth: int) -> None:
    content_type = header_value(headers, "Content-Type")
    media = content_type_of(headers)
    boundary = get_param(content_type, "boundary")

    if "attachment" in header_value(headers, "Content-Disposition").lower():
        out.attachments.append(extract_attachment(headers, body))
        return

    if boundary:
        if depth >= MAX_DEPTH:
            logger.warning("Multipart nesting too deep, skipping", extra={"depth": depth})
            return

        for part in split_multipart(body, boundary):
            try:
                part_head, part_body = split_head_body(part)
                _decode_entity(parse_headers(part_head), part_body, out, depth + 1)
            except Exception as e:
                logger.warning(f"Skipping undecodable MIME part: {e}")
        return

    if _is_attachment(media, headers):
        out.attachments.append(extract_attachment(headers, body))
        return

    text = decode_transfer_encoding(
        body,
        header_value(headers, "Content-Transfer-Encoding"),
        get_param(content_type, "charset"),
    )

    if media == "text/html":
        out.html = _append(out.html, text)
    else:
        out.plain_text = _append(out.plain_text, text)


def _finish(out: MimeBody) -> MimeBody:
    if out.html and not out.plain_text:
        out.plain_text = html_to_text(out.html)
    return out


## Entry Points


def decode_message(raw: str) -> MimeBody:
    """Decode a complete message (headers and body)."""
    out = MimeBody()
    if not raw:
        return out

    head, body = split_head_body(raw)
    headers = parse_headers(head)

    if not headers:
        return decode_body_text(raw)

    try:
        _decode_entity(headers, body, out, 0)
    except Exception as e:
        logger.warning(f"Message body could not be fully decoded: {e}")

    return _finish(out)


def decode_body_text(text: str) -> MimeBody:
    """Decode a body section fetched without its headers.

    The multipart boundary is recovered from the delimiter lines.
    """
    out = MimeBody()
    if not text or not text.strip():
        return out

    try:
        boundary = guess_boundary(text)
        if boundary:
            headers = [("CONTENT-TYPE", f'multipart/mixed; boundary="{boundary}"')]
            _decode_entity(headers, text, out, 0)
        elif _QP_MARKERS.search(text):
            decoded = decode_quoted_printable(text)
            _store_text(out, decoded)
        else:
            _store_text(out, decode_transfer_encoding(text, "8bit"))
    except Exception as e:
        logger.warning(f"Body text could not be fully decoded: {e}")

    return _finish(out)


def _store_text(out: MimeBody, text: str) -> None:
    if _HTML_MARKERS.search(text):
        out.html = _append(out.html, text)
    else:
        out.plain_text = _append(out.plain_text, text)
