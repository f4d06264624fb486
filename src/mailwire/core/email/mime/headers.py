"""RFC 5322 header block parsing."""

import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import List, Optional, Tuple
from urllib.parse import unquote_to_bytes

from mailwire.utils.logging import get_logger

from .transfer import decode_bytes, to_wire_bytes

logger = get_logger(__name__)

DATE_FORMATS = (
    "%a, %d %b %Y %H:%M:%S %z",
    "%d %b %Y %H:%M:%S %z",
    "%a, %d %b %Y %H:%M:%S %Z",
)

_FOLD = re.compile(r"\r?\n[ \t]+")
_HEADER_LINE = re.compile(r"^([!-9;-~]+)[ \t]*:[ \t]?(.*)$")
_TRAILING_COMMENT = re.compile(r"\s*\([^)]*\)\s*$")
_ANGLE_ADDRESS = re.compile(r"<([^>]*)>")
_PARAM = re.compile(
    r"""(?:^|;)\s*([\w.*-]+)\s*=\s*("(?:[^"\\]|\\.)*"|[^;\s]+)""", re.IGNORECASE
)

Headers = List[Tuple[str, str]]


def wire_text(value: str) -> str:
    """Re-decode raw 8-bit header text, assuming UTF-8 when it is valid."""
    if value.isascii():
        return value
    raw = to_wire_bytes(value)
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        return value


def unfold_headers(block: str) -> str:
    """Join continuation lines onto their header with a single space."""
    return _FOLD.sub(" ", block)


def parse_headers(block: str) -> Headers:
    """Parse a header block into ordered ``(NAME, value)`` pairs.

    Names are upper-cased. Lines that are not headers are skipped.
    """
    headers: Headers = []

    for line in unfold_headers(block).splitlines():
        if not line.strip():
            break

        match = _HEADER_LINE.match(line)
        if match:
            headers.append((match.group(1).upper(), match.group(2).strip()))

    return headers


def header_value(headers: Headers, name: str, default: str = "") -> str:
    """Return the first value for ``name`` (case-insensitive)."""
    wanted = name.upper()
    for key, value in headers:
        if key == wanted:
            return value
    return default


def get_param(header: str, param: str) -> Optional[str]:
    """Extract a parameter such as ``boundary`` or ``charset``.

    Handles quoted and bare values as well as the RFC 2231 form
    ``name*=charset'lang'value``.
    """
    if not header:
        return None

    wanted = param.lower()

    for match in _PARAM.finditer(header):
        key = match.group(1).lower()
        value = match.group(2)
        if value.startswith('"') and value.endswith('"') and len(value) >= 2:
            value = re.sub(r"\\(.)", r"\1", value[1:-1])

        if key == wanted:
            return value

        if key == wanted + "*":
            return _decode_rfc2231(value)

    return None


def _decode_rfc2231(value: str) -> str:
    parts = value.split("'", 2)
    if len(parts) != 3:
        return value

    charset, _, encoded = parts
    return decode_bytes(unquote_to_bytes(encoded), charset or None)


def content_type_of(headers: Headers) -> str:
    """Return the bare, lower-cased media type (default text/plain)."""
    value = header_value(headers, "Content-Type")
    media = value.split(";", 1)[0].strip().lower()
    return media or "text/plain"


## Addresses


def clean_address(value: str) -> str:
    """Return the bare address from ``Name <addr>`` or ``addr``."""
    match = _ANGLE_ADDRESS.search(value)
    if match:
        return match.group(1).strip()
    return value.strip().strip('"')


def split_addresses(value: str) -> List[str]:
    """Split an address list header into bare addresses."""
    if not value:
        return []

    addresses = []
    for part in _split_outside_quotes(value):
        address = clean_address(part)
        if address:
            addresses.append(address)
    return addresses


def _split_outside_quotes(value: str) -> List[str]:
    parts, current = [], []
    in_quotes = False
    in_angle = False

    for ch in value:
        if ch == '"':
            in_quotes = not in_quotes
        elif ch == "<" and not in_quotes:
            in_angle = True
        elif ch == ">" and not in_quotes:
            in_angle = False
        elif ch == "," and not in_quotes and not in_angle:
            parts.append("".join(current))
            current = []
            continue
        current.append(ch)

    parts.append("".join(current))
    return parts


## Dates


def parse_date(value: str | None) -> datetime:
    """Parse a Date header.

    Tries the common RFC 5322 layouts first, then the standard library's
    RFC 2822 parser. Unparsable dates become the current time so that a
    bad header never aborts a fetch.
    """
    if value:
        text = _TRAILING_COMMENT.sub("", value.strip())

        for fmt in DATE_FORMATS:
            try:
                return _aware(datetime.strptime(text, fmt))
            except ValueError:
                continue

        try:
            return _aware(parsedate_to_datetime(text))
        except (TypeError, ValueError, IndexError):
            logger.debug(f"Unparsable date header: {value!r}")

    return datetime.now(timezone.utc)


def _aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
