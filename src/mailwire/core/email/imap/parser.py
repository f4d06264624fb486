"""Pure parsers for IMAP responses.

A response is handled as the exact text read off the wire (latin-1, one
character per byte). Literal payloads keep their ``{n}\\r\\n`` framing so
they can be skipped by count instead of being scanned.
"""

import re
from typing import Dict, Iterable, List, Optional, Set, Tuple

from mailwire.core.email.mime.body import decode_body_text, decode_message, split_head_body
from mailwire.core.email.mime.encoded_words import decode_subject
from mailwire.core.email.mime.headers import (
    Headers,
    parse_date,
    parse_headers,
    split_addresses,
    wire_text,
)
from mailwire.core.models.email import Email, MimeBody
from mailwire.core.models.folder import Folder
from mailwire.utils.logging import get_logger

from .constants import IMAPFlags

logger = get_logger(__name__)

LITERAL_AT_EOL = re.compile(r"\{(\d+)\}$")

_LITERAL_MARKER = re.compile(r"\{(\d+)\}\r\n")
_FETCH_START = re.compile(r"^\* (\d+) FETCH\b", re.IGNORECASE)
_EXISTS = re.compile(r"^\* (\d+) EXISTS", re.MULTILINE | re.IGNORECASE)
_FLAGS = re.compile(r"FLAGS \(([^)]*)\)", re.IGNORECASE)
_ITEM_NAME = re.compile(
    r"(BODY(?:\.PEEK)?\[[^\]]*\](?:<\d+>)?|RFC822(?:\.HEADER|\.TEXT)?)\s*$",
    re.IGNORECASE,
)
_LIST_ATTRIBUTES = re.compile(r"^\* LIST \(([^)]*)\)", re.IGNORECASE)
_CAPABILITY_CODE = re.compile(r"\[CAPABILITY ([^\]]*)\]", re.IGNORECASE)
_CAPABILITY_LINE = re.compile(r"^\* CAPABILITY (.*)$", re.MULTILINE | re.IGNORECASE)
_SEARCH_LINE = re.compile(r"^\* SEARCH\b(.*)$", re.MULTILINE | re.IGNORECASE)
_UNQUOTE = re.compile(r"\\(.)")


## Command Building


def quote_imap_string(value: str) -> str:
    """Quote a string argument, escaping backslashes and double quotes.

    Raises:
        ValueError: If the value contains CR or LF, which a quoted string
            cannot carry
    """
    if "\r" in value or "\n" in value:
        raise ValueError("IMAP quoted strings cannot contain line breaks")
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def build_sequence_set(numbers: Iterable[int]) -> str:
    """Compress message numbers into an IMAP sequence set.

    ``[1, 2, 3, 5, 7, 8, 9]`` becomes ``"1:3,5,7:9"``.
    """
    ordered = sorted(set(numbers))
    if not ordered:
        return ""

    ranges = []
    start = prev = ordered[0]

    for number in ordered[1:]:
        if number == prev + 1:
            prev = number
            continue
        ranges.append(f"{start}:{prev}" if prev != start else str(start))
        start = prev = number

    ranges.append(f"{start}:{prev}" if prev != start else str(start))
    return ",".join(ranges)


## Simple Responses


def tagged_status(line: str, tag: str) -> Tuple[str, str]:
    """Split ``<tag> OK text`` into (``OK``, ``text``)."""
    rest = line[len(tag) :].strip()
    status, _, text = rest.partition(" ")
    return status.upper(), text.strip()


def parse_message_count(response: str) -> int:
    """Return the ``* n EXISTS`` count, or 0 when absent."""
    match = _EXISTS.search(response)
    return int(match.group(1)) if match else 0


def parse_capabilities(response: str) -> Set[str]:
    """Collect capability atoms from a greeting or CAPABILITY response."""
    atoms: Set[str] = set()
    for pattern in (_CAPABILITY_CODE, _CAPABILITY_LINE):
        for match in pattern.finditer(response):
            atoms.update(token.upper() for token in match.group(1).split())
    return atoms


def parse_search_response(response: str) -> List[int]:
    """Return the message numbers of all ``* SEARCH`` lines."""
    numbers = []
    for match in _SEARCH_LINE.finditer(response):
        numbers.extend(int(token) for token in match.group(1).split() if token.isdigit())
    return numbers


def extract_folder_name(line: str) -> Optional[str]:
    """Return the folder name of a LIST line.

    That is the last quoted token, or a trailing unquoted atom. Folder names
    containing a literal quote are not handled.
    """
    end = line.rfind('"')
    tail = line[end + 1 :].strip()
    if tail and end >= 0:
        return tail

    if end > 0:
        start = line.rfind('"', 0, end)
        if start >= 0:
            return _UNQUOTE.sub(r"\1", line[start + 1 : end])

    tokens = line.split()
    return tokens[-1] if len(tokens) > 2 else None


def parse_folder_list(response: str) -> List[Folder]:
    """Build one Folder per ``* LIST`` line."""
    folders = []

    for line in response.splitlines():
        if not line.upper().startswith("* LIST"):
            continue

        name = extract_folder_name(line)
        if not name:
            continue

        attributes = _LIST_ATTRIBUTES.match(line)
        flags = attributes.group(1).lower().split() if attributes else []

        folders.append(
            Folder(name=name, selectable=IMAPFlags.NOSELECT.lower() not in flags)
        )

    return folders


def parse_flags(text: str) -> List[str]:
    """Extract flags from ``FLAGS (...)`` with leading backslashes removed."""
    match = _FLAGS.search(text)
    if not match:
        return []

    flags: List[str] = []
    for token in match.group(1).split():
        flag = token.lstrip("\\")
        if flag and flag not in flags:
            flags.append(flag)
    return flags


## FETCH Responses


def split_logical_lines(response: str) -> List[str]:
    """Split a response into logical lines, keeping literals inside them."""
    lines = []
    start = pos = 0

    while pos < len(response):
        newline = response.find("\n", pos)
        if newline == -1:
            break

        segment = response[pos:newline].rstrip("\r")
        literal = LITERAL_AT_EOL.search(segment)
        if literal:
            pos = newline + 1 + int(literal.group(1))
            continue

        lines.append(response[start : newline + 1])
        start = pos = newline + 1

    if start < len(response):
        lines.append(response[start:])

    return lines


def split_fetch_blocks(response: str) -> List[Tuple[int, str]]:
    """Return ``(message_number, block)`` for every ``* n FETCH`` response."""
    blocks = []
    for line in split_logical_lines(response):
        match = _FETCH_START.match(line)
        if match:
            blocks.append((int(match.group(1)), line))
    return blocks


def scan_block(block: str) -> Tuple[str, Dict[str, str]]:
    """Separate a FETCH block into its outer text and named literals.

    Returns:
        Tuple of (text outside literals, {ITEM NAME: literal text})
    """
    outer: List[str] = []
    literals: Dict[str, str] = {}
    pos = 0

    while True:
        marker = _LITERAL_MARKER.search(block, pos)
        if not marker:
            outer.append(block[pos:])
            break

        prefix = block[pos : marker.start()]
        outer.append(prefix)

        size = int(marker.group(1))
        data = block[marker.end() : marker.end() + size]

        item = _ITEM_NAME.search(prefix)
        if item:
            literals[item.group(1).upper()] = data

        pos = marker.end() + size

    return "".join(outer), literals


def _find_literal(literals: Dict[str, str], *prefixes: str) -> Optional[str]:
    for name, data in literals.items():
        normalized = name.replace(".PEEK", "")
        if any(normalized.startswith(prefix) for prefix in prefixes):
            return data
    return None


def apply_headers(email: Email, headers: Headers) -> None:
    """Dispatch parsed header fields onto an Email."""
    for name, raw_value in headers:
        value = wire_text(raw_value)

        if name == "FROM" and not email.sender:
            addresses = split_addresses(value)
            email.sender = addresses[0] if addresses else value
        elif name == "TO" and not email.to:
            email.to = split_addresses(value)
        elif name == "CC" and not email.cc:
            email.cc = split_addresses(value)
        elif name == "SUBJECT" and not email.subject:
            email.subject = decode_subject(value)
        elif name == "DATE" and email.date is None:
            email.date = parse_date(value)
        elif name == "MESSAGE-ID" and not email.message_id:
            email.message_id = value


def parse_fetch_block(block: str, message_number: int) -> Email:
    """Build an Email from one FETCH block.

    Each stage is independent; a failure is logged and the fields parsed
    so far are kept.
    """
    email = Email(message_number=message_number)

    try:
        outer, literals = scan_block(block)
        email.flags = parse_flags(outer)
    except Exception as e:
        logger.warning(
            f"Unreadable FETCH block for message {message_number}: {e}",
        )
        return email

    header_section = _find_literal(literals, "BODY[HEADER")
    full_message = _find_literal(literals, "BODY[]", "RFC822")

    try:
        if header_section is not None:
            head, _ = split_head_body(header_section)
            apply_headers(email, parse_headers(head))
        if full_message is not None:
            head, _ = split_head_body(full_message)
            apply_headers(email, parse_headers(head))
    except Exception as e:
        logger.warning(f"Headers of message {message_number} not fully parsed: {e}")

    if full_message is not None:
        email.size = len(full_message)
        try:
            email.apply_body(decode_message(full_message))
        except Exception as e:
            logger.warning(f"Body of message {message_number} not decoded: {e}")

    return email


def parse_fetch_response(response: str) -> List[Email]:
    """Build one Email per FETCH block, in response order."""
    return [parse_fetch_block(block, number) for number, block in split_fetch_blocks(response)]


def parse_body_text_response(response: str) -> MimeBody:
    """Decode the ``BODY[TEXT]`` literal of a single-message FETCH."""
    for _, block in split_fetch_blocks(response):
        _, literals = scan_block(block)
        text = _find_literal(literals, "BODY[TEXT]")
        if text is not None:
            return decode_body_text(text)
    return MimeBody()
