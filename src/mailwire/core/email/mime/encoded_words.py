"""RFC 2047 encoded-word decoding and encoding.

Servers and mailers in the wild emit broken encoded words (whitespace
inside the charset, spaces after ``=?``, long words split in two), so the
input is normalised before the grammar is applied.
"""

import base64
import re
from typing import List, Optional

from mailwire.utils.logging import get_logger

from .transfer import decode_base64, decode_quoted_printable_bytes, normalize_charset

logger = get_logger(__name__)

MAX_CHARSET_MERGE_PASSES = 5

_ENCODED_WORD = re.compile(r"=\?([^?\s]+)\?([BbQq])\?([^?]*)\?=")
_LENIENT_WORD = re.compile(r"=\?([^?]+?)\?([BbQq])\?([^?]*)\?=")

_WHITESPACE = re.compile(r"\s+")
_SPACE_AFTER_OPEN = re.compile(r"=\?\s+")
_SPACE_BEFORE_CLOSE = re.compile(r"\s+\?=")
_SPLIT_CHARSET = re.compile(r"=\?([^?\s]*)\s+([^?]*?)\?([BbQq])\?")
_ADJACENT_WORDS = re.compile(r"\?=\s+=\?")

# bytes of payload per outgoing encoded word, keeps each word under 75 chars
_ENCODE_CHUNK = 45


def normalize_encoded_words(value: str) -> str:
    """Repair common encoded-word damage before decoding."""
    text = _WHITESPACE.sub(" ", value).strip()
    text = _SPACE_AFTER_OPEN.sub("=?", text)
    text = _SPACE_BEFORE_CLOSE.sub("?=", text)

    for _ in range(MAX_CHARSET_MERGE_PASSES):
        merged = _SPLIT_CHARSET.sub(r"=?\1\2?\3?", text)
        if merged == text:
            break
        text = merged

    return _ADJACENT_WORDS.sub("?==?", text)


def _word_bytes(encoding: str, payload: str) -> Optional[bytes]:
    if encoding.upper() == "B":
        data = decode_base64(payload)
        if payload and not data:
            return None
        return data

    return decode_quoted_printable_bytes(payload.replace("_", " "))


def _charset_of(raw: str) -> str:
    # drop an RFC 2231 language suffix such as "utf-8*en"
    return normalize_charset("".join(raw.split()).split("*", 1)[0])


class _Accumulator:
    """Joins decoded output, merging adjacent words in one charset."""

    def __init__(self):
        self.parts: List[str] = []
        self.charset: Optional[str] = None
        self.data = bytearray()
        self.raw: List[str] = []

    def literal(self, text: str) -> None:
        self.flush()
        self.parts.append(text)

    def word(self, charset: str, data: bytes, raw: str) -> None:
        if self.charset is not None and charset != self.charset:
            self.flush()
        self.charset = charset
        self.data += data
        self.raw.append(raw)

    def flush(self) -> None:
        if self.charset is None:
            return
        try:
            self.parts.append(bytes(self.data).decode(self.charset))
        except (LookupError, UnicodeDecodeError) as e:
            logger.debug(f"Encoded word not decodable as {self.charset}: {e}")
            self.parts.append("".join(self.raw))
        self.charset = None
        self.data = bytearray()
        self.raw = []

    def result(self) -> str:
        self.flush()
        return "".join(self.parts)


def _decode_with(pattern: re.Pattern, text: str) -> Optional[str]:
    matches = list(pattern.finditer(text))
    if not matches:
        return None

    out = _Accumulator()
    pos = 0

    for match in matches:
        if match.start() > pos:
            out.literal(text[pos : match.start()])

        charset, encoding, payload = match.groups()
        data = _word_bytes(encoding, payload)
        if data is None:
            out.literal(match.group(0))
        else:
            out.word(_charset_of(charset), data, match.group(0))

        pos = match.end()

    if pos < len(text):
        out.literal(text[pos:])

    return out.result()


def decode_header_value(value: str | None) -> str:
    """Decode every encoded word in a header value.

    Text without ``=?`` is returned unchanged. When no encoded word can be
    recognised even leniently, the normalised text is returned.
    """
    if not value:
        return value or ""

    if "=?" not in value:
        return value

    normalized = normalize_encoded_words(value)

    decoded = _decode_with(_ENCODED_WORD, normalized)
    if decoded is None:
        decoded = _decode_with(_LENIENT_WORD, normalized)

    return normalized if decoded is None else decoded


decode_subject = decode_header_value


def encode_header_value(value: str, charset: str = "UTF-8") -> str:
    """Encode a header value as B encoded words when it is not ASCII."""
    if value.isascii():
        return value

    words = []
    chunk: List[str] = []
    size = 0

    for ch in value:
        width = len(ch.encode(charset))
        if chunk and size + width > _ENCODE_CHUNK:
            words.append("".join(chunk))
            chunk, size = [], 0
        chunk.append(ch)
        size += width

    if chunk:
        words.append("".join(chunk))

    return " ".join(
        f"=?{charset}?B?{base64.b64encode(word.encode(charset)).decode('ascii')}?="
        for word in words
    )
