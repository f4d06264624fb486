"""Content-Transfer-Encoding and charset handling.

Every function here is tolerant: malformed input degrades to an empty or
raw result instead of raising.
"""

import base64
import binascii
import quopri
import re

from mailwire.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_CHARSET = "UTF-8"

_CHARSET_ALIASES = {
    "UTF8": "UTF-8",
    "UTF-8": "UTF-8",
    "ISO-8859-1": "ISO-8859-1",
    "ISO8859-1": "ISO-8859-1",
    "LATIN1": "ISO-8859-1",
    "LATIN-1": "ISO-8859-1",
    "US-ASCII": "US-ASCII",
    "ASCII": "US-ASCII",
}

_NON_BASE64 = re.compile(r"[^A-Za-z0-9+/]")
_BASE64_LINE = re.compile(r"^[A-Za-z0-9+/=\s]+$")
_QP_LINE_ARTIFACT = re.compile(r"^\d{1,4}\s{5,}=")
_QP_SOFT_BREAK = re.compile(r"=[ \t]*\r?\n[ \t]*")
_QP_ESCAPE = re.compile(r"=([0-9A-Fa-f]{2})")
_WHITESPACE = re.compile(r"\s+")

# Base64 of "PK", the ZIP local file header
ZIP_BASE64_SIGNATURE = "UEs"
BASE64_SAMPLE_SIZE = 1000
BASE64_RATIO = 0.95


## Charsets


def normalize_charset(charset: str | None) -> str:
    """Map common charset spellings to a canonical name.

    Unknown names are returned upper-cased and otherwise untouched.
    """
    if not charset:
        return DEFAULT_CHARSET

    cleaned = charset.strip().strip("\"'").upper()
    if not cleaned:
        return DEFAULT_CHARSET

    return _CHARSET_ALIASES.get(cleaned, cleaned)


def decode_bytes(data: bytes, charset: str | None = None) -> str:
    """Decode bytes in the given charset.

    On an unknown charset or invalid data the bytes are returned as raw
    latin-1 text rather than raising.
    """
    name = normalize_charset(charset)

    try:
        return data.decode(name)
    except (LookupError, UnicodeDecodeError) as e:
        logger.debug(f"Charset decode failed, keeping raw text: {e}")
        return data.decode("latin-1")


def to_wire_bytes(text: str) -> bytes:
    """Recover the original octets of text read off the wire."""
    try:
        return text.encode("latin-1")
    except UnicodeEncodeError:
        return text.encode("utf-8")


## Base64


def decode_base64(text: str | bytes) -> bytes:
    """Decode Base64, ignoring any characters outside the alphabet.

    Returns b"" when the input cannot be made valid.
    """
    if isinstance(text, bytes):
        text = text.decode("latin-1")

    cleaned = _NON_BASE64.sub("", text)
    if not cleaned or len(cleaned) % 4 == 1:
        return b""

    cleaned += "=" * (-len(cleaned) % 4)

    try:
        return base64.b64decode(cleaned, validate=True)
    except (binascii.Error, ValueError) as e:
        logger.debug(f"Invalid base64 payload: {e}")
        return b""


def encode_base64_lines(data: bytes, line_length: int = 76) -> list[str]:
    """Base64-encode ``data`` as lines of at most ``line_length`` chars."""
    chunk = line_length // 4 * 3
    return [
        base64.b64encode(data[i : i + chunk]).decode("ascii")
        for i in range(0, len(data), chunk)
    ]


def looks_like_base64(text: str) -> bool:
    """Guess whether text is a Base64 body from a leading sample."""
    sample = text[:BASE64_SAMPLE_SIZE]
    stripped = "".join(sample.split())
    if not stripped:
        return False

    in_alphabet = sum(
        1 for ch in stripped if ch.isascii() and (ch.isalnum() or ch in "+/=")
    )
    return in_alphabet / len(stripped) >= BASE64_RATIO


def _is_zip_base64(text: str) -> bool:
    stripped = text.strip()
    return stripped.startswith(ZIP_BASE64_SIGNATURE) and bool(
        _BASE64_LINE.match(stripped)
    )


## Quoted-Printable


def decode_quoted_printable_bytes(text: str) -> bytes:
    """Undo quoted-printable escaping and return the raw octets.

    Soft line breaks are removed outright so that ``notice=\\r\\n d``
    becomes ``noticed``.
    """
    cleaned = _QP_LINE_ARTIFACT.sub("=", text)
    cleaned = _QP_SOFT_BREAK.sub("", cleaned)

    out = bytearray()
    pos = 0
    for match in _QP_ESCAPE.finditer(cleaned):
        out += to_wire_bytes(cleaned[pos : match.start()])
        out.append(int(match.group(1), 16))
        pos = match.end()
    out += to_wire_bytes(cleaned[pos:])

    return bytes(out)


def decode_quoted_printable(text: str, charset: str | None = None) -> str:
    """Decode a quoted-printable body to text with whitespace collapsed."""
    decoded = decode_bytes(decode_quoted_printable_bytes(text), charset)
    decoded = decoded.rstrip("=")
    return _WHITESPACE.sub(" ", decoded).strip()


def encode_quoted_printable(text: str, charset: str = DEFAULT_CHARSET) -> str:
    """Quoted-printable encode text (used for outgoing parts and tests)."""
    raw = text.encode(normalize_charset(charset), errors="replace")
    return quopri.encodestring(raw).decode("ascii")


## Dispatch


def decode_transfer_encoding(
    payload: str, encoding: str | None, charset: str | None = None
) -> str:
    """Decode a text part body according to its transfer encoding."""
    name = (encoding or "7bit").strip().lower()

    if name == "base64":
        return decode_bytes(decode_base64(payload), charset)

    if name == "quoted-printable":
        return decode_quoted_printable(payload, charset)

    if _is_zip_base64(payload):
        logger.debug("Payload labelled %s looks like base64, redecoding", name)
        return decode_bytes(decode_base64(payload), charset)

    return decode_bytes(to_wire_bytes(payload), charset)


def decode_binary_payload(payload: str, encoding: str | None) -> bytes:
    """Decode an attachment body to its raw bytes."""
    name = (encoding or "").strip().lower()

    if name == "base64":
        return decode_base64(payload)

    if name == "quoted-printable":
        return decode_quoted_printable_bytes(payload)

    if name in ("7bit", "8bit", "binary"):
        if _is_zip_base64(payload):
            return decode_base64(payload)
        return to_wire_bytes(payload)

    if looks_like_base64(payload):
        return decode_base64(payload)

    return to_wire_bytes(payload)
