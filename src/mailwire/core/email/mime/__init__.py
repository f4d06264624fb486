"""MIME decoding: headers, encoded words, transfer encodings and bodies."""

from .body import decode_body_text, decode_message
from .encoded_words import decode_header_value, decode_subject, encode_header_value
from .html_text import html_to_text
from .transfer import (
    decode_base64,
    decode_quoted_printable,
    encode_quoted_printable,
    normalize_charset,
)

__all__ = [
    "decode_base64",
    "decode_body_text",
    "decode_header_value",
    "decode_message",
    "decode_quoted_printable",
    "decode_subject",
    "encode_header_value",
    "encode_quoted_printable",
    "html_to_text",
    "normalize_charset",
]
