"""
Tests for transfer encodings and charset handling
"""
import base64

import pytest

from mailwire.core.email.mime.transfer import (
    decode_base64,
    decode_binary_payload,
    decode_bytes,
    decode_quoted_printable,
    decode_transfer_encoding,
    encode_base64_lines,
    encode_quoted_printable,
    looks_like_base64,
    normalize_charset,
)


class TestCharsets:
    """Test charset normalisation and tolerant decoding"""

    @pytest.mark.parametrize("raw, expected", [
        (None, "UTF-8"),
        ("", "UTF-8"),
        ('"utf-8"', "UTF-8"),
        ("  us-ascii ", normalize_charset("US-ASCII")),
    ])
    def test_normalize_charset(self, raw, expected):
        assert normalize_charset(raw) == expected

    def test_unknown_charset_falls_back_to_raw(self):
        """Undecodable bytes come back as latin-1 text, never an error"""
        assert decode_bytes(b"caf\xe9", "x-bogus") == "caf\xe9"

    def test_invalid_utf8_falls_back(self):
        assert decode_bytes(b"\xff\xfe", "utf-8") == "\xff\xfe"


class TestBase64:
    """Test lenient base64 decoding"""

    def test_ignores_line_breaks_and_junk(self):
        assert decode_base64("SGVs\r\nbG8=\r\n") == b"Hello"

    def test_adds_missing_padding(self):
        assert decode_base64("SGVsbG8") == b"Hello"

    def test_impossible_length_returns_empty(self):
        """A single dangling character cannot be decoded"""
        assert decode_base64("QUJDR") == b""

    def test_encode_lines_are_bounded(self):
        """Outgoing base64 is wrapped at 76 characters"""
        data = bytes(range(256)) * 2
        lines = encode_base64_lines(data, 76)

        assert all(len(line) <= 76 for line in lines)
        assert base64.b64decode("".join(lines)) == data

    def test_looks_like_base64(self):
        assert looks_like_base64("SGVsbG8gV29ybGQ=\r\nSGVsbG8=")
        assert not looks_like_base64("Hello, how are you doing today?")


class TestQuotedPrintable:
    """Test quoted-printable decoding"""

    def test_soft_break_joins_words(self):
        """A soft line break and the indentation after it vanish"""
        assert decode_quoted_printable("notice=\r\n d") == "noticed"

    def test_hex_escapes_use_charset(self):
        assert decode_quoted_printable("Caf=C3=A9", "utf-8") == "Café"
        assert decode_quoted_printable("Caf=E9", "iso-8859-1") == "Café"

    def test_round_trip_ascii(self):
        """Encoding then decoding ASCII text gives the same text"""
        text = "Plain ASCII text with = signs"
        encoded = encode_quoted_printable(text)

        assert "=3D" in encoded
        assert decode_quoted_printable(encoded) == text

    def test_whitespace_is_collapsed(self):
        assert decode_quoted_printable("one\r\n\r\n  two") == "one two"


class TestDispatch:
    """Test decoding by Content-Transfer-Encoding"""

    def test_text_part_base64(self):
        payload = base64.b64encode("Grüße".encode("utf-8")).decode("ascii")
        assert decode_transfer_encoding(payload, "base64", "utf-8") == "Grüße"

    def test_text_part_8bit_wire_text(self):
        """8bit text read as latin-1 is re-decoded in its charset"""
        wire = "Grüße".encode("utf-8").decode("latin-1")
        assert decode_transfer_encoding(wire, "8bit", "utf-8") == "Grüße"

    def test_mislabelled_zip_is_base64_decoded(self):
        """A ZIP body labelled 7bit is still decoded from base64"""
        payload = base64.b64encode(b"PK\x03\x04rest").decode("ascii")
        assert decode_binary_payload(payload, "7bit") == b"PK\x03\x04rest"

    def test_binary_payload_without_encoding_guesses_base64(self):
        payload = base64.b64encode(b"\x00\x01binary").decode("ascii")
        assert decode_binary_payload(payload, None) == b"\x00\x01binary"
