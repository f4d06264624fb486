"""
Tests for RFC 2047 header decoding and encoding
"""
import pytest

from mailwire.core.email.mime.encoded_words import (
    decode_header_value,
    encode_header_value,
    normalize_encoded_words,
)


class TestDecodeHeaderValue:
    """Test encoded-word decoding"""

    @pytest.mark.parametrize("plain", [
        "Meeting notes",
        "Re: [list] 50% off?",
        "",
    ])
    def test_plain_text_is_unchanged(self, plain):
        """Text without encoded words passes through"""
        assert decode_header_value(plain) == plain

    def test_none_becomes_empty(self):
        assert decode_header_value(None) == ""

    def test_base64_word(self):
        """B-encoded words are decoded in their charset"""
        assert decode_header_value("=?UTF-8?B?SGVsbG8gV29ybGQ=?=") == "Hello World"

    def test_q_word_with_underscores(self):
        """Q-encoding maps underscores to spaces and =XX to bytes"""
        assert decode_header_value("=?ISO-8859-1?Q?Caf=E9_cr=E8me?=") == "Café crème"

    def test_adjacent_words_join_without_space(self):
        """Whitespace between two encoded words is dropped"""
        value = "=?UTF-8?B?SGVsbG8g?= =?UTF-8?B?V29ybGQ=?="
        assert decode_header_value(value) == "Hello World"

    def test_split_multibyte_character_across_words(self):
        """Bytes of one character split over two words still decode"""
        # "é" is C3 A9 in UTF-8, split across the two words
        value = "=?UTF-8?Q?caf=C3?= =?UTF-8?Q?=A9?="
        assert decode_header_value(value) == "café"

    def test_space_inside_charset_is_repaired(self):
        """A charset broken by folding whitespace is rejoined"""
        assert decode_header_value("=?U TF-8?B?YWJj?=") == "abc"

    def test_mixed_literal_and_encoded_text(self):
        """Literal text around an encoded word is kept"""
        value = "Re: =?UTF-8?Q?R=C3=A9union?= tomorrow"
        assert decode_header_value(value) == "Re: Réunion tomorrow"

    def test_unknown_charset_keeps_raw_word(self):
        """A word in an unknown charset is left as it was"""
        value = "=?X-UNKNOWN?Q?abc?="
        assert decode_header_value(value) == value

    def test_decoding_is_idempotent_on_output(self):
        """Decoding already decoded text changes nothing"""
        once = decode_header_value("=?UTF-8?B?SGVsbG8gV29ybGQ=?=")
        assert decode_header_value(once) == once


class TestNormalize:
    """Test encoded-word repair"""

    def test_normalize_merges_split_charset_and_adjacent_words(self):
        assert normalize_encoded_words("=?U TF-8?B?YQ==?= =?UTF-8?B?Yg==?=") == (
            "=?UTF-8?B?YQ==?==?UTF-8?B?Yg==?="
        )


class TestEncodeHeaderValue:
    """Test outgoing header encoding"""

    def test_ascii_is_untouched(self):
        assert encode_header_value("Quarterly report") == "Quarterly report"

    def test_non_ascii_round_trips(self):
        """Encoded output decodes back to the original text"""
        subject = "Grüße aus Köln"
        encoded = encode_header_value(subject)

        assert encoded.startswith("=?UTF-8?B?")
        assert decode_header_value(encoded) == subject

    def test_long_values_are_split_into_short_words(self):
        """No encoded word exceeds the RFC 2047 line limit"""
        encoded = encode_header_value("ü" * 100)

        words = encoded.split(" ")
        assert len(words) > 1
        assert all(len(word) <= 75 for word in words)
        assert decode_header_value(encoded) == "ü" * 100
