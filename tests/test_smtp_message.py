"""
Tests for outgoing message serialisation
"""
from datetime import datetime, timezone

import pytest

from mailwire.core.email.mime.body import decode_message
from mailwire.core.email.mime.encoded_words import decode_header_value
from mailwire.core.email.smtp.message import body_lines, build_message_lines, dot_stuff
from mailwire.core.models.attachment import Attachment
from mailwire.core.models.email import Email

FIXED_NOW = datetime(2025, 10, 6, 9, 0, tzinfo=timezone.utc)


def header(lines, name):
    prefix = f"{name}: "
    return next(line[len(prefix):] for line in lines if line.startswith(prefix))


class TestPlainMessage:
    """Test single-part messages"""

    def test_header_order_and_body(self, sample_email):
        lines = build_message_lines(sample_email, now=FIXED_NOW)

        names = [line.split(":", 1)[0] for line in lines[: lines.index("")]]
        assert names == [
            "Date",
            "From",
            "To",
            "Subject",
            "MIME-Version",
            "Content-Type",
            "Content-Transfer-Encoding",
        ]
        assert header(lines, "Date") == "Mon, 06 Oct 2025 09:00:00 +0000"
        assert header(lines, "Content-Type") == "text/plain; charset=UTF-8"
        assert lines[-1] == "Test email body"

    def test_cc_header_only_when_present(self, sample_email):
        assert not any(line.startswith("Cc:") for line in build_message_lines(sample_email))

        sample_email.add_cc("carol@example.com")
        sample_email.add_cc("dave@example.com")

        lines = build_message_lines(sample_email)
        assert header(lines, "Cc") == "carol@example.com, dave@example.com"

    def test_missing_subject_gets_placeholder(self):
        email = Email.compose("a@example.com", "b@example.com", "", "x")

        assert header(build_message_lines(email), "Subject") == "(No Subject)"

    def test_non_ascii_subject_is_encoded(self):
        email = Email.compose("a@example.com", "b@example.com", "Grüße", "x")

        subject = header(build_message_lines(email), "Subject")

        assert subject.isascii()
        assert decode_header_value(subject) == "Grüße"


class TestMultipartMessage:
    """Test messages with attachments"""

    def test_attachment_round_trips_through_decoder(self, sample_email):
        """The serialised message decodes back to body and attachment"""
        sample_email.add_attachment(
            Attachment("notes.txt", "text/plain", b"attached bytes")
        )

        lines = build_message_lines(sample_email, now=FIXED_NOW, boundary="BOUNDARY_1")

        assert header(lines, "Content-Type") == 'multipart/mixed; boundary="BOUNDARY_1"'
        assert lines[-1] == "--BOUNDARY_1--"

        decoded = decode_message("\r\n".join(lines))
        assert decoded.plain_text == "Test email body"
        assert len(decoded.attachments) == 1
        assert decoded.attachments[0].filename == "notes.txt"
        assert decoded.attachments[0].data == b"attached bytes"


class TestLineHelpers:
    """Test line splitting and dot-stuffing"""

    def test_body_lines_accepts_any_line_ending(self):
        assert body_lines("a\r\nb\nc\rd") == ["a", "b", "c", "d"]
        assert body_lines("") == [""]

    def test_dot_stuff(self):
        assert dot_stuff([".", "..x", "a.b"]) == ["..", "...x", "a.b"]


class TestHeaderInjection:
    """Test that header values cannot break the message framing"""

    def test_subject_with_crlf_is_refused(self):
        """A subject carrying an end-of-data sequence is rejected"""
        email = Email.compose(
            "a@example.com", "b@example.com", "Hi\r\n.\r\nMAIL FROM:<evil@x.com>", "x"
        )

        with pytest.raises(ValueError):
            build_message_lines(email)

    @pytest.mark.parametrize("field, value", [
        ("sender", "a@example.com\r\nBcc: c@example.com"),
        ("to", ["b@example.com\nX-Injected: 1"]),
        ("cc", ["c@example.com\r"]),
    ])
    def test_address_headers_with_line_breaks_are_refused(self, sample_email, field, value):
        setattr(sample_email, field, value)

        with pytest.raises(ValueError):
            build_message_lines(sample_email)

    def test_attachment_filename_with_line_break_is_refused(self, sample_email):
        sample_email.add_attachment(Attachment("a\r\n.txt", "text/plain", b"x"))

        with pytest.raises(ValueError):
            build_message_lines(sample_email, boundary="B")

    def test_stuffed_output_never_ends_data_early(self, sample_email):
        """Only the final terminator may be a lone dot"""
        sample_email.body = "line\r\n.\r\n..\r\nend"

        wire = "\r\n".join(dot_stuff(build_message_lines(sample_email))) + "\r\n"

        assert "\r\n.\r\n" not in wire
