"""
Tests for the pure IMAP response parsers
"""
import pytest

from mailwire.core.email.imap.parser import (
    build_sequence_set,
    extract_folder_name,
    parse_capabilities,
    parse_fetch_response,
    parse_flags,
    parse_folder_list,
    parse_message_count,
    parse_search_response,
    quote_imap_string,
    split_fetch_blocks,
    tagged_status,
)


def literal_block(number, item, payload, flags=""):
    """A FETCH block as read off the wire (latin-1 text)"""
    wire = payload.encode("utf-8").decode("latin-1")
    return f"* {number} FETCH (FLAGS ({flags}) {item} {{{len(wire)}}}\r\n{wire})\r\n"


class TestCommandBuilding:
    """Test argument quoting and sequence sets"""

    @pytest.mark.parametrize("numbers, expected", [
        ([1, 2, 3, 5, 7, 8, 9], "1:3,5,7:9"),
        ([4], "4"),
        ([9, 3, 1, 2, 2], "1:3,9"),
        ([], ""),
    ])
    def test_build_sequence_set(self, numbers, expected):
        """Consecutive runs collapse into ranges"""
        assert build_sequence_set(numbers) == expected

    def test_quote_imap_string_escapes(self):
        """Backslashes and quotes are escaped inside the quotes"""
        assert quote_imap_string('a"b\\c') == '"a\\"b\\\\c"'

    @pytest.mark.parametrize("value", ["a\r\nA999 DELETE INBOX", "line\nbreak", "cr\ronly"])
    def test_quote_imap_string_rejects_line_breaks(self, value):
        """CR and LF cannot appear inside a quoted string"""
        with pytest.raises(ValueError):
            quote_imap_string(value)


class TestSimpleResponses:
    """Test EXISTS, CAPABILITY, SEARCH and tagged status parsing"""

    def test_tagged_status(self):
        """The status word and text are split off the tag"""
        assert tagged_status("A004 NO [ALERT] Over quota", "A004") == ("NO", "[ALERT] Over quota")

    def test_message_count(self):
        """EXISTS is read from anywhere in the response"""
        response = "* FLAGS (\\Seen)\r\n* 17 EXISTS\r\n* 2 RECENT\r\nA002 OK\r\n"
        assert parse_message_count(response) == 17

    def test_message_count_zero_and_missing(self):
        """An empty folder and a missing EXISTS both count as zero"""
        assert parse_message_count("* 0 EXISTS\r\nA002 OK\r\n") == 0
        assert parse_message_count("A002 OK\r\n") == 0

    def test_capabilities_from_code_and_line(self):
        """Both the response code and the untagged line are understood"""
        greeting = "* OK [CAPABILITY IMAP4rev1 IDLE] ready"
        response = "* CAPABILITY IMAP4rev1 MOVE UIDPLUS\r\nA001 OK\r\n"

        assert parse_capabilities(greeting) == {"IMAP4REV1", "IDLE"}
        assert {"MOVE", "UIDPLUS"} <= parse_capabilities(response)

    def test_search_response(self):
        """Numbers are collected from every SEARCH line"""
        assert parse_search_response("* SEARCH 1 4 9\r\nA005 OK\r\n") == [1, 4, 9]
        assert parse_search_response("* SEARCH\r\nA005 OK\r\n") == []


class TestFolders:
    """Test LIST parsing"""

    def test_folder_list(self):
        """One folder per LIST line, with Noselect honoured"""
        response = (
            '* LIST (\\HasNoChildren) "/" "INBOX"\r\n'
            '* LIST (\\Noselect \\HasChildren) "/" "[Gmail]"\r\n'
            '* LIST (\\HasNoChildren \\Sent) "/" "[Gmail]/Sent Mail"\r\n'
            "A003 OK LIST completed\r\n"
        )

        folders = parse_folder_list(response)

        assert [folder.name for folder in folders] == ["INBOX", "[Gmail]", "[Gmail]/Sent Mail"]
        assert [folder.selectable for folder in folders] == [True, False, True]
        assert folders[2].full_path == "[Gmail]/Sent Mail"

    def test_unquoted_folder_name(self):
        """A bare atom after the delimiter is the name"""
        assert extract_folder_name('* LIST (\\HasNoChildren) "." Archive') == "Archive"

    def test_flags_are_deduplicated_without_backslashes(self):
        """System flags lose their backslash and repeats are dropped"""
        assert parse_flags("FLAGS (\\Seen \\Flagged \\Seen $Label)") == ["Seen", "Flagged", "$Label"]
        assert parse_flags("no flags here") == []


class TestFetchResponses:
    """Test FETCH block splitting and email building"""

    def test_literal_content_is_not_split(self):
        """A FETCH-looking line inside a literal stays inside its block"""
        message = "Subject: Trap\r\n\r\nline one\r\n* 9 FETCH (FLAGS ())\r\nline two"
        response = (
            literal_block(1, "BODY[]", message)
            + literal_block(2, "BODY[]", "Subject: Second\r\n\r\nbody")
            + "A003 OK FETCH completed\r\n"
        )

        blocks = split_fetch_blocks(response)

        assert [number for number, _ in blocks] == [1, 2]

    def test_headers_are_decoded(self):
        """Encoded words and raw UTF-8 headers both come out as text"""
        message = (
            "From: \"Zoë\" <zoe@example.com>\r\n"
            "To: a@example.com, \"Doe, John\" <john@example.com>\r\n"
            "Cc: c@example.com\r\n"
            "Subject: =?UTF-8?B?SGVsbG8gV29ybGQ=?=\r\n"
            "Date: Tue, 7 Oct 2025 08:00:00 +0200 (CEST)\r\n"
            "Message-ID: <m1@example.com>\r\n"
            "\r\n"
            "Body"
        )

        email = parse_fetch_response(literal_block(5, "BODY[]", message, "\\Seen"))[0]

        assert email.message_number == 5
        assert email.sender == "zoe@example.com"
        assert email.to == ["a@example.com", "john@example.com"]
        assert email.cc == ["c@example.com"]
        assert email.subject == "Hello World"
        assert email.date.utcoffset().total_seconds() == 7200
        assert email.message_id == "<m1@example.com>"
        assert email.is_read
        assert email.body == "Body"

    def test_raw_utf8_subject(self):
        """8-bit header bytes are re-read as UTF-8"""
        email = parse_fetch_response(literal_block(1, "BODY[]", "Subject: Café\r\n\r\nx"))[0]

        assert email.subject == "Café"

    def test_size_counts_message_octets(self):
        """size is the byte length of the full message literal"""
        message = "Subject: é\r\n\r\nbody"

        email = parse_fetch_response(literal_block(1, "BODY[]", message))[0]

        assert email.size == len(message.encode("utf-8"))

    def test_block_without_literal_keeps_number(self):
        """A FLAGS-only block still yields an Email"""
        emails = parse_fetch_response("* 3 FETCH (FLAGS (\\Flagged))\r\nA004 OK\r\n")

        assert len(emails) == 1
        assert emails[0].message_number == 3
        assert emails[0].is_flagged
        assert emails[0].subject == ""
