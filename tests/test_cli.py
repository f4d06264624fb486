"""
Tests for CLI argument parsing and command handlers
"""
from datetime import datetime, timezone
from unittest.mock import Mock, patch

import pytest

from mailwire.cli import (
    handle_fetch,
    handle_folders,
    handle_read,
    main,
    report_failure,
    run_mailbox_command,
    setup_argument_parser,
)
from mailwire.core.email.services import ErrorInfo, MailboxService, OperationResult
from mailwire.core.models.email import Email
from mailwire.core.models.folder import Folder


@pytest.fixture
def mailbox():
    return Mock(spec=MailboxService)


class TestArgumentParsing:
    """Test the argument parser"""

    def test_fetch_defaults(self):
        args = setup_argument_parser().parse_args(["fetch"])

        assert args.command == "fetch"
        assert args.folder is None
        assert args.limit is None
        assert not args.debug

    def test_send_collects_repeated_options(self):
        args = setup_argument_parser().parse_args([
            "send", "--to", "a@example.com", "--to", "b@example.com",
            "--cc", "c@example.com", "--subject", "Hi", "--attach", "x.txt",
        ])

        assert args.to == ["a@example.com", "b@example.com"]
        assert args.cc == ["c@example.com"]
        assert args.attach == ["x.txt"]

    def test_read_requires_number(self):
        with pytest.raises(SystemExit):
            setup_argument_parser().parse_args(["read"])

    def test_command_is_required(self):
        with pytest.raises(SystemExit):
            setup_argument_parser().parse_args([])


class TestHandlers:
    """Test command handlers over a mocked MailboxService"""

    def test_handle_folders(self, mailbox, capsys):
        mailbox.list_folders.return_value = OperationResult.success(
            [Folder("INBOX"), Folder("Archive", selectable=False)]
        )

        assert handle_folders(mailbox) == 0

        output = capsys.readouterr().out
        assert "INBOX" in output
        assert "Archive" in output

    def test_handle_fetch_renders_table(self, mailbox, capsys):
        mailbox.fetch_recent_emails.return_value = OperationResult.success([
            Email(
                message_number=7,
                sender="Ann <ann@example.com>",
                subject="Quarterly",
                date=datetime(2025, 10, 6, 9, 0, tzinfo=timezone.utc),
            )
        ])

        assert handle_fetch(mailbox, "INBOX", 10) == 0

        mailbox.fetch_recent_emails.assert_called_once_with("INBOX", 10)
        output = capsys.readouterr().out
        assert "Quarterly" in output
        assert "Ann" in output

    def test_handle_fetch_empty_folder(self, mailbox, capsys):
        mailbox.fetch_recent_emails.return_value = OperationResult.success([])

        assert handle_fetch(mailbox, "INBOX", 10) == 0
        assert "No messages in INBOX" in capsys.readouterr().out

    def test_bracketed_text_is_shown_literally(self, mailbox, capsys):
        """Square brackets in server data are not treated as rich markup"""
        mailbox.fetch_recent_emails.return_value = OperationResult.success([
            Email(message_number=1, sender="[/] <x@example.com>", subject="[/b] deal"),
        ])
        mailbox.fetch_email_range.return_value = OperationResult.success([
            Email(message_number=2, subject="Re: [urgent]", body="see list[/] here"),
        ])

        assert handle_fetch(mailbox, "INBOX", 10) == 0
        assert handle_read(mailbox, "INBOX", 2) == 0

        output = capsys.readouterr().out
        assert "[/b] deal" in output
        assert "Re: [urgent]" in output
        assert "see list[/] here" in output

    def test_handle_read_missing_message(self, mailbox, capsys):
        mailbox.fetch_email_range.return_value = OperationResult.success([])

        assert handle_read(mailbox, "INBOX", 99) == 1
        mailbox.fetch_email_range.assert_called_once_with("INBOX", 99, 99)

    def test_report_failure_appends_server_line(self, capsys):
        error = ErrorInfo(kind="protocol", message="SELECT failed", raw_response="A2 NO nope\r\n")

        assert report_failure("fetch emails", error) == 1
        assert "SELECT failed (A2 NO nope)" in capsys.readouterr().out


class TestRunMailboxCommand:
    """Test connection handling around mailbox commands"""

    def test_uses_configured_folder_and_disconnects(self, config_manager, monkeypatch):
        monkeypatch.setenv("MAILWIRE_PASSWORD", "secret")
        config_manager.set_config("fetch.default_folder", "Archive", persist=False)
        service = Mock(spec=MailboxService)
        service.connect.return_value = OperationResult.success()
        service.fetch_recent_emails.return_value = OperationResult.success([])
        args = setup_argument_parser().parse_args(["fetch"])

        with patch("mailwire.cli.MailboxService.from_config", return_value=service):
            assert run_mailbox_command(config_manager, args) == 0

        service.connect.assert_called_once_with("imap.example.com", 993, "tester", "secret")
        service.fetch_recent_emails.assert_called_once_with("Archive", 50)
        service.disconnect.assert_called_once()

    def test_connect_failure_is_reported(self, config_manager, monkeypatch):
        monkeypatch.setenv("MAILWIRE_PASSWORD", "secret")
        service = Mock(spec=MailboxService)
        service.connect.return_value = OperationResult(
            ok=False, error=ErrorInfo(kind="transport", message="refused")
        )
        args = setup_argument_parser().parse_args(["folders"])

        with patch("mailwire.cli.MailboxService.from_config", return_value=service):
            assert run_mailbox_command(config_manager, args) == 1

        service.list_folders.assert_not_called()


class TestMain:
    """Test the entry point"""

    def test_missing_account_settings_exit_code(self, config_path, capsys):
        with patch("mailwire.cli.init_logging"):
            assert main(["--config", str(config_path), "folders"]) == 1

        assert "Account settings missing: imap_server" in capsys.readouterr().out
