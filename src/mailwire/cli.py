"""Command-line interface for mailwire - argument parsing and command execution"""

import argparse
import sys
from typing import List, Optional

from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from mailwire import __version__
from mailwire.core.email.imap.constants import BatchConfig, IMAPFolders
from mailwire.core.email.services import MailboxService, SendService
from mailwire.core.email.services.results import ErrorInfo
from mailwire.core.models.attachment import Attachment
from mailwire.core.models.email import Email
from mailwire.utils.config_manager import ConfigManager
from mailwire.utils.console import get_console, print_error, print_status, print_success
from mailwire.utils.email_utils import extract_name, format_file_size, unwrap_plain_text
from mailwire.utils.errors import ErrorHandler, MailwireError, format_error_message
from mailwire.utils.logging import get_logger, init_logging

logger = get_logger(__name__)


## Argument Parsing


def add_folder_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--folder",
        default=None,
        help=f"IMAP folder (default: configured folder, usually {IMAPFolders.INBOX})",
    )


def setup_argument_parser() -> argparse.ArgumentParser:
    """Configure and return the argument parser with all subcommands"""
    parser = argparse.ArgumentParser(
        prog="mailwire",
        description="Synchronous IMAP/SMTP client - list, fetch, read and send email.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", help="Path to the JSON config file")
    parser.add_argument(
        "--debug", action="store_true", help="Log protocol traffic to the console"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("folders", help="List folders on the IMAP server")

    fetch_parser = subparsers.add_parser("fetch", help="Show the newest messages")
    add_folder_argument(fetch_parser)
    fetch_parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help=f"Number of messages to fetch (default: {BatchConfig.RECENT_COUNT})",
    )

    read_parser = subparsers.add_parser("read", help="Show one message")
    read_parser.add_argument("number", type=int, help="Message sequence number")
    add_folder_argument(read_parser)

    send_parser = subparsers.add_parser("send", help="Send a message")
    send_parser.add_argument("--to", action="append", required=True, help="Recipient")
    send_parser.add_argument("--cc", action="append", default=[], help="CC recipient")
    send_parser.add_argument("--subject", default="", help="Subject line")
    send_parser.add_argument("--body", default="", help="Plain-text body")
    send_parser.add_argument(
        "--attach", action="append", default=[], help="File to attach"
    )

    return parser


## Helpers


def get_password(config_manager: ConfigManager) -> str:
    """Password from the environment, otherwise prompt for it."""
    password = config_manager.get_password()
    if password:
        return password
    return Prompt.ask("Password", password=True, console=get_console())


def report_failure(action: str, error: Optional[ErrorInfo]) -> int:
    message = error.message if error else "unknown error"
    if error and error.raw_response.strip():
        message = f"{message} ({error.raw_response.strip().splitlines()[-1]})"
    print_error(f"Failed to {action}: {escape(message)}")
    return 1


def render_email_table(emails: List[Email], folder: str) -> Table:
    table = Table(title=f"{escape(folder)} ({len(emails)})")
    table.add_column("#", justify="right", style="cyan")
    table.add_column("From")
    table.add_column("Subject")
    table.add_column("Date", style="dim")
    table.add_column("", justify="center")

    for email in emails:
        marks = ("" if email.is_read else "●") + ("★" if email.is_flagged else "")
        if email.has_attachments():
            marks += "📎"
        date = email.date.strftime("%Y-%m-%d %H:%M") if email.date else ""
        table.add_row(
            str(email.message_number),
            escape(extract_name(email.sender)),
            escape(email.subject),
            date,
            marks,
        )

    return table


def render_email(email: Email) -> Panel:
    header = [
        f"[bold]From:[/] {escape(email.sender)}",
        f"[bold]To:[/] {escape(', '.join(email.to))}",
    ]
    if email.cc:
        header.append(f"[bold]Cc:[/] {escape(', '.join(email.cc))}")
    if email.date:
        header.append(f"[bold]Date:[/] {email.date.isoformat()}")
    for attachment in email.attachments:
        header.append(
            f"[bold]Attachment:[/] {escape(attachment.filename)} ({format_file_size(attachment.size)})"
        )

    body = escape(unwrap_plain_text(email.body)) or "(empty body)"
    text = "\n".join(header) + "\n\n" + body
    return Panel(text, title=escape(email.subject) or "(No Subject)", expand=False)


## Command Handlers


def handle_folders(mailbox: MailboxService) -> int:
    result = mailbox.list_folders()
    if not result.ok:
        return report_failure("list folders", result.error)

    table = Table(title="Folders")
    table.add_column("Name")
    table.add_column("Selectable", justify="center")
    for folder in result.value:
        table.add_row(escape(folder.name), "yes" if folder.selectable else "no")

    get_console().print(table)
    return 0


def handle_fetch(mailbox: MailboxService, folder: str, limit: int) -> int:
    result = mailbox.fetch_recent_emails(folder, limit)
    if not result.ok:
        return report_failure("fetch emails", result.error)

    if not result.value:
        print_status(f"No messages in {escape(folder)}.")
        return 0

    get_console().print(render_email_table(result.value, folder))
    return 0


def handle_read(mailbox: MailboxService, folder: str, number: int) -> int:
    result = mailbox.fetch_email_range(folder, number, number)
    if not result.ok:
        return report_failure("read email", result.error)

    if not result.value:
        print_error(f"Message {number} not found in {escape(folder)}.")
        return 1

    get_console().print(render_email(result.value[0]))
    return 0


def handle_send(config_manager: ConfigManager, args: argparse.Namespace) -> int:
    account = config_manager.require_account()
    attachments = [Attachment.from_path(path) for path in args.attach]

    sender = SendService.from_config(config_manager)
    error = sender.connect(
        account.smtp_server,
        account.smtp_port,
        account.use_tls,
        account.username,
        get_password(config_manager),
    )
    if error is not None:
        return report_failure("connect to SMTP server", error)

    try:
        stats = sender.send_email(
            args.to, args.subject, args.body, cc=args.cc, attachments=attachments
        )
    finally:
        sender.disconnect()

    if not stats.success:
        return report_failure("send email", stats.error)

    print_success(f"Email sent to {escape(', '.join(stats.recipients))}.")
    return 0


def run_mailbox_command(config_manager: ConfigManager, args: argparse.Namespace) -> int:
    account = config_manager.require_account()
    mailbox = MailboxService.from_config(config_manager)

    connected = mailbox.connect(
        account.imap_server,
        account.imap_port,
        account.username,
        get_password(config_manager),
    )
    if not connected.ok:
        return report_failure("connect to IMAP server", connected.error)

    fetch_config = config_manager.config.fetch
    try:
        if args.command == "folders":
            return handle_folders(mailbox)
        folder = args.folder or fetch_config.default_folder
        if args.command == "fetch":
            return handle_fetch(mailbox, folder, args.limit or fetch_config.recent_count)
        return handle_read(mailbox, folder, args.number)
    finally:
        mailbox.disconnect()


## Main Entry Point


def main(argv: Optional[List[str]] = None) -> int:
    """Parse arguments, set up logging and dispatch the command"""
    args = setup_argument_parser().parse_args(argv)

    try:
        config_manager = ConfigManager(config_path=args.config)
        logging_config = config_manager.config.logging
        init_logging(
            log_level="DEBUG" if args.debug else logging_config.log_level,
            console_level="DEBUG" if args.debug else logging_config.console_level,
            log_to_file=logging_config.log_to_file,
        )

        if args.command == "send":
            return handle_send(config_manager, args)
        return run_mailbox_command(config_manager, args)

    except MailwireError as e:
        ErrorHandler.handle(e, context=f"mailwire {args.command}", log_traceback=False)
        print_error(escape(format_error_message(e)))
        return 1

    except KeyboardInterrupt:
        print_status("Interrupted.")
        return 130


if __name__ == "__main__":
    sys.exit(main())
