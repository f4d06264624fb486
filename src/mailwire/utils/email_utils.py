"""Email utilities for validating addresses and tidying fetched mail"""

import re
from typing import List, Optional, Tuple

from email_validator import EmailNotValidError, validate_email

from mailwire.core.models.email import Email

from .logging import get_logger, log_call

logger = get_logger(__name__)

_LIST_ITEM = re.compile(r"^[\d\-*•]+[.)\s]")
_ENDS_SENTENCE = re.compile(r"[.!?:;]\s*$")
_PARAGRAPH_BREAK = re.compile(r"\r?\n(?:[ \t]*\r?\n)+")


@log_call
def validate_email_address(email_str: str) -> Tuple[Optional[str], Optional[str]]:
    """Validate an address; return (normalised address, error message)."""
    if not email_str or email_str.strip() == "":
        return None, "Email address is required."

    try:
        valid = validate_email(email_str.strip(), check_deliverability=False)
        return valid.normalized, None
    except EmailNotValidError as e:
        error_msg = f"Invalid email address: {e}"
        logger.warning(error_msg)
        return None, error_msg


## Fetched Mail


def is_displayable(email: Email) -> bool:
    """A message is kept when it has a subject or a sender."""
    return bool(email.subject) or bool(email.sender)


def filter_valid_emails(emails: List[Email]) -> List[Email]:
    """Drop messages that have neither subject nor sender."""
    kept = [email for email in emails if is_displayable(email)]
    if len(kept) != len(emails):
        logger.debug(f"Filtered {len(emails) - len(kept)} empty emails")
    return kept


def sort_emails_by_date(emails: List[Email]) -> List[Email]:
    """Newest first; messages without a date go last."""
    dated = [email for email in emails if email.date is not None]
    undated = [email for email in emails if email.date is None]
    dated.sort(key=lambda email: email.date, reverse=True)
    return dated + undated


def process_emails(emails: List[Email]) -> List[Email]:
    return sort_emails_by_date(filter_valid_emails(emails))


def matches_search_query(email: Email, query: str) -> bool:
    """Case-insensitive match on sender, subject and both bodies."""
    if not query:
        return True

    needle = query.lower()
    return any(
        needle in (field or "").lower()
        for field in (email.sender, email.subject, email.body, email.body_html)
    )


def filter_by_search_query(emails: List[Email], query: str) -> List[Email]:
    return [email for email in emails if matches_search_query(email, query)]


## Display Helpers


def extract_email_address(value: str) -> str:
    """``Name <a@b.c>`` -> ``a@b.c``."""
    if not value:
        return ""

    start, end = value.find("<"), value.find(">")
    if 0 <= start < end:
        return value[start + 1 : end].strip()

    return value.strip()


def extract_name(value: str) -> str:
    """Display name of an address, the local part, or ``Unknown``."""
    if not value:
        return "Unknown"

    if "<" in value:
        name = value[: value.index("<")].strip().strip('"')
        return name or "Unknown"

    if "@" in value:
        return value.split("@", 1)[0]

    return value


def format_file_size(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.1f} MB"


def unwrap_plain_text(text: str) -> str:
    """Re-flow hard-wrapped paragraphs, keeping sentence ends and lists."""
    if not text:
        return text

    paragraphs = []
    for paragraph in _PARAGRAPH_BREAK.split(text):
        lines = [line.strip() for line in paragraph.splitlines() if line.strip()]
        if not lines:
            continue

        pieces = []
        for index, line in enumerate(lines):
            pieces.append(line)
            if index == len(lines) - 1:
                break

            keep_break = (
                _ENDS_SENTENCE.search(line)
                or _LIST_ITEM.match(lines[index + 1])
                or _LIST_ITEM.match(line)
            )
            pieces.append("\n" if keep_break else " ")

        paragraphs.append(re.sub(r" +", " ", "".join(pieces)).strip())

    return "\n\n".join(paragraphs)
