from .client import SMTPClient, SmtpState
from .message import build_message_lines

__all__ = ['SMTPClient', 'SmtpState', 'build_message_lines']
