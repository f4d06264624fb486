"""Centralized error handling module."""

from enum import Enum
from typing import Any, Dict

from mailwire.utils.logging import get_logger

_logger = None


def _get_logger():
    """Get logger with lazy initialisation."""
    global _logger
    if _logger is None:
        _logger = get_logger(__name__)
    return _logger


## Error Categories


class ErrorCategory(Enum):
    """Categories of errors for better handling."""

    PROTOCOL = "protocol"
    TRANSPORT = "transport"
    STATE = "state"
    CONFIGURATION = "configuration"
    FILE_SYSTEM = "file_system"
    UNKNOWN = "unknown"


## Custom Exceptions


class MailwireError(Exception):
    """Base exception for all mailwire errors."""

    category = ErrorCategory.UNKNOWN
    user_message = "An error occurred"

    def __init__(
        self, message: str | None = None, details: Dict[str, Any] | None = None
    ):
        """Initialise MailwireError with optional message and details."""
        self.message = message or self.user_message
        self.details = details or {}
        super().__init__(self.message)

    @property
    def kind(self) -> str:
        return self.category.value

    def to_dict(self) -> Dict[str, Any]:
        """Convert error details to a dictionary."""
        return {
            "error_type": self.__class__.__name__,
            "category": self.category.value,
            "message": self.message,
            "details": self.details,
        }


## Protocol Errors


class ProtocolError(MailwireError):
    """Server answered a command with an unexpected or negative status."""

    category = ErrorCategory.PROTOCOL
    user_message = "The mail server rejected the request"

    def __init__(
        self,
        command: str = "",
        raw_response: str = "",
        message: str | None = None,
        details: Dict[str, Any] | None = None,
    ):
        self.command = command
        self.raw_response = raw_response
        merged = {"command": command, "raw_response": raw_response}
        merged.update(details or {})
        super().__init__(message, merged)


class ImapError(ProtocolError):
    """Exception for IMAP protocol errors."""

    user_message = "IMAP command failed"


class SmtpError(ProtocolError):
    """Exception for SMTP protocol errors."""

    user_message = "Failed to send email"


## Transport Errors


class TransportError(MailwireError):
    """Base exception for socket and TLS failures."""

    category = ErrorCategory.TRANSPORT
    user_message = "A network error occurred"


class ConnectError(TransportError):
    """Exception for TCP connection failures."""

    user_message = "Failed to connect to the mail server"


class TlsError(TransportError):
    """Exception for TLS handshake failures."""

    user_message = "TLS negotiation failed"


class NetworkTimeoutError(TransportError):
    """Exception for network timeout errors."""

    user_message = "The connection timed out"


class ConnectionClosedError(TransportError):
    """Exception when the server closes the connection unexpectedly."""

    user_message = "The server closed the connection"


## State Errors


class InvalidStateError(MailwireError):
    """Exception for operations issued in the wrong protocol state."""

    category = ErrorCategory.STATE
    user_message = "Operation not allowed in the current connection state"


## File System Errors


class FileSystemError(MailwireError):
    """Base exception for file system-related errors."""

    category = ErrorCategory.FILE_SYSTEM
    user_message = "A file system error occurred"


## Configuration Errors


class ConfigurationError(MailwireError):
    """Base exception for configuration-related errors."""

    category = ErrorCategory.CONFIGURATION
    user_message = "A configuration error occurred"


class MissingConfigError(ConfigurationError):
    """Exception for missing configuration settings."""

    user_message = "Missing configuration settings"


class InvalidConfigError(ConfigurationError):
    """Exception for invalid configuration settings."""

    user_message = "Invalid configuration settings"


## Error Handler


class ErrorHandler:
    """Centralized error handling and logging."""

    @staticmethod
    def handle(
        error: Exception, context: str = "", log_traceback: bool = True
    ) -> Dict[str, Any]:
        """Handle errors with logging and user-friendly message."""
        if isinstance(error, MailwireError):
            _get_logger().error(
                f"{context}: {error.message}", extra={"details": error.details}
            )
            if log_traceback:
                _get_logger().exception(error)
            return error.to_dict()

        _get_logger().error(f"{context}: {str(error)}")
        if log_traceback:
            _get_logger().exception(error)
        return {
            "error_type": "UnknownError",
            "category": ErrorCategory.UNKNOWN.value,
            "message": str(error),
            "details": {"context": context},
        }


## Utility Functions


def format_error_message(error: Exception) -> str:
    """Format an error message for display."""
    if isinstance(error, ProtocolError) and error.raw_response.strip():
        return f"{error.message} ({error.raw_response.strip().splitlines()[-1]})"
    if isinstance(error, MailwireError):
        return error.message
    return "An unexpected error occurred - check logs for details."

