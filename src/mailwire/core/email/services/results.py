"""Result records returned by the service layer.

Protocol clients raise; services catch protocol and transport failures and
hand back a result the caller has to inspect.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Generic, Optional, TypeVar

from mailwire.utils.errors import MailwireError, ProtocolError

T = TypeVar("T")


@dataclass
class ErrorInfo:
    """What went wrong, without the exception object."""

    kind: str
    message: str
    command: str = ""
    raw_response: str = ""
    error_type: str = ""

    @classmethod
    def from_exception(cls, error: MailwireError) -> "ErrorInfo":
        if isinstance(error, ProtocolError):
            return cls(
                kind=error.kind,
                message=error.message,
                command=error.command,
                raw_response=error.raw_response,
                error_type=type(error).__name__,
            )
        return cls(
            kind=error.kind,
            message=error.message,
            command=str(error.details.get("command", "")),
            error_type=type(error).__name__,
        )

    @classmethod
    def validation(cls, message: str) -> "ErrorInfo":
        """Input refused locally, before anything was sent."""
        return cls(kind="validation", message=message, error_type="ValueError")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "command": self.command,
            "raw_response": self.raw_response,
            "message": self.message,
            "error_type": self.error_type,
        }


@dataclass
class OperationResult(Generic[T]):
    """Outcome of one service operation."""

    ok: bool
    value: Optional[T] = None
    error: Optional[ErrorInfo] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def success(cls, value: Optional[T] = None, **details) -> "OperationResult[T]":
        return cls(ok=True, value=value, details=details)

    @classmethod
    def failure(cls, error: MailwireError, **details) -> "OperationResult[T]":
        return cls(ok=False, error=ErrorInfo.from_exception(error), details=details)

    @classmethod
    def invalid(cls, message: str, **details) -> "OperationResult[T]":
        return cls(ok=False, error=ErrorInfo.validation(message), details=details)

