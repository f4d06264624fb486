"""Attachment domain model."""

import mimetypes
from dataclasses import dataclass, field
from pathlib import Path


@dataclass
class Attachment:
    """Email attachment: decoded payload plus its declared metadata."""

    filename: str
    content_type: str = "application/octet-stream"
    data: bytes = field(default=b"", repr=False)

    @property
    def size(self) -> int:
        return len(self.data)

    @classmethod
    def from_path(cls, path: str | Path) -> "Attachment":
        """Load a local file as an attachment for sending.

        Args:
            path: File to read

        Returns:
            Attachment named after the file, typed from its extension

        Raises:
            FileSystemError: If the file cannot be read
        """
        from mailwire.utils.errors import FileSystemError

        file_path = Path(path)
        try:
            data = file_path.read_bytes()
        except OSError as e:
            raise FileSystemError(
                f"Cannot read attachment {file_path}: {e}",
                details={"path": str(file_path)},
            ) from e

        content_type, _ = mimetypes.guess_type(file_path.name)
        return cls(
            filename=file_path.name,
            content_type=content_type or "application/octet-stream",
            data=data,
        )
