from .attachment import Attachment
from .email import Email, MimeBody
from .folder import Folder

__all__ = ["Attachment", "Email", "Folder", "MimeBody"]
