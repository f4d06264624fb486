"""mailwire - a synchronous IMAP/SMTP client with a tolerant MIME decoder."""

__version__ = "0.1.0"
