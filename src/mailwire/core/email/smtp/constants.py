"""SMTP constants and configuration values."""


class SMTPPorts:
    """Standard SMTP ports."""

    PLAIN = 25
    SSL = 465  # implicit TLS
    STARTTLS = 587  # submission, upgraded with STARTTLS


class SMTPResponse:
    """SMTP reply codes the client waits for."""

    READY = 220
    CLOSING = 221
    AUTH_SUCCESS = 235
    OK = 250
    AUTH_CONTINUE = 334
    START_DATA = 354


class MessageDefaults:
    """Values used when composing outgoing messages."""

    NO_SUBJECT = "(No Subject)"
    CHARSET = "UTF-8"
    BOUNDARY_PREFIX = "BOUNDARY_"
    PREAMBLE = "This is a multipart message in MIME format."
    BASE64_LINE_LENGTH = 76
