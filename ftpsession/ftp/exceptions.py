"""FTP-specific exceptions for ftpsession.

Custom exception hierarchy for FTP operations. Errors caused by a server
reply carry that reply verbatim so callers can diagnose what the server
actually said.
"""

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from ftpsession.ftp.reply import Reply


class FTPError(Exception):
    """Base exception for all FTP-related errors."""

    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error

    def __str__(self) -> str:
        if self.original_error:
            return f"{self.message}: {self.original_error}"
        return self.message


class FTPConnectionError(FTPError):
    """Failed to establish FTP connection."""

    def __init__(
        self,
        host: str,
        port: int,
        original_error: Exception = None,
        reply: Optional["Reply"] = None
    ):
        self.host = host
        self.port = port
        self.reply = reply
        message = f"Failed to connect to {host}:{port}"
        if reply is not None:
            message = f"{message} ({reply})"
        super().__init__(message, original_error)


class FTPTimeoutError(FTPError):
    """FTP operation timed out."""

    def __init__(self, operation: str = "Operation", timeout: float = 90):
        self.timeout = timeout
        message = f"{operation} timed out after {timeout} seconds"
        super().__init__(message)


class FTPNotConnectedError(FTPError):
    """Operation attempted before the session reached the required state."""

    def __init__(
        self,
        operation: str = "Operation",
        requirement: str = "an authenticated FTP session"
    ):
        self.operation = operation
        message = f"{operation} requires {requirement}"
        super().__init__(message)


class FTPSessionClosedError(FTPError):
    """Operation attempted on a session that has been closed."""

    def __init__(self, operation: str = "Operation"):
        self.operation = operation
        super().__init__(f"{operation} is not possible: session is closed")


class FTPBusyError(FTPError):
    """Another transfer is in flight on the same session."""

    def __init__(self, operation: str = "Operation"):
        self.operation = operation
        super().__init__(f"{operation} rejected: a transfer is in progress")


class FTPCloseError(FTPError):
    """Closing the control connection failed."""


class FTPValidationError(FTPError):
    """Client-side argument validation failed. Nothing was sent."""

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(message)


class FTPUnsupportedOptionError(FTPValidationError):
    """Runtime option key is not one of the supported options."""

    def __init__(self, option):
        self.option = option
        super().__init__("option", f"Unsupported option: {option!r}")


class FTPProtocolError(FTPError):
    """Control channel exchange failed below the reply level."""


class FTPMalformedReplyError(FTPProtocolError):
    """Server sent text that is not a valid FTP reply."""

    def __init__(self, line: Optional[str], reason: str):
        self.line = line
        message = f"Malformed reply: {reason}"
        if line is not None:
            message = f"{message} (got {line!r})"
        super().__init__(message)


class FTPCommandInFlightError(FTPProtocolError):
    """A second command was issued while another exchange was pending."""

    def __init__(self, command: str):
        self.command = command
        super().__init__(
            f"Cannot send {command}: another command is awaiting its reply"
        )


class FTPReplyError(FTPError):
    """Base for failures reported by a server reply (4xx/5xx or unexpected)."""

    def __init__(self, message: str, reply: Optional["Reply"] = None,
                 original_error: Exception = None):
        self.reply = reply
        if reply is not None:
            message = f"{message}: {reply}"
        super().__init__(message, original_error)

    @property
    def reply_text(self) -> Optional[str]:
        """Raw server reply text, if any."""
        return str(self.reply) if self.reply is not None else None

    @property
    def code(self) -> Optional[int]:
        """Reply code, if any."""
        return self.reply.code if self.reply is not None else None


class FTPAuthenticationError(FTPReplyError):
    """FTP authentication (login) failed."""

    def __init__(self, username: str, reply: Optional["Reply"] = None,
                 original_error: Exception = None):
        self.username = username
        message = f"Authentication failed for user '{username}'"
        super().__init__(message, reply, original_error)


class FTPCommandError(FTPReplyError):
    """A command was rejected by the server."""

    def __init__(self, command: str, reply: Optional["Reply"] = None):
        self.command = command
        super().__init__(f"Command {command} failed", reply)


class FTPNavigationError(FTPReplyError):
    """FTP path operation failed (change directory, list, etc.)."""

    def __init__(self, path: str, operation: str, reply: Optional["Reply"] = None):
        self.path = path
        self.operation = operation
        message = f"Failed to {operation} path '{path}'"
        super().__init__(message, reply)


class FTPNotAvailableError(FTPReplyError):
    """SIZE/MDTM information is unsupported by the server or not found."""

    def __init__(self, path: str, command: str, reply: Optional["Reply"] = None):
        self.path = path
        self.command = command
        message = f"{command} not available for '{path}'"
        super().__init__(message, reply)


class FTPTransferError(FTPReplyError):
    """Remote side rejected or broke a file transfer."""

    def __init__(
        self,
        remote_path: str,
        operation: str,
        reply: Optional["Reply"] = None,
        original_error: Exception = None
    ):
        self.remote_path = remote_path
        self.operation = operation
        message = f"Failed to {operation} '{remote_path}'"
        super().__init__(message, reply, original_error)


class FTPNegotiationError(FTPReplyError):
    """Data channel could not be set up."""

    def __init__(self, mode: str, reply: Optional["Reply"] = None,
                 original_error: Exception = None):
        self.mode = mode
        super().__init__(f"{mode} data channel negotiation failed", reply,
                         original_error)


class FTPLocalIOError(FTPError):
    """Reading or writing the local byte stream failed."""

    def __init__(self, operation: str, target: str,
                 original_error: Exception = None):
        self.operation = operation
        self.target = target
        message = f"Local {operation} failed for '{target}'"
        super().__init__(message, original_error)
