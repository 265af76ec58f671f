"""ftpsession: a stateful FTP client session.

Speaks the FTP control protocol directly and opens one data connection
per transfer or listing:
- FTPSession: Connection lifecycle, navigation, transfers and options
- SessionConfig / RuntimeOption: Session configuration
- Exceptions: FTP-specific error types
"""

from ftpsession.config.options import RuntimeOption, SessionConfig
from ftpsession.ftp.exceptions import (
    FTPAuthenticationError,
    FTPBusyError,
    FTPCloseError,
    FTPCommandError,
    FTPCommandInFlightError,
    FTPConnectionError,
    FTPError,
    FTPLocalIOError,
    FTPMalformedReplyError,
    FTPNavigationError,
    FTPNegotiationError,
    FTPNotAvailableError,
    FTPNotConnectedError,
    FTPProtocolError,
    FTPReplyError,
    FTPSessionClosedError,
    FTPTimeoutError,
    FTPTransferError,
    FTPUnsupportedOptionError,
    FTPValidationError,
)
from ftpsession.ftp.session import FTPSession, SessionState
from ftpsession.ftp.transfer import TransferMode, TransferProgress, TransferResult

__all__ = [
    # Session
    "FTPSession",
    "SessionState",
    "SessionConfig",
    "RuntimeOption",
    # Transfers
    "TransferMode",
    "TransferProgress",
    "TransferResult",
    # Errors
    "FTPError",
    "FTPConnectionError",
    "FTPAuthenticationError",
    "FTPTimeoutError",
    "FTPNotConnectedError",
    "FTPSessionClosedError",
    "FTPBusyError",
    "FTPCloseError",
    "FTPValidationError",
    "FTPUnsupportedOptionError",
    "FTPProtocolError",
    "FTPMalformedReplyError",
    "FTPCommandInFlightError",
    "FTPReplyError",
    "FTPCommandError",
    "FTPNavigationError",
    "FTPNotAvailableError",
    "FTPNegotiationError",
    "FTPTransferError",
    "FTPLocalIOError",
]
