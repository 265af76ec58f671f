"""FTP session for ftpsession.

Provides SessionState and FTPSession, the stateful object callers drive:
it connects, authenticates, translates each operation into control channel
exchanges and, for transfers and listings, one data channel.
"""

import io
import os
import ssl
import threading
import time
from contextlib import contextmanager
from datetime import datetime
from enum import Enum
from typing import BinaryIO, Callable, Iterator, List, Optional, Tuple, Union

from ftpsession.config.credentials import CredentialManager
from ftpsession.config.options import (
    DEFAULT_OPTIONS,
    RuntimeOption,
    SessionConfig,
    resolve_option,
    validate_option,
)
from ftpsession.ftp.control import DEFAULT_PORT, ControlConnection
from ftpsession.ftp.datachannel import (
    DataChannel,
    negotiate_active,
    negotiate_passive,
)
from ftpsession.ftp.exceptions import (
    FTPAuthenticationError,
    FTPBusyError,
    FTPCommandError,
    FTPConnectionError,
    FTPError,
    FTPLocalIOError,
    FTPNavigationError,
    FTPNotAvailableError,
    FTPNotConnectedError,
    FTPReplyError,
    FTPSessionClosedError,
    FTPTransferError,
    FTPValidationError,
)
from ftpsession.ftp.reply import (
    Reply,
    parse_mdtm_reply,
    parse_pathname_reply,
    parse_size_reply,
)
from ftpsession.ftp.transfer import (
    ProgressCallback,
    TransferDirection,
    TransferEngine,
    TransferMode,
    TransferResult,
)
from ftpsession.ftp.transport import SocketListener, SocketTransport
from ftpsession.utils.logging import get_logger
from ftpsession.utils.threading import ThreadedTask
from ftpsession.utils.validators import validate_host, validate_offset, validate_port

logger = get_logger("ftpsession.session")


# Operations that may be handed to background()
TRANSFER_OPERATIONS = ("get", "put", "fget", "fput")

ErrorFactory = Callable[[Reply], FTPReplyError]


class SessionState(Enum):
    """FTP session state."""
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    AUTHENTICATED = "authenticated"
    CLOSED = "closed"


def format_timestamp(epoch: int, fmt: str) -> str:
    """Default clock: format an epoch timestamp in local time."""
    return datetime.fromtimestamp(epoch).strftime(fmt)


class FTPSession:
    """
    Stateful FTP client session.

    Usage:
        with FTPSession() as ftp:
            ftp.connect("ftp.example.com").login("user", "secret")
            ftp.change_directory("/pub").binary(True)
            ftp.get("local.bin", "remote.bin")
    """

    def __init__(
        self,
        transport_factory: Callable[..., SocketTransport] = SocketTransport.connect,
        listener_factory: Callable[..., SocketListener] = SocketListener.listen,
        credentials: Optional[CredentialManager] = None,
        clock: Callable[[int, str], str] = format_timestamp,
        encoding: str = "utf-8",
        ssl_context: Optional[ssl.SSLContext] = None
    ):
        """
        Initialize an unconnected session.

        Args:
            transport_factory: Opens control and passive data connections
            listener_factory: Opens listeners for active data connections
            credentials: Keyring lookup used when login() gets no password
            clock: Formats modified_time() results when a format is requested
            encoding: Text encoding of the control channel and listings
            ssl_context: TLS context for secure connections
        """
        self._transport_factory = transport_factory
        self._listener_factory = listener_factory
        self._credentials = credentials
        self._clock = clock
        self._encoding = encoding
        self._ssl_context = ssl_context

        self._control: Optional[ControlConnection] = None
        self._state = SessionState.DISCONNECTED
        self._passive = True
        self._binary = True
        self._options = dict(DEFAULT_OPTIONS)
        self._current_type: Optional[TransferMode] = None

        self._gate = threading.Lock()
        self._transferring = False
        self._gate_owner: Optional[int] = None
        self._data_channel: Optional[DataChannel] = None

        self._host: Optional[str] = None
        self._username: Optional[str] = None
        self._connected_at: Optional[datetime] = None
        self._last_activity: Optional[datetime] = None
        self._last_transfer: Optional[TransferResult] = None

    @classmethod
    def open(
        cls,
        config: SessionConfig,
        password: Optional[str] = None,
        **kwargs
    ) -> "FTPSession":
        """
        Create a session from a configuration, then connect and log in.

        Args:
            config: Connection configuration
            password: FTP password (None looks it up in the credential store)
            **kwargs: Passed to the FTPSession constructor

        Raises:
            FTPConnectionError: If connection fails
            FTPAuthenticationError: If login fails
            FTPTimeoutError: If the server does not answer in time
        """
        session = cls(encoding=config.encoding, **kwargs)
        session.set_option(RuntimeOption.TIMEOUT_SEC, config.timeout)
        session.set_option(RuntimeOption.AUTOSEEK, config.autoseek)
        session.passive(config.passive_mode).binary(config.binary_mode)
        try:
            session.connect(config.host, config.secure, config.port)
            session.login(config.username, password)
        except FTPError:
            session.close()
            raise
        return session

    @property
    def state(self) -> SessionState:
        """Current session state."""
        return self._state

    @property
    def is_connected(self) -> bool:
        """True while the control connection is up (authenticated or not)."""
        return self._state in (SessionState.CONNECTED, SessionState.AUTHENTICATED)

    @property
    def is_authenticated(self) -> bool:
        """True once login succeeded."""
        return self._state == SessionState.AUTHENTICATED

    @property
    def is_closed(self) -> bool:
        """True after close()."""
        return self._state == SessionState.CLOSED

    @property
    def is_transferring(self) -> bool:
        """True while a transfer or listing is in flight."""
        return self._transferring

    @property
    def is_passive(self) -> bool:
        """Current data channel preference."""
        return self._passive

    @property
    def is_binary(self) -> bool:
        """Current transfer mode preference."""
        return self._binary

    @property
    def mode(self) -> TransferMode:
        """Transfer mode used by get/put/fget/fput."""
        return TransferMode.BINARY if self._binary else TransferMode.ASCII

    @property
    def greeting(self) -> Optional[Reply]:
        """The server's 220 greeting."""
        return self._control.greeting if self._control else None

    @property
    def connected_at(self) -> Optional[datetime]:
        """Timestamp when connection was established."""
        return self._connected_at

    @property
    def last_activity(self) -> Optional[datetime]:
        """Timestamp of last successful operation."""
        return self._last_activity

    @property
    def last_transfer(self) -> Optional[TransferResult]:
        """Result of the most recent completed transfer."""
        return self._last_transfer

    def _update_activity(self) -> None:
        """Update last activity timestamp."""
        self._last_activity = datetime.now()

    def _check_open(self, operation: str) -> None:
        if self._state == SessionState.CLOSED:
            raise FTPSessionClosedError(operation)

    def _check_authenticated(self, operation: str) -> None:
        if self._state != SessionState.AUTHENTICATED:
            raise FTPNotConnectedError(operation)

    def _check_idle(self, operation: str) -> None:
        # A background transfer owns the gate from background() until it ends
        if self._transferring and self._gate_owner != threading.get_ident():
            raise FTPBusyError(operation)

    @contextmanager
    def _operation(self, name: str, transfer: bool = False) -> Iterator[ControlConnection]:
        """
        Guard one authenticated operation.

        Rejects the call before any I/O if the session is closed, not
        authenticated or busy with a transfer. With transfer=True the session
        is marked as transferring until the block exits.
        """
        self._check_open(name)
        self._check_authenticated(name)

        with self._gate:
            self._check_idle(name)
            claimed = transfer
            if transfer and self._transferring:
                # Take over the reservation made by background()
                self._gate_owner = None
            elif transfer:
                self._transferring = True
        try:
            yield self._control
        finally:
            if claimed:
                with self._gate:
                    self._transferring = False
        self._update_activity()

    # Connection lifecycle

    def connect(
        self,
        host: str,
        secure: bool = False,
        port: int = DEFAULT_PORT,
        timeout: Optional[float] = None
    ) -> "FTPSession":
        """
        Open the control connection.

        Args:
            host: Server host name or address
            secure: Upgrade to TLS with AUTH TLS
            port: Server port
            timeout: Per-operation timeout in seconds (updates TIMEOUT_SEC)

        Raises:
            FTPConnectionError: If the server refuses or does not greet with 220
            FTPTimeoutError: If connecting times out
            FTPValidationError: If an argument is invalid (nothing is sent)
        """
        self._check_open("Connect")
        if self._state != SessionState.DISCONNECTED:
            raise FTPValidationError("state", "Session is already connected")

        for field, (is_valid, error) in (
            ("host", validate_host(host)),
            ("port", validate_port(port)),
        ):
            if not is_valid:
                raise FTPValidationError(field, error)
        if timeout is not None:
            self.set_option(RuntimeOption.TIMEOUT_SEC, timeout)

        control = ControlConnection.open(
            host,
            secure=secure,
            port=port,
            timeout=self._options[RuntimeOption.TIMEOUT_SEC],
            transport_factory=self._transport_factory,
            encoding=self._encoding,
            ssl_context=self._ssl_context
        )
        if control.greeting.code != 220:
            control.abort()
            raise FTPConnectionError(host, port, reply=control.greeting)

        self._control = control
        self._host = host
        self._current_type = None
        self._state = SessionState.CONNECTED
        self._connected_at = datetime.now()
        self._last_activity = self._connected_at
        logger.info(f"Connected to {host}:{port}{' (TLS)' if secure else ''}")
        return self

    def login(
        self,
        username: str = "anonymous",
        password: Optional[str] = None,
        account: str = ""
    ) -> "FTPSession":
        """
        Authenticate with USER / PASS (/ ACCT).

        Args:
            username: FTP username
            password: FTP password; None looks it up in the credential store
            account: Account sent if the server asks for one

        Raises:
            FTPAuthenticationError: If the server rejects the credentials;
                the session stays connected
            FTPNotConnectedError: If connect() has not succeeded
        """
        self._check_open("Login")
        self._check_idle("Login")
        if self._state == SessionState.DISCONNECTED:
            raise FTPNotConnectedError("Login", "an open FTP connection")
        if self._state == SessionState.AUTHENTICATED:
            raise FTPValidationError("state", "Session is already authenticated")

        if password is None:
            password = ""
            if self._credentials is not None:
                password = self._credentials.get_password(self._host, username) or ""

        control = self._control
        reply = control.send_command("USER", username)
        if reply.is_intermediate:
            reply = control.send_command("PASS", password)
        if reply.is_intermediate:
            reply = control.send_command("ACCT", account)
        if not reply.is_success:
            logger.warning(f"Login failed for user '{username}'")
            raise FTPAuthenticationError(username, reply)

        if control.is_secure:
            prot = control.protect_data()
            if not control.data_protected:
                logger.warning(f"Server refused PROT P, data connections stay clear: {prot}")

        self._username = username
        self._state = SessionState.AUTHENTICATED
        self._update_activity()
        logger.info(f"Logged in as '{username}'")
        logger.debug(f"Data channel preference: {'passive' if self._passive else 'active'}")
        return self

    def close(self) -> None:
        """
        Send QUIT and close the control connection. Calling close() again is a no-op.

        A failed QUIT is logged and ignored; the connection is closed
        regardless. A transfer still running on another thread has its data
        channel closed instead of a QUIT being sent.

        Raises:
            FTPCloseError: If the socket cannot be closed (the session is
                closed nonetheless)
        """
        with self._gate:
            if self._state == SessionState.CLOSED:
                return
            self._state = SessionState.CLOSED
            control, self._control = self._control, None
            transferring = self._transferring

        if control is None or control.closed:
            logger.info("Session closed")
            return

        try:
            if transferring:
                channel = self._data_channel
                if channel is not None:
                    channel.close()
            else:
                try:
                    control.send_command("QUIT")
                except FTPError as e:
                    logger.warning(f"QUIT failed, closing connection anyway: {e}")
        finally:
            control.close()
            logger.info("Session closed")

    def __enter__(self) -> "FTPSession":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.close()

    # Client-side preferences

    def passive(self, enable: bool = True) -> "FTPSession":
        """Select passive (True) or active (False) data channels for the next transfer."""
        self._check_open("Passive")
        self._passive = bool(enable)
        return self

    def binary(self, enable: bool) -> "FTPSession":
        """Select binary (True) or ASCII (False) mode for get/put/fget/fput."""
        self._check_open("Binary")
        self._binary = bool(enable)
        return self

    def get_option(self, option: Union[RuntimeOption, str]):
        """
        Read a runtime option.

        Raises:
            FTPUnsupportedOptionError: If the option is not supported
        """
        self._check_open("Get option")
        return self._options[resolve_option(option)]

    def set_option(self, option: Union[RuntimeOption, str], value) -> "FTPSession":
        """
        Change a runtime option.

        TIMEOUT_SEC must be a number greater than zero and applies to the live
        control socket and every later data socket. AUTOSEEK must be a bool.

        Raises:
            FTPUnsupportedOptionError: If the option is not supported
            FTPValidationError: If the value is invalid (nothing is sent)
        """
        self._check_open("Set option")
        key = validate_option(option, value)
        self._check_idle("Set option")

        self._options[key] = value
        if key == RuntimeOption.TIMEOUT_SEC and self._control is not None:
            self._control.set_timeout(value)
        return self

    # Single-command operations

    def _ensure_type(self, mode: TransferMode) -> None:
        """Send TYPE only if the server is not already in mode."""
        if self._current_type == mode:
            return
        reply = self._control.send_command("TYPE", mode.value)
        if not reply.is_success:
            raise FTPCommandError("TYPE", reply)
        self._current_type = mode

    def _navigate(self, operation: str, path: str, verb: str, *args: str) -> Reply:
        with self._operation(verb) as control:
            reply = control.send_command(verb, *args)
            if not reply.is_success:
                raise FTPNavigationError(path, operation, reply)
        return reply

    def _command(self, operation: str, verb: str, *args: str) -> Reply:
        with self._operation(operation) as control:
            reply = control.send_command(verb, *args)
            if not reply.is_success:
                raise FTPCommandError(" ".join((verb,) + args[:1]), reply)
        return reply

    def change_directory(self, directory: str) -> "FTPSession":
        """Change the current directory (CWD)."""
        self._navigate("enter", directory, "CWD", directory)
        return self

    def parent_directory(self) -> "FTPSession":
        """Change to the parent directory (CDUP)."""
        self._navigate("leave", ".", "CDUP")
        return self

    def get_directory(self) -> str:
        """Return the current directory name (PWD)."""
        reply = self._navigate("resolve", ".", "PWD")
        return parse_pathname_reply(reply)

    def create_directory(self, directory: str) -> "FTPSession":
        """Create a directory (MKD)."""
        self._navigate("create", directory, "MKD", directory)
        return self

    def remove_directory(self, directory: str) -> "FTPSession":
        """Remove a directory (RMD)."""
        self._navigate("remove", directory, "RMD", directory)
        return self

    def delete(self, path: str) -> "FTPSession":
        """Delete a file (DELE)."""
        self._command("Delete", "DELE", path)
        return self

    def rename(self, current_name: str, new_name: str) -> "FTPSession":
        """Rename a file or directory (RNFR + RNTO)."""
        with self._operation("Rename") as control:
            reply = control.send_command("RNFR", current_name)
            if not reply.is_intermediate:
                raise FTPCommandError(f"RNFR {current_name}", reply)
            reply = control.send_command("RNTO", new_name)
            if not reply.is_success:
                raise FTPCommandError(f"RNTO {new_name}", reply)
        return self

    def size(self, remote_file: str) -> int:
        """
        Return the size of a remote file in bytes (SIZE, in binary type).

        Raises:
            FTPNotAvailableError: If the server lacks SIZE or the file is not found
        """
        with self._operation("Size") as control:
            self._ensure_type(TransferMode.BINARY)
            reply = control.send_command("SIZE", remote_file)
            if not reply.is_success:
                raise FTPNotAvailableError(remote_file, "SIZE", reply)
            try:
                return parse_size_reply(reply)
            except ValueError:
                raise FTPNotAvailableError(remote_file, "SIZE", reply)

    def modified_time(self, remote_file: str, fmt: Optional[str] = None) -> Union[int, str]:
        """
        Return the last modification time of a remote file (MDTM).

        Args:
            remote_file: Remote path
            fmt: Optional strftime format; when given the result is formatted
                by the session clock instead of returned as an epoch

        Raises:
            FTPNotAvailableError: If the server lacks MDTM or the file is not found
        """
        with self._operation("Modified time") as control:
            reply = control.send_command("MDTM", remote_file)
            if not reply.is_success:
                raise FTPNotAvailableError(remote_file, "MDTM", reply)
            try:
                epoch = parse_mdtm_reply(reply)
            except ValueError:
                raise FTPNotAvailableError(remote_file, "MDTM", reply)

        if fmt is not None:
            return self._clock(epoch, fmt)
        return epoch

    def allocate(self, filesize: int) -> "FTPSession":
        """
        Ask the server to reserve space for an upload (ALLO).

        Servers that need no allocation answer 202, which counts as success.
        """
        is_valid, error = validate_offset(filesize)
        if not is_valid:
            raise FTPValidationError("filesize", error)
        self._command("Allocate", "ALLO", str(filesize))
        return self

    def chmod(self, mode: int, filename: str) -> "FTPSession":
        """Set permissions on a remote file (SITE CHMOD)."""
        if isinstance(mode, bool) or not isinstance(mode, int) or not 0 <= mode <= 0o7777:
            raise FTPValidationError("mode", f"Invalid permission mode: {mode!r}")
        self._command("Chmod", "SITE", "CHMOD", f"{mode:o}", filename)
        return self

    def exec(self, command: str) -> "FTPSession":
        """Request execution of a command on the server (SITE EXEC)."""
        self._command("Exec", "SITE", "EXEC", command)
        return self

    def noop(self) -> "FTPSession":
        """Keep the control connection alive (NOOP)."""
        self._command("Noop", "NOOP")
        return self

    def system(self) -> str:
        """Return the server's system type (SYST)."""
        return self._command("System", "SYST").message

    # Data channel operations

    def _open_data_channel(
        self,
        verb: str,
        argument: str,
        offset: int,
        error_factory: ErrorFactory
    ) -> Tuple[DataChannel, int]:
        """
        Negotiate a data channel, send [REST] and the transfer command.

        Returns:
            The connected channel and the effective resume offset (0 if the
            server refused REST)
        """
        timeout = self._options[RuntimeOption.TIMEOUT_SEC]
        if self._passive:
            channel = negotiate_passive(self._control, timeout, connect=self._transport_factory)
        else:
            channel = negotiate_active(self._control, timeout, listen=self._listener_factory)

        try:
            if offset > 0:
                reply = self._control.send_command("REST", str(offset))
                if not reply.is_intermediate:
                    logger.warning(f"Server refused REST {offset}, transferring from start: {reply}")
                    offset = 0

            args = (argument,) if argument else ()
            reply = self._control.send_command(verb, *args)
            if not reply.is_preliminary:
                raise error_factory(reply)
            channel.accept()
        except Exception:
            channel.close()
            raise

        return channel, offset

    @staticmethod
    def _finish_aborted_transfer(control: Optional[ControlConnection]) -> None:
        """Consume the server's reply to a transfer cut short on our side."""
        if control is None or control.closed:
            logger.debug("Control connection closed during transfer")
            return
        try:
            reply = control.read_reply()
        except FTPError as e:
            logger.debug(f"No completion reply after aborted transfer: {e}")
            return
        logger.debug(f"Server reply to aborted transfer: {reply}")

    @staticmethod
    def _seek(stream, offset: int, truncate: bool) -> None:
        if not stream.seekable():
            return
        try:
            stream.seek(offset)
            if truncate:
                stream.truncate()
        except OSError as e:
            raise FTPLocalIOError("seek", str(getattr(stream, "name", "<stream>")), e)

    @staticmethod
    def _remaining_bytes(stream, start: Optional[int]) -> Optional[int]:
        """Bytes an upload will read from stream, or None if unknown."""
        try:
            if not stream.seekable():
                return None
            position = stream.tell()
            end = stream.seek(0, io.SEEK_END)
            stream.seek(position)
        except (AttributeError, OSError, ValueError):
            return None
        return max(end - (position if start is None else start), 0)

    def _run_engine(
        self,
        channel: DataChannel,
        remote_path: str,
        direction: TransferDirection,
        mode: TransferMode,
        stream: BinaryIO,
        offset: int,
        seek_to: Optional[int],
        on_progress: Optional[ProgressCallback],
        error_factory: ErrorFactory,
        total: Optional[int] = None
    ) -> TransferResult:
        """Stream through an open channel, then check the completion reply."""
        started = time.time()
        control = self._control
        engine = TransferEngine(
            mode,
            remote_path,
            on_progress=on_progress,
            total=total,
            timeout=self._options[RuntimeOption.TIMEOUT_SEC]
        )

        self._data_channel = channel
        try:
            with channel:
                if seek_to is not None:
                    self._seek(stream, seek_to, truncate=direction == TransferDirection.DOWNLOAD)
                if direction == TransferDirection.DOWNLOAD:
                    engine.receive(channel, stream)
                else:
                    engine.send(stream, channel)
                    try:
                        channel.finish()
                    except OSError as e:
                        raise FTPTransferError(remote_path, "upload", original_error=e)
        except (FTPLocalIOError, FTPTransferError):
            self._finish_aborted_transfer(control)
            raise
        finally:
            self._data_channel = None

        reply = control.read_reply()
        if not reply.is_success:
            raise error_factory(reply)

        return TransferResult(
            remote_path=remote_path,
            direction=direction,
            mode=mode,
            bytes_transferred=engine.bytes_transferred,
            resume_offset=offset,
            duration_seconds=time.time() - started
        )

    def _read_listing(self, verb: str, argument: str, path: str) -> List[str]:
        """Run NLST/LIST and return the listing's lines."""
        buffer = io.BytesIO()
        with self._operation("List directory", transfer=True):
            self._ensure_type(TransferMode.ASCII)
            error = lambda reply: FTPNavigationError(path, "list", reply)
            channel, _ = self._open_data_channel(verb, argument, 0, error)
            self._run_engine(
                channel, path, TransferDirection.DOWNLOAD, TransferMode.ASCII,
                buffer, 0, None, None, error
            )
        text = buffer.getvalue().decode(self._encoding, errors="replace")
        return [line for line in text.splitlines() if line]

    def list_directory(self, directory: str = "") -> List[str]:
        """
        Return the names in a directory (NLST), sorted ascending.

        Raises:
            FTPNavigationError: If the server refuses the listing
        """
        return sorted(self._read_listing("NLST", directory, directory or "."))

    def rawlist_directory(self, parameters: str = "", recursive: bool = False) -> List[str]:
        """
        Return the server's LIST output line by line, in server order.

        Args:
            parameters: Path and/or options passed to LIST
            recursive: Prepend -R to the parameters

        Raises:
            FTPNavigationError: If the server refuses the listing
        """
        argument = parameters
        if recursive:
            argument = f"-R {parameters}".rstrip()
        return self._read_listing("LIST", argument, parameters or ".")

    def _check_offset(self, offset: int) -> None:
        is_valid, error = validate_offset(offset)
        if not is_valid:
            raise FTPValidationError("offset", error)

    def _download(
        self,
        handle: BinaryIO,
        remote_file: str,
        resume_position: int,
        autoseek: bool,
        on_progress: Optional[ProgressCallback]
    ) -> TransferResult:
        with self._operation("Download", transfer=True):
            mode = self.mode
            self._ensure_type(mode)
            error = lambda reply: FTPTransferError(remote_file, "download", reply)
            channel, offset = self._open_data_channel("RETR", remote_file, resume_position, error)
            seek_to = offset if autoseek and resume_position > 0 else None
            result = self._run_engine(
                channel, remote_file, TransferDirection.DOWNLOAD, mode,
                handle, offset, seek_to, on_progress, error
            )
        self._last_transfer = result
        logger.info(f"Downloaded '{remote_file}' ({result.bytes_transferred} bytes)")
        return result

    def _upload(
        self,
        handle: BinaryIO,
        remote_file: str,
        start_position: int,
        autoseek: bool,
        on_progress: Optional[ProgressCallback]
    ) -> TransferResult:
        with self._operation("Upload", transfer=True):
            mode = self.mode
            self._ensure_type(mode)
            error = lambda reply: FTPTransferError(remote_file, "upload", reply)
            channel, offset = self._open_data_channel("STOR", remote_file, start_position, error)
            seek_to = offset if autoseek and start_position > 0 else None
            result = self._run_engine(
                channel, remote_file, TransferDirection.UPLOAD, mode,
                handle, offset, seek_to, on_progress, error,
                total=self._remaining_bytes(handle, seek_to)
            )
        self._last_transfer = result
        logger.info(f"Uploaded '{remote_file}' ({result.bytes_transferred} bytes)")
        return result

    def fget(
        self,
        handle: BinaryIO,
        remote_file: str,
        resume_position: int = 0,
        on_progress: Optional[ProgressCallback] = None
    ) -> "FTPSession":
        """
        Download a remote file into an open binary stream (RETR).

        With AUTOSEEK on and resume_position > 0 the stream is positioned at
        the effective offset first.

        Raises:
            FTPTransferError: If the server rejects or breaks the transfer
            FTPLocalIOError: If writing the stream fails
        """
        self._check_offset(resume_position)
        self._download(
            handle, remote_file, resume_position,
            self._options[RuntimeOption.AUTOSEEK], on_progress
        )
        return self

    def fput(
        self,
        remote_file: str,
        handle: BinaryIO,
        start_position: int = 0,
        on_progress: Optional[ProgressCallback] = None
    ) -> "FTPSession":
        """
        Upload an open binary stream to a remote file (STOR).

        With AUTOSEEK on and start_position > 0 the stream is positioned at
        the effective offset first.

        Raises:
            FTPTransferError: If the server rejects or breaks the transfer
            FTPLocalIOError: If reading the stream fails
        """
        self._check_offset(start_position)
        self._upload(
            handle, remote_file, start_position,
            self._options[RuntimeOption.AUTOSEEK], on_progress
        )
        return self

    def get(
        self,
        local_file: Union[str, os.PathLike],
        remote_file: str,
        resume_position: int = 0,
        on_progress: Optional[ProgressCallback] = None
    ) -> "FTPSession":
        """
        Download a remote file to a local path.

        Raises:
            FTPTransferError: If the server rejects or breaks the transfer
            FTPLocalIOError: If the local file cannot be opened or written
        """
        self._check_offset(resume_position)
        self._check_open("Download")
        self._check_authenticated("Download")
        self._check_idle("Download")

        file_mode = "r+b" if resume_position > 0 and os.path.exists(local_file) else "wb"
        try:
            handle = open(local_file, file_mode)
        except OSError as e:
            raise FTPLocalIOError("open", str(local_file), e)
        with handle:
            self._download(handle, remote_file, resume_position, True, on_progress)
        return self

    def put(
        self,
        remote_file: str,
        local_file: Union[str, os.PathLike],
        start_position: int = 0,
        on_progress: Optional[ProgressCallback] = None
    ) -> "FTPSession":
        """
        Upload a local file to a remote path.

        Raises:
            FTPTransferError: If the server rejects or breaks the transfer
            FTPLocalIOError: If the local file cannot be opened or read
        """
        self._check_offset(start_position)
        self._check_open("Upload")
        self._check_authenticated("Upload")
        self._check_idle("Upload")

        try:
            handle = open(local_file, "rb")
        except OSError as e:
            raise FTPLocalIOError("open", str(local_file), e)
        with handle:
            self._upload(handle, remote_file, start_position, True, on_progress)
        return self

    def background(self, operation: str, *args, **kwargs) -> ThreadedTask:
        """
        Run get/put/fget/fput on a worker thread.

        Progress updates (TransferProgress) are delivered through the
        returned task unless an on_progress callback is given. The session
        counts as transferring from the moment background() returns.

        Raises:
            FTPValidationError: If operation is not a transfer operation
            FTPNotConnectedError: If the session is not authenticated
            FTPBusyError: If another transfer is in flight
        """
        if operation not in TRANSFER_OPERATIONS:
            raise FTPValidationError("operation", f"Cannot run {operation!r} in background")
        self._check_open(operation)
        self._check_authenticated(operation)
        with self._gate:
            self._check_idle(operation)
            self._transferring = True

        task = ThreadedTask(
            self._run_reserved,
            args=(operation,) + args,
            kwargs=kwargs,
            progress_kwarg="on_progress"
        )
        try:
            task.start()
        except RuntimeError:
            self._release_reservation()
            raise
        return task

    def _run_reserved(self, operation: str, *args, **kwargs) -> "FTPSession":
        """Worker side of background(): claim the reserved gate, then run."""
        with self._gate:
            self._gate_owner = threading.get_ident()
        try:
            return getattr(self, operation)(*args, **kwargs)
        finally:
            if self._gate_owner == threading.get_ident():
                self._release_reservation()

    def _release_reservation(self) -> None:
        """Drop a reservation no transfer took over."""
        with self._gate:
            self._gate_owner = None
            self._transferring = False
