"""Byte-stream transport for ftpsession.

Wraps a TCP socket (optionally TLS-wrapped) behind the small set of
operations the control and data channels need, so the rest of the package
never touches the socket API directly and tests can substitute a scripted
transport.
"""

import socket
import ssl
from typing import Optional, Tuple


# Longest control line accepted before the peer is considered broken
MAX_LINE_LENGTH = 8192


class SocketTransport:
    """Reliable byte stream over a connected socket."""

    def __init__(self, sock: socket.socket):
        """
        Initialize the transport.

        Args:
            sock: Connected socket, owned by the transport from now on
        """
        self._sock = sock
        self._reader = sock.makefile("rb")
        self._closed = False

    @classmethod
    def connect(
        cls,
        host: str,
        port: int,
        timeout: Optional[float] = None,
        source_address: Optional[Tuple[str, int]] = None
    ) -> "SocketTransport":
        """
        Open a TCP connection.

        Raises:
            socket.timeout: If the connection attempt times out
            OSError: If the connection is refused or unreachable
        """
        sock = socket.create_connection((host, port), timeout, source_address)
        return cls(sock)

    @property
    def family(self) -> int:
        """Address family of the underlying socket."""
        return self._sock.family

    @property
    def local_address(self) -> Tuple:
        """(host, port, ...) of the local end."""
        return self._sock.getsockname()

    @property
    def peer_address(self) -> Tuple:
        """(host, port, ...) of the remote end."""
        return self._sock.getpeername()

    @property
    def is_tls(self) -> bool:
        """True once the stream has been wrapped in TLS."""
        return isinstance(self._sock, ssl.SSLSocket)

    @property
    def tls_session(self) -> Optional[ssl.SSLSession]:
        """TLS session, reused by data connections of the same server."""
        if isinstance(self._sock, ssl.SSLSocket):
            return self._sock.session
        return None

    @property
    def closed(self) -> bool:
        """True after close()."""
        return self._closed

    def settimeout(self, timeout: Optional[float]) -> None:
        """Apply a per-operation timeout to the socket."""
        self._sock.settimeout(timeout)

    def start_tls(
        self,
        context: ssl.SSLContext,
        server_hostname: Optional[str] = None,
        session: Optional[ssl.SSLSession] = None
    ) -> None:
        """
        Wrap the stream in TLS.

        Raises:
            ssl.SSLError: If the handshake fails
        """
        self._reader.close()
        self._sock = context.wrap_socket(
            self._sock,
            server_hostname=server_hostname,
            session=session
        )
        self._reader = self._sock.makefile("rb")

    def _check_open(self) -> None:
        if self._closed:
            raise OSError("Transport is closed")

    def readline(self) -> bytes:
        """
        Read one line including its terminator.

        Returns:
            The line, or b"" at end of stream

        Raises:
            OSError: If the line exceeds MAX_LINE_LENGTH, the read fails or
                the transport has been closed
        """
        self._check_open()
        try:
            line = self._reader.readline(MAX_LINE_LENGTH + 1)
        except ValueError as e:
            # Closed from another thread between the check and the read
            raise OSError(f"Transport is closed: {e}") from e
        if len(line) > MAX_LINE_LENGTH:
            raise OSError(f"Line longer than {MAX_LINE_LENGTH} bytes")
        return line

    def read(self, size: int) -> bytes:
        """
        Read up to size bytes; b"" at end of stream.

        Raises:
            OSError: If the read fails or the transport has been closed
        """
        self._check_open()
        try:
            return self._reader.read1(size)
        except ValueError as e:
            raise OSError(f"Transport is closed: {e}") from e

    def sendall(self, data: bytes) -> None:
        """Write all bytes."""
        self._check_open()
        self._sock.sendall(data)

    def shutdown_tls(self) -> None:
        """Send TLS close_notify, if the stream is wrapped."""
        if isinstance(self._sock, ssl.SSLSocket):
            self._sock = self._sock.unwrap()

    def close(self) -> None:
        """
        Close the stream. Calling close() again is a no-op.

        Raises:
            OSError: If the socket close fails
        """
        if self._closed:
            return
        self._closed = True
        try:
            self._reader.close()
        finally:
            self._sock.close()


class SocketListener:
    """Listening socket for active-mode data connections."""

    def __init__(self, sock: socket.socket):
        self._sock = sock

    @classmethod
    def listen(
        cls,
        host: str,
        family: int = socket.AF_INET,
        timeout: Optional[float] = None
    ) -> "SocketListener":
        """
        Bind to an ephemeral port on host and start listening.

        Raises:
            OSError: If binding fails
        """
        sock = socket.socket(family, socket.SOCK_STREAM)
        try:
            sock.bind((host, 0))
            sock.listen(1)
            sock.settimeout(timeout)
        except OSError:
            sock.close()
            raise
        return cls(sock)

    @property
    def address(self) -> Tuple:
        """(host, port, ...) the listener is bound to."""
        return self._sock.getsockname()

    def accept(self, timeout: Optional[float] = None) -> SocketTransport:
        """
        Accept one inbound connection.

        Raises:
            socket.timeout: If nobody connects in time
        """
        self._sock.settimeout(timeout)
        conn, _ = self._sock.accept()
        conn.settimeout(timeout)
        return SocketTransport(conn)

    def close(self) -> None:
        """Stop listening."""
        self._sock.close()
