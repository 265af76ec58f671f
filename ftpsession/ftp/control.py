"""FTP control connection for ftpsession.

Owns the command/reply stream to the server: sends one CRLF-terminated
command at a time and reads back one logical (possibly multi-line) reply.
"""

import logging
import socket
import ssl
import threading
from typing import Callable, Optional

from ftpsession.ftp.exceptions import (
    FTPCloseError,
    FTPCommandInFlightError,
    FTPConnectionError,
    FTPProtocolError,
    FTPTimeoutError,
    FTPValidationError,
)
from ftpsession.ftp.reply import Reply, ReplyParser
from ftpsession.ftp.transport import SocketTransport

logger = logging.getLogger("ftpsession.control")


# Signature of SocketTransport.connect
TransportFactory = Callable[..., SocketTransport]

DEFAULT_PORT = 21
DEFAULT_TIMEOUT = 90
CRLF = b"\r\n"


class ControlConnection:
    """Command/reply channel to one FTP server."""

    def __init__(
        self,
        transport: SocketTransport,
        host: str,
        port: int = DEFAULT_PORT,
        timeout: float = DEFAULT_TIMEOUT,
        encoding: str = "utf-8"
    ):
        """
        Initialize over an already connected transport.

        Args:
            transport: Connected byte stream, owned from now on
            host: Server host name (used for TLS and logging)
            port: Server port
            timeout: Per-operation timeout in seconds
            encoding: Text encoding of commands and replies
        """
        self._transport = transport
        self._host = host
        self._port = port
        self._timeout = timeout
        self._encoding = encoding
        self._parser = ReplyParser()
        self._exchange_lock = threading.Lock()
        self._data_protected = False
        self._ssl_context: Optional[ssl.SSLContext] = None
        self.greeting: Optional[Reply] = None

    @classmethod
    def open(
        cls,
        host: str,
        secure: bool = False,
        port: int = DEFAULT_PORT,
        timeout: float = DEFAULT_TIMEOUT,
        transport_factory: TransportFactory = SocketTransport.connect,
        encoding: str = "utf-8",
        ssl_context: Optional[ssl.SSLContext] = None
    ) -> "ControlConnection":
        """
        Connect to the server and read its greeting.

        The greeting is stored on the returned connection; the caller decides
        whether it is acceptable. With secure=True the stream is upgraded via
        AUTH TLS right after a 220 greeting.

        Raises:
            FTPConnectionError: If the server refuses or TLS setup fails
            FTPTimeoutError: If connecting times out
        """
        try:
            transport = transport_factory(host, port, timeout)
        except socket.timeout:
            raise FTPTimeoutError("Connection", timeout)
        except OSError as e:
            raise FTPConnectionError(host, port, e)

        connection = cls(transport, host, port, timeout, encoding)
        try:
            connection.greeting = connection.read_reply()
            if secure and connection.greeting.code == 220:
                connection.start_tls(ssl_context)
        except Exception:
            connection.abort()
            raise
        return connection

    @property
    def host(self) -> str:
        """Server host name."""
        return self._host

    @property
    def port(self) -> int:
        """Server port."""
        return self._port

    @property
    def timeout(self) -> float:
        """Per-operation timeout in seconds."""
        return self._timeout

    @property
    def encoding(self) -> str:
        """Text encoding used on the control channel."""
        return self._encoding

    @property
    def transport(self) -> SocketTransport:
        """Underlying byte stream."""
        return self._transport

    @property
    def closed(self) -> bool:
        """True after close() or abort()."""
        return self._transport.closed

    @property
    def is_secure(self) -> bool:
        """True if the control stream is TLS-wrapped."""
        return self._transport.is_tls

    @property
    def data_protected(self) -> bool:
        """True once PROT P succeeded; data sockets must be wrapped as well."""
        return self._data_protected

    @property
    def ssl_context(self) -> Optional[ssl.SSLContext]:
        """TLS context of the control stream, reused for data connections."""
        return self._ssl_context

    def set_timeout(self, timeout: float) -> None:
        """Apply a new per-operation timeout to the live socket."""
        self._timeout = timeout
        self._transport.settimeout(timeout)

    def send_command(self, verb: str, *args: str) -> Reply:
        """
        Send one command and read its reply.

        Args:
            verb: Command verb (e.g. "CWD")
            *args: Command arguments, joined with single spaces

        Returns:
            The server's reply, whatever its code

        Raises:
            FTPValidationError: If the command contains CR or LF
            FTPCommandInFlightError: If another exchange is pending
            FTPTimeoutError: If the server does not answer in time
            FTPProtocolError: If the stream fails or the reply is malformed
        """
        line = " ".join((verb,) + tuple(str(arg) for arg in args))
        if "\r" in line or "\n" in line:
            raise FTPValidationError("command", f"Command {verb} contains a line break")

        if not self._exchange_lock.acquire(blocking=False):
            raise FTPCommandInFlightError(verb)
        try:
            self._write_line(verb, line)
            return self._read_reply()
        finally:
            self._exchange_lock.release()

    def read_reply(self) -> Reply:
        """
        Read one reply without sending anything (greetings, transfer completion).

        Raises:
            FTPCommandInFlightError: If another exchange is pending
            FTPTimeoutError: If the server does not answer in time
            FTPProtocolError: If the stream fails or the reply is malformed
        """
        if not self._exchange_lock.acquire(blocking=False):
            raise FTPCommandInFlightError("(reply)")
        try:
            return self._read_reply()
        finally:
            self._exchange_lock.release()

    def _write_line(self, verb: str, line: str) -> None:
        """Write one command line to the stream."""
        if verb.upper() == "PASS":
            logger.debug("> PASS ****")
        else:
            logger.debug(f"> {line}")
        try:
            self._transport.sendall(line.encode(self._encoding) + CRLF)
        except socket.timeout:
            raise FTPTimeoutError(f"Sending {verb}", self._timeout)
        except OSError as e:
            raise FTPProtocolError(f"Failed to send {verb}", e)

    def _read_reply(self) -> Reply:
        """Read lines until one complete reply has been parsed."""
        while True:
            try:
                raw = self._transport.readline()
            except socket.timeout:
                raise FTPTimeoutError("Waiting for reply", self._timeout)
            except OSError as e:
                raise FTPProtocolError("Failed to read reply", e)

            if not raw:
                # Raises if a multi-line reply was cut short
                self._parser.finish()
                raise FTPProtocolError("Connection closed by server")

            line = raw.decode(self._encoding, errors="replace").rstrip("\r\n")
            logger.debug(f"< {line}")
            reply = self._parser.feed(line)
            if reply is not None:
                return reply

    def start_tls(self, context: Optional[ssl.SSLContext] = None) -> None:
        """
        Upgrade the control stream with AUTH TLS.

        Raises:
            FTPConnectionError: If the server refuses AUTH TLS or the handshake fails
        """
        reply = self.send_command("AUTH", "TLS")
        if reply.code != 234:
            raise FTPConnectionError(self._host, self._port, reply=reply)

        self._ssl_context = context or ssl.create_default_context()
        try:
            self._transport.start_tls(self._ssl_context, server_hostname=self._host)
        except (ssl.SSLError, OSError) as e:
            raise FTPConnectionError(self._host, self._port, e)
        logger.info(f"Control connection to {self._host} secured with TLS")

    def protect_data(self) -> Reply:
        """
        Request encrypted data connections (PBSZ 0 + PROT P).

        Returns:
            The PROT reply; data_protected reflects whether it succeeded
        """
        self.send_command("PBSZ", "0")
        reply = self.send_command("PROT", "P")
        self._data_protected = reply.is_success
        return reply

    def abort(self) -> None:
        """Drop the stream without raising; used on failed setup."""
        try:
            self._transport.close()
        except OSError as e:
            logger.debug(f"Ignoring error while aborting connection: {e}")

    def close(self) -> None:
        """
        Close the stream. Closing an already closed connection is a no-op.

        Raises:
            FTPCloseError: If the socket cannot be closed
        """
        if self._transport.closed:
            return
        try:
            self._transport.close()
        except OSError as e:
            raise FTPCloseError("Unable to close connection", e)
