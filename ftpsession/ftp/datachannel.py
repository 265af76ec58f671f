"""Data channel negotiation for ftpsession.

Sets up the secondary connection that carries one file or one listing, in
passive mode (client connects to a server-advertised endpoint) or active
mode (server connects back to a client-advertised endpoint).
"""

import logging
import socket
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from ftpsession.ftp.control import ControlConnection
from ftpsession.ftp.exceptions import FTPNegotiationError, FTPTimeoutError
from ftpsession.ftp.reply import parse_epsv_reply, parse_pasv_reply
from ftpsession.ftp.transport import SocketListener, SocketTransport

logger = logging.getLogger("ftpsession.datachannel")


class DataChannelMode(Enum):
    """How the data connection is established."""
    PASSIVE = "passive"
    ACTIVE = "active"


@dataclass(frozen=True)
class DataChannelDescriptor:
    """Negotiated endpoint of one data connection."""
    mode: DataChannelMode
    host: str
    port: int


class DataChannel:
    """
    One data connection, used for exactly one transfer.

    Usage:
        channel = negotiate_passive(control, timeout=30)
        with channel:
            reply = control.send_command("RETR", "file.bin")
            channel.accept()
            data = channel.read(8192)
    """

    def __init__(
        self,
        descriptor: DataChannelDescriptor,
        control: ControlConnection,
        timeout: Optional[float] = None,
        transport: Optional[SocketTransport] = None,
        listener: Optional[SocketListener] = None
    ):
        """
        Initialize the channel.

        Args:
            descriptor: Negotiated endpoint
            control: Control connection the channel belongs to
            timeout: Per-operation timeout in seconds
            transport: Connected stream (passive mode)
            listener: Pending listener (active mode)
        """
        self.descriptor = descriptor
        self._control = control
        self._timeout = timeout
        self._transport = transport
        self._listener = listener
        self._closed = False

    @property
    def mode(self) -> DataChannelMode:
        """Negotiation mode of this channel."""
        return self.descriptor.mode

    @property
    def is_open(self) -> bool:
        """True once a connection exists and has not been closed."""
        return self._transport is not None and not self._closed

    def accept(self) -> None:
        """
        Complete the connection.

        Passive channels are already connected. Active channels wait for the
        server's inbound connection; call this after the transfer command's
        preliminary reply. When the control channel negotiated PROT P the
        stream is wrapped in TLS here.

        Raises:
            FTPTimeoutError: If the server does not connect in time
            FTPNegotiationError: If accepting or the TLS handshake fails
        """
        if self._transport is None:
            try:
                self._transport = self._listener.accept(self._timeout)
            except socket.timeout:
                raise FTPTimeoutError("Waiting for data connection", self._timeout)
            except OSError as e:
                raise FTPNegotiationError(self.mode.value, original_error=e)
            finally:
                self._listener.close()
                self._listener = None

        if self._control.data_protected and not self._transport.is_tls:
            try:
                self._transport.start_tls(
                    self._control.ssl_context,
                    server_hostname=self._control.host,
                    session=self._control.transport.tls_session
                )
            except OSError as e:
                raise FTPNegotiationError(self.mode.value, original_error=e)

    def read(self, size: int) -> bytes:
        """Read up to size bytes; b"" when the server closed the channel."""
        return self._transport.read(size)

    def write(self, data: bytes) -> None:
        """Write all bytes."""
        self._transport.sendall(data)

    def finish(self) -> None:
        """
        End an upload cleanly (TLS close_notify) before close().

        Raises:
            OSError: If the TLS shutdown fails
        """
        if self._transport is not None and self._transport.is_tls:
            self._transport.shutdown_tls()

    def close(self) -> None:
        """Close the channel. Calling close() again is a no-op."""
        if self._closed:
            return
        self._closed = True
        if self._listener is not None:
            self._listener.close()
            self._listener = None
        if self._transport is not None:
            self._transport.close()

    def __enter__(self) -> "DataChannel":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


def negotiate_passive(
    control: ControlConnection,
    timeout: Optional[float] = None,
    connect: Callable[..., SocketTransport] = SocketTransport.connect
) -> DataChannel:
    """
    Open a passive data channel (PASV, or EPSV on IPv6).

    Args:
        control: Authenticated control connection
        timeout: Per-operation timeout in seconds
        connect: Transport factory used to reach the advertised endpoint

    Returns:
        Connected DataChannel

    Raises:
        FTPNegotiationError: If the server refuses or the endpoint is unusable
        FTPTimeoutError: If connecting to the endpoint times out
    """
    peer_host = control.transport.peer_address[0]

    if control.transport.family == socket.AF_INET6:
        reply = control.send_command("EPSV")
        if reply.code != 229:
            raise FTPNegotiationError(DataChannelMode.PASSIVE.value, reply)
        try:
            host, port = peer_host, parse_epsv_reply(reply)
        except ValueError as e:
            raise FTPNegotiationError(DataChannelMode.PASSIVE.value, reply, e)
    else:
        reply = control.send_command("PASV")
        if reply.code != 227:
            raise FTPNegotiationError(DataChannelMode.PASSIVE.value, reply)
        try:
            host, port = parse_pasv_reply(reply)
        except ValueError as e:
            raise FTPNegotiationError(DataChannelMode.PASSIVE.value, reply, e)
        if host == "0.0.0.0":
            host = peer_host

    logger.debug(f"Passive data channel at {host}:{port}")
    try:
        transport = connect(host, port, timeout)
    except socket.timeout:
        raise FTPTimeoutError("Data connection", timeout)
    except OSError as e:
        raise FTPNegotiationError(DataChannelMode.PASSIVE.value, reply, e)

    descriptor = DataChannelDescriptor(DataChannelMode.PASSIVE, host, port)
    return DataChannel(descriptor, control, timeout, transport=transport)


def format_port_argument(host: str, port: int) -> str:
    """Format an IPv4 endpoint as the PORT argument h1,h2,h3,h4,p1,p2."""
    octets = host.split(".")
    return ",".join(octets + [str(port >> 8), str(port & 0xFF)])


def format_eprt_argument(host: str, port: int, family: int) -> str:
    """Format an endpoint as the EPRT argument |proto|host|port|."""
    protocol = 2 if family == socket.AF_INET6 else 1
    return f"|{protocol}|{host}|{port}|"


def negotiate_active(
    control: ControlConnection,
    timeout: Optional[float] = None,
    bind_address: Optional[str] = None,
    listen: Callable[..., SocketListener] = SocketListener.listen
) -> DataChannel:
    """
    Prepare an active data channel (PORT, or EPRT on IPv6).

    The returned channel is still waiting for the server; call
    DataChannel.accept() after sending the transfer command.

    Args:
        control: Authenticated control connection
        timeout: Per-operation timeout in seconds
        bind_address: Local address to listen on (default: control's local address)
        listen: Listener factory

    Raises:
        FTPNegotiationError: If listening fails or the server refuses PORT/EPRT
    """
    family = control.transport.family
    host = bind_address or control.transport.local_address[0]

    try:
        listener = listen(host, family, timeout)
    except OSError as e:
        raise FTPNegotiationError(DataChannelMode.ACTIVE.value, original_error=e)

    port = listener.address[1]
    try:
        if family == socket.AF_INET6:
            reply = control.send_command("EPRT", format_eprt_argument(host, port, family))
        else:
            reply = control.send_command("PORT", format_port_argument(host, port))
    except Exception:
        listener.close()
        raise

    if not reply.is_success:
        listener.close()
        raise FTPNegotiationError(DataChannelMode.ACTIVE.value, reply)

    logger.debug(f"Active data channel listening at {host}:{port}")
    descriptor = DataChannelDescriptor(DataChannelMode.ACTIVE, host, port)
    return DataChannel(descriptor, control, timeout, listener=listener)
