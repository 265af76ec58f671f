"""Pytest configuration and shared fixtures for ftpsession tests."""

import io
import socket
from collections import deque
from typing import Iterable, List, Optional

import pytest

from ftpsession.ftp.session import FTPSession


# Test constants
TEST_FTP_USER = "testuser"
TEST_FTP_PASS = "testpass"

# Replies of a successful USER/PASS login, after the greeting
GREETING = "220 Test FTP server ready."
LOGIN_REPLIES = ["331 Username ok, send password.", "230 Login successful."]

# PASV reply pointing at 127.0.0.1:51210
PASV_REPLY = "227 Entering Passive Mode (127,0,0,1,200,10)."


class FakeTransport:
    """
    Scripted stand-in for SocketTransport.

    Control use: readline() returns the scripted reply lines one by one, then
    b"" (end of stream). Data use: read() returns the payload. Everything
    written is recorded in sent.
    """

    def __init__(
        self,
        lines: Iterable[str] = (),
        payload: bytes = b"",
        family: int = socket.AF_INET,
        peer_address: tuple = ("127.0.0.1", 21),
        local_address: tuple = ("127.0.0.1", 40000)
    ):
        self._lines = deque(line.encode("utf-8") + b"\r\n" for line in lines)
        self._payload = io.BytesIO(payload)
        self.family = family
        self.peer_address = peer_address
        self.local_address = local_address
        self.is_tls = False
        self.tls_session = None
        self.closed = False
        self.sent: List[bytes] = []
        self.timeouts: List[Optional[float]] = []

    @property
    def sent_lines(self) -> List[str]:
        """Sent commands, without their CRLF."""
        return [data.decode("utf-8").rstrip("\r\n") for data in self.sent]

    @property
    def sent_bytes(self) -> bytes:
        """Everything written, concatenated."""
        return b"".join(self.sent)

    def settimeout(self, timeout: Optional[float]) -> None:
        self.timeouts.append(timeout)

    def readline(self) -> bytes:
        return self._lines.popleft() if self._lines else b""

    def read(self, size: int) -> bytes:
        return self._payload.read(size)

    def sendall(self, data: bytes) -> None:
        self.sent.append(data)

    def shutdown_tls(self) -> None:
        pass

    def close(self) -> None:
        self.closed = True


class ScriptedServer:
    """
    Transport factory playing one FTP server.

    The first connection is the control connection; later connections are
    data connections served from payloads in order.
    """

    def __init__(self, replies: Iterable[str], payloads: Iterable[bytes] = ()):
        self.control = FakeTransport(replies, peer_address=("127.0.0.1", 21))
        self.data = [FakeTransport(payload=payload) for payload in payloads]
        self.connections: List[tuple] = []

    @property
    def commands(self) -> List[str]:
        """Commands the client sent on the control connection."""
        return self.control.sent_lines

    def connect(self, host: str, port: int, timeout: Optional[float] = None) -> FakeTransport:
        self.connections.append((host, port, timeout))
        if len(self.connections) == 1:
            return self.control
        return self.data[len(self.connections) - 2]


class FakeListener:
    """Stand-in for SocketListener handing out one scripted data transport."""

    def __init__(self, transport: FakeTransport, address: tuple = ("127.0.0.1", 50001)):
        self.address = address
        self._transport = transport
        self.closed = False

    def accept(self, timeout: Optional[float] = None) -> FakeTransport:
        return self._transport

    def close(self) -> None:
        self.closed = True


def logged_in_session(server: ScriptedServer, **kwargs) -> FTPSession:
    """Connect and log in through a scripted server, then forget the login commands."""
    session = FTPSession(transport_factory=server.connect, **kwargs)
    session.connect("ftp.example.com")
    session.login(TEST_FTP_USER, TEST_FTP_PASS)
    server.control.sent.clear()
    return session


@pytest.fixture
def sample_payload() -> bytes:
    """Binary payload spanning several transfer blocks."""
    return bytes(range(256)) * 200
