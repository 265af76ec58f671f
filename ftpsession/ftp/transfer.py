"""Transfer engine for ftpsession.

Streams bytes between a data channel and a local byte source or sink,
applying the ASCII line-ending convention when required and reporting
progress per block.
"""

import re
import socket
from dataclasses import dataclass
from enum import Enum
from typing import BinaryIO, Callable, Optional

from ftpsession.ftp.datachannel import DataChannel
from ftpsession.ftp.exceptions import (
    FTPLocalIOError,
    FTPTimeoutError,
    FTPTransferError,
)


# Bare LF not preceded by CR
BARE_LF_PATTERN = re.compile(rb"(?<!\r)\n")


class TransferMode(Enum):
    """Representation type, valued by its TYPE argument."""
    ASCII = "A"
    BINARY = "I"


class TransferDirection(Enum):
    """Direction of a file transfer."""
    DOWNLOAD = "download"
    UPLOAD = "upload"


@dataclass
class TransferProgress:
    """Progress information for a transfer in flight."""
    remote_path: str
    bytes_transferred: int
    bytes_total: Optional[int] = None

    @property
    def percent(self) -> float:
        """Transfer progress as percentage (0-100), 0 if the total is unknown."""
        if not self.bytes_total:
            return 0.0
        return (self.bytes_transferred / self.bytes_total) * 100.0


@dataclass
class TransferResult:
    """Result of one completed transfer."""
    remote_path: str
    direction: TransferDirection
    mode: TransferMode
    bytes_transferred: int = 0
    resume_offset: int = 0
    duration_seconds: float = 0.0

    @property
    def end_offset(self) -> int:
        """Position in the file after this transfer."""
        return self.resume_offset + self.bytes_transferred


# Type alias for progress callback
ProgressCallback = Callable[[TransferProgress], None]


def _stream_name(stream) -> str:
    return str(getattr(stream, "name", "<stream>"))


class TransferEngine:
    """Moves file content across one data channel."""

    # Block size for transfers (8KB)
    BLOCK_SIZE = 8192

    def __init__(
        self,
        mode: TransferMode,
        remote_path: str,
        on_progress: Optional[ProgressCallback] = None,
        total: Optional[int] = None,
        timeout: Optional[float] = None
    ):
        """
        Initialize the engine.

        Args:
            mode: ASCII or BINARY
            remote_path: Remote file, for progress and error reporting
            on_progress: Optional callback invoked after every block
            total: Expected number of bytes, if known
            timeout: Socket timeout, for error reporting
        """
        self.mode = mode
        self.remote_path = remote_path
        self._on_progress = on_progress
        self._total = total
        self._timeout = timeout
        self.bytes_transferred = 0

    def _advance(self, count: int) -> None:
        self.bytes_transferred += count
        if self._on_progress:
            self._on_progress(TransferProgress(
                remote_path=self.remote_path,
                bytes_transferred=self.bytes_transferred,
                bytes_total=self._total
            ))

    def _read_channel(self, channel: DataChannel) -> bytes:
        try:
            return channel.read(self.BLOCK_SIZE)
        except socket.timeout:
            raise FTPTimeoutError(f"Receiving '{self.remote_path}'", self._timeout)
        except OSError as e:
            raise FTPTransferError(self.remote_path, "receive", original_error=e)

    def _write_channel(self, channel: DataChannel, data: bytes) -> None:
        try:
            channel.write(data)
        except socket.timeout:
            raise FTPTimeoutError(f"Sending '{self.remote_path}'", self._timeout)
        except OSError as e:
            raise FTPTransferError(self.remote_path, "send", original_error=e)

    def receive(self, channel: DataChannel, sink: BinaryIO) -> int:
        """
        Copy everything the server sends into sink, until the channel closes.

        In ASCII mode network CRLF line endings become LF.

        Returns:
            Number of bytes written to sink

        Raises:
            FTPLocalIOError: If writing to sink fails
            FTPTransferError: If the data connection breaks
            FTPTimeoutError: If the server stalls
        """
        pending_cr = b""

        while True:
            block = self._read_channel(channel)
            if not block:
                break

            if self.mode == TransferMode.ASCII:
                block = pending_cr + block
                # A CR at the end may be the first half of a CRLF split across blocks
                if block.endswith(b"\r"):
                    block, pending_cr = block[:-1], b"\r"
                else:
                    pending_cr = b""
                block = block.replace(b"\r\n", b"\n")

            self._write_sink(sink, block)

        if pending_cr:
            self._write_sink(sink, pending_cr)

        return self.bytes_transferred

    def _write_sink(self, sink: BinaryIO, data: bytes) -> None:
        if not data:
            return
        try:
            sink.write(data)
        except OSError as e:
            raise FTPLocalIOError("write", _stream_name(sink), e)
        self._advance(len(data))

    def send(self, source: BinaryIO, channel: DataChannel) -> int:
        """
        Copy source to the server until source is exhausted.

        In ASCII mode bare LF line endings become CRLF.

        Returns:
            Number of bytes read from source

        Raises:
            FTPLocalIOError: If reading source fails
            FTPTransferError: If the data connection breaks
            FTPTimeoutError: If the server stalls
        """
        previous_ended_with_cr = False

        while True:
            try:
                block = source.read(self.BLOCK_SIZE)
            except OSError as e:
                raise FTPLocalIOError("read", _stream_name(source), e)
            if not block:
                break

            data = block
            if self.mode == TransferMode.ASCII:
                data = BARE_LF_PATTERN.sub(b"\r\n", block)
                if previous_ended_with_cr and block.startswith(b"\n"):
                    # CRLF split across blocks: the LF was not bare
                    data = data[1:]
                previous_ended_with_cr = block.endswith(b"\r")

            self._write_channel(channel, data)
            self._advance(len(block))

        return self.bytes_transferred
