"""Unit tests for TransferEngine.

Tests binary and ASCII streaming, line-ending conversion across block
boundaries, progress reporting and error mapping.
"""

import io
import socket
from unittest.mock import MagicMock

import pytest

from ftpsession.ftp.exceptions import (
    FTPLocalIOError,
    FTPTimeoutError,
    FTPTransferError,
)
from ftpsession.ftp.transfer import (
    TransferDirection,
    TransferEngine,
    TransferMode,
    TransferProgress,
    TransferResult,
)


class FakeChannel:
    """Data channel serving a payload and recording writes."""

    def __init__(self, payload: bytes = b""):
        self._payload = io.BytesIO(payload)
        self.written = []

    def read(self, size: int) -> bytes:
        return self._payload.read(size)

    def write(self, data: bytes) -> None:
        self.written.append(data)

    @property
    def written_bytes(self) -> bytes:
        return b"".join(self.written)


def make_engine(mode=TransferMode.BINARY, block_size=None, **kwargs):
    """Create an engine, optionally with a small block size."""
    engine = TransferEngine(mode, "remote.txt", **kwargs)
    if block_size:
        engine.BLOCK_SIZE = block_size
    return engine


class TestTransferProgress:
    """Tests for TransferProgress and TransferResult."""

    def test_percent(self):
        """Test percentage calculation."""
        assert TransferProgress("f", 50, 200).percent == 25.0

    def test_percent_unknown_total(self):
        """Test percentage when the total is unknown."""
        assert TransferProgress("f", 50).percent == 0.0

    def test_end_offset(self):
        """Test position after a resumed transfer."""
        result = TransferResult(
            "f", TransferDirection.DOWNLOAD, TransferMode.BINARY,
            bytes_transferred=30, resume_offset=70
        )
        assert result.end_offset == 100


class TestReceive:
    """Tests for TransferEngine.receive."""

    def test_binary_is_unmodified(self, sample_payload):
        """Test that binary data passes through byte for byte."""
        payload = sample_payload + b"\r\n\r\r\n"
        sink = io.BytesIO()

        count = make_engine().receive(FakeChannel(payload), sink)

        assert sink.getvalue() == payload
        assert count == len(payload)

    def test_ascii_converts_crlf(self):
        """Test that network CRLF becomes LF."""
        sink = io.BytesIO()

        make_engine(TransferMode.ASCII).receive(FakeChannel(b"one\r\ntwo\r\n"), sink)

        assert sink.getvalue() == b"one\ntwo\n"

    def test_ascii_crlf_split_across_blocks(self):
        """Test a CRLF pair split between two reads."""
        sink = io.BytesIO()
        engine = make_engine(TransferMode.ASCII, block_size=4)

        engine.receive(FakeChannel(b"abc\r\nd\r\n"), sink)

        assert sink.getvalue() == b"abc\nd\n"

    def test_ascii_keeps_lone_cr(self):
        """Test that a CR not followed by LF is kept."""
        sink = io.BytesIO()

        make_engine(TransferMode.ASCII, block_size=2).receive(FakeChannel(b"a\rb\r"), sink)

        assert sink.getvalue() == b"a\rb\r"

    def test_counts_local_bytes(self):
        """Test that the count reflects bytes written locally."""
        sink = io.BytesIO()
        engine = make_engine(TransferMode.ASCII)

        count = engine.receive(FakeChannel(b"a\r\nb\r\n"), sink)

        assert count == 4
        assert engine.bytes_transferred == 4

    def test_reports_progress(self, sample_payload):
        """Test a progress update per block."""
        updates = []
        engine = make_engine(on_progress=updates.append, total=len(sample_payload))

        engine.receive(FakeChannel(sample_payload), io.BytesIO())

        assert len(updates) == -(-len(sample_payload) // TransferEngine.BLOCK_SIZE)
        assert updates[-1].bytes_transferred == len(sample_payload)
        assert updates[-1].percent == 100.0
        assert updates[0].remote_path == "remote.txt"

    def test_sink_failure(self):
        """Test that a local write failure raises FTPLocalIOError."""
        sink = MagicMock()
        sink.write.side_effect = OSError("disk full")

        with pytest.raises(FTPLocalIOError, match="disk full"):
            make_engine().receive(FakeChannel(b"data"), sink)

    def test_channel_timeout(self):
        """Test that a stalled data connection raises FTPTimeoutError."""
        channel = MagicMock()
        channel.read.side_effect = socket.timeout("timed out")

        with pytest.raises(FTPTimeoutError):
            make_engine(timeout=5).receive(channel, io.BytesIO())

    def test_channel_failure(self):
        """Test that a broken data connection raises FTPTransferError."""
        channel = MagicMock()
        channel.read.side_effect = ConnectionResetError("reset")

        with pytest.raises(FTPTransferError):
            make_engine().receive(channel, io.BytesIO())


class TestSend:
    """Tests for TransferEngine.send."""

    def test_binary_is_unmodified(self, sample_payload):
        """Test that binary data passes through byte for byte."""
        channel = FakeChannel()

        count = make_engine().send(io.BytesIO(sample_payload), channel)

        assert channel.written_bytes == sample_payload
        assert count == len(sample_payload)

    def test_ascii_converts_bare_lf(self):
        """Test that bare LF becomes CRLF and existing CRLF is kept."""
        channel = FakeChannel()

        make_engine(TransferMode.ASCII).send(io.BytesIO(b"a\nb\r\nc"), channel)

        assert channel.written_bytes == b"a\r\nb\r\nc"

    def test_ascii_crlf_split_across_blocks(self):
        """Test a CRLF pair split between two local reads."""
        channel = FakeChannel()

        make_engine(TransferMode.ASCII, block_size=4).send(io.BytesIO(b"abc\r\nd\n"), channel)

        assert channel.written_bytes == b"abc\r\nd\r\n"

    def test_counts_local_bytes(self):
        """Test that the count reflects bytes read locally."""
        engine = make_engine(TransferMode.ASCII)

        count = engine.send(io.BytesIO(b"a\nb\n"), FakeChannel())

        assert count == 4

    def test_source_failure(self):
        """Test that a local read failure raises FTPLocalIOError."""
        source = MagicMock()
        source.read.side_effect = OSError("I/O error")

        with pytest.raises(FTPLocalIOError):
            make_engine().send(source, FakeChannel())

    def test_channel_failure(self):
        """Test that a broken data connection raises FTPTransferError."""
        channel = MagicMock()
        channel.write.side_effect = BrokenPipeError("broken")

        with pytest.raises(FTPTransferError):
            make_engine().send(io.BytesIO(b"data"), channel)
