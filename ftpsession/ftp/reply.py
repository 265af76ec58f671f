"""FTP reply parsing for ftpsession.

Provides the immutable Reply value, an incremental ReplyParser that handles
multi-line framing, and helpers that pull structured values (PASV/EPSV
endpoints, 257 pathnames, MDTM timestamps) out of reply text.
"""

import re
from calendar import timegm
from dataclasses import dataclass
from typing import List, Optional, Tuple

from ftpsession.ftp.exceptions import FTPMalformedReplyError


# "ddd text", "ddd-text" or a bare "ddd"
REPLY_LINE_PATTERN = re.compile(r'^(\d{3})([ -]|$)(.*)$', re.DOTALL)

PASV_PATTERN = re.compile(r'(\d+),\s*(\d+),\s*(\d+),\s*(\d+),\s*(\d+),\s*(\d+)')
EPSV_PATTERN = re.compile(r'\((.)\1\1(\d+)\1\)')
MDTM_PATTERN = re.compile(r'^(\d{4})(\d{2})(\d{2})(\d{2})(\d{2})(\d{2})(?:\.\d+)?$')


@dataclass(frozen=True)
class Reply:
    """A complete server reply."""
    code: int
    multiline: bool
    message: str
    lines: Tuple[str, ...] = ()

    def __str__(self) -> str:
        if self.lines:
            return "\n".join(self.lines)
        return f"{self.code} {self.message}"

    @property
    def category(self) -> int:
        """First digit of the reply code."""
        return self.code // 100

    @property
    def is_preliminary(self) -> bool:
        """1xx: action started, another reply will follow."""
        return self.category == 1

    @property
    def is_success(self) -> bool:
        """2xx: action completed."""
        return self.category == 2

    @property
    def is_intermediate(self) -> bool:
        """3xx: server waits for a further command."""
        return self.category == 3

    @property
    def is_failure(self) -> bool:
        """4xx/5xx: action not taken."""
        return self.category in (4, 5)


class ReplyParser:
    """
    Incremental parser turning control channel lines into Reply values.

    Usage:
        parser = ReplyParser()
        for line in lines:
            reply = parser.feed(line)
            if reply is not None:
                handle(reply)
        parser.finish()
    """

    def __init__(self):
        """Initialize the parser."""
        self._code: Optional[str] = None
        self._lines: List[str] = []
        self._messages: List[str] = []

    @property
    def pending(self) -> bool:
        """True while a multi-line reply is open."""
        return self._code is not None

    def feed(self, line: str) -> Optional[Reply]:
        """
        Feed one line (without its line terminator).

        Args:
            line: Decoded reply line

        Returns:
            A Reply once the line completes one, None otherwise

        Raises:
            FTPMalformedReplyError: If the first line of a reply has no code
        """
        line = line.rstrip("\r\n")

        if self._code is None:
            match = REPLY_LINE_PATTERN.match(line)
            if not match:
                raise FTPMalformedReplyError(line, "missing reply code")
            code, separator, text = match.groups()
            if not 100 <= int(code) <= 599:
                raise FTPMalformedReplyError(line, f"reply code {code} out of range")
            if separator == "-":
                self._code = code
                self._lines = [line]
                self._messages = [text]
                return None
            return Reply(code=int(code), multiline=False, message=text, lines=(line,))

        self._lines.append(line)
        if line[:3] == self._code and line[3:4] == " ":
            self._messages.append(line[4:])
            reply = Reply(
                code=int(self._code),
                multiline=True,
                message="\n".join(self._messages),
                lines=tuple(self._lines),
            )
            self._code = None
            self._lines = []
            self._messages = []
            return reply

        self._messages.append(line)
        return None

    def finish(self) -> None:
        """
        Signal end of stream.

        Raises:
            FTPMalformedReplyError: If a multi-line reply was never terminated
        """
        if self._code is not None:
            last = self._lines[-1] if self._lines else None
            self._code = None
            self._lines = []
            self._messages = []
            raise FTPMalformedReplyError(last, "multi-line reply not terminated before end of stream")


def parse_reply(text: str) -> Reply:
    """
    Parse exactly one reply from raw text.

    Args:
        text: Raw reply text, lines separated by CRLF or LF

    Returns:
        Parsed Reply

    Raises:
        FTPMalformedReplyError: If the text is not a single complete reply
    """
    parser = ReplyParser()
    lines = text.splitlines()
    for index, line in enumerate(lines):
        reply = parser.feed(line)
        if reply is not None:
            if index != len(lines) - 1:
                raise FTPMalformedReplyError(lines[index + 1], "trailing text after reply")
            return reply
    parser.finish()
    raise FTPMalformedReplyError(None, "empty reply")


def parse_pasv_reply(reply: Reply) -> Tuple[str, int]:
    """
    Extract the endpoint from a 227 Entering Passive Mode reply.

    Returns:
        Tuple of (host, port)

    Raises:
        ValueError: If the reply has no h1,h2,h3,h4,p1,p2 tuple
    """
    match = PASV_PATTERN.search(reply.message)
    if not match:
        raise ValueError(f"No address in PASV reply: {reply}")
    numbers = [int(n) for n in match.groups()]
    if any(n > 255 for n in numbers):
        raise ValueError(f"Invalid address in PASV reply: {reply}")
    host = ".".join(str(n) for n in numbers[:4])
    port = (numbers[4] << 8) + numbers[5]
    return host, port


def parse_epsv_reply(reply: Reply) -> int:
    """
    Extract the port from a 229 Entering Extended Passive Mode reply.

    Raises:
        ValueError: If the reply has no (|||port|) group
    """
    matches = EPSV_PATTERN.findall(reply.message)
    if not matches:
        raise ValueError(f"No port in EPSV reply: {reply}")
    port = int(matches[-1][1])
    if not 0 < port <= 65535:
        raise ValueError(f"Invalid port in EPSV reply: {reply}")
    return port


def parse_pathname_reply(reply: Reply) -> str:
    """
    Extract the quoted pathname of a 257 reply.

    Embedded quotes are doubled by the server ("" -> "). When the reply has
    no quoted name the whole message is returned.
    """
    text = reply.message.split("\n", 1)[0]
    if not text.startswith('"'):
        return text.strip()

    path = ""
    i = 1
    while i < len(text):
        char = text[i]
        if char == '"':
            if text[i + 1:i + 2] == '"':
                path += '"'
                i += 2
                continue
            break
        path += char
        i += 1
    return path


def parse_mdtm_reply(reply: Reply) -> int:
    """
    Convert a 213 YYYYMMDDHHMMSS[.fff] reply to a UTC epoch timestamp.

    Raises:
        ValueError: If the value is not a timestamp
    """
    match = MDTM_PATTERN.match(reply.message.strip())
    if not match:
        raise ValueError(f"Invalid MDTM value: {reply}")
    fields = tuple(int(part) for part in match.groups())
    return timegm(fields + (0, 0, 0))


def parse_size_reply(reply: Reply) -> int:
    """
    Convert a 213 SIZE reply to an integer.

    Raises:
        ValueError: If the value is not a non-negative integer
    """
    value = reply.message.strip()
    if not value.isdigit():
        raise ValueError(f"Invalid SIZE value: {reply}")
    return int(value)
