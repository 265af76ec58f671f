"""Unit tests for reply parsing.

Tests single and multi-line framing, malformed input and the helpers that
extract PASV/EPSV endpoints, pathnames and timestamps.
"""

from datetime import datetime, timezone

import pytest

from ftpsession.ftp.exceptions import FTPMalformedReplyError
from ftpsession.ftp.reply import (
    Reply,
    ReplyParser,
    parse_epsv_reply,
    parse_mdtm_reply,
    parse_pasv_reply,
    parse_pathname_reply,
    parse_reply,
    parse_size_reply,
)


class TestReply:
    """Tests for the Reply value."""

    def test_categories(self):
        """Test classification by first digit."""
        assert Reply(150, False, "Opening").is_preliminary is True
        assert Reply(226, False, "Done").is_success is True
        assert Reply(350, False, "Pending").is_intermediate is True
        assert Reply(421, False, "Bye").is_failure is True
        assert Reply(550, False, "Nope").is_failure is True
        assert Reply(550, False, "Nope").is_success is False

    def test_str_is_raw_text(self):
        """Test that str() reproduces the raw reply lines."""
        reply = parse_reply("211-Features:\r\n MDTM\r\n211 End")
        assert str(reply) == "211-Features:\n MDTM\n211 End"

    def test_str_without_lines(self):
        """Test str() of a constructed reply."""
        assert str(Reply(200, False, "OK")) == "200 OK"


class TestReplyParser:
    """Tests for ReplyParser framing."""

    def test_single_line(self):
        """Test a single-line reply completes immediately."""
        parser = ReplyParser()
        reply = parser.feed("230 Login successful.")

        assert reply.code == 230
        assert reply.multiline is False
        assert reply.message == "Login successful."
        assert parser.pending is False

    def test_bare_code(self):
        """Test a reply consisting of just the code."""
        reply = ReplyParser().feed("200")
        assert reply.code == 200
        assert reply.message == ""

    def test_multiline(self):
        """Test a multi-line reply ends at 'ddd ' with the same code."""
        parser = ReplyParser()
        assert parser.feed("220-Welcome") is None
        assert parser.pending is True
        assert parser.feed("  to the server") is None
        reply = parser.feed("220 Ready")

        assert reply.code == 220
        assert reply.multiline is True
        assert reply.message == "Welcome\n  to the server\nReady"
        assert reply.lines == ("220-Welcome", "  to the server", "220 Ready")
        assert parser.pending is False

    def test_multiline_ignores_inner_codes(self):
        """Test that inner lines with digits or other codes do not end the reply."""
        parser = ReplyParser()
        parser.feed("211-Status")
        assert parser.feed("211-still going") is None
        assert parser.feed("230 another code") is None
        assert parser.feed("211") is None
        reply = parser.feed("211 End")

        assert reply.code == 211
        assert len(reply.lines) == 5

    def test_strips_line_terminator(self):
        """Test that CRLF is removed from fed lines."""
        reply = ReplyParser().feed("200 OK\r\n")
        assert reply.message == "OK"

    def test_parser_is_reusable(self):
        """Test parsing consecutive replies with one parser."""
        parser = ReplyParser()
        parser.feed("150-Opening")
        first = parser.feed("150 data connection")
        second = parser.feed("226 Transfer complete")

        assert first.code == 150
        assert second.code == 226

    @pytest.mark.parametrize("line", ["", "abc", "22 short", "2x0 bad", "2200 long"])
    def test_missing_code_raises(self, line):
        """Test that lines without a three-digit code are rejected."""
        with pytest.raises(FTPMalformedReplyError):
            ReplyParser().feed(line)

    @pytest.mark.parametrize("line", ["099 too low", "600 too high", "000"])
    def test_code_out_of_range_raises(self, line):
        """Test that codes outside 100-599 are rejected."""
        with pytest.raises(FTPMalformedReplyError, match="out of range"):
            ReplyParser().feed(line)

    def test_finish_with_open_reply_raises(self):
        """Test that end of stream inside a multi-line reply is malformed."""
        parser = ReplyParser()
        parser.feed("220-Welcome")

        with pytest.raises(FTPMalformedReplyError, match="not terminated"):
            parser.finish()
        assert parser.pending is False

    def test_finish_when_idle(self):
        """Test that finish() between replies is fine."""
        ReplyParser().finish()


class TestParseReply:
    """Tests for parse_reply."""

    def test_trailing_text_raises(self):
        """Test that text after a complete reply is rejected."""
        with pytest.raises(FTPMalformedReplyError, match="trailing"):
            parse_reply("200 OK\r\n200 Again")

    def test_empty_raises(self):
        """Test that empty text is rejected."""
        with pytest.raises(FTPMalformedReplyError):
            parse_reply("")


class TestReplyHelpers:
    """Tests for value extraction helpers."""

    def test_parse_pasv(self):
        """Test extracting a PASV endpoint."""
        reply = parse_reply("227 Entering Passive Mode (192,168,1,20,195,81).")
        assert parse_pasv_reply(reply) == ("192.168.1.20", 50001)

    def test_parse_pasv_without_parentheses(self):
        """Test servers that omit the parentheses."""
        reply = parse_reply("227 Entering Passive Mode 10,0,0,1,4,1")
        assert parse_pasv_reply(reply) == ("10.0.0.1", 1025)

    @pytest.mark.parametrize("text", [
        "227 Entering Passive Mode",
        "227 Entering Passive Mode (300,1,1,1,1,1)",
    ])
    def test_parse_pasv_invalid(self, text):
        """Test that unusable PASV replies raise ValueError."""
        with pytest.raises(ValueError):
            parse_pasv_reply(parse_reply(text))

    def test_parse_epsv(self):
        """Test extracting an EPSV port."""
        reply = parse_reply("229 Entering Extended Passive Mode (|||6446|)")
        assert parse_epsv_reply(reply) == 6446

    def test_parse_epsv_other_delimiter(self):
        """Test EPSV with a delimiter other than '|'."""
        reply = parse_reply("229 Entering Extended Passive Mode (!!!6446!)")
        assert parse_epsv_reply(reply) == 6446

    def test_parse_epsv_invalid(self):
        """Test that an EPSV reply without a port raises ValueError."""
        with pytest.raises(ValueError):
            parse_epsv_reply(parse_reply("229 Entering Extended Passive Mode"))

    def test_parse_pathname(self):
        """Test extracting a quoted pathname."""
        reply = parse_reply('257 "/home/user" is the current directory.')
        assert parse_pathname_reply(reply) == "/home/user"

    def test_parse_pathname_doubled_quotes(self):
        """Test that doubled quotes in a pathname are unescaped."""
        reply = parse_reply('257 "/a ""quoted"" dir" created.')
        assert parse_pathname_reply(reply) == '/a "quoted" dir'

    def test_parse_pathname_unquoted(self):
        """Test servers that do not quote the pathname."""
        assert parse_pathname_reply(parse_reply("257 /plain")) == "/plain"

    def test_parse_mdtm(self):
        """Test converting an MDTM timestamp to a UTC epoch."""
        expected = int(datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc).timestamp())
        assert parse_mdtm_reply(parse_reply("213 20240102030405")) == expected
        assert parse_mdtm_reply(parse_reply("213 20240102030405.123")) == expected

    def test_parse_mdtm_invalid(self):
        """Test that a non-timestamp MDTM reply raises ValueError."""
        with pytest.raises(ValueError):
            parse_mdtm_reply(parse_reply("213 yesterday"))

    def test_parse_size(self):
        """Test converting a SIZE reply."""
        assert parse_size_reply(parse_reply("213 1024")) == 1024

    def test_parse_size_invalid(self):
        """Test that a non-numeric SIZE reply raises ValueError."""
        with pytest.raises(ValueError):
            parse_size_reply(parse_reply("213 -5"))
