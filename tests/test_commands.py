"""Unit tests for the convenience command wrappers.

These verify the command lines built from typed arguments and how
replies are turned into return values.  Most use a mocked session; a
few run end to end over scripted replies.
"""

import datetime
from unittest import mock

import pytest

from agiclient import (
    ChannelState, CommandTimeout, DeadChannelError, ProtocolError,
    RecordOptions, Response, commands, parse_response,
)
from conftest import make_session, written_commands


# ---------------------------------------------------------------------------
# Module-level helpers
# ---------------------------------------------------------------------------

def _make_mock_session(line="200 result=1"):
    """Return a mocked session whose execute() replies with *line*."""
    session = mock.MagicMock()
    session.execute.return_value = parse_response(line)
    return session


def _sent(session):
    """Return (timeout, command line) of the last execute() call."""
    args = session.execute.call_args[0]
    return args[0], " ".join(args[1:])


# ---------------------------------------------------------------------------
# Call control
# ---------------------------------------------------------------------------

class TestCallControl:
    """Tests for answer, hangup, channel_status and exec_app."""

    def test_answer(self):
        session = _make_mock_session("200 result=0")
        commands.answer(session)
        assert _sent(session) == (30, "ANSWER")

    def test_answer_raises_on_dead_channel(self):
        session, _reader, _writer = make_session("511 result=-1")
        with pytest.raises(DeadChannelError):
            commands.answer(session)

    def test_hangup(self):
        session = _make_mock_session()
        commands.hangup(session)
        assert _sent(session) == (1, "HANGUP")

    def test_channel_status(self):
        session = _make_mock_session("200 result=6")
        assert commands.channel_status(session) is ChannelState.UP
        assert _sent(session) == (5, "CHANNEL STATUS")

    def test_channel_status_unknown_state(self):
        session = _make_mock_session("200 result=42")
        with pytest.raises(ProtocolError):
            commands.channel_status(session)

    def test_channel_status_non_numeric(self):
        session = _make_mock_session("200 result=up")
        with pytest.raises(ProtocolError):
            commands.channel_status(session)

    def test_exec_app(self):
        session = _make_mock_session("200 result=0 (ok)")
        assert commands.exec_app(session, 10, "Playback", "beep") == "ok"
        assert _sent(session) == (10, "EXEC Playback beep")

    def test_timeout_raised(self):
        session = mock.MagicMock()
        session.execute.return_value = Response(error=CommandTimeout("t"))
        with pytest.raises(CommandTimeout):
            commands.answer(session)


class TestChannelState:
    """Tests for the ChannelState enumeration."""

    def test_values(self):
        assert ChannelState.DOWN == 0
        assert ChannelState.RINGING == 5
        assert ChannelState.PRERING == 9
        assert len(ChannelState) == 10


# ---------------------------------------------------------------------------
# Variables
# ---------------------------------------------------------------------------

class TestVariables:
    """Tests for get_variable and set_variable."""

    def test_get_variable(self):
        session, _reader, writer = make_session("200 result=1 (bar)")
        assert commands.get_variable(session, "FOO") == "bar"
        assert written_commands(writer) == ["GET VARIABLE FOO"]

    def test_get_unset_variable(self):
        session = _make_mock_session("200 result=0")
        assert commands.get_variable(session, "FOO") == ""

    def test_set_variable(self):
        session = _make_mock_session()
        commands.set_variable(session, "FOO", "bar")
        assert _sent(session) == (5, "SET VARIABLE FOO bar")


# ---------------------------------------------------------------------------
# Audio
# ---------------------------------------------------------------------------

class TestAudio:
    """Tests for get_data, stream_file, record_file and wait_for_digit."""

    def test_get_data(self):
        session = _make_mock_session("200 result=1234")
        digits = commands.get_data(
            session, "enter-pin", datetime.timedelta(seconds=3), 4)
        assert digits == "1234"
        assert _sent(session) == (0, "GET DATA enter-pin 3000 4")

    def test_get_data_default_sound(self):
        session = _make_mock_session("200 result=")
        assert commands.get_data(session) == ""
        assert _sent(session) == (0, "GET DATA silence/1 5000 1")

    def test_stream_file(self):
        session = _make_mock_session("200 result=0 endpos=8000")
        assert commands.stream_file(session, "hello-world") == "endpos=8000"
        assert _sent(session) == (60, 'STREAM FILE hello-world "" 0')

    def test_stream_file_escape_digits(self):
        session = _make_mock_session("200 result=0 endpos=8000")
        commands.stream_file(session, "menu", "123", 100)
        assert _sent(session) == (60, "STREAM FILE menu 123 100")

    def test_record_defaults(self):
        session = _make_mock_session()
        commands.record_file(session, "/tmp/msg")
        assert _sent(session) == (0, "RECORD FILE /tmp/msg wav # 300000")

    def test_record_options(self):
        session = _make_mock_session()
        opts = RecordOptions(
            format="gsm", escape_digits="*",
            timeout=datetime.timedelta(seconds=30),
            silence=datetime.timedelta(seconds=3),
            beep=True, offset=100)
        commands.record_file(session, "msg", opts)
        assert _sent(session) == \
            (0, "RECORD FILE msg gsm * 30000 100 BEEP s=3")

    def test_wait_for_digit(self):
        session = _make_mock_session("200 result=50")
        digit = commands.wait_for_digit(session, datetime.timedelta(seconds=2))
        assert digit == "2"
        assert _sent(session) == (0, "WAIT FOR DIGIT 2000")

    def test_wait_for_digit_timeout(self):
        session = _make_mock_session("200 result=0")
        assert commands.wait_for_digit(
            session, datetime.timedelta(seconds=1)) == ""

    def test_wait_for_digit_failure(self):
        session = _make_mock_session("200 result=-1")
        assert commands.wait_for_digit(
            session, datetime.timedelta(seconds=1)) == ""


# ---------------------------------------------------------------------------
# Say
# ---------------------------------------------------------------------------

class TestSay:
    """Tests for the SAY family."""

    WHEN = datetime.datetime(2024, 1, 2, 3, 4, 5,
                             tzinfo=datetime.timezone.utc)

    def test_say_alpha(self):
        session = _make_mock_session("200 result=0")
        commands.say_alpha(session, "abc")
        assert _sent(session) == (0, 'SAY ALPHA abc ""')

    def test_say_digits(self):
        session = _make_mock_session("200 result=0")
        commands.say_digits(session, "123", "#")
        assert _sent(session) == (0, "SAY DIGITS 123 #")

    def test_say_number(self):
        session = _make_mock_session("200 result=0")
        commands.say_number(session, "42")
        assert _sent(session) == (0, 'SAY NUMBER 42 ""')

    def test_say_phonetic(self):
        session = _make_mock_session("200 result=0")
        commands.say_phonetic(session, "abc")
        assert _sent(session) == (0, 'SAY PHONETIC abc ""')

    def test_say_date(self):
        session = _make_mock_session("200 result=0")
        commands.say_date(session, self.WHEN)
        assert _sent(session) == (0, 'SAY DATE 1704164645 ""')

    def test_say_time(self):
        session = _make_mock_session("200 result=0")
        commands.say_time(session, self.WHEN, "#")
        assert _sent(session) == (0, "SAY TIME 1704164645 #")

    def test_say_datetime_defaults(self):
        session = _make_mock_session("200 result=0")
        commands.say_datetime(session, self.WHEN)
        assert _sent(session) == (
            0, 'SAY DATETIME 1704164645 "" "ABdY \'digits/at\' IMp" UTC')

    def test_say_datetime_naive_omits_zone(self):
        session = _make_mock_session("200 result=0")
        when = datetime.datetime(2024, 1, 2, 3, 4, 5)
        commands.say_datetime(session, when, format="HM")
        timeout, line = _sent(session)
        assert line.endswith('"" "HM"')

    def test_say_returns_pressed_digit_value(self):
        session = _make_mock_session("200 result=0 (1)")
        assert commands.say_number(session, "7", "1") == "1"


# ---------------------------------------------------------------------------
# Verbose
# ---------------------------------------------------------------------------

class TestVerbose:
    """Tests for verbose()."""

    def test_message_quoted(self):
        session = _make_mock_session()
        commands.verbose(session, 'said "hi"', 3)
        assert _sent(session) == (0, 'VERBOSE "said \\"hi\\"" 3')

    def test_default_level(self):
        session = _make_mock_session()
        commands.verbose(session, "hello")
        assert _sent(session) == (0, 'VERBOSE "hello" 1')
