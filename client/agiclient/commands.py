"""Convenience wrappers over Session.execute().

Each function formats one AGI command line from typed arguments, runs it
on the given session and raises the reply's error, if any.  Durations are
``datetime.timedelta`` values and go on the wire as milliseconds.
"""

import datetime
import enum
import json
from typing import Optional

from .protocol import ProtocolError

# AGI needs empty double quotes to hold the place of an empty argument
EMPTY = '""'

DEFAULT_DATETIME_FORMAT = "ABdY 'digits/at' IMp"


class ChannelState(enum.IntEnum):
    """Asterisk channel states, as reported by CHANNEL STATUS."""

    DOWN = 0             # channel is down and available
    RESERVED = 1         # down, but reserved
    OFFHOOK = 2
    DIALING = 3          # digits have been dialed
    RING = 4             # the channel is ringing
    RINGING = 5          # the remote end is ringing (ringback)
    UP = 6
    BUSY = 7
    DIALING_OFFHOOK = 8  # digits dialed while offhook
    PRERING = 9          # incoming call detected, waiting for ring


class RecordOptions:
    """Options for :func:`record_file`.

    Attributes:
        format: Audio file format (default "wav").
        escape_digits: DTMF digits ending the recording (default "#";
            may not be empty).
        timeout: Maximum recording length (default 5 minutes).
        silence: Silence allowed before the recording ends; whole seconds
            only.  None disables silence detection.
        beep: Play a beep before recording.
        offset: Samples to skip at the start of the file.
    """

    def __init__(self, format: str = "wav", escape_digits: str = "#",
                 timeout: datetime.timedelta = datetime.timedelta(minutes=5),
                 silence: Optional[datetime.timedelta] = None,
                 beep: bool = False, offset: int = 0) -> None:
        self.format = format
        self.escape_digits = escape_digits
        self.timeout = timeout
        self.silence = silence
        self.beep = beep
        self.offset = offset


def _msec(duration: datetime.timedelta) -> str:
    return str(int(duration.total_seconds() * 1000))


def _epoch(when: datetime.datetime) -> str:
    return str(int(when.timestamp()))


def _digits(escape_digits: str) -> str:
    return escape_digits or EMPTY


# ---------------------------------------------------------------------------
# Call control
# ---------------------------------------------------------------------------

def answer(session) -> None:
    """Answer the channel."""
    session.execute(30, "ANSWER").raise_for_error()


def hangup(session) -> None:
    """Hang up the channel."""
    session.execute(1, "HANGUP").raise_for_error()


def channel_status(session) -> ChannelState:
    """Return the state of the current channel."""
    resp = session.execute(5, "CHANNEL STATUS").raise_for_error()
    try:
        return ChannelState(resp.result)
    except ValueError:
        raise ProtocolError(
            "Failed to parse channel state: {!r}".format(resp.raw))


def exec_app(session, timeout: Optional[float], application: str,
             *options: str) -> str:
    """Run a dialplan application and return its value."""
    return session.execute(timeout, "EXEC", application, *options).val()


# ---------------------------------------------------------------------------
# Variables
# ---------------------------------------------------------------------------

def get_variable(session, name: str) -> str:
    """Return the value of a channel variable."""
    return session.execute(5, "GET VARIABLE", name).val()


def set_variable(session, name: str, value: str) -> None:
    """Set a channel variable."""
    session.execute(5, "SET VARIABLE", name, value).raise_for_error()


# ---------------------------------------------------------------------------
# Audio
# ---------------------------------------------------------------------------

def get_data(session, sound: str = "", timeout: datetime.timedelta =
             datetime.timedelta(seconds=5), max_digits: int = 1) -> str:
    """Play *sound* and collect DTMF; return the digits received."""
    resp = session.execute(0, "GET DATA", sound or "silence/1",
                           _msec(timeout), str(max_digits))
    return resp.res()


def stream_file(session, name: str, escape_digits: str = "",
                offset: int = 0) -> str:
    """Play a sound file.  Returns the reply value (e.g. "endpos=1234")."""
    return session.execute(60, "STREAM FILE", name, _digits(escape_digits),
                           str(offset)).val()


def record_file(session, name: str,
                opts: Optional[RecordOptions] = None) -> None:
    """Record audio from the channel to *name*."""
    if opts is None:
        opts = RecordOptions()
    args = ["RECORD FILE", name, opts.format, opts.escape_digits or "#",
            _msec(opts.timeout)]
    if opts.offset > 0:
        args.append(str(opts.offset))
    if opts.beep:
        args.append("BEEP")
    if opts.silence:
        args.append("s={}".format(int(opts.silence.total_seconds())))
    session.execute(0, *args).raise_for_error()


def wait_for_digit(session, timeout: datetime.timedelta) -> str:
    """Wait for one DTMF digit; return it, or "" if none was pressed."""
    resp = session.execute(0, "WAIT FOR DIGIT", _msec(timeout))
    resp.raise_for_error()
    if resp.result is None or resp.result <= 0:
        return ""
    digit = chr(resp.result)
    if not digit.isprintable():
        return ""
    return digit


# ---------------------------------------------------------------------------
# Say
# ---------------------------------------------------------------------------

def say_alpha(session, text: str, escape_digits: str = "") -> str:
    """Spell out a character string."""
    return session.execute(0, "SAY ALPHA", text, _digits(escape_digits)).val()


def say_digits(session, number: str, escape_digits: str = "") -> str:
    """Say a digit string, one digit at a time."""
    return session.execute(0, "SAY DIGITS", number,
                           _digits(escape_digits)).val()


def say_number(session, number: str, escape_digits: str = "") -> str:
    """Say a whole number."""
    return session.execute(0, "SAY NUMBER", number,
                           _digits(escape_digits)).val()


def say_phonetic(session, phrase: str, escape_digits: str = "") -> str:
    """Spell out a phrase using the phonetic alphabet."""
    return session.execute(0, "SAY PHONETIC", phrase,
                           _digits(escape_digits)).val()


def say_date(session, when: datetime.datetime, escape_digits: str = "") -> str:
    """Say the date part of *when*."""
    return session.execute(0, "SAY DATE", _epoch(when),
                           _digits(escape_digits)).val()


def say_time(session, when: datetime.datetime, escape_digits: str = "") -> str:
    """Say the time part of *when*."""
    return session.execute(0, "SAY TIME", _epoch(when),
                           _digits(escape_digits)).val()


def say_datetime(session, when: datetime.datetime, escape_digits: str = "",
                 format: str = "") -> str:
    """Say *when* using a voicemail.conf style format.

    The zone name is taken from *when*; for naive datetimes it is left
    out and the switch uses its local zone.
    """
    args = ["SAY DATETIME", _epoch(when), _digits(escape_digits),
            json.dumps(format or DEFAULT_DATETIME_FORMAT)]
    zone = when.tzname()
    if zone:
        args.append(zone)
    return session.execute(0, *args).val()


# ---------------------------------------------------------------------------
# Logging on the switch
# ---------------------------------------------------------------------------

def verbose(session, message: str, level: int = 1) -> None:
    """Log *message* to the switch's verbose log at *level*."""
    session.execute(0, "VERBOSE", json.dumps(message, ensure_ascii=False),
                    str(level)).raise_for_error()
