"""Wire protocol helpers for the agiclient library.

Handles line reading, the session handshake block, reply line parsing and
command sending for the Asterisk Gateway Interface.  All wire
communication uses UTF-8; undecodable bytes are replaced rather than
rejected.
"""

import re
from typing import BinaryIO, Dict, Optional, Tuple

ENCODING = "utf-8"

# Reply status codes
STATUS_OK = 200
STATUS_INVALID = 510
STATUS_DEAD_CHANNEL = 511
STATUS_END_USAGE = 520

_RESPONSE_RE = re.compile(r"^([0-9]{3})\sresult=(-?[A-Za-z0-9]*)(\s.*)?$")


# ---------------------------------------------------------------------------
# Exception hierarchy
# ---------------------------------------------------------------------------

class AGIError(Exception):
    """Base exception for all agiclient failures."""


class TransportError(AGIError):
    """Raised when the underlying stream fails (write error, read error,
    end of stream, or a closed session).  The session is unusable."""


class ProtocolError(AGIError):
    """Raised when the peer sends a line that is not a valid reply.  The
    session is unusable."""


class CommandTimeout(AGIError):
    """Raised when no reply arrives within the command timeout.  The
    effect of the command on the switch is unknown."""


class StatusError(AGIError):
    """Raised when the switch answers with a non-200 status code.

    The command was understood but rejected; the session remains usable.

    Attributes:
        status: Numeric status code from the reply line (e.g. 510).
        raw: The reply line as read, for diagnostics.
    """

    def __init__(self, status: int, raw: str) -> None:
        self.status = status
        self.raw = raw
        super().__init__("Non-200 status code: {}".format(raw))


class InvalidCommandError(StatusError):
    """Status 510 -- the switch did not understand the command."""


class DeadChannelError(StatusError):
    """Status 511 -- the command cannot run on a hung-up channel."""


class EndUsageError(StatusError):
    """Status 520 -- the command was used incorrectly (usage follows)."""


# Map status codes to exception classes.  Unknown codes fall back to
# the base StatusError.
_STATUS_MAP = {
    STATUS_INVALID: InvalidCommandError,
    STATUS_DEAD_CHANNEL: DeadChannelError,
    STATUS_END_USAGE: EndUsageError,
}


def status_error(status: int, raw: str) -> StatusError:
    """Build the StatusError subclass matching *status*."""
    exc_class = _STATUS_MAP.get(status, StatusError)
    return exc_class(status, raw)


# ---------------------------------------------------------------------------
# Reply representation
# ---------------------------------------------------------------------------

class Response:
    """The parsed reply to one AGI command.

    Attributes:
        status: Status code of the reply line (0 if no line was parsed).
        result: The result token as an integer, or None when the token
            is not numeric (e.g. ``result=on``).
        result_string: The result token verbatim.
        value: The optional payload after the result token, with the
            wrapping parentheses removed ("" when absent).
        raw: The reply line as read from the stream.
        error: An AGIError instance, or None on success.
    """

    def __init__(self, status: int = 0, result: Optional[int] = None,
                 result_string: str = "", value: str = "", raw: str = "",
                 error: Optional[AGIError] = None) -> None:
        self.status = status
        self.result = result
        self.result_string = result_string
        self.value = value
        self.raw = raw
        self.error = error

    def __repr__(self) -> str:
        return ("Response(status={}, result={!r}, result_string={!r}, "
                "value={!r}, error={!r})".format(
                    self.status, self.result, self.result_string, self.value,
                    self.error))

    @property
    def ok(self) -> bool:
        """True when the command succeeded with status 200."""
        return self.error is None

    def raise_for_error(self) -> "Response":
        """Raise the stored error, if any; otherwise return self."""
        if self.error is not None:
            raise self.error
        return self

    def res(self) -> str:
        """Return the result token, raising the stored error if any.

        Some commands (GET DATA, WAIT FOR DIGIT) carry their payload in
        the result token rather than the parenthesized value.
        """
        self.raise_for_error()
        return self.result_string

    def val(self) -> str:
        """Return the parenthesized value, raising the stored error if any."""
        self.raise_for_error()
        return self.value


# ---------------------------------------------------------------------------
# Line level
# ---------------------------------------------------------------------------

def read_line(reader: BinaryIO) -> str:
    """Read a single line from *reader*.

    Strips trailing CR LF or bare LF.  Raises TransportError on end of
    stream (including a final line without LF) or read failure.
    """
    try:
        data = reader.readline()
    except (OSError, ValueError) as e:
        raise TransportError("Read failed: {}".format(e))

    if not data:
        raise TransportError("Connection closed by peer")
    if not data.endswith(b"\n"):
        raise TransportError(
            "Connection closed mid-line (partial data: {!r})".format(data))

    line = data[:-1].decode(ENCODING, errors="replace")
    if line.endswith("\r"):
        line = line[:-1]
    return line


def send_command(writer: BinaryIO, command: str) -> None:
    """Send a command line to the switch.

    Appends LF, encodes as UTF-8 and flushes.  Raises TransportError on
    failure.
    """
    data = (command + "\n").encode(ENCODING)
    try:
        writer.write(data)
        writer.flush()
    except (OSError, ValueError) as e:
        raise TransportError("Failed to send command: {}".format(e))


# ---------------------------------------------------------------------------
# Handshake
# ---------------------------------------------------------------------------

def parse_variable(line: str) -> Optional[Tuple[str, str]]:
    """Split a handshake line into a stripped (key, value) pair.

    Splits on the first colon.  Returns None for lines without one.
    """
    key, sep, value = line.partition(":")
    if not sep:
        return None
    return (key.strip(), value.strip())


def read_handshake(reader: BinaryIO) -> Dict[str, str]:
    """Read the initial variable block sent at session start.

    Consumes lines up to and including the terminating empty line.
    Later duplicates of a key overwrite earlier ones.  Lines without a
    colon are ignored.  End of stream also ends the block.
    """
    variables = {}  # type: Dict[str, str]
    while True:
        try:
            line = read_line(reader)
        except TransportError:
            break
        if line == "":
            break
        pair = parse_variable(line)
        if pair is not None:
            variables[pair[0]] = pair[1]
    return variables


# ---------------------------------------------------------------------------
# Replies
# ---------------------------------------------------------------------------

def parse_response(line: str) -> Response:
    """Parse a reply line into a Response.

    Examples:
      "200 result=1"            -> status 200, result 1, value ""
      "200 result=1 (avail)"    -> status 200, result 1, value "avail"
      "200 result=on"           -> status 200, result None, result_string "on"
      "200 result=0 endpos=640" -> value "endpos=640"

    The status check is left to the caller: a parsed 510 reply is
    returned without error.  Raises ProtocolError if *line* does not
    match the reply grammar.
    """
    match = _RESPONSE_RE.match(line)
    if match is None:
        raise ProtocolError("Failed to parse result: {!r}".format(line))

    token = match.group(2)
    try:
        result = int(token)  # type: Optional[int]
    except ValueError:
        result = None

    value = (match.group(3) or "").strip()
    if value.startswith("("):
        value = value[1:]
    if value.endswith(")"):
        value = value[:-1]

    return Response(
        status=int(match.group(1)),
        result=result,
        result_string=token,
        value=value,
        raw=line,
    )


def read_response(reader: BinaryIO) -> Response:
    """Read lines until one reply line is parsed.

    ``HANGUP`` notifications are skipped.  Only the first structured line
    is consumed as the reply; replies spanning several lines are not
    reassembled.  Errors are stored on the returned Response rather than
    raised, and the status check is applied: a well-formed non-200 reply
    carries a StatusError.
    """
    while True:
        try:
            line = read_line(reader)
        except TransportError as e:
            return Response(error=e)

        if line.startswith("HANGUP"):
            continue
        if line == "":
            return Response(error=ProtocolError("Empty reply line"))

        try:
            resp = parse_response(line)
        except ProtocolError as e:
            return Response(raw=line, error=e)

        if resp.status != STATUS_OK:
            resp.error = status_error(resp.status, line)
        return resp
