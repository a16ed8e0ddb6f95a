"""Shared fixtures and helpers for agiclient tests.

These tests need no running Asterisk.  The switch side of a session is
played either by an in-memory byte stream (for scripted replies) or by
the far end of a ``socket.socketpair()`` driven from the test, which
lets tests control reply timing.

Usage:
    pytest tests/ -v
"""

import io
import os
import select
import socket
import sys

import pytest

# Add the client library to the path so tests can import agiclient
_client_dir = os.path.join(
    os.path.dirname(os.path.dirname(os.path.abspath(__file__))),
    "client",
)
if _client_dir not in sys.path:
    sys.path.insert(0, _client_dir)

from agiclient import Session


HANDSHAKE = [
    "agi_request: agi://localhost:4573/test",
    "agi_channel: SIP/1234-00000001",
    "agi_language: en",
    "agi_callerid: 5551234567",
    "",
]


# ---------------------------------------------------------------------------
# In-memory transports
# ---------------------------------------------------------------------------

def make_stream(*lines):
    """Return a BytesIO holding *lines*, each terminated with LF."""
    return io.BytesIO("".join(line + "\n" for line in lines).encode("utf-8"))


def make_session(*reply_lines, handshake=None):
    """Build a Session over scripted input.

    Returns ``(session, reader, writer)``.  *reader* holds the handshake
    followed by *reply_lines*; *writer* collects the command bytes.
    """
    if handshake is None:
        handshake = HANDSHAKE
    reader = make_stream(*(list(handshake) + list(reply_lines)))
    writer = io.BytesIO()
    return Session(reader, writer), reader, writer


def written_commands(writer):
    """Return the command lines written to a BytesIO writer."""
    return writer.getvalue().decode("utf-8").splitlines()


class BrokenWriter(io.RawIOBase):
    """A writer whose every write fails like a closed pipe."""

    def writable(self):
        return True

    def write(self, data):
        raise BrokenPipeError("Broken pipe")


# ---------------------------------------------------------------------------
# Socket-driven switch
# ---------------------------------------------------------------------------

class FakeSwitch:
    """The switch end of a socketpair.

    Reads commands byte-by-byte (no buffering, so select() reflects
    exactly what the client has sent) and writes reply lines.
    """

    def __init__(self, sock):
        self.sock = sock
        self.sock.settimeout(5)

    def send(self, *lines):
        data = "".join(line + "\n" for line in lines).encode("utf-8")
        self.sock.sendall(data)

    def read_command(self):
        return _read_line(self.sock)

    def has_pending_data(self, wait):
        """Return True if the client sent anything within *wait* seconds."""
        readable, _, _ = select.select([self.sock], [], [], wait)
        return bool(readable)

    def close(self):
        try:
            self.sock.close()
        except OSError:
            pass


def _read_line(sock):
    """Read a single line from *sock*, stripping the trailing LF.

    Raises :class:`ConnectionError` if EOF is received before a newline.
    """
    buf = bytearray()
    while True:
        byte = sock.recv(1)
        if not byte:
            if buf:
                raise ConnectionError(
                    "EOF before newline; partial data: {!r}".format(bytes(buf))
                )
            raise ConnectionError("EOF while reading line (no data received)")
        if byte == b"\n":
            break
        buf.extend(byte)
    return buf.decode("utf-8")


@pytest.fixture
def switch_session():
    """Yield ``(session, switch)`` joined by a socketpair.

    The handshake has already been exchanged.  Both ends are closed on
    teardown.
    """
    client_sock, switch_sock = socket.socketpair()
    switch = FakeSwitch(switch_sock)
    switch.send(*HANDSHAKE)
    session = Session.from_socket(client_sock)
    yield session, switch
    session.close()
    switch.close()
