"""agiclient -- Python client library for the Asterisk Gateway Interface.

Provides Session for driving a channel from an AGI script (standard
streams) or a FastAGI server (accepted TCP connections), plus an
exception hierarchy separating transport, protocol, timeout and
non-200 status failures.

Usage::

    from agiclient import Session, commands

    session = Session.stdio()
    commands.answer(session)
    resp = session.execute(10, "GET VARIABLE", "CALLERID(num)")
    if resp.ok:
        print(resp.value, file=sys.stderr)
"""

from . import commands
from .commands import ChannelState, RecordOptions
from .protocol import (
    STATUS_DEAD_CHANNEL, STATUS_END_USAGE, STATUS_INVALID, STATUS_OK,
    AGIError, CommandTimeout, DeadChannelError, EndUsageError,
    InvalidCommandError, ProtocolError, Response, StatusError,
    TransportError, parse_response,
)
from .server import DEFAULT_HOST, DEFAULT_PORT, Listener, ListenerError, listen
from .session import Session


__all__ = [
    "AGIError",
    "ChannelState",
    "CommandTimeout",
    "DEFAULT_HOST",
    "DEFAULT_PORT",
    "DeadChannelError",
    "EndUsageError",
    "InvalidCommandError",
    "Listener",
    "ListenerError",
    "ProtocolError",
    "RecordOptions",
    "Response",
    "STATUS_DEAD_CHANNEL",
    "STATUS_END_USAGE",
    "STATUS_INVALID",
    "STATUS_OK",
    "Session",
    "StatusError",
    "TransportError",
    "commands",
    "listen",
    "parse_response",
]
