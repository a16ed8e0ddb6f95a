"""AGI session: one handshake followed by a serialized command loop."""

import os
import queue
import socket
import sys
import threading
import types
from typing import BinaryIO, Mapping, Optional

from .protocol import (
    CommandTimeout, Response, TransportError, read_handshake, read_response,
    send_command,
)

# File descriptor carrying the inbound audio stream in EAGI mode
EAGI_FD = 3


class Session:
    """An AGI session bound to a duplex byte stream.

    The handshake block is read when the session is constructed; after
    that, :meth:`execute` issues commands one at a time.  Commands from
    several threads are queued on a per-session lock, never interleaved.

    Standalone (AGI script) mode::

        session = Session.stdio()
        session.execute(30, "ANSWER").raise_for_error()

    Socket-backed sessions are produced by :class:`agiclient.server.Listener`
    and own their connection::

        with Session.from_socket(conn) as session:
            print(session.variables["agi_channel"])
    """

    def __init__(
        self,
        reader: BinaryIO,
        writer: BinaryIO,
        eagi: Optional[BinaryIO] = None,
        conn: Optional[socket.socket] = None,
    ) -> None:
        self._reader = reader
        self._writer = writer
        self._eagi = eagi
        self._conn = conn
        self._lock = threading.Lock()
        self._pending = None  # type: Optional[queue.Queue]
        self._closed = False
        self._variables = types.MappingProxyType(read_handshake(reader))

    # -- Constructors ------------------------------------------------------

    @classmethod
    def from_socket(cls, conn: socket.socket) -> "Session":
        """Wrap an accepted connection.  The session closes it on close()."""
        return cls(conn.makefile("rb"), conn.makefile("wb"), conn=conn)

    @classmethod
    def stdio(cls) -> "Session":
        """Bind a session to the process's standard input and output."""
        return cls(sys.stdin.buffer, sys.stdout.buffer)

    @classmethod
    def stdio_eagi(cls) -> "Session":
        """Bind a session to stdin/stdout plus the EAGI audio stream (fd 3)."""
        return cls(sys.stdin.buffer, sys.stdout.buffer,
                   eagi=os.fdopen(EAGI_FD, "rb"))

    # -- Context manager ---------------------------------------------------

    def __enter__(self) -> "Session":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore
        self.close()
        return None

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return "Session(channel={!r}, {})".format(
            self._variables.get("agi_channel"), state)

    # -- Properties --------------------------------------------------------

    @property
    def variables(self) -> Mapping[str, str]:
        """Read-only mapping of the handshake variables."""
        return self._variables

    @property
    def eagi(self) -> Optional[BinaryIO]:
        """The EAGI audio stream, or None when not running under EAGI."""
        return self._eagi

    @property
    def closed(self) -> bool:
        return self._closed

    # -- Lifecycle ---------------------------------------------------------

    def close(self) -> None:
        """Close the session.

        Socket-backed sessions shut down and close their connection.
        Standard streams are left open; they belong to the process.
        """
        if self._closed:
            return
        self._closed = True
        if self._conn is None:
            return
        # Shutdown first so a reader blocked in recv() sees EOF
        try:
            self._conn.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        for stream in (self._writer, self._reader):
            try:
                stream.close()
            except (OSError, ValueError):
                pass
        self._conn.close()
        self._conn = None

    # -- Commands ----------------------------------------------------------

    def _read_reply(self, box: queue.Queue) -> None:
        box.put(read_response(self._reader))

    def execute(self, timeout: Optional[float], *command: str) -> Response:
        """Send one command and wait for its reply.

        The tokens are joined with single spaces.  *timeout* is in
        seconds; 0 or None waits indefinitely.  Failures are reported on
        the returned Response's ``error`` attribute, never raised:

          - TransportError: the write or read failed (session unusable)
          - ProtocolError: the peer sent a malformed line (session unusable)
          - CommandTimeout: no reply in time; the command may still run
          - StatusError: well-formed non-200 reply (session still usable)

        A timed-out read is abandoned, not cancelled.  The next command
        on this session waits on that same read, so a late reply is
        returned to the next caller.
        """
        cmd = " ".join(command)
        with self._lock:
            if self._closed:
                return Response(error=TransportError("Session is closed"))

            try:
                send_command(self._writer, cmd)
            except TransportError as e:
                return Response(error=e)

            box = self._pending
            if box is None:
                box = queue.Queue(maxsize=1)
                reader = threading.Thread(
                    target=self._read_reply, args=(box,),
                    name="agi-reply-reader", daemon=True)
                reader.start()
                self._pending = box

            if timeout is not None and timeout <= 0:
                timeout = None
            try:
                resp = box.get(timeout=timeout)
            except queue.Empty:
                return Response(error=CommandTimeout(
                    "Timed out after {}s waiting for reply to {!r}".format(
                        timeout, cmd)))

            self._pending = None
            return resp
