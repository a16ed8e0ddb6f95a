"""FastAGI listener: one Session per accepted TCP connection.

Usage::

    def handler(session):
        commands.answer(session)
        commands.stream_file(session, "hello-world")

    listen(handler)                      # localhost:4573
    listen(handler, "0.0.0.0", 4574)
"""

import logging
import socket
import threading
from typing import Callable, Optional, Tuple

from .protocol import AGIError
from .session import Session

logger = logging.getLogger(__name__)

DEFAULT_HOST = "localhost"
DEFAULT_PORT = 4573

Handler = Callable[[Session], None]


class ListenerError(AGIError):
    """Raised when the listener cannot bind or stops accepting."""


class Listener:
    """Accepts FastAGI connections and hands each Session to a handler.

    Each connection runs on its own thread: the handshake is read, the
    handler is called, and the session is closed when the handler
    returns.  serve_forever() blocks the calling thread and must only be
    called once.
    """

    def __init__(
        self,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
        backlog: int = 16,
    ) -> None:
        self.host = host
        self.port = port
        self.backlog = backlog
        self._sock = None  # type: Optional[socket.socket]
        self._closing = False
        self._ready = threading.Event()

    def __repr__(self) -> str:
        return "Listener({!r}, port={})".format(self.host, self.port)

    @property
    def address(self) -> Optional[Tuple[str, int]]:
        """The bound (host, port), or None before bind() and after close()."""
        if self._sock is None:
            return None
        return self._sock.getsockname()[:2]

    def wait_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the listener is bound.  Returns False on timeout."""
        return self._ready.wait(timeout)

    def bind(self) -> None:
        """Create and bind the listening socket."""
        try:
            sock = socket.create_server((self.host, self.port),
                                        backlog=self.backlog)
        except OSError as e:
            raise ListenerError("Failed to bind server: {}".format(e))
        self._sock = sock
        self._ready.set()
        logger.info("FastAGI listening on %s:%d", *sock.getsockname()[:2])

    def close(self) -> None:
        """Stop accepting.  serve_forever() returns once this is called,
        even if it has not bound yet."""
        self._closing = True
        sock, self._sock = self._sock, None
        if sock is None:
            return
        # Shutdown wakes a thread blocked in accept(); close alone may not
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        sock.close()

    def serve_forever(self, handler: Handler) -> None:
        """Bind (if needed) and accept connections until close().

        Raises ListenerError if binding fails or accept() fails while
        the listener is still open.  Handlers run concurrently; a handler
        that raises is logged and does not stop the loop.
        """
        if self._closing:
            return
        if self._sock is None:
            self.bind()
        sock = self._sock
        try:
            # close() may have run while bind() was in progress
            while sock is not None and not self._closing:
                try:
                    conn, peer = sock.accept()
                except OSError as e:
                    if self._closing:
                        return
                    raise ListenerError(
                        "Failed to accept TCP connection: {}".format(e))
                logger.debug("Accepted connection from %s:%d", *peer[:2])
                worker = threading.Thread(
                    target=self._run_session, args=(conn, peer, handler),
                    name="fastagi-{}:{}".format(*peer[:2]), daemon=True)
                worker.start()
        finally:
            self.close()

    def _run_session(self, conn: socket.socket, peer, handler: Handler) -> None:
        try:
            session = Session.from_socket(conn)
        except Exception:
            logger.exception("Handshake failed for %s:%d", *peer[:2])
            conn.close()
            return
        try:
            handler(session)
        except Exception:
            logger.exception("Handler failed for %s:%d", *peer[:2])
        finally:
            session.close()
            logger.debug("Closed session from %s:%d", *peer[:2])


def listen(handler: Handler, host: str = DEFAULT_HOST,
           port: int = DEFAULT_PORT) -> None:
    """Serve FastAGI on host:port forever, calling *handler* per session."""
    Listener(host, port).serve_forever(handler)
