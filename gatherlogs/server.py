"""TCP accept loop for the gatherer — one thread per client connection."""

import logging
import socket
import threading

from gatherlogs.gatherer import Gatherer
from gatherlogs.protocol import (
    SEND,
    ProtocolError,
    decode_request,
    encode_response,
)

logger = logging.getLogger(__name__)

RECV_SIZE = 65536


class GathererServer:
    """Serves Gatherer.Send and Gatherer.SendMultiple over NDJSON/TCP.

    Each call is acknowledged only after all of its messages are
    enqueued; a full queue therefore holds the caller's response back.
    """

    def __init__(self, gatherer: Gatherer, host: str, port: int,
                 shutdown_event: threading.Event):
        self._gatherer = gatherer
        self._host = host
        self._port = port
        self._shutdown = shutdown_event
        self._sock: socket.socket | None = None
        self._server_address: tuple | None = None

    @property
    def server_address(self) -> tuple | None:
        """Return (host, port) the server is bound to. Useful when port=0."""
        return self._server_address

    def bind(self):
        """Bind and listen. Raises OSError if the endpoint is unavailable."""
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((self._host, self._port))
            sock.listen(16)
        except OSError:
            sock.close()
            raise
        sock.settimeout(1.0)
        self._sock = sock
        self._server_address = sock.getsockname()
        logger.info("bound %s:%d", *self._server_address)

    def start(self):
        """Accept connections until shutdown. Binds first if needed."""
        if self._sock is None:
            self.bind()

        while not self._shutdown.is_set():
            try:
                conn, addr = self._sock.accept()
            except socket.timeout:
                continue
            except OSError:
                break

            t = threading.Thread(
                target=self._handle_client,
                args=(conn, addr),
                daemon=True,
            )
            t.start()

    def stop(self):
        """Signal shutdown and close the listen socket."""
        self._shutdown.set()
        if self._sock:
            try:
                self._sock.close()
            except OSError:
                pass

    def _handle_client(self, conn: socket.socket, addr: tuple):
        logger.info("Client connected: %s:%d", addr[0], addr[1])
        conn.settimeout(1.0)
        buf = b""
        try:
            while not self._shutdown.is_set():
                try:
                    data = conn.recv(RECV_SIZE)
                except socket.timeout:
                    continue
                except OSError:
                    break
                if not data:
                    break

                buf += data
                while b"\n" in buf:
                    line, buf = buf.split(b"\n", 1)
                    if line.strip():
                        self._process_line(conn, line)
        finally:
            conn.close()
            logger.info("Client disconnected: %s:%d", addr[0], addr[1])

    def _process_line(self, conn: socket.socket, line: bytes):
        try:
            method, msgs = decode_request(line)
        except ProtocolError as e:
            logger.warning("Rejected call: %s", e)
            self._respond(conn, encode_response("error", str(e)))
            return

        if method == SEND:
            self._gatherer.send(msgs[0])
        else:
            self._gatherer.send_multiple(msgs)
        self._respond(conn, encode_response("ok"))

    @staticmethod
    def _respond(conn: socket.socket, payload: bytes):
        try:
            conn.sendall(payload)
        except OSError as e:
            logger.debug("Failed to send response: %s", e)
