"""DeliveryClient — one shared TCP connection to the gatherer with retrying sends."""

import logging
import socket
import threading
import time

from gatherlogs.models import LogMessage
from gatherlogs.protocol import check_response, encode_send, encode_send_multiple

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 10
DEFAULT_RETRY_INTERVAL = 1.0


class DeliveryError(Exception):
    """Raised when a message could not be delivered within max_attempts."""


class DeliveryClient:
    """Serializes calls from many tailers over a single connection.

    The connection is not safe for concurrent use, so every network call
    holds the client's send lock. Retry waits happen outside the lock.
    """

    def __init__(self, host: str, port: int,
                 retry_interval: float = DEFAULT_RETRY_INTERVAL,
                 connect_timeout: float | None = 30.0):
        self._host = host
        self._port = port
        self._retry_interval = retry_interval
        self._connect_timeout = connect_timeout
        self._sock: socket.socket | None = None
        self._buffer = b""
        self._send_lock = threading.Lock()

    @property
    def connected(self) -> bool:
        return self._sock is not None

    def connect(self):
        """Open the connection. Raises OSError on failure."""
        with self._send_lock:
            self._open()

    def close(self):
        with self._send_lock:
            self._close()

    def deliver(self, msg: LogMessage, max_attempts: int = DEFAULT_MAX_ATTEMPTS):
        """Send one message, retrying up to max_attempts total attempts.

        Raises DeliveryError once every attempt has failed.
        """
        self._call_with_retry(encode_send(msg), max_attempts, msg)

    def deliver_batch(self, msgs: list[LogMessage], max_attempts: int = DEFAULT_MAX_ATTEMPTS):
        """Send messages in order as one Gatherer.SendMultiple call."""
        if not msgs:
            return
        self._call_with_retry(encode_send_multiple(msgs), max_attempts, f"{len(msgs)} messages")

    def _call_with_retry(self, payload: bytes, max_attempts: int, what):
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be positive, got {max_attempts}")

        for attempt in range(1, max_attempts + 1):
            try:
                with self._send_lock:
                    self._call(payload)
            except Exception as e:
                logger.warning("failed to send (attempt %d/%d): %s", attempt, max_attempts, e)
            else:
                logger.debug("sent %s", what)
                return

            if attempt < max_attempts:
                time.sleep(self._retry_interval)

        raise DeliveryError(f"Failed to send after {max_attempts} tries")

    def _call(self, payload: bytes):
        """One request/response exchange. Caller must hold the send lock."""
        if self._sock is None:
            self._open()
        try:
            self._sock.sendall(payload)
            check_response(self._recv_line())
        except Exception:
            # Drop the connection so a late response cannot answer the next call.
            self._close()
            raise

    def _recv_line(self) -> bytes:
        while b"\n" not in self._buffer:
            chunk = self._sock.recv(4096)
            if not chunk:
                raise ConnectionError("gatherer closed the connection")
            self._buffer += chunk
        line, self._buffer = self._buffer.split(b"\n", 1)
        return line

    def _open(self):
        self._close()
        self._sock = socket.create_connection((self._host, self._port), timeout=self._connect_timeout)
        # A call may block for as long as the gatherer applies backpressure.
        self._sock.settimeout(None)
        self._buffer = b""
        logger.info("connected to %s:%d", self._host, self._port)

    def _close(self):
        if self._sock:
            try:
                self._sock.close()
            except OSError:
                pass
            self._sock = None
            self._buffer = b""
