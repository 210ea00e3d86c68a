"""Gatherer: accepts log messages and buffers them in a bounded queue."""

import logging
import queue

from gatherlogs.models import LogMessage

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 1


class Gatherer:
    """Relay between remote callers and the single sink consumer.

    Enqueueing blocks while the queue is full, so a slow consumer stalls
    the remote call instead of losing messages.
    """

    def __init__(self, queue_size: int = DEFAULT_QUEUE_SIZE):
        if queue_size < 1:
            raise ValueError(f"queue_size must be positive, got {queue_size}")
        self._queue: queue.Queue = queue.Queue(maxsize=queue_size)

    @property
    def capacity(self) -> int:
        return self._queue.maxsize

    def qsize(self) -> int:
        return self._queue.qsize()

    def send(self, msg: LogMessage):
        logger.debug("send called with %s", msg)
        self._queue.put(msg)
        logger.debug("message written to queue")

    def send_multiple(self, msgs: list[LogMessage]):
        logger.debug("send multiple called with %d messages", len(msgs))
        for msg in msgs:
            self._queue.put(msg)
        logger.debug("%d messages written to queue", len(msgs))

    def receive(self, timeout: float | None = None) -> LogMessage:
        """Dequeue the next message. Raises queue.Empty on timeout."""
        return self._queue.get(timeout=timeout)
