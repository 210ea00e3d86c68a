"""SinkConsumer: the single loop that drains the gatherer's queue into a sink."""

import logging
import queue
import threading

from gatherlogs.gatherer import Gatherer
from gatherlogs.sinks import Sink

logger = logging.getLogger(__name__)


class SinkConsumer:
    def __init__(self, gatherer: Gatherer, sink: Sink,
                 shutdown_event: threading.Event, poll_timeout: float = 0.5):
        self._gatherer = gatherer
        self._sink = sink
        self._shutdown = shutdown_event
        self._poll_timeout = poll_timeout
        self._consumed = 0
        self._dropped = 0

    @property
    def consumed(self) -> int:
        return self._consumed

    @property
    def dropped(self) -> int:
        return self._dropped

    def run(self):
        """Dequeue and forward one message at a time until shutdown."""
        logger.info("writing queue to %s", type(self._sink).__name__)
        while not self._shutdown.is_set():
            try:
                msg = self._gatherer.receive(timeout=self._poll_timeout)
            except queue.Empty:
                continue

            self._consumed += 1
            if not self._sink.write(msg):
                self._dropped += 1

        logger.info("Consumer stopped: consumed=%d, dropped=%d", self._consumed, self._dropped)
