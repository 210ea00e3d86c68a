"""SenderAgent: tails matching files and delivers each line to the gatherer."""

import logging
import socket
import threading

from gatherlogs.config import SenderConfig
from gatherlogs.delivery_client import DeliveryClient, DeliveryError
from gatherlogs.models import LogLevel, LogMessage, now, parse_timestamp
from gatherlogs.tail_manager import TailManager

logger = logging.getLogger(__name__)


class SenderAgent:
    """Composes a TailManager with a DeliveryClient.

    Each tailed line is delivered synchronously, with retry, before its
    tailer reads the next one. An exhausted retry stops the whole agent
    and is re-raised from watch().
    """

    def __init__(self, config: SenderConfig, client: DeliveryClient,
                 shutdown_event: threading.Event):
        self._config = config
        self._client = client
        self._shutdown = shutdown_event
        self._server = config.server or socket.gethostname()
        self._level = LogLevel.parse(config.level)
        self._fatal: DeliveryError | None = None
        self._fatal_lock = threading.Lock()
        self._manager: TailManager | None = None

    @property
    def manager(self) -> TailManager | None:
        return self._manager

    def run(self):
        """Dispatch on the configured mode: one-shot send, watch, or nothing."""
        if self._config.send:
            self.send_once()
        elif self._config.watch:
            self.watch()
        else:
            logger.info("Nothing to do; exiting")

    def send_once(self):
        """Send the single message described by the --send options.

        Raises ValueError if the configured time cannot be parsed.
        """
        msg = LogMessage(
            server=self._config.server,
            log_level=self._level,
            time=parse_timestamp(self._config.time),
            message=self._config.message,
        )
        self._client.deliver(msg, self._config.max_attempts)
        logger.info("sent message to %s", self._config.gatherer)

    def watch(self):
        """Tail the watch directory until shutdown. Raises DeliveryError if a line could not be sent."""
        manager = TailManager(
            self._config.watch,
            self._config.ext,
            on_line=self.deliver_line,
            poll_interval=self._config.poll_interval,
            recursive=self._config.recursive,
            on_tailer_error=self._on_tailer_error,
        )
        manager.start()
        self._manager = manager
        try:
            self._shutdown.wait()
        finally:
            manager.stop()

        if self._fatal is not None:
            raise self._fatal

    def deliver_line(self, path: str, line: str):
        msg = LogMessage(
            server=self._server,
            log_level=self._level,
            time=now(),
            message=line,
        )
        logger.debug("line from %s: %s", path, line)
        self._client.deliver(msg, self._config.max_attempts)

    def _on_tailer_error(self, path: str, exc: Exception):
        if isinstance(exc, DeliveryError):
            logger.critical("giving up on %s: %s", path, exc)
            with self._fatal_lock:
                if self._fatal is None:
                    self._fatal = exc
            self._shutdown.set()
        else:
            logger.warning("stopped tailing %s: %s", path, exc)
