"""Gatherer — entry point."""

import logging
import signal
import sys
import threading

from gatherlogs.config import ConfigError, load_gatherer_config
from gatherlogs.consumer import SinkConsumer
from gatherlogs.gatherer import Gatherer
from gatherlogs.server import GathererServer
from gatherlogs.sinks import SinkConfigError, build_sink

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def main():
    try:
        config = load_gatherer_config()
    except ConfigError as e:
        logger.critical("%s", e)
        sys.exit(1)
    logging.getLogger().setLevel(config.log_level.upper())

    shutdown_event = threading.Event()
    gatherer = Gatherer(config.queue_size)
    server = GathererServer(gatherer, config.host, config.port, shutdown_event)

    try:
        server.bind()
    except OSError as e:
        logger.critical("failed to bind %s:%d: %s", config.host, config.port, e)
        sys.exit(1)
    threading.Thread(target=server.start, name="accept", daemon=True).start()
    logger.info("serving Gatherer.Send and Gatherer.SendMultiple")

    try:
        sink = build_sink(config)
        sink.open()
    except (ConfigError, SinkConfigError) as e:
        logger.critical("%s", e)
        server.stop()
        sys.exit(1)

    def handle_signal(signum, frame):
        logger.info("Received signal %d, shutting down...", signum)
        shutdown_event.set()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    consumer = SinkConsumer(gatherer, sink, shutdown_event)
    try:
        consumer.run()
    finally:
        server.stop()
        sink.close()


if __name__ == "__main__":
    main()
