"""Sender — entry point."""

import logging
import signal
import sys
import threading

from gatherlogs.agent import SenderAgent
from gatherlogs.config import ConfigError, load_sender_config, parse_address
from gatherlogs.delivery_client import DeliveryClient, DeliveryError

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def main():
    try:
        config = load_sender_config()
        host, port = parse_address(config.gatherer)
    except ConfigError as e:
        logger.critical("%s", e)
        sys.exit(1)
    logging.getLogger().setLevel(config.log_level.upper())

    shutdown_event = threading.Event()

    def handle_signal(signum, frame):
        logger.info("Received signal %d, shutting down...", signum)
        shutdown_event.set()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    client = DeliveryClient(host, port, config.retry_interval, config.connect_timeout)
    try:
        client.connect()
    except OSError as e:
        logger.critical("failed to connect to %s: %s", config.gatherer, e)
        sys.exit(1)

    agent = SenderAgent(config, client, shutdown_event)
    try:
        agent.run()
    except DeliveryError as e:
        logger.critical("%s", e)
        sys.exit(1)
    except ValueError as e:
        logger.critical("invalid --time value %r: %s", config.time, e)
        sys.exit(1)
    except OSError as e:
        logger.critical("failed to open watcher on %s: %s", config.watch, e)
        sys.exit(1)
    finally:
        client.close()


if __name__ == "__main__":
    main()
