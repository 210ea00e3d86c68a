"""Configuration — frozen dataclasses loaded from YAML, env vars and CLI args."""

import argparse
import logging
import os
import sys
from dataclasses import dataclass, fields

import yaml

logger = logging.getLogger(__name__)

CONSUMERS = ("cli", "database")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigError(Exception):
    """Raised for configuration values the processes cannot start with."""


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("true", "1", "yes")


def _to_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    return _parse_bool(str(value))


_COERCE = {bool: _to_bool, int: int, float: float, str: str}


@dataclass(frozen=True)
class GathererConfig:
    host: str = "0.0.0.0"
    port: int = 9494
    queue_size: int = 1
    consumer: str = "cli"
    connection_string: str = ""
    driver: str = "sqlite3"
    schema: str = "main"
    table: str = "gatherer"
    db_create: bool = False
    log_level: str = "INFO"


@dataclass(frozen=True)
class SenderConfig:
    gatherer: str = "localhost:9494"
    watch: str = ""
    ext: str = ".txt"
    recursive: bool = False
    poll_interval: float = 0.25
    send: bool = False
    message: str = ""
    time: str | None = None
    level: str = "DEBUG"
    server: str = ""
    max_attempts: int = 10
    retry_interval: float = 1.0
    connect_timeout: float = 30.0
    log_level: str = "INFO"


_GATHERER_ENV = {
    "host": "GATHERER_HOST",
    "port": "GATHERER_PORT",
    "queue_size": "QUEUE_SIZE",
    "consumer": "CONSUMER",
    "connection_string": "DB_CONNECTION_STRING",
    "driver": "DB_DRIVER",
    "schema": "DB_SCHEMA",
    "table": "DB_TABLE",
    "db_create": "DB_CREATE",
    "log_level": "LOG_LEVEL",
}

_SENDER_ENV = {
    "gatherer": "GATHERER_ADDRESS",
    "watch": "WATCH_DIR",
    "ext": "WATCH_EXT",
    "recursive": "WATCH_RECURSIVE",
    "poll_interval": "POLL_INTERVAL",
    "server": "SERVER_NAME",
    "max_attempts": "SEND_TRIES",
    "retry_interval": "RETRY_INTERVAL",
    "connect_timeout": "CONNECT_TIMEOUT",
    "log_level": "LOG_LEVEL",
}


def load_yaml_config(path: str | None) -> dict:
    """Load a YAML config file. Returns empty dict if no path or file missing."""
    if not path:
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.warning("Config file %s not found, using defaults", path)
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"config file {path} must contain a mapping")
    logger.info("Loaded YAML config from %s", path)
    return data


def _build(cls, yaml_data: dict, env_names: dict, cli_args):
    """Merge defaults <- YAML <- env vars <- CLI args (highest priority)."""
    kwargs = {}
    for f in fields(cls):
        value = yaml_data.get(f.name)
        env_name = env_names.get(f.name)
        if env_name and os.environ.get(env_name) is not None:
            value = os.environ[env_name]
        cli_value = getattr(cli_args, f.name, None)
        if cli_value is not None:
            value = cli_value
        if value is None:
            continue
        coerce = _COERCE.get(f.type)
        try:
            kwargs[f.name] = coerce(value) if coerce else value
        except ValueError as e:
            raise ConfigError(f"invalid value for {f.name}: {value!r}") from e
    return cls(**kwargs)


def _check_log_level(level: str):
    if level.upper() not in LOG_LEVELS:
        raise ConfigError(f"unknown log level {level!r}, expected one of {LOG_LEVELS}")


def build_gatherer_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Gatherer: receives log messages and relays them to a sink")
    parser.add_argument("--config", default=None, help="Path to YAML config file")
    parser.add_argument("--host", default=None, help="Interface to bind (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=None, help="TCP port to bind (default: 9494)")
    parser.add_argument("--queue-size", dest="queue_size", type=int, default=None,
                        help="Capacity of the receive queue (default: 1)")
    parser.add_argument("--consumer", default=None, help="( cli | database )")
    parser.add_argument("--connection-string", dest="connection_string", default=None,
                        help="<connection-string> passed to the database driver")
    parser.add_argument("--driver", default=None,
                        help="( sqlite3 | mssql | pymssql | pyodbc ) database driver module")
    parser.add_argument("--schema", default=None, help="<db-schema-name> (default: main)")
    parser.add_argument("--table", default=None, help="<db-table-name> (default: gatherer)")
    parser.add_argument("--db-create", dest="db_create", action="store_true", default=None,
                        help="Create the schema table and index if they do not exist")
    parser.add_argument("--log-level", dest="log_level", default=None, help="Process log level")
    return parser


def build_sender_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Sender: tails files and ships each line to the gatherer")
    parser.add_argument("--config", default=None, help="Path to YAML config file")
    parser.add_argument("--watch", default=None,
                        help="Directory to watch for file changes. Will send each line to the gatherer")
    parser.add_argument("--ext", default=None, help="Extension of files to watch (default: .txt)")
    parser.add_argument("--recursive", action="store_true", default=None,
                        help="Also watch subdirectories of --watch")
    parser.add_argument("--poll-interval", dest="poll_interval", type=float, default=None,
                        help="Seconds between polls of a tailed file (default: 0.25)")
    parser.add_argument("--gatherer", default=None, help="host:port of the gatherer (default: localhost:9494)")
    parser.add_argument("--send", action="store_true", default=None,
                        help="Send one message immediately with --message, --time, --level, --server")
    parser.add_argument("--message", default=None, help="Message to send with --send")
    parser.add_argument("--time", default=None,
                        help="Time to send with --send in ISO 8601 / RFC 3339 format (default: local now)")
    parser.add_argument("--level", default=None, help="Log level of sent messages (default: DEBUG)")
    parser.add_argument("--server", default=None, help="Server name of sent messages (default: host name)")
    parser.add_argument("--tries", dest="max_attempts", type=int, default=None,
                        help="Times to try sending before giving up (default: 10)")
    parser.add_argument("--retry-interval", dest="retry_interval", type=float, default=None,
                        help="Seconds to wait between send attempts (default: 1.0)")
    parser.add_argument("--connect-timeout", dest="connect_timeout", type=float, default=None,
                        help="Seconds to wait when connecting to the gatherer (default: 30)")
    parser.add_argument("--log-level", dest="log_level", default=None, help="Process log level")
    return parser


def load_gatherer_config(argv: list[str] | None = None) -> GathererConfig:
    if argv is None:
        argv = sys.argv[1:]
    args = build_gatherer_parser().parse_args(argv)
    config = _build(GathererConfig, load_yaml_config(args.config), _GATHERER_ENV, args)

    if not 0 <= config.port <= 65535:
        raise ConfigError(f"port out of range: {config.port}")
    if config.queue_size < 1:
        raise ConfigError(f"queue_size must be positive, got {config.queue_size}")
    _check_log_level(config.log_level)
    return config


def load_sender_config(argv: list[str] | None = None) -> SenderConfig:
    if argv is None:
        argv = sys.argv[1:]
    args = build_sender_parser().parse_args(argv)
    config = _build(SenderConfig, load_yaml_config(args.config), _SENDER_ENV, args)

    parse_address(config.gatherer)
    if config.max_attempts < 1:
        raise ConfigError(f"tries must be positive, got {config.max_attempts}")
    if config.poll_interval <= 0:
        raise ConfigError(f"poll_interval must be positive, got {config.poll_interval}")
    _check_log_level(config.log_level)
    return config


def parse_address(address: str) -> tuple[str, int]:
    """Split "host:port" into (host, port). An empty host means localhost."""
    host, sep, port = address.rpartition(":")
    if not sep:
        raise ConfigError(f"address must be host:port, got {address!r}")
    try:
        port_num = int(port)
    except ValueError as e:
        raise ConfigError(f"invalid port in address {address!r}") from e
    if not 0 < port_num <= 65535:
        raise ConfigError(f"port out of range in address {address!r}")
    return host or "localhost", port_num
