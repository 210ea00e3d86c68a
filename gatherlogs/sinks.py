"""Sinks: final destinations for gathered log messages."""

import importlib
import logging
import sys

from gatherlogs.config import CONSUMERS, ConfigError, GathererConfig
from gatherlogs.models import LogMessage

logger = logging.getLogger(__name__)


class SinkConfigError(Exception):
    """Raised when a sink cannot be opened with its configuration."""


class Sink:
    def open(self):
        pass

    def write(self, msg: LogMessage) -> bool:
        """Forward one message. Returns False if the message was dropped."""
        raise NotImplementedError

    def close(self):
        pass


class ConsoleSink(Sink):
    """Prints each message as one line."""

    def __init__(self, stream=None):
        self._stream = stream

    def write(self, msg: LogMessage) -> bool:
        stream = self._stream or sys.stdout
        line = format_message(msg).encode("utf-8", "backslashreplace").decode("utf-8")
        stream.write(line + "\n")
        stream.flush()
        logger.debug("consumed queue message %s", msg)
        return True


def format_message(msg: LogMessage) -> str:
    return f"{msg.time.isoformat(timespec='microseconds')} {msg.server or '-'} [{msg.log_level.name}] {msg.message}"


# ---------------------------------------------------------------------------
# Database dialects
# ---------------------------------------------------------------------------


class _SQLiteDialect:
    def quote(self, name: str) -> str:
        return '"' + name.replace('"', '""') + '"'

    def connect(self, module, connection_string: str):
        return module.connect(connection_string or ":memory:", check_same_thread=False)

    def table_exists_sql(self, schema: str) -> str:
        return f"select name from {self.quote(schema)}.sqlite_master where type = 'table' and name = {{p}}"

    def table_exists_params(self, schema: str, table: str) -> tuple:
        return (table,)

    def create_table_sql(self, schema: str, table: str) -> list[str]:
        full = f"{self.quote(schema)}.{self.quote(table)}"
        return [
            f"""create table {full}
            (
                Id integer primary key autoincrement,
                Server text not null,
                LogLevel text not null,
                Time text not null,
                Message text null
            )""",
            f"create index {self.quote(schema)}.{self.quote('IX_' + table + '_time')} "
            f"on {self.quote(table)} (Time, Id)",
        ]

    def full_table(self, schema: str, table: str) -> str:
        return f"{self.quote(schema)}.{self.quote(table)}"


class _SqlServerDialect:
    def quote(self, name: str) -> str:
        return "[" + name.replace("]", "]]") + "]"

    def connect(self, module, connection_string: str):
        return module.connect(connection_string)

    def table_exists_sql(self, schema: str) -> str:
        return ("select TABLE_NAME from INFORMATION_SCHEMA.TABLES "
                "where TABLE_SCHEMA = {p} and TABLE_NAME = {p}")

    def table_exists_params(self, schema: str, table: str) -> tuple:
        return (schema, table)

    def create_table_sql(self, schema: str, table: str) -> list[str]:
        full = self.full_table(schema, table)
        return [
            f"""create table {full}
            (
                Id bigint NOT NULL IDENTITY (1,1) PRIMARY KEY NONCLUSTERED,
                Server nvarchar(255) NOT NULL,
                LogLevel nvarchar(255) NOT NULL,
                Time datetime2 NOT NULL,
                Message nvarchar(max) NULL
            )""",
            f"create clustered index {self.quote('IX_' + table + '_time')} on {full} (Time, Id)",
        ]

    def full_table(self, schema: str, table: str) -> str:
        return f"{self.quote(schema)}.{self.quote(table)}"


_DRIVER_ALIASES = {"mssql": "pymssql"}

_DIALECTS = {
    "sqlite3": _SQLiteDialect,
    "pymssql": _SqlServerDialect,
    "pyodbc": _SqlServerDialect,
}

_PLACEHOLDERS = {
    "qmark": "?",
    "format": "%s",
    "pyformat": "%s",
}


class DatabaseSink(Sink):
    """Inserts each message as one row; failed inserts are logged and dropped."""

    def __init__(self, driver: str, connection_string: str, schema: str,
                 table: str, create: bool = False):
        self._driver = _DRIVER_ALIASES.get(driver, driver)
        self._connection_string = connection_string
        self._schema = schema
        self._table = table
        self._create = create
        self._module = None
        self._conn = None
        self._insert_sql = ""

        dialect_cls = _DIALECTS.get(self._driver)
        if dialect_cls is None:
            raise SinkConfigError(
                f"unsupported database driver {driver!r}, expected one of "
                f"{sorted(set(_DIALECTS) | set(_DRIVER_ALIASES))}"
            )
        self._dialect = dialect_cls()

    def open(self):
        """Connect and make sure the target table exists.

        Raises SinkConfigError if the database cannot be opened, or the
        table is missing and auto-create is disabled.
        """
        try:
            self._module = importlib.import_module(self._driver)
        except ImportError as e:
            raise SinkConfigError(f"failed to open db: driver {self._driver} is not installed") from e

        placeholder = _PLACEHOLDERS.get(getattr(self._module, "paramstyle", "qmark"), "?")
        try:
            self._conn = self._dialect.connect(self._module, self._connection_string)
        except self._module.Error as e:
            raise SinkConfigError(f"failed to open db {self._driver} {self._connection_string}: {e}") from e

        if not self._table_exists(placeholder):
            if not self._create:
                raise SinkConfigError(
                    f"database {self._schema} {self._table} does not exist and db_create is not set. "
                    "Provide schema and table as well as db_create if you want to create the table automatically"
                )
            self._create_table()

        self._insert_sql = (
            f"insert into {self._dialect.full_table(self._schema, self._table)} "
            f"(Server, LogLevel, Time, Message) values ({', '.join([placeholder] * 4)})"
        )
        logger.info("writing queue to database %s.%s", self._schema, self._table)

    def _table_exists(self, placeholder: str) -> bool:
        sql = self._dialect.table_exists_sql(self._schema).format(p=placeholder)
        try:
            cur = self._conn.cursor()
            cur.execute(sql, self._dialect.table_exists_params(self._schema, self._table))
            row = cur.fetchone()
            cur.close()
        except self._module.Error as e:
            raise SinkConfigError(f"failed to check for existence of {self._schema} {self._table}: {e}") from e
        return row is not None

    def _create_table(self):
        full = self._dialect.full_table(self._schema, self._table)
        try:
            cur = self._conn.cursor()
            for statement in self._dialect.create_table_sql(self._schema, self._table):
                cur.execute(statement)
            cur.close()
            self._conn.commit()
        except self._module.Error as e:
            raise SinkConfigError(f"failed to create table {full}: {e}") from e
        logger.info("created table and index %s", full)

    def write(self, msg: LogMessage) -> bool:
        params = (
            msg.server,
            msg.log_level.name,
            msg.time.isoformat(timespec="microseconds"),
            msg.message,
        )
        try:
            cur = self._conn.cursor()
            cur.execute(self._insert_sql, params)
            cur.close()
            self._conn.commit()
        except (self._module.Error, UnicodeError, ValueError) as e:
            logger.warning("Failed to insert message %s: %s", msg, e)
            try:
                self._conn.rollback()
            except self._module.Error:
                pass
            return False
        return True

    def close(self):
        if self._conn is not None:
            self._conn.close()
            self._conn = None


def build_sink(config: GathererConfig) -> Sink:
    """Create the sink selected by config.consumer. Raises ConfigError for unknown modes."""
    if config.consumer == "cli":
        return ConsoleSink()
    if config.consumer == "database":
        return DatabaseSink(
            config.driver,
            config.connection_string,
            config.schema,
            config.table,
            create=config.db_create,
        )
    raise ConfigError(f"unrecognized consumer value {config.consumer!r}, expected one of {CONSUMERS}")
