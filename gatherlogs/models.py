"""Log message model exchanged between sender and gatherer."""

import enum
from dataclasses import dataclass
from datetime import datetime


class LogLevel(enum.Enum):
    DEBUG = 0
    INFO = 1
    WARN = 2
    ERROR = 3
    FATAL = 4

    @classmethod
    def parse(cls, name: str | None) -> "LogLevel":
        """Look up a level by name. Unknown names fall back to DEBUG."""
        if not name:
            return cls.DEBUG
        key = name.strip().upper()
        if key == "WARNING":
            key = "WARN"
        try:
            return cls[key]
        except KeyError:
            return cls.DEBUG


@dataclass(frozen=True)
class LogMessage:
    server: str
    log_level: LogLevel
    time: datetime
    message: str

    def to_dict(self) -> dict:
        return {
            "server": self.server,
            "log_level": self.log_level.name,
            "time": self.time.isoformat(timespec="microseconds"),
            "message": self.message,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "LogMessage":
        """Build a message from its wire dict.

        Raises ValueError if a field is missing or has the wrong type.
        """
        if not isinstance(data, dict):
            raise ValueError("expected JSON object")
        missing = [k for k in ("server", "log_level", "time", "message") if k not in data]
        if missing:
            raise ValueError(f"missing required fields: {', '.join(missing)}")
        if not isinstance(data["server"], str) or not isinstance(data["message"], str):
            raise ValueError("server and message must be strings")
        for field in ("server", "message"):
            try:
                data[field].encode("utf-8")
            except UnicodeEncodeError as e:
                raise ValueError(f"{field} is not valid UTF-8 text: {e}") from e
        if not isinstance(data["time"], str):
            raise ValueError("time must be an ISO 8601 string")
        return cls(
            server=data["server"],
            log_level=LogLevel.parse(str(data["log_level"])),
            time=datetime.fromisoformat(data["time"]),
            message=data["message"],
        )


def now() -> datetime:
    """Current local time, timezone-aware."""
    return datetime.now().astimezone()


def parse_timestamp(value: str | None) -> datetime:
    """Parse an ISO 8601 / RFC 3339 timestamp, defaulting to local now.

    Naive values are interpreted as local time.
    """
    if not value:
        return now()
    parsed = datetime.fromisoformat(value.strip())
    if parsed.tzinfo is None:
        parsed = parsed.astimezone()
    return parsed
