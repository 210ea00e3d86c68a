"""FileTailer — follows one file by polling and yields lines as they are appended."""

import logging
import os
import threading
from collections.abc import Iterator

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 0.25


class FileTailer:
    """Follows a single file until its stop event is set.

    Polls instead of relying on change notifications, so it also works on
    filesystems that do not report appends. Handles:
    - Partial lines (held back until the newline arrives)
    - File truncation (seek back to start)

    An instance follows its file once; after stopping, start a new one.
    """

    def __init__(
        self,
        path: str,
        stop_event: threading.Event,
        callback=None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        from_start: bool = False,
    ):
        self._path = path
        self._stop = stop_event
        self._callback = callback
        self._poll_interval = poll_interval
        self._from_start = from_start
        self._file = None
        self._partial = ""
        self._started = False

    @property
    def path(self) -> str:
        return self._path

    @property
    def closed(self) -> bool:
        return self._file is None

    def run(self):
        """Pass each line to the callback. Blocks until the stop event is set."""
        lines = self.lines()
        try:
            for line in lines:
                if self._callback:
                    self._callback(line)
        finally:
            lines.close()

    def lines(self) -> Iterator[str]:
        """Yield appended lines, without their line endings, until stopped.

        Raises OSError if the file cannot be opened.
        """
        if self._started:
            raise RuntimeError(f"tailer for {self._path} cannot be restarted")
        self._started = True

        self._open_file()
        logger.info("tailing file %s", self._path)
        try:
            while not self._stop.is_set():
                self._check_truncation()
                line = self._read_line()
                if line is None:
                    self._stop.wait(self._poll_interval)
                    continue
                yield line
        finally:
            self._close_file()
            logger.info("stopped tailing file %s", self._path)

    def _read_line(self) -> str | None:
        """Return the next complete line, or None if none is available yet."""
        chunk = self._file.readline()
        if not chunk:
            return None
        if not chunk.endswith("\n"):
            self._partial += chunk
            return None
        line = self._partial + chunk
        self._partial = ""
        return line.rstrip("\r\n")

    def _open_file(self):
        self._file = open(self._path, "r", encoding="utf-8", errors="replace", newline="\n")
        if not self._from_start:
            self._file.seek(0, os.SEEK_END)
        logger.debug("Opened %s at offset %d", self._path, self._file.tell())

    def _close_file(self):
        if self._file:
            self._file.close()
            self._file = None

    def _check_truncation(self):
        """Detect file truncation (e.g., > file) and restart from offset 0."""
        try:
            file_size = os.path.getsize(self._path)
        except FileNotFoundError:
            return

        if self._file.tell() > file_size:
            logger.info("File truncation detected for %s", self._path)
            self._file.seek(0)
            self._partial = ""
