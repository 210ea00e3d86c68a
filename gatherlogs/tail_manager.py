"""TailManager: starts and stops one FileTailer per matching file in a directory."""

import logging
import os
import queue
import threading
from dataclasses import dataclass

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from gatherlogs.file_tailer import DEFAULT_POLL_INTERVAL, FileTailer

logger = logging.getLogger(__name__)

_CREATED = "created"
_REMOVED = "removed"
_EXISTING = "existing"
_STOP = "stop"


@dataclass
class TailerRegistration:
    path: str
    stop_event: threading.Event
    thread: threading.Thread
    from_scan: bool = False

    @property
    def running(self) -> bool:
        return self.thread.is_alive()

    def cancel(self):
        self.stop_event.set()


class DirectoryEventHandler(FileSystemEventHandler):
    """Turns watchdog callbacks into commands for the manager loop.

    A rename is reported as a removal of the old path followed by a
    creation of the new one.
    """

    def __init__(self, commands: queue.Queue):
        super().__init__()
        self._commands = commands

    def on_created(self, event):
        if not event.is_directory:
            self._commands.put((_CREATED, os.path.abspath(event.src_path)))

    def on_deleted(self, event):
        self._commands.put((_REMOVED, os.path.abspath(event.src_path)))

    def on_moved(self, event):
        self._commands.put((_REMOVED, os.path.abspath(event.src_path)))
        if not event.is_directory:
            self._commands.put((_CREATED, os.path.abspath(event.dest_path)))


class TailManager:
    """Keeps the set of running tailers in step with the watched directory.

    The registration table is only touched by the manager's own loop
    thread; watchdog callbacks and the startup scan feed it through a
    command queue.
    """

    def __init__(
        self,
        directory: str,
        suffix: str,
        on_line,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        recursive: bool = False,
        on_tailer_error=None,
        join_timeout: float = 5.0,
    ):
        self._directory = os.path.abspath(directory)
        self._suffix = suffix
        self._on_line = on_line
        self._poll_interval = poll_interval
        self._recursive = recursive
        self._on_tailer_error = on_tailer_error
        self._join_timeout = join_timeout
        self._commands: queue.Queue = queue.Queue()
        self._tailers: dict[str, TailerRegistration] = {}
        self._active: frozenset[str] = frozenset()
        self._observer = None
        self._loop: threading.Thread | None = None

    @property
    def directory(self) -> str:
        return self._directory

    def active_paths(self) -> frozenset[str]:
        """Snapshot of the paths currently being tailed."""
        return self._active

    def start(self):
        """Subscribe to directory events, tail existing files, start the loop.

        Raises OSError if the directory cannot be watched.
        """
        if not os.path.isdir(self._directory):
            raise NotADirectoryError(f"watch directory {self._directory} does not exist")

        # Subscribe before scanning so files created in between are not missed.
        observer = Observer()
        observer.schedule(DirectoryEventHandler(self._commands), self._directory,
                          recursive=self._recursive)
        observer.start()
        self._observer = observer
        logger.info("Watching directory %s for *%s", self._directory, self._suffix)

        for path in self._scan():
            self._commands.put((_EXISTING, path))

        self._loop = threading.Thread(target=self._run, name="tail-manager", daemon=True)
        self._loop.start()

    def stop(self):
        """Stop watching, cancel every tailer and wait for them to finish."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=self._join_timeout)
            self._observer = None
        if self._loop is not None:
            self._commands.put((_STOP, None))
            self._loop.join(timeout=self._join_timeout)
            self._loop = None

    def _scan(self) -> list[str]:
        if self._recursive:
            found = []
            for root, _dirs, files in os.walk(self._directory):
                found.extend(os.path.join(root, name) for name in files)
        else:
            found = [entry.path for entry in os.scandir(self._directory) if entry.is_file()]
        return sorted(p for p in found if self._matches(p))

    def _matches(self, path: str) -> bool:
        return path.endswith(self._suffix)

    def _run(self):
        while True:
            kind, path = self._commands.get()
            if kind == _STOP:
                break
            try:
                self._apply(kind, path)
            except Exception as e:
                logger.warning("error handling %s event for %s: %s", kind, path, e)
        self._stop_all()

    def _apply(self, kind: str, path: str):
        if kind == _REMOVED:
            self._stop_tailer(path)
        elif self._matches(path):
            self._start_tailer(path, from_start=(kind == _CREATED))

    def _start_tailer(self, path: str, from_start: bool):
        existing = self._tailers.get(path)
        if existing is not None:
            if existing.running:
                if existing.from_scan and from_start:
                    # Created between subscribing and the startup scan.
                    logger.debug("already tailing %s since startup, ignoring create event", path)
                else:
                    logger.error("already tailing %s, not starting a second tailer", path)
                return
            del self._tailers[path]

        stop_event = threading.Event()
        tailer = FileTailer(
            path,
            stop_event,
            callback=lambda line: self._on_line(path, line),
            poll_interval=self._poll_interval,
            from_start=from_start,
        )
        thread = threading.Thread(target=self._tail, args=(tailer,),
                                  name=f"tail:{os.path.basename(path)}", daemon=True)
        self._tailers[path] = TailerRegistration(path, stop_event, thread, from_scan=not from_start)
        thread.start()
        self._publish()

    def _stop_tailer(self, path: str):
        registration = self._tailers.pop(path, None)
        if registration is None:
            return
        registration.cancel()
        self._publish()
        logger.info("file removed, stopping tailer for %s", path)

    def _stop_all(self):
        registrations = list(self._tailers.values())
        self._tailers.clear()
        self._publish()
        for registration in registrations:
            registration.cancel()
        for registration in registrations:
            registration.thread.join(timeout=self._join_timeout)

    def _publish(self):
        self._active = frozenset(self._tailers)

    def _tail(self, tailer: FileTailer):
        try:
            tailer.run()
        except Exception as e:
            if self._on_tailer_error is not None:
                self._on_tailer_error(tailer.path, e)
            else:
                logger.warning("tailer for %s failed: %s", tailer.path, e)
