"""Tests for file_tailer module."""

import threading
import time

import pytest

from gatherlogs.file_tailer import FileTailer


def _start(path, **kwargs):
    received = []
    stop = threading.Event()
    tailer = FileTailer(str(path), stop, callback=received.append, poll_interval=0.02, **kwargs)
    t = threading.Thread(target=tailer.run, daemon=True)
    t.start()
    return tailer, received, stop, t


def _append(path, text):
    with open(str(path), "a") as fh:
        fh.write(text)
        fh.flush()


class TestFileTailer:
    def test_detects_appended_lines(self, tmp_path, wait_for):
        f = tmp_path / "app.txt"
        f.write_text("existing line\n")
        tailer, received, stop, t = _start(f)
        try:
            time.sleep(0.1)
            _append(f, "new line 1\nnew line 2\n")
            assert wait_for(lambda: len(received) == 2)
        finally:
            stop.set()
            t.join(timeout=2)

        # Follows from the end: the pre-existing line is not emitted
        assert received == ["new line 1", "new line 2"]

    def test_from_start_reads_existing_content(self, tmp_path, wait_for):
        f = tmp_path / "app.txt"
        f.write_text("first\nsecond\n")
        tailer, received, stop, t = _start(f, from_start=True)
        try:
            assert wait_for(lambda: len(received) == 2)
            _append(f, "third\n")
            assert wait_for(lambda: len(received) == 3)
        finally:
            stop.set()
            t.join(timeout=2)
        assert received == ["first", "second", "third"]

    def test_partial_line_waits_for_newline(self, tmp_path, wait_for):
        f = tmp_path / "app.txt"
        f.write_text("")
        tailer, received, stop, t = _start(f)
        try:
            time.sleep(0.1)
            _append(f, "half a ")
            time.sleep(0.15)
            assert received == []
            _append(f, "line\n")
            assert wait_for(lambda: received == ["half a line"])
        finally:
            stop.set()
            t.join(timeout=2)

    def test_keeps_empty_lines_and_crlf(self, tmp_path, wait_for):
        f = tmp_path / "app.txt"
        f.write_text("")
        tailer, received, stop, t = _start(f)
        try:
            time.sleep(0.1)
            with open(str(f), "ab") as fh:
                fh.write(b"one\r\n\ntwo\n")
            assert wait_for(lambda: len(received) == 3)
        finally:
            stop.set()
            t.join(timeout=2)
        assert received == ["one", "", "two"]

    def test_truncation_handling(self, tmp_path, wait_for):
        f = tmp_path / "app.txt"
        f.write_text("original line that is long\n")
        tailer, received, stop, t = _start(f)
        try:
            time.sleep(0.1)
            _append(f, "before truncation\n")
            assert wait_for(lambda: "before truncation" in received)

            with open(str(f), "w") as fh:
                fh.write("after\n")
            assert wait_for(lambda: "after" in received)
        finally:
            stop.set()
            t.join(timeout=2)

    def test_stop_releases_file(self, tmp_path):
        f = tmp_path / "app.txt"
        f.write_text("")
        tailer, received, stop, t = _start(f)
        time.sleep(0.1)
        assert tailer.closed is False

        stop.set()
        t.join(timeout=1)
        assert not t.is_alive()
        assert tailer.closed is True

    def test_cannot_restart(self, tmp_path):
        f = tmp_path / "app.txt"
        f.write_text("")
        stop = threading.Event()
        stop.set()
        tailer = FileTailer(str(f), stop, poll_interval=0.02)
        tailer.run()
        with pytest.raises(RuntimeError, match="cannot be restarted"):
            tailer.run()

    def test_missing_file_raises(self, tmp_path):
        tailer = FileTailer(str(tmp_path / "nope.txt"), threading.Event())
        with pytest.raises(FileNotFoundError):
            tailer.run()

    def test_lines_is_lazy(self, tmp_path):
        f = tmp_path / "app.txt"
        f.write_text("a\nb\n")
        stop = threading.Event()
        tailer = FileTailer(str(f), stop, poll_interval=0.02, from_start=True)
        lines = tailer.lines()
        assert tailer.closed is True
        assert next(lines) == "a"
        assert tailer.closed is False
        assert next(lines) == "b"
        stop.set()
        with pytest.raises(StopIteration):
            next(lines)
        assert tailer.closed is True
