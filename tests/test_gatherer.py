"""Tests for the gatherer's bounded queue."""

import queue
import threading
import time

import pytest

from gatherlogs.gatherer import Gatherer


class TestGathererQueue:
    def test_default_capacity_is_one(self):
        assert Gatherer().capacity == 1

    def test_rejects_non_positive_capacity(self):
        with pytest.raises(ValueError):
            Gatherer(queue_size=0)

    def test_send_then_receive(self, make_message):
        g = Gatherer()
        msg = make_message()
        g.send(msg)
        assert g.receive(timeout=1) == msg

    def test_receive_empty_times_out(self):
        with pytest.raises(queue.Empty):
            Gatherer().receive(timeout=0.05)

    def test_send_multiple_preserves_order(self, make_message):
        g = Gatherer(queue_size=3)
        batch = [make_message(message=f"msg {i}") for i in range(20)]
        received = []

        def drain():
            for _ in range(20):
                received.append(g.receive(timeout=5).message)

        t = threading.Thread(target=drain, daemon=True)
        t.start()
        g.send_multiple(batch)
        t.join(timeout=5)

        assert received == [f"msg {i}" for i in range(20)]


class TestBackpressure:
    def test_send_blocks_while_full(self, make_message):
        g = Gatherer(queue_size=1)
        g.send(make_message(message="first"))

        done = threading.Event()

        def blocked_send():
            g.send(make_message(message="second"))
            done.set()

        threading.Thread(target=blocked_send, daemon=True).start()
        assert not done.wait(0.3)

        assert g.receive(timeout=1).message == "first"
        assert done.wait(1.0)
        assert g.receive(timeout=1).message == "second"

    def test_never_drops(self, make_message):
        g = Gatherer(queue_size=1)
        senders = [
            threading.Thread(target=g.send, args=(make_message(message=str(i)),), daemon=True)
            for i in range(10)
        ]
        for t in senders:
            t.start()
        time.sleep(0.1)

        received = {g.receive(timeout=2).message for _ in range(10)}
        assert received == {str(i) for i in range(10)}
