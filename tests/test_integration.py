"""End-to-end: files -> sender agent -> gatherer server -> consumer -> database."""

import sqlite3
import threading

from gatherlogs.agent import SenderAgent
from gatherlogs.config import SenderConfig
from gatherlogs.consumer import SinkConsumer
from gatherlogs.delivery_client import DeliveryClient
from gatherlogs.gatherer import Gatherer
from gatherlogs.server import GathererServer
from gatherlogs.sinks import DatabaseSink


def _append(path, text):
    with open(str(path), "a") as fh:
        fh.write(text)
        fh.flush()


class TestPipeline:
    def test_lines_reach_database_in_order(self, tmp_path, wait_for):
        watch_dir = tmp_path / "logs"
        watch_dir.mkdir()
        db_path = str(tmp_path / "gathered.db")

        gatherer_shutdown = threading.Event()
        gatherer = Gatherer(queue_size=1)
        server = GathererServer(gatherer, "127.0.0.1", 0, gatherer_shutdown)
        server.bind()
        threading.Thread(target=server.start, daemon=True).start()
        host, port = server.server_address

        sink = DatabaseSink("sqlite3", db_path, "main", "gatherer", create=True)
        sink.open()
        consumer = SinkConsumer(gatherer, sink, gatherer_shutdown, poll_timeout=0.05)
        consumer_thread = threading.Thread(target=consumer.run, daemon=True)
        consumer_thread.start()

        config = SenderConfig(gatherer=f"{host}:{port}", watch=str(watch_dir), server="app-host",
                              level="INFO", poll_interval=0.02, retry_interval=0.01)
        client = DeliveryClient(host, port, config.retry_interval, connect_timeout=5.0)
        client.connect()
        sender_shutdown = threading.Event()
        agent = SenderAgent(config, client, sender_shutdown)
        agent_thread = threading.Thread(target=agent.watch, daemon=True)
        agent_thread.start()

        try:
            assert wait_for(lambda: agent.manager is not None)
            first = watch_dir / "a.txt"
            second = watch_dir / "b.txt"
            first.write_text("")
            second.write_text("")
            assert wait_for(lambda: len(agent.manager.active_paths()) == 2)
            for i in range(20):
                _append(first, f"a {i}\n")
                _append(second, f"b {i}\n")

            assert wait_for(lambda: consumer.consumed == 40, timeout=15)
        finally:
            sender_shutdown.set()
            agent_thread.join(timeout=5)
            client.close()
            gatherer_shutdown.set()
            consumer_thread.join(timeout=5)
            server.stop()
            sink.close()

        conn = sqlite3.connect(db_path)
        try:
            rows = conn.execute('select Server, LogLevel, Message from "gatherer" order by Id').fetchall()
        finally:
            conn.close()

        assert len(rows) == 40
        assert {(s, l) for s, l, _ in rows} == {("app-host", "INFO")}
        # Each file's lines arrive in the order they were written.
        assert [m for _, _, m in rows if m.startswith("a ")] == [f"a {i}" for i in range(20)]
        assert [m for _, _, m in rows if m.startswith("b ")] == [f"b {i}" for i in range(20)]
