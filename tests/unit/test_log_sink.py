"""
Log Sink Unit Tests
===================
Capacity, ordering and thread safety of the shared audit trail.
"""

import threading

import pytest


class TestLogSink:

    def test_newest_first(self):
        from sniper.shared.system.log_sink import LogSink

        sink = LogSink(mirror=False)
        sink.append("first")
        sink.append("second")

        assert [e.message for e in sink.entries()] == ["second", "first"]

    def test_capacity_250_appends(self):
        """250 appends leave exactly 200 entries, most recent first."""
        from sniper.shared.system.log_sink import LogSink

        sink = LogSink(mirror=False)
        for i in range(250):
            sink.append(f"entry {i}")

        entries = sink.entries()
        assert len(entries) == 200
        assert entries[0].message == "entry 249"
        assert entries[-1].message == "entry 50"

    def test_clear(self):
        from sniper.shared.system.log_sink import LogSink

        sink = LogSink(mirror=False)
        sink.append("x")
        sink.clear()

        assert len(sink) == 0
        assert sink.entries() == []

    def test_entries_is_a_copy(self):
        from sniper.shared.system.log_sink import LogSink

        sink = LogSink(mirror=False)
        sink.append("x")
        snapshot = sink.entries()
        sink.append("y")

        assert len(snapshot) == 1

    def test_line_format(self):
        from sniper.shared.system.log_sink import LogEntry

        entry = LogEntry("bought", timestamp=0.0)

        assert str(entry).endswith(": bought")
        assert len(str(entry).split(": ", 1)[0]) == 8  # HH:MM:SS

    def test_invalid_capacity(self):
        from sniper.shared.system.log_sink import LogSink

        with pytest.raises(ValueError):
            LogSink(capacity=0)

    def test_mirror_to_logger(self, monkeypatch):
        from sniper.shared.system import log_sink as module

        seen = []
        monkeypatch.setattr(module.Logger, "info", staticmethod(lambda msg: seen.append(msg)))

        module.LogSink().append("hello")

        assert seen == ["[AUDIT] hello"]

    def test_concurrent_appends(self):
        """Appends from many threads never exceed the cap or lose ordering per writer."""
        from sniper.shared.system.log_sink import LogSink

        sink = LogSink(capacity=1000, mirror=False)

        def writer(name):
            for i in range(100):
                sink.append(f"{name}:{i}")

        threads = [threading.Thread(target=writer, args=(f"w{n}",)) for n in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        entries = sink.entries()
        assert len(entries) == 500
        for n in range(5):
            mine = [int(e.message.split(":")[1]) for e in entries if e.message.startswith(f"w{n}:")]
            assert mine == sorted(mine, reverse=True)
