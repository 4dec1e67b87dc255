"""Tests for shellkeeper.pty.buffer.OutputAccumulator."""

from __future__ import annotations

import threading

from shellkeeper.pty.buffer import OutputAccumulator


class TestOutputAccumulatorBasics:
    def test_empty(self) -> None:
        buf = OutputAccumulator()
        assert buf.read_all() == ""

    def test_append_concatenates(self) -> None:
        buf = OutputAccumulator()
        buf.append("hello ")
        buf.append("world\r\n")
        assert buf.read_all() == "hello world\r\n"

    def test_empty_append_ignored(self) -> None:
        buf = OutputAccumulator()
        buf.append("")
        assert buf.read_all() == ""

    def test_empty_buffer_is_truthy(self) -> None:
        # Callers test "if session.buffer", not its contents
        assert OutputAccumulator()

    def test_contains(self) -> None:
        buf = OutputAccumulator()
        buf.append("__M__ one __M__ two")
        assert buf.contains("__M__")
        assert not buf.contains("three")

    def test_marker_split_across_appends(self) -> None:
        buf = OutputAccumulator()
        buf.append("__SK_E")
        buf.append("ND_1__\r\n")
        assert buf.contains("__SK_END_1__")


class TestOutputAccumulatorClear:
    def test_clear_resets_contents(self) -> None:
        buf = OutputAccumulator()
        buf.append("stale output")
        buf.clear()
        assert buf.read_all() == ""
        assert not buf.contains("stale")

    def test_append_after_clear(self) -> None:
        buf = OutputAccumulator()
        buf.append("12345")
        buf.clear()
        buf.append("678")
        assert buf.read_all() == "678"


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------


class TestOutputAccumulatorThreads:
    def test_concurrent_appends_lose_nothing(self) -> None:
        buf = OutputAccumulator()

        def writer(ch: str) -> None:
            for _ in range(1000):
                buf.append(ch)

        threads = [threading.Thread(target=writer, args=(c,)) for c in "abcd"]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        text = buf.read_all()
        assert len(text) == 4000
        assert all(text.count(c) == 1000 for c in "abcd")
