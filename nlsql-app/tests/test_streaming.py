from __future__ import annotations

import threading

import pytest

from backend.errors import GenerationError
from backend.services.streaming import FragmentStream, pump


def _read_all(stream: FragmentStream, size: int) -> bytes:
    chunks = []
    while True:
        chunk = stream.read(size)
        if not chunk:
            return b"".join(chunks)
        assert len(chunk) <= size
        chunks.append(chunk)


@pytest.mark.parametrize("size", [1, 4, 100])
def test_fragment_stream_reads_concatenate(size):
    stream = FragmentStream(["The ", "cat ", "sat."])
    assert _read_all(stream, size).decode("utf-8") == "The cat sat."
    assert stream.eof()


def test_fragment_stream_splits_multibyte_characters():
    stream = FragmentStream(["ação ", "", "ok"])
    assert _read_all(stream, 1).decode("utf-8") == "ação ok"


def test_fragment_stream_read_all_and_iteration():
    assert FragmentStream(["a", "b", "c"]).read() == b"abc"
    assert b"".join(FragmentStream(["x" * 10, "y"], chunk_size=3)) == b"x" * 10 + b"y"
    assert FragmentStream([]).read(5) == b""


def test_pump_preserves_order():
    assert list(pump(iter(["one", "two", "three"]), maxsize=1)) == ["one", "two", "three"]


def test_pump_reraises_producer_errors():
    def failing():
        yield "first"
        raise GenerationError("backend went away")

    received = []
    with pytest.raises(GenerationError, match="backend went away"):
        for item in pump(failing()):
            received.append(item)
    assert received == ["first"]


def test_pump_stops_producer_when_consumer_closes():
    closed = threading.Event()

    def endless():
        try:
            while True:
                yield "tick"
        finally:
            closed.set()

    stream = pump(endless(), maxsize=2)
    assert next(stream) == "tick"
    stream.close()
    assert closed.wait(timeout=5)
