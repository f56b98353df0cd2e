"""Bridges between lazily generated text fragments and HTTP response bodies."""
from __future__ import annotations

import logging
import queue
import threading
from typing import Iterable, Iterator, Optional

logger = logging.getLogger(__name__)

_DONE = object()


class _Failure:
    def __init__(self, exc: BaseException) -> None:
        self.exc = exc


class FragmentStream:
    """Readable byte stream over an iterator of text fragments.

    ``read(size)`` may split a fragment at any byte offset; the remainder is
    kept for the next read. Concatenating every read gives exactly the UTF-8
    encoding of the concatenated fragments.
    """

    def __init__(self, fragments: Iterable[str], chunk_size: int = 4096) -> None:
        self._fragments = iter(fragments)
        self._buffer = b""
        self._exhausted = False
        self._chunk_size = chunk_size

    def _pull(self) -> bool:
        while not self._exhausted:
            try:
                fragment = next(self._fragments)
            except StopIteration:
                self._exhausted = True
                return False
            if fragment:
                self._buffer += fragment.encode("utf-8")
                return True
        return False

    def eof(self) -> bool:
        if self._buffer:
            return False
        return not self._pull()

    def read(self, size: int = -1) -> bytes:
        if size is None or size < 0:
            while self._pull():
                pass
            out, self._buffer = self._buffer, b""
            return out
        if size == 0:
            return b""
        if not self._buffer and not self._pull():
            return b""
        out, self._buffer = self._buffer[:size], self._buffer[size:]
        return out

    def __iter__(self) -> Iterator[bytes]:
        while True:
            chunk = self.read(self._chunk_size)
            if not chunk:
                return
            yield chunk


def pump(fragments: Iterable[str], maxsize: int = 0, timeout: Optional[float] = None) -> Iterator[str]:
    """Run ``fragments`` in a worker thread and yield them in FIFO order.

    Exceptions raised by the producer are re-raised in the consumer. Closing
    the returned generator (e.g. when the client disconnects) tells the
    producer to stop pulling. With ``maxsize=0`` the queue is unbounded, so a
    slow consumer lets memory grow with the length of the output.
    """
    channel: "queue.Queue[object]" = queue.Queue(maxsize=maxsize)
    stop = threading.Event()

    def _put(item: object) -> bool:
        while not stop.is_set():
            try:
                channel.put(item, timeout=0.1)
                return True
            except queue.Full:
                continue
        return False

    def _produce() -> None:
        source = iter(fragments)
        try:
            for fragment in source:
                if stop.is_set() or not _put(fragment):
                    break
        except BaseException as exc:  # re-raised on the consumer side
            _put(_Failure(exc))
            return
        finally:
            close = getattr(source, "close", None)
            if close is not None:
                close()
        _put(_DONE)

    worker = threading.Thread(target=_produce, name="stream-pump", daemon=True)
    worker.start()
    try:
        while True:
            item = channel.get(timeout=timeout)
            if item is _DONE:
                return
            if isinstance(item, _Failure):
                raise item.exc
            yield item  # type: ignore[misc]
    finally:
        stop.set()
        if worker.is_alive():
            logger.debug("Stream consumer closed before producer finished")
