from __future__ import annotations

import queue
import threading
import time
from typing import Callable, List, Optional

import pytest


class FakeHandle:
    """DeviceHandle stand-in fed from a queue; None in the queue ends the stream."""

    def __init__(self, port: str = "fake0", chunks=(), *, open_error: Optional[BaseException] = None,
                 decoder_error: Optional[BaseException] = None, close_error: Optional[BaseException] = None,
                 cancel_error: Optional[BaseException] = None, open_gate: Optional[threading.Event] = None):
        self.port = port
        self.open_error = open_error
        self.decoder_error = decoder_error
        self.close_error = close_error
        self.cancel_error = cancel_error
        self.open_gate = open_gate
        self.open_calls: List[int] = []
        self.encodings: List[str] = []
        self.cancel_calls = 0
        self.close_calls = 0
        self.output_closed = 0
        self.written: List[bytes] = []
        self._queue: "queue.Queue" = queue.Queue()
        for chunk in chunks:
            self.push(chunk)

    def push(self, item) -> None:
        self._queue.put(item)

    def open(self, baudrate: int) -> None:
        self.open_calls.append(baudrate)
        if self.open_gate is not None:
            self.open_gate.wait(5.0)
        if self.open_error is not None:
            raise self.open_error

    def attach_decoder(self, encoding: str) -> None:
        self.encodings.append(encoding)
        if self.decoder_error is not None:
            raise self.decoder_error

    def read_chunk(self):
        item = self._queue.get()
        if isinstance(item, BaseException):
            raise item
        return item

    def cancel_read(self) -> None:
        self.cancel_calls += 1
        if self.cancel_error is not None:
            raise self.cancel_error
        self._queue.put(None)

    def write(self, data: bytes) -> int:
        self.written.append(data)
        return len(data)

    def close_output(self) -> None:
        self.output_closed += 1

    def close(self) -> None:
        self.close_calls += 1
        self._queue.put(None)
        if self.close_error is not None:
            raise self.close_error


class FakeTransport:
    """Hands out the given handles in order, then None."""

    def __init__(self, *handles: Optional[FakeHandle]):
        self._handles = list(handles)
        self.requests: List[Optional[str]] = []

    def request_device(self, port: Optional[str] = None) -> Optional[FakeHandle]:
        self.requests.append(port)
        if not self._handles:
            return None
        return self._handles.pop(0)


def wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


@pytest.fixture
def make_handle():
    return FakeHandle


@pytest.fixture
def make_transport():
    return FakeTransport


@pytest.fixture
def until():
    return wait_for
