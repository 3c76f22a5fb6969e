"""In-memory live preview of the chapter currently being written."""

import threading


class LivePreview:
    """Single writer (the active step), many readers.

    Not durable: a process restart loses the buffer, which is fine because
    the chapter itself is regenerated or already persisted.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._buffers: dict[int, list[str]] = {}

    def start(self, book_id: int) -> None:
        with self._lock:
            self._buffers[book_id] = []

    def append(self, book_id: int, text: str) -> None:
        with self._lock:
            self._buffers.setdefault(book_id, []).append(text)

    def get(self, book_id: int) -> str:
        with self._lock:
            return "".join(self._buffers.get(book_id, ()))

    def clear(self, book_id: int) -> None:
        with self._lock:
            self._buffers.pop(book_id, None)
