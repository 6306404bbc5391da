"""Notification queue — de-duplicated callback delivery for batched writes.

While a batch is open, callbacks are queued instead of fired. Each
callback appears at most once: re-queueing it moves it to the back with
the newest value, keeping the previous value from before the batch.
Closing the outermost batch drains the queue.
"""

from __future__ import annotations

from typing import Callable


class _Entry:
    __slots__ = ("callback", "value", "previous")

    def __init__(self, callback: Callable, value, previous) -> None:
        self.callback = callback
        self.value = value
        self.previous = previous


class NotificationQueue:
    """FIFO of pending callbacks with nested batch depth."""

    def __init__(self, invoke: Callable[[Callable, object, object], None]) -> None:
        self._invoke = invoke
        self._entries: list[_Entry] = []
        self._depth = 0
        self.flushing = False

    @property
    def active(self) -> bool:
        return self._depth > 0

    def begin(self) -> None:
        """Enter a batch. Nested batches are supported."""
        self._depth += 1

    def end(self) -> None:
        """Exit a batch. The outermost exit flushes before closing.

        The batch stays open during the flush, so writes made by callbacks
        are queued and drained in the same flush.
        """
        if self._depth > 1:
            self._depth -= 1
            return
        try:
            self.flush()
        finally:
            self._depth = 0

    def enqueue(self, callback: Callable, value, previous) -> None:
        for i, entry in enumerate(self._entries):
            if entry.callback == callback:
                del self._entries[i]
                previous = entry.previous
                break
        self._entries.append(_Entry(callback, value, previous))

    def flush(self) -> None:
        """Invoke every queued callback once, in queue order.

        If a callback raises, the remaining entries are dropped and the
        exception propagates.
        """
        self.flushing = True
        try:
            while self._entries:
                entry = self._entries.pop(0)
                self._invoke(entry.callback, entry.value, entry.previous)
        except BaseException:
            self._entries.clear()
            raise
        finally:
            self.flushing = False

    def __len__(self) -> int:
        return len(self._entries)
