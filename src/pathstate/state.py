"""State — a nested data tree addressed by keypaths, with observers.

    state = State({"user": {"name": "Ada"}})
    state.observe("user.name", lambda new, old: print(old, "->", new))
    state.set("user", {"name": "Grace"})    # prints: Ada -> Grace

Writes notify observers of the written keypath, of its descendants
(observing `user.name` sees a write to `user`, if the name changed) and
of its ancestors (observing `user` sees a write to `user.name`).

Batching: set_many() and `with state.batch()` queue notifications and
deliver each callback once, after all writes have been applied.

Values handed in and out are copied at the dict/list level, so the tree
is never aliased by callers.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Mapping
from contextlib import contextmanager
from typing import Callable, Iterable

from pathstate._queue import NotificationQueue
from pathstate._tree import MISSING, copy_tree, get_in, is_equal, is_numeric, set_in
from pathstate.computed import ComputedStatus, ComputedValue
from pathstate.errors import ComputedCycleError, ReadonlyViolationError
from pathstate.keypath import ancestors, normalize, parse
from pathstate.observers import Callback, ObserverGroup, ObserverRecord, ObserverRegistry

logger = logging.getLogger("pathstate.state")


def _pairs(items) -> Iterable:
    return items.items() if isinstance(items, Mapping) else items


class State:
    """Keypath-addressed reactive state container.

    isolate_errors: when True, an observer callback that raises is logged
    and delivery to the remaining observers continues. By default the
    exception propagates to the caller of set() and the rest of the
    current batch is dropped. Cyclic computed values always propagate.
    """

    def __init__(self, data: Mapping | None = None, *, isolate_errors: bool = False) -> None:
        if data is not None and not isinstance(data, Mapping):
            raise TypeError(f"State data must be a mapping, not {type(data).__name__}")
        self._data: dict = copy_tree(data) if data else {}
        self._observers = ObserverRegistry()
        self._computed: dict[str, ComputedValue] = {}
        self._queue = NotificationQueue(self._invoke)
        self._recomputing: list[str] = []
        self._flush_runs: Counter[str] = Counter()
        self.isolate_errors = isolate_errors

    # --- Reading ---

    def get(self, keypath: str):
        """Value at keypath, or None if any step along the way is missing.

        A non-cached computed value is re-derived on every read unless it
        has been overridden manually.
        """
        if not keypath:
            return None
        keypath = normalize(keypath)
        computed = self._computed.get(keypath)
        if (
            computed is not None
            and not computed.cache
            and computed.status is ComputedStatus.IDLE
            and keypath not in self._recomputing
        ):
            computed.recompute()
        return self._read(keypath)

    def _read(self, keypath: str):
        value = get_in(self._data, parse(keypath))
        return None if value is MISSING else copy_tree(value)

    def to_dict(self) -> dict:
        """A copy of the whole tree."""
        return copy_tree(self._data)

    # --- Writing ---

    def set(self, keypath: str, value, silent: bool = False, force: bool = False) -> State:
        """Write value at keypath, creating branches as needed.

        Observers are notified if the value changed, unless silent. force
        notifies even when nothing changed (ignored if silent).
        """
        keypath = normalize(keypath)
        if not keypath:
            raise ValueError("set() needs a non-empty keypath")

        computed = self._computed.get(keypath)
        derived = computed is not None and computed.recomputing
        if computed is not None and not derived and computed.readonly:
            raise ReadonlyViolationError(keypath)

        segments = parse(keypath)
        previous = get_in(self._data, segments)
        if previous is MISSING:
            previous = None
        set_in(self._data, segments, copy_tree(value))

        if derived:
            computed.derived_write()
        elif computed is not None:
            computed.manual_write()

        if not silent and (force or not is_equal(previous, value)):
            self._notify_observers(keypath, value, force)
        return self

    def set_many(self, items, silent: bool = False) -> State:
        """Apply several writes as one batch.

        items is a mapping or an iterable of (keypath, value) pairs, applied
        in order. Each observer is notified at most once, after all writes.
        """
        with self.batch():
            for keypath, value in _pairs(items):
                self.set(keypath, value, silent)
        return self

    def add(self, keypath: str, delta=1) -> None:
        """Increment a numeric value. Does nothing unless both are numbers."""
        value = self.get(keypath)
        if is_numeric(value) and is_numeric(delta):
            self.set(keypath, value + delta)

    @contextmanager
    def batch(self):
        """Context manager: queue notifications until the outermost batch exits.

        Usage:
            with state.batch():
                state.set("x", 1)
                state.set("y", 2)
            # observers fire here, once each
        """
        self._queue.begin()
        try:
            yield self
        finally:
            self._queue.end()
            if not self._queue.active:
                self._flush_runs.clear()

    # --- Observing ---

    def observe(self, keypath: str, callback: Callback, init: bool = False) -> ObserverGroup:
        """Call callback(new, previous) whenever the value at keypath changes.

        Returns the ObserverGroup to pass to unobserve() (or to cancel()).
        With init=True the callback also runs immediately with the current
        value and a previous value of None.
        """
        if not keypath:
            raise ValueError("observe() needs a non-empty keypath")
        original = normalize(keypath)
        group = ObserverGroup(original, callback, self._observers)
        self._observers.register(original, group)
        for ancestor in ancestors(original):
            self._observers.register(ancestor, group)

        if init:
            self._invoke(callback, self.get(original), None)
        group.previous = self.get(original)
        return group

    def observe_many(self, items, init: bool = False) -> list[ObserverGroup]:
        """observe() each (keypath, callback) of a mapping or iterable of pairs."""
        return [self.observe(keypath, callback, init) for keypath, callback in _pairs(items)]

    def observe_once(self, keypath: str, callback: Callback) -> State:
        """Like observe(), but stops observing after the first notification."""

        def once(value, previous):
            try:
                callback(value, previous)
            finally:
                self.unobserve(group)

        group = self.observe(keypath, once)
        return self

    def unobserve(self, handle) -> None:
        """Remove a record, a group, or any iterable of them. Idempotent."""
        if isinstance(handle, ObserverRecord):
            self._observers.remove(handle)
            return
        if isinstance(handle, str):
            raise TypeError("unobserve() takes observer handles; use unobserve_keypath() for keypaths")
        for item in list(handle):
            self.unobserve(item)

    def unobserve_keypath(self, keypath: str) -> None:
        """Remove every observer registered for keypath (in any spelling)."""
        keypath = normalize(keypath)
        for group in self._observers.groups():
            if group.keypath == keypath:
                group.cancel()

    def unobserve_all(self) -> None:
        """Remove every observer, including those feeding computed values."""
        self._observers.clear()

    # --- Computed values ---

    def compute(
        self,
        id: str,
        fn: Callable,
        triggers=None,
        *,
        trigger=None,
        cache: bool | None = None,
        readonly: bool = True,
    ):
        """Declare id as derived from triggers. Returns the initial value.

        fn receives the current value of each trigger, in order. With cache
        (the default when there are triggers) the value is written into the
        tree whenever a trigger changes; without it, every get() re-derives.
        A readonly computed rejects manual writes; otherwise a manual write
        sticks until the next trigger change.

        Usage:
            state.set_many({"x": 1, "y": 2})
            state.compute("sum", lambda x, y: x + y, ["x", "y"])
            state.get("sum")   # 3
        """
        if triggers is None:
            triggers = trigger
        computed = ComputedValue(self, id, fn, triggers, cache=cache, readonly=readonly)
        if computed.id in self._computed:
            self.remove_computed_value(computed.id)

        self._computed[computed.id] = computed
        try:
            computed.recompute()
        except BaseException:
            del self._computed[computed.id]
            raise
        computed.attach()
        logger.debug(
            "Computed %r registered (triggers=%r, cache=%s, readonly=%s)",
            computed.id, computed.triggers, computed.cache, computed.readonly,
        )
        return self._read(computed.id)

    def compute_many(self, items) -> dict:
        """compute() each (id, options) of a mapping or iterable of pairs.

        options is a mapping of compute() keyword arguments, e.g.
        {"fn": ..., "triggers": [...]}.
        """
        return {id: self.compute(id, **options) for id, options in _pairs(items)}

    def remove_computed_value(self, id: str) -> None:
        """Stop deriving id. Its last value stays in the tree."""
        computed = self._computed.pop(normalize(id), None)
        if computed is None:
            return
        computed.dispose()
        logger.debug("Computed %r removed", computed.id)

    def is_computed(self, keypath: str) -> bool:
        return normalize(keypath) in self._computed

    def computed_ids(self) -> list[str]:
        return list(self._computed)

    # --- Propagation ---

    def _notify_observers(self, keypath: str, value, force: bool) -> None:
        # Observers of keypath itself, and of its descendants (registered
        # here through their ancestor records).
        for record in self._observers.records_at(keypath):
            if not record.active:
                continue
            group = record.group
            previous = group.previous
            if record.original == keypath:
                actual = value
            else:
                actual = self.get(record.original)
            group.previous = actual
            if not force and is_equal(actual, previous):
                continue
            self._dispatch(record.callback, actual, previous)

        # Observers of ancestors. A container whose contents changed is
        # always considered changed.
        for ancestor in ancestors(keypath):
            records = [r for r in self._observers.records_at(ancestor) if r.is_direct]
            for record in reversed(records):
                if not record.active:
                    continue
                current = self.get(ancestor)
                record.group.previous = current
                self._dispatch(record.callback, current, current)

    def _dispatch(self, callback: Callable, value, previous) -> None:
        if self._queue.active:
            self._queue.enqueue(callback, value, previous)
        else:
            self._invoke(callback, value, previous)

    def _invoke(self, callback: Callable, value, previous) -> None:
        if not self.isolate_errors:
            callback(value, previous)
            return
        try:
            callback(value, previous)
        except ComputedCycleError:
            raise
        except Exception:
            logger.exception("Observer callback %r failed", callback)

    def __repr__(self) -> str:
        return f"State(keys={list(self._data)!r}, observers={len(self._observers)}, computed={len(self._computed)})"
