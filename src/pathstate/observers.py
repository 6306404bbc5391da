"""Observer records, groups and the registry that indexes them by keypath.

One observe() call on `a.b.c` produces one ObserverGroup holding three
ObserverRecords, registered under `a.b.c`, `a.b` and `a`. The extra
records let a write to an ancestor find its descendant subscribers.
"""

from __future__ import annotations

from typing import Callable, Iterator

Callback = Callable[[object, object], None]


class ObserverRecord:
    """A callback registered at one keypath on behalf of an original keypath."""

    __slots__ = ("observed", "original", "callback", "group", "active")

    def __init__(self, observed: str, original: str, callback: Callback, group: ObserverGroup) -> None:
        self.observed = observed
        self.original = original
        self.callback = callback
        self.group = group
        self.active = False

    @property
    def is_direct(self) -> bool:
        """True for the record registered at the keypath the subscriber asked for."""
        return self.observed == self.original

    def __repr__(self) -> str:
        state = "active" if self.active else "removed"
        return f"ObserverRecord({self.observed!r} for {self.original!r}, {state})"


class ObserverGroup:
    """All records created by one observe() call.

    Tracks the last value seen at the original keypath, used to skip
    unchanged notifications and to pass the previous value to callbacks.
    """

    __slots__ = ("keypath", "callback", "previous", "_records", "_registry")

    def __init__(self, keypath: str, callback: Callback, registry: ObserverRegistry) -> None:
        self.keypath = keypath
        self.callback = callback
        self.previous = None
        self._records: list[ObserverRecord] = []
        self._registry = registry

    def _add(self, record: ObserverRecord) -> None:
        self._records.append(record)

    @property
    def active(self) -> bool:
        return any(r.active for r in self._records)

    def cancel(self) -> None:
        """Remove every record of this group. Safe to call twice."""
        self._registry.remove_all(self._records)

    def __iter__(self) -> Iterator[ObserverRecord]:
        return iter(list(self._records))

    def __len__(self) -> int:
        return len(self._records)

    def __repr__(self) -> str:
        state = "active" if self.active else "cancelled"
        return f"ObserverGroup({self.keypath!r}, {len(self._records)} records, {state})"


class ObserverRegistry:
    """Normalized keypath -> records registered exactly at that keypath."""

    def __init__(self) -> None:
        self._buckets: dict[str, list[ObserverRecord]] = {}

    def register(self, observed: str, group: ObserverGroup) -> ObserverRecord:
        record = ObserverRecord(observed, group.keypath, group.callback, group)
        self._buckets.setdefault(observed, []).append(record)
        record.active = True
        group._add(record)
        return record

    def remove(self, record: ObserverRecord) -> None:
        """Unregister one record. No-op if it is already gone."""
        bucket = self._buckets.get(record.observed)
        record.active = False
        if not bucket:
            return
        try:
            bucket.remove(record)
        except ValueError:
            return
        if not bucket:
            del self._buckets[record.observed]

    def remove_all(self, records) -> None:
        for record in list(records):
            self.remove(record)

    def records_at(self, keypath: str) -> list[ObserverRecord]:
        """Snapshot of the records at keypath, in registration order."""
        return list(self._buckets.get(keypath, ()))

    def groups(self) -> list[ObserverGroup]:
        """Distinct groups with at least one registered record."""
        seen: dict[int, ObserverGroup] = {}
        for bucket in self._buckets.values():
            for record in bucket:
                seen.setdefault(id(record.group), record.group)
        return list(seen.values())

    def clear(self) -> None:
        for bucket in self._buckets.values():
            for record in bucket:
                record.active = False
        self._buckets.clear()

    def __contains__(self, keypath: str) -> bool:
        return keypath in self._buckets

    def __len__(self) -> int:
        return sum(len(b) for b in self._buckets.values())
