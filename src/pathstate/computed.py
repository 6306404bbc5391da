"""Computed values — keypaths derived from other keypaths.

A ComputedValue re-runs its function with the current values of its
trigger keypaths and writes the result back into the state at its own
id, through the ordinary State.set() path. It subscribes that recompute
to every trigger, one ObserverGroup per trigger.

Reentrancy is tracked with an explicit status instead of shared flags:

    IDLE         -> RECOMPUTING   trigger changed, or a lazy read
    RECOMPUTING  -> IDLE          the derived value is in the tree, before
                                  observers of id are notified
    IDLE         -> OVERRIDDEN    manual write (readonly=False only)
    OVERRIDDEN   -> RECOMPUTING   trigger changed

Only the single write made by recompute() is computation-driven; any
other write to id, including one made by an observer reacting to the
recompute, goes through the readonly check.

A recompute requested while the same computed's write is still being
propagated (a computed nested under its own trigger, or a loop through
other computeds) is deferred and re-run after that write. A chain that
keeps changing the value for MAX_RERUNS passes raises ComputedCycleError.
Inside a batch the requests are queued rather than nested, so the limit
applies to the runs of one computed within a single flush instead.
"""

from __future__ import annotations

import enum
import logging
from typing import TYPE_CHECKING, Callable

from pathstate.errors import ComputedCycleError, SelfTriggerError, UncachableComputedError
from pathstate.keypath import normalize

if TYPE_CHECKING:
    from pathstate.observers import ObserverGroup
    from pathstate.state import State

logger = logging.getLogger("pathstate.computed")

# Re-runs of one recompute before a still-changing chain counts as a cycle.
MAX_RERUNS = 100


class ComputedStatus(enum.Enum):
    IDLE = "idle"
    RECOMPUTING = "recomputing"
    OVERRIDDEN = "overridden"


def coerce_triggers(triggers) -> list[str]:
    """None -> [], "a" -> ["a"], anything iterable -> list. All normalized."""
    if not triggers:
        return []
    if isinstance(triggers, str):
        triggers = [triggers]
    return [normalize(t) for t in triggers]


class ComputedValue:
    """A keypath whose value is derived from its triggers."""

    __slots__ = ("id", "fn", "triggers", "cache", "readonly", "status", "groups", "_state", "_rerun_chain")

    def __init__(
        self,
        state: State,
        id: str,
        fn: Callable,
        triggers=None,
        *,
        cache: bool | None = None,
        readonly: bool = True,
    ) -> None:
        id = normalize(id)
        triggers = coerce_triggers(triggers)
        if id in triggers:
            raise SelfTriggerError(id)
        if cache is None:
            cache = bool(triggers)
        if cache and not triggers:
            raise UncachableComputedError(id)

        self._state = state
        self.id = id
        self.fn = fn
        self.triggers = triggers
        self.cache = cache
        self.readonly = readonly
        self.status = ComputedStatus.IDLE
        self.groups: list[ObserverGroup] = []
        self._rerun_chain: tuple[str, ...] | None = None

    @property
    def overridden(self) -> bool:
        return self.status is ComputedStatus.OVERRIDDEN

    @property
    def recomputing(self) -> bool:
        return self.status is ComputedStatus.RECOMPUTING

    def evaluate(self):
        """Call fn with the current value of every trigger."""
        return self.fn(*[self._state.get(t) for t in self.triggers])

    def recompute(self, *_) -> None:
        """Write a freshly evaluated value at id. Used as the trigger callback.

        A request arriving while this computed's own write is still being
        propagated is deferred and re-run once that write returns. Re-runs
        stop as soon as a write leaves the value unchanged.
        """
        state = self._state
        if self.id in state._recomputing:
            chain = tuple(state._recomputing)
            self._rerun_chain = chain[chain.index(self.id):]
            return
        if self.cache and state._queue.flushing:
            runs = state._flush_runs
            runs[self.id] += 1
            if runs[self.id] > MAX_RERUNS:
                raise ComputedCycleError(self.id, tuple(id for id, n in runs.items() if n > 1))

        state._recomputing.append(self.id)
        try:
            for _ in range(MAX_RERUNS):
                self._rerun_chain = None
                self.status = ComputedStatus.RECOMPUTING
                logger.debug("Recomputing %r", self.id)
                state.set(self.id, self.evaluate())
                if self._rerun_chain is None:
                    return
            raise ComputedCycleError(self.id, self._rerun_chain)
        finally:
            state._recomputing.pop()
            self._rerun_chain = None
            if self.status is ComputedStatus.RECOMPUTING:
                self.status = ComputedStatus.IDLE

    def derived_write(self) -> None:
        """Called by State.set() once recompute()'s value is in the tree.

        Observers notified after this point see an ordinary computed: their
        writes to id are manual writes.
        """
        self.status = ComputedStatus.IDLE

    def manual_write(self) -> None:
        """Called by State.set() for a write that did not come from recompute()."""
        self.status = ComputedStatus.OVERRIDDEN

    def attach(self) -> None:
        """Subscribe recompute() to every trigger."""
        for trigger in self.triggers:
            self.groups.append(self._state.observe(trigger, self.recompute))

    def dispose(self) -> None:
        """Unsubscribe from all triggers. The materialized value stays in the tree."""
        while self.groups:
            self._state.unobserve(self.groups.pop())

    def __repr__(self) -> str:
        return f"ComputedValue({self.id!r}, triggers={self.triggers!r}, {self.status.value})"
