"""pathstate: a keypath-addressed reactive state container."""

from importlib.metadata import version as _version

__version__ = _version("pathstate")

from pathstate.keypath import normalize, parse
from pathstate.observers import ObserverGroup, ObserverRecord
from pathstate.computed import ComputedStatus, ComputedValue
from pathstate.state import State
from pathstate.errors import (
    ComputedCycleError,
    InvalidComputedConfigError,
    PathConflictError,
    PathStateError,
    ReadonlyViolationError,
    SelfTriggerError,
    UncachableComputedError,
)
# textual NOT auto-imported — opt-in only

__all__ = [
    "State",
    "ObserverGroup",
    "ObserverRecord",
    "ComputedValue",
    "ComputedStatus",
    "normalize",
    "parse",
    "PathStateError",
    "ReadonlyViolationError",
    "InvalidComputedConfigError",
    "SelfTriggerError",
    "UncachableComputedError",
    "ComputedCycleError",
    "PathConflictError",
]
