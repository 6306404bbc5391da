"""Errors raised by pathstate.

Every error carries the offending keypath so callers can report or
recover without parsing messages.
"""

from __future__ import annotations


class PathStateError(Exception):
    """Base class for all pathstate errors."""

    def __init__(self, keypath: str, message: str) -> None:
        super().__init__(message)
        self.keypath = keypath


class ReadonlyViolationError(PathStateError):
    """A readonly computed value was written manually."""

    def __init__(self, keypath: str) -> None:
        super().__init__(
            keypath,
            f"The computed value {keypath!r} is readonly and cannot be changed manually",
        )


class InvalidComputedConfigError(PathStateError):
    """A computed value was declared with an impossible configuration."""


class SelfTriggerError(InvalidComputedConfigError):
    def __init__(self, keypath: str) -> None:
        super().__init__(keypath, f"The computed value {keypath!r} cannot be its own trigger")


class UncachableComputedError(InvalidComputedConfigError):
    def __init__(self, keypath: str) -> None:
        super().__init__(
            keypath,
            f"The computed value {keypath!r} is cached but has no triggers, so it would never change",
        )


class ComputedCycleError(PathStateError):
    """A computed value was asked to recompute while already recomputing."""

    def __init__(self, keypath: str, chain: tuple[str, ...]) -> None:
        super().__init__(
            keypath,
            f"Cyclic computed dependency: {' -> '.join(chain + (keypath,))}",
        )
        self.chain = chain


class PathConflictError(PathStateError, TypeError):
    """A write tried to go through a non-container value, or through a list by name."""

    def __init__(self, keypath: str, segment, reason: str = "holds a value that is not a mapping or list") -> None:
        super().__init__(keypath, f"Cannot set {keypath!r}: {segment!r} {reason}")
        self.segment = segment
