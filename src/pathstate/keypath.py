"""Keypath parsing — dotted/bracketed path strings to segment tuples.

A keypath addresses a location in the state tree. Both `"a.b[0]"` and
`"a.b.0"` parse to `("a", "b", 0)` and normalize to `"a.b.0"`; the
normalized string is what the observer registry is keyed on.

Parsing is a pure function of the input string, so results are memoized
process-wide. Tests that need a cold cache call reset_cache().
"""

from __future__ import annotations

import re

Segment = str | int

_BRACKET = re.compile(r"\[([0-9]+)\]")
_INTEGER = re.compile(r"^(0|[1-9][0-9]*)$")

# Process-wide memo: input string -> parsed tuple / normalized string.
_parsed: dict[str, tuple[Segment, ...]] = {}
_normalized: dict[str, str] = {}


def _parse_segment(piece: str) -> list[Segment]:
    """Split `name[0][1]` into `["name", 0, 1]`. Stops at a malformed bracket."""
    index = piece.find("[")
    if index == -1:
        return [int(piece) if _INTEGER.match(piece) else piece]

    name = piece[:index]
    result: list[Segment] = [name]
    rest = piece[index:]
    while rest:
        match = _BRACKET.match(rest)
        if match is None:
            return result
        result.append(int(match.group(1)))
        rest = rest[match.end():]
    return result


def parse(path: str) -> tuple[Segment, ...]:
    """Turn `"foo.bar[0]"` into `("foo", "bar", 0)`."""
    try:
        return _parsed[path]
    except KeyError:
        pass
    segments: list[Segment] = []
    for piece in path.split("."):
        segments.extend(_parse_segment(piece))
    result = tuple(segments)
    _parsed[path] = result
    return result


def join(segments) -> str:
    return ".".join(str(s) for s in segments)


def normalize(path: str) -> str:
    """Canonical string form: `"foo[0].bar"` -> `"foo.0.bar"`."""
    try:
        return _normalized[path]
    except KeyError:
        result = join(parse(path))
        _normalized[path] = result
        return result


def ancestors(path: str) -> list[str]:
    """Canonical strict prefixes of path, nearest first.

    ancestors("a.b.c") == ["a.b", "a"]
    """
    segments = parse(path)
    return [join(segments[:i]) for i in range(len(segments) - 1, 0, -1)]


def reset_cache() -> None:
    """Forget all memoized keypaths."""
    _parsed.clear()
    _normalized.clear()


def cache_size() -> int:
    """Number of distinct input strings memoized by normalize()."""
    return len(_normalized)
