"""Nested tree access — deep get/set over plain dicts and lists.

The state tree is made of dicts (mappings) and lists (sequences). These
helpers walk it by parsed keypath segments. Reads never raise; writes
create missing branches, choosing a list when the next segment is an
integer and a dict otherwise.
"""

from __future__ import annotations

from collections.abc import Mapping, MutableMapping, MutableSequence, Sequence
from numbers import Real

from pathstate.errors import PathConflictError
from pathstate.keypath import Segment, join

MISSING = object()


def is_structured(value) -> bool:
    return isinstance(value, (Mapping, Sequence)) and not isinstance(value, (str, bytes, bytearray))


def is_equal(a, b) -> bool:
    """Change-detection equality.

    Structured values always count as changed, even against themselves:
    their contents may have been mutated in place and a deep comparison is
    not worth the cost.
    """
    if a is None and b is None:
        return True
    if is_structured(a) or is_structured(b):
        return False
    return a == b


def is_numeric(value) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


def copy_tree(value):
    """Copy the dict/list structure of value. Leaves are shared."""
    if isinstance(value, Mapping):
        return {k: copy_tree(v) for k, v in value.items()}
    if isinstance(value, list):
        return [copy_tree(v) for v in value]
    return value


def _index(segment: Segment) -> int | None:
    if isinstance(segment, int):
        return segment
    if segment.isascii() and segment.isdigit():
        return int(segment)
    return None


def _mapping_key(node: Mapping, segment: Segment):
    if isinstance(segment, int) and segment in node:
        return segment
    return str(segment)


def _is_container(value) -> bool:
    return isinstance(value, (MutableMapping, MutableSequence)) and not isinstance(value, bytearray)


def _child(node, segment: Segment):
    """One step down the tree. Returns MISSING instead of raising."""
    if isinstance(node, Mapping):
        return node.get(_mapping_key(node, segment), MISSING)
    if is_structured(node):
        index = _index(segment)
        if index is None or index >= len(node):
            return MISSING
        return node[index]
    return MISSING


def get_in(root, segments: tuple[Segment, ...]):
    """Value at segments, or MISSING."""
    node = root
    for segment in segments:
        node = _child(node, segment)
        if node is MISSING:
            return MISSING
    return node


def _assign(node, segment: Segment, value, segments: tuple[Segment, ...], position: int) -> None:
    if isinstance(node, MutableMapping):
        node[_mapping_key(node, segment)] = value
        return
    index = _index(segment)
    if index is None:
        raise PathConflictError(
            join(segments), join(segments[:position]), f"is a list, and {segment!r} is not an index"
        )
    if index < len(node):
        node[index] = value
    else:
        node.extend([None] * (index - len(node)))
        node.append(value)


def _new_branch(next_segment: Segment):
    return [] if _index(next_segment) is not None else {}


def set_in(root, segments: tuple[Segment, ...], value) -> None:
    """Assign value at segments, creating intermediate branches.

    A missing (or None) intermediate node becomes a list if the segment
    after it is an integer, otherwise a dict. Stepping through any other
    non-container, or naming a list item by anything but an index, raises
    PathConflictError before anything is mutated.
    """
    node = root
    for position, segment in enumerate(segments[:-1]):
        child = _child(node, segment)
        if child is MISSING or child is None:
            child = _new_branch(segments[position + 1])
            _assign(node, segment, child, segments, position)
        elif not _is_container(child):
            raise PathConflictError(join(segments), join(segments[: position + 1]))
        node = child
    _assign(node, segments[-1], value, segments, len(segments) - 1)
