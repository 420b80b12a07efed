"""Materialized path helpers.

Paths are tuples of node ids internally. The dot-joined string form only
exists at the storage boundary (``serialize_path`` / ``parse_path``).
"""

from __future__ import annotations

from typing import Iterable, Sequence, Tuple

from content_graph.errors import ValidationError


PATH_SEPARATOR = "."


def validate_node_id(node_id: str) -> str:
    value = str(node_id or "").strip()
    if not value:
        raise ValidationError("Content id must be a non-empty string.")
    if PATH_SEPARATOR in value:
        raise ValidationError(f"Content id {value!r} must not contain {PATH_SEPARATOR!r}.")
    return value


def serialize_path(path: Sequence[str]) -> str:
    return PATH_SEPARATOR.join(path)


def parse_path(value: str) -> Tuple[str, ...]:
    return tuple(segment for segment in str(value or "").split(PATH_SEPARATOR) if segment)


def is_descendant_path(path: Sequence[str], ancestor_path: Sequence[str]) -> bool:
    """True when ``path`` sits strictly below ``ancestor_path``."""
    return len(path) > len(ancestor_path) and tuple(path[: len(ancestor_path)]) == tuple(ancestor_path)


def rebase_path(path: Sequence[str], old_prefix: Sequence[str], new_prefix: Sequence[str]) -> Tuple[str, ...]:
    """Replace ``old_prefix`` at the start of ``path`` with ``new_prefix``."""
    if tuple(path[: len(old_prefix)]) != tuple(old_prefix):
        raise ValueError(f"Path {serialize_path(path)} does not start with {serialize_path(old_prefix)}")
    return tuple(new_prefix) + tuple(path[len(old_prefix):])


def longest_common_prefix(paths: Iterable[Sequence[str]]) -> Tuple[str, ...]:
    iterator = iter(paths)
    try:
        prefix = tuple(next(iterator))
    except StopIteration:
        return ()
    for path in iterator:
        limit = min(len(prefix), len(path))
        index = 0
        while index < limit and prefix[index] == path[index]:
            index += 1
        prefix = prefix[:index]
        if not prefix:
            break
    return prefix
