"""
Field-path helpers for reading values out of search responses.

Paths use the pipeline's bracket syntax: "[a][b][c]" walks three levels,
while a bare name like "host" is a single top-level key.
"""

from typing import Any, List, Mapping


class _Absent:
    """Marker for a path that does not exist (as opposed to a stored None)."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ABSENT"

    def __bool__(self) -> bool:
        return False


ABSENT = _Absent()


def parse_path(path_ref: str) -> List[str]:
    """Split "[a][b]" into ["a", "b"]; anything else is a single segment."""
    if not (path_ref.startswith("[") and path_ref.endswith("]")):
        return [path_ref]
    return path_ref[1:-1].split("][")


def extract_value(source: Any, path: List[str]) -> Any:
    """Return the value at `path` inside `source`, or ABSENT if any step is missing."""
    current = source
    for segment in path:
        if not isinstance(current, Mapping) or segment not in current:
            return ABSENT
        current = current[segment]
    return current


def to_source_field(path_ref: str) -> str:
    """Dotted field name for a `_source` filter, e.g. "[geo][city]" -> "geo.city"."""
    return ".".join(parse_path(path_ref))
