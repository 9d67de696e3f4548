"""
Pipeline event record.

Events are plain nested dicts addressed with the bracket field-path syntax
("[user][name]" or a bare top-level name). Anything stored under
"[@metadata]" travels with the event but is not part of its serialized body.

sprintf() interpolates "%{field}" references against the event's own
fields. A reference to a missing field is left in the output verbatim, the
same way the upstream pipeline renders it.
"""

import json
import re
from typing import Any, Dict, List, Optional

from lookup.paths import ABSENT, extract_value, parse_path

METADATA_KEY = "@metadata"
TAGS_FIELD = "tags"

_REFERENCE = re.compile(r"%\{([^}]+)\}")


class Event:
    def __init__(self, data: Optional[Dict[str, Any]] = None, metadata: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Any] = dict(data or {})
        self._metadata: Dict[str, Any] = dict(self._data.pop(METADATA_KEY, None) or {})
        self._metadata.update(metadata or {})

    def _root_for(self, path: List[str]) -> tuple[Dict[str, Any], List[str]]:
        if path and path[0] == METADATA_KEY:
            return self._metadata, path[1:]
        return self._data, path

    def get(self, field: str, default: Any = None) -> Any:
        root, path = self._root_for(parse_path(field))
        if not path:
            return root
        value = extract_value(root, path)
        return default if value is ABSENT else value

    def includes(self, field: str) -> bool:
        root, path = self._root_for(parse_path(field))
        return not path or extract_value(root, path) is not ABSENT

    def set(self, field: str, value: Any) -> None:
        """Set a value, creating intermediate dicts along the way."""
        root, path = self._root_for(parse_path(field))
        if not path:
            raise ValueError(f"Cannot replace the event root via {field!r}")
        container = root
        for segment in path[:-1]:
            child = container.get(segment)
            if not isinstance(child, dict):
                child = {}
                container[segment] = child
            container = child
        container[path[-1]] = value

    def remove(self, field: str) -> Any:
        root, path = self._root_for(parse_path(field))
        if not path:
            return None
        parent = extract_value(root, path[:-1])
        if not isinstance(parent, dict):
            return None
        return parent.pop(path[-1], None)

    def sprintf(self, template: str) -> str:
        """Render "%{field}" references. Raises TypeError for a non-string template."""
        if not isinstance(template, str):
            raise TypeError(f"Cannot interpolate a {type(template).__name__}, expected str")
        if "%{" not in template:
            return template
        return _REFERENCE.sub(self._render_reference, template)

    def _render_reference(self, match: "re.Match[str]") -> str:
        field = match.group(1)
        root, path = self._root_for(parse_path(field))
        value = extract_value(root, path) if path else root
        if value is ABSENT:
            return match.group(0)
        if isinstance(value, (dict, list)):
            return json.dumps(value, separators=(",", ":"), default=str)
        if value is None:
            return ""
        if isinstance(value, bool):
            return "true" if value else "false"
        return str(value)

    def tag(self, name: str) -> None:
        """Append a tag once; existing tags are never duplicated."""
        tags = self._data.get(TAGS_FIELD)
        if tags is None:
            tags = []
        elif not isinstance(tags, list):
            tags = [tags]
        if name not in tags:
            tags.append(name)
        self._data[TAGS_FIELD] = tags

    @property
    def tags(self) -> List[str]:
        tags = self._data.get(TAGS_FIELD) or []
        return list(tags) if isinstance(tags, list) else [tags]

    @property
    def metadata(self) -> Dict[str, Any]:
        return self._metadata

    def to_dict(self) -> Dict[str, Any]:
        return self._data

    def __repr__(self) -> str:
        return f"Event({self._data!r})"
