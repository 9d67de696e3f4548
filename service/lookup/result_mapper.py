"""
Maps a decoded search response onto event field writes.

The mapper never touches the event itself. It returns a MappingOutcome with
the ordered (destination, value) writes so the caller can apply all of them
or none of them.

Collapsing rule for hit fields: one matched document stores the value
directly, several store an ordered list (one entry per hit, None where a
document lacks the field).
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from lookup.errors import BackendError
from lookup.paths import ABSENT, extract_value, parse_path


@dataclass
class MappingOutcome:
    total_hits: Optional[int] = None
    matched: bool = False
    writes: List[Tuple[str, Any]] = field(default_factory=list)


def extract_total_from_hits(hits: Mapping[str, Any]) -> Optional[int]:
    """Newer clusters report {"value": n, "relation": "eq"|"gte"}; older ones a bare int."""
    total = hits.get("total")
    if isinstance(total, Mapping):
        return total.get("value")
    return total


class ResultMapper:
    def __init__(
        self,
        fields: Optional[Dict[str, str]] = None,
        docinfo_fields: Optional[Dict[str, str]] = None,
        aggregation_fields: Optional[Dict[str, str]] = None,
    ):
        # Paths are parsed once; the mappings are static for the filter's lifetime.
        self.fields = [(parse_path(src), dest) for src, dest in (fields or {}).items()]
        self.docinfo_fields = [(parse_path(src), dest) for src, dest in (docinfo_fields or {}).items()]
        self.aggregation_fields = dict(aggregation_fields or {})

    def map(self, results: Any) -> MappingOutcome:
        if not isinstance(results, Mapping):
            raise BackendError(f"Malformed search response: expected an object, got {type(results).__name__}")

        shards = results.get("_shards")
        if isinstance(shards, Mapping) and "failures" in shards:
            raise BackendError(f"OpenSearch query error: {shards['failures']}")

        hits = results.get("hits")
        if not isinstance(hits, Mapping):
            raise BackendError("Malformed search response: missing 'hits'")
        documents = hits.get("hits") or []
        if not isinstance(documents, list):
            raise BackendError("Malformed search response: 'hits.hits' is not a list")

        outcome = MappingOutcome(total_hits=extract_total_from_hits(hits))

        if documents:
            outcome.matched = True
            for path, dest in self.fields:
                values = [self._extract(doc.get("_source"), path) for doc in self._documents(documents)]
                outcome.writes.append((dest, self._collapse(values)))
            for path, dest in self.docinfo_fields:
                values = [self._extract(doc, path) for doc in self._documents(documents)]
                outcome.writes.append((dest, self._collapse(values)))

        aggregations = results.get("aggregations")
        if aggregations:
            if not isinstance(aggregations, Mapping):
                raise BackendError("Malformed search response: 'aggregations' is not an object")
            outcome.matched = True
            for agg_name, dest in self.aggregation_fields.items():
                outcome.writes.append((dest, aggregations.get(agg_name)))

        return outcome

    @staticmethod
    def _documents(documents: List[Any]) -> List[Mapping[str, Any]]:
        for doc in documents:
            if not isinstance(doc, Mapping):
                raise BackendError(f"Malformed search response: hit is a {type(doc).__name__}")
        return documents

    @staticmethod
    def _extract(source: Any, path: List[str]) -> Any:
        value = extract_value(source, path)
        return None if value is ABSENT else value

    @staticmethod
    def _collapse(values: List[Any]) -> Any:
        return values if len(values) > 1 else values[0]
