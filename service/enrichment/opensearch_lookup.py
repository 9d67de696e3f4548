"""
OpenSearch lookup enrichment plugin.

For each event:
  1. build:   index name and query from the event (string or template mode)
  2. execute: on this worker's own client from the ClientRegistry
  3. map:     copy _source fields, docinfo fields and aggregations
  4. finalize
       success: apply every write, set [@metadata][total_hits], and run the
                matched decorations (add_tag/add_field/...) once if anything
                matched
       failure: add every tag_on_failure tag and nothing else

Per-event failures are logged and tagged, never raised: the pipeline must
keep flowing even when the backend is down. Configuration problems are the
opposite and surface from register() as ConfigurationError.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Union

from config import Settings
from enrichment.base import EnrichmentPlugin
from enrichment.event import METADATA_KEY, Event
from lookup.client import SearchClient
from lookup.client_registry import ClientRegistry
from lookup.connection import ConnectionOptions, resolve_connection
from lookup.errors import BackendError, ConfigurationError, QueryBuildError
from lookup.paths import parse_path
from lookup.query_builder import QueryBuilder
from lookup.result_mapper import MappingOutcome, ResultMapper
from models import SearchRequest

logger = logging.getLogger(__name__)

TOTAL_HITS_FIELD = "[@metadata][total_hits]"


@dataclass
class LookupSuccess:
    outcome: MappingOutcome


@dataclass
class LookupFailure:
    error: Union[QueryBuildError, BackendError]
    request: Optional[SearchRequest] = None


LookupResult = Union[LookupSuccess, LookupFailure]


def validate_destinations(cfg: Settings) -> None:
    """Reject mapping destinations an event cannot hold, so writes never fail halfway."""
    destinations = [
        *cfg.fields.values(),
        *cfg.docinfo_fields.values(),
        *cfg.aggregation_fields.values(),
    ]
    for dest in destinations:
        path = parse_path(dest)
        if not dest or path == [METADATA_KEY] or path[0] == "":
            raise ConfigurationError(f"Invalid destination field {dest!r}: it must name a field inside the event")


class OpenSearchLookupPlugin(EnrichmentPlugin):
    def __init__(
        self,
        cfg: Settings,
        client_factory: Callable[[ConnectionOptions], SearchClient] = SearchClient,
    ):
        self.settings = cfg
        self._client_factory = client_factory
        self.connection: Optional[ConnectionOptions] = None
        self.query_builder: Optional[QueryBuilder] = None
        self.result_mapper: Optional[ResultMapper] = None
        self.registry: Optional[ClientRegistry] = None

    # ── lifecycle ─────────────────────────────────────────────────────────────

    def register(self) -> None:
        cfg = self.settings
        self.connection = resolve_connection(cfg)
        self.query_builder = QueryBuilder.from_settings(cfg)
        validate_destinations(cfg)
        self.result_mapper = ResultMapper(cfg.fields, cfg.docinfo_fields, cfg.aggregation_fields)
        self.registry = ClientRegistry(lambda: self._client_factory(self.connection))
        self._test_connection()
        logger.info(
            "OpenSearch lookup registered (hosts=%s, index=%r, mode=%s)",
            self.connection.hosts,
            cfg.index,
            self.query_builder.mode,
        )

    def _test_connection(self) -> None:
        if not self.registry.get_or_create().ping():
            raise ConfigurationError(f"Cannot reach OpenSearch at {self.connection.hosts}: ping failed")

    def ping(self) -> bool:
        if self.registry is None:
            return False
        return self.registry.get_or_create().ping()

    def close(self) -> None:
        if self.registry is not None:
            self.registry.close()

    # ── per event ─────────────────────────────────────────────────────────────

    def enrich(self, event: Event) -> Event:
        result = self._lookup(event)
        if isinstance(result, LookupSuccess):
            self._apply(event, result.outcome)
        elif isinstance(result, LookupFailure):
            self._on_failure(event, result)
        return event

    def _lookup(self, event: Event) -> LookupResult:
        request = None
        try:
            request = self.query_builder.build(event)
            logger.debug("Querying OpenSearch for lookup: %s", request.model_dump())
            results = self._client().search(request)
            return LookupSuccess(self.result_mapper.map(results))
        except (QueryBuildError, BackendError) as exc:
            return LookupFailure(exc, request)

    def _client(self) -> SearchClient:
        """This worker's client. A failure to build it is a failed lookup for this event."""
        try:
            return self.registry.get_or_create()
        except ConfigurationError as exc:
            raise BackendError(f"Cannot create OpenSearch client: {exc}") from exc

    def _apply(self, event: Event, outcome: MappingOutcome) -> None:
        event.set(TOTAL_HITS_FIELD, outcome.total_hits)
        for dest, value in outcome.writes:
            event.set(dest, value)
        if outcome.matched:
            self._filter_matched(event)

    def _filter_matched(self, event: Event) -> None:
        """Decorations applied once when the lookup found something."""
        cfg = self.settings
        for name, value in cfg.add_field.items():
            event.set(event.sprintf(name), event.sprintf(value))
        for field in cfg.remove_field:
            event.remove(event.sprintf(field))
        for tag in cfg.add_tag:
            event.tag(event.sprintf(tag))
        if cfg.remove_tag:
            dropped = {event.sprintf(tag) for tag in cfg.remove_tag}
            event.set("tags", [tag for tag in event.tags if tag not in dropped])

    def _on_failure(self, event: Event, failure: LookupFailure) -> None:
        index = self.settings.index
        if logger.isEnabledFor(logging.DEBUG):
            query = failure.request.query.model_dump() if failure.request else self.query_builder.raw_input
            logger.warning(
                "Failed to query OpenSearch for lookup (index=%r, query=%s, event=%s): %s",
                index,
                query,
                event.to_dict(),
                failure.error,
                exc_info=failure.error,
            )
        elif logger.isEnabledFor(logging.INFO):
            logger.warning("Failed to query OpenSearch for lookup (index=%r): %s", index, failure.error, exc_info=failure.error)
        else:
            logger.warning("Failed to query OpenSearch for lookup (index=%r): %s", index, failure.error)

        for tag in self.settings.tag_on_failure:
            event.tag(tag)
