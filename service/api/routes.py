import logging

from config import settings
from enrichment.event import Event
from enrichment.opensearch_lookup import OpenSearchLookupPlugin
from fastapi import APIRouter
from models import (
    BatchEnrichRequest,
    BatchEnrichResponse,
    EnrichRequest,
    EnrichResponse,
    HealthResponse,
    HealthStatus,
)
from pipeline import runner

router = APIRouter()
logger = logging.getLogger(__name__)


def _to_response(event: Event) -> EnrichResponse:
    return EnrichResponse(event=event.to_dict(), metadata=event.metadata)


def _is_failed(event: Event) -> bool:
    failure_tags = set(settings.tag_on_failure) | {runner.UNEXPECTED_FAILURE_TAG}
    return any(tag in failure_tags for tag in event.tags)


@router.post("/enrich", response_model=EnrichResponse)
def enrich(request: EnrichRequest):
    """
    Enriches a single event and returns it.

    Lookup failures are not HTTP errors: the event comes back with the
    configured failure tags, exactly as it would leave the pipeline.
    """
    return _to_response(runner.process_event(request.event))


@router.post("/enrich/batch", response_model=BatchEnrichResponse)
def enrich_batch(request: BatchEnrichRequest):
    """Enriches many events on the worker pool; output order matches input order."""
    events = runner.run_batch(request.events)
    return BatchEnrichResponse(
        total=len(events),
        failed=sum(1 for event in events if _is_failed(event)),
        results=[_to_response(event) for event in events],
    )


@router.get("/health", response_model=HealthResponse)
def health():
    """
    Pings the lookup backend.

    Status semantics:
      ok       : lookup plugin registered and OpenSearch answers ping
      degraded : plugin registered but OpenSearch is not answering
      down     : no lookup plugin is active
    """
    plugin = next(
        (p for p in runner.active_plugins() if isinstance(p, OpenSearchLookupPlugin)),
        None,
    )
    if plugin is None:
        return HealthResponse(status=HealthStatus.down, backend_reachable=False, hosts=[], index=settings.index)

    reachable = plugin.ping()
    return HealthResponse(
        status=HealthStatus.ok if reachable else HealthStatus.degraded,
        backend_reachable=reachable,
        hosts=plugin.connection.hosts,
        index=plugin.settings.index,
        query_mode=plugin.query_builder.mode,
        clients=len(plugin.registry),
    )
