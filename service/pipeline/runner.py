"""
Enrichment pipeline: raw event → plugins in order → enriched event.

Knows nothing about the HTTP layer, so it can be driven from:
  - POST /enrich and POST /enrich/batch
  - Tests (directly)

Concurrency:
  init_pipeline() starts one long-lived pool of `workers` threads, so worker
  identities (and the per-worker search clients keyed on them) stay stable for
  the pipeline's lifetime. A batch is split round-robin into disjoint slices;
  each slice is one task on the pool and processes its events strictly one at
  a time, so a worker never has two lookups in flight. Results come back in
  input order.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional, Sequence

from enrichment.base import EnrichmentPlugin
from enrichment.event import Event

logger = logging.getLogger(__name__)

UNEXPECTED_FAILURE_TAG = "_enrichment_error"

# Plugins run in order; populated once on startup by init_pipeline()
_PLUGINS: List[EnrichmentPlugin] = []

_executor: Optional[ThreadPoolExecutor] = None
_workers: int = 1


def init_pipeline(plugins: Sequence[EnrichmentPlugin], workers: int = 1) -> None:
    """Register every plugin, then make them active. A ConfigurationError aborts startup."""
    global _executor, _workers
    for plugin in plugins:
        plugin.register()
    _PLUGINS[:] = plugins
    _workers = max(1, workers)
    _executor = ThreadPoolExecutor(max_workers=_workers, thread_name_prefix="enrich-worker")
    logger.info(
        "Pipeline ready with %d plugin(s) on %d worker(s): %s",
        len(plugins),
        _workers,
        [type(p).__name__ for p in plugins],
    )


def shutdown_pipeline() -> None:
    global _executor
    if _executor is not None:
        _executor.shutdown(wait=True)
        _executor = None
    for plugin in _PLUGINS:
        plugin.close()
    _PLUGINS.clear()


def active_plugins() -> List[EnrichmentPlugin]:
    return list(_PLUGINS)


def process_event(raw: Dict[str, Any], plugins: Optional[Sequence[EnrichmentPlugin]] = None) -> Event:
    """
    Run one event through every plugin.

    Never raises: plugins already tag their own per-event failures; anything
    else escaping a plugin is logged and tagged so the event still passes through.
    """
    event = raw if isinstance(raw, Event) else Event(raw)
    for plugin in _PLUGINS if plugins is None else plugins:
        try:
            event = plugin.enrich(event)
        except Exception as exc:  # pylint: disable=broad-except
            logger.error("Unhandled error in %s: %s", type(plugin).__name__, exc, exc_info=exc)
            event.tag(UNEXPECTED_FAILURE_TAG)
    return event


def run_batch(raw_events: Sequence[Dict[str, Any]]) -> List[Event]:
    """Enrich a batch on the worker pool, one disjoint slice per task."""
    if not raw_events:
        return []
    if _executor is None:
        raise RuntimeError("Pipeline is not initialised; call init_pipeline() first")
    slices = min(_workers, len(raw_events))
    results: List[Optional[Event]] = [None] * len(raw_events)

    def _work(offset: int) -> None:
        for position in range(offset, len(raw_events), slices):
            results[position] = process_event(raw_events[position])

    for future in [_executor.submit(_work, offset) for offset in range(slices)]:
        future.result()

    logger.info("Batch complete: events=%d slices=%d", len(raw_events), slices)
    return results
