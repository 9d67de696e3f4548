"""
Abstract base class for all enrichment plugins.

Why a base class:
  Adding a new enrichment source = new file implementing enrich().
  The pipeline calls plugins without knowing their internals (Strategy pattern).

Lifecycle: register() once before the first event, enrich() per event,
close() once on shutdown.
"""

from abc import ABC, abstractmethod

from enrichment.event import Event


class EnrichmentPlugin(ABC):
    def register(self) -> None:
        """One-time setup. Raise ConfigurationError to refuse to start."""

    @abstractmethod
    def enrich(self, event: Event) -> Event:
        """
        Accepts an event, returns the same event with added fields.
        Must never drop the event or raise for a per-event failure.
        """

    def close(self) -> None:
        """Release resources held since register()."""
