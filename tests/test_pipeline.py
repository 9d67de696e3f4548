"""
Tests for the pipeline runner.

Focus: plugin ordering, never-raise behaviour, and the worker pool
(order preserved, one client per worker thread).
"""

import threading

import pytest
from config import Settings
from enrichment.base import EnrichmentPlugin
from enrichment.opensearch_lookup import OpenSearchLookupPlugin
from lookup.errors import ConfigurationError
from pipeline import runner

from conftest import FakeSearchClient


class UppercasePlugin(EnrichmentPlugin):
    def enrich(self, event):
        event.set("name", str(event.get("name", "")).upper())
        return event


class ExplodingPlugin(EnrichmentPlugin):
    def enrich(self, event):
        raise RuntimeError("bug in plugin")


@pytest.fixture(autouse=True)
def _reset_pipeline():
    yield
    runner.shutdown_pipeline()


class TestProcessEvent:
    def test_plugins_run_in_order(self):
        event = runner.process_event({"name": "ada"}, plugins=[UppercasePlugin()])
        assert event.get("name") == "ADA"

    def test_unexpected_plugin_error_tags_and_passes_through(self):
        event = runner.process_event({"name": "ada"}, plugins=[ExplodingPlugin(), UppercasePlugin()])
        assert event.tags == [runner.UNEXPECTED_FAILURE_TAG]
        assert event.get("name") == "ADA"

    def test_init_pipeline_registers_and_activates(self, fake_client):
        plugin = OpenSearchLookupPlugin(Settings(query="*"), client_factory=lambda options: fake_client)
        runner.init_pipeline([plugin])
        assert runner.active_plugins() == [plugin]
        assert plugin.registry is not None


class TestRunBatch:
    def test_empty_batch(self):
        assert runner.run_batch([]) == []

    def test_requires_initialised_pipeline(self):
        with pytest.raises(RuntimeError):
            runner.run_batch([{"name": "ada"}])

    def test_results_keep_input_order(self):
        runner.init_pipeline([UppercasePlugin()], workers=4)
        raw = [{"name": f"user-{i}"} for i in range(25)]
        events = runner.run_batch(raw)
        assert [event.get("name") for event in events] == [f"USER-{i}" for i in range(25)]

    def test_one_client_per_worker_thread(self, response_factory):
        created = []
        created_lock = threading.Lock()

        def factory(options):
            client = FakeSearchClient(response_factory([{"name": "Ada"}]))
            with created_lock:
                created.append((threading.get_ident(), client))
            return client

        plugin = OpenSearchLookupPlugin(
            Settings(query="id:%{id}", fields={"[name]": "customer"}), client_factory=factory
        )
        runner.init_pipeline([plugin], workers=4)

        events = runner.run_batch([{"id": i} for i in range(40)])

        assert all(event.get("customer") == "Ada" for event in events)
        idents = [ident for ident, _ in created]
        assert len(idents) == len(set(idents))
        # register() pings from this thread, plus at most one client per worker
        assert len(created) <= 5
        assert sum(len(client.requests) for _, client in created) == 40

    def test_worker_clients_are_reused_across_batches(self, fake_client):
        calls = []

        def factory(options):
            calls.append(threading.get_ident())
            return fake_client

        plugin = OpenSearchLookupPlugin(Settings(query="*"), client_factory=factory)
        runner.init_pipeline([plugin], workers=4)

        for _ in range(10):
            runner.run_batch([{"id": i} for i in range(8)])

        # the register() ping thread plus at most one client per pool thread
        assert len(calls) <= 5
        assert len(plugin.registry) == len(calls)

    def test_client_build_failure_on_worker_gets_failure_tags(self, fake_client):
        calls = []

        def factory(options):
            calls.append(options)
            if len(calls) > 1:
                raise ConfigurationError("bad TLS settings")
            return fake_client

        plugin = OpenSearchLookupPlugin(Settings(query="*"), client_factory=factory)
        runner.init_pipeline([plugin], workers=1)

        events = runner.run_batch([{"name": "x"}])

        assert events[0].tags == ["_opensearch_lookup_failure"]
