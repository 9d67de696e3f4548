"""
Tests for the OpenSearch lookup plugin.

Focus: the per-event build → execute → map → finalize flow, failure
tagging, and configuration-time validation in register().
"""

import copy
import logging
import threading

import pytest
from config import Settings
from enrichment.event import Event
from enrichment.opensearch_lookup import TOTAL_HITS_FIELD, OpenSearchLookupPlugin
from lookup.errors import BackendError, ConfigurationError

from conftest import FakeSearchClient


def _plugin(client, **overrides):
    cfg = Settings(**{"index": "customers", "query": "customer_id:%{customer_id}", **overrides})
    plugin = OpenSearchLookupPlugin(cfg, client_factory=lambda options: client)
    plugin.register()
    return plugin


class TestMatchedLookups:
    def test_two_hits_fan_in_to_list(self, response_factory):
        client = FakeSearchClient(response_factory([{"name": "Ada"}, {"name": "Grace"}]))
        event = _plugin(client, fields={"[name]": "dest"}).enrich(Event({"customer_id": "1"}))
        assert event.get("dest") == ["Ada", "Grace"]

    def test_single_hit_is_scalar(self, response_factory):
        client = FakeSearchClient(response_factory([{"name": "Ada"}]))
        event = _plugin(client, fields={"[name]": "dest"}).enrich(Event({"customer_id": "1"}))
        assert event.get("dest") == "Ada"

    def test_total_hits_normalised_into_metadata(self, response_factory):
        client = FakeSearchClient(response_factory([{"name": "Ada"}], total=42))
        event = _plugin(client).enrich(Event({"customer_id": "1"}))
        assert event.get(TOTAL_HITS_FIELD) == 42
        assert "@metadata" not in event.to_dict()

    def test_query_interpolated_from_event(self, response_factory):
        client = FakeSearchClient(response_factory())
        _plugin(client, index="customers-%{region}").enrich(Event({"customer_id": "1001", "region": "eu"}))
        request = client.requests[-1]
        assert request.index == "customers-eu"
        assert request.query.query_text == "customer_id:1001"

    def test_matched_decorations_applied_once(self, response_factory):
        client = FakeSearchClient(response_factory([{"name": "Ada"}]))
        plugin = _plugin(
            client,
            add_tag=["enriched", "tier_%{tier}"],
            add_field={"[lookup][source]": "opensearch"},
            remove_field=["scratch"],
            remove_tag=["pending"],
        )
        event = plugin.enrich(Event({"customer_id": "1", "tier": "gold", "scratch": 1, "tags": ["pending"]}))

        assert event.tags == ["enriched", "tier_gold"]
        assert event.get("[lookup][source]") == "opensearch"
        assert not event.includes("scratch")

    def test_aggregations_copied(self, response_factory):
        aggs = {"by_tier": {"buckets": [{"key": "gold", "doc_count": 2}]}}
        client = FakeSearchClient(response_factory(aggregations=aggs))
        plugin = _plugin(client, aggregation_fields={"by_tier": "[stats][by_tier]"}, add_tag=["matched"])
        event = plugin.enrich(Event({"customer_id": "1"}))
        assert event.get("[stats][by_tier]") == aggs["by_tier"]
        assert event.tags == ["matched"]


class TestUnmatchedLookups:
    def test_no_hits_no_aggs_sets_only_total(self, response_factory):
        client = FakeSearchClient(response_factory(aggregations={}))
        plugin = _plugin(client, fields={"[name]": "dest"}, add_tag=["matched"])
        event = plugin.enrich(Event({"customer_id": "1"}))

        assert event.to_dict() == {"customer_id": "1"}
        assert event.get(TOTAL_HITS_FIELD) == 0
        assert event.tags == []


class TestFailedLookups:
    def test_shard_failures_only_add_failure_tags(self, response_factory):
        response = response_factory([{"name": "Ada"}], shard_failures=[{"reason": "boom"}])
        plugin = _plugin(
            FakeSearchClient(response),
            fields={"[name]": "dest"},
            tag_on_failure=["_lookup_failure", "_needs_review"],
            add_tag=["matched"],
        )
        original = {"customer_id": "1", "nested": {"a": 1}}
        event = plugin.enrich(Event(copy.deepcopy(original)))

        assert event.to_dict() == {**original, "tags": ["_lookup_failure", "_needs_review"]}
        assert event.metadata == {}

    def test_backend_error_tags_event(self):
        plugin = _plugin(FakeSearchClient(error=BackendError("connection refused")))
        event = plugin.enrich(Event({"customer_id": "1"}))
        assert event.tags == ["_opensearch_lookup_failure"]
        assert not event.includes(TOTAL_HITS_FIELD)

    def test_template_build_error_tags_event(self, tmp_path, response_factory):
        template = tmp_path / "query.json"
        template.write_text('{"query": {"term": {"id": %{id}}}}')
        client = FakeSearchClient(response_factory([{"name": "Ada"}]))
        plugin = _plugin(client, query=None, query_template=str(template))

        event = plugin.enrich(Event({"id": "unquoted"}))

        assert event.tags == ["_opensearch_lookup_failure"]
        assert client.requests == []

    def test_malformed_response_tags_event(self):
        plugin = _plugin(FakeSearchClient({"unexpected": True}))
        event = plugin.enrich(Event({"customer_id": "1"}))
        assert event.tags == ["_opensearch_lookup_failure"]

    def test_failure_is_logged_not_raised(self, caplog):
        plugin = _plugin(FakeSearchClient(error=BackendError("timed out")))
        with caplog.at_level(logging.WARNING, logger="enrichment.opensearch_lookup"):
            plugin.enrich(Event({"customer_id": "1"}))
        assert "Failed to query OpenSearch" in caplog.text
        assert "timed out" in caplog.text

    def test_debug_logging_includes_active_query(self, caplog):
        plugin = _plugin(FakeSearchClient(error=BackendError("timed out")))
        with caplog.at_level(logging.DEBUG, logger="enrichment.opensearch_lookup"):
            plugin.enrich(Event({"customer_id": "1001"}))
        assert "customer_id:1001" in caplog.text


class TestRegister:
    def test_api_key_without_ssl_rejected_before_any_event(self, fake_client):
        plugin = OpenSearchLookupPlugin(
            Settings(query="*", api_key="id:key", ssl=False), client_factory=lambda options: fake_client
        )
        with pytest.raises(ConfigurationError):
            plugin.register()
        assert fake_client.requests == []

    def test_hosts_and_cloud_id_rejected(self, fake_client):
        plugin = OpenSearchLookupPlugin(
            Settings(query="*", hosts=["search:9200"], cloud_id="label:ZXhhbXBsZS5jb20kYWJjJGtpYg=="),
            client_factory=lambda options: fake_client,
        )
        with pytest.raises(ConfigurationError, match="cloud_id"):
            plugin.register()

    def test_failed_ping_rejected(self):
        plugin = OpenSearchLookupPlugin(
            Settings(query="*"), client_factory=lambda options: FakeSearchClient(reachable=False)
        )
        with pytest.raises(ConfigurationError, match="ping"):
            plugin.register()

    def test_empty_template_rejected(self, tmp_path, fake_client):
        template = tmp_path / "query.json"
        template.write_text("")
        plugin = OpenSearchLookupPlugin(
            Settings(query_template=str(template)), client_factory=lambda options: fake_client
        )
        with pytest.raises(ConfigurationError, match="empty"):
            plugin.register()

    def test_factory_receives_resolved_connection(self, fake_client):
        seen = []

        def factory(options):
            seen.append(options)
            return fake_client

        plugin = OpenSearchLookupPlugin(Settings(query="*", hosts=["search:9200"]), client_factory=factory)
        plugin.register()

        assert seen[0].hosts == ["search:9200"]

    def test_close_tears_down_clients(self, fake_client):
        plugin = _plugin(fake_client)
        plugin.close()
        assert fake_client.closed


class TestWorkerClientFailures:
    def test_client_build_failure_on_worker_thread_is_tagged(self, fake_client):
        calls = []

        def factory(options):
            calls.append(options)
            if len(calls) > 1:
                raise ConfigurationError("cannot load CA file")
            return fake_client

        plugin = OpenSearchLookupPlugin(Settings(query="*"), client_factory=factory)
        plugin.register()
        results = {}

        thread = threading.Thread(target=lambda: results.setdefault("event", plugin.enrich(Event({"a": 1}))))
        thread.start()
        thread.join()

        event = results["event"]
        assert event.tags == ["_opensearch_lookup_failure"]
        assert event.metadata == {}


class TestDestinationValidation:
    @pytest.mark.parametrize(
        "overrides",
        [
            {"fields": {"[name]": "[@metadata]"}},
            {"docinfo_fields": {"_id": ""}},
            {"aggregation_fields": {"by_tier": "@metadata"}},
        ],
    )
    def test_unwritable_destination_rejected_at_register(self, fake_client, overrides):
        plugin = OpenSearchLookupPlugin(
            Settings(query="*", **overrides), client_factory=lambda options: fake_client
        )
        with pytest.raises(ConfigurationError, match="destination"):
            plugin.register()

    def test_metadata_subfield_destination_accepted(self, response_factory):
        client = FakeSearchClient(response_factory([{"name": "Ada"}]))
        event = _plugin(client, fields={"[name]": "[@metadata][name]"}).enrich(Event({"customer_id": "1"}))
        assert event.get("[@metadata][name]") == "Ada"
