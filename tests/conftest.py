"""
Shared pytest fixtures and configuration.

conftest.py is auto-loaded by pytest; fixtures defined here are available
to all test files without explicit imports.
"""

import os
import sys

import pytest

# Add the service directory to the path so tests can import service modules
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "service"))
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "mock_search_api"))


class FakeSearchClient:
    """Stands in for lookup.client.SearchClient; records every request."""

    def __init__(self, response=None, error=None, reachable=True):
        self.response = response
        self.error = error
        self.reachable = reachable
        self.requests = []
        self.closed = False

    def search(self, request):
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return self.response

    def ping(self):
        return self.reachable

    def close(self):
        self.closed = True


def make_response(sources=(), total=None, aggregations=None, shard_failures=None):
    """Build a decoded search response with one hit per _source dict."""
    hits = [
        {"_index": "customers", "_id": f"doc-{i}", "_score": 1.0, "_source": source}
        for i, source in enumerate(sources, start=1)
    ]
    shards = {"total": 1, "successful": 1, "skipped": 0, "failed": 0}
    if shard_failures is not None:
        shards["failures"] = shard_failures
    response = {
        "took": 2,
        "timed_out": False,
        "_shards": shards,
        "hits": {
            "total": {"value": len(hits) if total is None else total, "relation": "eq"},
            "max_score": 1.0 if hits else None,
            "hits": hits,
        },
    }
    if aggregations is not None:
        response["aggregations"] = aggregations
    return response


@pytest.fixture
def fake_client():
    return FakeSearchClient(response=make_response())


@pytest.fixture
def response_factory():
    return make_response
