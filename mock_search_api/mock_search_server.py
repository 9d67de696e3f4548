import fnmatch
import logging
import os
import random
from typing import Any, Optional

from flask import Flask, Response, jsonify, request

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)

app = Flask(__name__)

FAILURE_RATE = float(os.getenv("MOCK_FAILURE_RATE", "0.0"))

DOCUMENTS = {
    "customers": [
        {"_id": "c-1001", "_source": {"customer_id": "1001", "name": "Ada Lovelace", "tier": "gold", "geo": {"city": "London", "country": "GB"}}},
        {"_id": "c-1002", "_source": {"customer_id": "1002", "name": "Grace Hopper", "tier": "platinum", "geo": {"city": "Arlington", "country": "US"}}},
        {"_id": "c-1003", "_source": {"customer_id": "1003", "name": "Alan Turing", "tier": "gold", "geo": {"city": "Manchester", "country": "GB"}}},
    ],
    "hosts": [
        {"_id": "h-1", "_source": {"hostname": "web-01", "owner": "platform", "env": "prod"}},
        {"_id": "h-2", "_source": {"hostname": "web-02", "owner": "platform", "env": "prod"}},
        {"_id": "h-3", "_source": {"hostname": "db-01", "owner": "data", "env": "staging"}},
    ],
}


def _field(source: dict, dotted: str) -> Any:
    value: Any = source
    for part in dotted.split("."):
        if not isinstance(value, dict) or part not in value:
            return None
        value = value[part]
    return value


def _indices(pattern: str) -> list:
    if pattern in ("", "_all"):
        return sorted(DOCUMENTS)
    names = []
    for part in pattern.split(","):
        names.extend(name for name in sorted(DOCUMENTS) if fnmatch.fnmatch(name, part.strip()))
    return names


def _string_matcher(q: Optional[str]):
    """Supports "*", "*:*" and "field:value"; anything else matches nothing."""
    if q in (None, "", "*", "*:*"):
        return lambda source: True
    if ":" not in q:
        return lambda source: False
    field, value = q.split(":", 1)
    value = value.strip('"')
    return lambda source: str(_field(source, field)) == value


def _dsl_matcher(query: Optional[dict]):
    """Supports match_all, and term/match on a single field."""
    if not query or "match_all" in query:
        return lambda source: True
    for kind in ("term", "match"):
        if kind in query:
            field, value = next(iter(query[kind].items()))
            if isinstance(value, dict):
                value = value.get("value", value.get("query"))
            return lambda source: str(_field(source, field)) == str(value)
    return lambda source: False


def _project(source: dict, fields: Optional[list]) -> dict:
    if not fields:
        return source
    projected: dict = {}
    for dotted in fields:
        value = _field(source, dotted)
        if value is None:
            continue
        target = projected
        parts = dotted.split(".")
        for part in parts[:-1]:
            target = target.setdefault(part, {})
        target[parts[-1]] = value
    return projected


def _terms_aggregation(hits: list, field: str) -> dict:
    counts: dict = {}
    for hit in hits:
        key = _field(hit["_source"], field)
        if key is not None:
            counts[key] = counts.get(key, 0) + 1
    buckets = [{"key": key, "doc_count": count} for key, count in sorted(counts.items(), key=lambda kv: (-kv[1], str(kv[0])))]
    return {"doc_count_error_upper_bound": 0, "sum_other_doc_count": 0, "buckets": buckets}


@app.route("/", methods=["GET", "HEAD"])
def info() -> tuple[Response, int]:
    return jsonify({"name": "mock-node", "cluster_name": "mock-search", "version": {"distribution": "opensearch", "number": "2.11.0"}}), 200


@app.route("/<index>/_search", methods=["GET", "POST"])
def search(index: str) -> tuple[Response, int]:
    """
    GET|POST /<index>/_search

    Query-string searches (q, size, sort, _source) and a small DSL subset.
    At the configured failure rate the response carries _shards.failures,
    which the lookup filter must treat as a failed query.
    """
    body = request.get_json(silent=True) or {}
    indices = _indices(index)

    if random.random() < FAILURE_RATE:
        logger.warning("Simulating shard failure")
        return jsonify({
            "_shards": {"total": 1, "successful": 0, "failed": 1, "failures": [{"shard": 0, "index": index, "reason": {"type": "simulated_failure"}}]},
            "hits": {"total": {"value": 0, "relation": "eq"}, "hits": []},
        }), 200

    matcher = _dsl_matcher(body.get("query")) if body else _string_matcher(request.args.get("q"))
    hits = [
        {"_index": name, "_id": doc["_id"], "_score": 1.0, "_source": doc["_source"]}
        for name in indices
        for doc in DOCUMENTS[name]
        if matcher(doc["_source"])
    ]

    sort = request.args.get("sort")
    if sort:
        for spec in reversed(sort.split(",")):
            field, _, direction = spec.partition(":")
            hits.sort(key=lambda hit: str(_field(hit["_source"], field) or ""), reverse=direction == "desc")

    total = len(hits)
    size = int(body.get("size", request.args.get("size", 10)))
    source_fields = [f for f in request.args.get("_source", "").split(",") if f]
    page = [dict(hit, _source=_project(hit["_source"], source_fields)) for hit in hits[:size]]

    response: dict = {
        "took": 1,
        "timed_out": False,
        "_shards": {"total": len(indices), "successful": len(indices), "skipped": 0, "failed": 0},
        "hits": {"total": {"value": total, "relation": "eq"}, "max_score": 1.0 if page else None, "hits": page},
    }
    aggs = body.get("aggs") or body.get("aggregations")
    if aggs:
        response["aggregations"] = {
            name: _terms_aggregation(hits, spec["terms"]["field"]) for name, spec in aggs.items() if "terms" in spec
        }

    logger.info("Search index=%s matched=%d returned=%d", index, total, len(page))
    return jsonify(response), 200


if __name__ == "__main__":
    port = int(os.getenv("MOCK_PORT", "9200"))
    logger.info("Starting mock search API on port %d (failure_rate=%.0f%%)", port, FAILURE_RATE * 100)
    app.run(host="0.0.0.0", port=port)
