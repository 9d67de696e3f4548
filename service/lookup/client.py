"""
Thin adapter over opensearch-py.

The filter only needs two calls: search() per event and ping() once at
startup. Library exceptions are translated to BackendError here so the
filter never has to know about opensearchpy's exception tree.
"""

import base64
import logging
from typing import Any, Dict

from lookup.connection import ConnectionOptions
from lookup.errors import BackendError, ConfigurationError
from models import DSLQuery, SearchRequest
from opensearchpy import OpenSearch
from opensearchpy.exceptions import OpenSearchException

logger = logging.getLogger(__name__)


def _api_key_header(api_key: str) -> Dict[str, str]:
    token = base64.b64encode(api_key.encode("utf-8")).decode("ascii")
    return {"Authorization": f"ApiKey {token}"}


class SearchClient:
    """One backend connection, reused by a single worker across many events."""

    def __init__(self, options: ConnectionOptions):
        self.options = options
        kwargs: Dict[str, Any] = {
            "hosts": options.hosts,
            "use_ssl": options.ssl,
            "verify_certs": options.ssl,
        }
        if options.http_auth:
            kwargs["http_auth"] = options.http_auth
        if options.api_key:
            kwargs["headers"] = _api_key_header(options.api_key)
        if options.ssl and options.ca_file:
            kwargs["ca_certs"] = options.ca_file
        try:
            self.client = OpenSearch(**kwargs)
        except OpenSearchException as exc:
            raise ConfigurationError(f"Invalid OpenSearch connection settings: {exc}") from exc

    def search(self, request: SearchRequest) -> Dict[str, Any]:
        """Run the request and return the decoded response body."""
        query = request.query
        try:
            if isinstance(query, DSLQuery):
                response = self.client.search(index=request.index, body=query.body)
            else:
                params: Dict[str, Any] = {"q": query.query_text, "size": query.size}
                if query.sort:
                    params["sort"] = query.sort
                if query.source_filter:
                    params["_source"] = query.source_filter
                response = self.client.search(index=request.index, **params)
        except OpenSearchException as exc:
            raise BackendError(f"OpenSearch search failed: {exc}") from exc

        if not isinstance(response, dict):
            raise BackendError(f"Unexpected response type from OpenSearch: {type(response).__name__}")
        return response

    def ping(self) -> bool:
        try:
            return bool(self.client.ping())
        except OpenSearchException as exc:
            logger.error("OpenSearch ping failed: %s", exc)
            return False

    def close(self) -> None:
        self.client.close()
