"""
Builds the per-event search request.

Two mutually exclusive modes, picked once from the settings:
  - string mode:   `query` is interpolated and sent as a query-string search
                   with result_size, sort and a _source filter
  - template mode: the file at `query_template` is read once, then per event
                   interpolated and parsed as a JSON query body

The builder never talks to the backend; it only returns a SearchRequest.
"""

import json
from typing import Iterable, List, Optional

from config import Settings
from lookup.errors import ConfigurationError, QueryBuildError
from lookup.paths import to_source_field
from models import DSLQuery, SearchRequest, StringQuery

STRING_MODE = "string"
TEMPLATE_MODE = "template"


def load_query_template(path: str) -> str:
    """Read the template file once. Empty or unreadable files are fatal."""
    try:
        with open(path, "r", encoding="utf-8") as handle:
            text = handle.read()
    except OSError as exc:
        raise ConfigurationError(f"Cannot read query_template {path!r}: {exc}") from exc
    if not text.strip():
        raise ConfigurationError(f"query_template {path!r} is empty")
    return text


def parse_sort(sort: str) -> List[str]:
    """Split the comma-delimited sort setting into field:direction pairs."""
    return [part.strip() for part in sort.split(",") if part.strip()]


class QueryBuilder:
    def __init__(
        self,
        index: str,
        query: Optional[str] = None,
        template: Optional[str] = None,
        result_size: int = 1,
        sort: Optional[List[str]] = None,
        source_fields: Iterable[str] = (),
    ):
        if (query is None) == (template is None):
            raise ConfigurationError("Exactly one of query or query_template must be set")
        self.index = index
        self.query = query
        self.template = template
        self.result_size = result_size
        self.sort = sort or None
        self.source_filter = [to_source_field(field) for field in source_fields] or None

    @classmethod
    def from_settings(cls, cfg: Settings) -> "QueryBuilder":
        if cfg.query is not None and cfg.query_template is not None:
            raise ConfigurationError("Both query and query_template specified, please only use one of those.")
        if cfg.query is None and cfg.query_template is None:
            raise ConfigurationError("One of query or query_template must be specified")
        if cfg.result_size < 0:
            raise ConfigurationError(f"result_size must be >= 0, got {cfg.result_size}")

        template = load_query_template(cfg.query_template) if cfg.query_template else None
        return cls(
            index=cfg.index,
            query=cfg.query,
            template=template,
            result_size=cfg.result_size,
            sort=parse_sort(cfg.sort) if cfg.enable_sort else None,
            source_fields=cfg.fields.keys(),
        )

    @property
    def mode(self) -> str:
        return TEMPLATE_MODE if self.template is not None else STRING_MODE

    @property
    def raw_input(self) -> str:
        """The configured input of the active mode, uninterpolated."""
        return self.template if self.template is not None else self.query

    def build(self, event) -> SearchRequest:
        index = self._interpolate(event, self.index)
        if self.template is not None:
            return SearchRequest(index=index, query=DSLQuery(body=self._render_template(event)))
        return SearchRequest(
            index=index,
            query=StringQuery(
                query_text=self._interpolate(event, self.query),
                size=self.result_size,
                sort=self.sort,
                source_filter=self.source_filter,
            ),
        )

    def _render_template(self, event) -> dict:
        rendered = self._interpolate(event, self.template)
        try:
            body = json.loads(rendered)
        except json.JSONDecodeError as exc:
            raise QueryBuildError(f"Query template is not valid JSON after interpolation: {exc}") from exc
        if not isinstance(body, dict):
            raise QueryBuildError(f"Query template must render to a JSON object, got {type(body).__name__}")
        return body

    @staticmethod
    def _interpolate(event, text: str) -> str:
        try:
            return event.sprintf(text)
        except (TypeError, ValueError, KeyError) as exc:
            raise QueryBuildError(f"Failed to interpolate {text!r}: {exc}") from exc
