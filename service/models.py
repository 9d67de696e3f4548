"""
Pydantic models: the data contracts for the service.

Separating models from routes lets us reuse schemas across the API,
the lookup engine, and tests without circular imports.
"""

from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field

# ── Query variants (fixed once per filter instance) ──────────────────────────


class StringQuery(BaseModel):
    """Query-string search: `q`, result cap, optional sort and _source filter."""

    kind: Literal["string"] = "string"
    query_text: str
    size: int = 1
    sort: Optional[List[str]] = None
    source_filter: Optional[List[str]] = None


class DSLQuery(BaseModel):
    """Structured query body rendered from the query template."""

    kind: Literal["dsl"] = "dsl"
    body: Dict[str, Any]


QuerySpec = Union[StringQuery, DSLQuery]


class SearchRequest(BaseModel):
    """Fully formed request descriptor handed to the backend client."""

    index: str
    query: QuerySpec = Field(discriminator="kind")


# ── API contracts ─────────────────────────────────────────────────────────────


class EnrichRequest(BaseModel):
    event: Dict[str, Any]


class EnrichResponse(BaseModel):
    event: Dict[str, Any]
    metadata: Dict[str, Any] = {}


class BatchEnrichRequest(BaseModel):
    events: List[Dict[str, Any]]


class BatchEnrichResponse(BaseModel):
    total: int
    failed: int
    results: List[EnrichResponse]


class HealthStatus(str, Enum):
    ok = "ok"
    degraded = "degraded"
    down = "down"


class HealthResponse(BaseModel):
    status: HealthStatus
    backend_reachable: bool
    hosts: List[str]
    index: str
    query_mode: Optional[str] = None
    clients: int = 0
