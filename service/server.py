"""
FastAPI application entry point.

Startup sequence (via lifespan):
  1. Validate lookup settings (auth, hosts, query mode, template file)
  2. Ping OpenSearch once; an unreachable backend refuses to start
  3. Activate the enrichment pipeline

Configuration errors abort startup; after that, lookup failures only ever
tag events.
"""

import logging
import sys
from contextlib import asynccontextmanager

import uvicorn
from api.routes import router
from config import settings
from enrichment.opensearch_lookup import OpenSearchLookupPlugin
from fastapi import FastAPI
from pipeline.runner import init_pipeline, shutdown_pipeline

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
    stream=sys.stdout,
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(application: FastAPI):
    """Manage startup and shutdown lifecycle."""
    logger.info("Starting OpenSearch Lookup Enrichment Service")

    init_pipeline([OpenSearchLookupPlugin(settings)], workers=settings.workers)

    yield  # Application runs here

    shutdown_pipeline()
    logger.info("Service shutdown complete")


app = FastAPI(
    title="OpenSearch Lookup Enrichment Service",
    description=(
        "Enriches pipeline events with fields, document metadata and "
        "aggregations looked up in OpenSearch."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(router)


if __name__ == "__main__":
    uvicorn.run("server:app", host="0.0.0.0", port=8000, reload=False)
