# main.py
"""
Blue Button Coverage server: read-only FHIR Coverage resources derived from
the beneficiary enrollment data.

Run (TLS and client certificates are handled by the ASGI server or proxy):
  uvicorn main:app --port 8000
"""
import os
import logging
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.responses import Response

# Load .env in development; real environment variables win.
load_dotenv(override=False)

from coverage_provider import CoverageResourceProvider, router as coverage_router
from db_store import (
    BeneficiaryStore,
    InMemoryBeneficiaryStore,
    PostgresBeneficiaryStore,
    load_beneficiaries_json,
)
from fhir_errors import install_exception_handlers
from logging_context import configure_logging
from metrics import MetricRegistry
from request_filter import AccessLogMiddleware, LoggingContextMiddleware

configure_logging(os.getenv("LOG_LEVEL", "INFO"))
log = logging.getLogger("bluebutton_main")

# Read configuration from environment (safe defaults for dev)
DATABASE_URL = os.getenv("DATABASE_URL", "").strip()
BENEFICIARY_SEED_FILE = os.getenv("BENEFICIARY_SEED_FILE", "").strip()
FHIR_BASE_PATH = os.getenv("FHIR_BASE_PATH", "/v1/fhir").rstrip("/")

# Informational only; the actual binding is done by the uvicorn process.
BACKEND_HOST = os.getenv("BACKEND_HOST", "127.0.0.1")
BACKEND_PORT = int(os.getenv("BACKEND_PORT", "8000"))


def default_store() -> BeneficiaryStore:
    if DATABASE_URL:
        log.info("Using Postgres beneficiary store")
        return PostgresBeneficiaryStore(DATABASE_URL)
    log.warning("DATABASE_URL is not set; using an in-memory beneficiary store.")
    return InMemoryBeneficiaryStore()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: seed the in-memory store if a seed file is configured
    store = app.state.store
    if BENEFICIARY_SEED_FILE and isinstance(store, InMemoryBeneficiaryStore):
        for b in load_beneficiaries_json(BENEFICIARY_SEED_FILE):
            store.add(b)
        log.info("Seeded %d beneficiaries from %s", len(store), BENEFICIARY_SEED_FILE)
    yield
    log.info("Blue Button server shutting down.")


def create_app(
    store: Optional[BeneficiaryStore] = None,
    metrics: Optional[MetricRegistry] = None,
    fhir_base_path: str = FHIR_BASE_PATH,
) -> FastAPI:
    app = FastAPI(title="Blue Button Coverage Server", lifespan=lifespan)
    app.state.store = store if store is not None else default_store()
    app.state.metrics = metrics if metrics is not None else MetricRegistry()
    app.state.fhir_base_path = fhir_base_path
    app.state.coverage_provider = CoverageResourceProvider(app.state.store, app.state.metrics)

    install_exception_handlers(app)

    # Last added is outermost: the access log wraps the logging context.
    app.add_middleware(LoggingContextMiddleware)
    app.add_middleware(AccessLogMiddleware)

    app.include_router(coverage_router, prefix=fhir_base_path)
    log.info("Mounted Coverage provider at %s", fhir_base_path or "/")

    @app.get("/_healthz")
    def healthz():
        return {"ok": True, "store": app.state.store.kind}

    @app.get("/metrics")
    def metrics_endpoint():
        return Response(app.state.metrics.export(), media_type="text/plain; version=0.0.4")

    return app


log.info("Configured BACKEND_HOST: %s, BACKEND_PORT: %s", BACKEND_HOST, BACKEND_PORT)
app = create_app()
