"""Household Planning Agent Service.

This service runs the deterministic planning pipeline over a household's
budget, bills, debts and goals and exposes its runs, traces and metrics.
"""

import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from planning_agent.api.routes.health import router as health_router
from planning_agent.api.routes.monitoring import router as monitoring_router
from planning_agent.api.routes.planning import router as planning_router
from planning_agent.core.config import AppEnvironment, Settings, get_settings
from planning_agent.core.database import get_engine, get_session_factory, reset_engine
from planning_agent.core.errors import PlanningAgentError, get_status_code
from planning_agent.core.logging import setup_logging
from planning_agent.core.tracing import clear_tracing_context, set_request_id, set_trace_parent
from planning_agent.schemas.v1.common import ErrorResponse

logger = structlog.get_logger(__name__)

API_V1_PREFIX = "/api/v1"


def _request_log_context(request: Request) -> dict[str, str]:
    return {
        "path": request.url.path,
        "method": request.method,
        "request_id": getattr(request.state, "request_id", "")
        or request.headers.get("x-request-id", ""),
        "client_host": request.client.host if request.client else "",
    }


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Application lifespan context manager."""
    settings = get_settings()
    setup_logging()

    logger.info(
        "Starting Household Planning Agent",
        app=settings.app.name,
        env=settings.app.env.value,
        version=settings.app.version,
    )

    app.state.settings = settings
    app.state.engine = get_engine()
    app.state.session_factory = get_session_factory()

    yield

    await reset_engine()
    logger.info("Household Planning Agent stopped")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()
    is_prod = settings.app.env == AppEnvironment.PROD

    app = FastAPI(
        title="Household Planning Agent",
        description=(
            "Deterministic financial planning pipeline: budget, cash-flow, debt and goal "
            "analysis with policy guardrails, rationales and impact projections."
        ),
        version=settings.app.version,
        lifespan=lifespan,
        docs_url=None if is_prod else "/docs",
        redoc_url=None if is_prod else "/redoc",
        openapi_url=None if is_prod else "/openapi.json",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.security.cors_allowed_origins,
        allow_credentials=settings.security.cors_allow_credentials,
        allow_methods=settings.security.cors_allow_methods,
        allow_headers=settings.security.cors_allow_headers,
    )

    app.include_router(monitoring_router, prefix=API_V1_PREFIX)
    app.include_router(health_router, prefix=API_V1_PREFIX)
    app.include_router(planning_router, prefix=API_V1_PREFIX)

    setup_telemetry(app, settings)

    @app.middleware("http")
    async def payload_size_guard(request: Request, call_next):
        content_length = request.headers.get("content-length")
        max_request = settings.security.max_request_size_bytes
        if content_length and content_length.isdigit() and int(content_length) > max_request:
            logger.warning(
                "Request payload exceeds configured size limit",
                **_request_log_context(request),
                content_length=content_length,
                max_request_size_bytes=max_request,
            )
            body = ErrorResponse(detail="Request payload too large")
            return JSONResponse(status_code=413, content=body.model_dump(exclude_none=True))
        return await call_next(request)

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        """Propagate X-Request-ID and traceparent through contextvars.

        The request ID is generated when the caller did not send one and is
        always echoed back in the response header.
        """
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        set_request_id(request_id)
        set_trace_parent(request.headers.get("traceparent"))
        request.state.request_id = request_id

        try:
            response = await call_next(request)
        finally:
            # Prevent context leakage across requests in long-lived workers.
            clear_tracing_context()

        response.headers["X-Request-ID"] = request_id
        return response

    @app.exception_handler(PlanningAgentError)
    async def domain_error_handler(request: Request, exc: PlanningAgentError) -> JSONResponse:
        """Handle domain-specific errors."""
        status_code = get_status_code(exc)
        logger.warning(
            "Domain exception",
            **_request_log_context(request),
            status_code=status_code,
            error=exc.message,
            error_details=exc.details or {},
        )
        body = ErrorResponse(detail=exc.message, errors=exc.details or None)
        return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled exception", **_request_log_context(request), error=str(exc))
        body = ErrorResponse(detail="Internal server error")
        return JSONResponse(status_code=500, content=body.model_dump(exclude_none=True))

    return app


def setup_telemetry(app: FastAPI, settings: Settings) -> None:
    """Setup OpenTelemetry instrumentation."""
    if not settings.observability.otlp_endpoint:
        return

    resource = Resource(attributes={SERVICE_NAME: settings.observability.service_name})
    provider = TracerProvider(resource=resource)
    exporter = OTLPSpanExporter(
        endpoint=settings.observability.otlp_endpoint,
        insecure=settings.observability.otlp_insecure,
    )
    provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)

    FastAPIInstrumentor.instrument_app(app)


def run() -> None:
    """Run the application using uvicorn."""
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "planning_agent.main:create_app",
        factory=True,
        host=settings.server.host,
        port=settings.server.port,
        reload=settings.app.env == AppEnvironment.LOCAL,
        workers=1 if settings.app.env == AppEnvironment.LOCAL else settings.server.workers,
        log_level=settings.app.log_level.lower(),
    )


if __name__ == "__main__":
    run()
