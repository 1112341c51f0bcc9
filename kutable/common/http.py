"""HTTP plumbing shared by every FastAPI service."""

from time import perf_counter
from uuid import uuid4

from fastapi import FastAPI, Request

from kutable.common.config import settings
from kutable.common.errors import register_error_handlers
from kutable.common.logging import trace_id_ctx
from kutable.common.metrics import http_request_duration_seconds, http_requests_total, metrics_response
from kutable.common.tracing import instrument_app


async def metrics_middleware(request: Request, call_next):
    """Record request count and latency for every HTTP call, and bind a trace id."""

    start = perf_counter()
    route = request.url.path
    method = request.method
    status_code = 500
    trace_id_ctx.set(request.headers.get("x-trace-id") or str(uuid4()))
    try:
        response = await call_next(request)
        status_code = response.status_code
        route_obj = request.scope.get("route")
        if route_obj is not None and getattr(route_obj, "path", None):
            route = route_obj.path
        response.headers["x-trace-id"] = trace_id_ctx.get()
        return response
    finally:
        elapsed = max(0.0, perf_counter() - start)
        http_request_duration_seconds.labels(
            service=settings.service_name,
            route=route,
            method=method,
        ).observe(elapsed)
        http_requests_total.labels(
            service=settings.service_name,
            route=route,
            method=method,
            status_code=str(status_code),
        ).inc()


def create_app(title: str, **kwargs) -> FastAPI:
    """Build a service app with error rendering, metrics, tracing and health checks."""

    app = FastAPI(title=title, **kwargs)
    instrument_app(app)
    register_error_handlers(app)
    app.middleware("http")(metrics_middleware)

    @app.get("/metrics")
    def metrics():
        """Prometheus scrape endpoint."""

        return metrics_response()

    @app.get("/health")
    def health():
        """Container health check endpoint."""

        return {"ok": True}

    return app


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"
