import time

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

HTTP_REQUESTS_TOTAL = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"]
)

HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0]
)

LINKS_CREATED_TOTAL = Counter("links_created_total", "Total links created")
REDIRECT_TOTAL = Counter("redirect_total", "Redirect attempts by outcome", ["outcome"])
RATE_LIMITED_TOTAL = Counter("rate_limited_total", "Total rate limited requests")

FIXED_PATHS = {"/metrics", "/api/health", "/api/links", "/api/auth/me"}


def metric_path(path: str) -> str:
    # Collapse link ids so labels stay low-cardinality.
    if path in FIXED_PATHS or path.startswith("/api/auth/"):
        return path
    if path.startswith("/api/links/"):
        return "/api/links/{id}/analytics" if path.endswith("/analytics") else "/api/links/{id}"
    if len(path) > 1 and "/" not in path[1:]:
        return "/{id}"
    return path


class PrometheusMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start_time = time.perf_counter()
        response = await call_next(request)
        process_time = time.perf_counter() - start_time

        path = metric_path(request.url.path)
        HTTP_REQUESTS_TOTAL.labels(method=request.method, path=path, status=str(response.status_code)).inc()
        HTTP_REQUEST_DURATION_SECONDS.labels(method=request.method, path=path).observe(process_time)

        return response


def metrics_endpoint(request: Request):
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
