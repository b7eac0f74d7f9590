# src/deckproxy/core/metrics.py
from prometheus_client import Counter, Histogram, make_asgi_app
from starlette.middleware.base import BaseHTTPMiddleware
import time

REQUEST_LATENCY = Histogram(
    "http_request_latency_seconds",
    "Latency of HTTP requests",
    ["path", "method", "status"],
    # deck compilation downloads every slide image, so allow long tails
    buckets=[0.01,0.05,0.1,0.25,0.5,1,2,5,10,30,60],
)
REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["path", "method", "status"],
)

PAYLOADS_EMITTED = Counter(
    "proxy_payloads_total",
    "Proxy responses by payload kind (manifest/json/binary)",
    ["kind"],
)

DECK_SLIDES = Counter(
    "deck_slides_total",
    "Compiled slides by final state",
    ["state"],
)


def _route_label(request) -> str:
    # template ("/api/get-task/{task_id}") keeps label cardinality bounded
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


class MetricsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        if request.url.path.startswith("/metrics"):
            return await call_next(request)
        start = time.perf_counter()
        resp = await call_next(request)
        latency = time.perf_counter() - start
        labels = (_route_label(request), request.method, str(resp.status_code))
        REQUEST_LATENCY.labels(*labels).observe(latency)
        REQUEST_COUNT.labels(*labels).inc()
        return resp

metrics_app = make_asgi_app()
