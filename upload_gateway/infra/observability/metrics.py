from prometheus_client import Counter, Histogram, make_asgi_app

# Route templates only, so labels stay low-cardinality
REQUESTS = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "route", "status"],
)

LATENCY = Histogram(
    "http_request_duration_seconds",
    "Request latency in seconds",
    ["method", "route"],
)

UPLOAD_OPERATIONS = Counter(
    "multipart_upload_operations_total",
    "Multipart upload operations brokered, by outcome",
    ["operation", "outcome"],
)

metrics_app = make_asgi_app()
