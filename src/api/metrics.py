import time

from prometheus_client import Counter, Histogram, Gauge, REGISTRY


# we check if they are already registered to avoid errors during hot reloads or test runs
def get_or_create_metric(name, documentation, metric_type, **kwargs):
    try:
        return metric_type(name, documentation, **kwargs)
    except ValueError:
        # Already registered: reuse the existing collector
        return REGISTRY._names_to_collectors[name]


REQUESTS_TOTAL = get_or_create_metric(
    "planbook_requests_total",
    "Total requests",
    Counter,
    labelnames=["endpoint", "status"],
)

REQUEST_LATENCY_SECONDS = get_or_create_metric(
    "planbook_request_latency_seconds",
    "Request latency",
    Histogram,
    labelnames=["endpoint"],
)

EVENTS_IMPORTED_TOTAL = get_or_create_metric(
    "planbook_events_imported_total", "Total events imported from ICS", Counter
)

TIMER_TOGGLES_TOTAL = get_or_create_metric(
    "planbook_timer_toggles_total", "Task timer starts and stops", Counter
)

EVENTS_GAUGE = get_or_create_metric("planbook_events", "Events in the store", Gauge)

TASKS_GAUGE = get_or_create_metric("planbook_tasks", "Tasks in the store", Gauge)


def observe_request(endpoint: str, status: str, started: float) -> None:
    REQUESTS_TOTAL.labels(endpoint=endpoint, status=status).inc()
    REQUEST_LATENCY_SECONDS.labels(endpoint=endpoint).observe(time.time() - started)
