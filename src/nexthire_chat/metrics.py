"""Prometheus metrics for the chat service."""

from prometheus_client import CollectorRegistry, Counter, Gauge

# Registry for isolated metric collection
CUSTOM_REGISTRY = CollectorRegistry()

REQUESTS = Counter("chat_requests_total", "Total HTTP requests", registry=CUSTOM_REGISTRY)
MESSAGES_SENT = Counter(
    "chat_messages_sent_total",
    "Messages stored, by originating transport",
    ["transport"],
    registry=CUSTOM_REGISTRY,
)
ERRORS = Counter(
    "chat_errors_total",
    "Failed chat operations",
    ["operation"],
    registry=CUSTOM_REGISTRY,
)
ACTIVE_SESSIONS = Gauge(
    "chat_active_sessions",
    "Open realtime sessions",
    registry=CUSTOM_REGISTRY,
)
