import logging
from prometheus_client import Counter, Histogram, Gauge, Info, generate_latest
from prometheus_client.core import CollectorRegistry

logger = logging.getLogger(__name__)

# Prometheus Registry
REGISTRY = CollectorRegistry()

# status: success | rejected (domain error) | error (unexpected or collaborator failure)
operation_requests_total = Counter(
    'myfleet_operations_total',
    'Service operations by outcome',
    ['status', 'service', 'method'],
    registry=REGISTRY
)

operation_duration_seconds = Histogram(
    'myfleet_operation_duration_seconds',
    'Service operation duration in seconds',
    ['service', 'method'],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5],
    registry=REGISTRY
)

otp_requests_total = Counter(
    'myfleet_otp_requests_total',
    'OTP dispatch and verification outcomes',
    ['outcome'],
    registry=REGISTRY
)

collection_reads_total = Counter(
    'myfleet_collection_reads_total',
    'Collection list calls served from the session cache or the database',
    ['collection', 'source'],
    registry=REGISTRY
)

rate_limited_total = Counter(
    'myfleet_rate_limited_total',
    'Requests rejected by the HTTP rate limiter',
    ['endpoint'],
    registry=REGISTRY
)

active_sessions_gauge = Gauge(
    'myfleet_active_sessions',
    'Session stores currently held in memory',
    registry=REGISTRY
)

api_info = Info(
    'myfleet_api',
    'MyFleet API build information',
    registry=REGISTRY
)


class PrometheusMetricsCollector:
    """Named recorders for the module-level instruments."""

    def __init__(self, version: str = "0.1.0"):
        api_info.info({'version': version, 'service': 'myfleet-api'})

    def record_operation(self, service_name: str, method_name: str, duration_seconds: float, status: str):
        operation_requests_total.labels(status=status, service=service_name, method=method_name).inc()
        operation_duration_seconds.labels(service=service_name, method=method_name).observe(duration_seconds)

    def record_otp(self, outcome: str):
        """outcome: sent | rate_limited | delivery_failed | verified | rejected"""
        otp_requests_total.labels(outcome=outcome).inc()

    def record_collection_read(self, collection: str, from_cache: bool):
        collection_reads_total.labels(collection=collection, source='cache' if from_cache else 'database').inc()

    def record_rate_limited(self, endpoint: str):
        rate_limited_total.labels(endpoint=endpoint).inc()

    def update_active_sessions(self, count: int):
        active_sessions_gauge.set(count)

    def get_prometheus_metrics(self) -> bytes:
        return generate_latest(REGISTRY)

# Global instance
prometheus_collector = PrometheusMetricsCollector()
