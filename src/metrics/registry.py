"""Prometheus metrics owned by an explicitly constructed registry.

One ``MetricsRegistry`` is built per application and handed to every component
that emits metrics. Nothing registers into ``prometheus_client.REGISTRY``, so
several apps (or tests) can live in one process without duplicate-metric
errors.
"""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)


class MetricsRegistry:
    def __init__(self, namespace: str = "delivery") -> None:
        self.registry = CollectorRegistry(auto_describe=True)

        self.http_requests_total = Counter(
            "http_requests_total",
            "Total number of HTTP requests",
            ["method", "endpoint", "status"],
            namespace=namespace,
            registry=self.registry,
        )
        self.http_request_duration_seconds = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "endpoint"],
            namespace=namespace,
            registry=self.registry,
        )
        self.rate_limit_decisions_total = Counter(
            "rate_limit_decisions_total",
            "Rate limiter decisions by outcome and scope",
            ["outcome", "scope"],
            namespace=namespace,
            registry=self.registry,
        )
        self.rate_limit_fail_open_total = Counter(
            "rate_limit_fail_open_total",
            "Requests let through because the cache backend failed",
            ["reason"],
            namespace=namespace,
            registry=self.registry,
        )
        self.rate_limit_blocks_total = Counter(
            "rate_limit_blocks_total",
            "Block records planted for anonymous clients",
            namespace=namespace,
            registry=self.registry,
        )
        self.token_revocations_total = Counter(
            "token_blacklist_revocations_total",
            "Access tokens added to the blacklist",
            namespace=namespace,
            registry=self.registry,
        )
        self.housekeeping_deleted_keys_total = Counter(
            "cache_housekeeping_deleted_keys_total",
            "Keys without expiry removed by the housekeeping sweep",
            ["pattern"],
            namespace=namespace,
            registry=self.registry,
        )
        self.cache_keys = Gauge(
            "cache_keys",
            "Number of cache keys per pattern at the last sweep",
            ["pattern"],
            namespace=namespace,
            registry=self.registry,
        )

    def render(self) -> tuple[bytes, str]:
        """Exposition payload and its content type."""
        return generate_latest(self.registry), CONTENT_TYPE_LATEST
