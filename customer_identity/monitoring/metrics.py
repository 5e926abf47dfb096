"""
Prometheus Metrics

Defines and exports metrics for the customer identity service.
"""

from contextlib import contextmanager
import time

import structlog
from prometheus_client import Counter, Histogram

logger = structlog.get_logger()

# Singleton metrics instance
_metrics: "Metrics | None" = None


class Metrics:
    """
    Prometheus metrics for identity matching and profile aggregation.

    Tracks:
    - Matcher pass outcomes and candidate counts
    - Profile aggregation outcomes and latency
    - Partner customer stats refreshes
    """

    def __init__(self):
        self.match_pass_total = Counter(
            "customer_identity_match_pass_total",
            "Matcher passes executed",
            ["match_pass", "status"],
        )

        self.match_candidates = Histogram(
            "customer_identity_match_candidates",
            "Candidates returned per matcher call",
            buckets=[0, 1, 2, 3, 5, 10, 20, 50],
        )

        self.aggregations_total = Counter(
            "customer_identity_aggregations_total",
            "Unified customer lookups",
            ["outcome"],
        )

        self.aggregation_duration_seconds = Histogram(
            "customer_identity_aggregation_duration_seconds",
            "Unified customer lookup duration in seconds",
            buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
        )

        self.stats_refresh_total = Counter(
            "customer_identity_stats_refresh_total",
            "Partner customer stats refreshes",
            ["outcome"],
        )

        logger.debug("Prometheus metrics initialized")

    def track_match_pass(self, match_pass: str, status: str) -> None:
        self.match_pass_total.labels(match_pass=match_pass, status=status).inc()

    def observe_candidates(self, count: int) -> None:
        self.match_candidates.observe(count)

    def track_aggregation(self, outcome: str, duration_seconds: float) -> None:
        self.aggregations_total.labels(outcome=outcome).inc()
        self.aggregation_duration_seconds.observe(duration_seconds)

    def track_stats_refresh(self, outcome: str) -> None:
        self.stats_refresh_total.labels(outcome=outcome).inc()

    @contextmanager
    def time_aggregation(self):
        """Time a profile lookup; the caller sets `outcome` on the yielded dict."""
        start = time.perf_counter()
        state = {"outcome": "error"}
        try:
            yield state
        finally:
            self.track_aggregation(state["outcome"], time.perf_counter() - start)


def get_metrics() -> Metrics:
    """Get or create the singleton metrics instance."""
    global _metrics
    if _metrics is None:
        _metrics = Metrics()
    return _metrics
