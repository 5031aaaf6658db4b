"""Prometheus metrics for trip synchronization."""

from prometheus_client import Counter, Histogram

feed_events_total = Counter(
    "feed_events_total",
    "Change-feed events delivered to listeners",
    ["table", "event"],
)

feed_listener_errors_total = Counter(
    "feed_listener_errors_total",
    "Change-feed listener invocations that raised",
    ["table"],
)

external_call_latency_ms = Histogram(
    "external_call_latency_ms",
    "Outbound call latency in milliseconds",
    ["call", "outcome"],
    buckets=[50, 100, 250, 500, 1000, 2500, 5000, 10000, 30000, 60000],
)

external_call_errors_total = Counter(
    "external_call_errors_total",
    "Outbound call failures",
    ["call", "reason"],
)

optimistic_rollbacks_total = Counter(
    "optimistic_rollbacks_total",
    "Optimistic local changes reverted after a failed write",
    ["action"],
)

itinerary_transitions_total = Counter(
    "itinerary_transitions_total",
    "Itinerary status transitions applied by the store",
    ["status"],
)


class PrometheusSyncMetrics:
    """Prometheus-based sync metrics implementation."""

    def inc_feed_event(self, table: str, event: str) -> None:
        """Count a delivered feed event."""
        feed_events_total.labels(table=table, event=event).inc()

    def inc_listener_error(self, table: str) -> None:
        feed_listener_errors_total.labels(table=table).inc()

    def record_external_call(self, call: str, outcome: str, latency_ms: float) -> None:
        """Record outbound call latency."""
        external_call_latency_ms.labels(call=call, outcome=outcome).observe(latency_ms)

    def inc_external_error(self, call: str, reason: str) -> None:
        """Increment outbound error counter."""
        external_call_errors_total.labels(call=call, reason=reason).inc()

    def inc_rollback(self, action: str) -> None:
        optimistic_rollbacks_total.labels(action=action).inc()

    def inc_transition(self, status: str) -> None:
        itinerary_transitions_total.labels(status=status).inc()
