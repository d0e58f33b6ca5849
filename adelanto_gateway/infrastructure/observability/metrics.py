"""Prometheus metrics for wizard step outcomes, SOAP calls and webhook performance"""

from prometheus_client import Counter, Histogram

# Step metrics
step_outcome_counter = Counter(
    "adelanto_step_total",
    "Wizard step outcomes",
    ["step", "outcome"],  # outcome: success | <error_type>
)

commission_issue_counter = Counter(
    "adelanto_commission_issue_total",
    "Disbursements completed with commission collection failure (code 34)",
)

# SOAP metrics
soap_latency_histogram = Histogram(
    "soap_call_latency_seconds",
    "Legacy SOAP service response time",
    ["operation"],
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 15.0],
)

soap_failure_counter = Counter(
    "soap_call_failures_total",
    "SOAP calls that raised (transport or protocol)",
    ["operation", "reason"],  # connection | protocol
)

soap_decode_fallback_counter = Counter(
    "soap_decode_fallback_total",
    "Result strings that were not JSON and were taken as plain messages",
    ["operation"],
)

# Webhook metrics
webhook_latency_histogram = Histogram(
    "webhook_latency_seconds",
    "Notification webhook response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

webhook_failure_counter = Counter(
    "webhook_failures_total",
    "Failed webhook delivery attempts",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_step_outcome(step: str, success: bool, error_type: str | None = None) -> None:
    """Record step outcome; failures are labelled by their routing tag"""
    outcome = "success" if success else (error_type or "general")
    step_outcome_counter.labels(step=step, outcome=outcome).inc()
