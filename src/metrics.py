"""Prometheus metrics for the OpenStack resource operator."""

from prometheus_client import Counter, Histogram, Gauge, Info

# Reconciliation metrics
RECONCILE_TOTAL = Counter(
    "openstack_operator_reconcile_total",
    "Total number of reconciliations",
    ["resource", "operation", "status"],
)

RECONCILE_DURATION = Histogram(
    "openstack_operator_reconcile_duration_seconds",
    "Time spent in reconciliation",
    ["resource", "operation"],
    buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 600.0),
)

RECONCILE_IN_PROGRESS = Gauge(
    "openstack_operator_reconcile_in_progress",
    "Number of reconciliations currently in progress",
    ["resource"],
)

# OpenStack API metrics
OPENSTACK_API_RETRIES = Counter(
    "openstack_operator_openstack_api_retries_total",
    "Total number of OpenStack API call retries",
    ["operation"],
)

RATE_LIMIT_WAIT_SECONDS = Histogram(
    "openstack_operator_rate_limit_wait_seconds",
    "Time spent waiting for rate limit slot",
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

# State polling metrics
POLL_ATTEMPTS = Counter(
    "openstack_operator_poll_attempts_total",
    "Total number of state refresh calls made while polling",
    ["kind"],
)

POLL_OUTCOMES = Counter(
    "openstack_operator_poll_outcomes_total",
    "Total number of finished polls by outcome",
    ["kind", "outcome"],
)

POLL_DURATION = Histogram(
    "openstack_operator_poll_duration_seconds",
    "Time spent waiting for a resource to reach a target state",
    ["kind"],
    buckets=(1.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0, 600.0),
)

# Operator info
OPERATOR_INFO = Info(
    "openstack_operator",
    "Information about the OpenStack operator",
)

RESOURCES = ["OpenstackNetwork", "OpenstackClusterProfile"]
POLL_KINDS = ["network"]
POLL_RESULTS = ["success", "timeout", "error", "failed_state"]


def set_operator_info(version: str, cloud: str) -> None:
    """Set operator info labels."""
    OPERATOR_INFO.info({"version": version, "cloud": cloud})


def init_metrics() -> None:
    """Initialize all metrics with zero values.

    Prometheus metrics with labels don't appear until used.
    This ensures all metrics are visible immediately at startup.
    """
    operations = ["create", "update", "delete"]
    statuses = ["success", "error"]

    for resource in RESOURCES:
        RECONCILE_IN_PROGRESS.labels(resource=resource).set(0)
        for operation in operations:
            RECONCILE_DURATION.labels(resource=resource, operation=operation)
            for status in statuses:
                RECONCILE_TOTAL.labels(
                    resource=resource, operation=operation, status=status
                )

    for kind in POLL_KINDS:
        POLL_ATTEMPTS.labels(kind=kind)
        POLL_DURATION.labels(kind=kind)
        for outcome in POLL_RESULTS:
            POLL_OUTCOMES.labels(kind=kind, outcome=outcome)
