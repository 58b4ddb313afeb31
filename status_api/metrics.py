"""
Prometheus metrics: committed status transitions, rejected requests, GRN cascades.
"""
from prometheus_client import Counter, generate_latest

status_transitions_total = Counter(
    "status_transitions_total",
    "Total committed status writes",
    ["entity", "to_status"],
)
status_rejections_total = Counter(
    "status_rejections_total",
    "Total status change requests rejected before any write",
    ["entity", "reason"],
)

# GRN -> purchase order inbound status cascade (best effort)
status_cascades_total = Counter(
    "status_cascades_total",
    "Total cascaded purchase order inbound status writes",
    ["to_status"],
)
status_cascade_failures_total = Counter(
    "status_cascade_failures_total",
    "Total cascaded writes that failed or found no purchase order (primary write kept)",
)


def get_metrics_content_type():
    return "text/plain; charset=utf-8; version=0.0.4"


def get_metrics_bytes():
    return generate_latest()
