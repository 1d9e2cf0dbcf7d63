"""Prometheus metrics for labctl.

Tracks how long each lab operation takes and how many per-node errors it
reported. ``get_metrics()`` renders the default registry in Prometheus
exposition format for scraping or for a textfile collector.
"""
from __future__ import annotations

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Histogram,
    generate_latest,
)

operation_duration = Histogram(
    "labctl_operation_seconds",
    "Duration of lab lifecycle operations",
    ["operation", "status"],
    buckets=(0.5, 1, 2, 5, 10, 30, 60, 120, 300, 600, float("inf")),
)

node_errors = Counter(
    "labctl_node_errors_total",
    "Total per-node errors reported by lab operations",
    ["operation", "kind"],
)


def get_metrics() -> tuple[bytes, str]:
    """Generate Prometheus metrics output."""
    return generate_latest(REGISTRY), CONTENT_TYPE_LATEST
