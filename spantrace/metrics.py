"""
spantrace/metrics.py
Prometheus Metrics Subscriber.

- Counts spans and events per level
- Records span durations per span name
- Snapshot of all 'spantrace_*' samples for tests / debugging (no HTTP export)
"""

import time
from typing import Dict, List

from prometheus_client import REGISTRY, Counter, Histogram

from .clock import now
from .console import level_name
from .trace import Event, Span, Subscriber

# ---------------------------------------------------------------------
# METRIC DEFINITIONS
# ---------------------------------------------------------------------

SPANS_TOTAL = Counter("spantrace_spans_total", "Spans entered", ["level"])

SPAN_EXITS_TOTAL = Counter("spantrace_span_exits_total", "Spans exited", ["level"])

EVENTS_TOTAL = Counter("spantrace_events_total", "Events emitted", ["level"])

SPAN_DURATION = Histogram(
    "spantrace_span_duration_ms",
    "Span duration from creation to exit",
    ["name"],
    buckets=(1, 5, 10, 50, 100, 500, 1000, 5000, 10000),
)


class MetricsLayer(Subscriber):
    """Updates the module-level Prometheus collectors."""

    def on_enter(self, span: Span):
        SPANS_TOTAL.labels(level=level_name(span.metadata.level)).inc()

    def on_exit(self, span: Span):
        meta = span.metadata
        SPAN_EXITS_TOTAL.labels(level=level_name(meta.level)).inc()
        SPAN_DURATION.labels(name=meta.name or "").observe(max(now() - meta.timestamp, 0.0))

    def on_event(self, evt: Event):
        EVENTS_TOTAL.labels(level=level_name(evt.metadata.level)).inc()


# ---------------------------------------------------------------------
# SNAPSHOTTING
# ---------------------------------------------------------------------


def metrics_snapshot() -> List[Dict]:
    """Returns every 'spantrace_*' sample currently in the default registry."""
    data = []
    ts = time.time()

    for metric in REGISTRY.collect():
        if metric.name.startswith("spantrace"):
            for sample in metric.samples:
                data.append(
                    {
                        "name": sample.name,
                        "labels": sample.labels,
                        "value": sample.value,
                        "timestamp": ts,
                    }
                )
    return data
