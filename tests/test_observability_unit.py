import sys
import os
import json
import logging
import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
from spantrace import trace as tracing
from spantrace.logger import LoggingLayer, get_logger, to_snake
from spantrace.metrics import EVENTS_TOTAL, SPAN_DURATION, SPANS_TOTAL, MetricsLayer, metrics_snapshot
from spantrace.subscribe import Builder
from spantrace.trace import Level, Subscriber, Trace


@pytest.fixture
def obs_dir(tmp_path, monkeypatch):
    """Redirects JSON-lines diagnostics to a temp dir."""
    monkeypatch.setenv("SPANTRACE_LOG_DIR", str(tmp_path))
    return tmp_path


def test_to_snake():
    assert to_snake("TestComponent") == "test_component"
    assert to_snake("Builder") == "builder"


def test_logger_structure(obs_dir):
    """Verify logs are valid JSON carrying the current span."""
    log_file = obs_dir / "test_component.jsonl"
    logger = get_logger("TestComponent")

    previous = tracing.get_subscriber()
    tracing.set_subscriber(Subscriber(on_enter=lambda sp: None))
    try:
        sp = tracing.span("request")
        logger.info("Test message", extra={"props": {"attempt": 2}})
        tracing.exit(sp)
    finally:
        tracing.set_subscriber(previous)

    for h in logger.handlers:
        h.flush()

    assert log_file.exists()
    with open(log_file, "r") as f:
        entry = json.loads(f.readline())

    assert entry["component"] == "spantrace.TestComponent"
    assert entry["message"] == "Test message"
    assert entry["span_id"] == sp.id
    assert entry["attempt"] == 2


def test_get_logger_adds_handlers_once(obs_dir):
    first = get_logger("Repeated")
    second = get_logger("Repeated")

    assert first is second
    file_handlers = [h for h in first.handlers if isinstance(h, logging.FileHandler)]
    assert len(file_handlers) == 1
    assert len(first.handlers) == 2


def test_get_logger_keeps_level_unless_given():
    fresh = get_logger("FreshLevel")
    assert fresh.level == logging.INFO

    get_logger("Sticky", level=logging.DEBUG)
    again = get_logger("Sticky")
    assert again.level == logging.DEBUG


def test_logging_layer_forwards_events(caplog):
    logger = logging.getLogger("spantrace.tests.events")
    logger.setLevel(logging.DEBUG)
    tr = Trace(LoggingLayer(logger))

    with caplog.at_level(logging.DEBUG, logger="spantrace.tests.events"):
        sp = tr.span("job", Level.INFO, {"job_id": 7})
        tr.event("progress", Level.WARN, "halfway", {"pct": 50})
        tr.exit(sp)

    records = caplog.records
    assert [r.levelno for r in records] == [logging.DEBUG, logging.WARNING, logging.DEBUG]
    warning = records[1]
    assert warning.getMessage() == "halfway"
    assert warning.props["pct"] == 50
    assert warning.props["parent"] == sp.id
    assert records[2].props["duration_ms"] >= 0


def test_metrics_layer_counts():
    """Verify Prometheus counters move with spans and events."""
    before_spans = SPANS_TOTAL.labels(level="INFO")._value.get()
    before_events = EVENTS_TOTAL.labels(level="ERROR")._value.get()

    tr = Trace()
    Builder().with_layer(MetricsLayer()).install(tr)
    sp = tr.span("metered", Level.INFO)
    tr.event(None, Level.ERROR, "failure")
    tr.exit(sp)

    assert SPANS_TOTAL.labels(level="INFO")._value.get() == before_spans + 1
    assert EVENTS_TOTAL.labels(level="ERROR")._value.get() == before_events + 1
    assert SPAN_DURATION.labels(name="metered")._sum.get() >= 0


def test_metrics_snapshot_lists_spantrace_samples():
    Trace(MetricsLayer()).event(None, Level.INFO, "tick")
    names = {s["name"] for s in metrics_snapshot()}

    assert "spantrace_events_total" in names
    assert all(name.startswith("spantrace") for name in names)
