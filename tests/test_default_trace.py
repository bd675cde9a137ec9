import sys
import os
import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
from spantrace import trace as tracing
from spantrace.trace import Level, Subscriber


@pytest.fixture
def events():
    """Temporarily attaches a recording subscriber to the default trace."""
    previous = tracing.get_subscriber()
    received = []
    tracing.set_subscriber(
        Subscriber(
            on_enter=lambda sp: received.append(("enter", sp)),
            on_exit=lambda sp: received.append(("exit", sp)),
            on_event=lambda evt: received.append(("event", evt)),
        )
    )
    yield received
    tracing.set_subscriber(previous)


def test_free_functions_delegate_to_default_trace(events):
    sp = tracing.span("startup", Level.INFO)
    assert tracing.current_span() is sp

    tracing.event("ready", Level.INFO, "Application started")
    tracing.exit(sp)
    tracing.enter(sp)
    tracing.exit(sp)

    kinds = [kind for kind, _ in events]
    assert kinds == ["enter", "event", "exit", "enter", "exit"]
    assert events[1][1].metadata.parent == sp.id
    assert tracing.current_span() is None


def test_set_subscriber_none_resets_to_inert():
    previous = tracing.get_subscriber()
    try:
        tracing.set_subscriber(None)
        assert isinstance(tracing.get_subscriber(), Subscriber)
        assert tracing.span("x").is_noop
    finally:
        tracing.set_subscriber(previous)
