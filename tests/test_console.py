import sys
import os
import io
import re
import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
from spantrace.console import ConsoleLayer
from spantrace.subscribe import Builder
from spantrace.trace import Level, Trace


@pytest.fixture
def trace():
    tr = Trace()
    Builder().with_layer(ConsoleLayer()).install(tr)
    return tr


def test_span_enter_and_exit_lines(trace, capsys):
    sp = trace.span("process-request", Level.INFO, {"requestId": "123"})
    trace.exit(sp)

    lines = capsys.readouterr().out.splitlines()
    assert lines[0] == "[INFO] [SPAN:ENTER] (process-request) {'requestId': '123'}"
    assert re.fullmatch(
        r"\[INFO\] \[SPAN:EXIT\] \(process-request\) \(\d+\.\d{2}ms\) \{'requestId': '123'\}",
        lines[1],
    )


def test_events_choose_stream_by_level(trace, capsys):
    trace.event("user-login", Level.INFO, "User logged in", {"userId": "123"})
    trace.event(None, Level.WARN, "disk almost full")
    trace.event("db", Level.ERROR, "connection lost")

    captured = capsys.readouterr()
    assert captured.out.strip() == "[INFO] (user-login): User logged in {'userId': '123'}"
    assert captured.err.splitlines() == [
        "[WARN] (): disk almost full",
        "[ERROR] (db): connection lost",
    ]


def test_explicit_streams():
    out, err = io.StringIO(), io.StringIO()
    tr = Trace(ConsoleLayer(stream=out, error_stream=err))

    tr.event("x", Level.DEBUG, "detail")
    tr.event("x", Level.ERROR, "fatal")

    assert out.getvalue() == "[DEBUG] (x): detail\n"
    assert err.getvalue() == "[ERROR] (x): fatal\n"
