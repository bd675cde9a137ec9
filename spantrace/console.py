"""
spantrace/console.py
Console Subscriber: prints spans and events to stdout / stderr.
"""

import sys
from typing import Any, Optional, TextIO

from .clock import now
from .trace import Event, Level, Span, Subscriber

LEVEL_NAMES = {
    Level.TRACE: "TRACE",
    Level.DEBUG: "DEBUG",
    Level.INFO: "INFO",
    Level.WARN: "WARN",
    Level.ERROR: "ERROR",
}


def level_name(level: Any) -> str:
    return LEVEL_NAMES.get(level, str(level))


class ConsoleLayer(Subscriber):
    """
    Writes one line per span boundary or event.

    WARN and ERROR events go to the error stream, everything else to the
    output stream. Streams default to sys.stdout / sys.stderr, looked up at
    write time so redirection keeps working.
    """

    def __init__(self, stream: Optional[TextIO] = None, error_stream: Optional[TextIO] = None):
        self._stream = stream
        self._error_stream = error_stream

    @property
    def stream(self) -> TextIO:
        return self._stream if self._stream is not None else sys.stdout

    @property
    def error_stream(self) -> TextIO:
        return self._error_stream if self._error_stream is not None else sys.stderr

    def _write(self, out: TextIO, *parts: Any):
        print(*[p for p in parts if p is not None], file=out)

    def on_enter(self, span: Span):
        meta = span.metadata
        self._write(self.stream, f"[{level_name(meta.level)}] [SPAN:ENTER] ({meta.name})", meta.fields)

    def on_exit(self, span: Span):
        meta = span.metadata
        duration = now() - meta.timestamp
        self._write(
            self.stream,
            f"[{level_name(meta.level)}] [SPAN:EXIT] ({meta.name}) ({duration:.2f}ms)",
            meta.fields,
        )

    def on_event(self, evt: Event):
        meta = evt.metadata
        out = self.error_stream if meta.level >= Level.WARN else self.stream
        self._write(
            out,
            f"[{level_name(meta.level)}] ({meta.name or ''}):",
            evt.message or "",
            meta.fields,
        )
