"""
spantrace/log.py
Leveled Logger & Scoped Spans on top of a Trace.

    from spantrace import log

    log.info("Processing request %s", request_id, user="alice")

    with log.span.info("handle-request", {"request_id": request_id}):
        ...

    @log.instrument("reports.build")
    async def build_report(): ...
"""

import json
import inspect
import functools
import traceback
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from .trace import Fields, Level, Span, Trace, default_trace


class ScopedSpan:
    """Handle for an open span. Exits at most once; usable as a context manager."""

    def __init__(self, trace: Trace, span: Span):
        self.trace = trace
        self.span = span
        self.closed = False

    def exit(self):
        if self.closed:
            return
        self.closed = True
        self.trace.exit(self.span)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.exit()
        return False

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.exit()
        return False


async def _exit_when_settled(trace: Trace, span: Span, awaitable: Awaitable) -> Any:
    # Runs in the awaiting flow, which may be another task
    trace.resume(span)
    try:
        return await awaitable
    finally:
        trace.exit(span)


def _run_in_span(trace: Trace, span: Span, fn: Callable[[], Any]) -> Any:
    try:
        result = fn()
    except BaseException:
        trace.exit(span)
        raise

    if inspect.isawaitable(result):
        trace.suspend(span)
        return _exit_when_settled(trace, span, result)

    trace.exit(span)
    return result


def _format_exception(exc: BaseException) -> Dict[str, Any]:
    return {
        "stack": "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
        "name": type(exc).__name__,
        "cause": repr(exc.__cause__) if exc.__cause__ is not None else None,
    }


def _render(message: Any, args: tuple) -> str:
    if isinstance(message, str):
        if not args:
            return message
        try:
            return message % args
        except (TypeError, ValueError):
            return " ".join([message, *map(str, args)])
    if message is None or isinstance(message, (bool, int, float)):
        return str(message)
    return json.dumps(message, default=str)


class SpanFactory:
    """
    Opens spans at a fixed level; `.trace/.debug/.info/.warn/.error` pick
    another level.

        span(name)                 -> ScopedSpan
        span(name, fields)         -> ScopedSpan
        span(name, fn)             -> fn() run inside the span
        span(name, fields, fn)     -> fn() run inside the span
    """

    def __init__(self, logger: "Logger", level: Level):
        self._logger = logger
        self.level = level

    def __call__(
        self,
        name: str,
        fields: Union[Fields, Callable[[], Any], None] = None,
        fn: Optional[Callable[[], Any]] = None,
    ):
        if fn is None and callable(fields):
            fields, fn = None, fields
        return self._logger._open_span(self.level, name, fields, fn)

    @property
    def trace(self) -> "SpanFactory":
        return SpanFactory(self._logger, Level.TRACE)

    @property
    def debug(self) -> "SpanFactory":
        return SpanFactory(self._logger, Level.DEBUG)

    @property
    def info(self) -> "SpanFactory":
        return SpanFactory(self._logger, Level.INFO)

    @property
    def warn(self) -> "SpanFactory":
        return SpanFactory(self._logger, Level.WARN)

    @property
    def error(self) -> "SpanFactory":
        return SpanFactory(self._logger, Level.ERROR)


class Logger:
    """Structured logger emitting events and spans into one Trace."""

    def __init__(self, trace: Trace, fields: Optional[Fields] = None):
        self._trace = trace
        self.fields: Dict[str, Any] = dict(fields or {})
        self.span = SpanFactory(self, Level.TRACE)

    def bind(self, **fields) -> "Logger":
        """Returns a logger adding `fields` to every record."""
        return Logger(self._trace, {**self.fields, **fields})

    # --- Events ---

    def log(self, level: Level, message: Any = None, /, *args, **fields):
        if not self._trace.should_emit(level):
            return

        merged = {**self.fields, **fields}
        if isinstance(message, BaseException):
            merged.update(_format_exception(message))
            self._trace.event(type(message).__name__, level, str(message), merged)
            return

        self._trace.event(None, level, _render(message, args), merged)

    def trace(self, message: Any = None, /, *args, **fields):
        self.log(Level.TRACE, message, *args, **fields)

    def debug(self, message: Any = None, /, *args, **fields):
        self.log(Level.DEBUG, message, *args, **fields)

    def info(self, message: Any = None, /, *args, **fields):
        self.log(Level.INFO, message, *args, **fields)

    def warn(self, message: Any = None, /, *args, **fields):
        self.log(Level.WARN, message, *args, **fields)

    def error(self, message: Any = None, /, *args, **fields):
        self.log(Level.ERROR, message, *args, **fields)

    # --- Spans ---

    async def _run_async_in_span(self, level: Level, name: str, fields: Fields, fn):
        # Opened inside the coroutine so the span lives on the awaiting task's stack
        with ScopedSpan(self._trace, self._trace.span(name, level, fields)):
            return await fn()

    def _open_span(self, level: Level, name: str, fields: Optional[Fields], fn):
        merged = {**self.fields, **(fields or {})}
        if fn is not None and inspect.iscoroutinefunction(fn):
            return self._run_async_in_span(level, name, merged, fn)

        sp = self._trace.span(name, level, merged)
        if fn is None:
            return ScopedSpan(self._trace, sp)
        return _run_in_span(self._trace, sp, fn)

    def instrument(self, name: Optional[str] = None, level: Level = Level.INFO):
        """Decorator running every call of the function inside a span."""

        def decorator(func):
            span_name = name or func.__qualname__

            if inspect.iscoroutinefunction(func):

                @functools.wraps(func)
                async def async_wrapper(*args, **kwargs):
                    with self.span_at(level, span_name):
                        return await func(*args, **kwargs)

                return async_wrapper

            @functools.wraps(func)
            def wrapper(*args, **kwargs):
                with self.span_at(level, span_name):
                    return func(*args, **kwargs)

            return wrapper

        return decorator

    def span_at(self, level: Level, name: str, fields: Optional[Fields] = None) -> ScopedSpan:
        return self._open_span(level, name, fields, None)


default_logger = Logger(default_trace)

span = default_logger.span
trace = default_logger.trace
debug = default_logger.debug
info = default_logger.info
warn = default_logger.warn
error = default_logger.error
instrument = default_logger.instrument
