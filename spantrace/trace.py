"""
spantrace/trace.py
Trace Engine: Span Stack, Level Filtering & Subscriber Dispatch.

A Trace owns an active-span stack and a single subscriber. Spans and events
are only built when the subscriber wants them; otherwise every call is a
cheap no-op. The module also exposes a process-wide default Trace and free
functions delegating to it.
"""

from contextvars import ContextVar
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Callable, Dict, List, Optional, Tuple

from .clock import now, new_id

Fields = Dict[str, Any]

CALLBACKS = ("new_span", "on_enter", "on_exit", "on_event")


class Level(IntEnum):
    """Severity levels in ascending order."""

    TRACE = 10
    DEBUG = 20
    INFO = 30
    WARN = 40
    ERROR = 50

    @classmethod
    def coerce(cls, value: Any) -> Optional["Level"]:
        """Returns the matching Level for a Level, int or name, else None."""
        if isinstance(value, cls):
            return value
        if isinstance(value, bool):
            return None
        if isinstance(value, int):
            try:
                return cls(value)
            except ValueError:
                return None
        if isinstance(value, str):
            key = value.strip().upper()
            if key == "WARNING":
                key = "WARN"
            return cls.__members__.get(key)
        return None


@dataclass(frozen=True)
class Metadata:
    level: Level
    name: Optional[str] = None
    timestamp: float = 0.0  # ms, from clock.now()
    parent: Optional[str] = None  # id of the enclosing span
    fields: Optional[Fields] = None


@dataclass
class Span:
    """A unit of work. Stays readable after exit, but is no longer current."""

    id: str
    metadata: Metadata

    @property
    def is_noop(self) -> bool:
        """True for the placeholder returned when the level was filtered out."""
        return not self.id


@dataclass(frozen=True)
class Event:
    id: str
    metadata: Metadata
    message: Optional[str] = None


class SubscriberError(Exception):
    """Raised when one or more subscriber callbacks fail."""

    def __init__(self, callback: str, errors: List[BaseException]):
        self.callback = callback
        self.errors = list(errors)
        detail = "; ".join(repr(e) for e in self.errors)
        super().__init__(f"Subscriber callback '{callback}' failed: {detail}")


class Subscriber:
    """
    Observer of spans and events. Every capability is optional.

    Subclass and define any of new_span / on_enter / on_exit / on_event, or
    pass plain callables:

        Subscriber(on_event=events.append, min_level=Level.INFO)
    """

    min_level: Optional[Level] = None
    new_span: Optional[Callable[[Metadata], Span]] = None
    on_enter: Optional[Callable[[Span], None]] = None
    on_exit: Optional[Callable[[Span], None]] = None
    on_event: Optional[Callable[[Event], None]] = None

    def __init__(
        self,
        min_level: Optional[Level] = None,
        new_span: Optional[Callable[[Metadata], Span]] = None,
        on_enter: Optional[Callable[[Span], None]] = None,
        on_exit: Optional[Callable[[Span], None]] = None,
        on_event: Optional[Callable[[Event], None]] = None,
    ):
        if min_level is not None:
            self.min_level = min_level
        for name, fn in zip(CALLBACKS, (new_span, on_enter, on_exit, on_event)):
            if fn is not None:
                setattr(self, name, fn)

    def __repr__(self) -> str:
        caps = [name for name in CALLBACKS if capability(self, name)]
        return f"{type(self).__name__}(min_level={self.min_level!r}, callbacks={caps})"


def capability(subscriber: Any, name: str) -> Optional[Callable]:
    """Returns the subscriber's callable for `name`, or None if it has none."""
    fn = getattr(subscriber, name, None)
    return fn if callable(fn) else None


def has_callbacks(subscriber: Any) -> bool:
    return any(capability(subscriber, name) for name in CALLBACKS)


class Trace:
    """
    Records spans and events and hands them to one subscriber.

    The active-span stack lives in a ContextVar, so each thread and each
    asyncio task sees its own stack. Within one flow of control it behaves
    as a single ordered stack.
    """

    def __init__(self, subscriber: Optional[Subscriber] = None):
        self._subscriber = subscriber if subscriber is not None else Subscriber()
        self._stack: ContextVar[Tuple[Span, ...]] = ContextVar(
            f"spantrace_stack_{id(self):x}", default=()
        )

    # --- Subscriber ---

    def get_subscriber(self) -> Subscriber:
        return self._subscriber

    def set_subscriber(self, subscriber: Optional[Subscriber]) -> None:
        """Replaces the subscriber; already dispatched spans are unaffected."""
        self._subscriber = subscriber if subscriber is not None else Subscriber()

    # --- Filtering ---

    def _active_level(self, subscriber: Any, level: Any) -> Optional[Level]:
        lvl = Level.coerce(level)
        if lvl is None:
            return None
        threshold = Level.coerce(getattr(subscriber, "min_level", None)) or Level.TRACE
        if lvl < threshold or not has_callbacks(subscriber):
            return None
        return lvl

    def should_emit(self, level: Any) -> bool:
        """True iff the level is valid, passes min_level, and someone listens."""
        return self._active_level(self._subscriber, level) is not None

    # --- Stack ---

    def current(self) -> Optional[Span]:
        stack = self._stack.get()
        return stack[-1] if stack else None

    def stack(self) -> Tuple[Span, ...]:
        return self._stack.get()

    def _push(self, span: Span) -> None:
        self._stack.set(self._stack.get() + (span,))

    def _pop_if_top(self, span: Span) -> None:
        stack = self._stack.get()
        if stack and stack[-1].id == span.id:
            self._stack.set(stack[:-1])

    def suspend(self, span: Span) -> None:
        """Takes `span` off this flow's stack (if on top) without notifying."""
        self._pop_if_top(span)

    def resume(self, span: Span) -> None:
        """Pushes a suspended span onto the current flow's stack without notifying."""
        if not span.is_noop:
            self._push(span)

    # --- Dispatch ---

    def _notify(self, subscriber: Any, name: str, arg: Any) -> Any:
        fn = capability(subscriber, name)
        if fn is None:
            return None
        try:
            return fn(arg)
        except SubscriberError:
            raise
        except Exception as e:
            raise SubscriberError(name, [e]) from e

    def _metadata(self, name: Optional[str], level: Level, fields: Optional[Fields]) -> Metadata:
        top = self.current()
        return Metadata(
            level=level,
            name=name,
            timestamp=now(),
            parent=top.id if top else None,
            fields=dict(fields) if fields else None,
        )

    # --- Operations ---

    def span(self, name: str, level: Level = Level.INFO, fields: Optional[Fields] = None) -> Span:
        """Starts a span, notifies on_enter and makes it the current span."""
        subscriber = self._subscriber
        lvl = self._active_level(subscriber, level)
        if lvl is None:
            placeholder_level = Level.coerce(level) or level
            return Span(id="", metadata=Metadata(level=placeholder_level, name=name, timestamp=0))

        metadata = self._metadata(name, lvl, fields)
        sp = self._notify(subscriber, "new_span", metadata)
        if sp is None or not getattr(sp, "id", None):
            sp = Span(id=new_id(), metadata=metadata)

        self._notify(subscriber, "on_enter", sp)
        self._push(sp)
        return sp

    def enter(self, span: Span) -> None:
        """Re-attaches an existing span as the current span."""
        subscriber = self._subscriber
        if span.is_noop or self._active_level(subscriber, span.metadata.level) is None:
            return
        self._notify(subscriber, "on_enter", span)
        self._push(span)

    def exit(self, span: Span) -> None:
        """Notifies on_exit; pops the stack only if `span` is the current span."""
        subscriber = self._subscriber
        if span.is_noop or self._active_level(subscriber, span.metadata.level) is None:
            return
        try:
            self._notify(subscriber, "on_exit", span)
        finally:
            self._pop_if_top(span)

    def event(
        self,
        name: Optional[str],
        level: Level,
        message: Optional[str] = None,
        fields: Optional[Fields] = None,
    ) -> None:
        """Emits a point-in-time event parented to the current span."""
        subscriber = self._subscriber
        lvl = self._active_level(subscriber, level)
        if lvl is None:
            return
        evt = Event(id=new_id(), metadata=self._metadata(name, lvl, fields), message=message)
        self._notify(subscriber, "on_event", evt)


# --- Default Trace ---

# Created inert; an installer attaches a subscriber. Lives for the process.
default_trace: Trace = Trace()

span = default_trace.span
enter = default_trace.enter
exit = default_trace.exit
event = default_trace.event


def current_span() -> Optional[Span]:
    """Returns the current span of the default trace, or None."""
    return default_trace.current()


def set_subscriber(subscriber: Optional[Subscriber]) -> None:
    default_trace.set_subscriber(subscriber)


def get_subscriber() -> Subscriber:
    return default_trace.get_subscriber()
