"""
spantrace/subscribe.py
Layered Subscriber Builder.

Composes an ordered list of subscriber layers into one subscriber and
installs it into a Trace (the default one unless told otherwise).
"""

from typing import Any, Callable, List, Optional, Union

from .clock import new_id
from .logger import get_logger
from .trace import (
    Event,
    Level,
    Metadata,
    Span,
    Subscriber,
    SubscriberError,
    Trace,
    capability,
    default_trace,
)

logger = get_logger("Builder")

Record = Union[Span, Event]
Predicate = Callable[[Record], bool]


class LayeredSubscriber(Subscriber):
    """Fans every callback out to each layer implementing it, in order."""

    def __init__(
        self,
        layers: List[Any],
        min_level: Level = Level.TRACE,
        filters: Optional[List[Predicate]] = None,
    ):
        self.layers = list(layers)
        self.min_level = min_level
        self.filters = list(filters or [])

    def _accepts(self, record: Record) -> bool:
        return all(predicate(record) for predicate in self.filters)

    def _fan_out(self, name: str, record: Record):
        if not self._accepts(record):
            return

        errors = []
        for layer in self.layers:
            fn = capability(layer, name)
            if fn is None:
                continue
            try:
                fn(record)
            except Exception as e:
                logger.error(f"Layer {type(layer).__name__}.{name} failed: {e!r}")
                errors.append(e)

        if errors:
            raise SubscriberError(name, errors) from errors[0]

    def new_span(self, metadata: Metadata) -> Span:
        for layer in self.layers:
            fn = capability(layer, "new_span")
            if fn is not None:
                return fn(metadata)
        return Span(id=new_id(), metadata=metadata)

    def on_enter(self, span: Span):
        self._fan_out("on_enter", span)

    def on_exit(self, span: Span):
        self._fan_out("on_exit", span)

    def on_event(self, evt: Event):
        self._fan_out("on_event", evt)


class Builder:
    """
    Fluent builder for a LayeredSubscriber.

        Builder().with_min_level(Level.INFO).with_layer(ConsoleLayer()).install()
    """

    def __init__(self):
        self.min_level = Level.TRACE
        self.layers: List[Any] = []
        self.filters: List[Predicate] = []

    def with_min_level(self, level: Level) -> "Builder":
        lvl = Level.coerce(level)
        if lvl is None:
            logger.warning(f"Ignoring invalid min level {level!r}, keeping {self.min_level.name}")
            return self
        self.min_level = lvl
        return self

    def with_layer(self, layer: Any) -> "Builder":
        self.layers.append(layer)
        return self

    def with_filter(self, predicate: Predicate) -> "Builder":
        """Only records accepted by every predicate reach the layers."""
        self.filters.append(predicate)
        return self

    def build(self) -> LayeredSubscriber:
        return LayeredSubscriber(self.layers, self.min_level, self.filters)

    def install(self, trace: Optional[Trace] = None) -> LayeredSubscriber:
        """Installs the merged subscriber into `trace`, or the default trace."""
        subscriber = self.build()
        target = trace if trace is not None else default_trace
        target.set_subscriber(subscriber)
        logger.debug(
            f"Installed {len(self.layers)} layer(s) at {self.min_level.name}"
        )
        return subscriber
