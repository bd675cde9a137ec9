"""
spantrace/logger.py
Structured JSON Logger & stdlib logging bridge.
"""

import os
import re
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional

from .clock import now
from .trace import Event, Level, Span, Subscriber, current_span

LOG_DIR_ENV = "SPANTRACE_LOG_DIR"

# TRACE has no stdlib counterpart
STDLIB_LEVELS: Dict[Level, int] = {
    Level.TRACE: logging.DEBUG,
    Level.DEBUG: logging.DEBUG,
    Level.INFO: logging.INFO,
    Level.WARN: logging.WARNING,
    Level.ERROR: logging.ERROR,
}


class JsonFormatter(logging.Formatter):
    def format(self, record):
        span = current_span()
        log_record = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
            "span_id": span.id if span else None,
        }
        if hasattr(record, "props"):
            log_record.update(record.props)
        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_record, default=str)


def to_snake(name):
    """Converts CamelCase to snake_case."""
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


def get_logger(name: str, output_dir: str = None, level: Optional[int] = None):
    """
    Returns the `spantrace.<name>` logger with a console handler and, when an
    output dir is configured (argument > SPANTRACE_LOG_DIR), a JSON-lines file.
    The level is only changed when given; a fresh logger starts at INFO.
    """
    if not output_dir:
        output_dir = os.getenv(LOG_DIR_ENV)

    logger = logging.getLogger(f"spantrace.{name}")
    if level is not None:
        logger.setLevel(level)
    elif logger.level == logging.NOTSET:
        logger.setLevel(logging.INFO)

    if output_dir:
        Path(output_dir).mkdir(parents=True, exist_ok=True)

        # SpanBuilder -> span_builder.jsonl
        target_file = Path(output_dir) / f"{to_snake(name)}.jsonl"

        has_file_handler = any(
            isinstance(h, logging.FileHandler)
            and Path(h.baseFilename).resolve() == target_file.resolve()
            for h in logger.handlers
        )
        if not has_file_handler:
            fh = logging.FileHandler(target_file)
            fh.setFormatter(JsonFormatter())
            logger.addHandler(fh)

    # Ensure console handler exists (once)
    has_stream = any(
        isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
        for h in logger.handlers
    )
    if not has_stream:
        ch = logging.StreamHandler()
        ch.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
        logger.addHandler(ch)

    return logger


class LoggingLayer(Subscriber):
    """Forwards events (and span boundaries at DEBUG) to a stdlib logger."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or get_logger("Events", level=logging.DEBUG)

    def on_enter(self, span: Span):
        meta = span.metadata
        self.logger.debug(
            f"enter {meta.name}",
            extra={"props": {**(meta.fields or {}), "span": span.id, "parent": meta.parent}},
        )

    def on_exit(self, span: Span):
        meta = span.metadata
        duration_ms = round(now() - meta.timestamp, 2)
        self.logger.debug(
            f"exit {meta.name} ({duration_ms}ms)",
            extra={
                "props": {
                    **(meta.fields or {}),
                    "span": span.id,
                    "parent": meta.parent,
                    "duration_ms": duration_ms,
                }
            },
        )

    def on_event(self, evt: Event):
        meta = evt.metadata
        props = {"event": evt.id, "name": meta.name, "parent": meta.parent}
        # Record fields may not override the bookkeeping keys
        props = {**(meta.fields or {}), **props}
        self.logger.log(
            STDLIB_LEVELS.get(meta.level, logging.INFO),
            evt.message or "",
            extra={"props": props},
        )
