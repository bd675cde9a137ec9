"""
spantrace/config.py
Environment-driven setup of the default subscriber stack.

Variables (a local .env file is honoured):
    SPANTRACE_LEVEL     minimum level (TRACE, DEBUG, INFO, WARN, ERROR)
    SPANTRACE_CONSOLE   print to the console (default: true)
    SPANTRACE_LOGGING   forward events to stdlib logging (default: false)
    SPANTRACE_METRICS   record Prometheus metrics (default: false)
    SPANTRACE_LOG_DIR   directory for JSON-lines diagnostics
"""

import os
import logging
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from .console import ConsoleLayer
from .logger import LOG_DIR_ENV, LoggingLayer, get_logger
from .metrics import MetricsLayer
from .subscribe import Builder, LayeredSubscriber
from .trace import Level, Trace

logger = get_logger("Config")

TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class TraceSettings:
    min_level: Level = Level.TRACE
    console: bool = True
    log_events: bool = False
    metrics: bool = False
    log_dir: Optional[str] = None


def _flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in TRUTHY


def load_settings(dotenv: bool = True, env_file: Optional[str] = None) -> TraceSettings:
    """Reads TraceSettings from the environment."""
    if dotenv:
        load_dotenv(env_file)

    raw_level = os.getenv("SPANTRACE_LEVEL", "TRACE")
    min_level = Level.coerce(raw_level)
    if min_level is None:
        logger.warning(f"Unknown SPANTRACE_LEVEL {raw_level!r}, falling back to TRACE")
        min_level = Level.TRACE

    return TraceSettings(
        min_level=min_level,
        console=_flag("SPANTRACE_CONSOLE", True),
        log_events=_flag("SPANTRACE_LOGGING", False),
        metrics=_flag("SPANTRACE_METRICS", False),
        log_dir=os.getenv(LOG_DIR_ENV) or None,
    )


def build_from_settings(settings: TraceSettings) -> Builder:
    builder = Builder().with_min_level(settings.min_level)
    if settings.console:
        builder.with_layer(ConsoleLayer())
    if settings.log_events:
        builder.with_layer(LoggingLayer(get_logger("Events", settings.log_dir, level=logging.DEBUG)))
    if settings.metrics:
        builder.with_layer(MetricsLayer())
    return builder


def install_from_env(trace: Optional[Trace] = None, dotenv: bool = True) -> LayeredSubscriber:
    """Loads settings and installs the resulting subscriber."""
    settings = load_settings(dotenv=dotenv)
    return build_from_settings(settings).install(trace)
