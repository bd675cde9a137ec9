"""
spantrace/clock.py
Timestamps and unique identifiers for spans and events.
"""

import time
import uuid
import random
import string

_ALPHABET = string.digits + string.ascii_lowercase


def now() -> float:
    """Milliseconds from a monotonic high-resolution clock (wall clock if unavailable)."""
    try:
        return time.perf_counter() * 1000.0
    except (AttributeError, OSError):
        return time.time() * 1000.0


def _fallback_id(length: int = 26) -> str:
    return "".join(random.choice(_ALPHABET) for _ in range(length))


def new_id() -> str:
    """Returns a random UUID, or a base-36 pseudo-random id when os.urandom is missing."""
    try:
        return str(uuid.uuid4())
    except NotImplementedError:
        # uuid4 relies on os.urandom
        return _fallback_id()
