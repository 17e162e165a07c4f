"""
Identifier generation

Stores and the checkout orchestrator take an id generator as a constructor
argument, so tests can make ids deterministic.
"""
import secrets
import threading
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol


class IdGenerator(Protocol):
    def next_id(self) -> str:
        ...


class SequenceIdGenerator:
    """Monotonic integer ids, thread-safe. Used by the in-memory stores."""

    def __init__(self, start: int = 1):
        self._next = start
        self._lock = threading.Lock()

    def next_int(self) -> int:
        with self._lock:
            value = self._next
            self._next += 1
            return value

    def next_id(self) -> str:
        return str(self.next_int())


class OrderNumberGenerator:
    """
    Generate order ids.

    Format: ORD-YYYYMMDD-XXXXXXXX (random hex suffix)
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def next_id(self) -> str:
        date_part = self._clock().strftime("%Y%m%d")
        return f"ORD-{date_part}-{secrets.token_hex(4).upper()}"
