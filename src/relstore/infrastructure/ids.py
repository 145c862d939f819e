# src/relstore/infrastructure/ids.py
import secrets
import threading
import time
import uuid
from typing import Callable, Optional

SEQUENCE_BITS = 12
SEQUENCE_MAX = (1 << SEQUENCE_BITS) - 1
TIMESTAMP_MASK = (1 << 48) - 1


class IdentifierGenerator:
    """
    Time-ordered 128-bit identifiers in the UUID version 7 layout.

    | 48 bits unix ms | 4 bits version | 12 bits sequence | 2 bits variant | 62 random bits |

    The sequence is reseeded randomly (top bit clear, leaving room to count up)
    whenever the millisecond advances. When several ids share a millisecond, or
    the wall clock steps backward, the last timestamp is reused and the
    sequence incremented; on sequence overflow the generator borrows the next
    millisecond. Timestamps emitted by one instance therefore never decrease
    and ids from one instance never repeat. Separate instances (other
    processes) rely on the random bits.
    """

    def __init__(self, clock: Optional[Callable[[], int]] = None):
        self._clock = clock or time.time_ns
        self._lock = threading.Lock()
        self._last_ms = 0
        self._sequence = 0

    def generate(self) -> uuid.UUID:
        with self._lock:
            now_ms = self._clock() // 1_000_000
            if now_ms > self._last_ms:
                self._last_ms = now_ms
                self._sequence = secrets.randbits(SEQUENCE_BITS - 1)
            else:
                self._sequence += 1
                if self._sequence > SEQUENCE_MAX:
                    self._last_ms += 1
                    self._sequence = secrets.randbits(SEQUENCE_BITS - 1)
            ms = self._last_ms
            sequence = self._sequence

        value = (
            (ms & TIMESTAMP_MASK) << 80
            | 0x7 << 76
            | sequence << 64
            | 0b10 << 62
            | secrets.randbits(62)
        )
        return uuid.UUID(int=value)


def timestamp_ms(identifier: uuid.UUID) -> int:
    return identifier.int >> 80


_default = IdentifierGenerator()


def generate() -> uuid.UUID:
    return _default.generate()
