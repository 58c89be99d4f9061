"""Identifier generation for tasks, shop items and storage instances."""

import time
import uuid
from collections.abc import Callable, Iterable


class MonotonicIdGenerator:
    """Issue integer ids derived from wall-clock milliseconds.

    Ids never repeat within one generator: when two ids are requested in the
    same millisecond (or the clock steps backwards) the previous id plus one
    is used instead.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._last = 0

    def next_id(self, taken: Iterable[int] = ()) -> int:
        """Return a fresh id that is greater than every id issued so far and not in ``taken``."""
        taken_ids = set(taken)
        candidate = max(int(self._clock() * 1000), self._last + 1)
        while candidate in taken_ids:
            candidate += 1
        self._last = candidate
        return candidate


def new_storage_unique_id() -> str:
    """Return a globally unique id for a purchased storage instance."""
    return str(uuid.uuid4())
