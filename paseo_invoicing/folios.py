"""Monotonic folio numbering shared by request handler threads."""

from __future__ import annotations

import threading

from .config import FOLIO_MAX
from .errors import InvalidFolio


class FolioExhausted(InvalidFolio):
    code = "folio_exhausted"


class FolioSequence:
    """Reserve folios in increasing order; never reuses or wraps around."""

    def __init__(self, start: int = 1, limit: int = FOLIO_MAX) -> None:
        if start < 0 or limit < 0:
            raise ValueError("start and limit must not be negative")
        self._next = start
        self._limit = limit
        self._lock = threading.Lock()

    @property
    def limit(self) -> int:
        return self._limit

    def peek(self) -> int:
        with self._lock:
            return self._next

    def next(self) -> int:
        with self._lock:
            if self._next > self._limit:
                raise FolioExhausted(f"Folio sequence exhausted after {self._limit}.")
            folio = self._next
            self._next += 1
            return folio

    def __iter__(self):
        return self

    def __next__(self) -> int:
        try:
            return self.next()
        except FolioExhausted:
            raise StopIteration from None
