"""
Classroom state: one registry, one selection controller and the lock that
serializes every transition across the two.
"""

from __future__ import annotations

import itertools
import threading

from .registry import SessionRegistry
from .selection import SelectionController


class Classroom:
    """Owned state object handed to the relay; there is no module-level instance."""

    def __init__(self) -> None:
        self.registry = SessionRegistry()
        self.selection = SelectionController(self.registry)
        # Re-entrant so a relay step may call another relay step.
        self.lock = threading.RLock()
        self._seq = itertools.count(1)

    def next_seq(self) -> int:
        """Order stamp for frames bound to the teacher view. Call with the lock held."""
        return next(self._seq)
