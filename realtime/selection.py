"""
Single-selection state: which student, if any, the teacher is watching.
"""

from __future__ import annotations

import logging
from typing import Optional

from .registry import SessionRegistry

logger = logging.getLogger(__name__)


class UnknownStudent(LookupError):
    """Raised when selecting an id that has no live session."""

    def __init__(self, student_id: str):
        super().__init__(student_id)
        self.student_id = student_id

    def __str__(self) -> str:
        return f"no connected student with id {self.student_id!r}"


class SelectionController:
    """
    Holds the one optional selected student id and keeps the per-session
    `is_selected` flags in step with it.

    Subscribes itself to the registry's removals so a departing student can
    never stay selected.
    """

    def __init__(self, registry: SessionRegistry):
        self._registry = registry
        self._selected_id: Optional[str] = None
        registry.subscribe_removed(self.on_student_removed)

    def select(self, student_id: str) -> str:
        """Make `student_id` the broadcast target and return its latest snapshot."""
        session = self._registry.get_student(student_id)
        if session is None:
            raise UnknownStudent(student_id)

        previous_id = self._selected_id
        if previous_id is not None and previous_id != student_id:
            previous = self._registry.get_student(previous_id)
            if previous is not None:
                previous.is_selected = False

        session.is_selected = True
        self._selected_id = student_id
        logger.info("Selected student %s (was %s)", student_id, previous_id)
        return session.last_code

    def clear(self) -> Optional[str]:
        """Deselect whoever is selected; returns the id that was cleared."""
        previous_id = self._selected_id
        if previous_id is None:
            return None
        previous = self._registry.get_student(previous_id)
        if previous is not None:
            previous.is_selected = False
        self._selected_id = None
        logger.info("Selection cleared (was %s)", previous_id)
        return previous_id

    def current_selection_id(self) -> Optional[str]:
        return self._selected_id

    def on_student_removed(self, student_id: str) -> None:
        # The session record is already gone, so only the id needs clearing.
        if self._selected_id == student_id:
            self._selected_id = None
            logger.info("Selected student %s left; selection cleared", student_id)
