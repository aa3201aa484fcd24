"""
Broadcast relay between student producers and the teacher view.

Every method runs one whole transition under the Classroom lock and returns the
frame (if any) the caller must publish to the teacher group. Publishing happens
outside the lock; nothing here awaits.

Routing rules:
- code_changed: store the snapshot first, then forward it only if that student
  is the current selection.
- select: switch the selection and push the new target's snapshot right away,
  so the teacher does not stare at a blank editor until the next keystroke.
  Unknown ids are dropped.
- student_disconnected: remove the student; the selection clears with it.
"""

from __future__ import annotations

import logging
import re
from typing import List, Optional, Tuple

from .registry import StudentProfile
from .selection import UnknownStudent
from .serializers import CodeEvent
from .state import Classroom

logger = logging.getLogger(__name__)


def teacher_group_name(name: str) -> str:
    """
    Channels group names must be ASCII and shorter than 100 characters.
    """

    safe = re.sub(r"[^a-zA-Z0-9_.-]", "_", name)[:80]
    return safe or "classroom.teacher"


class BroadcastRelay:
    def __init__(self, classroom: Optional[Classroom] = None, teacher_group: str = "classroom.teacher"):
        self.classroom = classroom or Classroom()
        self.teacher_group = teacher_group_name(teacher_group)

    def student_connected(
        self,
        student_id: str,
        profile: StudentProfile,
        connection_id: Optional[str] = None,
    ) -> None:
        with self.classroom.lock:
            self.classroom.registry.add_student(student_id, profile, connection_id=connection_id)

    def student_disconnected(self, student_id: str, connection_id: Optional[str] = None) -> bool:
        """Remove a student; returns whether a session was dropped.

        With a connection_id, only the connection that owns the session can
        remove it; a tab closing after the student re-joined elsewhere is ignored.
        """
        with self.classroom.lock:
            registry = self.classroom.registry
            if connection_id is not None:
                session = registry.get_student(student_id)
                if session is not None and session.connection_id not in (None, connection_id):
                    logger.info(
                        "Ignoring close of stale connection %s for student %s", connection_id, student_id
                    )
                    return False
            return registry.remove_student(student_id)

    def code_changed(self, student_id: str, code: str) -> Optional[CodeEvent]:
        with self.classroom.lock:
            if not self.classroom.registry.update_code(student_id, code):
                logger.debug("Dropping code from unregistered student %s", student_id)
                return None
            # Read the selection after the update, in the same critical section.
            if self.classroom.selection.current_selection_id() != student_id:
                return None
            logger.debug("Forwarding %d chars from %s", len(code), student_id)
            return self._event(student_id, code)

    def select(self, student_id: str) -> Optional[CodeEvent]:
        with self.classroom.lock:
            try:
                snapshot = self.classroom.selection.select(student_id)
            except UnknownStudent as exc:
                # The student may have disconnected while the command was in flight.
                logger.info("Dropping selection: %s", exc)
                return None
            return self._event(student_id, snapshot)

    def deselect(self) -> Optional[str]:
        with self.classroom.lock:
            return self.classroom.selection.clear()

    def current_selection_id(self) -> Optional[str]:
        with self.classroom.lock:
            return self.classroom.selection.current_selection_id()

    def current_view(self) -> Tuple[Optional[str], Optional[CodeEvent]]:
        """Selected id and its snapshot, read together for a teacher socket that just connected."""
        with self.classroom.lock:
            selected_id = self.classroom.selection.current_selection_id()
            if selected_id is None:
                return None, None
            session = self.classroom.registry.get_student(selected_id)
            if session is None:
                return None, None
            return selected_id, self._event(selected_id, session.last_code)

    def current_snapshot(self) -> Optional[CodeEvent]:
        return self.current_view()[1]

    def roster(self) -> List[StudentProfile]:
        with self.classroom.lock:
            return self.classroom.registry.list_students()

    def student_count(self) -> int:
        with self.classroom.lock:
            return len(self.classroom.registry)

    def _event(self, student_id: str, code: str) -> CodeEvent:
        # Caller holds the lock, so seq follows the order of transitions.
        return CodeEvent(editor=code, student_id=student_id, seq=self.classroom.next_seq())
