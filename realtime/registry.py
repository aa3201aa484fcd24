"""
In-memory registry of connected students.

Design:
- One dict keyed by student id holds the StudentSession records.
- Records are owned here; other components refer to students by id only.
- Removal listeners (the selection controller) are told about every removed id,
  so a selection can never point at a student who has left.

The registry does no locking of its own; callers serialize access through the
Classroom lock (see realtime.state).
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StudentProfile:
    """Display-name / username pair shown on the teacher's roster."""

    display_name: str
    username: str

    def as_dict(self) -> Dict[str, str]:
        return {"display_name": self.display_name, "username": self.username}


@dataclass
class StudentSession:
    id: str
    profile: StudentProfile
    is_selected: bool = False
    last_code: str = ""
    connection_id: Optional[str] = None
    joined_at: float = field(default_factory=time.time)


RemovalListener = Callable[[str], None]


class SessionRegistry:
    """
    Tracks the students currently connected to the classroom.
    """

    def __init__(self) -> None:
        self._sessions: Dict[str, StudentSession] = {}
        self._removal_listeners: List[RemovalListener] = []

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, student_id: object) -> bool:
        return student_id in self._sessions

    def subscribe_removed(self, listener: RemovalListener) -> None:
        """Register a callback invoked with the id of every removed student."""
        self._removal_listeners.append(listener)

    def add_student(
        self,
        student_id: str,
        profile: StudentProfile,
        connection_id: Optional[str] = None,
    ) -> StudentSession:
        """Register (or re-register) a student with an empty snapshot.

        Re-joining with a known id replaces the record, so there is never more
        than one session per id. A student who was selected stays selected.
        """
        previous = self._sessions.get(student_id)
        session = StudentSession(id=student_id, profile=profile, connection_id=connection_id)
        if previous is not None:
            session.is_selected = previous.is_selected
            logger.info("Student %s re-joined (connection %s)", student_id, connection_id)
        else:
            logger.info("Student %s joined (connection %s)", student_id, connection_id)
        self._sessions[student_id] = session
        return session

    def remove_student(self, student_id: str) -> bool:
        """Drop a student. Unknown ids are ignored; returns whether one was removed."""
        session = self._sessions.pop(student_id, None)
        if session is None:
            return False
        logger.info("Student %s left", student_id)
        for listener in self._removal_listeners:
            listener(student_id)
        return True

    def get_student(self, student_id: str) -> Optional[StudentSession]:
        return self._sessions.get(student_id)

    def list_students(self) -> List[StudentProfile]:
        """Profiles of every connected student, in no particular order."""
        return [session.profile for session in self._sessions.values()]

    def update_code(self, student_id: str, code: str) -> bool:
        session = self._sessions.get(student_id)
        if session is None:
            return False
        session.last_code = code
        return True
