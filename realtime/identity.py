"""
Identity of a student socket.

The login flow is someone else's job: by the time a socket reaches a consumer,
AuthMiddlewareStack has put the Django user (if any) in scope["user"]. This
module only turns that into the (id, display name, username) triple the
registry stores. In development a client may instead name itself in the query
string, when CLASSROOM_TRUST_CLIENT_IDENTITY is on.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
from urllib.parse import parse_qs

from .registry import StudentProfile


@dataclass(frozen=True)
class StudentIdentity:
    id: str
    display_name: str
    username: str

    @property
    def profile(self) -> StudentProfile:
        return StudentProfile(display_name=self.display_name, username=self.username)


def _first(params: dict, name: str) -> str:
    values = params.get(name) or [""]
    return values[0].strip()


def identity_from_user(user) -> Optional[StudentIdentity]:
    if user is None or not getattr(user, "is_authenticated", False):
        return None
    username = user.get_username()
    display_name = (user.get_full_name() or "").strip() if hasattr(user, "get_full_name") else ""
    return StudentIdentity(id=str(user.pk), display_name=display_name or username, username=username)


def identity_from_query(query_string: bytes) -> Optional[StudentIdentity]:
    params = parse_qs(query_string.decode("utf-8", errors="replace"))
    student_id = _first(params, "id")
    if not student_id:
        return None
    username = _first(params, "username") or student_id
    display_name = _first(params, "display_name") or username
    return StudentIdentity(id=student_id, display_name=display_name, username=username)


def resolve_identity(scope: dict, *, trust_client: bool = False) -> Optional[StudentIdentity]:
    """Authenticated Django user first, then (if trusted) the query string."""
    identity = identity_from_user(scope.get("user"))
    if identity is not None:
        return identity
    if trust_client:
        return identity_from_query(scope.get("query_string") or b"")
    return None
