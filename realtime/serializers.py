"""
Pydantic models for WebSocket frames and HTTP bodies.

Inbound models validate what clients send; outbound models are dumped with
`model_dump()` straight onto the socket.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

from codeshare.config import config


def _strip_id(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    if not value:
        raise ValueError("id cannot be empty")
    return value


# Inbound, general channel

class CodeMessage(BaseModel):
    type: Literal["code"] = "code"
    id: Optional[str] = None
    editor: str = ""

    @field_validator("id")
    @classmethod
    def _id(cls, value: Optional[str]) -> Optional[str]:
        return _strip_id(value)

    @field_validator("editor")
    @classmethod
    def _editor_size(cls, value: str) -> str:
        if len(value) > config.MAX_SNAPSHOT_CHARS:
            raise ValueError(f"editor snapshot exceeds {config.MAX_SNAPSHOT_CHARS} characters")
        return value


# Inbound, teacher channel

class SelectMessage(BaseModel):
    type: Literal["select"] = "select"
    # None clears the selection
    id: Optional[str] = None

    @field_validator("id")
    @classmethod
    def _id(cls, value: Optional[str]) -> Optional[str]:
        return _strip_id(value)


# HTTP

class LogoutRequest(BaseModel):
    id: Optional[str] = None

    @field_validator("id")
    @classmethod
    def _id(cls, value: Optional[str]) -> Optional[str]:
        return _strip_id(value)


# Outbound

class CodeEvent(BaseModel):
    """Snapshot pushed to the teacher view.

    `student_id` and `seq` travel through the teacher group but are never
    dumped onto the socket.
    """
    type: Literal["code"] = "code"
    editor: str
    student_id: Optional[str] = Field(default=None, exclude=True)
    seq: int = Field(default=0, exclude=True)


class StudentProfileOut(BaseModel):
    display_name: str
    username: str


class RosterEvent(BaseModel):
    type: Literal["roster"] = "roster"
    students: list[StudentProfileOut] = Field(default_factory=list)


class ConnectedEvent(BaseModel):
    type: Literal["connected"] = "connected"
    role: Literal["student", "teacher"]
    id: Optional[str] = None
    selected: Optional[str] = None


class PongEvent(BaseModel):
    type: Literal["pong"] = "pong"


class ErrorEvent(BaseModel):
    type: Literal["error"] = "error"
    error: str
    message: Optional[str] = None
