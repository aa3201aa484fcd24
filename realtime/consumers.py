"""
WebSocket consumers for the two classroom channels.

Key behavior:
- ws/code/  (StudentConsumer): one socket per student editor. The socket's
  identity is resolved at connect; every {"type":"code"} frame updates that
  student's snapshot and, if they are selected, reaches the teacher group.
- ws/teach/ (TeacherConsumer): the teacher view. {"type":"select"} switches the
  broadcast target; every socket in the teacher group receives {"type":"code"}.

The consumers only translate frames; all state changes go through the relay.
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any, Dict, Optional

from channels.generic.websocket import AsyncWebsocketConsumer
from pydantic import ValidationError

from codeshare.config import config
from .apps import get_relay as app_relay
from .auth import api_key_accepted
from .identity import StudentIdentity, resolve_identity
from .relay import BroadcastRelay
from .serializers import (
    CodeEvent,
    CodeMessage,
    ConnectedEvent,
    ErrorEvent,
    PongEvent,
    RosterEvent,
    SelectMessage,
    StudentProfileOut,
)

logger = logging.getLogger(__name__)

# Close code for handshakes without a usable API key or identity.
CLOSE_UNAUTHORIZED = 4401


class ClassroomConsumer(AsyncWebsocketConsumer):
    """Shared plumbing: relay injection, API key check, JSON framing."""

    relay: Optional[BroadcastRelay] = None

    def __init__(self, *args: Any, relay: Optional[BroadcastRelay] = None, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self._injected_relay = relay
        self.connection_id: str = uuid.uuid4().hex  # server-assigned per-connection id

    def get_relay(self) -> BroadcastRelay:
        if self.relay is None:
            self.relay = app_relay(self._injected_relay)
        return self.relay

    async def accept_with_subprotocol(self) -> None:
        # If the client sent the API key as subprotocols, echo the first one so the handshake is valid.
        subprotocols = self.scope.get("subprotocols") or []
        await self.accept(subprotocol=subprotocols[0] if subprotocols else None)

    async def reject(self, reason: str) -> None:
        logger.warning("WebSocket rejected on %s: %s", self.scope.get("path", "?"), reason)
        await self.close(code=CLOSE_UNAUTHORIZED)

    async def decode(self, text_data: Optional[str]) -> Optional[Dict[str, Any]]:
        """Parse a frame into a dict, answering the sender with an error frame if it isn't one."""
        if not text_data:
            return None
        try:
            msg = json.loads(text_data)
        except json.JSONDecodeError:
            await self.send_error("invalid_json")
            return None
        if not isinstance(msg, dict):
            await self.send_error("invalid_message", "frame must be a JSON object")
            return None
        return msg

    async def send_error(self, error: str, message: Optional[str] = None) -> None:
        await self.send_json(ErrorEvent(error=error, message=message).model_dump(exclude_none=True))

    async def send_json(self, payload: Dict[str, Any]) -> None:
        await self.send(text_data=json.dumps(payload, separators=(",", ":"), ensure_ascii=False))

    async def publish_to_teacher(self, event: Optional[CodeEvent]) -> None:
        if event is None:
            return
        await self.channel_layer.group_send(
            self.get_relay().teacher_group,
            {
                "type": "classroom.code",
                "editor": event.editor,
                "student_id": event.student_id,
                "seq": event.seq,
            },
        )


class StudentConsumer(ClassroomConsumer):
    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.identity: Optional[StudentIdentity] = None

    async def connect(self) -> None:
        if not api_key_accepted(self.scope):
            await self.reject("missing or invalid API key")
            return

        identity = resolve_identity(self.scope, trust_client=config.TRUST_CLIENT_IDENTITY)
        if identity is None:
            await self.reject("no student identity")
            return

        await self.accept_with_subprotocol()
        self.identity = identity
        self.get_relay().student_connected(identity.id, identity.profile, connection_id=self.connection_id)

        await self.send_json(
            ConnectedEvent(role="student", id=identity.id).model_dump(exclude={"selected"})
        )

    async def disconnect(self, close_code: int) -> None:
        if self.identity is None:
            return
        self.get_relay().student_disconnected(self.identity.id, connection_id=self.connection_id)
        self.identity = None

    async def receive(self, text_data: Optional[str] = None, bytes_data: Optional[bytes] = None) -> None:
        msg = await self.decode(text_data)
        if msg is None or self.identity is None:
            return

        msg_type = msg.get("type")
        if msg_type == "ping":
            await self.send_json(PongEvent().model_dump())
            return

        if msg_type != "code":
            await self.send_error("unknown_type", f"Unknown message type: {msg_type}")
            return

        try:
            message = CodeMessage.model_validate(msg)
        except ValidationError as e:
            await self.send_error("invalid_message", str(e))
            return

        # A socket may only speak for the student it was opened as.
        if message.id is not None and message.id != self.identity.id:
            await self.send_error("id_mismatch")
            return

        event = self.get_relay().code_changed(self.identity.id, message.editor)
        await self.publish_to_teacher(event)


class TeacherConsumer(ClassroomConsumer):
    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        # Highest seq this socket has shown; group sends from different tasks may land out of order.
        self.last_seq = 0

    async def connect(self) -> None:
        if not api_key_accepted(self.scope):
            await self.reject("missing or invalid API key")
            return

        relay = self.get_relay()
        await self.accept_with_subprotocol()
        await self.channel_layer.group_add(relay.teacher_group, self.channel_name)

        selected_id, snapshot = relay.current_view()
        await self.send_json(ConnectedEvent(role="teacher", selected=selected_id).model_dump(exclude={"id"}))
        # A reconnecting teacher sees the current target straight away.
        if snapshot is not None:
            self.last_seq = snapshot.seq
            await self.send_json(snapshot.model_dump())

    async def disconnect(self, close_code: int) -> None:
        await self.channel_layer.group_discard(self.get_relay().teacher_group, self.channel_name)

    async def receive(self, text_data: Optional[str] = None, bytes_data: Optional[bytes] = None) -> None:
        msg = await self.decode(text_data)
        if msg is None:
            return

        msg_type = msg.get("type")
        if msg_type == "ping":
            await self.send_json(PongEvent().model_dump())
        elif msg_type == "select":
            await self._handle_select(msg)
        elif msg_type == "roster":
            students = [StudentProfileOut(**p.as_dict()) for p in self.get_relay().roster()]
            await self.send_json(RosterEvent(students=students).model_dump())
        else:
            await self.send_error("unknown_type", f"Unknown message type: {msg_type}")

    async def _handle_select(self, msg: Dict[str, Any]) -> None:
        try:
            message = SelectMessage.model_validate(msg)
        except ValidationError as e:
            await self.send_error("invalid_message", str(e))
            return

        relay = self.get_relay()
        if message.id is None:
            relay.deselect()
            return
        # Unknown ids come back as None and are dropped without a reply.
        await self.publish_to_teacher(relay.select(message.id))

    async def classroom_code(self, event: Dict[str, Any]) -> None:
        """
        Handler for teacher-group broadcasts.

        Frames overtaken by a later one, or for a student who is no longer the
        selection, are dropped.
        """
        code = CodeEvent(
            editor=event.get("editor", ""),
            student_id=event.get("student_id"),
            seq=event.get("seq", 0),
        )
        if code.seq <= self.last_seq:
            logger.debug("Dropping out-of-order frame %s (last %s)", code.seq, self.last_seq)
            return
        if code.student_id != self.get_relay().current_selection_id():
            logger.debug("Dropping frame for %s, no longer selected", code.student_id)
            return
        self.last_seq = code.seq
        await self.send_json(code.model_dump())
