import uuid

import pytest
from channels.testing import WebsocketCommunicator

from realtime.consumers import StudentConsumer, TeacherConsumer
from realtime.registry import StudentProfile
from realtime.relay import BroadcastRelay
from realtime.state import Classroom


@pytest.fixture
def classroom():
    return Classroom()


@pytest.fixture
def relay(classroom):
    # A fresh teacher group per test keeps the shared in-memory layer isolated.
    return BroadcastRelay(classroom, teacher_group=f"teacher.{uuid.uuid4().hex}")


@pytest.fixture
def app_relay(relay, monkeypatch):
    """Install `relay` as the realtime app's relay, for views and default-wired consumers."""
    from django.apps import apps

    monkeypatch.setattr(apps.get_app_config("realtime"), "relay", relay)
    return relay


def profile(name: str) -> StudentProfile:
    return StudentProfile(display_name=name.title(), username=name)


@pytest.fixture
def open_student(relay):
    async def _open(student_id: str, username: str | None = None, headers=None):
        path = f"/ws/code/?id={student_id}&username={username or student_id}"
        comm = WebsocketCommunicator(StudentConsumer.as_asgi(relay=relay), path, headers=headers)
        connected, _ = await comm.connect()
        assert connected
        hello = await comm.receive_json_from()
        assert hello == {"type": "connected", "role": "student", "id": student_id}
        return comm

    return _open


@pytest.fixture
def open_teacher(relay):
    async def _open(headers=None):
        comm = WebsocketCommunicator(TeacherConsumer.as_asgi(relay=relay), "/ws/teach/", headers=headers)
        connected, _ = await comm.connect()
        assert connected
        hello = await comm.receive_json_from()
        assert hello["type"] == "connected"
        assert hello["role"] == "teacher"
        return comm

    return _open
