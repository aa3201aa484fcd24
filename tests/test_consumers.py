import asyncio

import pytest
from channels.layers import get_channel_layer
from channels.testing import WebsocketCommunicator

from codeshare.config import config
from realtime.consumers import CLOSE_UNAUTHORIZED, StudentConsumer, TeacherConsumer

from .layers import SLOW_EDITOR


async def test_student_join_and_leave(relay, open_student):
    student = await open_student("a", "ada")
    assert [p.username for p in relay.roster()] == ["ada"]

    await student.disconnect()
    assert relay.roster() == []


async def test_student_without_identity_is_rejected(relay, monkeypatch):
    monkeypatch.setattr(config, "TRUST_CLIENT_IDENTITY", False)
    comm = WebsocketCommunicator(StudentConsumer.as_asgi(relay=relay), "/ws/code/?id=a")

    connected, code = await comm.connect()

    assert connected is False
    assert code == CLOSE_UNAUTHORIZED
    assert relay.student_count() == 0
    await comm.disconnect()


async def test_selected_student_code_reaches_teacher(relay, open_student, open_teacher):
    student = await open_student("x")
    teacher = await open_teacher()

    await teacher.send_json_to({"type": "select", "id": "x"})
    assert await teacher.receive_json_from(timeout=1) == {"type": "code", "editor": ""}

    await student.send_json_to({"type": "code", "id": "x", "editor": "hello"})
    assert await teacher.receive_json_from(timeout=1) == {"type": "code", "editor": "hello"}
    assert await teacher.receive_nothing(timeout=0.1)

    await student.disconnect()
    await teacher.disconnect()


async def test_unselected_student_code_is_not_forwarded(relay, open_student, open_teacher):
    x = await open_student("x")
    y = await open_student("y")
    teacher = await open_teacher()
    await teacher.send_json_to({"type": "select", "id": "x"})
    await teacher.receive_json_from(timeout=1)

    await y.send_json_to({"type": "code", "editor": "hi"})

    assert await teacher.receive_nothing(timeout=0.1)
    assert relay.classroom.registry.get_student("y").last_code == "hi"

    for comm in (x, y, teacher):
        await comm.disconnect()


async def test_every_teacher_socket_gets_the_snapshot(relay, open_student, open_teacher):
    student = await open_student("x")
    relay.code_changed("x", "abc")
    first = await open_teacher()
    second = await open_teacher()

    await first.send_json_to({"type": "select", "id": "x"})

    assert await first.receive_json_from(timeout=1) == {"type": "code", "editor": "abc"}
    assert await second.receive_json_from(timeout=1) == {"type": "code", "editor": "abc"}

    for comm in (student, first, second):
        await comm.disconnect()


async def test_unknown_selection_sends_nothing(relay, open_student, open_teacher):
    student = await open_student("x")
    teacher = await open_teacher()
    await teacher.send_json_to({"type": "select", "id": "x"})
    await teacher.receive_json_from(timeout=1)

    await teacher.send_json_to({"type": "select", "id": "ghost"})

    assert await teacher.receive_nothing(timeout=0.1)
    assert relay.current_selection_id() == "x"

    await student.disconnect()
    await teacher.disconnect()


async def test_teacher_connect_receives_current_selection(relay, open_student):
    student = await open_student("x")
    relay.select("x")
    relay.code_changed("x", "print('hi')")

    teacher = WebsocketCommunicator(TeacherConsumer.as_asgi(relay=relay), "/ws/teach/")
    connected, _ = await teacher.connect()
    assert connected
    assert await teacher.receive_json_from() == {"type": "connected", "role": "teacher", "selected": "x"}
    assert await teacher.receive_json_from() == {"type": "code", "editor": "print('hi')"}

    await student.disconnect()
    await teacher.disconnect()


async def test_classroom_scenario(relay, open_student, open_teacher):
    a = await open_student("A")
    b = await open_student("B")
    teacher = await open_teacher()

    await teacher.send_json_to({"type": "select", "id": "A"})
    assert await teacher.receive_json_from(timeout=1) == {"type": "code", "editor": ""}

    await a.send_json_to({"type": "code", "id": "A", "editor": "x=1"})
    assert await teacher.receive_json_from(timeout=1) == {"type": "code", "editor": "x=1"}

    await b.send_json_to({"type": "code", "id": "B", "editor": "y=2"})
    assert await teacher.receive_nothing(timeout=0.1)

    await teacher.send_json_to({"type": "select", "id": "B"})
    assert await teacher.receive_json_from(timeout=1) == {"type": "code", "editor": "y=2"}

    await teacher.send_json_to({"type": "select", "id": "A"})
    assert await teacher.receive_json_from(timeout=1) == {"type": "code", "editor": "x=1"}

    await a.disconnect()
    assert relay.current_selection_id() is None

    await b.send_json_to({"type": "code", "editor": "y=3"})
    assert await teacher.receive_nothing(timeout=0.1)

    await b.disconnect()
    await teacher.disconnect()


async def test_student_cannot_speak_for_someone_else(relay, open_student):
    student = await open_student("a")

    await student.send_json_to({"type": "code", "id": "b", "editor": "evil"})

    assert await student.receive_json_from() == {"type": "error", "error": "id_mismatch"}
    assert relay.classroom.registry.get_student("a").last_code == ""
    await student.disconnect()


@pytest.mark.parametrize(
    "frame,error",
    [
        ("not json", "invalid_json"),
        ("[1, 2]", "invalid_message"),
        ('{"type": "code", "editor": null}', "invalid_message"),
        ('{"type": "draw"}', "unknown_type"),
    ],
)
async def test_student_bad_frames(relay, open_student, frame, error):
    student = await open_student("a")

    await student.send_to(text_data=frame)

    reply = await student.receive_json_from()
    assert reply["type"] == "error"
    assert reply["error"] == error
    await student.disconnect()


async def test_oversized_snapshot_is_rejected(relay, open_student, monkeypatch):
    monkeypatch.setattr(config, "MAX_SNAPSHOT_CHARS", 5)
    student = await open_student("a")

    await student.send_json_to({"type": "code", "editor": "123456"})

    reply = await student.receive_json_from()
    assert reply["error"] == "invalid_message"
    assert relay.classroom.registry.get_student("a").last_code == ""
    await student.disconnect()


async def test_ping(open_student, open_teacher):
    student = await open_student("a")
    teacher = await open_teacher()

    await student.send_json_to({"type": "ping"})
    await teacher.send_json_to({"type": "ping"})

    assert await student.receive_json_from() == {"type": "pong"}
    assert await teacher.receive_json_from() == {"type": "pong"}
    await student.disconnect()
    await teacher.disconnect()


async def test_teacher_roster_request(open_student, open_teacher):
    a = await open_student("a", "ada")
    b = await open_student("b", "bob")
    teacher = await open_teacher()

    await teacher.send_json_to({"type": "roster"})

    reply = await teacher.receive_json_from()
    assert reply["type"] == "roster"
    assert sorted(s["username"] for s in reply["students"]) == ["ada", "bob"]
    assert all(set(s) == {"display_name", "username"} for s in reply["students"])

    for comm in (a, b, teacher):
        await comm.disconnect()


async def test_teacher_clears_selection(relay, open_student, open_teacher):
    student = await open_student("a")
    teacher = await open_teacher()
    await teacher.send_json_to({"type": "select", "id": "a"})
    await teacher.receive_json_from(timeout=1)

    await teacher.send_json_to({"type": "select", "id": None})
    await student.send_json_to({"type": "code", "editor": "x"})

    assert await teacher.receive_nothing(timeout=0.1)
    assert relay.current_selection_id() is None
    await student.disconnect()
    await teacher.disconnect()


async def test_second_tab_survives_first_tab_closing(relay, open_student):
    first = await open_student("a")
    second = await open_student("a")

    await first.disconnect()

    assert relay.student_count() == 1
    await second.disconnect()
    assert relay.student_count() == 0


async def test_api_key_required_when_configured(relay, settings):
    settings.AUTH_API_KEY = "sekrit"

    denied = WebsocketCommunicator(TeacherConsumer.as_asgi(relay=relay), "/ws/teach/")
    connected, code = await denied.connect()
    assert connected is False
    assert code == CLOSE_UNAUTHORIZED
    await denied.disconnect()

    allowed = WebsocketCommunicator(
        TeacherConsumer.as_asgi(relay=relay), "/ws/teach/", headers=[(b"x-api-key", b"sekrit")]
    )
    connected, _ = await allowed.connect()
    assert connected
    await allowed.disconnect()


async def test_api_key_as_subprotocol(relay, settings):
    settings.AUTH_API_KEY = "sekrit"
    comm = WebsocketCommunicator(
        StudentConsumer.as_asgi(relay=relay), "/ws/code/?id=a", subprotocols=["x-api-key", "sekrit"]
    )

    connected, subprotocol = await comm.connect()

    assert connected
    assert subprotocol == "x-api-key"
    await comm.disconnect()


async def test_consumers_default_to_app_relay(app_relay):
    comm = WebsocketCommunicator(StudentConsumer.as_asgi(), "/ws/code/?id=z&username=zed")
    connected, _ = await comm.connect()
    assert connected
    await comm.receive_json_from()

    assert [p.username for p in app_relay.roster()] == ["zed"]
    await comm.disconnect()


async def wait_for_code(relay, student_id, code):
    for _ in range(200):
        if relay.classroom.registry.get_student(student_id).last_code == code:
            return
        await asyncio.sleep(0.005)
    raise AssertionError(f"{student_id} never stored {code!r}")


@pytest.fixture
def slow_layer(settings):
    settings.CHANNEL_LAYERS = {"default": {"BACKEND": "tests.layers.SlowEditLayer"}}


async def test_late_edit_does_not_overwrite_new_selection(relay, slow_layer, open_student, open_teacher):
    a = await open_student("A")
    b = await open_student("B")
    teacher = await open_teacher()
    await b.send_json_to({"type": "code", "editor": "y=2"})
    await b.send_json_to({"type": "ping"})
    assert await b.receive_json_from(timeout=1) == {"type": "pong"}

    await teacher.send_json_to({"type": "select", "id": "A"})
    assert await teacher.receive_json_from(timeout=1) == {"type": "code", "editor": ""}

    # A's edit is approved while A is selected, but its group send lags behind the switch to B.
    await a.send_json_to({"type": "code", "editor": SLOW_EDITOR})
    await wait_for_code(relay, "A", SLOW_EDITOR)
    await teacher.send_json_to({"type": "select", "id": "B"})

    assert await teacher.receive_json_from(timeout=1) == {"type": "code", "editor": "y=2"}
    assert await teacher.receive_nothing(timeout=0.2)
    assert relay.current_selection_id() == "B"

    for comm in (a, b, teacher):
        await comm.disconnect()


async def test_late_edit_after_deselect_is_dropped(relay, slow_layer, open_student, open_teacher):
    a = await open_student("A")
    teacher = await open_teacher()
    await teacher.send_json_to({"type": "select", "id": "A"})
    assert await teacher.receive_json_from(timeout=1) == {"type": "code", "editor": ""}

    await a.send_json_to({"type": "code", "editor": SLOW_EDITOR})
    await wait_for_code(relay, "A", SLOW_EDITOR)
    await teacher.send_json_to({"type": "select", "id": None})

    assert await teacher.receive_nothing(timeout=0.2)
    assert relay.current_selection_id() is None

    for comm in (a, teacher):
        await comm.disconnect()


async def test_teacher_connect_snapshot_matches_announced_selection(relay, open_student):
    a = await open_student("a")
    b = await open_student("b")
    relay.select("a")
    older = relay.code_changed("a", "x=1")
    relay.code_changed("b", "y=2")
    relay.select("b")

    teacher = WebsocketCommunicator(TeacherConsumer.as_asgi(relay=relay), "/ws/teach/")
    connected, _ = await teacher.connect()
    assert connected
    assert await teacher.receive_json_from() == {"type": "connected", "role": "teacher", "selected": "b"}
    assert await teacher.receive_json_from() == {"type": "code", "editor": "y=2"}

    # A frame stamped before the snapshot is not replayed over it.
    await get_channel_layer().group_send(
        relay.teacher_group,
        {"type": "classroom.code", "editor": "x=1", "student_id": "b", "seq": older.seq},
    )
    assert await teacher.receive_nothing(timeout=0.1)

    for comm in (a, b, teacher):
        await comm.disconnect()
