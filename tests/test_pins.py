import asyncio

import pytest

from fakes import FakeSocket, make_session_factory
from roomcast.models import Message, Room, User
from roomcast.pins import preview, set_pin
from roomcast.realtime import Realtime, identity_from
from roomcast.rooms import DetailedJoin
from roomcast.store import MessageNotFound, Store


async def seed(factory, content="Exam moved to Monday", room_cohort="morning", sender_cohort=None):
    async with factory() as session:
        session.add(Room(name="R1", cohort=room_cohort))
        session.add(User(id="5", name="X", role="student", cohort=sender_cohort))
        msg = Message(room="R1", sender_id="5", sender_name="X", content=content)
        session.add(msg)
        await session.commit()
        return msg.id


async def two_morning_users(rt):
    ws_a, ws_b = FakeSocket(), FakeSocket()
    a = await rt.connect(ws_a)
    b = await rt.connect(ws_b)
    rt.register(a, identity_from("1", "A", "representative", "morning"))
    rt.register(b, identity_from("2", "B", "student", "Morning"))
    await rt.join(a, DetailedJoin("R1", "1", "A", "representative"))
    await rt.join(b, DetailedJoin("R1", "2", "B", "student"))
    return ws_a, ws_b


def test_pin_creates_system_message_and_one_notification_per_user():
    async def run():
        factory = await make_session_factory()
        rt = Realtime(store=Store(factory))
        msg_id = await seed(factory)
        ws_a, ws_b = await two_morning_users(rt)
        ws_b.sent.clear()

        result = await set_pin(rt, msg_id, True)

        [note] = ws_b.events("new_notification")
        assert note["body"] == "من X: Exam moved to Monday"
        assert note["title"] == "📌 رسالة مثبتة في R1"
        assert note["data"] == {"messageId": msg_id, "room": "R1", "type": "pinned_message"}
        assert len(ws_a.events("new_notification")) == 1

        history = await rt.store.read_messages_by_room("R1")
        system = [m for m in history if m.type == "system"]
        assert len(system) == 1
        assert system[0].sender_id == "-1"
        assert system[0].content == "Exam moved to Monday"
        assert system[0].file_path == str(msg_id)
        assert [m for m in history if m.id == msg_id][0].is_pinned

        [received] = ws_b.events("receive_message")
        assert received["id"] == result.system_message_id
        assert ws_b.events("pin_state_changed") == [{"messageId": msg_id, "isPinned": True, "room": "R1"}]
        assert len(await rt.store.notifications_for("2")) == 1
        assert result.notified == 2

    asyncio.run(run())


def test_pin_notifies_each_user_once_across_devices():
    async def run():
        factory = await make_session_factory()
        rt = Realtime(store=Store(factory))
        msg_id = await seed(factory)
        phone, laptop = FakeSocket(), FakeSocket()
        for ws in (phone, laptop):
            cid = await rt.connect(ws)
            rt.register(cid, identity_from("3", "C", "student", "morning"))

        await set_pin(rt, msg_id, True)

        assert len(await rt.store.notifications_for("3")) == 1
        assert len(phone.events("new_notification")) == 1
        assert len(laptop.events("new_notification")) == 1

    asyncio.run(run())


def test_pin_cohort_falls_back_to_sender_then_default():
    async def run():
        factory = await make_session_factory()
        rt = Realtime(store=Store(factory))
        msg_id = await seed(factory, room_cohort=None, sender_cohort="evening")
        ws_eve, ws_morn = FakeSocket(), FakeSocket()
        eve = await rt.connect(ws_eve)
        morn = await rt.connect(ws_morn)
        rt.register(eve, identity_from("1", "E", "student", "Evening"))
        rt.register(morn, identity_from("2", "M", "student", None))

        result = await set_pin(rt, msg_id, True)

        assert result.cohort == "evening"
        assert len(ws_eve.events("new_notification")) == 1
        assert ws_morn.events("new_notification") == []

    asyncio.run(run())


def test_long_content_is_truncated_in_preview():
    assert preview("a" * 60) == "a" * 50 + "..."
    assert preview("a" * 50) == "a" * 50
    assert preview(None) == ""


def test_unpin_only_flips_flag_and_syncs_room():
    async def run():
        factory = await make_session_factory()
        rt = Realtime(store=Store(factory))
        msg_id = await seed(factory)
        ws_a, ws_b = await two_morning_users(rt)
        await set_pin(rt, msg_id, True)
        ws_b.sent.clear()

        await set_pin(rt, msg_id, False)

        assert ws_b.events("new_notification") == []
        assert ws_b.events("receive_message") == []
        assert ws_b.events("pin_state_changed") == [{"messageId": msg_id, "isPinned": False, "room": "R1"}]
        history = await rt.store.read_messages_by_room("R1")
        assert len([m for m in history if m.type == "system"]) == 1
        assert not [m for m in history if m.id == msg_id][0].is_pinned

    asyncio.run(run())


def test_pin_state_broadcast_even_when_notifications_fail(monkeypatch):
    async def run():
        factory = await make_session_factory()
        rt = Realtime(store=Store(factory))
        msg_id = await seed(factory)
        ws_a, ws_b = await two_morning_users(rt)

        async def broken_notify(*args, **kwargs):
            raise RuntimeError("notification backend down")

        monkeypatch.setattr(rt.fanout, "notify", broken_notify)
        result = await set_pin(rt, msg_id, True)

        assert result.notified == 0
        assert len(ws_b.events("pin_state_changed")) == 1

    asyncio.run(run())


def test_pin_missing_message_raises():
    async def run():
        rt = Realtime(store=Store(await make_session_factory()))
        with pytest.raises(MessageNotFound):
            await set_pin(rt, 404, True)

    asyncio.run(run())


def test_pinning_an_already_pinned_message_only_resyncs_room():
    async def run():
        factory = await make_session_factory()
        rt = Realtime(store=Store(factory))
        msg_id = await seed(factory)
        ws_a, ws_b = await two_morning_users(rt)
        await set_pin(rt, msg_id, True)
        ws_b.sent.clear()

        result = await set_pin(rt, msg_id, True)

        assert result.system_message_id is None
        assert result.notified == 0
        assert ws_b.events("new_notification") == []
        assert ws_b.events("receive_message") == []
        assert ws_b.events("pin_state_changed") == [{"messageId": msg_id, "isPinned": True, "room": "R1"}]
        history = await rt.store.read_messages_by_room("R1")
        assert len([m for m in history if m.type == "system"]) == 1
        assert len(await rt.store.notifications_for("2")) == 1

    asyncio.run(run())
