import asyncio

from fakes import (
    BrokenMessageStore,
    FailOnceMessageStore,
    FakeSocket,
    FlakyNotificationStore,
    make_session_factory,
)
from roomcast.dedup import DedupWindow
from roomcast.realtime import Realtime, identity_from
from roomcast.rooms import BareJoin, DetailedJoin
from roomcast.schemas import SendMessage
from roomcast.store import Store


def send(room="R1", token=None, **extra) -> SendMessage:
    data = {"room": room, "sender_id": 1, "sender_name": "Ali", "content": "hi", "tempId": token}
    data.update(extra)
    return SendMessage.model_validate(data)


def test_message_persisted_then_broadcast_with_id_and_token():
    async def run():
        factory = await make_session_factory()
        rt = Realtime(store=Store(factory))
        sender, member, outsider = FakeSocket(), FakeSocket(), FakeSocket()
        c_sender = await rt.connect(sender)
        c_member = await rt.connect(member)
        await rt.connect(outsider)
        await rt.join(c_sender, BareJoin("R1"))
        await rt.join(c_member, BareJoin("R1"))

        payload = await rt.fanout.send_message(c_sender, send(token="tmp-1"))

        history = await rt.store.read_messages_by_room("R1")
        assert [m.id for m in history] == [payload["id"]]
        for ws in (sender, member):
            [msg] = ws.events("receive_message")
            assert msg["id"] == history[0].id
            assert msg["tempId"] == "tmp-1"
            assert msg["sender_id"] == "1"
        assert outsider.events("receive_message") == []
        for ws in (sender, member, outsider):
            [update] = ws.events("dashboard_update")
            assert update["roomId"] == "R1"
            assert update["message"]["content"] == "hi"

    asyncio.run(run())


def test_duplicate_token_within_window_is_dropped():
    async def run():
        factory = await make_session_factory()
        rt = Realtime(store=Store(factory), dedup=DedupWindow(reject_after=5, retention=10))
        ws = FakeSocket()
        cid = await rt.connect(ws)
        await rt.join(cid, BareJoin("R1"))

        assert await rt.fanout.send_message(cid, send(token="t1")) is not None
        assert await rt.fanout.send_message(cid, send(token="t1")) is None

        assert len(await rt.store.read_messages_by_room("R1")) == 1
        assert len(ws.events("receive_message")) == 1

    asyncio.run(run())


def test_messages_without_token_are_never_deduplicated():
    async def run():
        rt = Realtime(store=Store(await make_session_factory()))
        cid = await rt.connect(FakeSocket())
        await rt.fanout.send_message(cid, send())
        await rt.fanout.send_message(cid, send())
        assert len(await rt.store.read_messages_by_room("R1")) == 2

    asyncio.run(run())


def test_persistence_failure_aborts_broadcast_and_tells_sender():
    async def run():
        rt = Realtime(store=BrokenMessageStore(await make_session_factory()))
        sender, member = FakeSocket(), FakeSocket()
        c_sender = await rt.connect(sender)
        c_member = await rt.connect(member)
        await rt.join(c_sender, BareJoin("R1"))
        await rt.join(c_member, BareJoin("R1"))

        assert await rt.fanout.send_message(c_sender, send(token="t9")) is None

        assert member.sent == []
        [error] = sender.events("error")
        assert error == {"event": "send_message", "reason": "persistence_failed", "tempId": "t9"}
        assert sender.events("receive_message") == []

    asyncio.run(run())


def test_dead_socket_does_not_stop_room_delivery():
    async def run():
        rt = Realtime(store=Store(await make_session_factory()))
        dead, alive = FakeSocket(fail=True), FakeSocket()
        c_dead = await rt.connect(dead)
        c_alive = await rt.connect(alive)
        await rt.join(c_dead, BareJoin("R1"))
        await rt.join(c_alive, BareJoin("R1"))

        delivered = await rt.fanout.to_room("R1", "chat_cleared", {"room": "R1"})

        assert delivered == 1
        assert alive.events("chat_cleared") == [{"room": "R1"}]

    asyncio.run(run())


def test_room_delivery_includes_sockets_joined_without_identity():
    async def run():
        rt = Realtime(store=Store(await make_session_factory()))
        anon, named = FakeSocket(), FakeSocket()
        c_anon = await rt.connect(anon)
        c_named = await rt.connect(named)
        await rt.join(c_anon, BareJoin("R1"))
        await rt.join(c_named, DetailedJoin("R1", "2", "B", "student"))

        assert rt.rooms.active_count("R1") == 1
        await rt.fanout.to_room("R1", "message_deleted", {"id": "5"})
        assert anon.events("message_deleted") == [{"id": "5"}]
        assert named.events("message_deleted") == [{"id": "5"}]

    asyncio.run(run())


def test_notify_persists_once_per_user_and_reaches_every_device():
    async def run():
        factory = await make_session_factory()
        rt = Realtime(store=Store(factory))
        phone, laptop, other = FakeSocket(), FakeSocket(), FakeSocket()
        c_phone = await rt.connect(phone)
        c_laptop = await rt.connect(laptop)
        c_other = await rt.connect(other)
        rt.register(c_phone, identity_from("u1", "Mona", "student", "morning"))
        rt.register(c_laptop, identity_from("u1", "Mona", "student", "morning"))
        rt.register(c_other, identity_from("u2", "Omar", "student", "morning"))

        notified = await rt.fanout.notify(rt.audience("morning"), "T", "B", {"type": "x"})

        assert notified == 2
        assert len(await rt.store.notifications_for("u1")) == 1
        assert len(await rt.store.notifications_for("u2")) == 1
        [n_phone] = phone.events("new_notification")
        [n_laptop] = laptop.events("new_notification")
        assert n_phone["id"] == n_laptop["id"]
        assert n_phone["body"] == "B"
        assert len(other.events("new_notification")) == 1

    asyncio.run(run())


def test_notify_failure_for_one_user_spares_the_rest():
    async def run():
        factory = await make_session_factory()
        rt = Realtime(store=FlakyNotificationStore(factory, failing_users={"u1"}))
        ws1, ws2 = FakeSocket(), FakeSocket()
        c1 = await rt.connect(ws1)
        c2 = await rt.connect(ws2)
        rt.register(c1, identity_from("u1", "A", "student", None))
        rt.register(c2, identity_from("u2", "B", "student", None))

        assert await rt.fanout.notify(rt.audience(None), "T", "B", {}) == 1
        assert ws1.events("new_notification") == []
        assert len(ws2.events("new_notification")) == 1

    asyncio.run(run())


def test_publish_routes_by_selector():
    async def run():
        rt = Realtime(store=Store(await make_session_factory()))
        ws_eve, ws_morn = FakeSocket(), FakeSocket()
        eve = await rt.connect(ws_eve)
        morn = await rt.connect(ws_morn)
        rt.register(eve, identity_from("1", "E", "student", "evening"))
        rt.register(morn, identity_from("2", "M", "student", "morning"))
        await rt.join(morn, BareJoin("R1"))

        assert await rt.publish("ping", {"n": 1}, connection_id=eve) == 1
        assert await rt.publish("ping", {"n": 2}, room="R1") == 1
        assert await rt.publish("ping", {"n": 3}, cohort="EVENING") == 1
        assert await rt.publish("ping", {"n": 4}, cohort="evening", exclude={"1"}) == 0
        assert await rt.publish("room_deleted", {"roomId": 3}) == 2

        assert ws_eve.events("ping") == [{"n": 1}, {"n": 3}]
        assert ws_morn.events("ping") == [{"n": 2}]
        assert ws_morn.events("room_deleted") == [{"roomId": 3}]

    asyncio.run(run())


def test_retry_with_same_token_after_failed_save_goes_through():
    async def run():
        store = FailOnceMessageStore(await make_session_factory())
        rt = Realtime(store=store, dedup=DedupWindow(reject_after=5, retention=10))
        sender, member = FakeSocket(), FakeSocket()
        c_sender = await rt.connect(sender)
        c_member = await rt.connect(member)
        await rt.join(c_sender, BareJoin("R1"))
        await rt.join(c_member, BareJoin("R1"))

        assert await rt.fanout.send_message(c_sender, send(token="t1")) is None
        assert sender.events("error") == [{"event": "send_message", "reason": "persistence_failed", "tempId": "t1"}]

        payload = await rt.fanout.send_message(c_sender, send(token="t1"))

        assert payload is not None
        assert store.calls == 2
        assert [m.id for m in await rt.store.read_messages_by_room("R1")] == [payload["id"]]
        assert [m["tempId"] for m in member.events("receive_message")] == ["t1"]
        # the stored retry is deduplicated again
        assert await rt.fanout.send_message(c_sender, send(token="t1")) is None

    asyncio.run(run())


def test_room_delivery_can_skip_connections():
    async def run():
        rt = Realtime(store=Store(await make_session_factory()))
        ws_a, ws_b = FakeSocket(), FakeSocket()
        a = await rt.connect(ws_a)
        b = await rt.connect(ws_b)
        await rt.join(a, BareJoin("R1"))
        await rt.join(b, BareJoin("R1"))

        assert await rt.fanout.to_room("R1", "offer", {"sdp": "x"}, exclude={a}) == 1
        assert ws_a.events("offer") == []
        assert ws_b.events("offer") == [{"sdp": "x"}]

    asyncio.run(run())
