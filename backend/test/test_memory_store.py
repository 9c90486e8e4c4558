"""MemoryStore / PersistenceGateway 테스트."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

from meetroom.database import MemoryStore, PersistenceGateway
from meetroom.room.models import OFFLINE, ONLINE, Message, Participant, Room, utcnow


def _message(room_id: str, text: str, **kwargs) -> Message:
    return Message(room_id=room_id, author="Alice", user_id="u1", text=text, **kwargs).stamped()


def test_message_cap_keeps_most_recent():
    async def scenario():
        store = MemoryStore(message_cap=1000, message_trim=800)
        for i in range(1001):
            await store.save_message(_message("r1", str(i)))
        return await store.recent_messages("r1", 5000)

    messages = asyncio.run(scenario())

    assert len(messages) == 800
    assert messages[0].text == "201"
    assert messages[-1].text == "1000"


def test_recent_messages_are_oldest_first_and_limited():
    async def scenario():
        store = MemoryStore()
        for i in range(5):
            await store.save_message(_message("r1", f"m{i}"))
        await store.save_message(_message("other", "x"))
        return await store.recent_messages("r1", 3), await store.recent_messages("missing", 3)

    recent, missing = asyncio.run(scenario())

    assert [m.text for m in recent] == ["m2", "m3", "m4"]
    assert missing == []


def test_saved_message_gets_increasing_ids():
    async def scenario():
        store = MemoryStore()
        first = await store.save_message(_message("r1", "a"))
        second = await store.save_message(_message("r1", "b"))
        return first, second

    first, second = asyncio.run(scenario())
    assert first.id is not None
    assert second.id > first.id


def test_create_room_if_absent_keeps_first_creator():
    async def scenario():
        store = MemoryStore()
        first = await store.create_room_if_absent(Room("r1", "u1", "Alice"))
        second = await store.create_room_if_absent(Room("r1", "u2", "Bob"))
        return first, second

    (room1, created1), (room2, created2) = asyncio.run(scenario())

    assert created1 is True
    assert created2 is False
    assert room2.creator_id == "u1"


def test_mark_offline_respects_connection_binding():
    async def scenario():
        store = MemoryStore()
        await store.save_participant(Participant("r1", "u1", "Alice", connection_id="conn-new"))
        stale = await store.mark_offline("r1", "u1", "conn-old")
        after_stale = await store.get_participant("r1", "u1")
        current = await store.mark_offline("r1", "u1", "conn-new")
        return stale, after_stale, current

    stale, after_stale, current = asyncio.run(scenario())

    assert stale is None
    assert after_stale.status == ONLINE
    assert after_stale.connection_id == "conn-new"
    assert current.status == OFFLINE
    assert current.connection_id is None


def test_demote_stale_skips_live_connections():
    async def scenario():
        store = MemoryStore()
        old = utcnow() - timedelta(minutes=30)
        await store.save_participant(
            Participant("r1", "live", "Live", last_seen=old, connection_id="c-live")
        )
        await store.save_participant(
            Participant("r1", "gone", "Gone", last_seen=old, connection_id="c-gone")
        )
        await store.save_participant(Participant("r1", "fresh", "Fresh", connection_id="c-fresh"))

        demoted = await store.demote_stale(utcnow() - timedelta(minutes=5), ["c-live"])
        return demoted, await store.list_participants("r1")

    demoted, roster = asyncio.run(scenario())

    assert [p.user_id for p in demoted] == ["gone"]
    statuses = {p.user_id: p.status for p in roster}
    assert statuses == {"live": ONLINE, "gone": OFFLINE, "fresh": ONLINE}


def test_delete_messages_before_cutoff():
    async def scenario():
        store = MemoryStore()
        await store.save_message(_message("r1", "old", timestamp=utcnow() - timedelta(days=40)))
        await store.save_message(_message("r1", "new"))
        deleted = await store.delete_messages_before(utcnow() - timedelta(days=30))
        return deleted, await store.recent_messages("r1", 10)

    deleted, remaining = asyncio.run(scenario())

    assert deleted == 1
    assert [m.text for m in remaining] == ["new"]


def test_gateway_falls_back_to_memory_when_durable_fails():
    async def scenario():
        durable = AsyncMock()
        durable.save_message.side_effect = RuntimeError("connection reset")
        durable.recent_messages.side_effect = RuntimeError("connection reset")
        gateway = PersistenceGateway(MemoryStore(), durable=durable)

        saved = await gateway.save_message(_message("r1", "hello"))
        recent = await gateway.recent_messages("r1", 10)
        return gateway, durable, saved, recent

    gateway, durable, saved, recent = asyncio.run(scenario())

    assert gateway.mode == "postgres"
    durable.save_message.assert_awaited_once()
    assert saved.text == "hello"
    assert [m.text for m in recent] == ["hello"]


def test_gateway_uses_durable_when_healthy():
    async def scenario():
        room = Room("r1", "u1", "Alice")
        durable = AsyncMock()
        durable.get_room.return_value = room
        memory = MemoryStore()
        gateway = PersistenceGateway(memory, durable=durable)
        return room, await gateway.get_room("r1"), await memory.get_room("r1")

    room, fetched, from_memory = asyncio.run(scenario())

    assert fetched is room
    assert from_memory is None


def test_gateway_without_durable_is_memory_mode():
    async def scenario():
        gateway = PersistenceGateway(MemoryStore())
        await gateway.create_room_if_absent(Room("r1", "u1", "Alice"))
        return gateway.mode, await gateway.get_room("r1")

    mode, room = asyncio.run(scenario())

    assert mode == "memory"
    assert room.creator_name == "Alice"


def test_gateway_retention_also_sweeps_memory_fallback():
    async def scenario():
        durable = AsyncMock()
        durable.delete_messages_before.return_value = 2
        memory = MemoryStore()
        await memory.save_message(_message("r1", "old", timestamp=utcnow() - timedelta(days=40)))
        gateway = PersistenceGateway(memory, durable=durable)
        return await gateway.delete_messages_before(utcnow() - timedelta(days=30))

    assert asyncio.run(scenario()) == 3
