"""방 레지스트리 / 참가자 디렉토리 / 메시지 로그 테스트."""

import asyncio
from datetime import timedelta

import pytest

from meetroom.database import MemoryStore, PersistenceGateway
from meetroom.room.messages import MessageLog
from meetroom.room.models import (
    OFFLINE,
    ONLINE,
    VOICE_TRANSCRIPTION_MESSAGE,
    Message,
    display_time,
    utcnow,
)
from meetroom.room.participants import ParticipantDirectory
from meetroom.room.registry import RoomRegistry
from meetroom.shared.errors import Forbidden


def _components():
    store = PersistenceGateway(MemoryStore())
    messages = MessageLog(store)
    participants = ParticipantDirectory(store)
    registry = RoomRegistry(store, messages, participants)
    return store, messages, participants, registry


# ----------------------------------------------------------------------
# RoomRegistry
# ----------------------------------------------------------------------

def test_first_joiner_becomes_creator():
    async def scenario():
        _, _, _, registry = _components()
        first = await registry.resolve_or_create("r1", "u1", "Alice")
        second = await registry.resolve_or_create("r1", "u2", "Bob")
        again = await registry.resolve_or_create("r1", "u1", "Alice")
        return first, second, again

    (room, is_creator), (room2, is_creator2), (_, is_creator3) = asyncio.run(scenario())

    assert is_creator is True
    assert room.creator_id == "u1"
    assert is_creator2 is False
    assert room2.creator_id == "u1"
    assert is_creator3 is True


def test_end_meeting_rejects_non_creator():
    async def scenario():
        _, messages, participants, registry = _components()
        await registry.resolve_or_create("r1", "u1", "Alice")
        await participants.upsert("r1", "u1", "Alice", "c1")
        await messages.append(Message(room_id="r1", author="Alice", user_id="u1", text="hi"))

        with pytest.raises(Forbidden):
            await registry.end_meeting("r1", "u2")
        return await registry.get("r1"), await messages.recent("r1")

    room, recent = asyncio.run(scenario())

    assert room is not None
    assert len(recent) == 1


def test_end_meeting_on_missing_room_is_forbidden():
    async def scenario():
        _, _, _, registry = _components()
        with pytest.raises(Forbidden):
            await registry.end_meeting("nope", "u1")

    asyncio.run(scenario())


def test_end_meeting_clears_room_data():
    async def scenario():
        _, messages, participants, registry = _components()
        await registry.resolve_or_create("r1", "u1", "Alice")
        await participants.upsert("r1", "u1", "Alice", "c1")
        await participants.upsert("r1", "u2", "Bob", "c2")
        for text in ("one", "two", "three"):
            await messages.append(Message(room_id="r1", author="Alice", user_id="u1", text=text))

        counts = await registry.end_meeting("r1", "u1")
        return (
            counts,
            await registry.get("r1"),
            await messages.recent("r1"),
            await participants.list("r1"),
            participants.membership("c1"),
        )

    counts, room, recent, roster, membership = asyncio.run(scenario())

    assert counts == (3, 2)
    assert room is None
    assert recent == []
    assert roster == []
    assert membership is None


# ----------------------------------------------------------------------
# ParticipantDirectory
# ----------------------------------------------------------------------

def test_upsert_binds_connection_both_ways():
    async def scenario():
        _, _, participants, _ = _components()
        saved = await participants.upsert("r1", "u1", "Alice", "c1")
        found = await participants.find_by_connection("c1")
        return saved, found, participants

    saved, found, participants = asyncio.run(scenario())

    assert saved.status == ONLINE
    assert found.user_id == "u1"
    assert participants.membership("c1") == ("r1", "u1")
    assert participants.connection_for("r1", "u1") == "c1"


def test_late_disconnect_does_not_demote_new_binding():
    async def scenario():
        store, _, participants, _ = _components()
        await participants.upsert("r1", "u1", "Alice", "c-old")
        await participants.upsert("r1", "u1", "Alice", "c-new")

        changed = await participants.mark_offline("r1", "u1", "c-old")
        return changed, await store.get_participant("r1", "u1"), participants

    changed, participant, participants = asyncio.run(scenario())

    assert changed is False
    assert participant.status == ONLINE
    assert participant.connection_id == "c-new"
    assert participants.membership("c-old") is None
    assert participants.connection_for("r1", "u1") == "c-new"


def test_mark_offline_is_idempotent():
    async def scenario():
        store, _, participants, _ = _components()
        await participants.upsert("r1", "u1", "Alice", "c1")
        first = await participants.mark_offline("r1", "u1", "c1")
        second = await participants.mark_offline("r1", "u1", "c1")
        return first, second, await store.get_participant("r1", "u1")

    first, second, participant = asyncio.run(scenario())

    assert first is True
    assert second is False
    assert participant.status == OFFLINE
    assert participant.connection_id is None


def test_name_collision_demotes_previous_user():
    async def scenario():
        _, _, participants, _ = _components()
        await participants.upsert("r1", "u-old", "Alice", "c1")
        demoted = await participants.demote_name_collisions("r1", "u-new", "Alice")
        return demoted, await participants.list("r1"), participants

    demoted, roster, participants = asyncio.run(scenario())

    assert [p.user_id for p in demoted] == ["u-old"]
    assert roster[0].status == OFFLINE
    assert participants.membership("c1") is None


def test_name_collision_ignores_participants_already_offline():
    async def scenario():
        _, _, participants, _ = _components()
        await participants.upsert("r1", "u-old", "Alice", "c1")
        await participants.mark_offline("r1", "u-old", "c1")
        return await participants.demote_name_collisions("r1", "u-new", "Alice")

    assert asyncio.run(scenario()) == []


def test_sweep_stale_skips_live_connections():
    async def scenario():
        store, _, participants, _ = _components()
        await participants.upsert("r1", "u1", "Alice", "c1")
        await participants.upsert("r2", "u2", "Bob", "c2")
        old = utcnow() - timedelta(minutes=10)
        await store.touch_participant("r1", "u1", old)
        await store.touch_participant("r2", "u2", old)

        rooms = await participants.sweep_stale(300, live_connections=["c1"])
        return rooms, await store.get_participant("r1", "u1"), await store.get_participant("r2", "u2"), participants

    rooms, alice, bob, participants = asyncio.run(scenario())

    assert rooms == {"r2"}
    assert alice.status == ONLINE
    assert bob.status == OFFLINE
    assert participants.connection_for("r2", "u2") is None


def test_roster_is_ordered_by_join_time():
    async def scenario():
        _, _, participants, _ = _components()
        for user in ("u1", "u2", "u3"):
            await participants.upsert("r1", user, user.upper(), f"c-{user}")
        return await participants.list("r1")

    roster = asyncio.run(scenario())
    assert [p.user_id for p in roster] == ["u1", "u2", "u3"]


# ----------------------------------------------------------------------
# MessageLog
# ----------------------------------------------------------------------

def test_append_stamps_timestamp_and_display_time():
    async def scenario():
        _, messages, _, _ = _components()
        return await messages.append(Message(room_id="r1", author="Alice", user_id="u1", text="hi"))

    stored = asyncio.run(scenario())

    assert stored.timestamp is not None
    assert stored.time == display_time(stored.timestamp)


def test_append_keeps_client_display_time():
    async def scenario():
        _, messages, _, _ = _components()
        return await messages.append(
            Message(room_id="r1", author="Alice", user_id="u1", text="hi", time="09:30")
        )

    assert asyncio.run(scenario()).time == "09:30"


def test_transcript_contains_only_voice_transcriptions():
    async def scenario():
        _, messages, _, _ = _components()
        await messages.append(Message(room_id="r1", author="Alice", user_id="u1", text="chat"))
        await messages.append(Message(
            room_id="r1", author="transcription", user_id="system",
            text="안녕하세요", type=VOICE_TRANSCRIPTION_MESSAGE, time="10:01",
        ))
        await messages.append(Message(
            room_id="r1", author="transcription", user_id="system",
            text="회의를 시작합니다", type=VOICE_TRANSCRIPTION_MESSAGE, time="10:02",
        ))
        return await messages.transcript("r1")

    text = asyncio.run(scenario())

    assert text == (
        "[10:01] transcription: 안녕하세요\n"
        "[10:02] transcription: 회의를 시작합니다\n"
    )


def test_purge_expired_uses_retention_days():
    async def scenario():
        store = PersistenceGateway(MemoryStore())
        messages = MessageLog(store, retention_days=7)
        await messages.append(Message(
            room_id="r1", author="Alice", user_id="u1", text="old",
            timestamp=utcnow() - timedelta(days=8),
        ))
        await messages.append(Message(room_id="r1", author="Alice", user_id="u1", text="new"))
        deleted = await messages.purge_expired()
        return deleted, await messages.recent("r1")

    deleted, remaining = asyncio.run(scenario())

    assert deleted == 1
    assert [m.text for m in remaining] == ["new"]
