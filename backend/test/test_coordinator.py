"""MeetingCoordinator 시나리오 테스트.

가짜 WebSocket 여러 개를 같은 MeetingContext 에 연결해서
입장/채팅/퇴장/회의 종료/시그널링/음성 인식 흐름을 확인합니다.
"""

import asyncio
import json
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from meetroom.context import MeetingContext
from meetroom.room.models import OFFLINE, ONLINE, utcnow
from meetroom.shared.errors import RateLimitExceeded

from fakes import FakeConnector, FakeSocket, make_settings, make_transcription_config, wait_until


async def _connect(meeting: MeetingContext, connection_id: str, yields: bool = False) -> FakeSocket:
    socket = FakeSocket(yields=yields)
    await meeting.coordinator.connect(connection_id, socket, f"client-{connection_id}")
    return socket


async def _join(meeting, connection_id, room_id, user_id, name):
    await meeting.coordinator.handle(
        connection_id, "joinRoom", {"roomId": room_id, "userId": user_id, "username": name}
    )


async def _two_members(meeting):
    alice = await _connect(meeting, "ca")
    bob = await _connect(meeting, "cb")
    await _join(meeting, "ca", "r1", "alice", "Alice")
    await _join(meeting, "cb", "r1", "bob", "Bob")
    alice.clear()
    bob.clear()
    return alice, bob


def _statuses(roster):
    return {p["userId"]: p["status"] for p in roster}


def test_connect_announces_connection_id():
    async def scenario():
        meeting = MeetingContext.build(make_settings())
        return await _connect(meeting, "ca")

    socket = asyncio.run(scenario())
    assert socket.sent == [{"type": "connected", "data": {"connectionId": "ca"}}]


def test_join_sends_room_snapshot_and_notifies_others():
    async def scenario():
        meeting = MeetingContext.build(make_settings())
        alice = await _connect(meeting, "ca")
        bob = await _connect(meeting, "cb")
        await _join(meeting, "ca", "r1", "alice", "Alice")
        alice_first = alice.events("roomData")[0]
        alice.clear()
        await _join(meeting, "cb", "r1", "bob", "Bob")
        return alice_first, alice, bob

    alice_first, alice, bob = asyncio.run(scenario())

    assert alice_first["isCreator"] is True
    assert alice_first["roomInfo"]["creatorId"] == "alice"
    assert alice_first["messages"] == []

    room_data = bob.events("roomData")[0]
    assert room_data["isCreator"] is False
    assert room_data["roomInfo"]["creatorName"] == "Alice"
    assert _statuses(room_data["participants"]) == {"alice": ONLINE, "bob": ONLINE}

    assert alice.types() == ["userJoined", "participantsUpdate"]
    assert alice.events("userJoined")[0]["userId"] == "bob"
    assert alice.events("userJoined")[0]["socketId"] == "cb"
    assert bob.events("userJoined") == []
    assert len(bob.events("participantsUpdate")) == 1


def test_send_message_is_broadcast_and_recorded():
    async def scenario():
        meeting = MeetingContext.build(make_settings())
        alice, bob = await _two_members(meeting)
        await meeting.coordinator.handle("ca", "sendMessage", {
            "roomId": "r1", "author": "Alice", "userId": "alice", "text": "hello",
        })
        carol = await _connect(meeting, "cc")
        await _join(meeting, "cc", "r1", "carol", "Carol")
        return alice, bob, carol, await meeting.messages.recent("r1")

    alice, bob, carol, recent = asyncio.run(scenario())

    for socket in (alice, bob):
        message = socket.events("newMessage")[0]
        assert message["text"] == "hello"
        assert message["type"] == "user"
        assert message["timestamp"] is not None
        assert message["time"] is not None
    assert [m.text for m in recent] == ["hello"]
    assert carol.events("roomData")[0]["messages"][0]["text"] == "hello"


def test_file_attachment_size_keeps_its_type():
    async def scenario():
        meeting = MeetingContext.build(make_settings())
        alice, bob = await _two_members(meeting)
        for size in (1024, "1.2 MB"):
            await meeting.coordinator.handle("ca", "sendMessage", {
                "roomId": "r1", "author": "Alice", "userId": "alice", "text": "",
                "file": {"name": "notes.pdf", "size": size, "type": "application/pdf"},
            })
        return bob, await meeting.messages.recent("r1")

    bob, recent = asyncio.run(scenario())

    assert [m["file"]["size"] for m in bob.events("newMessage")] == [1024, "1.2 MB"]
    assert [m.file.size for m in recent] == [1024, "1.2 MB"]


def test_typing_goes_to_others_only():
    async def scenario():
        meeting = MeetingContext.build(make_settings())
        alice, bob = await _two_members(meeting)
        await meeting.coordinator.handle("ca", "typing", {
            "roomId": "r1", "userId": "alice", "username": "Alice", "isTyping": True,
        })
        return alice, bob

    alice, bob = asyncio.run(scenario())

    assert alice.sent == []
    assert bob.events("userTyping") == [{"userId": "alice", "username": "Alice", "isTyping": True}]


def test_invalid_payload_errors_only_to_sender():
    async def scenario():
        meeting = MeetingContext.build(make_settings())
        alice, bob = await _two_members(meeting)
        await meeting.coordinator.handle("ca", "joinRoom", {"roomId": "r1"})
        await meeting.coordinator.handle("ca", "sendMessage", "not an object")
        await meeting.coordinator.handle("ca", "bogus", {})
        return alice, bob

    alice, bob = asyncio.run(scenario())

    assert alice.events("error") == [
        {"message": "Missing required parameters"},
        {"message": "Missing required parameters"},
        {"message": "Unknown event: bogus"},
    ]
    assert bob.sent == []


def test_unexpected_failure_sends_generic_error():
    async def scenario():
        meeting = MeetingContext.build(make_settings())
        alice, bob = await _two_members(meeting)
        meeting.messages.append = AsyncMock(side_effect=RuntimeError("boom"))
        await meeting.coordinator.handle("ca", "sendMessage", {
            "roomId": "r1", "author": "Alice", "userId": "alice", "text": "hello",
        })
        return alice, bob

    alice, bob = asyncio.run(scenario())

    assert alice.events("error") == [{"message": "sendMessage failed, please retry"}]
    assert bob.sent == []


def test_leave_room_notifies_and_stops_delivery():
    async def scenario():
        meeting = MeetingContext.build(make_settings())
        alice, bob = await _two_members(meeting)
        await meeting.coordinator.handle("cb", "leaveRoom", {"roomId": "r1", "userId": "bob"})
        bob.clear()
        await meeting.coordinator.handle("ca", "sendMessage", {
            "roomId": "r1", "author": "Alice", "userId": "alice", "text": "still here?",
        })
        return alice, bob

    alice, bob = asyncio.run(scenario())

    assert alice.events("userLeft") == [{"userId": "bob"}]
    assert _statuses(alice.events("participantsUpdate")[0]) == {"alice": ONLINE, "bob": OFFLINE}
    assert bob.sent == []


def test_disconnect_marks_offline_and_notifies_room():
    async def scenario():
        meeting = MeetingContext.build(make_settings())
        alice, bob = await _two_members(meeting)
        await meeting.coordinator.disconnect("cb")
        await meeting.coordinator.disconnect("cb")
        return alice, await meeting.participants.list("r1")

    alice, roster = asyncio.run(scenario())

    assert alice.events("userLeft") == [{"userId": "bob"}]
    assert len(alice.events("participantsUpdate")) == 1
    assert {p.user_id: p.status for p in roster} == {"alice": ONLINE, "bob": OFFLINE}


def test_late_disconnect_of_previous_connection_keeps_rejoined_user_online():
    async def scenario():
        meeting = MeetingContext.build(make_settings())
        alice, bob = await _two_members(meeting)
        await _connect(meeting, "cb2")
        await _join(meeting, "cb2", "r1", "bob", "Bob")
        alice.clear()
        await meeting.coordinator.disconnect("cb")
        return alice, await meeting.gateway.get_participant("r1", "bob")

    alice, bob_record = asyncio.run(scenario())

    assert alice.events("userLeft") == []
    assert bob_record.status == ONLINE
    assert bob_record.connection_id == "cb2"


def test_joining_another_room_departs_previous_room():
    async def scenario():
        meeting = MeetingContext.build(make_settings())
        alice, bob = await _two_members(meeting)
        await _join(meeting, "cb", "r2", "bob", "Bob")
        return alice, bob, meeting

    alice, bob, meeting = asyncio.run(scenario())

    assert alice.events("userLeft") == [{"userId": "bob"}]
    assert bob.events("roomData")[0]["isCreator"] is True
    assert meeting.hub.groups_of("cb") == {"r2"}


def test_end_meeting_requires_creator():
    async def scenario():
        meeting = MeetingContext.build(make_settings())
        alice, bob = await _two_members(meeting)
        await meeting.coordinator.handle("cb", "endMeeting", {"roomId": "r1", "userId": "bob"})
        return alice, bob, await meeting.registry.get("r1")

    alice, bob, room = asyncio.run(scenario())

    assert bob.events("error") == [{"message": "Only the meeting creator can end the meeting"}]
    assert alice.sent == []
    assert room is not None


def test_end_meeting_by_creator_clears_room():
    async def scenario():
        meeting = MeetingContext.build(make_settings())
        alice, bob = await _two_members(meeting)
        await meeting.coordinator.handle("ca", "sendMessage", {
            "roomId": "r1", "author": "Alice", "userId": "alice", "text": "bye",
        })
        await meeting.coordinator.handle("ca", "endMeeting", {"roomId": "r1", "userId": "alice"})
        return alice, bob, meeting, await meeting.registry.get("r1")

    alice, bob, meeting, room = asyncio.run(scenario())

    ended = bob.events("meetingEnded")[0]
    assert ended["deletedMessages"] == 1
    assert ended["deletedParticipants"] == 2
    assert alice.events("meetingEnded")[0] == ended
    assert alice.events("endMeetingSuccess")[0]["deletedMessages"] == 1
    assert meeting.hub.members("r1") == set()
    assert room is None


def test_join_racing_end_meeting_lands_in_fresh_room():
    async def scenario():
        meeting = MeetingContext.build(make_settings())
        alice = await _connect(meeting, "ca", yields=True)
        bob = await _connect(meeting, "cb", yields=True)
        await _join(meeting, "ca", "r1", "alice", "Alice")
        await _join(meeting, "cb", "r1", "bob", "Bob")
        carol = await _connect(meeting, "cc", yields=True)

        await asyncio.gather(
            meeting.coordinator.handle("ca", "endMeeting", {"roomId": "r1", "userId": "alice"}),
            meeting.coordinator.handle(
                "cc", "joinRoom", {"roomId": "r1", "userId": "carol", "username": "Carol"}
            ),
        )
        members = meeting.hub.members("r1")
        await meeting.coordinator.handle("cc", "sendMessage", {
            "roomId": "r1", "author": "Carol", "userId": "carol", "text": "anyone?",
        })
        return alice, bob, carol, members, await meeting.registry.get("r1")

    alice, bob, carol, members, room = asyncio.run(scenario())

    assert alice.events("endMeetingSuccess")[0]["deletedParticipants"] == 2
    assert carol.events("meetingEnded") == []
    assert carol.events("roomData")[0]["isCreator"] is True
    assert members == {"cc"}
    assert room.creator_id == "carol"
    assert [m["text"] for m in carol.events("newMessage")] == ["anyone?"]
    assert bob.events("newMessage") == []


def test_webrtc_signals_are_relayed_to_target_only():
    async def scenario():
        meeting = MeetingContext.build(make_settings())
        alice, bob = await _two_members(meeting)
        await meeting.coordinator.handle("ca", "webrtc-offer", {
            "roomId": "r1", "fromUserId": "alice", "toUserId": "bob",
            "sdp": {"type": "offer", "sdp": "v=0"},
        })
        await meeting.coordinator.handle("cb", "webrtc-ice-candidate", {
            "roomId": "r1", "fromUserId": "bob", "toUserId": "alice",
            "candidate": {"candidate": "candidate:1", "sdpMid": "0"},
        })
        await meeting.coordinator.handle("ca", "webrtc-answer", {
            "roomId": "r1", "fromUserId": "alice", "toUserId": "ghost", "sdp": {},
        })
        return alice, bob

    alice, bob = asyncio.run(scenario())

    assert bob.sent == [{
        "type": "webrtc-offer",
        "data": {"roomId": "r1", "fromUserId": "alice", "sdp": {"type": "offer", "sdp": "v=0"}},
    }]
    assert alice.sent == [{
        "type": "webrtc-ice-candidate",
        "data": {
            "roomId": "r1", "fromUserId": "bob",
            "candidate": {"candidate": "candidate:1", "sdpMid": "0"},
        },
    }]


def test_voice_join_leave_and_disconnect():
    async def scenario():
        meeting = MeetingContext.build(make_settings())
        alice, bob = await _two_members(meeting)
        await meeting.coordinator.handle("ca", "voice-join", {"roomId": "r1", "userId": "alice"})
        await meeting.coordinator.handle("cb", "voice-join", {"roomId": "r1", "userId": "bob"})
        voice_users = bob.events("voice-users")
        await meeting.coordinator.disconnect("cb")
        return alice, voice_users, meeting.voice.members("r1")

    alice, voice_users, members = asyncio.run(scenario())

    assert voice_users == [["alice", "bob"]]
    assert alice.events("voice-users") == [["alice"]]
    assert alice.events("voice-user-joined") == [{"userId": "bob"}]
    assert alice.events("voice-user-left") == [{"userId": "bob"}]
    assert members == ["alice"]


def test_name_collision_drops_previous_identity_from_voice_call():
    async def scenario():
        meeting = MeetingContext.build(make_settings())
        await _connect(meeting, "c1")
        bob = await _connect(meeting, "cb")
        await _join(meeting, "c1", "r1", "u-old", "Ann")
        await _join(meeting, "cb", "r1", "bob", "Bob")
        await meeting.coordinator.handle("c1", "voice-join", {"roomId": "r1", "userId": "u-old"})
        bob.clear()

        await _connect(meeting, "c2")
        await _join(meeting, "c2", "r1", "u-new", "Ann")
        announced = list(bob.sent)
        await meeting.coordinator.disconnect("c1")
        bob.clear()
        await meeting.coordinator.handle("cb", "voice-join", {"roomId": "r1", "userId": "bob"})
        return announced, bob

    announced, bob = asyncio.run(scenario())

    announced_types = [m["type"] for m in announced]
    assert {"type": "userLeft", "data": {"userId": "u-old"}} in announced
    assert {"type": "voice-user-left", "data": {"userId": "u-old"}} in announced
    assert announced_types.index("voice-user-left") < announced_types.index("userJoined")
    assert bob.events("voice-users") == [["bob"]]


def test_rate_limit_breach_errors_and_raises():
    async def scenario():
        meeting = MeetingContext.build(make_settings(points=2))
        alice = await _connect(meeting, "ca")
        await _join(meeting, "ca", "r1", "alice", "Alice")
        # typing 은 제한 대상이 아님
        for _ in range(5):
            await meeting.coordinator.handle("ca", "typing", {"roomId": "r1", "isTyping": True})
        await meeting.coordinator.handle("ca", "sendMessage", {
            "roomId": "r1", "author": "Alice", "userId": "alice", "text": "one",
        })
        with pytest.raises(RateLimitExceeded):
            await meeting.coordinator.handle("ca", "sendMessage", {
                "roomId": "r1", "author": "Alice", "userId": "alice", "text": "two",
            })
        return alice, await meeting.messages.recent("r1")

    alice, recent = asyncio.run(scenario())

    assert alice.events("error") == [{"message": "Too many requests, please retry later"}]
    assert [m.text for m in recent] == ["one"]


def test_invalid_audio_chunk_is_rejected():
    async def scenario():
        meeting = MeetingContext.build(make_settings())
        alice, _ = await _two_members(meeting)
        await meeting.coordinator.handle("ca", "audio-chunk", {"roomId": "r1", "chunkBase64": "@@@"})
        return alice

    alice = asyncio.run(scenario())
    assert alice.events("error") == [{"message": "Invalid audio chunk"}]


def test_audio_without_credentials_is_dropped_silently():
    async def scenario():
        meeting = MeetingContext.build(make_settings())
        alice, bob = await _two_members(meeting)
        await meeting.coordinator.handle("ca", "asr-start", {"roomId": "r1"})
        await meeting.coordinator.handle("ca", "audio-chunk", {"roomId": "r1", "chunkBase64": "AAAA"})
        return alice, bob

    alice, bob = asyncio.run(scenario())

    assert alice.sent == []
    assert bob.sent == []


def test_transcripts_are_broadcast_and_final_ones_recorded():
    async def scenario():
        connector = FakeConnector()
        settings = make_settings(transcription=make_transcription_config(mode="rtasr"))
        meeting = MeetingContext.build(settings, upstream_connect=connector)
        alice, bob = await _two_members(meeting)

        await meeting.coordinator.handle("ca", "asr-start", {"roomId": "r1"})
        await meeting.coordinator.handle("ca", "audio-chunk", {"roomId": "r1", "chunkBase64": "AAAA"})
        await wait_until(lambda: connector.upstreams)
        upstream = connector.last

        upstream.push(json.dumps({"action": "started"}))
        for text, kind in (("大家", "1"), ("大家好", "0")):
            body = {"cn": {"st": {"type": kind, "rt": [{"ws": [{"cw": [{"w": text}]}]}]}}}
            upstream.push(json.dumps({"action": "result", "data": json.dumps(body)}))
        await wait_until(lambda: len(bob.events("transcript")) == 2)

        sent_audio = list(upstream.sent)
        await meeting.coordinator.handle("ca", "asr-stop", {"roomId": "r1"})
        transcript = await meeting.messages.transcript("r1")
        await meeting.coordinator.stop()
        return alice, bob, sent_audio, transcript, upstream.closed

    alice, bob, sent_audio, transcript, upstream_closed = asyncio.run(scenario())

    expected = [{"text": "大家", "isFinal": False}, {"text": "大家好", "isFinal": True}]
    assert alice.events("transcript") == expected
    assert bob.events("transcript") == expected
    assert sent_audio == [b"\x00\x00\x00"]
    assert transcript.endswith("transcription: 大家好\n")
    assert transcript.count("\n") == 1
    assert upstream_closed is True


def test_sweep_demotes_vanished_connections():
    async def scenario():
        meeting = MeetingContext.build(make_settings())
        alice, bob = await _two_members(meeting)

        # 종료 처리 없이 연결만 사라진 경우
        meeting.hub.unregister("cb")
        old = utcnow() - timedelta(minutes=30)
        await meeting.gateway.touch_participant("r1", "alice", old)
        await meeting.gateway.touch_participant("r1", "bob", old)

        await meeting.coordinator.sweep()
        return alice, await meeting.participants.list("r1")

    alice, roster = asyncio.run(scenario())

    assert {p.user_id: p.status for p in roster} == {"alice": ONLINE, "bob": OFFLINE}
    assert _statuses(alice.events("participantsUpdate")[0]) == {"alice": ONLINE, "bob": OFFLINE}
