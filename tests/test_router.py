"""
Tests for the message router and relays.

Tests verify:
- Role declaration and confirmation
- Video frame relay from User to Aids only
- Role-complement relay for drawing, clear, signaling and audio messages
- Heartbeat answered locally
- Malformed and unknown messages dropped without closing the connection
- Per-peer send failures isolated
"""

import json

import pytest

from assist_hub.hub import RelayHub
from shared.config.settings import Settings
from tests.conftest import FakeChannel, connect


async def setup_roles(hub, make_channel, *roles):
    channels = []
    for role in roles:
        channel = make_channel()
        await connect(hub, channel, role)
        channels.append(channel)
    for channel in channels:
        channel.clear()
    return channels


class TestRoleAssignment:
    """ROLE:<value> control token."""

    @pytest.mark.asyncio
    async def test_role_is_confirmed_then_status_broadcast(self, hub, make_channel):
        channel = make_channel()
        session = await hub.accept(channel)

        result = await hub.handle(channel, "ROLE:Aid")

        assert result.action == "role"
        assert session.role == "Aid"
        assert channel.texts[0] == "ROLE_CONFIRMED:Aid"
        status = channel.messages("client_status")
        assert len(status) == 1
        assert status[0]["aids"] == 1

    @pytest.mark.asyncio
    async def test_declaring_same_role_twice_broadcasts_twice(self, hub, make_channel):
        channel = make_channel()
        session = await hub.accept(channel)

        await hub.handle(channel, "ROLE:Aid")
        await hub.handle(channel, "ROLE:Aid")

        assert session.role == "Aid"
        assert channel.texts.count("ROLE_CONFIRMED:Aid") == 2
        assert len(channel.messages("client_status")) == 2

    @pytest.mark.asyncio
    async def test_role_split_on_first_colon_only(self, hub, make_channel):
        channel = make_channel()
        session = await hub.accept(channel)

        await hub.handle(channel, "ROLE:Aid:extra")

        assert session.role == "Aid:extra"
        assert channel.texts[0] == "ROLE_CONFIRMED:Aid:extra"

    @pytest.mark.asyncio
    async def test_role_token_in_binary_frame(self, hub, make_channel):
        channel = make_channel()
        session = await hub.accept(channel)

        await hub.handle(channel, b"ROLE:User")

        assert session.role == "User"

    @pytest.mark.asyncio
    async def test_role_change_reaches_other_sessions_status(self, hub, make_channel):
        (aid,) = await setup_roles(hub, make_channel, "Aid")
        user = make_channel()
        await hub.accept(user)

        await hub.handle(user, "ROLE:User")

        status = aid.messages("client_status")
        assert status[-1]["users"] == 1
        assert status[-1]["aids"] == 1

    @pytest.mark.asyncio
    async def test_unregistered_channel_is_ignored(self, hub):
        stranger = FakeChannel()

        result = await hub.handle(stranger, "ROLE:Aid")

        assert result.action == "ignored"
        assert stranger.sent == []


class TestFrameRelay:
    """Binary video frames."""

    @pytest.mark.asyncio
    async def test_frame_reaches_every_aid_and_nobody_else(self, hub, make_channel):
        user, aid1, aid2, other_user, unassigned = [make_channel() for _ in range(5)]
        await connect(hub, user, "User")
        await connect(hub, aid1, "Aid")
        await connect(hub, aid2, "Aid")
        await connect(hub, other_user, "User")
        await connect(hub, unassigned)
        for channel in (user, aid1, aid2, other_user, unassigned):
            channel.clear()

        frame = b"\xff\xd8\xff\xe0jpeg-bytes"
        result = await hub.handle(user, frame)

        assert result.action == "frame"
        assert result.delivered == 2
        assert aid1.frames == [frame]
        assert aid2.frames == [frame]
        assert user.sent == []
        assert other_user.sent == []
        assert unassigned.sent == []

    @pytest.mark.asyncio
    async def test_frame_without_aids_is_dropped(self, hub, make_channel):
        user, unassigned = make_channel(), make_channel()
        await connect(hub, user, "User")
        await connect(hub, unassigned)
        user.clear()
        unassigned.clear()

        result = await hub.handle(user, b"\x00\x01frame")

        assert result.action == "frame"
        assert result.delivered == 0
        assert user.sent == []
        assert unassigned.sent == []

    @pytest.mark.asyncio
    async def test_frame_skips_closed_aid(self, hub, make_channel):
        user, open_aid, closed_aid = await setup_roles(hub, make_channel, "User", "Aid", "Aid")
        await closed_aid.close()

        result = await hub.handle(user, b"frame")

        assert result.delivered == 1
        assert open_aid.frames == [b"frame"]
        assert closed_aid.frames == []

    @pytest.mark.asyncio
    async def test_binary_from_aid_is_not_a_frame(self, hub, make_channel):
        user, aid = await setup_roles(hub, make_channel, "User", "Aid")

        result = await hub.handle(aid, b"\xff\xd8binary")

        assert result.action == "malformed"
        assert user.sent == []

    @pytest.mark.asyncio
    async def test_binary_json_from_aid_is_parsed(self, hub, make_channel):
        user, aid = await setup_roles(hub, make_channel, "User", "Aid")

        result = await hub.handle(aid, json.dumps({"type": "clear"}).encode())

        assert result.action == "clear"
        assert len(user.messages("clear")) == 1


class TestRoleComplementRelay:
    """drawing / clear / signaling go to every session with a different role."""

    @pytest.mark.asyncio
    async def test_drawing_from_user_reaches_non_users(self, hub, make_channel):
        user, other_user, aid = await setup_roles(hub, make_channel, "User", "User", "Aid")
        unassigned = make_channel()
        await hub.accept(unassigned)

        points = [{"x": 0.1, "y": 0.2, "z": -1.0}, {"x": 0.3, "y": 0.4, "z": -1.0}]
        result = await hub.handle(user, json.dumps({"type": "drawing", "points": points, "color": "#ff0000"}))

        assert result.action == "drawing"
        assert result.delivered == 2
        sender = await hub.registry.lookup(user)
        for receiver in (aid, unassigned):
            (message,) = receiver.messages("drawing")
            assert message["points"] == points
            assert message["color"] == "#ff0000"
            assert message["is3D"] is True
            assert message["sessionId"] == sender.session_id
            assert isinstance(message["timestamp"], int)
        assert other_user.sent == []
        assert user.sent == []

    @pytest.mark.asyncio
    async def test_drawing_without_points_is_malformed(self, hub, make_channel):
        user, aid = await setup_roles(hub, make_channel, "User", "Aid")

        result = await hub.handle(user, json.dumps({"type": "drawing"}))

        assert result.action == "malformed"
        assert aid.sent == []

    @pytest.mark.asyncio
    async def test_clear_from_aid_reaches_user(self, hub, make_channel):
        user, aid = await setup_roles(hub, make_channel, "User", "Aid")

        await hub.handle(aid, json.dumps({"type": "clear"}))

        (message,) = user.messages("clear")
        assert "is3D" not in message
        assert "sessionId" in message
        assert aid.sent == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("kind", ["offer", "answer", "ice_candidate"])
    async def test_signaling_passes_through(self, hub, make_channel, kind):
        user, aid = await setup_roles(hub, make_channel, "User", "Aid")
        body = {"type": kind, "sdp": "v=0\r\no=- 46117 2 IN IP4 127.0.0.1", "candidate": {"sdpMid": "0"}}

        result = await hub.handle(aid, json.dumps(body))

        assert result.action == kind
        (message,) = user.messages(kind)
        assert message["sdp"] == body["sdp"]
        assert message["candidate"] == body["candidate"]
        assert "timestamp" in message and "sessionId" in message

    @pytest.mark.asyncio
    async def test_no_targets_is_not_an_error(self, hub, make_channel):
        (user,) = await setup_roles(hub, make_channel, "User")

        result = await hub.handle(user, json.dumps({"type": "clear"}))

        assert result.action == "clear"
        assert result.delivered == 0
        assert result.error is None


class TestAudioCall:
    """audio_call_start / audio_call_end / audio_status."""

    @pytest.mark.asyncio
    async def test_call_start_and_end_toggle_audio_and_broadcast(self, hub, make_channel):
        user, aid = await setup_roles(hub, make_channel, "User", "Aid")
        aid_session = await hub.registry.lookup(aid)

        await hub.handle(aid, json.dumps({"type": "audio_call_start"}))

        assert aid_session.audio_enabled is True
        assert len(user.messages("audio_call_start")) == 1
        assert user.messages("client_status")[-1]["audioConnections"] == 1
        assert aid.messages("client_status")[-1]["audioConnections"] == 1

        await hub.handle(aid, json.dumps({"type": "audio_call_end"}))

        assert aid_session.audio_enabled is False
        assert len(user.messages("audio_call_end")) == 1
        assert user.messages("client_status")[-1]["audioConnections"] == 0

    @pytest.mark.asyncio
    async def test_audio_status_relays_without_state_change(self, hub, make_channel):
        user, aid = await setup_roles(hub, make_channel, "User", "Aid")

        await hub.handle(user, json.dumps({"type": "audio_status", "status": "muted"}))

        (message,) = aid.messages("audio_status")
        assert message["status"] == "muted"
        assert aid.messages("client_status") == []
        assert (await hub.registry.lookup(user)).audio_enabled is False

    @pytest.mark.asyncio
    async def test_audio_status_requires_status_string(self, hub, make_channel):
        user, aid = await setup_roles(hub, make_channel, "User", "Aid")

        result = await hub.handle(user, json.dumps({"type": "audio_status", "status": 3}))

        assert result.action == "malformed"
        assert aid.sent == []

    @pytest.mark.asyncio
    async def test_audio_relay_disabled_treats_audio_as_unknown(self, clock, make_channel):
        hub = RelayHub(Settings(audio_relay_enabled=False, shutdown_grace=0.0), clock=clock)
        user, aid = await setup_roles(hub, make_channel, "User", "Aid")
        aid_session = await hub.registry.lookup(aid)

        for kind in ("offer", "audio_call_start"):
            result = await hub.handle(aid, json.dumps({"type": kind}))
            assert result.action == "unknown"

        assert aid_session.audio_enabled is False
        assert user.sent == []

        # Drawing still flows in the plain hub
        await hub.handle(aid, json.dumps({"type": "drawing", "points": []}))
        assert len(user.messages("drawing")) == 1


class TestHeartbeat:
    """Heartbeat is answered locally."""

    @pytest.mark.asyncio
    async def test_heartbeat_acks_sender_only(self, hub, make_channel):
        user, aid, other = await setup_roles(hub, make_channel, "User", "Aid", "Aid")

        result = await hub.handle(aid, json.dumps({"type": "heartbeat"}))

        assert result.action == "heartbeat"
        acks = aid.messages("heartbeat_ack")
        assert len(acks) == 1
        assert isinstance(acks[0]["timestamp"], int)
        assert len(aid.sent) == 1
        assert user.sent == []
        assert other.sent == []

    @pytest.mark.asyncio
    async def test_heartbeat_refreshes_last_seen(self, hub, make_channel, clock):
        (aid,) = await setup_roles(hub, make_channel, "Aid")
        session = await hub.registry.lookup(aid)

        clock.advance(45)
        await hub.handle(aid, json.dumps({"type": "heartbeat"}))

        assert session.last_seen == clock.now


class TestMalformedAndUnknown:
    """Bad input is dropped, the connection survives."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload",
        [
            "not json at all",
            "{\"type\": ",
            "[1, 2, 3]",
            "{\"points\": []}",
            "{\"type\": 7}",
            "{\"type\": \"clear\", \"v\": 1e400}",
        ],
    )
    async def test_malformed_payload_keeps_session(self, hub, make_channel, clock, payload):
        user, aid = await setup_roles(hub, make_channel, "User", "Aid")
        session = await hub.registry.lookup(aid)
        before = (session.role, session.audio_enabled, session.session_id)

        clock.advance(10)
        result = await hub.handle(aid, payload)

        assert result.action == "malformed"
        assert aid.is_open
        assert aid.closed_with is None
        assert len(hub.registry) == 2
        assert (session.role, session.audio_enabled, session.session_id) == before
        assert session.last_seen == clock.now
        assert aid.sent == [] and user.sent == []

    @pytest.mark.asyncio
    async def test_unknown_type_is_dropped(self, hub, make_channel):
        user, aid = await setup_roles(hub, make_channel, "User", "Aid")

        result = await hub.handle(user, json.dumps({"type": "laser_pointer", "x": 1}))

        assert result.action == "unknown"
        assert aid.sent == []
        assert user.sent == []


class TestFailureIsolation:
    """A failing peer never blocks delivery to the others."""

    @pytest.mark.asyncio
    async def test_failed_peer_does_not_stop_fanout(self, hub, make_channel):
        user, broken, healthy = await setup_roles(hub, make_channel, "User", "Aid", "Aid")
        broken.fail_sends = True

        result = await hub.handle(user, b"frame-bytes")

        assert result.report.attempted == 2
        assert result.report.delivered == 1
        assert result.report.failed == 1
        assert result.report.failures[0].session_id == (await hub.registry.lookup(broken)).session_id
        assert healthy.frames == [b"frame-bytes"]

    @pytest.mark.asyncio
    async def test_hanging_peer_times_out(self, hub, make_channel):
        user, slow, fast = await setup_roles(hub, make_channel, "User", "Aid", "Aid")
        slow.hang_sends = True

        result = await hub.handle(user, json.dumps({"type": "clear"}))

        assert result.report.delivered == 1
        assert result.report.failures[0].cause == "timeout"
        assert len(fast.messages("clear")) == 1
