"""Unit tests for the session registry and thread matching."""
import pytest

from zerolink.chat.manager import Session, SessionRegistry, watches_thread


def _session(ws, user, room="global", ready=True):
    return Session(websocket=ws, user_id=user, room_id=room, ready=ready)


class TestWatchesThread:
    """Tests for the shared thread-match predicate."""

    def test_sender_own_view(self):
        assert watches_thread("alice", "bob", "alice", "bob")

    def test_recipient_view(self):
        assert watches_thread("bob", "alice", "alice", "bob")

    def test_recipient_in_other_room_does_not_watch(self):
        assert not watches_thread("bob", "carol", "alice", "bob")
        assert not watches_thread("bob", "global", "alice", "bob")

    def test_third_party_viewing_recipient_does_not_watch(self):
        assert not watches_thread("carol", "bob", "alice", "bob")

    def test_global_room_watched_by_everyone_in_it(self):
        assert watches_thread("carol", "global", "alice", "global")
        assert watches_thread("alice", "global", "alice", "global")

    def test_global_not_watched_from_direct_room(self):
        assert not watches_thread("carol", "alice", "alice", "global")


class TestSessionRegistry:
    """Tests for registration and selection."""

    def test_add_and_remove(self, fake_ws):
        registry = SessionRegistry()
        session = registry.add(_session(fake_ws(), "alice"))

        assert len(registry) == 1
        assert session in registry
        assert registry.get(session.session_id) is session

        assert registry.remove(session.session_id) is session
        assert len(registry) == 0
        assert registry.remove(session.session_id) is None

    def test_same_user_can_hold_several_sessions(self, fake_ws):
        registry = SessionRegistry()
        registry.add(_session(fake_ws(), "alice", "global"))
        registry.add(_session(fake_ws(), "alice", "bob"))

        assert len(registry.sessions_for_user("alice")) == 2
        assert registry.sessions_for_user("bob") == []

    def test_select_direct_thread(self, fake_ws):
        registry = SessionRegistry()
        a_b = registry.add(_session(fake_ws(), "alice", "bob"))
        b_a = registry.add(_session(fake_ws(), "bob", "alice"))
        registry.add(_session(fake_ws(), "carol", "bob"))
        registry.add(_session(fake_ws(), "bob", "global"))

        assert set(registry.select("alice", "bob")) == {a_b, b_a}
        assert registry.select("alice", "bob", exclude=a_b) == [b_a]

    def test_select_global(self, fake_ws):
        registry = SessionRegistry()
        g1 = registry.add(_session(fake_ws(), "alice", "global"))
        g2 = registry.add(_session(fake_ws(), "bob", "global"))
        registry.add(_session(fake_ws(), "carol", "alice"))

        assert set(registry.select("alice", "global")) == {g1, g2}


class TestDelivery:
    """Tests for send, deliver and the ready gate."""

    @pytest.mark.asyncio
    async def test_deliver_removes_failing_sessions(self, fake_ws):
        registry = SessionRegistry()
        good = registry.add(_session(fake_ws(), "alice"))
        dead = registry.add(_session(fake_ws(fail=True), "bob"))

        delivered = await registry.deliver([good, dead], {"type": "typing", "username": "x"})

        assert delivered == [good]
        assert good.websocket.sent == [{"type": "typing", "username": "x"}]
        assert dead not in registry
        assert good in registry

    @pytest.mark.asyncio
    async def test_deliver_to_nobody(self):
        assert await SessionRegistry().deliver([], {"type": "typing"}) == []

    @pytest.mark.asyncio
    async def test_send_buffers_until_ready(self, fake_ws):
        registry = SessionRegistry()
        session = registry.add(_session(fake_ws(), "alice", ready=False))

        await registry.send(session, {"type": "typing", "username": "bob"})
        assert session.websocket.sent == []

        await registry.mark_ready(session, set())
        assert session.ready
        assert session.websocket.types() == ["typing"]

        await registry.send(session, {"type": "typing", "username": "bob"})
        assert session.websocket.types() == ["typing", "typing"]

    @pytest.mark.asyncio
    async def test_mark_ready_skips_replayed_messages(self, fake_ws):
        registry = SessionRegistry()
        session = registry.add(_session(fake_ws(), "alice", ready=False))

        await registry.send(session, {"type": "message", "message": {"_id": "m1"}})
        await registry.send(session, {"type": "message", "message": {"_id": "m2"}})
        await registry.mark_ready(session, {"m1"})

        assert [p["message"]["_id"] for p in session.websocket.sent] == ["m2"]

    @pytest.mark.asyncio
    async def test_mark_ready_drops_dead_session(self, fake_ws):
        registry = SessionRegistry()
        session = registry.add(_session(fake_ws(fail=True), "alice", ready=False))

        await registry.send(session, {"type": "typing", "username": "bob"})
        await registry.mark_ready(session, set())

        assert session not in registry
        assert not session.ready
